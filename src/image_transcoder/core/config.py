"""处理任务的配置模型。"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from image_transcoder.core.exceptions import InvalidConfigurationError

TARGET_SIZE_PRESETS_KB = (100, 200, 500, 1000, 2000)
TARGET_SIZE_RANGE_KB = (50, 5000)
QUALITY_RANGE = (0.1, 1.0)
QUALITY_STEP = 0.1
DEFAULT_CONVERSION_QUALITY = 0.92

CONFLICT_STRATEGIES = ("overwrite", "skip", "rename")


class TargetFormat(str, Enum):
    """格式转换的目标容器。"""

    PNG = "png"  # 无损，支持透明
    JPEG = "jpeg"  # 有损，不支持透明
    WEBP = "webp"  # 有损/无损，支持透明


class Operation(str, Enum):
    """批处理可执行的单资产操作。"""

    COMPRESS = "compress"
    CONVERT = "convert"
    RESIZE = "resize"


def _on_quality_grid(value: float) -> bool:
    steps = round(value / QUALITY_STEP)
    return abs(steps * QUALITY_STEP - value) < 1e-6


@dataclass(slots=True)
class CompressionConfig:
    """目标体积压缩配置。"""

    target_size_kb: int = 500
    initial_quality: float = 0.8

    def validate(self) -> None:
        low, high = TARGET_SIZE_RANGE_KB
        if not low <= self.target_size_kb <= high:
            raise InvalidConfigurationError(f"目标大小必须在 {low}~{high} KB 之间: {self.target_size_kb}")
        q_low, q_high = QUALITY_RANGE
        if not (q_low - 1e-9) <= self.initial_quality <= (q_high + 1e-9):
            raise InvalidConfigurationError(f"初始质量必须在 {q_low}~{q_high} 之间: {self.initial_quality}")
        if not _on_quality_grid(self.initial_quality):
            raise InvalidConfigurationError(f"初始质量必须以 {QUALITY_STEP} 为步长: {self.initial_quality}")


@dataclass(slots=True)
class ConversionConfig:
    """格式转换配置。"""

    target_format: TargetFormat = TargetFormat.PNG
    quality: float = DEFAULT_CONVERSION_QUALITY
    lossless: bool = False

    def validate(self) -> None:
        if not isinstance(self.target_format, TargetFormat):
            raise InvalidConfigurationError(f"未知的目标格式: {self.target_format}")
        if not 0 < self.quality <= 1:
            raise InvalidConfigurationError(f"转换质量必须在 (0, 1] 之间: {self.quality}")
        if self.lossless and self.target_format is TargetFormat.JPEG:
            raise InvalidConfigurationError("JPEG 不支持无损模式")


@dataclass(slots=True)
class ResizeConfig:
    """尺寸调整配置。"""

    width: int = 800
    height: int = 600
    lock_aspect_ratio: bool = True

    def validate(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise InvalidConfigurationError(f"目标尺寸必须大于 0: {self.width}x{self.height}")


@dataclass(slots=True)
class OutputConfig:
    """输出目录与冲突策略配置。"""

    output_dir: Path
    conflict_strategy: str = "rename"  # overwrite | skip | rename
    archive_name: str = "images.zip"

    def validate(self) -> None:
        if self.conflict_strategy not in CONFLICT_STRATEGIES:
            raise InvalidConfigurationError(f"未知的冲突策略: {self.conflict_strategy}")
        if not self.archive_name.strip():
            raise InvalidConfigurationError("归档文件名不能为空")


@dataclass(slots=True)
class BatchConfig:
    """单个批次当前生效的操作参数集合。"""

    compression: CompressionConfig = field(default_factory=CompressionConfig)
    conversion: ConversionConfig = field(default_factory=ConversionConfig)
    resize: ResizeConfig = field(default_factory=ResizeConfig)
    check_similarity: bool = False
    report_filename: str = "report.csv"

    def validate(self) -> None:
        self.compression.validate()
        self.conversion.validate()
        self.resize.validate()
