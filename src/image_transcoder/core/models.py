"""核心数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from image_transcoder.core.config import Operation

if TYPE_CHECKING:
    from PIL import Image


class AssetStatus(str, Enum):
    """资产记录的状态机取值。"""

    READY = "ready"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class AssetMetadata:
    """原始文件的不可变元数据。"""

    name: str
    byte_size: int
    mime_type: str
    width: int
    height: int

    @property
    def size_kib(self) -> float:
        return round(self.byte_size / 1024, 2)

    @property
    def size_mib(self) -> float:
        return round(self.byte_size / (1024 * 1024), 2)

    @property
    def aspect_ratio(self) -> float:
        if self.height == 0:
            return 0.0
        return round(self.width / self.height, 2)

    @property
    def megapixels(self) -> float:
        return round(self.width * self.height / 1_000_000, 2)


@dataclass(slots=True)
class DecodedAsset:
    """解码阶段的产物：位图加元数据。"""

    bitmap: "Image.Image"
    metadata: AssetMetadata

    @property
    def width(self) -> int:
        return self.metadata.width

    @property
    def height(self) -> int:
        return self.metadata.height


@dataclass(frozen=True, slots=True)
class OutputFile:
    """一次操作产出的可下载文件。"""

    name: str
    data: bytes
    mime_type: str

    @property
    def byte_size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class CompressionResult:
    """目标体积压缩的结果。"""

    output_bytes: bytes
    achieved_size_kb: float
    achieved_quality: float
    compression_ratio_percent: int
    attempts: int
    target_met: bool
    quality_history: tuple[float, ...] = ()


@dataclass(frozen=True, slots=True)
class ConversionResult:
    """格式转换的结果。"""

    output_bytes: bytes
    output_mime_type: str
    output_size_kb: float
    output_name: str
    has_alpha: bool


@dataclass(frozen=True, slots=True)
class ResizeResult:
    """尺寸调整的结果。"""

    output_bytes: bytes
    new_width: int
    new_height: int
    output_size_kb: float
    output_mime_type: str


OperationResult = Union[CompressionResult, ConversionResult, ResizeResult]


@dataclass(slots=True)
class OutputMetadata:
    """输出文件的附加信息，用于展示与报告。"""

    operation: Operation
    size_kb: float
    mime_type: str
    width: int
    height: int
    quality: Optional[float] = None
    compression_ratio_percent: Optional[int] = None
    ssim: Optional[float] = None


@dataclass(slots=True)
class AssetRecord:
    """批次中的一张上传图片。"""

    id: int
    original_bytes: bytes
    original_metadata: AssetMetadata
    decoded_bitmap: Optional["Image.Image"] = None
    status: AssetStatus = AssetStatus.READY
    output_file: Optional[OutputFile] = None
    output_metadata: Optional[OutputMetadata] = None
    error_message: Optional[str] = None

    @property
    def name(self) -> str:
        return self.original_metadata.name

    def release(self) -> None:
        """释放位图与输出缓冲。"""

        if self.decoded_bitmap is not None:
            self.decoded_bitmap.close()
            self.decoded_bitmap = None
        self.output_file = None
        self.output_metadata = None


@dataclass(slots=True)
class FileOutcome:
    """记录单个文件的处理结果（用于报告/日志）。"""

    source_name: str
    status: str
    operation: Optional[str] = None
    output_name: Optional[str] = None
    original_size_kb: Optional[float] = None
    output_size_kb: Optional[float] = None
    message: Optional[str] = None
    ssim: Optional[float] = None


@dataclass(slots=True)
class BatchResult:
    """一次批量操作的产出。"""

    succeeded: list[FileOutcome] = field(default_factory=list)
    failed: list[FileOutcome] = field(default_factory=list)
    written: list[Path] = field(default_factory=list)

    def all_outcomes(self) -> list[FileOutcome]:
        """返回所有结果记录，方便生成报告。"""

        return [*self.succeeded, *self.failed]
