"""输出写入与冲突处理模块。"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from itertools import count
from pathlib import Path
from typing import Optional, Protocol

from image_transcoder.core.config import OutputConfig
from image_transcoder.core.exceptions import InvalidConfigurationError, OutputWriteError

LOGGER = logging.getLogger(__name__)


class DownloadSink(Protocol):
    """宿主环境提供的下载能力。核心逻辑只依赖此接口。"""

    def create_downloadable_handle(self, data: bytes, name: str) -> Optional[Path]:
        ...


@dataclass(slots=True)
class DestinationDecision:
    """封装输出文件决策。"""

    destination: Optional[Path]
    action: str
    note: Optional[str] = None


class DirectorySink:
    """将下载内容写入输出目录，并按冲突策略处理同名文件。"""

    def __init__(self, config: OutputConfig) -> None:
        config.validate()
        self.config = config
        self.output_dir = config.output_dir.resolve()
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.decisions: list[DestinationDecision] = []

    def create_downloadable_handle(self, data: bytes, name: str) -> Optional[Path]:
        """写入文件并返回最终路径；skip 策略命中时返回 None。"""

        decision = self.decide_destination(name)
        self.decisions.append(decision)
        if decision.action == "skip" or decision.destination is None:
            LOGGER.info("跳过输出（已存在）：%s", decision.destination or name)
            return None

        try:
            decision.destination.write_bytes(data)
        except OSError as exc:
            raise OutputWriteError(f"写入文件失败: {decision.destination}") from exc

        LOGGER.info("已写入 %s (%d 字节)", decision.destination.name, len(data))
        return decision.destination

    def decide_destination(self, name: str) -> DestinationDecision:
        """根据冲突策略确定输出路径。"""

        destination = self.output_dir / Path(name).name

        if not destination.exists():
            return DestinationDecision(destination=destination, action="write")

        strategy = self.config.conflict_strategy
        existing_msg = f"目标已存在: {destination.name}"

        if strategy == "overwrite":
            return DestinationDecision(destination=destination, action="overwrite", note=existing_msg)
        if strategy == "skip":
            return DestinationDecision(destination=destination, action="skip", note=existing_msg)
        if strategy == "rename":
            new_destination = self._generate_renamed_path(destination)
            return DestinationDecision(
                destination=new_destination,
                action="rename",
                note=f"{existing_msg} -> 重命名为 {new_destination.name}",
            )

        raise InvalidConfigurationError(f"未知的冲突策略: {strategy}")

    def _generate_renamed_path(self, destination: Path) -> Path:
        """在 rename 策略下生成新的文件名。"""

        stem = destination.stem
        suffix = destination.suffix

        for idx in count(1):
            candidate = destination.with_name(f"{stem}_{idx}{suffix}")
            if not candidate.exists():
                return candidate

        # 理论上不会执行到此处
        return destination
