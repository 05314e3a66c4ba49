"""文件扫描与筛选逻辑。"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Sequence

IMAGE_MIME_PREFIX = "image/"

# 部分平台的 mimetypes 数据库缺少 webp 条目。
mimetypes.add_type("image/webp", ".webp")


@dataclass(slots=True)
class SourceFile:
    """扫描阶段得到的候选文件。"""

    path: Path
    mime_type: str

    @property
    def name(self) -> str:
        return self.path.name

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


def is_image_mime(mime_type: Optional[str]) -> bool:
    """声明的 MIME 类型是否以 image/ 开头。"""

    return bool(mime_type) and mime_type.lower().startswith(IMAGE_MIME_PREFIX)


def guess_mime_type(path: Path) -> str:
    mime_type, _ = mimetypes.guess_type(path.name)
    return mime_type or "application/octet-stream"


def _iter_candidate_files(path: Path, recursive: bool) -> Iterator[Path]:
    """遍历路径下的所有文件。"""

    if path.is_file():
        yield path
        return

    if not path.is_dir():
        return

    iterator = path.rglob("*") if recursive else path.glob("*")
    for candidate in iterator:
        if candidate.is_file():
            yield candidate


def collect_source_files(sources: Sequence[Path], recursive: bool = True) -> list[SourceFile]:
    """扫描输入路径，只保留 MIME 类型为 image/* 的文件，按路径排序。"""

    collected: list[SourceFile] = []
    seen_paths: set[Path] = set()

    for root in sources:
        resolved_root = root.resolve()
        for candidate in _iter_candidate_files(resolved_root, recursive):
            if candidate in seen_paths:
                continue
            seen_paths.add(candidate)

            mime_type = guess_mime_type(candidate)
            if not is_image_mime(mime_type):
                continue
            collected.append(SourceFile(path=candidate, mime_type=mime_type))

    collected.sort(key=lambda x: str(x.path).lower())
    return collected
