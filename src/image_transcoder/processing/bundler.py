"""将多个输出文件打包为单个 zip 归档。"""

from __future__ import annotations

import io
import logging
import zipfile
from itertools import count
from pathlib import PurePosixPath
from typing import Sequence

from image_transcoder.core.exceptions import BundleError
from image_transcoder.core.models import OutputFile

LOGGER = logging.getLogger(__name__)

ARCHIVE_MIME_TYPE = "application/zip"


def bundle_outputs(files: Sequence[OutputFile], archive_name: str = "images.zip") -> OutputFile:
    """打包输出文件。

    只有一个文件时不打包，直接返回该文件。条目名使用文件自身名称，
    同名条目追加 ``_1``、``_2`` 后缀，互不覆盖。
    """

    if not files:
        raise ValueError("bundle_outputs 需要至少一个文件")
    if len(files) == 1:
        return files[0]

    buffer = io.BytesIO()
    used_names: set[str] = set()
    try:
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for index, output in enumerate(files, start=1):
                entry_name = _unique_name(output.name or f"image-{index}", used_names)
                archive.writestr(entry_name, output.data)
    except (OSError, zipfile.LargeZipFile) as exc:
        raise BundleError(f"打包归档失败: {archive_name}") from exc

    name = archive_name if archive_name.lower().endswith(".zip") else f"{archive_name}.zip"
    LOGGER.info("已打包 %d 个文件到 %s", len(files), name)
    return OutputFile(name=name, data=buffer.getvalue(), mime_type=ARCHIVE_MIME_TYPE)


def _unique_name(name: str, used: set[str]) -> str:
    """生成归档内唯一的条目名。"""

    candidate = PurePosixPath(name.replace("\\", "/")).name or "image"
    if candidate.lower() not in used:
        used.add(candidate.lower())
        return candidate

    path = PurePosixPath(candidate)
    for idx in count(1):
        renamed = f"{path.stem}_{idx}{path.suffix}"
        if renamed.lower() not in used:
            used.add(renamed.lower())
            return renamed

    # 理论上不会执行到此处
    return candidate
