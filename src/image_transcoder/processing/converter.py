"""格式转换模块。"""

from __future__ import annotations

import logging
from typing import Union

from PIL import Image

from image_transcoder.core.config import DEFAULT_CONVERSION_QUALITY, TargetFormat
from image_transcoder.core.exceptions import EncodeError
from image_transcoder.core.models import ConversionResult
from image_transcoder.processing.codecs import FORMATS, bytes_to_kib, encode_image, has_transparency, replace_extension

LOGGER = logging.getLogger(__name__)


def parse_target_format(value: Union[str, TargetFormat]) -> TargetFormat:
    """解析目标格式名称，接受 jpg 作为 jpeg 的别名。"""

    if isinstance(value, TargetFormat):
        return value
    normalized = (value or "").strip().lower().lstrip(".")
    if normalized == "jpg":
        normalized = "jpeg"
    try:
        return TargetFormat(normalized)
    except ValueError as exc:
        raise EncodeError(f"不支持的目标格式: {value}") from exc


def convert_image(
    bitmap: Image.Image,
    target_format: Union[str, TargetFormat],
    source_name: str = "image",
    *,
    quality: float = DEFAULT_CONVERSION_QUALITY,
    lossless: bool = False,
) -> ConversionResult:
    """以固定质量将位图重新编码为目标容器格式。"""

    fmt = parse_target_format(target_format)
    spec = FORMATS[fmt]
    if lossless and spec.pil_format == "JPEG":
        raise EncodeError("JPEG 不支持无损模式")

    data = encode_image(bitmap, spec, quality, lossless=lossless)
    output_name = replace_extension(source_name, spec.extension)
    keeps_alpha = spec.supports_alpha and has_transparency(bitmap)

    LOGGER.debug("转换 %s -> %s (%d 字节)", source_name, output_name, len(data))
    return ConversionResult(
        output_bytes=data,
        output_mime_type=spec.mime_type,
        output_size_kb=bytes_to_kib(len(data)),
        output_name=output_name,
        has_alpha=keeps_alpha,
    )
