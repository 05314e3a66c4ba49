"""尺寸调整模块。"""

from __future__ import annotations

import logging
from typing import Optional

from PIL import Image

from image_transcoder.core.config import TargetFormat
from image_transcoder.core.exceptions import EncodeError
from image_transcoder.core.models import ResizeResult
from image_transcoder.processing.codecs import FALLBACK_MIME_TYPE, FORMATS, bytes_to_kib, encode_image, format_for_mime

LOGGER = logging.getLogger(__name__)

_RESAMPLING = getattr(Image, "Resampling", Image)


def compute_dimensions(
    original_size: tuple[int, int],
    target_width: float,
    target_height: float,
    lock_aspect_ratio: bool = True,
) -> tuple[int, int]:
    """计算新的宽高。

    锁定宽高比时，若目标比例比原图更宽，则高度为约束边，宽度按比例重算；
    否则宽度为约束边，高度按比例重算。未锁定时直接使用目标尺寸。
    """

    if target_width <= 0 or target_height <= 0:
        raise EncodeError(f"目标尺寸必须大于 0: {target_width}x{target_height}")

    new_width = float(target_width)
    new_height = float(target_height)

    if lock_aspect_ratio:
        original_width, original_height = original_size
        if original_width <= 0 or original_height <= 0:
            raise EncodeError(f"原图尺寸无效: {original_width}x{original_height}")
        ratio = original_width / original_height
        if target_width / target_height > ratio:
            new_width = target_height * ratio
        else:
            new_height = target_width / ratio

    width = int(round(new_width))
    height = int(round(new_height))
    if width <= 0 or height <= 0:
        raise EncodeError(f"计算得到的尺寸无效: {width}x{height}")
    return width, height


def resize_image(
    bitmap: Image.Image,
    target_width: float,
    target_height: float,
    lock_aspect_ratio: bool = True,
    *,
    mime_type: Optional[str] = None,
    quality: Optional[float] = None,
) -> ResizeResult:
    """按目标尺寸缩放位图，并以原始 MIME 类型重新编码。

    原始类型无法写出时回退为 PNG。
    """

    width, height = compute_dimensions(bitmap.size, target_width, target_height, lock_aspect_ratio)

    spec = format_for_mime(mime_type)
    if spec is None:
        LOGGER.debug("无法以 %s 编码，回退为 %s", mime_type, FALLBACK_MIME_TYPE)
        spec = FORMATS[TargetFormat.PNG]

    resized = bitmap.resize((width, height), _RESAMPLING.LANCZOS)
    try:
        data = encode_image(resized, spec, quality)
    finally:
        resized.close()

    return ResizeResult(
        output_bytes=data,
        new_width=width,
        new_height=height,
        output_size_kb=bytes_to_kib(len(data)),
        output_mime_type=spec.mime_type,
    )
