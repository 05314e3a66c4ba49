"""编码器封装：格式表、质量映射与体积换算。"""

from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional

from PIL import Image

from image_transcoder.core.config import DEFAULT_CONVERSION_QUALITY, TargetFormat
from image_transcoder.core.exceptions import EncodeError

LOGGER = logging.getLogger(__name__)

MIN_QUALITY = 0.01
FALLBACK_MIME_TYPE = "image/png"


@dataclass(frozen=True, slots=True)
class FormatSpec:
    """单个输出容器的编码属性。"""

    pil_format: str
    mime_type: str
    extension: str
    lossy: bool
    supports_alpha: bool


FORMATS: dict[TargetFormat, FormatSpec] = {
    TargetFormat.PNG: FormatSpec("PNG", "image/png", ".png", lossy=False, supports_alpha=True),
    TargetFormat.JPEG: FormatSpec("JPEG", "image/jpeg", ".jpg", lossy=True, supports_alpha=False),
    TargetFormat.WEBP: FormatSpec("WEBP", "image/webp", ".webp", lossy=True, supports_alpha=True),
}

# 仅用于重新编码原始类型（尺寸调整），不作为转换目标暴露。
_EXTRA_MIME_FORMATS = {
    "image/gif": FormatSpec("GIF", "image/gif", ".gif", lossy=False, supports_alpha=True),
    "image/bmp": FormatSpec("BMP", "image/bmp", ".bmp", lossy=False, supports_alpha=False),
    "image/tiff": FormatSpec("TIFF", "image/tiff", ".tiff", lossy=False, supports_alpha=True),
}

_MIME_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg", "image/x-png": "image/png"}


def format_for_mime(mime_type: Optional[str]) -> Optional[FormatSpec]:
    """根据 MIME 类型查找可写出的格式，不支持时返回 None。"""

    if not mime_type:
        return None
    normalized = _MIME_ALIASES.get(mime_type.lower(), mime_type.lower())
    for spec in FORMATS.values():
        if spec.mime_type == normalized:
            return spec
    return _EXTRA_MIME_FORMATS.get(normalized)


def to_pil_quality(quality: float) -> int:
    """将 (0, 1] 质量映射到 Pillow 的 1..100 整数刻度。"""

    return max(1, min(100, int(round(quality * 100))))


def bytes_to_kib(size: int) -> float:
    """所有体积展示统一使用的换算（KiB，保留两位小数）。"""

    return round(size / 1024, 2)


def percent_reduction(original_size: int, new_size: int) -> int:
    """压缩率百分比，四舍五入（半数进位）。"""

    if original_size <= 0:
        return 0
    return int(math.floor((1 - new_size / original_size) * 100 + 0.5))


def replace_extension(name: str, extension: str) -> str:
    """替换文件扩展名；无扩展名时直接追加。"""

    path = PurePosixPath(name or "image")
    if path.suffix:
        return path.with_suffix(extension).name
    return f"{path.name}{extension}"


def has_transparency(image: Image.Image) -> bool:
    """位图是否带有透明通道。"""

    if image.mode in {"RGBA", "LA", "PA"}:
        return True
    return image.mode == "P" and "transparency" in image.info


def prepare_for_format(image: Image.Image, spec: FormatSpec) -> Image.Image:
    """按目标格式转换色彩模式，返回新的 Image，原图不变。"""

    if spec.supports_alpha:
        if image.mode in {"RGB", "RGBA"}:
            return image.copy()
        if has_transparency(image):
            return image.convert("RGBA")
        return image.convert("RGB")

    if has_transparency(image):
        # 不支持透明的格式：以白色背景混合 Alpha。
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[-1])
        return background

    if image.mode != "RGB":
        return image.convert("RGB")
    return image.copy()


def encode_image(
    image: Image.Image,
    spec: FormatSpec,
    quality: Optional[float] = None,
    *,
    lossless: bool = False,
) -> bytes:
    """将位图编码为指定格式的字节缓冲。"""

    if image.width <= 0 or image.height <= 0:
        raise EncodeError(f"无法编码零尺寸图像: {image.width}x{image.height}")

    effective_quality = DEFAULT_CONVERSION_QUALITY if quality is None else quality
    prepared = prepare_for_format(image, spec)
    save_params: dict = {}
    if spec.pil_format == "JPEG":
        save_params.update(quality=to_pil_quality(effective_quality), optimize=True)
    elif spec.pil_format == "WEBP":
        if lossless:
            save_params.update(lossless=True, quality=100)
        else:
            save_params.update(quality=to_pil_quality(effective_quality))
    elif spec.pil_format == "PNG":
        save_params.update(optimize=True)

    buffer = io.BytesIO()
    try:
        prepared.save(buffer, format=spec.pil_format, **save_params)
    except (OSError, ValueError, KeyError) as exc:
        raise EncodeError(f"{spec.pil_format} 编码失败: {exc}") from exc
    finally:
        prepared.close()

    data = buffer.getvalue()
    LOGGER.debug("编码 %s 完成，质量=%s，大小=%d 字节", spec.pil_format, effective_quality, len(data))
    return data
