"""图片解码与基础预处理实现。"""

from __future__ import annotations

import io
import logging
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from image_transcoder.core.exceptions import DecodeError
from image_transcoder.core.models import AssetMetadata, DecodedAsset

LOGGER = logging.getLogger(__name__)


def decode_asset(data: bytes, name: str, mime_type: Optional[str] = None) -> DecodedAsset:
    """将原始文件字节解码为位图与元数据。

    源字节的读取句柄只在解码期间存在，无论成功与否都会被释放。
    返回值中的位图为新的 Image 对象，由调用者（资产记录）负责关闭。
    """

    if not data:
        raise DecodeError(f"文件为空: {name}")

    try:
        with io.BytesIO(data) as handle, Image.open(handle) as img:
            img.load()
            detected_mime = Image.MIME.get(img.format or "")

            # EXIF Orientation 校正
            transposed = ImageOps.exif_transpose(img)
            bitmap = _normalize_mode(transposed)
            if bitmap is img:
                bitmap = img.copy()
    except (UnidentifiedImageError, OSError, SyntaxError, Image.DecompressionBombError) as exc:
        LOGGER.debug("无法识别图像文件 %s: %s", name, exc)
        raise DecodeError(f"无法解码图像: {name}") from exc

    if bitmap.width <= 0 or bitmap.height <= 0:
        bitmap.close()
        raise DecodeError(f"图像尺寸无效: {name}")

    metadata = AssetMetadata(
        name=name,
        byte_size=len(data),
        mime_type=mime_type or detected_mime or "application/octet-stream",
        width=bitmap.width,
        height=bitmap.height,
    )
    LOGGER.debug("解码完成 %s: %dx%d %s", name, metadata.width, metadata.height, metadata.mime_type)
    return DecodedAsset(bitmap=bitmap, metadata=metadata)


def _normalize_mode(img: Image.Image) -> Image.Image:
    """统一到 RGB 或 RGBA，保留透明信息。"""

    if img.mode in {"RGB", "RGBA"}:
        return img

    if img.mode in {"LA", "PA"}:
        return img.convert("RGBA")

    if img.mode == "P":
        if "transparency" in img.info:
            return img.convert("RGBA")
        return img.convert("RGB")

    # CMYK、L、I;16 等其他模式直接转换
    return img.convert("RGB")
