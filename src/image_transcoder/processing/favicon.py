"""从单张位图生成多尺寸 favicon。"""

from __future__ import annotations

from typing import Sequence

from PIL import Image

from image_transcoder.core.config import TargetFormat
from image_transcoder.core.exceptions import EncodeError
from image_transcoder.core.models import OutputFile
from image_transcoder.processing.codecs import FORMATS, encode_image

DEFAULT_FAVICON_SIZES = (16, 32, 48, 64)

_RESAMPLING = getattr(Image, "Resampling", Image)


def generate_favicons(bitmap: Image.Image, sizes: Sequence[int] = DEFAULT_FAVICON_SIZES) -> list[OutputFile]:
    """将位图缩放为正方形的各尺寸 PNG，不保持宽高比。"""

    if not sizes:
        raise EncodeError("至少需要一个 favicon 尺寸")

    spec = FORMATS[TargetFormat.PNG]
    outputs: list[OutputFile] = []
    for size in sizes:
        if size <= 0:
            raise EncodeError(f"favicon 尺寸必须大于 0: {size}")
        resized = bitmap.resize((size, size), _RESAMPLING.LANCZOS)
        try:
            data = encode_image(resized, spec)
        finally:
            resized.close()
        outputs.append(OutputFile(name=f"favicon-{size}x{size}.png", data=data, mime_type=spec.mime_type))
    return outputs
