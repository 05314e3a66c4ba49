"""解码器：格式识别、EXIF 校正与模式归一化。"""

from __future__ import annotations

import pytest
from PIL import Image

from imaging import encode, transparent_image
from image_transcoder.core.exceptions import DecodeError
from image_transcoder.processing.decoder import decode_asset


def test_decode_png_reports_metadata() -> None:
    data = encode(Image.new("RGB", (120, 60), "blue"))

    decoded = decode_asset(data, "banner.png", "image/png")

    assert decoded.bitmap.size == (120, 60)
    assert decoded.metadata.name == "banner.png"
    assert decoded.metadata.byte_size == len(data)
    assert decoded.metadata.mime_type == "image/png"
    assert decoded.metadata.aspect_ratio == 2.0
    assert decoded.metadata.megapixels == 0.01
    assert decoded.metadata.size_kib == round(len(data) / 1024, 2)


def test_decode_detects_mime_when_not_declared() -> None:
    data = encode(Image.new("RGB", (10, 10), "red"), "JPEG")

    decoded = decode_asset(data, "photo")

    assert decoded.metadata.mime_type == "image/jpeg"


def test_corrupted_bytes_raise_decode_error() -> None:
    with pytest.raises(DecodeError):
        decode_asset(b"not an image", "broken.png", "image/png")


def test_empty_bytes_raise_decode_error() -> None:
    with pytest.raises(DecodeError):
        decode_asset(b"", "empty.png", "image/png")


def test_exif_orientation_is_corrected() -> None:
    if not hasattr(Image, "Exif"):
        pytest.skip("当前 Pillow 版本不支持写入 EXIF 数据")

    exif = Image.Exif()
    exif[274] = 6  # 顺时针 90 度
    data = encode(Image.new("RGB", (80, 40), "red"), "JPEG", exif=exif.tobytes())

    decoded = decode_asset(data, "rotated.jpg", "image/jpeg")

    assert decoded.bitmap.size == (40, 80)
    assert (decoded.metadata.width, decoded.metadata.height) == (40, 80)


def test_cmyk_image_converts_to_rgb() -> None:
    data = encode(Image.new("CMYK", (50, 50), (0, 128, 255, 0)), "JPEG")

    decoded = decode_asset(data, "cmyk.jpg", "image/jpeg")

    assert decoded.bitmap.mode == "RGB"


def test_alpha_channel_is_preserved() -> None:
    decoded = decode_asset(encode(transparent_image()), "logo.png", "image/png")

    assert decoded.bitmap.mode == "RGBA"
    assert decoded.bitmap.getpixel((60, 10))[3] == 0


def test_palette_with_transparency_becomes_rgba() -> None:
    palette = Image.new("P", (16, 16), 0)
    palette.putpalette([0, 0, 0, 255, 0, 0] + [0] * 762)
    palette.paste(1, (0, 0, 8, 16))

    decoded = decode_asset(encode(palette, transparency=0), "icon.png", "image/png")

    assert decoded.bitmap.mode == "RGBA"
