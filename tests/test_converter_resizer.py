"""格式转换与尺寸调整。"""

from __future__ import annotations

import io

import pytest
from PIL import Image

from imaging import noise_image, transparent_image
from image_transcoder.core.config import TargetFormat
from image_transcoder.core.exceptions import EncodeError
from image_transcoder.processing.converter import convert_image, parse_target_format
from image_transcoder.processing.decoder import decode_asset
from image_transcoder.processing.resizer import compute_dimensions, resize_image


def _open(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def test_transparent_png_to_jpeg_drops_alpha() -> None:
    bitmap = transparent_image(500)

    result = convert_image(bitmap, TargetFormat.JPEG, "logo.png")

    assert result.output_mime_type == "image/jpeg"
    assert result.output_name == "logo.jpg"
    assert not result.has_alpha
    with _open(result.output_bytes) as converted:
        assert converted.format == "JPEG"
        assert converted.mode == "RGB"
        assert converted.size == (500, 500)
        # 透明区域以白色背景混合
        assert converted.getpixel((400, 250)) == pytest.approx((255, 255, 255), abs=3)


def test_webp_keeps_transparency() -> None:
    result = convert_image(transparent_image(), "webp", "logo.png")

    assert result.output_mime_type == "image/webp"
    assert result.output_name == "logo.webp"
    assert result.has_alpha
    with _open(result.output_bytes) as converted:
        assert converted.mode == "RGBA"


def test_png_conversion_is_lossless() -> None:
    bitmap = noise_image(32, 32)

    result = convert_image(bitmap, TargetFormat.PNG, "noise.jpg")

    assert result.output_name == "noise.png"
    with _open(result.output_bytes) as converted:
        assert list(converted.convert("RGB").getdata()) == list(bitmap.getdata())


def test_webp_lossless_mode() -> None:
    bitmap = noise_image(32, 32)

    result = convert_image(bitmap, TargetFormat.WEBP, "noise.png", lossless=True)

    with _open(result.output_bytes) as converted:
        assert list(converted.convert("RGB").getdata()) == list(bitmap.getdata())


@pytest.mark.parametrize("target", list(TargetFormat))
def test_conversion_round_trip_preserves_dimensions(target: TargetFormat) -> None:
    bitmap = noise_image(97, 41)

    converted = convert_image(bitmap, target, "sample.png")
    decoded = decode_asset(converted.output_bytes, converted.output_name, converted.output_mime_type)
    back = convert_image(decoded.bitmap, TargetFormat.PNG, converted.output_name)

    with _open(back.output_bytes) as restored:
        assert restored.size == (97, 41)


def test_unknown_format_is_rejected() -> None:
    with pytest.raises(EncodeError):
        convert_image(noise_image(), "bmp", "a.png")


def test_jpeg_lossless_is_rejected() -> None:
    with pytest.raises(EncodeError):
        convert_image(noise_image(), TargetFormat.JPEG, "a.png", lossless=True)


def test_format_aliases_and_extensionless_names() -> None:
    assert parse_target_format("JPG") is TargetFormat.JPEG
    assert parse_target_format(".webp") is TargetFormat.WEBP

    result = convert_image(noise_image(8, 8), "png", "snapshot")
    assert result.output_name == "snapshot.png"


def test_conversion_does_not_mutate_bitmap() -> None:
    bitmap = transparent_image()
    before = list(bitmap.getdata())

    convert_image(bitmap, TargetFormat.JPEG, "a.png")

    assert bitmap.mode == "RGBA"
    assert list(bitmap.getdata()) == before


def test_locked_ratio_width_binding() -> None:
    assert compute_dimensions((3000, 2000), 800, 800, True) == (800, 533)


def test_locked_ratio_height_binding() -> None:
    assert compute_dimensions((2000, 3000), 800, 800, True) == (533, 800)


def test_unlocked_ratio_uses_exact_dimensions() -> None:
    assert compute_dimensions((3000, 2000), 640, 640, False) == (640, 640)


@pytest.mark.parametrize("original", [(3000, 2000), (2000, 3000), (1024, 768), (500, 500), (1920, 1080)])
@pytest.mark.parametrize("target", [(200, 200), (800, 300), (300, 800), (1280, 720), (4000, 4000)])
def test_locked_ratio_is_preserved(original: tuple[int, int], target: tuple[int, int]) -> None:
    width, height = compute_dimensions(original, *target, lock_aspect_ratio=True)

    assert width <= target[0] and height <= target[1]
    assert abs(width / height - original[0] / original[1]) < 0.01


def test_non_positive_dimensions_are_rejected() -> None:
    with pytest.raises(EncodeError):
        compute_dimensions((100, 100), 0, 50, True)
    with pytest.raises(EncodeError):
        compute_dimensions((1000, 1), 10, 10, True)


def test_resize_reencodes_with_original_mime() -> None:
    bitmap = noise_image(300, 200)

    result = resize_image(bitmap, 150, 150, True, mime_type="image/jpeg")

    assert (result.new_width, result.new_height) == (150, 100)
    assert result.output_mime_type == "image/jpeg"
    assert bitmap.size == (300, 200)
    with _open(result.output_bytes) as resized:
        assert resized.format == "JPEG"
        assert resized.size == (150, 100)


def test_resize_allows_distortion_when_unlocked() -> None:
    result = resize_image(noise_image(300, 200), 50, 120, False, mime_type="image/png")

    with _open(result.output_bytes) as resized:
        assert resized.size == (50, 120)


def test_resize_falls_back_to_png_for_unwritable_mime() -> None:
    result = resize_image(noise_image(40, 40), 20, 20, True, mime_type="image/svg+xml")

    assert result.output_mime_type == "image/png"
    with _open(result.output_bytes) as resized:
        assert resized.format == "PNG"


def test_resize_without_mime_type_encodes_png() -> None:
    result = resize_image(noise_image(40, 40), 10, 10, True)

    assert result.output_mime_type == "image/png"
    with _open(result.output_bytes) as resized:
        assert resized.format == "PNG"
