"""输入扫描、颜色工具、favicon 与相似度检查。"""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from PIL import Image

from imaging import encode, noise_image, transparent_image
from image_transcoder.core.config import TargetFormat
from image_transcoder.core.exceptions import DecodeError, EncodeError, InvalidConfigurationError
from image_transcoder.core.scanner import collect_source_files, is_image_mime
from image_transcoder.processing.codecs import FORMATS, encode_image
from image_transcoder.processing.favicon import generate_favicons
from image_transcoder.processing.similarity import (
    LOW_SIMILARITY_THRESHOLD,
    looks_like_source,
    measure_similarity,
    structural_similarity,
)
from image_transcoder.utils.colors import analyze_colors, rgb_to_hex


def test_collect_source_files_keeps_only_images(tmp_path: Path) -> None:
    nested = tmp_path / "nested"
    nested.mkdir()
    Image.new("RGB", (8, 8)).save(tmp_path / "b.png")
    Image.new("RGB", (8, 8)).save(nested / "a.jpg")
    (tmp_path / "notes.txt").write_text("hello")
    (tmp_path / "data.bin").write_bytes(b"\x00")

    collected = collect_source_files([tmp_path])

    assert [s.name for s in collected] == ["b.png", "a.jpg"]
    assert {s.mime_type for s in collected} == {"image/png", "image/jpeg"}


def test_collect_source_files_non_recursive(tmp_path: Path) -> None:
    nested = tmp_path / "nested"
    nested.mkdir()
    Image.new("RGB", (8, 8)).save(nested / "a.png")
    Image.new("RGB", (8, 8)).save(tmp_path / "top.png")

    collected = collect_source_files([tmp_path], recursive=False)

    assert [s.name for s in collected] == ["top.png"]


def test_is_image_mime() -> None:
    assert is_image_mime("image/webp")
    assert is_image_mime("IMAGE/PNG")
    assert not is_image_mime("text/plain")
    assert not is_image_mime(None)
    assert not is_image_mime("")


def test_rgb_to_hex() -> None:
    assert rgb_to_hex(0, 255, 128) == "#00ff80"
    with pytest.raises(InvalidConfigurationError):
        rgb_to_hex(256, 0, 0)


def test_analyze_colors_ignores_transparent_pixels() -> None:
    image = Image.new("RGBA", (10, 10), (0, 0, 0, 0))
    image.paste((255, 0, 0, 255), (0, 0, 10, 6))
    image.paste((0, 0, 255, 255), (0, 6, 10, 8))

    analysis = analyze_colors(image, sample_size=1)

    assert analysis.total_pixels == 100
    assert analysis.sampled_pixels == 100
    assert [(c.hex, c.count) for c in analysis.dominant_colors] == [("#ff0000", 60), ("#0000ff", 20)]


def test_analyze_colors_samples_every_nth_pixel() -> None:
    analysis = analyze_colors(Image.new("RGB", (10, 10), "green"), sample_size=10)

    assert analysis.sampled_pixels == 10
    assert analysis.dominant_colors[0].count == 10


def test_generate_favicons_default_sizes() -> None:
    favicons = generate_favicons(noise_image(100, 50))

    assert [f.name for f in favicons] == [
        "favicon-16x16.png",
        "favicon-32x32.png",
        "favicon-48x48.png",
        "favicon-64x64.png",
    ]
    with Image.open(io.BytesIO(favicons[-1].data)) as icon:
        assert icon.format == "PNG"
        assert icon.size == (64, 64)


def test_generate_favicons_rejects_invalid_size() -> None:
    with pytest.raises(EncodeError):
        generate_favicons(noise_image(), [16, 0])


def test_identical_images_are_structurally_identical() -> None:
    image = noise_image(64, 64)

    assert structural_similarity(image, image) == pytest.approx(1.0)


def test_lossless_output_matches_source() -> None:
    image = noise_image(64, 64)

    assert measure_similarity(image, encode(image)) == pytest.approx(1.0)


def test_flat_output_is_flagged_as_different() -> None:
    source = noise_image(64, 64)
    flat = Image.new("RGB", (64, 64), (128, 128, 128))

    score = measure_similarity(source, encode(flat))

    assert score < LOW_SIMILARITY_THRESHOLD
    assert not looks_like_source(score)
    assert looks_like_source(None)


def test_alpha_flattening_is_not_counted_as_distortion() -> None:
    source = transparent_image(64)

    score = measure_similarity(source, encode_image(source, FORMATS[TargetFormat.JPEG]))

    assert looks_like_source(score)


def test_similarity_of_undecodable_output_raises() -> None:
    with pytest.raises(DecodeError):
        measure_similarity(noise_image(16, 16), b"not an image")
