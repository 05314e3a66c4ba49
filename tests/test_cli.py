"""命令行入口的冒烟测试。"""

from __future__ import annotations

import csv
import zipfile
from pathlib import Path

import pytest
from PIL import Image
from typer.testing import CliRunner

from imaging import noise_image
from image_transcoder.cli.main import app

runner = CliRunner()


def _prepare_sources(root: Path, count: int = 2) -> Path:
    source = root / "input"
    source.mkdir()
    for idx in range(count):
        noise_image(64, 64, seed=idx).save(source / f"img{idx}.png")
    (source / "readme.txt").write_text("skip me")
    return source


def test_compress_bundles_multiple_outputs(tmp_path: Path) -> None:
    source = _prepare_sources(tmp_path)
    output = tmp_path / "output"

    result = runner.invoke(app, ["compress", str(source), "-o", str(output), "-t", "100", "-q", "0.8"])

    assert result.exit_code == 0, result.output
    archive = output / "compressed-images.zip"
    assert archive.exists()
    with zipfile.ZipFile(archive) as bundle:
        assert sorted(bundle.namelist()) == ["img0.jpg", "img1.jpg"]
    assert (output / "report.csv").exists()


def test_convert_single_file_is_written_directly(tmp_path: Path) -> None:
    source = _prepare_sources(tmp_path, count=1)
    output = tmp_path / "output"

    result = runner.invoke(app, ["convert", str(source), "-o", str(output), "--format", "webp"])

    assert result.exit_code == 0, result.output
    assert (output / "img0.webp").exists()
    assert not list(output.glob("*.zip"))


def test_convert_with_similarity_check_fills_report(tmp_path: Path) -> None:
    source = _prepare_sources(tmp_path, count=1)
    output = tmp_path / "output"

    result = runner.invoke(app, ["convert", str(source), "-o", str(output), "--format", "png", "--check-similarity"])

    assert result.exit_code == 0, result.output
    with (output / "report.csv").open("r", encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))
    assert float(rows[0]["ssim"]) == pytest.approx(1.0)


def test_resize_without_bundle(tmp_path: Path) -> None:
    source = _prepare_sources(tmp_path)
    output = tmp_path / "output"

    result = runner.invoke(
        app, ["resize", str(source), "-o", str(output), "-W", "32", "-H", "16", "--stretch", "--no-bundle"]
    )

    assert result.exit_code == 0, result.output
    for name in ("img0.png", "img1.png"):
        with Image.open(output / name) as resized:
            assert resized.size == (32, 16)


def test_invalid_quality_is_rejected(tmp_path: Path) -> None:
    source = _prepare_sources(tmp_path, count=1)

    result = runner.invoke(app, ["compress", str(source), "-o", str(tmp_path / "out"), "-q", "0.35"])

    assert result.exit_code != 0


def test_favicon_command_writes_archive(tmp_path: Path) -> None:
    source = tmp_path / "logo.png"
    noise_image(128, 128).save(source)

    result = runner.invoke(app, ["favicon", str(source), "-o", str(tmp_path / "icons")])

    assert result.exit_code == 0, result.output
    with zipfile.ZipFile(tmp_path / "icons" / "favicons.zip") as bundle:
        assert len(bundle.namelist()) == 4


def test_info_command_reports_dimensions(tmp_path: Path) -> None:
    source = tmp_path / "photo.png"
    noise_image(120, 80).save(source)

    result = runner.invoke(app, ["info", str(source), "--colors"])

    assert result.exit_code == 0, result.output
    assert "120 × 80" in result.output
