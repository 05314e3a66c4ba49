"""命令行入口。"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from image_transcoder.core.config import (
    TARGET_SIZE_PRESETS_KB,
    BatchConfig,
    CompressionConfig,
    ConversionConfig,
    Operation,
    OutputConfig,
    ResizeConfig,
    TargetFormat,
)
from image_transcoder.core.exceptions import ImageTranscoderError
from image_transcoder.core.models import BatchResult
from image_transcoder.core.output_manager import DirectorySink
from image_transcoder.core.progress import ProgressUpdate
from image_transcoder.core.report import write_csv_report
from image_transcoder.core.scanner import collect_source_files
from image_transcoder.processing.batch import BatchJob
from image_transcoder.processing.bundler import bundle_outputs
from image_transcoder.processing.decoder import decode_asset
from image_transcoder.processing.favicon import DEFAULT_FAVICON_SIZES, generate_favicons
from image_transcoder.utils.colors import analyze_colors
from image_transcoder.utils.logging import setup_logging

app = typer.Typer(help="图片压缩、格式转换与尺寸调整工具。")
console = Console()

LOGGER = logging.getLogger(__name__)


def _build_progress_callback(progress: Progress):
    task_id: Optional[int] = None

    def callback(update: ProgressUpdate) -> None:
        nonlocal task_id
        if update.total == 0:
            return
        if task_id is None:
            task_id = progress.add_task("处理图片", total=update.total)
        progress.update(task_id, completed=update.completed)
        if update.current_name or update.finished:
            progress.log(update.describe())

    return callback


def _make_progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
    )


async def _execute(
    sources: List[Path],
    recursive: bool,
    operation: Operation,
    config: BatchConfig,
    output: OutputConfig,
    bundle: bool,
    progress: Progress,
) -> BatchResult:
    job = BatchJob(config, progress_callback=_build_progress_callback(progress))
    sink = DirectorySink(output)

    await job.add_sources(collect_source_files(sources, recursive=recursive))
    if len(job) == 0:
        typer.echo("没有找到可处理的图片。")
        return BatchResult()

    await job.run_all(operation)

    result = BatchResult()
    for outcome in job.outcomes():
        if outcome.status == "completed":
            result.succeeded.append(outcome)
        else:
            result.failed.append(outcome)

    if bundle:
        job.export(sink, output.archive_name)
    else:
        for output_file in job.collect_outputs():
            sink.create_downloadable_handle(output_file.data, output_file.name)
    result.written = [d.destination for d in sink.decisions if d.action != "skip" and d.destination]

    try:
        write_csv_report(result.all_outcomes(), sink.output_dir, config.report_filename)
    except OSError as exc:
        LOGGER.error("写入报告失败：%s", exc)

    job.clear()
    return result


def _run_batch(
    sources: List[Path],
    output_dir: Path,
    operation: Operation,
    config: BatchConfig,
    *,
    recursive: bool,
    bundle: bool,
    archive_name: str,
    conflict_strategy: str,
    verbose: bool,
) -> None:
    setup_logging(logging.DEBUG if verbose else logging.WARNING)

    resolved = [p.expanduser().resolve() for p in sources]
    output = OutputConfig(
        output_dir=output_dir.expanduser().resolve(),
        conflict_strategy=conflict_strategy,
        archive_name=archive_name,
    )

    try:
        with _make_progress() as progress:
            result = asyncio.run(_execute(resolved, recursive, operation, config, output, bundle, progress))
    except ImageTranscoderError as exc:
        typer.echo(f"处理失败：{exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"处理完成：成功 {len(result.succeeded)} 张，失败 {len(result.failed)} 张。")
    for path in result.written:
        typer.echo(f"输出文件：{path}")


@app.command("compress")
def compress_cli(  # noqa: PLR0913
    source: List[Path] = typer.Argument(..., help="源图片文件或目录，可指定多个"),
    output: Path = typer.Option(..., "--output", "-o", help="输出目录"),
    target_size: int = typer.Option(
        500, "--target-size", "-t", help=f"目标大小 (KB)，常用值 {'/'.join(map(str, TARGET_SIZE_PRESETS_KB))}"
    ),
    quality: float = typer.Option(0.8, "--quality", "-q", help="初始质量 0.1~1.0，步长 0.1"),
    check_similarity: bool = typer.Option(False, "--check-similarity", help="计算输出与原图的 SSIM 相似度"),
    bundle: bool = typer.Option(True, "--bundle/--no-bundle", help="多个输出时打包为 zip"),
    archive_name: str = typer.Option("compressed-images.zip", "--archive-name", help="归档文件名"),
    conflict_strategy: str = typer.Option("rename", "--on-conflict", help="文件名冲突策略"),
    recursive: bool = typer.Option(True, "--recursive/--no-recursive", help="是否递归扫描目录"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """将图片压缩到目标体积。"""

    config = BatchConfig(
        compression=CompressionConfig(target_size_kb=target_size, initial_quality=quality),
        check_similarity=check_similarity,
    )
    _run_batch(
        source,
        output,
        Operation.COMPRESS,
        _checked(config),
        recursive=recursive,
        bundle=bundle,
        archive_name=archive_name,
        conflict_strategy=conflict_strategy,
        verbose=verbose,
    )


@app.command("convert")
def convert_cli(  # noqa: PLR0913
    source: List[Path] = typer.Argument(..., help="源图片文件或目录，可指定多个"),
    output: Path = typer.Option(..., "--output", "-o", help="输出目录"),
    target_format: TargetFormat = typer.Option(TargetFormat.PNG, "--format", "-f", help="目标格式"),
    lossless: bool = typer.Option(False, "--lossless", help="WebP 使用无损模式"),
    check_similarity: bool = typer.Option(False, "--check-similarity", help="计算输出与原图的 SSIM 相似度"),
    bundle: bool = typer.Option(True, "--bundle/--no-bundle", help="多个输出时打包为 zip"),
    archive_name: str = typer.Option("converted-images.zip", "--archive-name", help="归档文件名"),
    conflict_strategy: str = typer.Option("rename", "--on-conflict", help="文件名冲突策略"),
    recursive: bool = typer.Option(True, "--recursive/--no-recursive", help="是否递归扫描目录"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """转换图片格式。"""

    config = BatchConfig(
        conversion=ConversionConfig(target_format=target_format, lossless=lossless),
        check_similarity=check_similarity,
    )
    _run_batch(
        source,
        output,
        Operation.CONVERT,
        _checked(config),
        recursive=recursive,
        bundle=bundle,
        archive_name=archive_name,
        conflict_strategy=conflict_strategy,
        verbose=verbose,
    )


@app.command("resize")
def resize_cli(  # noqa: PLR0913
    source: List[Path] = typer.Argument(..., help="源图片文件或目录，可指定多个"),
    output: Path = typer.Option(..., "--output", "-o", help="输出目录"),
    width: int = typer.Option(..., "--width", "-W", help="目标宽度"),
    height: int = typer.Option(..., "--height", "-H", help="目标高度"),
    lock_aspect_ratio: bool = typer.Option(True, "--keep-ratio/--stretch", help="是否保持宽高比"),
    bundle: bool = typer.Option(True, "--bundle/--no-bundle", help="多个输出时打包为 zip"),
    archive_name: str = typer.Option("resized-images.zip", "--archive-name", help="归档文件名"),
    conflict_strategy: str = typer.Option("rename", "--on-conflict", help="文件名冲突策略"),
    recursive: bool = typer.Option(True, "--recursive/--no-recursive", help="是否递归扫描目录"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """调整图片尺寸。"""

    config = BatchConfig(resize=ResizeConfig(width=width, height=height, lock_aspect_ratio=lock_aspect_ratio))
    _run_batch(
        source,
        output,
        Operation.RESIZE,
        _checked(config),
        recursive=recursive,
        bundle=bundle,
        archive_name=archive_name,
        conflict_strategy=conflict_strategy,
        verbose=verbose,
    )


@app.command("favicon")
def favicon_cli(
    source: Path = typer.Argument(..., help="源图片文件"),
    output: Path = typer.Option(..., "--output", "-o", help="输出目录"),
    sizes: List[int] = typer.Option(list(DEFAULT_FAVICON_SIZES), "--size", "-s", help="favicon 边长，可指定多个"),
    conflict_strategy: str = typer.Option("rename", "--on-conflict", help="文件名冲突策略"),
) -> None:
    """生成多尺寸 favicon 并打包。"""

    setup_logging(logging.WARNING)
    try:
        sink = DirectorySink(
            OutputConfig(output_dir=output.expanduser().resolve(), conflict_strategy=conflict_strategy)
        )
        decoded = decode_asset(source.read_bytes(), source.name)
        try:
            favicons = generate_favicons(decoded.bitmap, sizes)
        finally:
            decoded.bitmap.close()
        artifact = bundle_outputs(favicons, "favicons.zip")
        written = sink.create_downloadable_handle(artifact.data, artifact.name)
    except (ImageTranscoderError, OSError) as exc:
        typer.echo(f"处理失败：{exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"输出文件：{written}")


@app.command("info")
def info_cli(
    source: Path = typer.Argument(..., help="源图片文件"),
    colors: bool = typer.Option(False, "--colors", help="同时分析主色"),
    sample_size: int = typer.Option(10, "--sample-size", help="主色采样间隔"),
) -> None:
    """显示图片信息。"""

    setup_logging(logging.WARNING)
    try:
        decoded = decode_asset(source.read_bytes(), source.name)
    except (ImageTranscoderError, OSError) as exc:
        typer.echo(f"无法读取图片：{exc}", err=True)
        raise typer.Exit(code=1) from exc

    meta = decoded.metadata
    table = Table(title=meta.name, show_header=False)
    table.add_row("尺寸", f"{meta.width} × {meta.height}")
    table.add_row("大小", f"{meta.size_kib} KB ({meta.size_mib} MB)")
    table.add_row("类型", meta.mime_type)
    table.add_row("宽高比", str(meta.aspect_ratio))
    table.add_row("像素", f"{meta.megapixels} MP")
    console.print(table)

    try:
        if colors:
            analysis = analyze_colors(decoded.bitmap, sample_size)
            color_table = Table(title=f"主色（采样 {analysis.sampled_pixels}/{analysis.total_pixels}）")
            color_table.add_column("颜色")
            color_table.add_column("次数", justify="right")
            for entry in analysis.dominant_colors:
                color_table.add_row(f"[{entry.hex}]■[/] {entry.hex}", str(entry.count))
            console.print(color_table)
    except ImageTranscoderError as exc:
        typer.echo(f"分析失败：{exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        decoded.bitmap.close()


def _checked(config: BatchConfig) -> BatchConfig:
    try:
        config.validate()
    except ImageTranscoderError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return config


if __name__ == "__main__":
    app()
