"""报告生成工具。"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable

from image_transcoder.core.models import FileOutcome

HEADER = [
    "source_name",
    "operation",
    "status",
    "output_name",
    "original_kb",
    "output_kb",
    "message",
    "ssim",
]


def write_csv_report(outcomes: Iterable[FileOutcome], output_dir: Path, filename: str) -> Path:
    """将处理结果写入 CSV 报告。"""

    report_path = output_dir / filename
    with report_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(HEADER)
        for record in outcomes:
            writer.writerow(
                [
                    record.source_name,
                    record.operation or "",
                    record.status,
                    record.output_name or "",
                    _format_kb(record.original_size_kb),
                    _format_kb(record.output_size_kb),
                    record.message or "",
                    _format_ssim(record.ssim),
                ]
            )
    return report_path


def _format_kb(value: float | None) -> str:
    if value is None:
        return ""
    return f"{value:.2f}"


def _format_ssim(value: float | None) -> str:
    if value is None:
        return ""
    return f"{value:.6f}"
