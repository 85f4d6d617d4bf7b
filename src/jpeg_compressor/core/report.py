"""会话报告生成工具。"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable

from jpeg_compressor.core.models import Item

HEADER = ["name", "download_name", "status", "profile", "original_size", "compressed_size", "saved_ratio", "message"]


def write_csv_report(items: Iterable[Item], output_dir: Path, filename: str) -> Path:
    """将条目状态写入 CSV 报告。"""

    output_dir.mkdir(parents=True, exist_ok=True)
    report_path = output_dir / filename
    with report_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(HEADER)
        for item in items:
            writer.writerow(
                [
                    item.name,
                    item.download_name if item.artifact is not None else "",
                    item.status,
                    item.profile_name or "",
                    item.original_size,
                    _format_size(item.compressed_size),
                    _format_ratio(item.saved_ratio),
                    item.message or "",
                ]
            )
    return report_path


def _format_size(value: int | None) -> str:
    if value is None:
        return ""
    return str(value)


def _format_ratio(value: float | None) -> str:
    if value is None:
        return ""
    return f"{value:.4f}"
