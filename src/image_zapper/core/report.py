"""报告生成工具。"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable, Optional

from image_zapper.core.models import FileOutcome

HEADER = ["source_path", "output_path", "backup_path", "status", "message"]


def write_csv_report(outcomes: Iterable[FileOutcome], report_path: Path) -> Path:
    """将处理结果写入 CSV 报告。"""

    report_path.parent.mkdir(parents=True, exist_ok=True)
    with report_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(HEADER)
        for record in outcomes:
            writer.writerow(
                [
                    str(record.source_path),
                    _format_path(record.output_path),
                    _format_path(record.backup_path),
                    record.status,
                    record.message or "",
                ]
            )
    return report_path


def _format_path(value: Optional[Path]) -> str:
    if value is None:
        return ""
    return str(value)
