from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Sequence

from .models import DocumentRow

CSV_HEADER = ("Document", "Total Time", "Project", "Notes")


def render_csv(rows: Sequence[DocumentRow]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for row in rows:
        writer.writerow((row.name, int(row.accrued_minutes), row.project, row.notes))
    return buffer.getvalue()


def write_csv(rows: Sequence[DocumentRow], target: Path) -> Path:
    target = Path(target)
    target.write_text(render_csv(rows), encoding="utf-8")
    return target


def default_export_name() -> str:
    return "docfocus-export.csv"
