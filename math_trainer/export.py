from __future__ import annotations

import csv
import io
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from .results import SessionRecord, to_iso

CSV_COLUMNS = ("date", "solved", "total", "durationSec", "reason")


def history_to_csv(records: Iterable[SessionRecord]) -> str:
    """Render the history as CSV text, one row per record in stored order."""

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for record in records:
        row = record.to_dict()
        writer.writerow([row[col] for col in CSV_COLUMNS])
    return buf.getvalue().rstrip("\n")


def export_filename(now: datetime) -> str:
    return f"math-trainer-history-{to_iso(now)}.csv"


def write_history_csv(records: Iterable[SessionRecord], *, directory: Path, now: datetime) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    # Colons are not portable in file names.
    target = directory / export_filename(now).replace(":", "-")
    target.write_text(history_to_csv(records) + "\n", encoding="utf-8")
    return target
