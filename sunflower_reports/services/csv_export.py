from __future__ import annotations

import csv
import io
from collections.abc import Sequence

from sunflower_reports.schemas.record import AnalysisRecord
from sunflower_reports.services.presenters import (
    NOT_AVAILABLE,
    format_percent,
    format_seconds,
    split_timestamp,
)

CSV_FILENAME = "sunflower-analysis-history.csv"
CSV_HEADER = (
    "ID",
    "Date",
    "Time",
    "Filename",
    "Predicted Class",
    "Confidence",
    "Processing Time",
    "Image Size",
)


def csv_row(record: AnalysisRecord) -> list[str]:
    date, time = split_timestamp(record.created_at)
    info = record.image_info
    return [
        str(record.id),
        date,
        time,
        info.filename or NOT_AVAILABLE,
        record.predicted_class,
        format_percent(record.confidence),
        format_seconds(info.processing_time_seconds or 0.0),
        info.size or NOT_AVAILABLE,
    ]


def export_csv(records: Sequence[AnalysisRecord]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for record in records:
        writer.writerow(csv_row(record))
    return buffer.getvalue()
