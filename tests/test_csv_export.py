import csv
import io

from sunflower_reports.services.csv_export import CSV_FILENAME, CSV_HEADER, export_csv
from sunflower_reports.services.normalizer import normalize_record


def _parse(text: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(text)))


def test_header_and_row_count(healthy_record, cdn_record):
    rows = _parse(export_csv([healthy_record, cdn_record]))

    assert rows[0] == [
        "ID",
        "Date",
        "Time",
        "Filename",
        "Predicted Class",
        "Confidence",
        "Processing Time",
        "Image Size",
    ]
    assert list(CSV_HEADER) == rows[0]
    assert len(rows) == 3


def test_field_order_and_formatting(healthy_record):
    _, row = _parse(export_csv([healthy_record]))
    assert row == ["42", "2024-05-02", "09:15:30", "leaf_42.jpg", "Fresh Leaf", "93.0%", "0.43s", "1.2 MB"]


def test_rows_follow_input_order(healthy_record, cdn_record):
    rows = _parse(export_csv([cdn_record, healthy_record]))
    assert [row[0] for row in rows[1:]] == ["7", "42"]


def test_missing_fields_fall_back():
    record = normalize_record({"id": 8, "predicted_class": "Gray Mold", "confidence": 0.25})
    _, row = _parse(export_csv([record]))
    assert row[3] == "N/A"
    assert row[6] == "0.00s"
    assert row[7] == "N/A"


def test_legacy_fields_are_used():
    record = normalize_record(
        {"id": 8, "image_filename": "legacy.jpg", "image_size": "90 KB", "processing_time": 2}
    )
    _, row = _parse(export_csv([record]))
    assert row[3] == "legacy.jpg"
    assert row[6] == "2.00s"
    assert row[7] == "90 KB"


def test_fields_with_commas_are_quoted():
    record = normalize_record(
        {"id": 5, "predicted_class": "Rust, late stage", "image_info": {"size": "1,024 KB"}}
    )
    text = export_csv([record])

    assert '"Rust, late stage"' in text
    assert '"1,024 KB"' in text
    _, row = _parse(text)
    assert len(row) == 8
    assert row[4] == "Rust, late stage"


def test_empty_export_is_header_only():
    assert export_csv([]) == ",".join(CSV_HEADER) + "\n"


def test_filename():
    assert CSV_FILENAME == "sunflower-analysis-history.csv"
