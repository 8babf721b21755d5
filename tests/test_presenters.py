import pytest

from sunflower_reports.core.enums import ConfidenceTone, HealthStatus
from sunflower_reports.services.presenters import (
    card_summary,
    confidence_tone,
    format_percent,
    format_seconds,
    health_status,
    listed_predictions,
    ranked_predictions,
    split_timestamp,
)


@pytest.mark.parametrize(
    "confidence,expected",
    [(0.0, "0.0%"), (0.93, "93.0%"), (0.9234, "92.3%"), (0.12345, "12.3%"), (1.0, "100.0%")],
)
def test_format_percent(confidence, expected):
    assert format_percent(confidence) == expected


@pytest.mark.parametrize("confidence", [0.0, 0.001, 0.3333, 0.5, 0.875, 0.9999, 1.0])
def test_format_percent_matches_rounded_value_and_is_stable(confidence):
    first = format_percent(confidence)
    assert first == format_percent(confidence)
    assert float(first.rstrip("%")) == pytest.approx(round(confidence * 100, 1), abs=0.05)


def test_format_seconds():
    assert format_seconds(0.4312) == "0.43s"
    assert format_seconds(None) == "N/A"
    assert format_seconds(None, default="0.00s") == "0.00s"


def test_health_status():
    assert health_status("Fresh Leaf") == HealthStatus.HEALTHY
    assert health_status("Downy Mildew") == HealthStatus.DISEASE_DETECTED
    assert health_status("fresh leaf") == HealthStatus.DISEASE_DETECTED


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("2024-05-02T09:15:30Z", ("2024-05-02", "09:15:30")),
        ("2024-05-02T09:15:30.123456", ("2024-05-02", "09:15:30")),
        ("2024-05-02T09:15:30+02:00", ("2024-05-02", "09:15:30")),
        ("yesterday", ("yesterday", "")),
        ("", ("", "")),
    ],
)
def test_split_timestamp(raw, expected):
    assert split_timestamp(raw) == expected


@pytest.mark.parametrize("value,tone", [(0.95, ConfidenceTone.HIGH), (0.8, ConfidenceTone.HIGH), (0.6, ConfidenceTone.MEDIUM), (0.59, ConfidenceTone.LOW)])
def test_confidence_tone(value, tone):
    assert confidence_tone(value) == tone


def test_ranked_sorts_descending_but_listed_keeps_insertion_order():
    predictions = {"Leaf Scars": 0.1, "Downy Mildew": 0.6, "Fresh Leaf": 0.3}
    assert [label for label, _ in listed_predictions(predictions)] == ["Leaf Scars", "Downy Mildew", "Fresh Leaf"]
    assert [label for label, _ in ranked_predictions(predictions)] == ["Downy Mildew", "Fresh Leaf", "Leaf Scars"]


def test_card_summary_uses_insertion_order_and_thumbnail_variant(cdn_record, settings):
    card = card_summary(cdn_record, settings)

    assert card.confidence == "81%"
    assert card.health == HealthStatus.DISEASE_DETECTED
    assert [line.label for line in card.predictions] == ["Downy Mildew", "Fresh Leaf", "Leaf Scars"]
    assert [line.high for line in card.predictions] == [True, False, False]
    assert "/upload/q_auto,f_auto,w_400/" in card.thumbnail.primary
    assert "/upload/q_auto,f_auto,c_fill,w_400,h_400/" in card.thumbnail.fallback


def test_card_summary_without_image(healthy_record, settings):
    card = card_summary(healthy_record, settings)
    assert card.thumbnail.primary is None
    assert card.filename == "leaf_42.jpg"
    assert card.date == "2024-05-02"
