from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

from sunflower_reports.core.config import Settings
from sunflower_reports.core.enums import ConfidenceTone, HealthStatus, ImageVariant
from sunflower_reports.schemas.record import HEALTHY_CLASS, AnalysisRecord, ResolvedImageURL
from sunflower_reports.services.image_urls import resolve_image_url

NOT_AVAILABLE = "N/A"


def health_status(predicted_class: str) -> HealthStatus:
    if predicted_class == HEALTHY_CLASS:
        return HealthStatus.HEALTHY
    return HealthStatus.DISEASE_DETECTED


def format_percent(value: float | None, digits: int = 1) -> str:
    return f"{(value or 0.0) * 100:.{digits}f}%"


def format_seconds(value: float | None, default: str = NOT_AVAILABLE) -> str:
    if value is None:
        return default
    return f"{value:.2f}s"


def split_timestamp(created_at: str) -> tuple[str, str]:
    raw = (created_at or "").strip()
    if not raw:
        return "", ""
    candidate = raw[:-1] + "+00:00" if raw.endswith(("Z", "z")) else raw
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return raw, ""
    return parsed.strftime("%Y-%m-%d"), parsed.strftime("%H:%M:%S")


def confidence_tone(confidence: float) -> ConfidenceTone:
    if confidence >= 0.8:
        return ConfidenceTone.HIGH
    if confidence >= 0.6:
        return ConfidenceTone.MEDIUM
    return ConfidenceTone.LOW


def listed_predictions(predictions: Mapping[str, float]) -> list[tuple[str, float]]:
    return list(predictions.items())


def ranked_predictions(predictions: Mapping[str, float]) -> list[tuple[str, float]]:
    # sorted() is stable, so ties keep their insertion order.
    return sorted(predictions.items(), key=lambda item: item[1], reverse=True)


@dataclass(frozen=True)
class PredictionLine:
    label: str
    confidence: float
    percent: str
    high: bool


@dataclass(frozen=True)
class CardSummary:
    record_id: int
    predicted_class: str
    health: HealthStatus
    confidence: str
    tone: ConfidenceTone
    filename: str
    date: str
    size: str
    predictions: tuple[PredictionLine, ...]
    thumbnail: ResolvedImageURL


def card_summary(record: AnalysisRecord, settings: Settings) -> CardSummary:
    date, _time = split_timestamp(record.created_at)
    lines = tuple(
        PredictionLine(label=label, confidence=score, percent=format_percent(score), high=score > 0.5)
        for label, score in listed_predictions(record.all_predictions)
    )
    return CardSummary(
        record_id=record.id,
        predicted_class=record.predicted_class,
        health=health_status(record.predicted_class),
        confidence=format_percent(record.confidence, digits=0),
        tone=confidence_tone(record.confidence),
        filename=record.image_info.filename or NOT_AVAILABLE,
        date=date,
        size=record.image_info.size or NOT_AVAILABLE,
        predictions=lines,
        thumbnail=resolve_image_url(record.image_ref, ImageVariant.THUMBNAIL, settings),
    )
