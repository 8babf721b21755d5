"""Map raw history rows onto the canonical ``AnalysisRecord``.

Two backend schemas are in circulation. Current rows nest the image under
``images.original_image_url`` and the file metadata under ``image_info``.
Older rows carry the same data in flat fields. The normalizer resolves both
into one shape and never raises. Malformed values degrade to the most
conservative representable value instead.
"""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from sunflower_reports.schemas.record import AnalysisRecord, ImageInfo

logger = structlog.get_logger(__name__)

LEGACY_IMAGE_FIELDS = ("original_image_url", "image_url", "cloudinary_url")
UNKNOWN_CLASS = "Unknown"


@dataclass(frozen=True)
class DecodedPredictions:
    predictions: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class PredictionDecodeError:
    reason: str
    raw: Any = None


def _coerce_mapping(value: Mapping) -> DecodedPredictions | PredictionDecodeError:
    out: dict[str, float] = {}
    for label, score in value.items():
        if isinstance(score, bool):
            return PredictionDecodeError(reason=f"non-numeric score for {label!r}", raw=value)
        try:
            out[str(label)] = float(score)
        except (TypeError, ValueError):
            return PredictionDecodeError(reason=f"non-numeric score for {label!r}", raw=value)
    return DecodedPredictions(predictions=out)


def decode_predictions(raw: Any) -> DecodedPredictions | PredictionDecodeError:
    if raw is None:
        return DecodedPredictions()
    if isinstance(raw, Mapping):
        return _coerce_mapping(raw)
    if isinstance(raw, (str, bytes)):
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        if not text.strip():
            return DecodedPredictions()
        try:
            parsed = json.loads(text)
        except ValueError as exc:
            return PredictionDecodeError(reason=f"invalid JSON: {exc}", raw=raw)
        if not isinstance(parsed, dict):
            return PredictionDecodeError(reason="JSON value is not an object", raw=raw)
        return _coerce_mapping(parsed)
    return PredictionDecodeError(reason=f"unsupported type {type(raw).__name__}", raw=raw)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def resolve_image_ref(raw: Mapping[str, Any]) -> str | None:
    images = raw.get("images")
    if isinstance(images, Mapping):
        nested = _text(images.get("original_image_url"))
        if nested:
            return nested
    for key in LEGACY_IMAGE_FIELDS:
        candidate = _text(raw.get(key))
        if candidate:
            return candidate
    return None


def _image_info(raw: Mapping[str, Any]) -> ImageInfo:
    nested = raw.get("image_info")
    if not isinstance(nested, Mapping):
        nested = {}

    processing_time = _number(nested.get("processing_time"))
    if processing_time is None:
        processing_time = _number(raw.get("processing_time"))

    return ImageInfo(
        filename=_text(nested.get("filename")) or _text(raw.get("image_filename")),
        size=_text(nested.get("size")) or _text(raw.get("image_size")),
        processing_time_seconds=processing_time,
    )


def _record_id(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return 0


def normalize_record(raw: Mapping[str, Any]) -> AnalysisRecord:
    decoded = decode_predictions(raw.get("all_predictions"))
    if isinstance(decoded, PredictionDecodeError):
        logger.warning("predictions_decode_failed", record_id=raw.get("id"), reason=decoded.reason)
        predictions: dict[str, float] = {}
    else:
        predictions = decoded.predictions

    confidence = _number(raw.get("confidence"))
    confidence = 0.0 if confidence is None else min(1.0, max(0.0, confidence))

    user_id = raw.get("user_id")
    return AnalysisRecord(
        id=_record_id(raw.get("id")),
        user_id=_record_id(user_id) if user_id is not None else None,
        predicted_class=_text(raw.get("predicted_class")) or UNKNOWN_CLASS,
        confidence=confidence,
        all_predictions=predictions,
        image_info=_image_info(raw),
        image_ref=resolve_image_ref(raw),
        created_at=_text(raw.get("created_at")) or "",
    )


def normalize_records(rows: Iterable[Any]) -> tuple[AnalysisRecord, ...]:
    records: list[AnalysisRecord] = []
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            logger.warning("history_row_skipped", index=index, row_type=type(row).__name__)
            continue
        records.append(normalize_record(row))
    return tuple(records)
