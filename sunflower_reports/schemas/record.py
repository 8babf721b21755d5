from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from sunflower_reports.core.enums import ExportStatus

BULK_KEY: Literal["bulk"] = "bulk"

HEALTHY_CLASS = "Fresh Leaf"


class ImageInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str | None = None
    size: str | None = None
    processing_time_seconds: float | None = None


class AnalysisRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int | None = None
    predicted_class: str
    confidence: float = Field(ge=0.0, le=1.0)
    all_predictions: dict[str, float] = Field(default_factory=dict)
    image_info: ImageInfo = Field(default_factory=ImageInfo)
    image_ref: str | None = None
    created_at: str = ""

    @property
    def is_healthy(self) -> bool:
        return self.predicted_class == HEALTHY_CLASS


class ResolvedImageURL(BaseModel):
    model_config = ConfigDict(frozen=True)

    primary: str | None = None
    fallback: str | None = None

    @property
    def available(self) -> bool:
        return self.primary is not None


class ExportJob(BaseModel):
    record_id: int | Literal["bulk"]
    status: ExportStatus = ExportStatus.IDLE


class Pagination(BaseModel):
    page: int
    per_page: int
    total: int
    pages: int
    has_next: bool = False
    has_prev: bool = False


class HistoryResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str
    records: tuple[AnalysisRecord, ...] = ()
    pagination: Pagination | None = None
