from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

import structlog
from PIL import Image as PILImage

from sunflower_reports.core.config import Settings
from sunflower_reports.core.enums import ImageVariant
from sunflower_reports.core.errors import ImageUnavailable
from sunflower_reports.schemas.record import AnalysisRecord
from sunflower_reports.services.image_loader import ImageLoader
from sunflower_reports.services.image_urls import resolve_image_url
from sunflower_reports.services.presenters import ranked_predictions

logger = structlog.get_logger(__name__)


@dataclass
class PreviewState:
    record: AnalysisRecord
    url: str | None
    download_url: str | None
    image: PILImage.Image | None = None
    unavailable: bool = False
    predictions: list[tuple[str, float]] = field(default_factory=list)


class PreviewController:
    """Show one record's image at preview size.

    A result is applied only if the owning view is still active and no newer
    preview request has started since.
    """

    def __init__(
        self,
        loader: ImageLoader,
        settings: Settings,
        *,
        is_active: Callable[[], bool] = lambda: True,
    ) -> None:
        self.loader = loader
        self.settings = settings
        self._is_active = is_active
        self._request: object | None = None
        self.state: PreviewState | None = None

    async def open(self, record: AnalysisRecord) -> PreviewState | None:
        request = object()
        self._request = request

        resolved = resolve_image_url(record.image_ref, ImageVariant.PREVIEW, self.settings)
        state = PreviewState(
            record=record,
            url=resolved.primary,
            download_url=record.image_ref,
            predictions=ranked_predictions(record.all_predictions),
        )

        if resolved.primary is None:
            state.unavailable = True
        else:
            try:
                loaded = await self.loader.load(resolved)
            except ImageUnavailable:
                state.unavailable = True
            else:
                state.image = loaded.image
                state.url = loaded.url

        if not self._is_active() or self._request is not request:
            logger.debug("preview_result_discarded", record_id=record.id)
            return None

        self.state = state
        return state

    def close(self) -> None:
        self._request = None
        self.state = None
