"""Export lanes and the user-triggered export/preview operations.

Each record id is its own lane, and ``"bulk"`` is a separate singleton lane.
A request for a busy lane is rejected, never queued. Distinct lanes run
concurrently. Lanes are claimed synchronously before the first ``await``, so
check-then-set never spans a suspension point.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable

import structlog

from sunflower_reports.core.config import Settings
from sunflower_reports.core.enums import ExportStatus, ImageVariant
from sunflower_reports.core.errors import (
    DocumentAssemblyFailed,
    ExportAlreadyRunning,
    ImageUnavailable,
    TranscodeFailed,
)
from sunflower_reports.schemas.record import BULK_KEY, AnalysisRecord, ExportJob
from sunflower_reports.services.csv_export import CSV_FILENAME, export_csv
from sunflower_reports.services.image_loader import ImageLoader
from sunflower_reports.services.image_urls import resolve_image_url
from sunflower_reports.services.notifier import Notifier
from sunflower_reports.services.preview import PreviewController, PreviewState
from sunflower_reports.services.report import (
    HISTORY_PDF_FILENAME,
    IMAGE_LOAD_FAILED_NOTE,
    NO_IMAGE_NOTE,
    record_pdf_filename,
    render_history_pdf,
    render_record_pdf,
)
from sunflower_reports.services.saver import FileSaver
from sunflower_reports.services.transcoder import TranscodedImage, transcode

logger = structlog.get_logger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
CSV_MEDIA_TYPE = "text/csv"


class ExportLanes:
    def __init__(self) -> None:
        self._running: set[Hashable] = set()

    def claim(self, key: Hashable) -> None:
        if key in self._running:
            raise ExportAlreadyRunning(key)
        self._running.add(key)

    def release(self, key: Hashable) -> None:
        self._running.discard(key)

    def is_running(self, key: Hashable) -> bool:
        return key in self._running

    def running(self) -> frozenset:
        return frozenset(self._running)


class DownloadOrchestrator:
    def __init__(
        self,
        records: Iterable[AnalysisRecord],
        *,
        loader: ImageLoader,
        saver: FileSaver,
        notifier: Notifier,
        settings: Settings,
        is_active: Callable[[], bool] = lambda: True,
    ) -> None:
        self.records = tuple(records)
        self._by_id: dict[int, AnalysisRecord] = {}
        for record in self.records:
            self._by_id.setdefault(record.id, record)

        self.loader = loader
        self.saver = saver
        self.notifier = notifier
        self.settings = settings
        self.lanes = ExportLanes()
        self.preview_lanes = ExportLanes()
        self.previewer = PreviewController(loader, settings, is_active=is_active)

    def record(self, record_id: int) -> AnalysisRecord:
        try:
            return self._by_id[record_id]
        except KeyError:
            raise KeyError(f"Analysis #{record_id} is not in the current history") from None

    def jobs(self) -> list[ExportJob]:
        return [ExportJob(record_id=key, status=ExportStatus.RUNNING) for key in self.lanes.running()]

    async def _report_image(self, record: AnalysisRecord) -> tuple[TranscodedImage | None, str | None]:
        if record.image_ref is None:
            return None, NO_IMAGE_NOTE

        resolved = resolve_image_url(record.image_ref, ImageVariant.REPORT, self.settings)
        box = self.settings.report_image_box_mm
        try:
            loaded = await self.loader.load(resolved)
            image = transcode(
                loaded.image,
                box,
                box,
                quality=self.settings.report_image_quality,
                pixel_scale=self.settings.report_image_pixel_scale,
            )
        except (ImageUnavailable, TranscodeFailed) as exc:
            logger.warning("report_image_degraded", record_id=record.id, error=str(exc))
            return None, IMAGE_LOAD_FAILED_NOTE
        return image, None

    async def export_record(self, record_id: int) -> ExportStatus:
        record = self.record(record_id)
        try:
            self.lanes.claim(record.id)
        except ExportAlreadyRunning:
            logger.info("export_rejected", key=record.id)
            return ExportStatus.REJECTED

        try:
            image, note = await self._report_image(record)
            pdf = render_record_pdf(record, image=image, image_note=note, author=self.settings.app_name)
            await self.saver.save(record_pdf_filename(record.id), pdf, PDF_MEDIA_TYPE)
        except DocumentAssemblyFailed:
            self.notifier.error("Failed to generate PDF")
            return ExportStatus.FAILED
        except OSError as exc:
            logger.error("export_save_failed", key=record.id, error=str(exc))
            self.notifier.error("Failed to save PDF")
            return ExportStatus.FAILED
        finally:
            self.lanes.release(record.id)

        logger.info("export_succeeded", key=record.id, image_embedded=image is not None)
        self.notifier.success("PDF downloaded successfully!")
        return ExportStatus.SUCCEEDED

    async def export_all(self) -> ExportStatus:
        if not self.records:
            logger.info("export_rejected", key=BULK_KEY, reason="no records")
            return ExportStatus.REJECTED
        try:
            self.lanes.claim(BULK_KEY)
        except ExportAlreadyRunning:
            logger.info("export_rejected", key=BULK_KEY)
            return ExportStatus.REJECTED

        try:
            pdf = render_history_pdf(self.records, author=self.settings.app_name)
            await self.saver.save(HISTORY_PDF_FILENAME, pdf, PDF_MEDIA_TYPE)
        except DocumentAssemblyFailed:
            self.notifier.error("Failed to generate complete PDF")
            return ExportStatus.FAILED
        except OSError as exc:
            logger.error("export_save_failed", key=BULK_KEY, error=str(exc))
            self.notifier.error("Failed to save complete PDF")
            return ExportStatus.FAILED
        finally:
            self.lanes.release(BULK_KEY)

        logger.info("export_succeeded", key=BULK_KEY, record_count=len(self.records))
        self.notifier.success("Complete history PDF downloaded successfully!")
        return ExportStatus.SUCCEEDED

    async def export_csv(self) -> ExportStatus:
        if not self.records:
            logger.info("export_rejected", key="csv", reason="no records")
            return ExportStatus.REJECTED
        text = export_csv(self.records)
        try:
            await self.saver.save(CSV_FILENAME, text.encode("utf-8"), CSV_MEDIA_TYPE)
        except OSError as exc:
            logger.error("export_save_failed", key="csv", error=str(exc))
            self.notifier.error("Failed to export CSV")
            return ExportStatus.FAILED

        self.notifier.success("CSV exported successfully!")
        return ExportStatus.SUCCEEDED

    async def preview(self, record_id: int) -> PreviewState | None:
        record = self.record(record_id)
        try:
            self.preview_lanes.claim(record.id)
        except ExportAlreadyRunning:
            logger.info("preview_rejected", key=record.id)
            return None
        try:
            return await self.previewer.open(record)
        finally:
            self.preview_lanes.release(record.id)
