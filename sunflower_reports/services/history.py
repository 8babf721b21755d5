from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

from sunflower_reports.core.config import Settings, get_settings
from sunflower_reports.core.enums import HistoryState
from sunflower_reports.core.errors import RecordFetchFailed
from sunflower_reports.core.logging import configure_logging
from sunflower_reports.schemas.record import AnalysisRecord
from sunflower_reports.services.api_client import HistoryClient
from sunflower_reports.services.image_loader import ImageLoader
from sunflower_reports.services.notifier import LogNotifier, Notifier
from sunflower_reports.services.orchestrator import DownloadOrchestrator
from sunflower_reports.services.presenters import CardSummary, card_summary
from sunflower_reports.services.saver import DirectorySaver, FileSaver

logger = structlog.get_logger(__name__)


class HistorySession:
    """One activation of the history view.

    Records are fetched once by ``load`` and held as an immutable snapshot.
    ``close`` stops any in-flight preview from being applied. Exports that
    have already started still run to completion and save.
    """

    def __init__(
        self,
        client: HistoryClient,
        *,
        loader: ImageLoader,
        saver: FileSaver,
        notifier: Notifier,
        settings: Settings,
    ) -> None:
        self.client = client
        self.loader = loader
        self.saver = saver
        self.notifier = notifier
        self.settings = settings

        self.state = HistoryState.LOADING
        self.error: str | None = None
        self.records: tuple[AnalysisRecord, ...] = ()
        self.orchestrator: DownloadOrchestrator | None = None
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    async def load(self) -> HistoryState:
        self.state = HistoryState.LOADING
        self.error = None
        try:
            result = await self.client.fetch_history()
        except RecordFetchFailed as exc:
            logger.warning("history_load_failed", error=str(exc))
            self.records = ()
            self.orchestrator = None
            self.error = str(exc) or "Failed to fetch analysis history"
            self.state = HistoryState.ERROR
            self.notifier.error(self.error)
            return self.state

        self.records = result.records
        self.orchestrator = DownloadOrchestrator(
            self.records,
            loader=self.loader,
            saver=self.saver,
            notifier=self.notifier,
            settings=self.settings,
            is_active=lambda: self._active,
        )
        self.state = HistoryState.READY if self.records else HistoryState.EMPTY
        return self.state

    def cards(self) -> list[CardSummary]:
        return [card_summary(record, self.settings) for record in self.records]

    def close(self) -> None:
        self._active = False
        if self.orchestrator is not None:
            self.orchestrator.previewer.close()


@asynccontextmanager
async def open_history_session(
    settings: Settings | None = None,
    *,
    token: str | None = None,
    saver: FileSaver | None = None,
    notifier: Notifier | None = None,
) -> AsyncIterator[HistorySession]:
    cfg = settings or get_settings()
    configure_logging(cfg)
    async with HistoryClient(cfg) as client, ImageLoader(cfg) as loader:
        if token:
            client.set_credential(token)
        session = HistorySession(
            client,
            loader=loader,
            saver=saver or DirectorySaver(cfg.output_dir_resolved),
            notifier=notifier or LogNotifier(),
            settings=cfg,
        )
        await session.load()
        try:
            yield session
        finally:
            session.close()
