from __future__ import annotations

from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)


class Notifier(Protocol):
    def success(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...


class LogNotifier:
    """Transient notifications routed to the log. Nothing waits on them."""

    def success(self, message: str) -> None:
        logger.info("notification", level="success", message=message)

    def error(self, message: str) -> None:
        logger.warning("notification", level="error", message=message)
