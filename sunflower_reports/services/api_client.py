"""Client for the analysis backend's read-only history endpoint."""

from __future__ import annotations

import asyncio
from typing import Any

import aiohttp
import structlog
from pydantic import ValidationError

from sunflower_reports.core.config import Settings
from sunflower_reports.core.errors import RecordFetchFailed
from sunflower_reports.schemas.record import HistoryResult, Pagination
from sunflower_reports.services.normalizer import normalize_records

logger = structlog.get_logger(__name__)


class HistoryClient:
    """History API client.

    The bearer credential lives on the instance. Callers construct one client
    and pass it to whatever needs it.
    """

    def __init__(self, settings: Settings, *, session: aiohttp.ClientSession | None = None) -> None:
        self.settings = settings
        self._session = session
        self._owns_session = False
        self._token: str | None = None

    async def __aenter__(self) -> "HistoryClient":
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
            self._owns_session = False

    def set_credential(self, token: str) -> None:
        self._token = token

    def clear_credential(self) -> None:
        self._token = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self._token)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _get_json(self, endpoint: str) -> Any:
        if self._session is None:
            raise RecordFetchFailed("Client not initialized, use async with")

        url = f"{self.settings.api_base_url_normalized}{endpoint}"
        logger.debug("api_request", method="GET", url=url)
        try:
            async with self._session.get(
                url,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.settings.request_timeout_seconds),
            ) as response:
                if response.status >= 400:
                    message = f"HTTP error! status: {response.status}"
                    try:
                        body = await response.json(content_type=None)
                    except (aiohttp.ContentTypeError, ValueError):
                        body = None
                    if isinstance(body, dict) and body.get("error"):
                        message = str(body["error"])
                    logger.warning("api_error_response", url=url, status=response.status, error=message)
                    raise RecordFetchFailed(message)
                try:
                    return await response.json(content_type=None)
                except ValueError as exc:
                    raise RecordFetchFailed("Backend returned an invalid JSON body") from exc
        except asyncio.TimeoutError as exc:
            logger.warning("api_timeout", url=url)
            raise RecordFetchFailed(f"Request to {url} timed out") from exc
        except aiohttp.ClientError as exc:
            logger.warning("api_connection_failed", url=url, error=str(exc))
            raise RecordFetchFailed(
                f"Cannot connect to backend server at {self.settings.api_base_url_normalized}. "
                "Make sure the backend is running."
            ) from exc

    async def fetch_history(self) -> HistoryResult:
        payload = await self._get_json("/history")
        if not isinstance(payload, dict):
            raise RecordFetchFailed("Failed to fetch analysis history")

        status = str(payload.get("status") or "")
        rows = payload.get("history")
        if status != "success" or not isinstance(rows, list):
            raise RecordFetchFailed(str(payload.get("error") or "Failed to fetch analysis history"))

        pagination = None
        if isinstance(payload.get("pagination"), dict):
            try:
                pagination = Pagination.model_validate(payload["pagination"])
            except ValidationError:
                logger.warning("history_pagination_ignored", pagination=payload["pagination"])

        records = normalize_records(rows)
        logger.info("history_fetched", count=len(records))
        return HistoryResult(status=status, records=records, pagination=pagination)

    async def health_check(self) -> bool:
        try:
            payload = await self._get_json("/health")
        except RecordFetchFailed:
            return False
        return isinstance(payload, dict)
