import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from sunflower_reports.core.errors import RecordFetchFailed
from sunflower_reports.services.api_client import HistoryClient


def _session_returning(status: int, payload=None, json_error: Exception | None = None) -> MagicMock:
    response = MagicMock()
    response.status = status
    if json_error is not None:
        response.json = AsyncMock(side_effect=json_error)
    else:
        response.json = AsyncMock(return_value=payload)
    session = MagicMock()
    session.get.return_value.__aenter__.return_value = response
    return session


def _session_raising(exc: Exception) -> MagicMock:
    session = MagicMock()
    session.get.side_effect = exc
    return session


HISTORY_PAYLOAD = {
    "status": "success",
    "history": [
        {
            "id": 2,
            "predicted_class": "Downy Mildew",
            "confidence": 0.7,
            "all_predictions": '{"Downy Mildew": 0.7, "Fresh Leaf": 0.3}',
            "image_info": {"filename": "b.jpg", "size": "1 MB", "processing_time": 0.5},
            "images": {"original_image_url": "https://res.cloudinary.com/demo/image/upload/b.jpg"},
            "created_at": "2024-05-03T10:00:00Z",
        },
        {"id": 1, "predicted_class": "Fresh Leaf", "confidence": 0.95, "image_url": "https://x.example/a.jpg"},
    ],
    "pagination": {"page": 1, "per_page": 20, "total": 2, "pages": 1, "has_next": False, "has_prev": False},
}


@pytest.mark.asyncio
async def test_fetch_history_normalizes_records(settings):
    session = _session_returning(200, HISTORY_PAYLOAD)
    client = HistoryClient(settings, session=session)

    result = await client.fetch_history()

    assert [r.id for r in result.records] == [2, 1]
    assert result.records[0].all_predictions == {"Downy Mildew": 0.7, "Fresh Leaf": 0.3}
    assert result.records[1].image_ref == "https://x.example/a.jpg"
    assert result.pagination.total == 2
    assert session.get.call_args.args[0] == "http://localhost:5000/history"


@pytest.mark.asyncio
async def test_credentials_are_explicit(settings):
    session = _session_returning(200, {"status": "success", "history": []})
    client = HistoryClient(settings, session=session)
    assert not client.is_authenticated

    client.set_credential("tok-123")
    await client.fetch_history()
    assert session.get.call_args.kwargs["headers"]["Authorization"] == "Bearer tok-123"

    client.clear_credential()
    await client.fetch_history()
    assert "Authorization" not in session.get.call_args.kwargs["headers"]
    assert not client.is_authenticated


@pytest.mark.asyncio
async def test_zero_records_is_not_an_error(settings):
    client = HistoryClient(settings, session=_session_returning(200, {"status": "success", "history": []}))
    result = await client.fetch_history()
    assert result.records == ()


@pytest.mark.asyncio
async def test_http_error_uses_backend_message(settings):
    client = HistoryClient(settings, session=_session_returning(401, {"error": "Token has expired"}))
    with pytest.raises(RecordFetchFailed, match="Token has expired"):
        await client.fetch_history()


@pytest.mark.asyncio
async def test_http_error_without_json_body(settings):
    client = HistoryClient(settings, session=_session_returning(500, json_error=ValueError("no json")))
    with pytest.raises(RecordFetchFailed, match="status: 500"):
        await client.fetch_history()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"status": "error", "error": "db down"},
        {"status": "success"},
        ["not", "a", "dict"],
    ],
)
async def test_non_success_payload_is_fetch_failure(settings, payload):
    client = HistoryClient(settings, session=_session_returning(200, payload))
    with pytest.raises(RecordFetchFailed):
        await client.fetch_history()


@pytest.mark.asyncio
@pytest.mark.parametrize("exc", [aiohttp.ClientConnectionError("refused"), asyncio.TimeoutError()])
async def test_transport_failures_are_fetch_failures(settings, exc):
    client = HistoryClient(settings, session=_session_raising(exc))
    with pytest.raises(RecordFetchFailed):
        await client.fetch_history()


@pytest.mark.asyncio
async def test_health_check(settings):
    assert await HistoryClient(settings, session=_session_returning(200, {"status": "ok"})).health_check() is True
    failing = HistoryClient(settings, session=_session_raising(aiohttp.ClientConnectionError("down")))
    assert await failing.health_check() is False
