from __future__ import annotations

from io import BytesIO

import aiohttp
import pytest
from PIL import Image

from sunflower_reports.core.config import Settings
from sunflower_reports.services.normalizer import normalize_record

CDN_URL = "https://res.cloudinary.com/demo/image/upload/v1712/sunflower/leaf_42.jpg"


class RecordingNotifier:
    def __init__(self) -> None:
        self.successes: list[str] = []
        self.errors: list[str] = []

    def success(self, message: str) -> None:
        self.successes.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)


class FakeFetcher:
    """Scripted ``fetch_bytes`` double: maps URLs to payloads or failures."""

    def __init__(self, responses: dict[str, bytes] | None = None, default: bytes | None = None) -> None:
        self.responses = responses or {}
        self.default = default
        self.calls: list[str] = []

    async def __call__(self, url: str) -> bytes:
        self.calls.append(url)
        payload = self.responses.get(url, self.default)
        if payload is None:
            raise aiohttp.ClientConnectionError(f"simulated failure for {url}")
        return payload


def png_bytes(size: tuple[int, int] = (120, 80), color=(200, 170, 40), mode: str = "RGB") -> bytes:
    img = Image.new(mode, size, color)
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(_env_file=None, output_dir=tmp_path / "exports")


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def healthy_record():
    return normalize_record(
        {
            "id": 42,
            "predicted_class": "Fresh Leaf",
            "confidence": 0.93,
            "all_predictions": {"Fresh Leaf": 0.93, "Downy Mildew": 0.07},
            "image_info": {"filename": "leaf_42.jpg", "size": "1.2 MB", "processing_time": 0.4312},
            "images": {"original_image_url": None},
            "created_at": "2024-05-02T09:15:30Z",
        }
    )


@pytest.fixture()
def cdn_record():
    return normalize_record(
        {
            "id": 7,
            "predicted_class": "Downy Mildew",
            "confidence": 0.81,
            "all_predictions": '{"Downy Mildew": 0.81, "Fresh Leaf": 0.12, "Leaf Scars": 0.07}',
            "image_info": {"filename": "leaf_7.jpg", "size": "845 KB", "processing_time": 1.2},
            "images": {"original_image_url": CDN_URL},
            "created_at": "2024-05-03T14:00:00",
        }
    )
