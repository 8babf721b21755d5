from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from io import BytesIO

import aiohttp
import structlog
from PIL import Image as PILImage
from PIL import UnidentifiedImageError

from sunflower_reports.core.config import Settings
from sunflower_reports.core.errors import ImageUnavailable
from sunflower_reports.schemas.record import ResolvedImageURL

logger = structlog.get_logger(__name__)

FetchBytes = Callable[[str], Awaitable[bytes]]

_LOAD_ERRORS = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    UnidentifiedImageError,
    PILImage.DecompressionBombError,
    OSError,
    ValueError,
)


@dataclass
class LoadedImage:
    image: PILImage.Image
    url: str
    used_fallback: bool = False


def decode_image(data: bytes) -> PILImage.Image:
    if not data:
        raise ValueError("Empty image payload")
    with PILImage.open(BytesIO(data)) as src:
        src.load()
        return src.copy()


class ImageLoader:
    """Fetch and decode remote images, retrying once on the fallback variant.

    Loads are anonymous: the session keeps no cookies and sends no
    Authorization header. Calls are independent. There is no cache and no
    de-duplication of in-flight loads.

    Usage:
        async with ImageLoader(settings) as loader:
            loaded = await loader.load(resolved)
    """

    def __init__(
        self,
        settings: Settings,
        *,
        fetch_bytes: FetchBytes | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.settings = settings
        self._fetch_bytes = fetch_bytes
        self._session = session
        self._owns_session = False

    async def __aenter__(self) -> "ImageLoader":
        if self._fetch_bytes is None and self._session is None:
            self._session = aiohttp.ClientSession(cookie_jar=aiohttp.DummyCookieJar())
            self._owns_session = True
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
            self._owns_session = False

    async def _http_get(self, url: str) -> bytes:
        if self._session is None:
            raise aiohttp.ClientConnectionError("Loader not initialized, use async with")
        async with self._session.get(
            url,
            timeout=aiohttp.ClientTimeout(total=self.settings.image_timeout_seconds),
            allow_redirects=True,
        ) as response:
            response.raise_for_status()
            return await response.read()

    async def _fetch_and_decode(self, url: str) -> PILImage.Image:
        fetch = self._fetch_bytes or self._http_get
        data = await fetch(url)
        return decode_image(data)

    async def load(self, resolved: ResolvedImageURL) -> LoadedImage:
        if resolved.primary is None:
            raise ImageUnavailable("No image reference available")

        url = resolved.primary
        fallback_tried = False
        while True:
            try:
                image = await self._fetch_and_decode(url)
            except _LOAD_ERRORS as exc:
                if resolved.fallback is not None and not fallback_tried:
                    fallback_tried = True
                    logger.warning("image_load_failed_trying_fallback", url=url, error=str(exc))
                    url = resolved.fallback
                    continue
                logger.warning("image_unavailable", url=url, error=str(exc))
                raise ImageUnavailable(f"Image could not be loaded: {url}") from exc

            logger.debug("image_loaded", url=url, size=image.size, used_fallback=fallback_tried)
            return LoadedImage(image=image, url=url, used_fallback=fallback_tried)
