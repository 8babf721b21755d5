"""Raster transcoding for PDF embedding.

Draws a decoded bitmap onto a fresh surface sized to a bounding box and
re-encodes it as a base64 JPEG. The box is given in layout units, which are
millimetres for reports. ``pixel_scale`` sets how many pixels back each unit
so the embedded raster stays legible at print size.
"""

from __future__ import annotations

import base64
import io
from dataclasses import dataclass

from PIL import Image

from sunflower_reports.core.errors import TranscodeFailed


@dataclass(frozen=True)
class TranscodedImage:
    data_base64: str
    width: float
    height: float
    pixel_width: int
    pixel_height: int
    media_type: str = "image/jpeg"

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data_base64)


def fit_within(width: float, height: float, max_width: float, max_height: float) -> tuple[float, float]:
    if width <= 0 or height <= 0:
        raise TranscodeFailed(f"Cannot fit a {width}x{height} bitmap")

    if width > height:
        if width > max_width:
            height = height * max_width / width
            width = max_width
    elif height > max_height:
        width = width * max_height / height
        height = max_height

    # The binding-dimension rule can still overshoot a non-square box.
    if width > max_width:
        height = height * max_width / width
        width = max_width
    if height > max_height:
        width = width * max_height / height
        height = max_height
    return width, height


def transcode(
    image: Image.Image,
    max_width: float,
    max_height: float,
    *,
    quality: float = 0.8,
    pixel_scale: int = 1,
    background: tuple[int, int, int] = (255, 255, 255),
) -> TranscodedImage:
    src_w, src_h = image.size
    width, height = fit_within(src_w, src_h, max_width, max_height)

    pixel_w = max(1, round(width * pixel_scale))
    pixel_h = max(1, round(height * pixel_scale))
    jpeg_quality = max(1, min(95, round(quality * 100)))

    try:
        rgba = image.convert("RGBA")
        resized = rgba.resize((pixel_w, pixel_h), Image.LANCZOS)
        surface = Image.new("RGB", (pixel_w, pixel_h), background)
        surface.paste(resized, mask=resized.split()[3])

        out = io.BytesIO()
        surface.save(out, format="JPEG", quality=jpeg_quality, optimize=True)
    except (OSError, ValueError) as exc:
        raise TranscodeFailed(f"Could not encode bitmap: {exc}") from exc

    return TranscodedImage(
        data_base64=base64.b64encode(out.getvalue()).decode("utf-8"),
        width=width,
        height=height,
        pixel_width=pixel_w,
        pixel_height=pixel_h,
    )
