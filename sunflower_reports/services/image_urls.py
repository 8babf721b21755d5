"""CDN URL resolution.

The image host accepts a transformation segment right after ``/upload/``,
for example ``/upload/q_auto,f_auto,w_800/v1712/leaf.jpg``. ``apply_transformation``
is the only place a segment is written. It replaces whatever segments are
already present, so applying it twice yields the same URL.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from sunflower_reports.core.config import Settings
from sunflower_reports.core.enums import ImageVariant
from sunflower_reports.schemas.record import ResolvedImageURL

UPLOAD_MARKER = "/upload/"

_TRANSFORM_TOKEN = r"[a-z]{1,3}_[^,/]+"
_TRANSFORM_SEGMENT = re.compile(rf"^{_TRANSFORM_TOKEN}(?:,{_TRANSFORM_TOKEN})*$")


def is_transformation_segment(segment: str) -> bool:
    return bool(_TRANSFORM_SEGMENT.match(segment))


def apply_transformation(url: str, segment: str) -> str:
    head, marker, tail = url.partition(UPLOAD_MARKER)
    if not marker:
        return url

    parts = tail.split("/")
    # Drop existing transformation segments, keep the version and public id.
    while len(parts) > 1 and is_transformation_segment(parts[0]):
        parts.pop(0)
    return f"{head}{UPLOAD_MARKER}{segment}/{'/'.join(parts)}"


def is_cdn_url(url: str, settings: Settings) -> bool:
    host = (urlsplit(url).hostname or "").lower()
    cdn_host = settings.cdn_host.lower()
    return host == cdn_host or host.endswith(f".{cdn_host}")


def transformation_segments(variant: ImageVariant, settings: Settings) -> tuple[str, str]:
    if variant == ImageVariant.PREVIEW:
        return f"q_auto,f_auto,w_{settings.preview_width}", "q_auto,f_auto,c_scale,w_600"
    if variant == ImageVariant.THUMBNAIL:
        size = settings.thumbnail_size
        return f"q_auto,f_auto,w_{size}", f"q_auto,f_auto,c_fill,w_{size},h_{size}"
    return f"q_auto,f_auto,w_{settings.report_image_width}", "q_auto,f_auto"


def resolve_image_url(
    image_ref: str | None, variant: ImageVariant, settings: Settings
) -> ResolvedImageURL:
    if not image_ref:
        return ResolvedImageURL()
    if not is_cdn_url(image_ref, settings) or UPLOAD_MARKER not in image_ref:
        return ResolvedImageURL(primary=image_ref, fallback=None)

    primary_segment, fallback_segment = transformation_segments(variant, settings)
    return ResolvedImageURL(
        primary=apply_transformation(image_ref, primary_segment),
        fallback=apply_transformation(image_ref, fallback_segment),
    )
