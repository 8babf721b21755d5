import base64
from io import BytesIO

import pytest
from PIL import Image

from sunflower_reports.core.errors import TranscodeFailed
from sunflower_reports.services.transcoder import fit_within, transcode


@pytest.mark.parametrize(
    "size,box,expected",
    [
        ((400, 200), (80, 80), (80, 40)),
        ((200, 400), (80, 80), (40, 80)),
        ((300, 300), (80, 80), (80, 80)),
        ((50, 20), (80, 80), (50, 20)),
        ((400, 100), (80, 10), (40, 10)),
    ],
)
def test_fit_within_preserves_aspect_ratio(size, box, expected):
    width, height = fit_within(*size, *box)
    assert (width, height) == pytest.approx(expected)
    assert width <= box[0] and height <= box[1]


def test_fit_within_rejects_zero_size():
    with pytest.raises(TranscodeFailed):
        fit_within(0, 10, 80, 80)


def test_transcode_produces_base64_jpeg_inside_box():
    src = Image.new("RGB", (640, 320), (30, 120, 40))

    out = transcode(src, 80, 80, quality=0.8, pixel_scale=2)

    assert (out.width, out.height) == pytest.approx((80, 40))
    assert (out.pixel_width, out.pixel_height) == (160, 80)
    raw = base64.b64decode(out.data_base64)
    assert raw == out.to_bytes()
    with Image.open(BytesIO(raw)) as decoded:
        assert decoded.format == "JPEG"
        assert decoded.size == (160, 80)


def test_transcode_flattens_alpha_onto_white():
    src = Image.new("RGBA", (20, 20), (0, 0, 0, 0))

    out = transcode(src, 80, 80)

    with Image.open(BytesIO(out.to_bytes())) as decoded:
        r, g, b = decoded.convert("RGB").getpixel((10, 10))
    assert min(r, g, b) > 240


def test_transcode_zero_sized_bitmap_is_an_explicit_error():
    src = Image.new("RGB", (0, 0))
    with pytest.raises(TranscodeFailed):
        transcode(src, 80, 80)
