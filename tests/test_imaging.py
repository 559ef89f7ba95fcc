"""
Tests for thumbnail, preview and raw frame generation
"""

import io

import pytest
from PIL import Image as PILImage

from ledpanel import imaging
from ledpanel.errors import DimensionError, ImageProcessingError

from conftest import make_image

PNG_HEADER = b"\x89PNG"


def two_tone(width, height, left=(0, 0, 255), right=(0, 255, 0)) -> bytes:
    """Image whose left half is ``left`` and right half is ``right``."""
    img = PILImage.new("RGB", (width, height), left)
    img.paste(right, (width // 2, 0, width, height))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def pixel(frame: bytes, width: int, x: int, y: int) -> tuple:
    offset = (y * width + x) * 4
    return tuple(frame[offset : offset + 4])


@pytest.mark.parametrize(
    "width,height", [(1, 1), (64, 32), (7, 13), (1024, 1), (1, 1024), (128, 128)]
)
def test_rasterize_length_is_width_height_4(width, height):
    frame = imaging.rasterize(make_image(40, 30), width, height)
    assert len(frame) == width * height * 4


def test_rasterize_is_rgba_in_order():
    frame = imaging.rasterize(make_image(10, 10, (10, 20, 30)), 2, 2)
    assert pixel(frame, 2, 0, 0) == (10, 20, 30, 255)


@pytest.mark.parametrize("target", [(30, 30), (100, 10), (10, 100), (64, 32)])
def test_cover_fit_has_no_blank_border(target):
    width, height = target
    frame = imaging.rasterize(make_image(200, 50, (200, 100, 50)), width, height)

    corners = [(0, 0), (width - 1, 0), (0, height - 1), (width - 1, height - 1)]
    for x, y in corners:
        assert pixel(frame, width, x, y) == (200, 100, 50, 255)


def test_cover_fit_crops_centered_overflow():
    # 200x100 scaled to 20x10 then cropped to the middle 10x10
    frame = imaging.rasterize(two_tone(200, 100), 10, 10)
    assert pixel(frame, 10, 0, 0)[:3] == (0, 0, 255)
    assert pixel(frame, 10, 9, 9)[:3] == (0, 255, 0)


def test_rasterize_accepts_palette_and_alpha_sources():
    gif = make_image(20, 20, 3, fmt="GIF", mode="P")
    rgba = make_image(20, 20, (1, 2, 3, 128), mode="RGBA")

    assert len(imaging.rasterize(gif, 8, 8)) == 8 * 8 * 4
    alpha = pixel(imaging.rasterize(rgba, 4, 4), 4, 0, 0)[3]
    assert abs(alpha - 128) <= 1


@pytest.mark.parametrize("width,height", [(0, 10), (10, 0), (1025, 10), (-1, 5)])
def test_rasterize_rejects_bad_dimensions(width, height):
    with pytest.raises(DimensionError):
        imaging.rasterize(make_image(10, 10), width, height)


def test_rasterize_corrupt_source():
    with pytest.raises(ImageProcessingError):
        imaging.rasterize(PNG_HEADER, 8, 8)


@pytest.mark.parametrize("value", [True, 1.5, "64", None])
def test_validate_dimensions_requires_integers(value):
    with pytest.raises(DimensionError):
        imaging.validate_dimensions(value, 10)


def test_thumbnail_is_64px_jpeg():
    thumb = imaging.thumbnail(make_image(300, 120))
    with PILImage.open(io.BytesIO(thumb)) as img:
        assert img.format == "JPEG"
        assert img.size == (64, 64)


def test_thumbnail_of_undecodable_bytes_is_none():
    assert imaging.thumbnail(PNG_HEADER) is None
    assert imaging.thumbnail(b"") is None


def test_preview_exact_size():
    preview = imaging.preview(make_image(50, 400), 120, 80)
    with PILImage.open(io.BytesIO(preview)) as img:
        assert img.size == (120, 80)


def test_preview_errors():
    with pytest.raises(DimensionError):
        imaging.preview(make_image(10, 10), 0, 100)
    with pytest.raises(ImageProcessingError):
        imaging.preview(b"not an image", 10, 10)


def test_image_dimensions():
    assert imaging.image_dimensions(make_image(33, 44)) == (33, 44)
    with pytest.raises(ImageProcessingError):
        imaging.image_dimensions(PNG_HEADER)
