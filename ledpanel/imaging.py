"""
Raster derivatives: thumbnails, previews and raw RGBA frames.

All three use the same "cover" fit: the source is scaled uniformly until
it fills the target box, then the centered overflow is cropped. No
letterbox or padding pixels are ever produced.
"""

import io
import logging
from typing import Optional, Tuple

from PIL import Image as PILImage
from PIL import ImageOps

from ledpanel.constants import (
    BYTES_PER_PIXEL,
    MAX_DIMENSION,
    MIN_DIMENSION,
    PREVIEW_QUALITY,
    THUMBNAIL_QUALITY,
    THUMBNAIL_SIZE,
)
from ledpanel.errors import DimensionError, FrameSizeError, ImageProcessingError

logger = logging.getLogger(__name__)

ENCODED_MIME_TYPE = "image/jpeg"


def validate_dimensions(width: int, height: int) -> None:
    """Raise DimensionError unless both values are integers in [1, 1024]."""
    for value in (width, height):
        if (
            not isinstance(value, int)
            or isinstance(value, bool)
            or not MIN_DIMENSION <= value <= MAX_DIMENSION
        ):
            raise DimensionError(
                f"Invalid dimensions: width={width}, height={height}. "
                f"Expected integers between {MIN_DIMENSION} and {MAX_DIMENSION}."
            )


def _decode(data: bytes) -> PILImage.Image:
    img = PILImage.open(io.BytesIO(data))
    img.load()
    # Respect camera orientation before cropping
    return ImageOps.exif_transpose(img)


def cover_fit(img: PILImage.Image, width: int, height: int) -> PILImage.Image:
    """Scale ``img`` to cover ``width`` x ``height`` and crop the centered excess."""
    return ImageOps.fit(
        img,
        (width, height),
        method=PILImage.Resampling.LANCZOS,
        centering=(0.5, 0.5),
    )


def _encode_jpeg(img: PILImage.Image, quality: int) -> bytes:
    if img.mode in ("RGBA", "LA", "P", "PA"):
        rgba = img.convert("RGBA")
        flattened = PILImage.new("RGB", rgba.size, (0, 0, 0))
        flattened.paste(rgba, mask=rgba.getchannel("A"))
        img = flattened
    elif img.mode != "RGB":
        img = img.convert("RGB")

    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue()


def image_dimensions(data: bytes) -> Tuple[int, int]:
    """Return (width, height) of the encoded image without a full decode."""
    try:
        with PILImage.open(io.BytesIO(data)) as img:
            return img.size
    except Exception as e:
        raise ImageProcessingError(f"Unable to read image: {e}") from e


def thumbnail(
    data: bytes,
    size: int = THUMBNAIL_SIZE,
    quality: int = THUMBNAIL_QUALITY,
) -> Optional[bytes]:
    """
    Build a square JPEG thumbnail.

    Returns None when the source cannot be decoded or encoded; never raises.
    """
    try:
        with _decode(data) as img:
            return _encode_jpeg(cover_fit(img.convert("RGBA"), size, size), quality)
    except Exception as e:
        logger.warning(f"Thumbnail generation failed: {e}")
        return None


def preview(
    data: bytes,
    width: int,
    height: int,
    quality: int = PREVIEW_QUALITY,
) -> bytes:
    """
    Build a JPEG preview at exactly ``width`` x ``height``.

    Raises:
        DimensionError: width or height out of range.
        ImageProcessingError: the source could not be processed.
    """
    validate_dimensions(width, height)
    try:
        with _decode(data) as img:
            return _encode_jpeg(cover_fit(img.convert("RGBA"), width, height), quality)
    except Exception as e:
        raise ImageProcessingError(f"Failed to generate preview: {e}") from e


def rasterize(data: bytes, width: int, height: int) -> bytes:
    """
    Resize to the exact geometry and return raw RGBA pixels.

    The result is row-major, 4 bytes per pixel, ``width * height * 4`` long.

    Raises:
        DimensionError: width or height out of range.
        ImageProcessingError: the source could not be decoded.
        FrameSizeError: the produced buffer has the wrong length.
    """
    validate_dimensions(width, height)
    try:
        with _decode(data) as img:
            frame = cover_fit(img.convert("RGBA"), width, height)
            pixels = frame.tobytes("raw", "RGBA")
    except Exception as e:
        raise ImageProcessingError(f"Failed to process image: {e}") from e

    expected = width * height * BYTES_PER_PIXEL
    if len(pixels) != expected:
        raise FrameSizeError(
            f"Frame size mismatch: got {len(pixels)} bytes, expected {expected} "
            f"({width}x{height}x{BYTES_PER_PIXEL})"
        )
    return pixels
