"""
Frame transcoder - turns an image source plus a geometry into raw RGBA.

Sources are a stored image id, caller-supplied bytes, or a remote URL.
Decoding and resizing run in the threadpool so they do not block the
event loop.
"""

import logging
from typing import Optional, Tuple

import httpx
from starlette.concurrency import run_in_threadpool

from ledpanel import imaging
from ledpanel.constants import (
    DEVICE_TIMEOUT,
    MAX_REMOTE_IMAGE_BYTES,
    RECOMMENDED_MAX_HEIGHT,
    RECOMMENDED_MAX_WIDTH,
)
from ledpanel.errors import (
    FrameSourceError,
    ImageTooLargeError,
    RemoteFetchError,
    SourceNotFoundError,
)
from ledpanel.models import FrameSource
from ledpanel.repository import ImageRepository

logger = logging.getLogger(__name__)


def _too_large(size: int, max_bytes: int) -> ImageTooLargeError:
    return ImageTooLargeError(
        f"Image too large: {size} bytes exceeds the "
        f"{max_bytes // (1024 * 1024)}MB limit"
    )


async def fetch_remote_image(
    client: httpx.AsyncClient,
    url: str,
    max_bytes: int = MAX_REMOTE_IMAGE_BYTES,
) -> Tuple[bytes, Optional[str]]:
    """
    Download an image, refusing anything over ``max_bytes``.

    An advertised Content-Length over the limit is rejected before the body
    is read; a body that grows past the limit is abandoned mid-stream.

    Returns:
        Tuple of (image bytes, content type without parameters)

    Raises:
        ImageTooLargeError: the image exceeds ``max_bytes``.
        RemoteFetchError: the server answered with a non-2xx status.
    """
    async with client.stream("GET", url) as response:
        if not response.is_success:
            raise RemoteFetchError(f"Failed to fetch image: {response.status_code}")

        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > max_bytes:
            raise _too_large(int(declared), max_bytes)

        chunks = []
        received = 0
        async for chunk in response.aiter_bytes():
            received += len(chunk)
            if received > max_bytes:
                raise _too_large(received, max_bytes)
            chunks.append(chunk)

        logger.debug(f"Fetched {received} bytes from {url}")
        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        return b"".join(chunks), content_type or None


def oversize_warning(width: int, height: int) -> Optional[str]:
    """Advisory message for sources above the recommended 256x256."""
    if width <= RECOMMENDED_MAX_WIDTH and height <= RECOMMENDED_MAX_HEIGHT:
        return None
    return (
        f"Source image is {width}x{height}, larger than the recommended "
        f"{RECOMMENDED_MAX_WIDTH}x{RECOMMENDED_MAX_HEIGHT}; it was downscaled "
        "and fine detail may be lost"
    )


def transcode(data: bytes, width: int, height: int) -> Tuple[bytes, Optional[str]]:
    """
    Rasterize ``data`` to a ``width`` x ``height`` RGBA frame.

    Returns:
        Tuple of (raw RGBA frame, optional oversize warning)
    """
    imaging.validate_dimensions(width, height)
    source_width, source_height = imaging.image_dimensions(data)
    frame = imaging.rasterize(data, width, height)
    return frame, oversize_warning(source_width, source_height)


class FrameTranscoder:
    """Loads frame sources and converts them to device frames."""

    def __init__(
        self,
        repository: Optional[ImageRepository] = None,
        timeout: float = DEVICE_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_remote_bytes: int = MAX_REMOTE_IMAGE_BYTES,
    ):
        """
        Args:
            repository: Image repository, required for stored-id sources.
            timeout: Timeout in seconds for remote downloads.
            transport: Optional httpx transport (tests use MockTransport).
            max_remote_bytes: Download ceiling for remote sources.
        """
        self.repository = repository
        self.timeout = timeout
        self.transport = transport
        self.max_remote_bytes = max_remote_bytes

    async def load_source(self, source: FrameSource) -> bytes:
        """
        Resolve a frame source to encoded image bytes.

        Raises:
            SourceNotFoundError: the stored image does not exist.
            FrameSourceError: remote download or storage lookup failed.
            ImageTooLargeError: remote image over the download ceiling.
        """
        if source.data is not None:
            return source.data

        if source.image_id is not None:
            if self.repository is None:
                raise RuntimeError("Stored image source requires a repository")
            success, image, error = await run_in_threadpool(
                self.repository.get, source.image_id
            )
            if not success:
                raise FrameSourceError(error.message if error else "Storage error")
            if image is None:
                raise SourceNotFoundError("Image not found")
            return image.data

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self.transport,
            follow_redirects=True,
        ) as client:
            data, _ = await fetch_remote_image(
                client, source.url, self.max_remote_bytes
            )
        return data

    async def render(
        self, data: bytes, width: int, height: int
    ) -> Tuple[bytes, Optional[str]]:
        """Rasterize in the threadpool; see :func:`transcode`."""
        return await run_in_threadpool(transcode, data, width, height)
