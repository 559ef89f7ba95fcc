"""
Display transmission - server-to-device communication with LED matrix bridges.

This module handles:
- Reading a display's pixel geometry (GET /configuration)
- Posting raw RGBA frames (POST /frame, multipart field "frame")
- Orchestrating "send image X to display Y" end to end
"""

import asyncio
import logging
from typing import Optional, Tuple

import httpx

from ledpanel.constants import (
    BYTES_PER_PIXEL,
    DEVICE_TIMEOUT,
    MAX_DIMENSION,
    MIN_DIMENSION,
)
from ledpanel.errors import (
    DimensionError,
    FrameSizeError,
    FrameSourceError,
    ImageProcessingError,
    ImageTooLargeError,
    SourceNotFoundError,
)
from ledpanel.imaging import validate_dimensions
from ledpanel.models import (
    DisplayConfiguration,
    FrameSource,
    SendImageResult,
    TransmissionStage,
)
from ledpanel.repository import ImageRepository
from ledpanel.transcoder import FrameTranscoder

logger = logging.getLogger(__name__)


class DisplayClient:
    """Client for a single display bridge."""

    def __init__(
        self,
        endpoint_url: str,
        timeout: float = DEVICE_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the display client.

        Args:
            endpoint_url: Base URL of the display bridge.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self.endpoint_url = endpoint_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @property
    def timeout_message(self) -> str:
        return f"Request timed out after {self.timeout:g} seconds"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def get_configuration(
        self,
    ) -> Tuple[bool, Optional[DisplayConfiguration], Optional[str]]:
        """
        Fetch and validate the display geometry.

        Returns:
            Tuple of (success, configuration, error_message)
        """
        config_url = f"{self.endpoint_url}/configuration"

        try:
            async with self._client() as client:
                response = await asyncio.wait_for(client.get(config_url), self.timeout)
                if response.status_code != 200:
                    return (
                        False,
                        None,
                        f"Failed to get display config: {response.status_code}",
                    )
                data = response.json()
        except (httpx.TimeoutException, asyncio.TimeoutError):
            logger.error(f"Timeout fetching configuration from {self.endpoint_url}")
            return False, None, self.timeout_message
        except httpx.RequestError as e:
            return False, None, f"Failed to get display config: {str(e)}"
        except ValueError:
            return False, None, "Failed to get display config: invalid JSON"

        width = data.get("width") if isinstance(data, dict) else None
        height = data.get("height") if isinstance(data, dict) else None
        try:
            validate_dimensions(width, height)
        except DimensionError:
            return (
                False,
                None,
                f"Invalid display dimensions: width={width}, height={height}. "
                f"Expected integers between {MIN_DIMENSION} and {MAX_DIMENSION}.",
            )

        return True, DisplayConfiguration(width=width, height=height), None

    async def post_frame(self, frame: bytes) -> Tuple[bool, Optional[str]]:
        """
        Post a raw RGBA frame to the display.

        Returns:
            Tuple of (success, error_message)
        """
        frame_url = f"{self.endpoint_url}/frame"
        files = {"frame": ("frame", frame, "application/octet-stream")}

        try:
            async with self._client() as client:
                response = await asyncio.wait_for(
                    client.post(frame_url, files=files), self.timeout
                )
                if not response.is_success:
                    return False, f"Failed to send frame: {response.status_code}"
                return True, None
        except (httpx.TimeoutException, asyncio.TimeoutError):
            logger.error(f"Timeout posting frame to {self.endpoint_url}")
            return False, self.timeout_message
        except httpx.RequestError as e:
            return False, f"Failed to send frame: {str(e)}"


class FrameSender:
    """
    Deliver one image to one display.

    Stages run in order FETCH_CONFIG -> FETCH_SOURCE -> TRANSCODE ->
    POST_FRAME -> DONE. The first failure moves to FAILED and stops; a frame
    is either fully delivered or not delivered at all.
    """

    def __init__(
        self,
        endpoint_url: str,
        repository: Optional[ImageRepository] = None,
        timeout: float = DEVICE_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.display = DisplayClient(endpoint_url, timeout=timeout, transport=transport)
        self.transcoder = FrameTranscoder(
            repository=repository, timeout=timeout, transport=transport
        )
        self.timeout = timeout
        self.stage = TransmissionStage.FETCH_CONFIG
        self.failed_stage: Optional[TransmissionStage] = None

    def _advance(self, stage: TransmissionStage) -> None:
        logger.debug(
            f"[{self.display.endpoint_url}] {self.stage.value} -> {stage.value}"
        )
        self.stage = stage

    def _fail(self, error: str) -> SendImageResult:
        logger.warning(
            f"Sending frame to {self.display.endpoint_url} failed "
            f"at {self.stage.value}: {error}"
        )
        self.failed_stage = self.stage
        self.stage = TransmissionStage.FAILED
        return SendImageResult(success=False, error=error)

    async def send(self, source: FrameSource) -> SendImageResult:
        """Run the whole pipeline for ``source``."""
        success, config, error = await self.display.get_configuration()
        if not success or config is None:
            return self._fail(error or "Failed to get display config")

        self._advance(TransmissionStage.FETCH_SOURCE)
        try:
            data = await asyncio.wait_for(
                self.transcoder.load_source(source), self.timeout
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            return self._fail(self.display.timeout_message)
        except (FrameSourceError, SourceNotFoundError, ImageTooLargeError) as e:
            return self._fail(str(e))
        except httpx.RequestError as e:
            return self._fail(f"Failed to fetch image: {str(e)}")

        self._advance(TransmissionStage.TRANSCODE)
        try:
            frame, warning = await self.transcoder.render(
                data, config.width, config.height
            )
        except (ImageProcessingError, FrameSizeError, DimensionError) as e:
            return self._fail(str(e))

        expected = config.width * config.height * BYTES_PER_PIXEL
        if len(frame) != expected:
            return self._fail(
                f"Frame size mismatch: got {len(frame)} bytes, expected {expected}"
            )

        self._advance(TransmissionStage.POST_FRAME)
        success, error = await self.display.post_frame(frame)
        if not success:
            return self._fail(error or "Failed to send frame")

        self._advance(TransmissionStage.DONE)
        if warning:
            logger.info(
                f"Frame sent to {self.display.endpoint_url} with warning: {warning}"
            )
        return SendImageResult(success=True, warning=warning)


async def send_image_to_display(
    endpoint_url: str,
    source: FrameSource,
    repository: Optional[ImageRepository] = None,
    timeout: float = DEVICE_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SendImageResult:
    """
    Send an image to a display.

    Args:
        endpoint_url: Base URL of the display bridge.
        source: Stored image id, raw bytes or remote URL.
        repository: Image repository for stored-id sources.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport.

    Returns:
        SendImageResult with success flag, error and optional warning.
    """
    sender = FrameSender(
        endpoint_url, repository=repository, timeout=timeout, transport=transport
    )
    return await sender.send(source)
