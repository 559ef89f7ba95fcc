"""
Tests for sending frames to displays
"""

import asyncio

import httpx
import pytest

from ledpanel.models import FrameSource, TransmissionStage
from ledpanel.transcoder import fetch_remote_image, oversize_warning
from ledpanel.transmission import DisplayClient, FrameSender, send_image_to_display

from conftest import make_image

DISPLAY = "http://display.local"
IMAGE_URL = "http://images.example/picture.png"


class FakeNetwork:
    """Display bridge plus remote image host behind one MockTransport."""

    def __init__(
        self,
        config=None,
        config_status=200,
        frame_status=200,
        image=b"",
        image_headers=None,
        timeout_on=None,
    ):
        self.config = {"width": 64, "height": 32} if config is None else config
        self.config_status = config_status
        self.frame_status = frame_status
        self.image = image
        self.image_headers = image_headers or {}
        self.timeout_on = timeout_on
        self.requests = []
        self.frames = []
        self.body_consumed = False

    def _image_body(self):
        async def body():
            self.body_consumed = True
            yield self.image

        return body()

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(str(request.url))
        path = request.url.path

        if self.timeout_on and path.endswith(self.timeout_on):
            raise httpx.ReadTimeout("timed out", request=request)

        if request.url.host == "images.example":
            return httpx.Response(
                200, headers=self.image_headers, content=self._image_body()
            )
        if path.endswith("/configuration"):
            return httpx.Response(self.config_status, json=self.config)
        if path.endswith("/frame"):
            self.frames.append(extract_frame(request))
            return httpx.Response(self.frame_status)
        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def extract_frame(request: httpx.Request) -> bytes:
    """Pull the 'frame' part out of a multipart body."""
    content_type = request.headers["content-type"]
    assert content_type.startswith("multipart/form-data")
    boundary = content_type.split("boundary=")[1].encode()

    for part in request.content.split(b"--" + boundary):
        head, _, body = part.partition(b"\r\n\r\n")
        if b'name="frame"' in head:
            return body[: -len(b"\r\n")]
    raise AssertionError("no frame part in request")


def send(network, source, endpoint=DISPLAY, repository=None):
    return asyncio.run(
        send_image_to_display(
            endpoint, source, repository=repository, transport=network.transport
        )
    )


def test_send_uploaded_bytes():
    network = FakeNetwork()
    result = send(network, FrameSource(data=make_image(32, 32)))

    assert result.success is True
    assert result.error is None
    assert result.warning is None
    assert len(network.frames) == 1
    assert len(network.frames[0]) == 64 * 32 * 4


def test_send_stored_image(repository):
    _, stored, _ = repository.store(make_image(20, 20, (9, 8, 7)), "image/png")
    network = FakeNetwork(config={"width": 4, "height": 2})

    result = send(network, FrameSource(image_id=stored.id), repository=repository)

    assert result.success is True
    assert network.frames[0] == bytes([9, 8, 7, 255]) * 8


def test_send_stored_image_not_found(repository):
    network = FakeNetwork()
    result = send(network, FrameSource(image_id="missing"), repository=repository)

    assert result.success is False
    assert result.error == "Image not found"
    assert network.frames == []


def test_send_remote_image():
    network = FakeNetwork(image=make_image(100, 100))
    result = send(network, FrameSource(url=IMAGE_URL))

    assert result.success is True
    assert IMAGE_URL in network.requests


def test_invalid_display_dimensions_stop_before_frame():
    network = FakeNetwork(config={"width": -1, "height": 64})
    sender = FrameSender(DISPLAY, transport=network.transport)

    result = asyncio.run(sender.send(FrameSource(data=make_image(8, 8))))

    assert result.success is False
    assert result.error.startswith("Invalid display dimensions")
    assert sender.failed_stage == TransmissionStage.FETCH_CONFIG
    assert sender.stage == TransmissionStage.FAILED
    assert network.frames == []


@pytest.mark.parametrize(
    "config",
    [{"width": 0, "height": 10}, {"width": 2000, "height": 10}, {"width": "64"}, []],
)
def test_rejected_configurations(config):
    network = FakeNetwork(config=config)
    result = send(network, FrameSource(data=make_image(8, 8)))
    assert result.error.startswith("Invalid display dimensions")


def test_config_http_error():
    network = FakeNetwork(config_status=500)
    result = send(network, FrameSource(data=make_image(8, 8)))
    assert result.error == "Failed to get display config: 500"


def test_advertised_oversize_image_is_not_downloaded():
    network = FakeNetwork(
        image=b"tiny",
        image_headers={"Content-Length": str(60 * 1024 * 1024)},
    )
    result = send(network, FrameSource(url=IMAGE_URL))

    assert result.success is False
    assert result.error.startswith("Image too large")
    assert network.body_consumed is False
    assert network.frames == []


def test_oversize_source_succeeds_with_warning():
    network = FakeNetwork(config={"width": 64, "height": 32})
    result = send(network, FrameSource(data=make_image(1920, 1080)))

    assert result.success is True
    assert "1920x1080" in result.warning
    assert "256x256" in result.warning
    assert len(network.frames[0]) == 64 * 32 * 4


@pytest.mark.parametrize("stage", ["/configuration", "/frame", "/picture.png"])
def test_timeouts_are_reported_uniformly(stage):
    network = FakeNetwork(image=make_image(8, 8), timeout_on=stage)
    result = send(network, FrameSource(url=IMAGE_URL))

    assert result.success is False
    assert result.error == "Request timed out after 15 seconds"


def test_trailing_slashes_are_normalized():
    network = FakeNetwork()
    send(network, FrameSource(data=make_image(8, 8)), endpoint=DISPLAY + "//")

    assert network.requests == [
        "http://display.local/configuration",
        "http://display.local/frame",
    ]


def test_undecodable_source_fails_at_transcode():
    network = FakeNetwork()
    sender = FrameSender(DISPLAY, transport=network.transport)

    result = asyncio.run(sender.send(FrameSource(data=b"\x89PNG")))

    assert result.success is False
    assert sender.failed_stage == TransmissionStage.TRANSCODE
    assert network.frames == []


def test_frame_post_error():
    network = FakeNetwork(frame_status=503)
    result = send(network, FrameSource(data=make_image(8, 8)))
    assert result.error == "Failed to send frame: 503"


def test_display_client_control_timeout_message():
    network = FakeNetwork(timeout_on="/configuration")
    client = DisplayClient(DISPLAY, timeout=10, transport=network.transport)

    success, config, error = asyncio.run(client.get_configuration())
    assert not success
    assert error == "Request timed out after 10 seconds"


def test_fetch_remote_image_streams_past_limit():
    network = FakeNetwork(image=b"x" * 2048)

    async def fetch():
        async with httpx.AsyncClient(transport=network.transport) as client:
            return await fetch_remote_image(client, IMAGE_URL, max_bytes=1024)

    with pytest.raises(ValueError, match="Image too large"):
        asyncio.run(fetch())


def test_oversize_warning_threshold():
    assert oversize_warning(256, 256) is None
    assert oversize_warning(257, 10) is not None
