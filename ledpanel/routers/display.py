"""
Display routes - send images to LED matrix displays
"""

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from ledpanel.constants import CONTROL_TIMEOUT
from ledpanel.dependencies import get_http_transport, get_image_repository
from ledpanel.models import (
    DisplayConfiguration,
    FrameSource,
    SendImageRequest,
    SendImageResult,
    validate_http_url,
)
from ledpanel.repository import ImageRepository
from ledpanel.routers.images import read_upload
from ledpanel.transmission import DisplayClient, send_image_to_display

router = APIRouter(prefix="/display", tags=["Display"])
logger = logging.getLogger(__name__)


def _endpoint(endpoint_url: str) -> str:
    try:
        return validate_http_url(endpoint_url)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid endpoint URL: {e}")


@router.get("/configuration", response_model=DisplayConfiguration)
async def get_display_configuration(
    endpoint_url: str,
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
) -> DisplayConfiguration:
    """
    Fetch a display's geometry.

    Proxied through the server so browsers are not subject to CORS.
    """
    client = DisplayClient(
        _endpoint(endpoint_url), timeout=CONTROL_TIMEOUT, transport=transport
    )
    success, config, error = await client.get_configuration()
    if not success or config is None:
        raise HTTPException(status_code=502, detail=error)
    return config


@router.post("/send", response_model=SendImageResult)
async def send_image(
    request: SendImageRequest,
    repository: ImageRepository = Depends(get_image_repository),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
) -> SendImageResult:
    """
    Send a stored image (image_id) or a remote image (image_url) to a display.
    """
    source = FrameSource(image_id=request.image_id, url=request.image_url)
    return await send_image_to_display(
        request.endpoint_url,
        source,
        repository=repository,
        transport=transport,
    )


@router.post("/send-upload", response_model=SendImageResult)
async def send_uploaded_image(
    endpoint_url: str = Form(...),
    file: UploadFile = File(...),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
) -> SendImageResult:
    """Send an uploaded image straight to a display without storing it."""
    endpoint = _endpoint(endpoint_url)
    content = await read_upload(file)
    return await send_image_to_display(
        endpoint, FrameSource(data=content), transport=transport
    )
