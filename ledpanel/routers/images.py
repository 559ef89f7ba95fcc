"""
Image routes - upload, import, browse and render stored images
"""

import logging
from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile
from starlette.concurrency import run_in_threadpool

from ledpanel.constants import ALLOWED_MIME_TYPES, DEVICE_TIMEOUT, MAX_UPLOAD_BYTES
from ledpanel.dependencies import (
    get_http_transport,
    get_image_repository,
    raise_store_error,
)
from ledpanel.errors import DimensionError, ImageTooLargeError, RemoteFetchError
from ledpanel.imaging import ENCODED_MIME_TYPE
from ledpanel.models import ImageImportRequest, ImageMetadata, StoreImageResponse
from ledpanel.repository import ImageRepository
from ledpanel.transcoder import fetch_remote_image

router = APIRouter(prefix="/images", tags=["Images"])
logger = logging.getLogger(__name__)


async def read_upload(file: UploadFile) -> bytes:
    """Read an uploaded file, enforcing the type allowlist and size ceiling."""
    if file.content_type not in ALLOWED_MIME_TYPES:
        raise HTTPException(
            status_code=415,
            detail=(
                f"Unsupported image type: {file.content_type}. "
                f"Allowed types: {', '.join(ALLOWED_MIME_TYPES)}"
            ),
        )

    content = await file.read(MAX_UPLOAD_BYTES + 1)
    if not content:
        raise HTTPException(status_code=400, detail="Image data must not be empty")
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"Image data exceeds {MAX_UPLOAD_BYTES // (1024 * 1024)}MB limit",
        )
    return content


def _store_response(
    response: Response, result: StoreImageResponse
) -> StoreImageResponse:
    response.status_code = 201 if result.is_new else 200
    return result


@router.post("", response_model=StoreImageResponse, status_code=201)
async def upload_image(
    response: Response,
    file: UploadFile = File(...),
    repository: ImageRepository = Depends(get_image_repository),
) -> StoreImageResponse:
    """
    Upload an image.

    Identical bytes resolve to the already stored image (200, is_new=false);
    a new image answers 201.
    """
    content = await read_upload(file)
    success, result, error = await run_in_threadpool(
        repository.store, content, file.content_type
    )
    if not success or result is None:
        raise_store_error(error)
    return _store_response(response, result)


@router.post("/import", response_model=StoreImageResponse, status_code=201)
async def import_image(
    request: ImageImportRequest,
    response: Response,
    repository: ImageRepository = Depends(get_image_repository),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
) -> StoreImageResponse:
    """
    Fetch a remote image and store it with its URL as provenance.
    """
    try:
        async with httpx.AsyncClient(
            timeout=DEVICE_TIMEOUT, transport=transport, follow_redirects=True
        ) as client:
            content, content_type = await fetch_remote_image(client, request.url)
    except ImageTooLargeError as e:
        raise HTTPException(status_code=413, detail=str(e))
    except RemoteFetchError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except httpx.TimeoutException:
        raise HTTPException(
            status_code=504,
            detail=f"Request timed out after {DEVICE_TIMEOUT:g} seconds",
        )
    except httpx.RequestError as e:
        raise HTTPException(status_code=502, detail=f"Failed to fetch image: {e}")

    if not content:
        raise HTTPException(status_code=502, detail="Remote image is empty")

    mime_type = content_type or "application/octet-stream"
    if not mime_type.startswith(("image/", "application/")):
        raise HTTPException(
            status_code=415, detail=f"Unsupported content type: {mime_type}"
        )

    success, result, error = await run_in_threadpool(
        repository.store, content, mime_type, request.url
    )
    if not success or result is None:
        raise_store_error(error)
    return _store_response(response, result)


@router.get("", response_model=List[ImageMetadata])
def list_images(
    limit: int = 20,
    offset: int = 0,
    repository: ImageRepository = Depends(get_image_repository),
) -> List[ImageMetadata]:
    """List stored images, newest first. limit is clamped to [1, 100]."""
    success, images, error = repository.list_images(limit=limit, offset=offset)
    if not success:
        raise_store_error(error)
    return images


@router.get("/{image_id}")
def get_image(
    image_id: str,
    repository: ImageRepository = Depends(get_image_repository),
) -> Response:
    """Original image bytes with their stored content type."""
    success, image, error = repository.get(image_id)
    if not success:
        raise_store_error(error)
    if image is None:
        raise HTTPException(status_code=404, detail="Image not found")

    return Response(content=image.data, media_type=image.mime_type)


@router.get("/{image_id}/thumbnail")
def get_thumbnail(
    image_id: str,
    repository: ImageRepository = Depends(get_image_repository),
) -> Response:
    success, thumb, error = repository.get_thumbnail(image_id)
    if not success:
        raise_store_error(error)
    if thumb is None:
        raise HTTPException(status_code=404, detail="Thumbnail not available")

    return Response(
        content=thumb,
        media_type=ENCODED_MIME_TYPE,
        headers={"Cache-Control": "public, max-age=86400, immutable"},
    )


@router.get("/{image_id}/preview")
def get_preview(
    image_id: str,
    width: int,
    height: int,
    repository: ImageRepository = Depends(get_image_repository),
) -> Response:
    """Cover-cropped preview at exactly width x height (1..1024 each)."""
    try:
        success, preview, error = repository.get_preview(image_id, width, height)
    except DimensionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not success or preview is None:
        raise_store_error(error)

    return Response(content=preview, media_type=ENCODED_MIME_TYPE)
