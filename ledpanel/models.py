"""
Pydantic models for the image store and display API.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator


def validate_http_url(url: str) -> str:
    """Accept only http:// and https:// URLs."""
    trimmed = url.strip()
    if not trimmed:
        raise ValueError("URL is required")
    parsed = urlparse(trimmed)
    if parsed.scheme.lower() not in ("http", "https"):
        raise ValueError("URL must use http:// or https://")
    if not parsed.netloc:
        raise ValueError("Invalid URL format")
    return trimmed


# Enums
class TransmissionStage(str, Enum):
    FETCH_CONFIG = "FETCH_CONFIG"
    FETCH_SOURCE = "FETCH_SOURCE"
    TRANSCODE = "TRANSCODE"
    POST_FRAME = "POST_FRAME"
    DONE = "DONE"
    FAILED = "FAILED"


# Image Models
class StoreImageResponse(BaseModel):
    id: str
    is_new: bool


class ImageImportRequest(BaseModel):
    url: str = Field(description="Remote image URL (http or https)")

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return validate_http_url(value)


class ImageMetadata(BaseModel):
    """Listing entry; never carries the image or thumbnail payload."""

    id: str
    content_hash: str
    original_url: Optional[str] = None
    mime_type: str
    created_at: datetime
    has_thumbnail: bool = False


class StoredImage(BaseModel):
    """Full image record including the original bytes."""

    id: str
    content_hash: str
    original_url: Optional[str] = None
    mime_type: str
    data: bytes
    created_at: datetime


# Frame Models
class FrameSource(BaseModel):
    """Where a frame comes from: a stored image, uploaded bytes or a URL."""

    image_id: Optional[str] = None
    data: Optional[bytes] = None
    url: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "FrameSource":
        given = [v for v in (self.image_id, self.data, self.url) if v is not None]
        if len(given) != 1:
            raise ValueError("Provide exactly one of image_id, data or url")
        return self


# Display Models
class DisplayConfiguration(BaseModel):
    width: int
    height: int


class SendImageRequest(BaseModel):
    """
    Send an image to a display.

    Exactly one of ``image_id`` (stored image) or ``image_url`` (remote
    image) must be given.
    """

    endpoint_url: str = Field(description="Base URL of the display bridge")
    image_id: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("endpoint_url")
    @classmethod
    def _check_endpoint_url(cls, value: str) -> str:
        return validate_http_url(value)

    @field_validator("image_url")
    @classmethod
    def _check_image_url(cls, value: Optional[str]) -> Optional[str]:
        return validate_http_url(value) if value is not None else None

    @model_validator(mode="after")
    def _one_source(self) -> "SendImageRequest":
        if (self.image_id is None) == (self.image_url is None):
            raise ValueError("Provide exactly one of image_id or image_url")
        return self


class SendImageResult(BaseModel):
    success: bool
    error: Optional[str] = None
    warning: Optional[str] = None
