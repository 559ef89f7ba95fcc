"""
Shared FastAPI dependencies
"""

from typing import NoReturn, Optional

import httpx
from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from ledpanel.database import get_db
from ledpanel.errors import StoreError
from ledpanel.repository import ImageRepository


def get_image_repository(db: Session = Depends(get_db)) -> ImageRepository:
    """Image repository bound to the request's database session."""
    return ImageRepository(db)


def get_http_transport() -> Optional[httpx.AsyncBaseTransport]:
    """
    Transport for outbound HTTP calls.

    None selects httpx's default network transport. Tests override this
    dependency with an ``httpx.MockTransport``.
    """
    return None


def raise_store_error(error: Optional[StoreError]) -> NoReturn:
    """Translate a repository error into an HTTP error response."""
    if error is None:
        raise HTTPException(status_code=500, detail="Unknown storage error")
    raise HTTPException(
        status_code=error.status,
        detail={"code": error.code.value, "message": error.message},
    )
