"""
Image repository - content-addressed storage of image blobs.

Images are deduplicated by the SHA-256 of their bytes. Every database call
goes through ``with_retry`` and every failure leaves this module as a
``StoreError``; SQLAlchemy and driver exceptions are never raised to callers.
"""

import hashlib
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple, TypeVar

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from ledpanel import imaging
from ledpanel.constants import (
    DEFAULT_LIST_LIMIT,
    MAX_LIST_LIMIT,
    RETRY_BASE_DELAY,
    RETRY_MAX_ATTEMPTS,
)
from ledpanel.database import with_retry
from ledpanel.db_models import Image
from ledpanel.errors import (
    ErrorCode,
    ImageProcessingError,
    StoreError,
    classify_error,
)
from ledpanel.models import ImageMetadata, StoredImage, StoreImageResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Dialects supporting INSERT ... ON CONFLICT DO NOTHING RETURNING
_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def content_hash(data: bytes) -> str:
    """SHA-256 hex digest used as the deduplication key."""
    return hashlib.sha256(data).hexdigest()


def clamp_pagination(limit: Optional[int], offset: Optional[int]) -> Tuple[int, int]:
    """Clamp limit to [1, 100] and offset to >= 0."""
    raw_limit = DEFAULT_LIST_LIMIT if limit is None else int(limit)
    raw_offset = 0 if offset is None else int(offset)
    return min(MAX_LIST_LIMIT, max(1, raw_limit)), max(0, raw_offset)


class ImageRepository:
    """Deduplicated persistence and retrieval of images."""

    def __init__(
        self,
        session: Session,
        max_attempts: int = RETRY_MAX_ATTEMPTS,
        base_delay: float = RETRY_BASE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            session: SQLAlchemy session owned by the caller.
            max_attempts: Attempt budget for transient database errors.
            base_delay: Backoff delay in seconds before the first retry.
            sleep: Blocking sleep used between retries.
        """
        self.session = session
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.sleep = sleep

    def _retry(self, operation: Callable[[], T]) -> T:
        """Run a database operation with rollback on failure and retry."""

        def attempt() -> T:
            try:
                return operation()
            except Exception:
                self.session.rollback()
                raise

        return with_retry(
            attempt,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            sleep=self.sleep,
        )

    def _find_id_by_hash(self, digest: str) -> Optional[str]:
        return self.session.execute(
            select(Image.image_id).where(Image.content_hash == digest)
        ).scalar_one_or_none()

    def _insert_if_absent(self, values: dict) -> Optional[str]:
        """Insert a row unless the hash exists; returns the new id or None."""
        dialect = self.session.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            raise NotImplementedError(f"Unsupported database dialect: {dialect}")

        stmt = (
            insert(Image)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["content_hash"])
            .returning(Image.image_id)
        )
        inserted = self.session.execute(stmt).scalar_one_or_none()
        self.session.commit()
        return inserted

    def _save_thumbnail(self, image_id: str, thumb: bytes) -> None:
        # Only fills an empty slot; a cached thumbnail is never replaced
        self.session.execute(
            update(Image)
            .where(Image.image_id == image_id)
            .where(Image.thumbnail.is_(None))
            .values(thumbnail=thumb)
        )
        self.session.commit()

    def _load_data(self, image_id: str) -> Optional[bytes]:
        return self.session.execute(
            select(Image.data).where(Image.image_id == image_id)
        ).scalar_one_or_none()

    def store(
        self,
        data: bytes,
        mime_type: str,
        original_url: Optional[str] = None,
    ) -> Tuple[bool, Optional[StoreImageResponse], Optional[StoreError]]:
        """
        Store an image, or resolve to the existing row with the same bytes.

        Safe to call concurrently with identical content: the unique hash
        constraint plus insert-or-do-nothing and a re-query guarantee that
        every caller ends up with the same id.

        Args:
            data: Original image bytes.
            mime_type: Content type declared at ingest.
            original_url: Optional provenance URL.

        Returns:
            Tuple of (success, {id, is_new}, error)
        """
        digest = content_hash(data)

        try:
            existing = self._retry(lambda: self._find_id_by_hash(digest))
            if existing:
                return True, StoreImageResponse(id=existing, is_new=False), None

            values = {
                "image_id": str(uuid.uuid4()),
                "content_hash": digest,
                "original_url": original_url,
                "mime_type": mime_type,
                "data": data,
                "thumbnail": imaging.thumbnail(data),
                "created_at": datetime.now(timezone.utc),
            }
            inserted = self._retry(lambda: self._insert_if_absent(values))
            if inserted:
                logger.info(f"Stored image {inserted} ({len(data)} bytes)")
                return True, StoreImageResponse(id=inserted, is_new=True), None

            # Another writer won the race for this hash
            winner = self._retry(lambda: self._find_id_by_hash(digest))
            if winner:
                return True, StoreImageResponse(id=winner, is_new=False), None

            logger.error(
                f"[store_image] Insert suppressed but no row for hash {digest}"
            )
            return (
                False,
                None,
                StoreError(
                    code=ErrorCode.INSERT_FAILED,
                    message="Failed to store image",
                    status=500,
                ),
            )
        except Exception as e:
            return False, None, classify_error(e, "store_image")

    def get(
        self, image_id: str
    ) -> Tuple[bool, Optional[StoredImage], Optional[StoreError]]:
        """
        Fetch a full image by id.

        Returns:
            Tuple of (success, image or None when absent, error)
        """
        try:
            image = self._retry(
                lambda: self.session.execute(
                    select(Image).where(Image.image_id == image_id)
                ).scalar_one_or_none()
            )
        except Exception as e:
            return False, None, classify_error(e, "get_image")

        if image is None:
            return True, None, None

        return (
            True,
            StoredImage(
                id=image.image_id,
                content_hash=image.content_hash,
                original_url=image.original_url,
                mime_type=image.mime_type,
                data=bytes(image.data),
                created_at=image.created_at,
            ),
            None,
        )

    def list_images(
        self,
        limit: Optional[int] = DEFAULT_LIST_LIMIT,
        offset: Optional[int] = 0,
    ) -> Tuple[bool, List[ImageMetadata], Optional[StoreError]]:
        """
        List image metadata, newest first.

        Blob and thumbnail payloads are never selected. ``limit`` is clamped
        to [1, 100] and ``offset`` to >= 0 whatever the caller passes.

        Returns:
            Tuple of (success, metadata list, error)
        """
        limit, offset = clamp_pagination(limit, offset)
        stmt = (
            select(
                Image.image_id,
                Image.content_hash,
                Image.original_url,
                Image.mime_type,
                Image.created_at,
                Image.thumbnail.is_not(None).label("has_thumbnail"),
            )
            .order_by(Image.created_at.desc(), Image.id.desc())
            .limit(limit)
            .offset(offset)
        )

        try:
            rows = self._retry(lambda: self.session.execute(stmt).all())
        except Exception as e:
            return False, [], classify_error(e, "list_images")

        return (
            True,
            [
                ImageMetadata(
                    id=row.image_id,
                    content_hash=row.content_hash,
                    original_url=row.original_url,
                    mime_type=row.mime_type,
                    created_at=row.created_at,
                    has_thumbnail=bool(row.has_thumbnail),
                )
                for row in rows
            ],
            None,
        )

    def get_thumbnail(
        self, image_id: str
    ) -> Tuple[bool, Optional[bytes], Optional[StoreError]]:
        """
        Return the cached thumbnail, generating and caching it if missing.

        Concurrent callers may both regenerate a missing thumbnail; only the
        first write is kept. A source that cannot be thumbnailed yields None.

        Returns:
            Tuple of (success, thumbnail bytes or None, error)
        """
        try:
            row = self._retry(
                lambda: self.session.execute(
                    select(Image.thumbnail).where(Image.image_id == image_id)
                ).first()
            )
            if row is None:
                return True, None, None
            if row.thumbnail is not None:
                return True, bytes(row.thumbnail), None

            data = self._retry(lambda: self._load_data(image_id))
        except Exception as e:
            return False, None, classify_error(e, "get_thumbnail")

        if data is None:
            return True, None, None

        thumb = imaging.thumbnail(bytes(data))
        if thumb is None:
            return True, None, None

        try:
            self._retry(lambda: self._save_thumbnail(image_id, thumb))
        except Exception as e:
            logger.warning(f"Failed to cache thumbnail for image {image_id}: {e}")

        return True, thumb, None

    def get_preview(
        self, image_id: str, width: int, height: int
    ) -> Tuple[bool, Optional[bytes], Optional[StoreError]]:
        """
        Render a cover-cropped preview at the requested size.

        Previews are computed on every call and never stored.

        Raises:
            DimensionError: width or height outside [1, 1024]; raised
                before the database is touched.

        Returns:
            Tuple of (success, preview bytes, error)
        """
        imaging.validate_dimensions(width, height)

        try:
            data = self._retry(lambda: self._load_data(image_id))
        except Exception as e:
            return False, None, classify_error(e, "get_preview")

        if data is None:
            return (
                False,
                None,
                StoreError(
                    code=ErrorCode.NOT_FOUND,
                    message="Image not found",
                    status=404,
                ),
            )

        try:
            return True, imaging.preview(bytes(data), width, height), None
        except ImageProcessingError as e:
            logger.error(f"[get_preview] {e}")
            return (
                False,
                None,
                StoreError(
                    code=ErrorCode.PROCESSING_ERROR,
                    message="Failed to process image",
                    status=500,
                ),
            )
