"""
SQLAlchemy ORM models for the image store.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, LargeBinary, String, Text

from ledpanel.database import Base


class Image(Base):
    """
    Stored image, deduplicated by SHA-256 of its bytes.

    ``data`` is written once at insert. ``thumbnail`` is filled lazily and
    only ever goes from NULL to a value.
    """

    __tablename__ = "images"
    __table_args__ = (Index("images_created_at_idx", "created_at"),)

    id = Column(Integer, primary_key=True, index=True)
    image_id = Column(
        String(36),
        unique=True,
        nullable=False,
        index=True,
        default=lambda: str(uuid.uuid4()),
    )
    content_hash = Column(String(64), unique=True, nullable=False)
    original_url = Column(Text, nullable=True)
    mime_type = Column(String(100), nullable=False)

    # Image data
    data = Column(LargeBinary, nullable=False)
    thumbnail = Column(LargeBinary, nullable=True)

    # Timestamps
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
