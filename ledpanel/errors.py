"""
Error taxonomy for the image store and frame pipeline.

Low-level database errors are mapped onto a fixed set of codes at the
storage boundary. Raw driver exceptions never leave this layer.
"""

import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.exc import DBAPIError

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    UNIQUE_VIOLATION = "UNIQUE_VIOLATION"
    FOREIGN_KEY_VIOLATION = "FOREIGN_KEY_VIOLATION"
    NOT_NULL_VIOLATION = "NOT_NULL_VIOLATION"
    CHECK_VIOLATION = "CHECK_VIOLATION"
    STRING_DATA_RIGHT_TRUNCATION = "STRING_DATA_RIGHT_TRUNCATION"
    INVALID_TEXT_REPRESENTATION = "INVALID_TEXT_REPRESENTATION"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    NOT_FOUND = "NOT_FOUND"
    INSERT_FAILED = "INSERT_FAILED"
    PROCESSING_ERROR = "PROCESSING_ERROR"


class StoreError(BaseModel):
    """Typed error returned by repository operations."""

    code: ErrorCode
    message: str
    status: int


# PostgreSQL SQLSTATE -> (code, message, HTTP status)
PG_ERROR_MAP = {
    "23505": (
        ErrorCode.UNIQUE_VIOLATION,
        "A record with this value already exists",
        409,
    ),
    "23503": (
        ErrorCode.FOREIGN_KEY_VIOLATION,
        "Referenced record does not exist",
        400,
    ),
    "23502": (ErrorCode.NOT_NULL_VIOLATION, "Required field is missing", 400),
    "23514": (ErrorCode.CHECK_VIOLATION, "Value violates check constraint", 400),
    "22001": (ErrorCode.STRING_DATA_RIGHT_TRUNCATION, "Value is too long", 400),
    "22P02": (ErrorCode.INVALID_TEXT_REPRESENTATION, "Invalid input format", 400),
}

# Connection loss, server shutdown, serialization and deadlock conflicts
TRANSIENT_ERROR_CODES = frozenset(
    {
        "08000",  # connection_exception
        "08001",  # sqlclient_unable_to_establish_sqlconnection
        "08003",  # connection_does_not_exist
        "08004",  # sqlserver_rejected_establishment_of_sqlconnection
        "08006",  # connection_failure
        "57P01",  # admin_shutdown
        "57P02",  # crash_shutdown
        "57P03",  # cannot_connect_now
        "40001",  # serialization_failure
        "40P01",  # deadlock_detected
    }
)


class DimensionError(ValueError):
    """Requested width/height is outside the supported range."""


class ImageTooLargeError(ValueError):
    """Remote image exceeds the download ceiling."""


class FrameSizeError(RuntimeError):
    """Raw frame buffer length does not match width * height * 4."""


class ImageProcessingError(RuntimeError):
    """Source bytes could not be decoded, resized or encoded."""


class FrameSourceError(RuntimeError):
    """Frame source could not be loaded."""


class RemoteFetchError(FrameSourceError):
    """Remote image could not be downloaded."""


class SourceNotFoundError(LookupError):
    """Stored image referenced by id does not exist."""


def get_error_code(error: BaseException) -> Optional[str]:
    """
    Extract the SQLSTATE code from a database error.

    SQLAlchemy wraps driver errors, so the wrapped DBAPI exception is
    inspected first. psycopg2 exposes ``pgcode``, psycopg 3 ``sqlstate``.
    """
    candidate: object = error
    if isinstance(error, DBAPIError):
        candidate = error.orig

    for attr in ("pgcode", "sqlstate", "code"):
        value = getattr(candidate, attr, None)
        if isinstance(value, str) and value:
            return value
    return None


def is_transient_error(error: BaseException) -> bool:
    """Return True if the error is safe to retry blindly."""
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return True
    code = get_error_code(error)
    return code in TRANSIENT_ERROR_CODES


def classify_error(error: BaseException, context: Optional[str] = None) -> StoreError:
    """
    Map a low-level database error onto the error taxonomy.

    Args:
        error: The exception raised by the database layer.
        context: Label for the operation, used in the log line.

    Returns:
        StoreError with a stable code, user-facing message and HTTP status.
    """
    prefix = f"[{context}]" if context else "[db]"
    code = get_error_code(error)

    if code in PG_ERROR_MAP:
        error_code, message, status = PG_ERROR_MAP[code]
        logger.error(f"{prefix} PostgreSQL error {code}: {error}")
        return StoreError(code=error_code, message=message, status=status)

    if is_transient_error(error):
        logger.error(f"{prefix} Connection error after retries: {error}")
        return StoreError(
            code=ErrorCode.CONNECTION_ERROR,
            message="Database connection error, please try again",
            status=503,
        )

    logger.error(f"{prefix} Unexpected error: {error!r}")
    return StoreError(
        code=ErrorCode.DATABASE_ERROR,
        message="An unexpected database error occurred",
        status=500,
    )
