"""
Shared limits for image storage and frame delivery.
"""

# Upload ceiling for browser-originated uploads (10MB)
MAX_UPLOAD_BYTES = 10 * 1024 * 1024

# Ceiling for images fetched from a remote URL (50MB)
MAX_REMOTE_IMAGE_BYTES = 50 * 1024 * 1024

ALLOWED_MIME_TYPES = (
    "image/png",
    "image/jpeg",
    "image/gif",
    "image/webp",
    "image/bmp",
)

# Display / preview geometry bounds
MIN_DIMENSION = 1
MAX_DIMENSION = 1024

# Sources larger than this still render but carry a warning
RECOMMENDED_MAX_WIDTH = 256
RECOMMENDED_MAX_HEIGHT = 256

THUMBNAIL_SIZE = 64
THUMBNAIL_QUALITY = 80
PREVIEW_QUALITY = 90

# Listing
DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 100

# Network timeouts in seconds
DEVICE_TIMEOUT = 15.0
CONTROL_TIMEOUT = 10.0

# Retry policy for transient storage failures
RETRY_MAX_ATTEMPTS = 3
RETRY_BASE_DELAY = 0.1

BYTES_PER_PIXEL = 4
