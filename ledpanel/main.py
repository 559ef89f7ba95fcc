"""
LED Panel - image store and frame delivery for LED matrix displays

Stores uploaded and fetched images deduplicated by content hash, renders
thumbnails and previews, and pushes raw RGBA frames to networked LED
matrix displays.
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

# Load environment variables
load_dotenv()

from ledpanel import __version__
from ledpanel.database import init_db
from ledpanel.routers import display_router, images_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup: Initialize database tables
    init_db()
    yield


app = FastAPI(
    title="LED Panel API",
    version=__version__,
    description="""
Image store and frame delivery for networked LED matrix displays.
Images are deduplicated by content hash; frames are resized to each
display's exact geometry and sent as raw RGBA.
    """,
    lifespan=lifespan,
)

# Include routers
app.include_router(images_router)
app.include_router(display_router)


@app.get("/health", tags=["Health"])
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    debug = os.getenv("DEBUG", "true").lower() == "true"

    uvicorn.run("ledpanel.main:app", host=host, port=port, reload=debug)
