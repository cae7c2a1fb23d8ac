"""
Music Box - Main Application

FastAPI application that serves the JSON API for browsing, resolving and
parsing music from the music directory, zip archives and the cloud catalog.

On startup the key-value store is initialised and (if configured) the cloud
catalog is refreshed in the background when its cached copy is stale.
"""

import asyncio
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from loguru import logger

from musicbox.cloud_api import is_configured as cloud_is_configured
from musicbox.config import (
    APP_ENV,
    APP_HOST,
    APP_PORT,
    APP_VERSION,
    CLOUD_REFRESH_ON_STARTUP,
    DEBUG,
    LOG_LEVEL,
    MUSIC_DIR,
    ensure_directories,
)
from musicbox.routes.api import router as api_router
from musicbox.services.library import MusicLibrary

# ---------------------------------------------------------------------------
# Logging setup (stdout only)
# ---------------------------------------------------------------------------
logger.remove()

logger.add(
    sys.stdout,
    level="DEBUG" if DEBUG else LOG_LEVEL,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    colorize=True,
)

_cloud_refresh_task: asyncio.Task[None] | None = None


async def _refresh_cloud_catalog(library: MusicLibrary) -> None:
    result = await library.cloud_source.refresh_catalog()
    if result.success and not result.skipped:
        library.resolver.invalidate_listing_cache()
    elif not result.success:
        logger.warning("⚠️ Startup cloud refresh failed: {}", result.error)


def create_app(library: Optional[MusicLibrary] = None) -> FastAPI:
    """Build the FastAPI app; *library* defaults to one built from config."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        global _cloud_refresh_task

        logger.info("🎵 Music Box v{} starting ({})", APP_VERSION, APP_ENV)
        if library is None:
            ensure_directories()
            app.state.library = MusicLibrary.create()
        else:
            app.state.library = library
        logger.info("📁 Music directory: {}", app.state.library.resolver.music_dir)

        if library is None and CLOUD_REFRESH_ON_STARTUP and cloud_is_configured():
            _cloud_refresh_task = asyncio.create_task(
                _refresh_cloud_catalog(app.state.library)
            )

        yield

        if _cloud_refresh_task is not None and not _cloud_refresh_task.done():
            _cloud_refresh_task.cancel()
        logger.info("👋 Music Box shutting down")

    app = FastAPI(
        title="Music Box",
        version=APP_VERSION,
        debug=DEBUG,
        lifespan=lifespan,
    )
    app.include_router(api_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info("🚀 Serving {} on {}:{}", MUSIC_DIR, APP_HOST, APP_PORT)
    uvicorn.run("musicbox.main:app", host=APP_HOST, port=APP_PORT, reload=DEBUG)
