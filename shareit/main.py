"""
ShareIt - Main FastAPI application.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shareit.config import Settings, settings as default_settings
from shareit.database import ShareDatabase
from shareit.errors import ShareError, handle_broad_exceptions, handle_share_errors
from shareit.expiry import ExpirySweeper
from shareit.routes import health, shares
from shareit.service import ShareService
from shareit.storage import BlobStorage

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def handle_http_errors(request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
    """Plain text errors for unknown paths and methods."""
    if exc.status_code == 404:
        detail = f"Path {request.url.path} not found."
    else:
        detail = str(exc.detail)
    return PlainTextResponse(detail, status_code=exc.status_code, headers=exc.headers)


def create_app(settings: Settings = default_settings) -> FastAPI:
    """Build the application for the given settings."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("ShareIt application starting...")
        db = ShareDatabase.connect(settings.REDIS_URL)
        if db.using_fallback:
            logger.warning("DATABASE: Using IN-MEMORY storage (Redis not available)")
            logger.warning("   Data will NOT persist across server restarts!")
        blobs = BlobStorage(settings.UPLOAD_DIR)
        blobs.ensure_directory()

        app.state.settings = settings
        app.state.db = db
        app.state.shares = ShareService.from_settings(settings, db, blobs)
        # The sweeper gets a connection of its own.
        sweeper = ExpirySweeper(db.clone(), blobs, settings.EXPIRY_CHECK_INTERVAL)
        app.state.sweeper = sweeper
        sweeper.start()
        try:
            yield
        finally:
            logger.info("ShareIt application shutting down...")
            sweeper.stop()
            sweeper.store.close()
            db.close()

    app = FastAPI(
        title="ShareIt",
        description="Short links, pastes and file uploads with optional expiry",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Add CORS middleware so browser frontends can read the share headers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Share-Token", "Share-Type", "Share-Highlighting", "Location"],
    )
    app.middleware("http")(handle_broad_exceptions)
    app.add_exception_handler(ShareError, handle_share_errors)
    app.add_exception_handler(StarletteHTTPException, handle_http_errors)

    # Include route modules
    app.include_router(health.router)
    app.include_router(shares.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "shareit.main:app",
        host="0.0.0.0",
        port=8000,
        reload=default_settings.DEBUG,
    )
