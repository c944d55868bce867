"""
MemeMe Backend - Main Application Entry Point.

This FastAPI application hosts meme editing sessions. Each session is one
editing screen:
1. The client picks a photo from the camera or library
2. The client edits the top and bottom captions
3. The backend flattens photo and captions into a single PNG
4. The client shares it and reports back; completed shares are kept

Only the compositing and the session state live here; the picker and the
share sheet stay on the client.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mememe.config import get_settings
from mememe.routes.meme import router as meme_router
from mememe.services.session import get_session_manager

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

# Configure logging format
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Handles startup and shutdown events.
    """
    # Startup
    settings = get_settings()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    # Log configuration status
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info(f"Surface: {settings.SURFACE_WIDTH}x{settings.SURFACE_HEIGHT}")
    logger.info(f"Camera available: {settings.CAMERA_AVAILABLE}")
    logger.info(f"Photo library available: {settings.PHOTO_LIBRARY_AVAILABLE}")
    logger.info(f"Persist on share: {settings.PERSIST_ON_SHARE}")
    logger.info(f"CORS origins: {settings.cors_origins_list}")

    # Warn about missing configuration
    if not settings.FONT_PATH:
        logger.warning(
            "FONT_PATH is not configured. "
            "Captions will use the first system font found, or Pillow's default font."
        )
    if not (settings.CAMERA_AVAILABLE or settings.PHOTO_LIBRARY_AVAILABLE):
        logger.warning(
            "Neither CAMERA_AVAILABLE nor PHOTO_LIBRARY_AVAILABLE is set. "
            "Clients will not be able to pick images."
        )

    logger.info("Application startup complete")

    yield

    # Shutdown
    get_session_manager().close_all()
    logger.info("Application shutdown")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

# Get settings for app configuration
settings = get_settings()

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
## MemeMe Backend

This API hosts meme editing sessions and flattens captioned photos.

### Flow

1. **Client** opens a session (`POST /api/v1/sessions`)
2. **Client** picks a photo and sends it (`POST /api/v1/sessions/{id}/pick`)
3. **Client** edits the TOP and BOTTOM captions
4. **Backend** renders the meme for the share sheet (`POST /api/v1/sessions/{id}/share`)
5. **Client** reports the share result (`POST /api/v1/sessions/{id}/share/complete`)

### Key Endpoints

- `POST /api/v1/sessions` - Open an editing session
- `POST /api/v1/sessions/{id}/render` - Render the meme
- `GET /api/v1/memes` - Shared memes
- `GET /api/v1/health` - Health check
- `GET /api/v1/health/ready` - Readiness check
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


# =============================================================================
# MIDDLEWARE
# =============================================================================

# Add CORS middleware to allow frontend requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# ROUTES
# =============================================================================

# Include the meme router
app.include_router(meme_router)


# Root endpoint
@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint - points to API documentation."""
    return {
        "message": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "health": "/api/v1/health",
    }


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    # Run the application with uvicorn
    # In production, use: uvicorn mememe.main:app --host 0.0.0.0 --port 8000
    uvicorn.run(
        "mememe.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
