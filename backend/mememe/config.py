"""
Configuration module for the MemeMe Backend.

This module handles all environment variable loading and configuration settings.
Rendering geometry, image source availability and share policy are configured here.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All values can be overridden via environment variables or a .env file.
    """

    # ==========================================================================
    # APPLICATION SETTINGS
    # ==========================================================================

    APP_NAME: str = "MemeMe Backend"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # ==========================================================================
    # RENDERING SETTINGS
    # ==========================================================================

    # Path to a TrueType font for captions. When unset, a list of common
    # condensed/bold system fonts is tried before falling back to Pillow's
    # bundled default font.
    FONT_PATH: Optional[str] = None

    # Size of the presentation frame that gets flattened into the meme.
    # Defaults match a portrait phone screen in points.
    SURFACE_WIDTH: int = 375
    SURFACE_HEIGHT: int = 667

    # Height of the top and bottom toolbars (hidden while rendering)
    TOOLBAR_HEIGHT: int = 44

    # ==========================================================================
    # IMAGE SOURCE SETTINGS
    # ==========================================================================

    # Whether the client may pick from the camera / photo library.
    # Set CAMERA_AVAILABLE=false for deployments whose clients have no camera.
    CAMERA_AVAILABLE: bool = True
    PHOTO_LIBRARY_AVAILABLE: bool = True

    # Largest accepted image payload (decoded bytes)
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # Timeout for fetching a picked image from a URL (in seconds)
    IMAGE_FETCH_TIMEOUT: int = 30

    # ==========================================================================
    # SHARE SETTINGS
    # ==========================================================================

    # Persist a meme snapshot after the client reports a completed share
    PERSIST_ON_SHARE: bool = True

    # Upper bound on concurrently open editing sessions
    MAX_SESSIONS: int = 100

    # Once MAX_SESSIONS is reached, sessions idle this long (in seconds)
    # are closed to make room for new ones
    SESSION_IDLE_TIMEOUT: int = 1800

    # ==========================================================================
    # CORS SETTINGS
    # ==========================================================================

    # Comma separated list of allowed frontend origins
    # Example: "https://your-frontend.com,https://www.your-frontend.com"
    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS string into a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    class Config:
        # Load settings from .env file if it exists
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once
    and reused across the application.

    Returns:
        Settings: The application settings instance
    """
    return Settings()
