"""
Application Configuration Module

Centralizes all configuration using environment variables with Pydantic Settings.
Supports two families of modes:
    - DEVELOPMENT: Uses the in-memory mock backend (no Supabase project needed)
    - STAGING / PRODUCTION: Uses the hosted Supabase project

The ENV_MODE variable controls which backend client is instantiated
throughout the application, enabling seamless switching between local
testing and production deployment.

Usage:
    from oona.core.config import get_settings

    settings = get_settings()
    if settings.is_development:
        # Use the mock backend
    else:
        # Use Supabase

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
import sys
from enum import Enum
from typing import Optional
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentMode(str, Enum):
    """
    Application environment modes.

    Attributes:
        DEVELOPMENT: Local testing with the mock backend
        PRODUCTION: Live environment backed by Supabase
        STAGING: Pre-production Supabase project
    """
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    STAGING = "staging"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    Sensitive values (Supabase keys) should NEVER be committed to version control.

    Attributes:
        env_mode: Current environment (development/production/staging)
        debug: Enable verbose logging and error details

        # Backend
        supabase_url: Supabase project URL
        supabase_key: Supabase anon or service key

        # Storage
        storage_bucket: Bucket holding menu images
        max_image_bytes: Upload ceiling for menu images

        # Dashboard
        refresh_settle_seconds: Delay before the reconciling refetch
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================

    env_mode: EnvironmentMode = Field(
        default=EnvironmentMode.DEVELOPMENT,
        description="Application environment mode"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging"
    )

    # ==========================================================================
    # APPLICATION
    # ==========================================================================

    app_name: str = Field(
        default="OONA Table Ordering",
        description="Application display name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8001,
        description="API server port"
    )
    app_base_url: str = Field(
        default="http://localhost:8001",
        description="Base URL for the application"
    )

    # ==========================================================================
    # SUPABASE
    # ==========================================================================

    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (https://<ref>.supabase.co)"
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase API key"
    )

    # ==========================================================================
    # FILE STORAGE
    # ==========================================================================

    storage_bucket: str = Field(
        default="menu-images",
        description="Storage bucket for menu item images"
    )
    storage_folder: str = Field(
        default="menu-items",
        description="Folder inside the bucket for uploaded images"
    )
    max_image_bytes: int = Field(
        default=5 * 1024 * 1024,
        description="Maximum accepted image size in bytes"
    )

    # ==========================================================================
    # DASHBOARD
    # ==========================================================================

    refresh_settle_seconds: float = Field(
        default=0.1,
        ge=0,
        description="Delay before refetching after a successful status change"
    )
    sse_keepalive_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Interval between keep-alive comments on the dashboard stream"
    )

    # ==========================================================================
    # SESSIONS & ADMIN
    # ==========================================================================

    session_cookie_name: str = Field(
        default="oona_session",
        description="Cookie carrying the browsing session id"
    )
    session_idle_minutes: int = Field(
        default=240,
        ge=1,
        description="Minutes after which an idle browsing session is dropped"
    )
    admin_email: str = Field(
        default="admin@oona.local",
        description="Staff login accepted by the mock backend"
    )
    admin_password: str = Field(
        default="admin123",
        description="Staff password accepted by the mock backend"
    )

    # ==========================================================================
    # BUSINESS CONFIGURATION
    # ==========================================================================

    restaurant_name: str = Field(
        default="OONA",
        description="Restaurant display name"
    )
    restaurant_tagline: str = Field(
        default="The One Restaurant - Authentic Flavors, Unforgettable Experience",
        description="Subtitle shown on the menu page"
    )
    currency_symbol: str = Field(
        default="₹",
        description="Currency symbol used when rendering prices"
    )
    seed_sample_menu: bool = Field(
        default=True,
        description="Populate the mock backend with a sample menu"
    )

    # ==========================================================================
    # VALIDATORS
    # ==========================================================================

    @field_validator("env_mode", mode="before")
    @classmethod
    def validate_env_mode(cls, v: str) -> EnvironmentMode:
        """Convert string to EnvironmentMode enum."""
        if isinstance(v, EnvironmentMode):
            return v
        try:
            return EnvironmentMode(v.lower())
        except ValueError:
            valid = [e.value for e in EnvironmentMode]
            raise ValueError(f"Invalid env_mode. Must be one of: {valid}")

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.env_mode == EnvironmentMode.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.env_mode == EnvironmentMode.PRODUCTION

    @property
    def is_staging(self) -> bool:
        """Check if running in staging mode."""
        return self.env_mode == EnvironmentMode.STAGING

    @property
    def use_real_services(self) -> bool:
        """Check if the hosted backend should be used."""
        return self.env_mode in (EnvironmentMode.PRODUCTION, EnvironmentMode.STAGING)

    # ==========================================================================
    # VALIDATION METHODS
    # ==========================================================================

    def validate_production_config(self) -> list[str]:
        """
        Validate that all required production settings are configured.

        Returns:
            List of missing configuration keys (empty if all present)
        """
        missing = []

        if self.use_real_services:
            if not self.supabase_url:
                missing.append("SUPABASE_URL")
            if not self.supabase_key:
                missing.append("SUPABASE_KEY")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are loaded only once,
    keeping configuration consistent across the application lifecycle.

    Returns:
        Settings: Configured application settings

    Example:
        >>> settings = get_settings()
        >>> print(settings.env_mode)
        EnvironmentMode.DEVELOPMENT
    """
    return Settings()


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured package logger
    """
    settings = get_settings()

    if settings.debug:
        level = logging.DEBUG

    log_format = "%(asctime)s │ %(levelname)-8s │ %(name)-25s │ %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=date_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("hpack").setLevel(logging.WARNING)
    logging.getLogger("realtime").setLevel(logging.WARNING)

    return logging.getLogger("oona")
