"""
Backend Service Factory

Provides a single entry point for obtaining the backend client.
The factory pattern allows the rest of the application to remain agnostic
about which implementation is being used.

Usage:
    from oona.services.backend import get_backend_service

    # Returns MockBackendService or SupabaseBackendService based on ENV_MODE
    backend = get_backend_service()

    result = await backend.select("menu_items", order_by="category")

Environment Switching:
    - ENV_MODE=development → MockBackendService (in-memory, seeded menu)
    - ENV_MODE=staging → SupabaseBackendService (staging project)
    - ENV_MODE=production → SupabaseBackendService (live project)

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from functools import lru_cache

from oona.core.config import get_settings
from oona.services.backend.base import (
    AuthResult,
    AuthSession,
    BackendResult,
    BaseBackendService,
    BUCKET_NOT_FOUND,
    ChangeEvent,
    Filter,
    StorageResult,
    Subscription,
)
from oona.services.backend.mock import MockBackendService
from oona.services.backend.supabase import SupabaseBackendService

logger = logging.getLogger(__name__)


@lru_cache()
def get_backend_service() -> BaseBackendService:
    """
    Get the configured backend client instance.

    The instance is cached so every page and the realtime channel share
    one client.

    Returns:
        BaseBackendService: Configured backend client

    Raises:
        ValueError: If production mode but Supabase credentials are missing
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Backend Service: Using MockBackendService (development mode)")
        backend = MockBackendService(
            failure_rate=0.02,  # 2% simulated failures
            min_latency=0.05,
            max_latency=0.2,
        )
        if settings.seed_sample_menu:
            backend.seed_menu()
        return backend

    logger.info(
        f"Backend Service: Using SupabaseBackendService "
        f"({settings.env_mode.value} mode)"
    )
    return SupabaseBackendService()


def reset_backend_service() -> None:
    """
    Clear the cached backend instance.

    Useful for testing or when configuration changes at runtime.
    """
    get_backend_service.cache_clear()
    logger.debug("Backend service cache cleared")


__all__ = [
    "get_backend_service",
    "reset_backend_service",
    "AuthResult",
    "AuthSession",
    "BackendResult",
    "BaseBackendService",
    "BUCKET_NOT_FOUND",
    "ChangeEvent",
    "Filter",
    "MockBackendService",
    "StorageResult",
    "Subscription",
    "SupabaseBackendService",
]
