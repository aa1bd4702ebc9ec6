"""
FastAPI Application Entry Point

OONA Table Ordering - customers order from their table, staff run the
kitchen from a live dashboard.
Uses an in-memory mock backend in development and Supabase otherwise.

Endpoints:
    - GET /menu ...: Customer menu, cart and checkout (oona.routers.menu)
    - GET /admin ...: Staff login, dashboard, menu management (oona.routers.admin)
    - GET /api ...: JSON counterparts of the customer pages
    - GET /health: System health check
    - GET /mock-storage/{bucket}/{path}: Mock-stored images (development)

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager, suppress
from datetime import datetime
from urllib.parse import quote

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Internal imports
from oona.core.config import get_settings, setup_logging
from oona.deps import LoginRequired, get_backend
from oona.routers import admin, menu
from oona.schemas import HealthResponse
from oona.services.backend import BaseBackendService, MockBackendService, get_backend_service
from oona.state.sessions import SessionRegistry

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

SESSION_PRUNE_INTERVAL_SECONDS = 300


async def _prune_sessions_forever(registry: SessionRegistry) -> None:
    while True:
        await asyncio.sleep(SESSION_PRUNE_INTERVAL_SECONDS)
        await registry.prune()


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    # Validate production config before the backend client is built
    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    registry = getattr(app.state, "sessions", None)
    if registry is None:
        registry = SessionRegistry(get_backend_service())
        app.state.sessions = registry
    logger.info(f"✅ Backend Service: {registry.backend.provider_name}")

    pruner = asyncio.create_task(_prune_sessions_forever(registry))

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    pruner.cancel()
    with suppress(asyncio.CancelledError):
        await pruner
    await registry.close()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Table ordering for a single restaurant: menu browsing, cart and "
        "checkout for guests, plus a live order dashboard for staff."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def session_cookie(request: Request, call_next):
    """(Re)issue the browsing session cookie chosen during the request."""
    response = await call_next(request)
    session_id = getattr(request.state, "session_id", None)
    cookie_name = settings.session_cookie_name
    if session_id and request.cookies.get(cookie_name) != session_id:
        response.set_cookie(
            cookie_name,
            session_id,
            max_age=settings.session_idle_minutes * 60,
            httponly=True,
            samesite="lax",
            secure=settings.is_production,
        )
    return response


app.include_router(menu.router)
app.include_router(admin.router)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", include_in_schema=False)
async def root() -> RedirectResponse:
    return RedirectResponse("/menu")


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    backend: BaseBackendService = Depends(get_backend),
) -> HealthResponse:
    """Verify the backend is reachable."""
    healthy = await backend.health_check()
    if not healthy:
        logger.error(f"Backend health check failed ({backend.provider_name})")

    return HealthResponse(
        status="operational" if healthy else "degraded",
        backend="healthy" if healthy else "unhealthy",
        provider=backend.provider_name,
        environment=settings.env_mode.value,
        timestamp=datetime.now(),
    )


if settings.is_development:

    @app.get("/mock-storage/{bucket}/{path:path}", include_in_schema=False)
    async def mock_storage(
        bucket: str,
        path: str,
        backend: BaseBackendService = Depends(get_backend),
    ) -> Response:
        """Serve files held by the in-memory backend."""
        if not isinstance(backend, MockBackendService):
            raise HTTPException(status_code=404, detail="Not found")
        result = await backend.download(bucket, path)
        if not result.success:
            raise HTTPException(status_code=404, detail=result.error_message or "Not found")
        return Response(content=result.content, media_type=result.content_type)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired) -> RedirectResponse:
    return RedirectResponse(f"/admin/login?next={quote(exc.next_url)}", status_code=303)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": message, "detail": str(errors) if settings.debug else None},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("oona.main:app", host=settings.api_host, port=settings.api_port, reload=settings.debug)
