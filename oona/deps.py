"""
Request Dependencies

FastAPI dependencies shared by the routers: the backend client, the
browsing session of the current browser, staff gates, and the template
environment.
"""

import logging
from decimal import Decimal
from pathlib import Path
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.templating import Jinja2Templates

from oona.core.config import get_settings
from oona.services.backend import BaseBackendService, get_backend_service
from oona.state.sessions import BrowsingSession, SessionRegistry

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


class LoginRequired(Exception):
    """Raised by page routes when no valid staff session exists."""

    def __init__(self, next_url: str = "/admin/dashboard"):
        self.next_url = next_url
        super().__init__(next_url)


# =============================================================================
# TEMPLATES
# =============================================================================

def format_money(value) -> str:
    settings = get_settings()
    amount = Decimal(str(value if value is not None else 0))
    return f"{settings.currency_symbol}{amount:,.2f}"


templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.filters["money"] = format_money
templates.env.globals["settings"] = get_settings()


# =============================================================================
# BACKEND & SESSIONS
# =============================================================================

def get_backend() -> BaseBackendService:
    return get_backend_service()


def get_session_registry(
    request: Request,
    backend: BaseBackendService = Depends(get_backend),
) -> SessionRegistry:
    registry: Optional[SessionRegistry] = getattr(request.app.state, "sessions", None)
    if registry is None:
        registry = SessionRegistry(backend)
        request.app.state.sessions = registry
    return registry


def get_browsing_session(
    request: Request,
    registry: SessionRegistry = Depends(get_session_registry),
) -> BrowsingSession:
    """
    Resolve the browsing session from the session cookie.

    The id is left on ``request.state`` so the session middleware can
    (re)issue the cookie on the way out.
    """
    cookie = request.cookies.get(get_settings().session_cookie_name)
    session = registry.get_or_create(cookie)
    request.state.session_id = session.id
    return session


# =============================================================================
# STAFF GATES
# =============================================================================

async def require_staff_page(
    request: Request,
    session: BrowsingSession = Depends(get_browsing_session),
) -> BrowsingSession:
    """Admin HTML pages: redirect to the login page without a session."""
    if await session.auth.current_user() is None:
        raise LoginRequired(next_url=request.url.path)
    return session


async def require_staff_api(
    session: BrowsingSession = Depends(get_browsing_session),
) -> BrowsingSession:
    """Admin JSON endpoints: 401 without a session."""
    if await session.auth.current_user() is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return session
