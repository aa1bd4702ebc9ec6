"""
Browsing Session Registry

One browsing session per browser, identified by a cookie. Each session
owns its cart, its staff auth state and, once a staff member opens the
dashboard, its dashboard controller. Route handlers receive these through
FastAPI dependencies.
"""

import asyncio
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from oona.core.config import get_settings
from oona.pages.dashboard import DashboardPage
from oona.services.backend import BaseBackendService
from oona.state.auth import AuthState
from oona.state.cart import Cart

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return secrets.token_urlsafe(24)


@dataclass
class BrowsingSession:
    id: str
    cart: Cart
    auth: AuthState
    dashboard: Optional[DashboardPage] = None
    notice: Optional[str] = None
    last_seen: datetime = field(default_factory=datetime.now)

    def touch(self) -> None:
        self.last_seen = datetime.now()

    def flash(self, message: str) -> None:
        """Queue a one-time message for the next rendered page."""
        self.notice = message

    def pop_notice(self) -> Optional[str]:
        notice, self.notice = self.notice, None
        return notice


class SessionRegistry:
    """
    In-process store of browsing sessions.

    Attributes:
        idle_timeout: Sessions unseen for longer than this are dropped
    """

    def __init__(self, backend: BaseBackendService, idle_minutes: Optional[int] = None):
        self._backend = backend
        minutes = get_settings().session_idle_minutes if idle_minutes is None else idle_minutes
        self.idle_timeout = timedelta(minutes=minutes)
        self._sessions: dict[str, BrowsingSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    @property
    def backend(self) -> BaseBackendService:
        return self._backend

    def get_or_create(self, session_id: Optional[str]) -> BrowsingSession:
        """Return the session for ``session_id``, or start a new one."""
        session = self._sessions.get(session_id) if session_id else None
        if session is None:
            session = BrowsingSession(
                id=new_session_id(),
                cart=Cart(),
                auth=AuthState(self._backend),
            )
            self._sessions[session.id] = session
            logger.debug(f"Browsing session started: {session.id[:8]}")
        session.touch()
        return session

    def get_dashboard(self, session: BrowsingSession) -> DashboardPage:
        if session.dashboard is None:
            session.dashboard = DashboardPage(self._backend)
        return session.dashboard

    async def prune(self, now: Optional[datetime] = None) -> int:
        """Drop idle sessions, releasing any open dashboard channel."""
        cutoff = (now or datetime.now()) - self.idle_timeout
        stale = [s for s in self._sessions.values() if s.last_seen < cutoff]

        for session in stale:
            del self._sessions[session.id]
            if session.dashboard is not None:
                await session.dashboard.close()

        if stale:
            logger.info(f"Pruned {len(stale)} idle browsing sessions")
        return len(stale)

    async def close(self) -> None:
        """Unmount every dashboard and forget all sessions."""
        dashboards = [s.dashboard for s in self._sessions.values() if s.dashboard is not None]
        await asyncio.gather(*(d.close() for d in dashboards))
        self._sessions.clear()
        logger.info(f"Session registry closed ({len(dashboards)} dashboards released)")
