"""
Authentication State Container

Holds the staff session for one browsing session and gates the admin
pages. The backend remains the authority: every check re-validates the
access token.
"""

import logging
from typing import Optional

from oona.services.backend import AuthResult, AuthSession, BaseBackendService

logger = logging.getLogger(__name__)


class AuthState:
    """Current staff session, if any."""

    def __init__(self, backend: BaseBackendService):
        self._backend = backend
        self.session: Optional[AuthSession] = None

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None

    @property
    def email(self) -> Optional[str]:
        return self.session.email if self.session else None

    async def sign_in(self, email: str, password: str) -> AuthResult:
        result = await self._backend.sign_in(email, password)
        if result.success and result.session is not None:
            self.session = result.session
            logger.info(f"Staff signed in: {result.email}")
        else:
            logger.warning(f"Sign-in failed for {email}: {result.error_message}")
        return result

    async def sign_out(self) -> None:
        if self.session is None:
            return
        session, self.session = self.session, None
        result = await self._backend.sign_out(session.access_token)
        if not result.success:
            logger.error(f"Sign-out for {session.email} not confirmed by backend: {result.error_message}")
        else:
            logger.info(f"Staff signed out: {session.email}")

    async def current_user(self) -> Optional[AuthResult]:
        """
        Re-validate the stored session.

        Returns the backend's user result, or None when there is no valid
        session. A rejected token is dropped.
        """
        if self.session is None:
            return None
        result = await self._backend.get_user(self.session.access_token)
        if not result.success:
            logger.info(f"Dropping rejected session for {self.session.email}: {result.error_message}")
            self.session = None
            return None
        return result
