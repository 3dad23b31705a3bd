"""
Authentication Context

Tracks whether authentication has resolved and which session is active.
Fetches must not start before it is ready.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog

from pos_dashboard.errors import AuthStuck, NotAuthenticated

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AuthSession:
    """Signed-in user and the store their reads are scoped to"""
    user_id: str
    store_id: Optional[str] = None


class AuthContext:
    """
    Readiness flag plus the current session.

    ``resolve()`` is called once the auth provider has answered, with the
    session or None when nobody is signed in.
    """

    def __init__(self, session: Optional[AuthSession] = None, ready: bool = False):
        self._ready = asyncio.Event()
        self._session = session
        if ready:
            self._ready.set()

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    @property
    def session(self) -> Optional[AuthSession]:
        return self._session

    def resolve(self, session: Optional[AuthSession]) -> None:
        """Mark auth as resolved with the given session"""
        self._session = session
        self._ready.set()
        logger.debug("Auth resolved", signed_in=session is not None)

    def sign_out(self) -> None:
        self._session = None

    async def wait_until_ready(self, timeout: float) -> None:
        """
        Wait for auth to resolve.

        Raises:
            AuthStuck: If it has not resolved within ``timeout`` seconds
        """
        if self.is_ready:
            return
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning("Auth initialization timed out", timeout_seconds=timeout)
            raise AuthStuck() from None

    def require_session(self) -> AuthSession:
        """
        Current session.

        Raises:
            NotAuthenticated: If no session is active
        """
        if self._session is None:
            raise NotAuthenticated()
        return self._session
