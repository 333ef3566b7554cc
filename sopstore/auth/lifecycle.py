"""
Token lifecycle for the Drive backend.

States::

    UNAUTHENTICATED -> AUTHENTICATING -> AUTHENTICATED -> EXPIRED -> UNAUTHENTICATED

Every operation that needs a token goes through ``get_session``, which
discards an expired session and runs sign-in again. The sign-in wait is
bounded so a stuck browser flow surfaces as ``BackendUnavailable`` instead
of hanging the caller.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional
from datetime import datetime

from ..exceptions import AuthFailure, BackendUnavailable
from .base import AccessTokenProvider, SignInProvider
from .session import AuthSession, SessionStore, utcnow

logger = logging.getLogger(__name__)

DEFAULT_SIGN_IN_TIMEOUT = 120.0


class AuthState(Enum):
    """Authentication state of the manager."""
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


class TokenLifecycleManager(AccessTokenProvider):
    """
    Owns the Drive auth session: sign-in, caching with expiry, sign-out.
    """

    def __init__(
        self,
        sign_in: SignInProvider,
        store: SessionStore,
        sign_in_timeout: float = DEFAULT_SIGN_IN_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the manager.

        Args:
            sign_in: Interactive sign-in provider
            store: Where the session is persisted between runs
            sign_in_timeout: Upper bound in seconds on the sign-in wait
            clock: Source of the current UTC time
        """
        self._sign_in = sign_in
        self._store = store
        self._sign_in_timeout = sign_in_timeout
        self._clock = clock
        self._session: Optional[AuthSession] = None
        self._loaded = False
        self._state = AuthState.UNAUTHENTICATED
        self._lock = asyncio.Lock()

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return (
            self._state is AuthState.AUTHENTICATED
            and self._session is not None
            and not self._session.is_expired(self._clock())
        )

    async def get_session(self) -> AuthSession:
        """
        Return a valid session, signing in again if there is none or it expired.

        Raises:
            AuthFailure: If sign-in fails
            BackendUnavailable: If sign-in does not finish in time
        """
        async with self._lock:
            if not self._loaded:
                self._session = await self._store.get()
                self._loaded = True
                if self._session is not None:
                    self._state = AuthState.AUTHENTICATED

            if self._session is not None and self._session.is_expired(self._clock()):
                self._state = AuthState.EXPIRED
                logger.info("Drive session expired; signing in again")
                await self._discard()

            if self._session is not None:
                return self._session

            return await self._authenticate()

    async def sign_in(self) -> AuthSession:
        """Force an interactive sign-in, replacing any current session."""
        async with self._lock:
            await self._discard()
            return await self._authenticate()

    async def get_access_token(self) -> str:
        session = await self.get_session()
        return session.access_token

    async def invalidate(self) -> None:
        async with self._lock:
            if self._session is not None:
                logger.info("Drive rejected the session; discarding it")
            self._state = AuthState.EXPIRED
            await self._discard()

    async def sign_out(self) -> None:
        """
        Clear the session regardless of state and revoke it if possible.

        Revocation is best effort; local clearing always happens.
        """
        async with self._lock:
            if not self._loaded:
                self._session = await self._store.get()
                self._loaded = True
            session = self._session
            await self._discard()

        if session is not None:
            try:
                await self._sign_in.revoke(session.access_token)
            except Exception as e:
                logger.warning(f"Could not revoke Drive token: {e}")

        logger.info("Signed out from Google Drive")

    async def _authenticate(self) -> AuthSession:
        self._state = AuthState.AUTHENTICATING
        try:
            session = await asyncio.wait_for(
                self._sign_in.sign_in(),
                timeout=self._sign_in_timeout,
            )
        except asyncio.TimeoutError:
            self._state = AuthState.UNAUTHENTICATED
            raise BackendUnavailable(
                f"Google sign-in did not complete within {self._sign_in_timeout:.0f}s"
            )
        except AuthFailure:
            self._state = AuthState.UNAUTHENTICATED
            raise
        except Exception as e:
            self._state = AuthState.UNAUTHENTICATED
            logger.error(f"Error authenticating with Google Drive: {e}")
            raise AuthFailure(f"Sign-in failed: {e}")

        self._session = session
        self._loaded = True
        await self._store.set(session)
        self._state = AuthState.AUTHENTICATED
        return session

    async def _discard(self) -> None:
        self._session = None
        self._loaded = True
        await self._store.clear()
        self._state = AuthState.UNAUTHENTICATED
