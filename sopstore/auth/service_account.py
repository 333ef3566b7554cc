"""
Service-account credentials for the proxy service.

Staff never touch OAuth: the server holds a service account key and mints
its own access tokens.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from ..exceptions import AuthFailure, NetworkError
from .base import AccessTokenProvider

logger = logging.getLogger(__name__)

DRIVE_SCOPES = [
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/drive",
]


class ServiceAccountTokenProvider(AccessTokenProvider):
    """Mints and caches access tokens from a service account key."""

    def __init__(self, info: Dict[str, Any], scopes: Optional[List[str]] = None):
        """
        Initialize provider.

        Args:
            info: Parsed service account key JSON
            scopes: OAuth scopes to request
        """
        try:
            self._credentials = service_account.Credentials.from_service_account_info(
                info, scopes=scopes or DRIVE_SCOPES
            )
        except (ValueError, KeyError) as e:
            raise AuthFailure(f"Invalid service account key: {e}")
        self._lock = asyncio.Lock()

    @property
    def service_account_email(self) -> str:
        return self._credentials.service_account_email

    async def get_access_token(self) -> str:
        async with self._lock:
            if not self._credentials.valid:
                await self._refresh()
            return self._credentials.token

    async def invalidate(self) -> None:
        async with self._lock:
            self._credentials.token = None

    async def _refresh(self) -> None:
        # google-auth refresh is blocking (requests); keep it off the event loop
        try:
            await asyncio.to_thread(self._credentials.refresh, Request())
        except GoogleAuthError as e:
            logger.error(f"Service account token refresh failed: {e}")
            raise AuthFailure(f"Service account token refresh failed: {e}")
        except OSError as e:
            raise NetworkError(f"Could not reach Google token endpoint: {e}")
        logger.debug(f"Refreshed token for {self.service_account_email}")
