"""
Auth session value type and persistence.

Sessions are persisted through a ``SessionStore`` so a later run inside the
token's validity window skips interactive sign-in.
"""

import base64
import hashlib
import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

# Treat tokens as expired slightly early so a request never races the deadline
EXPIRY_SKEW = timedelta(seconds=60)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AuthSession:
    """Access token plus the instant it stops being valid."""
    access_token: str
    expires_at: datetime
    token_type: str = "Bearer"
    scope: str = ""

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return now >= (self.expires_at - EXPIRY_SKEW)

    @classmethod
    def from_token_response(
        cls,
        data: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> "AuthSession":
        """Build a session from an OAuth token endpoint response."""
        now = now or utcnow()
        return cls(
            access_token=data["access_token"],
            expires_at=now + timedelta(seconds=int(data.get("expires_in", 3600))),
            token_type=data.get("token_type", "Bearer"),
            scope=data.get("scope", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "expires_at": self.expires_at.isoformat(),
            "token_type": self.token_type,
            "scope": self.scope,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthSession":
        expires_at = datetime.fromisoformat(data["expires_at"])
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return cls(
            access_token=data["access_token"],
            expires_at=expires_at,
            token_type=data.get("token_type", "Bearer"),
            scope=data.get("scope", ""),
        )


class SessionStore(ABC):
    """Persistence capability for the current session."""

    @abstractmethod
    async def get(self) -> Optional[AuthSession]:
        """Return the persisted session, if any."""
        pass

    @abstractmethod
    async def set(self, session: AuthSession) -> None:
        """Persist a session, replacing any previous one."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Forget the persisted session."""
        pass


class MemorySessionStore(SessionStore):
    """Keeps the session for the lifetime of the process only."""

    def __init__(self, session: Optional[AuthSession] = None):
        self._session = session

    async def get(self) -> Optional[AuthSession]:
        return self._session

    async def set(self, session: AuthSession) -> None:
        self._session = session

    async def clear(self) -> None:
        self._session = None


class EncryptedFileSessionStore(SessionStore):
    """
    Session persisted to a single file, encrypted at rest with Fernet.

    The key comes from ``SOP_TOKEN_ENCRYPTION_KEY``; any string is accepted
    and stretched to a Fernet key when it is not one already.
    """

    KEY_ENV = "SOP_TOKEN_ENCRYPTION_KEY"

    def __init__(self, path: Path, key: Optional[str] = None):
        """
        Initialize session store.

        Args:
            path: File holding the encrypted session
            key: Encryption key (defaults to the environment variable)
        """
        self.path = Path(path)
        self._cipher = self._get_cipher(key or os.environ.get(self.KEY_ENV))

    def _get_cipher(self, key: Optional[str]) -> Fernet:
        if not key:
            logger.warning(
                f"{self.KEY_ENV} not set. "
                "Using ephemeral key - the saved session will not survive a restart."
            )
            return Fernet(Fernet.generate_key())

        # Fernet keys are 44 chars of urlsafe base64; derive one from anything else
        if len(key) != 44:
            key = base64.urlsafe_b64encode(hashlib.sha256(key.encode()).digest()).decode()
        return Fernet(key.encode())

    async def get(self) -> Optional[AuthSession]:
        if not self.path.exists():
            return None

        try:
            decrypted = self._cipher.decrypt(self.path.read_bytes())
            return AuthSession.from_dict(json.loads(decrypted.decode()))
        except (InvalidToken, OSError, ValueError, KeyError) as e:
            logger.error(f"Failed to load saved session from {self.path}: {e}")
            return None

    async def set(self, session: AuthSession) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        encrypted = self._cipher.encrypt(json.dumps(session.to_dict()).encode())
        self.path.write_bytes(encrypted)
        self.path.chmod(0o600)
        logger.info(f"Stored session in {self.path}")

    async def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.info(f"Deleted session file {self.path}")
