"""
Authentication for the Drive-backed storage.

The client side signs users in interactively through Google OAuth; the proxy
service uses a service account. Both hand adapters an ``AccessTokenProvider``.
"""

from .session import (
    AuthSession,
    SessionStore,
    MemorySessionStore,
    EncryptedFileSessionStore,
)
from .base import AccessTokenProvider, SignInProvider
from .oauth import GoogleOAuthFlow, OAuthState, console_authorize, parse_redirect
from .lifecycle import AuthState, TokenLifecycleManager

__all__ = [
    # Session
    "AuthSession",
    "SessionStore",
    "MemorySessionStore",
    "EncryptedFileSessionStore",
    # Capabilities
    "AccessTokenProvider",
    "SignInProvider",
    # OAuth
    "GoogleOAuthFlow",
    "OAuthState",
    "console_authorize",
    "parse_redirect",
    # Lifecycle
    "AuthState",
    "TokenLifecycleManager",
]
