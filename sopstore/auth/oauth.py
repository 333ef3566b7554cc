"""
Google OAuth 2.0 sign-in for Drive access.

Installed-application flow: the user opens the authorization URL, approves
access, and hands back the URL the browser was redirected to (or just the
code). The code is exchanged for an access token with PKCE.
"""

import asyncio
import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Optional, Tuple
from urllib.parse import parse_qs, urlencode, urlparse

import httpx

from ..adapters.http import DEFAULT_TIMEOUT, build_client, error_message, send
from ..exceptions import AuthFailure
from .base import SignInProvider
from .session import AuthSession, utcnow

logger = logging.getLogger(__name__)

# Receives the authorization URL, returns the redirect URL or bare code
Authorizer = Callable[[str], Awaitable[str]]


@dataclass
class OAuthState:
    """Pending authorization request (CSRF state + PKCE verifier)."""
    state_token: str
    code_verifier: str
    redirect_uri: str
    created_at: datetime = field(default_factory=utcnow)

    def is_expired(self) -> bool:
        """State tokens expire after 10 minutes."""
        return utcnow() > (self.created_at + timedelta(minutes=10))

    @property
    def code_challenge(self) -> str:
        digest = hashlib.sha256(self.code_verifier.encode()).digest()
        return base64.urlsafe_b64encode(digest).decode().rstrip("=")


def parse_redirect(value: str) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """
    Split what the user pasted into (code, state, error).

    Accepts either the full redirect URL or the bare authorization code.
    """
    value = value.strip()
    if "?" not in value and "=" not in value:
        return (value or None), None, None

    query = parse_qs(urlparse(value).query if "?" in value else value)

    def first(key: str) -> Optional[str]:
        values = query.get(key)
        return values[0] if values else None

    return first("code"), first("state"), first("error")


async def console_authorize(auth_url: str) -> str:
    """Print the authorization URL and read the redirect back from stdin."""
    print("Open this URL in your browser and approve access to Google Drive:")
    print(auth_url)
    return await asyncio.to_thread(input, "Paste the URL you were redirected to (or the code): ")


class GoogleOAuthFlow(SignInProvider):
    """
    Handles Google OAuth 2.0 flow for Drive access.
    """

    GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
    GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
    SCOPES = [
        "https://www.googleapis.com/auth/drive.file",  # Create/access app files
    ]

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        redirect_uri: str = "http://localhost",
        authorize: Optional[Authorizer] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize OAuth flow.

        Args:
            client_id: OAuth client ID
            client_secret: OAuth client secret (desktop clients have one)
            redirect_uri: Redirect URI registered for the client
            authorize: Coroutine performing the user-facing step
            timeout: Per-request timeout for token endpoint calls
            transport: Optional httpx transport (tests)
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._authorize = authorize or console_authorize
        self._timeout = timeout
        self._transport = transport
        self._pending_states: Dict[str, OAuthState] = {}

    def is_configured(self) -> bool:
        return bool(self.client_id)

    def generate_auth_url(self) -> Tuple[str, OAuthState]:
        """
        Generate OAuth authorization URL.

        Returns:
            Tuple of (auth_url, pending state)
        """
        if not self.is_configured():
            raise AuthFailure("Google Drive not configured. Please set the OAuth client ID.")

        state = OAuthState(
            state_token=secrets.token_urlsafe(32),
            code_verifier=secrets.token_urlsafe(64),
            redirect_uri=self.redirect_uri,
        )
        self._pending_states[state.state_token] = state
        self._cleanup_expired_states()

        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.SCOPES),
            "state": state.state_token,
            "code_challenge": state.code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{self.GOOGLE_AUTH_URL}?{urlencode(params)}", state

    def validate_state(self, state_token: str) -> Optional[OAuthState]:
        """
        Validate and consume a pending state.

        Args:
            state_token: State token from the redirect

        Returns:
            OAuth state if valid
        """
        state = self._pending_states.pop(state_token, None)
        if not state or state.is_expired():
            return None
        return state

    async def exchange_code(self, code: str, state: OAuthState) -> AuthSession:
        """
        Exchange authorization code for an access token.

        Args:
            code: Authorization code from the redirect
            state: Validated OAuth state

        Returns:
            New session
        """
        data = {
            "client_id": self.client_id,
            "code": code,
            "code_verifier": state.code_verifier,
            "grant_type": "authorization_code",
            "redirect_uri": state.redirect_uri,
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret

        async with build_client(timeout=self._timeout, transport=self._transport) as client:
            response = await send(client, "POST", self.GOOGLE_TOKEN_URL, data=data)

        if response.status_code != 200:
            raise AuthFailure(f"Token exchange failed: {error_message(response)}")

        payload = response.json()
        if not payload.get("access_token"):
            raise AuthFailure("Failed to get access token. Please try again.")
        return AuthSession.from_token_response(payload)

    async def sign_in(self) -> AuthSession:
        auth_url, state = self.generate_auth_url()
        redirect = await self._authorize(auth_url)

        code, returned_state, error = parse_redirect(redirect or "")
        if error:
            self._pending_states.pop(state.state_token, None)
            raise AuthFailure(f"Sign-in was not approved: {error}")
        if not code:
            self._pending_states.pop(state.state_token, None)
            raise AuthFailure("No authorization code received")

        # A bare pasted code carries no state; it belongs to the request we just made
        oauth_state = self.validate_state(returned_state or state.state_token)
        if not oauth_state:
            raise AuthFailure("Invalid or expired sign-in state")

        session = await self.exchange_code(code, oauth_state)
        logger.info("Google Drive authenticated")
        return session

    async def revoke(self, access_token: str) -> None:
        async with build_client(timeout=self._timeout, transport=self._transport) as client:
            response = await send(
                client,
                "POST",
                self.GOOGLE_REVOKE_URL,
                data={"token": access_token},
            )
        if response.status_code != 200:
            raise AuthFailure(f"Token revocation failed: {error_message(response)}")

    def _cleanup_expired_states(self) -> None:
        """Remove expired state tokens."""
        expired = [
            token for token, state in self._pending_states.items()
            if state.is_expired()
        ]
        for token in expired:
            del self._pending_states[token]
