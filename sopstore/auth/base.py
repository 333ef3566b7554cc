"""
Credential capability interfaces.
"""

from abc import ABC, abstractmethod

from .session import AuthSession


class AccessTokenProvider(ABC):
    """Supplies bearer tokens to adapters that talk to Google APIs."""

    @abstractmethod
    async def get_access_token(self) -> str:
        """
        Get a currently valid access token, acquiring one if needed.

        Raises:
            AuthFailure: If no token can be obtained
        """
        pass

    @abstractmethod
    async def invalidate(self) -> None:
        """Drop the cached token after the remote side rejected it."""
        pass


class SignInProvider(ABC):
    """Performs the interactive part of acquiring a session."""

    @abstractmethod
    async def sign_in(self) -> AuthSession:
        """
        Run the sign-in flow.

        Returns:
            A fresh session

        Raises:
            AuthFailure: If the user or identity provider refused
        """
        pass

    @abstractmethod
    async def revoke(self, access_token: str) -> None:
        """Revoke a token with the identity provider."""
        pass
