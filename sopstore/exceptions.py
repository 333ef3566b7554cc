"""
Storage error kinds.

Adapters translate backend-specific failures (HTTP status codes, transport
errors, malformed payloads) into these types so callers only ever deal with
one vocabulary regardless of which backend is active.
"""

from typing import Any, Dict, Optional


class StorageError(Exception):
    """Base exception for all storage failures."""

    code = "STORAGE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class NotConfigured(StorageError):
    """No backend configuration is present."""
    code = "NOT_CONFIGURED"


class NotFound(StorageError):
    """The requested document does not exist."""
    code = "NOT_FOUND"


class Conflict(StorageError):
    """Version token mismatch on write."""
    code = "CONFLICT"

    def __init__(
        self,
        message: str,
        expected: Optional[str] = None,
        current: Optional[str] = None,
    ):
        super().__init__(message, {"expected": expected, "current": current})
        self.expected = expected
        self.current = current


class AuthFailure(StorageError):
    """Sign-in failed or the credential is invalid and could not be re-acquired."""
    code = "AUTH_FAILURE"


class PermissionDenied(StorageError):
    """Authenticated, but not allowed to touch the target."""
    code = "PERMISSION_DENIED"


class NetworkError(StorageError):
    """Transport-level failure (DNS, connect, timeout, reset)."""
    code = "NETWORK_ERROR"


class RemoteUnavailable(StorageError):
    """The target repository or folder does not exist (yet)."""
    code = "REMOTE_UNAVAILABLE"


class BackendUnavailable(StorageError):
    """A bounded wait on a backend dependency expired."""
    code = "BACKEND_UNAVAILABLE"


class InvalidDocument(StorageError, ValueError):
    """Document envelope is malformed (e.g. id and meta.sopId disagree)."""
    code = "INVALID_DOCUMENT"
