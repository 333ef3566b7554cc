"""
Shared httpx plumbing: bounded requests and status-to-error translation.
"""

import logging
from typing import Dict, Optional, Type

import httpx

from ..exceptions import (
    AuthFailure,
    Conflict,
    NetworkError,
    NotFound,
    PermissionDenied,
    StorageError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

STATUS_ERRORS: Dict[int, Type[StorageError]] = {
    401: AuthFailure,
    403: PermissionDenied,
    404: NotFound,
    409: Conflict,
    412: Conflict,
}


def build_client(
    base_url: str = "",
    timeout: float = DEFAULT_TIMEOUT,
    headers: Optional[Dict[str, str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create an AsyncClient whose every call is bounded by ``timeout``."""
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(timeout),
        headers=headers,
        transport=transport,
    )


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    **kwargs,
) -> httpx.Response:
    """Issue a request, turning transport failures into ``NetworkError``."""
    try:
        return await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise NetworkError(f"{method} {url} timed out", {"reason": str(e)})
    except httpx.HTTPError as e:
        raise NetworkError(f"{method} {url} failed: {e}", {"reason": str(e)})


def error_message(response: httpx.Response) -> str:
    """Best-effort extraction of a human-readable error from a response body."""
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return error.get("message") or response.reason_phrase
        return data.get("message") or error or response.reason_phrase
    return response.reason_phrase


def raise_for_status(
    response: httpx.Response,
    context: str,
    overrides: Optional[Dict[int, Type[StorageError]]] = None,
    messages: Optional[Dict[int, str]] = None,
) -> None:
    """
    Raise the typed storage error matching a non-2xx response.

    Args:
        response: Response to inspect
        context: What was being attempted, used as message prefix
        overrides: Backend-specific status -> error type mapping
        messages: Backend-specific status -> friendlier message
    """
    if response.is_success:
        return

    status = response.status_code
    detail = (messages or {}).get(status) or error_message(response)
    message = f"{context}: {detail} ({status})"

    error_type = (overrides or {}).get(status) or STATUS_ERRORS.get(status, StorageError)
    if error_type is Conflict:
        raise Conflict(message)
    raise error_type(message, {"status": status})
