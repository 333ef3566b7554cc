"""
Optimistic concurrency policy for versioned backends.

Read-before-write: a writer that wants to overwrite an existing document
must present the version token from its most recent read of that id. The
adapter resolves the backend's current token and hands both to
``check_write_version`` before writing; where the backend supports it the
write itself also carries the token so the store rejects a race that slips
between resolve and write.

A losing writer gets ``Conflict`` and is expected to re-fetch and retry with
the new token. Nothing here retries on its own.
"""

import logging
from typing import Optional

from .exceptions import Conflict
from .models import VersionToken

logger = logging.getLogger(__name__)


def check_write_version(
    doc_id: str,
    expected: Optional[VersionToken],
    current: Optional[VersionToken],
    require_token: bool = True,
) -> None:
    """
    Validate a write against the backend's current version.

    Args:
        doc_id: Document being written
        expected: Token the caller holds (from its last read), or None
        current: Token the backend reports now, or None if the document is absent
        require_token: Whether overwriting an existing document needs a token.
            True for stores that demand one (GitHub); False for stores where
            versioning is advisory (Drive).

    Raises:
        Conflict: If the write would clobber a version the caller has not seen
    """
    if current is None:
        if expected is not None:
            logger.info(f"Rejecting write to {doc_id}: deleted since it was read")
            raise Conflict(
                f"Document {doc_id} was deleted after it was read",
                expected=expected,
                current=None,
            )
        return

    if expected is None:
        if require_token:
            logger.info(f"Rejecting blind overwrite of {doc_id}")
            raise Conflict(
                f"Document {doc_id} already exists; read it before overwriting",
                expected=None,
                current=current,
            )
        return

    if expected != current:
        logger.info(f"Rejecting stale write to {doc_id}: {expected} != {current}")
        raise Conflict(
            f"Document {doc_id} changed since it was read",
            expected=expected,
            current=current,
        )
