"""
Fallback orchestrator: the single storage entry point for the application.

Delegates to the configured backend adapter. Reads degrade to the local
cache when the backend is missing or failing, so browsing keeps working
offline. Writes never degrade: a failed save or delete always reaches the
caller.
"""

import logging
from enum import Enum
from typing import Dict, Optional

from .adapters.base import StorageAdapter
from .cache import LocalCache, MemoryCache
from .exceptions import (
    BackendUnavailable,
    NetworkError,
    NotConfigured,
    NotFound,
    RemoteUnavailable,
)
from .models import Document, VersionToken

logger = logging.getLogger(__name__)

# Failures that mean "the backend could not be reached", as opposed to an answer
UNREACHABLE_ERRORS = (NetworkError, RemoteUnavailable, NotConfigured, BackendUnavailable)


class ReadFailurePolicy(Enum):
    """What reads do when the backend fails."""
    DEGRADE_TO_CACHE = "degrade-to-cache"
    PROPAGATE = "propagate"


class StorageOrchestrator:
    """
    Uniform storage capability over whichever backend is active.

    Owns the active adapter and the local cache.
    """

    def __init__(
        self,
        adapter: Optional[StorageAdapter],
        cache: Optional[LocalCache] = None,
        read_failure_policy: ReadFailurePolicy = ReadFailurePolicy.DEGRADE_TO_CACHE,
    ):
        """
        Initialize orchestrator.

        Args:
            adapter: Active backend adapter, or None when no backend is configured
            cache: Local snapshot used for degraded reads
            read_failure_policy: How reads react to backend failures
        """
        self.adapter = adapter
        self.cache = cache or MemoryCache()
        self.read_failure_policy = read_failure_policy

        logger.info(f"Storage orchestrator initialized: backend={self.backend_name}")

    @property
    def backend_name(self) -> str:
        return self.adapter.name if self.adapter else "local"

    @property
    def is_configured(self) -> bool:
        return self.adapter is not None

    async def _require_backend(self, action: str) -> StorageAdapter:
        if self.adapter is None:
            raise NotConfigured(f"Cannot {action}: no storage backend configured")
        if not await self.adapter.check_available():
            raise RemoteUnavailable(
                f"Cannot {action}: {self.backend_name} storage is not available"
            )
        return self.adapter

    async def save_document(
        self,
        doc: Document,
        expected_version: Optional[VersionToken] = None,
    ) -> Document:
        """
        Save a document to the active backend.

        Args:
            doc: Document to save; an id is assigned if it has none
            expected_version: Token from the last read (defaults to ``doc.version``)

        Returns:
            The saved document carrying its new version token

        Raises:
            NotConfigured: If no backend is configured
            Conflict: If the document changed since it was read
        """
        adapter = await self._require_backend("save SOP")
        if expected_version is None:
            expected_version = doc.version

        prepared = doc.touched().prepared_for_save()
        version = await adapter.put(prepared, expected_version)
        logger.info(f"Saved SOP {prepared.id} to {self.backend_name}")
        return prepared.with_version(version)

    async def load_all_documents(self) -> Dict[str, Document]:
        """
        Load every document.

        Returns the remote collection and refreshes the cache; if the backend
        is missing or fails, returns the last cached snapshot instead.
        """
        if self.adapter is None:
            logger.info("Using local cache only (no storage backend configured)")
            return self.cache.load()

        try:
            if not await self.adapter.check_available():
                raise RemoteUnavailable(f"{self.backend_name} storage is not available")
            documents = await self.adapter.list_all()
        except Exception as e:
            if self.read_failure_policy is ReadFailurePolicy.PROPAGATE:
                raise
            cached = self.cache.load()
            logger.warning(
                f"Could not load from {self.backend_name} ({e}); "
                f"using {len(cached)} cached SOPs"
            )
            return cached

        self.cache.replace(documents)
        return documents

    async def get_document(self, doc_id: str) -> Document:
        """
        Fetch one document.

        Falls back to the cached copy only when the backend is unreachable;
        a definite NotFound from the backend is passed through.
        """
        cached = self.cache.get(doc_id)
        if self.adapter is None:
            if cached is None:
                raise NotFound(f"SOP {doc_id} not found")
            return cached

        try:
            adapter = await self._require_backend("load SOP")
            return await adapter.get(doc_id)
        except UNREACHABLE_ERRORS as e:
            if self.read_failure_policy is ReadFailurePolicy.PROPAGATE or cached is None:
                raise
            logger.warning(f"Could not load {doc_id} from {self.backend_name} ({e}); using cached copy")
            return cached

    async def delete_document(self, doc_id: str) -> bool:
        """
        Delete a document from the active backend.

        Returns:
            True once the document is gone (also when it never existed)
        """
        adapter = await self._require_backend("delete SOP")
        deleted = await adapter.delete(doc_id)
        logger.info(f"Deleted SOP {doc_id} from {self.backend_name}")
        return deleted

    async def aclose(self) -> None:
        if self.adapter is not None:
            await self.adapter.aclose()
