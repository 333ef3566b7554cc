"""
Backend adapter interface.

Every storage backend exposes the same four document operations so the
orchestrator never needs to know which one is active.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Iterable, Optional, Tuple

from ..models import Document, VersionToken

logger = logging.getLogger(__name__)

# Upper bound on per-file fetches in flight during list_all
LIST_CONCURRENCY = 8


class StorageAdapter(ABC):
    """Abstract base class for document storage backends."""

    name = "abstract"

    @abstractmethod
    async def get(self, doc_id: str) -> Document:
        """
        Fetch a document.

        Args:
            doc_id: Document identifier

        Returns:
            The document, carrying the version token it was read with

        Raises:
            NotFound: If the document does not exist
        """
        pass

    @abstractmethod
    async def put(
        self,
        doc: Document,
        expected_version: Optional[VersionToken] = None,
    ) -> Optional[VersionToken]:
        """
        Create or overwrite a document.

        Args:
            doc: Document to store (an id is assigned if missing)
            expected_version: Token from the caller's last read; defaults to
                ``doc.version``

        Returns:
            New version token, or None for unversioned backends

        Raises:
            Conflict: If the backend's current version differs
        """
        pass

    @abstractmethod
    async def delete(self, doc_id: str) -> bool:
        """
        Delete a document. Deleting a missing document succeeds.

        Args:
            doc_id: Document identifier

        Returns:
            True once the document is gone
        """
        pass

    @abstractmethod
    async def list_all(self) -> Dict[str, Document]:
        """
        Load every document in the collection.

        Entries that cannot be fetched or parsed are skipped individually.

        Returns:
            Mapping of document id to document
        """
        pass

    @abstractmethod
    async def check_available(self) -> bool:
        """
        Check that the backend is configured and its container exists.

        Returns:
            True if operations can be delegated to this backend
        """
        pass

    async def aclose(self) -> None:
        """Release connection resources."""
        pass

    async def __aenter__(self) -> "StorageAdapter":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @staticmethod
    def _resolve_expected(
        doc: Document, expected_version: Optional[VersionToken]
    ) -> Optional[VersionToken]:
        return expected_version if expected_version is not None else doc.version

    async def _gather_documents(
        self,
        entries: Iterable[Tuple[str, Callable[[], Awaitable[Document]]]],
    ) -> Dict[str, Document]:
        """
        Run per-entry fetches concurrently, skipping the ones that fail.

        Args:
            entries: (label, fetch coroutine factory) pairs

        Returns:
            Successfully parsed documents keyed by id
        """
        semaphore = asyncio.Semaphore(LIST_CONCURRENCY)
        entries = list(entries)

        async def fetch(fetcher: Callable[[], Awaitable[Document]]) -> Document:
            async with semaphore:
                return await fetcher()

        results = await asyncio.gather(
            *(fetch(fetcher) for _, fetcher in entries),
            return_exceptions=True,
        )

        documents: Dict[str, Document] = {}
        for (label, _), result in zip(entries, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(f"Skipping {label} in {self.name}: {result}")
                continue
            documents[result.id] = result

        logger.info(f"Loaded {len(documents)} documents from {self.name}")
        return documents
