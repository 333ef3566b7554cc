"""
Local snapshot of the last successful remote listing.

Never authoritative while a remote backend is configured. The snapshot is
replaced wholesale on every refresh; there is no merging.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from .exceptions import StorageError
from .models import Document

logger = logging.getLogger(__name__)


class LocalCache(ABC):
    """Abstract local cache of documents."""

    @abstractmethod
    def load(self) -> Dict[str, Document]:
        """Return the last snapshot, or an empty mapping if there is none."""
        pass

    @abstractmethod
    def replace(self, documents: Dict[str, Document]) -> None:
        """Overwrite the snapshot."""
        pass

    def get(self, doc_id: str) -> Optional[Document]:
        return self.load().get(doc_id)


class MemoryCache(LocalCache):
    """Process-local snapshot."""

    def __init__(self):
        self._documents: Dict[str, Document] = {}

    def load(self) -> Dict[str, Document]:
        return dict(self._documents)

    def replace(self, documents: Dict[str, Document]) -> None:
        self._documents = dict(documents)


class JsonFileCache(LocalCache):
    """Snapshot kept in a JSON file so it survives restarts."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Dict[str, Document]:
        if not self.path.exists():
            return {}

        try:
            raw = json.loads(self.path.read_text())
        except (OSError, ValueError) as e:
            logger.error(f"Error loading cache from {self.path}: {e}")
            return {}

        documents: Dict[str, Document] = {}
        entries = raw.get("sops") if isinstance(raw, dict) else None
        if not isinstance(entries, dict):
            logger.error(f"Ignoring cache at {self.path}: no sops mapping")
            return {}
        for key, value in entries.items():
            try:
                doc = Document.from_dict(value, fallback_id=key)
            except StorageError as e:
                logger.warning(f"Skipping cached entry {key}: {e}")
                continue
            documents[doc.id] = doc
        return documents

    def replace(self, documents: Dict[str, Document]) -> None:
        data = {"sops": {doc_id: doc.to_dict() for doc_id, doc in documents.items()}}
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Write to temp file in same directory, then rename over the old snapshot
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        tmp_path.replace(self.path)
        logger.debug(f"Cached {len(documents)} SOPs in {self.path}")
