"""
SOP Store - multi-backend document storage for Standard Operating Procedures.

SOPs are kept as one JSON file per document in a shared GitHub repository,
a Google Drive folder, or behind the proxy service, with a local cache for
offline reads.
"""

__version__ = "1.0.0"

from .exceptions import (
    StorageError,
    NotConfigured,
    NotFound,
    Conflict,
    AuthFailure,
    PermissionDenied,
    NetworkError,
    RemoteUnavailable,
    BackendUnavailable,
    InvalidDocument,
)
from .models import Document, VersionToken, new_document_id
from .adapters import StorageAdapter, FileHostAdapter, FolderStoreAdapter, ProxyAdapter
from .cache import LocalCache, MemoryCache, JsonFileCache
from .orchestrator import ReadFailurePolicy, StorageOrchestrator
from .factory import create_adapter, create_orchestrator

__all__ = [
    "__version__",
    # Errors
    "StorageError",
    "NotConfigured",
    "NotFound",
    "Conflict",
    "AuthFailure",
    "PermissionDenied",
    "NetworkError",
    "RemoteUnavailable",
    "BackendUnavailable",
    "InvalidDocument",
    # Documents
    "Document",
    "VersionToken",
    "new_document_id",
    # Adapters
    "StorageAdapter",
    "FileHostAdapter",
    "FolderStoreAdapter",
    "ProxyAdapter",
    # Orchestration
    "LocalCache",
    "MemoryCache",
    "JsonFileCache",
    "ReadFailurePolicy",
    "StorageOrchestrator",
    "create_adapter",
    "create_orchestrator",
]
