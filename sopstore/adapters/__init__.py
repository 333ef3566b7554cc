"""
Storage backend adapters.

All adapters implement ``StorageAdapter``: get, put, delete, list_all.
"""

from .base import StorageAdapter
from .file_host import FileHostAdapter
from .folder_store import FolderStoreAdapter
from .proxy import ProxyAdapter

__all__ = [
    "StorageAdapter",
    "FileHostAdapter",
    "FolderStoreAdapter",
    "ProxyAdapter",
]
