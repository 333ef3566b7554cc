"""
Configuration for SOP storage.
"""

from .settings import (
    BackendConfig,
    BackendKind,
    FileHostConfig,
    FolderStoreConfig,
    LogLevel,
    ProxyConfig,
    ProxyServiceConfig,
    StoreConfig,
)
from .config_file import ConfigFile
from .environment import EnvironmentLoader
from .validation import ConfigValidator, ConfigValidationError

__all__ = [
    "BackendConfig",
    "BackendKind",
    "FileHostConfig",
    "FolderStoreConfig",
    "LogLevel",
    "ProxyConfig",
    "ProxyServiceConfig",
    "StoreConfig",
    "ConfigFile",
    "EnvironmentLoader",
    "ConfigValidator",
    "ConfigValidationError",
]
