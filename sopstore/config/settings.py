"""
Configuration dataclasses for SOP storage.

Exactly one backend configuration is active at a time. It is resolved once
at startup (see ``EnvironmentLoader``) and injected into the orchestrator.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


class LogLevel(Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class BackendKind(Enum):
    """Backend selector values accepted by SOP_BACKEND."""
    GITHUB = "github"
    DRIVE = "drive"
    PROXY = "proxy"


@dataclass
class FileHostConfig:
    """Version-controlled file host (GitHub repository contents)."""
    owner: str
    repo: str
    credential: str
    branch: str = "main"
    directory: str = "sops"
    api_url: str = "https://api.github.com"

    kind = BackendKind.GITHUB

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass
class FolderStoreConfig:
    """Cloud folder store (Google Drive) accessed with the user's OAuth session."""
    client_id: str
    api_key: str = ""
    folder_id: str = ""
    client_secret: str = ""
    folder_name: str = "SOPs"

    kind = BackendKind.DRIVE


@dataclass
class ProxyConfig:
    """Thin proxy in front of a service-account Drive folder."""
    base_url: str

    kind = BackendKind.PROXY

    def __post_init__(self):
        self.base_url = self.base_url.rstrip("/")


BackendConfig = Union[FileHostConfig, FolderStoreConfig, ProxyConfig]


@dataclass
class StoreConfig:
    """Client-side configuration: the active backend plus local paths and timeouts."""
    backend: Optional[BackendConfig] = None
    cache_path: Optional[Path] = None
    settings_path: Optional[Path] = None
    token_path: Optional[Path] = None
    http_timeout: float = 30.0
    sign_in_timeout: float = 120.0
    log_level: LogLevel = LogLevel.INFO

    @property
    def is_configured(self) -> bool:
        return self.backend is not None


@dataclass
class ProxyServiceConfig:
    """Server-side configuration for the proxy service."""
    folder_id: str = ""
    service_account_json: str = ""
    service_account_file: str = ""
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: List[str] = field(default_factory=list)
    http_timeout: float = 30.0
    log_level: LogLevel = LogLevel.INFO

    def has_credentials(self) -> bool:
        return bool(self.service_account_json or self.service_account_file)

    def is_configured(self) -> bool:
        return bool(self.folder_id) and self.has_credentials()

    def credentials_info(self) -> Dict[str, Any]:
        """
        Parse the service account key.

        Raises:
            ValueError: If no key is configured or it is not valid JSON
        """
        if self.service_account_json:
            try:
                return json.loads(self.service_account_json)
            except ValueError as e:
                raise ValueError(f"GOOGLE_SERVICE_ACCOUNT_JSON is not valid JSON: {e}")
        if self.service_account_file:
            return json.loads(Path(self.service_account_file).read_text())
        raise ValueError(
            "GOOGLE_SERVICE_ACCOUNT_JSON env var required (JSON string of service account key)"
        )
