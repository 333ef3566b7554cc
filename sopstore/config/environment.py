"""
Environment variable handling for SOP storage configuration.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .config_file import ConfigFile
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

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path("data")


class EnvironmentLoader:
    """Loads configuration from environment variables."""

    @staticmethod
    def load_config(env_file: Optional[str] = None) -> StoreConfig:
        """Load client configuration from environment variables."""
        load_dotenv(env_file, override=False)

        data_dir = Path(os.getenv('SOP_DATA_DIR', str(DEFAULT_DATA_DIR)))
        settings_path = Path(os.getenv('SOP_SETTINGS_PATH', str(data_dir / 'settings.json')))
        cache_path = Path(os.getenv('SOP_CACHE_PATH', str(data_dir / 'cache.json')))
        token_path = Path(os.getenv('SOP_TOKEN_PATH', str(data_dir / 'drive_session.token')))

        return StoreConfig(
            backend=EnvironmentLoader._load_backend(ConfigFile(settings_path)),
            cache_path=cache_path,
            settings_path=settings_path,
            token_path=token_path,
            http_timeout=float(os.getenv('SOP_HTTP_TIMEOUT', '30')),
            sign_in_timeout=float(os.getenv('SOP_SIGN_IN_TIMEOUT', '120')),
            log_level=EnvironmentLoader._parse_log_level(os.getenv('LOG_LEVEL', 'INFO')),
        )

    @staticmethod
    def load_proxy_service_config(env_file: Optional[str] = None) -> ProxyServiceConfig:
        """Load proxy service configuration from environment variables."""
        load_dotenv(env_file, override=False)

        return ProxyServiceConfig(
            folder_id=os.getenv('SOP_FOLDER_ID') or os.getenv('FOLDER_ID', ''),
            service_account_json=os.getenv('GOOGLE_SERVICE_ACCOUNT_JSON', ''),
            service_account_file=os.getenv('GOOGLE_SERVICE_ACCOUNT_FILE', ''),
            host=os.getenv('HOST', '0.0.0.0'),
            port=int(os.getenv('PORT', '8080')),
            cors_origins=EnvironmentLoader._parse_list(os.getenv('SOP_CORS_ORIGINS', '*')),
            http_timeout=float(os.getenv('SOP_HTTP_TIMEOUT', '30')),
            log_level=EnvironmentLoader._parse_log_level(os.getenv('LOG_LEVEL', 'INFO')),
        )

    @staticmethod
    def _load_backend(settings: ConfigFile) -> Optional[BackendConfig]:
        """Resolve the single active backend.

        SOP_BACKEND picks one explicitly; otherwise the first fully
        configured backend wins in the order proxy, GitHub, Drive.
        """
        requested = os.getenv('SOP_BACKEND', '').strip().lower()
        kind: Optional[BackendKind] = None
        if requested:
            try:
                kind = BackendKind(requested)
            except ValueError:
                raise ValueError(
                    f"Unknown SOP_BACKEND '{requested}'. "
                    f"Valid values: {', '.join(k.value for k in BackendKind)}"
                )

        proxy_url = os.getenv('SOP_SHARED_API_URL', '').strip()
        github_token = os.getenv('SOP_GITHUB_TOKEN', '')
        drive_client_id = os.getenv('SOP_DRIVE_CLIENT_ID', '')

        if kind is None:
            if proxy_url:
                kind = BackendKind.PROXY
            elif github_token:
                kind = BackendKind.GITHUB
            elif drive_client_id:
                kind = BackendKind.DRIVE
            else:
                logger.info("No storage backend configured - using local cache only")
                return None

        if kind is BackendKind.PROXY:
            return ProxyConfig(base_url=proxy_url)

        if kind is BackendKind.GITHUB:
            return FileHostConfig(
                owner=os.getenv('SOP_GITHUB_OWNER', ''),
                repo=os.getenv('SOP_GITHUB_REPO', ''),
                credential=github_token,
                branch=os.getenv('SOP_GITHUB_BRANCH', 'main'),
                api_url=os.getenv('SOP_GITHUB_API_URL', 'https://api.github.com'),
            )

        # Folder id learned on a previous run takes effect when none is set explicitly
        folder_id = os.getenv('SOP_DRIVE_FOLDER_ID') or settings.get('folder_id', '')
        return FolderStoreConfig(
            client_id=drive_client_id,
            api_key=os.getenv('SOP_DRIVE_API_KEY', ''),
            folder_id=folder_id or '',
            client_secret=os.getenv('SOP_DRIVE_CLIENT_SECRET', ''),
        )

    @staticmethod
    def _parse_log_level(value: str) -> LogLevel:
        try:
            return LogLevel(value.upper())
        except ValueError:
            return LogLevel.INFO

    @staticmethod
    def _parse_list(value: str, delimiter: str = ',') -> List[str]:
        """Parse a comma-separated string into a list."""
        if not value:
            return []
        return [item.strip() for item in value.split(delimiter) if item.strip()]
