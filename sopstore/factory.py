"""
Wiring: turn a resolved ``StoreConfig`` into a ready orchestrator.
"""

import logging
from typing import Optional

import httpx

from .adapters.base import StorageAdapter
from .adapters.file_host import FileHostAdapter
from .adapters.folder_store import FolderStoreAdapter
from .adapters.proxy import ProxyAdapter
from .auth.lifecycle import TokenLifecycleManager
from .auth.oauth import Authorizer, GoogleOAuthFlow
from .auth.session import EncryptedFileSessionStore, MemorySessionStore, SessionStore
from .cache import JsonFileCache, LocalCache, MemoryCache
from .config.config_file import ConfigFile
from .config.settings import FileHostConfig, FolderStoreConfig, ProxyConfig, StoreConfig
from .config.validation import ConfigValidationError, ConfigValidator
from .orchestrator import ReadFailurePolicy, StorageOrchestrator

logger = logging.getLogger(__name__)


def create_adapter(
    config: StoreConfig,
    authorize: Optional[Authorizer] = None,
    session_store: Optional[SessionStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[StorageAdapter]:
    """
    Build the adapter for the configured backend.

    Args:
        config: Resolved configuration
        authorize: User-facing step of the Drive sign-in (console by default)
        session_store: Override for where the Drive session is kept
        transport: Optional httpx transport shared by every client (tests)

    Returns:
        The adapter, or None when no backend is configured
    """
    backend = config.backend

    if backend is None:
        return None

    if isinstance(backend, ProxyConfig):
        return ProxyAdapter(backend, timeout=config.http_timeout, transport=transport)

    if isinstance(backend, FileHostConfig):
        return FileHostAdapter(backend, timeout=config.http_timeout, transport=transport)

    if isinstance(backend, FolderStoreConfig):
        if session_store is None:
            session_store = (
                EncryptedFileSessionStore(config.token_path)
                if config.token_path else MemorySessionStore()
            )
        flow = GoogleOAuthFlow(
            client_id=backend.client_id,
            client_secret=backend.client_secret,
            authorize=authorize,
            timeout=config.http_timeout,
            transport=transport,
        )
        tokens = TokenLifecycleManager(flow, session_store, sign_in_timeout=config.sign_in_timeout)

        on_folder_created = None
        if config.settings_path:
            on_folder_created = ConfigFile(config.settings_path).save_folder_id
        if not backend.folder_id:
            logger.info(f"No Drive folder configured; '{backend.folder_name}' will be created on first use")

        return FolderStoreAdapter.from_config(
            backend,
            tokens,
            on_folder_created=on_folder_created,
            timeout=config.http_timeout,
            transport=transport,
        )

    raise ValueError(f"Unsupported backend configuration: {type(backend).__name__}")


def create_cache(config: StoreConfig) -> LocalCache:
    if config.cache_path:
        return JsonFileCache(config.cache_path)
    return MemoryCache()


def create_orchestrator(
    config: StoreConfig,
    authorize: Optional[Authorizer] = None,
    read_failure_policy: ReadFailurePolicy = ReadFailurePolicy.DEGRADE_TO_CACHE,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> StorageOrchestrator:
    """
    Validate the configuration and build the orchestrator around it.

    Raises:
        ConfigValidationError: If the configuration has problems
    """
    errors = ConfigValidator.validate_config(config)
    if errors:
        raise ConfigValidationError("Invalid storage configuration", errors)

    adapter = create_adapter(config, authorize=authorize, transport=transport)
    return StorageOrchestrator(
        adapter,
        cache=create_cache(config),
        read_failure_policy=read_failure_policy,
    )
