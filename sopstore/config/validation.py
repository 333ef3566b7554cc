"""
Configuration validation for SOP storage.
"""

import re
from typing import List

from .settings import (
    FileHostConfig,
    FolderStoreConfig,
    ProxyConfig,
    ProxyServiceConfig,
    StoreConfig,
)

PLACEHOLDER_PATTERN = re.compile(r'^YOUR_[A-Z_]+$')


class ConfigValidator:
    """Validates configuration settings."""

    @staticmethod
    def validate_config(config: StoreConfig) -> List[str]:
        """Validate the client configuration."""
        errors = []

        backend = config.backend
        if isinstance(backend, FileHostConfig):
            errors.extend(ConfigValidator._validate_file_host(backend))
        elif isinstance(backend, FolderStoreConfig):
            errors.extend(ConfigValidator._validate_folder_store(backend))
        elif isinstance(backend, ProxyConfig):
            errors.extend(ConfigValidator._validate_proxy(backend))

        if config.http_timeout <= 0:
            errors.append("HTTP timeout must be positive")
        if config.sign_in_timeout <= 0:
            errors.append("Sign-in timeout must be positive")

        return errors

    @staticmethod
    def validate_proxy_service_config(config: ProxyServiceConfig) -> List[str]:
        """Validate the proxy service configuration.

        Missing folder id or credentials are not reported here: the service
        still starts and answers 503 so the deployment is diagnosable.
        """
        errors = []

        if not (1 <= config.port <= 65535):
            errors.append(f"Port {config.port} is not in valid range (1-65535)")

        for origin in config.cors_origins:
            if not ConfigValidator._is_valid_url_or_wildcard(origin):
                errors.append(f"Invalid CORS origin: {origin}")

        if config.http_timeout <= 0:
            errors.append("HTTP timeout must be positive")

        return errors

    @staticmethod
    def _validate_file_host(config: FileHostConfig) -> List[str]:
        errors = []

        for name, value in (
            ("SOP_GITHUB_OWNER", config.owner),
            ("SOP_GITHUB_REPO", config.repo),
            ("SOP_GITHUB_TOKEN", config.credential),
        ):
            if not value:
                errors.append(f"{name} is required for the GitHub backend")
            elif PLACEHOLDER_PATTERN.match(value):
                errors.append(f"{name} still holds the placeholder value {value}")

        if config.repo and not re.match(r'^[A-Za-z0-9._-]+$', config.repo):
            errors.append(f"Invalid GitHub repository name: {config.repo}")

        if not config.branch:
            errors.append("GitHub branch must not be empty")

        return errors

    @staticmethod
    def _validate_folder_store(config: FolderStoreConfig) -> List[str]:
        errors = []

        if not config.client_id:
            errors.append("SOP_DRIVE_CLIENT_ID is required for the Drive backend")
        elif not config.client_id.endswith(".apps.googleusercontent.com"):
            errors.append("Drive client ID should end with '.apps.googleusercontent.com'")

        return errors

    @staticmethod
    def _validate_proxy(config: ProxyConfig) -> List[str]:
        errors = []

        if not re.match(r'^https?://[^\s/]+', config.base_url):
            errors.append(f"Invalid shared API URL: {config.base_url}")

        return errors

    @staticmethod
    def _is_valid_url_or_wildcard(origin: str) -> bool:
        """Check if a CORS origin is a valid URL or wildcard."""
        if origin == '*':
            return True

        url_pattern = r'^https?://[a-zA-Z0-9.-]+(?::[0-9]+)?(?:/.*)?$'
        return bool(re.match(url_pattern, origin))


class ConfigValidationError(Exception):
    """Exception raised for configuration validation errors."""

    def __init__(self, message: str, errors: List[str]):
        super().__init__(message)
        self.errors = errors

    def __str__(self) -> str:
        return f"{self.args[0]}: {'; '.join(self.errors)}"
