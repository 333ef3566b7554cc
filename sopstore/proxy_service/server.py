"""
FastAPI proxy service for shared SOP storage.

Staff clients talk to this service without any credentials of their own;
the service holds a Google service account and forwards every call to the
shared Drive folder.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..adapters.folder_store import FolderStoreAdapter
from ..auth.base import AccessTokenProvider
from ..config.settings import ProxyServiceConfig
from ..exceptions import (
    AuthFailure,
    Conflict,
    InvalidDocument,
    NotConfigured,
    NotFound,
    StorageError,
)
from .routes import create_sop_router

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

# First match wins, so subclasses must come before their bases
ERROR_STATUS = [
    (NotFound, 404),
    (Conflict, 409),
    (InvalidDocument, 400),
    (NotConfigured, 503),
]


def status_for_error(exc: StorageError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


class ProxyServer:
    """FastAPI server exposing the shared SOP folder over REST."""

    def __init__(
        self,
        config: ProxyServiceConfig,
        token_provider: Optional[AccessTokenProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize proxy server.

        Args:
            config: Proxy service configuration
            token_provider: Token source; built from the service account key when omitted
            transport: Optional httpx transport for the Drive client (tests)
        """
        self.config = config
        self._token_provider = token_provider
        self._transport = transport
        self.server: Optional[uvicorn.Server] = None
        self._server_task: Optional[asyncio.Task] = None

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            logger.info("Proxy service starting up")
            if not self.is_configured:
                logger.warning(
                    "Proxy service is not configured (folder id or service account "
                    "missing); SOP routes will answer 503"
                )
            yield
            logger.info("Proxy service shutting down")

        self.app = FastAPI(
            title="SOP Store Proxy",
            description="Shared SOP storage backed by a Google Drive folder",
            version=API_VERSION,
            lifespan=lifespan,
        )

        self._setup_middleware()
        self._setup_routes()
        self._setup_error_handlers()

    @property
    def is_configured(self) -> bool:
        has_credentials = self._token_provider is not None or self.config.has_credentials()
        return bool(self.config.folder_id) and has_credentials

    def _get_token_provider(self) -> AccessTokenProvider:
        """Return the cached token provider, building it on first use."""
        if self._token_provider is None:
            # Imported here so the client side never needs google-auth loaded
            from ..auth.service_account import ServiceAccountTokenProvider

            try:
                info = self.config.credentials_info()
                self._token_provider = ServiceAccountTokenProvider(info)
            except (ValueError, OSError, AuthFailure) as e:
                raise NotConfigured(f"Server not configured: {e}")
            logger.info(
                f"Using service account {self._token_provider.service_account_email}"
            )
        return self._token_provider

    def create_adapter(self) -> FolderStoreAdapter:
        """Build the per-request Drive adapter.

        Raises:
            NotConfigured: If the folder id or credentials are missing
        """
        if not self.config.folder_id:
            raise NotConfigured("SOP_FOLDER_ID not configured")

        return FolderStoreAdapter(
            self._get_token_provider(),
            folder_id=self.config.folder_id,
            create_folder=False,
            timeout=self.config.http_timeout,
            transport=self._transport,
        )

    def _setup_middleware(self) -> None:
        cors_origins = self.config.cors_origins or ["*"]
        logger.info(f"CORS allowed origins: {cors_origins}")

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["*"],
            expose_headers=["ETag"],
        )

    def _setup_routes(self) -> None:
        @self.app.get("/health", tags=["Health"])
        async def health_check():
            """Report whether the service can reach its folder configuration."""
            return {
                "status": "healthy" if self.is_configured else "unconfigured",
                "version": API_VERSION,
                "server_time": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            }

        self.app.include_router(create_sop_router(self.create_adapter), tags=["SOPs"])

    def _setup_error_handlers(self) -> None:
        @self.app.exception_handler(StorageError)
        async def storage_error_handler(request: Request, exc: StorageError):
            status = status_for_error(exc)
            if status >= 500:
                logger.error(f"{request.method} {request.url.path} failed: {exc}")
            return JSONResponse(status_code=status, content=exc.to_dict())

        @self.app.exception_handler(StarletteHTTPException)
        async def http_error_handler(request: Request, exc: StarletteHTTPException):
            # Unknown routes and unsupported methods look the same to clients
            if exc.status_code in (404, 405):
                return JSONResponse(status_code=404, content={"error": "Not found"})
            return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

        @self.app.exception_handler(RequestValidationError)
        async def validation_error_handler(request: Request, exc: RequestValidationError):
            return JSONResponse(
                status_code=400,
                content={
                    "error": "Invalid request body",
                    "details": jsonable_encoder(exc.errors()),
                },
            )

        @self.app.exception_handler(Exception)
        async def general_error_handler(request: Request, exc: Exception):
            logger.error(f"Unhandled error in proxy endpoint: {exc}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"error": "An unexpected error occurred"},
            )

    async def start_server(self) -> None:
        """Start the server in the background without blocking."""
        if self._server_task is not None:
            logger.warning("Proxy service already running")
            return

        host, port = self.config.host, self.config.port
        logger.info(f"Starting proxy service on {host}:{port}")

        server_config = uvicorn.Config(
            app=self.app,
            host=host,
            port=port,
            log_level=self.config.log_level.value.lower(),
            access_log=True,
            loop="asyncio",
        )
        self.server = uvicorn.Server(server_config)
        self._server_task = asyncio.create_task(self.server.serve())

        logger.info(f"Proxy service started on http://{host}:{port}")

    async def stop_server(self) -> None:
        """Stop the server gracefully."""
        if self.server is None:
            logger.warning("Proxy service not running")
            return

        logger.info("Stopping proxy service...")
        self.server.should_exit = True

        if self._server_task:
            try:
                await asyncio.wait_for(self._server_task, timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning("Server shutdown timed out, cancelling task")
                self._server_task.cancel()
                try:
                    await self._server_task
                except asyncio.CancelledError:
                    pass

        self.server = None
        self._server_task = None
        logger.info("Proxy service stopped")

    def run(self) -> None:
        """Serve in the foreground until interrupted."""
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.value.lower(),
        )

    def get_app(self) -> FastAPI:
        return self.app


def create_app(
    config: ProxyServiceConfig,
    token_provider: Optional[AccessTokenProvider] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the proxy FastAPI application."""
    return ProxyServer(config, token_provider=token_provider, transport=transport).get_app()
