"""
Shared SOP API client.

Staff get SOPs from the team's proxy service with no API key or OAuth; the
proxy holds the credentials.
"""

import logging
from typing import Dict, Optional
from urllib.parse import quote

import httpx

from ..config.settings import ProxyConfig
from ..exceptions import NotConfigured, NotFound, StorageError
from ..models import Document, VersionToken, validate_document_id
from .base import StorageAdapter
from .http import DEFAULT_TIMEOUT, build_client, raise_for_status, send

logger = logging.getLogger(__name__)

# The proxy answers 503 when its own folder or credentials are missing
PROXY_OVERRIDES = {503: NotConfigured}


def unquote_etag(value: Optional[str]) -> Optional[str]:
    """Strip the weak prefix and quotes an ETag or If-Match value carries."""
    if not value:
        return None
    value = value.strip()
    if value.startswith("W/"):
        value = value[2:]
    return value.strip('"') or None


class ProxyAdapter(StorageAdapter):
    """Thin REST client mapping the adapter contract 1:1 onto the proxy routes."""

    name = "proxy"

    def __init__(
        self,
        config: ProxyConfig,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._client = build_client(
            base_url=config.base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    @staticmethod
    def _item_url(doc_id: str) -> str:
        return f"/sops/{quote(validate_document_id(doc_id), safe='')}"

    async def _request(self, method: str, url: str, context: str, **kwargs) -> httpx.Response:
        response = await send(self._client, method, url, **kwargs)
        raise_for_status(response, context, overrides=PROXY_OVERRIDES)
        return response

    async def get(self, doc_id: str) -> Document:
        response = await self._request("GET", self._item_url(doc_id), f"Loading {doc_id}")
        return Document.from_dict(
            response.json(),
            fallback_id=doc_id,
            version=unquote_etag(response.headers.get("ETag")),
        )

    async def put(
        self,
        doc: Document,
        expected_version: Optional[VersionToken] = None,
    ) -> Optional[VersionToken]:
        expected = self._resolve_expected(doc, expected_version)
        doc = doc.prepared_for_save()

        headers = {"If-Match": f'"{expected}"'} if expected else {}
        response = await self._request(
            "POST",
            "/sops",
            f"Saving {doc.id}",
            json=doc.to_dict(),
            headers=headers,
        )
        logger.info(f"SOP saved via shared API: {doc.id}")
        return response.json().get("version")

    async def delete(self, doc_id: str) -> bool:
        try:
            await self._request("DELETE", self._item_url(doc_id), f"Deleting {doc_id}")
        except NotFound:
            return True
        return True

    async def list_all(self) -> Dict[str, Document]:
        response = await self._request("GET", "/sops", "Loading SOPs")
        data = response.json()
        sops = data.get("sops", data) if isinstance(data, dict) else None
        if not isinstance(sops, dict):
            raise StorageError("Shared SOP API returned an unexpected listing")

        documents: Dict[str, Document] = {}
        for key, value in sops.items():
            try:
                doc = Document.from_dict(value, fallback_id=key)
            except StorageError as e:
                logger.warning(f"Skipping {key} from shared API: {e}")
                continue
            documents[doc.id] = doc
        return documents

    async def check_available(self) -> bool:
        return bool(self.config.base_url)

    async def aclose(self) -> None:
        await self._client.aclose()
