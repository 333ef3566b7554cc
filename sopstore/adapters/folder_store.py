"""
Google Drive folder storage.

Documents live as ``<id>.json`` files inside one folder. The same adapter
serves the interactive client (tokens from the lifecycle manager) and the
proxy service (tokens from a service account).
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from ..auth.base import AccessTokenProvider
from ..concurrency import check_write_version
from ..config.settings import FolderStoreConfig
from ..exceptions import NotConfigured, NotFound, RemoteUnavailable
from ..models import Document, VersionToken, file_name_for, id_from_file_name
from .base import StorageAdapter
from .http import DEFAULT_TIMEOUT, build_client, raise_for_status, send

logger = logging.getLogger(__name__)

DRIVE_API = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_API = "https://www.googleapis.com/upload/drive/v3"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
JSON_MIME_TYPE = "application/json"
PAGE_SIZE = 500


def escape_query_value(value: str) -> str:
    """Escape a literal for use inside single quotes in a Drive query."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _version_of(file: Dict[str, Any]) -> Optional[VersionToken]:
    version = file.get("version")
    return str(version) if version is not None else None


class FolderStoreAdapter(StorageAdapter):
    """
    Google Drive adapter.

    Writes keep file identity: an existing ``<id>.json`` is updated in place,
    a new one is created (metadata) and then filled (media upload). An empty
    file left by a failed upload reads as missing and is filled by the next
    ``put``. Drive's file ``version`` is used as an advisory version token.
    """

    name = "drive"

    def __init__(
        self,
        tokens: AccessTokenProvider,
        folder_id: str = "",
        api_key: str = "",
        folder_name: str = "SOPs",
        create_folder: bool = True,
        on_folder_created: Optional[Callable[[str], None]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Drive adapter.

        Args:
            tokens: Source of bearer tokens
            folder_id: Folder holding the documents (created when empty)
            api_key: Optional API key sent as the ``key`` parameter
            folder_name: Name used when the folder has to be created
            create_folder: Whether a missing folder may be created
            on_folder_created: Called with the new folder id so it can be persisted
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self._tokens = tokens
        self.folder_id = folder_id
        self.api_key = api_key
        self.folder_name = folder_name
        self.create_folder = create_folder
        self._on_folder_created = on_folder_created
        self._folder_verified = False
        self._folder_lock = asyncio.Lock()
        self._client = build_client(timeout=timeout, transport=transport)

    @property
    def tokens(self) -> AccessTokenProvider:
        return self._tokens

    @classmethod
    def from_config(
        cls,
        config: FolderStoreConfig,
        tokens: AccessTokenProvider,
        on_folder_created: Optional[Callable[[str], None]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "FolderStoreAdapter":
        return cls(
            tokens,
            folder_id=config.folder_id,
            api_key=config.api_key,
            folder_name=config.folder_name,
            on_folder_created=on_folder_created,
            timeout=timeout,
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        url: str,
        context: str,
        params: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> httpx.Response:
        token = await self._tokens.get_access_token()
        params = dict(params or {})
        if self.api_key:
            params["key"] = self.api_key

        headers = {"Authorization": f"Bearer {token}", **kwargs.pop("headers", {})}
        response = await send(self._client, method, url, params=params, headers=headers, **kwargs)

        if response.status_code == 401:
            await self._tokens.invalidate()
        raise_for_status(response, context)
        return response

    async def _ensure_folder(self) -> str:
        """Return the folder id, verifying or creating the folder on first use."""
        async with self._folder_lock:
            if self._folder_verified:
                return self.folder_id

            if self.folder_id and not self.create_folder:
                self._folder_verified = True
                return self.folder_id

            if self.folder_id:
                try:
                    response = await self._request(
                        "GET",
                        f"{DRIVE_API}/files/{self.folder_id}",
                        "Checking SOPs folder",
                        params={"fields": "id, name, trashed"},
                    )
                    if not response.json().get("trashed"):
                        self._folder_verified = True
                        return self.folder_id
                except NotFound:
                    pass
                logger.info("Folder not found, creating new one...")

            if not self.create_folder:
                raise NotConfigured("No Drive folder configured")

            response = await self._request(
                "POST",
                f"{DRIVE_API}/files",
                "Creating SOPs folder",
                params={"fields": "id"},
                json={"name": self.folder_name, "mimeType": FOLDER_MIME_TYPE},
            )
            self.folder_id = response.json()["id"]
            self._folder_verified = True
            logger.info(f"Created SOPs folder: {self.folder_id}")

            if self._on_folder_created:
                self._on_folder_created(self.folder_id)
            return self.folder_id

    async def _find_file(self, folder_id: str, doc_id: str) -> Optional[Dict[str, Any]]:
        name = escape_query_value(file_name_for(doc_id))
        response = await self._request(
            "GET",
            f"{DRIVE_API}/files",
            f"Looking up {doc_id}",
            params={
                "q": f"name='{name}' and '{escape_query_value(folder_id)}' in parents and trashed=false",
                "fields": "files(id, name, version)",
                "spaces": "drive",
            },
        )
        files = response.json().get("files") or []
        return files[0] if files else None

    async def _download(self, file: Dict[str, Any]) -> Document:
        response = await self._request(
            "GET",
            f"{DRIVE_API}/files/{file['id']}",
            f"Loading {file.get('name')}",
            params={"alt": "media"},
        )
        doc_id = id_from_file_name(file.get("name", ""))
        if not response.text.strip():
            # Created but never filled; a retried put will complete it
            raise NotFound(f"SOP {doc_id} has no content yet")
        return Document.from_json(response.text, fallback_id=doc_id, version=_version_of(file))

    async def _upload(self, file_id: str, doc: Document) -> Dict[str, Any]:
        response = await self._request(
            "PATCH",
            f"{DRIVE_UPLOAD_API}/files/{file_id}",
            f"Uploading {doc.id}",
            params={"uploadType": "media", "fields": "id, version"},
            headers={"Content-Type": JSON_MIME_TYPE},
            content=doc.to_json().encode("utf-8"),
        )
        return response.json()

    async def get(self, doc_id: str) -> Document:
        folder_id = await self._ensure_folder()
        file = await self._find_file(folder_id, doc_id)
        if file is None:
            raise NotFound(f"SOP {doc_id} not found")
        return await self._download(file)

    async def put(
        self,
        doc: Document,
        expected_version: Optional[VersionToken] = None,
    ) -> Optional[VersionToken]:
        expected = self._resolve_expected(doc, expected_version)
        doc = doc.prepared_for_save()
        folder_id = await self._ensure_folder()

        existing = await self._find_file(folder_id, doc.id)
        current = _version_of(existing) if existing else None
        check_write_version(doc.id, expected, current, require_token=False)

        if existing:
            file_id = existing["id"]
        else:
            response = await self._request(
                "POST",
                f"{DRIVE_API}/files",
                f"Creating {doc.id}",
                params={"fields": "id"},
                json={
                    "name": file_name_for(doc.id),
                    "parents": [folder_id],
                    "mimeType": JSON_MIME_TYPE,
                },
            )
            file_id = response.json()["id"]

        uploaded = await self._upload(file_id, doc)
        logger.info(f"SOP {'updated' if existing else 'saved'} in Google Drive: {doc.id}")
        return _version_of(uploaded)

    async def delete(self, doc_id: str) -> bool:
        folder_id = await self._ensure_folder()
        file = await self._find_file(folder_id, doc_id)
        if file is None:
            return True

        try:
            await self._request("DELETE", f"{DRIVE_API}/files/{file['id']}", f"Deleting {doc_id}")
        except NotFound:
            return True

        logger.info(f"SOP deleted from Google Drive: {doc_id}")
        return True

    async def _list_files(self, folder_id: str) -> List[Dict[str, Any]]:
        files: List[Dict[str, Any]] = []
        page_token = None

        while True:
            params = {
                "q": f"'{escape_query_value(folder_id)}' in parents and trashed=false and name contains '.json'",
                "fields": "nextPageToken, files(id, name, version)",
                "spaces": "drive",
                "pageSize": PAGE_SIZE,
            }
            if page_token:
                params["pageToken"] = page_token

            response = await self._request("GET", f"{DRIVE_API}/files", "Listing SOPs", params=params)
            data = response.json()
            files.extend(data.get("files") or [])

            page_token = data.get("nextPageToken")
            if not page_token:
                return files

    async def list_all(self) -> Dict[str, Document]:
        folder_id = await self._ensure_folder()
        try:
            files = await self._list_files(folder_id)
        except NotFound:
            logger.info(f"Folder {folder_id} not found - treating as empty")
            return {}

        entries = [
            (file.get("name"), (lambda f=file: self._download(f)))
            for file in files
            if str(file.get("name", "")).endswith(".json")
        ]
        return await self._gather_documents(entries)

    async def check_available(self) -> bool:
        try:
            await self._ensure_folder()
        except (NotConfigured, RemoteUnavailable) as e:
            logger.info(f"Drive folder unavailable: {e}")
            return False
        return True

    async def aclose(self) -> None:
        await self._client.aclose()
