"""
GitHub repository storage.

Each document is one file, ``sops/<id>.json``, in a repository the team
shares. The contents API needs the blob SHA of a file to update or delete
it, which doubles as the document's version token.
"""

import base64
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ..concurrency import check_write_version
from ..config.settings import FileHostConfig
from ..exceptions import Conflict, InvalidDocument, NotFound, RemoteUnavailable
from ..models import Document, VersionToken, file_name_for, id_from_file_name
from .base import StorageAdapter
from .http import DEFAULT_TIMEOUT, build_client, raise_for_status, send

logger = logging.getLogger(__name__)

GITHUB_MESSAGES = {
    401: "Bad credentials. The GitHub token may be invalid, expired, or missing 'repo' scope",
    403: "Forbidden. The token may not have permission to access this repository",
}

# 422 is what GitHub answers when a sha is missing for an existing file
WRITE_OVERRIDES = {422: Conflict}


def _auth_header(token: str) -> str:
    """Fine-grained and ``ghp_`` tokens use Bearer, older classic tokens use ``token``."""
    if token.startswith(("ghp_", "github_pat_")):
        return f"Bearer {token}"
    return f"token {token}"


class FileHostAdapter(StorageAdapter):
    """
    GitHub repository contents adapter.

    Writes follow the read-before-write policy strictly: overwriting an
    existing file requires the SHA from the caller's last read, and the PUT
    carries that SHA so GitHub rejects a write that lost a race.
    """

    name = "github"

    def __init__(
        self,
        config: FileHostConfig,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the adapter.

        Args:
            config: Repository coordinates and token
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.config = config
        self._client = build_client(
            base_url=config.api_url,
            timeout=timeout,
            headers={
                "Authorization": _auth_header(config.credential),
                "Accept": "application/vnd.github.v3+json",
            },
            transport=transport,
        )

    @property
    def _repo_path(self) -> str:
        return f"/repos/{quote(self.config.owner)}/{quote(self.config.repo)}"

    def _path_for(self, doc_id: str) -> str:
        return f"{self.config.directory}/{file_name_for(doc_id)}"

    def _contents_url(self, path: str) -> str:
        return f"{self._repo_path}/contents/{quote(path)}"

    async def _request(
        self,
        method: str,
        url: str,
        context: str,
        overrides=None,
        **kwargs,
    ) -> httpx.Response:
        response = await send(self._client, method, url, **kwargs)
        raise_for_status(response, context, overrides=overrides, messages=GITHUB_MESSAGES)
        return response

    async def _fetch_file(self, path: str) -> Dict[str, Any]:
        """Fetch contents API metadata (sha, base64 content) for a file."""
        response = await self._request(
            "GET",
            self._contents_url(path),
            f"Loading {path}",
            params={"ref": self.config.branch},
        )
        data = response.json()
        if not isinstance(data, dict) or data.get("type", "file") != "file":
            raise NotFound(f"{path} is not a file")
        return data

    async def _current_sha(self, path: str) -> Optional[VersionToken]:
        try:
            data = await self._fetch_file(path)
        except NotFound:
            return None
        return data.get("sha")

    @staticmethod
    def _decode(data: Dict[str, Any], fallback_id: str) -> Document:
        content = data.get("content") or ""
        if data.get("encoding") == "base64":
            try:
                content = base64.b64decode(content).decode("utf-8")
            except ValueError as e:
                raise InvalidDocument(f"Undecodable content for {fallback_id}: {e}")
        return Document.from_json(content, fallback_id=fallback_id, version=data.get("sha"))

    async def get(self, doc_id: str) -> Document:
        path = self._path_for(doc_id)
        data = await self._fetch_file(path)
        return self._decode(data, doc_id)

    async def put(
        self,
        doc: Document,
        expected_version: Optional[VersionToken] = None,
    ) -> Optional[VersionToken]:
        expected = self._resolve_expected(doc, expected_version)
        doc = doc.prepared_for_save()
        path = self._path_for(doc.id)

        current = await self._current_sha(path)
        check_write_version(doc.id, expected, current, require_token=True)

        body = {
            "message": f"Save SOP: {doc.title}",
            "content": base64.b64encode(doc.to_json().encode("utf-8")).decode("ascii"),
            "branch": self.config.branch,
        }
        if expected:
            body["sha"] = expected

        try:
            response = await self._request(
                "PUT",
                self._contents_url(path),
                f"Saving {path}",
                overrides=WRITE_OVERRIDES,
                json=body,
            )
        except NotFound:
            raise RemoteUnavailable(
                f"Repository {self.config.full_name} does not exist. Please create it on GitHub."
            )

        sha = response.json().get("content", {}).get("sha")
        logger.info(f"SOP saved to GitHub repository: {doc.id}")
        return sha

    async def delete(self, doc_id: str) -> bool:
        path = self._path_for(doc_id)

        # Resolve and delete back to back; the sha in the DELETE makes GitHub
        # reject the call if the file changed in between.
        sha = await self._current_sha(path)
        if sha is None:
            logger.debug(f"{path} already absent")
            return True

        try:
            await self._request(
                "DELETE",
                self._contents_url(path),
                f"Deleting {path}",
                overrides=WRITE_OVERRIDES,
                json={
                    "message": f"Delete SOP: {doc_id}",
                    "sha": sha,
                    "branch": self.config.branch,
                },
            )
        except NotFound:
            return True

        logger.info(f"SOP deleted from GitHub repository: {doc_id}")
        return True

    async def list_all(self) -> Dict[str, Document]:
        try:
            response = await self._request(
                "GET",
                self._contents_url(self.config.directory),
                f"Listing {self.config.directory}/",
                params={"ref": self.config.branch},
            )
        except NotFound:
            logger.info("No SOPs directory found yet - will create on first save")
            return {}

        items = response.json()
        if not isinstance(items, list):
            items = [items]

        def loader(item: Dict[str, Any]):
            async def load() -> Document:
                data = await self._fetch_file(item["path"])
                return self._decode(data, id_from_file_name(item["name"]))
            return load

        entries = [
            (item.get("name"), loader(item))
            for item in items
            if isinstance(item, dict)
            and item.get("type") == "file"
            and str(item.get("name", "")).endswith(".json")
        ]
        return await self._gather_documents(entries)

    async def check_available(self) -> bool:
        if not (self.config.owner and self.config.repo and self.config.credential):
            return False
        try:
            await self._request("GET", self._repo_path, f"Checking {self.config.full_name}")
        except NotFound:
            logger.info(f"Repository {self.config.full_name} does not exist yet")
            return False
        return True

    async def aclose(self) -> None:
        await self._client.aclose()
