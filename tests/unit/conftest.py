"""
Shared fakes: in-memory GitHub and Drive servers behind httpx.MockTransport,
plus in-process token, sign-in and adapter doubles.
"""

import asyncio
import base64
import hashlib
import json
import re
from datetime import timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

import httpx
import pytest

from sopstore.adapters.base import StorageAdapter
from sopstore.auth.base import AccessTokenProvider, SignInProvider
from sopstore.auth.session import AuthSession, utcnow
from sopstore.concurrency import check_write_version
from sopstore.config.settings import FileHostConfig
from sopstore.exceptions import NotFound
from sopstore.models import Document


def json_response(status: int, data: Any = None, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
    if data is None:
        return httpx.Response(status, headers=headers)
    return httpx.Response(status, json=data, headers=headers)


class FakeGitHub:
    """Minimal GitHub contents API for one repository."""

    def __init__(self, owner: str = "acme", repo: str = "sops", token: str = "ghp_test"):
        self.owner = owner
        self.repo = repo
        self.token = token
        self.repo_exists = True
        self.files: Dict[str, Dict[str, str]] = {}
        self.requests: List[httpx.Request] = []
        self._counter = 0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def _new_sha(self, content: str) -> str:
        self._counter += 1
        return hashlib.sha1(f"{self._counter}:{content}".encode()).hexdigest()

    def put_raw(self, path: str, content: str) -> str:
        sha = self._new_sha(content)
        self.files[path] = {"content": content, "sha": sha}
        return sha

    def sha_of(self, path: str) -> Optional[str]:
        entry = self.files.get(path)
        return entry["sha"] if entry else None

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.headers.get("Authorization", "").split(" ")[-1] != self.token:
            return json_response(401, {"message": "Bad credentials"})

        prefix = f"/repos/{self.owner}/{self.repo}"
        path = unquote(request.url.path)
        if not self.repo_exists or not path.startswith(prefix):
            return json_response(404, {"message": "Not Found"})

        if path == prefix:
            return json_response(200, {"full_name": f"{self.owner}/{self.repo}"})

        file_path = path[len(prefix + "/contents/"):]
        if request.method == "GET":
            return self._get(file_path)
        body = json.loads(request.content or b"{}")
        if request.method == "PUT":
            return self._put(file_path, body)
        if request.method == "DELETE":
            return self._delete(file_path, body)
        return json_response(405, {"message": "Method not allowed"})

    def _get(self, path: str) -> httpx.Response:
        entry = self.files.get(path)
        if entry is not None:
            return json_response(200, {
                "type": "file",
                "name": path.rsplit("/", 1)[-1],
                "path": path,
                "sha": entry["sha"],
                "encoding": "base64",
                "content": base64.b64encode(entry["content"].encode()).decode(),
            })

        children = [p for p in self.files if p.startswith(path + "/")]
        if not children:
            return json_response(404, {"message": "Not Found"})
        return json_response(200, [
            {
                "type": "file",
                "name": p.rsplit("/", 1)[-1],
                "path": p,
                "sha": self.files[p]["sha"],
            }
            for p in sorted(children)
        ])

    def _put(self, path: str, body: Dict[str, Any]) -> httpx.Response:
        entry = self.files.get(path)
        if entry is not None:
            if "sha" not in body:
                return json_response(422, {"message": "\"sha\" wasn't supplied."})
            if body["sha"] != entry["sha"]:
                return json_response(409, {"message": f"{path} does not match {body['sha']}"})
        elif "sha" in body:
            return json_response(409, {"message": f"{path} does not exist"})

        content = base64.b64decode(body["content"]).decode()
        sha = self.put_raw(path, content)
        return json_response(201 if entry is None else 200, {"content": {"path": path, "sha": sha}})

    def _delete(self, path: str, body: Dict[str, Any]) -> httpx.Response:
        entry = self.files.get(path)
        if entry is None:
            return json_response(404, {"message": "Not Found"})
        if body.get("sha") != entry["sha"]:
            return json_response(409, {"message": f"{path} does not match {body.get('sha')}"})
        del self.files[path]
        return json_response(200, {"commit": {}})


class FakeDrive:
    """Minimal Drive v3 files API (metadata, media download, media upload)."""

    def __init__(self, valid_tokens=("token-1",)):
        self.valid_tokens = set(valid_tokens)
        self.items: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self._counter = 0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def _new_id(self) -> str:
        self._counter += 1
        return f"file{self._counter}"

    def add_folder(self, name: str = "SOPs", trashed: bool = False) -> str:
        folder_id = self._new_id()
        self.items[folder_id] = {
            "name": name,
            "mimeType": "application/vnd.google-apps.folder",
            "parents": [],
            "trashed": trashed,
        }
        return folder_id

    def add_file(self, folder_id: str, name: str, content: str) -> str:
        file_id = self._new_id()
        self.items[file_id] = {
            "name": name,
            "mimeType": "application/json",
            "parents": [folder_id],
            "trashed": False,
            "content": content,
            "version": 1,
        }
        return file_id

    def files_in(self, folder_id: str) -> Dict[str, Dict[str, Any]]:
        return {
            item_id: item for item_id, item in self.items.items()
            if folder_id in item["parents"] and not item["trashed"]
        }

    def _describe(self, item_id: str) -> Dict[str, Any]:
        item = self.items[item_id]
        data = {"id": item_id, "name": item["name"], "trashed": item["trashed"]}
        if "version" in item:
            data["version"] = str(item["version"])
        return data

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        token = request.headers.get("Authorization", "")[len("Bearer "):]
        if token not in self.valid_tokens:
            return json_response(401, {"error": {"message": "Invalid Credentials"}})

        path = request.url.path
        if path.startswith("/upload/drive/v3/files/"):
            return self._upload(path.rsplit("/", 1)[-1], request)
        if path == "/drive/v3/files":
            if request.method == "GET":
                return self._list(request)
            return self._create(json.loads(request.content))
        if path.startswith("/drive/v3/files/"):
            item_id = path.rsplit("/", 1)[-1]
            if item_id not in self.items:
                return json_response(404, {"error": {"message": "File not found"}})
            if request.method == "DELETE":
                del self.items[item_id]
                return httpx.Response(204)
            if request.url.params.get("alt") == "media":
                return httpx.Response(200, text=self.items[item_id].get("content", ""))
            return json_response(200, self._describe(item_id))
        return json_response(404, {"error": {"message": "Not found"}})

    def _list(self, request: httpx.Request) -> httpx.Response:
        query = request.url.params.get("q", "")
        parent = re.search(r"'([^']+)' in parents", query).group(1)
        name_match = re.search(r"name='((?:[^'\\]|\\.)*)'", query)

        matches = [
            item_id for item_id in self.files_in(parent)
            if name_match is None or self.items[item_id]["name"] == name_match.group(1)
        ]

        page_size = int(request.url.params.get("pageSize", 100))
        offset = int(request.url.params.get("pageToken", 0))
        page = matches[offset:offset + page_size]
        data: Dict[str, Any] = {"files": [self._describe(i) for i in page]}
        if offset + page_size < len(matches):
            data["nextPageToken"] = str(offset + page_size)
        return json_response(200, data)

    def _create(self, body: Dict[str, Any]) -> httpx.Response:
        if body.get("mimeType") == "application/vnd.google-apps.folder":
            return json_response(200, {"id": self.add_folder(body["name"])})
        file_id = self.add_file(body["parents"][0], body["name"], "")
        return json_response(200, {"id": file_id})

    def _upload(self, file_id: str, request: httpx.Request) -> httpx.Response:
        item = self.items.get(file_id)
        if item is None:
            return json_response(404, {"error": {"message": "File not found"}})
        item["content"] = request.content.decode()
        item["version"] += 1
        return json_response(200, {"id": file_id, "version": str(item["version"])})


class FakeTokens(AccessTokenProvider):
    """Token provider cycling through a fixed list of tokens."""

    def __init__(self, tokens=("token-1",)):
        self._tokens = list(tokens)
        self.invalidations = 0

    async def get_access_token(self) -> str:
        return self._tokens[0]

    async def invalidate(self) -> None:
        self.invalidations += 1
        if len(self._tokens) > 1:
            self._tokens.pop(0)


class FakeSignIn(SignInProvider):
    """Sign-in provider issuing numbered sessions."""

    def __init__(self, lifetime: timedelta = timedelta(hours=1), error: Exception = None,
                 delay: float = 0.0, revoke_error: Exception = None):
        self.lifetime = lifetime
        self.error = error
        self.delay = delay
        self.revoke_error = revoke_error
        self.calls = 0
        self.revoked: List[str] = []

    async def sign_in(self) -> AuthSession:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return AuthSession(
            access_token=f"access-{self.calls}",
            expires_at=utcnow() + self.lifetime,
        )

    async def revoke(self, access_token: str) -> None:
        if self.revoke_error is not None:
            raise self.revoke_error
        self.revoked.append(access_token)


class InMemoryAdapter(StorageAdapter):
    """Versioned in-memory backend with switchable availability."""

    name = "memory"

    def __init__(self):
        self.documents: Dict[str, Document] = {}
        self.available = True
        self.error: Optional[Exception] = None
        self.closed = False
        self._counter = 0

    def _check(self) -> None:
        if self.error is not None:
            raise self.error

    async def get(self, doc_id: str) -> Document:
        self._check()
        if doc_id not in self.documents:
            raise NotFound(f"SOP {doc_id} not found")
        return self.documents[doc_id]

    async def put(self, doc, expected_version=None):
        self._check()
        expected = self._resolve_expected(doc, expected_version)
        doc = doc.prepared_for_save()
        current = self.documents.get(doc.id)
        check_write_version(doc.id, expected, current.version if current else None)
        self._counter += 1
        version = f"v{self._counter}"
        self.documents[doc.id] = doc.with_version(version)
        return version

    async def delete(self, doc_id: str) -> bool:
        self._check()
        self.documents.pop(doc_id, None)
        return True

    async def list_all(self) -> Dict[str, Document]:
        self._check()
        return dict(self.documents)

    async def check_available(self) -> bool:
        return self.available

    async def aclose(self) -> None:
        self.closed = True


def make_document(doc_id: Optional[str] = "sop-1", title: str = "Test", **meta) -> Document:
    return Document(
        id=doc_id,
        meta={"title": title, **meta},
        body={"steps": [{"text": "Check the pump"}]},
    )


@pytest.fixture
def github():
    return FakeGitHub()


@pytest.fixture
def github_config(github):
    return FileHostConfig(owner=github.owner, repo=github.repo, credential=github.token)


@pytest.fixture
def drive():
    return FakeDrive()
