"""
Tests for the proxy service REST API.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from sopstore.config.settings import ProxyServiceConfig
from sopstore.proxy_service import ProxyServer, create_app

from .conftest import FakeTokens, make_document


def refusing_transport(drive, method: str, path: str) -> httpx.MockTransport:
    """Drive transport that answers 404 to one kind of call, as when the folder is gone."""
    def handle(request: httpx.Request) -> httpx.Response:
        if request.method == method and request.url.path == path:
            return httpx.Response(404, json={"error": {"message": "File not found: parent"}})
        return drive.handle(request)
    return httpx.MockTransport(handle)


@pytest.fixture
def folder_id(drive):
    return drive.add_folder()


@pytest.fixture
def client(drive, folder_id):
    config = ProxyServiceConfig(folder_id=folder_id, cors_origins=["https://staff.example.com"])
    app = create_app(config, token_provider=FakeTokens(), transport=drive.transport)
    return TestClient(app)


class TestProxyRoutes:
    """Tests for the /sops routes."""

    def test_save_and_get(self, client):
        response = client.post("/sops", json=make_document().to_dict())
        assert response.status_code == 200
        saved = response.json()
        assert saved["ok"] is True
        assert saved["id"] == "sop-1"

        response = client.get("/sops/sop-1")
        assert response.status_code == 200
        assert response.json()["meta"]["title"] == "Test"
        assert response.headers["etag"] == f'"{saved["version"]}"'

    def test_save_assigns_id(self, client, drive, folder_id):
        response = client.post("/sops", json={"meta": {"title": "New"}})
        assert response.status_code == 200
        new_id = response.json()["id"]
        assert new_id.startswith("sop-")
        assert [f["name"] for f in drive.files_in(folder_id).values()] == [f"{new_id}.json"]

    def test_stale_if_match_conflicts(self, client):
        first = client.post("/sops", json=make_document(title="v1").to_dict()).json()
        second = client.post(
            "/sops",
            json=make_document(title="v2").to_dict(),
            headers={"If-Match": f'"{first["version"]}"'},
        )
        assert second.status_code == 200

        stale = client.post(
            "/sops",
            json=make_document(title="stale").to_dict(),
            headers={"If-Match": f'"{first["version"]}"'},
        )
        assert stale.status_code == 409
        assert stale.json()["code"] == "CONFLICT"

    def test_list(self, client, drive, folder_id):
        client.post("/sops", json=make_document().to_dict())
        client.post("/sops", json=make_document(doc_id="sop-2", title="Other").to_dict())
        drive.add_file(folder_id, "sop-bad.json", "not json")

        response = client.get("/sops")
        assert response.status_code == 200
        sops = response.json()["sops"]
        assert sorted(sops) == ["sop-1", "sop-2"]
        assert sops["sop-2"]["meta"]["title"] == "Other"

    def test_get_missing(self, client):
        response = client.get("/sops/sop-404")
        assert response.status_code == 404
        assert "error" in response.json()

    def test_delete(self, client):
        client.post("/sops", json=make_document().to_dict())

        response = client.delete("/sops/sop-1")
        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert client.delete("/sops/sop-1").json() == {"ok": True}
        assert client.get("/sops/sop-1").status_code == 404

    def test_invalid_document(self, client):
        response = client.post("/sops", json={"id": "sop-1", "meta": {"sopId": "sop-2"}})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_DOCUMENT"

    def test_non_string_id_is_invalid(self, client):
        response = client.post("/sops", json={"id": 5, "meta": {"title": "x"}})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_DOCUMENT"

        response = client.post("/sops", json={"meta": {"sopId": ["sop-1"], "title": "x"}})
        assert response.status_code == 400

    def test_non_object_body(self, client):
        response = client.post("/sops", json=["not", "a", "document"])
        assert response.status_code == 400
        assert "error" in response.json()

    def test_unknown_route_and_method(self, client):
        for response in (client.get("/nope"), client.put("/sops", json={})):
            assert response.status_code == 404
            assert response.json() == {"error": "Not found"}

    def test_cors_preflight(self, client):
        response = client.options(
            "/sops",
            headers={
                "Origin": "https://staff.example.com",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "https://staff.example.com"


class TestProxyConfiguration:
    """Tests for an incompletely configured service."""

    def test_missing_folder_answers_503(self):
        client = TestClient(create_app(ProxyServiceConfig(), token_provider=FakeTokens()))

        for response in (client.get("/sops"), client.get("/sops/sop-1"), client.delete("/sops/sop-1")):
            assert response.status_code == 503
            assert "SOP_FOLDER_ID" in response.json()["error"]

    def test_bad_credentials_answer_503(self):
        config = ProxyServiceConfig(folder_id="folder", service_account_json="{not json")
        client = TestClient(create_app(config))

        response = client.get("/sops")
        assert response.status_code == 503
        assert response.json()["error"].startswith("Server not configured")

    def test_health(self, drive, folder_id):
        server = ProxyServer(ProxyServiceConfig(folder_id=folder_id), token_provider=FakeTokens())
        data = TestClient(server.get_app()).get("/health").json()
        assert data["status"] == "healthy"

        unconfigured = TestClient(create_app(ProxyServiceConfig())).get("/health")
        assert unconfigured.status_code == 200
        assert unconfigured.json()["status"] == "unconfigured"

    def test_token_provider_is_reused(self, drive, folder_id):
        tokens = FakeTokens()
        server = ProxyServer(
            ProxyServiceConfig(folder_id=folder_id),
            token_provider=tokens,
            transport=drive.transport,
        )
        first = server.create_adapter()
        second = server.create_adapter()
        assert first is not second
        assert first.tokens is second.tokens is tokens


class TestProxyStoreFailures:
    """Tests for store failures on writes."""

    def test_save_into_missing_folder_answers_500(self, drive, folder_id):
        transport = refusing_transport(drive, "POST", "/drive/v3/files")
        client = TestClient(create_app(
            ProxyServiceConfig(folder_id=folder_id), token_provider=FakeTokens(), transport=transport,
        ))

        response = client.post("/sops", json=make_document().to_dict())
        assert response.status_code == 500
        assert response.json()["code"] == "STORAGE_ERROR"
        assert "sop-1" in response.json()["error"]

    def test_delete_from_missing_folder_answers_500(self, drive, folder_id):
        transport = refusing_transport(drive, "GET", "/drive/v3/files")
        client = TestClient(create_app(
            ProxyServiceConfig(folder_id=folder_id), token_provider=FakeTokens(), transport=transport,
        ))

        response = client.delete("/sops/sop-1")
        assert response.status_code == 500
        assert response.json()["code"] == "STORAGE_ERROR"

    def test_read_of_missing_sop_still_answers_404(self, drive, folder_id):
        transport = refusing_transport(drive, "POST", "/drive/v3/files")
        client = TestClient(create_app(
            ProxyServiceConfig(folder_id=folder_id), token_provider=FakeTokens(), transport=transport,
        ))

        assert client.get("/sops/sop-1").status_code == 404
