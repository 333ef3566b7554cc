"""
Tests for the storage orchestrator and the local cache.
"""

import json

import pytest

from sopstore.adapters.file_host import FileHostAdapter
from sopstore.cache import JsonFileCache, MemoryCache
from sopstore.exceptions import (
    AuthFailure,
    Conflict,
    NetworkError,
    NotConfigured,
    NotFound,
    RemoteUnavailable,
)
from sopstore.models import Document
from sopstore.orchestrator import ReadFailurePolicy, StorageOrchestrator

from .conftest import InMemoryAdapter, make_document


def cached(*docs: Document) -> MemoryCache:
    cache = MemoryCache()
    cache.replace({doc.id: doc.prepared_for_save() for doc in docs})
    return cache


class TestLocalCache:
    """Tests for MemoryCache and JsonFileCache."""

    def test_memory_cache_replace_is_wholesale(self):
        cache = cached(make_document("sop-1"), make_document("sop-2"))
        cache.replace({"sop-3": make_document("sop-3")})
        assert list(cache.load()) == ["sop-3"]
        assert cache.get("sop-1") is None

    def test_json_cache_survives_reopen(self, tmp_path):
        path = tmp_path / "cache" / "sops.json"
        JsonFileCache(path).replace({"sop-1": make_document().prepared_for_save()})

        reopened = JsonFileCache(path).load()
        assert list(reopened) == ["sop-1"]
        assert reopened["sop-1"].meta["title"] == "Test"
        assert not path.with_suffix(".tmp").exists()

    def test_json_cache_skips_bad_entries(self, tmp_path):
        path = tmp_path / "sops.json"
        path.write_text(json.dumps({"sops": {
            "sop-1": {"id": "sop-1", "meta": {"title": "ok"}},
            "sop-2": {"id": "sop-2"},
        }}))
        assert list(JsonFileCache(path).load()) == ["sop-1"]

    def test_json_cache_missing_or_corrupt(self, tmp_path):
        path = tmp_path / "sops.json"
        assert JsonFileCache(path).load() == {}
        path.write_text("{truncated")
        assert JsonFileCache(path).load() == {}

    @pytest.mark.parametrize("content", [{"sops": []}, {"sops": "sop-1"}, [1, 2]])
    def test_json_cache_without_sops_mapping(self, tmp_path, content):
        path = tmp_path / "sops.json"
        path.write_text(json.dumps(content))
        assert JsonFileCache(path).load() == {}


class TestStorageOrchestrator:
    """Tests for StorageOrchestrator."""

    @pytest.mark.asyncio
    async def test_save_list_delete_scenario(self):
        adapter = InMemoryAdapter()
        orchestrator = StorageOrchestrator(adapter)

        saved = await orchestrator.save_document(make_document("sop-1", title="Test"))
        assert saved.version is not None

        documents = await orchestrator.load_all_documents()
        assert documents["sop-1"].meta["title"] == "Test"

        assert await orchestrator.delete_document("sop-1") is True
        with pytest.raises(NotFound):
            await orchestrator.get_document("sop-1")

    @pytest.mark.asyncio
    async def test_save_refreshes_saved_at(self):
        orchestrator = StorageOrchestrator(InMemoryAdapter())
        doc = Document(id="sop-1", meta={"title": "x"}, saved_at="2020-01-01T00:00:00Z")

        saved = await orchestrator.save_document(doc)
        assert saved.saved_at != "2020-01-01T00:00:00Z"
        assert saved.meta["sopId"] == "sop-1"

    @pytest.mark.asyncio
    async def test_save_with_stale_version_conflicts(self):
        orchestrator = StorageOrchestrator(InMemoryAdapter())
        first = await orchestrator.save_document(make_document())
        second = await orchestrator.save_document(first)

        with pytest.raises(Conflict):
            await orchestrator.save_document(first)

        assert (await orchestrator.get_document("sop-1")).version == second.version

    @pytest.mark.asyncio
    async def test_listing_refreshes_cache(self):
        adapter = InMemoryAdapter()
        cache = cached(make_document("sop-old"))
        orchestrator = StorageOrchestrator(adapter, cache=cache)

        await orchestrator.save_document(make_document("sop-1"))
        await orchestrator.load_all_documents()

        assert list(cache.load()) == ["sop-1"]

    @pytest.mark.asyncio
    async def test_unreachable_backend_degrades_to_cache(self):
        adapter = InMemoryAdapter()
        adapter.error = NetworkError("connection reset")
        orchestrator = StorageOrchestrator(adapter, cache=cached(make_document("sop-1")))

        documents = await orchestrator.load_all_documents()
        assert list(documents) == ["sop-1"]

        doc = await orchestrator.get_document("sop-1")
        assert doc.id == "sop-1"

    @pytest.mark.asyncio
    async def test_any_listing_failure_degrades_to_cache(self):
        adapter = InMemoryAdapter()
        adapter.error = AuthFailure("token rejected")
        orchestrator = StorageOrchestrator(adapter, cache=cached(make_document("sop-1")))

        assert list(await orchestrator.load_all_documents()) == ["sop-1"]

    @pytest.mark.asyncio
    async def test_unavailable_backend_degrades_to_empty_cache(self):
        adapter = InMemoryAdapter()
        adapter.available = False
        orchestrator = StorageOrchestrator(adapter)

        assert await orchestrator.load_all_documents() == {}

    @pytest.mark.asyncio
    async def test_propagate_policy(self):
        adapter = InMemoryAdapter()
        adapter.error = NetworkError("offline")
        orchestrator = StorageOrchestrator(
            adapter,
            cache=cached(make_document("sop-1")),
            read_failure_policy=ReadFailurePolicy.PROPAGATE,
        )

        with pytest.raises(NetworkError):
            await orchestrator.load_all_documents()
        with pytest.raises(NetworkError):
            await orchestrator.get_document("sop-1")

    @pytest.mark.asyncio
    async def test_get_not_found_is_not_masked_by_cache(self):
        orchestrator = StorageOrchestrator(InMemoryAdapter(), cache=cached(make_document("sop-1")))

        with pytest.raises(NotFound):
            await orchestrator.get_document("sop-1")

    @pytest.mark.asyncio
    async def test_get_unreachable_without_cached_copy(self):
        adapter = InMemoryAdapter()
        adapter.error = NetworkError("offline")
        orchestrator = StorageOrchestrator(adapter)

        with pytest.raises(NetworkError):
            await orchestrator.get_document("sop-1")

    @pytest.mark.asyncio
    async def test_writes_never_degrade(self):
        adapter = InMemoryAdapter()
        adapter.error = NetworkError("offline")
        orchestrator = StorageOrchestrator(adapter, cache=cached(make_document("sop-1")))

        with pytest.raises(NetworkError):
            await orchestrator.save_document(make_document("sop-2"))
        with pytest.raises(NetworkError):
            await orchestrator.delete_document("sop-1")

        adapter.error = None
        adapter.available = False
        with pytest.raises(RemoteUnavailable):
            await orchestrator.save_document(make_document("sop-2"))

    @pytest.mark.asyncio
    async def test_no_backend_uses_cache_only(self):
        orchestrator = StorageOrchestrator(None, cache=cached(make_document("sop-1")))

        assert orchestrator.backend_name == "local"
        assert orchestrator.is_configured is False
        assert list(await orchestrator.load_all_documents()) == ["sop-1"]
        assert (await orchestrator.get_document("sop-1")).id == "sop-1"
        with pytest.raises(NotFound):
            await orchestrator.get_document("sop-2")
        with pytest.raises(NotConfigured):
            await orchestrator.save_document(make_document("sop-2"))
        with pytest.raises(NotConfigured):
            await orchestrator.delete_document("sop-1")

    @pytest.mark.asyncio
    async def test_missing_repository_falls_back(self, github, github_config):
        github.repo_exists = False
        adapter = FileHostAdapter(github_config, transport=github.transport)
        orchestrator = StorageOrchestrator(adapter, cache=cached(make_document("sop-1")))

        assert list(await orchestrator.load_all_documents()) == ["sop-1"]
        with pytest.raises(RemoteUnavailable):
            await orchestrator.save_document(make_document("sop-2"))

        await orchestrator.aclose()

    @pytest.mark.asyncio
    async def test_aclose_closes_adapter(self):
        adapter = InMemoryAdapter()
        await StorageOrchestrator(adapter).aclose()
        assert adapter.closed is True
