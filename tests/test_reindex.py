"""Bulk reindex pipeline tests."""

import json

import pytest

from searcher.errors import BackendError
from searcher.reindex import ReindexPipeline, bulk_body


async def _seed(store, model: str, names: list[str]) -> None:
    handle = store.get_model(model)
    for name in names:
        await handle.create({"name": name})


@pytest.mark.asyncio
async def test_reindex_rebuilds_from_store(searcher, store, backend) -> None:
    """Records created before registration become searchable after reindex."""
    await _seed(store, "test-model", ["Test Model"])

    def upper_name(doc):
        doc["upper_name"] = doc["name"].upper()
        return doc

    searcher.searchable("test-model", {"processor": upper_name})
    summary = await searcher.reindex("test-model")

    assert (summary.scanned, summary.indexed, summary.errors) == (1, 1, 0)
    results = await searcher.search("test-model", "Model")
    assert results.total == 1
    assert results.hits[0]["upper_name"] == "TEST MODEL"


@pytest.mark.asyncio
async def test_reindex_twice_is_content_equal(searcher, store, backend) -> None:
    await _seed(store, "user", [f"user {i}" for i in range(7)])
    searcher.searchable("user")

    await searcher.reindex("user", concurrency=3, interval_ms=0)
    first = backend.documents("searcher")
    await searcher.reindex("user", concurrency=3, interval_ms=0)
    second = backend.documents("searcher")

    assert len(first) == 7
    assert first == second


@pytest.mark.asyncio
async def test_reindex_pages_and_pauses_between_pages(searcher, store, sleeper) -> None:
    """Full pages are followed by a pause; the short last page ends the scan."""
    await _seed(store, "user", [f"user {i}" for i in range(5)])
    searcher.searchable("user")

    summary = await searcher.reindex("user", concurrency=2, interval_ms=50)

    assert summary.scanned == 5
    assert summary.indexed == 5
    assert sleeper.delays == [0.05, 0.05]


@pytest.mark.asyncio
async def test_exact_multiple_ends_on_empty_page(searcher, store, sleeper) -> None:
    await _seed(store, "user", ["a", "b", "c", "d"])
    searcher.searchable("user")

    summary = await searcher.reindex("user", concurrency=2, interval_ms=10)

    assert summary.indexed == 4
    assert sleeper.delays == [0.01, 0.01]


@pytest.mark.asyncio
async def test_empty_collection(searcher, sleeper) -> None:
    searcher.searchable("user")
    summary = await searcher.reindex("user")
    assert (summary.scanned, summary.indexed, summary.errors) == (0, 0, 0)
    assert sleeper.delays == []


@pytest.mark.asyncio
async def test_purge_removes_orphans_of_the_model_only(searcher, store, backend) -> None:
    """Stale documents of the model are purged; other models are untouched."""
    searcher.searchable("user")
    searcher.searchable("test-model")
    await backend.ensure_index("searcher")
    await backend.index_document("searcher", "orphan", {"id": "orphan", "model": "user"})
    await backend.index_document("searcher", "other", {"id": "other", "model": "test-model"})
    await _seed(store, "user", ["Ada"])

    await searcher.reindex("user")

    docs = backend.documents("searcher")
    assert "orphan" not in docs
    assert "other" in docs
    assert [d["name"] for d in docs.values() if d["model"] == "user"] == ["Ada"]


@pytest.mark.asyncio
async def test_purge_failure_does_not_stop_rebuild(searcher, store, backend) -> None:
    await _seed(store, "user", ["Ada"])
    searcher.searchable("user")

    async def broken(index, body):
        raise BackendError.from_status("Bad Request", 400)

    backend.delete_by_query = broken
    summary = await searcher.reindex("user")

    assert summary.indexed == 1
    assert summary.errors == 0


@pytest.mark.asyncio
async def test_bulk_failure_is_counted_and_scan_continues(searcher, store, backend) -> None:
    await _seed(store, "user", [f"user {i}" for i in range(4)])
    searcher.searchable("user")
    real_bulk = backend.bulk
    calls = 0

    async def first_page_fails(index, body):
        nonlocal calls
        calls += 1
        if calls <= 4:
            raise BackendError.from_status("Too Many Requests", 429)
        return await real_bulk(index, body)

    backend.bulk = first_page_fails
    summary = await searcher.reindex("user", concurrency=2, interval_ms=0)

    assert calls == 5
    assert summary.scanned == 4
    assert summary.indexed == 2
    assert summary.errors == 1


@pytest.mark.asyncio
async def test_bad_records_are_skipped(searcher, store, backend) -> None:
    """Records whose processor raises are counted, not fatal."""
    await _seed(store, "user", ["Ada", "", "Grace"])

    def require_name(doc):
        if not doc["name"]:
            raise ValueError("empty name")
        return doc

    searcher.searchable("user", {"processor": require_name})
    summary = await searcher.reindex("user")

    assert summary.scanned == 3
    assert summary.indexed == 2
    assert summary.errors == 1
    assert sorted(d["name"] for d in backend.documents("searcher").values()) == ["Ada", "Grace"]


@pytest.mark.asyncio
async def test_record_without_id_is_skipped(searcher, backend) -> None:
    searcher.searchable("user")

    class NoIds:
        identity = "user"

        async def find(self, skip=0, limit=None):
            return [{"name": "anonymous"}] if skip == 0 else []

    class NoIdStore:
        def get_model(self, identity):
            return NoIds()

    pipeline = ReindexPipeline(searcher.registry, NoIdStore(), backend, searcher.limiter)
    summary = await pipeline.run("user")

    assert summary.errors == 1
    assert summary.indexed == 0


@pytest.mark.asyncio
async def test_unregistered_model_is_a_no_op(searcher) -> None:
    summary = await searcher.reindex("ghost")
    assert summary.model == "ghost"
    assert summary.indexed == 0


def test_bulk_body_pairs_actions_with_documents() -> None:
    body = bulk_body("searcher", [("1", {"id": "1", "model": "user"})])
    lines = [json.loads(line) for line in body.splitlines()]
    assert lines == [
        {"index": {"_index": "searcher", "_id": "1"}},
        {"id": "1", "model": "user"},
    ]
    assert body.endswith("\n")
