"""Elasticsearch backend adapter tests against a fake client."""

from typing import Any

import pytest
from elastic_transport import ApiResponseMeta, HttpHeaders, NodeConfig
from elasticsearch import ApiError

from searcher.backends.elasticsearch import ElasticsearchBackend
from searcher.errors import FatalBackendError, RetryableBackendError


def _api_error(status: int, error_type: str = "some_exception") -> ApiError:
    meta = ApiResponseMeta(
        status=status,
        http_version="1.1",
        headers=HttpHeaders(),
        duration=0.0,
        node=NodeConfig("http", "localhost", 9200),
    )
    return ApiError(error_type, meta=meta, body={"error": {"type": error_type}})


class FakeIndices:
    def __init__(self) -> None:
        self.existing: set[str] = set()
        self.created: list[tuple[str, dict[str, Any]]] = []
        self.race = False

    async def exists(self, index: str) -> bool:
        return index in self.existing

    async def create(self, index: str, mappings: dict[str, Any]) -> None:
        if self.race:
            raise _api_error(400, "resource_already_exists_exception")
        self.created.append((index, mappings))

    async def refresh(self, index: str) -> None:
        return None


class FakeClient:
    def __init__(self) -> None:
        self.indices = FakeIndices()
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fail_with: ApiError | None = None
        self.closed = False

    async def search(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("search", kwargs))
        if self.fail_with is not None:
            raise self.fail_with
        return {
            "hits": {
                "total": {"value": 1, "relation": "eq"},
                "hits": [{"_id": "1", "_score": 1.5, "_source": {"id": "1", "model": "user"}}],
            },
            "aggregations": {"genres": {"buckets": []}},
        }

    async def count(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("count", kwargs))
        return {"count": 7}

    async def bulk(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("bulk", kwargs))
        return {"errors": False, "items": []}

    async def delete_by_query(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("delete_by_query", kwargs))
        return {"deleted": 2}

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def es(client: FakeClient) -> ElasticsearchBackend:
    return ElasticsearchBackend(client=client)


@pytest.mark.asyncio
async def test_ensure_index_creates_once_with_keyword_mappings(es, client) -> None:
    await es.ensure_index("searcher")
    await es.ensure_index("searcher")

    assert len(client.indices.created) == 1
    index, mappings = client.indices.created[0]
    assert index == "searcher"
    assert mappings["properties"]["model"] == {"type": "keyword"}


@pytest.mark.asyncio
async def test_ensure_index_tolerates_concurrent_creation(es, client) -> None:
    client.indices.race = True
    await es.ensure_index("searcher")
    assert client.indices.created == []


@pytest.mark.asyncio
async def test_search_forwards_body_and_paging(es, client) -> None:
    body = {"query": {"match_all": {}}, "aggs": {"genres": {"terms": {"field": "genre"}}}}
    hits = await es.search("searcher", body, limit=5, skip=10)

    name, kwargs = client.calls[0]
    assert name == "search"
    assert kwargs["size"] == 5
    assert kwargs["from_"] == 10
    assert kwargs["query"] == {"match_all": {}}
    assert kwargs["track_total_hits"] is True
    assert hits.total == 1
    assert hits.hits[0]["_source"]["model"] == "user"
    assert hits.aggregations == {"genres": {"buckets": []}}


@pytest.mark.asyncio
async def test_search_rejects_unknown_body_keys(es) -> None:
    with pytest.raises(FatalBackendError) as excinfo:
        await es.search("searcher", {"query": {}, "bogus": 3})
    assert excinfo.value.status_code == 400


@pytest.mark.asyncio
async def test_api_errors_are_translated_by_status(es, client) -> None:
    client.fail_with = _api_error(429)
    with pytest.raises(RetryableBackendError) as excinfo:
        await es.search("searcher", {"query": {}})
    assert excinfo.value.status_code == 429

    client.fail_with = _api_error(404)
    with pytest.raises(FatalBackendError):
        await es.search("searcher", {"query": {}})


@pytest.mark.asyncio
async def test_count_bulk_and_purge(es, client) -> None:
    assert await es.count("searcher", {"query": {"term": {"model": "user"}}}) == 7
    await es.bulk("searcher", '{"index":{"_id":"1"}}\n{"id":"1"}\n')
    response = await es.delete_by_query("searcher", {"query": {"term": {"model": "user"}}})

    assert response == {"deleted": 2}
    names = [name for name, _ in client.calls]
    assert names == ["count", "bulk", "delete_by_query"]
    assert client.calls[1][1]["operations"].endswith("\n")
    assert client.calls[2][1]["conflicts"] == "proceed"

    await es.close()
    assert client.closed


@pytest.mark.asyncio
async def test_body_paging_keys_win_over_limit_and_skip(es, client) -> None:
    body = {
        "query": {"match_all": {}},
        "size": 3,
        "from": 6,
        "track_total_hits": False,
        "search_after": [1.5, "1"],
    }
    await es.search("searcher", body, limit=10, skip=0)

    _, kwargs = client.calls[0]
    assert kwargs["size"] == 3
    assert kwargs["from_"] == 6
    assert kwargs["track_total_hits"] is False
    assert kwargs["search_after"] == [1.5, "1"]
