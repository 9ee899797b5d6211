"""Search backend implementations."""

from searcher.backends.base import BackendHits, SearchBackend
from searcher.backends.memory import MemoryBackend

__all__ = [
    "BackendHits",
    "MemoryBackend",
    "SearchBackend",
    "build_backend",
]


def build_backend(kind: str, elasticsearch_url: str) -> SearchBackend:
    """Create the configured search backend.

    Args:
        kind: "elasticsearch" or "memory".
        elasticsearch_url: Node URL for the Elasticsearch backend.

    Returns:
        A ready-to-use backend instance.
    """
    if kind == "memory":
        return MemoryBackend()
    from searcher.backends.elasticsearch import ElasticsearchBackend

    return ElasticsearchBackend(url=elasticsearch_url)
