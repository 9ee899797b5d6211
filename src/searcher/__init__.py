"""Keeps a full-text search index in sync with a record store and queries it."""

from searcher.errors import (
    BackendError,
    BulkIndexError,
    FatalBackendError,
    RetryableBackendError,
    TransformError,
)
from searcher.query import QueryOptions, build_query
from searcher.registry import RegistrationOptions, SearchableRegistration
from searcher.reindex import ReindexSummary
from searcher.retry import RetryLimiter, RetryPolicy
from searcher.service import Searcher, SearchResults

__all__ = [
    "BackendError",
    "BulkIndexError",
    "FatalBackendError",
    "QueryOptions",
    "RegistrationOptions",
    "ReindexSummary",
    "RetryLimiter",
    "RetryPolicy",
    "RetryableBackendError",
    "SearchResults",
    "SearchableRegistration",
    "Searcher",
    "TransformError",
    "build_query",
]
