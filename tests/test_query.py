"""Query builder tests."""

import pytest
from pydantic import ValidationError

from searcher.query import build_query
from searcher.registry import SearchRegistry

FIELDS = ("name", "title", "description")


def test_text_query_filters_on_model_first() -> None:
    """Built queries filter on the model before anything else."""
    query = build_query("test", "text", {}, FIELDS)
    assert query["query"]["bool"]["filter"][0] == {"term": {"model": "test"}}


def test_one_match_clause_per_field_in_order() -> None:
    """Each default field gets a match clause, in field order."""
    query = build_query("test", "text", {}, FIELDS)
    assert query == {
        "query": {
            "bool": {
                "minimum_should_match": 1,
                "should": [
                    {"match": {"name": "text"}},
                    {"match": {"title": "text"}},
                    {"match": {"description": "text"}},
                ],
                "filter": [{"term": {"model": "test"}}],
            }
        }
    }


def test_caller_filters_follow_model_filter() -> None:
    """Caller filters are appended after the model filter, in order."""
    query = build_query(
        "test",
        "text",
        {"filters": [{"term": {"type": "value"}}, {"term": {"kind": "other"}}]},
        FIELDS,
    )
    assert query["query"]["bool"]["filter"] == [
        {"term": {"model": "test"}},
        {"term": {"type": "value"}},
        {"term": {"kind": "other"}},
    ]


def test_prefix_match_query() -> None:
    """match_query swaps the clause type."""
    query = build_query("test", "text", {"match_query": "prefix"}, FIELDS)
    should = query["query"]["bool"]["should"]
    assert [list(c) for c in should] == [["prefix"]] * 3
    assert should[0] == {"prefix": {"name": "text"}}


def test_fields_override_registration_fields() -> None:
    """Explicit fields replace the registration's fields."""
    query = build_query("test", "text", {"fields": ["title"]}, FIELDS)
    assert query["query"]["bool"]["should"] == [{"match": {"title": "text"}}]


def test_match_options_merge_with_query_text() -> None:
    """match_options turn each field value into an options object."""
    query = build_query(
        "test",
        "long text phrase",
        {
            "fields": ["title"],
            "match_options": {"operator": "and", "minimum_should_match": "75%"},
        },
        FIELDS,
    )
    assert query["query"]["bool"]["should"] == [
        {
            "match": {
                "title": {
                    "query": "long text phrase",
                    "operator": "and",
                    "minimum_should_match": "75%",
                }
            }
        }
    ]


def test_minimum_should_match_aggs_and_sort() -> None:
    """Aggregations and sort sit beside the query."""
    query = build_query(
        "test",
        "text",
        {
            "minimum_should_match": "50%",
            "aggs": {"types": {"terms": {"field": "type"}}},
            "sort": [{"name": "desc"}, "title"],
        },
        FIELDS,
    )
    assert query["query"]["bool"]["minimum_should_match"] == "50%"
    assert query["aggs"] == {"types": {"terms": {"field": "type"}}}
    assert query["sort"] == [{"name": "desc"}, "title"]


def test_structured_query_passes_through() -> None:
    """A prebuilt query object is returned unchanged."""
    prebuilt = {"query": {"term": {"model": "test"}}}
    assert build_query("test", prebuilt, {"fields": ["title"]}, FIELDS) is prebuilt


def test_registration_fields_are_the_default() -> None:
    """Registered fields drive clauses when no fields are given."""
    registry = SearchRegistry()
    registration = registry.register("user", {"fields": ["firstName", "lastName"]})
    query = build_query("user", "ada", None, registration.fields)
    assert query["query"]["bool"]["should"] == [
        {"match": {"firstName": "ada"}},
        {"match": {"lastName": "ada"}},
    ]


def test_unknown_match_query_is_rejected() -> None:
    """Only match, prefix and match_phrase are accepted."""
    with pytest.raises(ValidationError):
        build_query("test", "text", {"match_query": "fuzzy"}, FIELDS)


def test_unknown_option_is_rejected() -> None:
    """Misspelled options fail validation instead of being ignored."""
    with pytest.raises(ValidationError):
        build_query("test", "text", {"filter": []}, FIELDS)
