"""Translation of text searches into structured search queries."""

from collections.abc import Mapping, Sequence
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

MatchQuery = Literal["match", "prefix", "match_phrase"]


class QueryOptions(BaseModel):
    """Options controlling query assembly and result pagination.

    Attributes:
        fields: Fields to match against; defaults to the registration's.
        match_query: Full-text query type used for each field.
        match_options: Extra options merged into each field query, e.g.
            analyzer, operator or a per-field minimum_should_match.
        minimum_should_match: How many field clauses must match.
        filters: Additional filter clauses, appended after the model filter.
        aggs: Aggregations attached beside the query.
        sort: Sort directives.
        skip: Number of leading results to skip.
        limit: Maximum number of results to return.
    """

    model_config = ConfigDict(extra="forbid")

    fields: list[str] | None = None
    match_query: MatchQuery = "match"
    match_options: dict[str, Any] | None = None
    minimum_should_match: int | str = 1
    filters: list[dict[str, Any]] = Field(default_factory=list)
    aggs: dict[str, Any] | None = None
    sort: list[Any] | None = None
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=10, ge=0)


def coerce_options(options: QueryOptions | Mapping[str, Any] | None) -> QueryOptions:
    """Validate caller options into a QueryOptions instance."""
    if options is None:
        return QueryOptions()
    if isinstance(options, QueryOptions):
        return options
    return QueryOptions.model_validate(dict(options))


def model_filter(model: str) -> dict[str, Any]:
    """Exact-match filter restricting documents to one model identity."""
    return {"term": {"model": model}}


def build_query(
    model: str,
    text: str | Mapping[str, Any],
    options: QueryOptions | Mapping[str, Any] | None = None,
    default_fields: Sequence[str] = (),
) -> dict[str, Any]:
    """Assemble a boolean full-text query for a model.

    A mapping ``text`` is treated as a finished query and returned as is;
    the caller is then responsible for filtering on ``model``.

    Otherwise the query is an OR of one clause per field, filtered to the
    model identity plus any caller filters::

        {"query": {"bool": {
            "minimum_should_match": 1,
            "should": [{"match": {"name": "search term"}}, ...],
            "filter": [{"term": {"model": "user"}}, ...]}}}

    Args:
        model: Model identity the results are restricted to.
        text: Search text, or a prebuilt query mapping.
        options: Query assembly options.
        default_fields: Fields used when options name none.

    Returns:
        Query body suitable for the search backend.
    """
    if isinstance(text, Mapping):
        return text  # type: ignore[return-value]

    opts = coerce_options(options)
    fields = opts.fields if opts.fields is not None else list(default_fields)

    should: list[dict[str, Any]] = []
    for field in fields:
        if opts.match_options:
            value: Any = {"query": text, **opts.match_options}
        else:
            value = text
        should.append({opts.match_query: {field: value}})

    query: dict[str, Any] = {
        "query": {
            "bool": {
                "minimum_should_match": opts.minimum_should_match,
                "should": should,
                "filter": [model_filter(model), *opts.filters],
            }
        }
    }
    if opts.aggs:
        query["aggs"] = opts.aggs
    if opts.sort:
        query["sort"] = opts.sort
    return query
