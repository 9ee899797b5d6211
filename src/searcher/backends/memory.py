"""In-process search backend for development and tests.

Evaluates the subset of the query DSL that searcher builds: ``bool``
(should/must/filter/must_not with minimum_should_match), ``match``,
``match_phrase``, ``prefix``, ``term``, ``terms``, ``ids`` and
``match_all``, plus sorting and ``terms`` aggregations. Text is analyzed
by lowercasing and splitting on non-word characters.
"""

import json
import math
import re
from collections import Counter
from typing import Any

import structlog

from searcher.backends.base import BackendHits
from searcher.errors import BackendError

logger = structlog.get_logger()

_TOKEN = re.compile(r"\w+")


def _tokens(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [t for item in value for t in _tokens(item)]
    return _TOKEN.findall(str(value).lower())


def _field_value(doc: dict[str, Any], field: str) -> Any:
    value: Any = doc
    for part in field.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _required(count: int, spec: int | str | None, default: int) -> int:
    """Resolve a minimum_should_match spec against a clause count."""
    if spec is None:
        return default
    if isinstance(spec, str) and spec.strip().endswith("%"):
        pct = float(spec.strip()[:-1])
        if pct < 0:
            return count - math.floor(count * -pct / 100)
        return math.floor(count * pct / 100)
    n = int(spec)
    return count + n if n < 0 else n


def _split_clause(clause: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    if len(clause) != 1:
        raise BackendError.from_status(f"malformed query clause {clause!r}", 400)
    ((kind, spec),) = clause.items()
    return kind, spec


def _single_field(kind: str, spec: dict[str, Any]) -> tuple[str, Any]:
    if not isinstance(spec, dict) or len(spec) != 1:
        raise BackendError.from_status(f"[{kind}] query requires one field", 400)
    ((field, value),) = spec.items()
    return field, value


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _match(doc: dict[str, Any], spec: dict[str, Any]) -> float:
    field, value = _single_field("match", spec)
    options = value if isinstance(value, dict) else {"query": value}
    wanted = _tokens(options.get("query"))
    if not wanted:
        return 0.0
    present = set(_tokens(_field_value(doc, field)))
    hits = sum(1 for t in wanted if t in present)
    if str(options.get("operator", "or")).lower() == "and":
        needed = len(wanted)
    else:
        needed = max(1, _required(len(wanted), options.get("minimum_should_match"), 1))
    return float(hits) if hits >= needed else 0.0


def _match_phrase(doc: dict[str, Any], spec: dict[str, Any]) -> float:
    field, value = _single_field("match_phrase", spec)
    query = value.get("query") if isinstance(value, dict) else value
    wanted = _tokens(query)
    present = _tokens(_field_value(doc, field))
    if not wanted:
        return 0.0
    for start in range(len(present) - len(wanted) + 1):
        if present[start : start + len(wanted)] == wanted:
            return float(len(wanted))
    return 0.0


def _prefix(doc: dict[str, Any], spec: dict[str, Any]) -> float:
    field, value = _single_field("prefix", spec)
    prefix = value.get("value") if isinstance(value, dict) else value
    prefix = str(prefix).lower()
    return 1.0 if any(t.startswith(prefix) for t in _tokens(_field_value(doc, field))) else 0.0


def _term(doc: dict[str, Any], spec: dict[str, Any]) -> float:
    field, value = _single_field("term", spec)
    expected = value.get("value") if isinstance(value, dict) else value
    actual = _field_value(doc, field)
    if isinstance(actual, list):
        return 1.0 if expected in actual else 0.0
    return 1.0 if actual == expected else 0.0


def _terms(doc: dict[str, Any], spec: dict[str, Any]) -> float:
    field, values = _single_field("terms", spec)
    actual = _field_value(doc, field)
    candidates = actual if isinstance(actual, list) else [actual]
    return 1.0 if any(c in values for c in candidates) else 0.0


def _bool(doc: dict[str, Any], spec: dict[str, Any]) -> float:
    score = 0.0
    for clause in _as_list(spec.get("must")):
        s = _evaluate(doc, clause)
        if not s:
            return 0.0
        score += s
    for clause in _as_list(spec.get("filter")):
        if not _evaluate(doc, clause):
            return 0.0
    for clause in _as_list(spec.get("must_not")):
        if _evaluate(doc, clause):
            return 0.0

    should = _as_list(spec.get("should"))
    scoring_only = bool(spec.get("must") or spec.get("filter"))
    explicit = spec.get("minimum_should_match")
    needed = _required(len(should), explicit, 0 if scoring_only else 1)
    if not should and explicit is None:
        needed = 0
    matched = 0
    for clause in should:
        s = _evaluate(doc, clause)
        if s:
            matched += 1
            score += s
    if matched < needed:
        return 0.0
    return score or 1.0


_EVALUATORS = {
    "bool": _bool,
    "match": _match,
    "match_phrase": _match_phrase,
    "prefix": _prefix,
    "term": _term,
    "terms": _terms,
}


def _evaluate(doc: dict[str, Any], clause: dict[str, Any]) -> float:
    kind, spec = _split_clause(clause)
    if kind == "match_all":
        return 1.0
    if kind == "ids":
        return 1.0 if str(doc.get("id")) in {str(v) for v in spec.get("values", [])} else 0.0
    evaluator = _EVALUATORS.get(kind)
    if evaluator is None:
        raise BackendError.from_status(f"unknown query [{kind}]", 400)
    return evaluator(doc, spec)


def _sort_key(value: Any) -> tuple[int, Any]:
    # missing values sort last in either direction
    if value is None:
        return (1, "")
    if isinstance(value, (int, float)):
        return (0, value)
    return (0, str(value))


class MemoryBackend:
    """Dictionary-backed stand-in for a search engine."""

    def __init__(self) -> None:
        """Initialize an empty backend."""
        self._indexes: dict[str, dict[str, dict[str, Any]]] = {}

    def documents(self, index: str) -> dict[str, dict[str, Any]]:
        """Return a copy of the documents stored in an index, keyed by id."""
        return {k: dict(v) for k, v in self._indexes.get(index, {}).items()}

    def _index(self, index: str) -> dict[str, dict[str, Any]]:
        docs = self._indexes.get(index)
        if docs is None:
            raise BackendError.from_status(f"no such index [{index}]", 404)
        return docs

    def _matching(
        self, index: str, body: dict[str, Any]
    ) -> list[tuple[str, float, dict[str, Any]]]:
        query = body.get("query") or {"match_all": {}}
        results = []
        for doc_id, doc in self._index(index).items():
            score = _evaluate(doc, query)
            if score:
                results.append((doc_id, score, doc))
        return results

    async def ensure_index(self, index: str) -> None:
        if index not in self._indexes:
            self._indexes[index] = {}
            logger.debug("memory_index_created", index=index)

    async def search(
        self,
        index: str,
        body: dict[str, Any],
        limit: int | None = None,
        skip: int | None = None,
    ) -> BackendHits:
        results = self._matching(index, body)
        results.sort(key=lambda r: -r[1])
        for directive in reversed(_as_list(body.get("sort"))):
            if isinstance(directive, str):
                field, order = directive, "asc"
            else:
                ((field, order),) = directive.items()
                if isinstance(order, dict):
                    order = order.get("order", "asc")
            if field == "_score":
                results.sort(key=lambda r: r[1], reverse=order != "asc")
                continue
            present = [r for r in results if _field_value(r[2], field) is not None]
            missing = [r for r in results if _field_value(r[2], field) is None]
            present.sort(
                key=lambda r, f=field: _sort_key(_field_value(r[2], f)),
                reverse=order == "desc",
            )
            results = present + missing

        aggregations = self._aggregate(body.get("aggs") or body.get("aggregations"), results)
        start = skip or 0
        end = start + limit if limit is not None else None
        hits = [
            {"_id": doc_id, "_score": score, "_source": dict(doc)}
            for doc_id, score, doc in results[start:end]
        ]
        return BackendHits(hits=hits, total=len(results), aggregations=aggregations)

    def _aggregate(
        self,
        aggs: dict[str, Any] | None,
        results: list[tuple[str, float, dict[str, Any]]],
    ) -> dict[str, Any] | None:
        if not aggs:
            return None
        out: dict[str, Any] = {}
        for name, spec in aggs.items():
            terms = spec.get("terms")
            if terms is None:
                raise BackendError.from_status(f"unsupported aggregation [{name}]", 400)
            counts: Counter[Any] = Counter()
            for _, _, doc in results:
                for value in _as_list(_field_value(doc, terms["field"])):
                    counts[value] += 1
            buckets = sorted(counts.items(), key=lambda kv: (-kv[1], str(kv[0])))
            size = terms.get("size", 10)
            out[name] = {
                "buckets": [{"key": k, "doc_count": n} for k, n in buckets[:size]]
            }
        return out

    async def count(self, index: str, body: dict[str, Any]) -> int:
        return len(self._matching(index, body))

    async def index_document(
        self, index: str, doc_id: str, document: dict[str, Any]
    ) -> None:
        # Round-trip through JSON like a real backend would serialize it.
        stored = json.loads(json.dumps(document, default=str))
        self._indexes.setdefault(index, {})[str(doc_id)] = stored

    async def delete_document(self, index: str, doc_id: str) -> None:
        docs = self._index(index)
        if docs.pop(str(doc_id), None) is None:
            raise BackendError.from_status(f"document [{doc_id}] not found", 404)

    async def bulk(self, index: str, body: str) -> dict[str, Any]:
        lines = [json.loads(line) for line in body.splitlines() if line.strip()]
        items: list[dict[str, Any]] = []
        errors = False
        i = 0
        while i < len(lines):
            action, meta = _split_clause(lines[i])
            target = meta.get("_index", index)
            doc_id = meta.get("_id")
            if action == "delete":
                removed = self._indexes.get(target, {}).pop(str(doc_id), None)
                status = 200 if removed is not None else 404
                i += 1
            elif action in ("index", "create"):
                if i + 1 >= len(lines):
                    raise BackendError.from_status("bulk body ends without a document", 400)
                document = lines[i + 1]
                docs = self._indexes.setdefault(target, {})
                if action == "create" and str(doc_id) in docs:
                    status = 409
                else:
                    docs[str(doc_id)] = document
                    status = 201
                i += 2
            else:
                raise BackendError.from_status(f"unknown bulk action [{action}]", 400)
            item: dict[str, Any] = {"_index": target, "_id": doc_id, "status": status}
            if status >= 400:
                errors = True
                item["error"] = {"type": "document_error", "status": status}
            items.append({action: item})
        return {"errors": errors, "items": items}

    async def delete_by_query(self, index: str, body: dict[str, Any]) -> dict[str, Any]:
        matched = self._matching(index, body)
        docs = self._index(index)
        for doc_id, _, _ in matched:
            docs.pop(doc_id, None)
        return {"deleted": len(matched)}

    async def refresh(self, index: str) -> None:
        return None

    async def close(self) -> None:
        self._indexes.clear()
