"""Request parsing for the cat count endpoint.

Parsing never fails. Anything malformed degrades to "not set" and the
counting service is left to reject queries it cannot run.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from kipu.models import CountQuery, ExecutionMode, RequestContext

_TRUE_VALUES = {"", "true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}
_OPERATORS = {"AND", "OR"}
_FORMATS = {"text", "json"}


def split_indices(value: str | None) -> tuple[str, ...]:
    """Split a comma-separated index list. Empty or missing means all."""
    if not value:
        return ()
    return tuple(part for part in value.split(",") if part)


def _flag(value: str | None) -> bool | None:
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None


def parse_query_source(params: Mapping[str, str]) -> dict[str, Any] | None:
    """Build a query_string query from ``q`` and its modifiers.

    Returns None when there is no ``q``, which means count everything.
    """
    q = params.get("q")
    if not q:
        return None

    query_string: dict[str, Any] = {"query": q}
    if params.get("df"):
        query_string["default_field"] = params["df"]
    if params.get("analyzer"):
        query_string["analyzer"] = params["analyzer"]
    for name in ("analyze_wildcard", "lowercase_expanded_terms", "lenient"):
        value = _flag(params.get(name))
        if value is not None:
            query_string[name] = value
    operator = (params.get("default_operator") or "").upper()
    if operator in _OPERATORS:
        query_string["default_operator"] = operator

    return {"query": {"query_string": query_string}}


def parse_count_request(params: Mapping[str, str]) -> CountQuery:
    """Turn request parameters into a CountQuery.

    A raw ``source`` always wins; structured parameters are only looked at
    when it is absent.
    """
    indices = split_indices(params.get("index"))
    source = params.get("source")
    if source is None:
        source = parse_query_source(params)
    return CountQuery(
        indices=indices,
        source=source,
        execution_mode=ExecutionMode.SINGLE_THREADED,
    )


def parse_request_context(params: Mapping[str, str]) -> RequestContext:
    fmt = (params.get("format") or "text").lower()
    return RequestContext(
        format=fmt if fmt in _FORMATS else "text",
        verbose=bool(_flag(params.get("v"))),
        help=bool(_flag(params.get("help"))),
        pretty=bool(_flag(params.get("pretty"))),
    )
