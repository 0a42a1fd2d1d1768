"""Default encoder for cat tables and errors (``text`` and ``json``)."""

from __future__ import annotations

import json
from typing import Any

from fastapi.responses import JSONResponse, PlainTextResponse, Response

from kipu.models import ErrorResponse, RequestContext, Table


class PrettyJSONResponse(JSONResponse):
    def render(self, content: Any) -> bytes:
        return (json.dumps(content, ensure_ascii=False, indent=2) + "\n").encode("utf-8")


def _json(content: Any, context: RequestContext, status_code: int = 200) -> JSONResponse:
    response_class = PrettyJSONResponse if context.pretty else JSONResponse
    return response_class(content=content, status_code=status_code)


def format_text(table: Table, verbose: bool = False) -> str:
    """Whitespace-aligned columns; header line only when ``verbose``."""
    lines = [[str(cell) for cell in row] for row in table.rows]
    if verbose:
        lines.insert(0, list(table.column_names))
    if not lines:
        return ""
    widths = [max(len(line[i]) for line in lines) for i in range(len(table.columns))]
    out = []
    for line in lines:
        padded = [cell.ljust(width) for cell, width in zip(line, widths)]
        out.append(" ".join(padded).rstrip())
    return "\n".join(out) + "\n"


def render_table(table: Table, context: RequestContext) -> Response:
    if context.format == "json":
        return _json(table.as_dicts(), context)
    return PlainTextResponse(format_text(table, context.verbose))


def render_error(error: ErrorResponse) -> Response:
    context = error.context
    if context.format == "json":
        top = error.causes[0] if error.causes else None
        root = error.root_cause
        payload = {
            "error": {
                "root_cause": [{"type": root.type, "reason": root.reason}] if root else [],
                "type": top.type if top else "exception",
                "reason": top.reason if top else "",
            },
            "status": error.status,
        }
        return _json(payload, context, status_code=error.status)

    body = "".join(f"{cause.type}: {cause.reason}\n" for cause in error.causes)
    return PlainTextResponse(body, status_code=error.status)
