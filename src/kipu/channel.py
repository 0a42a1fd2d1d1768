"""Response channel: where the endpoint hands finished tables and errors."""

from __future__ import annotations

from typing import Protocol

from fastapi.responses import Response

from kipu.models import ErrorResponse, RequestContext, Table
from kipu.render import render_error, render_table


class ResponseChannel(Protocol):
    context: RequestContext

    def send_table(self, table: Table) -> None: ...

    def send_error(self, error: ErrorResponse) -> None: ...


class ResponseAlreadySentError(RuntimeError):
    pass


class EncodingChannel:
    """Encodes what it is sent into a single Starlette response."""

    def __init__(self, context: RequestContext):
        self.context = context
        self.response: Response | None = None

    def _set(self, response: Response) -> None:
        if self.response is not None:
            raise ResponseAlreadySentError("a response was already sent on this channel")
        self.response = response

    def send_table(self, table: Table) -> None:
        self._set(render_table(table, self.context))

    def send_error(self, error: ErrorResponse) -> None:
        self._set(render_error(error))
