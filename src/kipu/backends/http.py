"""Counting backend for Elasticsearch/OpenSearch style ``_count`` APIs."""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote

import httpx

from kipu.backends.base import CountService
from kipu.errors import CountServiceError
from kipu.models import CountQuery

logger = logging.getLogger(__name__)


def count_path(indices: tuple[str, ...]) -> str:
    if not indices:
        return "/_count"
    return "/" + ",".join(quote(i, safe="*-_.+") for i in indices) + "/_count"


def _error_from_response(response: httpx.Response) -> CountServiceError:
    reason = response.reason_phrase or f"HTTP {response.status_code}"
    error_type = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            reason = error.get("reason", reason)
            error_type = error.get("type")
        elif isinstance(error, str):
            reason = error
    return CountServiceError(reason, status=response.status_code, error_type=error_type)


class HttpCountService(CountService):
    """Runs counts over HTTP with a shared ``httpx.AsyncClient``.

    A raw string source is sent untouched; a built query is JSON encoded.
    """

    def __init__(
        self,
        base_url: str,
        *,
        username: str = "",
        password: str = "",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        if client is None:
            auth = httpx.BasicAuth(username, password) if username else None
            client = httpx.AsyncClient(
                base_url=base_url,
                auth=auth,
                timeout=httpx.Timeout(timeout),
                headers={"Accept": "application/json"},
            )
        self._client = client

    async def count(self, query: CountQuery) -> int:
        path = count_path(query.indices)
        content: str | None
        if query.source is None:
            content = None
        elif isinstance(query.source, str):
            content = query.source
        else:
            content = json.dumps(query.source)

        logger.debug("POST %s (%d byte body)", path, len(content or ""))
        response = await self._client.post(
            path,
            content=content,
            headers={"Content-Type": "application/json"} if content else None,
        )
        if response.is_error:
            raise _error_from_response(response)
        return self._read_count(response)

    @staticmethod
    def _read_count(response: httpx.Response) -> int:
        try:
            body: Any = response.json()
        except ValueError as exc:
            raise CountServiceError("count response is not JSON", status=502) from exc
        count = body.get("count") if isinstance(body, dict) else None
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            raise CountServiceError(f"count response has no valid count: {body!r}", status=502)
        return count

    async def close(self) -> None:
        await self._client.aclose()
