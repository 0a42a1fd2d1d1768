"""Asynchronous dispatch of count queries to a CountService."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from kipu.backends.base import CountService
from kipu.models import CountQuery, CountResult
from kipu.table import epoch_millis


class CountDispatcher:
    """Sends each query to the service once and exposes the outcome as a future."""

    def __init__(self, service: CountService, clock: Callable[[], int] = epoch_millis):
        self._service = service
        self._clock = clock

    async def _run(self, query: CountQuery) -> CountResult:
        count = await self._service.count(query)
        return CountResult(count=count, observed_at_millis=self._clock())

    def dispatch(self, query: CountQuery) -> asyncio.Future[CountResult]:
        """Schedule the count. Must be called with a running event loop."""
        return asyncio.ensure_future(self._run(query))

    @staticmethod
    def add_listener(
        future: asyncio.Future[CountResult],
        on_response: Callable[[CountResult], None],
        on_failure: Callable[[BaseException], None],
    ) -> None:
        """Call exactly one of ``on_response`` / ``on_failure`` when the future settles."""

        def _done(fut: asyncio.Future[CountResult]) -> None:
            if fut.cancelled():
                on_failure(asyncio.CancelledError())
                return
            exc = fut.exception()
            if exc is not None:
                on_failure(exc)
            else:
                on_response(fut.result())

        future.add_done_callback(_done)
