"""The cat count endpoint: parse, dispatch, then answer with a table or an error.

Each request walks PARSING -> DISPATCHED -> RESPONDED | FAILED_RESPONDED;
help requests answer straight from PARSING.
Both end states are terminal and ``handle`` never raises.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from enum import Enum

from kipu.channel import ResponseChannel
from kipu.dispatcher import CountDispatcher
from kipu.parser import parse_count_request
from kipu.table import CountTableBuilder
from kipu.translator import ErrorTranslator

logger = logging.getLogger("kipu.endpoint")


class RequestState(str, Enum):
    PARSING = "parsing"
    DISPATCHED = "dispatched"
    RESPONDED = "responded"
    FAILED_RESPONDED = "failed_responded"


_TRANSITIONS = {
    RequestState.PARSING: {
        RequestState.DISPATCHED,
        RequestState.RESPONDED,
        RequestState.FAILED_RESPONDED,
    },
    RequestState.DISPATCHED: {RequestState.RESPONDED, RequestState.FAILED_RESPONDED},
    RequestState.RESPONDED: set(),
    RequestState.FAILED_RESPONDED: set(),
}


class IllegalTransitionError(RuntimeError):
    pass


def advance(current: RequestState, target: RequestState) -> RequestState:
    if target not in _TRANSITIONS[current]:
        raise IllegalTransitionError(f"{current.value} -> {target.value}")
    return target


class CountEndpoint:
    def __init__(
        self,
        dispatcher: CountDispatcher,
        translator: ErrorTranslator | None = None,
        tables: CountTableBuilder | None = None,
    ):
        self._dispatcher = dispatcher
        self._translator = translator or ErrorTranslator()
        self._tables = tables or CountTableBuilder()

    async def handle(self, params: Mapping[str, str], channel: ResponseChannel) -> RequestState:
        state = RequestState.PARSING
        query = parse_count_request(params)

        if channel.context.help:
            # help answers from the schema alone, nothing is counted
            try:
                channel.send_table(self._tables.help())
            except Exception as exc:
                return self._fail(state, channel, exc)
            return advance(state, RequestState.RESPONDED)

        future = self._dispatcher.dispatch(query)
        state = advance(state, RequestState.DISPATCHED)
        logger.debug("count dispatched for indices=%s", list(query.indices) or "_all")

        try:
            result = await future
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            return self._fail(state, channel, exc)

        try:
            channel.send_table(self._tables.row(result, result.observed_at_millis))
        except Exception as exc:
            return self._fail(state, channel, exc)
        return advance(state, RequestState.RESPONDED)

    def _fail(self, state: RequestState, channel: ResponseChannel, exc: Exception) -> RequestState:
        logger.debug("count failed: %r", exc)
        self._translator.translate(channel.context, exc, channel)
        return advance(state, RequestState.FAILED_RESPONDED)
