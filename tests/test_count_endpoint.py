"""Unit tests for the count pipeline: parser, table, dispatcher, translator, endpoint.

No HTTP here. Services and channels are small stubs so the failure paths
can be driven directly.
"""

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from kipu.backends.base import CountService
from kipu.channel import EncodingChannel
from kipu.dispatcher import CountDispatcher
from kipu.endpoint import CountEndpoint, IllegalTransitionError, RequestState, advance
from kipu.errors import CountServiceError
from kipu.models import (
    ColumnSpec,
    CountQuery,
    CountResult,
    ErrorResponse,
    ExecutionMode,
    RequestContext,
    Table,
)
from kipu.parser import (
    parse_count_request,
    parse_query_source,
    parse_request_context,
    split_indices,
)
from kipu.table import CountTableBuilder, format_timestamp
from kipu.translator import ErrorTranslator, build_error_response, cause_chain

T = 1_700_000_000_123


# ---------------------------------------------------------------------------
# Stubs
# ---------------------------------------------------------------------------


class _FixedService(CountService):
    def __init__(self, count: int):
        self._count = count
        self.calls: list[CountQuery] = []

    async def count(self, query: CountQuery) -> int:
        self.calls.append(query)
        return self._count


class _FailingService(CountService):
    def __init__(self, exc: BaseException):
        self._exc = exc
        self.calls = 0

    async def count(self, query: CountQuery) -> int:
        self.calls += 1
        raise self._exc


class _BlockingService(CountService):
    def __init__(self):
        self.started = asyncio.Event()
        self.cancelled = False

    async def count(self, query: CountQuery) -> int:
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return 0


class _RecordingChannel:
    def __init__(self, context: RequestContext | None = None, fail_tables=False, fail_errors=False):
        self.context = context or RequestContext()
        self.fail_tables = fail_tables
        self.fail_errors = fail_errors
        self.tables: list[Table] = []
        self.errors: list[ErrorResponse] = []

    def send_table(self, table: Table) -> None:
        if self.fail_tables:
            raise RuntimeError("table encoding broke")
        self.tables.append(table)

    def send_error(self, error: ErrorResponse) -> None:
        if self.fail_errors:
            raise BrokenPipeError("channel closed")
        self.errors.append(error)


class _ListRecorder:
    def __init__(self):
        self.failures: list[tuple[str, BaseException]] = []

    def record_failure(self, message: str, exc: BaseException) -> None:
        self.failures.append((message, exc))


def _endpoint(service: CountService, recorder=None, clock=lambda: T) -> CountEndpoint:
    return CountEndpoint(
        CountDispatcher(service, clock=clock),
        ErrorTranslator(recorder),
        CountTableBuilder(clock=clock),
    )


# ---------------------------------------------------------------------------
# RequestParser
# ---------------------------------------------------------------------------


class TestParser:
    def test_split_indices(self):
        assert split_indices("a,b,c") == ("a", "b", "c")
        assert split_indices("") == ()
        assert split_indices(None) == ()
        assert split_indices("a,,b") == ("a", "b")

    def test_no_params_counts_everything(self):
        query = parse_count_request({})
        assert query.indices == ()
        assert query.source is None
        assert query.execution_mode is ExecutionMode.SINGLE_THREADED

    def test_source_wins_over_structured_params(self):
        raw = '{"match_all":{}}'
        query = parse_count_request({"source": raw, "q": "user:kimchy", "df": "user"})
        assert query.source == raw

    def test_empty_source_is_still_verbatim(self):
        assert parse_count_request({"source": "", "q": "x"}).source == ""

    def test_query_string_modifiers(self):
        source = parse_query_source(
            {
                "q": "status:500",
                "df": "message",
                "analyzer": "standard",
                "analyze_wildcard": "true",
                "lenient": "false",
                "lowercase_expanded_terms": "maybe",
                "default_operator": "and",
            }
        )
        assert source == {
            "query": {
                "query_string": {
                    "query": "status:500",
                    "default_field": "message",
                    "analyzer": "standard",
                    "analyze_wildcard": True,
                    "lenient": False,
                    "default_operator": "AND",
                }
            }
        }

    def test_bad_operator_is_dropped(self):
        source = parse_query_source({"q": "x", "default_operator": "XOR"})
        assert "default_operator" not in source["query"]["query_string"]

    def test_request_context(self):
        ctx = parse_request_context({"format": "JSON", "v": "", "pretty": "true"})
        assert ctx == RequestContext(format="json", verbose=True, help=False, pretty=True)
        assert parse_request_context({"format": "yaml"}).format == "text"


# ---------------------------------------------------------------------------
# TableBuilder
# ---------------------------------------------------------------------------


class TestTable:
    def test_header_is_fixed(self):
        header = CountTableBuilder().header()
        assert header.column_names == ("time", "timestamp", "count")
        assert header.rows == ()

    def test_row_uses_one_instant(self):
        table = CountTableBuilder(clock=lambda: T).row(CountResult(count=42, observed_at_millis=0))
        assert table.rows == ((T, format_timestamp(T), 42),)
        assert format_timestamp(T) == datetime.fromtimestamp(T / 1000).strftime("%H:%M:%S")

    def test_row_reads_clock_once(self):
        reads = iter([T, T + 1000])
        table = CountTableBuilder(clock=lambda: next(reads)).row(CountResult(7, 0))
        time_cell, timestamp_cell, _ = table.rows[0]
        assert time_cell == T
        assert timestamp_cell == format_timestamp(T)

    def test_zero_count_is_kept(self):
        table = CountTableBuilder().row(CountResult(0, 0), now_millis=T)
        assert table.rows[0][2] == 0

    def test_table_validation(self):
        with pytest.raises(ValueError):
            Table(columns=(ColumnSpec("a"), ColumnSpec("a")))
        with pytest.raises(ValueError):
            Table(columns=(ColumnSpec("a"),)).with_row(1, 2)
        with pytest.raises(ValueError):
            CountResult(count=-1, observed_at_millis=0)

    def test_help_table(self):
        table = CountTableBuilder().help()
        assert [row[0] for row in table.rows] == ["time", "timestamp", "count"]


# ---------------------------------------------------------------------------
# CountDispatcher
# ---------------------------------------------------------------------------


class TestDispatcher:
    def test_success(self):
        service = _FixedService(42)
        dispatcher = CountDispatcher(service, clock=lambda: T)

        async def run():
            return await dispatcher.dispatch(CountQuery(indices=("logs",)))

        result = asyncio.run(run())
        assert result == CountResult(count=42, observed_at_millis=T)
        assert service.calls == [CountQuery(indices=("logs",))]

    def test_failure_is_unchanged_and_not_retried(self):
        error = TimeoutError("shard timeout")
        service = _FailingService(error)

        async def run():
            return await CountDispatcher(service).dispatch(CountQuery())

        with pytest.raises(TimeoutError) as info:
            asyncio.run(run())
        assert info.value is error
        assert service.calls == 1

    def test_listener_fires_exactly_one_continuation(self):
        outcomes: list = []

        async def run(service):
            fut = CountDispatcher(service, clock=lambda: T).dispatch(CountQuery())
            CountDispatcher.add_listener(
                fut,
                lambda result: outcomes.append(("ok", result)),
                lambda exc: outcomes.append(("fail", exc)),
            )
            await asyncio.wait([fut])
            await asyncio.sleep(0)

        asyncio.run(run(_FixedService(3)))
        assert outcomes == [("ok", CountResult(3, T))]

        outcomes.clear()
        error = CountServiceError("boom")
        asyncio.run(run(_FailingService(error)))
        assert outcomes == [("fail", error)]


# ---------------------------------------------------------------------------
# ErrorTranslator
# ---------------------------------------------------------------------------


class TestTranslator:
    def test_cause_chain_outermost_first(self):
        try:
            try:
                raise ConnectionRefusedError("connection refused")
            except ConnectionRefusedError as inner:
                raise CountServiceError("count failed", status=503) from inner
        except CountServiceError as exc:
            outer = exc

        chain = cause_chain(outer)
        assert [c.reason for c in chain] == ["count failed", "connection refused"]
        assert chain[0].type == "CountServiceError"

        error = build_error_response(RequestContext(format="json"), outer)
        assert error.status == 503
        assert error.root_cause.type == "ConnectionRefusedError"
        assert error.context.format == "json"

    def test_suppressed_context_is_not_reported(self):
        try:
            try:
                raise KeyError("internal detail")
            except KeyError:
                raise CountServiceError("count failed") from None
        except CountServiceError as exc:
            outer = exc

        chain = cause_chain(outer)
        assert [c.reason for c in chain] == ["count failed"]

    def test_delivers_error(self):
        channel = _RecordingChannel()
        assert ErrorTranslator(_ListRecorder()).translate(channel.context, ValueError("x"), channel)
        assert channel.errors[0].status == 500

    def test_delivery_failure_is_recorded_and_swallowed(self):
        recorder = _ListRecorder()
        channel = _RecordingChannel(fail_errors=True)
        delivered = ErrorTranslator(recorder).translate(channel.context, ValueError("x"), channel)
        assert delivered is False
        message, exc = recorder.failures[0]
        assert message == "Failed to send failure response"
        assert isinstance(exc, BrokenPipeError)

    def test_default_recorder_logs(self, caplog):
        channel = _RecordingChannel(fail_errors=True)
        with caplog.at_level("ERROR", logger="kipu.endpoint"):
            ErrorTranslator().translate(channel.context, ValueError("x"), channel)
        assert "Failed to send failure response" in caplog.text


# ---------------------------------------------------------------------------
# CountEndpoint
# ---------------------------------------------------------------------------


class TestEndpoint:
    def test_count_all_responds_with_one_row(self):
        channel = _RecordingChannel()
        state = asyncio.run(_endpoint(_FixedService(42)).handle({}, channel))
        assert state is RequestState.RESPONDED
        assert channel.tables[0].rows == ((T, format_timestamp(T), 42),)
        assert channel.errors == []

    def test_index_path_reaches_service(self):
        service = _FixedService(1)
        asyncio.run(_endpoint(service).handle({"index": "logs-2024"}, _RecordingChannel()))
        assert service.calls[0].indices == ("logs-2024",)

    def test_dispatch_failure_sends_error(self):
        channel = _RecordingChannel()
        endpoint = _endpoint(_FailingService(ConnectionRefusedError("connection refused")))
        state = asyncio.run(endpoint.handle({}, channel))
        assert state is RequestState.FAILED_RESPONDED
        assert channel.tables == []
        assert channel.errors[0].causes[0].reason == "connection refused"

    def test_secondary_failure_never_escapes(self):
        recorder = _ListRecorder()
        channel = _RecordingChannel(fail_errors=True)
        endpoint = _endpoint(_FailingService(ConnectionRefusedError("connection refused")), recorder)
        state = asyncio.run(endpoint.handle({}, channel))
        assert state is RequestState.FAILED_RESPONDED
        assert len(recorder.failures) == 1

    def test_success_send_failure_becomes_error(self):
        channel = _RecordingChannel(fail_tables=True)
        state = asyncio.run(_endpoint(_FixedService(5)).handle({}, channel))
        assert state is RequestState.FAILED_RESPONDED
        assert channel.errors[0].causes[0].reason == "table encoding broke"

    def test_help_skips_dispatch(self):
        service = _FixedService(5)
        channel = _RecordingChannel(RequestContext(help=True))
        state = asyncio.run(_endpoint(service).handle({"help": ""}, channel))
        assert state is RequestState.RESPONDED
        assert service.calls == []
        assert channel.tables[0].columns[0].name == "column"

    def test_help_send_failure_ends_failed(self):
        service = _FixedService(5)
        channel = _RecordingChannel(RequestContext(help=True), fail_tables=True)
        state = asyncio.run(_endpoint(service).handle({"help": ""}, channel))
        assert state is RequestState.FAILED_RESPONDED
        assert service.calls == []
        assert channel.errors[0].causes[0].reason == "table encoding broke"

    def test_row_uses_dispatch_instant(self):
        endpoint = CountEndpoint(
            CountDispatcher(_FixedService(42), clock=lambda: T),
            ErrorTranslator(_ListRecorder()),
            CountTableBuilder(clock=lambda: T + 60_000),
        )
        channel = _RecordingChannel()
        asyncio.run(endpoint.handle({}, channel))
        assert channel.tables[0].rows == ((T, format_timestamp(T), 42),)

    def test_cancelled_request_cancels_count(self):
        service = _BlockingService()
        channel = _RecordingChannel()

        async def run():
            task = asyncio.ensure_future(_endpoint(service).handle({}, channel))
            await service.started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())
        assert service.cancelled
        assert channel.tables == []
        assert channel.errors == []

    def test_encoding_channel_json(self):
        channel = EncodingChannel(RequestContext(format="json"))
        asyncio.run(_endpoint(_FixedService(0)).handle({}, channel))
        assert channel.response.status_code == 200
        assert channel.response.body == (
            f'[{{"time":{T},"timestamp":"{format_timestamp(T)}","count":0}}]'.encode()
        )

    def test_terminal_states_have_no_exits(self):
        with pytest.raises(IllegalTransitionError):
            advance(RequestState.RESPONDED, RequestState.FAILED_RESPONDED)
        with pytest.raises(IllegalTransitionError):
            advance(RequestState.FAILED_RESPONDED, RequestState.RESPONDED)

    def test_encoding_channel_pretty_json(self):
        channel = EncodingChannel(RequestContext(format="json", pretty=True))
        asyncio.run(_endpoint(_FixedService(3)).handle({}, channel))
        body = channel.response.body.decode()
        assert body.startswith("[\n  {\n")
        assert body.endswith("\n")
        assert '"count": 3' in body
