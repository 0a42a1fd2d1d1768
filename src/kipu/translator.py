"""Turning dispatch failures into error responses.

Sending the error can fail too (the client may already be gone). That
second failure goes to a FailureRecorder and stops there.
"""

from __future__ import annotations

import logging
from typing import Protocol

from kipu.channel import ResponseChannel
from kipu.models import ErrorCause, ErrorResponse, RequestContext

logger = logging.getLogger("kipu.endpoint")


class FailureRecorder(Protocol):
    def record_failure(self, message: str, exc: BaseException) -> None: ...


class LoggingFailureRecorder:
    def __init__(self, log: logging.Logger = logger):
        self._log = log

    def record_failure(self, message: str, exc: BaseException) -> None:
        self._log.error(message, exc_info=(type(exc), exc, exc.__traceback__))


def _cause_type(exc: BaseException) -> str:
    return getattr(exc, "error_type", None) or type(exc).__name__


def cause_chain(exc: BaseException) -> tuple[ErrorCause, ...]:
    """Walk explicit and implicit causes, outermost first."""
    chain: list[ErrorCause] = []
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        chain.append(ErrorCause(type=_cause_type(current), reason=str(current)))
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None
    return tuple(chain)


def error_status(exc: BaseException) -> int:
    status = getattr(exc, "status", None)
    if isinstance(status, int) and 400 <= status <= 599:
        return status
    return 500


def build_error_response(context: RequestContext, cause: BaseException) -> ErrorResponse:
    return ErrorResponse(context=context, status=error_status(cause), causes=cause_chain(cause))


class ErrorTranslator:
    def __init__(self, recorder: FailureRecorder | None = None):
        self._recorder = recorder or LoggingFailureRecorder()

    def translate(
        self,
        context: RequestContext,
        cause: BaseException,
        channel: ResponseChannel,
    ) -> bool:
        """Send an ErrorResponse for ``cause``. Returns False if delivery failed."""
        try:
            channel.send_error(build_error_response(context, cause))
        except Exception as exc:
            self._recorder.record_failure("Failed to send failure response", exc)
            return False
        return True
