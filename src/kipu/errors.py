"""Exceptions raised by Kipu and its counting backends."""

from __future__ import annotations


class KipuError(Exception):
    """Base class for gateway errors. Carries an HTTP status."""

    status: int = 500

    @property
    def error_type(self) -> str:
        return type(self).__name__


class CountServiceError(KipuError):
    """The counting service answered, but with an error."""

    def __init__(self, reason: str, status: int = 500, error_type: str | None = None):
        super().__init__(reason)
        self.reason = reason
        self.status = status
        self._error_type = error_type

    @property
    def error_type(self) -> str:
        return self._error_type or super().error_type
