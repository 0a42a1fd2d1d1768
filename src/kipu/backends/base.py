"""Interface every counting backend implements."""

from __future__ import annotations

from abc import ABC, abstractmethod

from kipu.models import CountQuery


class CountService(ABC):
    """Something that can count documents matching a CountQuery."""

    @abstractmethod
    async def count(self, query: CountQuery) -> int:
        """Return the number of matching documents.

        Failures are raised as-is; callers do not retry.
        """

    async def close(self) -> None:
        """Release any held connections."""
