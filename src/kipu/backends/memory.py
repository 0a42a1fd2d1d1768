"""In-memory counting backend for tests and local development.

Holds a fixed number of documents per index. Queries are not evaluated:
a count covers every document in the matched indices.
"""

from __future__ import annotations

from fnmatch import fnmatchcase

from kipu.backends.base import CountService
from kipu.errors import CountServiceError
from kipu.models import CountQuery


class InMemoryCountService(CountService):
    def __init__(self, documents: dict[str, int] | None = None):
        self._documents = dict(documents or {})
        self.queries: list[CountQuery] = []

    def set_count(self, index: str, count: int) -> None:
        self._documents[index] = count

    def _resolve(self, patterns: tuple[str, ...]) -> set[str]:
        if not patterns or patterns == ("_all",):
            return set(self._documents)
        matched: set[str] = set()
        for pattern in patterns:
            hits = {name for name in self._documents if fnmatchcase(name, pattern)}
            if not hits and not any(ch in pattern for ch in "*?"):
                raise CountServiceError(
                    f"no such index [{pattern}]",
                    status=404,
                    error_type="index_not_found_exception",
                )
            matched |= hits
        return matched

    async def count(self, query: CountQuery) -> int:
        self.queries.append(query)
        return sum(self._documents[name] for name in self._resolve(query.indices))
