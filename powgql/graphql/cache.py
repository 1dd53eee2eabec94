"""Process-lifetime caches shared by every tool call.

``ParseCache`` memoizes the GraphQL verdict per entry (negative answers
included).  ``AnalysisCache`` holds finished operation analyses for the
resource handlers.  Both are plain dicts behind a lock; stored values are
immutable, and a value is only written once its computation has finished.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
import threading

from powgql.graphql.types import GraphQLAnalysis, ParseResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParseCacheEntry:
    result: ParseResult | None  # None when the entry is not GraphQL
    is_graphql: bool


class ParseCache:
    def __init__(self) -> None:
        self._items: dict[str, ParseCacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, entry_id: str) -> ParseCacheEntry | None:
        with self._lock:
            return self._items.get(entry_id)

    def store(self, entry_id: str, result: ParseResult | None) -> ParseCacheEntry:
        cached = ParseCacheEntry(result=result, is_graphql=result is not None)
        with self._lock:
            self._items[entry_id] = cached
        return cached

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def analysis_cache_key(session_id: str, operation_name: str) -> str:
    return f"{session_id}:{operation_name}"


class AnalysisCache:
    def __init__(self) -> None:
        self._items: dict[str, GraphQLAnalysis] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str, operation_name: str) -> GraphQLAnalysis | None:
        with self._lock:
            return self._items.get(analysis_cache_key(session_id, operation_name))

    def store(self, analysis: GraphQLAnalysis) -> None:
        key = analysis_cache_key(analysis.session_id, analysis.operation_name)
        with self._lock:
            self._items[key] = analysis

    def get_or_run(
        self,
        session_id: str,
        operation_name: str,
        run: Callable[[], GraphQLAnalysis],
    ) -> GraphQLAnalysis:
        """Return the cached analysis, or compute it inline with *run*.

        *run* is expected to store its own result; concurrent callers may
        both compute, and the last one to finish wins.
        """
        cached = self.get(session_id, operation_name)
        if cached is not None:
            logger.debug("analysis cache hit for %s", analysis_cache_key(session_id, operation_name))
            return cached
        return run()
