"""Entry search over a capture session.

A small search: list the session's entries, warm them through
the entry source, filter on request metadata, and order by start time (most
recent first).  Callers treat the returned order as authoritative.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import logging
import threading
import time

from powgql.entries import EntrySource
from powgql.errors import check_cancelled, wrap_upstream_error
from powgql.formats.powhttp import SessionEntry
from powgql.helpers.http import host_matches, url_host, url_path

logger = logging.getLogger(__name__)


@dataclass
class SearchFilters:
    method: str = ""
    host: str = ""
    path_contains: str = ""
    process_name: str = ""
    pid: int = 0
    since_ms: int = 0
    until_ms: int = 0
    time_window_ms: int = 0  # relative to now; wins over since/until


@dataclass
class SearchResult:
    entry_id: str
    url: str
    method: str
    host: str
    path: str
    started_at: int
    # the fetched entry, so callers need not go back through the entry cache
    entry: SessionEntry | None = field(default=None, repr=False, compare=False)


class SearchService:
    def __init__(self, entries: EntrySource, clock: Callable[[], int] | None = None):
        self._entries = entries
        self._now_ms = clock or (lambda: int(time.time() * 1000))

    def search(
        self,
        session_id: str,
        filters: SearchFilters | None = None,
        limit: int = 500,
        cancel: threading.Event | None = None,
    ) -> list[SearchResult]:
        filters = filters or SearchFilters()
        check_cancelled(cancel)
        try:
            session = self._entries.client.get_session(session_id)
        except Exception as exc:
            raise wrap_upstream_error(exc) from exc

        entries = self._entries.warm(session_id, session.entry_ids, cancel)
        since_ms, until_ms = self._time_bounds(filters)

        matched = [
            e for e in entries if _matches(e, filters, since_ms, until_ms)
        ]
        matched.sort(key=lambda e: e.timings.started_at, reverse=True)

        results = [_to_result(e) for e in matched[:limit]]
        logger.debug(
            "search session=%s scanned=%d matched=%d returned=%d",
            session_id, len(entries), len(matched), len(results),
        )
        return results

    def _time_bounds(self, filters: SearchFilters) -> tuple[int, int]:
        if filters.time_window_ms > 0:
            now = self._now_ms()
            return now - filters.time_window_ms, now
        return filters.since_ms, filters.until_ms


def _entry_path(entry: SessionEntry) -> str:
    return entry.request.path or url_path(entry.url)


def _matches(entry: SessionEntry, filters: SearchFilters, since_ms: int, until_ms: int) -> bool:
    if filters.method and (entry.request.method or "").upper() != filters.method.upper():
        return False
    if filters.host and not host_matches(url_host(entry.url), filters.host):
        return False
    if filters.path_contains and filters.path_contains.lower() not in _entry_path(entry).lower():
        return False
    if filters.process_name:
        name = entry.process.name if entry.process else None
        if (name or "").lower() != filters.process_name.lower():
            return False
    if filters.pid and (entry.process is None or entry.process.pid != filters.pid):
        return False
    started = entry.timings.started_at
    if since_ms > 0 and started < since_ms:
        return False
    if until_ms > 0 and started > until_ms:
        return False
    return True


def _to_result(entry: SessionEntry) -> SearchResult:
    return SearchResult(
        entry_id=entry.id,
        url=entry.url,
        method=(entry.request.method or "").upper(),
        host=url_host(entry.url),
        path=_entry_path(entry),
        started_at=entry.timings.started_at,
        entry=entry,
    )
