"""Entry source: cached entry fetches and body decoding.

``EntrySource`` is the only component that talks to the capture API for
individual entries.  Fetched entries live in a bounded LRU shared by every
tool call; ``warm`` fills it in parallel when a session is first searched.
"""

from __future__ import annotations

import base64
import binascii
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
import logging
import threading
from typing import Literal, Protocol

from powgql.errors import check_cancelled, invalid_input, wrap_upstream_error
from powgql.formats.powhttp import Session, SessionEntry
from powgql.helpers.http import get_header

logger = logging.getLogger(__name__)

BodyTarget = Literal["request", "response"]


class CaptureClient(Protocol):
    def list_sessions(self) -> list[Session]: ...

    def get_session(self, session_id: str) -> Session: ...

    def get_entry(self, session_id: str, entry_id: str) -> SessionEntry: ...


class EntryCache:
    """Thread-safe LRU of fetched entries keyed by ``(session, entry_id)``."""

    def __init__(self, max_items: int = 512):
        self._max_items = max_items
        self._items: OrderedDict[tuple[str, str], SessionEntry] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def max_items(self) -> int:
        return self._max_items

    def get(self, session_id: str, entry_id: str) -> SessionEntry | None:
        key = (session_id, entry_id)
        with self._lock:
            entry = self._items.get(key)
            if entry is not None:
                self._items.move_to_end(key)
            return entry

    def put(self, session_id: str, entry: SessionEntry) -> None:
        key = (session_id, entry.id)
        with self._lock:
            self._items[key] = entry
            self._items.move_to_end(key)
            while len(self._items) > self._max_items:
                self._items.popitem(last=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class EntrySource:
    def __init__(self, client: CaptureClient, cache: EntryCache | None = None, workers: int = 16):
        self.client = client
        self.cache = cache if cache is not None else EntryCache()
        self.workers = workers

    def fetch_entry(
        self, session_id: str, entry_id: str, cancel: threading.Event | None = None
    ) -> SessionEntry:
        """Return an entry, from the cache when possible.

        Raises ``ToolFailure`` (NOT_FOUND / TIMEOUT / POWHTTP_ERROR) when the
        capture API cannot deliver it.
        """
        cached = self.cache.get(session_id, entry_id)
        if cached is not None:
            return cached

        check_cancelled(cancel)
        try:
            entry = self.client.get_entry(session_id, entry_id)
        except Exception as exc:
            raise wrap_upstream_error(exc) from exc
        self.cache.put(session_id, entry)
        return entry

    def warm(
        self, session_id: str, entry_ids: list[str], cancel: threading.Event | None = None
    ) -> list[SessionEntry]:
        """Fetch *entry_ids* with a bounded worker pool.

        Entries that fail to fetch are logged and left out.  The result keeps
        the order of *entry_ids* and is built from the fetches themselves, so
        sessions larger than the cache are still fetched once per entry.
        """
        found: dict[str, SessionEntry] = {}
        missing: list[str] = []
        for eid in entry_ids:
            cached = self.cache.get(session_id, eid)
            if cached is not None:
                found[eid] = cached
            elif eid not in missing:
                missing.append(eid)

        if missing:
            check_cancelled(cancel)
            logger.debug("warming %d/%d entries of session %s", len(missing), len(entry_ids), session_id)
            with ThreadPoolExecutor(max_workers=max(1, min(self.workers, len(missing)))) as pool:
                futures = {eid: pool.submit(self._fetch_quiet, session_id, eid, cancel) for eid in missing}
                for eid, future in futures.items():
                    entry = future.result()
                    if entry is not None:
                        found[eid] = entry

        check_cancelled(cancel)
        return [found[eid] for eid in entry_ids if eid in found]

    def _fetch_quiet(
        self, session_id: str, entry_id: str, cancel: threading.Event | None
    ) -> SessionEntry | None:
        if cancel is not None and cancel.is_set():
            return None
        try:
            return self.fetch_entry(session_id, entry_id)
        except Exception as exc:
            logger.debug("skipping entry %s: %s", entry_id, exc)
            return None

    @staticmethod
    def decode_body(entry: SessionEntry, target: BodyTarget) -> tuple[bytes | None, str]:
        """Decode the base64 body of the request or response of *entry*.

        Returns ``(body, content_type)``; ``body`` is ``None`` when the side
        carries no body (or there is no response at all).
        """
        if target == "request":
            raw = entry.request.body
            content_type = get_header(entry.request.headers, "content-type") or ""
        elif target == "response":
            if entry.response is None:
                return None, ""
            raw = entry.response.body
            content_type = get_header(entry.response.headers, "content-type") or ""
        else:
            raise invalid_input(f"invalid body target {target!r}: expected 'request' or 'response'")

        if raw is None:
            return None, content_type
        try:
            return base64.b64decode(raw, validate=True), content_type
        except (binascii.Error, ValueError) as exc:
            raise invalid_input(f"entry {entry.id}: {target} body is not valid base64") from exc
