"""HTTP client for the powhttp capture API."""

from __future__ import annotations

import logging
import time
from typing import Any
from urllib.parse import quote

import requests

from powgql.config import DEFAULT_BASE_URL
from powgql.errors import ApiError
from powgql.formats.powhttp import Session, SessionEntry

logger = logging.getLogger(__name__)


class PowhttpClient:
    """Read-only client for sessions and entries exposed by powhttp.

    Use ``"active"`` as a session or entry id to reference whatever is
    currently active in the powhttp UI.
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL, *, timeout_s: float = 10.0):
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._session = requests.Session()

    @property
    def base_url(self) -> str:
        return self._base_url

    def list_sessions(self) -> list[Session]:
        data = self._get("/sessions")
        return [Session.model_validate(s) for s in data or []]

    def get_session(self, session_id: str) -> Session:
        return Session.model_validate(self._get(f"/sessions/{_seg(session_id)}"))

    def list_entries(self, session_id: str) -> list[SessionEntry]:
        data = self._get(f"/sessions/{_seg(session_id)}/entries")
        return [SessionEntry.model_validate(e) for e in data or []]

    def get_entry(self, session_id: str, entry_id: str) -> SessionEntry:
        path = f"/sessions/{_seg(session_id)}/entries/{_seg(entry_id)}"
        return SessionEntry.model_validate(self._get(path))

    def _get(self, path: str) -> Any:
        start = time.monotonic()
        url = f"{self._base_url}{path}"
        try:
            resp = self._session.get(url, timeout=self._timeout_s)
        except requests.RequestException as exc:
            logger.debug("GET %s failed after %.0f ms: %s", path, _elapsed_ms(start), exc)
            raise

        if resp.status_code >= 400:
            logger.debug("GET %s returned %d in %.0f ms", path, resp.status_code, _elapsed_ms(start))
            raise _parse_error(resp)

        logger.debug("GET %s completed in %.0f ms", path, _elapsed_ms(start))
        return resp.json()


def _seg(value: str) -> str:
    return quote(value, safe="")


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


def _parse_error(resp: requests.Response) -> ApiError:
    """Build an ApiError, preferring the ``error`` field of a JSON body."""
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and isinstance(data.get("error"), str) and data["error"]:
        return ApiError(resp.status_code, data["error"])
    return ApiError(resp.status_code, resp.text)
