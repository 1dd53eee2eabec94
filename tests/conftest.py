"""Shared test fixtures for powgql tests."""

from __future__ import annotations

import base64
import json
from typing import Any

import pytest

from powgql.config import Config
from powgql.deps import Deps, build_deps
from powgql.errors import ApiError
from powgql.formats.powhttp import (
    EntryRequest,
    EntryResponse,
    ProcessInfo,
    Session,
    SessionEntry,
    Timings,
)

JSON_HEADERS = [["Content-Type", "application/json"]]


def _encode(body: Any) -> str | None:
    if body is None:
        return None
    if isinstance(body, bytes):
        raw = body
    elif isinstance(body, str):
        raw = body.encode()
    else:
        raw = json.dumps(body).encode()
    return base64.b64encode(raw).decode()


def make_entry(
    entry_id: str,
    request_body: Any = None,
    response_body: Any = None,
    url: str = "https://api.example.com/graphql",
    method: str = "POST",
    started_at: int = 1_700_000_000_000,
    request_headers: list[list[str]] | None = None,
    response_headers: list[list[str]] | None = None,
    process: ProcessInfo | None = None,
    with_response: bool = True,
) -> SessionEntry:
    """Helper to create a SessionEntry with JSON bodies and minimal boilerplate.

    Bodies may be bytes, text, or any JSON-serializable value.
    """
    response = None
    if with_response:
        response = EntryResponse(
            status_code=200,
            headers=JSON_HEADERS if response_headers is None else response_headers,
            body=_encode(response_body),
        )
    return SessionEntry(
        id=entry_id,
        url=url,
        request=EntryRequest(
            method=method,
            headers=JSON_HEADERS if request_headers is None else request_headers,
            body=_encode(request_body),
        ),
        response=response,
        timings=Timings(started_at=started_at),
        process=process,
    )


def gql_entry(
    entry_id: str,
    query: str,
    response: Any = None,
    variables: dict[str, Any] | None = None,
    operation_name: str | None = None,
    started_at: int = 1_700_000_000_000,
    **kwargs: Any,
) -> SessionEntry:
    """Entry carrying a single GraphQL operation."""
    body: dict[str, Any] = {"query": query}
    if variables is not None:
        body["variables"] = variables
    if operation_name is not None:
        body["operationName"] = operation_name
    return make_entry(entry_id, body, response, started_at=started_at, **kwargs)


class FakeClient:
    """In-memory capture API: sessions hold entries, ``calls`` records fetches."""

    def __init__(self, entries: list[SessionEntry] | None = None, session_id: str = "active"):
        self.sessions: dict[str, list[SessionEntry]] = {session_id: list(entries or [])}
        self.calls: list[tuple[str, str]] = []
        self.failing: set[str] = set()

    def add(self, entry: SessionEntry, session_id: str = "active") -> None:
        self.sessions.setdefault(session_id, []).append(entry)

    def list_sessions(self) -> list[Session]:
        return [
            Session(id=sid, name=f"Session {sid}", entry_ids=[e.id for e in entries])
            for sid, entries in self.sessions.items()
        ]

    def get_session(self, session_id: str) -> Session:
        if session_id not in self.sessions:
            raise ApiError(404, f"session {session_id} not found")
        return Session(id=session_id, entry_ids=[e.id for e in self.sessions[session_id]])

    def get_entry(self, session_id: str, entry_id: str) -> SessionEntry:
        self.calls.append((session_id, entry_id))
        if entry_id in self.failing:
            raise ApiError(500, "boom")
        for entry in self.sessions.get(session_id, []):
            if entry.id == entry_id:
                return entry
        raise ApiError(404, f"entry {entry_id} not found")


def make_deps(entries: list[SessionEntry] | None = None, **config: Any) -> tuple[Deps, FakeClient]:
    client = FakeClient(entries)
    deps = build_deps(Config(fetch_workers=2, **config), client=client)
    return deps, client


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def deps(fake_client: FakeClient) -> Deps:
    return build_deps(Config(fetch_workers=2), client=fake_client)
