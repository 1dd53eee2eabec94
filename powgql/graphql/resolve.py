"""Entry-level GraphQL helpers: memoized parsing, entry resolution, error probing."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, cast

from powgql.deps import Deps
from powgql.entries import EntrySource
from powgql.errors import ErrorCode, ToolFailure, check_cancelled
from powgql.formats.powhttp import SessionEntry
from powgql.graphql.parser import NotGraphQLError, is_graphql_body, parse_request_body
from powgql.graphql.types import ParseResult
from powgql.helpers.contenttype import is_json
from powgql.search import SearchFilters

logger = logging.getLogger(__name__)


def fetch_entry_quiet(
    deps: Deps, session_id: str, entry_id: str, cancel: threading.Event | None = None
) -> SessionEntry | None:
    """Fetch an entry, turning per-entry failures into ``None``.

    Cancellation is not a per-entry failure and propagates.
    """
    try:
        return deps.entries.fetch_entry(session_id, entry_id, cancel)
    except ToolFailure as exc:
        if exc.code == ErrorCode.CANCELLED:
            raise
        logger.debug("skipping entry %s: %s", entry_id, exc)
        return None


def parse_graphql_entry(
    deps: Deps,
    session_id: str,
    entry_id: str,
    cancel: threading.Event | None = None,
    entry: SessionEntry | None = None,
) -> ParseResult | None:
    """Parse the request body of an entry as GraphQL, memoized per entry id.

    Returns ``None`` for entries that are not GraphQL.  Both verdicts are
    cached; fetch failures are not, so a later call can retry them.  Pass an
    already fetched *entry* to skip the entry source.
    """
    cached = deps.parse_cache.get(entry_id)
    if cached is not None:
        return cached.result

    if entry is None:
        entry = fetch_entry_quiet(deps, session_id, entry_id, cancel)
    if entry is None:
        return None

    return deps.parse_cache.store(entry_id, _parse_entry(entry)).result


def _parse_entry(entry: SessionEntry) -> ParseResult | None:
    try:
        body, content_type = EntrySource.decode_body(entry, "request")
    except ToolFailure:
        return None
    if not body or not is_json(content_type) or not is_graphql_body(body):
        return None
    try:
        return parse_request_body(body)
    except NotGraphQLError:
        return None


def resolve_graphql_entry_ids(
    deps: Deps,
    session_id: str,
    entry_ids: list[str] | None,
    operation_name: str = "",
    host: str = "",
    max_entries: int = 20,
    cancel: threading.Event | None = None,
) -> list[str]:
    """Materialize the entry ids an inspection should walk.

    Explicit ids win and are only truncated.  Otherwise every POST entry of
    the session (optionally on *host*) is considered, in search order, and
    kept when it parses as GraphQL and, if *operation_name* is set, carries
    an operation of that name.
    """
    if entry_ids:
        return list(entry_ids[:max_entries])

    results = deps.search.search(
        session_id,
        SearchFilters(method="POST", host=host),
        limit=deps.config.max_search_results,
        cancel=cancel,
    )

    ids: list[str] = []
    for result in results:
        if len(ids) >= max_entries:
            break
        check_cancelled(cancel)
        parsed = parse_graphql_entry(deps, session_id, result.entry_id, cancel, result.entry)
        if parsed is None:
            continue
        if operation_name and not any(op.name == operation_name for op in parsed.operations):
            continue
        ids.append(result.entry_id)
    return ids


# -- Response probing ------------------------------------------------------------


def load_json_body(body: bytes | None) -> Any:
    """Decode a JSON body; raises ``ValueError`` for empty or invalid input."""
    if not body or not body.strip():
        raise ValueError("empty body")
    return json.loads(body)


def _has_errors(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    errors = cast(dict[str, Any], item).get("errors")
    return isinstance(errors, list) and len(cast(list[Any], errors)) > 0


def response_errors_by_index(body: bytes | None) -> dict[int, bool] | None:
    """Map batch index to "this response carries GraphQL errors".

    A JSON array is attributed element by element; anything else is a
    single response at index 0.  Empty bodies give ``None``.
    """
    if not body or not body.strip():
        return None
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError, RecursionError):
        return {0: False}

    if isinstance(data, list):
        return {i: _has_errors(item) for i, item in enumerate(cast(list[Any], data))}
    return {0: _has_errors(data)}


def response_for_index(data: Any, batch_index: int, is_batched: bool) -> Any:
    """Pick the response object that belongs to an operation.

    Batched exchanges answer with a parallel array; a non-array answer to a
    batch is treated as shared by all of its operations.
    """
    if isinstance(data, list):
        items = cast(list[Any], data)
        index = batch_index if is_batched else 0
        return items[index] if 0 <= index < len(items) else None
    return data
