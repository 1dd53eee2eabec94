"""Tests for memoized entry parsing, entry resolution and error probing."""

from __future__ import annotations

import json
import threading

import pytest

from powgql.errors import ErrorCode, ToolFailure
from powgql.graphql.resolve import (
    fetch_entry_quiet,
    parse_graphql_entry,
    resolve_graphql_entry_ids,
    response_errors_by_index,
    response_for_index,
)
from tests.conftest import gql_entry, make_deps, make_entry


class TestParseGraphQLEntry:
    def test_parses_and_caches(self):
        deps, client = make_deps([gql_entry("e1", "query GetUser { user { id } }")])
        result = parse_graphql_entry(deps, "active", "e1")
        assert result is not None
        assert result.operations[0].name == "GetUser"

        client.calls.clear()
        deps.entries.cache = type(deps.entries.cache)()  # drop fetched entries
        assert parse_graphql_entry(deps, "active", "e1") is result
        assert client.calls == []

    def test_non_graphql_cached_as_negative(self):
        deps, _ = make_deps([make_entry("e1", {"name": "Alice"})])
        assert parse_graphql_entry(deps, "active", "e1") is None
        cached = deps.parse_cache.get("e1")
        assert cached is not None
        assert not cached.is_graphql

    def test_non_json_content_type(self):
        entry = make_entry(
            "e1",
            {"query": "{ a }"},
            request_headers=[["Content-Type", "text/plain"]],
        )
        deps, _ = make_deps([entry])
        assert parse_graphql_entry(deps, "active", "e1") is None

    def test_missing_body(self):
        deps, _ = make_deps([make_entry("e1")])
        assert parse_graphql_entry(deps, "active", "e1") is None

    def test_fetch_failure_not_cached(self):
        deps, client = make_deps([gql_entry("e1", "{ a }")])
        client.failing.add("e1")
        assert parse_graphql_entry(deps, "active", "e1") is None
        assert deps.parse_cache.get("e1") is None

        client.failing.clear()
        assert parse_graphql_entry(deps, "active", "e1") is not None


class TestFetchEntryQuiet:
    def test_missing_entry_is_none(self):
        deps, _ = make_deps([])
        assert fetch_entry_quiet(deps, "active", "ghost") is None

    def test_cancellation_propagates(self):
        deps, _ = make_deps([gql_entry("e1", "{ a }")])
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ToolFailure) as exc_info:
            fetch_entry_quiet(deps, "active", "e1", cancel)
        assert exc_info.value.code == ErrorCode.CANCELLED


class TestResolveEntryIds:
    def test_explicit_ids_truncated(self):
        deps, client = make_deps([])
        ids = resolve_graphql_entry_ids(deps, "active", ["a", "b", "c"], max_entries=2)
        assert ids == ["a", "b"]
        assert client.calls == []

    def test_by_operation_name(self):
        deps, _ = make_deps(
            [
                gql_entry("e1", "query GetUser { user { id } }", started_at=1),
                gql_entry("e2", "query GetFeed { feed { id } }", started_at=2),
                gql_entry("e3", "query GetUser { user { name } }", started_at=3),
                make_entry("e4", {"rest": True}, started_at=4),
            ]
        )
        ids = resolve_graphql_entry_ids(deps, "active", None, operation_name="GetUser")
        # most recent first
        assert ids == ["e3", "e1"]

    def test_any_graphql_without_name(self):
        deps, _ = make_deps(
            [
                gql_entry("e1", "{ a }", started_at=1),
                make_entry("e2", {"x": 1}, started_at=2),
                gql_entry("e3", "{ b }", started_at=3, method="GET"),
            ]
        )
        assert resolve_graphql_entry_ids(deps, "active", [], operation_name="") == ["e1"]

    def test_host_filter(self):
        deps, _ = make_deps(
            [
                gql_entry("e1", "query A { a }", url="https://api.example.com/graphql"),
                gql_entry("e2", "query A { a }", url="https://other.test/graphql"),
            ]
        )
        ids = resolve_graphql_entry_ids(deps, "active", None, operation_name="A", host="other.test")
        assert ids == ["e2"]

    def test_stops_at_max_entries(self):
        deps, _ = make_deps([gql_entry(f"e{i}", "query A { a }", started_at=i) for i in range(10)])
        ids = resolve_graphql_entry_ids(deps, "active", None, operation_name="A", max_entries=3)
        assert ids == ["e9", "e8", "e7"]


class TestResponseErrors:
    def test_single_with_errors(self):
        assert response_errors_by_index(b'{"errors": [{"message": "x"}]}') == {0: True}

    def test_single_without_errors(self):
        assert response_errors_by_index(b'{"data": {}, "errors": []}') == {0: False}

    def test_batched(self):
        body = json.dumps([{"data": {}}, {"errors": [{"message": "x"}]}]).encode()
        assert response_errors_by_index(body) == {0: False, 1: True}

    def test_empty_body(self):
        assert response_errors_by_index(b"") is None
        assert response_errors_by_index(None) is None

    def test_invalid_json(self):
        assert response_errors_by_index(b"<html>") == {0: False}


class TestResponseForIndex:
    def test_batched_picks_element(self):
        assert response_for_index([{"a": 1}, {"b": 2}], 1, True) == {"b": 2}

    def test_batched_out_of_range(self):
        assert response_for_index([{"a": 1}], 3, True) is None

    def test_non_batched_array_uses_first(self):
        assert response_for_index([{"a": 1}, {"b": 2}], 0, False) == {"a": 1}

    def test_object_shared_by_batch(self):
        assert response_for_index({"errors": []}, 1, True) == {"errors": []}
