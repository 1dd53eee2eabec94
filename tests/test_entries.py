"""Tests for the entry cache and entry source."""

from __future__ import annotations

import threading

import pytest

from powgql.config import Config
from powgql.deps import build_deps
from powgql.entries import EntryCache, EntrySource
from powgql.errors import ErrorCode, ToolFailure
from powgql.formats.powhttp import EntryRequest, SessionEntry
from tests.conftest import FakeClient, make_entry


class TestEntryCache:
    def test_lru_eviction(self):
        cache = EntryCache(max_items=2)
        cache.put("s", make_entry("a"))
        cache.put("s", make_entry("b"))
        assert cache.get("s", "a") is not None  # a is now most recent
        cache.put("s", make_entry("c"))
        assert cache.get("s", "b") is None
        assert cache.get("s", "a") is not None
        assert len(cache) == 2

    def test_keyed_by_session(self):
        cache = EntryCache()
        cache.put("s1", make_entry("a"))
        assert cache.get("s2", "a") is None


class TestEntrySourceCache:
    def test_configured_capacity(self):
        deps = build_deps(Config(entry_cache_max_items=10), client=FakeClient())
        assert deps.entries.cache.max_items == 10

    def test_empty_cache_is_kept(self):
        cache = EntryCache(max_items=3)
        assert EntrySource(FakeClient(), cache).cache is cache

    def test_default_capacity(self):
        assert EntrySource(FakeClient()).cache.max_items == 512


class TestFetchEntry:
    def test_cached_after_first_fetch(self):
        client = FakeClient([make_entry("e1")])
        source = EntrySource(client)
        source.fetch_entry("active", "e1")
        source.fetch_entry("active", "e1")
        assert client.calls == [("active", "e1")]

    def test_not_found(self):
        source = EntrySource(FakeClient())
        with pytest.raises(ToolFailure) as exc_info:
            source.fetch_entry("active", "ghost")
        assert exc_info.value.code == ErrorCode.NOT_FOUND

    def test_upstream_error(self):
        client = FakeClient([make_entry("e1")])
        client.failing.add("e1")
        with pytest.raises(ToolFailure) as exc_info:
            EntrySource(client).fetch_entry("active", "e1")
        assert exc_info.value.code == ErrorCode.POWHTTP_ERROR

    def test_cancelled(self):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ToolFailure) as exc_info:
            EntrySource(FakeClient([make_entry("e1")])).fetch_entry("active", "e1", cancel)
        assert exc_info.value.code == ErrorCode.CANCELLED


class TestWarm:
    def test_keeps_order_and_skips_failures(self):
        client = FakeClient([make_entry("a"), make_entry("b"), make_entry("c")])
        client.failing.add("b")
        source = EntrySource(client, workers=3)
        entries = source.warm("active", ["c", "b", "a"])
        assert [e.id for e in entries] == ["c", "a"]
        assert len(source.cache) == 2

    def test_session_larger_than_cache(self):
        entries = [make_entry(f"e{i}") for i in range(30)]
        client = FakeClient(entries)
        source = EntrySource(client, EntryCache(max_items=5), workers=4)

        warmed = source.warm("active", [e.id for e in entries])
        assert [e.id for e in warmed] == [e.id for e in entries]
        assert len(client.calls) == 30
        assert len(source.cache) == 5

    def test_cached_entries_not_refetched(self):
        client = FakeClient([make_entry("a"), make_entry("b")])
        source = EntrySource(client)
        source.fetch_entry("active", "a")
        client.calls.clear()

        assert [e.id for e in source.warm("active", ["a", "b", "a"])] == ["a", "b", "a"]
        assert client.calls == [("active", "b")]

    def test_cancelled(self):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ToolFailure):
            EntrySource(FakeClient([make_entry("a")])).warm("active", ["a"], cancel)


class TestDecodeBody:
    def test_request_body(self):
        entry = make_entry("e1", {"query": "{ a }"})
        body, content_type = EntrySource.decode_body(entry, "request")
        assert body == b'{"query": "{ a }"}'
        assert content_type == "application/json"

    def test_response_body(self):
        entry = make_entry("e1", None, b"hello", response_headers=[["content-type", "text/plain"]])
        assert EntrySource.decode_body(entry, "response") == (b"hello", "text/plain")

    def test_no_response(self):
        entry = make_entry("e1", with_response=False)
        assert EntrySource.decode_body(entry, "response") == (None, "")

    def test_no_body(self):
        entry = make_entry("e1")
        assert EntrySource.decode_body(entry, "request") == (None, "application/json")

    def test_invalid_base64(self):
        entry = SessionEntry(id="e1", request=EntryRequest(body="%%%not-base64"))
        with pytest.raises(ToolFailure) as exc_info:
            EntrySource.decode_body(entry, "request")
        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    def test_invalid_target(self):
        with pytest.raises(ToolFailure):
            EntrySource.decode_body(make_entry("e1"), "headers")  # type: ignore[arg-type]
