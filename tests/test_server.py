"""Tests for the tool server wiring."""

from __future__ import annotations

import asyncio
import json
import threading

import pytest
from mcp.server.fastmcp.exceptions import ResourceError, ToolError

from powgql.server import create_server, run_cancellable
from tests.conftest import gql_entry, make_deps


@pytest.fixture
def server():
    deps, _ = make_deps(
        [gql_entry("e1", "query GetUser { user { id } }", {"data": {"user": {"id": "u1"}}})]
    )
    return create_server(deps)


def _texts(result) -> list[str]:
    return [block.text for block in result]


class TestRegistration:
    @pytest.mark.asyncio
    async def test_tools(self, server):
        tools = await server.list_tools()
        assert {t.name for t in tools} == {"survey_graphql", "inspect_graphql_operation", "list_sessions"}

    @pytest.mark.asyncio
    async def test_resource_template(self, server):
        templates = await server.list_resource_templates()
        assert [t.uriTemplate for t in templates] == ["powhttp://graphql/{session}/{operation}/{aspect}"]


class TestTools:
    @pytest.mark.asyncio
    async def test_survey(self, server):
        texts = _texts(await server.call_tool("survey_graphql", {}))
        assert len(texts) == 2
        assert "| GetUser | query | 1 | 0 | user |" in texts[0]
        assert json.loads(texts[1])["traffic_summary"]["unique_ops"] == 1

    @pytest.mark.asyncio
    async def test_survey_with_scope(self, server):
        texts = _texts(await server.call_tool("survey_graphql", {"scope": {"host": "elsewhere.test"}}))
        assert texts[0].startswith("No POST requests found.")

    @pytest.mark.asyncio
    async def test_inspect(self, server):
        texts = _texts(
            await server.call_tool("inspect_graphql_operation", {"operation_name": "GetUser", "sections": ["query"]})
        )
        assert texts[0].startswith("## GetUser (query)")
        assert json.loads(texts[1])["query"] == "query GetUser { user { id } }"

    @pytest.mark.asyncio
    async def test_tool_failure(self, server):
        with pytest.raises(ToolError, match="INVALID_INPUT"):
            await server.call_tool("inspect_graphql_operation", {})

    @pytest.mark.asyncio
    async def test_list_sessions(self, server):
        texts = _texts(await server.call_tool("list_sessions", {}))
        assert "| active |" in texts[0]


class TestResources:
    @pytest.mark.asyncio
    async def test_read(self, server):
        contents = list(await server.read_resource("powhttp://graphql/active/GetUser/query"))
        assert json.loads(contents[0].content)["query"] == "query GetUser { user { id } }"
        assert contents[0].mime_type == "application/json"

    @pytest.mark.asyncio
    async def test_unknown_operation(self, server):
        with pytest.raises((ResourceError, ValueError), match="NOT_FOUND"):
            await server.read_resource("powhttp://graphql/active/Nope/errors")


class TestRunCancellable:
    @pytest.mark.asyncio
    async def test_returns_result(self):
        assert await run_cancellable(lambda cancel: cancel.is_set()) is False

    @pytest.mark.asyncio
    async def test_cancellation_sets_event(self):
        seen: list[threading.Event] = []
        started = threading.Event()

        def work(cancel: threading.Event) -> str:
            seen.append(cancel)
            started.set()
            cancel.wait(5)
            return "done"

        task = asyncio.create_task(run_cancellable(work))
        await asyncio.to_thread(started.wait, 5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert seen[0].is_set()
