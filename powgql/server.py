"""MCP tool server exposing the GraphQL analysis tools and resources."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
import threading
from typing import TypeVar

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ResourceError, ToolError
from mcp.types import TextContent

from powgql.deps import Deps
from powgql.errors import ToolFailure
from powgql.tools import (
    InspectGraphQLOperationInput,
    SurveyGraphQLInput,
    SurveyScope,
    ToolResult,
    inspect_graphql_operation,
    list_sessions,
    read_graphql_resource,
    survey_graphql,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

RESOURCE_TEMPLATE = "powhttp://graphql/{session}/{operation}/{aspect}"

INSTRUCTIONS = (
    "Analyse GraphQL traffic captured by powhttp. Start with survey_graphql to list "
    "operations, then inspect_graphql_operation for one of them. Full query text, "
    "schemas, field statistics and errors are served as resources under "
    "powhttp://graphql/{session}/{operation}/{aspect}."
)


async def run_cancellable(func: Callable[[threading.Event], T]) -> T:
    """Run *func* in a worker thread with a cancellation event.

    The event is set when the awaiting task is cancelled, so the pipeline
    stops at its next checkpoint.
    """
    cancel = threading.Event()
    try:
        return await asyncio.to_thread(func, cancel)
    except asyncio.CancelledError:
        cancel.set()
        raise


def _content(result: ToolResult) -> list[TextContent]:
    return [TextContent(type="text", text=block) for block in result.blocks]


def create_server(deps: Deps) -> FastMCP:
    mcp = FastMCP("powgql", instructions=INSTRUCTIONS)

    @mcp.tool(name="survey_graphql", structured_output=False)
    async def survey_graphql_tool(
        session_id: str = "",
        scope: SurveyScope | None = None,
        operation_type: str = "",
        limit: int = 50,
        offset: int = 0,
    ) -> list[TextContent]:
        """Survey GraphQL traffic: cluster operations by name and type with call, error and field counts."""
        params = SurveyGraphQLInput(
            session_id=session_id, scope=scope, operation_type=operation_type, limit=limit, offset=offset
        )
        try:
            result = await run_cancellable(lambda cancel: survey_graphql(deps, params, cancel))
        except ToolFailure as exc:
            logger.info("survey_graphql failed: %s", exc)
            raise ToolError(str(exc)) from exc
        return _content(result)

    @mcp.tool(name="inspect_graphql_operation", structured_output=False)
    async def inspect_graphql_operation_tool(
        session_id: str = "",
        entry_ids: list[str] | None = None,
        operation_name: str = "",
        host: str = "",
        sections: list[str] | None = None,
        max_entries: int = 20,
    ) -> list[TextContent]:
        """Inspect one GraphQL operation: query, variables, response shape, fragments and errors."""
        params = InspectGraphQLOperationInput(
            session_id=session_id,
            entry_ids=entry_ids or [],
            operation_name=operation_name,
            host=host,
            sections=sections or [],
            max_entries=max_entries,
        )
        try:
            result = await run_cancellable(lambda cancel: inspect_graphql_operation(deps, params, cancel))
        except ToolFailure as exc:
            logger.info("inspect_graphql_operation failed: %s", exc)
            raise ToolError(str(exc)) from exc
        return _content(result)

    @mcp.tool(name="list_sessions", structured_output=False)
    async def list_sessions_tool() -> list[TextContent]:
        """List powhttp capture sessions."""
        try:
            result = await run_cancellable(lambda _cancel: list_sessions(deps))
        except ToolFailure as exc:
            raise ToolError(str(exc)) from exc
        return _content(result)

    @mcp.resource(RESOURCE_TEMPLATE, name="graphql_analysis", mime_type="application/json")
    async def graphql_resource(session: str, operation: str, aspect: str) -> str:
        """Full analysis of a GraphQL operation: query, response-schema, field-stats or errors."""
        try:
            return await run_cancellable(
                lambda cancel: read_graphql_resource(deps, session, operation, aspect, cancel)
            )
        except ToolFailure as exc:
            raise ResourceError(str(exc)) from exc

    return mcp
