"""Tool entry points shared by the tool server and the CLI.

Each tool validates its input model, runs the synchronous pipeline and
returns a ``ToolResult``: the markdown rendering plus, when there is
structured data, the output model serialized as a compact JSON block.
Failures surface as ``ToolFailure``; anything unexpected while analysing
or rendering becomes ``INTERNAL`` with the operation name in the message.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import json
import logging
import threading
from typing import Any, TypeVar

from pydantic import BaseModel, Field

from powgql.deps import Deps, resolve_session_id
from powgql.errors import ToolFailure, internal, invalid_input, not_found, wrap_upstream_error
from powgql.graphql.inspect import get_or_run_graphql_analysis, inspect_operation
from powgql.graphql.render import (
    NO_GRAPHQL_TEXT,
    NO_POST_TEXT,
    format_entry_ids,
    hybrid,
    no_entries_for_operation,
    no_operations_of_type,
    render_inspection,
    render_survey,
)
from powgql.graphql.survey import ScopeFilters, survey_operations
from powgql.graphql.types import (
    OPERATION_TYPES,
    ErrorGroup,
    ErrorSummary,
    FieldStat,
    FragmentCoverage,
    FragmentWarning,
    OperationCluster,
    ResponseVariants,
    TrafficSummary,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_SURVEY_LIMIT = 50
MAX_SHOWN_ENTRY_IDS = 5
RESOURCE_ASPECTS = ("query", "response-schema", "field-stats", "errors")

# -- Inputs -------------------------------------------------------------------------


class SurveyScope(BaseModel):
    host: str = Field(
        default="",
        description="Filter by host. Prefix with '*.' to include subdomains (e.g. '*.example.com').",
    )
    path: str = Field(default="", description="Only requests whose path contains this substring.")
    process_name: str = Field(default="", description="Only requests made by this process.")
    pid: int = Field(default=0, description="Only requests made by this process id.")
    time_window_ms: int = Field(default=0, description="Only requests from the last N milliseconds.")
    since_ms: int = Field(default=0, description="Only requests started at or after this epoch time (ms).")
    until_ms: int = Field(default=0, description="Only requests started at or before this epoch time (ms).")


class SurveyGraphQLInput(BaseModel):
    session_id: str = Field(default="", description="Session ID (default: active)")
    scope: SurveyScope | None = None
    operation_type: str = Field(
        default="", description="Only cluster operations of this type: query, mutation or subscription."
    )
    limit: int = Field(default=DEFAULT_SURVEY_LIMIT, description="Max clusters to return (default: 50)")
    offset: int = Field(default=0, description="Clusters to skip, for pagination.")


class InspectGraphQLOperationInput(BaseModel):
    session_id: str = Field(default="", description="Session ID (default: active)")
    entry_ids: list[str] = Field(
        default_factory=list,
        description="Entry IDs to inspect. Either entry_ids or operation_name is required.",
    )
    operation_name: str = Field(
        default="",
        description="GraphQL operation name to find and inspect. Either entry_ids or operation_name is required.",
    )
    host: str = Field(
        default="",
        description="Filter search by host (ignored when entry_ids is provided). Prefix with '*.' to include subdomains.",
    )
    sections: list[str] = Field(
        default_factory=list,
        description="Which sections to include: query, variables, response_shape, errors. Default: all four.",
    )
    max_entries: int = Field(default=20, description="Max entries to inspect (default: 20, max: 100)")


# -- Outputs ------------------------------------------------------------------------


class SurveyGraphQLOutput(BaseModel):
    operation_clusters: list[OperationCluster] = Field(default_factory=list)
    traffic_summary: TrafficSummary = Field(default_factory=TrafficSummary)
    hint: str | None = None


class InspectGraphQLOperationOutput(BaseModel):
    operation_name: str = ""
    operation_type: str | None = None
    query: str | None = None
    field_stats: list[FieldStat] = Field(default_factory=list)
    error_groups: list[ErrorGroup] = Field(default_factory=list)
    error_summary: ErrorSummary | None = None
    fragment_warnings: list[FragmentWarning] = Field(default_factory=list)
    fragment_coverage: FragmentCoverage | None = None
    response_variants: ResponseVariants | None = None
    entries_matched: int = 0
    entry_ids: list[str] = Field(default_factory=list)
    resources: dict[str, str] = Field(default_factory=dict)
    hint: str | None = None


class SessionInfo(BaseModel):
    id: str
    name: str = ""
    entry_count: int = 0


class ListSessionsOutput(BaseModel):
    sessions: list[SessionInfo] = Field(default_factory=list)


@dataclass
class ToolResult:
    markdown: str
    data: BaseModel | None = None

    @property
    def blocks(self) -> list[str]:
        return hybrid(self.markdown, self.data)


def _guarded(what: str, func: Callable[[], T]) -> T:
    """Run *func*, turning unexpected exceptions into ``INTERNAL`` failures."""
    try:
        return func()
    except ToolFailure:
        raise
    except Exception as exc:
        logger.exception("%s failed", what)
        raise internal(f"{what}: {exc}", exc) from exc


# -- Tools --------------------------------------------------------------------------


def survey_graphql(
    deps: Deps, params: SurveyGraphQLInput, cancel: threading.Event | None = None
) -> ToolResult:
    """Cluster the GraphQL operations of a session."""
    if params.operation_type and params.operation_type not in OPERATION_TYPES:
        raise invalid_input("operation_type must be 'query', 'mutation', or 'subscription'")
    limit = params.limit if params.limit > 0 else DEFAULT_SURVEY_LIMIT
    offset = max(params.offset, 0)
    session_id = resolve_session_id(params.session_id)
    scope = params.scope or SurveyScope()

    report = _guarded(
        f"surveying session {session_id!r}",
        lambda: survey_operations(
            deps,
            session_id,
            ScopeFilters(**scope.model_dump()),
            operation_type=params.operation_type,
            limit=limit,
            offset=offset,
            cancel=cancel,
        ),
    )
    if report.post_count == 0:
        return ToolResult(NO_POST_TEXT)
    if report.graphql_count == 0:
        return ToolResult(NO_GRAPHQL_TEXT)
    if report.total_clusters == 0 and params.operation_type:
        return ToolResult(no_operations_of_type(params.operation_type))

    out = SurveyGraphQLOutput(operation_clusters=report.clusters, traffic_summary=report.summary)
    if report.clusters:
        out.hint = (
            f"Inspect an operation with inspect_graphql_operation("
            f"operation_name={json.dumps(report.clusters[0].name)})."
        )
    markdown = _guarded("rendering survey", lambda: render_survey(report.clusters, report.summary))
    return ToolResult(markdown, out)


def inspect_graphql_operation(
    deps: Deps, params: InspectGraphQLOperationInput, cancel: threading.Event | None = None
) -> ToolResult:
    """Inspect one operation: query, variables, response shape and errors."""
    session_id = resolve_session_id(params.session_id)
    what = f"inspecting operation {params.operation_name or '<by entry ids>'!r}"
    report = _guarded(
        what,
        lambda: inspect_operation(
            deps,
            session_id,
            entry_ids=params.entry_ids,
            operation_name=params.operation_name,
            host=params.host,
            sections=params.sections,
            max_entries=params.max_entries,
            cancel=cancel,
        ),
    )
    if not report.resolved:
        return ToolResult(no_entries_for_operation(params.operation_name))

    analysis = report.analysis
    sections = report.sections
    shown_ids = list(analysis.entry_ids[:MAX_SHOWN_ENTRY_IDS])
    out = InspectGraphQLOperationOutput(
        operation_name=analysis.operation_name,
        operation_type=analysis.operation_type or None,
        entries_matched=analysis.entries_matched,
        entry_ids=shown_ids,
        resources=report.resources,
    )
    if sections.query and analysis.query:
        out.query = analysis.query
    if sections.response_shape:
        out.field_stats = list(analysis.field_stats)
        out.fragment_warnings = list(analysis.fragment_warnings)
        out.fragment_coverage = analysis.fragment_coverage
        out.response_variants = analysis.response_variants
    if sections.errors:
        out.error_groups = list(analysis.error_groups)
        out.error_summary = analysis.error_summary
    if shown_ids:
        out.hint = f'Extract values with query_body(entry_ids={format_entry_ids(shown_ids[:1])}, expression=".data").'

    markdown = _guarded(f"rendering {analysis.operation_name!r}", lambda: render_inspection(report))
    return ToolResult(markdown, out)


def read_graphql_resource(
    deps: Deps,
    session_id: str,
    operation_name: str,
    aspect: str,
    cancel: threading.Event | None = None,
) -> str:
    """JSON document for ``powhttp://graphql/{session}/{operation}/{aspect}``."""
    if aspect not in RESOURCE_ASPECTS:
        raise invalid_input(
            f"invalid aspect {aspect!r}: valid values are query, response-schema, field-stats, errors"
        )
    session_id = resolve_session_id(session_id)
    analysis = _guarded(
        f"analysing operation {operation_name!r}",
        lambda: get_or_run_graphql_analysis(deps, session_id, operation_name, cancel),
    )
    if analysis.entries_matched == 0:
        raise not_found(f"no entries found for operation {operation_name!r} in session {session_id}")

    doc: dict[str, Any] = {"operation_name": analysis.operation_name}
    if aspect == "query":
        doc["query"] = analysis.query
    elif aspect == "response-schema":
        doc["variables_schema"] = analysis.variables_schema
        doc["response_schema"] = analysis.response_schema
    elif aspect == "field-stats":
        doc["field_stats"] = [s.model_dump(mode="json") for s in analysis.field_stats]
    else:
        doc["error_summary"] = analysis.error_summary.model_dump(mode="json")
        doc["error_groups"] = [g.model_dump(mode="json") for g in analysis.error_groups]
    return json.dumps(doc, indent=2, ensure_ascii=False)


def list_sessions(deps: Deps) -> ToolResult:
    """Capture sessions known to the capture tool."""
    try:
        sessions = deps.client.list_sessions()
    except ToolFailure:
        raise
    except Exception as exc:
        raise wrap_upstream_error(exc) from exc

    out = ListSessionsOutput(
        sessions=[SessionInfo(id=s.id, name=s.name, entry_count=len(s.entry_ids)) for s in sessions]
    )
    if not out.sessions:
        return ToolResult("No capture sessions found.\n", out)

    lines = ["| Session | Name | Entries |", "|---------|------|--------:|"]
    lines.extend(f"| {s.id} | {s.name or '-'} | {s.entry_count} |" for s in out.sessions)
    lines.extend(["", 'Use `session_id="active"` for the session currently open in powhttp.'])
    return ToolResult("\n".join(lines) + "\n", out)
