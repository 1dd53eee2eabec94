"""Traffic survey: cluster every GraphQL operation of a session by (name, type)."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import threading

from powgql.deps import Deps
from powgql.entries import EntrySource
from powgql.errors import check_cancelled
from powgql.graphql.resolve import fetch_entry_quiet, parse_graphql_entry, response_errors_by_index
from powgql.graphql.types import ANONYMOUS, OperationCluster, ParseResult, TrafficSummary
from powgql.graphql.variables import VariableAccumulator
from powgql.helpers.contenttype import is_json
from powgql.helpers.http import url_host
from powgql.search import SearchFilters

logger = logging.getLogger(__name__)

MAX_EXAMPLE_IDS = 5


@dataclass
class ScopeFilters:
    host: str = ""
    path: str = ""
    process_name: str = ""
    pid: int = 0
    time_window_ms: int = 0
    since_ms: int = 0
    until_ms: int = 0

    def to_filters(self) -> SearchFilters:
        return SearchFilters(
            method="POST",
            host=self.host,
            path_contains=self.path,
            process_name=self.process_name,
            pid=self.pid,
            since_ms=self.since_ms,
            until_ms=self.until_ms,
            time_window_ms=self.time_window_ms,
        )


@dataclass
class SurveyReport:
    clusters: list[OperationCluster] = field(default_factory=lambda: list[OperationCluster]())
    summary: TrafficSummary = field(default_factory=TrafficSummary)
    post_count: int = 0  # POST entries returned by the search
    graphql_count: int = 0  # of which parsed as GraphQL
    total_clusters: int = 0  # before pagination


@dataclass
class _ParsedEntry:
    entry_id: str
    result: ParseResult
    err_by_index: dict[int, bool]


class _ClusterBuilder:
    def __init__(self, name: str, type_: str):
        self.cluster = OperationCluster(name=name, type=type_)
        self.variables = VariableAccumulator()

    def build(self) -> OperationCluster:
        self.cluster.variable_summary = self.variables.distribution()
        return self.cluster


def survey_operations(
    deps: Deps,
    session_id: str,
    scope: ScopeFilters | None = None,
    operation_type: str = "",
    limit: int = 50,
    offset: int = 0,
    cancel: threading.Event | None = None,
) -> SurveyReport:
    """Search POST traffic, parse GraphQL bodies and aggregate operations.

    Counters in the summary cover every parsed operation; the
    *operation_type* filter only restricts which operations are clustered.
    Clusters are ordered by count (desc) then name, then paginated.
    """
    scope = scope or ScopeFilters()
    results = deps.search.search(
        session_id, scope.to_filters(), limit=deps.config.max_search_results, cancel=cancel
    )
    report = SurveyReport(post_count=len(results))
    if not results:
        return report

    parsed: list[_ParsedEntry] = []
    hosts: set[str] = set()
    for result in results:
        check_cancelled(cancel)
        pr = parse_graphql_entry(deps, session_id, result.entry_id, cancel, result.entry)
        if pr is None:
            continue

        err_by_index: dict[int, bool] = {}
        entry = result.entry or fetch_entry_quiet(deps, session_id, result.entry_id, cancel)
        if entry is not None:
            body, content_type = EntrySource.decode_body(entry, "response")
            if body is not None and is_json(content_type):
                err_by_index = response_errors_by_index(body) or {}
            host = url_host(entry.url)
            if host:
                hosts.add(host)
        parsed.append(_ParsedEntry(result.entry_id, pr, err_by_index))

    report.graphql_count = len(parsed)
    if not parsed:
        return report

    summary = report.summary
    builders: dict[tuple[str, str], _ClusterBuilder] = {}
    for pe in parsed:
        if pe.result.is_batched:
            summary.batched_count += 1
        for op_idx, op in enumerate(pe.result.operations):
            summary.total_requests += 1
            if op.type == "query":
                summary.query_count += 1
            elif op.type == "mutation":
                summary.mutation_count += 1
            elif op.type == "subscription":
                summary.subscription_count += 1
            if op.name == ANONYMOUS:
                summary.anonymous_count += 1

            if operation_type and op.type != operation_type:
                continue

            builder = builders.get((op.name, op.type))
            if builder is None:
                builder = builders[(op.name, op.type)] = _ClusterBuilder(op.name, op.type)
            cluster = builder.cluster
            cluster.count += 1
            if pe.err_by_index.get(op_idx, False):
                cluster.error_count += 1
            cluster.has_variables = cluster.has_variables or op.has_variables
            for name in op.fields:
                if name not in cluster.fields:
                    cluster.fields.append(name)
            if len(cluster.entry_ids) < MAX_EXAMPLE_IDS:
                cluster.entry_ids.append(pe.entry_id)
            builder.variables.add(op.variables)

    summary.hosts = sorted(hosts)
    summary.unique_ops = len(builders)

    clusters = sorted((b.build() for b in builders.values()), key=lambda c: (-c.count, c.name))
    report.total_clusters = len(clusters)
    report.clusters = clusters[offset : offset + limit] if offset >= 0 else clusters[:limit]

    logger.info(
        "surveyed session %s: %d POST entries, %d GraphQL, %d operations in %d clusters",
        session_id, report.post_count, report.graphql_count, summary.total_requests, len(clusters),
    )
    return report
