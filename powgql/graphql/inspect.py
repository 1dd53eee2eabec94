"""Operation inspector: canonical query and schemas, errors, fragments and variants.

One call walks the resolved entries in order.  The first operation that
matches is canonical: it supplies the query text, the variables schema
and the response schema with its field statistics.  Errors, fragment
warnings, fragment coverage and response variants are aggregated over
every match.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
import logging
import threading
from typing import Any, cast

from powgql.deps import Deps
from powgql.entries import EntrySource
from powgql.errors import ToolFailure, check_cancelled, invalid_input
from powgql.formats.powhttp import SessionEntry
from powgql.graphql.fragments import compute_fragment_coverage, detect_fragment_warnings
from powgql.graphql.resolve import (
    fetch_entry_quiet,
    load_json_body,
    parse_graphql_entry,
    resolve_graphql_entry_ids,
    response_for_index,
)
from powgql.graphql.types import (
    ErrorGroup,
    ErrorSummary,
    FieldStat,
    GraphQLAnalysis,
    GraphQLError,
    ParsedOperation,
)
from powgql.graphql.variables import VariableAccumulator
from powgql.graphql.variants import EntryShape, compute_response_variants, entry_shape
from powgql.helpers.contenttype import is_json
from powgql.schemas import compute_field_stats, infer_schema

logger = logging.getLogger(__name__)

SECTION_NAMES = ("query", "variables", "response_shape", "errors")
DEFAULT_MAX_ENTRIES = 20
MAX_ENTRIES_CAP = 100
MAX_VARIABLE_EXAMPLES = 2
RESOURCE_ASPECTS = {
    "query": "query",
    "response_schema": "response-schema",
    "field_stats": "field-stats",
    "errors": "errors",
}


@dataclass(frozen=True)
class InspectSections:
    query: bool = True
    variables: bool = True
    response_shape: bool = True
    errors: bool = True

    @property
    def needs_canonical(self) -> bool:
        return self.query or self.variables or self.response_shape


def parse_sections(values: Iterable[str] | None) -> InspectSections:
    """Validate requested section names; nothing requested means everything."""
    requested = list(values or [])
    if not requested:
        return InspectSections()
    for value in requested:
        if value not in SECTION_NAMES:
            raise invalid_input(
                f"invalid section {value!r}: valid values are query, variables, response_shape, errors"
            )
    return InspectSections(**{name: name in requested for name in SECTION_NAMES})


def clamp_max_entries(max_entries: int | None) -> int:
    if not max_entries or max_entries <= 0:
        return DEFAULT_MAX_ENTRIES
    return min(max_entries, MAX_ENTRIES_CAP)


def resource_uris(session_id: str, operation_name: str) -> dict[str, str]:
    """URIs under which the full analysis of an operation can be read back."""
    if not operation_name:
        return {}
    return {
        key: f"powhttp://graphql/{session_id}/{operation_name}/{aspect}"
        for key, aspect in RESOURCE_ASPECTS.items()
    }


@dataclass
class InspectReport:
    analysis: GraphQLAnalysis
    sections: InspectSections
    resources: dict[str, str] = field(default_factory=lambda: dict[str, str]())
    variable_examples: list[dict[str, Any]] = field(default_factory=lambda: list[dict[str, Any]]())

    @property
    def resolved(self) -> bool:
        """False when no entry could be resolved for the request."""
        return bool(self.analysis.entry_ids)


@dataclass
class _Canonical:
    op: ParsedOperation
    query: str = ""
    variables_schema: dict[str, Any] | None = None
    response_schema: dict[str, Any] | None = None
    field_stats: list[FieldStat] = field(default_factory=lambda: list[FieldStat]())


def _decode_response(entry: SessionEntry) -> Any:
    """Decoded JSON response of an entry, or ``None``."""
    try:
        body, content_type = EntrySource.decode_body(entry, "response")
        if body is None or not is_json(content_type):
            return None
        return load_json_body(body)
    except ToolFailure as exc:
        logger.debug("undecodable response for entry %s: %s", entry.id, exc)
        return None
    except (ValueError, RecursionError):
        return None


def _to_graphql_error(raw: Any) -> GraphQLError:
    if not isinstance(raw, dict):
        return GraphQLError(message=str(raw))
    item = cast(dict[str, Any], raw)
    path = item.get("path")
    locations = item.get("locations")
    extensions = item.get("extensions")
    message = item.get("message")
    return GraphQLError(
        message=message if isinstance(message, str) else "" if message is None else str(message),
        path=cast(list[Any], path) if isinstance(path, list) else [],
        locations=[loc for loc in cast(list[Any], locations) if isinstance(loc, dict)]
        if isinstance(locations, list)
        else [],
        extensions=cast(dict[str, Any], extensions) if isinstance(extensions, dict) else None,
    )


def _error_group(entry_id: str, op: ParsedOperation, response: Any) -> ErrorGroup | None:
    if not isinstance(response, dict):
        return None
    body = cast(dict[str, Any], response)
    errors = body.get("errors")
    if not isinstance(errors, list) or not errors:
        return None
    is_partial = body.get("data") is not None
    return ErrorGroup(
        entry_id=entry_id,
        operation_name=op.name,
        errors=[_to_graphql_error(e) for e in cast(list[Any], errors)],
        is_partial=is_partial,
        is_full_failure=not is_partial,
    )


def _add_variable_example(examples: list[dict[str, Any]], op: ParsedOperation) -> None:
    if len(examples) >= MAX_VARIABLE_EXAMPLES or not op.has_variables or op.variables is None:
        return
    if op.variables not in examples:
        examples.append(op.variables)


def _capture_canonical(
    entry_id: str, op: ParsedOperation, response: Any, sections: InspectSections
) -> _Canonical | None:
    """Schemas of the canonical candidate; ``None`` when its payloads nest too deeply."""
    canonical = _Canonical(op=op, query=op.raw_query if sections.query else "")
    try:
        if sections.variables and op.has_variables and op.variables is not None:
            canonical.variables_schema = infer_schema([op.variables]) or None
        if sections.response_shape and response is not None:
            canonical.response_schema = infer_schema([response]) or None
            canonical.field_stats = compute_field_stats(canonical.response_schema, [response])
    except RecursionError:
        logger.debug("entry %s nests too deeply for schema inference, trying the next match", entry_id)
        return None
    return canonical


def inspect_operation(
    deps: Deps,
    session_id: str,
    entry_ids: list[str] | None = None,
    operation_name: str = "",
    host: str = "",
    sections: Iterable[str] | None = None,
    max_entries: int | None = DEFAULT_MAX_ENTRIES,
    cancel: threading.Event | None = None,
) -> InspectReport:
    """Inspect one operation across the entries that carry it.

    Raises ``INVALID_INPUT`` when neither *entry_ids* nor *operation_name* is
    given or a section name is unknown.  Per-entry failures are skipped.
    The finished analysis is stored in the analysis cache.
    """
    if not entry_ids and not operation_name:
        raise invalid_input("either entry_ids or operation_name is required")
    wanted = parse_sections(sections)

    ids = resolve_graphql_entry_ids(
        deps,
        session_id,
        entry_ids,
        operation_name=operation_name,
        host=host,
        max_entries=clamp_max_entries(max_entries),
        cancel=cancel,
    )
    if not ids:
        return InspectReport(
            analysis=GraphQLAnalysis(session_id=session_id, operation_name=operation_name),
            sections=wanted,
        )

    canonical: _Canonical | None = None
    matched = 0
    error_groups: list[ErrorGroup] = []
    summary = ErrorSummary()
    responses: list[Any] = []
    shapes: list[EntryShape] = []
    variables = VariableAccumulator()
    variable_examples: list[dict[str, Any]] = []

    for entry_id in ids:
        check_cancelled(cancel)
        entry = fetch_entry_quiet(deps, session_id, entry_id, cancel)
        if entry is None:
            continue
        parsed = parse_graphql_entry(deps, session_id, entry_id, cancel)
        if parsed is None:
            continue
        decoded = _decode_response(entry)

        for op in parsed.operations:
            if operation_name and op.name != operation_name:
                continue
            matched += 1
            response = response_for_index(decoded, op.batch_index, parsed.is_batched)
            variables.add(op.variables)
            _add_variable_example(variable_examples, op)

            if canonical is None and wanted.needs_canonical:
                canonical = _capture_canonical(entry_id, op, response, wanted)

            if wanted.response_shape and response is not None:
                responses.append(response)
                shapes.append(entry_shape(entry_id, response, op.variables))

            if wanted.errors:
                summary.entries_checked += 1
                group = _error_group(entry_id, op, response)
                if group is None:
                    continue
                summary.entries_with_errors += 1
                summary.total_errors += len(group.errors)
                if group.is_partial:
                    summary.partial_failures += 1
                else:
                    summary.full_failures += 1
                error_groups.append(group)

    effective_name = operation_name
    if not effective_name and canonical is not None:
        effective_name = canonical.op.name
    elif not effective_name and error_groups:
        effective_name = error_groups[0].operation_name

    analysis = GraphQLAnalysis(
        session_id=session_id,
        operation_name=effective_name,
        operation_type=canonical.op.type if canonical else "",
        query=canonical.query if canonical else "",
        variables_schema=canonical.variables_schema if canonical else None,
        variable_distribution=variables.distribution(),
        response_schema=canonical.response_schema if canonical else None,
        field_stats=tuple(canonical.field_stats) if canonical else (),
        error_groups=tuple(error_groups),
        error_summary=summary,
        fragment_warnings=tuple(detect_fragment_warnings(responses)) if wanted.response_shape else (),
        fragment_coverage=compute_fragment_coverage(canonical.op.raw_query, responses)
        if wanted.response_shape and canonical is not None
        else None,
        response_variants=compute_response_variants(shapes) if wanted.response_shape else None,
        entry_ids=tuple(ids),
        entries_matched=matched,
    )
    if effective_name:
        deps.analysis_cache.store(analysis)

    logger.info(
        "inspected %s in session %s: %d entries, %d matches, %d error groups",
        effective_name or "<unnamed>", session_id, len(ids), matched, len(error_groups),
    )
    return InspectReport(
        analysis=analysis,
        sections=wanted,
        resources=resource_uris(session_id, effective_name),
        variable_examples=variable_examples,
    )


def run_graphql_analysis(
    deps: Deps, session_id: str, operation_name: str, cancel: threading.Event | None = None
) -> GraphQLAnalysis:
    """Full analysis of *operation_name* with every section, as used by resource reads."""
    report = inspect_operation(
        deps, session_id, operation_name=operation_name, max_entries=DEFAULT_MAX_ENTRIES, cancel=cancel
    )
    return report.analysis


def get_or_run_graphql_analysis(
    deps: Deps, session_id: str, operation_name: str, cancel: threading.Event | None = None
) -> GraphQLAnalysis:
    return deps.analysis_cache.get_or_run(
        session_id,
        operation_name,
        lambda: run_graphql_analysis(deps, session_id, operation_name, cancel),
    )
