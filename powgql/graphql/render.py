"""Markdown renderings of survey and inspection results.

Tool results are hybrid: the markdown block comes first, followed by a
compact JSON block of the structured output.  Long payloads are cut here
and replaced by the resource URI that serves them in full.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel

from powgql.graphql.inspect import InspectReport
from powgql.graphql.types import (
    ErrorGroup,
    ErrorSummary,
    FieldStat,
    FragmentCoverage,
    FragmentWarning,
    OperationCluster,
    ResponseVariants,
    TrafficSummary,
)

QUERY_INLINE_THRESHOLD = 500
QUERY_TRUNCATE_THRESHOLD = 3000
RESPONSE_LEAF_THRESHOLD = 20
RESPONSE_LEAF_MAX_SHOW = 40
ERRORS_INLINE_CAP = 10
VARIABLES_PRETTY_THRESHOLD = 500
MAX_SHOWN_ENTRY_IDS = 5
MAX_SHOWN_SHAPE_KEYS = 8

NO_POST_TEXT = (
    "No POST requests found. Try `extract_endpoints()` to see what endpoints exist, "
    'or `search_entries(filters={method: "POST"})` to find POST traffic.\n'
)
NO_GRAPHQL_TEXT = (
    'Found POST requests but none contained valid GraphQL bodies (JSON with a "query" field). '
    'Use `get_entry(entry_id=..., body_mode="preview")` to inspect raw bodies, '
    "or `extract_endpoints()` to see endpoint patterns.\n"
)


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def hybrid(markdown: str, data: BaseModel | None = None) -> list[str]:
    """Content blocks of a tool result: markdown, then compact JSON of *data*."""
    blocks = [markdown]
    if data is not None:
        blocks.append(data.model_dump_json(exclude_none=True))
    return blocks


def no_operations_of_type(operation_type: str) -> str:
    return f"No {operation_type} operations found. Remove the operation_type filter to see all operations."


def no_entries_for_operation(operation_name: str) -> str:
    return (
        f"No entries found for operation {_quote(operation_name)}. "
        "Run `survey_graphql()` to see all operation names.\n"
    )


def format_entry_ids(ids: list[str]) -> str:
    return "[" + ", ".join(_quote(i) for i in ids) + "]"


# -- survey_graphql ---------------------------------------------------------------


def render_survey(clusters: list[OperationCluster], summary: TrafficSummary) -> str:
    type_parts: list[str] = []
    if summary.query_count:
        type_parts.append(f"{summary.query_count} queries")
    if summary.mutation_count:
        type_parts.append(f"{summary.mutation_count} mutations")
    if summary.subscription_count:
        type_parts.append(f"{summary.subscription_count} subscriptions")

    headline = f"{summary.total_requests} requests, {summary.unique_ops} unique operations"
    if type_parts:
        headline += f" ({', '.join(type_parts)})"
    lines = [headline]
    if summary.hosts:
        lines.append(f"Hosts: {', '.join(summary.hosts)}")
    lines.append("")

    lines.append("| Operation | Type | Calls | Errors | Fields |")
    lines.append("|-----------|------|------:|-------:|--------|")
    for c in clusters:
        errors = f"**{c.error_count}**" if c.error_count else str(c.error_count)
        fields = ", ".join(c.fields) or "-"
        lines.append(f"| {c.name} | {c.type} | {c.count} | {errors} | {fields} |")

    lines.append("")
    lines.append("Entry IDs for follow-up:")
    for c in clusters:
        lines.append(f"- {c.name}: `{'`, `'.join(c.entry_ids)}`")

    lines.append("")
    next_step = "**Next**: "
    erroring = next((c for c in clusters if c.error_count), None)
    if erroring is not None:
        next_step += (
            f"{erroring.name} has {erroring.error_count} errors — investigate with "
            f'`inspect_graphql_operation(operation_name={_quote(erroring.name)}, sections=["errors"])`. '
        )
    if clusters:
        next_step += f"Inspect schema with `inspect_graphql_operation(operation_name={_quote(clusters[0].name)})`."
    lines.append(next_step)
    return "\n".join(lines) + "\n"


# -- inspect_graphql_operation ------------------------------------------------------


def render_inspection(report: InspectReport) -> str:
    analysis = report.analysis
    sections = report.sections
    resources = report.resources
    has_canonical = bool(analysis.operation_type)

    if not has_canonical and not analysis.error_groups:
        return "No operations found.\n"

    lines: list[str] = []
    name = analysis.operation_name
    if name:
        header = f"## {name}"
        if analysis.operation_type:
            header += f" ({analysis.operation_type})"
        if analysis.entries_matched > 1:
            header += f" — {analysis.entries_matched} entries"
        lines.extend([header, ""])

    if sections.query and has_canonical:
        lines.extend(_query_section(analysis.query, resources))
    if sections.variables and has_canonical:
        lines.extend(_variables_section(report.variable_examples))
    if sections.response_shape and has_canonical:
        lines.extend(_response_shape_section(list(analysis.field_stats), resources))
        lines.extend(_fragment_warnings_section(list(analysis.fragment_warnings)))
        lines.extend(_fragment_coverage_section(analysis.fragment_coverage))
        lines.extend(_variants_section(analysis.response_variants))
    if sections.errors:
        lines.extend(_errors_section(list(analysis.error_groups), analysis.error_summary, resources))

    entry_ids = list(analysis.entry_ids)
    if entry_ids:
        shown = "`, `".join(entry_ids[:MAX_SHOWN_ENTRY_IDS])
        line = f"Entry IDs: `{shown}`"
        if len(entry_ids) > MAX_SHOWN_ENTRY_IDS:
            line += f" ...and {len(entry_ids) - MAX_SHOWN_ENTRY_IDS} more"
        lines.extend([line, ""])

    if resources:
        lines.append("**Resources** (fetch for full data):")
        lines.extend(f"- {aspect}: `{uri}`" for aspect, uri in resources.items())
        lines.append("")

    next_step = "**Next**: "
    if entry_ids:
        next_step += (
            f"Extract values with `query_body(entry_ids={format_entry_ids(entry_ids[:2])}, "
            'expression=".data")`.'
        )
    lines.append(next_step)
    return "\n".join(lines) + "\n"


def _fenced(lang: str, text: str) -> list[str]:
    return [f"```{lang}", text[:-1] if text.endswith("\n") else text, "```"]


def _query_section(query: str, resources: dict[str, str]) -> list[str]:
    if not query:
        return []
    if len(query) < QUERY_INLINE_THRESHOLD:
        return ["### Query", *_fenced("graphql", query), ""]

    heading = "### Query"
    if "query" in resources:
        heading += f" (full: `{resources['query']}`)"
    lines = [heading, "```graphql"]
    display = query[:QUERY_TRUNCATE_THRESHOLD]
    lines.append(display[:-1] if display.endswith("\n") else display)
    if len(query) > QUERY_TRUNCATE_THRESHOLD:
        lines.append(f"... ({len(query)} chars total)")
    lines.extend(["```", ""])
    return lines


def _variables_section(examples: list[dict[str, Any]]) -> list[str]:
    if not examples:
        return []
    heading = "### Variables"
    if len(examples) > 1:
        heading += f" ({len(examples)} examples)"
    lines = [heading]
    for example in examples:
        pretty = json.dumps(example, indent=2, ensure_ascii=False)
        if len(pretty) >= VARIABLES_PRETTY_THRESHOLD:
            pretty = json.dumps(example, separators=(",", ":"), ensure_ascii=False)
        lines.extend(_fenced("json", pretty))
    lines.append("")
    return lines


def _response_shape_section(stats: list[FieldStat], resources: dict[str, str]) -> list[str]:
    leaves = [s for s in stats if s.type not in ("object", "array")]
    if not leaves:
        return []

    heading = "### Response shape"
    shown = leaves
    if len(leaves) >= RESPONSE_LEAF_THRESHOLD:
        if "response_schema" in resources:
            heading += f" (full: `{resources['response_schema']}`)"
        shown = leaves[:RESPONSE_LEAF_MAX_SHOW]

    lines = [heading, "```"]
    lines.extend(field_line(s) for s in shown)
    if len(leaves) > len(shown):
        lines.append(f"... and {len(leaves) - len(shown)} more fields")
    lines.extend(["```", ""])
    return lines


def field_line(stat: FieldStat) -> str:
    """``path: type (notes) — examples``"""
    line = f"{stat.path}: {stat.type}"
    notes: list[str] = []
    if stat.nullable:
        notes.append("nullable")
    if stat.format:
        notes.append(stat.format)
    if stat.enum_values:
        notes.append("enum: " + "|".join(stat.enum_values))
    if notes:
        line += f" ({', '.join(notes)})"
    examples = format_examples(stat.examples)
    if examples:
        line += f" — {examples}"
    return line


def format_examples(examples: list[Any], limit: int = 2) -> str:
    parts: list[str] = []
    for value in examples:
        if len(parts) >= limit:
            break
        if isinstance(value, str):
            text = value if len(value) <= 40 else value[:37] + "..."
            parts.append(_quote(text))
        elif isinstance(value, bool):
            parts.append("true" if value else "false")
        elif isinstance(value, (int, float)):
            if isinstance(value, float) and value.is_integer():
                value = int(value)
            parts.append(str(value))
        elif value is None:
            parts.append("null")
    return ", ".join(parts)


def format_gql_path(path: list[Any]) -> str:
    """Error path as ``a.[0].b``."""
    parts: list[str] = []
    for segment in path:
        if isinstance(segment, str):
            parts.append(segment)
        elif isinstance(segment, (int, float)) and not isinstance(segment, bool):
            parts.append(f"[{int(segment)}]")
        else:
            parts.append(str(segment))
    return ".".join(parts)


def _errors_section(
    groups: list[ErrorGroup], summary: ErrorSummary, resources: dict[str, str]
) -> list[str]:
    headline = f"Checked {summary.entries_checked} entries"
    if not summary.entries_with_errors:
        return ["### Errors", headline + " — no GraphQL errors found.", ""]

    headline += f" | {summary.entries_with_errors} with errors | {summary.total_errors} total errors"
    fail_parts: list[str] = []
    if summary.full_failures:
        fail_parts.append(f"{summary.full_failures} full failures")
    if summary.partial_failures:
        fail_parts.append(f"{summary.partial_failures} partial")
    if fail_parts:
        headline += f" ({', '.join(fail_parts)})"
    lines = ["### Errors", headline, ""]

    shown = 0
    for group in groups:
        if not group.errors:
            continue
        if shown >= ERRORS_INLINE_CAP:
            more = f"... and {len(groups) - shown} more error groups"
            if "errors" in resources:
                more += f" (full: `{resources['errors']}`)"
            lines.extend([more, ""])
            break

        title = f"**{group.entry_id}**"
        if group.operation_name:
            title += f" — {group.operation_name}"
        if group.is_full_failure:
            title += " — FULL FAILURE"
        elif group.is_partial:
            title += " — PARTIAL"
        lines.append(title)
        for i, error in enumerate(group.errors, 1):
            line = f"  {i}. {_quote(error.message)}"
            if error.path:
                line += f" at `{format_gql_path(error.path)}`"
            if error.extensions is not None:
                line += f" [extensions: {json.dumps(error.extensions, separators=(',', ':'))}]"
            lines.append(line)
        lines.append("")
        shown += 1
    return lines


# -- Fragments and variants ---------------------------------------------------------


def _fragment_warnings_section(warnings: list[FragmentWarning]) -> list[str]:
    if not warnings:
        return []
    return ["### Fragment warnings", *(f"- {w.message}" for w in warnings), ""]


def _fragment_coverage_section(coverage: FragmentCoverage | None) -> list[str]:
    if coverage is None:
        return []
    lines = ["### Fragment coverage"]
    if coverage.fragments:
        declared = [
            f"`... on {f.on_type}`" if f.is_inline else f"`{f.name} on {f.on_type}`"
            for f in coverage.fragments
        ]
        lines.append(f"Fragments: {', '.join(declared)}")
    if coverage.typenames_seen:
        seen = [f"{t.typename} ({t.count})" for t in coverage.typenames_seen]
        lines.append(f"Types seen: {', '.join(seen)}")
    lines.extend(f"- {u.message}" for u in coverage.unmatched_types)
    if coverage.unused_fragments:
        lines.append(f"Unused fragments: `{'`, `'.join(coverage.unused_fragments)}`")
    lines.append("")
    return lines


def _variants_section(variants: ResponseVariants | None) -> list[str]:
    if variants is None:
        return []
    lines = ["### Response variants"]
    if variants.discriminating_variable:
        lines.append(f"Discriminating variable: `{variants.discriminating_variable}`")
    for i, variant in enumerate(variants.variants, 1):
        keys = variant.shape_keys[:MAX_SHOWN_SHAPE_KEYS]
        shape = ", ".join(keys) or "(no data)"
        if len(variant.shape_keys) > len(keys):
            shape += f", ... (+{len(variant.shape_keys) - len(keys)})"
        line = f"{i}. {variant.entry_count} entries, e.g. `{variant.example_entry_id}`"
        if variant.variable_values:
            values = ", ".join(
                f"{k}={json.dumps(v, ensure_ascii=False)}" for k, v in variant.variable_values.items()
            )
            line += f" ({values})"
        lines.append(f"{line}: {shape}")
    lines.append("")
    return lines
