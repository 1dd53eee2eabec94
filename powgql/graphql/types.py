"""GraphQL types passed between the analysis stages.

Two layers of types:
1. Parsing output: frozen dataclasses produced once per entry and shared
   through the parse cache.
2. Reported data: pydantic models that end up in tool outputs and resources.
   Collection fields always default to empty lists so that an empty result
   serializes as ``[]`` rather than disappearing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

OPERATION_TYPES = ("query", "mutation", "subscription")
ANONYMOUS = "anonymous"

# -- Parsing output (one per entry) ------------------------------------------


@dataclass(frozen=True)
class ParsedOperation:
    """A single operation from a GraphQL request body."""

    name: str  # operationName, else the name in the query text, else "anonymous"
    type: str  # "query", "mutation", "subscription"
    raw_query: str = ""
    fields: tuple[str, ...] = ()  # top-level selection names, source order, deduped
    variables: dict[str, Any] | None = None
    has_variables: bool = False
    batch_index: int = 0
    operation_name: str = ""  # operationName as sent in the body
    parse_failed: bool = False


@dataclass(frozen=True)
class ParseResult:
    operations: tuple[ParsedOperation, ...]
    is_batched: bool = False


@dataclass(frozen=True)
class FragmentInfo:
    """A fragment declared in a query (named or inline)."""

    on_type: str
    name: str = ""  # empty for inline fragments
    is_inline: bool = False
    fields: tuple[str, ...] = ()


# -- Reported data -------------------------------------------------------------


class ValueKind(str, Enum):
    """JSON kind of an observed variable value."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"
    NULL = "null"
    UNKNOWN = "unknown"

    @property
    def is_scalar(self) -> bool:
        return self in (ValueKind.STRING, ValueKind.NUMBER, ValueKind.BOOLEAN)


class ValueCount(BaseModel):
    value: Any = None
    count: int


class VariableDistribution(BaseModel):
    type: ValueKind
    unique_count: int = 0
    null_count: int = 0
    top_values: list[ValueCount] = Field(default_factory=list)


class OperationCluster(BaseModel):
    name: str
    type: str
    count: int = 0
    error_count: int = 0
    fields: list[str] = Field(default_factory=list)
    has_variables: bool = False
    entry_ids: list[str] = Field(default_factory=list)
    variable_summary: dict[str, VariableDistribution] = Field(default_factory=dict)


class TrafficSummary(BaseModel):
    total_requests: int = 0
    query_count: int = 0
    mutation_count: int = 0
    subscription_count: int = 0
    anonymous_count: int = 0
    batched_count: int = 0
    unique_ops: int = 0
    hosts: list[str] = Field(default_factory=list)


class GraphQLError(BaseModel):
    message: str = ""
    path: list[Any] = Field(default_factory=list)
    locations: list[dict[str, Any]] = Field(default_factory=list)
    extensions: dict[str, Any] | None = None

    model_config = {"extra": "ignore"}


class ErrorGroup(BaseModel):
    entry_id: str
    operation_name: str = ""
    errors: list[GraphQLError] = Field(default_factory=list)
    is_partial: bool = False
    is_full_failure: bool = False


class ErrorSummary(BaseModel):
    entries_checked: int = 0
    entries_with_errors: int = 0
    total_errors: int = 0
    partial_failures: int = 0
    full_failures: int = 0


class FieldStat(BaseModel):
    path: str
    type: str
    frequency: float = 0.0
    required: bool = False
    nullable: bool = False
    distinct_count: int = 0
    examples: list[Any] = Field(default_factory=list)
    format: str | None = None
    enum_values: list[str] = Field(default_factory=list)


class FragmentRef(BaseModel):
    name: str = ""
    on_type: str
    is_inline: bool = False


class FragmentWarning(BaseModel):
    path: str
    typename: str
    message: str


class TypenameSeen(BaseModel):
    typename: str
    paths: list[str] = Field(default_factory=list)
    count: int = 0
    has_fragment: bool = False


class UnmatchedType(BaseModel):
    typename: str
    example_paths: list[str] = Field(default_factory=list)
    message: str = ""


class FragmentCoverage(BaseModel):
    fragments: list[FragmentRef] = Field(default_factory=list)
    typenames_seen: list[TypenameSeen] = Field(default_factory=list)
    unmatched_types: list[UnmatchedType] = Field(default_factory=list)
    unused_fragments: list[str] = Field(default_factory=list)


class Variant(BaseModel):
    entry_count: int = 0
    shape_keys: list[str] = Field(default_factory=list)
    example_entry_id: str = ""
    variable_values: dict[str, Any] = Field(default_factory=dict)


class ResponseVariants(BaseModel):
    discriminating_variable: str = ""
    variants: list[Variant] = Field(default_factory=list)


# -- Cached analysis -------------------------------------------------------------


@dataclass(frozen=True)
class GraphQLAnalysis:
    """Full inspection result for one operation, held by the analysis cache."""

    session_id: str
    operation_name: str
    operation_type: str = ""
    query: str = ""
    variables_schema: dict[str, Any] | None = None
    variable_distribution: dict[str, VariableDistribution] = field(
        default_factory=lambda: dict[str, VariableDistribution]()
    )
    response_schema: dict[str, Any] | None = None
    field_stats: tuple[FieldStat, ...] = ()
    error_groups: tuple[ErrorGroup, ...] = ()
    error_summary: ErrorSummary = field(default_factory=ErrorSummary)
    fragment_warnings: tuple[FragmentWarning, ...] = ()
    fragment_coverage: FragmentCoverage | None = None
    response_variants: ResponseVariants | None = None
    entry_ids: tuple[str, ...] = ()
    entries_matched: int = 0
