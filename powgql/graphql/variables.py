"""Streaming accumulation of GraphQL variable values.

Feed each observed ``variables`` object with ``add``; ``distribution``
materializes a per-variable summary: dominant JSON kind, distinct-value
count, null count and (for scalars) the most frequent literals.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
import json
from typing import Any

from powgql.graphql.types import ValueCount, ValueKind, VariableDistribution

DEFAULT_TOP_VALUES = 5


def value_kind(value: Any) -> ValueKind:
    """JSON kind of a decoded value (bool is checked before numbers)."""
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, dict):
        return ValueKind.OBJECT
    if isinstance(value, list):
        return ValueKind.ARRAY
    return ValueKind.UNKNOWN


def json_literal(value: Any) -> str:
    """Canonical compact JSON encoding used to compare values."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


@dataclass
class _VariableStats:
    kinds: Counter[ValueKind] = field(default_factory=lambda: Counter[ValueKind]())
    values: Counter[str] = field(default_factory=lambda: Counter[str]())
    null_count: int = 0


class VariableAccumulator:
    def __init__(self) -> None:
        self._vars: dict[str, _VariableStats] = {}

    def add(self, variables: Any) -> None:
        """Incorporate one operation's variables; non-objects are ignored."""
        if not isinstance(variables, dict):
            return
        for name, value in variables.items():
            stats = self._vars.setdefault(str(name), _VariableStats())
            kind = value_kind(value)
            stats.kinds[kind] += 1
            if kind is ValueKind.NULL:
                stats.null_count += 1
                continue
            stats.values[json_literal(value)] += 1

    def __bool__(self) -> bool:
        return bool(self._vars)

    def distribution(self, max_top_values: int = DEFAULT_TOP_VALUES) -> dict[str, VariableDistribution]:
        result: dict[str, VariableDistribution] = {}
        for name, stats in self._vars.items():
            kind = ValueKind.NULL
            best = 0
            for k, count in stats.kinds.items():
                if k is not ValueKind.NULL and count > best:
                    kind, best = k, count

            top: list[ValueCount] = []
            if kind.is_scalar:
                ranked = sorted(stats.values.items(), key=lambda kv: (-kv[1], kv[0]))
                top = [
                    ValueCount(value=json.loads(literal), count=count)
                    for literal, count in ranked[:max_top_values]
                ]

            result[name] = VariableDistribution(
                type=kind,
                unique_count=len(stats.values),
                null_count=stats.null_count,
                top_values=top,
            )
        return result
