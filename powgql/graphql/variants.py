"""Group the responses of one operation by shape and find the variable that selects the shape."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from typing import Any, cast

from powgql.graphql.types import ResponseVariants, Variant
from powgql.graphql.variables import json_literal

MAX_VARIANTS = 10
SHAPE_DEPTH = 2


@dataclass
class EntryShape:
    entry_id: str
    shape_key: str  # sorted, comma-joined key paths under "data"
    shape_keys: list[str] = field(default_factory=lambda: list[str]())
    variables: dict[str, Any] = field(default_factory=lambda: dict[str, Any]())


@dataclass
class _ShapeGroup:
    shape_keys: list[str]
    entries: list[EntryShape] = field(default_factory=lambda: list[EntryShape]())


def _data_keys(value: Any, prefix: str, depth: int) -> list[str]:
    keys = [prefix]
    if depth <= 0 or not isinstance(value, dict):
        return keys
    for k, v in cast(dict[str, Any], value).items():
        if k == "__typename":
            continue
        keys.extend(_data_keys(v, f"{prefix}.{k}", depth - 1))
    return keys


def response_shape_fingerprint(response: Any) -> tuple[str, list[str]]:
    """Fingerprint the key structure under ``data`` of a decoded response.

    Responses without an object ``data`` get the empty fingerprint.
    """
    data = cast(dict[str, Any], response).get("data") if isinstance(response, dict) else None
    if not isinstance(data, dict):
        return "", []

    keys: list[str] = []
    for k, v in cast(dict[str, Any], data).items():
        keys.extend(_data_keys(v, k, SHAPE_DEPTH))
    keys.sort()
    return ",".join(keys), keys


def entry_shape(entry_id: str, response: Any, variables: dict[str, Any] | None) -> EntryShape:
    key, keys = response_shape_fingerprint(response)
    return EntryShape(entry_id=entry_id, shape_key=key, shape_keys=keys, variables=dict(variables or {}))


def _variable_value_sets(groups: list[_ShapeGroup], name: str) -> list[set[str]]:
    return [{json_literal(es.variables.get(name)) for es in g.entries} for g in groups]


def _partition_score(groups: list[_ShapeGroup], name: str) -> float:
    value_sets = _variable_value_sets(groups, name)
    pairs = 0
    separated = 0
    for i, left in enumerate(value_sets):
        for right in value_sets[i + 1 :]:
            pairs += 1
            if left.isdisjoint(right):
                separated += 1
    return separated / pairs if pairs else 0.0


def partition_score(shapes: list[EntryShape], name: str) -> float:
    """Fraction of shape-group pairs whose values for *name* do not overlap.

    1.0 means every group is selected by its own set of values.  A missing
    variable counts as ``null``.
    """
    return _partition_score(list(_group(shapes).values()), name)


def _group(shapes: list[EntryShape]) -> dict[str, _ShapeGroup]:
    groups: dict[str, _ShapeGroup] = {}
    for es in shapes:
        group = groups.get(es.shape_key)
        if group is None:
            group = groups[es.shape_key] = _ShapeGroup(shape_keys=es.shape_keys)
        group.entries.append(es)
    return groups


def find_discriminating_variable(groups: list[_ShapeGroup]) -> str:
    names = sorted({name for g in groups for es in g.entries for name in es.variables})
    best_name = ""
    best_score = 0.0
    for name in names:
        score = _partition_score(groups, name)
        if score > best_score:
            best_name, best_score = name, score
    return best_name


def common_variable_values(entries: list[EntryShape], name: str) -> dict[str, Any]:
    """Most common value of *name* across *entries* (first seen wins ties)."""
    counts: dict[str, int] = {}
    for es in entries:
        literal = json_literal(es.variables.get(name))
        counts[literal] = counts.get(literal, 0) + 1
    if not counts:
        return {}
    best = max(counts, key=lambda literal: counts[literal])
    return {name: json.loads(best)}


def compute_response_variants(shapes: list[EntryShape]) -> ResponseVariants | None:
    """Group *shapes* by fingerprint and name the variable that separates them.

    Returns ``None`` for fewer than two entries or a single shape.  At most
    ``MAX_VARIANTS`` groups are reported, in first-seen order.
    """
    if len(shapes) < 2:
        return None

    groups = list(_group(shapes).values())
    if len(groups) <= 1:
        return None
    groups = groups[:MAX_VARIANTS]

    discriminator = find_discriminating_variable(groups)
    variants = [
        Variant(
            entry_count=len(g.entries),
            shape_keys=g.shape_keys,
            example_entry_id=g.entries[0].entry_id,
            variable_values=common_variable_values(g.entries, discriminator) if discriminator else {},
        )
        for g in groups
    ]
    return ResponseVariants(discriminating_variable=discriminator, variants=variants)
