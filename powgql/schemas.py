"""Schema inference and per-field statistics.

``infer_schema`` turns one or many decoded JSON samples into a plain JSON
schema: scalar leaves, objects with sorted properties and ``required``
lists, arrays with a merged ``items`` schema, ``anyOf`` for values that
change type between samples.  String leaves are annotated with a ``format``
when every value has a well-known shape, or an ``enum`` when the observed
values come from a small set.

``compute_field_stats`` walks such a schema alongside the raw samples and
produces a flat table: one ``FieldStat`` per property path.
"""

from __future__ import annotations

from collections import defaultdict
import math
import re
from typing import Any, cast

from powgql.graphql.types import FieldStat

MAX_DEPTH = 5
MAX_EXAMPLES = 3
MIN_SAMPLES_FOR_FORMAT = 5
MAX_ENUM_VALUES = 10

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I)
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_ISO8601_RE = re.compile(r"^\d{4}-\d{2}-\d{2}(T\d{2}:\d{2}:\d{2})?")
_URL_RE = re.compile(r"^https?://")
_EMAIL_RE = re.compile(r"^[^@]+@[^@]+\.[^@]+$")

# Order in which the variants of an ``anyOf`` are listed.
_CONTAINER_TYPES = ("object", "array")


def _infer_type(value: Any) -> str:
    """Infer JSON schema type from a Python value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return "integer"
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return "string"


def _detect_format(values: list[Any]) -> str | None:
    """Detect common string formats."""
    str_values = [v for v in values if isinstance(v, str)]
    if not str_values:
        return None

    if all(_DATE_RE.match(v) for v in str_values):
        return "date-time" if any("T" in v for v in str_values) else "date"

    if all(_EMAIL_RE.match(v) for v in str_values):
        return "email"

    if all(_UUID_RE.match(v) for v in str_values):
        return "uuid"

    if all(_URL_RE.match(v) for v in str_values):
        return "uri"

    return None


def _detect_enum(values: list[str]) -> list[str] | None:
    if len(values) < MIN_SAMPLES_FOR_FORMAT:
        return None
    distinct = sorted(set(values))
    if len(distinct) > MAX_ENUM_VALUES or len(distinct) == len(values):
        return None
    return distinct


def infer_schema(samples: list[Any]) -> dict[str, Any]:
    """Infer a JSON schema from decoded JSON samples (merged across all of them).

    Returns ``{}`` when there is nothing to infer from.  A property is
    ``required`` when every object sample carries it with a non-null value.

    Returns a dict like:
    {
        "type": "object",
        "properties": {
            "id": {"type": "string", "format": "uuid"},
            "tags": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["id"],
    }
    """
    if not samples:
        return {}
    return _infer_values(samples)


def _infer_values(values: list[Any]) -> dict[str, Any]:
    by_type: dict[str, list[Any]] = defaultdict(list)
    for value in values:
        by_type[_infer_type(value)].append(value)

    if len(by_type) == 1:
        type_, group = next(iter(by_type.items()))
        return _infer_single(type_, group)

    variants = [_infer_single(t, by_type[t]) for t in _CONTAINER_TYPES if t in by_type]
    variants.extend(
        _infer_single(t, by_type[t]) for t in sorted(by_type) if t not in _CONTAINER_TYPES
    )
    return {"anyOf": variants}


def _infer_single(type_: str, values: list[Any]) -> dict[str, Any]:
    if type_ == "object":
        return _infer_object_schema(cast(list[dict[str, Any]], values))
    if type_ == "array":
        items: list[Any] = []
        for value in values:
            items.extend(cast(list[Any], value))
        schema: dict[str, Any] = {"type": "array"}
        if items:
            schema["items"] = _infer_values(items)
        return schema

    schema = {"type": type_}
    if type_ == "string":
        fmt = _detect_format(values)
        if fmt is not None:
            schema["format"] = fmt
        else:
            enum = _detect_enum(cast(list[str], values))
            if enum is not None:
                schema["enum"] = enum
    return schema


def _infer_object_schema(samples: list[dict[str, Any]]) -> dict[str, Any]:
    all_keys: dict[str, list[Any]] = defaultdict(list)
    for sample in samples:
        for key, value in sample.items():
            all_keys[key].append(value)

    properties = {key: _infer_values(all_keys[key]) for key in sorted(all_keys)}
    schema: dict[str, Any] = {"type": "object", "properties": properties}

    required = [
        key
        for key in sorted(all_keys)
        if len(all_keys[key]) == len(samples) and all(v is not None for v in all_keys[key])
    ]
    if required:
        schema["required"] = required
    return schema


# -- Field statistics -----------------------------------------------------------


def schema_type(schema: dict[str, Any]) -> str:
    """Type label of a schema node; unions render as ``a|b``."""
    if schema.get("type"):
        return str(schema["type"])
    any_of = cast(list[dict[str, Any]], schema.get("anyOf") or [])
    if any_of:
        return "|".join(str(s["type"]) for s in any_of if s.get("type"))
    return "unknown"


def compute_field_stats(schema: dict[str, Any] | None, samples: list[Any]) -> list[FieldStat]:
    """Walk *schema* and compute statistics for every property across *samples*.

    Paths are dotted (``user.name``); items of arrays of objects use ``[]``
    (``items[].id``).  Below ``MAX_DEPTH`` levels a single truncation marker
    is emitted instead.
    """
    if not schema or not samples:
        return []
    stats: list[FieldStat] = []
    _walk_schema(schema, "", samples, 0, stats)
    return stats


def _walk_schema(
    schema: dict[str, Any], path: str, samples: list[Any], depth: int, stats: list[FieldStat]
) -> None:
    if depth > MAX_DEPTH:
        if path:
            stats.append(FieldStat(path=f"{path} (truncated at depth limit)", type="..."))
        return

    if schema.get("type") != "object":
        return

    properties = cast(dict[str, dict[str, Any]], schema.get("properties") or {})
    for name, prop in properties.items():
        field_path = f"{path}.{name}" if path else name
        stats.append(_field_stat(field_path, prop, name, samples))

        if prop.get("type") == "object" and prop.get("properties"):
            nested = [
                s[name] for s in samples if isinstance(s, dict) and s.get(name) is not None
            ]
            _walk_schema(prop, field_path, nested, depth + 1, stats)

        items = cast(dict[str, Any], prop.get("items") or {})
        if prop.get("type") == "array" and items.get("type") == "object" and items.get("properties"):
            elements: list[Any] = []
            for s in samples:
                if isinstance(s, dict) and isinstance(s.get(name), list):
                    elements.extend(v for v in cast(list[Any], s[name]) if v is not None)
            _walk_schema(items, f"{field_path}[]", elements, depth + 1, stats)


def _distinct_key(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _field_stat(path: str, schema: dict[str, Any], name: str, samples: list[Any]) -> FieldStat:
    present = 0
    nulls = 0
    distinct: set[str] = set()
    examples: list[Any] = []
    strings: list[str] = []

    for sample in samples:
        if not isinstance(sample, dict) or name not in sample:
            continue
        present += 1
        value = cast(dict[str, Any], sample)[name]
        if value is None:
            nulls += 1
            continue

        key = _distinct_key(value)
        if key not in distinct:
            distinct.add(key)
            # nested structures are described by their own child rows
            if not isinstance(value, (dict, list)) and len(examples) < MAX_EXAMPLES:
                examples.append(value)
        if isinstance(value, str):
            strings.append(value)

    stat = FieldStat(
        path=path,
        type=schema_type(schema),
        frequency=present / len(samples) if samples else 0.0,
        required=present == len(samples) and nulls == 0,
        nullable=nulls > 0,
        distinct_count=len(distinct),
        examples=examples,
    )
    if stat.type == "string" and len(strings) >= MIN_SAMPLES_FOR_FORMAT:
        stat.format, enum_values = detect_string_format(strings)
        stat.enum_values = enum_values
    return stat


def detect_string_format(values: list[str]) -> tuple[str | None, list[str]]:
    """Classify a column of strings as uuid, iso8601, url, email or enum."""
    if not values:
        return None, []
    if all(_UUID_RE.match(v) for v in values):
        return "uuid", []
    if all(_ISO8601_RE.match(v) for v in values):
        return "iso8601", []
    if all(_URL_RE.match(v) for v in values):
        return "url", []
    if all(_EMAIL_RE.match(v) for v in values):
        return "email", []
    distinct = sorted(set(values))
    if len(distinct) <= MAX_ENUM_VALUES:
        return "enum", distinct
    return None, []
