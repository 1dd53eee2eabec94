"""Cross-reference query fragments with the ``__typename`` values of responses.

All walkers take decoded response bodies.  Paths are rooted at ``data``:
the response envelope is unwrapped once, object children are joined with
``.`` and array elements with ``[i]``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any, cast

from powgql.graphql.parser import extract_fragments
from powgql.graphql.types import (
    FragmentCoverage,
    FragmentRef,
    FragmentWarning,
    TypenameSeen,
    UnmatchedType,
)

MAX_TYPENAME_PATHS = 5
ROOT_PATH = "data"


def _walk_objects(body: Any) -> Iterator[tuple[str, dict[str, Any]]]:
    """Yield ``(path, object)`` for every object under the response data."""
    if isinstance(body, dict) and ROOT_PATH in body:
        body = cast(dict[str, Any], body)[ROOT_PATH]

    stack: list[tuple[str, Any]] = [(ROOT_PATH, body)]
    while stack:
        path, value = stack.pop()
        if isinstance(value, dict):
            obj = cast(dict[str, Any], value)
            yield path, obj
            children = [(f"{path}.{k}", v) for k, v in obj.items()]
        elif isinstance(value, list):
            children = [(f"{path}[{i}]", v) for i, v in enumerate(cast(list[Any], value))]
        else:
            continue
        stack.extend(reversed(children))


def _typename(obj: dict[str, Any]) -> str:
    typename = obj.get("__typename")
    return typename if isinstance(typename, str) else ""


def needs_fragment(obj: dict[str, Any]) -> bool:
    """True when nothing but ``__typename`` carries a value."""
    return all(v is None for k, v in obj.items() if k != "__typename")


def detect_fragment_warnings(bodies: Iterable[Any]) -> list[FragmentWarning]:
    """Flag objects that were resolved to a type the query has no fragment for.

    Deduplicated by ``(path, typename)`` across all *bodies*.
    """
    seen: set[tuple[str, str]] = set()
    warnings: list[FragmentWarning] = []
    for body in bodies:
        for path, obj in _walk_objects(body):
            typename = _typename(obj)
            if not typename or not needs_fragment(obj) or (path, typename) in seen:
                continue
            seen.add((path, typename))
            warnings.append(
                FragmentWarning(
                    path=path,
                    typename=typename,
                    message=(
                        f'Object at `{path}` has only `__typename="{typename}"` '
                        f"— add a `... on {typename} {{ ... }}` fragment"
                    ),
                )
            )
    return warnings


@dataclass
class TypenameOccurrence:
    paths: set[str] = field(default_factory=lambda: set[str]())
    count: int = 0


def collect_typenames(bodies: Iterable[Any]) -> dict[str, TypenameOccurrence]:
    """Count every ``__typename`` value, keeping a few example paths each."""
    result: dict[str, TypenameOccurrence] = {}
    for body in bodies:
        for path, obj in _walk_objects(body):
            typename = _typename(obj)
            if not typename:
                continue
            occ = result.setdefault(typename, TypenameOccurrence())
            occ.count += 1
            if len(occ.paths) < MAX_TYPENAME_PATHS:
                occ.paths.add(path)
    return result


def compute_fragment_coverage(query: str, bodies: Iterable[Any]) -> FragmentCoverage | None:
    """Compare the fragments declared in *query* with the types seen in *bodies*.

    Returns ``None`` when the query declares no fragment and no response
    carries a ``__typename``.
    """
    fragments = extract_fragments(query)
    typenames = collect_typenames(bodies)
    if not fragments and not typenames:
        return None

    fragment_types = {f.on_type for f in fragments}
    seen = [
        TypenameSeen(
            typename=name,
            paths=sorted(occ.paths),
            count=occ.count,
            has_fragment=name in fragment_types,
        )
        for name, occ in sorted(typenames.items())
    ]

    unmatched = [
        UnmatchedType(
            typename=ts.typename,
            example_paths=ts.paths,
            message=(
                f'Type "{ts.typename}" seen at {", ".join(ts.paths)} but has no fragment '
                f"— add `... on {ts.typename} {{ ... }}` or `fragment ... on {ts.typename} {{ ... }}`"
            ),
        )
        for ts in seen
        if not ts.has_fragment
    ]

    # inline fragments have no name and are reported by their type condition
    unused: list[str] = []
    for f in fragments:
        label = f.name or f.on_type
        if f.on_type not in typenames and label not in unused:
            unused.append(label)

    return FragmentCoverage(
        fragments=[FragmentRef(name=f.name, on_type=f.on_type, is_inline=f.is_inline) for f in fragments],
        typenames_seen=seen,
        unmatched_types=unmatched,
        unused_fragments=unused,
    )
