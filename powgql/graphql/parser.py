"""Detect and parse GraphQL request bodies.

Query text goes through graphql-core first.  Captured traffic regularly
carries queries graphql-core rejects (truncated bodies, vendor syntax), so a
lenient scanner takes over on syntax errors (and on documents nested too
deeply for the recursive parser): it only needs the leading
keyword, the operation name and the identifiers at brace depth 1.
"""

from __future__ import annotations

import json
from typing import Any, cast

from graphql import parse as gql_parse
from graphql.error import GraphQLSyntaxError
from graphql.language.ast import (
    DocumentNode,
    FieldNode,
    FragmentDefinitionNode,
    InlineFragmentNode,
    OperationDefinitionNode,
    SelectionSetNode,
)
from graphql.language.visitor import Visitor, visit

from powgql.graphql.types import ANONYMOUS, FragmentInfo, ParsedOperation, ParseResult


class NotGraphQLError(ValueError):
    """The body is empty, not JSON, or does not have the GraphQL shape."""


# -- Detection ---------------------------------------------------------------


def _load_json(body: bytes | str) -> Any:
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    return json.loads(body)


def _has_query(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    query = cast(dict[str, Any], item).get("query")
    return isinstance(query, str) and query != ""


def is_graphql_body(body: bytes | str) -> bool:
    """Probe whether a JSON body is a GraphQL request.

    True for an object with a non-empty string ``query`` field, or an array
    whose first element has one.  Content-type checks are up to the caller.
    """
    try:
        data = _load_json(body)
    except (json.JSONDecodeError, UnicodeDecodeError, RecursionError):
        return False

    if isinstance(data, list):
        items = cast(list[Any], data)
        return bool(items) and _has_query(items[0])
    return _has_query(data)


# -- Parsing -------------------------------------------------------------------


def parse_request_body(body: bytes | str) -> ParseResult:
    """Parse a single or batched GraphQL request body.

    Raises ``NotGraphQLError`` for empty bodies, invalid JSON, empty batches
    and objects carrying neither ``query`` nor ``operationName``.
    """
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if not body.strip():
        raise NotGraphQLError("graphql: empty body")

    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        raise NotGraphQLError(f"graphql: invalid JSON: {exc}") from exc
    except RecursionError as exc:
        raise NotGraphQLError("graphql: JSON nested too deeply") from exc

    if isinstance(data, list):
        items = cast(list[Any], data)
        if not items:
            raise NotGraphQLError("graphql: empty batch array")
        ops = [_parse_one(item, index) for index, item in enumerate(items)]
        return ParseResult(operations=tuple(ops), is_batched=True)

    if not isinstance(data, dict):
        raise NotGraphQLError("graphql: body is not a JSON object or array")

    obj = cast(dict[str, Any], data)
    if not _str_field(obj, "query") and not _str_field(obj, "operationName"):
        raise NotGraphQLError("graphql: not a GraphQL request body")
    return ParseResult(operations=(_parse_one(obj, 0),))


def _str_field(obj: dict[str, Any], key: str) -> str:
    value = obj.get(key)
    return value if isinstance(value, str) else ""


def _parse_one(item: Any, index: int) -> ParsedOperation:
    """Convert one request object into a ParsedOperation."""
    if not isinstance(item, dict):
        return ParsedOperation(name=ANONYMOUS, type="query", batch_index=index, parse_failed=True)

    obj = cast(dict[str, Any], item)
    query = _str_field(obj, "query")
    operation_name = _str_field(obj, "operationName")
    raw_variables = obj.get("variables")
    variables = cast(dict[str, Any], raw_variables) if isinstance(raw_variables, dict) else None

    op_type, name, fields, failed = "query", "", (), False
    if query:
        parsed = _parse_with_ast(query, operation_name)
        if parsed is None:
            parsed = _scan_query(query)
        if parsed is None:
            failed = True
        else:
            op_type, name, fields, failed = parsed

    return ParsedOperation(
        name=operation_name or name or ANONYMOUS,
        type=op_type,
        raw_query=query,
        fields=fields,
        variables=variables,
        has_variables=bool(variables),
        batch_index=index,
        operation_name=operation_name,
        parse_failed=failed,
    )


_Scanned = tuple[str, str, tuple[str, ...], bool]


def _parse_with_ast(query: str, operation_name: str) -> _Scanned | None:
    """Parse with graphql-core; ``None`` on syntax errors."""
    try:
        document = gql_parse(query, no_location=True)
    except (GraphQLSyntaxError, RecursionError):
        return None

    operation = _select_operation(document, operation_name)
    if operation is None:
        # Fragments only: nothing to name or type.
        return "query", "", (), True

    name = operation.name.value if operation.name else ""
    return operation.operation.value, name, _root_fields(operation.selection_set), False


def _select_operation(document: DocumentNode, operation_name: str) -> OperationDefinitionNode | None:
    operations = [d for d in document.definitions if isinstance(d, OperationDefinitionNode)]
    if not operations:
        return None
    if operation_name:
        for op in operations:
            if op.name and op.name.value == operation_name:
                return op
    return operations[0]


def _root_fields(selection_set: SelectionSetNode | None) -> tuple[str, ...]:
    if not selection_set:
        return ()
    names: list[str] = []
    for selection in selection_set.selections:
        if isinstance(selection, FieldNode) and selection.name.value not in names:
            names.append(selection.name.value)
    return tuple(names)


# -- Lenient scanner ---------------------------------------------------------------

_KEYWORDS = ("subscription", "mutation", "query")
_FIELD_KEYWORDS = {"fragment", "on", "true", "false", "null"}
_WS = " \t\r\n,"


def _is_ident(ch: str) -> bool:
    return ch.isascii() and (ch.isalnum() or ch == "_")


def _scan_query(query: str) -> _Scanned | None:
    """Extract (type, name, fields) by plain string scanning."""
    query = query.strip()
    if not query:
        return None

    if query.startswith("{"):
        return "query", "", _scan_top_level_fields(query), False

    op_type = "query"
    rest = query
    lowered = query.lower()
    for keyword in _KEYWORDS:
        after = lowered[len(keyword) : len(keyword) + 1]
        if lowered.startswith(keyword) and not (after and _is_ident(after)):
            op_type = keyword
            rest = query[len(keyword) :].lstrip()
            break

    name, _ = _read_ident(rest, 0)
    return op_type, name, _scan_top_level_fields(rest), False


def _read_ident(s: str, i: int) -> tuple[str, int]:
    start = i
    while i < len(s) and _is_ident(s[i]):
        i += 1
    return s[start:i], i


def _skip_ws(s: str, i: int) -> int:
    while i < len(s) and s[i] in _WS:
        i += 1
    return i


def _scan_top_level_fields(s: str) -> tuple[str, ...]:
    """Identifiers at brace depth 1 of the first selection set.

    Skips arguments, comments, directives, and the names that follow a
    spread (``...Fragment`` and ``... on Type``).
    """
    start = s.find("{")
    if start < 0:
        return ()

    fields: list[str] = []
    brace_depth = 0
    paren_depth = 0
    i = start
    while i < len(s):
        ch = s[i]
        if ch == "{":
            brace_depth += 1
            i += 1
        elif ch == "}":
            brace_depth -= 1
            if brace_depth == 0:
                break
            i += 1
        elif ch == "(":
            paren_depth += 1
            i += 1
        elif ch == ")":
            paren_depth = max(0, paren_depth - 1)
            i += 1
        elif ch == '"':
            i = _skip_string(s, i)
        elif ch == "#":
            while i < len(s) and s[i] != "\n":
                i += 1
        elif ch == "@":
            _, i = _read_ident(s, i + 1)
        elif s.startswith("...", i):
            i = _skip_ws(s, i + 3)
            word, end = _read_ident(s, i)
            if word == "on":
                _, i = _read_ident(s, _skip_ws(s, end))
            else:
                i = end
        elif brace_depth == 1 and paren_depth == 0 and (ch.isalpha() or ch == "_"):
            word, i = _read_ident(s, i)
            if word.lower() not in _FIELD_KEYWORDS and word not in fields:
                fields.append(word)
        else:
            i += 1
    return tuple(fields)


def _skip_string(s: str, i: int) -> int:
    """Skip a string literal starting at ``s[i] == '"'``."""
    i += 1
    while i < len(s) and s[i] != '"':
        if s[i] == "\\":
            i += 1
        i += 1
    return i + 1


# -- Fragments -----------------------------------------------------------------------


class _FragmentCollector(Visitor):
    """AST visitor collecting named and inline fragments in document order."""

    def __init__(self) -> None:
        super().__init__()
        self.fragments: list[FragmentInfo] = []

    def enter_fragment_definition(self, node: FragmentDefinitionNode, *_args: object) -> None:
        self.fragments.append(
            FragmentInfo(
                name=node.name.value,
                on_type=node.type_condition.name.value,
                fields=_root_fields(node.selection_set),
            )
        )

    def enter_inline_fragment(self, node: InlineFragmentNode, *_args: object) -> None:
        if node.type_condition is None:
            return
        self.fragments.append(
            FragmentInfo(
                on_type=node.type_condition.name.value,
                is_inline=True,
                fields=_root_fields(node.selection_set),
            )
        )


def extract_fragments(query: str) -> list[FragmentInfo]:
    """List the named (``fragment X on T``) and inline (``... on T``) fragments."""
    if not query.strip():
        return []
    try:
        document = gql_parse(query, no_location=True)
    except (GraphQLSyntaxError, RecursionError):
        return _scan_fragments(query)

    collector = _FragmentCollector()
    visit(document, collector)
    return collector.fragments


def _scan_fragments(query: str) -> list[FragmentInfo]:
    fragments: list[FragmentInfo] = []
    i = 0
    while i < len(query):
        ch = query[i]
        if ch == '"':
            i = _skip_string(query, i)
            continue
        if ch == "#":
            while i < len(query) and query[i] != "\n":
                i += 1
            continue

        word_start = i == 0 or not _is_ident(query[i - 1])
        if word_start and query.startswith("fragment", i) and not _is_ident(query[i + 8 : i + 9]):
            name, j = _read_ident(query, _skip_ws(query, i + 8))
            keyword, j = _read_ident(query, _skip_ws(query, j))
            if name and name != "on" and keyword == "on":
                on_type, j = _read_ident(query, _skip_ws(query, j))
                if on_type:
                    body_start = j
                    fields, j = _scan_selection(query, j)
                    fragments.append(FragmentInfo(name=name, on_type=on_type, fields=fields))
                    fragments.extend(_scan_fragments(query[body_start:j]))
                    i = j
                    continue
            i += 8
            continue

        if query.startswith("...", i):
            keyword, j = _read_ident(query, _skip_ws(query, i + 3))
            if keyword == "on":
                on_type, j = _read_ident(query, _skip_ws(query, j))
                if on_type:
                    body_start = j
                    fields, j = _scan_selection(query, j)
                    fragments.append(FragmentInfo(on_type=on_type, is_inline=True, fields=fields))
                    fragments.extend(_scan_fragments(query[body_start:j]))
                    i = j
                    continue
            i += 3
            continue

        i += 1
    return fragments


def _scan_selection(s: str, i: int) -> tuple[tuple[str, ...], int]:
    """Read the selection set at *i*; return its top-level fields and the end position."""
    i = _skip_ws(s, i)
    if i >= len(s) or s[i] != "{":
        return (), i
    fields = _scan_top_level_fields(s[i:])
    depth = 0
    while i < len(s):
        if s[i] == "{":
            depth += 1
        elif s[i] == "}":
            depth -= 1
            if depth == 0:
                return fields, i + 1
        i += 1
    return fields, i
