"""Tests for the operation inspector."""

from __future__ import annotations

import pytest

from powgql.errors import ErrorCode, ToolFailure
from powgql.graphql.inspect import (
    InspectSections,
    clamp_max_entries,
    get_or_run_graphql_analysis,
    inspect_operation,
    parse_sections,
    resource_uris,
)
from tests.conftest import gql_entry, make_deps, make_entry

USER_QUERY = "query GetUser($id: ID!) { user(id: $id) { id name } }"


def _user_entry(entry_id, user_id, name, started_at):
    return gql_entry(
        entry_id,
        USER_QUERY,
        {"data": {"user": {"id": user_id, "name": name}}},
        variables={"id": user_id},
        started_at=started_at,
    )


class TestParseSections:
    def test_default_is_everything(self):
        assert parse_sections(None) == InspectSections()
        assert parse_sections([]) == InspectSections()

    def test_subset(self):
        sections = parse_sections(["errors"])
        assert sections.errors
        assert not sections.query
        assert not sections.needs_canonical

    def test_invalid(self):
        with pytest.raises(ToolFailure) as exc_info:
            parse_sections(["query", "schema"])
        assert exc_info.value.code == ErrorCode.INVALID_INPUT
        assert exc_info.value.message == (
            "invalid section 'schema': valid values are query, variables, response_shape, errors"
        )


class TestClampMaxEntries:
    @pytest.mark.parametrize(
        "value, expected",
        [(None, 20), (0, 20), (-3, 20), (5, 5), (100, 100), (500, 100)],
    )
    def test_clamp(self, value, expected):
        assert clamp_max_entries(value) == expected


class TestResourceUris:
    def test_all_aspects(self):
        assert resource_uris("s1", "GetUser") == {
            "query": "powhttp://graphql/s1/GetUser/query",
            "response_schema": "powhttp://graphql/s1/GetUser/response-schema",
            "field_stats": "powhttp://graphql/s1/GetUser/field-stats",
            "errors": "powhttp://graphql/s1/GetUser/errors",
        }

    def test_no_name(self):
        assert resource_uris("s1", "") == {}


class TestInspectOperation:
    def test_requires_ids_or_name(self):
        deps, _ = make_deps([])
        with pytest.raises(ToolFailure) as exc_info:
            inspect_operation(deps, "active")
        assert exc_info.value.code == ErrorCode.INVALID_INPUT
        assert exc_info.value.message == "either entry_ids or operation_name is required"

    def test_invalid_section_rejected_before_fetching(self):
        deps, client = make_deps([_user_entry("e1", "1", "a", 1)])
        with pytest.raises(ToolFailure):
            inspect_operation(deps, "active", operation_name="GetUser", sections=["bogus"])
        assert client.calls == []

    def test_no_entries(self):
        deps, _ = make_deps([_user_entry("e1", "1", "a", 1)])
        report = inspect_operation(deps, "active", operation_name="Missing")
        assert not report.resolved
        assert report.analysis.entries_matched == 0
        assert report.resources == {}

    def test_canonical_and_schemas(self):
        deps, _ = make_deps([_user_entry("e1", "1", "Ann", 1), _user_entry("e2", "2", "Bob", 2)])
        report = inspect_operation(deps, "active", operation_name="GetUser")
        analysis = report.analysis

        assert report.resolved
        assert analysis.operation_name == "GetUser"
        assert analysis.operation_type == "query"
        assert analysis.query == USER_QUERY
        assert analysis.entries_matched == 2
        assert analysis.entry_ids == ("e2", "e1")
        assert analysis.variables_schema == {
            "type": "object",
            "properties": {"id": {"type": "string"}},
            "required": ["id"],
        }
        assert analysis.response_schema is not None
        user = analysis.response_schema["properties"]["data"]["properties"]["user"]
        assert set(user["properties"]) == {"id", "name"}
        paths = [s.path for s in analysis.field_stats]
        assert paths == ["data", "data.user", "data.user.id", "data.user.name"]
        # canonical entry is the most recent one
        name_stat = analysis.field_stats[-1]
        assert name_stat.examples == ["Bob"]
        assert report.variable_examples == [{"id": "2"}, {"id": "1"}]
        assert analysis.variable_distribution["id"].unique_count == 2
        assert analysis.error_summary.entries_checked == 2
        assert analysis.error_summary.entries_with_errors == 0
        assert report.resources["query"] == "powhttp://graphql/active/GetUser/query"

    def test_analysis_stored(self):
        deps, client = make_deps([_user_entry("e1", "1", "Ann", 1)])
        report = inspect_operation(deps, "active", operation_name="GetUser")
        assert deps.analysis_cache.get("active", "GetUser") is report.analysis

        client.calls.clear()
        assert get_or_run_graphql_analysis(deps, "active", "GetUser") is report.analysis
        assert client.calls == []

    def test_batched_full_failure(self):
        entry = make_entry(
            "e1",
            [{"query": "query A { a }"}, {"query": "query B { b }"}],
            [{"data": {"a": 1}}, {"data": None, "errors": [{"message": "boom", "path": ["b"]}]}],
        )
        deps, _ = make_deps([entry])

        b = inspect_operation(deps, "active", operation_name="B").analysis
        assert b.error_summary.entries_with_errors == 1
        assert b.error_summary.full_failures == 1
        group = b.error_groups[0]
        assert group.entry_id == "e1"
        assert group.operation_name == "B"
        assert group.is_full_failure
        assert not group.is_partial
        assert group.errors[0].message == "boom"
        assert group.errors[0].path == ["b"]

        a = inspect_operation(deps, "active", operation_name="A").analysis
        assert a.error_groups == ()
        assert a.error_summary.entries_checked == 1

    def test_partial_failure(self):
        entry = gql_entry(
            "e1",
            "query Feed { feed { id } ads { id } }",
            {"data": {"feed": [{"id": 1}], "ads": None}, "errors": [{"message": "ads down"}]},
        )
        deps, _ = make_deps([entry])
        analysis = inspect_operation(deps, "active", operation_name="Feed").analysis
        assert analysis.error_summary.partial_failures == 1
        assert analysis.error_groups[0].is_partial

    def test_errors_only(self):
        entry = gql_entry("e1", "query Q { a }", {"errors": [{"message": "nope"}]})
        deps, _ = make_deps([entry])
        report = inspect_operation(deps, "active", entry_ids=["e1"], sections=["errors"])
        analysis = report.analysis
        assert analysis.operation_type == ""
        assert analysis.query == ""
        assert analysis.response_schema is None
        assert analysis.fragment_coverage is None
        # the name comes from the error groups
        assert analysis.operation_name == "Q"
        assert len(analysis.error_groups) == 1

    def test_query_section_only(self):
        deps, _ = make_deps([_user_entry("e1", "1", "Ann", 1)])
        analysis = inspect_operation(deps, "active", operation_name="GetUser", sections=["query"]).analysis
        assert analysis.query == USER_QUERY
        assert analysis.variables_schema is None
        assert analysis.response_schema is None
        assert analysis.field_stats == ()
        assert analysis.error_summary.entries_checked == 0

    def test_by_entry_ids_without_name(self):
        deps, _ = make_deps([_user_entry("e1", "1", "Ann", 1), gql_entry("e2", "{ me { id } }", {"data": {"me": {"id": 1}}})])
        report = inspect_operation(deps, "active", entry_ids=["e2", "e1"])
        analysis = report.analysis
        # canonical op is the first match
        assert analysis.operation_name == "anonymous"
        assert analysis.entries_matched == 2

    def test_unknown_entry_ids_skipped(self):
        deps, _ = make_deps([_user_entry("e1", "1", "Ann", 1)])
        report = inspect_operation(deps, "active", entry_ids=["ghost", "e1"])
        assert report.analysis.entries_matched == 1
        assert report.analysis.entry_ids == ("ghost", "e1")

    def test_fragments_and_variants(self):
        query = "query Node($kind: String) { node(kind: $kind) { __typename ... on Post { title } } }"
        entries = [
            gql_entry(
                "e1",
                query,
                {"data": {"node": {"__typename": "Post", "title": "t"}}},
                variables={"kind": "post"},
                started_at=1,
            ),
            gql_entry(
                "e2",
                query,
                {"data": {"node": {"__typename": "Video"}}},
                variables={"kind": "video"},
                started_at=2,
            ),
        ]
        deps, _ = make_deps(entries)
        analysis = inspect_operation(deps, "active", operation_name="Node").analysis

        assert [w.typename for w in analysis.fragment_warnings] == ["Video"]
        assert analysis.fragment_coverage is not None
        assert [u.typename for u in analysis.fragment_coverage.unmatched_types] == ["Video"]
        assert analysis.response_variants is not None
        assert analysis.response_variants.discriminating_variable == "kind"

    def test_deeply_nested_response_is_not_canonical(self):
        depth = 450
        deep = '{"data": {"user": ' + '{"child": ' * depth + "1" + "}" * depth + "}}"
        entries = [
            _user_entry("e1", "1", "Ann", 1),
            gql_entry("deep", USER_QUERY, deep, variables={"id": "9"}, started_at=2),
        ]
        deps, _ = make_deps(entries)
        analysis = inspect_operation(deps, "active", operation_name="GetUser").analysis

        assert analysis.entries_matched == 2
        assert analysis.entry_ids == ("deep", "e1")
        assert analysis.query == USER_QUERY
        paths = [s.path for s in analysis.field_stats]
        assert paths == ["data", "data.user", "data.user.id", "data.user.name"]
        assert analysis.field_stats[-1].examples == ["Ann"]

    def test_repeatable(self):
        deps, _ = make_deps(
            [
                _user_entry("e1", "1", "Ann", 1),
                _user_entry("e2", "2", "Bob", 2),
                _user_entry("e3", "1", "Ann", 3),
            ]
        )
        first = inspect_operation(deps, "active", operation_name="GetUser")
        second = inspect_operation(deps, "active", operation_name="GetUser")

        assert second.analysis.operation_name == first.analysis.operation_name
        assert second.analysis.query == first.analysis.query
        assert second.analysis.entry_ids == first.analysis.entry_ids
        assert second.analysis.field_stats == first.analysis.field_stats
        assert second.variable_examples == first.variable_examples

        def top_values(report):
            return [tv.value for tv in report.analysis.variable_distribution["id"].top_values]

        assert top_values(first) == ["1", "2"]
        assert top_values(second) == top_values(first)
