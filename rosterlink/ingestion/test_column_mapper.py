"""
Column Mapper Test Suite

Tests cover:
- Alias table integrity (every dataset type, no blank aliases)
- Three-pass field lookup and alias priority order
- Exact-only fields
- JSON alias overrides
- Column resolution for the report alias map
"""

import json
import os
import tempfile

import pytest

from rosterlink.ingestion.column_mapper import (
    DISTRICT_ID_ALIASES,
    STATE_ID_ALIASES,
    alias_table,
    find_value,
    get_unmatched_columns,
    load_alias_overrides,
    resolve_columns,
    resolve_fields,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def write_json(data) -> str:
    tmp = tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False)
    json.dump(data, tmp)
    tmp.close()
    return tmp.name


DATASET_TYPES = ["attendance", "grades", "assessment", "discipline", "enrollment"]


# ---------------------------------------------------------------------------
# Library integrity
# ---------------------------------------------------------------------------

class TestLibraryIntegrity:
    @pytest.mark.parametrize("dataset_type", DATASET_TYPES)
    def test_tables_not_empty(self, dataset_type):
        table = alias_table(dataset_type)
        assert table
        for field, aliases in table.items():
            assert aliases, f"{dataset_type}.{field} has no aliases"
            assert all(a.strip() for a in aliases)

    def test_required_aliases_present(self):
        for alias in ["Student ID", "StudentID", "student_id", "DCPS ID", "ID"]:
            assert alias in DISTRICT_ID_ALIASES
        for alias in ["FL ID", "FLEID", "Florida Education Identifier", "State ID"]:
            assert alias in STATE_ID_ALIASES
        score = alias_table("assessment")["score"]
        assert score[:3] == ["Scale Score", "FAST Equivalent Score", "Overall Scale Score"]

    def test_unknown_dataset_type(self):
        with pytest.raises(ValueError):
            alias_table("lunch_menu")

    def test_copy_is_independent(self):
        table = alias_table("grades")
        table["course"].append("Mutated")
        assert "Mutated" not in alias_table("grades")["course"]


# ---------------------------------------------------------------------------
# find_value
# ---------------------------------------------------------------------------

class TestFindValue:
    def test_exact_key(self):
        row = {"Scale Score": "312"}
        assert find_value(row, list(row), ["Scale Score"]) == "312"

    def test_case_insensitive_header(self):
        row = {"SCALE SCORE": "312"}
        assert find_value(row, list(row), ["Scale Score"]) == "312"

    def test_header_contains_alias(self):
        row = {"Student Identifier": "12345678"}
        assert find_value(row, list(row), ["Student ID", "Identifier"]) == "12345678"

    def test_alias_contains_header(self):
        row = {"Score": "312"}
        assert find_value(row, list(row), ["Scale Score"]) == "312"

    def test_alias_order_is_priority(self):
        row = {"Overall Scale Score": "300", "Scale Score": "312"}
        aliases = ["Scale Score", "Overall Scale Score"]
        assert find_value(row, list(row), aliases) == "312"

    def test_exact_pass_beats_containment(self):
        row = {"Reading Scale Score": "280", "fast equivalent score": "312"}
        aliases = ["Scale Score", "FAST Equivalent Score"]
        # pass 2 (case-insensitive equality) runs before pass 3 (containment)
        assert find_value(row, list(row), aliases) == "312"

    def test_empty_values_skipped(self):
        row = {"Scale Score": "", "FAST Equivalent Score": "312"}
        aliases = ["Scale Score", "FAST Equivalent Score"]
        assert find_value(row, list(row), aliases) == "312"

    def test_values_are_formula_stripped(self):
        row = {"Student ID": '="12345678"'}
        assert find_value(row, list(row), ["Student ID"]) == "12345678"

    def test_missing_returns_none(self):
        row = {"Other": "x"}
        assert find_value(row, list(row), ["Scale Score"]) is None

    def test_containment_can_be_disabled(self):
        row = {"Final Grade": "B"}
        assert find_value(row, list(row), ["Grade"], containment=False) is None
        assert find_value(row, list(row), ["Grade"]) == "B"

    def test_empty_headers_ignored_for_containment(self):
        row = {"": "junk"}
        assert find_value(row, [""], ["Scale Score"]) is None


class TestResolveFields:
    def test_whole_table(self):
        row = {"Course": "Math 5", "Teacher": "Ms. Ray", "Quarter 1 (Gradebook)": "92 A"}
        fields = resolve_fields(row, list(row), alias_table("grades"))
        assert fields["course"] == "Math 5"
        assert fields["teacher"] == "Ms. Ray"
        assert fields["Q1"] == "92 A"
        assert fields["Final"] is None

    def test_exact_fields(self):
        row = {"Incident Date": "09/10/2024"}
        table = alias_table("discipline")
        loose = resolve_fields(row, list(row), table)
        strict = resolve_fields(row, list(row), table, exact_fields={"incident"})
        assert loose["incident"] == "09/10/2024"
        assert strict["incident"] is None

    def test_forward_fields(self):
        table = {"incident_date": ["Incident Date"]}
        wider = {"Incident Date/Time": "09/10/2024 08:15 AM"}
        assert resolve_fields(wider, list(wider), table, forward_fields={"incident_date"}) == {
            "incident_date": "09/10/2024 08:15 AM",
        }
        # the header must contain the alias, not the other way round
        bare = {"Incident": "Classroom disruption"}
        assert resolve_fields(bare, list(bare), table, forward_fields={"incident_date"}) == {
            "incident_date": None,
        }
        assert resolve_fields(bare, list(bare), table) == {"incident_date": "Classroom disruption"}


# ---------------------------------------------------------------------------
# Overrides
# ---------------------------------------------------------------------------

class TestAliasOverrides:
    def test_override_goes_first(self):
        table = alias_table("assessment", {"assessment": {"score": ["Puntaje"]}})
        assert table["score"][0] == "Puntaje"
        assert "Scale Score" in table["score"]

    def test_override_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            alias_table("assessment", {"assessment": {"shoe_size": ["Shoe"]}})

    def test_load_from_json(self):
        path = write_json({"grades": {"course": ["Asignatura"]}})
        try:
            overrides = load_alias_overrides(path)
            assert overrides == {"grades": {"course": ["Asignatura"]}}
            assert alias_table("grades", overrides)["course"][0] == "Asignatura"
        finally:
            os.unlink(path)

    def test_load_rejects_unknown_dataset(self):
        path = write_json({"cafeteria": {"course": ["x"]}})
        try:
            with pytest.raises(ValueError):
                load_alias_overrides(path)
        finally:
            os.unlink(path)

    def test_load_rejects_non_object(self):
        path = write_json(["not", "an", "object"])
        try:
            with pytest.raises(ValueError):
                load_alias_overrides(path)
        finally:
            os.unlink(path)


# ---------------------------------------------------------------------------
# Column resolution (report alias map)
# ---------------------------------------------------------------------------

class TestResolveColumns:
    def test_case_insensitive_and_stripped(self):
        result = resolve_columns(["  SCALE SCORE "], alias_table("assessment"), "fast.csv")
        assert result == {"  SCALE SCORE ": "score"}

    def test_unmatched_columns(self):
        headers = ["Scale Score", "Favorite Color", ""]
        resolved = resolve_columns(headers, alias_table("assessment"), "fast.csv")
        assert get_unmatched_columns(headers, resolved) == ["Favorite Color"]

    def test_deterministic(self):
        headers = ["Course", "Teacher", "Final Grade"]
        table = alias_table("grades")
        assert resolve_columns(headers, table, "a") == resolve_columns(headers, table, "a")
