"""
Column mapping: alias tables and the field extractor.

Each dataset type owns an alias table mapping a canonical field name to an
ordered list of header spellings seen in district, state and vendor exports.
List order is priority order. Tables are data: they can be extended or
replaced from a JSON file without touching transformer code.

Field lookup (find_value) runs three passes over the alias list:
  1. exact key match against the row, alias verbatim
  2. case-insensitive exact header match
  3. substring containment in either direction between alias and header
     (optionally only header-contains-alias, or switched off)
First non-empty hit wins.

Public API:
  find_value(row, headers, aliases) -> str | None
  resolve_fields(row, headers, table) -> dict[str, str | None]
  alias_table(dataset_type, overrides=None) -> dict[str, list[str]]
  resolve_columns(headers, table, file_label) -> dict[str, str]
  get_unmatched_columns(headers, resolved_map) -> list[str]
  load_alias_overrides(path) -> dict[str, dict[str, list[str]]]
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Collection, Iterator, Mapping, Optional, Sequence

from rosterlink.ingestion.grid import clean_cell

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Identity aliases (shared by the matcher and every dataset type)
# ---------------------------------------------------------------------------

DISTRICT_ID_ALIASES: list[str] = [
    "Student ID", "StudentID", "student_id", "STUDENT_ID",
    "DCPS ID", "DCPSID", "dcps_id", "DCPS_ID", "DCPS Student ID",
    "ID", "id", "Student Number", "StudentNumber",
]

# FAST exports put the state identifier in "Student ID".
STATE_ID_ALIASES: list[str] = [
    "FL ID", "FLID", "fl_id", "FL_ID",
    "Florida Education Identifier", "Florida ID",
    "FLEID", "State ID", "StateID",
    "Student ID", "student_id", "studentid", "StudentID",
]

FIRST_NAME_ALIASES: list[str] = [
    "First Name", "FirstName", "First", "first_name", "FIRST_NAME",
]

LAST_NAME_ALIASES: list[str] = [
    "Last Name", "LastName", "Last", "last_name", "LAST_NAME",
]

FULL_NAME_ALIASES: list[str] = [
    "Student Name", "Student", "Name", "Full Name", "FullName",
]

GRADE_LEVEL_ALIASES: list[str] = [
    "Grade", "grade", "Grade Level", "GradeLevel", "GRADE",
    "Enrolled Grade", "Student Grade", "grade_level",
]

# Identifier as printed in the source file, kept on every record for audit.
ORIGINAL_ID_ALIASES: list[str] = [
    "Student ID", "StudentID", "student_id", "DCPS ID", "DCPS Student ID",
    "FL ID", "FLEID", "Florida Education Identifier", "State ID",
    "Student Number", "ID",
]

# ---------------------------------------------------------------------------
# Dataset alias tables
# ---------------------------------------------------------------------------

# ── Attendance ───────────────────────────────────────────────────────────────
_ATTENDANCE_ALIASES: dict[str, list[str]] = {
    "status": [
        "Status", "Attendance Code", "Attendance Status", "Code",
        "Daily Attendance", "attendance_code",
    ],
    "date": [
        "Date", "Attendance Date", "attendance_date",
    ],
}

# ── Grades (gradebook export) ────────────────────────────────────────────────
_GRADES_ALIASES: dict[str, list[str]] = {
    "course": ["Course", "Course Name", "Course Title", "Class"],
    "teacher": ["Teacher", "Teacher Name", "Instructor"],
    "grade_level": ["Grade Level", "Grade", "Enrolled Grade"],
    "period": ["Period", "Class Period"],
    "section": ["Section", "Section Number"],
    "course_number": ["Course Num", "Course Number", "Course #", "Course Code"],
    # grading periods, in calendar order
    "PP1": ["Progress Period 1", "PP1"],
    "Q1": ["Quarter 1 (Gradebook)", "Quarter 1", "Q1"],
    "PP2": ["Progress Period 2", "PP2"],
    "Q2": ["Quarter 2 (Gradebook)", "Quarter 2", "Q2"],
    "PP3": ["Progress Period 3", "PP3"],
    "Q3": ["Quarter 3 (Gradebook)", "Quarter 3", "Q3"],
    "PP4": ["Progress Period 4", "PP4"],
    "Q4": ["Quarter 4 (Gradebook)", "Quarter 4", "Q4"],
    "Full Year": ["Full Year", "Full Year Grade"],
    "Final": ["Final Grade", "Final"],
}

GRADING_PERIODS: tuple[str, ...] = (
    "PP1", "Q1", "PP2", "Q2", "PP3", "Q3", "PP4", "Q4", "Full Year", "Final",
)

# ── Assessment (FAST / iReady / STAR score reports) ─────────────────────────
_ASSESSMENT_ALIASES: dict[str, list[str]] = {
    "score": [
        "Scale Score", "FAST Equivalent Score", "Overall Scale Score",
        "Scaled Score", "Unified Scale Score", "scale_score",
    ],
    "achievement_level": [
        "Achievement Level", "Performance Level", "Overall Placement",
        "Proficiency Level", "achievement_level",
    ],
    "percentile": [
        "Percentile Rank", "Percentile", "National Percentile", "percentile_rank",
    ],
    "test_date": [
        "Date Taken", "Test Completion Date", "Completion Date",
        "Test Date", "Administration Date",
    ],
    "grade_level": ["Test Grade", "Enrolled Grade", "Grade Level", "Grade"],
    "subject": ["Test Subject", "Subject", "Subject Area"],
    "test_reason": ["Test Reason"],
}

# ── Discipline (incident referrals) ──────────────────────────────────────────
_DISCIPLINE_ALIASES: dict[str, list[str]] = {
    "incident_number": [
        "Incident Number", "Incident_Number", "Incident #", "Incident ID",
        "Incident_ID", "Inc Number",
    ],
    "incident_date": [
        "Incident Date", "Incident Date & Time", "Incident Date and Time",
        "Incident_Date", "Date of Incident", "Offense Date",
    ],
    "submission_date": ["Submission Date", "Created", "Referral Date"],
    "infraction": [
        "Code of Student Conduct Infraction", "Infraction", "Infraction Type",
        "Incident Type", "Offense Type", "Behavior Type", "Violation",
    ],
    "incident": ["Incident", "Incident Description"],
    "action": ["Action(s)", "Actions", "Action Taken"],
    "resultant_action": [
        "Action Record: Resultant Action", "Resultant Action",
        "Consequence Type", "Consequence", "Action Type",
    ],
    "action_days": [
        "Action Record: Length of Action", "Length of Action",
        "Days Removed", "Days Suspended", "Number of Days",
    ],
    "action_start": [
        "Action Record: Date Begins", "Consequence Start Date", "Start Date",
    ],
    "action_end": [
        "Action Record: Date Ends", "Consequence End Date", "End Date",
    ],
    "location": ["Location", "Incident Location"],
    "reporter": ["Reporter", "Reported By", "Referring Staff"],
    "administrator": ["Administrator", "Admin", "Assigned Administrator"],
    "narrative": ["Provide a brief narrative of the incident", "Narrative", "Description"],
    "admin_summary": ["Administrative Summary", "ADMIN FINDINGS"],
    "bullying": ["Involved in Bullying", "Bullying"],
    "gang_related": ["Gang Related"],
    "weapon_use": ["Weapon Use"],
    "alcohol_use": ["Use of Alcohol"],
    "drug_use": ["Use of Drugs"],
    "hate_crime": ["Involved in Hate Crime"],
}

# ── Enrollment (canonical roster export) ─────────────────────────────────────
_ENROLLMENT_ALIASES: dict[str, list[str]] = {
    "district_id": ["Student ID", "student_id", "StudentID", "Student Number", "DCPS ID", "ID"],
    "state_id": ["FL ID", "FLEID", "Florida Education Identifier", "State ID", "FLID"],
    "first_name": ["First", "First Name", "first_name", "FirstName", "fname"],
    "last_name": ["Last", "Last Name", "last_name", "LastName", "lname"],
    "grade": ["Grade", "Grade Level", "grade_level", "Current Grade"],
    "homeroom": ["Home Room Teacher", "Homeroom Teacher", "Homeroom", "Teacher", "Classroom"],
}

# ---------------------------------------------------------------------------
# Table registry
# ---------------------------------------------------------------------------

_ALL_TABLES: dict[str, dict[str, list[str]]] = {
    "attendance": _ATTENDANCE_ALIASES,
    "grades": _GRADES_ALIASES,
    "assessment": _ASSESSMENT_ALIASES,
    "discipline": _DISCIPLINE_ALIASES,
    "enrollment": _ENROLLMENT_ALIASES,
}


def alias_table(
    dataset_type: str,
    overrides: Optional[Mapping[str, Mapping[str, Sequence[str]]]] = None,
) -> dict[str, list[str]]:
    """
    Return a fresh copy of the alias table for dataset_type.

    Override aliases for a field are placed ahead of the built-in ones, so a
    site-specific header wins over the defaults. Overrides may only name
    fields the table already knows.

    Raises ValueError for an unknown dataset type or field.
    """
    if dataset_type not in _ALL_TABLES:
        raise ValueError(
            f"Unknown dataset type '{dataset_type}'. "
            f"Known types: {sorted(_ALL_TABLES)}"
        )
    table = {field: list(aliases) for field, aliases in _ALL_TABLES[dataset_type].items()}
    extra = (overrides or {}).get(dataset_type, {})
    for field, aliases in extra.items():
        if field not in table:
            raise ValueError(
                f"Alias override for '{dataset_type}' names unknown field '{field}'. "
                f"Valid fields: {sorted(table)}"
            )
        merged = [a for a in aliases if a]
        merged += [a for a in table[field] if a not in merged]
        table[field] = merged
    return table


def load_alias_overrides(path: str | Path) -> dict[str, dict[str, list[str]]]:
    """
    Read alias overrides from JSON:

        {"assessment": {"score": ["Overall Scale Score (2025)"]}}

    Every field named must exist in that dataset's table.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Alias override file {path} must contain a JSON object")
    overrides: dict[str, dict[str, list[str]]] = {}
    for dataset_type, fields in data.items():
        if not isinstance(fields, dict):
            raise ValueError(f"Overrides for '{dataset_type}' must be an object of field -> [aliases]")
        overrides[dataset_type] = {f: [str(a) for a in aliases] for f, aliases in fields.items()}
        # validates dataset type and field names
        alias_table(dataset_type, overrides)
    logger.info("[column_mapper] loaded alias overrides from %s", path)
    return overrides


# ---------------------------------------------------------------------------
# Field extractor
# ---------------------------------------------------------------------------


def _present(value) -> bool:
    return value is not None and clean_cell(value) != ""


def iter_alias_values(
    row: Mapping[str, object],
    headers: Sequence[str],
    aliases: Sequence[str],
    *,
    containment: bool = True,
    reverse: bool = True,
) -> Iterator[str]:
    """
    Yield every non-empty cleaned value reachable through aliases, in lookup
    order (exact keys, case-insensitive headers, then containment).
    A value may be yielded more than once. With reverse=False the
    containment pass only accepts headers that contain the alias.
    """
    for alias in aliases:
        value = row.get(alias)
        if _present(value):
            yield clean_cell(value)

    lowered = [(h, h.strip().lower()) for h in headers if h and h.strip()]
    for alias in aliases:
        key = alias.strip().lower()
        for header, low in lowered:
            if low == key and _present(row.get(header)):
                yield clean_cell(row.get(header))

    if not containment:
        return
    for alias in aliases:
        key = alias.strip().lower()
        if not key:
            continue
        for header, low in lowered:
            if (key in low or (reverse and low in key)) and _present(row.get(header)):
                yield clean_cell(row.get(header))


def find_value(
    row: Mapping[str, object],
    headers: Sequence[str],
    aliases: Sequence[str],
    *,
    containment: bool = True,
    reverse: bool = True,
) -> Optional[str]:
    """First non-empty value for any alias, or None."""
    return next(
        iter_alias_values(row, headers, aliases, containment=containment, reverse=reverse),
        None,
    )


def resolve_fields(
    row: Mapping[str, object],
    headers: Sequence[str],
    table: Mapping[str, Sequence[str]],
    exact_fields: Collection[str] = (),
    forward_fields: Collection[str] = (),
) -> dict[str, Optional[str]]:
    """
    Apply find_value for every field of an alias table. Fields listed in
    exact_fields skip the containment pass (short aliases such as "Grade"
    or "Incident" are contained in too many unrelated headers). Fields in
    forward_fields only accept headers that contain one of their aliases,
    so "Incident Date/Time" resolves but a bare "Incident" does not.
    """
    return {
        field: find_value(
            row, headers, aliases,
            containment=field not in exact_fields,
            reverse=field not in forward_fields,
        )
        for field, aliases in table.items()
    }


def resolve_columns(
    headers: Sequence[str],
    table: Mapping[str, Sequence[str]],
    file_label: str,
) -> dict[str, str]:
    """
    Map raw header labels to canonical field names using case-insensitive
    exact alias matches. Used for reporting which columns were understood;
    row extraction goes through find_value.
    """
    lookup: dict[str, str] = {}
    for field, aliases in table.items():
        for alias in aliases:
            lookup.setdefault(alias.strip().lower(), field)

    resolved: dict[str, str] = {}
    for header in headers:
        key = header.strip().lower()
        if key and key in lookup:
            resolved[header] = lookup[key]
            logger.info(
                "[column_mapper] %s: '%s' → '%s'",
                file_label, header, lookup[key],
            )
    return resolved


def get_unmatched_columns(
    headers: Sequence[str],
    resolved_map: Mapping[str, str],
) -> list[str]:
    """Non-empty headers that no alias resolved."""
    return [h for h in headers if h and h not in resolved_map]
