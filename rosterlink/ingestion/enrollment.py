"""
Enrollment loader: build the canonical roster from an enrollment export.

Each row becomes a Student with an opaque generated id. When a previous
roster is supplied, students whose district id (or state id) is already
known keep their existing canonical id, so records stay attached across
re-enrollment.

Rows without both a first and a last name are skipped and reported.
Repeated district ids inside one file keep the first row.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Optional, Sequence

from rosterlink.ingestion.column_mapper import alias_table, resolve_fields
from rosterlink.ingestion.decoder import DecodeError, decode_file
from rosterlink.ingestion.grid import CellGrid, dedupe_headers
from rosterlink.ingestion.header_locator import ENROLLMENT_HEADER, HeaderNotFoundError, locate_header
from rosterlink.ingestion.ingestion import IngestionError
from rosterlink.ingestion.report import ImportStage
from rosterlink.ingestion.roster import (
    Student,
    clean_identifier,
    is_district_id,
    normalize_grade_level,
)
from rosterlink.ingestion.settings import DEFAULT_SETTINGS, ImportSettings

logger = logging.getLogger(__name__)

_EXACT_FIELDS = frozenset({"district_id", "state_id", "grade", "first_name", "last_name"})


def generate_student_id() -> str:
    return uuid.uuid4().hex


@dataclass
class EnrollmentResult:
    students: list[Student]
    total_rows: int = 0
    reused_ids: int = 0
    errors: list[str] = field(default_factory=list)


def students_from_rows(
    headers: Sequence[str],
    rows: Iterable[tuple[int, Mapping[str, str]]],
    previous: Iterable[Student] = (),
    settings: Optional[ImportSettings] = None,
) -> EnrollmentResult:
    """Turn numbered (source_row, row) pairs into Students."""
    settings = settings or DEFAULT_SETTINGS
    table = alias_table("enrollment", settings.alias_overrides)
    prior = list(previous)
    by_district = {s.district_id: s.id for s in prior if s.district_id}
    by_state = {s.state_id.upper(): s.id for s in prior if s.state_id}

    result = EnrollmentResult(students=[])
    seen_district: set[str] = set()
    for source_row, row in rows:
        result.total_rows += 1
        fields = resolve_fields(row, headers, table, _EXACT_FIELDS)
        first, last = fields["first_name"], fields["last_name"]
        if not first or not last:
            result.errors.append(f"Row {source_row}: missing first or last name")
            continue

        district = clean_identifier(fields["district_id"]) if fields["district_id"] else None
        state = clean_identifier(fields["state_id"]).upper() if fields["state_id"] else None
        if district and not is_district_id(district):
            result.errors.append(
                f"Row {source_row}: district id '{district}' is not 8 digits; stored anyway"
            )
        if district and district in seen_district:
            result.errors.append(f"Row {source_row}: duplicate district id {district}; row skipped")
            continue
        if district:
            seen_district.add(district)

        existing_id = by_district.get(district) if district else None
        if existing_id is None and state:
            existing_id = by_state.get(state)
        if existing_id is not None:
            result.reused_ids += 1

        result.students.append(Student(
            id=existing_id or generate_student_id(),
            first_name=first,
            last_name=last,
            grade=normalize_grade_level(fields["grade"]) if fields["grade"] else "",
            district_id=district,
            state_id=state,
            homeroom=fields["homeroom"],
        ))

    logger.info(
        "[enrollment] %d students from %d rows (%d kept existing ids, %d errors)",
        len(result.students), result.total_rows, result.reused_ids, len(result.errors),
    )
    return result


def load_enrollment_grid(
    grid: CellGrid,
    previous: Iterable[Student] = (),
    settings: Optional[ImportSettings] = None,
) -> EnrollmentResult:
    settings = settings or DEFAULT_SETTINGS
    try:
        location = locate_header(grid, ENROLLMENT_HEADER, settings.scan_window)
    except HeaderNotFoundError as e:
        raise IngestionError(
            reason="No enrollment header row (Student ID, First, Last) found",
            affected_file=grid.name,
            stage=ImportStage.HEADER_LOCATING,
            operator_fix_steps=[
                f"Confirm the header row is within the first {e.scanned_rows} rows",
                "Confirm the file has Student ID, First Name and Last Name columns",
            ],
        ) from e
    rows = grid.records(location.row_index, location.headers)
    return students_from_rows(dedupe_headers(location.headers), rows, previous, settings)


def load_enrollment(
    path: str | Path,
    previous: Iterable[Student] = (),
    settings: Optional[ImportSettings] = None,
) -> EnrollmentResult:
    """Decode an enrollment CSV/XLSX and build Students from it."""
    try:
        grid = decode_file(path)
    except DecodeError as e:
        raise IngestionError(
            reason=f"Could not read enrollment file: {e.reason}",
            affected_file=str(path),
            stage=ImportStage.DECODING,
            operator_fix_steps=[
                "Export the enrollment roster as CSV or XLSX",
                "Re-upload the file",
            ],
        ) from e
    return load_enrollment_grid(grid, previous, settings)
