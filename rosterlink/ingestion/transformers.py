"""
Record transformers: one per dataset type, all with the same shape.

    transform(row, headers, match) -> list[CanonicalRecord]

The import orchestrator owns decoding, header locating and matching; a
transformer only turns one matched row into zero or more records.

CONTRACT:
  - Return [] when the row lacks its minimum field (no course, no score,
    no incident date, no populated attendance cell). The orchestrator
    records that as a row error.
  - Raise RowError when a present value cannot be coerced (non-numeric
    score, unparseable incident date). Also recorded per row.
  - Never mutate the row.
"""

from __future__ import annotations

import re
from datetime import date
from enum import Enum
from typing import Mapping, Optional, Sequence

from rosterlink.ingestion.column_mapper import (
    GRADING_PERIODS,
    ORIGINAL_ID_ALIASES,
    alias_table,
    find_value,
    resolve_fields,
)
from rosterlink.ingestion.header_locator import (
    ASSESSMENT_HEADER,
    ATTENDANCE_HEADER,
    DISCIPLINE_HEADER,
    GRADES_HEADER,
    HeaderPredicate,
)
from rosterlink.ingestion.matcher import MatchResult
from rosterlink.ingestion.normalizers import (
    achievement_to_proficiency,
    classify_attendance,
    infer_header_date,
    normalize_grade_level,
    normalize_letter_grade,
    parse_date,
    parse_flag,
    parse_number,
)
from rosterlink.ingestion.records import (
    AssessmentRecord,
    AttendanceRecord,
    BenchmarkScore,
    CanonicalRecord,
    DisciplineRecord,
    GradeRecord,
)
from rosterlink.ingestion.settings import (
    DEFAULT_SETTINGS,
    PLACEHOLDER_VALUES,
    ImportSettings,
)

_DEDUPE_SUFFIX_RE = re.compile(r"\.\d+$")


class RowError(ValueError):
    """A row-scoped failure: the row is skipped, the import continues."""


class DatasetType(str, Enum):
    ATTENDANCE = "attendance"
    GRADES = "grades"
    ASSESSMENT = "assessment"
    DISCIPLINE = "discipline"


def base_header(header: str) -> str:
    """'Points Earned.2' -> 'Points Earned'."""
    return _DEDUPE_SUFFIX_RE.sub("", header)


# ---------------------------------------------------------------------------
# Base transformer
# ---------------------------------------------------------------------------


class RecordTransformer:
    """Shared plumbing: alias table, identity fields, header predicate."""

    dataset_type: DatasetType
    header_predicate: HeaderPredicate
    # Fields whose short aliases must not go through the containment pass.
    exact_fields: frozenset[str] = frozenset()
    # Fields matched only by headers that contain an alias.
    forward_fields: frozenset[str] = frozenset()

    def __init__(self, settings: Optional[ImportSettings] = None):
        self.settings = settings or DEFAULT_SETTINGS
        self.aliases = alias_table(self.dataset_type.value, self.settings.alias_overrides)

    def fields(self, row: Mapping[str, str], headers: Sequence[str]) -> dict[str, Optional[str]]:
        return resolve_fields(row, headers, self.aliases, self.exact_fields, self.forward_fields)

    def identity(self, match: MatchResult, row: Mapping[str, str], headers: Sequence[str], source_row: int) -> dict:
        return dict(
            student_id=match.student_id,
            matched_by=match.strategy,
            match_confidence=match.confidence,
            original_student_id=find_value(row, headers, ORIGINAL_ID_ALIASES, containment=False),
            source_row=source_row,
        )

    def transform(
        self,
        row: Mapping[str, str],
        headers: Sequence[str],
        match: Optional[MatchResult],
        source_row: int = 0,
    ) -> list[CanonicalRecord]:
        if match is None:
            return []
        return self._transform(row, headers, match, source_row)

    def _transform(self, row, headers, match, source_row) -> list[CanonicalRecord]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(dataset_type={self.dataset_type.value!r})"


# ── Attendance ───────────────────────────────────────────────────────────────


class AttendanceTransformer(RecordTransformer):
    """
    Two layouts:
      - wide matrix: one MM/DD column per school day, one record per
        populated cell ('-', '*' and empty cells are skipped)
      - long format: one row per student-day with Status / Date columns;
        a missing status is treated as present
    """

    dataset_type = DatasetType.ATTENDANCE
    header_predicate = ATTENDANCE_HEADER
    exact_fields = frozenset({"status", "date"})

    def date_columns(self, headers: Sequence[str]) -> list[tuple[str, date]]:
        today = self.settings.today()
        columns = []
        for header in headers:
            day = infer_header_date(header, today)
            if day is not None:
                columns.append((header, day))
        return columns

    def _transform(self, row, headers, match, source_row):
        ident = self.identity(match, row, headers, source_row)
        columns = self.date_columns(headers)

        if columns:
            records = []
            for header, day in columns:
                code = row.get(header, "")
                if code in PLACEHOLDER_VALUES:
                    continue
                records.append(AttendanceRecord(
                    **ident, date=day, status=classify_attendance(code), code=code,
                ))
            return records

        fields = self.fields(row, headers)
        code = fields["status"] or ""
        return [AttendanceRecord(
            **ident,
            date=parse_date(fields["date"]),
            status=classify_attendance(code),
            code=code,
        )]


# ── Grades ───────────────────────────────────────────────────────────────────


class GradesTransformer(RecordTransformer):
    """One record per student-course row; empty grading periods are left out."""

    dataset_type = DatasetType.GRADES
    header_predicate = GRADES_HEADER
    exact_fields = frozenset({"grade_level", "period", "section", *GRADING_PERIODS})

    def _transform(self, row, headers, match, source_row):
        fields = self.fields(row, headers)
        course = fields["course"]
        if not course:
            return []

        grades: dict[str, str] = {}
        for period in GRADING_PERIODS:
            value = normalize_letter_grade(fields[period])
            if value is not None:
                grades[period] = value

        return [GradeRecord(
            **self.identity(match, row, headers, source_row),
            course=course,
            grades=grades,
            teacher=fields["teacher"],
            course_number=fields["course_number"],
            period=fields["period"],
            section=fields["section"],
            grade_level=normalize_grade_level(fields["grade_level"]) or None,
        )]


# ── Assessment ───────────────────────────────────────────────────────────────


def benchmark_groups(headers: Sequence[str]) -> list[tuple[str, str, str, str]]:
    """
    Locate repeating 'Category, Benchmark, Points Earned, Points Possible'
    column groups. Returns the actual (deduped) header labels of each group.
    """
    pattern = ("category", "benchmark", "points earned", "points possible")
    groups = []
    i = 0
    while i + 3 < len(headers):
        window = tuple(base_header(h).strip().lower() for h in headers[i:i + 4])
        if window == pattern:
            groups.append(tuple(headers[i:i + 4]))
            i += 4
        else:
            i += 1
    return groups


class AssessmentTransformer(RecordTransformer):
    """Standardized test score rows (FAST, iReady, STAR exports)."""

    dataset_type = DatasetType.ASSESSMENT
    header_predicate = ASSESSMENT_HEADER
    exact_fields = frozenset({"grade_level", "subject"})

    def benchmarks(self, row: Mapping[str, str], headers: Sequence[str]) -> tuple[BenchmarkScore, ...]:
        scores = []
        for cat_h, bench_h, earned_h, possible_h in benchmark_groups(headers):
            benchmark = row.get(bench_h, "")
            earned = parse_number(row.get(earned_h))
            possible = parse_number(row.get(possible_h))
            if benchmark in PLACEHOLDER_VALUES or earned is None or possible is None:
                continue
            scores.append(BenchmarkScore(
                category=row.get(cat_h, ""),
                benchmark=benchmark,
                points_earned=earned,
                points_possible=possible,
            ))
        return tuple(scores)

    def _transform(self, row, headers, match, source_row):
        fields = self.fields(row, headers)
        raw_score = fields["score"]
        if raw_score is None:
            return []
        score = parse_number(raw_score)
        if score is None:
            raise RowError(f"non-numeric score '{raw_score}'")

        level = fields["achievement_level"]
        return [AssessmentRecord(
            **self.identity(match, row, headers, source_row),
            score=score,
            achievement_level=level,
            proficiency=achievement_to_proficiency(level),
            percentile=parse_number(fields["percentile"]),
            test_date=parse_date(fields["test_date"]),
            grade_level=normalize_grade_level(fields["grade_level"]) or None,
            subject=fields["subject"],
            benchmarks=self.benchmarks(row, headers),
        )]


# ── Discipline ───────────────────────────────────────────────────────────────


def split_infraction(text: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """'2.05 - Disruption' -> ('2.05', 'Disruption'); no dash -> (None, text)."""
    if not text:
        return None, None
    code, sep, rest = text.partition("-")
    if not sep or not rest.strip():
        return None, text
    return code.strip() or None, rest.strip()


def suspension_type(action: Optional[str]) -> str:
    lower = (action or "").lower()
    if "in-school" in lower or "in school" in lower:
        return "in-school"
    if "out-of-school" in lower or "out of school" in lower:
        return "out-of-school"
    return "other"


class DisciplineTransformer(RecordTransformer):
    """Incident referral rows; one record per row."""

    dataset_type = DatasetType.DISCIPLINE
    header_predicate = DISCIPLINE_HEADER
    exact_fields = frozenset({
        "incident_number", "incident", "action",
        "location", "reporter", "administrator",
        "bullying", "gang_related", "weapon_use", "alcohol_use", "drug_use", "hate_crime",
    })
    forward_fields = frozenset({"incident_date"})

    def _transform(self, row, headers, match, source_row):
        fields = self.fields(row, headers)
        raw_date = fields["incident_date"]
        if raw_date is None:
            return []
        incident_date = parse_date(raw_date)
        if incident_date is None:
            raise RowError(f"unparseable incident date '{raw_date}'")

        code, infraction = split_infraction(fields["infraction"])
        resultant = fields["resultant_action"]
        return [DisciplineRecord(
            **self.identity(match, row, headers, source_row),
            incident_date=incident_date,
            incident_number=fields["incident_number"],
            submission_date=parse_date(fields["submission_date"]),
            infraction_code=code,
            infraction=infraction,
            incident=fields["incident"],
            action=fields["action"] or resultant,
            resultant_action=resultant,
            suspension_type=suspension_type(resultant),
            action_days=parse_number(fields["action_days"]),
            action_start=parse_date(fields["action_start"]),
            action_end=parse_date(fields["action_end"]),
            location=fields["location"],
            reporter=fields["reporter"],
            administrator=fields["administrator"],
            narrative=fields["narrative"],
            bullying=parse_flag(fields["bullying"]),
            gang_related=parse_flag(fields["gang_related"]),
            weapon_use=parse_flag(fields["weapon_use"]),
            alcohol_use=parse_flag(fields["alcohol_use"]),
            drug_use=parse_flag(fields["drug_use"]),
            hate_crime=parse_flag(fields["hate_crime"]),
        )]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

TRANSFORMERS: dict[DatasetType, type[RecordTransformer]] = {
    DatasetType.ATTENDANCE: AttendanceTransformer,
    DatasetType.GRADES: GradesTransformer,
    DatasetType.ASSESSMENT: AssessmentTransformer,
    DatasetType.DISCIPLINE: DisciplineTransformer,
}


def get_transformer(
    dataset_type: DatasetType | str,
    settings: Optional[ImportSettings] = None,
) -> RecordTransformer:
    try:
        key = DatasetType(dataset_type)
    except ValueError:
        raise ValueError(
            f"Unknown dataset type '{dataset_type}'. "
            f"Known types: {[t.value for t in DatasetType]}"
        ) from None
    return TRANSFORMERS[key](settings)
