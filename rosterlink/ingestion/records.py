"""
Canonical record types produced by the record transformers.

Every record carries the resolved identity (student_id, matched_by,
match_confidence), the identifier exactly as printed in the source file
(original_student_id) and the 1-based source row number.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import asdict, dataclass, field
from typing import Optional, Union

from rosterlink.ingestion.matcher import MatchStrategy
from rosterlink.ingestion.normalizers import AttendanceStatus, Proficiency
from rosterlink.ingestion.settings import BENCHMARK_MASTERY_THRESHOLD


@dataclass(frozen=True)
class RecordBase:
    student_id: str
    matched_by: MatchStrategy
    match_confidence: int
    original_student_id: Optional[str]
    source_row: int

    def to_dict(self) -> dict:
        """Flat dict with enum values and ISO dates, ready for a DataFrame."""
        out = asdict(self)
        for key, value in out.items():
            if isinstance(value, (MatchStrategy, AttendanceStatus, Proficiency)):
                out[key] = value.value
            elif isinstance(value, dt.date):
                out[key] = value.isoformat()
        return out


@dataclass(frozen=True)
class AttendanceRecord(RecordBase):
    date: Optional[dt.date]
    status: AttendanceStatus
    code: str = ""


@dataclass(frozen=True)
class GradeRecord(RecordBase):
    course: str
    grades: dict[str, str] = field(default_factory=dict)
    teacher: Optional[str] = None
    course_number: Optional[str] = None
    period: Optional[str] = None
    section: Optional[str] = None
    grade_level: Optional[str] = None


@dataclass(frozen=True)
class BenchmarkScore:
    category: str
    benchmark: str
    points_earned: float
    points_possible: float

    @property
    def ratio(self) -> float:
        return self.points_earned / self.points_possible if self.points_possible else 0.0

    @property
    def mastered(self) -> bool:
        return self.points_possible > 0 and self.ratio >= BENCHMARK_MASTERY_THRESHOLD


@dataclass(frozen=True)
class AssessmentRecord(RecordBase):
    score: float
    achievement_level: Optional[str] = None
    proficiency: Optional[Proficiency] = None
    percentile: Optional[float] = None
    test_date: Optional[dt.date] = None
    grade_level: Optional[str] = None
    subject: Optional[str] = None
    benchmarks: tuple[BenchmarkScore, ...] = ()


@dataclass(frozen=True)
class DisciplineRecord(RecordBase):
    incident_date: dt.date
    incident_number: Optional[str] = None
    submission_date: Optional[dt.date] = None
    infraction_code: Optional[str] = None
    infraction: Optional[str] = None
    incident: Optional[str] = None
    action: Optional[str] = None
    resultant_action: Optional[str] = None
    suspension_type: Optional[str] = None
    action_days: Optional[float] = None
    action_start: Optional[dt.date] = None
    action_end: Optional[dt.date] = None
    location: Optional[str] = None
    reporter: Optional[str] = None
    administrator: Optional[str] = None
    narrative: Optional[str] = None
    bullying: bool = False
    gang_related: bool = False
    weapon_use: bool = False
    alcohol_use: bool = False
    drug_use: bool = False
    hate_crime: bool = False


CanonicalRecord = Union[AttendanceRecord, GradeRecord, AssessmentRecord, DisciplineRecord]
