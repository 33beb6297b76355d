"""
Value normalizers shared by every record transformer.

All functions are pure and tolerant: unparseable input yields None (or the
documented default) rather than raising. Callers decide whether a None is
fatal for the row.

BUSINESS RULES:
  - Attendance codes outside the known table count as PRESENT
    ("assume positive"). This is a policy choice, not a parsing gap.
  - MM/DD headers carry no year. The school year runs Aug..Jul, so months
    8-12 fall in the reference year and months 1-7 in the following year.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from typing import Optional

import pandas as pd

from rosterlink.ingestion.grid import clean_cell, strip_formula
from rosterlink.ingestion.roster import normalize_grade_level
from rosterlink.ingestion.settings import SCHOOL_YEAR_START_MONTH

__all__ = [
    "AttendanceStatus",
    "Proficiency",
    "achievement_to_proficiency",
    "classify_attendance",
    "infer_header_date",
    "normalize_grade_level",
    "normalize_letter_grade",
    "parse_date",
    "parse_flag",
    "parse_number",
]

_DATE_HEADER_RE = re.compile(r"^(\d{1,2})/(\d{1,2})$")


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def infer_header_date(header: str, today: Optional[date] = None) -> Optional[date]:
    """
    "8/15" -> date(Y, 8, 15); "1/15" -> date(Y + 1, 1, 15), Y = today's year.
    Non-MM/DD headers and impossible calendar dates return None.
    """
    match = _DATE_HEADER_RE.match(strip_formula(clean_cell(header)))
    if not match:
        return None
    month, day = int(match.group(1)), int(match.group(2))
    year = (today or date.today()).year
    if month < SCHOOL_YEAR_START_MONTH:
        year += 1
    try:
        return date(year, month, day)
    except ValueError:
        return None


def is_date_header(header: str) -> bool:
    return bool(_DATE_HEADER_RE.match(strip_formula(clean_cell(header))))


def parse_date(val) -> Optional[date]:
    """Parse a date value tolerantly. Return None if unparseable."""
    if val is None:
        return None
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    s = clean_cell(val)
    if not s:
        return None
    # two-digit years first: "%m/%d/%Y" would read "9/10/24" as year 24
    for fmt in ("%m/%d/%y", "%m/%d/%Y", "%Y-%m-%d", "%m-%d-%Y", "%Y/%m/%d",
                "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S",
                "%m/%d/%Y %H:%M", "%m/%d/%Y %I:%M %p", "%m/%d/%Y %I:%M:%S %p"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    # Excel serial day numbers surviving a CSV round trip
    if re.fullmatch(r"\d{5}(\.\d+)?", s):
        return (pd.Timestamp("1899-12-30") + pd.Timedelta(days=float(s))).date()
    return None


# ---------------------------------------------------------------------------
# Numbers and flags
# ---------------------------------------------------------------------------


def parse_number(val) -> Optional[float]:
    """'512', ' 512.0 ', '1,024', '85%' -> float. Empty or junk -> None."""
    s = clean_cell(val).replace(",", "").rstrip("%").strip()
    if not s:
        return None
    try:
        return float(s)
    except ValueError:
        return None


_TRUE_TOKENS = frozenset({"yes", "y", "true", "t", "1", "x"})


def parse_flag(val) -> bool:
    return clean_cell(val).lower() in _TRUE_TOKENS


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    TARDY = "tardy"
    EARLY_DISMISSAL = "early_dismissal"


_ATTENDANCE_CODES: dict[str, AttendanceStatus] = {
    "P": AttendanceStatus.PRESENT,
    "I": AttendanceStatus.PRESENT,   # in-school suspension
    "A": AttendanceStatus.ABSENT,
    "U": AttendanceStatus.ABSENT,    # unexcused
    "O": AttendanceStatus.ABSENT,    # out-of-school suspension
    "T": AttendanceStatus.TARDY,
    "L": AttendanceStatus.TARDY,     # late
    "E": AttendanceStatus.EARLY_DISMISSAL,
}

_ATTENDANCE_WORDS: dict[str, AttendanceStatus] = {
    "present": AttendanceStatus.PRESENT,
    "absent": AttendanceStatus.ABSENT,
    "tardy": AttendanceStatus.TARDY,
    "late": AttendanceStatus.TARDY,
    "early dismissal": AttendanceStatus.EARLY_DISMISSAL,
    "early_dismissal": AttendanceStatus.EARLY_DISMISSAL,
}


def classify_attendance(code) -> AttendanceStatus:
    """Map an attendance code or word to a status; unknown codes are PRESENT."""
    text = clean_cell(code)
    if not text:
        return AttendanceStatus.PRESENT
    word = _ATTENDANCE_WORDS.get(text.lower())
    if word is not None:
        return word
    return _ATTENDANCE_CODES.get(text.upper(), AttendanceStatus.PRESENT)


# ---------------------------------------------------------------------------
# Assessment proficiency
# ---------------------------------------------------------------------------


class Proficiency(str, Enum):
    BELOW = "below"
    APPROACHING = "approaching"
    MEETS = "meets"
    EXCEEDS = "exceeds"


# Checked top to bottom; first containment hit wins.
_PROFICIENCY_TOKENS: tuple[tuple[Proficiency, tuple[str, ...]], ...] = (
    (Proficiency.BELOW, ("1", "inadequate", "below")),
    (Proficiency.APPROACHING, ("2", "developing", "approaching")),
    (Proficiency.MEETS, ("3", "satisfactory", "meets", "on grade")),
    (Proficiency.EXCEEDS, ("4", "5", "proficient", "exceeds", "above", "mastery")),
)


def achievement_to_proficiency(level) -> Optional[Proficiency]:
    """'Level 3' -> MEETS, 'Inadequate' -> BELOW. None when nothing matches."""
    text = clean_cell(level).lower()
    if not text:
        return None
    for proficiency, tokens in _PROFICIENCY_TOKENS:
        if any(token in text for token in tokens):
            return proficiency
    return None


# ---------------------------------------------------------------------------
# Letter grades
# ---------------------------------------------------------------------------


def _letter_for(score: float) -> str:
    if score >= 90:
        return "A"
    if score >= 80:
        return "B"
    if score >= 70:
        return "C"
    if score >= 60:
        return "D"
    return "F"


_SCORE_LETTER_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*\(?([A-Za-z][+-]?)\)?$")
_LETTER_RE = re.compile(r"^[A-Fa-fSsNnUuIiEe][+-]?$")


def normalize_letter_grade(val) -> Optional[str]:
    """
    '80 S' -> '80 (S)', '96' -> '96 (A)', 'B+' -> 'B+'.
    Empty or placeholder cells return None; other text passes through.
    """
    s = clean_cell(val)
    if not s or s in ("-", "*"):
        return None
    match = _SCORE_LETTER_RE.match(s)
    if match:
        return f"{match.group(1)} ({match.group(2).upper()})"
    number = parse_number(s)
    if number is not None:
        return f"{_format_number(number)} ({_letter_for(number)})"
    if _LETTER_RE.match(s):
        return s.upper()
    return s


def _format_number(number: float) -> str:
    return str(int(number)) if float(number).is_integer() else str(number)
