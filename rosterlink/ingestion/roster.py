"""
Canonical roster and its lookup index.

The roster is the single source of student identity. RosterIndex is built
once per import session from the roster snapshot and is read-only after
that; callers rebuild it explicitly when the roster changes.

RULES:
  - Duplicate canonical ids reject construction (RosterError).
  - Duplicate district / state ids: last write wins, a warning is recorded.
  - Ids that can never match (wrong length / prefix) are kept on the
    Student but produce a warning and are not indexed.
  - by_name is a multimap; candidate order follows roster order.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from rosterlink.ingestion.grid import clean_cell, strip_formula
from rosterlink.ingestion.settings import (
    DISTRICT_ID_LENGTH,
    STATE_ID_LENGTH,
    STATE_ID_PREFIX,
)

logger = logging.getLogger(__name__)

_NON_LETTER_RE = re.compile(r"[^a-z]")


class RosterError(ValueError):
    """Roster snapshot cannot be indexed."""


@dataclass(frozen=True)
class Student:
    id: str
    first_name: str
    last_name: str
    grade: str = ""
    district_id: Optional[str] = None
    state_id: Optional[str] = None
    homeroom: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.last_name}, {self.first_name}"


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def normalize_name(text: str) -> str:
    """Lowercase and keep letters a-z only. Idempotent."""
    return _NON_LETTER_RE.sub("", (text or "").lower())


def name_key(last_name: str, first_name: str) -> str:
    return f"{normalize_name(last_name)}_{normalize_name(first_name)}"


def is_district_id(value: str) -> bool:
    return len(value) == DISTRICT_ID_LENGTH and value.isdigit()


def is_state_id(value: str, prefix: str = STATE_ID_PREFIX) -> bool:
    return (
        len(value) == STATE_ID_LENGTH
        and value.upper().startswith(prefix.upper())
        and value.isalnum()
    )


def clean_identifier(value) -> str:
    """Cell text with formula wrapping removed and inner whitespace dropped."""
    return re.sub(r"\s+", "", strip_formula(clean_cell(value)))


_ORDINAL_WORDS = {
    "first": "1", "second": "2", "third": "3", "fourth": "4", "fifth": "5",
    "sixth": "6", "seventh": "7", "eighth": "8", "ninth": "9", "tenth": "10",
    "eleventh": "11", "twelfth": "12",
}


def normalize_grade_level(value) -> str:
    """
    Canonical grade token used to compare roster and file grades.

    '05', '="5"', '5th', 'Grade 5', 'Fifth' -> '5'
    'K', 'KG', 'Kindergarten' -> 'k'
    'PK', 'Pre-K', 'PreK' -> 'pre'
    Unrecognized text comes back lowercased and trimmed.
    """
    text = clean_cell(value).lower()
    if not text:
        return ""
    text = re.sub(r"^grade\s*", "", text).strip()
    compact = re.sub(r"[\s\-]", "", text)
    if compact in ("k", "kg", "kindergarten", "kinder"):
        return "k"
    if compact in ("pk", "prek", "pre", "prekindergarten", "vpk"):
        return "pre"
    if compact in _ORDINAL_WORDS:
        return _ORDINAL_WORDS[compact]
    match = re.fullmatch(r"0*(\d{1,2})(?:st|nd|rd|th)?", compact)
    if match:
        return str(int(match.group(1)))
    return text


# ---------------------------------------------------------------------------
# Index
# ---------------------------------------------------------------------------


@dataclass
class RosterIndex:
    by_district: dict[str, Student] = field(default_factory=dict)
    by_state: dict[str, Student] = field(default_factory=dict)
    by_name: dict[str, list[Student]] = field(default_factory=dict)
    by_id: dict[str, Student] = field(default_factory=dict)
    students: list[Student] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    state_id_prefix: str = STATE_ID_PREFIX

    @classmethod
    def build(
        cls,
        students: Iterable[Student],
        state_id_prefix: str = STATE_ID_PREFIX,
    ) -> "RosterIndex":
        """
        Index a roster snapshot. Pure: the input is not modified.

        Raises
        ------
        RosterError
            When two students share the same canonical id.
        """
        index = cls(state_id_prefix=state_id_prefix)

        for student in students:
            if not student.id:
                raise RosterError(f"Student '{student.display_name}' has no canonical id")
            if student.id in index.by_id:
                raise RosterError(f"Duplicate canonical student id '{student.id}'")
            index.students.append(student)
            index.by_id[student.id] = student

            if student.district_id:
                index._add_district(student)
            if student.state_id:
                index._add_state(student)

            key = name_key(student.last_name, student.first_name)
            index.by_name.setdefault(key, []).append(student)

        for warning in index.warnings:
            logger.warning("[roster] %s", warning)
        logger.info(
            "[roster] indexed %d students (%d district ids, %d state ids, %d name keys)",
            len(index.students), len(index.by_district), len(index.by_state), len(index.by_name),
        )
        return index

    def _add_district(self, student: Student) -> None:
        value = clean_identifier(student.district_id)
        if not is_district_id(value):
            self.warnings.append(
                f"Student {student.id}: district id '{student.district_id}' is not "
                f"{DISTRICT_ID_LENGTH} digits and cannot be matched"
            )
            return
        previous = self.by_district.get(value)
        if previous is not None:
            self.warnings.append(
                f"District id {value} shared by students {previous.id} and {student.id}; "
                f"keeping {student.id}"
            )
        self.by_district[value] = student

    def _add_state(self, student: Student) -> None:
        value = clean_identifier(student.state_id).upper()
        if not is_state_id(value, self.state_id_prefix):
            self.warnings.append(
                f"Student {student.id}: state id '{student.state_id}' does not match "
                f"{self.state_id_prefix} + {STATE_ID_LENGTH - len(self.state_id_prefix)} characters"
            )
            return
        previous = self.by_state.get(value)
        if previous is not None:
            self.warnings.append(
                f"State id {value} shared by students {previous.id} and {student.id}; "
                f"keeping {student.id}"
            )
        self.by_state[value] = student

    def __len__(self) -> int:
        return len(self.students)

    def get(self, student_id: str) -> Optional[Student]:
        return self.by_id.get(student_id)
