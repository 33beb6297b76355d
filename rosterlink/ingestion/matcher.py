"""
Identity resolution: map one raw row to one roster student.

Tiers are evaluated in a fixed order and the first hit wins:

  1. district-id                100
  2. state-id                    95
  3. name-exact                  85
     name-exact-disambiguated    80  (several candidates, row grade picks one)
     name-exact-ambiguous        70  (several candidates, first in roster order)
  4. name-fuzzy                ≤ 70  (only when the exact name key is absent)

The ambiguous tier is a best-effort pick, not a correctness guarantee. The
fuzzy tier uses positional character overlap, not edit distance; its
threshold and confidence scale are calibrated against that measure and must
not change without sign-off from report consumers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Mapping, Optional, Sequence

from rosterlink.ingestion.column_mapper import (
    DISTRICT_ID_ALIASES,
    FIRST_NAME_ALIASES,
    FULL_NAME_ALIASES,
    GRADE_LEVEL_ALIASES,
    LAST_NAME_ALIASES,
    STATE_ID_ALIASES,
    iter_alias_values,
)
from rosterlink.ingestion.roster import (
    RosterIndex,
    Student,
    clean_identifier,
    is_district_id,
    is_state_id,
    name_key,
    normalize_grade_level,
)
from rosterlink.ingestion.settings import (
    CONFIDENCE_DISTRICT_ID,
    CONFIDENCE_NAME_AMBIGUOUS,
    CONFIDENCE_NAME_DISAMBIGUATED,
    CONFIDENCE_NAME_EXACT,
    CONFIDENCE_STATE_ID,
    DEFAULT_SETTINGS,
    FUZZY_CONFIDENCE_SCALE,
    ImportSettings,
)

logger = logging.getLogger(__name__)


class MatchStrategy(str, Enum):
    DISTRICT_ID = "district-id"
    STATE_ID = "state-id"
    NAME_EXACT = "name-exact"
    NAME_EXACT_DISAMBIGUATED = "name-exact-disambiguated"
    NAME_EXACT_AMBIGUOUS = "name-exact-ambiguous"
    NAME_FUZZY = "name-fuzzy"

    @property
    def is_exact_name(self) -> bool:
        return self in (
            MatchStrategy.NAME_EXACT,
            MatchStrategy.NAME_EXACT_DISAMBIGUATED,
            MatchStrategy.NAME_EXACT_AMBIGUOUS,
        )


@dataclass(frozen=True)
class MatchResult:
    student_id: str
    strategy: MatchStrategy
    confidence: int
    student: Student


# ---------------------------------------------------------------------------
# Name extraction
# ---------------------------------------------------------------------------


def split_full_name(full_name: str) -> Optional[tuple[str, str]]:
    """
    Split a combined name cell into (first, last).

    "Lee, Ann"       -> ("Ann", "Lee")
    "Ann Lee"        -> ("Ann", "Lee")
    "Ann Marie Lee"  -> ("Ann", "Marie Lee")
    A single token without a comma cannot be split.
    """
    text = full_name.strip()
    if not text:
        return None
    if "," in text:
        last, _, first = text.partition(",")
        last, first = last.strip(), first.strip()
        return (first, last) if last else None
    parts = text.split()
    if len(parts) < 2:
        return None
    return parts[0], " ".join(parts[1:])


def _exact_value(row, headers, aliases) -> Optional[str]:
    # no containment pass: "Name" would otherwise hit "First Name"
    return next(iter_alias_values(row, headers, aliases, containment=False), None)


def extract_name(
    row: Mapping[str, object],
    headers: Optional[Sequence[str]] = None,
) -> Optional[tuple[str, str]]:
    """(first, last) from split columns, else from a combined name column."""
    headers = list(row.keys()) if headers is None else headers
    first = _exact_value(row, headers, FIRST_NAME_ALIASES)
    last = _exact_value(row, headers, LAST_NAME_ALIASES)
    if first and last:
        return first, last
    full = _exact_value(row, headers, FULL_NAME_ALIASES)
    if full:
        return split_full_name(full)
    return None


# ---------------------------------------------------------------------------
# Fuzzy similarity
# ---------------------------------------------------------------------------


def similarity(a: str, b: str) -> float:
    """Characters equal at the same index, over the longer length."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    same = sum(1 for x, y in zip(a, b) if x == y)
    return same / longest


def fuzzy_confidence(score: float) -> int:
    """round(score * 70) with halves rounded up."""
    scaled = Decimal(str(score)) * FUZZY_CONFIDENCE_SCALE
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def best_fuzzy_key(
    target: str,
    keys: Sequence[str],
    threshold: float,
) -> Optional[tuple[str, float]]:
    """Highest-similarity key strictly above threshold; ties keep the earlier key."""
    best: Optional[tuple[str, float]] = None
    for key in keys:
        score = similarity(target, key)
        if score > threshold and (best is None or score > best[1]):
            best = (key, score)
    return best


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


def _match_district(row, headers, index: RosterIndex) -> Optional[MatchResult]:
    for raw in iter_alias_values(row, headers, DISTRICT_ID_ALIASES, containment=False):
        value = clean_identifier(raw)
        if not is_district_id(value):
            continue
        student = index.by_district.get(value)
        if student is not None:
            return MatchResult(student.id, MatchStrategy.DISTRICT_ID, CONFIDENCE_DISTRICT_ID, student)
    return None


def _match_state(row, headers, index: RosterIndex, prefix: str) -> Optional[MatchResult]:
    for raw in iter_alias_values(row, headers, STATE_ID_ALIASES, containment=False):
        value = clean_identifier(raw).upper()
        if not is_state_id(value, prefix):
            continue
        student = index.by_state.get(value)
        if student is not None:
            return MatchResult(student.id, MatchStrategy.STATE_ID, CONFIDENCE_STATE_ID, student)
    return None


def _match_name(row, headers, index: RosterIndex, threshold: float) -> Optional[MatchResult]:
    name = extract_name(row, headers)
    if name is None:
        return None
    first, last = name
    key = name_key(last, first)
    if key == "_":
        return None

    candidates = index.by_name.get(key)
    if candidates:
        if len(candidates) == 1:
            student = candidates[0]
            return MatchResult(student.id, MatchStrategy.NAME_EXACT, CONFIDENCE_NAME_EXACT, student)

        row_grade = normalize_grade_level(_exact_value(row, headers, GRADE_LEVEL_ALIASES) or "")
        if row_grade:
            same_grade = [s for s in candidates if normalize_grade_level(s.grade) == row_grade]
            if len(same_grade) == 1:
                student = same_grade[0]
                return MatchResult(
                    student.id, MatchStrategy.NAME_EXACT_DISAMBIGUATED,
                    CONFIDENCE_NAME_DISAMBIGUATED, student,
                )
        student = candidates[0]
        return MatchResult(
            student.id, MatchStrategy.NAME_EXACT_AMBIGUOUS, CONFIDENCE_NAME_AMBIGUOUS, student,
        )

    best = best_fuzzy_key(key, list(index.by_name), threshold)
    if best is None:
        return None
    fuzzy_key, score = best
    student = index.by_name[fuzzy_key][0]
    return MatchResult(student.id, MatchStrategy.NAME_FUZZY, fuzzy_confidence(score), student)


def resolve(
    row: Mapping[str, object],
    index: RosterIndex,
    settings: Optional[ImportSettings] = None,
    headers: Optional[Sequence[str]] = None,
) -> Optional[MatchResult]:
    """
    Resolve a row to a roster student, or None when no tier matches.

    headers defaults to the row's own keys.
    """
    settings = settings or DEFAULT_SETTINGS
    headers = list(row.keys()) if headers is None else headers

    result = (
        _match_district(row, headers, index)
        or _match_state(row, headers, index, settings.state_id_prefix)
        or _match_name(row, headers, index, settings.fuzzy_threshold)
    )
    if result is not None:
        logger.debug(
            "[matcher] %s -> %s (%s, %d)",
            result.student.display_name, result.student_id,
            result.strategy.value, result.confidence,
        )
    return result
