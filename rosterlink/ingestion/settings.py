"""
Import settings and contract constants.

Contract values are module-level constants. Per-run overrides (scan window,
state-id prefix, reference date for year inference) travel in an
ImportSettings value passed into the pipeline. Alias-table overrides are
loaded from JSON by column_mapper.load_alias_overrides().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

# ---------------------------------------------------------------------------
# Constants (CONTRACT-LOCKED)
# ---------------------------------------------------------------------------

MAX_HEADER_SCAN_ROWS: int = 20

DISTRICT_ID_LENGTH: int = 8
STATE_ID_PREFIX: str = "FL"
STATE_ID_LENGTH: int = 14

FUZZY_THRESHOLD: float = 0.85
FUZZY_CONFIDENCE_SCALE: int = 70

# Confidence per strategy; fuzzy is scaled by similarity and capped at 70.
CONFIDENCE_DISTRICT_ID: int = 100
CONFIDENCE_STATE_ID: int = 95
CONFIDENCE_NAME_EXACT: int = 85
CONFIDENCE_NAME_DISAMBIGUATED: int = 80
CONFIDENCE_NAME_AMBIGUOUS: int = 70

# School year runs August..July.
SCHOOL_YEAR_START_MONTH: int = 8

# Cell values that mean "nothing recorded" in wide matrices.
PLACEHOLDER_VALUES: frozenset[str] = frozenset({"", "-", "*"})

BENCHMARK_MASTERY_THRESHOLD: float = 0.7


@dataclass(frozen=True)
class ImportSettings:
    """Per-run knobs. Defaults reproduce the contract constants."""
    max_scan_rows: int = MAX_HEADER_SCAN_ROWS
    state_id_prefix: str = STATE_ID_PREFIX
    fuzzy_threshold: float = FUZZY_THRESHOLD
    reference_date: Optional[date] = None
    alias_overrides: dict[str, dict[str, list[str]]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.max_scan_rows < 1:
            raise ValueError("max_scan_rows must be at least 1")
        if len(self.state_id_prefix) != 2 or not self.state_id_prefix.isalpha():
            raise ValueError(
                f"state_id_prefix must be two letters, got '{self.state_id_prefix}'"
            )

    @property
    def scan_window(self) -> int:
        """Rows scanned for a header; never more than MAX_HEADER_SCAN_ROWS."""
        return min(self.max_scan_rows, MAX_HEADER_SCAN_ROWS)

    def today(self) -> date:
        return self.reference_date or date.today()


DEFAULT_SETTINGS = ImportSettings()
