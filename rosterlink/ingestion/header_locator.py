"""
Header locating for noisy tabular dumps.

Export tools prepend titles, report parameters and blank lines before the
real column labels. locate_header() scans the top of a grid for the first
row that satisfies a dataset-specific predicate and returns its index with
cleaned labels.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Sequence, Union

from rosterlink.ingestion.grid import CellGrid, clean_cell
from rosterlink.ingestion.settings import MAX_HEADER_SCAN_ROWS

logger = logging.getLogger(__name__)


class HeaderNotFoundError(LookupError):
    """No row inside the scan window satisfied the header predicate."""

    def __init__(self, predicate_name: str, scanned_rows: int):
        self.predicate_name = predicate_name
        self.scanned_rows = scanned_rows
        super().__init__(
            f"No header row matching '{predicate_name}' in the first {scanned_rows} rows"
        )


@dataclass(frozen=True)
class HeaderLocation:
    row_index: int
    headers: list[str]


@dataclass(frozen=True)
class HeaderPredicate:
    """
    A header row qualifies when every pattern is matched by at least one
    cleaned cell of that row (case-insensitive search) and the row has at
    least min_cells non-empty cells, which rules out single-cell title rows.
    """
    name: str
    patterns: tuple[str, ...]
    min_cells: int = 2

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_compiled", tuple(re.compile(p, re.I) for p in self.patterns)
        )

    def __call__(self, cells: Sequence[str]) -> bool:
        cleaned = [c for c in (clean_cell(v) for v in cells) if c]
        if len(cleaned) < self.min_cells:
            return False
        return all(
            any(rx.search(cell) for cell in cleaned)
            for rx in self._compiled  # type: ignore[attr-defined]
        )


Predicate = Union[HeaderPredicate, Callable[[Sequence[str]], bool]]


def locate_header(
    grid: CellGrid,
    predicate: Predicate,
    max_scan_rows: int = MAX_HEADER_SCAN_ROWS,
) -> HeaderLocation:
    """
    Return the first row in rows 0..max_scan_rows whose cells satisfy
    predicate. The window is capped at MAX_HEADER_SCAN_ROWS.

    Raises
    ------
    HeaderNotFoundError
        When no row in the window qualifies.
    """
    window = min(max_scan_rows, MAX_HEADER_SCAN_ROWS, grid.n_rows)
    name = getattr(predicate, "name", getattr(predicate, "__name__", "header"))
    for index in range(window):
        cells = grid.row(index)
        if predicate(cells):
            headers = [clean_cell(c) for c in cells]
            logger.info(
                "[header_locator] %s: header '%s' found at row %d",
                grid.name, name, index,
            )
            return HeaderLocation(row_index=index, headers=headers)
    raise HeaderNotFoundError(name, window)


# ---------------------------------------------------------------------------
# Dataset header predicates
# ---------------------------------------------------------------------------

DATE_HEADER_PATTERN = r"^\d{1,2}/\d{1,2}$"

ATTENDANCE_HEADER = HeaderPredicate(
    name="attendance",
    patterns=(r"student", r"student.*id|^id$|status|absen|attendance|" + DATE_HEADER_PATTERN),
)

GRADES_HEADER = HeaderPredicate(
    name="grades",
    patterns=(r"student", r"course"),
)

ASSESSMENT_HEADER = HeaderPredicate(
    name="assessment",
    patterns=(r"student.*(id|name)|fleid|florida", r"scaled? score|scale_score|equivalent score"),
)

DISCIPLINE_HEADER = HeaderPredicate(
    name="discipline",
    patterns=(r"student", r"incident|infraction|offense"),
)

ENROLLMENT_HEADER = HeaderPredicate(
    name="enrollment",
    patterns=(r"student.*(id|number)|^id$", r"first", r"last"),
)
