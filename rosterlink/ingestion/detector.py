"""
Dataset type detection for uploads whose type the operator did not give.

Filename keywords are checked first, then the header predicates of each
dataset type against the top of the grid. Returns None when nothing fits;
the orchestrator then halts and asks for an explicit type.
"""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import Optional

from rosterlink.ingestion.grid import CellGrid
from rosterlink.ingestion.header_locator import HeaderNotFoundError, locate_header
from rosterlink.ingestion.settings import MAX_HEADER_SCAN_ROWS
from rosterlink.ingestion.transformers import TRANSFORMERS, DatasetType

logger = logging.getLogger(__name__)

# Checked in order. Substrings match anywhere in the lowercased file stem;
# tokens must match a whole word of it.
_FILENAME_RULES: list[tuple[DatasetType, tuple[str, ...], tuple[str, ...]]] = [
    (DatasetType.ATTENDANCE, ("attendance", "absence"), ("att",)),
    (DatasetType.DISCIPLINE, ("discipline", "incident", "referral", "behavior"), ()),
    (DatasetType.ASSESSMENT, ("assessment", "iready", "i-ready", "scale_score"),
     ("fast", "star", "fsa", "pm1", "pm2", "pm3")),
    (DatasetType.GRADES, ("gradebook", "report_card", "grades"), ("gpa", "grade")),
]

# Most specific predicate first: attendance matches almost any roster-like header.
_HEADER_ORDER: tuple[DatasetType, ...] = (
    DatasetType.ASSESSMENT,
    DatasetType.DISCIPLINE,
    DatasetType.GRADES,
    DatasetType.ATTENDANCE,
)


def detect_from_filename(name: str) -> Optional[DatasetType]:
    stem = PurePosixPath(name).stem.lower()
    tokens = set(re.split(r"[^a-z0-9]+", stem))
    for dataset_type, substrings, words in _FILENAME_RULES:
        if any(s in stem for s in substrings) or tokens & set(words):
            return dataset_type
    return None


def detect_from_grid(grid: CellGrid, max_scan_rows: int = MAX_HEADER_SCAN_ROWS) -> Optional[DatasetType]:
    for dataset_type in _HEADER_ORDER:
        predicate = TRANSFORMERS[dataset_type].header_predicate
        try:
            locate_header(grid, predicate, max_scan_rows)
        except HeaderNotFoundError:
            continue
        return dataset_type
    return None


def detect_dataset_type(
    name: str,
    grid: Optional[CellGrid] = None,
    max_scan_rows: int = MAX_HEADER_SCAN_ROWS,
) -> Optional[DatasetType]:
    detected = detect_from_filename(name)
    how = "filename"
    if detected is None and grid is not None:
        detected = detect_from_grid(grid, max_scan_rows)
        how = "headers"
    if detected is not None:
        logger.info("[detector] %s: detected '%s' from %s", name, detected.value, how)
    return detected
