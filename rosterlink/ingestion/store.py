"""
Roster store boundary.

The ingestion pipeline reads the roster snapshot and hands finished record
batches to the store. Persisting a batch is a full replace of that dataset
type's prior records, never an incremental merge.

InMemoryRosterStore is the reference implementation used by the CLI and the
tests. replace_records() validates the whole batch before swapping it in, so
a rejected batch leaves the previous records untouched.
"""

from __future__ import annotations

import logging
from typing import Iterable, Protocol, Sequence

import pandas as pd

from rosterlink.ingestion.records import CanonicalRecord
from rosterlink.ingestion.roster import RosterIndex, Student
from rosterlink.ingestion.settings import STATE_ID_PREFIX

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """A batch was rejected; the store is unchanged."""


class RosterStore(Protocol):
    def students(self) -> list[Student]: ...

    def replace_records(self, dataset_type: str, records: Sequence[CanonicalRecord]) -> int: ...


class InMemoryRosterStore:
    def __init__(self, students: Iterable[Student] = ()):
        self._students: list[Student] = list(students)
        self._records: dict[str, list[CanonicalRecord]] = {}

    # ── Roster ──────────────────────────────────────────────────────────────

    def students(self) -> list[Student]:
        return list(self._students)

    def replace_students(self, students: Iterable[Student]) -> int:
        """Replace the roster. Existing records are cleared: their ids may no longer exist."""
        students = list(students)
        RosterIndex.build(students)  # raises RosterError on duplicate ids
        self._students = students
        self._records.clear()
        logger.info("[store] roster replaced: %d students", len(students))
        return len(students)

    def build_index(self, state_id_prefix: str = STATE_ID_PREFIX) -> RosterIndex:
        return RosterIndex.build(self._students, state_id_prefix=state_id_prefix)

    # ── Records ─────────────────────────────────────────────────────────────

    def replace_records(self, dataset_type: str, records: Sequence[CanonicalRecord]) -> int:
        """
        Full replace: drop every stored record of dataset_type, then store
        records. The batch is checked against the roster first.
        """
        known = {s.id for s in self._students}
        unknown = sorted({r.student_id for r in records if r.student_id not in known})
        if unknown:
            raise StoreError(
                f"{len(unknown)} record(s) reference students not on the roster: "
                f"{', '.join(unknown[:5])}"
            )
        previous = len(self._records.get(dataset_type, []))
        self._records[dataset_type] = list(records)
        logger.info(
            "[store] %s: replaced %d record(s) with %d",
            dataset_type, previous, len(records),
        )
        return len(records)

    def records(self, dataset_type: str) -> list[CanonicalRecord]:
        return list(self._records.get(dataset_type, []))

    def records_for(self, student_id: str) -> dict[str, list[CanonicalRecord]]:
        return {
            dataset_type: [r for r in records if r.student_id == student_id]
            for dataset_type, records in self._records.items()
        }

    def records_frame(self, dataset_type: str) -> pd.DataFrame:
        """Stored records of one dataset type as a DataFrame, one row per record."""
        rows = [r.to_dict() for r in self._records.get(dataset_type, [])]
        return pd.DataFrame(rows)

    def clear(self, dataset_type: str | None = None) -> None:
        if dataset_type is None:
            self._records.clear()
        else:
            self._records.pop(dataset_type, None)

    def __repr__(self) -> str:
        counts = {k: len(v) for k, v in self._records.items()}
        return f"InMemoryRosterStore(students={len(self._students)}, records={counts})"
