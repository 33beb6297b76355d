"""
Import report: per-file matching summary.

An ImportReport is produced for every import, including partial ones, so an
operator always sees counts even when most rows failed. Reports are frozen;
the orchestrator accumulates into an ImportReportBuilder and freezes at the
end of the row stage.

External shape (to_dict):
  {totalRows, matchedRows, unmatchedRows, processedRecords,
   matchCountsByStrategy: {districtId, stateId, nameExact, nameFuzzy},
   errors: [str]}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from rosterlink.ingestion.matcher import MatchStrategy


class ImportStage(str, Enum):
    DECODING = "decoding"
    HEADER_LOCATING = "header_locating"
    ROW_PROCESSING = "row_processing"
    REPORTING = "reporting"
    DONE = "done"
    FAILED = "failed"


def _empty_counts() -> dict[str, int]:
    return {strategy.value: 0 for strategy in MatchStrategy}


@dataclass(frozen=True)
class ImportReport:
    source: str
    dataset_type: str
    total_rows: int = 0
    matched_rows: int = 0
    unmatched_rows: int = 0
    processed_records: int = 0
    match_counts: Mapping[str, int] = field(default_factory=_empty_counts)
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    header_row: Optional[int] = None
    column_map: Mapping[str, str] = field(default_factory=dict)
    stage: ImportStage = ImportStage.DONE
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))

    def __post_init__(self) -> None:
        # read-only copies, never shared with the builder or another report
        object.__setattr__(self, "match_counts", MappingProxyType(dict(self.match_counts)))
        object.__setattr__(self, "column_map", MappingProxyType(dict(self.column_map)))

    @property
    def match_rate(self) -> float:
        return self.matched_rows / self.total_rows if self.total_rows else 0.0

    def count(self, strategy: MatchStrategy) -> int:
        return self.match_counts.get(strategy.value, 0)

    def to_dict(self) -> dict:
        name_exact = sum(
            self.count(s) for s in MatchStrategy if s.is_exact_name
        )
        return {
            "totalRows": self.total_rows,
            "matchedRows": self.matched_rows,
            "unmatchedRows": self.unmatched_rows,
            "processedRecords": self.processed_records,
            "matchCountsByStrategy": {
                "districtId": self.count(MatchStrategy.DISTRICT_ID),
                "stateId": self.count(MatchStrategy.STATE_ID),
                "nameExact": name_exact,
                "nameFuzzy": self.count(MatchStrategy.NAME_FUZZY),
            },
            "errors": list(self.errors),
        }

    def as_text(self) -> str:
        lines = [
            "═" * 60,
            "ROSTER MATCHING REPORT",
            "═" * 60,
            f"Generated       : {self.timestamp}",
            f"Source          : {self.source}",
            f"Dataset         : {self.dataset_type}",
            f"Stage           : {self.stage.value}",
        ]
        if self.header_row is not None:
            lines.append(f"Header row      : {self.header_row + 1}")
        lines += [
            "",
            "ROW COUNTS",
            f"  Total rows    : {self.total_rows}",
            f"  Matched       : {self.matched_rows}",
            f"  Unmatched     : {self.unmatched_rows}",
            f"  Match rate    : {self.match_rate:.1%}",
            f"  Records       : {self.processed_records}",
            "",
            "MATCHES BY STRATEGY",
        ]
        for strategy in MatchStrategy:
            lines.append(f"  {strategy.value:<26}: {self.count(strategy)}")
        if self.column_map:
            lines += ["", "COLUMN ALIAS MAP"]
            for raw, normalized in self.column_map.items():
                lines.append(f"    '{raw}' → '{normalized}'")
        if self.warnings:
            lines += ["", "WARNINGS"]
            for warning in self.warnings:
                lines.append(f"  ⚑ {warning}")
        lines += ["", "ERRORS"]
        if not self.errors:
            lines.append("  None")
        for error in self.errors:
            lines.append(f"  {error}")
        lines.append("═" * 60)
        return "\n".join(lines)


class ImportReportBuilder:
    """Mutable accumulator for one file; freeze with build()."""

    def __init__(self, source: str, dataset_type: str):
        self.source = source
        self.dataset_type = dataset_type
        self.total_rows = 0
        self.matched_rows = 0
        self.unmatched_rows = 0
        self.processed_records = 0
        self.match_counts = _empty_counts()
        self.errors: list[str] = []
        self.warnings: list[str] = []
        self.header_row: Optional[int] = None
        self.column_map: dict[str, str] = {}

    def row_seen(self) -> None:
        self.total_rows += 1

    def matched(self, strategy: MatchStrategy) -> None:
        self.matched_rows += 1
        self.match_counts[strategy.value] += 1

    def unmatched(self, message: str) -> None:
        self.unmatched_rows += 1
        self.errors.append(message)

    def records_added(self, n: int) -> None:
        self.processed_records += n

    def error(self, message: str) -> None:
        self.errors.append(message)

    def warning(self, message: str) -> None:
        self.warnings.append(message)

    def build(self, stage: ImportStage = ImportStage.DONE) -> ImportReport:
        return ImportReport(
            source=self.source,
            dataset_type=self.dataset_type,
            total_rows=self.total_rows,
            matched_rows=self.matched_rows,
            unmatched_rows=self.unmatched_rows,
            processed_records=self.processed_records,
            match_counts=dict(self.match_counts),
            errors=tuple(self.errors),
            warnings=tuple(self.warnings),
            header_row=self.header_row,
            column_map=dict(self.column_map),
            stage=stage,
        )


def combine_reports(
    source: str,
    dataset_type: str,
    reports: Iterable[ImportReport],
    extra_errors: Iterable[str] = (),
) -> ImportReport:
    """
    Concatenate member reports (archive imports) into one.
    Member errors and warnings are prefixed with the member name.
    """
    builder = ImportReportBuilder(source, dataset_type)
    for report in reports:
        builder.total_rows += report.total_rows
        builder.matched_rows += report.matched_rows
        builder.unmatched_rows += report.unmatched_rows
        builder.processed_records += report.processed_records
        for key, n in report.match_counts.items():
            builder.match_counts[key] = builder.match_counts.get(key, 0) + n
        builder.errors += [f"{report.source}: {e}" for e in report.errors]
        builder.warnings += [f"{report.source}: {w}" for w in report.warnings]
    builder.errors += list(extra_errors)
    return builder.build(ImportStage.DONE)
