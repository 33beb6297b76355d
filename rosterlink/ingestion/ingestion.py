"""
Import orchestrator: file -> matched, typed records + ImportReport.

STAGES (per file)
-----------------
  DECODING -> HEADER_LOCATING -> ROW_PROCESSING -> REPORTING -> DONE
  FAILED on a decode or header error. Both are fatal: the file structure is
  not recognized and nothing is imported.

ROW POLICY
----------
- Rows are processed strictly in file order; each row is matched, then
  transformed, before the next one starts.
- A row failure never stops the import. It is recorded as "Row N: ..." and
  processing continues.
- Unmatched rows are counted and listed; they produce no records.
- Ambiguous name matches are not errors; they show up as reduced confidence.

PERSISTENCE
-----------
On success the whole batch is handed to the store as a full replace of the
dataset type's prior records.

ARCHIVES
--------
Each ZIP member is imported independently and the member reports are
concatenated. A member that fails fatally adds one error line; the import
only fails when no member could be imported.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Mapping, Optional, Sequence

from rosterlink.ingestion.column_mapper import resolve_columns
from rosterlink.ingestion.decoder import DecodeError, archive_members, decode_bytes, decode_file, is_archive
from rosterlink.ingestion.detector import detect_dataset_type
from rosterlink.ingestion.grid import CellGrid, clean_cell, dedupe_headers
from rosterlink.ingestion.header_locator import HeaderNotFoundError, locate_header
from rosterlink.ingestion.matcher import extract_name, resolve
from rosterlink.ingestion.records import CanonicalRecord
from rosterlink.ingestion.report import (
    ImportReport,
    ImportReportBuilder,
    ImportStage,
    combine_reports,
)
from rosterlink.ingestion.roster import RosterIndex
from rosterlink.ingestion.settings import DEFAULT_SETTINGS, ImportSettings
from rosterlink.ingestion.store import RosterStore
from rosterlink.ingestion.transformers import (
    DatasetType,
    RecordTransformer,
    RowError,
    get_transformer,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class IngestionError(Exception):
    """Fatal import failure. Nothing from the affected file was stored."""
    reason: str
    affected_file: str
    stage: ImportStage
    operator_fix_steps: list[str]
    details: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        lines = [
            "═" * 60,
            "ROSTER IMPORT HALT",
            "═" * 60,
            f"Reason          : {self.reason}",
            f"Affected File   : {self.affected_file}",
            f"Stage           : {self.stage.value}",
        ]
        for detail in self.details:
            lines.append(f"  - {detail}")
        lines.append("Fix Steps:")
        for i, step in enumerate(self.operator_fix_steps, 1):
            lines.append(f"  {i}. {step}")
        lines.append("═" * 60)
        return "\n".join(lines)


@dataclass
class ImportResult:
    records: list[CanonicalRecord]
    report: ImportReport


# ---------------------------------------------------------------------------
# Internal utilities
# ---------------------------------------------------------------------------


def _stage(source: str, stage: ImportStage) -> None:
    logger.info("[ingestion] %s: stage → %s", source, stage.value)


def _describe_row(row: Mapping[str, str]) -> str:
    """Short identity description for unmatched-row messages."""
    name = extract_name(row)
    if name is not None:
        first, last = name
        return f"'{last}, {first}'" if first else f"'{last}'"
    for value in row.values():
        if value:
            return f"'{value}'"
    return "(empty row)"


def _decode_failure(name: str, err: DecodeError) -> IngestionError:
    return IngestionError(
        reason=f"File could not be decoded: {err.reason}",
        affected_file=name,
        stage=ImportStage.DECODING,
        operator_fix_steps=[
            "Export the report as CSV (UTF-8) or XLSX; ZIP archives of those are also accepted",
            "Open the file once in a spreadsheet tool to confirm it is not corrupt",
            "Re-upload the file",
        ],
    )


def _header_failure(name: str, dataset_type: DatasetType, err: HeaderNotFoundError) -> IngestionError:
    return IngestionError(
        reason=f"No {dataset_type.value} header row found",
        affected_file=name,
        stage=ImportStage.HEADER_LOCATING,
        operator_fix_steps=[
            f"Confirm the column header row is within the first {err.scanned_rows} rows",
            f"Confirm this is a {dataset_type.value} export (or choose the correct dataset type)",
            "Confirm the header row has a student identifier column",
        ],
    )


def _undetected_failure(name: str) -> IngestionError:
    return IngestionError(
        reason="Dataset type could not be detected",
        affected_file=name,
        stage=ImportStage.HEADER_LOCATING,
        operator_fix_steps=[
            f"Pass the dataset type explicitly: {', '.join(t.value for t in DatasetType)}",
        ],
    )


def _process_rows(
    headers: Sequence[str],
    rows: Sequence[tuple[int, Mapping[str, str]]],
    transformer: RecordTransformer,
    index: RosterIndex,
    builder: ImportReportBuilder,
    settings: ImportSettings,
    progress: Optional[ProgressCallback],
) -> list[CanonicalRecord]:
    records: list[CanonicalRecord] = []
    total = len(rows)
    for done, (source_row, row) in enumerate(rows, 1):
        builder.row_seen()
        match = resolve(row, index, settings, headers)
        if match is None:
            builder.unmatched(f"Row {source_row}: no roster match for {_describe_row(row)}")
        else:
            builder.matched(match.strategy)
            try:
                produced = transformer.transform(row, headers, match, source_row)
            except (RowError, ValueError) as e:
                builder.error(f"Row {source_row}: {e}")
            else:
                if produced:
                    records.extend(produced)
                    builder.records_added(len(produced))
                else:
                    builder.error(
                        f"Row {source_row}: no {transformer.dataset_type.value} data "
                        f"for {match.student.display_name}"
                    )
        if progress is not None:
            progress(done, total)
    return records


# ---------------------------------------------------------------------------
# Row stage entry point
# ---------------------------------------------------------------------------


def import_rows(
    headers: Sequence[str],
    rows: Iterable[Mapping[str, object]],
    dataset_type: DatasetType | str,
    index: RosterIndex,
    settings: Optional[ImportSettings] = None,
    source: str = "<rows>",
    progress: Optional[ProgressCallback] = None,
) -> ImportResult:
    """
    Run the row stage on already-decoded rows (label -> value maps).
    Rows are numbered from 1 in the order given. Nothing is stored.
    """
    settings = settings or DEFAULT_SETTINGS
    transformer = get_transformer(dataset_type, settings)
    builder = ImportReportBuilder(source, transformer.dataset_type.value)
    numbered = [
        (n, {str(k): clean_cell(v) for k, v in row.items()})
        for n, row in enumerate(rows, 1)
    ]
    records = _process_rows(list(headers), numbered, transformer, index, builder, settings, progress)
    return ImportResult(records=records, report=builder.build(ImportStage.DONE))


# ---------------------------------------------------------------------------
# Grid / file entry points
# ---------------------------------------------------------------------------


def import_grid(
    grid: CellGrid,
    dataset_type: Optional[DatasetType | str],
    index: RosterIndex,
    settings: Optional[ImportSettings] = None,
    progress: Optional[ProgressCallback] = None,
) -> ImportResult:
    """
    HEADER_LOCATING and ROW_PROCESSING for one decoded grid.
    dataset_type None means detect from the grid name and headers.

    Raises IngestionError when no header row is found.
    """
    settings = settings or DEFAULT_SETTINGS
    if dataset_type is None:
        dataset_type = detect_dataset_type(grid.name, grid, settings.scan_window)
        if dataset_type is None:
            raise _undetected_failure(grid.name)
    transformer = get_transformer(dataset_type, settings)

    _stage(grid.name, ImportStage.HEADER_LOCATING)
    try:
        location = locate_header(grid, transformer.header_predicate, settings.scan_window)
    except HeaderNotFoundError as e:
        _stage(grid.name, ImportStage.FAILED)
        raise _header_failure(grid.name, transformer.dataset_type, e) from e

    _stage(grid.name, ImportStage.ROW_PROCESSING)
    headers = dedupe_headers(location.headers)
    builder = ImportReportBuilder(grid.name, transformer.dataset_type.value)
    builder.header_row = location.row_index
    builder.column_map = resolve_columns(headers, transformer.aliases, grid.name)

    rows = grid.records(location.row_index, location.headers)
    records = _process_rows(headers, rows, transformer, index, builder, settings, progress)
    report = builder.build(ImportStage.DONE)
    logger.info(
        "[ingestion] %s: %d/%d rows matched, %d records, %d errors",
        grid.name, report.matched_rows, report.total_rows,
        report.processed_records, len(report.errors),
    )
    return ImportResult(records=records, report=report)


def _import_archive(
    path: Path,
    dataset_type: Optional[DatasetType],
    index: RosterIndex,
    settings: ImportSettings,
    progress: Optional[ProgressCallback],
) -> tuple[ImportResult, DatasetType]:
    try:
        members = archive_members(path)
    except DecodeError as e:
        _stage(path.name, ImportStage.FAILED)
        raise _decode_failure(path.name, e) from e

    results: list[ImportResult] = []
    failures: list[str] = []
    chosen = dataset_type
    for name, data in members:
        try:
            grid = decode_bytes(name, data)
            if chosen is None:
                chosen = detect_dataset_type(name, grid, settings.scan_window)
                if chosen is None:
                    raise _undetected_failure(name)
            results.append(import_grid(grid, chosen, index, settings, progress))
        except DecodeError as e:
            failures.append(f"{name}: could not be decoded ({e.reason})")
            logger.warning("[ingestion] %s: member %s skipped: %s", path.name, name, e.reason)
        except IngestionError as e:
            failures.append(f"{name}: {e.reason}")
            logger.warning("[ingestion] %s: member %s skipped: %s", path.name, name, e.reason)

    if not results:
        _stage(path.name, ImportStage.FAILED)
        raise IngestionError(
            reason="No file in the archive could be imported",
            affected_file=path.name,
            stage=ImportStage.HEADER_LOCATING,
            operator_fix_steps=[
                "Confirm the archive holds CSV or XLSX exports of one dataset type",
                "Import the members one at a time to see each failure",
            ],
            details=failures,
        )

    records = [r for result in results for r in result.records]
    report = combine_reports(
        path.name, chosen.value, (result.report for result in results), failures,
    )
    return ImportResult(records=records, report=report), chosen


def run_import(
    path: str | Path,
    dataset_type: Optional[DatasetType | str],
    index: RosterIndex,
    store: Optional[RosterStore] = None,
    settings: Optional[ImportSettings] = None,
    progress: Optional[ProgressCallback] = None,
) -> ImportResult:
    """
    Import one file (CSV, XLSX or ZIP of those) against a roster index.

    When store is given, the produced records replace every stored record
    of the dataset type. dataset_type None means detect it.

    Raises
    ------
    IngestionError
        Decode failure, no header row within the scan window, undetectable
        dataset type, or an archive with no importable member.
    """
    path = Path(path)
    settings = settings or DEFAULT_SETTINGS
    chosen = DatasetType(dataset_type) if dataset_type is not None else None

    _stage(path.name, ImportStage.DECODING)
    if is_archive(path.name):
        result, chosen = _import_archive(path, chosen, index, settings, progress)
    else:
        try:
            grid = decode_file(path)
        except DecodeError as e:
            _stage(path.name, ImportStage.FAILED)
            raise _decode_failure(path.name, e) from e
        result = import_grid(grid, chosen, index, settings, progress)
        chosen = DatasetType(result.report.dataset_type)

    _stage(path.name, ImportStage.REPORTING)
    report = dataclasses.replace(
        result.report,
        warnings=result.report.warnings + tuple(index.warnings),
    )
    if store is not None:
        store.replace_records(chosen.value, result.records)
    _stage(path.name, ImportStage.DONE)
    return ImportResult(records=result.records, report=report)
