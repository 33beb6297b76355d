"""
Command line import:

    python -m rosterlink.ingestion.cli ROSTER FILE [--type TYPE] [--pdf OUT.pdf]

ROSTER is an enrollment export (CSV/XLSX). FILE is the dataset to import
(CSV, XLSX or ZIP). Prints the matching report; exits 1 on a fatal import
error or a rejected roster or record batch, 2 on bad arguments.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional, Sequence

from rosterlink.ingestion.column_mapper import load_alias_overrides
from rosterlink.ingestion.enrollment import load_enrollment
from rosterlink.ingestion.ingestion import IngestionError, run_import
from rosterlink.ingestion.report_pdf import write_report_pdf
from rosterlink.ingestion.roster import RosterError
from rosterlink.ingestion.settings import MAX_HEADER_SCAN_ROWS, STATE_ID_PREFIX, ImportSettings
from rosterlink.ingestion.store import InMemoryRosterStore, StoreError
from rosterlink.ingestion.transformers import DatasetType


def setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s %(message)s",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import a school data export against an enrollment roster.")
    parser.add_argument("roster", help="Enrollment export (CSV/XLSX) that defines the canonical roster")
    parser.add_argument("file", help="Dataset file to import (CSV, XLSX or ZIP)")
    parser.add_argument("--type", choices=[t.value for t in DatasetType], default=None,
                        help="Dataset type (default: detect from filename and headers)")
    parser.add_argument("--aliases", default=None, help="JSON file with alias-table overrides")
    parser.add_argument("--state-prefix", default=STATE_ID_PREFIX, help=f"State id prefix (default: {STATE_ID_PREFIX})")
    parser.add_argument("--scan-rows", type=int, default=MAX_HEADER_SCAN_ROWS,
                        help=f"Rows scanned for the header (max {MAX_HEADER_SCAN_ROWS})")
    parser.add_argument("--today", type=date.fromisoformat, default=None,
                        help="Reference date (YYYY-MM-DD) for MM/DD attendance headers")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    parser.add_argument("--pdf", default=None, help="Also write the report as a PDF")
    parser.add_argument("--debug", action="store_true", help="Enable DEBUG logging")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)
    logger = logging.getLogger(__name__)

    try:
        settings = ImportSettings(
            max_scan_rows=args.scan_rows,
            state_id_prefix=args.state_prefix,
            reference_date=args.today,
            alias_overrides=load_alias_overrides(args.aliases) if args.aliases else {},
        )
    except (ValueError, OSError) as e:
        logger.error("Invalid settings: %s", e)
        return 2

    try:
        enrollment = load_enrollment(args.roster, settings=settings)
        store = InMemoryRosterStore()
        store.replace_students(enrollment.students)
        index = store.build_index(settings.state_id_prefix)
        result = run_import(args.file, args.type, index, store=store, settings=settings)
    except IngestionError as e:
        print(str(e), file=sys.stderr)
        return 1
    except (RosterError, StoreError) as e:
        print(f"Import rejected: {e}", file=sys.stderr)
        return 1

    for error in enrollment.errors:
        logger.warning("[enrollment] %s", error)

    if args.json:
        print(json.dumps(result.report.to_dict(), indent=2))
    else:
        print(result.report.as_text())
    if args.pdf:
        out = write_report_pdf(result.report, args.pdf)
        logger.info("Wrote PDF report: %s", Path(out).resolve())
    return 0


if __name__ == "__main__":
    sys.exit(main())
