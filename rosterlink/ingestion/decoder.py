"""
File decoding: bytes on disk -> CellGrid.

Supported inputs:
  - CSV / TXT / TSV: encoding tried in order utf-8-sig, utf-8, cp1252;
    delimiter sniffed from a sample. Read with the csv module so ragged rows
    and blank lines keep their original row numbers.
  - XLSX / XLSM: first sheet only, every cell as text (pandas + openpyxl).
  - ZIP: each supported member is decoded on its own. Folders, macOS
    resource forks and unsupported members are skipped with a warning.

Every failure surfaces as DecodeError; the orchestrator turns it into a
fatal IngestionError with operator fix steps.
"""

from __future__ import annotations

import csv
import io
import logging
import zipfile
from pathlib import Path, PurePosixPath

import pandas as pd

from rosterlink.ingestion.grid import CellGrid

logger = logging.getLogger(__name__)

TEXT_SUFFIXES: frozenset[str] = frozenset({".csv", ".txt", ".tsv"})
WORKBOOK_SUFFIXES: frozenset[str] = frozenset({".xlsx", ".xlsm"})
ARCHIVE_SUFFIXES: frozenset[str] = frozenset({".zip"})

ENCODINGS: tuple[str, ...] = ("utf-8-sig", "utf-8", "cp1252")
DELIMITERS: str = ",;\t|"


class DecodeError(ValueError):
    """A file (or archive member) could not be turned into a grid."""

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"{name}: {reason}")


def suffix_of(name: str) -> str:
    return PurePosixPath(name).suffix.lower()


def is_archive(name: str) -> bool:
    return suffix_of(name) in ARCHIVE_SUFFIXES


def is_supported(name: str) -> bool:
    return suffix_of(name) in TEXT_SUFFIXES | WORKBOOK_SUFFIXES


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def _decode_text(name: str, data: bytes) -> str:
    for enc in ENCODINGS:
        try:
            text = data.decode(enc)
        except UnicodeDecodeError:
            continue
        logger.debug("[decoder] %s: decoded as %s", name, enc)
        return text
    raise DecodeError(name, f"not readable as any of {', '.join(ENCODINGS)}")


def guess_delimiter(sample: str) -> str:
    """csv.Sniffer first; fall back to the most frequent candidate per line."""
    try:
        return csv.Sniffer().sniff(sample, delimiters=DELIMITERS).delimiter
    except csv.Error:
        pass
    lines = [ln for ln in sample.splitlines() if ln.strip()][:20]
    if not lines:
        return ","
    scores = {d: sum(ln.count(d) for ln in lines) / len(lines) for d in DELIMITERS}
    best = max(scores, key=scores.get)
    return best if scores[best] > 0 else ","


def decode_csv(name: str, data: bytes) -> CellGrid:
    text = _decode_text(name, data)
    if not text.strip():
        raise DecodeError(name, "file is empty")
    delimiter = "\t" if suffix_of(name) == ".tsv" else guess_delimiter(text[:65536])
    try:
        rows = list(csv.reader(io.StringIO(text, newline=""), delimiter=delimiter))
    except csv.Error as e:
        raise DecodeError(name, f"malformed CSV: {e}") from e
    return CellGrid.from_rows(rows, name=name)


# ---------------------------------------------------------------------------
# Workbook
# ---------------------------------------------------------------------------


def decode_workbook(name: str, data: bytes) -> CellGrid:
    try:
        frame = pd.read_excel(
            io.BytesIO(data), sheet_name=0, header=None, dtype=str, engine="openpyxl",
        )
    except Exception as e:  # openpyxl raises a wide range of types on corrupt input
        raise DecodeError(name, f"unreadable workbook ({type(e).__name__}: {e})") from e
    if frame.empty:
        raise DecodeError(name, "first sheet is empty")
    return CellGrid(frame, name=name)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def decode_bytes(name: str, data: bytes) -> CellGrid:
    """Decode a single (non-archive) file's bytes."""
    suffix = suffix_of(name)
    if suffix in TEXT_SUFFIXES:
        grid = decode_csv(name, data)
    elif suffix in WORKBOOK_SUFFIXES:
        grid = decode_workbook(name, data)
    else:
        raise DecodeError(name, f"unsupported file type '{suffix or '(none)'}'")
    logger.info("[decoder] %s: %d rows × %d columns", name, grid.n_rows, grid.n_cols)
    return grid


def decode_file(path: str | Path) -> CellGrid:
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise DecodeError(path.name, f"cannot read file ({e.strerror})") from e
    return decode_bytes(path.name, data)


def archive_members(path: str | Path) -> list[tuple[str, bytes]]:
    """
    Supported members of a ZIP archive in archive order, as (name, bytes).

    Raises DecodeError when the archive is unreadable or holds no
    supported member.
    """
    path = Path(path)
    members: list[tuple[str, bytes]] = []
    try:
        with zipfile.ZipFile(path) as zf:
            for info in zf.infolist():
                member = PurePosixPath(info.filename)
                if info.is_dir() or "__MACOSX" in member.parts or member.name.startswith("."):
                    continue
                if not is_supported(member.name):
                    logger.warning("[decoder] %s: skipping unsupported member '%s'", path.name, info.filename)
                    continue
                members.append((member.name, zf.read(info)))
    except (zipfile.BadZipFile, OSError) as e:
        raise DecodeError(path.name, f"unreadable archive ({e})") from e
    if not members:
        raise DecodeError(path.name, "archive contains no CSV or XLSX files")
    return members
