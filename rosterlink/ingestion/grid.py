"""
Cell grid: a rectangular block of raw string cells.

Every decoded file (CSV, first workbook sheet, archive member) becomes a
CellGrid backed by a string-typed DataFrame. Cells keep their raw text;
spreadsheet artifacts are removed on read through clean_cell().
"""

from __future__ import annotations

import re
from typing import Iterator, Sequence

import pandas as pd

_FORMULA_RE = re.compile(r'^="?(.*?)"?$', re.S)
_INVISIBLE_RE = re.compile(r"[\u200b\u200c\u200d\ufeff]")
_QUOTES = ("\"", "'")


def strip_formula(value: str) -> str:
    """Unwrap Excel text formulas: '="20107825"' -> '20107825'."""
    if value.startswith("="):
        match = _FORMULA_RE.match(value)
        if match:
            return match.group(1)
    return value


def clean_cell(value) -> str:
    """
    Normalize one raw cell to plain text.

    - None/NaN become ""
    - BOM and zero-width characters removed
    - surrounding whitespace trimmed
    - formula wrapping (="...") and one pair of wrapping quotes removed
    """
    if value is None:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    text = _INVISIBLE_RE.sub("", str(value)).strip()
    text = strip_formula(text).strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in _QUOTES:
        text = text[1:-1].strip()
    return text


def is_blank_row(cells: Sequence[str]) -> bool:
    return all(not clean_cell(c) for c in cells)


def dedupe_headers(headers: Sequence[str]) -> list[str]:
    """
    Make header labels unique the way pandas does ("X", "X.1", "X.2").

    Repeating column groups (assessment benchmarks) would otherwise collapse
    when rows are turned into label -> value maps.
    """
    seen: dict[str, int] = {}
    result: list[str] = []
    for header in headers:
        if not header:
            result.append(header)
        elif header in seen:
            seen[header] += 1
            result.append(f"{header}.{seen[header]}")
        else:
            seen[header] = 0
            result.append(header)
    return result


class CellGrid:
    """Rectangular grid of raw string cells."""

    def __init__(self, frame: pd.DataFrame, name: str = "<grid>"):
        frame = frame.fillna("").astype(str)
        frame.columns = range(frame.shape[1])
        self._frame = frame.reset_index(drop=True)
        self.name = name

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[object]], name: str = "<grid>") -> "CellGrid":
        """Build a grid from ragged rows; short rows are padded with ""."""
        width = max((len(r) for r in rows), default=0)
        padded = [
            ["" if v is None else str(v) for v in r] + [""] * (width - len(r))
            for r in rows
        ]
        return cls(pd.DataFrame(padded, dtype=str), name=name)

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame

    @property
    def n_rows(self) -> int:
        return self._frame.shape[0]

    @property
    def n_cols(self) -> int:
        return self._frame.shape[1]

    def row(self, index: int) -> list[str]:
        """Raw cells of one row."""
        return self._frame.iloc[index].tolist()

    def cleaned_row(self, index: int) -> list[str]:
        return [clean_cell(c) for c in self.row(index)]

    def iter_rows(self, start: int = 0) -> Iterator[tuple[int, list[str]]]:
        for index in range(start, self.n_rows):
            yield index, self.row(index)

    def records(self, header_index: int, headers: Sequence[str]) -> list[tuple[int, dict[str, str]]]:
        """
        Turn the rows below the header into label -> cleaned value maps.

        Returns (source_row, row) pairs where source_row is the 1-based row
        number in the original file. Blank rows are skipped; cells under an
        empty header label are dropped.
        """
        labels = dedupe_headers(list(headers))
        result: list[tuple[int, dict[str, str]]] = []
        for index, cells in self.iter_rows(header_index + 1):
            if is_blank_row(cells):
                continue
            row = {
                label: clean_cell(cell)
                for label, cell in zip(labels, cells)
                if label
            }
            result.append((index + 1, row))
        return result

    def __repr__(self) -> str:
        return f"CellGrid(name={self.name!r}, rows={self.n_rows}, cols={self.n_cols})"
