"""
Cell grid and header locator tests.

Covers cell cleaning (formula wrapping, quotes, BOM), ragged rows,
header de-duplication, row numbering, and the header scan window.
"""

import pandas as pd
import pytest

from rosterlink.ingestion.grid import CellGrid, clean_cell, dedupe_headers, strip_formula
from rosterlink.ingestion.header_locator import (
    ASSESSMENT_HEADER,
    ATTENDANCE_HEADER,
    DISCIPLINE_HEADER,
    GRADES_HEADER,
    HeaderNotFoundError,
    HeaderPredicate,
    locate_header,
)


# ---------------------------------------------------------------------------
# Cell cleaning
# ---------------------------------------------------------------------------

class TestCleanCell:
    def test_formula_wrapping_removed(self):
        assert strip_formula('="20107825"') == "20107825"
        assert clean_cell('="20107825"') == "20107825"

    def test_unquoted_formula_removed(self):
        assert clean_cell("=5") == "5"

    def test_wrapping_quotes_removed(self):
        assert clean_cell('"Lee, Ann"') == "Lee, Ann"
        assert clean_cell("'Scale Score'") == "Scale Score"

    def test_whitespace_trimmed(self):
        assert clean_cell("  Student ID \t") == "Student ID"

    def test_bom_and_zero_width_removed(self):
        assert clean_cell("\ufeffStudent ID") == "Student ID"
        assert clean_cell("Stu\u200bdent") == "Student"

    def test_none_and_nan_are_empty(self):
        assert clean_cell(None) == ""
        assert clean_cell(float("nan")) == ""

    def test_inner_quote_kept(self):
        assert clean_cell("O'Brien") == "O'Brien"


class TestDedupeHeaders:
    def test_repeats_get_suffixes(self):
        headers = ["Category", "Benchmark", "Category", "Benchmark", "Category"]
        assert dedupe_headers(headers) == [
            "Category", "Benchmark", "Category.1", "Benchmark.1", "Category.2",
        ]

    def test_empty_labels_untouched(self):
        assert dedupe_headers(["", "A", ""]) == ["", "A", ""]


# ---------------------------------------------------------------------------
# Grid
# ---------------------------------------------------------------------------

class TestCellGrid:
    def test_ragged_rows_padded(self):
        grid = CellGrid.from_rows([["a"], ["b", "c", "d"], []])
        assert grid.n_rows == 3
        assert grid.n_cols == 3
        assert grid.row(0) == ["a", "", ""]

    def test_frame_nan_becomes_empty(self):
        grid = CellGrid(pd.DataFrame([["x", None], [float("nan"), "y"]]))
        assert grid.row(0) == ["x", ""]
        assert grid.row(1) == ["", "y"]

    def test_records_use_file_row_numbers(self):
        """Row numbers are 1-based positions in the original file."""
        grid = CellGrid.from_rows([
            ["Report title"],
            ["Student ID", "Status"],
            ["12345678", "P"],
            ["", ""],
            ["87654321", "A"],
        ])
        rows = grid.records(1, grid.cleaned_row(1))
        assert [n for n, _ in rows] == [3, 5]
        assert rows[0][1] == {"Student ID": "12345678", "Status": "P"}

    def test_records_drop_unlabeled_cells(self):
        grid = CellGrid.from_rows([["Student ID", ""], ["12345678", "stray"]])
        rows = grid.records(0, grid.cleaned_row(0))
        assert rows[0][1] == {"Student ID": "12345678"}

    def test_records_clean_values(self):
        grid = CellGrid.from_rows([["Student ID"], ['="12345678"']])
        assert grid.records(0, ["Student ID"])[0][1]["Student ID"] == "12345678"


# ---------------------------------------------------------------------------
# Header locator
# ---------------------------------------------------------------------------

class TestLocateHeader:
    def test_blank_then_title_then_header(self):
        """Row 0 blank, row 1 title, row 2 header -> index 2."""
        grid = CellGrid.from_rows([
            ["", ""],
            ["FAST Grade 5 Reading Results", ""],
            ["Student ID", "Scale Score"],
            ["FL000012345678", "312"],
        ])
        location = locate_header(grid, ASSESSMENT_HEADER)
        assert location.row_index == 2
        assert location.headers == ["Student ID", "Scale Score"]

    def test_headers_are_cleaned(self):
        grid = CellGrid.from_rows([['="Student ID"', ' "Scale Score" ']])
        location = locate_header(grid, ASSESSMENT_HEADER)
        assert location.headers == ["Student ID", "Scale Score"]

    def test_first_qualifying_row_wins(self):
        grid = CellGrid.from_rows([
            ["Student", "Incident Date"],
            ["Student", "Incident Date"],
        ])
        assert locate_header(grid, DISCIPLINE_HEADER).row_index == 0

    def test_single_cell_title_does_not_qualify(self):
        grid = CellGrid.from_rows([
            ["Student Attendance Report"],
            ["Student ID", "8/15", "8/16"],
        ])
        assert locate_header(grid, ATTENDANCE_HEADER).row_index == 1

    def test_scan_window_capped_at_twenty(self):
        rows = [["filler", "row"]] * 25 + [["Student", "Course"]]
        grid = CellGrid.from_rows(rows)
        with pytest.raises(HeaderNotFoundError) as exc_info:
            locate_header(grid, GRADES_HEADER, max_scan_rows=100)
        assert exc_info.value.scanned_rows == 20

    def test_header_on_last_row_of_window(self):
        rows = [["filler", "row"]] * 19 + [["Student", "Course"]]
        grid = CellGrid.from_rows(rows)
        assert locate_header(grid, GRADES_HEADER).row_index == 19

    def test_smaller_window_respected(self):
        rows = [["filler", "row"]] * 5 + [["Student", "Course"]]
        grid = CellGrid.from_rows(rows)
        with pytest.raises(HeaderNotFoundError):
            locate_header(grid, GRADES_HEADER, max_scan_rows=5)

    def test_plain_callable_predicate(self):
        def has_course(cells):
            return "Course" in cells
        grid = CellGrid.from_rows([["x"], ["Course", "Teacher"]])
        assert locate_header(grid, has_course).row_index == 1

    def test_custom_predicate(self):
        predicate = HeaderPredicate(name="custom", patterns=(r"^fleid$", r"lexile"))
        grid = CellGrid.from_rows([["a", "b"], ["FLEID", "Lexile Measure"]])
        assert locate_header(grid, predicate).row_index == 1
