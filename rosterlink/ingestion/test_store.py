"""
In-memory store tests: roster replace, full-replace record batches,
batch validation and the DataFrame view.
"""

from datetime import date

import pytest

from rosterlink.ingestion.matcher import MatchStrategy
from rosterlink.ingestion.normalizers import AttendanceStatus
from rosterlink.ingestion.records import AttendanceRecord
from rosterlink.ingestion.roster import RosterError, Student
from rosterlink.ingestion.store import InMemoryRosterStore, StoreError

ANN = Student(id="s-ann", first_name="Ann", last_name="Lee", district_id="12345678")
BO = Student(id="s-bo", first_name="Bo", last_name="Kim", district_id="87654321")


def attendance(student_id, day, status=AttendanceStatus.PRESENT):
    return AttendanceRecord(
        student_id=student_id,
        matched_by=MatchStrategy.DISTRICT_ID,
        match_confidence=100,
        original_student_id=None,
        source_row=2,
        date=day,
        status=status,
        code="P",
    )


class TestRoster:
    def test_replace_students_clears_records(self):
        store = InMemoryRosterStore([ANN])
        store.replace_records("attendance", [attendance("s-ann", date(2024, 9, 3))])
        store.replace_students([ANN, BO])
        assert len(store.students()) == 2
        assert store.records("attendance") == []

    def test_duplicate_ids_rejected(self):
        store = InMemoryRosterStore([ANN])
        with pytest.raises(RosterError):
            store.replace_students([ANN, ANN])
        assert store.students() == [ANN]

    def test_build_index(self):
        index = InMemoryRosterStore([ANN, BO]).build_index()
        assert index.by_district["87654321"].id == "s-bo"


class TestRecords:
    def test_full_replace(self):
        store = InMemoryRosterStore([ANN, BO])
        store.replace_records("attendance", [
            attendance("s-ann", date(2024, 9, 3)),
            attendance("s-bo", date(2024, 9, 3)),
        ])
        store.replace_records("attendance", [attendance("s-bo", date(2024, 9, 4))])
        records = store.records("attendance")
        assert len(records) == 1
        assert records[0].date == date(2024, 9, 4)

    def test_other_types_untouched(self):
        store = InMemoryRosterStore([ANN])
        store.replace_records("attendance", [attendance("s-ann", date(2024, 9, 3))])
        store.replace_records("grades", [])
        assert len(store.records("attendance")) == 1

    def test_unknown_student_rejects_whole_batch(self):
        store = InMemoryRosterStore([ANN])
        store.replace_records("attendance", [attendance("s-ann", date(2024, 9, 3))])
        with pytest.raises(StoreError):
            store.replace_records("attendance", [
                attendance("s-ann", date(2024, 9, 4)),
                attendance("s-ghost", date(2024, 9, 4)),
            ])
        assert [r.date for r in store.records("attendance")] == [date(2024, 9, 3)]

    def test_records_for_student(self):
        store = InMemoryRosterStore([ANN, BO])
        store.replace_records("attendance", [
            attendance("s-ann", date(2024, 9, 3)),
            attendance("s-bo", date(2024, 9, 3)),
        ])
        assert [r.student_id for r in store.records_for("s-bo")["attendance"]] == ["s-bo"]

    def test_records_frame(self):
        store = InMemoryRosterStore([ANN])
        store.replace_records("attendance", [
            attendance("s-ann", date(2024, 9, 3), AttendanceStatus.ABSENT),
        ])
        frame = store.records_frame("attendance")
        assert list(frame["status"]) == ["absent"]
        assert list(frame["date"]) == ["2024-09-03"]
        assert list(frame["matched_by"]) == ["district-id"]

    def test_empty_frame(self):
        assert InMemoryRosterStore().records_frame("grades").empty

    def test_clear(self):
        store = InMemoryRosterStore([ANN])
        store.replace_records("attendance", [attendance("s-ann", date(2024, 9, 3))])
        store.clear("attendance")
        assert store.records("attendance") == []
