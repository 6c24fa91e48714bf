"""Tests for the SQLite profile and attendance storage."""

import sqlite3
from datetime import date, datetime
from unittest.mock import patch

import pytest

from core.attendance import BlobProfileStore
from core.errors import AttendanceCommitError, ProfileUnavailableError
from core.storage import BlobReference
from database import DatabaseManager


@pytest.fixture
def db(tmp_path):
    return DatabaseManager(tmp_path / "nested" / "attendance.db")


def test_add_student_rejects_duplicate_id(db) -> None:
    assert db.add_student("S1", "Alice") is True
    assert db.add_student("S1", "Someone Else") is False
    assert db.get_student("S1")["full_name"] == "Alice"


def test_reference_key_roundtrip(db) -> None:
    db.add_student("S1", "Alice")
    assert db.get_reference_key("S1") is None

    db.set_reference_key("S1", BlobReference(key="abc.jpg", size=10, content_type="image/jpeg"))

    student = db.get_student("S1")
    assert db.get_reference_key("S1") == "abc.jpg"
    assert student["reference_size"] == 10
    assert student["reference_content_type"] == "image/jpeg"


def test_set_reference_for_unknown_student_raises(db) -> None:
    with pytest.raises(KeyError):
        db.set_reference_key("ghost", BlobReference(key="x.jpg", size=1, content_type="image/jpeg"))


def test_inactive_student_has_no_reference(db) -> None:
    db.add_student("S1", "Alice")
    db.set_reference_key("S1", BlobReference(key="abc.jpg", size=10, content_type="image/jpeg"))

    assert db.update_student("S1", is_active=0) is True

    assert db.get_reference_key("S1") is None
    assert db.get_all_students() == []
    assert len(db.get_all_students(active_only=False)) == 1


def test_commit_ignores_identical_claim(db) -> None:
    stamp = datetime(2024, 5, 1, 9, 30, 15)

    db.commit("S1", "C1", stamp)
    db.commit("S1", "C1", stamp)
    db.commit("S1", "C1", datetime(2024, 5, 1, 9, 31))

    assert len(db.get_attendance_records(student_id="S1")) == 2


def test_records_filters_and_order(db) -> None:
    db.add_student("S1", "Alice")
    db.commit("S1", "C1", datetime(2024, 5, 1, 9, 0))
    db.commit("S1", "C2", datetime(2024, 5, 2, 9, 0))
    db.commit("S2", "C1", datetime(2024, 5, 3, 9, 0))

    everything = db.get_attendance_records()
    assert [r["recorded_at"][:10] for r in everything] == ["2024-05-03", "2024-05-02", "2024-05-01"]

    by_class = db.get_attendance_records(class_id="C1")
    assert {r["student_id"] for r in by_class} == {"S1", "S2"}

    window = db.get_attendance_records(start_date=date(2024, 5, 2), end_date="2024-05-02")
    assert [(r["student_id"], r["class_id"]) for r in window] == [("S1", "C2")]
    assert db.get_attendance_records(student_id="S1", class_id="C1")[0]["full_name"] == "Alice"


def test_commit_wraps_sqlite_errors(db) -> None:
    with patch("database.sqlite3.connect", side_effect=sqlite3.OperationalError("database is locked")):
        with pytest.raises(AttendanceCommitError) as excinfo:
            db.commit("S1", "C1", datetime.now())

    assert "database is locked" in str(excinfo.value)


def test_blob_profile_store_resolves_through_database(db, blob_store, red_image) -> None:
    profiles = BlobProfileStore(db, blob_store)
    db.add_student("S1", "Alice")
    reference = blob_store.store(red_image.to_bytes(), content_type="image/jpeg")
    profiles.save_reference("S1", reference)

    image = profiles.get_reference_image("S1")

    assert image.size == red_image.size
    assert profiles.get_reference_image("nobody") is None


def test_blob_profile_store_missing_blob_is_not_found(db, blob_store) -> None:
    profiles = BlobProfileStore(db, blob_store)
    db.add_student("S1", "Alice")
    db.set_reference_key("S1", BlobReference(key="deleted.jpg", size=1, content_type="image/jpeg"))

    assert profiles.get_reference_image("S1") is None


def test_blob_profile_store_corrupt_blob_is_unavailable(db, blob_store) -> None:
    profiles = BlobProfileStore(db, blob_store)
    db.add_student("S1", "Alice")
    profiles.save_reference("S1", blob_store.store(b"not really a jpeg", content_type="image/jpeg"))

    with pytest.raises(ProfileUnavailableError):
        profiles.get_reference_image("S1")
