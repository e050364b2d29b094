from __future__ import annotations

import pytest

from academy.repositories.base import StoreError


def test_reassign_rewrites_matching_rows_only(db, store) -> None:
    db.profile("p1", "u1")
    db.profile("p2", "u2")
    db.attendance("p1", count=2)
    db.attendance("p2")

    assert store.reassign("attendance_records", "student_id", "p1", "p2") == 2
    assert db.attendance_students() == ["p2", "p2", "p2"]


def test_select_ids_and_unknown_table(db, store) -> None:
    db.membership("u1")
    db.membership("u1", status="cancelled")

    assert len(store.select_ids("memberships", "user_id", "u1")) == 2
    assert store.select_ids("memberships", "user_id", "u2") == []
    with pytest.raises(StoreError):
        store.reassign("waitlist", "user_id", "u1", "u2")


def test_update_missing_profile_raises(store) -> None:
    with pytest.raises(StoreError, match="not found"):
        store.update_profile("ghost", {"is_child": False})


def test_get_profile_returns_full_row(db, store) -> None:
    db.profile("p1", "u1", first_name="Yusuf", medical_info="asthma")

    row = store.get_profile("p1")

    assert row["first_name"] == "Yusuf"
    assert row["medical_info"] == "asthma"
    assert "created_at" in row
    assert store.get_profile("ghost") is None
    store.ping()
