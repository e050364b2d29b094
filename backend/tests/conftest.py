from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List

import pytest

from academy.db.base import Base
from academy.db.models import AttendanceRecordModel, ClassBookingModel, MembershipModel, ProfileModel
from academy.db.session import build_engine, build_session_factory, session_scope
from academy.repositories.base import StoreError
from academy.repositories.sql_store import SqlMemberStore

_BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeIdentityService:
    def __init__(self) -> None:
        self.users: Dict[str, Dict[str, Any]] = {}
        self.deleted: List[str] = []
        self.fail_create = False
        self.fail_lookup = False

    def add_user(self, user_id: str, **metadata: Any) -> None:
        self.users[user_id] = {"email": f"{user_id}@example.com", "user_metadata": metadata}

    def create_user(self, email: str, password: str, metadata: Dict[str, Any]) -> str:
        if self.fail_create:
            raise StoreError("email rate limit exceeded")
        user_id = str(uuid.uuid4())
        self.users[user_id] = {"email": email, "password": password, "user_metadata": dict(metadata)}
        return user_id

    def delete_user(self, user_id: str) -> None:
        self.deleted.append(user_id)
        self.users.pop(user_id, None)

    def get_user_metadata(self, user_id: str) -> Dict[str, Any]:
        if self.fail_lookup:
            raise StoreError("auth service unavailable")
        return dict(self.users.get(user_id, {}).get("user_metadata", {}))


class FlakyStore(SqlMemberStore):
    """SqlMemberStore that raises StoreError for the operations named in ``fail_on``.

    ``reassign`` failures are keyed as ``reassign:<table>``.
    """

    def __init__(self, session_factory, fail_on: Iterable[str] = ()) -> None:
        super().__init__(session_factory)
        self.fail_on = set(fail_on)
        self.calls: List[str] = []

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise StoreError(f"{name} unavailable")

    def list_child_profiles(self):
        self._check("list_child_profiles")
        return super().list_child_profiles()

    def count_dependents(self, profile_id):
        self._check("count_dependents")
        return super().count_dependents(profile_id)

    def get_profile(self, profile_id):
        self._check("get_profile")
        return super().get_profile(profile_id)

    def insert_profile(self, values):
        self._check("insert_profile")
        return super().insert_profile(values)

    def update_profile(self, profile_id, values):
        self._check("update_profile")
        return super().update_profile(profile_id, values)

    def select_ids(self, table, column, value):
        self._check(f"select_ids:{table}")
        return super().select_ids(table, column, value)

    def reassign(self, table, column, old_value, new_value):
        self._check(f"reassign:{table}")
        return super().reassign(table, column, old_value, new_value)


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    try:
        yield build_session_factory(engine)
    finally:
        engine.dispose()


@pytest.fixture
def store(session_factory) -> SqlMemberStore:
    return SqlMemberStore(session_factory)


@pytest.fixture
def identities() -> FakeIdentityService:
    return FakeIdentityService()


@pytest.fixture
def flaky_store(session_factory):
    def factory(*fail_on: str) -> FlakyStore:
        return FlakyStore(session_factory, fail_on)

    return factory


@pytest.fixture
def db(session_factory):
    return MemberFixtures(session_factory)


class MemberFixtures:
    """Seeds and reads member rows directly through the ORM."""

    def __init__(self, session_factory) -> None:
        self._factory = session_factory
        self._sequence = 0

    def profile(self, profile_id: str, user_id: str, **fields: Any) -> str:
        self._sequence += 1
        values: Dict[str, Any] = {
            "first_name": "Test",
            "last_name": "Member",
            "email": f"{user_id}@example.com",
            "created_at": _BASE_TIME + timedelta(minutes=self._sequence),
        }
        values.update(fields)
        with session_scope(self._factory) as session:
            session.add(ProfileModel(id=profile_id, user_id=user_id, **values))
        return profile_id

    def attendance(self, student_id: str, count: int = 1) -> None:
        with session_scope(self._factory) as session:
            for _ in range(count):
                session.add(AttendanceRecordModel(student_id=student_id))

    def booking(self, student_id: str) -> None:
        with session_scope(self._factory) as session:
            session.add(ClassBookingModel(student_id=student_id, booking_date=date(2024, 3, 1)))

    def membership(self, user_id: str, status: str = "active") -> None:
        with session_scope(self._factory) as session:
            session.add(MembershipModel(user_id=user_id, status=status))

    def get(self, profile_id: str) -> ProfileModel | None:
        with session_scope(self._factory, commit=False) as session:
            return session.get(ProfileModel, profile_id)

    def children_of(self, profile_id: str) -> List[ProfileModel]:
        with session_scope(self._factory, commit=False) as session:
            return list(
                session.query(ProfileModel).filter(ProfileModel.parent_guardian_id == profile_id).all()
            )

    def profile_count(self) -> int:
        with session_scope(self._factory, commit=False) as session:
            return session.query(ProfileModel).count()

    def attendance_students(self) -> List[str]:
        with session_scope(self._factory, commit=False) as session:
            return [row.student_id for row in session.query(AttendanceRecordModel).all()]

    def booking_students(self) -> List[str]:
        with session_scope(self._factory, commit=False) as session:
            return [row.student_id for row in session.query(ClassBookingModel).all()]

    def membership_users(self) -> List[str]:
        with session_scope(self._factory, commit=False) as session:
            return [row.user_id for row in session.query(MembershipModel).all()]
