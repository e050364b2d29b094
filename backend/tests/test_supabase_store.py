from __future__ import annotations

from datetime import date
from types import SimpleNamespace
from typing import Any, List, Tuple

import pytest
from postgrest.exceptions import APIError

from academy.repositories.base import StoreError
from academy.repositories.supabase_store import SupabaseIdentityService, SupabaseMemberStore


class _Query:
    def __init__(self, table: str, calls: List[Tuple[str, str, tuple, dict]], response: Any) -> None:
        self._table = table
        self._calls = calls
        self._response = response

    def __getattr__(self, name: str):
        def method(*args: Any, **kwargs: Any) -> "_Query":
            self._calls.append((self._table, name, args, kwargs))
            return self

        return method

    def execute(self):
        if isinstance(self._response, Exception):
            raise self._response
        return self._response


class _FakeClient:
    def __init__(self, response: Any = None) -> None:
        self.calls: List[Tuple[str, str, tuple, dict]] = []
        self.response = response if response is not None else SimpleNamespace(data=[], count=None)
        self.admin_calls: List[Tuple[str, tuple]] = []
        admin = SimpleNamespace(
            create_user=lambda attrs: self._admin("create_user", attrs, SimpleNamespace(user=SimpleNamespace(id="new-user"))),
            delete_user=lambda user_id: self._admin("delete_user", user_id, None),
            get_user_by_id=lambda user_id: self._admin(
                "get_user_by_id",
                user_id,
                SimpleNamespace(user=SimpleNamespace(user_metadata={"first_name": "Imran"})),
            ),
        )
        self.auth = SimpleNamespace(admin=admin)

    def _admin(self, name: str, argument: Any, result: Any) -> Any:
        self.admin_calls.append((name, (argument,)))
        return result

    def table(self, name: str) -> _Query:
        return _Query(name, self.calls, self.response)


def test_count_dependents_excludes_self() -> None:
    client = _FakeClient(SimpleNamespace(data=[], count=2))

    assert SupabaseMemberStore(client).count_dependents("p1") == 2

    assert ("profiles", "select", ("id",), {"count": "exact", "head": True}) in client.calls
    assert ("profiles", "eq", ("parent_guardian_id", "p1"), {}) in client.calls
    assert ("profiles", "neq", ("id", "p1"), {}) in client.calls


def test_list_child_profiles_filters_on_flag() -> None:
    rows = [{"id": "p1", "user_id": "u1"}]
    client = _FakeClient(SimpleNamespace(data=rows, count=None))

    assert SupabaseMemberStore(client).list_child_profiles() == rows
    assert ("profiles", "eq", ("is_child", True), {}) in client.calls


def test_api_errors_become_store_errors() -> None:
    client = _FakeClient(APIError({"message": "permission denied for table profiles"}))

    with pytest.raises(StoreError, match="permission denied"):
        SupabaseMemberStore(client).list_child_profiles()


def test_insert_profile_serialises_dates() -> None:
    client = _FakeClient(SimpleNamespace(data=[{"id": "p3"}], count=None))

    row = SupabaseMemberStore(client).insert_profile({"first_name": "Yusuf", "date_of_birth": date(2012, 5, 4)})

    assert row == {"id": "p3"}
    inserted = next(args[0] for table, name, args, _ in client.calls if name == "insert")
    assert inserted["date_of_birth"] == "2012-05-04"


def test_update_profile_requires_matching_row() -> None:
    client = _FakeClient(SimpleNamespace(data=[], count=None))

    with pytest.raises(StoreError, match="not found"):
        SupabaseMemberStore(client).update_profile("p1", {"is_child": False})


def test_reassign_counts_returned_rows() -> None:
    client = _FakeClient(SimpleNamespace(data=[{"id": "a"}, {"id": "b"}], count=None))

    moved = SupabaseMemberStore(client).reassign("attendance_records", "student_id", "p1", "p3")

    assert moved == 2
    assert ("attendance_records", "update", ({"student_id": "p3"},), {}) in client.calls
    assert ("attendance_records", "eq", ("student_id", "p1"), {}) in client.calls


def test_identity_service_admin_calls() -> None:
    client = _FakeClient()
    identities = SupabaseIdentityService(client)

    user_id = identities.create_user("child-1-abc@child.sport-of-kings.local", "pw", {"is_child": True})
    identities.delete_user(user_id)
    metadata = identities.get_user_metadata("u1")

    assert user_id == "new-user"
    created = client.admin_calls[0][1][0]
    assert created["email_confirm"] is True
    assert created["user_metadata"] == {"is_child": True}
    assert client.admin_calls[1] == ("delete_user", ("new-user",))
    assert metadata == {"first_name": "Imran"}
