"""Supabase (PostgREST + GoTrue admin) adapters for the member store."""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, TypeVar

import httpx
from postgrest.exceptions import APIError
from supabase import AuthError, Client, ClientOptions, create_client

from ..config import Settings
from .base import CANDIDATE_COLUMNS, DEPENDENT_COLUMNS, Row, StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STORE_ERRORS = (APIError, AuthError, httpx.HTTPError)


def create_admin_client(settings: Settings) -> Client:
    """Build a service-role client; sessions are never persisted or refreshed."""
    if not settings.supabase_url or not settings.supabase_service_role_key:
        raise StoreError("NEXT_PUBLIC_SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must both be set.")
    return create_client(
        settings.supabase_url,
        settings.supabase_service_role_key,
        options=ClientOptions(auto_refresh_token=False, persist_session=False),
    )


def create_anon_client(settings: Settings) -> Optional[Client]:
    if not settings.supabase_url or not settings.supabase_anon_key:
        return None
    return create_client(
        settings.supabase_url,
        settings.supabase_anon_key,
        options=ClientOptions(auto_refresh_token=False, persist_session=False),
    )


def _call(description: str, func: Callable[[], T]) -> T:
    try:
        return func()
    except _STORE_ERRORS as exc:
        message = getattr(exc, "message", None) or str(exc)
        raise StoreError(f"{description}: {message}") from exc


class SupabaseMemberStore:
    """Member store backed by the hosted PostgREST API."""

    def __init__(self, client: Client) -> None:
        self._client = client

    def list_child_profiles(self) -> List[Row]:
        response = _call(
            "Failed to list child profiles",
            lambda: self._client.table("profiles")
            .select(", ".join(CANDIDATE_COLUMNS))
            .eq("is_child", True)
            .execute(),
        )
        return list(response.data or [])

    def count_dependents(self, profile_id: str) -> int:
        response = _call(
            f"Failed to count dependents of {profile_id}",
            lambda: self._client.table("profiles")
            .select("id", count="exact", head=True)
            .eq("parent_guardian_id", profile_id)
            .neq("id", profile_id)
            .execute(),
        )
        return int(response.count or 0)

    def list_dependents(self, profile_id: str) -> List[Row]:
        response = _call(
            f"Failed to list dependents of {profile_id}",
            lambda: self._client.table("profiles")
            .select(", ".join(DEPENDENT_COLUMNS))
            .eq("parent_guardian_id", profile_id)
            .neq("id", profile_id)
            .execute(),
        )
        return list(response.data or [])

    def get_profile(self, profile_id: str) -> Optional[Row]:
        response = _call(
            f"Failed to load profile {profile_id}",
            lambda: self._client.table("profiles").select("*").eq("id", profile_id).limit(1).execute(),
        )
        rows = response.data or []
        return rows[0] if rows else None

    def insert_profile(self, values: Row) -> Row:
        response = _call(
            "Failed to insert profile",
            lambda: self._client.table("profiles").insert(_jsonable(values)).execute(),
        )
        rows = response.data or []
        if not rows:
            raise StoreError("Failed to insert profile: no row returned")
        return rows[0]

    def update_profile(self, profile_id: str, values: Row) -> None:
        response = _call(
            f"Failed to update profile {profile_id}",
            lambda: self._client.table("profiles").update(_jsonable(values)).eq("id", profile_id).execute(),
        )
        if not response.data:
            raise StoreError(f"Profile {profile_id} not found")

    def select_ids(self, table: str, column: str, value: str) -> List[str]:
        response = _call(
            f"Failed to query {table}.{column}",
            lambda: self._client.table(table).select("id").eq(column, value).execute(),
        )
        return [str(row["id"]) for row in response.data or []]

    def reassign(self, table: str, column: str, old_value: str, new_value: str) -> int:
        response = _call(
            f"Failed to reassign {table}.{column}",
            lambda: self._client.table(table).update({column: new_value}).eq(column, old_value).execute(),
        )
        return len(response.data or [])

    def ping(self) -> None:
        _call(
            "Store is unreachable",
            lambda: self._client.table("profiles").select("id").limit(1).execute(),
        )


class SupabaseIdentityService:
    """Identity admin operations over the GoTrue admin API."""

    def __init__(self, client: Client) -> None:
        self._client = client

    def create_user(self, email: str, password: str, metadata: Row) -> str:
        response = _call(
            "Auth creation failed",
            lambda: self._client.auth.admin.create_user(
                {
                    "email": email,
                    "password": password,
                    "email_confirm": True,
                    "user_metadata": metadata,
                }
            ),
        )
        user = getattr(response, "user", None)
        if user is None:
            raise StoreError("Auth creation failed: no user returned")
        return str(user.id)

    def delete_user(self, user_id: str) -> None:
        _call(f"Failed to delete user {user_id}", lambda: self._client.auth.admin.delete_user(user_id))

    def get_user_metadata(self, user_id: str) -> Row:
        response = _call(
            f"Failed to look up user {user_id}",
            lambda: self._client.auth.admin.get_user_by_id(user_id),
        )
        user = getattr(response, "user", None)
        return dict(getattr(user, "user_metadata", None) or {})


def _jsonable(values: Row) -> dict[str, Any]:
    """PostgREST takes JSON; dates and datetimes go over as ISO strings."""
    return {key: value.isoformat() if hasattr(value, "isoformat") else value for key, value in values.items()}


__all__ = [
    "SupabaseIdentityService",
    "SupabaseMemberStore",
    "create_admin_client",
    "create_anon_client",
]
