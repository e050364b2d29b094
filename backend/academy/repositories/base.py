"""Collaborator protocols for the member store and the identity service."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

Row = Dict[str, Any]

CANDIDATE_COLUMNS = ("id", "user_id", "first_name", "last_name", "email", "parent_guardian_id")
DEPENDENT_COLUMNS = ("id", "user_id", "first_name", "last_name", "email", "is_child")


class StoreError(RuntimeError):
    """Raised when the relational store or the identity service rejects a call."""


class MemberStore(Protocol):
    """Table-level operations the guardian migration needs from the store.

    Every call commits on its own; there is no transaction spanning calls.
    """

    def list_child_profiles(self) -> List[Row]:
        """Return ``CANDIDATE_COLUMNS`` for every profile with ``is_child = true``."""
        ...

    def count_dependents(self, profile_id: str) -> int:
        """Count profiles pointing at ``profile_id`` as guardian, excluding itself."""
        ...

    def list_dependents(self, profile_id: str) -> List[Row]:
        ...

    def get_profile(self, profile_id: str) -> Optional[Row]:
        ...

    def insert_profile(self, values: Row) -> Row:
        ...

    def update_profile(self, profile_id: str, values: Row) -> None:
        ...

    def select_ids(self, table: str, column: str, value: str) -> List[str]:
        ...

    def reassign(self, table: str, column: str, old_value: str, new_value: str) -> int:
        """Rewrite ``column`` from ``old_value`` to ``new_value``; return rows touched."""
        ...

    def ping(self) -> None:
        ...


class IdentityService(Protocol):
    """Admin operations on the authentication user store."""

    def create_user(self, email: str, password: str, metadata: Row) -> str:
        """Create a pre-confirmed user and return its id."""
        ...

    def delete_user(self, user_id: str) -> None:
        ...

    def get_user_metadata(self, user_id: str) -> Row:
        ...


__all__ = [
    "CANDIDATE_COLUMNS",
    "DEPENDENT_COLUMNS",
    "IdentityService",
    "MemberStore",
    "Row",
    "StoreError",
]
