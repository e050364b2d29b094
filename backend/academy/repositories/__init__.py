"""Store and identity collaborators used by the guardian migration."""

from ..config import Settings
from ..db.session import get_session_factory
from .base import IdentityService, MemberStore, StoreError
from .sql_store import SqlMemberStore
from .supabase_store import (
    SupabaseIdentityService,
    SupabaseMemberStore,
    create_admin_client,
    create_anon_client,
)


def build_collaborators(settings: Settings) -> tuple[MemberStore, IdentityService]:
    """Wire the store and identity service for the configured persistence mode."""
    client = create_admin_client(settings)
    identities = SupabaseIdentityService(client)
    if settings.persistence_mode == "database":
        return SqlMemberStore(get_session_factory()), identities
    return SupabaseMemberStore(client), identities


__all__ = [
    "IdentityService",
    "MemberStore",
    "SqlMemberStore",
    "StoreError",
    "SupabaseIdentityService",
    "SupabaseMemberStore",
    "build_collaborators",
    "create_admin_client",
    "create_anon_client",
]
