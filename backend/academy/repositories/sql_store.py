"""SQLAlchemy-backed member store for direct database connections."""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import Table, func, inspect, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..db.base import Base
from ..db.models import ProfileModel
from ..db.session import session_scope
from .base import CANDIDATE_COLUMNS, DEPENDENT_COLUMNS, Row, StoreError


def _row(model: ProfileModel, columns: Optional[tuple[str, ...]] = None) -> Row:
    names = columns or tuple(attr.key for attr in inspect(ProfileModel).column_attrs)
    return {name: getattr(model, name) for name in names}


class SqlMemberStore:
    """Member store speaking to Postgres (or sqlite in tests) through SQLAlchemy."""

    def __init__(self, session_factory: Optional[sessionmaker[Session]] = None) -> None:
        self._session_factory = session_factory

    def _table(self, name: str) -> Table:
        try:
            return Base.metadata.tables[name]
        except KeyError as exc:
            raise StoreError(f"Unknown table: {name}") from exc

    def list_child_profiles(self) -> List[Row]:
        try:
            with session_scope(self._session_factory, commit=False) as session:
                models = session.execute(
                    select(ProfileModel).where(ProfileModel.is_child.is_(True)).order_by(ProfileModel.created_at)
                ).scalars()
                return [_row(model, CANDIDATE_COLUMNS) for model in models]
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to list child profiles: {exc}") from exc

    def count_dependents(self, profile_id: str) -> int:
        try:
            with session_scope(self._session_factory, commit=False) as session:
                count = session.execute(
                    select(func.count())
                    .select_from(ProfileModel)
                    .where(ProfileModel.parent_guardian_id == profile_id, ProfileModel.id != profile_id)
                ).scalar_one()
                return int(count)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to count dependents of {profile_id}: {exc}") from exc

    def list_dependents(self, profile_id: str) -> List[Row]:
        try:
            with session_scope(self._session_factory, commit=False) as session:
                models = session.execute(
                    select(ProfileModel).where(
                        ProfileModel.parent_guardian_id == profile_id, ProfileModel.id != profile_id
                    )
                ).scalars()
                return [_row(model, DEPENDENT_COLUMNS) for model in models]
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to list dependents of {profile_id}: {exc}") from exc

    def get_profile(self, profile_id: str) -> Optional[Row]:
        try:
            with session_scope(self._session_factory, commit=False) as session:
                model = session.get(ProfileModel, profile_id)
                return _row(model) if model is not None else None
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to load profile {profile_id}: {exc}") from exc

    def insert_profile(self, values: Row) -> Row:
        try:
            with session_scope(self._session_factory) as session:
                model = ProfileModel(**values)
                session.add(model)
                session.flush()
                return _row(model)
        except (SQLAlchemyError, TypeError) as exc:
            raise StoreError(f"Failed to insert profile: {exc}") from exc

    def update_profile(self, profile_id: str, values: Row) -> None:
        try:
            with session_scope(self._session_factory) as session:
                result = session.execute(
                    update(ProfileModel).where(ProfileModel.id == profile_id).values(**values)
                )
                if result.rowcount == 0:
                    raise StoreError(f"Profile {profile_id} not found")
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to update profile {profile_id}: {exc}") from exc

    def select_ids(self, table: str, column: str, value: str) -> List[str]:
        target = self._table(table)
        try:
            with session_scope(self._session_factory, commit=False) as session:
                rows = session.execute(select(target.c.id).where(target.c[column] == value))
                return [str(row[0]) for row in rows]
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to query {table}.{column}: {exc}") from exc

    def reassign(self, table: str, column: str, old_value: str, new_value: str) -> int:
        target = self._table(table)
        try:
            with session_scope(self._session_factory) as session:
                result = session.execute(
                    update(target).where(target.c[column] == old_value).values({column: new_value})
                )
                return int(result.rowcount or 0)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to reassign {table}.{column}: {exc}") from exc

    def ping(self) -> None:
        try:
            with session_scope(self._session_factory, commit=False) as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise StoreError(f"Database is unreachable: {exc}") from exc


__all__ = ["SqlMemberStore"]
