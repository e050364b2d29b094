"""Database utilities for the academy backend."""

from .session import (
    get_engine,
    get_session_factory,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session_factory",
    "session_scope",
]
