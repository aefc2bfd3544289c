"""Database utilities for the schoolsync key-value store."""

from .models import KeyValueEntryModel
from .session import (
    build_engine,
    dispose_engine,
    get_engine,
    get_session_factory,
    init_schema,
    make_session_factory,
    session_scope,
)

__all__ = [
    "KeyValueEntryModel",
    "build_engine",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
    "init_schema",
    "make_session_factory",
    "session_scope",
]
