"""Engine and session helpers for the database-backed store."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from ..config import Settings, get_settings
from .base import Base
from .models import KeyValueEntryModel  # noqa: F401  (registers kv_entries on Base.metadata)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker[Session]] = None


def build_engine(database_url: str, *, echo: bool = False) -> Engine:
    kwargs: dict[str, object] = {
        "echo": echo,
        "future": True,
        "pool_pre_ping": True,
    }
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(database_url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def init_schema(engine: Engine) -> None:
    Base.metadata.create_all(engine)


def get_engine(settings: Optional[Settings] = None) -> Engine:
    global _engine, _session_factory
    if _engine is None:
        settings = settings or get_settings()
        _engine = build_engine(settings.database_url, echo=settings.database_echo)
        init_schema(_engine)
        _session_factory = make_session_factory(_engine)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    global _session_factory
    if _session_factory is None:
        get_engine()
    assert _session_factory is not None
    return _session_factory


@contextmanager
def session_scope(
    factory: Optional[sessionmaker[Session]] = None, *, commit: bool = True
) -> Generator[Session, None, None]:
    session = (factory or get_session_factory())()
    try:
        yield session
        if commit:
            session.commit()
    except Exception:  # noqa: BLE001
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


__all__ = [
    "build_engine",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
    "init_schema",
    "make_session_factory",
    "session_scope",
]
