"""Durable key-value store adapters and typed decode helpers.

Every component persists through a :class:`DurableStore`. Values are raw
strings; the adapters know nothing about profiles or messages. Decoding lives
in the helpers at the bottom of this module so that a malformed payload is
absorbed into an empty/absent value instead of crashing the reader. Collections
are decoded per entry: one bad entry is skipped by readers and written back
verbatim by writers, never dropped.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from .config import Settings, get_settings
from .db.models import KeyValueEntryModel
from .db.session import build_engine, get_engine, get_session_factory, init_schema, make_session_factory, session_scope

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class StoreDecodeError(ValueError):
    """A persisted value is absent or cannot be decoded into the expected shape."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Stored value for '{key}' is unusable: {reason}")
        self.key = key
        self.reason = reason


class DurableStore(Protocol):
    """Synchronous key-value medium whose writes outlive the process."""

    def get(self, key: str) -> Optional[str]:  # pragma: no cover - protocol definition
        ...

    def set(self, key: str, value: str) -> None:  # pragma: no cover - protocol definition
        ...

    def remove(self, key: str) -> None:  # pragma: no cover - protocol definition
        ...

    def keys(self) -> List[str]:  # pragma: no cover - protocol definition
        ...


class JsonFileStore:
    """Store backed by a single JSON document mapping keys to raw strings.

    The document is re-read on every access so that writes made by another
    process (another open portal window) become visible to polling readers.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def _load_unlocked(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, json.JSONDecodeError):
            logger.exception("Failed to read key-value store at %s; treating it as empty", self._path)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Key-value store at %s is not a mapping; treating it as empty", self._path)
            return {}
        return {str(key): value for key, value in raw.items() if isinstance(value, str)}

    def _write_unlocked(self, entries: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        # Readers in other processes must never see a half-written document.
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(entries, handle, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self._path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)
            raise

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load_unlocked().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            entries = self._load_unlocked()
            entries[key] = value
            self._write_unlocked(entries)

    def remove(self, key: str) -> None:
        with self._lock:
            entries = self._load_unlocked()
            if entries.pop(key, None) is not None:
                self._write_unlocked(entries)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._load_unlocked())


class DatabaseStore:
    """Store backed by the ``kv_entries`` table of any SQLAlchemy database."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str, *, echo: bool = False) -> "DatabaseStore":
        engine = build_engine(database_url, echo=echo)
        init_schema(engine)
        return cls(make_session_factory(engine))

    def get(self, key: str) -> Optional[str]:
        with session_scope(self._session_factory, commit=False) as session:
            entry = session.get(KeyValueEntryModel, key)
            return entry.value if entry is not None else None

    def set(self, key: str, value: str) -> None:
        with session_scope(self._session_factory) as session:
            entry = session.get(KeyValueEntryModel, key)
            if entry is None:
                session.add(KeyValueEntryModel(key=key, value=value))
            elif entry.value != value:
                entry.value = value

    def remove(self, key: str) -> None:
        with session_scope(self._session_factory) as session:
            session.execute(delete(KeyValueEntryModel).where(KeyValueEntryModel.key == key))

    def keys(self) -> List[str]:
        with session_scope(self._session_factory, commit=False) as session:
            stmt = select(KeyValueEntryModel.key).order_by(KeyValueEntryModel.key)
            return list(session.execute(stmt).scalars())


def build_store(settings: Optional[Settings] = None) -> DurableStore:
    """Create the store selected by ``SCHOOLSYNC_PERSISTENCE_MODE``."""
    settings = settings or get_settings()
    if settings.persistence_mode == "database":
        logger.info("Using database key-value store at %s", settings.database_url)
        get_engine(settings)
        return DatabaseStore(get_session_factory())
    logger.info("Using file key-value store at %s", settings.store_path)
    return JsonFileStore(settings.store_path)


def decode_model(key: str, raw: Optional[str], model: Type[ModelT]) -> ModelT:
    if raw is None:
        raise StoreDecodeError(key, "absent")
    try:
        return model.model_validate_json(raw)
    except ValidationError as exc:
        raise StoreDecodeError(key, str(exc)) from exc


def decode_entries(key: str, raw: Optional[str], model: Type[ModelT]) -> List[Any]:
    """Decode a collection entry by entry.

    Entries that fail validation are logged and kept in place as their raw
    JSON value, so a writer can carry them through untouched. Only an absent
    value or a payload that is not a JSON list raises.
    """
    if raw is None:
        raise StoreDecodeError(key, "absent")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise StoreDecodeError(key, str(exc)) from exc
    if not isinstance(payload, list):
        raise StoreDecodeError(key, f"expected a list, found {type(payload).__name__}")
    entries: List[Any] = []
    for index, entry in enumerate(payload):
        try:
            entries.append(model.model_validate(entry))
        except ValidationError as exc:
            logger.warning(
                "Skipping invalid entry %d in '%s' (%d validation errors)", index, key, exc.error_count()
            )
            entries.append(entry)
    return entries


def split_entries(entries: Iterable[Any], model: Type[ModelT]) -> Tuple[List[ModelT], List[Any]]:
    """Partition decoded entries into models and raw leftovers."""
    decoded: List[ModelT] = []
    leftovers: List[Any] = []
    for entry in entries:
        if isinstance(entry, model):
            decoded.append(entry)
        else:
            leftovers.append(entry)
    return decoded, leftovers


def decode_models(key: str, raw: Optional[str], model: Type[ModelT]) -> List[ModelT]:
    decoded, _ = split_entries(decode_entries(key, raw, model), model)
    return decoded


def read_model(store: DurableStore, key: str, model: Type[ModelT]) -> Optional[ModelT]:
    """Read a single model, absorbing absent or malformed values into ``None``."""
    raw = store.get(key)
    if raw is None:
        return None
    try:
        return decode_model(key, raw, model)
    except StoreDecodeError as exc:
        logger.warning("%s; falling back to absent", exc)
        return None


def read_entries(store: DurableStore, key: str, model: Type[ModelT]) -> List[Any]:
    """Read a collection keeping undecodable entries raw; malformed values read as ``[]``."""
    raw = store.get(key)
    if raw is None:
        return []
    try:
        return decode_entries(key, raw, model)
    except StoreDecodeError as exc:
        logger.warning("%s; falling back to an empty collection", exc)
        return []


def read_models(store: DurableStore, key: str, model: Type[ModelT]) -> List[ModelT]:
    """Read the decodable part of a model collection."""
    decoded, _ = split_entries(read_entries(store, key, model), model)
    return decoded


def encode_model(value: BaseModel) -> str:
    return value.model_dump_json(by_alias=True)


def encode_entries(entries: Iterable[Any]) -> str:
    """Encode models by alias; raw entries are written back exactly as read."""
    payload: Sequence[Any] = [
        entry.model_dump(mode="json", by_alias=True) if isinstance(entry, BaseModel) else entry
        for entry in entries
    ]
    return json.dumps(payload, ensure_ascii=False)


def encode_models(values: Iterable[BaseModel]) -> str:
    return encode_entries(values)


__all__ = [
    "DatabaseStore",
    "DurableStore",
    "JsonFileStore",
    "StoreDecodeError",
    "build_store",
    "decode_entries",
    "decode_model",
    "decode_models",
    "encode_entries",
    "encode_model",
    "encode_models",
    "read_entries",
    "read_model",
    "read_models",
    "split_entries",
]
