"""Profile repository: the shared users collection and the current-user pointer."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..constants import CURRENT_USER_KEY, USERS_KEY
from ..models import UserProfile, same_user
from ..storage import DurableStore, encode_entries, encode_model, read_entries, read_model, read_models
from ..telemetry import emit_event

logger = logging.getLogger(__name__)

_ALIASES = {field.alias for field in UserProfile.model_fields.values() if field.alias}


class ProfileRepository:
    """Owns the authoritative profiles collection and the session pointer.

    Saves are whole-object last-writer-wins: two sessions editing the same
    user overwrite each other's fields once both flush.
    """

    def __init__(self, store: DurableStore) -> None:
        self._store = store
        self._current: Optional[UserProfile] = None

    @property
    def current(self) -> Optional[UserProfile]:
        return self._current.model_copy(deep=True) if self._current else None

    def list_profiles(self) -> List[UserProfile]:
        return read_models(self._store, USERS_KEY, UserProfile)

    def load(self, name: str) -> Optional[UserProfile]:
        for profile in self.list_profiles():
            if profile.matches(name):
                return profile
        return None

    def restore(self) -> Optional[UserProfile]:
        """Hydrate the current profile from the persisted pointer."""
        self._current = read_model(self._store, CURRENT_USER_KEY, UserProfile)
        if self._current is not None:
            logger.info("Restored session pointer for %s", self._current.name)
        return self.current

    def set_current(self, profile: UserProfile) -> None:
        self._current = profile.model_copy(deep=True)
        self._save()

    def update(self, changes: Optional[Dict[str, Any]] = None, **fields: Any) -> UserProfile:
        """Shallow-merge defined fields onto the current profile and save it.

        Keys may use either attribute names or stored aliases
        (``total_stars`` / ``totalStars``). ``None`` values are ignored so an
        update can never clear a field.
        """
        if self._current is None:
            raise ValueError("Cannot update a profile without a current user.")
        partial = {**(changes or {}), **fields}
        defined = {key: value for key, value in partial.items() if value is not None}
        if not defined:
            return self.current  # type: ignore[return-value]
        merged = {**self._current.model_dump(by_alias=True), **_to_aliases(defined)}
        self._current = UserProfile.model_validate(merged)
        self._save()
        return self.current  # type: ignore[return-value]

    def clear_current(self) -> None:
        if self._current is None:
            return
        logger.info("Clearing session pointer for %s", self._current.name)
        self._current = None
        self._store.remove(CURRENT_USER_KEY)

    def _save(self) -> None:
        assert self._current is not None
        self._store.set(CURRENT_USER_KEY, encode_model(self._current))
        appended = self._merge_into_collection(self._current)
        emit_event("profile_saved", username=self._current.name, appended=appended)

    def _merge_into_collection(self, profile: UserProfile) -> bool:
        """Replace same-name entries with ``profile``; every other entry is written back as read."""
        matched = False
        merged: List[Any] = []
        for entry in read_entries(self._store, USERS_KEY, UserProfile):
            if same_user(_entry_name(entry), profile.name):
                merged.append(profile)
                matched = True
            else:
                merged.append(entry)
        if not matched:
            logger.info("No stored profile matches %s; appending it to the collection", profile.name)
            merged.append(profile)
        self._store.set(USERS_KEY, encode_entries(merged))
        return not matched


def _entry_name(entry: Any) -> str:
    if isinstance(entry, UserProfile):
        return entry.name
    if isinstance(entry, dict) and isinstance(entry.get("name"), str):
        return entry["name"]
    return ""


def _to_aliases(fields: Dict[str, Any]) -> Dict[str, Any]:
    aliased: Dict[str, Any] = {}
    for key, value in fields.items():
        field = UserProfile.model_fields.get(key)
        if field is not None and field.alias:
            aliased[field.alias] = value
        elif field is not None or key in _ALIASES:
            aliased[key] = value
        else:
            raise ValueError(f"Unknown profile field: {key}")
    return aliased


__all__ = ["ProfileRepository"]
