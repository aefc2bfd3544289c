"""Once-per-day mood survey gate for students."""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional

from .constants import survey_key
from .models import UserProfile
from .storage import DurableStore
from .telemetry import emit_event

logger = logging.getLogger(__name__)


def today_string(today: Optional[date] = None) -> str:
    """Local calendar day in the marker format, e.g. ``Mon Oct 19 2026``."""
    return (today or date.today()).strftime("%a %b %d %Y")


class DailyGate:
    """Decides whether the survey overlay must be shown before other content.

    The marker is compared by exact string equality with today, so the gate
    re-opens on its own once the calendar day changes.
    """

    def __init__(self, store: DurableStore, *, today: Callable[[], str] = today_string) -> None:
        self._store = store
        self._today = today
        self._username: Optional[str] = None
        self._must_show = False

    @property
    def must_show_survey(self) -> bool:
        return self._must_show

    def evaluate(self, profile: UserProfile) -> bool:
        if not profile.is_student:
            self._username = None
            self._must_show = False
            return False
        self._username = profile.name
        self._must_show = self._store.get(survey_key(profile.name)) != self._today()
        if self._must_show:
            emit_event("survey_required", username=profile.name)
        return self._must_show

    def complete(self, emotion: str) -> None:
        if self._username is None:
            logger.debug("Ignoring survey completion without an evaluated student")
            return
        self._store.set(survey_key(self._username), self._today())
        self._must_show = False
        emit_event("survey_completed", username=self._username, emotion=emotion)

    def reset(self) -> None:
        self._username = None
        self._must_show = False


__all__ = ["DailyGate", "today_string"]
