"""Session lifecycle: one coordinator owns the login-scoped timers and state."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .config import Settings, get_settings
from .daily_gate import DailyGate, today_string
from .models import Message, UserProfile
from .notifications import NotificationScheduler
from .reconciliation import ReconciliationLoop
from .repositories.messages import MessageLog
from .repositories.profiles import ProfileRepository
from .scheduling import create_scheduler, shutdown_scheduler
from .storage import DurableStore, build_store
from .telemetry import emit_event

logger = logging.getLogger(__name__)

UnreadListener = Callable[[int], None]


class PortalSession:
    """Everything scoped to one logged-in user: timers, unread count and survey gate."""

    def __init__(
        self,
        profiles: ProfileRepository,
        messages: MessageLog,
        store: DurableStore,
        settings: Settings,
        *,
        today: Callable[[], str] = today_string,
    ) -> None:
        self._profiles = profiles
        self._messages = messages
        self.reconciliation = ReconciliationLoop(store, messages, interval=settings.reconcile_interval)
        self.notifications = NotificationScheduler(
            lambda: profiles.current,
            messages,
            interval=settings.notification_interval,
            ttl=settings.notification_ttl,
        )
        self.gate = DailyGate(store, today=today)
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._unread_listeners: List[UnreadListener] = []
        self._unread = 0
        self._started = False
        self._disposed = False

    @property
    def profile(self) -> Optional[UserProfile]:
        return self._profiles.current

    @property
    def scheduler(self) -> Optional[AsyncIOScheduler]:
        return self._scheduler

    @property
    def active(self) -> bool:
        return self._started and not self._disposed

    @property
    def unread_count(self) -> int:
        return self._unread

    def subscribe_unread(self, listener: UnreadListener) -> Callable[[], None]:
        self._unread_listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._unread_listeners:
                self._unread_listeners.remove(listener)

        return _unsubscribe

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        if self._started or self._disposed:
            return
        profile = self._profiles.current
        if profile is None:
            raise ValueError("Cannot start a session without a current user.")
        self._started = True
        self._scheduler = create_scheduler(loop)
        self._scheduler.start()
        self._unsubscribe = self._messages.subscribe(self._on_messages_changed)
        # The log may be stale after a logout; adopt the store before counting.
        self.reconciliation.reconcile()
        self._recompute_unread()
        self.reconciliation.start(self._scheduler)
        if profile.is_student:
            self.notifications.start(self._scheduler)
        self.gate.evaluate(profile)
        emit_event("session_started", username=profile.name, role=profile.role)

    def dispose(self) -> None:
        if not self._started or self._disposed:
            return
        self._disposed = True
        self.reconciliation.stop()
        self.notifications.stop()
        shutdown_scheduler(self._scheduler)
        self._scheduler = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.gate.reset()
        profile = self._profiles.current
        emit_event("session_ended", username=profile.name if profile else None)

    def _on_messages_changed(self, _messages: List[Message]) -> None:
        self._recompute_unread()

    def _recompute_unread(self) -> None:
        profile = self._profiles.current
        unread = self._messages.unread_count_for(profile) if profile else 0
        if unread == self._unread:
            return
        self._unread = unread
        for listener in list(self._unread_listeners):
            try:
                listener(unread)
            except Exception:  # noqa: BLE001
                logger.exception("Unread listener failed")


class SessionCoordinator:
    """Top-level owner of the store, the repositories and the active session.

    Create it once per open portal window. ``login`` creates a session,
    ``logout`` disposes it and clears the pointer, ``close`` disposes it but
    keeps the pointer so that ``resume`` can pick the user up again later.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[DurableStore] = None,
        *,
        today: Callable[[], str] = today_string,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store if store is not None else build_store(self.settings)
        self.profiles = ProfileRepository(self.store)
        self.messages = MessageLog(self.store)
        self._today = today
        self._session: Optional[PortalSession] = None

    @property
    def session(self) -> Optional[PortalSession]:
        return self._session

    @property
    def current_user(self) -> Optional[UserProfile]:
        return self.profiles.current

    def login(self, profile: UserProfile, loop: Optional[asyncio.AbstractEventLoop] = None) -> PortalSession:
        self._end_session()
        self.profiles.set_current(profile)
        session = PortalSession(self.profiles, self.messages, self.store, self.settings, today=self._today)
        self._session = session
        session.start(loop)
        logger.info("Session started for %s (%s)", profile.name, profile.role)
        return session

    def resume(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> Optional[PortalSession]:
        profile = self.profiles.restore()
        if profile is None:
            return None
        return self.login(profile, loop)

    def update_profile(self, changes: Optional[Dict[str, Any]] = None, **fields: Any) -> UserProfile:
        return self.profiles.update(changes, **fields)

    def logout(self) -> None:
        self._end_session()
        self.profiles.clear_current()

    def close(self) -> None:
        self._end_session()

    def _end_session(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            session.dispose()


__all__ = ["PortalSession", "SessionCoordinator", "UnreadListener"]
