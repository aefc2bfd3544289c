"""Ambient student notifications: selection, display slot and auto-dismiss."""

from __future__ import annotations

import logging
from typing import Callable, List, Literal, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import BaseModel

from .models import UserProfile
from .repositories.messages import MessageLog
from .scheduling import add_delayed_job, add_interval_job, remove_job
from .telemetry import emit_event

logger = logging.getLogger(__name__)

NOTIFY_JOB_ID = "student-notifications"
DISMISS_JOB_ID = "notification-dismiss"
PROGRESS_GOAL = 50

NotificationKind = Literal["new_message", "keep_going", "streak"]
View = Literal["chat", "dashboard"]
NotificationListener = Callable[[Optional["Notification"]], None]


class Notification(BaseModel):
    kind: NotificationKind
    title: str
    message: str
    icon: str
    unread_count: Optional[int] = None
    streak: Optional[int] = None

    @property
    def target_view(self) -> View:
        return "chat" if self.kind == "new_message" else "dashboard"


def select_notification(profile: UserProfile, unread: int) -> Notification:
    """Pick the single notification to show, by priority."""
    if unread > 0:
        return Notification(
            kind="new_message",
            title="¡Mensaje nuevo!",
            message=f"Tienes {unread} respuesta(s) de tu profe.",
            icon="✉️",
            unread_count=unread,
        )
    if profile.daily_progress < PROGRESS_GOAL:
        return Notification(
            kind="keep_going",
            title="¡Casi lo logras!",
            message="Te falta poco para tu meta del día.",
            icon="🚀",
        )
    return Notification(
        kind="streak",
        title="¡Hora de aprender!",
        message=f"¡No rompas tu racha de {profile.streak} días!",
        icon="🦅",
        streak=profile.streak,
    )


class NotificationScheduler:
    """Holds the single visible notification slot for a student session."""

    def __init__(
        self,
        profile_source: Callable[[], Optional[UserProfile]],
        message_log: MessageLog,
        *,
        interval: float,
        ttl: float,
    ) -> None:
        self._profile_source = profile_source
        self._message_log = message_log
        self._interval = interval
        self._ttl = ttl
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._active: Optional[Notification] = None
        self._listeners: List[NotificationListener] = []

    @property
    def active(self) -> Optional[Notification]:
        return self._active

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def start(self, scheduler: AsyncIOScheduler) -> None:
        if self._scheduler is scheduler:
            return
        self._scheduler = scheduler
        add_interval_job(scheduler, NOTIFY_JOB_ID, self.tick, self._interval)

    def stop(self) -> None:
        remove_job(self._scheduler, NOTIFY_JOB_ID)
        self.dismiss()
        self._scheduler = None

    async def tick(self) -> Optional[Notification]:
        profile = self._profile_source()
        if profile is None or not profile.is_student:
            return None
        notification = select_notification(profile, self._message_log.unread_count_for(profile))
        self._show(notification, profile.name)
        return notification

    def dismiss(self) -> None:
        remove_job(self._scheduler, DISMISS_JOB_ID)
        if self._active is None:
            return
        dismissed, self._active = self._active, None
        emit_event("notification_dismissed", kind=dismissed.kind)
        self._publish()

    def activate(self) -> Optional[View]:
        """Handle a click on the visible notification; returns the view to open."""
        if self._active is None:
            return None
        view = self._active.target_view
        self.dismiss()
        return view

    async def _expire(self) -> None:
        self.dismiss()

    def _show(self, notification: Notification, username: str) -> None:
        self._active = notification
        if self._scheduler is not None:
            add_delayed_job(self._scheduler, DISMISS_JOB_ID, self._expire, self._ttl)
        emit_event(
            "notification_shown",
            username=username,
            kind=notification.kind,
            unread_count=notification.unread_count,
        )
        self._publish()

    def _publish(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._active)
            except Exception:  # noqa: BLE001
                logger.exception("Notification listener failed")


__all__ = [
    "DISMISS_JOB_ID",
    "NOTIFY_JOB_ID",
    "Notification",
    "NotificationScheduler",
    "select_notification",
]
