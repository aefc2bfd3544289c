"""Periodic reconciliation of the in-memory message log with the durable store."""

from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .constants import MESSAGES_KEY
from .models import Message
from .repositories.messages import MessageLog
from .scheduling import add_interval_job, remove_job
from .storage import DurableStore, StoreDecodeError, decode_entries, split_entries
from .telemetry import emit_event

logger = logging.getLogger(__name__)

RECONCILE_JOB_ID = "reconcile-messages"


class ReconciliationLoop:
    """Polls the store and republishes persisted messages when they diverge.

    Stands in for a live feed: a reply written by another session shows up
    here within one tick period.
    """

    def __init__(self, store: DurableStore, message_log: MessageLog, *, interval: float) -> None:
        self._store = store
        self._message_log = message_log
        self._interval = interval
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def start(self, scheduler: AsyncIOScheduler) -> None:
        if self._scheduler is scheduler:
            return
        self._scheduler = scheduler
        add_interval_job(scheduler, RECONCILE_JOB_ID, self.tick, self._interval)

    def stop(self) -> None:
        remove_job(self._scheduler, RECONCILE_JOB_ID)
        self._scheduler = None

    async def tick(self) -> bool:
        return self.reconcile()

    def reconcile(self) -> bool:
        """Run one divergence check; returns ``True`` when memory was replaced."""
        raw = self._store.get(MESSAGES_KEY)
        if raw is None:
            return False
        try:
            entries = decode_entries(MESSAGES_KEY, raw, Message)
        except StoreDecodeError as exc:
            logger.warning("Skipping reconciliation tick: %s", exc)
            return False
        persisted, undecodable = split_entries(entries, Message)
        if not self._message_log.replace_all(persisted, undecodable):
            return False
        emit_event("messages_reconciled", count=len(persisted))
        return True


__all__ = ["RECONCILE_JOB_ID", "ReconciliationLoop"]
