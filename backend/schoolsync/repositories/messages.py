"""Message log: the shared chat collection, read state and unread counts."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable, List, Optional, Sequence

from ..constants import MESSAGES_KEY
from ..models import Message, UserProfile, check_subject
from ..storage import DurableStore, encode_entries, read_entries, split_entries
from ..telemetry import emit_event

logger = logging.getLogger(__name__)

MessageListener = Callable[[List[Message]], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


class MessageLog:
    """In-memory copy of the message collection, persisted on every change.

    Writes replace the whole persisted collection with this log's view of it.
    A message written by another session that this log has not reconciled
    yet can therefore be overwritten; the next reconciliation tick in that
    session brings it back only if it still exists in the store.

    Stored entries that do not decode are kept aside and written back ahead
    of the decoded messages on every persist.
    """

    def __init__(self, store: DurableStore, *, clock: Callable[[], int] = _now_ms) -> None:
        self._store = store
        self._clock = clock
        self._messages: List[Message]
        self._undecodable: List[Any]
        self._messages, self._undecodable = split_entries(read_entries(store, MESSAGES_KEY, Message), Message)
        self._listeners: List[MessageListener] = []

    def snapshot(self) -> List[Message]:
        return [message.model_copy() for message in self._messages]

    def subscribe(self, listener: MessageListener) -> Callable[[], None]:
        """Register ``listener`` for change notifications; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def send(self, sender: str, to: str, text: str, subject: Optional[str] = None) -> Message:
        if not text.strip():
            raise ValueError("Cannot send an empty message.")
        check_subject(subject)
        existing_ids = {message.id for message in self._messages}
        message_id = uuid.uuid4().hex
        while message_id in existing_ids:
            message_id = uuid.uuid4().hex
        latest = max((message.timestamp for message in self._messages), default=0)
        message = Message(
            id=message_id,
            sender=sender,
            to=to,
            text=text.strip(),
            timestamp=max(self._clock(), latest),
            read=False,
            subject=subject,
        )
        self._messages.append(message)
        self._persist()
        emit_event("message_sent", message_id=message.id, sender=sender, to=to, subject=subject)
        self._notify()
        return message.model_copy()

    def mark_read(self, predicate: Callable[[Message], bool]) -> int:
        """Flip ``read`` on every unread message matching ``predicate``."""
        flipped = 0
        updated: List[Message] = []
        for message in self._messages:
            if not message.read and predicate(message):
                message = message.model_copy(update={"read": True})
                flipped += 1
            updated.append(message)
        if not flipped:
            return 0
        self._messages = updated
        self._persist()
        emit_event("messages_marked_read", count=flipped)
        self._notify()
        return flipped

    def inbox_for(self, user: UserProfile) -> List[Message]:
        return [message.model_copy() for message in self._messages if message.addressed_to(user)]

    def mark_inbox_read(self, user: UserProfile) -> int:
        return self.mark_read(lambda message: message.addressed_to(user))

    def unread_count_for(self, user: UserProfile) -> int:
        return sum(1 for message in self._messages if not message.read and message.addressed_to(user))

    def conversation(self, first: str, second: str) -> List[Message]:
        """Messages exchanged between two names (either may be the teacher inbox), oldest first."""
        pair = {first, second}
        thread = [message.model_copy() for message in self._messages if {message.sender, message.to} == pair]
        return sorted(thread, key=lambda message: message.timestamp)

    def thread_for(self, name: str) -> List[Message]:
        """Everything ``name`` sent or received, oldest first (a student's chat view)."""
        thread = [message.model_copy() for message in self._messages if name in (message.sender, message.to)]
        return sorted(thread, key=lambda message: message.timestamp)

    def replace_all(self, messages: Sequence[Message], undecodable: Optional[Sequence[Any]] = None) -> bool:
        """Adopt ``messages`` as the in-memory collection.

        Ids already read locally stay read. Returns ``True`` and notifies
        subscribers only when the in-memory collection actually changed.
        ``undecodable`` replaces the raw entries carried through on persist.
        """
        if undecodable is not None:
            self._undecodable = list(undecodable)
        read_ids = {message.id for message in self._messages if message.read}
        incoming: List[Message] = []
        for message in messages:
            if message.id in read_ids and not message.read:
                message = message.model_copy(update={"read": True})
            incoming.append(message)
        if incoming == self._messages:
            return False
        self._messages = incoming
        self._notify()
        return True

    def _persist(self) -> None:
        self._store.set(MESSAGES_KEY, encode_entries([*self._undecodable, *self._messages]))

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # noqa: BLE001
                logger.exception("Message listener failed")


__all__ = ["MessageListener", "MessageLog"]
