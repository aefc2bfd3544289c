"""Activity events for portal sessions.

Components report what they did through :func:`emit_event`; each event is
logged as one ``TELEMETRY {json}`` line on ``schoolsync.telemetry`` and handed
to any in-process listeners. Events currently emitted:

* ``session_started`` / ``session_ended``: a portal window logged a user in or out.
* ``profile_saved``: the current profile was written; ``appended`` is true for a new user.
* ``message_sent`` / ``messages_marked_read``: the message log changed locally.
* ``messages_reconciled``: another window's writes were adopted from the store.
* ``notification_shown`` / ``notification_dismissed``: the student reminder slot changed.
* ``survey_required`` / ``survey_completed``: the daily mood survey gate.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from threading import RLock
from typing import Any, Callable, Dict, Iterator, List

logger = logging.getLogger("schoolsync.telemetry")


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any]


Listener = Callable[[TelemetryEvent], None]

_listeners: List[Listener] = []
_lock = RLock()


def register_listener(listener: Listener) -> None:
    """Receive every event emitted after this call, in emission order.

    Listeners run synchronously on the emitting thread, which for session
    timers is the event loop, so they must not block.
    """
    with _lock:
        _listeners.append(listener)


def unregister_listener(listener: Listener) -> None:
    with _lock:
        if listener in _listeners:
            _listeners.remove(listener)


def clear_listeners() -> None:
    with _lock:
        _listeners.clear()


@contextmanager
def listening(*names: str) -> Iterator[List[TelemetryEvent]]:
    """Collect events while the block runs, optionally only those in ``names``."""
    captured: List[TelemetryEvent] = []

    def _collect(event: TelemetryEvent) -> None:
        if not names or event.name in names:
            captured.append(event)

    register_listener(_collect)
    try:
        yield captured
    finally:
        unregister_listener(_collect)


def emit_event(name: str, **fields: Any) -> None:
    """Log ``name`` with ``fields`` and notify listeners; a failing listener is only logged."""
    payload = {key: _plain(value) for key, value in fields.items()}
    event = TelemetryEvent(name=name, payload=payload)

    with _lock:
        listeners = list(_listeners)

    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", name)

    if logger.isEnabledFor(logging.INFO):
        logger.info("TELEMETRY %s", json.dumps({"event": name, **payload}, default=str, ensure_ascii=False))


def _plain(value: Any) -> Any:
    # Survey markers and timestamps travel as ISO strings.
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


__all__ = [
    "Listener",
    "TelemetryEvent",
    "clear_listeners",
    "emit_event",
    "listening",
    "register_listener",
    "unregister_listener",
]
