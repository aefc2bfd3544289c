from __future__ import annotations

from datetime import date
from pathlib import Path

from schoolsync.daily_gate import DailyGate
from schoolsync.models import UserProfile
from schoolsync.storage import JsonFileStore
from schoolsync.telemetry import TelemetryEvent, clear_listeners, emit_event, listening, register_listener


def test_failing_listener_does_not_break_emitter() -> None:
    received: list[TelemetryEvent] = []

    def explode(event: TelemetryEvent) -> None:
        raise RuntimeError("listener bug")

    register_listener(explode)
    register_listener(received.append)
    try:
        emit_event("survey_completed", username="Ana", day=date(2026, 10, 19))
    finally:
        clear_listeners()

    assert received == [TelemetryEvent(name="survey_completed", payload={"username": "Ana", "day": "2026-10-19"})]


def test_listening_filters_by_name_and_detaches(tmp_path: Path) -> None:
    gate = DailyGate(JsonFileStore(tmp_path / "store.json"), today=lambda: "Mon Oct 19 2026")
    ana = UserProfile(name="Ana", course="3ro Básico", role="student")

    with listening("survey_required", "survey_completed") as events:
        emit_event("session_started", username="Ana", role="student")
        gate.evaluate(ana)
        gate.complete("feliz")

    emit_event("survey_required", username="Beto")

    assert [event.name for event in events] == ["survey_required", "survey_completed"]
    assert events[1].payload == {"username": "Ana", "emotion": "feliz"}
