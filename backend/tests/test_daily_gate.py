"""Once-per-day survey gate."""

from __future__ import annotations

from datetime import date
from pathlib import Path

from schoolsync.constants import survey_key
from schoolsync.daily_gate import DailyGate, today_string
from schoolsync.models import UserProfile
from schoolsync.storage import JsonFileStore


def _profile(name: str = "Ana", role: str = "student") -> UserProfile:
    return UserProfile(name=name, avatar="🐼", course="1ro Básico", role=role)


def test_today_string_matches_marker_format() -> None:
    assert today_string(date(2026, 10, 19)) == "Mon Oct 19 2026"


def test_gate_opens_once_per_day(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path / "store.json")
    clock = {"today": "Mon Oct 19 2026"}
    gate = DailyGate(store, today=lambda: clock["today"])
    ana = _profile()

    assert gate.evaluate(ana) is True
    gate.complete("feliz")
    assert gate.must_show_survey is False
    assert store.get(survey_key("Ana")) == "Mon Oct 19 2026"

    later_same_day = DailyGate(store, today=lambda: clock["today"])
    assert later_same_day.evaluate(ana) is False

    clock["today"] = "Tue Oct 20 2026"
    assert later_same_day.evaluate(ana) is True


def test_markers_are_per_user(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path / "store.json")
    gate = DailyGate(store, today=lambda: "Mon Oct 19 2026")

    gate.evaluate(_profile("Ana"))
    gate.complete("cansada")

    assert gate.evaluate(_profile("Beto")) is True


def test_teachers_never_see_the_gate(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path / "store.json")
    gate = DailyGate(store, today=lambda: "Mon Oct 19 2026")

    assert gate.evaluate(_profile("T1", role="teacher")) is False
    gate.complete("feliz")

    assert store.get(survey_key("T1")) is None
