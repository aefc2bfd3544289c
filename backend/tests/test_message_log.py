"""Message log sends, read state and unread counts."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List

import pytest

from schoolsync.constants import MESSAGES_KEY, TEACHER_INBOX
from schoolsync.models import Message, UserProfile
from schoolsync.repositories.messages import MessageLog
from schoolsync.storage import JsonFileStore, encode_models


def _profile(name: str, role: str = "student") -> UserProfile:
    return UserProfile(name=name, avatar="🐢", course="2do Básico", role=role)


def _message(message_id: str, to: str, *, read: bool = False, sender: str = "Ana", timestamp: int = 1) -> Message:
    return Message(id=message_id, sender=sender, to=to, text=f"msg {message_id}", timestamp=timestamp, read=read)


@pytest.fixture()
def store(tmp_path: Path) -> JsonFileStore:
    return JsonFileStore(tmp_path / "store.json")


def test_unread_counts_per_role(store: JsonFileStore) -> None:
    store.set(
        MESSAGES_KEY,
        encode_models(
            [
                _message("1", "T1"),
                _message("2", TEACHER_INBOX),
                _message("3", "Ana", read=True, sender="T1"),
            ]
        ),
    )
    log = MessageLog(store)

    assert log.unread_count_for(_profile("T1", role="teacher")) == 2
    assert log.unread_count_for(_profile("Ana")) == 0
    assert log.unread_count_for(_profile("T2")) == 0


def test_send_persists_unread_message(store: JsonFileStore) -> None:
    log = MessageLog(store, clock=lambda: 1_000)

    sent = log.send("Ana", TEACHER_INBOX, "  ¿Me ayuda con fracciones?  ", subject="Matemáticas")

    assert sent.read is False
    assert sent.text == "¿Me ayuda con fracciones?"
    assert sent.timestamp == 1_000
    stored = json.loads(store.get(MESSAGES_KEY) or "[]")
    assert stored[0]["id"] == sent.id
    assert stored[0]["from"] == "Ana"
    assert stored[0]["subject"] == "Matemáticas"


def test_send_generates_unique_ids_and_ordered_timestamps(store: JsonFileStore) -> None:
    ticks = iter([500, 400, 600])
    log = MessageLog(store, clock=lambda: next(ticks))

    sent = [log.send("T1", "Ana", f"respuesta {index}") for index in range(3)]

    assert len({message.id for message in sent}) == 3
    assert [message.timestamp for message in sent] == [500, 500, 600]


def test_send_rejects_empty_text(store: JsonFileStore) -> None:
    with pytest.raises(ValueError):
        MessageLog(store).send("Ana", TEACHER_INBOX, "   ")
    assert store.get(MESSAGES_KEY) is None


def test_mark_read_is_idempotent(store: JsonFileStore) -> None:
    log = MessageLog(store)
    log.send("T1", "Ana", "hola")
    log.send("T1", "Ana", "¿cómo vas?")
    log.send("Ana", TEACHER_INBOX, "bien")
    ana = _profile("Ana")

    assert log.mark_read(lambda message: message.to == "Ana") == 2
    once = store.get(MESSAGES_KEY)
    assert log.mark_read(lambda message: message.to == "Ana") == 0

    assert store.get(MESSAGES_KEY) == once
    assert log.unread_count_for(ana) == 0
    assert log.unread_count_for(_profile("T1", role="teacher")) == 1


def test_mark_inbox_read_covers_teacher_token(store: JsonFileStore) -> None:
    log = MessageLog(store)
    log.send("Ana", TEACHER_INBOX, "profe?")
    log.send("Beto", "T1", "hola T1")
    log.send("Beto", "T2", "hola T2")
    teacher = _profile("T1", role="teacher")

    assert len(log.inbox_for(teacher)) == 2
    assert log.mark_inbox_read(teacher) == 2
    assert log.unread_count_for(_profile("T2", role="teacher")) == 1


def test_conversation_and_thread_are_ordered(store: JsonFileStore) -> None:
    store.set(
        MESSAGES_KEY,
        encode_models(
            [
                _message("b", "T1", sender="Ana", timestamp=20),
                _message("a", "Ana", sender="T1", timestamp=10),
                _message("c", TEACHER_INBOX, sender="Ana", timestamp=30),
                _message("d", "T1", sender="Beto", timestamp=5),
            ]
        ),
    )
    log = MessageLog(store)

    assert [message.id for message in log.conversation("Ana", "T1")] == ["a", "b"]
    assert [message.id for message in log.conversation("Ana", TEACHER_INBOX)] == ["c"]
    assert [message.id for message in log.thread_for("Ana")] == ["a", "b", "c"]


def test_replace_all_keeps_read_monotonic(store: JsonFileStore) -> None:
    log = MessageLog(store)
    sent = log.send("T1", "Ana", "hola")
    log.mark_read(lambda message: message.id == sent.id)
    stale = [sent.model_copy(update={"read": False})]

    assert log.replace_all(stale) is False
    assert log.snapshot()[0].read is True


def test_listeners_receive_snapshots(store: JsonFileStore) -> None:
    log = MessageLog(store)
    seen: List[int] = []
    unsubscribe = log.subscribe(lambda messages: seen.append(len(messages)))

    log.send("Ana", TEACHER_INBOX, "uno")
    log.replace_all(log.snapshot())
    unsubscribe()
    log.send("Ana", TEACHER_INBOX, "dos")

    assert seen == [1]


def test_send_keeps_stored_messages_with_unknown_subject(store: JsonFileStore) -> None:
    stored = json.loads(encode_models([_message("1", "T1"), _message("2", "T1", timestamp=2)]))
    stored[1]["subject"] = "Música"
    store.set(MESSAGES_KEY, json.dumps(stored))
    log = MessageLog(store, clock=lambda: 5)

    assert [message.subject for message in log.snapshot()] == [None, "Música"]
    sent = log.send("Ana", "T1", "¿Hay tarea?")

    persisted = json.loads(store.get(MESSAGES_KEY) or "[]")
    assert [entry["id"] for entry in persisted] == ["1", "2", sent.id]
    assert persisted[1]["subject"] == "Música"


def test_send_carries_undecodable_entries_through(store: JsonFileStore) -> None:
    broken = {"id": "legacy", "from": "Ana", "text": "sin destinatario"}
    store.set(MESSAGES_KEY, json.dumps([broken, _message("1", "T1").model_dump(mode="json", by_alias=True)]))
    log = MessageLog(store)

    assert [message.id for message in log.snapshot()] == ["1"]
    log.mark_read(lambda message: message.id == "1")
    log.send("T1", "Ana", "respuesta")

    persisted = json.loads(store.get(MESSAGES_KEY) or "[]")
    assert persisted[0] == broken
    assert persisted[1]["id"] == "1"
    assert persisted[1]["read"] is True
    assert len(persisted) == 3


def test_send_rejects_unknown_subject(store: JsonFileStore) -> None:
    log = MessageLog(store)

    with pytest.raises(ValueError):
        log.send("Ana", TEACHER_INBOX, "hola", subject="Música")

    assert store.get(MESSAGES_KEY) is None
    assert log.snapshot() == []
