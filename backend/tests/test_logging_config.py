from __future__ import annotations

import logging

from schoolsync.logging_config import configure_logging


def test_scheduler_debug_flag(monkeypatch) -> None:
    monkeypatch.setenv("SCHOOLSYNC_LOG_LEVEL", "warning")
    monkeypatch.setenv("SCHOOLSYNC_DEBUG_SCHEDULER", "1")

    configure_logging()

    assert logging.getLogger().level == logging.WARNING
    assert logging.getLogger("apscheduler").level == logging.DEBUG


def test_job_execution_logs_are_quiet_by_default(monkeypatch) -> None:
    monkeypatch.delenv("SCHOOLSYNC_DEBUG_SCHEDULER", raising=False)
    monkeypatch.setenv("SCHOOLSYNC_LOG_LEVEL", "INFO")

    configure_logging()

    assert logging.getLogger("apscheduler.executors").level == logging.WARNING
