from __future__ import annotations

import logging
from datetime import date

from academy.guardian_migration import MigrationStage
from academy.logging_config import configure_logging
from academy.telemetry import capture_events, emit_event, register_listener, telemetry_run, unregister_listener


def test_emit_event_normalises_payload() -> None:
    with capture_events() as events:
        emit_event("sample", stage=MigrationStage.RELINKED, on=date(2024, 3, 1), skipped=None, count=2)

    assert events[0].payload == {"stage": "relinked", "on": "2024-03-01", "count": 2}
    assert events[0].run_id is None


def test_failing_listener_does_not_stop_others() -> None:
    def broken(event) -> None:
        raise ValueError("listener down")

    register_listener(broken)
    try:
        with capture_events() as events:
            emit_event("sample")
    finally:
        unregister_listener(broken)

    assert [event.name for event in events] == ["sample"]


def test_run_id_is_reset_after_block() -> None:
    with capture_events() as events:
        with telemetry_run("nightly") as run_id:
            emit_event("inside")
        emit_event("outside")

    assert run_id.startswith("nightly-")
    assert events[0].run_id == run_id
    assert events[1].run_id is None


def test_configure_logging_levels(monkeypatch) -> None:
    monkeypatch.setenv("ACADEMY_LOG_LEVEL", "info")
    monkeypatch.setenv("GUARDIAN_MIGRATION_LOG_LEVEL", "debug")
    monkeypatch.delenv("ACADEMY_TELEMETRY_LOG_LEVEL", raising=False)
    monkeypatch.delenv("ACADEMY_DEBUG_HTTP", raising=False)

    configure_logging()

    assert logging.getLogger("academy.guardian_migration").level == logging.DEBUG
    assert logging.getLogger("academy.telemetry").level == logging.INFO
    assert logging.getLogger("httpx").level == logging.WARNING

    monkeypatch.setenv("ACADEMY_DEBUG_HTTP", "1")
    configure_logging()

    assert logging.getLogger("httpx").level == logging.DEBUG
    assert logging.getLogger("postgrest").level == logging.DEBUG
