"""Structured events for migration runs.

Every event carries the id of the run that emitted it, so the per-candidate
events of one batch can be grouped with its summary event in the logs.
"""

from __future__ import annotations

import json
import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, Iterator, List, Optional

from pydantic import BaseModel

logger = logging.getLogger("academy.telemetry")

Listener = Callable[["TelemetryEvent"], None]


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any]
    run_id: Optional[str] = None
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


_listeners: List[Listener] = []
_lock = RLock()
_current_run: ContextVar[Optional[str]] = ContextVar("academy_telemetry_run", default=None)


def register_listener(listener: Listener) -> None:
    with _lock:
        _listeners.append(listener)


def unregister_listener(listener: Listener) -> None:
    with _lock:
        if listener in _listeners:
            _listeners.remove(listener)


@contextmanager
def capture_events() -> Iterator[List[TelemetryEvent]]:
    """Collect the events emitted inside the block."""
    events: List[TelemetryEvent] = []
    register_listener(events.append)
    try:
        yield events
    finally:
        unregister_listener(events.append)


@contextmanager
def telemetry_run(kind: str) -> Iterator[str]:
    """Tag every event emitted inside the block with a fresh run id."""
    run_id = f"{kind}-{uuid.uuid4().hex[:12]}"
    token = _current_run.set(run_id)
    try:
        yield run_id
    finally:
        _current_run.reset(token)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    return value


def emit_event(name: str, **fields: Any) -> TelemetryEvent:
    """Fan an event out to listeners and log it as ``TELEMETRY {json}``.

    ``None`` fields are dropped. A failing listener is logged and skipped.
    """
    payload = {key: _plain(value) for key, value in fields.items() if value is not None}
    event = TelemetryEvent(name=name, payload=payload, run_id=_current_run.get())

    with _lock:
        listeners = list(_listeners)

    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", name)

    record = {"event": name, "run_id": event.run_id, "at": event.emitted_at.isoformat(), **payload}
    logger.info("TELEMETRY %s", json.dumps(record, default=str))
    return event


__all__ = [
    "TelemetryEvent",
    "capture_events",
    "emit_event",
    "register_listener",
    "telemetry_run",
    "unregister_listener",
]
