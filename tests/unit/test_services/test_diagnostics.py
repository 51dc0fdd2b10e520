"""Tests for the diagnostic event log."""

import pytest

from src.models.event import AuditEvent, EventType
from src.services.diagnostics import (
    format_diagnostic,
    get_recent_diagnostics,
    log_diagnostic,
    parse_diagnostic,
)


@pytest.mark.unit
def test_format_and_parse_round_trip():
    event = AuditEvent(
        type=EventType.SYSTEM,
        message=format_diagnostic("task_command", "rejected", "Rate limit hit"),
        metadata={"kind": "task_command", "status": "rejected"},
    )

    parsed = parse_diagnostic(event)

    assert event.message == "[gateway:task_command:rejected] Rate limit hit"
    assert parsed["kind"] == "task_command"
    assert parsed["status"] == "rejected"
    assert parsed["message"] == "Rate limit hit"
    assert parsed["id"] == event.id


@pytest.mark.unit
def test_parse_ignores_other_system_events():
    assert parse_diagnostic(AuditEvent(type=EventType.SYSTEM, message="Nightly cleanup")) is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_log_diagnostic_records_system_event(store):
    await log_diagnostic(store, "completion_forward", "success", "Completion webhook accepted", {"session_id": "s"})

    event = store.events[0]
    assert event.type == EventType.SYSTEM
    assert event.metadata == {"kind": "completion_forward", "status": "success", "session_id": "s"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_log_diagnostic_never_raises(store):
    store.fail_writes = True

    await log_diagnostic(store, "completion_forward", "failure", "boom")
    await log_diagnostic(None, "completion_forward", "failure", "boom")

    assert store.events == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_recent_diagnostics_newest_first_with_limit(store):
    for n in range(5):
        await log_diagnostic(store, "task_command", "attempt", f"attempt {n}")
    store.events.append(AuditEvent(type=EventType.SYSTEM, message="Nightly cleanup"))
    store.events.append(AuditEvent(type=EventType.TASK_CREATED, message="[gateway:fake:x] not a system event"))

    diagnostics = await get_recent_diagnostics(store, limit=3)

    assert [d["message"] for d in diagnostics] == ["attempt 4", "attempt 3", "attempt 2"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_metadata_cannot_override_kind_or_status(store):
    await log_diagnostic(store, "completion_signal", "skipped", "dup", {"kind": "task_complete", "status": "x"})

    event = store.events[0]
    assert event.message.startswith("[gateway:completion_signal:skipped]")
    assert event.metadata["kind"] == "completion_signal"
    assert event.metadata["status"] == "skipped"
