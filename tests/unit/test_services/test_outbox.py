"""Tests for the fire-and-forget outbox."""

import asyncio

import pytest

from src.services.outbox import Outbox
from src.utils.logging import correlation_context, get_correlation_id


@pytest.mark.unit
@pytest.mark.asyncio
async def test_jobs_run_in_submission_order(outbox):
    seen = []

    async def job(n):
        seen.append(n)

    for n in range(3):
        assert outbox.submit("test", lambda n=n: job(n)) is True
    await outbox.drain()

    assert seen == [0, 1, 2]
    assert outbox.processed == 3
    assert outbox.pending() == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_job_is_recorded_and_not_retried(outbox, store):
    attempts = []

    async def flaky():
        attempts.append(1)
        raise RuntimeError("webhook down")

    async def healthy():
        attempts.append(2)

    outbox.submit("completion_forward", flaky, session_id="mission-control-max")
    outbox.submit("completion_forward", healthy)
    await outbox.drain()

    assert attempts == [1, 2]
    assert outbox.failed == 1
    assert outbox.processed == 1
    diagnostics = store.diagnostics(kind="completion_forward", status="failed")
    assert len(diagnostics) == 1
    assert diagnostics[0].metadata["session_id"] == "mission-control-max"
    assert diagnostics[0].message == "[gateway:completion_forward:failed] webhook down"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_full_queue_drops_jobs():
    box = Outbox(max_size=1)

    async def noop():
        return None

    try:
        assert box.submit("test", noop) is True
        assert box.submit("test", noop) is False
        assert box.dropped == 1
        assert box.pending() == 1
        await box.drain()
    finally:
        await box.close()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_job_runs_with_submitter_correlation_id(outbox):
    seen = []

    async def job():
        seen.append(get_correlation_id())

    with correlation_context("req_0123456789ab"):
        outbox.submit("test", job)
    await outbox.drain()

    assert seen == ["req_0123456789ab"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_close_stops_worker():
    box = Outbox(max_size=4)
    started = asyncio.Event()

    async def slow():
        started.set()
        await asyncio.sleep(10)

    box.submit("test", slow)
    await started.wait()
    await box.close()

    assert box.processed == 0
    assert box.failed == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_close_finishes_when_a_job_swallows_the_cancel():
    box = Outbox(max_size=4)
    started = asyncio.Event()

    async def stubborn():
        started.set()
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            pass

    box.submit("test", stubborn)
    await started.wait()
    await asyncio.wait_for(box.close(), timeout=2)

    assert box.processed == 1
    assert box.pending() == 0


@pytest.mark.unit
def test_max_size_from_environment(monkeypatch):
    monkeypatch.setenv("OUTBOX_MAX_SIZE", "7")
    assert Outbox().max_size == 7
