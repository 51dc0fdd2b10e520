"""Tests for the Mission Control HTTP client."""

import httpx
import pytest

from src.services.mission_control import MissionControlClient
from src.utils.errors import DownstreamError
from tests.utils.helpers import MISSION_CONTROL_TEST_URL
from tests.utils.helpers import RecordingTransport


@pytest.mark.unit
@pytest.mark.asyncio
async def test_forward_completion_posts_payload(mission_control, webhook):
    await mission_control.forward_completion("mission-control-max", "TASK_COMPLETE: done")

    request = webhook.requests[0]
    assert request.method == "POST"
    assert str(request.url) == f"{MISSION_CONTROL_TEST_URL}/api/webhooks/agent-completion"
    assert webhook.json_bodies() == [{"session_id": "mission-control-max", "message": "TASK_COMPLETE: done"}]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_request_dispatch_returns_body(mission_control, webhook):
    result = await mission_control.request_dispatch("01HTASK")

    assert webhook.requests[0].url.path == "/api/tasks/01HTASK/dispatch"
    assert result == {"ok": True}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_non_success_status_raises():
    transport = RecordingTransport(status_code=503, body={"error": "maintenance"})
    client = MissionControlClient(base_url=MISSION_CONTROL_TEST_URL + "/", client=transport.client())

    with pytest.raises(DownstreamError, match="503"):
        await client.forward_completion("mission-control-max", "TASK_COMPLETE: done")
    await client.aclose()

    assert transport.requests[0].url.path == "/api/webhooks/agent-completion"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_transport_error_raises():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = MissionControlClient(
        base_url=MISSION_CONTROL_TEST_URL,
        client=httpx.AsyncClient(transport=httpx.MockTransport(refuse)),
    )

    with pytest.raises(DownstreamError):
        await client.request_dispatch("01HTASK")
    await client.aclose()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_base_url_from_environment(monkeypatch):
    monkeypatch.setenv("MISSION_CONTROL_URL", "https://mc.example.com/")
    client = MissionControlClient()

    assert client.base_url == "https://mc.example.com"
    await client.aclose()
