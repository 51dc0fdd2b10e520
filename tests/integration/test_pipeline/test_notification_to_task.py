"""End-to-end tests: Gateway notification to task records over a real websocket."""

import pytest
import pytest_asyncio

from src.models.activity import ActivityType
from src.models.task import TaskStatus, TaskUpdate
from src.services.gateway_link import GatewayLink
from src.services.orchestrator import Orchestrator
from tests.fixtures.gateway_notifications import COMPLETION_NOTIFICATION
from tests.integration.test_pipeline.gateway_server import FakeGateway
from tests.utils.factories import create_agent, create_session, create_task
from tests.utils.helpers import chat_notification, eventually

WEBHOOK_PATH = "/api/webhooks/agent-completion"


@pytest_asyncio.fixture
async def gateway():
    server = await FakeGateway().start()
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def orchestrator(store, mission_control, outbox, gateway):
    link = GatewayLink(url=gateway.url, rpc_timeout=2.0, reconnect_delay=0.05)
    orch = Orchestrator(store=store, link=link, mission_control=mission_control, outbox=outbox)
    await orch.start()
    await eventually(lambda: len(gateway.connections) == 1)
    yield orch
    await orch.stop()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_completion_notification_reaches_webhook(orchestrator, gateway, store, webhook):
    agent = store.add_agent(create_agent(name="Max"))
    store.add_session(create_session(agent, "mission-control-max"))
    task = store.add_task(create_task(status=TaskStatus.IN_PROGRESS, assigned_agent_id=agent.id))

    await gateway.push(COMPLETION_NOTIFICATION)
    await eventually(lambda: webhook.json_bodies(WEBHOOK_PATH))

    activities = await store.list_activities(task.id)
    assert [a.activity_type for a in activities] == [ActivityType.COMPLETED]
    assert len(await store.list_deliverables(task.id)) == 3
    assert webhook.json_bodies(WEBHOOK_PATH)[0]["session_id"] == "mission-control-max"

    await gateway.push(COMPLETION_NOTIFICATION)
    await eventually(lambda: store.diagnostics(kind="completion_signal", status="skipped"))
    await orchestrator.outbox.drain()
    assert len(webhook.json_bodies(WEBHOOK_PATH)) == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_chat_command_creates_task_and_acks(orchestrator, gateway, store, task_command_env):
    await gateway.push(chat_notification(task_command_env, "!task Fix bug | Users cannot log in"))
    await eventually(lambda: gateway.calls("chat.send"))

    task = next(iter(store.tasks.values()))
    assert task.title == "Fix bug"
    assert task.status == TaskStatus.INBOX
    ack = gateway.calls("chat.send")[0]["params"]
    assert ack["sessionKey"] == task_command_env
    assert ack["message"] == f'Task created: "Fix bug" (id: {task.id}, status: inbox).'


@pytest.mark.integration
@pytest.mark.asyncio
async def test_assignment_dispatch_round_trip(orchestrator, gateway, store, webhook):
    agent = store.add_agent(create_agent(name="Dev"))
    store.add_session(create_session(agent, "mission-control-dev"))
    task = store.add_task(create_task(status=TaskStatus.INBOX))

    await orchestrator.engine.update_task(
        task.id, TaskUpdate(status=TaskStatus.ASSIGNED, assigned_agent_id=agent.id)
    )
    await orchestrator.outbox.drain()
    assert [r.url.path for r in webhook.requests] == [f"/api/tasks/{task.id}/dispatch"]

    result = await orchestrator.dispatcher.dispatch_task(task.id)

    assert result["status"] == "in_progress"
    sent = gateway.calls("sessions.send")[0]["params"]
    assert sent["session_id"] == "agent:main:mission-control-dev"
    assert len(store.open_entries(task.id)) == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_link_reconnects_after_drop(orchestrator, gateway):
    await gateway.drop_client()

    await eventually(lambda: len(gateway.connections) == 2 and orchestrator.link.is_connected())

    assert await orchestrator.link.list_sessions() == []


@pytest.mark.integration
@pytest.mark.asyncio
async def test_start_survives_unreachable_gateway(store, mission_control, outbox):
    link = GatewayLink(url="ws://127.0.0.1:9", rpc_timeout=0.5, reconnect_delay=0.05)
    orch = Orchestrator(store=store, link=link, mission_control=mission_control, outbox=outbox)

    await orch.start()
    assert not link.is_connected()
    assert len(link.notifications) == 2

    await orch.stop()
    assert len(link.notifications) == 0
