"""Shared pytest fixtures and configuration."""

import os

import pytest
import pytest_asyncio
from freezegun import freeze_time

from src.models.event import BroadcastEvent
from src.services.gateway_link import GatewayLink
from src.services.lifecycle_engine import TaskLifecycleEngine
from src.services.mission_control import MissionControlClient
from src.services.outbox import Outbox
from src.services.topics import Topic
from src.utils.config import ReviewRoutingConfig
from tests.utils.helpers import (
    COMMAND_CHANNEL_ID,
    COMMAND_SESSION_KEY,
    MISSION_CONTROL_TEST_URL,
    RecordingTransport,
    connect_fake,
)
from tests.utils.memory_store import InMemoryTaskStore

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("LOG_FORMAT", "text")


@pytest.fixture(autouse=True)
def clean_orchestrator_env(monkeypatch):
    """Keep host OPENCLAW_*/ORCH_* settings out of the tests."""
    for name in list(os.environ):
        if name.startswith(("OPENCLAW_", "ORCH_", "MISSION_CONTROL_", "OUTBOX_")):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ENVIRONMENT", "test")


@pytest.fixture
def task_command_env(monkeypatch):
    """Enable chat task commands on the test channel."""
    monkeypatch.setenv("OPENCLAW_TASK_COMMANDS_ENABLED", "true")
    monkeypatch.setenv("OPENCLAW_DISCORD_CHANNEL_ID", COMMAND_CHANNEL_ID)
    monkeypatch.setenv("OPENCLAW_TASK_MIN_INTERVAL_MS", "5000")
    return COMMAND_SESSION_KEY


@pytest.fixture
def store():
    """In-memory task store."""
    return InMemoryTaskStore()


@pytest.fixture
def webhook():
    """Recording HTTP transport standing in for Mission Control."""
    return RecordingTransport()


@pytest_asyncio.fixture
async def mission_control(webhook):
    client = MissionControlClient(base_url=MISSION_CONTROL_TEST_URL, client=webhook.client())
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def outbox(store):
    box = Outbox(store=store, max_size=32)
    yield box
    await box.close()


@pytest.fixture
def broadcasts():
    return Topic[BroadcastEvent]("tasks.broadcast")


@pytest.fixture
def link():
    """Gateway link that never opens a real socket."""
    return GatewayLink(url="ws://127.0.0.1:9", rpc_timeout=0.5, reconnect_delay=0.05)


@pytest.fixture
def fake_ws(link):
    """Connect ``link`` over a recording fake websocket that answers every call with null."""
    return connect_fake(link)


@pytest.fixture
def routing():
    return ReviewRoutingConfig()


@pytest.fixture
def engine(store, outbox, mission_control, broadcasts, routing):
    return TaskLifecycleEngine(
        store,
        outbox=outbox,
        mission_control=mission_control,
        broadcasts=broadcasts,
        routing=routing,
    )


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00", real_asyncio=True) as frozen_time:
        yield frozen_time


@pytest.fixture
def app(store, link, mission_control, outbox):
    """Orchestrator wired to the in-memory store and the unconnected test link."""
    from src.services.orchestrator import Orchestrator
    return Orchestrator(store=store, link=link, mission_control=mission_control, outbox=outbox)
