"""Test data factories using Faker."""

from datetime import timedelta
from typing import Optional

from faker import Faker

from src.models.agent import Agent
from src.models.gateway import GatewaySession, SessionKind, SessionStatus
from src.models.task import Task, TaskPriority, TaskStatus
from src.utils.ids import utc_now

fake = Faker()


def create_agent(
    name: Optional[str] = None,
    role: Optional[str] = None,
    is_master: bool = False,
    workspace_id: str = "default",
    **overrides,
) -> Agent:
    """Create a test agent."""
    return Agent(
        name=name or fake.first_name(),
        role=role if role is not None else "Developer",
        is_master=is_master,
        workspace_id=workspace_id,
        **overrides,
    )


def create_task(
    status: TaskStatus = TaskStatus.INBOX,
    assigned_agent_id: Optional[str] = None,
    workspace_id: str = "default",
    **overrides,
) -> Task:
    """Create a test task."""
    fields = {
        "title": fake.sentence(nb_words=4).rstrip("."),
        "description": fake.text(max_nb_chars=120),
        "priority": TaskPriority.NORMAL,
        "due_date": (utc_now() + timedelta(days=fake.random_int(min=1, max=30))).date(),
    }
    fields.update(overrides)
    return Task(status=status, assigned_agent_id=assigned_agent_id, workspace_id=workspace_id, **fields)


def create_session(agent: Agent, external_session_id: Optional[str] = None, **overrides) -> GatewaySession:
    """Create an active mission-control session link for ``agent``."""
    return GatewaySession(
        agent_id=agent.id,
        external_session_id=external_session_id or f"mission-control-{agent.name.lower().replace(' ', '-')}",
        channel="mission-control",
        status=overrides.pop("status", SessionStatus.ACTIVE),
        session_kind=overrides.pop("session_kind", SessionKind.PERSISTENT),
        **overrides,
    )


def create_sender_id() -> str:
    """Chat platform snowflake-style user id."""
    return str(fake.random_number(digits=18, fix_len=True))
