"""Storage contract consumed by the orchestration pipeline."""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from src.models.activity import TaskActivity
from src.models.agent import Agent, AgentStatus
from src.models.deliverable import Deliverable
from src.models.event import AuditEvent, EventType
from src.models.gateway import GatewaySession
from src.models.task import Task, TaskStatus
from src.models.time_entry import TimeEntry
from src.models.transition import TaskTransition


class TaskStore(ABC):
    """
    Narrow read/write interface over tasks, agents, sessions and logs.

    ``apply_transition`` and ``create_task`` are grouped writes: either all
    of their rows land or none do.
    """

    # Tasks
    @abstractmethod
    async def get_task(self, task_id: str) -> Optional[Task]: ...

    @abstractmethod
    async def get_latest_task_for_agent(self, agent_id: str, statuses: Iterable[TaskStatus]) -> Optional[Task]:
        """Most recently updated task assigned to ``agent_id`` in one of ``statuses``."""

    @abstractmethod
    async def count_open_tasks(self, workspace_id: str) -> int:
        """Tasks in the workspace whose status is not done."""

    @abstractmethod
    async def create_task(self, task: Task, event: AuditEvent) -> Task: ...

    @abstractmethod
    async def apply_transition(self, transition: TaskTransition) -> Task:
        """Apply a lifecycle transition atomically and return the updated task."""

    # Agents
    @abstractmethod
    async def get_agent(self, agent_id: str) -> Optional[Agent]: ...

    @abstractmethod
    async def find_agent_by_name(self, workspace_id: str, name: str) -> Optional[Agent]: ...

    @abstractmethod
    async def get_default_creator(self, workspace_id: str) -> Optional[Agent]:
        """Master agents first, then the most recently updated agent."""

    @abstractmethod
    async def update_agent_status(self, agent_id: str, status: AgentStatus) -> None: ...

    # Gateway sessions
    @abstractmethod
    async def get_active_session(self, external_session_id: str) -> Optional[GatewaySession]: ...

    @abstractmethod
    async def get_active_session_for_agent(self, agent_id: str) -> Optional[GatewaySession]: ...

    @abstractmethod
    async def create_session(self, session: GatewaySession) -> GatewaySession: ...

    @abstractmethod
    async def deactivate_session(self, session_id: str) -> None: ...

    # Time tracking
    @abstractmethod
    async def get_open_time_entry(self, task_id: str, agent_id: str) -> Optional[TimeEntry]: ...

    # Activity, deliverables and audit log
    @abstractmethod
    async def add_activity(self, activity: TaskActivity) -> TaskActivity: ...

    @abstractmethod
    async def list_activities(self, task_id: str) -> list[TaskActivity]: ...

    @abstractmethod
    async def list_deliverables(self, task_id: str) -> list[Deliverable]: ...

    @abstractmethod
    async def add_deliverable(self, deliverable: Deliverable) -> Deliverable: ...

    @abstractmethod
    async def record_event(self, event: AuditEvent) -> AuditEvent: ...

    @abstractmethod
    async def list_events(
        self,
        event_type: Optional[EventType] = None,
        limit: int = 100,
        message_prefix: Optional[str] = None,
    ) -> list[AuditEvent]:
        """Audit events, newest first."""
