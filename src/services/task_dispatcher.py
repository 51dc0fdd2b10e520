"""Deliver a task brief to the assigned agent's Gateway session."""

from typing import Any

from src.models.activity import ActivityType, TaskActivity
from src.models.agent import Agent, AgentStatus
from src.models.event import AuditEvent, EventType
from src.models.task import Task, TaskStatus, TaskUpdate
from src.services.gateway_link import GatewayLink
from src.services.lifecycle_engine import TaskLifecycleEngine
from src.services.task_store import TaskStore
from src.utils.config import SESSION_NAMESPACE
from src.utils.errors import (
    GatewayConnectionError,
    GatewayRPCError,
    GatewayTimeoutError,
    TaskNotFoundError,
    TaskValidationError,
)
from src.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)


def build_task_brief(task: Task) -> str:
    lines = [
        "NEW TASK ASSIGNED",
        "",
        f"Title: {task.title}",
    ]
    if task.description:
        lines.append(f"Description: {task.description}")
    lines.append(f"Priority: {task.priority.value.upper()}")
    if task.due_date:
        lines.append(f"Due: {task.due_date.isoformat()}")
    lines.extend([
        f"Task ID: {task.id}",
        "",
        "Report progress with:",
        "PROGRESS_UPDATE: <what changed> | next: <next step> | eta: <time>",
        "If you are blocked, reply with:",
        "BLOCKED: <what is blocked> | need: <specific input> | meanwhile: <fallback work>",
        "When complete, reply with:",
        "TASK_COMPLETE: <brief summary of what you did> deliverables: <url, path or name>, ...",
    ])
    return "\n".join(lines)


class TaskDispatcher:
    def __init__(self, store: TaskStore, link: GatewayLink, engine: TaskLifecycleEngine):
        self.store = store
        self.link = link
        self.engine = engine

    async def _note(self, task: Task, agent: Agent, message: str) -> None:
        await self.store.add_activity(TaskActivity(
            task_id=task.id,
            activity_type=ActivityType.COMMENT,
            message=message,
            agent_id=agent.id,
        ))

    async def dispatch_task(self, task_id: str) -> dict[str, Any]:
        """
        Send the task brief to the assignee's linked session.

        An ``assigned`` task moves to ``in_progress`` through the lifecycle
        engine, which opens the time entry.
        """
        task = await self.store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError("Task not found", details={"task_id": task_id})
        if not task.assigned_agent_id:
            raise TaskValidationError("Task has no assigned agent", code="NO_ASSIGNEE")

        agent = await self.store.get_agent(task.assigned_agent_id)
        if agent is None:
            raise TaskNotFoundError("Assigned agent not found", code="AGENT_NOT_FOUND")

        session = await self.store.get_active_session_for_agent(agent.id)
        if session is None:
            message = f'Agent "{agent.name}" has no linked Gateway session'
            await self._note(task, agent, f"Cannot dispatch: {message}")
            raise TaskValidationError(message, code="NO_SESSION", details={"agent_id": agent.id})

        if not self.link.is_connected():
            try:
                await self.link.connect()
            except GatewayConnectionError as e:
                await self._note(task, agent, f"Failed to connect to OpenClaw Gateway: {e}")
                raise

        session_key = f"{SESSION_NAMESPACE}{session.external_session_id}"
        try:
            with log_timing("dispatch_task", logger=logger, task_id=task.id):
                await self.link.send_to_session(session_key, build_task_brief(task))
        except (GatewayConnectionError, GatewayRPCError, GatewayTimeoutError) as e:
            await self._note(task, agent, f"Failed to send task to agent: {e}")
            logger.error("Task dispatch failed", task_id=task.id, agent_id=agent.id, error=str(e))
            raise

        if task.status == TaskStatus.ASSIGNED:
            task = await self.engine.update_task(task.id, TaskUpdate(status=TaskStatus.IN_PROGRESS))

        await self.store.update_agent_status(agent.id, AgentStatus.WORKING)
        await self.store.record_event(AuditEvent(
            type=EventType.TASK_DISPATCHED,
            task_id=task.id,
            agent_id=agent.id,
            message=f'Task "{task.title}" dispatched to {agent.name}',
            metadata={"session_id": session.external_session_id},
        ))
        await self.store.add_activity(TaskActivity(
            task_id=task.id,
            activity_type=ActivityType.STATUS_CHANGED,
            message=f"Task dispatched to {agent.name} via OpenClaw",
            agent_id=agent.id,
        ))
        logger.info("Task dispatched", task_id=task.id, agent_id=agent.id, session_id=session.external_session_id)

        return {
            "success": True,
            "task_id": task.id,
            "agent_id": agent.id,
            "session_id": session.external_session_id,
            "status": task.status.value,
        }
