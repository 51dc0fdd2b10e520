"""Task lifecycle state machine: transition guards, auto-assignment and time tracking."""

from typing import Any, Optional

from src.models.activity import ActivityType, TaskActivity
from src.models.agent import Agent, AgentStatus
from src.models.event import AuditEvent, BroadcastEvent, BroadcastType, EventType
from src.models.task import CLOCKED_TAG, Task, TaskStatus, TaskUpdate
from src.models.time_entry import TimeEntry
from src.models.transition import TaskTransition
from src.services.mission_control import MissionControlClient
from src.services.outbox import Outbox
from src.services.task_store import TaskStore
from src.services.topics import Topic
from src.utils.config import ReviewRoutingConfig, get_review_routing_config
from src.utils.errors import AuthorizationError, TaskNotFoundError, TaskValidationError
from src.utils.ids import utc_now
from src.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)

# Plain fields copied from the update when supplied; title and priority cannot be cleared
_NULLABLE_FIELDS = ("description", "due_date")
_REQUIRED_FIELDS = ("title", "priority")


class TaskLifecycleEngine:
    """
    Validates and applies task updates.

    All checks run before anything is written. The resulting mutations
    (task row, activities, audit events, time entries, agent status) are
    handed to the store as a single ``TaskTransition``.
    """

    def __init__(
        self,
        store: TaskStore,
        outbox: Optional[Outbox] = None,
        mission_control: Optional[MissionControlClient] = None,
        broadcasts: Optional[Topic[BroadcastEvent]] = None,
        routing: Optional[ReviewRoutingConfig] = None,
    ):
        self.store = store
        self.outbox = outbox
        self.mission_control = mission_control
        self.broadcasts = broadcasts if broadcasts is not None else Topic("tasks.broadcast")
        self._routing = routing

    @property
    def routing(self) -> ReviewRoutingConfig:
        return self._routing or get_review_routing_config()

    async def update_task(self, task_id: str, update: TaskUpdate, actor_agent_id: Optional[str] = None) -> Task:
        """Apply ``update`` to a task on behalf of ``actor_agent_id`` (None for a human)."""
        task = await self.store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError("Task not found", details={"task_id": task_id})

        actor = await self.store.get_agent(actor_agent_id) if actor_agent_id else None
        is_master = bool(actor and actor.is_master)

        target_status = update.status if update.supplied("status") else None
        status_changed = target_status is not None and target_status != task.status
        if status_changed:
            self.check_transition(task, target_status, update.rejection_comment, actor_agent_id, is_master)

        previous_assignee = task.assigned_agent_id
        new_assignee = previous_assignee
        assignee_agent: Optional[Agent] = None
        explicit_assign = update.supplied("assigned_agent_id")

        if explicit_assign:
            new_assignee = update.assigned_agent_id
            if new_assignee:
                assignee_agent = await self.store.get_agent(new_assignee)
                if assignee_agent is None:
                    raise TaskValidationError(
                        "Assigned agent not found",
                        code="AGENT_NOT_FOUND",
                        details={"agent_id": new_assignee}
                    )
        elif status_changed:
            new_assignee, assignee_agent = await self._auto_assignee(task, target_status)

        task_updates: dict[str, Any] = {}
        for field in _REQUIRED_FIELDS:
            value = getattr(update, field)
            if update.supplied(field) and value is not None and value != getattr(task, field):
                task_updates[field] = value
        for field in _NULLABLE_FIELDS:
            value = getattr(update, field)
            if update.supplied(field) and value != getattr(task, field):
                task_updates[field] = value

        assignee_changed = new_assignee != previous_assignee
        if status_changed:
            task_updates["status"] = target_status
        if assignee_changed:
            task_updates["assigned_agent_id"] = new_assignee

        if not task_updates:
            raise TaskValidationError("No updates provided", code="NO_UPDATES")

        now = utc_now()
        final_status = target_status if status_changed else task.status
        transition = TaskTransition(task_id=task.id)

        await self._track_time(transition, task, final_status, previous_assignee, new_assignee, now)
        if transition.close_entries and CLOCKED_TAG not in task.tags:
            task_updates["tags"] = [*task.tags, CLOCKED_TAG]

        if status_changed and target_status == TaskStatus.MONITORING:
            task_updates["monitoring_started_at"] = now

        task_updates["updated_at"] = now
        transition.task_updates = task_updates

        if status_changed:
            self._record_status_change(transition, task, target_status, update.rejection_comment, actor_agent_id)
        if assignee_changed and new_assignee:
            agent_name = assignee_agent.name if assignee_agent else new_assignee
            transition.events.append(AuditEvent(
                type=EventType.TASK_ASSIGNED,
                task_id=task.id,
                agent_id=new_assignee,
                message=f'"{task.title}" assigned to {agent_name}',
            ))
            transition.agent_statuses[new_assignee] = AgentStatus.WORKING

        with log_timing("apply_task_transition", logger=logger, task_id=task.id):
            updated = await self.store.apply_transition(transition)

        logger.info(
            "Task updated",
            task_id=task.id,
            from_status=task.status.value,
            to_status=updated.status.value,
            assigned_agent_id=updated.assigned_agent_id,
            actor_agent_id=actor_agent_id,
            fields=sorted(task_updates)
        )

        await self.broadcasts.publish(BroadcastEvent(
            type=BroadcastType.TASK_UPDATED,
            payload=updated.model_dump(mode="json"),
        ))

        entered_assigned = status_changed and target_status == TaskStatus.ASSIGNED
        explicitly_assigned = explicit_assign and bool(update.assigned_agent_id)
        if updated.assigned_agent_id and (entered_assigned or explicitly_assigned):
            self._submit_dispatch(updated)

        return updated

    def check_transition(
        self,
        task: Task,
        target: TaskStatus,
        rejection_comment: Optional[str],
        actor_agent_id: Optional[str],
        is_master: bool,
    ) -> None:
        """Raise if moving ``task`` to ``target`` is not allowed for this actor."""
        current_order = task.status.order
        target_order = target.order
        ordered = current_order >= 0 and target_order >= 0
        details = {"from_status": task.status.value, "to_status": target.value}

        if ordered and target_order < current_order and not (rejection_comment or "").strip():
            raise TaskValidationError(
                "A rejection comment is required when moving a task backwards",
                code="REJECTION_COMMENT_REQUIRED",
                details=details
            )

        is_approval = task.status == TaskStatus.REVIEW and target == TaskStatus.DONE
        if is_approval:
            if actor_agent_id and not is_master:
                raise AuthorizationError("Only a master agent can approve tasks in review", details=details)
            return

        if ordered and target_order - current_order > 1 and not is_master:
            raise TaskValidationError(
                f"Cannot move task from {task.status.value} to {target.value}: stages cannot be skipped",
                code="INVALID_STATUS_TRANSITION",
                details=details
            )

    async def _auto_assignee(self, task: Task, target: TaskStatus) -> tuple[Optional[str], Optional[Agent]]:
        if target == TaskStatus.DONE:
            return None, None

        routing = self.routing
        if target == TaskStatus.REVIEW:
            outgoing = await self.store.get_agent(task.assigned_agent_id) if task.assigned_agent_id else None
            if routing.is_analyst_role(outgoing.role if outgoing else None):
                name = routing.generalist_reviewer
            else:
                name = routing.technical_reviewer
        elif target == TaskStatus.TESTING:
            name = routing.qa_agent
        else:
            return task.assigned_agent_id, None

        agent = await self.store.find_agent_by_name(task.workspace_id, name)
        if agent is None:
            logger.warning(
                "Auto-assignment target not found, keeping current assignee",
                task_id=task.id,
                target_status=target.value,
                agent_name=name,
                workspace_id=task.workspace_id
            )
            return task.assigned_agent_id, None
        return agent.id, agent

    async def _track_time(
        self,
        transition: TaskTransition,
        task: Task,
        final_status: TaskStatus,
        previous_assignee: Optional[str],
        new_assignee: Optional[str],
        now,
    ) -> None:
        was_in_progress = task.status == TaskStatus.IN_PROGRESS
        now_in_progress = final_status == TaskStatus.IN_PROGRESS
        assignee_changed = previous_assignee != new_assignee

        if was_in_progress and previous_assignee and (not now_in_progress or assignee_changed):
            entry = await self.store.get_open_time_entry(task.id, previous_assignee)
            if entry is not None:
                transition.close_entries.append(entry.closed(now))

        if now_in_progress and new_assignee and (not was_in_progress or assignee_changed):
            existing = await self.store.get_open_time_entry(task.id, new_assignee)
            if existing is None:
                transition.open_entries.append(TimeEntry(agent_id=new_assignee, task_id=task.id, started_at=now))

    def _record_status_change(
        self,
        transition: TaskTransition,
        task: Task,
        target: TaskStatus,
        rejection_comment: Optional[str],
        actor_agent_id: Optional[str],
    ) -> None:
        metadata = {"from_status": task.status.value, "to_status": target.value}
        event_type = EventType.TASK_COMPLETED if target == TaskStatus.DONE else EventType.TASK_STATUS_CHANGED
        transition.events.append(AuditEvent(
            type=event_type,
            task_id=task.id,
            agent_id=actor_agent_id,
            message=f'Task "{task.title}" moved to {target.value}',
            metadata=metadata,
        ))

        if task.status.order >= 0 and 0 <= target.order < task.status.order:
            transition.activities.append(TaskActivity(
                task_id=task.id,
                activity_type=ActivityType.COMMENT,
                message=rejection_comment.strip(),
                metadata=metadata,
                agent_id=actor_agent_id,
            ))

    def _submit_dispatch(self, task: Task) -> None:
        if self.outbox is None or self.mission_control is None:
            return
        mission_control = self.mission_control
        task_id = task.id
        self.outbox.submit(
            "dispatch",
            lambda: mission_control.request_dispatch(task_id),
            task_id=task_id,
            agent_id=task.assigned_agent_id
        )
