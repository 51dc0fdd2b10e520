"""Task models and the ordered status set."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from src.utils.ids import generate_id, utc_now


class TaskStatus(str, Enum):
    """Task lifecycle statuses."""
    PLANNING = "planning"
    INBOX = "inbox"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    TESTING = "testing"
    MONITORING = "monitoring"
    DONE = "done"

    @property
    def order(self) -> int:
        """Position in the pipeline; -1 for out-of-band statuses."""
        return STATUS_ORDER.get(self, -1)


STATUS_ORDER: dict[TaskStatus, int] = {
    TaskStatus.INBOX: 0,
    TaskStatus.ASSIGNED: 1,
    TaskStatus.IN_PROGRESS: 2,
    TaskStatus.REVIEW: 3,
    TaskStatus.TESTING: 4,
    TaskStatus.MONITORING: 5,
    TaskStatus.DONE: 6,
}

# Statuses in which an agent is considered to be actively holding a task
ACTIVE_TASK_STATUSES: tuple[TaskStatus, ...] = (
    TaskStatus.ASSIGNED,
    TaskStatus.IN_PROGRESS,
    TaskStatus.REVIEW,
)


class TaskPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


CLOCKED_TAG = "clocked"


class Task(BaseModel):
    """Unit of work on the board."""
    id: str = Field(default_factory=generate_id, description="Task ID (ULID)")
    title: str = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    status: TaskStatus = Field(default=TaskStatus.INBOX, description="Lifecycle status")
    priority: TaskPriority = Field(default=TaskPriority.NORMAL, description="Task priority")
    assigned_agent_id: Optional[str] = Field(None, description="Assigned agent ID")
    created_by_agent_id: Optional[str] = Field(None, description="Creating agent ID")
    workspace_id: str = Field(default="default", description="Workspace ID")
    due_date: Optional[date] = Field(None, description="Due date")
    monitoring_started_at: Optional[datetime] = Field(None, description="Set when the task enters monitoring")
    tags: list[str] = Field(default_factory=list, description="Free-form tags, e.g. 'clocked'")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class TaskUpdate(BaseModel):
    """Partial task update request.

    Only fields present in the request body count as supplied; use
    ``model_fields_set`` to tell an explicit ``null`` from an omitted field.
    """
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = None
    status: Optional[TaskStatus] = None
    assigned_agent_id: Optional[str] = None
    rejection_comment: Optional[str] = Field(None, description="Required when moving a task backwards")

    def supplied(self, field_name: str) -> bool:
        return field_name in self.model_fields_set
