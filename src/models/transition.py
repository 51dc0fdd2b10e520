"""Grouped write produced by the lifecycle engine."""

from typing import Any

from pydantic import BaseModel, Field

from src.models.activity import TaskActivity
from src.models.agent import AgentStatus
from src.models.event import AuditEvent
from src.models.time_entry import TimeEntry


class TaskTransition(BaseModel):
    """All mutations for one task update, applied by the store as a unit."""
    task_id: str = Field(..., description="Task being updated")
    task_updates: dict[str, Any] = Field(default_factory=dict, description="Column updates for the task row")
    activities: list[TaskActivity] = Field(default_factory=list)
    events: list[AuditEvent] = Field(default_factory=list)
    close_entries: list[TimeEntry] = Field(default_factory=list, description="Open entries, already closed")
    open_entries: list[TimeEntry] = Field(default_factory=list)
    agent_statuses: dict[str, AgentStatus] = Field(default_factory=dict, description="Agent status changes")
