"""Audit events and broadcast payloads."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.utils.ids import generate_id, utc_now


class EventType(str, Enum):
    TASK_CREATED = "task_created"
    TASK_STATUS_CHANGED = "task_status_changed"
    TASK_COMPLETED = "task_completed"
    TASK_ASSIGNED = "task_assigned"
    TASK_DISPATCHED = "task_dispatched"
    AGENT_LINKED = "agent_linked"
    AGENT_UNLINKED = "agent_unlinked"
    SYSTEM = "system"


class AuditEvent(BaseModel):
    """Row in the audit/event log."""
    id: str = Field(default_factory=generate_id, description="Event ID (ULID)")
    type: EventType = Field(..., description="Event type")
    task_id: Optional[str] = None
    agent_id: Optional[str] = None
    message: str = Field(..., description="Event message")
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)


class BroadcastType(str, Enum):
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    ACTIVITY_LOGGED = "activity_logged"
    DELIVERABLE_ADDED = "deliverable_added"


class BroadcastEvent(BaseModel):
    """Change notification pushed to live subscribers."""
    type: BroadcastType
    payload: dict[str, Any] = Field(default_factory=dict)
