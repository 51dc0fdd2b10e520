"""Task activity log entries."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.utils.ids import generate_id, utc_now


class ActivityType(str, Enum):
    COMMENT = "comment"
    STATUS_CHANGED = "status_changed"
    COMPLETED = "completed"
    UPDATED = "updated"


class TaskActivity(BaseModel):
    """Append-only activity record attached to a task."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id, description="Activity ID (ULID)")
    task_id: str = Field(..., description="Task ID (text FK)")
    activity_type: ActivityType = Field(..., description="comment, status_changed, completed, updated")
    message: str = Field(..., description="Human-readable activity text")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Structured context, e.g. {next, eta}")
    agent_id: Optional[str] = Field(None, description="Agent the activity is attributed to")
    created_at: datetime = Field(default_factory=utc_now)
