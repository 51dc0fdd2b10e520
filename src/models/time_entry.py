"""Time tracking entries recorded while a task is in progress."""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from pydantic import BaseModel, Field

from src.utils.ids import generate_id, utc_now


def duration_minutes(started_at: datetime, ended_at: datetime) -> int:
    """Whole minutes between two instants, rounded half-up."""
    elapsed_ms = Decimal(int((ended_at - started_at).total_seconds() * 1000))
    minutes = (elapsed_ms / Decimal(60000)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(int(minutes), 0)


class TimeEntry(BaseModel):
    """Span of agent work on a task; open while ``ended_at`` is None."""
    id: str = Field(default_factory=generate_id, description="Time entry ID (ULID)")
    agent_id: str = Field(..., description="Agent ID (text FK)")
    task_id: str = Field(..., description="Task ID (text FK)")
    started_at: datetime = Field(default_factory=utc_now)
    ended_at: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, ge=0, description="Set when the entry closes")
    summary: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def closed(self, ended_at: datetime, summary: Optional[str] = None) -> "TimeEntry":
        """Return a closed copy of this entry."""
        return self.model_copy(update={
            "ended_at": ended_at,
            "duration_minutes": duration_minutes(self.started_at, ended_at),
            "summary": summary if summary is not None else self.summary,
        })
