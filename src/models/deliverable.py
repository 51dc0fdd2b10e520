"""Task deliverables reported by agents."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from src.utils.ids import generate_id, utc_now


class DeliverableType(str, Enum):
    URL = "url"
    FILE = "file"
    ARTIFACT = "artifact"


class Deliverable(BaseModel):
    id: str = Field(default_factory=generate_id, description="Deliverable ID (ULID)")
    task_id: str = Field(..., description="Task ID (text FK)")
    deliverable_type: DeliverableType = Field(..., description="url, file or artifact")
    title: str = Field(..., description="Display label")
    path: str = Field(..., description="URL, filesystem path or artifact name")
    created_at: datetime = Field(default_factory=utc_now)
