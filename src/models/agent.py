"""Agent model."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from src.utils.ids import generate_id, utc_now


class AgentStatus(str, Enum):
    STANDBY = "standby"
    WORKING = "working"
    OFFLINE = "offline"


class Agent(BaseModel):
    """Autonomous worker registered on the board."""
    id: str = Field(default_factory=generate_id, description="Agent ID (ULID)")
    name: str = Field(..., description="Display name, also used for routing lookups")
    role: Optional[str] = Field(None, description="Free-text role, e.g. 'Research Analyst'")
    is_master: bool = Field(default=False, description="May approve reviews and skip stages")
    workspace_id: str = Field(default="default", description="Workspace ID")
    status: AgentStatus = Field(default=AgentStatus.STANDBY)
    soul_md: Optional[str] = Field(None, description="Persona context sent on session bootstrap")
    user_md: Optional[str] = Field(None, description="Operator context sent on session bootstrap")
    updated_at: datetime = Field(default_factory=utc_now)
