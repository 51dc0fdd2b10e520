"""Gateway session link and RPC frame models."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from src.utils.ids import generate_id, utc_now


class SessionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class SessionKind(str, Enum):
    EPHEMERAL = "ephemeral"
    PERSISTENT = "persistent"


class GatewaySession(BaseModel):
    """Link between an agent and a Gateway session."""
    id: str = Field(default_factory=generate_id, description="Session link ID (ULID)")
    agent_id: str = Field(..., description="Agent ID (text FK)")
    external_session_id: str = Field(..., description="Session id on the Gateway, e.g. mission-control-max")
    channel: Optional[str] = Field(None, description="Originating channel")
    status: SessionStatus = Field(default=SessionStatus.ACTIVE)
    session_kind: SessionKind = Field(default=SessionKind.PERSISTENT)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class GatewayRequest(BaseModel):
    """Outgoing RPC frame."""
    id: int = Field(..., description="Request correlation id")
    method: str
    params: Optional[dict[str, Any]] = None


class GatewayError(BaseModel):
    message: str = "Unknown gateway error"
    code: Optional[Any] = None


class GatewayFrame(BaseModel):
    """Incoming frame: a response when ``id`` matches a pending call, else a notification."""
    id: Optional[Union[int, str]] = None
    method: Optional[str] = None
    params: Optional[Any] = None
    result: Optional[Any] = None
    error: Optional[GatewayError] = None
