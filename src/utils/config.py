"""Environment-sourced configuration for the orchestrator.

Settings are read from ``os.environ`` on every call so observers pick up
changes without a restart. Invalid numeric or enum values fall back to the
defaults rather than failing the notification being processed.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field

from src.models.task import TaskPriority


DEFAULT_GATEWAY_URL = "ws://127.0.0.1:18789"
DEFAULT_MISSION_CONTROL_URL = "http://localhost:4000"
DEFAULT_TASK_COMMAND_PREFIX = "!task"
DEFAULT_MAX_OPEN_TASKS = 200
DEFAULT_MIN_INTERVAL_MS = 5000

# Session ids owned by this orchestrator carry this prefix
SESSION_PREFIX = "mission-control-"
SESSION_NAMESPACE = "agent:main:"

DEDUP_TTL_SECONDS = 5 * 60
RPC_TIMEOUT_SECONDS = 30.0
RECONNECT_DELAY_SECONDS = 5.0


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() == "true"


def _env_int(name: str, default: int, minimum: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def get_gateway_url() -> str:
    """WebSocket URL of the agent Gateway."""
    return os.environ.get("OPENCLAW_GATEWAY_URL", "").strip() or DEFAULT_GATEWAY_URL


def get_mission_control_url() -> str:
    """Base URL for the completion webhook and dispatch endpoint."""
    url = os.environ.get("MISSION_CONTROL_URL", "").strip() or DEFAULT_MISSION_CONTROL_URL
    return url.rstrip("/")


def get_command_channel_session_key() -> Optional[str]:
    """Session key of the chat channel that carries task commands, or None if unset."""
    if not _env_flag("OPENCLAW_DISCORD_RELAY_ENABLED", True):
        return None

    explicit = os.environ.get("OPENCLAW_TASK_COMMAND_SESSION_KEY", "").strip()
    if explicit:
        return explicit

    channel_id = os.environ.get("OPENCLAW_DISCORD_CHANNEL_ID", "").strip()
    if not channel_id:
        return None
    return f"{SESSION_NAMESPACE}discord:channel:{channel_id}"


def is_production() -> bool:
    return os.environ.get("ENVIRONMENT", "").strip().lower() == "production"


class TaskCommandConfig(BaseModel):
    """Settings for chat-command task creation."""
    enabled: bool = Field(default=False, description="Feature flag")
    session_key: Optional[str] = Field(None, description="Channel session key commands must arrive on")
    command_prefix: str = Field(default=DEFAULT_TASK_COMMAND_PREFIX, description="Command prefix, e.g. !task")
    workspace_id: str = Field(default="default", description="Workspace new tasks land in")
    default_priority: TaskPriority = Field(default=TaskPriority.NORMAL, description="Priority for new tasks")
    max_open_tasks: int = Field(default=DEFAULT_MAX_OPEN_TASKS, description="Open-task ceiling per workspace")
    min_interval_ms: int = Field(default=DEFAULT_MIN_INTERVAL_MS, description="Per-sender minimum interval")
    allowed_user_ids: frozenset[str] = Field(default_factory=frozenset, description="Sender allowlist (empty = anyone)")

    @property
    def active(self) -> bool:
        return self.enabled and bool(self.session_key)


def get_task_command_config() -> TaskCommandConfig:
    """Build the command observer settings from the environment."""
    prefix = os.environ.get("OPENCLAW_TASK_COMMAND_PREFIX", "").strip() or DEFAULT_TASK_COMMAND_PREFIX
    workspace_id = os.environ.get("OPENCLAW_TASK_WORKSPACE_ID", "").strip() or "default"

    raw_priority = os.environ.get("OPENCLAW_TASK_DEFAULT_PRIORITY", "normal").strip().lower()
    try:
        priority = TaskPriority(raw_priority)
    except ValueError:
        priority = TaskPriority.NORMAL

    allowlist_raw = os.environ.get("OPENCLAW_TASK_COMMAND_USER_ALLOWLIST", "")
    allowed = frozenset(v.strip() for v in allowlist_raw.split(",") if v.strip())

    return TaskCommandConfig(
        enabled=_env_flag("OPENCLAW_TASK_COMMANDS_ENABLED", False),
        session_key=get_command_channel_session_key(),
        command_prefix=prefix,
        workspace_id=workspace_id,
        default_priority=priority,
        max_open_tasks=_env_int("OPENCLAW_TASK_MAX_OPEN", DEFAULT_MAX_OPEN_TASKS, minimum=1),
        min_interval_ms=_env_int("OPENCLAW_TASK_MIN_INTERVAL_MS", DEFAULT_MIN_INTERVAL_MS, minimum=0),
        allowed_user_ids=allowed,
    )


class ReviewRoutingConfig(BaseModel):
    """Agent identities the lifecycle engine routes review and testing work to."""
    generalist_reviewer: str = Field(default="Max", description="Reviews analyst-class work")
    technical_reviewer: str = Field(default="Senior Developer", description="Reviews everything else")
    qa_agent: str = Field(default="QA Engineer", description="Receives tasks entering testing")
    analyst_role_keywords: tuple[str, ...] = Field(
        default=("research", "analyst", "writer", "content", "copy", "assistant"),
        description="Role substrings that mark an agent as analyst-class"
    )

    def is_analyst_role(self, role: Optional[str]) -> bool:
        if not role:
            return False
        lowered = role.lower()
        return any(keyword in lowered for keyword in self.analyst_role_keywords)


def get_review_routing_config() -> ReviewRoutingConfig:
    defaults = ReviewRoutingConfig()
    return ReviewRoutingConfig(
        generalist_reviewer=os.environ.get("ORCH_GENERALIST_REVIEWER", "").strip() or defaults.generalist_reviewer,
        technical_reviewer=os.environ.get("ORCH_TECHNICAL_REVIEWER", "").strip() or defaults.technical_reviewer,
        qa_agent=os.environ.get("ORCH_QA_AGENT", "").strip() or defaults.qa_agent,
    )


def get_outbox_max_size() -> int:
    return _env_int("OUTBOX_MAX_SIZE", 256, minimum=1)
