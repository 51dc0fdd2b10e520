"""Link agents to persistent Gateway sessions and bootstrap them with the signal formats."""

import re
from typing import Any, Optional

from src.models.agent import Agent
from src.models.event import AuditEvent, EventType
from src.models.gateway import GatewaySession, SessionKind, SessionStatus
from src.services.gateway_link import GatewayLink
from src.services.task_store import TaskStore
from src.utils.config import SESSION_NAMESPACE, SESSION_PREFIX
from src.utils.errors import (
    GatewayConnectionError,
    GatewayRPCError,
    GatewayTimeoutError,
    SessionConflictError,
    TaskNotFoundError,
)
from src.utils.ids import epoch_ms
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

BOOTSTRAP_CONTEXT_LIMIT = 3500
SESSION_CHANNEL = "mission-control"


def session_id_for_agent(agent: Agent) -> str:
    """``mission-control-<name>`` with the name lowercased and whitespace runs hyphenated."""
    slug = re.sub(r"\s+", "-", agent.name.lower())
    return f"{SESSION_PREFIX}{slug}"


def _truncate(text: Optional[str], limit: int = BOOTSTRAP_CONTEXT_LIMIT) -> str:
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}\n\n[truncated]"


def build_bootstrap_message(agent: Agent) -> str:
    chunks = [
        "[Mission Control Link Bootstrap]",
        f"Agent: {agent.name}",
        f"Role: {agent.role or 'unspecified'}",
        "",
        "You are linked to Mission Control.",
        "Completion format: TASK_COMPLETE: <summary>",
        "Progress format: PROGRESS_UPDATE: <what changed> | next: <next step> | eta: <time>",
        "Blocked format: BLOCKED: <what is blocked> | need: <specific input> | meanwhile: <fallback work>",
    ]
    soul = _truncate(agent.soul_md)
    user = _truncate(agent.user_md)
    if soul:
        chunks.extend(["", "SOUL.md (injected):", soul])
    if user:
        chunks.extend(["", "USER.md (injected):", user])
    return "\n".join(chunks)


class SessionLinkService:
    """Manages the agent ↔ Gateway session links used to route signals and dispatches."""

    def __init__(self, store: TaskStore, link: GatewayLink):
        self.store = store
        self.link = link

    async def _require_agent(self, agent_id: str) -> Agent:
        agent = await self.store.get_agent(agent_id)
        if agent is None:
            raise TaskNotFoundError("Agent not found", code="AGENT_NOT_FOUND", details={"agent_id": agent_id})
        return agent

    async def get_link(self, agent_id: str) -> dict[str, Any]:
        await self._require_agent(agent_id)
        session = await self.store.get_active_session_for_agent(agent_id)
        return {"linked": session is not None, "session": session}

    async def _send_bootstrap(self, agent: Agent, external_session_id: str, variant: str) -> bool:
        try:
            await self.link.chat_send(
                f"{SESSION_NAMESPACE}{external_session_id}",
                build_bootstrap_message(agent),
                idempotency_key=f"mc-link-bootstrap-{variant}-{agent.id}-{epoch_ms()}",
            )
        except (GatewayConnectionError, GatewayRPCError, GatewayTimeoutError) as e:
            logger.warning(
                "Failed to send session bootstrap",
                agent_id=agent.id,
                session_id=external_session_id,
                error=str(e)
            )
            return False
        return True

    async def link_agent(self, agent_id: str) -> dict[str, Any]:
        """
        Link an agent to its ``mission-control-*`` session.

        Reuses (and re-bootstraps) an existing active link. Raises
        GatewayConnectionError when the Gateway cannot be reached and
        SessionConflictError when another agent holds the session id.
        """
        agent = await self._require_agent(agent_id)

        if not self.link.is_connected():
            await self.link.connect()

        existing = await self.store.get_active_session_for_agent(agent_id)
        if existing is not None:
            await self._send_bootstrap(agent, existing.external_session_id, "existing")
            return {"linked": True, "session": existing, "reused": True}

        try:
            await self.link.list_sessions()
        except (GatewayRPCError, GatewayTimeoutError) as e:
            raise GatewayConnectionError(f"Connected but failed to communicate with OpenClaw Gateway: {e}") from e

        external_session_id = session_id_for_agent(agent)
        conflicting = await self.store.get_active_session(external_session_id)
        if conflicting is not None and conflicting.agent_id != agent_id:
            raise SessionConflictError(
                "Session key already linked to another active agent",
                details={"session_id": external_session_id, "conflicting_agent_id": conflicting.agent_id}
            )

        session = await self.store.create_session(GatewaySession(
            agent_id=agent_id,
            external_session_id=external_session_id,
            channel=SESSION_CHANNEL,
            status=SessionStatus.ACTIVE,
            session_kind=SessionKind.PERSISTENT,
        ))
        await self.store.record_event(AuditEvent(
            type=EventType.AGENT_LINKED,
            agent_id=agent_id,
            message=f"{agent.name} connected to OpenClaw Gateway",
            metadata={"session_id": external_session_id},
        ))
        logger.info("Agent linked to Gateway session", agent_id=agent_id, session_id=external_session_id)

        await self._send_bootstrap(agent, external_session_id, "new")
        return {"linked": True, "session": session, "reused": False}

    async def unlink_agent(self, agent_id: str) -> dict[str, Any]:
        agent = await self._require_agent(agent_id)
        session = await self.store.get_active_session_for_agent(agent_id)
        if session is None:
            raise TaskNotFoundError(
                "Agent is not linked to an OpenClaw session",
                code="SESSION_NOT_FOUND",
                details={"agent_id": agent_id}
            )

        await self.store.deactivate_session(session.id)
        await self.store.record_event(AuditEvent(
            type=EventType.AGENT_UNLINKED,
            agent_id=agent_id,
            message=f"{agent.name} disconnected from OpenClaw Gateway",
            metadata={"session_id": session.external_session_id},
        ))
        logger.info("Agent unlinked from Gateway session", agent_id=agent_id, session_id=session.external_session_id)
        return {"linked": False, "success": True}
