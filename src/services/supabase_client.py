"""Supabase client wrapper and the Supabase-backed task store."""

import os
from typing import Iterable, Optional
from supabase import create_client, Client
from supabase.client import ClientOptions
from src.models.activity import TaskActivity
from src.models.agent import Agent, AgentStatus
from src.models.deliverable import Deliverable
from src.models.event import AuditEvent, EventType
from src.models.gateway import GatewaySession, SessionStatus
from src.models.task import Task, TaskStatus
from src.models.time_entry import TimeEntry
from src.models.transition import TaskTransition
from src.services.task_store import TaskStore
from src.utils.errors import SupabaseError
from src.utils.ids import utc_now
import logging

logger = logging.getLogger(__name__)

# Global client instance (singleton pattern)
_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        if not url or not key:
            raise SupabaseError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", extra={"url": url})

    return _client


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                extra={"error": str(exc_val), "type": exc_type.__name__}
            )
        return False


def _first(result) -> Optional[dict]:
    return result.data[0] if result.data and len(result.data) > 0 else None


class SupabaseTaskStore(TaskStore):
    """
    TaskStore over Supabase tables.

    Grouped writes go through the ``apply_task_transition`` and
    ``create_task_with_event`` database functions so each runs in one
    transaction.
    """

    # Tasks
    async def get_task(self, task_id: str) -> Optional[Task]:
        async with SupabaseClient() as client:
            try:
                row = _first(client.table("tasks").select("*").eq("id", task_id).execute())
                return Task.model_validate(row) if row else None
            except Exception as e:
                raise SupabaseError(f"Failed to get task: {e}")

    async def get_latest_task_for_agent(self, agent_id: str, statuses: Iterable[TaskStatus]) -> Optional[Task]:
        async with SupabaseClient() as client:
            try:
                result = client.table("tasks").select("*") \
                    .eq("assigned_agent_id", agent_id) \
                    .in_("status", [s.value for s in statuses]) \
                    .order("updated_at", desc=True) \
                    .limit(1) \
                    .execute()
                row = _first(result)
                return Task.model_validate(row) if row else None
            except Exception as e:
                raise SupabaseError(f"Failed to get latest task for agent: {e}")

    async def count_open_tasks(self, workspace_id: str) -> int:
        async with SupabaseClient() as client:
            try:
                result = client.table("tasks").select("id", count="exact") \
                    .eq("workspace_id", workspace_id) \
                    .neq("status", TaskStatus.DONE.value) \
                    .execute()
                return result.count or 0
            except Exception as e:
                raise SupabaseError(f"Failed to count open tasks: {e}")

    async def create_task(self, task: Task, event: AuditEvent) -> Task:
        async with SupabaseClient() as client:
            try:
                result = client.rpc("create_task_with_event", {
                    "task": task.model_dump(mode="json"),
                    "event": event.model_dump(mode="json"),
                }).execute()
                row = result.data[0] if isinstance(result.data, list) and result.data else result.data
                if not row:
                    raise SupabaseError("Failed to create task: no data returned")
                return Task.model_validate(row)
            except SupabaseError:
                raise
            except Exception as e:
                raise SupabaseError(f"Failed to create task: {e}")

    async def apply_transition(self, transition: TaskTransition) -> Task:
        async with SupabaseClient() as client:
            try:
                result = client.rpc("apply_task_transition", {
                    "transition": transition.model_dump(mode="json"),
                }).execute()
                row = result.data[0] if isinstance(result.data, list) and result.data else result.data
                if not row:
                    raise SupabaseError(f"Failed to apply transition: {transition.task_id}")
                return Task.model_validate(row)
            except SupabaseError:
                raise
            except Exception as e:
                raise SupabaseError(f"Failed to apply transition: {e}")

    # Agents
    async def get_agent(self, agent_id: str) -> Optional[Agent]:
        async with SupabaseClient() as client:
            try:
                row = _first(client.table("agents").select("*").eq("id", agent_id).execute())
                return Agent.model_validate(row) if row else None
            except Exception as e:
                raise SupabaseError(f"Failed to get agent: {e}")

    async def find_agent_by_name(self, workspace_id: str, name: str) -> Optional[Agent]:
        async with SupabaseClient() as client:
            try:
                result = client.table("agents").select("*") \
                    .eq("workspace_id", workspace_id) \
                    .eq("name", name) \
                    .limit(1) \
                    .execute()
                row = _first(result)
                return Agent.model_validate(row) if row else None
            except Exception as e:
                raise SupabaseError(f"Failed to find agent by name: {e}")

    async def get_default_creator(self, workspace_id: str) -> Optional[Agent]:
        async with SupabaseClient() as client:
            try:
                result = client.table("agents").select("*") \
                    .eq("workspace_id", workspace_id) \
                    .order("is_master", desc=True) \
                    .order("updated_at", desc=True) \
                    .limit(1) \
                    .execute()
                row = _first(result)
                return Agent.model_validate(row) if row else None
            except Exception as e:
                raise SupabaseError(f"Failed to get default creator: {e}")

    async def update_agent_status(self, agent_id: str, status: AgentStatus) -> None:
        async with SupabaseClient() as client:
            try:
                client.table("agents").update({
                    "status": status.value,
                    "updated_at": utc_now().isoformat(),
                }).eq("id", agent_id).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to update agent status: {e}")

    # Gateway sessions
    async def get_active_session(self, external_session_id: str) -> Optional[GatewaySession]:
        async with SupabaseClient() as client:
            try:
                result = client.table("openclaw_sessions").select("*") \
                    .eq("external_session_id", external_session_id) \
                    .eq("status", SessionStatus.ACTIVE.value) \
                    .limit(1) \
                    .execute()
                row = _first(result)
                return GatewaySession.model_validate(row) if row else None
            except Exception as e:
                raise SupabaseError(f"Failed to get active session: {e}")

    async def get_active_session_for_agent(self, agent_id: str) -> Optional[GatewaySession]:
        async with SupabaseClient() as client:
            try:
                result = client.table("openclaw_sessions").select("*") \
                    .eq("agent_id", agent_id) \
                    .eq("status", SessionStatus.ACTIVE.value) \
                    .limit(1) \
                    .execute()
                row = _first(result)
                return GatewaySession.model_validate(row) if row else None
            except Exception as e:
                raise SupabaseError(f"Failed to get active session for agent: {e}")

    async def create_session(self, session: GatewaySession) -> GatewaySession:
        async with SupabaseClient() as client:
            try:
                row = _first(client.table("openclaw_sessions").insert(session.model_dump(mode="json")).execute())
                if row is None:
                    raise SupabaseError("Failed to create session: no data returned")
                return GatewaySession.model_validate(row)
            except SupabaseError:
                raise
            except Exception as e:
                raise SupabaseError(f"Failed to create session: {e}")

    async def deactivate_session(self, session_id: str) -> None:
        async with SupabaseClient() as client:
            try:
                client.table("openclaw_sessions").update({
                    "status": SessionStatus.INACTIVE.value,
                    "updated_at": utc_now().isoformat(),
                }).eq("id", session_id).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to deactivate session: {e}")

    # Time tracking
    async def get_open_time_entry(self, task_id: str, agent_id: str) -> Optional[TimeEntry]:
        async with SupabaseClient() as client:
            try:
                result = client.table("time_entries").select("*") \
                    .eq("task_id", task_id) \
                    .eq("agent_id", agent_id) \
                    .is_("ended_at", "null") \
                    .limit(1) \
                    .execute()
                row = _first(result)
                return TimeEntry.model_validate(row) if row else None
            except Exception as e:
                raise SupabaseError(f"Failed to get open time entry: {e}")

    # Activity, deliverables and audit log
    async def add_activity(self, activity: TaskActivity) -> TaskActivity:
        async with SupabaseClient() as client:
            try:
                row = _first(client.table("task_activities").insert(activity.model_dump(mode="json")).execute())
                return TaskActivity.model_validate(row) if row else activity
            except Exception as e:
                raise SupabaseError(f"Failed to add activity: {e}")

    async def list_activities(self, task_id: str) -> list[TaskActivity]:
        async with SupabaseClient() as client:
            try:
                result = client.table("task_activities").select("*") \
                    .eq("task_id", task_id) \
                    .order("created_at") \
                    .execute()
                return [TaskActivity.model_validate(row) for row in result.data or []]
            except Exception as e:
                raise SupabaseError(f"Failed to list activities: {e}")

    async def list_deliverables(self, task_id: str) -> list[Deliverable]:
        async with SupabaseClient() as client:
            try:
                result = client.table("task_deliverables").select("*").eq("task_id", task_id).execute()
                return [Deliverable.model_validate(row) for row in result.data or []]
            except Exception as e:
                raise SupabaseError(f"Failed to list deliverables: {e}")

    async def add_deliverable(self, deliverable: Deliverable) -> Deliverable:
        async with SupabaseClient() as client:
            try:
                row = _first(client.table("task_deliverables").insert(deliverable.model_dump(mode="json")).execute())
                return Deliverable.model_validate(row) if row else deliverable
            except Exception as e:
                raise SupabaseError(f"Failed to add deliverable: {e}")

    async def record_event(self, event: AuditEvent) -> AuditEvent:
        async with SupabaseClient() as client:
            try:
                row = _first(client.table("events").insert(event.model_dump(mode="json")).execute())
                return AuditEvent.model_validate(row) if row else event
            except Exception as e:
                raise SupabaseError(f"Failed to record event: {e}")

    async def list_events(
        self,
        event_type: Optional[EventType] = None,
        limit: int = 100,
        message_prefix: Optional[str] = None,
    ) -> list[AuditEvent]:
        async with SupabaseClient() as client:
            try:
                query = client.table("events").select("*")
                if event_type is not None:
                    query = query.eq("type", event_type.value)
                if message_prefix:
                    query = query.like("message", f"{message_prefix}%")
                result = query.order("created_at", desc=True).limit(limit).execute()
                return [AuditEvent.model_validate(row) for row in result.data or []]
            except Exception as e:
                raise SupabaseError(f"Failed to list events: {e}")
