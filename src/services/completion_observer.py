"""Turn agent completion/progress/blocked signals into task activity and webhook calls."""

import re
from typing import Any, Optional

from src.models.activity import ActivityType, TaskActivity
from src.models.deliverable import Deliverable, DeliverableType
from src.models.event import BroadcastEvent, BroadcastType
from src.models.gateway import GatewaySession
from src.models.signal import Blocked, ProgressUpdate, Signal, TaskComplete
from src.models.task import ACTIVE_TASK_STATUSES, Task
from src.services.dedup_cache import TTLCache
from src.services.diagnostics import log_diagnostic
from src.services.gateway_link import GatewayLink
from src.services.mission_control import MissionControlClient
from src.services.outbox import Outbox
from src.services.signal_extractor import extract_session_id, extract_signals, normalize_session_id
from src.services.task_store import TaskStore
from src.services.topics import Subscription, Topic
from src.utils.config import SESSION_PREFIX
from src.utils.errors import DownstreamError, TaskValidationError
from src.utils.ids import epoch_ms
from src.utils.logging import (
    correlation_context,
    generate_correlation_id,
    get_structured_logger,
    sanitize_message_text,
)

logger = get_structured_logger(__name__)

DELIVERABLES_PATTERN = re.compile(r"deliverables?\s*:\s*(.+)$", re.IGNORECASE)
MARKDOWN_LINK_PATTERN = re.compile(r"^\[([^\]]+)\]\(([^)]+)\)$")


def classify_deliverable(path: str) -> DeliverableType:
    lowered = path.lower()
    if lowered.startswith("http://") or lowered.startswith("https://"):
        return DeliverableType.URL
    if "/" in path or "\\" in path or path.startswith("~"):
        return DeliverableType.FILE
    return DeliverableType.ARTIFACT


def parse_deliverables(summary: str) -> list[tuple[DeliverableType, str, str]]:
    """
    Parse ``deliverables: a, b, c`` from a completion summary.

    Returns (type, title, path) tuples. Items may be Markdown links
    ``[label](path)``; trailing ``.`` and ``;`` are dropped.
    """
    match = DELIVERABLES_PATTERN.search(summary)
    if not match:
        return []

    results = []
    for item in match.group(1).split(","):
        item = item.strip().rstrip(".;").strip()
        if not item:
            continue
        link = MARKDOWN_LINK_PATTERN.match(item)
        if link:
            title, path = link.group(1).strip(), link.group(2).strip()
        else:
            title, path = item, item
        results.append((classify_deliverable(path), title, path))
    return results


class CompletionObserver:
    """Watches Gateway notifications for signals from mission-control sessions."""

    def __init__(
        self,
        store: TaskStore,
        mission_control: MissionControlClient,
        outbox: Outbox,
        broadcasts: Optional[Topic[BroadcastEvent]] = None,
        seen_signals: Optional[TTLCache] = None,
        forwarded: Optional[TTLCache] = None,
    ):
        self.store = store
        self.mission_control = mission_control
        self.outbox = outbox
        self.broadcasts = broadcasts if broadcasts is not None else Topic("tasks.broadcast")
        self.seen_signals = seen_signals if seen_signals is not None else TTLCache()
        self.forwarded = forwarded if forwarded is not None else TTLCache()

    def attach(self, link: GatewayLink) -> Subscription:
        """Subscribe to ``link``; attaching again returns the existing subscription."""
        return link.notifications.subscribe(self.handle_notification)

    async def handle_notification(self, notification: Any) -> None:
        with correlation_context(generate_correlation_id("ntf")):
            try:
                await self._process(notification)
            except Exception as e:
                logger.error(
                    "Completion observer failed to handle notification",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True
                )
                await log_diagnostic(self.store, "completion_signal", "failure", str(e))

    async def _process(self, notification: Any) -> None:
        session_id = extract_session_id(notification)
        if not session_id or not session_id.startswith(SESSION_PREFIX):
            return

        for signal in extract_signals(notification):
            dedup_key = f"{session_id}:{signal.kind}:{signal.raw}"
            if self.seen_signals.check_and_add(dedup_key):
                await log_diagnostic(
                    self.store,
                    "completion_signal",
                    "skipped",
                    "Duplicate signal suppressed",
                    {"session_id": session_id, "signal_kind": signal.kind}
                )
                continue

            resolved = await self.resolve_active_task(session_id)
            if resolved is None:
                logger.info(
                    "No active task for session, skipping signal",
                    session_id=session_id,
                    signal_kind=signal.kind
                )
                continue

            session, task = resolved
            logger.info(
                "Agent signal received",
                session_id=session_id,
                signal_kind=signal.kind,
                task_id=task.id,
                signal_text=sanitize_message_text(signal.raw, max_length=200)
            )
            await self._apply_signal(session_id, session, task, signal)

    async def resolve_active_task(self, session_id: str) -> Optional[tuple[GatewaySession, Task]]:
        """Active session → its agent → that agent's most recently updated open task."""
        session = await self.store.get_active_session(session_id)
        if session is None:
            return None
        task = await self.store.get_latest_task_for_agent(session.agent_id, ACTIVE_TASK_STATUSES)
        if task is None:
            return None
        return session, task

    async def _apply_signal(self, session_id: str, session: GatewaySession, task: Task, signal: Signal) -> None:
        if isinstance(signal, ProgressUpdate):
            await self._log_activity(TaskActivity(
                task_id=task.id,
                activity_type=ActivityType.UPDATED,
                message=f"Progress update: {signal.changed}",
                metadata={"next": signal.next, "eta": signal.eta},
                agent_id=session.agent_id,
            ))
        elif isinstance(signal, Blocked):
            await self._log_activity(TaskActivity(
                task_id=task.id,
                activity_type=ActivityType.STATUS_CHANGED,
                message=f"Blocked: {signal.blocked_on}",
                metadata={"need": signal.need, "meanwhile": signal.meanwhile},
                agent_id=session.agent_id,
            ))
        elif isinstance(signal, TaskComplete):
            await self._log_activity(TaskActivity(
                task_id=task.id,
                activity_type=ActivityType.COMPLETED,
                message=signal.summary,
                agent_id=session.agent_id,
            ))
            await self._record_deliverables(task, signal.summary)
            await self._queue_forward(session_id, f"TASK_COMPLETE: {signal.summary}")

    async def _log_activity(self, activity: TaskActivity) -> None:
        stored = await self.store.add_activity(activity)
        await self.broadcasts.publish(BroadcastEvent(
            type=BroadcastType.ACTIVITY_LOGGED,
            payload=stored.model_dump(mode="json"),
        ))

    async def _record_deliverables(self, task: Task, summary: str) -> list[Deliverable]:
        parsed = parse_deliverables(summary)
        if not parsed:
            return []

        existing = {(d.deliverable_type, d.path) for d in await self.store.list_deliverables(task.id)}
        added = []
        for deliverable_type, title, path in parsed:
            if (deliverable_type, path) in existing:
                continue
            existing.add((deliverable_type, path))
            deliverable = await self.store.add_deliverable(Deliverable(
                task_id=task.id,
                deliverable_type=deliverable_type,
                title=title,
                path=path,
            ))
            added.append(deliverable)
            await self.broadcasts.publish(BroadcastEvent(
                type=BroadcastType.DELIVERABLE_ADDED,
                payload=deliverable.model_dump(mode="json"),
            ))

        if added:
            logger.info("Deliverables recorded", task_id=task.id, deliverable_count=len(added))
        return added

    async def _claim_forward(self, session_id: str, message: str) -> bool:
        if self.forwarded.check_and_add(f"{session_id}:{message}"):
            await log_diagnostic(
                self.store,
                "completion_forward",
                "skipped",
                "Duplicate TASK_COMPLETE signal suppressed",
                {"session_id": session_id, "completion_message": message}
            )
            return False
        return True

    async def _queue_forward(self, session_id: str, message: str) -> None:
        if not await self._claim_forward(session_id, message):
            return
        self.outbox.submit(
            "completion_forward",
            lambda: self._deliver(session_id, message),
            session_id=session_id
        )

    async def _deliver(self, session_id: str, message: str) -> bool:
        await log_diagnostic(
            self.store,
            "completion_forward",
            "attempt",
            "Forwarding TASK_COMPLETE to webhook",
            {"session_id": session_id, "completion_message": message}
        )
        try:
            await self.mission_control.forward_completion(session_id, message)
        except DownstreamError as e:
            logger.error("Completion webhook failed", session_id=session_id, error=str(e))
            await log_diagnostic(
                self.store,
                "completion_forward",
                "failure",
                "Completion webhook request failed",
                {"session_id": session_id, "error": str(e)}
            )
            return False

        await log_diagnostic(
            self.store,
            "completion_forward",
            "success",
            "Completion webhook accepted",
            {"session_id": session_id}
        )
        return True

    async def forward_completion(self, session_id: str, message: str) -> bool:
        """Forward ``message`` now unless the same (session, message) was forwarded recently."""
        if not await self._claim_forward(session_id, message):
            return False
        return await self._deliver(session_id, message)

    async def trigger_synthetic_completion(self, session_id: str, summary: Optional[str]) -> tuple[str, str]:
        """Push a synthetic completion through the forwarding path for diagnostics."""
        clean_session_id = normalize_session_id(session_id or "")
        if not clean_session_id.startswith(SESSION_PREFIX):
            raise TaskValidationError(
                "session_id must resolve to a mission-control-* session",
                code="INVALID_SESSION",
                details={"session_id": session_id}
            )

        safe_summary = (summary or "").strip() or "synthetic completion test"
        message = f"TASK_COMPLETE: {safe_summary} [synthetic:{epoch_ms()}]"
        await self.forward_completion(clean_session_id, message)
        return clean_session_id, message
