"""Operator-facing diagnostic log stored as system audit events."""

import re
from typing import Any, Optional

from src.models.event import AuditEvent, EventType
from src.services.task_store import TaskStore
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

DIAGNOSTIC_PREFIX = "[gateway:"
DIAGNOSTIC_PATTERN = re.compile(r"^\[gateway:([^:\]]+):([^\]]+)\]\s*(.*)$", re.DOTALL)


def format_diagnostic(kind: str, status: str, message: str) -> str:
    return f"{DIAGNOSTIC_PREFIX}{kind}:{status}] {message}"


async def log_diagnostic(
    store: Optional[TaskStore],
    kind: str,
    status: str,
    message: str,
    metadata: Optional[dict[str, Any]] = None,
) -> None:
    """Record a diagnostic event. Never raises."""
    metadata = metadata or {}
    logger.info(
        "Gateway diagnostic",
        diagnostic_kind=kind,
        diagnostic_status=status,
        detail=message,
        diagnostic_metadata=metadata
    )

    if store is None:
        return

    try:
        await store.record_event(AuditEvent(
            type=EventType.SYSTEM,
            message=format_diagnostic(kind, status, message),
            metadata={**metadata, "kind": kind, "status": status},
        ))
    except Exception as e:
        logger.warning(
            "Failed to record diagnostic event",
            diagnostic_kind=kind,
            error=str(e),
            error_type=type(e).__name__
        )


def parse_diagnostic(event: AuditEvent) -> Optional[dict[str, Any]]:
    match = DIAGNOSTIC_PATTERN.match(event.message)
    if not match:
        return None
    return {
        "id": event.id,
        "kind": match.group(1),
        "status": match.group(2),
        "message": match.group(3),
        "metadata": event.metadata,
        "created_at": event.created_at.isoformat(),
    }


async def get_recent_diagnostics(store: TaskStore, limit: int = 100) -> list[dict[str, Any]]:
    """Most recent diagnostics, newest first."""
    events = await store.list_events(EventType.SYSTEM, limit=limit, message_prefix=DIAGNOSTIC_PREFIX)
    diagnostics = []
    for event in events:
        parsed = parse_diagnostic(event)
        if parsed is not None:
            diagnostics.append(parsed)
    return diagnostics[:limit]
