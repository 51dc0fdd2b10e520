"""Gateway diagnostics endpoint (GET /api/gateway/diagnostics)."""

from typing import Optional

from src.services.diagnostics import get_recent_diagnostics
from src.services.orchestrator import Orchestrator, get_orchestrator
from src.utils.logging import get_structured_logger
from src.utils.responses import error_response, json_response, query_param

logger = get_structured_logger(__name__)

DEFAULT_LIMIT = 100
MAX_LIMIT = 500


async def handler(request: dict, app: Optional[Orchestrator] = None) -> dict:
    """Recent diagnostic events, newest first, plus link and outbox state."""
    app = app or get_orchestrator()
    try:
        limit = int(query_param(request, "limit", str(DEFAULT_LIMIT)))
    except ValueError:
        limit = DEFAULT_LIMIT
    limit = max(1, min(limit, MAX_LIMIT))

    try:
        events = await get_recent_diagnostics(app.store, limit=limit)
    except Exception as e:
        logger.error("Failed to load diagnostics", error=str(e), exc_info=True)
        return error_response(500, "Failed to load diagnostics")

    return json_response(200, {
        "gateway_connected": app.link.is_connected(),
        "outbox": {
            "pending": app.outbox.pending(),
            "processed": app.outbox.processed,
            "failed": app.outbox.failed,
            "dropped": app.outbox.dropped,
        },
        "events": events,
    })
