"""Synthetic completion trigger (POST /api/gateway/diagnostics/trigger-completion)."""

from typing import Optional

from src.services.orchestrator import Orchestrator, get_orchestrator
from src.utils.config import is_production
from src.utils.errors import CodedError
from src.utils.logging import get_structured_logger
from src.utils.responses import coded_error_response, error_response, json_response, parse_body

logger = get_structured_logger(__name__)


async def handler(request: dict, app: Optional[Orchestrator] = None) -> dict:
    """Push a fake TASK_COMPLETE through the webhook path. Disabled in production."""
    if is_production():
        return error_response(403, "Synthetic completion trigger is disabled in production")

    app = app or get_orchestrator()
    try:
        body = parse_body(request)
    except ValueError:
        return error_response(400, "Invalid JSON body")

    session_id = body.get("session_id")
    if not isinstance(session_id, str) or not session_id.strip():
        return error_response(400, "session_id is required", code="INVALID_SESSION")
    summary = body.get("summary")
    if summary is not None and not isinstance(summary, str):
        return error_response(400, "summary must be a string", code="VALIDATION_ERROR")

    try:
        clean_session_id, message = await app.completion_observer.trigger_synthetic_completion(session_id, summary)
    except CodedError as e:
        return coded_error_response(e)
    except Exception as e:
        logger.error("Synthetic completion failed", error=str(e), exc_info=True)
        return error_response(500, "Failed to trigger synthetic completion")

    return json_response(200, {"success": True, "session_id": clean_session_id, "message": message})
