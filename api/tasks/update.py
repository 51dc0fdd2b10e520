"""Task update endpoint (PATCH /api/tasks/{id})."""

from typing import Optional

from pydantic import ValidationError

from src.models.task import TaskUpdate
from src.services.orchestrator import Orchestrator, get_orchestrator
from src.utils.errors import CodedError
from src.utils.logging import correlation_context, generate_correlation_id, get_structured_logger
from src.utils.responses import coded_error_response, error_response, json_response, parse_body, path_param

logger = get_structured_logger(__name__)

ACTOR_KEYS = ("actor_agent_id", "updated_by_agent_id")


async def handler(request: dict, app: Optional[Orchestrator] = None) -> dict:
    """
    Apply a partial update to a task.

    The acting agent, if any, is read from ``actor_agent_id`` in the body or
    the ``x-agent-id`` header; without one the update counts as a human edit.
    """
    app = app or get_orchestrator()
    task_id = path_param(request, "id")
    if not task_id:
        return error_response(400, "Task id is required")

    try:
        body = parse_body(request)
    except ValueError:
        return error_response(400, "Invalid JSON body")

    actor_agent_id = None
    for key in ACTOR_KEYS:
        actor_agent_id = actor_agent_id or body.pop(key, None)
    headers = {k.lower(): v for k, v in (request.get("headers") or {}).items()}
    actor_agent_id = actor_agent_id or headers.get("x-agent-id")

    try:
        update = TaskUpdate.model_validate(body)
    except ValidationError as e:
        return error_response(400, "Invalid task update", code="VALIDATION_ERROR", details=e.errors(include_url=False))

    with correlation_context(generate_correlation_id("req")):
        try:
            task = await app.engine.update_task(task_id, update, actor_agent_id=actor_agent_id)
        except CodedError as e:
            logger.info("Task update rejected", task_id=task_id, error_code=e.code, reason=e.message)
            return coded_error_response(e)
        except Exception as e:
            logger.error("Failed to update task", task_id=task_id, error=str(e), exc_info=True)
            return error_response(500, "Failed to update task")

    return json_response(200, task.model_dump(mode="json"))
