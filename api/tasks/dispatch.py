"""Task dispatch endpoint (POST /api/tasks/{id}/dispatch)."""

from typing import Optional

from src.services.orchestrator import Orchestrator, get_orchestrator
from src.utils.errors import CodedError, GatewayConnectionError, GatewayRPCError, GatewayTimeoutError
from src.utils.logging import correlation_context, generate_correlation_id, get_structured_logger
from src.utils.responses import coded_error_response, error_response, json_response, path_param

logger = get_structured_logger(__name__)


async def handler(request: dict, app: Optional[Orchestrator] = None) -> dict:
    app = app or get_orchestrator()
    task_id = path_param(request, "id")
    if not task_id:
        return error_response(400, "Task id is required")

    with correlation_context(generate_correlation_id("req")):
        try:
            result = await app.dispatcher.dispatch_task(task_id)
        except CodedError as e:
            return coded_error_response(e)
        except GatewayConnectionError as e:
            return error_response(503, str(e))
        except (GatewayRPCError, GatewayTimeoutError) as e:
            return error_response(502, f"Failed to send task to agent: {e}")
        except Exception as e:
            logger.error("Failed to dispatch task", task_id=task_id, error=str(e), exc_info=True)
            return error_response(500, "Failed to dispatch task")

    return json_response(200, {**result, "message": "Task dispatched to agent"})
