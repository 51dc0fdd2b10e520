"""Agent ↔ Gateway session link endpoint (GET/POST/DELETE /api/agents/{id}/openclaw)."""

from typing import Optional

from src.services.orchestrator import Orchestrator, get_orchestrator
from src.utils.errors import CodedError, GatewayConnectionError, GatewayRPCError, GatewayTimeoutError
from src.utils.logging import get_structured_logger
from src.utils.responses import coded_error_response, error_response, json_response, path_param

logger = get_structured_logger(__name__)


def _serialize(result: dict) -> dict:
    session = result.get("session")
    if session is not None:
        result = {**result, "session": session.model_dump(mode="json")}
    return result


async def handler(request: dict, app: Optional[Orchestrator] = None) -> dict:
    app = app or get_orchestrator()
    agent_id = path_param(request, "id")
    if not agent_id:
        return error_response(400, "Agent id is required")

    method = (request.get("method") or "GET").upper()
    service = app.session_links

    try:
        if method == "GET":
            return json_response(200, _serialize(await service.get_link(agent_id)))
        if method == "POST":
            result = await service.link_agent(agent_id)
            return json_response(200 if result["reused"] else 201, _serialize(result))
        if method == "DELETE":
            return json_response(200, await service.unlink_agent(agent_id))
    except CodedError as e:
        return coded_error_response(e)
    except (GatewayConnectionError, GatewayRPCError, GatewayTimeoutError) as e:
        return error_response(503, str(e))
    except Exception as e:
        logger.error("Agent session link operation failed", agent_id=agent_id, http_method=method, error=str(e), exc_info=True)
        return error_response(500, "Failed to update agent session link")

    return error_response(405, f"Method {method} not allowed")
