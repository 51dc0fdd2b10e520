"""HTTP client for the Mission Control completion webhook and dispatch endpoint."""

from typing import Any, Optional

import httpx

from src.utils.config import get_mission_control_url
from src.utils.errors import DownstreamError
from src.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class MissionControlClient:
    """Thin async wrapper over the two Mission Control endpoints the pipeline calls."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.base_url = (base_url or get_mission_control_url()).rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def _post(self, path: str, payload: Optional[dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            with log_timing("mission_control_post", logger=logger, path=path):
                response = await self._client.post(url, json=payload or {})
        except httpx.HTTPError as e:
            raise DownstreamError(f"POST {path} failed: {e}") from e

        if response.status_code < 200 or response.status_code >= 300:
            raise DownstreamError(f"POST {path} returned {response.status_code}: {response.text[:200]}")

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    async def forward_completion(self, session_id: str, message: str) -> None:
        """Deliver a completion message to the agent-completion webhook."""
        await self._post("/api/webhooks/agent-completion", {"session_id": session_id, "message": message})
        logger.info("Completion forwarded", session_id=session_id)

    async def request_dispatch(self, task_id: str) -> Any:
        """Ask Mission Control to dispatch a task to its assigned agent."""
        result = await self._post(f"/api/tasks/{task_id}/dispatch")
        logger.info("Dispatch requested", task_id=task_id)
        return result

    async def aclose(self) -> None:
        await self._client.aclose()
