"""WebSocket RPC link to the agent Gateway."""

import asyncio
import json
from contextlib import suppress
from typing import Any, Optional, Union

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from src.models.gateway import GatewayFrame, GatewayRequest
from src.services.topics import Topic
from src.utils.config import RECONNECT_DELAY_SECONDS, RPC_TIMEOUT_SECONDS, get_gateway_url
from src.utils.errors import GatewayConnectionError, GatewayRPCError, GatewayTimeoutError
from src.utils.ids import epoch_ms, generate_id
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

CONNECT_TIMEOUT_SECONDS = 10.0


class GatewayLink:
    """
    Duplex JSON-RPC connection to the Gateway.

    Responses resolve the matching ``call()``. Frames without a pending id
    that carry a ``method`` are notifications: they are published on
    ``notifications`` and then on ``topic(method)`` with the frame's params.
    Notification handlers run one at a time inside the reader loop, so a
    handler must not await ``call()`` itself; submit follow-up RPCs to the
    outbox instead.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        rpc_timeout: float = RPC_TIMEOUT_SECONDS,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
    ):
        self.url = url or get_gateway_url()
        self.rpc_timeout = rpc_timeout
        self.reconnect_delay = reconnect_delay
        self.notifications: Topic[dict] = Topic("gateway.notifications")
        self._method_topics: dict[str, Topic[Any]] = {}
        self._ws = None
        self._connected = False
        self._closing = False
        self._message_id = 0
        self._pending: dict[int, asyncio.Future] = {}
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._connect_lock = asyncio.Lock()

    def is_connected(self) -> bool:
        return self._connected and self._ws is not None

    def topic(self, method: str) -> Topic[Any]:
        """Topic receiving the params of every ``method`` notification."""
        if method not in self._method_topics:
            self._method_topics[method] = Topic(f"gateway.{method}")
        return self._method_topics[method]

    async def connect(self) -> None:
        """Open the transport. Raises GatewayConnectionError on failure."""
        self._closing = False
        await self._open()

    async def _open(self) -> None:
        async with self._connect_lock:
            if self.is_connected():
                return
            try:
                ws = await asyncio.wait_for(websockets.connect(self.url), timeout=CONNECT_TIMEOUT_SECONDS)
            except (OSError, asyncio.TimeoutError, InvalidURI, InvalidHandshake) as e:
                raise GatewayConnectionError(f"Failed to connect to OpenClaw Gateway: {e}") from e

            self._ws = ws
            self._connected = True
            self._reader_task = asyncio.create_task(self._read_loop(ws))
            logger.info("Connected to Gateway", gateway_url=self.url)

    async def disconnect(self) -> None:
        """Close the transport and stop reconnecting."""
        self._closing = True
        if self._reconnect_task and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._reconnect_task = None

        ws = self._ws
        self._ws = None
        self._connected = False
        if ws is not None:
            await ws.close()
            logger.info("Disconnected from Gateway", gateway_url=self.url)

        reader, self._reader_task = self._reader_task, None
        if reader is not None and reader is not asyncio.current_task():
            with suppress(asyncio.CancelledError):
                await reader

    async def _read_loop(self, ws) -> None:
        try:
            async for raw in ws:
                await self._handle_message(raw)
        except ConnectionClosed as e:
            logger.warning("Gateway connection closed", gateway_url=self.url, error=str(e))
        finally:
            if self._ws is ws:
                self._ws = None
                self._connected = False
                logger.info("Disconnected from Gateway", gateway_url=self.url)
                if not self._closing:
                    self.schedule_reconnect()

    def schedule_reconnect(self) -> None:
        if self._reconnect_task and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        while not self._closing and not self.is_connected():
            await asyncio.sleep(self.reconnect_delay)
            if self._closing:
                return
            logger.info("Attempting Gateway reconnect", gateway_url=self.url)
            try:
                await self._open()
            except GatewayConnectionError as e:
                logger.warning("Gateway reconnect failed", gateway_url=self.url, error=str(e))

    async def _handle_message(self, raw: Union[str, bytes, dict]) -> None:
        if isinstance(raw, dict):
            data = raw
        else:
            try:
                data = json.loads(raw)
            except (TypeError, ValueError) as e:
                logger.warning("Failed to parse Gateway frame", error=str(e))
                return

        if not isinstance(data, dict):
            logger.warning("Dropping non-object Gateway frame", frame_type=type(data).__name__)
            return

        try:
            frame = GatewayFrame.model_validate(data)
        except ValidationError as e:
            logger.warning("Dropping malformed Gateway frame", error=str(e))
            return

        if frame.id is not None and frame.id in self._pending:
            future = self._pending.pop(frame.id)
            if future.done():
                return
            if frame.error is not None:
                future.set_exception(GatewayRPCError(frame.error.message))
            else:
                future.set_result(frame.result)
            return

        if frame.method:
            await self.notifications.publish(data)
            topic = self._method_topics.get(frame.method)
            if topic is not None:
                await topic.publish(frame.params)

    async def call(self, method: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Send an RPC request and wait for its result."""
        if not self.is_connected():
            raise GatewayConnectionError("Not connected to OpenClaw Gateway")

        self._message_id += 1
        request = GatewayRequest(id=self._message_id, method=method, params=params)
        future = asyncio.get_running_loop().create_future()
        self._pending[request.id] = future

        try:
            try:
                await self._ws.send(json.dumps(request.model_dump(exclude_none=True)))
            except ConnectionClosed as e:
                raise GatewayConnectionError(f"Gateway connection closed: {e}") from e
            try:
                return await asyncio.wait_for(future, timeout=self.rpc_timeout)
            except asyncio.TimeoutError:
                raise GatewayTimeoutError(f"Request timeout: {method}") from None
        finally:
            self._pending.pop(request.id, None)

    async def list_sessions(self) -> list[dict]:
        return await self.call("sessions.list") or []

    async def get_session_history(self, session_id: str) -> list[Any]:
        return await self.call("sessions.history", {"session_id": session_id}) or []

    async def send_to_session(self, session_id: str, content: str) -> None:
        await self.call("sessions.send", {"session_id": session_id, "content": content})

    async def chat_send(self, session_key: str, message: str, idempotency_key: Optional[str] = None) -> Any:
        return await self.call("chat.send", {
            "sessionKey": session_key,
            "message": message,
            "idempotencyKey": idempotency_key or f"mc-{epoch_ms()}-{generate_id()}",
        })

    async def list_agents(self) -> list[dict]:
        return await self.call("agents.list") or []

    async def list_models(self) -> list[dict]:
        return await self.call("models.list") or []

    async def get_gateway_config(self) -> dict:
        return await self.call("config.get") or {}


# Global link instance (singleton pattern)
_link: Optional[GatewayLink] = None


def get_gateway_link() -> GatewayLink:
    """Get or create the process-wide Gateway link."""
    global _link
    if _link is None:
        _link = GatewayLink()
    return _link


def reset_gateway_link() -> None:
    global _link
    _link = None
