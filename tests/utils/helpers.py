"""Test helper functions."""

import asyncio
import json
from typing import Any, Callable, Dict, Optional

import httpx

from src.services.gateway_link import GatewayLink

MISSION_CONTROL_TEST_URL = "http://mission-control.test"
COMMAND_CHANNEL_ID = "1471000000000000001"
COMMAND_SESSION_KEY = f"agent:main:discord:channel:{COMMAND_CHANNEL_ID}"


def create_request(
    method: str = "POST",
    path: str = "/",
    body: Any = None,
    path_params: Optional[Dict[str, str]] = None,
    query: Optional[Dict[str, str]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Create a handler request dict for testing."""
    return {
        "method": method,
        "path": path,
        "headers": headers or {"content-type": "application/json"},
        "body": json.dumps(body) if isinstance(body, dict) else body,
        "path_params": path_params or {},
        "query": query or {},
    }


def agent_notification(session_id: str, text: str, method: str = "chat.message") -> Dict[str, Any]:
    """Gateway notification carrying agent output for ``session_id``."""
    return {
        "method": method,
        "params": {
            "sessionKey": f"agent:main:{session_id}",
            "message": {"role": "assistant", "content": [{"type": "text", "text": text}]},
        },
    }


def chat_notification(
    session_key: str,
    text: str,
    sender_id: Optional[str] = "123456789012345678",
    role: Optional[str] = "user",
) -> Dict[str, Any]:
    """Gateway notification for a human message posted in a chat channel."""
    message: Dict[str, Any] = {"content": text}
    if sender_id is not None:
        message["senderId"] = sender_id
    if role is not None:
        message["role"] = role
    return {"method": "chat.message", "params": {"sessionKey": session_key, "message": message}}


class FakeWebSocket:
    """
    Stand-in for a client connection that records sent frames.

    ``responder(method, params)`` supplies the RPC result; raising inside it
    produces an error response. Returning ``NO_REPLY`` leaves the call pending.
    """

    NO_REPLY = object()

    def __init__(self, link: GatewayLink, responder: Optional[Callable[[str, Any], Any]] = None):
        self.link = link
        self.responder = responder
        self.sent: list[dict] = []
        self.closed = False
        self._replies: list[asyncio.Future] = []

    async def send(self, data: str) -> None:
        frame = json.loads(data)
        self.sent.append(frame)
        if self.responder is None:
            reply: Dict[str, Any] = {"id": frame["id"], "result": None}
        else:
            try:
                result = self.responder(frame["method"], frame.get("params"))
            except Exception as e:
                reply = {"id": frame["id"], "error": {"message": str(e)}}
            else:
                if result is self.NO_REPLY:
                    return
                reply = {"id": frame["id"], "result": result}
        self._replies.append(asyncio.ensure_future(self.link._handle_message(json.dumps(reply))))

    async def close(self) -> None:
        self.closed = True

    def calls(self, method: str) -> list[dict]:
        return [frame for frame in self.sent if frame["method"] == method]


def connect_fake(link: GatewayLink, responder: Optional[Callable[[str, Any], Any]] = None) -> FakeWebSocket:
    """Mark ``link`` connected over a FakeWebSocket without opening a socket."""
    ws = FakeWebSocket(link, responder)
    link._ws = ws
    link._connected = True
    return ws


class RecordingTransport:
    """httpx.MockTransport handler that records requests and replies with ``status_code``."""

    def __init__(self, status_code: int = 200, body: Any = None):
        self.status_code = status_code
        self.body = body if body is not None else {"ok": True}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)

    def json_bodies(self, path: Optional[str] = None) -> list[dict]:
        return [
            json.loads(r.content or b"{}") for r in self.requests
            if path is None or r.url.path == path
        ]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> None:
    """Poll ``predicate`` until it holds or ``timeout`` elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)
