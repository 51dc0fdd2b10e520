"""Minimal Gateway stand-in served over a real websocket."""

import json
from typing import Any

import websockets


class FakeGateway:
    """Answers every RPC with a canned result and can push notifications to the client."""

    def __init__(self, results: dict[str, Any] = None):
        self.results = results or {"sessions.list": []}
        self.connections: list = []
        self.requests: list[dict] = []
        self._server = None

    @property
    def url(self) -> str:
        port = self._server.sockets[0].getsockname()[1]
        return f"ws://127.0.0.1:{port}"

    async def start(self) -> "FakeGateway":
        self._server = await websockets.serve(self._handle, "127.0.0.1", 0)
        return self

    async def stop(self) -> None:
        self._server.close()
        await self._server.wait_closed()

    async def _handle(self, ws) -> None:
        self.connections.append(ws)
        async for raw in ws:
            frame = json.loads(raw)
            self.requests.append(frame)
            result = self.results.get(frame["method"], {"ok": True})
            await ws.send(json.dumps({"id": frame["id"], "result": result}))

    async def push(self, notification: dict) -> None:
        await self.connections[-1].send(json.dumps(notification))

    async def drop_client(self) -> None:
        await self.connections[-1].close()

    def calls(self, method: str) -> list[dict]:
        return [frame for frame in self.requests if frame["method"] == method]
