"""WebSocket channel carrying the browser session protocol."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Mapping
from typing import Final

from aiohttp import WSCloseCode, WSMsgType, web

from specrunner.sessions import BrowserSessionRegistry, Connected, Disconnected

logger = logging.getLogger(__name__)

CHANNEL_PATH: Final = "/.socket"
HEARTBEAT_SECONDS: Final = 10.0


class SocketChannel:
    """Outbound half of one browser socket.

    ``send`` only queues; a single pump task writes frames in order.
    """

    def __init__(self, socket: web.WebSocketResponse) -> None:
        self._socket = socket
        self._outbox: asyncio.Queue[dict[str, object]] = asyncio.Queue()

    def send(self, event: str, payload: Mapping[str, object]) -> None:
        self._outbox.put_nowait({"event": event, "payload": dict(payload)})

    async def pump(self) -> None:
        while True:
            message = await self._outbox.get()
            if self._socket.closed:
                return
            try:
                await self._socket.send_str(json.dumps(message, sort_keys=True))
            except ConnectionResetError:
                logger.debug("Dropped %s frame for a closing socket.", message["event"])
                return


class ChannelEndpoint:
    """Accept browser sockets and turn their frames into session events.

    A socket that closes for any reason, including a failed heartbeat,
    disconnects its session.
    """

    def __init__(
        self, registry: BrowserSessionRegistry, heartbeat: float | None = HEARTBEAT_SECONDS
    ) -> None:
        self._registry = registry
        self._heartbeat = heartbeat
        self._sockets: set[web.WebSocketResponse] = set()
        self._counter = 0

    def _next_connection_id(self) -> str:
        self._counter += 1
        return f"conn-{self._counter:06d}"

    def receive(self, connection_id: str, data: str) -> dict[str, object]:
        """Decode one text frame, apply it and return the acknowledgement."""
        try:
            message = json.loads(data)
        except json.JSONDecodeError:
            return {"ok": False, "ignored": True, "reason": "Invalid JSON."}
        return self._registry.handle_message(connection_id, message)

    async def serve(self, request: web.Request) -> web.WebSocketResponse:
        """Run one browser connection until its socket closes."""
        socket = web.WebSocketResponse(heartbeat=self._heartbeat)
        await socket.prepare(request)
        connection_id = self._next_connection_id()
        channel = SocketChannel(socket)
        pump = asyncio.create_task(channel.pump())
        self._sockets.add(socket)
        self._registry.handle(Connected(connection_id, channel))
        try:
            async for frame in socket:
                if frame.type == WSMsgType.TEXT:
                    channel.send("ack", self.receive(connection_id, frame.data))
                elif frame.type == WSMsgType.ERROR:
                    logger.warning(
                        "Channel %s closed with error: %s", connection_id, socket.exception()
                    )
        finally:
            self._sockets.discard(socket)
            self._registry.handle(Disconnected(connection_id))
            pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump
        return socket

    async def close_all(self) -> None:
        """Close every open socket; their sessions disconnect as the handlers unwind."""
        for socket in tuple(self._sockets):
            await socket.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")
