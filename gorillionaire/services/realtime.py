"""
Live push channels.

Two fan-out hubs live here: WebSocket subscribers (per-token event feeds and
the notifications feed) and Server-Sent-Event subscribers for new signals.
Both are only touched from the event loop.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Dict, List, Set

from fastapi import WebSocket, WebSocketDisconnect

from gorillionaire.core.logger import Logger
from gorillionaire.core.timezone import utc_now

logger = Logger("Realtime")


def _message(msg_type: str, **fields) -> Dict[str, Any]:
    payload = {"type": msg_type}
    payload.update(fields)
    payload["timestamp"] = utc_now().isoformat()
    return payload


class WebSocketHub:
    """Tracks open sockets by subscription and broadcasts to them."""

    def __init__(self):
        self.token_subscribers: Dict[str, List[WebSocket]] = {}
        self.notification_subscribers: List[WebSocket] = []

    @property
    def connection_count(self) -> int:
        return sum(len(v) for v in self.token_subscribers.values()) + len(self.notification_subscribers)

    async def subscribe_token(self, websocket: WebSocket, token_name: str):
        self.token_subscribers.setdefault(token_name, []).append(websocket)
        await self.send(websocket, _message("CONNECTION_ESTABLISHED", message=f"Subscribed to {token_name} events"))
        logger.debug(f"WebSocket subscribed to {token_name}. Total connections: {self.connection_count}")

    async def subscribe_notifications(self, websocket: WebSocket):
        self.notification_subscribers.append(websocket)
        await self.send(websocket, _message("CONNECTION_ESTABLISHED", message="Subscribed to notifications"))

    def disconnect(self, websocket: WebSocket):
        # WebSocket compares equal by scope, so match on identity
        for token_name, sockets in list(self.token_subscribers.items()):
            remaining = [ws for ws in sockets if ws is not websocket]
            if remaining:
                self.token_subscribers[token_name] = remaining
            else:
                del self.token_subscribers[token_name]
        self.notification_subscribers = [ws for ws in self.notification_subscribers if ws is not websocket]

    async def send(self, websocket: WebSocket, data: Dict[str, Any]) -> bool:
        try:
            await websocket.send_text(json.dumps(data, default=str))
            return True
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.debug(f"Dropping socket after failed send: {e}")
            self.disconnect(websocket)
            return False

    async def handle_message(self, websocket: WebSocket, raw: str):
        """Answer client keep-alive pings. Anything else is ignored."""
        try:
            data = json.loads(raw)
        except ValueError:
            logger.debug("Ignoring non-JSON WebSocket message")
            return
        if isinstance(data, dict) and data.get("type") == "PING":
            await self.send(websocket, _message("PONG"))

    async def _fan_out(self, sockets: List[WebSocket], payload: Dict[str, Any]) -> int:
        delivered = 0
        for websocket in list(sockets):
            if await self.send(websocket, payload):
                delivered += 1
        return delivered

    async def broadcast_event(self, token_name: str, event: Dict[str, Any]) -> int:
        sockets = self.token_subscribers.get(token_name, [])
        return await self._fan_out(sockets, _message("NEW_EVENT", data=event))

    async def broadcast_notification(self, notification: Dict[str, Any]) -> int:
        return await self._fan_out(self.notification_subscribers, _message("NOTIFICATION", data=notification))

    async def close_all(self):
        for websocket in list(self.notification_subscribers) + [
            ws for sockets in self.token_subscribers.values() for ws in sockets
        ]:
            try:
                await websocket.close(code=1001)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.debug(f"Socket already gone on shutdown: {e}")
        self.token_subscribers.clear()
        self.notification_subscribers.clear()


class SSEHub:
    """Queue-per-subscriber broadcaster for the signals SSE stream."""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self.subscribers: Set[asyncio.Queue] = set()

    def subscribe(self) -> asyncio.Queue:
        queue = asyncio.Queue(maxsize=self.queue_size)
        self.subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        self.subscribers.discard(queue)

    def publish(self, event: str, data: Dict[str, Any]) -> int:
        message = {"type": event, "data": data, "timestamp": utc_now().isoformat()}
        delivered = 0
        for queue in list(self.subscribers):
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                # Slow consumer, it misses this tick
                logger.warn("SSE subscriber queue full, dropping message")
        return delivered

    async def stream(self, queue: asyncio.Queue, keepalive: float) -> AsyncIterator[str]:
        try:
            yield ": connected\n\n"
            while True:
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=keepalive)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield f"data: {json.dumps(message, default=str)}\n\n"
        finally:
            self.unsubscribe(queue)


ws_hub = WebSocketHub()
sse_hub = SSEHub()
