"""Live game feed over WebSocket.

Every frame a client receives has the same envelope::

    {"type": "world_snapshot", "data": {...}, "timestamp": "2026-01-01T00:00:00+00:00"}

Session events arrive on the threaded EventBus and are forwarded by
``SessionEventBridge`` onto the app's event loop.
"""

import asyncio
import json
import queue
import threading
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger

from oncall.simulation import GameSession, GameState

router = APIRouter(prefix="/ws", tags=["websocket"])


def frame(event_type: str, data: Any = None, **extra: Any) -> dict:
    """Build one outgoing frame. A ``GameState`` payload is serialised here."""
    if isinstance(data, GameState):
        data = data.to_dict()
    message: dict[str, Any] = {"type": event_type}
    if data is not None:
        message["data"] = data
    message.update(extra)
    message["timestamp"] = datetime.now(timezone.utc).isoformat()
    return message


def snapshot_frame(session: GameSession) -> dict:
    return frame("world_snapshot", session.state)


class LiveFeed:
    """The set of connected dashboards and the frames pushed to them."""

    def __init__(self):
        self._clients: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def join(self, websocket: WebSocket, session: Optional[GameSession]) -> None:
        """Accept a client, greet it and hand it the current world."""
        await websocket.accept()
        async with self._lock:
            self._clients.add(websocket)
        logger.info(f"Live feed client joined ({self.client_count} connected)")
        await self.send(websocket, frame("connected", message="ONCALL UPLINK ESTABLISHED"))
        if session is not None:
            await self.send(websocket, snapshot_frame(session))

    async def leave(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._clients.discard(websocket)
        logger.info(f"Live feed client left ({self.client_count} connected)")

    async def send(self, websocket: WebSocket, message: dict) -> bool:
        try:
            await websocket.send_text(json.dumps(message))
        except Exception as e:
            logger.warning(f"Live feed send failed: {e}")
            return False
        return True

    async def broadcast(self, message: dict) -> None:
        """Send one frame to every client, dropping the ones that fail."""
        async with self._lock:
            clients = list(self._clients)
        if not clients:
            return
        results = await asyncio.gather(*(self.send(ws, message) for ws in clients))
        dead = {ws for ws, ok in zip(clients, results) if not ok}
        if dead:
            async with self._lock:
                self._clients -= dead


feed = LiveFeed()


@router.websocket("/live")
async def websocket_live(websocket: WebSocket):
    """Live game feed: snapshots, incidents, feedback, game state changes."""
    session = getattr(websocket.app.state, "game_session", None)
    await feed.join(websocket, session)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await feed.send(websocket, frame("error", message="Invalid JSON"))
                continue
            await handle_client_message(websocket, message)
    except WebSocketDisconnect:
        await feed.leave(websocket)


async def handle_client_message(websocket: WebSocket, message: Any) -> None:
    msg_type = message.get("type") if isinstance(message, dict) else None

    if msg_type == "ping":
        await feed.send(websocket, frame("pong"))
    elif msg_type == "get_state":
        session = getattr(websocket.app.state, "game_session", None)
        if session is None:
            reply = frame("error", message="Game session not available")
        else:
            reply = snapshot_frame(session)
        await feed.send(websocket, reply)
    else:
        await feed.send(websocket, frame("error", message=f"Unknown message type: {msg_type}"))


class SessionEventBridge:
    """Daemon thread forwarding session EventBus messages to the live feed."""

    def __init__(self, event_bus, loop: asyncio.AbstractEventLoop):
        self._event_bus = event_bus
        self._loop = loop
        self._sub = event_bus.subscribe()
        self._running = True
        self._thread = threading.Thread(
            target=self._bridge_loop, daemon=True, name="oncall-ws-bridge"
        )

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._running = False
        self._event_bus.unsubscribe(self._sub)

    def _bridge_loop(self) -> None:
        while self._running:
            try:
                msg = self._sub.get(timeout=0.5)
            except queue.Empty:
                continue
            if self._loop.is_closed():
                break
            data = msg.get("data")
            message = frame(msg.get("type", "unknown"), data if data is not None else {})
            asyncio.run_coroutine_threadsafe(feed.broadcast(message), self._loop)


def start_session_event_bridge(event_bus, loop: asyncio.AbstractEventLoop) -> SessionEventBridge:
    """Start forwarding ``event_bus`` messages to every connected client."""
    bridge = SessionEventBridge(event_bus, loop)
    bridge.start()
    return bridge
