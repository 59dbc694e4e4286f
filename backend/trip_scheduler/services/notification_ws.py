from __future__ import annotations
from typing import Dict, Set
from fastapi import WebSocket, WebSocketDisconnect
import asyncio
import json
import logging

logger = logging.getLogger(__name__)

class NotificationConnectionManager:
    """WebSocket connections per traveller email.
    Every open tab of the My Trips page keeps one socket here.
    """
    def __init__(self) -> None:
        self._user_sockets: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, email: str, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self._user_sockets.setdefault(email.lower(), set()).add(websocket)

    async def disconnect(self, email: str, websocket: WebSocket):
        async with self._lock:
            conns = self._user_sockets.get(email.lower())
            if conns and websocket in conns:
                conns.remove(websocket)
                if not conns:
                    self._user_sockets.pop(email.lower(), None)

    async def send_to_user(self, email: str, payload: dict) -> int:
        """Push one payload to every open socket of the user; returns how many got it."""
        message = json.dumps(payload, ensure_ascii=False, default=str)
        async with self._lock:
            conns = list(self._user_sockets.get(email.lower(), []))
        delivered = 0
        for ws in conns:
            try:
                await ws.send_text(message)
                delivered += 1
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                # Stale socket; drop it so the next push skips it
                logger.debug("Dropping websocket for %s: %s", email, e)
                await self.disconnect(email, ws)
        return delivered

manager = NotificationConnectionManager()
