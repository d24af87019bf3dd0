from fastapi import WebSocket, WebSocketDisconnect
from typing import Dict, Optional, Set
import asyncio
import logging
import uuid

import config

logger = logging.getLogger(__name__)

SCORE_UPDATED = {"type": "SCORE_UPDATED"}


class RankingBroadcaster:
    """Tells connected leaderboard viewers that rankings may have changed.

    The event carries no data; viewers re-query the leaderboard.
    """

    def __init__(self):
        self.subscribers: Dict[str, WebSocket] = {}
        self.allowed_origins: list = []
        self._pending: Set[asyncio.Task] = set()

    def notify(self):
        """Schedule a broadcast without waiting for delivery."""
        if not self.subscribers:
            return
        try:
            task = asyncio.get_running_loop().create_task(self.broadcast(SCORE_UPDATED))
        except RuntimeError:
            logger.warning("No running event loop, dropping ranking notification")
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def broadcast(self, message: dict):
        disconnected = []
        for client_id, ws in list(self.subscribers.items()):
            try:
                await ws.send_json(message)
            except Exception:
                disconnected.append(client_id)
        for client_id in disconnected:
            self.subscribers.pop(client_id, None)
            logger.info("Dropped leaderboard subscriber %s (send failed)", client_id)

    async def drain(self):
        """Wait for scheduled broadcasts to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def connect(self, websocket: WebSocket, client_id: Optional[str] = None):
        origin = websocket.headers.get("origin", "")
        # Browsers always send Origin; non-browser viewers may omit it.
        if origin and self.allowed_origins and origin not in self.allowed_origins:
            logger.warning("Rejected WebSocket from unauthorized origin: %s", origin)
            await websocket.close(code=1008)
            return

        if len(self.subscribers) >= config.MAX_LEADERBOARD_SUBSCRIBERS:
            logger.warning("Leaderboard subscriber limit reached, rejecting connection")
            await websocket.close(code=1013)
            return

        await websocket.accept()
        client_id = client_id or uuid.uuid4().hex
        self.subscribers[client_id] = websocket
        logger.info("Leaderboard subscriber connected: %s", client_id)
        try:
            while True:
                await websocket.receive_text()  # viewers only listen
        except WebSocketDisconnect as exc:
            logger.info("Leaderboard subscriber %s disconnected (code %s)", client_id, exc.code)
        except Exception:
            logger.exception("WebSocket error for leaderboard subscriber %s", client_id)
        finally:
            self.subscribers.pop(client_id, None)


ranking_broadcaster = RankingBroadcaster()
