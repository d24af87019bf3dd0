"""Leaderboard consumer: re-fetches on SCORE_UPDATED, one fetch at a time."""
from typing import List, Optional
import asyncio
import json
import logging

import websockets

import config
from leaderboard import format_rank, normalize_sort_key
from score_client import AuthenticationError, ScoreClient, ScoreClientError

logger = logging.getLogger(__name__)


class LeaderboardViewer:
    def __init__(self, client: ScoreClient, username: str, sort_by: str = config.DEFAULT_SORT_KEY):
        self.client = client
        self.username = username
        self.sort_by = normalize_sort_key(sort_by)
        self.entries: List[dict] = []
        self.viewer_rank: Optional[int] = None
        self.viewer_score = 0
        self.viewer_best_streak = 0
        self.status_message = ""
        self.auth_lost = False
        self.fetch_count = 0
        self._in_flight: Optional[asyncio.Task] = None
        self._pending = False

    @property
    def fetching(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def request_update(self) -> asyncio.Task:
        """Refresh the board.

        While a fetch is in flight, further requests collapse into a single
        follow-up fetch that runs once the current one finishes.
        """
        if self.fetching:
            self._pending = True
            return self._in_flight
        self._in_flight = asyncio.get_running_loop().create_task(self._refresh_loop())
        return self._in_flight

    def set_sort(self, sort_by: str) -> asyncio.Task:
        self.sort_by = normalize_sort_key(sort_by)
        return self.request_update()

    async def _refresh_loop(self):
        while True:
            self._pending = False
            await self.fetch()
            if not self._pending or self.auth_lost:
                break

    async def fetch(self):
        self.fetch_count += 1
        self.status_message = "Loading leaderboard..."
        try:
            data = await self.client.get_leaderboard(self.sort_by)
        except AuthenticationError:
            logger.warning("Authentication lost while fetching leaderboard")
            self.auth_lost = True
            self.status_message = ""
            return
        except ScoreClientError as e:
            logger.warning("Leaderboard fetch failed: %s", e)
            self.status_message = "Could not load leaderboard."
            return

        board = data.get("leaderboard") if isinstance(data, dict) else None
        if not isinstance(board, list):
            logger.error("Invalid leaderboard payload: %r", data)
            self.status_message = "Failed to process data."
            return

        self.entries = board[:config.LEADERBOARD_SIZE]
        self.viewer_rank = data.get("viewer_rank")
        self.viewer_score = data.get("viewer_score", 0)
        self.viewer_best_streak = data.get("viewer_best_streak", 0)
        if not self.entries and self.viewer_rank is None:
            self.status_message = "No players on the leaderboard yet."
        else:
            self.status_message = ""

    def value_of(self, entry: dict) -> int:
        return entry.get(self.sort_by, 0)

    @property
    def viewer_value(self) -> int:
        return self.viewer_best_streak if self.sort_by == "best_streak" else self.viewer_score

    @property
    def rank_text(self) -> str:
        if self.viewer_rank is None:
            return ""
        label = "Streak" if self.sort_by == "best_streak" else "Score"
        return f"Your Rank: {format_rank(self.viewer_rank)} ({label}: {self.viewer_value})"

    @property
    def show_outside_row(self) -> bool:
        """True when the viewer's own row belongs below the top list."""
        if self.viewer_rank is None or self.viewer_rank <= config.LEADERBOARD_SIZE:
            return False
        return all(e.get("username") != self.username for e in self.entries)

    def rows(self) -> List[dict]:
        rows = [
            {
                "rank": i + 1,
                "username": e.get("username", "Unknown"),
                "value": self.value_of(e),
                "highlight": e.get("username") == self.username,
            }
            for i, e in enumerate(self.entries)
        ]
        if self.show_outside_row:
            rows.append({
                "rank": self.viewer_rank,
                "username": self.username,
                "value": self.viewer_value,
                "highlight": True,
            })
        return rows

    async def handle_message(self, raw: str):
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Malformed leaderboard event: %s", raw[:100])
            return
        if isinstance(message, dict) and message.get("type") == "SCORE_UPDATED":
            self.request_update()

    async def listen(self, url: str):
        """Follow ranking change events until the connection closes."""
        try:
            async with websockets.connect(url) as ws:
                logger.info("Connected to leaderboard updates at %s", url)
                self.request_update()
                async for raw in ws:
                    await self.handle_message(raw)
            self.status_message = "Real-time updates disconnected."
        except websockets.ConnectionClosed as e:
            logger.warning("Leaderboard updates disconnected: %s", e)
            self.status_message = "Real-time updates disconnected."
        except OSError as e:
            logger.error("Leaderboard updates connection error: %s", e)
            self.status_message = f"Connection error: {e}. Real-time updates unavailable."
        finally:
            await self.stop()

    async def stop(self):
        """Cancel any refresh still running."""
        self._pending = False
        task, self._in_flight = self._in_flight, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
