"""Async HTTP client for the score server."""
from typing import Optional
import logging

import httpx

import config

logger = logging.getLogger(__name__)


class ScoreClientError(Exception):
    """Network failure or unexpected server response."""


class AuthenticationError(ScoreClientError):
    """The bearer token was missing, invalid or expired."""


class ValidationError(ScoreClientError):
    """The server rejected the submitted values."""


class ScoreClient:
    def __init__(self, base_url: str = f"http://localhost:{config.PORT}",
                 token: str = "", timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.token = token
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def aclose(self):
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            res = await self._http.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise ScoreClientError(f"{method} {path} failed: {e}") from e
        if res.status_code in (401, 403):
            raise AuthenticationError(_detail(res))
        if res.status_code in (400, 422):
            raise ValidationError(_detail(res))
        if res.status_code >= 400:
            raise ScoreClientError(f"{method} {path} returned {res.status_code}")
        try:
            return res.json()
        except ValueError as e:
            raise ScoreClientError(f"{method} {path} returned invalid JSON") from e

    async def enter_game(self, username: str) -> dict:
        data = await self._request("POST", "/api/enter-game", json={"username": username})
        self.token = data["token"]
        return data

    async def submit_score(self, score: int, correct_streak: int, best_streak: int) -> dict:
        return await self._request("POST", "/api/scores", json={
            "score": score,
            "correct_streak": correct_streak,
            "best_streak": best_streak,
        })

    async def get_player_state(self) -> dict:
        return await self._request("GET", "/api/player/me")

    async def get_leaderboard(self, sort_by: str = config.DEFAULT_SORT_KEY) -> dict:
        return await self._request("GET", "/api/leaderboard", params={"sort_by": sort_by})


def _detail(res: httpx.Response) -> str:
    try:
        detail = res.json().get("detail")
    except ValueError:
        detail = None
    return str(detail or res.text or res.status_code)
