"""
Tests for score_client.py against mocked transports and the real app
mounted through httpx.ASGITransport.
"""
import sys
import os
import json

import httpx
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from score_client import ScoreClient, ScoreClientError, AuthenticationError, ValidationError
from main import app
from auth import token_registry
from ledger import score_ledger, ScoreStore


def mock_client(handler, token="tok"):
    return ScoreClient(base_url="http://test", token=token, transport=httpx.MockTransport(handler))


@pytest.fixture(autouse=True)
def clear_state(tmp_path, monkeypatch):
    token_registry.clear()
    monkeypatch.setattr(score_ledger, "store", ScoreStore(f"sqlite+aiosqlite:///{tmp_path}/scores.db"))
    yield
    token_registry.clear()


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

class TestErrorMapping:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, exc", [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (422, ValidationError),
        (400, ValidationError),
        (500, ScoreClientError),
    ])
    async def test_status_codes(self, status, exc):
        client = mock_client(lambda request: httpx.Response(status, json={"detail": "nope"}))
        with pytest.raises(exc):
            await client.submit_score(1, 1, 1)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = mock_client(handler)
        with pytest.raises(ScoreClientError):
            await client.get_player_state()
        await client.aclose()

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client = mock_client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ScoreClientError):
            await client.get_leaderboard()
        await client.aclose()


class TestRequests:
    @pytest.mark.asyncio
    async def test_submit_sends_bearer_and_body(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            seen["path"] = request.url.path
            return httpx.Response(200, json={"score": 5})

        async with mock_client(handler, token="abc") as client:
            await client.submit_score(5, 1, 2)
        assert seen["auth"] == "Bearer abc"
        assert seen["path"] == "/api/scores"
        assert seen["body"] == {"score": 5, "correct_streak": 1, "best_streak": 2}

    @pytest.mark.asyncio
    async def test_leaderboard_sort_param(self):
        seen = {}

        def handler(request):
            seen["sort_by"] = request.url.params.get("sort_by")
            return httpx.Response(200, json={"leaderboard": []})

        async with mock_client(handler) as client:
            await client.get_leaderboard("best_streak")
        assert seen["sort_by"] == "best_streak"


# ---------------------------------------------------------------------------
# Against the app
# ---------------------------------------------------------------------------

class TestAgainstApp:
    @pytest.mark.asyncio
    async def test_enter_submit_and_read_back(self):
        transport = httpx.ASGITransport(app=app)
        async with ScoreClient(base_url="http://test", transport=transport) as client:
            await client.enter_game("alice")
            assert client.token
            await client.submit_score(700, 5, 5)
            saved = await client.submit_score(200, 3, 3)
            assert saved["score"] == 200
            assert saved["best_streak"] == 5
            state = await client.get_player_state()
            assert state["score"] == 200
            board = await client.get_leaderboard()
            assert board["viewer_rank"] == 1

    @pytest.mark.asyncio
    async def test_invalid_values_raise_validation_error(self):
        transport = httpx.ASGITransport(app=app)
        async with ScoreClient(base_url="http://test", transport=transport) as client:
            await client.enter_game("alice")
            with pytest.raises(ValidationError):
                await client.submit_score(-1, 0, 0)

    @pytest.mark.asyncio
    async def test_without_token(self):
        transport = httpx.ASGITransport(app=app)
        async with ScoreClient(base_url="http://test", transport=transport) as client:
            with pytest.raises(AuthenticationError):
                await client.get_player_state()
