"""
API tests for the game server and narrative generation

Tests cover:
- Game lifecycle over REST: create, act, advance, score
- Rule violations mapped to 400, unknown ids to 404
- The /ws command loop
- Narrative fallback when the model is unavailable
"""

import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

import narrative
import server
from conftest import make_state
from metrics import calculate_metrics


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(server, "manager", server.GameManager())
    return TestClient(server.app)


def _create(client, **config):
    response = client.post("/games", json={"seed": 7, **config})
    assert response.status_code == 200
    return response.json()


class TestGameEndpoints:
    """Test suite for the REST surface"""

    def test_config_lists_modes(self, client):
        body = client.get("/config").json()
        assert set(body["difficulties"]) == {"easy", "normal"}
        assert set(body["durations"]) == {"standard", "quick"}

    def test_create_game(self, client):
        body = _create(client)
        assert body["state"]["round"] == 1
        assert body["state"]["seed"] == 7
        assert not body["game_over"]
        assert body["deals"]
        for deal in body["deals"]:
            assert deal["price"] > 0
            assert deal["structures"]

    def test_same_seed_same_deals(self, client):
        first = _create(client)["deals"]
        second = _create(client)["deals"]
        assert [d["business"] for d in first] == [d["business"] for d in second]

    def test_invalid_settings(self, client):
        assert client.post("/games", json={"difficulty": "nightmare"}).status_code == 400
        assert client.post("/games", json={"seed": -1}).status_code == 422

    def test_unknown_game(self, client):
        assert client.get("/games/missing").status_code == 404
        assert client.post("/games/missing/advance").status_code == 404

    def test_action_dispatch(self, client):
        body = _create(client)
        game_id = body["game_id"]
        cash = body["state"]["cash"]

        response = client.post(f"/games/{game_id}/actions", json={"action": "distribute", "params": {"amount": 100}})
        assert response.status_code == 200
        assert response.json()["state"]["cash"] == cash - 100

        assert client.post(f"/games/{game_id}/actions", json={"action": "launch_rocket"}).status_code == 400
        bad_params = {"action": "distribute", "params": {"bogus": 1}}
        assert client.post(f"/games/{game_id}/actions", json=bad_params).status_code == 400

    def test_acquire_and_advance(self, client):
        body = _create(client)
        game_id = body["game_id"]
        deal = min(body["deals"], key=lambda d: d["price"])

        body = client.post(f"/games/{game_id}/acquire", json={"deal_id": deal["id"]}).json()
        assert len(body["state"]["businesses"]) == 2
        assert all(d["id"] != deal["id"] for d in body["deals"])

        body = client.post(f"/games/{game_id}/advance").json()
        assert body["state"]["round"] == 2
        assert len(body["state"]["metrics_history"]) == 1

    def test_valuation_preview(self, client):
        body = _create(client)
        business_id = body["state"]["businesses"][0]["id"]
        preview = client.get(f"/games/{body['game_id']}/valuation/{business_id}").json()
        assert preview["total_multiple"] >= 2.0
        assert preview["platform_multiple_uplift"] == 0.0
        assert client.get(f"/games/{body['game_id']}/valuation/nope").status_code == 404

    def test_score_and_leaderboard(self, client):
        game_id = _create(client)["game_id"]
        score = client.get(f"/games/{game_id}/score").json()
        assert 0 <= score["score"]["total"] <= 100
        assert score["would_make_leaderboard"]
        assert score["leaderboard_rank"] == 1

        # Only finished games can be submitted
        assert client.post(f"/games/{game_id}/leaderboard", json={"initials": "ABC"}).status_code == 400
        assert client.get("/leaderboard").json() == []


class TestWebSocket:
    def test_command_loop(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"command": "STATE"})
            assert ws.receive_json() == {"error": "Send SETUP first"}

            ws.send_json({"command": "SETUP", "config": {"seed": 3}})
            setup = ws.receive_json()
            assert setup["type"] == "SETUP_COMPLETE"
            assert setup["state"]["round"] == 1

            ws.send_json({"command": "ADVANCE"})
            assert ws.receive_json()["state"]["round"] == 2

            ws.send_json({"command": "JUMP"})
            assert "error" in ws.receive_json()

            ws.send_json({"command": "RESET"})
            assert ws.receive_json() == {"type": "RESET"}


class TestNarrative:
    def test_fallback_without_key(self, monkeypatch):
        monkeypatch.setattr(narrative, "OPENROUTER_API_KEY", None)
        state = make_state()
        result = asyncio.run(narrative.generate_round_narrative("Test Holdco", 3, None, calculate_metrics(state)))
        assert result["source"] == "fallback"
        assert result["text"].startswith("Year 3 at Test Holdco was quiet")

    def test_fallback_on_http_error(self, monkeypatch):
        async def fail(payload, api_key):
            raise httpx.ConnectError("offline")

        monkeypatch.setattr(narrative, "send_request", fail)
        result = asyncio.run(
            narrative.generate_round_narrative("Test Holdco", 3, None, calculate_metrics(make_state()), api_key="k")
        )
        assert result["source"] == "fallback"

    def test_model_text_is_used(self, monkeypatch):
        async def reply(payload, api_key):
            assert payload["messages"][0]["content"] == narrative.SYSTEM_PROMPT
            return {"choices": [{"message": {"content": "  A steady year.  "}}]}

        monkeypatch.setattr(narrative, "send_request", reply)
        result = asyncio.run(
            narrative.generate_round_narrative("Test Holdco", 3, None, calculate_metrics(make_state()), api_key="k")
        )
        assert result == {"text": "A steady year.", "source": "llm"}

    def test_prompt_carries_metrics(self):
        prompt = narrative.build_round_prompt("Test Holdco", 3, None, calculate_metrics(make_state()))
        assert "Holding company: Test Holdco" in prompt
        assert "EBITDA: $1000K" in prompt
