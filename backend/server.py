import logging
import os
import uuid
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, conint

from game import (
    DIFFICULTY_CONFIG,
    DURATION_CONFIG,
    HoldcoGame,
    get_deal_price,
    get_deal_structures,
    get_platform_multiple_uplift,
)
from leaderboard import (
    InMemoryLeaderboardStore,
    LeaderboardStore,
    SqliteLeaderboardStore,
    build_leaderboard_entry,
    get_leaderboard,
    get_leaderboard_rank,
    save_to_leaderboard,
    would_make_leaderboard,
)
from metrics import calculate_metrics
from narrative import generate_round_narrative
from scoring import (
    calculate_enterprise_value,
    calculate_final_score,
    calculate_founder_equity_value,
    generate_post_game_insights,
)
from valuation import calculate_exit_valuation

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Holdco Tycoon Engine", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Request Models ----------

class NewGameRequest(BaseModel):
    holdco_name: str = Field("Holdco", min_length=1, max_length=40)
    starting_sector: str = "agency"
    difficulty: str = "easy"
    duration: str = "standard"
    seed: Optional[conint(ge=0)] = None


class AcquireRequest(BaseModel):
    deal_id: str
    structure_type: str = "all_cash"
    target_platform_id: Optional[str] = None


class ActionRequest(BaseModel):
    action: str
    params: Dict[str, Any] = Field(default_factory=dict)


class MergeRequest(BaseModel):
    first_id: str
    second_id: str


class ImproveRequest(BaseModel):
    business_id: str
    improvement_type: str


class ChoiceRequest(BaseModel):
    action: str


class LeaderboardSubmitRequest(BaseModel):
    initials: str = Field(..., min_length=1, max_length=4)


# ---------- Game Manager ----------

class GameManager:
    def __init__(self, store: Optional[LeaderboardStore] = None):
        self.games: Dict[str, HoldcoGame] = {}
        self.store = store if store is not None else InMemoryLeaderboardStore()

    def create(self, req: NewGameRequest) -> str:
        game = HoldcoGame.create(req.holdco_name, req.starting_sector, req.difficulty, req.duration, req.seed)
        game_id = uuid.uuid4().hex[:12]
        self.games[game_id] = game
        logger.info(f"Created game {game_id} ({req.difficulty}/{req.duration}, seed {game.state.seed})")
        return game_id

    def get(self, game_id: str) -> HoldcoGame:
        game = self.games.get(game_id)
        if game is None:
            raise HTTPException(status_code=404, detail=f"Unknown game: {game_id}")
        return game

    def snapshot(self, game_id: str) -> Dict[str, Any]:
        game = self.get(game_id)
        state = game.state
        return {
            "game_id": game_id,
            "state": state.to_dict(),
            "metrics": asdict(calculate_metrics(state)),
            "deals": [_deal_payload(game, d) for d in game.deals],
            "game_over": state.is_game_over,
        }


def _deal_payload(game: HoldcoGame, deal) -> Dict[str, Any]:
    payload = deal.to_dict()
    payload["price"] = get_deal_price(game.state, deal)
    payload["structures"] = [s.to_dict() for s in get_deal_structures(game.state, deal)]
    return payload


def _store_from_env() -> LeaderboardStore:
    db_path = os.getenv("HOLDCO_LEADERBOARD_DB")
    if db_path:
        return SqliteLeaderboardStore(db_path)
    return InMemoryLeaderboardStore()


manager = GameManager(_store_from_env())


def _apply(game_id: str, fn: Callable[[HoldcoGame], Any]) -> Dict[str, Any]:
    """Run a game action, mapping rule violations to 400."""
    game = manager.get(game_id)
    try:
        fn(game)
    except ValueError as e:
        logger.info(f"Rejected action on game {game_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    return manager.snapshot(game_id)


# ---------- Endpoints ----------

@app.get("/config")
def get_config():
    return {
        "difficulties": {k: asdict(v) for k, v in DIFFICULTY_CONFIG.items()},
        "durations": {k: asdict(v) for k, v in DURATION_CONFIG.items()},
    }


@app.post("/games")
def create_game(req: NewGameRequest):
    try:
        game_id = manager.create(req)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return manager.snapshot(game_id)


@app.get("/games/{game_id}")
def get_game(game_id: str):
    return manager.snapshot(game_id)


@app.get("/games/{game_id}/metrics")
def get_metrics(game_id: str):
    return asdict(calculate_metrics(manager.get(game_id).state))


@app.post("/games/{game_id}/acquire")
def acquire(game_id: str, req: AcquireRequest):
    return _apply(game_id, lambda g: g.acquire(req.deal_id, req.structure_type, req.target_platform_id))


@app.post("/games/{game_id}/merge")
def merge(game_id: str, req: MergeRequest):
    return _apply(game_id, lambda g: g.merge(req.first_id, req.second_id))


@app.post("/games/{game_id}/improve")
def improve(game_id: str, req: ImproveRequest):
    return _apply(game_id, lambda g: g.improve(req.business_id, req.improvement_type))


@app.post("/games/{game_id}/actions")
def apply_action(game_id: str, req: ActionRequest):
    def run(game: HoldcoGame):
        try:
            game.apply(req.action, **req.params)
        except TypeError as e:
            raise ValueError(f"Bad parameters for {req.action}: {e}")
    return _apply(game_id, run)


@app.post("/games/{game_id}/choice")
def resolve_choice(game_id: str, req: ChoiceRequest):
    return _apply(game_id, lambda g: g.resolve_choice(req.action))


@app.post("/games/{game_id}/advance")
def advance(game_id: str):
    return _apply(game_id, lambda g: g.advance())


@app.get("/games/{game_id}/valuation/{business_id}")
def valuation_preview(game_id: str, business_id: str):
    state = manager.get(game_id).state
    business = state.get_business(business_id)
    if business is None or business.status != "active":
        raise HTTPException(status_code=404, detail=f"Unknown business: {business_id}")
    last_event_type = state.current_event.type if state.current_event else None
    valuation = calculate_exit_valuation(
        business, state.round, last_event_type, integrated_platforms=state.integrated_platforms
    )
    payload = valuation.to_dict()
    payload["platform_multiple_uplift"] = get_platform_multiple_uplift(business) if business.is_platform else 0.0
    return payload


@app.get("/games/{game_id}/score")
def get_score(game_id: str):
    state = manager.get(game_id).state
    founder_equity = calculate_founder_equity_value(state)
    return {
        "score": calculate_final_score(state).to_dict(),
        "insights": generate_post_game_insights(state),
        "enterprise_value": calculate_enterprise_value(state),
        "founder_equity_value": founder_equity,
        "would_make_leaderboard": would_make_leaderboard(manager.store, founder_equity, state.difficulty),
        "leaderboard_rank": get_leaderboard_rank(manager.store, founder_equity, state.difficulty),
    }


@app.get("/leaderboard")
def leaderboard() -> List[Dict[str, Any]]:
    return [e.to_dict() for e in get_leaderboard(manager.store)]


@app.post("/games/{game_id}/leaderboard")
def submit_leaderboard(game_id: str, req: LeaderboardSubmitRequest):
    state = manager.get(game_id).state
    if not state.is_game_over:
        raise HTTPException(status_code=400, detail="Game is still in progress")
    entry = build_leaderboard_entry(state, req.initials)
    entries = save_to_leaderboard(manager.store, entry)
    return {"entry": entry.to_dict(), "leaderboard": [e.to_dict() for e in entries]}


@app.post("/games/{game_id}/narrative")
async def narrative(game_id: str):
    state = manager.get(game_id).state
    return await generate_round_narrative(
        state.holdco_name, state.round, state.current_event, calculate_metrics(state)
    )


# ---------- WebSocket ----------

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    logger.info("WebSocket connected")
    game_id: Optional[str] = None

    try:
        while True:
            data = await websocket.receive_json()
            command = data.get("command")

            try:
                if command == "SETUP":
                    game_id = manager.create(NewGameRequest(**data.get("config", {})))
                    await websocket.send_json({"type": "SETUP_COMPLETE", **manager.snapshot(game_id)})
                elif game_id is None:
                    await websocket.send_json({"error": "Send SETUP first"})
                elif command == "ADVANCE":
                    manager.get(game_id).advance()
                    await websocket.send_json({"type": "ROUND", **manager.snapshot(game_id)})
                elif command == "STATE":
                    await websocket.send_json({"type": "STATE", **manager.snapshot(game_id)})
                elif command == "RESET":
                    manager.games.pop(game_id, None)
                    game_id = None
                    await websocket.send_json({"type": "RESET"})
                else:
                    await websocket.send_json({"error": f"Unknown command: {command}"})
            except ValueError as e:
                logger.info(f"WebSocket command {command} rejected: {e}")
                await websocket.send_json({"error": str(e)})

    except WebSocketDisconnect:
        logger.info("Client disconnected")
