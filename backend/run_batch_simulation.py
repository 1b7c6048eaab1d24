"""
Run a batch of seeded holdco games on autopilot.

Each game follows a simple acquisitive policy: buy the cheapest affordable
deal every round, take the last option on decision events, and restructure
when forced to. Per-round metrics and final scores are written to SQLite
so balance changes can be compared across seeds.
"""

import argparse
import logging
import sqlite3
import time
from pathlib import Path
from typing import Dict, List

import numpy as np

from game import HoldcoGame, get_deal_price, get_deal_structures
from models import get_active_businesses
from scoring import calculate_enterprise_value, calculate_final_score, calculate_founder_equity_value

logger = logging.getLogger(__name__)

CASH_RESERVE = 500  # Thousands kept back from acquisitions


def init_database(db_path: str):
    """Initialize SQLite database with schema."""
    conn = sqlite3.connect(db_path)
    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS round_metrics (
            game_seed INTEGER,
            round INTEGER,
            cash INTEGER,
            total_debt INTEGER,
            total_ebitda INTEGER,
            total_fcf REAL,
            portfolio_roic REAL,
            portfolio_moic REAL,
            net_debt_to_ebitda REAL,
            distress_level TEXT,
            active_businesses INTEGER,
            event_type TEXT,
            PRIMARY KEY (game_seed, round)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS final_scores (
            game_seed INTEGER PRIMARY KEY,
            difficulty TEXT,
            duration TEXT,
            rounds_played INTEGER,
            bankrupt_round INTEGER,
            enterprise_value INTEGER,
            founder_equity_value INTEGER,
            score INTEGER,
            grade TEXT
        )
    """)

    cursor.execute("CREATE INDEX IF NOT EXISTS idx_round_metrics_round ON round_metrics(round)")

    conn.commit()
    conn.close()


def play_round(game: HoldcoGame) -> None:
    """Take this round's autopilot actions; rule violations just skip the move."""
    state = game.state
    if state.requires_restructuring:
        try:
            game.apply("emergency_equity", amount=max(1, -state.cash + CASH_RESERVE))
        except ValueError:
            pass
        game.apply("complete_restructuring")
        return

    if state.current_event is not None and state.current_event.choices:
        for choice in reversed(state.current_event.choices):
            try:
                game.resolve_choice(choice.action)
            except ValueError:
                continue
            break

    affordable = sorted(
        (d for d in game.deals if get_deal_price(game.state, d) + CASH_RESERVE <= game.state.cash),
        key=lambda d: get_deal_price(game.state, d),
    )
    for deal in affordable:
        structures = {s.type for s in get_deal_structures(game.state, deal)}
        if "all_cash" not in structures:
            continue
        try:
            game.acquire(deal.id, "all_cash")
        except ValueError:
            continue
        break


def export_round(conn: sqlite3.Connection, game: HoldcoGame) -> None:
    state = game.state
    if not state.metrics_history:
        return
    snapshot = state.metrics_history[-1]
    m = snapshot.metrics
    event_type = state.event_log[-1][1] if state.event_log else None
    logger.debug(f"Seed {state.seed} round {snapshot.round}: {event_type}")
    conn.execute(
        "INSERT OR REPLACE INTO round_metrics VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            state.seed, snapshot.round, m.cash, m.total_debt, m.total_ebitda, m.total_fcf,
            m.portfolio_roic, m.portfolio_moic, m.net_debt_to_ebitda, m.distress_level,
            len(get_active_businesses(state)), event_type,
        ),
    )


def run_game(seed: int, difficulty: str, duration: str, conn: sqlite3.Connection) -> Dict:
    game = HoldcoGame.create("Autopilot Holdings", "agency", difficulty, duration, seed)
    while not game.state.is_game_over:
        play_round(game)
        if game.state.is_game_over:
            break
        if game.state.requires_restructuring:
            continue
        game.advance()
        export_round(conn, game)

    state = game.state
    score = calculate_final_score(state)
    result = {
        "seed": seed,
        "rounds_played": min(state.round, state.max_rounds),
        "bankrupt_round": state.bankrupt_round,
        "enterprise_value": calculate_enterprise_value(state),
        "founder_equity_value": calculate_founder_equity_value(state),
        "score": score.total,
        "grade": score.grade,
    }
    conn.execute(
        "INSERT OR REPLACE INTO final_scores VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            seed, difficulty, duration, result["rounds_played"], result["bankrupt_round"],
            result["enterprise_value"], result["founder_equity_value"], result["score"], result["grade"],
        ),
    )
    conn.commit()
    return result


def main(
    num_games: int = 20,
    base_seed: int = 1,
    difficulty: str = "easy",
    duration: str = "standard",
    db_path: str = "sample_data/holdco_batch.db",
):
    """Run the batch and print a summary of the score distribution."""
    print("=" * 80)
    print(f"HOLDCO BATCH ({num_games} games, {difficulty}/{duration}, seeds {base_seed}..{base_seed + num_games - 1})")
    print("=" * 80)

    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        path.unlink()
    init_database(str(path))
    conn = sqlite3.connect(str(path))

    start_time = time.time()
    results: List[Dict] = []
    print("Seed | Score | Grade | Founder Equity | Bankrupt")
    print("-" * 80)
    for seed in range(base_seed, base_seed + num_games):
        result = run_game(seed, difficulty, duration, conn)
        results.append(result)
        print(f"{seed:4d} | {result['score']:5d} | {result['grade']:>5} | "
              f"${result['founder_equity_value']:13,d}K | {result['bankrupt_round'] or '-'}")
    conn.close()

    scores = np.array([r["score"] for r in results], dtype=float)
    bankruptcies = sum(1 for r in results if r["bankrupt_round"] is not None)
    print()
    print(f"Mean score: {scores.mean():.1f}  Median: {np.median(scores):.1f}  Std: {scores.std():.1f}")
    print(f"Bankruptcies: {bankruptcies}/{num_games}")
    print(f"Elapsed: {time.time() - start_time:.2f}s, database saved to {path}")
    return results


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run a batch of autopilot holdco games.")
    parser.add_argument("--games", type=int, default=20, help="Number of games")
    parser.add_argument("--seed", type=int, default=1, help="First seed; games use consecutive seeds")
    parser.add_argument("--difficulty", choices=["easy", "normal"], default="easy")
    parser.add_argument("--duration", choices=["standard", "quick"], default="standard")
    parser.add_argument("--db", type=str, default="sample_data/holdco_batch.db", help="Output SQLite path")
    args = parser.parse_args()

    main(
        num_games=args.games,
        base_seed=args.seed,
        difficulty=args.difficulty,
        duration=args.duration,
        db_path=args.db,
    )
