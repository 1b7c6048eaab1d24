"""
Leaderboard

Top finishers ranked by founder equity adjusted for difficulty. Storage is
behind a small port (load / save) so the ranking rules never touch a
database directly.
"""

import logging
import sqlite3
import uuid
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

from config import CONFIG
from game import DIFFICULTY_CONFIG
from models import GameState, get_all_deduped_businesses
from scoring import calculate_enterprise_value, calculate_final_score, calculate_founder_equity_value

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LeaderboardEntry:
    id: str
    holdco_name: str
    initials: str
    enterprise_value: int
    founder_equity_value: int
    adjusted_founder_equity_value: float
    score: int
    grade: str
    business_count: int
    difficulty: str = "easy"
    duration: str = "standard"
    date: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LeaderboardEntry":
        """Older saves lack the founder equity fields; fall back to enterprise value."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known and v is not None}
        ev = values.get("enterprise_value", 0)
        values.setdefault("founder_equity_value", ev)
        values.setdefault("adjusted_founder_equity_value", float(values["founder_equity_value"]))
        values.setdefault("id", str(uuid.uuid4()))
        values.setdefault("holdco_name", "Holdco")
        values.setdefault("initials", "???")
        values.setdefault("enterprise_value", 0)
        values.setdefault("score", 0)
        values.setdefault("grade", "F")
        values.setdefault("business_count", 0)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class LeaderboardStore(Protocol):
    def load(self) -> List[LeaderboardEntry]:
        ...

    def save(self, entries: List[LeaderboardEntry]) -> None:
        ...


class InMemoryLeaderboardStore:
    def __init__(self, entries: Optional[List[LeaderboardEntry]] = None):
        self._entries = list(entries or [])

    def load(self) -> List[LeaderboardEntry]:
        return list(self._entries)

    def save(self, entries: List[LeaderboardEntry]) -> None:
        self._entries = list(entries)


class SqliteLeaderboardStore:
    """Leaderboard rows in a single SQLite table, rewritten on every save."""

    def __init__(self, db_path: Union[str, Path] = "leaderboard.db"):
        self.db_path = str(db_path)
        self._init_database()

    def _init_database(self) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS leaderboard (
                    id TEXT PRIMARY KEY,
                    holdco_name TEXT,
                    initials TEXT,
                    enterprise_value INTEGER,
                    founder_equity_value INTEGER,
                    adjusted_founder_equity_value REAL,
                    score INTEGER,
                    grade TEXT,
                    business_count INTEGER,
                    difficulty TEXT,
                    duration TEXT,
                    date TEXT
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def load(self) -> List[LeaderboardEntry]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            rows = conn.execute(
                "SELECT * FROM leaderboard ORDER BY adjusted_founder_equity_value DESC"
            ).fetchall()
        finally:
            conn.close()
        return [LeaderboardEntry.from_dict(dict(row)) for row in rows]

    def save(self, entries: List[LeaderboardEntry]) -> None:
        columns = [f.name for f in fields(LeaderboardEntry)]
        placeholders = ", ".join("?" for _ in columns)
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("DELETE FROM leaderboard")
            conn.executemany(
                f"INSERT INTO leaderboard ({', '.join(columns)}) VALUES ({placeholders})",
                [tuple(getattr(e, c) for c in columns) for e in entries],
            )
            conn.commit()
        finally:
            conn.close()


def get_difficulty_multiplier(difficulty: str) -> float:
    settings = DIFFICULTY_CONFIG.get(difficulty)
    return settings.leaderboard_multiplier if settings else 1.0


def get_adjusted_value(entry: LeaderboardEntry) -> float:
    return entry.founder_equity_value * get_difficulty_multiplier(entry.difficulty)


def _ranked(entries: List[LeaderboardEntry]) -> List[LeaderboardEntry]:
    return sorted(entries, key=get_adjusted_value, reverse=True)


def build_leaderboard_entry(state: GameState, initials: str, date: Optional[str] = None) -> LeaderboardEntry:
    founder_equity = calculate_founder_equity_value(state)
    score = calculate_final_score(state)
    return LeaderboardEntry(
        id=str(uuid.uuid4()),
        holdco_name=state.holdco_name,
        initials=initials.strip().upper()[:4] or "???",
        enterprise_value=calculate_enterprise_value(state),
        founder_equity_value=founder_equity,
        adjusted_founder_equity_value=founder_equity * get_difficulty_multiplier(state.difficulty),
        score=score.total,
        grade=score.grade,
        business_count=len(get_all_deduped_businesses(state)),
        difficulty=state.difficulty,
        duration=state.duration,
        date=date or datetime.now(timezone.utc).isoformat(),
    )


def get_leaderboard(store: LeaderboardStore) -> List[LeaderboardEntry]:
    return _ranked(store.load())[:CONFIG.scoring.max_leaderboard_entries]


def would_make_leaderboard(store: LeaderboardStore, founder_equity_value: float, difficulty: str = "easy") -> bool:
    entries = get_leaderboard(store)
    if len(entries) < CONFIG.scoring.max_leaderboard_entries:
        return True
    adjusted = founder_equity_value * get_difficulty_multiplier(difficulty)
    return adjusted > get_adjusted_value(entries[-1])


def get_leaderboard_rank(store: LeaderboardStore, founder_equity_value: float, difficulty: str = "easy") -> int:
    """1-based position the value would take; ties rank below existing entries."""
    adjusted = founder_equity_value * get_difficulty_multiplier(difficulty)
    entries = get_leaderboard(store)
    return 1 + sum(1 for e in entries if get_adjusted_value(e) >= adjusted)


def save_to_leaderboard(store: LeaderboardStore, entry: LeaderboardEntry) -> List[LeaderboardEntry]:
    entries = _ranked(store.load() + [entry])[:CONFIG.scoring.max_leaderboard_entries]
    store.save(entries)
    if any(e.id == entry.id for e in entries):
        logger.info(f"Leaderboard entry {entry.initials} saved at rank {entries.index(entry) + 1}")
    else:
        logger.info(f"Leaderboard entry {entry.initials} did not place")
    return entries
