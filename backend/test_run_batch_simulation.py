"""
Tests for the autopilot batch runner
"""

import sqlite3

from run_batch_simulation import init_database, run_game


class TestBatchRunner:
    def test_quick_game_is_recorded(self, tmp_path):
        db_path = str(tmp_path / "batch.db")
        init_database(db_path)
        conn = sqlite3.connect(db_path)
        result = run_game(5, "easy", "quick", conn)

        assert 0 <= result["score"] <= 100
        assert result["rounds_played"] <= 10

        rounds = conn.execute("SELECT COUNT(*) FROM round_metrics WHERE game_seed = 5").fetchone()[0]
        finals = conn.execute("SELECT grade FROM final_scores WHERE game_seed = 5").fetchall()
        conn.close()
        assert rounds >= 1
        assert finals == [(result["grade"],)]

    def test_replay_matches(self, tmp_path):
        db_path = str(tmp_path / "batch.db")
        init_database(db_path)
        conn = sqlite3.connect(db_path)
        first = run_game(9, "normal", "quick", conn)
        second = run_game(9, "normal", "quick", conn)
        conn.close()
        assert first == second
