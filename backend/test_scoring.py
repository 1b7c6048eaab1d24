"""
Unit tests for final scoring

Tests cover:
- Bankruptcy short-circuit
- Grade thresholds
- Enterprise and founder equity values
- Finite results for degenerate states
- Post-game insights
"""

import math

from conftest import make_business, make_state
from scoring import (
    _score_roic,
    calculate_enterprise_value,
    calculate_final_score,
    calculate_founder_equity_value,
    generate_post_game_insights,
    grade_for,
)


class TestFinalScore:
    """Test suite for calculate_final_score"""

    def test_bankrupt_scores_zero(self):
        score = calculate_final_score(make_state(bankrupt_round=7))
        assert score.total == 0
        assert score.grade == "F"
        assert "Year 7" in score.title

    def test_empty_state_is_finite(self):
        """No businesses, no cash, no capital: every component stays a number"""
        state = make_state(businesses=[], cash=0, total_invested_capital=0, initial_raise=0)
        score = calculate_final_score(state)
        for part in (score.fcf_share_growth, score.portfolio_roic, score.capital_deployment,
                     score.balance_sheet_health, score.strategic_discipline):
            assert not math.isnan(part)
        assert 0 <= score.total <= 100
        # 3.3 deployment (MOIC 1.0 of 1.5) + 15 balance sheet + 5 discipline
        assert score.total == 23
        assert score.grade == "D"

    def test_total_is_bounded(self):
        score = calculate_final_score(make_state())
        assert 0 <= score.total <= 100

    def test_restructuring_costs_balance_sheet_points(self):
        clean = calculate_final_score(make_state())
        restructured = calculate_final_score(make_state(has_restructured=True))
        assert restructured.balance_sheet_health == clean.balance_sheet_health - 5


class TestGrades:
    def test_thresholds(self):
        assert grade_for(100)[0] == "S"
        assert grade_for(90)[0] == "S"
        assert grade_for(89)[0] == "A"
        assert grade_for(60)[0] == "B"
        assert grade_for(40)[0] == "C"
        assert grade_for(20)[0] == "D"
        assert grade_for(0)[0] == "F"

    def test_roic_bands(self):
        assert _score_roic(0.30) == 20.0
        assert abs(_score_roic(0.15) - 15.0) < 1e-9
        assert abs(_score_roic(0.08) - 8.0) < 1e-9
        assert abs(_score_roic(0.04) - 4.0) < 1e-9
        assert _score_roic(-0.1) == 0.0


class TestEquityValue:
    def test_enterprise_value(self):
        """Exit value 4200 plus 5000 cash"""
        assert calculate_enterprise_value(make_state()) == 9200

    def test_seller_notes_reduce_value(self):
        state = make_state(businesses=[make_business(seller_note_balance=1000)])
        assert calculate_enterprise_value(state) == 8200

    def test_no_active_businesses(self):
        assert calculate_enterprise_value(make_state(businesses=[], cash=3000, total_debt=1000)) == 2000
        assert calculate_enterprise_value(make_state(businesses=[], cash=0, total_debt=1000)) == 0

    def test_founder_share(self):
        assert calculate_founder_equity_value(make_state()) == 7360

    def test_zero_shares(self):
        assert calculate_founder_equity_value(make_state(shares_outstanding=0)) == 0


class TestInsights:
    def test_single_business_never_acquired(self):
        insights = generate_post_game_insights(make_state())
        assert insights[0]["key"] == "never_acquired"
        assert len(insights) <= 3
        assert all("insight" in i and "book_reference" in i for i in insights)

    def test_hoarded_cash(self):
        keys = [i["key"] for i in generate_post_game_insights(make_state(
            businesses=[make_business(), make_business(id="biz_2")], cash=50000,
        ))]
        assert "hoarded_cash" in keys
