"""
Unit tests for the IPO pathway

Tests cover:
- Eligibility gates and their reasons
- Listing terms and the go_public action
- Earnings beats, misses and analyst downgrades
- Share-funded acquisitions
- The public-company founder equity bonus
"""

from dataclasses import replace

import pytest

from conftest import make_business, make_state
from deals import Deal
from game import acquire_with_shares, advance_round, go_public
from ipo import (
    calculate_holdco_ev,
    calculate_public_company_bonus,
    calculate_share_funded_terms,
    can_share_funded_deal,
    check_ipo_eligibility,
    execute_ipo,
    process_earnings_result,
)
from models import IpoState, round_half_up
from rng import FixedRng
from scoring import calculate_founder_equity_value


def _eligible_state(**overrides):
    """Seven quality-4 businesses at $12M EBITDA each, two of them platforms."""
    businesses = [
        make_business(id=f"biz_{i}", revenue=60000, ebitda=12000, acquisition_ebitda=12000,
                      quality_rating=4, is_platform=i < 2)
        for i in range(7)
    ]
    values = dict(businesses=businesses, round=16, cash=50000)
    values.update(overrides)
    return make_state(**values)


def _listed(**overrides):
    values = dict(
        is_public=True, stock_price=100.0, pre_ipo_shares=1000, market_sentiment=0.0,
        earnings_expectations=80000, ipo_round=16, initial_stock_price=100.0,
    )
    values.update(overrides)
    return IpoState(**values)


def _deal(price):
    target = make_business(id="target", name="Target Co.", acquisition_round=0)
    return Deal(id="deal_target", business=target, asking_price=price, round_appeared=16,
                source="brokered", acquisition_type="standalone")


class TestEligibility:
    def test_all_gates_met(self):
        eligible, reasons = check_ipo_eligibility(_eligible_state())
        assert eligible
        assert reasons == []

    def test_quick_game_rejected(self):
        eligible, reasons = check_ipo_eligibility(_eligible_state(duration="quick"))
        assert not eligible
        assert any("standard" in r for r in reasons)

    def test_too_early(self):
        assert not check_ipo_eligibility(_eligible_state(round=15))[0]

    def test_each_gate_reports(self):
        small = make_state(round=16, businesses=[make_business(quality_rating=2)])
        eligible, reasons = check_ipo_eligibility(small)
        assert not eligible
        assert any("EBITDA" in r for r in reasons)
        assert any("businesses" in r for r in reasons)
        assert any("quality" in r for r in reasons)
        assert any("platforms" in r for r in reasons)

    def test_already_public(self):
        eligible, reasons = check_ipo_eligibility(_eligible_state(ipo=_listed()))
        assert not eligible
        assert "Already public" in reasons


class TestListing:
    def test_holdco_ev_uses_quality_multiple(self):
        # 7 x 12000 x 5.5
        assert calculate_holdco_ev(_eligible_state().businesses) == 462000
        assert calculate_holdco_ev([make_business(status="sold")]) == 0

    def test_execute_ipo_terms(self):
        """Equity 462000 + 50000 cash over 1000 shares = 512 per share"""
        ipo, cash_raised, new_shares = execute_ipo(_eligible_state())
        assert new_shares == 250
        assert cash_raised == 128000
        assert ipo.stock_price == 512.0
        assert ipo.initial_stock_price == 512.0
        assert ipo.market_sentiment == 0.05
        assert ipo.earnings_expectations == 88200
        assert ipo.ipo_round == 16

    def test_go_public(self):
        state = go_public(_eligible_state())
        assert state.cash == 178000
        assert state.shares_outstanding == 1250
        assert state.founder_shares == 800
        assert state.ipo.is_public
        assert state.actions_this_round[-1]["type"] == "ipo"

    def test_go_public_needs_eligibility(self):
        with pytest.raises(ValueError):
            go_public(make_state())
        with pytest.raises(ValueError):
            go_public(_eligible_state(requires_restructuring=True))


class TestEarnings:
    def test_beat_lifts_sentiment_and_price(self):
        state = go_public(_eligible_state())
        ipo = process_earnings_result(state, 88200)
        assert abs(ipo.market_sentiment - 0.13) < 1e-9
        assert ipo.consecutive_misses == 0
        assert ipo.earnings_expectations == 92610
        # (462000 + 178000) / 1250 x 1.13
        assert abs(ipo.stock_price - 578.56) < 1e-9

    def test_miss_cuts_sentiment(self):
        state = go_public(_eligible_state())
        ipo = process_earnings_result(state, 80000)
        assert abs(ipo.market_sentiment + 0.10) < 1e-9
        assert ipo.consecutive_misses == 1
        assert ipo.earnings_expectations == 84000

    def test_second_miss_is_a_downgrade(self):
        state = _eligible_state(ipo=_listed(market_sentiment=-0.05, consecutive_misses=1))
        ipo = process_earnings_result(state, 70000)
        assert ipo.consecutive_misses == 2
        assert abs(ipo.market_sentiment + 0.30) < 1e-9

    def test_sentiment_is_bounded(self):
        state = _eligible_state(ipo=_listed(market_sentiment=0.28))
        assert abs(process_earnings_result(state, 90000).market_sentiment - 0.30) < 1e-9

    def test_private_holdco_unchanged(self):
        assert process_earnings_result(make_state(), 1000) is None

    def test_round_pipeline_reports_earnings(self):
        state = make_state(ipo=_listed(earnings_expectations=100, share_funded_deals_this_round=1))
        after = advance_round(state, FixedRng(0.5))
        actual = sum(b.ebitda for b in after.businesses if b.status == "active")
        assert after.ipo.earnings_expectations == round_half_up(actual * 1.05)
        assert after.ipo.share_funded_deals_this_round == 0
        assert abs(after.ipo.market_sentiment - 0.08) < 1e-9


class TestShareFundedDeals:
    def test_terms(self):
        terms = calculate_share_funded_terms(5000, 50.0, 1200)
        assert terms.shares_to_issue == 100
        assert terms.new_total_shares == 1300
        assert abs(terms.dilution_pct - 100 / 1300) < 1e-9
        assert calculate_share_funded_terms(5000, 0.0, 1200).shares_to_issue == 0

    def test_one_per_round(self):
        assert not can_share_funded_deal(make_state())
        assert can_share_funded_deal(make_state(ipo=_listed()))
        assert not can_share_funded_deal(make_state(ipo=_listed(share_funded_deals_this_round=1)))

    def test_acquire_with_shares(self):
        state = go_public(_eligible_state())
        after = acquire_with_shares(state, _deal(5120))
        assert after.shares_outstanding == 1260
        assert after.cash == state.cash
        assert after.businesses[-1].id == "target"
        assert after.businesses[-1].acquisition_price == 5120
        assert after.ipo.share_funded_deals_this_round == 1
        assert after.actions_this_round[-1]["structure"] == "share_funded"

    def test_private_holdco_cannot_pay_in_stock(self):
        with pytest.raises(ValueError):
            acquire_with_shares(_eligible_state(), _deal(5120))


class TestPublicCompanyBonus:
    def test_private_is_zero(self):
        assert calculate_public_company_bonus(_eligible_state()) == 0.0

    def test_base_with_clean_record(self):
        # 5% base + 3% no misses + 2% for two platforms
        bonus = calculate_public_company_bonus(_eligible_state(ipo=_listed()))
        assert abs(bonus - 0.10) < 1e-9

    def test_appreciation_and_misses(self):
        up = calculate_public_company_bonus(_eligible_state(ipo=_listed(stock_price=200.0)))
        assert abs(up - 0.15) < 1e-9
        missed = calculate_public_company_bonus(_eligible_state(ipo=_listed(consecutive_misses=2)))
        assert abs(missed - 0.07) < 1e-9

    def test_capped(self):
        state = _eligible_state(ipo=_listed(stock_price=500.0, market_sentiment=0.3))
        state = replace(state, businesses=[replace(b, is_platform=True) for b in state.businesses])
        assert abs(calculate_public_company_bonus(state) - 0.18) < 1e-9

    def test_bonus_lifts_founder_equity(self):
        # 7360 x (1 + 0.05 base + 0.03 no misses)
        assert calculate_founder_equity_value(make_state(ipo=_listed())) == 7949
