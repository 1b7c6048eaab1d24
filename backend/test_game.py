"""
Integration tests for the game orchestrator

Tests cover:
- Game setup per difficulty and duration
- Player actions and their guards
- Round pipeline: determinism, pending decisions, restructuring, bankruptcy
- The HoldcoGame wrapper
"""

from dataclasses import replace

import pytest

from conftest import make_business, make_state
from events import has_choices
from game import (
    HoldcoGame,
    advance_round,
    apply_improvement,
    buyback_shares,
    complete_restructuring,
    distressed_sale,
    distribute_cash,
    emergency_equity_raise,
    get_equity_issue_price_factor,
    issue_equity,
    merge_businesses,
    new_game,
    pay_down_debt,
    sell_business,
    unlock_shared_service,
    upgrade_ma_sourcing,
    wind_down_business,
)
from models import EventChoice, GameEvent, SharedService, round_half_up
from rng import FixedRng
from valuation import calculate_exit_valuation


def _play(seed, rounds):
    """Advance a seeded game, taking the cheapest option on every decision."""
    game = HoldcoGame.create(seed=seed)
    for _ in range(rounds):
        event = game.state.current_event
        if has_choices(event):
            cheapest = min(event.choices, key=lambda c: c.cost)
            try:
                game.resolve_choice(cheapest.action)
            except ValueError:
                pass  # target already gone; advance is not blocked
        game.advance()
    return game


class TestNewGame:
    """Test suite for game setup"""

    def test_easy_start(self):
        state = new_game(seed=1)
        business = state.businesses[0]
        assert state.round == 1
        assert state.max_rounds == 20
        assert state.total_debt == 0
        # Agency average multiple 3.5x on $1M EBITDA
        assert business.acquisition_price == 3500
        assert state.cash == 16500
        assert state.founder_shares == 800
        assert state.shares_outstanding == 1000

    def test_normal_start_carries_bank_loan(self):
        state = new_game(difficulty="normal", seed=1)
        assert state.total_debt == 3000
        assert state.holdco_loan_rounds_remaining == 10
        assert state.cash == 5000 - 2800

    def test_quick_duration(self):
        assert new_game(duration="quick", seed=1).max_rounds == 10

    def test_rejects_unknown_settings(self):
        with pytest.raises(ValueError):
            new_game(difficulty="nightmare")
        with pytest.raises(ValueError):
            new_game(duration="marathon")
        with pytest.raises(ValueError):
            new_game(starting_sector="crypto")

    def test_seeded_setup_is_replayable(self):
        assert new_game(seed=99).to_dict() == new_game(seed=99).to_dict()


class TestCapitalActions:
    def test_distribute(self):
        state = distribute_cash(make_state(), 1000)
        assert state.cash == 4000
        assert state.total_distributions == 1000
        assert state.actions_this_round[-1]["type"] == "distribute"

    def test_distribute_guards(self):
        with pytest.raises(ValueError):
            distribute_cash(make_state(), 0)
        with pytest.raises(ValueError):
            distribute_cash(make_state(), 999999)

    def test_pay_down_debt(self):
        state = pay_down_debt(make_state(total_debt=2000, holdco_loan_rounds_remaining=5), 2000)
        assert state.total_debt == 0
        assert state.holdco_loan_rounds_remaining == 0
        with pytest.raises(ValueError):
            pay_down_debt(make_state(total_debt=100), 500)

    def test_buyback_at_intrinsic_value(self):
        """Intrinsic value is 9.2 per share, so 1000 buys 108 whole shares"""
        state = buyback_shares(make_state(), 1000)
        assert state.shares_outstanding == 892
        assert state.total_buybacks == 1000

    def test_buyback_cannot_touch_founder_shares(self):
        with pytest.raises(ValueError):
            buyback_shares(make_state(cash=50000), 40000)

    def test_issue_equity_respects_founder_floor(self):
        """The first raise is priced at the full 9.2 intrinsic value per share"""
        state = issue_equity(make_state(), 1000)
        assert state.shares_outstanding == 1109
        assert state.equity_raises_used == 1
        assert state.last_equity_raise_round == 3
        with pytest.raises(ValueError):
            issue_equity(make_state(), 100000)

    def test_repeat_raises_are_priced_lower(self):
        assert get_equity_issue_price_factor(0) == 1.0
        assert abs(get_equity_issue_price_factor(3) - 0.7) < 1e-9
        assert abs(get_equity_issue_price_factor(12) - 0.1) < 1e-9
        # 1000 at 90% of 9.2
        assert issue_equity(make_state(equity_raises_used=1), 1000).shares_outstanding == 1121
        # Floor: 100 at 10% of 9.2
        assert issue_equity(make_state(equity_raises_used=12), 100).shares_outstanding == 1109

    def test_buyback_blocked_after_raise(self):
        state = issue_equity(make_state(), 1000)
        with pytest.raises(ValueError):
            buyback_shares(state, 500)
        with pytest.raises(ValueError):
            buyback_shares(replace(state, round=4), 500)
        state = buyback_shares(replace(state, round=5), 500)
        assert state.last_buyback_round == 5

    def test_raise_blocked_after_buyback(self):
        state = buyback_shares(make_state(), 1000)
        assert state.last_buyback_round == 3
        with pytest.raises(ValueError):
            issue_equity(state, 1000)
        with pytest.raises(ValueError):
            issue_equity(replace(state, round=4), 1000)
        assert issue_equity(replace(state, round=5), 1000).equity_raises_used == 1

    def test_buyback_needs_an_active_business(self):
        state = make_state(businesses=[make_business(status="sold")])
        with pytest.raises(ValueError):
            buyback_shares(state, 1000)
        assert state.shares_outstanding == 1000

    def test_upgrade_ma_sourcing(self):
        state = upgrade_ma_sourcing(make_state())
        assert state.ma_sourcing_tier == 1
        assert state.cash == 4200
        with pytest.raises(ValueError):
            upgrade_ma_sourcing(make_state(ma_sourcing_tier=3))

    def test_shared_services_need_three_opcos(self):
        state = new_game(seed=3)
        with pytest.raises(ValueError):
            unlock_shared_service(state, state.shared_services[0].type)


class TestPortfolioActions:
    def test_sell(self):
        state = sell_business(make_state(), "biz_1")
        assert state.businesses[0].status == "sold"
        assert state.businesses[0].exit_price == 4200
        assert state.cash == 9200
        assert state.exited_businesses[0].id == "biz_1"

    def test_sell_unknown_business(self):
        with pytest.raises(ValueError):
            sell_business(make_state(), "nope")

    def test_wind_down_repays_opco_debt(self):
        state = make_state(businesses=[make_business(seller_note_balance=700, earnout_remaining=300)])
        state = wind_down_business(state, "biz_1")
        closed = state.businesses[0]
        assert closed.status == "wound_down"
        assert closed.earnout_remaining == 0
        assert state.cash == 4300

    def test_merge(self):
        state = make_state(businesses=[make_business(), make_business(id="biz_2", sub_type="Creative Studio")])
        merged = merge_businesses(state, "biz_1", "biz_2", FixedRng(0.5))
        active = [b for b in merged.businesses if b.status == "active"]
        assert len(active) == 1
        assert active[0].id == "merged_biz_1_biz_2"
        assert active[0].is_platform and active[0].was_merged
        assert active[0].merger_balance_ratio == 1.0
        assert {b.status for b in merged.exited_businesses} == {"merged"}

    def test_merge_guards(self):
        state = make_state(businesses=[make_business(), make_business(id="biz_2", sector_id="saas",
                                                                      sub_type="Vertical SaaS")])
        with pytest.raises(ValueError):
            merge_businesses(state, "biz_1", "biz_1", FixedRng(0.5))
        with pytest.raises(ValueError):
            merge_businesses(state, "biz_1", "biz_2", FixedRng(0.5))

    def test_improvement(self):
        state = apply_improvement(make_state(), "biz_1", "operating_playbook", FixedRng(0.99))
        b = state.businesses[0]
        assert abs(b.ebitda_margin - 0.22) < 1e-9
        assert b.ebitda == 1100
        assert state.cash == 4850
        with pytest.raises(ValueError):
            apply_improvement(state, "biz_1", "operating_playbook", FixedRng(0.99))


class TestAdvanceRound:
    """Test suite for the round pipeline"""

    def test_round_ticks_and_records_metrics(self):
        state = advance_round(make_state(), FixedRng(0.5))
        assert state.round == 4
        assert len(state.metrics_history) == 1
        assert state.metrics_history[0].round == 3
        assert state.actions_this_round == []

    def test_same_seed_same_game(self):
        a = _play(42, 5)
        b = _play(42, 5)
        assert a.state.to_dict() == b.state.to_dict()
        assert [d.business.to_dict() for d in a.deals] == [d.business.to_dict() for d in b.deals]

    def test_different_seeds_differ(self):
        assert [d.business.to_dict() for d in _play(1, 0).deals] != [d.business.to_dict() for d in _play(2, 0).deals]

    def test_game_over_blocks_advance(self):
        with pytest.raises(ValueError):
            advance_round(make_state(round=21), FixedRng(0.5))

    def test_pending_choice_blocks_advance(self):
        event = GameEvent(
            id="event_3_portfolio_key_man_risk_biz_1", type="portfolio_key_man_risk", title="", description="",
            affected_business_id="biz_1", choices=[EventChoice("Accept", "accept_key_man_loss")],
        )
        with pytest.raises(ValueError):
            advance_round(make_state(current_event=event), FixedRng(0.5))

    def test_choice_on_sold_business_does_not_block(self):
        event = GameEvent(
            id="event_3_unsolicited_biz_1", type="unsolicited_offer", title="", description="",
            affected_business_id="biz_1", choices=[EventChoice("Accept", "accept_offer")],
        )
        state = make_state(businesses=[make_business(status="sold")], current_event=event)
        assert advance_round(state, FixedRng(0.5)).round == 4


class TestRestructuring:
    def test_negative_cash_triggers_restructuring(self):
        """-2000 + 1019 FCF - 315 tax leaves the holdco short"""
        state = advance_round(make_state(cash=-2000), FixedRng(0.5))
        assert state.cash == -1296
        assert state.requires_restructuring
        assert state.has_restructured
        assert state.round == 3
        assert state.current_event is None
        with pytest.raises(ValueError):
            advance_round(state, FixedRng(0.5))

    def test_emergency_raise_then_complete(self):
        state = advance_round(make_state(cash=-2000), FixedRng(0.5))
        state = emergency_equity_raise(state, 2000)
        assert state.cash == 704
        state = complete_restructuring(state)
        assert not state.requires_restructuring
        assert state.round == 4
        assert abs(state.interest_rate - 0.09) < 1e-9

    def test_complete_with_negative_cash_is_bankruptcy(self):
        state = advance_round(make_state(cash=-2000), FixedRng(0.5))
        state = complete_restructuring(state)
        assert state.bankrupt_round == 3
        assert state.is_game_over

    def test_second_insolvency_is_bankruptcy(self):
        state = advance_round(make_state(cash=-5000, has_restructured=True), FixedRng(0.5))
        assert state.bankrupt_round == 3
        assert not state.requires_restructuring

    def test_emergency_raise_only_in_restructuring(self):
        with pytest.raises(ValueError):
            emergency_equity_raise(make_state(), 1000)
        with pytest.raises(ValueError):
            complete_restructuring(make_state())

    def test_distressed_sale_at_seventy_percent(self):
        b = make_business(bank_debt_balance=500)
        state = make_state(businesses=[b], requires_restructuring=True)
        full = calculate_exit_valuation(b, state.round).exit_price
        price = round_half_up(full * 0.70)

        after = distressed_sale(state, "biz_1")
        assert after.businesses[0].status == "sold"
        assert after.businesses[0].exit_price == price
        assert after.cash == 5000 + price - 500
        assert after.actions_this_round[-1]["distressed"]

    def test_distressed_sale_settles_bolt_on_obligations(self):
        platform = make_business(is_platform=True, bolt_on_ids=["bolt_1"])
        bolt_on = make_business(id="bolt_1", status="integrated", parent_platform_id="biz_1",
                                seller_note_balance=200)
        state = make_state(businesses=[platform, bolt_on], requires_restructuring=True)
        price = round_half_up(calculate_exit_valuation(platform, state.round).exit_price * 0.70)

        after = distressed_sale(state, "biz_1")
        assert after.cash == 5000 + price - 200
        assert after.businesses[1].seller_note_balance == 0
        assert after.businesses[1].status == "integrated"

    def test_distressed_sale_releases_shared_services(self):
        services = [SharedService("procurement", "Procurement", 600, 190, active=True)]
        businesses = [make_business(id=f"biz_{i}") for i in range(1, 4)]
        state = make_state(businesses=businesses, shared_services=services, requires_restructuring=True)
        after = distressed_sale(state, "biz_1")
        assert not after.shared_services[0].active

    def test_distressed_sale_only_in_restructuring(self):
        with pytest.raises(ValueError):
            distressed_sale(make_state(), "biz_1")
        with pytest.raises(ValueError):
            distressed_sale(make_state(requires_restructuring=True), "ghost")


class TestHoldcoGame:
    def test_create_always_seeds(self):
        game = HoldcoGame.create()
        assert game.state.seed is not None
        assert len(game.deals) > 0

    def test_acquire_cheapest_deal(self):
        game = HoldcoGame.create(seed=7)
        deal = min(game.deals, key=lambda d: d.asking_price)
        cash_before = game.state.cash
        game.acquire(deal.id, "all_cash")
        assert len(game.state.businesses) == 2
        assert game.state.cash == cash_before - deal.asking_price
        assert all(d.id != deal.id for d in game.deals)
        with pytest.raises(ValueError):
            game.acquire(deal.id, "all_cash")

    def test_apply_dispatch(self):
        game = HoldcoGame.create(seed=7)
        cash = game.state.cash
        game.apply("distribute", amount=100)
        assert game.state.cash == cash - 100
        with pytest.raises(ValueError):
            game.apply("launch_rocket")
