"""
Unit tests for the event generator

Tests cover:
- Quiet years and global table order
- Crisis gating by round
- Portfolio targeting and cooldowns
- Choice menus and their costs
- Consolidation booms, unsolicited offers and MBO pricing
"""

from conftest import make_business, make_state
from events import (
    EVENT_CHOICES,
    GLOBAL_EVENTS,
    PORTFOLIO_EVENTS,
    _mbo_event,
    _roll_consolidation_boom,
    _roll_unsolicited_offer,
    generate_event,
    has_choices,
)
from models import round_half_up
from rng import FixedRng, SeededRng
from valuation import calculate_exit_valuation


def _two_sector_state(**overrides):
    businesses = [make_business(), make_business(id="biz_2", sector_id="saas", sub_type="Vertical SaaS")]
    return make_state(businesses=businesses, **overrides)


class TestGlobalRoll:
    """Test suite for the global event table"""

    def test_high_roll_on_empty_portfolio_is_quiet(self):
        event = generate_event(make_state(businesses=[]), FixedRng(0.9999))
        assert event.type == "global_quiet"
        assert event.id == "event_3_quiet"
        assert not has_choices(event)

    def test_zero_roll_hits_first_entry(self):
        event = generate_event(make_state(), FixedRng(0.0))
        assert event.type == GLOBAL_EVENTS[0]["type"]

    def test_cumulative_bands(self):
        """0.12 lands past bull (0.10) inside recession (0.17)"""
        event = generate_event(make_state(businesses=[]), FixedRng(0.12))
        assert event.type == "global_recession"

    def test_crisis_gated_before_round_three(self):
        early = generate_event(make_state(businesses=[], round=2), FixedRng(0.44))
        assert early.type == "global_quiet"
        late = generate_event(make_state(businesses=[], round=3), FixedRng(0.44))
        assert late.type == "global_financial_crisis"

    def test_crisis_happens_once(self):
        state = make_state(businesses=[], round=8, event_log=[(4, "global_financial_crisis", None)])
        assert generate_event(state, FixedRng(0.44)).type == "global_quiet"

    def test_generation_is_replayable(self):
        state = make_state()
        first = generate_event(state, SeededRng(2024))
        second = generate_event(state, SeededRng(2024))
        assert first.to_dict() == second.to_dict()


class TestPortfolioRoll:
    def test_portfolio_event_targets_active_business(self):
        # Global misses, portfolio rolls 0.0, pick takes the last element
        event = generate_event(make_state(), FixedRng([0.9999, 0.0]))
        assert event.type == PORTFOLIO_EVENTS[0]["type"]
        assert event.affected_business_id == "biz_1"

    def test_cooldown_skips_recent_event(self):
        state = make_state(event_log=[(2, "portfolio_star_joins", "biz_1")])
        event = generate_event(state, FixedRng([0.9999, 0.0]))
        assert event.type == "portfolio_talent_leaves"

    def test_cooldown_expires(self):
        state = make_state(round=6, event_log=[(2, "portfolio_star_joins", "biz_1")])
        event = generate_event(state, FixedRng([0.9999, 0.0]))
        assert event.type == "portfolio_star_joins"

    def test_sold_businesses_never_targeted(self):
        state = make_state(businesses=[make_business(status="sold")])
        assert generate_event(state, FixedRng([0.9999, 0.0])).type == "global_quiet"


class TestChoices:
    """Decision events come with a priced menu"""

    def test_key_man_choices_priced_from_ebitda(self):
        event = generate_event(make_state(), FixedRng([0.9999, 0.34]))
        assert event.type == "portfolio_key_man_risk"
        assert has_choices(event)
        costs = {c.action: c.cost for c in event.choices}
        assert costs == {"golden_handcuffs": 150, "succession_plan": 100, "accept_key_man_loss": 0}

    def test_every_menu_has_an_option(self):
        for event_type, menu in EVENT_CHOICES.items():
            assert menu, event_type
            assert all(option["variant"] in ("positive", "neutral", "negative") for option in menu)

    def test_has_choices_none(self):
        assert not has_choices(None)


class TestConsolidationBoom:
    def test_needs_two_opcos_and_skips_the_draw(self):
        rng = FixedRng(0.0)
        assert _roll_consolidation_boom(make_state(), make_state().businesses, rng) is None
        assert rng.calls == 0

    def test_not_while_a_boom_runs(self):
        state = _two_sector_state(consolidation_boom_rounds_remaining=1)
        assert _roll_consolidation_boom(state, state.businesses, FixedRng(0.0)) is None

    def test_five_percent_gate(self):
        state = _two_sector_state()
        assert _roll_consolidation_boom(state, state.businesses, FixedRng(0.05)) is None
        event = _roll_consolidation_boom(state, state.businesses, FixedRng(0.04))
        assert event.type == "sector_consolidation_boom"
        assert event.consolidation_sector_id == "agency"

    def test_sector_picked_from_owned_sectors(self):
        state = _two_sector_state()
        event = _roll_consolidation_boom(state, state.businesses, FixedRng([0.04, 0.6]))
        assert event.consolidation_sector_id == "saas"
        assert event.id == "event_3_consolidation_boom_saas"


class TestUnsolicitedOffer:
    """Offer chance is 1 - 0.95^N for N active businesses"""

    def test_single_business_chance(self):
        state = make_state()
        assert _roll_unsolicited_offer(state, state.businesses, FixedRng(0.051)) is None
        assert _roll_unsolicited_offer(state, state.businesses, FixedRng(0.04)) is not None

    def test_chance_grows_with_portfolio(self):
        """1 - 0.95^3 = 14.26%"""
        state = make_state(businesses=[make_business(id=f"biz_{i}") for i in range(3)])
        assert _roll_unsolicited_offer(state, state.businesses, FixedRng(0.14)) is not None
        assert _roll_unsolicited_offer(state, state.businesses, FixedRng(0.15)) is None

    def test_financial_buyer_price_with_variance(self):
        """Every draw at 0.04: individual buyer, variance 0.9 + 0.04 x 0.3"""
        state = make_state()
        event = _roll_unsolicited_offer(state, state.businesses, FixedRng(0.04))
        total = calculate_exit_valuation(state.businesses[0], state.round).total_multiple
        assert abs(event.offer_multiple - total * 0.912) < 1e-9
        assert event.offer_amount == round_half_up(1000 * event.offer_multiple)
        assert event.affected_business_id == "biz_1"
        assert {c.action for c in event.choices} == {"accept_offer", "decline_offer"}

    def test_strategic_premium_added_before_variance(self):
        """Large-PE pool: a 0.0 draw brings a strategic buyer with a 0.5x premium and 0.9x variance"""
        b = make_business(revenue=125000, ebitda=25000, acquisition_ebitda=25000)
        state = make_state(businesses=[b])
        event = _roll_unsolicited_offer(state, state.businesses, FixedRng(0.0))
        total = calculate_exit_valuation(b, state.round).total_multiple
        assert event.buyer_name == "WPP"
        assert abs(event.offer_multiple - (total + 0.5) * 0.9) < 1e-9

    def test_offer_multiple_floor(self):
        """Unseasoned 1.5x business sits on the 2.0x valuation floor; variance cannot push below it"""
        b = make_business(acquisition_multiple=1.5, acquisition_round=3)
        state = make_state(businesses=[b])
        event = _roll_unsolicited_offer(state, state.businesses, FixedRng(0.0))
        assert event.offer_multiple == 2.0
        assert event.offer_amount == 2000


class TestMboPricing:
    def _definition(self):
        return next(d for d in PORTFOLIO_EVENTS if d["type"] == "portfolio_mbo_proposal")

    def test_management_pays_ninety_percent_of_exit_multiple(self):
        state = make_state()
        b = state.businesses[0]
        event = _mbo_event(state, b, self._definition())
        total = calculate_exit_valuation(b, state.round).total_multiple
        assert abs(event.offer_multiple - total * 0.9) < 1e-9
        assert event.offer_amount == round_half_up(1000 * event.offer_multiple)
        assert event.buyer_name == "Test Agency Co. management team"
        assert {c.action for c in event.choices} == {"accept_mbo", "decline_mbo"}

    def test_floor_at_two_times(self):
        b = make_business(acquisition_multiple=1.5, acquisition_round=3)
        event = _mbo_event(make_state(businesses=[b]), b, self._definition())
        assert event.offer_multiple == 2.0
        assert event.offer_amount == 2000
