"""
Unit tests for the growth and drift model

Tests cover:
- Deterministic growth with a pinned rng
- Margin drift onset
- EBITDA floor
- Integration drag decay
- Margin defense and mean reversion toward the sector midpoint
"""

from dataclasses import replace

from conftest import make_business
from growth import (
    apply_organic_growth,
    calculate_integration_growth_penalty,
    get_concentration_multiplier,
    get_drag_decay_rate,
    get_margin_drift_start_round,
)
from models import round_half_up
from rng import FixedRng


class TestGrowthHelpers:
    def test_drift_start_round(self):
        assert get_margin_drift_start_round(20) == 4
        assert get_margin_drift_start_round(10) == 2
        assert get_margin_drift_start_round(5) == 2

    def test_concentration_multiplier(self):
        assert get_concentration_multiplier(3) == 1.0
        assert abs(get_concentration_multiplier(4) - 1.25) < 1e-9
        assert get_concentration_multiplier(20) == 2.0

    def test_drag_decay_by_duration(self):
        assert get_drag_decay_rate("standard") == 0.65
        assert get_drag_decay_rate("quick") == 0.50

    def test_integration_penalty_bounds(self):
        """Penalty is negative and stays between floor and cap"""
        small = calculate_integration_growth_penalty(100, 1000, False)
        large = calculate_integration_growth_penalty(5000, 1000, False)
        assert abs(small - (-0.01)) < 1e-9
        assert abs(large - (-0.06)) < 1e-9
        merger = calculate_integration_growth_penalty(5000, 1000, True)
        assert abs(merger - (-0.036)) < 1e-9

    def test_integration_penalty_without_platform_ebitda(self):
        assert abs(calculate_integration_growth_penalty(100, 0, False) - (-0.06)) < 1e-9


class TestApplyOrganicGrowth:
    """Test suite for apply_organic_growth"""

    def test_midpoint_draw_grows_at_base_rate(self):
        """rng 0.5 zeroes the volatility term; before drift onset the margin is unchanged"""
        b = make_business(organic_growth_rate=0.05)
        grown = apply_organic_growth(b, FixedRng(0.5), current_round=1)
        assert grown.revenue == 5250
        assert grown.ebitda == 1050
        assert abs(grown.ebitda_margin - 0.20) < 1e-9
        assert grown.peak_revenue == 5250

    def test_input_not_mutated(self):
        b = make_business()
        apply_organic_growth(b, FixedRng(0.5), current_round=1)
        assert b.revenue == 5000

    def test_inflation_drags_growth(self):
        b = make_business(organic_growth_rate=0.05)
        grown = apply_organic_growth(b, FixedRng(0.5), inflation_active=True, current_round=1)
        assert grown.revenue == 5100

    def test_marketing_bonus_extra_for_agency(self):
        b = make_business(organic_growth_rate=0.0)
        grown = apply_organic_growth(b, FixedRng(0.5), shared_services_growth_bonus=0.015, current_round=1)
        # 0.015 + 0.01 agency extra
        assert grown.revenue == 5125

    def test_margin_drift_after_onset(self):
        b = make_business(margin_drift_rate=-0.01)
        grown = apply_organic_growth(b, FixedRng(0.5), current_round=10)
        assert abs(grown.ebitda_margin - 0.19) < 1e-9

    def test_ebitda_floor_binds(self):
        """A collapse in revenue cannot take EBITDA below 30% of acquisition EBITDA"""
        b = make_business(revenue=600, ebitda=120, ebitda_margin=0.20, acquisition_ebitda=1000)
        grown = apply_organic_growth(b, FixedRng(0.0), current_round=1)
        assert grown.ebitda == 300
        assert abs(grown.ebitda_margin - 300 / grown.revenue) < 1e-9

    def test_integration_rounds_and_drag_decay(self):
        b = make_business(integration_rounds_remaining=2, integration_growth_drag=-0.04)
        grown = apply_organic_growth(b, FixedRng(0.5), current_round=1)
        assert grown.integration_rounds_remaining == 1
        assert abs(grown.integration_growth_drag - (-0.04 * 0.65)) < 1e-9

    def test_tiny_drag_snaps_to_zero(self):
        b = make_business(integration_growth_drag=-0.001)
        grown = apply_organic_growth(b, FixedRng(0.5), current_round=1, duration="quick")
        assert grown.integration_growth_drag == 0.0

    def test_leader_grows_faster_than_commoditized(self):
        base = make_business(organic_growth_rate=0.03)
        leader = replace(base, due_diligence=replace(base.due_diligence, competitive_position="leader"))
        laggard = replace(base, due_diligence=replace(base.due_diligence, competitive_position="commoditized"))
        assert (apply_organic_growth(leader, FixedRng(0.5)).revenue
                > apply_organic_growth(laggard, FixedRng(0.5)).revenue)


class TestMarginPressure:
    """Test suite for margin defense and mean reversion after drift onset"""

    def test_mean_reversion_headwind_far_above_midpoint(self):
        """Agency midpoint is 20%; a 35% margin is 15pp above and gives back 0.5pp"""
        b = make_business(ebitda=1750, ebitda_margin=0.35)
        grown = apply_organic_growth(b, FixedRng(0.5), current_round=10)
        assert abs(grown.ebitda_margin - 0.345) < 1e-9
        assert grown.ebitda == 1811

    def test_no_headwind_inside_the_gap(self):
        b = make_business(ebitda=1450, ebitda_margin=0.29)
        grown = apply_organic_growth(b, FixedRng(0.5), current_round=10)
        assert abs(grown.ebitda_margin - 0.29) < 1e-9

    def test_margin_defense_offsets_drift(self):
        b = make_business(margin_drift_rate=-0.01)
        grown = apply_organic_growth(b, FixedRng(0.5), current_round=10, margin_defense=0.004)
        assert abs(grown.ebitda_margin - 0.194) < 1e-9
        assert grown.ebitda == round_half_up(5250 * grown.ebitda_margin)

    def test_margin_defense_and_headwind_stack(self):
        b = make_business(ebitda=1750, ebitda_margin=0.35)
        grown = apply_organic_growth(b, FixedRng(0.5), current_round=10, margin_defense=0.004)
        assert abs(grown.ebitda_margin - 0.349) < 1e-9

    def test_margin_defense_waits_for_drift_onset(self):
        b = make_business()
        grown = apply_organic_growth(b, FixedRng(0.5), current_round=1, margin_defense=0.004)
        assert abs(grown.ebitda_margin - 0.20) < 1e-9
