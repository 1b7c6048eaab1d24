"""
Unit tests for the exit valuation engine

Tests cover:
- Multiple floor and finiteness guards
- Seasoning by hold period
- Individual premium terms
- Premium cap
"""

import math

from conftest import make_business
from models import Improvement, IntegratedPlatform
from valuation import (
    calculate_exit_valuation,
    calculate_growth_premium,
    calculate_improvements_premium,
    calculate_margin_expansion_premium,
    calculate_merger_premium,
    calculate_rule_of_40_premium,
)


class TestValuationGuards:
    """Properties that must hold for any business"""

    def test_multiple_never_below_floor(self):
        b = make_business(
            acquisition_multiple=1.0, quality_rating=1, ebitda=400, revenue=2000, acquisition_ebitda=1000,
        )
        v = calculate_exit_valuation(b, 10, last_event_type="global_recession")
        assert v.total_multiple >= 2.0

    def test_zero_acquisition_ebitda_is_finite(self):
        b = make_business(acquisition_ebitda=0)
        v = calculate_exit_valuation(b, 5)
        assert v.ebitda_growth == 0.0
        assert math.isfinite(v.total_multiple)
        assert v.exit_price >= 0

    def test_net_proceeds_never_negative(self):
        b = make_business(seller_note_balance=50000, bank_debt_balance=50000)
        v = calculate_exit_valuation(b, 5)
        assert v.net_proceeds == 0

    def test_negative_ebitda_prices_at_zero(self):
        b = make_business(ebitda=-200, revenue=4000, ebitda_margin=0.05)
        assert calculate_exit_valuation(b, 5).exit_price == 0


class TestSeasoning:
    """Premiums phase in over two years of ownership"""

    def test_zero_years_held_gets_base_multiple(self):
        v = calculate_exit_valuation(make_business(acquisition_round=1), 1)
        assert v.seasoning_multiplier == 0.0
        assert abs(v.total_multiple - 4.0) < 1e-9

    def test_one_year_held_is_half_seasoned(self):
        v = calculate_exit_valuation(make_business(acquisition_round=1), 2)
        assert abs(v.seasoning_multiplier - 0.5) < 1e-9
        # Only the hold premium (0.1) is earned
        assert abs(v.total_multiple - 4.05) < 1e-9

    def test_two_years_held_is_fully_seasoned(self):
        v = calculate_exit_valuation(make_business(acquisition_round=1), 3)
        assert v.seasoning_multiplier == 1.0
        assert abs(v.total_multiple - 4.2) < 1e-9
        assert v.exit_price == 4200


class TestPremiumTerms:
    def test_growth_premium(self):
        assert abs(calculate_growth_premium(0.5) - 0.4) < 1e-9
        assert calculate_growth_premium(10.0) == 2.5
        assert abs(calculate_growth_premium(-0.4) - (-0.2)) < 1e-9
        assert calculate_growth_premium(-5.0) == -1.0

    def test_merger_premium_by_balance(self):
        """Balanced mergers earn the most"""
        for ratio, expected in ((1.5, 0.5), (2.5, 0.4), (4.0, 0.3)):
            b = make_business(was_merged=True, merger_balance_ratio=ratio)
            assert abs(calculate_merger_premium(b) - expected) < 1e-9
        assert calculate_merger_premium(make_business()) == 0.0

    def test_improvements_premium_capped(self):
        improvements = [Improvement(t, 1) for t in (
            "recurring_revenue_conversion", "management_professionalization", "operating_playbook",
            "pricing_model",
        )]
        assert calculate_improvements_premium(make_business(improvements=improvements)) == 1.0

    def test_rule_of_40(self):
        strong = make_business(sector_id="saas", sub_type="Vertical SaaS", organic_growth_rate=0.20,
                               ebitda_margin=0.35, revenue=2857)
        assert abs(calculate_rule_of_40_premium(strong) - 1.25) < 1e-9
        weak = make_business(sector_id="saas", sub_type="Vertical SaaS", organic_growth_rate=0.0,
                             ebitda_margin=0.15, revenue=6667)
        assert abs(calculate_rule_of_40_premium(weak) - (-0.3)) < 1e-9
        assert calculate_rule_of_40_premium(make_business()) == 0.0

    def test_margin_expansion(self):
        assert calculate_margin_expansion_premium(make_business(ebitda_margin=0.31, acquisition_margin=0.20)) == 0.3
        assert abs(calculate_margin_expansion_premium(make_business(ebitda_margin=0.275, acquisition_margin=0.20))
                   - 0.2) < 1e-9
        assert calculate_margin_expansion_premium(make_business(ebitda_margin=0.14, acquisition_margin=0.20)) == -0.2

    def test_market_modifier(self):
        b = make_business()
        assert calculate_exit_valuation(b, 5, "global_bull_market").market_modifier == 0.5
        assert calculate_exit_valuation(b, 5, "global_recession").market_modifier == -0.5
        assert calculate_exit_valuation(b, 5).market_modifier == 0.0

    def test_size_tier_nets_out_entry_premium(self):
        """Growth into a bigger buyer pool earns only the increment"""
        b = make_business(ebitda=5000, revenue=25000, acquisition_size_tier_premium=0.5)
        v = calculate_exit_valuation(b, 5)
        assert v.buyer_pool_tier == "lower_middle_pe"
        assert abs(v.size_tier_premium - 0.3) < 1e-9

    def test_platform_context_sets_buyer_pool(self):
        v = calculate_exit_valuation(make_business(), 5, portfolio_context={"total_platform_ebitda": 12000})
        assert v.buyer_pool_tier == "institutional_pe"

    def test_integrated_platform_premium_sits_outside_cap(self):
        platform = IntegratedPlatform(
            id="platform_x", recipe_id="agency_full_service", name="X", sector_ids=["agency"],
            constituent_business_ids=["biz_1"], forged_in_round=2, bonuses={"multiple_expansion": 1.5},
        )
        b = make_business(integrated_platform_id="platform_x", acquisition_round=1)
        with_platform = calculate_exit_valuation(b, 5, integrated_platforms=[platform])
        without = calculate_exit_valuation(b, 5)
        assert abs(with_platform.total_multiple - without.total_multiple - 1.5) < 1e-9

    def test_integrated_platform_premium_is_seasoned(self):
        """One year held: half of the 1.5x expansion counts"""
        platform = IntegratedPlatform(
            id="platform_x", recipe_id="agency_full_service", name="X", sector_ids=["agency"],
            constituent_business_ids=["biz_1"], forged_in_round=2, bonuses={"multiple_expansion": 1.5},
        )
        b = make_business(integrated_platform_id="platform_x", acquisition_round=4)
        with_platform = calculate_exit_valuation(b, 5, integrated_platforms=[platform])
        without = calculate_exit_valuation(b, 5)
        assert abs(with_platform.total_multiple - without.total_multiple - 0.75) < 1e-9

    def test_premium_cap(self):
        """Earned premiums never exceed max(10, 1.5 x base)"""
        improvements = [Improvement(t, 1) for t in ("recurring_revenue_conversion", "management_professionalization",
                                                     "pricing_model")]
        b = make_business(
            sector_id="saas", sub_type="Vertical SaaS", organic_growth_rate=0.20,
            ebitda=40000, revenue=100000, ebitda_margin=0.40, acquisition_ebitda=1000, quality_rating=5,
            improvements=improvements,
        )
        v = calculate_exit_valuation(b, 20, "global_bull_market")
        assert v.premium_cap == 10.0
        assert abs(v.total_premiums - 10.0) < 1e-9
        assert abs(v.total_multiple - 14.0) < 1e-9

    def test_platform_scale_raises_cap(self):
        b = make_business(is_platform=True, platform_scale=10)
        assert abs(calculate_exit_valuation(b, 5).premium_cap - 13.0) < 1e-9
