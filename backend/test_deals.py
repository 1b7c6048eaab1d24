"""
Unit tests for deal flow and financing structures

Tests cover:
- Business generation with a pinned rng
- Quality and tuck-in pricing helpers
- Sector weighting by game phase
- Structure availability under cash and credit constraints
"""

from conftest import make_business, make_state
from deals import (
    DEALS_PER_ROUND,
    Deal,
    calculate_tuck_in_discount,
    determine_acquisition_type,
    generate_business,
    generate_deal,
    generate_deal_pipeline,
    generate_deal_structures,
    generate_quality_rating,
    get_sector_weights_for_round,
)
from rng import FixedRng, SeededRng


def _deal(price=1000, quality=3):
    return Deal(
        id="deal_biz_x",
        business=make_business(id="biz_x", quality_rating=quality),
        asking_price=price,
        round_appeared=1,
        source="inbound",
        acquisition_type="standalone",
    )


class TestGeneration:
    """Test suite for generate_deal"""

    def test_midpoint_deal(self):
        deal = generate_deal("agency", 1, FixedRng(0.5))
        b = deal.business
        assert deal.id == "deal_biz_r1_0"
        assert b.quality_rating == 3
        assert b.ebitda == 1050
        assert b.revenue == 5250
        assert b.due_diligence.revenue_concentration == "high"
        assert b.due_diligence.competitive_position == "commoditized"
        assert abs(b.acquisition_multiple - 3.2) < 1e-9
        assert deal.asking_price == 3360
        assert deal.acquisition_type == "standalone"
        assert deal.source == "inbound"

    def test_deal_size_grows_with_round(self):
        early = generate_business("agency", 1, FixedRng(0.5))
        late = generate_business("agency", 11, FixedRng(0.5))
        assert late.ebitda > early.ebitda

    def test_margin_stays_in_sector_band(self):
        rng = SeededRng(11)
        for _ in range(50):
            b = generate_business("saas", 1, rng)
            assert 0.03 <= b.ebitda_margin <= 0.50
            assert b.sub_type in ("Vertical SaaS", "Horizontal SaaS", "Developer Tools", "Data Platform")

    def test_forced_quality(self):
        b = generate_business("industrial", 1, SeededRng(3), force_quality=5)
        assert b.quality_rating == 5
        assert b.due_diligence.operator_quality == "strong"

    def test_quality_distribution_bounds(self):
        assert generate_quality_rating(FixedRng(0.0)) == 1
        assert generate_quality_rating(FixedRng(0.5)) == 3
        assert generate_quality_rating(FixedRng(0.9)) == 5


class TestPricingHelpers:
    def test_tuck_in_discount(self):
        assert abs(calculate_tuck_in_discount(3) - 0.15) < 1e-9
        assert calculate_tuck_in_discount(1) == 0.25
        assert calculate_tuck_in_discount(5) == 0.05

    def test_small_deals_are_tuck_ins(self):
        assert determine_acquisition_type(400, FixedRng(0.99)) == "tuck_in"
        assert determine_acquisition_type(3000, FixedRng(0.99)) == "platform"

    def test_sector_weights_sum_to_one(self):
        for round_number in (1, 8, 20):
            assert abs(sum(get_sector_weights_for_round(round_number).values()) - 1.0) < 1e-9

    def test_premium_sectors_arrive_late(self):
        assert get_sector_weights_for_round(20)["saas"] > get_sector_weights_for_round(1)["saas"]


class TestPipeline:
    def test_pipeline_size_and_ids(self):
        deals = generate_deal_pipeline(make_state(), SeededRng(5))
        assert len(deals) == DEALS_PER_ROUND
        assert len({d.id for d in deals}) == DEALS_PER_ROUND

    def test_boom_sector_always_present(self):
        state = make_state(consolidation_boom_sector_id="saas", consolidation_boom_rounds_remaining=2)
        assert generate_deal_pipeline(state, SeededRng(5))[0].business.sector_id == "saas"


class TestStructures:
    """Test suite for generate_deal_structures"""

    def test_cash_rich_buyer_sees_debt_options(self):
        types = {s.type: s for s in generate_deal_structures(_deal(), 1000, 10000, 0.07)}
        assert types["all_cash"].cash_required == 1000
        assert types["seller_note"].cash_required == 400
        assert types["seller_note"].seller_note_amount == 600
        assert types["bank_debt"].cash_required == 350
        lbo = types["seller_note_bank_debt"]
        assert (lbo.cash_required, lbo.seller_note_amount, lbo.bank_debt_amount) == (250, 350, 400)

    def test_credit_tightening_blocks_bank_debt(self):
        types = {s.type for s in generate_deal_structures(_deal(), 1000, 10000, 0.07, credit_tightening=True)}
        assert "bank_debt" not in types and "seller_note_bank_debt" not in types
        assert "seller_note" in types

    def test_distress_blocks_all_new_debt(self):
        types = {s.type for s in generate_deal_structures(_deal(), 1000, 10000, 0.07, no_new_debt=True)}
        assert "seller_note" not in types and "bank_debt" not in types

    def test_short_cash_limits_options(self):
        types = {s.type for s in generate_deal_structures(_deal(), 1000, 300, 0.07)}
        assert "all_cash" not in types
        assert "seller_note_bank_debt" in types

    def test_terms_are_stable(self):
        first = generate_deal_structures(_deal(), 1000, 10000, 0.07)
        second = generate_deal_structures(_deal(), 1000, 10000, 0.07)
        assert [s.to_dict() for s in first] == [s.to_dict() for s in second]

    def test_note_rate_in_band(self):
        note = next(s for s in generate_deal_structures(_deal(), 1000, 10000, 0.07) if s.type == "seller_note")
        assert 0.05 <= note.seller_note_rate <= 0.06
