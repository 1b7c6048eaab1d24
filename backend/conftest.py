"""
Shared pytest factories for holdco engine tests.
"""

import pytest

from models import Business, DueDiligence, GameState
from rng import FixedRng


def make_business(**overrides) -> Business:
    """An agency business bought in round 1 at 4x on $1M EBITDA unless overridden."""
    values = dict(
        id="biz_1",
        name="Test Agency Co.",
        sector_id="agency",
        sub_type="Digital Agency",
        revenue=5000,
        ebitda=1000,
        ebitda_margin=0.20,
        organic_growth_rate=0.05,
        acquisition_round=1,
        acquisition_price=4000,
        acquisition_ebitda=1000,
        acquisition_margin=0.20,
        acquisition_multiple=4.0,
        acquisition_revenue=5000,
        quality_rating=3,
        due_diligence=DueDiligence(),
    )
    values.update(overrides)
    return Business(**values)


def make_state(**overrides) -> GameState:
    values = dict(
        holdco_name="Test Holdco",
        cash=5000,
        round=3,
        max_rounds=20,
        businesses=[make_business()],
        shares_outstanding=1000,
        founder_shares=800,
        initial_raise=20000,
        total_invested_capital=4000,
    )
    values.update(overrides)
    return GameState(**values)


@pytest.fixture
def business() -> Business:
    return make_business()


@pytest.fixture
def state() -> GameState:
    return make_state()


@pytest.fixture
def mid_rng() -> FixedRng:
    return FixedRng(0.5)
