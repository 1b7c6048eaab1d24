"""
Deal Flow

Generates acquisition targets: quality, due-diligence signals, financials
and an asking price. All draws come from the injected random source, so a
seeded game replays the same pipeline.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from buyers import calculate_size_tier_premium
from models import Business, DueDiligence, GameState, clamp_margin, round_half_up
from rng import RandomSource
from sectors import SECTORS

DEALS_PER_ROUND = 4

# Deal EBITDA (thousands) grows with the round so late-game targets are larger
DEAL_EBITDA_RANGE = (300.0, 1800.0)
DEAL_EBITDA_GROWTH_PER_ROUND = 0.05

CHEAP_SECTORS = ("agency", "homeServices", "b2bServices", "education", "autoServices")
MID_SECTORS = ("consumer", "restaurant", "healthcare", "insurance", "distribution", "wealthManagement", "environmental")
PREMIUM_SECTORS = ("saas", "industrial", "realEstate")

NAME_PREFIXES = (
    "Summit", "Harbor", "Keystone", "Evergreen", "Northline", "Bluewater", "Ironwood",
    "Meridian", "Crestview", "Pinnacle", "Redwood", "Lakeside", "Granite", "Beacon",
)
NAME_SUFFIXES = ("Group", "Partners", "Co.", "Holdings", "Solutions", "& Sons", "Collective")

_CONCENTRATION_TEXTS = {
    "low": "No client exceeds 10% of revenue",
    "medium": "Top client is 20-25% of revenue",
    "high": "Top client is 40%+ of revenue",
}


@dataclass(slots=True)
class Deal:
    id: str
    business: Business
    asking_price: int
    round_appeared: int
    source: str  # inbound / brokered
    acquisition_type: str  # tuck_in / standalone / platform
    tuck_in_discount: Optional[float] = None
    notes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def generate_quality_rating(rng: RandomSource) -> int:
    """Weighted toward 3; 1s and 5s are rare."""
    roll = rng.next()
    if roll < 0.05:
        return 1
    if roll < 0.20:
        return 2
    if roll < 0.60:
        return 3
    if roll < 0.85:
        return 4
    return 5


def generate_due_diligence(quality: int, sector_id: str, rng: RandomSource) -> DueDiligence:
    sector = SECTORS[sector_id]

    if sector.client_concentration == "high":
        concentration = "medium" if quality >= 4 else "high"
    elif sector.client_concentration == "medium":
        concentration = "low" if quality >= 4 else "medium" if quality >= 2 else "high"
    else:
        concentration = "low" if quality >= 3 else "medium"

    if quality >= 4:
        operator = "strong"
    elif quality >= 2:
        operator = "moderate"
    else:
        operator = "weak"

    if quality >= 4:
        trend = "growing"
    elif quality >= 2:
        trend = "flat" if rng.next() > 0.3 else "growing"
    else:
        trend = "declining" if rng.next() > 0.5 else "flat"

    if quality >= 4:
        retention = rng.next_int(90, 98)
    elif quality >= 3:
        retention = rng.next_int(82, 92)
    elif quality >= 2:
        retention = rng.next_int(75, 85)
    else:
        retention = rng.next_int(65, 78)

    if quality >= 4:
        position = "leader" if rng.next() > 0.3 else "competitive"
    elif quality >= 2:
        position = "competitive" if rng.next() > 0.5 else "commoditized"
    else:
        position = "commoditized"

    return DueDiligence(
        operator_quality=operator,
        competitive_position=position,
        revenue_concentration=concentration,
        customer_retention=float(retention),
        trend=trend,
    )


def generate_business_name(sector_id: str, sub_type: str, rng: RandomSource) -> str:
    return f"{rng.pick(NAME_PREFIXES)} {sub_type} {rng.pick(NAME_SUFFIXES)}"


def generate_business(
    sector_id: str,
    round_number: int,
    rng: RandomSource,
    business_id: str = "",
    force_quality: Optional[int] = None,
    force_sub_type: Optional[str] = None,
) -> Business:
    """
    Roll a fresh business in a sector.

    Args:
        sector_id: Sector to generate in
        round_number: Round the deal appears (scales deal size)
        rng: Random source
        business_id: Id for the record; the caller keeps ids unique
        force_quality: Pin the quality rating (starting business)
        force_sub_type: Pin the sub-type when it belongs to the sector

    Returns:
        Business with its acquisition snapshot filled in
    """
    sector = SECTORS[sector_id]
    quality = force_quality if force_quality is not None else generate_quality_rating(rng)
    dd = generate_due_diligence(quality, sector_id, rng)

    margin = rng.next_in_range(sector.margin_range) + (quality - 3) * 0.015
    margin = clamp_margin(margin, sector_id)

    size_factor = (0.8 + (quality - 1) * 0.1) * (1 + DEAL_EBITDA_GROWTH_PER_ROUND * max(0, round_number - 1))
    ebitda = max(1, round_half_up(rng.next_in_range(DEAL_EBITDA_RANGE) * size_factor))
    revenue = round_half_up(ebitda / margin)

    growth = rng.next_in_range(sector.base_growth) + (quality - 3) * 0.005
    if dd.trend == "growing":
        growth += 0.02
    elif dd.trend == "declining":
        growth -= 0.03

    drift = rng.next_in_range(sector.margin_drift)

    multiple = rng.next_in_range(sector.acquisition_multiple) + (quality - 3) * 0.35
    if dd.competitive_position == "leader":
        multiple += 0.3
    elif dd.competitive_position == "commoditized":
        multiple -= 0.3
    multiple = round(max(1.0, multiple), 1)

    if force_sub_type and force_sub_type in sector.sub_types:
        sub_type = force_sub_type
    else:
        sub_type = rng.pick(sector.sub_types)

    return Business(
        id=business_id or f"biz_r{round_number}",
        name=generate_business_name(sector_id, sub_type, rng),
        sector_id=sector_id,
        sub_type=sub_type,
        revenue=revenue,
        ebitda=ebitda,
        ebitda_margin=margin,
        organic_growth_rate=growth,
        margin_drift_rate=drift,
        acquisition_round=round_number,
        acquisition_price=round_half_up(ebitda * multiple),
        acquisition_ebitda=ebitda,
        acquisition_margin=margin,
        acquisition_multiple=multiple,
        acquisition_revenue=revenue,
        acquisition_size_tier_premium=calculate_size_tier_premium(ebitda)[1],
        integration_rounds_remaining=2,
        quality_rating=quality,
        due_diligence=dd,
    )


def determine_acquisition_type(ebitda: int, rng: RandomSource) -> str:
    if ebitda < 500:
        return "tuck_in"
    if ebitda < 2000:
        return "platform" if rng.next() > 0.6 else "standalone"
    return "platform" if rng.next() > 0.3 else "standalone"


def calculate_tuck_in_discount(quality: int) -> float:
    """5% to 25% off for small businesses that can't run on their own."""
    return max(0.05, min(0.25, 0.15 + (3 - quality) * 0.05))


def generate_deal(sector_id: str, round_number: int, rng: RandomSource, index: int = 0) -> Deal:
    deal_id = f"biz_r{round_number}_{index}"
    business = generate_business(sector_id, round_number, rng, business_id=deal_id)
    acquisition_type = determine_acquisition_type(business.ebitda, rng)
    discount = calculate_tuck_in_discount(business.quality_rating) if acquisition_type == "tuck_in" else None
    asking_price = business.acquisition_price
    if discount:
        asking_price = round_half_up(asking_price * (1 - discount))

    return Deal(
        id=f"deal_{deal_id}",
        business=business,
        asking_price=asking_price,
        round_appeared=round_number,
        source="inbound" if rng.next() > 0.4 else "brokered",
        acquisition_type=acquisition_type,
        tuck_in_discount=discount,
        notes=[_CONCENTRATION_TEXTS[business.due_diligence.revenue_concentration]],
    )


def get_sector_weights_for_round(round_number: int, max_rounds: int = 20) -> Dict[str, float]:
    """Cheap sectors early, premium sectors late."""
    early_end = int(np.ceil(max_rounds * 0.25))
    mid_end = int(np.ceil(max_rounds * 0.60))
    if round_number <= early_end:
        cheap, mid, premium = 0.60, 0.30, 0.10
    elif round_number <= mid_end:
        cheap, mid, premium = 0.30, 0.40, 0.30
    else:
        cheap, mid, premium = 0.20, 0.30, 0.50

    weights = {s: cheap / len(CHEAP_SECTORS) for s in CHEAP_SECTORS}
    weights.update({s: mid / len(MID_SECTORS) for s in MID_SECTORS})
    weights.update({s: premium / len(PREMIUM_SECTORS) for s in PREMIUM_SECTORS})
    return weights


def pick_weighted_sector(round_number: int, rng: RandomSource, max_rounds: int = 20) -> str:
    weights = get_sector_weights_for_round(round_number, max_rounds)
    sectors = list(weights)
    cumulative = np.cumsum([weights[s] for s in sectors])
    idx = int(np.searchsorted(cumulative, rng.next() * cumulative[-1], side="right"))
    return sectors[min(idx, len(sectors) - 1)]


def generate_deal_pipeline(state: GameState, rng: RandomSource, count: int = DEALS_PER_ROUND) -> List[Deal]:
    """Fresh deals for the round; the boom sector is always represented."""
    deals = []
    for i in range(count):
        if i == 0 and state.consolidation_boom_sector_id:
            sector_id = state.consolidation_boom_sector_id
        else:
            sector_id = pick_weighted_sector(state.round, rng, state.max_rounds)
        deals.append(generate_deal(sector_id, state.round, rng, index=i))
    return deals


# --- Financing structures ---

@dataclass(slots=True)
class DealStructure:
    type: str  # all_cash / seller_note / bank_debt / earnout / seller_note_bank_debt
    cash_required: int
    seller_note_amount: int = 0
    seller_note_rate: float = 0.0
    seller_note_rounds: int = 0
    bank_debt_amount: int = 0
    bank_debt_rate: float = 0.0
    bank_debt_rounds: int = 0
    earnout_amount: int = 0
    earnout_target: float = 0.0
    risk: str = "low"

    @property
    def leverage_amount(self) -> int:
        return self.seller_note_amount + self.bank_debt_amount

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _deal_seed(deal_id: str) -> int:
    """Stable per-deal number so structure terms don't move between requests."""
    return sum(ord(c) for c in deal_id)


def generate_deal_structures(
    deal: Deal,
    price: int,
    player_cash: int,
    interest_rate: float,
    credit_tightening: bool = False,
    max_rounds: int = 20,
    no_new_debt: bool = False,
) -> List[DealStructure]:
    """Every financing option the player can afford for this deal at this price."""
    seller_note_rounds = max(4, int(np.ceil(max_rounds * 0.25)))
    bank_debt_rounds = max(4, int(np.ceil(max_rounds * 0.50)))
    seed = _deal_seed(deal.id)
    jitter = ((seed * 9301 + 49297) % 233280) / 233280
    note_rate = 0.05 + jitter * 0.01
    bank_blocked = credit_tightening or no_new_debt

    structures = []
    if player_cash >= price:
        structures.append(DealStructure("all_cash", price))

    note_cash = round_half_up(price * 0.40)
    if player_cash >= note_cash and not no_new_debt:
        structures.append(DealStructure(
            "seller_note", note_cash,
            seller_note_amount=price - note_cash, seller_note_rate=note_rate,
            seller_note_rounds=seller_note_rounds, risk="medium",
        ))

    bank_cash = round_half_up(price * 0.35)
    if not bank_blocked and player_cash >= bank_cash:
        structures.append(DealStructure(
            "bank_debt", bank_cash,
            bank_debt_amount=price - bank_cash, bank_debt_rate=interest_rate,
            bank_debt_rounds=bank_debt_rounds, risk="high",
        ))

    earnout_cash = round_half_up(price * 0.55)
    if deal.business.quality_rating >= 3 and seed % 10 >= 4 and player_cash >= earnout_cash:
        structures.append(DealStructure(
            "earnout", earnout_cash,
            earnout_amount=price - earnout_cash, earnout_target=0.07 + jitter * 0.05, risk="medium",
        ))

    lbo_cash = round_half_up(price * 0.25)
    lbo_note = round_half_up(price * 0.35)
    lbo_bank = price - lbo_cash - lbo_note
    if not bank_blocked and player_cash >= lbo_cash and lbo_bank > 0:
        structures.append(DealStructure(
            "seller_note_bank_debt", lbo_cash,
            seller_note_amount=lbo_note, seller_note_rate=note_rate, seller_note_rounds=seller_note_rounds,
            bank_debt_amount=lbo_bank, bank_debt_rate=interest_rate, bank_debt_rounds=bank_debt_rounds,
            risk="high",
        ))
    return structures
