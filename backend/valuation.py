"""
Exit Valuation Engine

Builds an exit multiple as a stack of premiums over the acquisition
multiple, caps the earned premiums, seasons them by hold period and
floors the result at a distressed-sale multiple. Never cached: every call
recomputes from the current business record.
"""

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from buyers import (
    ValuationCommentary,
    calculate_de_risking_premium,
    calculate_size_tier_premium,
    generate_valuation_commentary,
)
from config import CONFIG
from models import Business, IntegratedPlatform, round_half_up
from platforms import get_platform_multiple_expansion
from sectors import IMPROVEMENT_EXIT_PREMIUMS, RULE_OF_40_SECTORS
from turnarounds import get_turnaround_exit_premium


@dataclass(slots=True)
class ExitValuation:
    base_multiple: float
    growth_premium: float
    quality_premium: float
    platform_premium: float
    hold_premium: float
    improvements_premium: float
    market_modifier: float
    size_tier_premium: float
    de_risking_premium: float
    rule_of_40_premium: float
    margin_expansion_premium: float
    merger_premium: float
    turnaround_premium: float
    integrated_platform_premium: float
    total_premiums: float  # After cap and seasoning
    premium_cap: float
    seasoning_multiplier: float
    buyer_pool_tier: str
    total_multiple: float
    exit_price: int
    net_proceeds: int
    ebitda_growth: float
    years_held: int
    commentary: Optional[ValuationCommentary] = None
    factors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def calculate_growth_premium(ebitda_growth: float) -> float:
    v = CONFIG.valuation
    if ebitda_growth > 0:
        return min(v.growth_premium_cap, ebitda_growth * v.growth_premium_factor)
    return max(v.decline_penalty_floor, ebitda_growth * v.decline_penalty_factor)


def calculate_improvements_premium(business: Business) -> float:
    total = sum(IMPROVEMENT_EXIT_PREMIUMS.get(imp.type, 0.15) for imp in business.improvements)
    return min(CONFIG.valuation.improvements_premium_cap, total)


def calculate_rule_of_40_premium(business: Business) -> float:
    """Growth% + margin% for sectors where buyers screen on it; 0 elsewhere."""
    if business.sector_id not in RULE_OF_40_SECTORS:
        return 0.0
    v = CONFIG.valuation
    score = business.organic_growth_rate * 100 + business.ebitda_margin * 100
    if score >= v.rule_of_40_excellent:
        return min(v.rule_of_40_max_premium, 1.0 + (score - v.rule_of_40_excellent) * 0.05)
    if score >= v.rule_of_40_good:
        return 0.5 + (score - v.rule_of_40_good) / 10 * 0.5
    if score < v.rule_of_40_poor:
        return v.rule_of_40_penalty
    return 0.0


def calculate_margin_expansion_premium(business: Business) -> float:
    v = CONFIG.valuation
    pp = (business.ebitda_margin - business.acquisition_margin) * 100
    if pp >= v.margin_expansion_strong_pp:
        return v.margin_expansion_strong_premium
    if pp >= v.margin_expansion_moderate_pp:
        span = v.margin_expansion_strong_pp - v.margin_expansion_moderate_pp
        return 0.1 + (pp - v.margin_expansion_moderate_pp) / span * (v.margin_expansion_strong_premium - 0.1)
    if pp <= v.margin_compression_pp:
        return v.margin_compression_penalty
    return 0.0


def calculate_merger_premium(business: Business) -> float:
    """Balanced mergers command more than lopsided ones."""
    if not business.was_merged or business.merger_balance_ratio is None:
        return 0.0
    v = CONFIG.valuation
    ratio = business.merger_balance_ratio
    if ratio <= 2:
        return v.merger_premium_balanced
    if ratio <= 3:
        return v.merger_premium_moderate
    return v.merger_premium_lopsided


def calculate_exit_valuation(
    business: Business,
    current_round: int,
    last_event_type: Optional[str] = None,
    portfolio_context: Optional[Dict[str, float]] = None,
    integrated_platforms: Iterable[IntegratedPlatform] = (),
) -> ExitValuation:
    """
    Price a business for sale.

    Earned premiums are capped, then the integrated-platform expansion is
    added on top of the cap. Seasoning scales that whole sum, so a freshly
    bought business sells near its entry multiple even inside an integrated
    platform; the expansion is uncapped but not exempt from seasoning.

    Args:
        business: The business being valued
        current_round: Round the sale would happen in
        last_event_type: Type of the last global event (bull / recession shift the multiple)
        portfolio_context: Optional {"total_platform_ebitda": ...} so a platform sells on
            consolidated EBITDA for buyer-pool purposes
        integrated_platforms: Platforms that may grant an uncapped multiple expansion

    Returns:
        ExitValuation with every premium term itemized
    """
    v = CONFIG.valuation
    base_multiple = business.acquisition_multiple

    if business.acquisition_ebitda > 0:
        ebitda_growth = (business.ebitda - business.acquisition_ebitda) / business.acquisition_ebitda
    else:
        ebitda_growth = 0.0
    growth_premium = calculate_growth_premium(ebitda_growth)

    quality_premium = (business.quality_rating - 3) * v.quality_premium_step

    if business.is_platform and business.platform_scale > 0:
        platform_premium = math.log2(business.platform_scale + 1) * v.platform_premium_factor
    else:
        platform_premium = 0.0

    years_held = max(0, current_round - business.acquisition_round)
    hold_premium = min(v.hold_premium_cap, years_held * v.hold_premium_step)

    improvements_premium = calculate_improvements_premium(business)

    market_modifier = 0.0
    if last_event_type == "global_bull_market":
        market_modifier = v.market_modifier
    elif last_event_type == "global_recession":
        market_modifier = -v.market_modifier

    # Buyer pool is set by consolidated EBITDA when the business anchors a platform
    effective_ebitda = business.ebitda
    if portfolio_context and portfolio_context.get("total_platform_ebitda") is not None:
        effective_ebitda = portfolio_context["total_platform_ebitda"]
    buyer_pool_tier, raw_size_premium = calculate_size_tier_premium(effective_ebitda)
    # Buyers already priced the entry tier in; only growth into a new pool counts
    size_tier_premium = raw_size_premium - business.acquisition_size_tier_premium

    de_risking_premium = calculate_de_risking_premium(business)
    rule_of_40_premium = calculate_rule_of_40_premium(business)
    margin_expansion_premium = calculate_margin_expansion_premium(business)
    merger_premium = calculate_merger_premium(business)
    turnaround_premium = get_turnaround_exit_premium(business)
    integrated_platform_premium = get_platform_multiple_expansion(business, integrated_platforms)

    earned = (
        growth_premium + quality_premium + platform_premium + hold_premium
        + improvements_premium + market_modifier + size_tier_premium + de_risking_premium
        + rule_of_40_premium + margin_expansion_premium + merger_premium + turnaround_premium
    )

    headroom = v.premium_cap_floor
    if business.is_platform:
        headroom += business.platform_scale * v.platform_headroom_per_scale
    premium_cap = max(headroom, base_multiple * v.premium_cap_base_factor)
    capped = min(earned, premium_cap)

    seasoning = min(1.0, years_held / v.seasoning_years)
    total_premiums = (capped + integrated_platform_premium) * seasoning

    total_multiple = max(v.multiple_floor, base_multiple + total_premiums)
    exit_price = max(0, round_half_up(business.ebitda * total_multiple))
    net_proceeds = max(0, exit_price - business.total_debt_payoff)

    commentary = generate_valuation_commentary(
        business, buyer_pool_tier, size_tier_premium, de_risking_premium, effective_ebitda, total_multiple
    )

    return ExitValuation(
        base_multiple=base_multiple,
        growth_premium=growth_premium,
        quality_premium=quality_premium,
        platform_premium=platform_premium,
        hold_premium=hold_premium,
        improvements_premium=improvements_premium,
        market_modifier=market_modifier,
        size_tier_premium=size_tier_premium,
        de_risking_premium=de_risking_premium,
        rule_of_40_premium=rule_of_40_premium,
        margin_expansion_premium=margin_expansion_premium,
        merger_premium=merger_premium,
        turnaround_premium=turnaround_premium,
        integrated_platform_premium=integrated_platform_premium,
        total_premiums=total_premiums,
        premium_cap=premium_cap,
        seasoning_multiplier=seasoning,
        buyer_pool_tier=buyer_pool_tier,
        total_multiple=total_multiple,
        exit_price=exit_price,
        net_proceeds=net_proceeds,
        ebitda_growth=ebitda_growth,
        years_held=years_held,
        commentary=commentary,
        factors=list(commentary.factors),
    )
