"""
IPO pathway.

Late in a standard-length game a large, high-quality holdco can list.
The share price follows a simple EBITDA-multiple valuation of the
portfolio moved by market sentiment; every round the listed holdco
reports earnings against analyst expectations. Listing opens
share-funded acquisitions and earns a founder-equity bonus at the end.
All money in thousands.
"""

import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Tuple

from config import CONFIG
from models import Business, GameState, IpoState, clamp, get_active_businesses, round_half_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShareFundedTerms:
    shares_to_issue: int
    new_total_shares: int
    dilution_pct: float


def _to_cents(value: float) -> float:
    return round_half_up(value * 100) / 100


def check_ipo_eligibility(state: GameState) -> Tuple[bool, List[str]]:
    """Return (eligible, reasons); every unmet gate adds a reason."""
    c = CONFIG.ipo
    active = get_active_businesses(state)
    total_ebitda = sum(b.ebitda for b in active)
    avg_quality = sum(b.quality_rating for b in active) / len(active) if active else 0.0
    platforms = sum(1 for b in active if b.is_platform)

    reasons = []
    if state.duration != "standard":
        reasons.append("Only available in the standard (20-year) game")
    if state.round < c.min_round:
        reasons.append(f"Requires round {c.min_round}+ (currently round {state.round})")
    if total_ebitda < c.min_ebitda:
        reasons.append(f"Requires ${c.min_ebitda / 1000:.0f}M+ EBITDA (currently ${total_ebitda / 1000:.1f}M)")
    if len(active) < c.min_businesses:
        reasons.append(f"Requires {c.min_businesses}+ businesses (currently {len(active)})")
    if avg_quality < c.min_avg_quality:
        reasons.append(f"Requires {c.min_avg_quality:.1f}+ avg quality (currently {avg_quality:.1f})")
    if platforms < c.min_platforms:
        reasons.append(f"Requires {c.min_platforms}+ platforms (currently {platforms})")
    if state.ipo is not None and state.ipo.is_public:
        reasons.append("Already public")
    return not reasons, reasons


def calculate_holdco_ev(businesses: Iterable[Business]) -> float:
    """Sum of EBITDA x a quality-adjusted multiple over active businesses."""
    c = CONFIG.ipo
    return sum(
        b.ebitda * (c.base_multiple + (b.quality_rating - 3) * c.quality_multiple_step)
        for b in businesses if b.status == "active"
    )


def calculate_public_equity_value(state: GameState) -> float:
    """Holdco EV less holdco and opco debt, plus cash; never negative."""
    active = get_active_businesses(state)
    debt = state.total_debt + sum(b.seller_note_balance + b.bank_debt_balance for b in active)
    return max(0.0, calculate_holdco_ev(active) - debt + state.cash)


def calculate_stock_price(state: GameState, sentiment: Optional[float] = None) -> float:
    if state.ipo is None:
        return 0.0
    if sentiment is None:
        sentiment = state.ipo.market_sentiment
    shares = state.shares_outstanding or 1
    return _to_cents(calculate_public_equity_value(state) / shares * (1 + sentiment))


def execute_ipo(state: GameState) -> Tuple[IpoState, int, int]:
    """
    Float new shares so the public owns float_fraction of the company.

    The issue price is pre-money equity value per existing share.

    Returns:
        (ipo record, cash raised, new shares issued)
    """
    c = CONFIG.ipo
    current = state.shares_outstanding
    new_shares = round_half_up(current * c.float_fraction / (1 - c.float_fraction))
    price = calculate_public_equity_value(state) / current if current > 0 else 0.0
    cash_raised = round_half_up(new_shares * price)
    total_ebitda = sum(b.ebitda for b in get_active_businesses(state))

    stock_price = _to_cents(price)
    ipo = IpoState(
        is_public=True,
        stock_price=stock_price,
        pre_ipo_shares=current,
        market_sentiment=c.listing_pop,
        earnings_expectations=round_half_up(total_ebitda * (1 + c.expectation_growth)),
        ipo_round=state.round,
        initial_stock_price=stock_price,
    )
    return ipo, cash_raised, new_shares


def process_earnings_result(state: GameState, actual_ebitda: int) -> Optional[IpoState]:
    """Move sentiment on a beat or a miss, reset expectations and reprice the stock."""
    ipo = state.ipo
    if ipo is None or not ipo.is_public:
        return ipo

    c = CONFIG.ipo
    bound = c.sentiment_bound
    if actual_ebitda >= ipo.earnings_expectations:
        sentiment = min(bound, ipo.market_sentiment + c.beat_bonus)
        misses = 0
    else:
        sentiment = max(-bound, ipo.market_sentiment - c.miss_penalty)
        misses = ipo.consecutive_misses + 1
        if misses >= c.consecutive_miss_threshold:
            # Analyst downgrade
            sentiment = max(-bound, sentiment - c.downgrade_penalty)

    logger.debug(
        f"Earnings {actual_ebitda} vs {ipo.earnings_expectations}: sentiment {ipo.market_sentiment:+.2f} -> "
        f"{sentiment:+.2f}"
    )
    return replace(
        ipo,
        market_sentiment=sentiment,
        consecutive_misses=misses,
        earnings_expectations=round_half_up(actual_ebitda * (1 + c.expectation_growth)),
        share_funded_deals_this_round=0,
        stock_price=calculate_stock_price(state, sentiment),
    )


def can_share_funded_deal(state: GameState) -> bool:
    if state.ipo is None or not state.ipo.is_public:
        return False
    return state.ipo.share_funded_deals_this_round < CONFIG.ipo.share_funded_deals_per_round


def calculate_share_funded_terms(deal_price: int, stock_price: float, shares_outstanding: int) -> ShareFundedTerms:
    if stock_price <= 0:
        return ShareFundedTerms(0, shares_outstanding, 0.0)
    shares = round_half_up(deal_price / stock_price)
    total = shares_outstanding + shares
    return ShareFundedTerms(shares, total, shares / total if total > 0 else 0.0)


def calculate_public_company_bonus(state: GameState) -> float:
    """
    Founder equity bonus for a listed holdco.

    Base, plus up to 5% for price appreciation since listing, 3% for no
    running misses, up to 2% for positive sentiment and up to 3% for
    platform count; capped at fev_bonus_max.
    """
    ipo = state.ipo
    if ipo is None or not ipo.is_public:
        return 0.0

    c = CONFIG.ipo
    bonus = c.fev_bonus_base
    initial = ipo.initial_stock_price or ipo.stock_price
    if initial > 0:
        appreciation = (ipo.stock_price - initial) / initial
        bonus += clamp(appreciation * 0.10, 0.0, 0.05)
    if ipo.consecutive_misses == 0:
        bonus += 0.03
    if ipo.market_sentiment > 0:
        bonus += min(0.02, ipo.market_sentiment * 0.067)

    platforms = sum(1 for b in get_active_businesses(state) if b.is_platform)
    bonus += min(platforms, 3) * 0.01
    return min(c.fev_bonus_max, bonus)
