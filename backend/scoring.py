"""
Final Scoring

Terminal score (0-100) across five capital-allocation disciplines, the
letter grade, enterprise and founder equity values, and post-game
insights. Bankruptcy short-circuits to zero; every other path is finite
for empty portfolios and zero shares.
"""

from dataclasses import asdict, dataclass
from typing import Dict, List

import numpy as np

from config import CONFIG
from ipo import calculate_public_company_bonus
from metrics import calculate_metrics, calculate_state_tax, history_series
from models import GameState, get_active_businesses, get_all_deduped_businesses, round_half_up
from portfolio import calculate_sector_focus_bonus
from valuation import calculate_exit_valuation

GRADE_THRESHOLDS = [
    (90, "S", "Master Allocator - You'd make Buffett proud"),
    (75, "A", "Skilled Compounder - Constellation-level discipline"),
    (60, "B", "Solid Builder - Your holdco has real potential"),
    (40, "C", "Emerging Operator - Room to sharpen your allocation instincts"),
    (20, "D", "Apprentice - Study the playbook and try again"),
    (0, "F", "Blown Up - Tyco sends its regards"),
]

POST_GAME_INSIGHTS: Dict[str, Dict[str, str]] = {
    "never_acquired": {
        "pattern": "Never acquired anything",
        "insight": "Cash is optionality, but perpetual hoarding means your capital isn't compounding. "
                   "Berkshire deploys when the price is right.",
        "book_reference": "Ch. VI",
    },
    "over_leveraged": {
        "pattern": "Over-leveraged (>3x)",
        "insight": "Tyco collapsed when debt outran cash. The best holdcos push debt to the opco level "
                   "and avoid parent guarantees.",
        "book_reference": "Ch. IX",
    },
    "single_sector": {
        "pattern": "Single-sector portfolio",
        "insight": "Concentration builds expertise but inherits cyclicality. Diversification protects "
                   "against sector-specific shocks.",
        "book_reference": "Ch. III",
    },
    "high_roiic_moic": {
        "pattern": "High ROIIC + high MOIC",
        "insight": "You deployed capital like Constellation Software: disciplined, patient and focused on returns over growth.",
        "book_reference": "Ch. VI",
    },
    "ignored_reinvestment": {
        "pattern": "Ignored reinvestment",
        "insight": "Danaher's DBS proves that operational improvement is a form of reinvestment. "
                   "Even organic growth needs fuel.",
        "book_reference": "Ch. III",
    },
    "strong_conversion": {
        "pattern": "Strong cash conversion",
        "insight": "Your portfolio converts earnings to cash reliably. Cash conversion reveals whether earnings are real.",
        "book_reference": "Ch. IV",
    },
    "distributed_early": {
        "pattern": "Distributed while ROIIC was high",
        "insight": "Markel Group explicitly prioritizes reinvestment over dividends. You left compounding on the table.",
        "book_reference": "Ch. VII",
    },
    "smart_exits": {
        "pattern": "Smart exits (sold at >2x MOIC)",
        "insight": "You recycled capital effectively by buying low, improving operations and exiting higher.",
        "book_reference": "Ch. IV",
    },
    "held_losers": {
        "pattern": "Held losers too long",
        "insight": "The best holdcos cut losses when the economics no longer justify the capital. "
                   "A wind-down isn't failure, it's discipline.",
        "book_reference": "Ch. IX",
    },
    "good_shared_services": {
        "pattern": "Good shared services ROI",
        "insight": "You built an operating system, not just a portfolio.",
        "book_reference": "Ch. III",
    },
    "equity_well_deployed": {
        "pattern": "Equity raised and well deployed",
        "insight": "You raised capital wisely and deployed it at high returns. The dilution was worth it.",
        "book_reference": "Ch. VII",
    },
    "equity_poorly_deployed": {
        "pattern": "Equity raised with poor returns",
        "insight": "Dilution without deployment is destruction. Every share you issue must earn its keep.",
        "book_reference": "Ch. VII",
    },
    "well_timed_buybacks": {
        "pattern": "Well-timed buybacks",
        "insight": "Buybacks when your capital has nowhere better to go is exactly right.",
        "book_reference": "Ch. VII",
    },
    "smart_distributions": {
        "pattern": "Disciplined capital return",
        "insight": "You returned capital when reinvestment returns declined. "
                   "The best allocators know when to stop compounding and start returning.",
        "book_reference": "Ch. VII",
    },
    "hoarded_cash": {
        "pattern": "Excess idle cash",
        "insight": "Cash earning nothing is a drag on returns. When you can't find deals above hurdle, "
                   "return capital to owners.",
        "book_reference": "Ch. VII",
    },
    "tax_efficient": {
        "pattern": "Tax-efficient structuring",
        "insight": "Interest shields, deductible overhead and consolidated loss offsets lowered your effective tax rate.",
        "book_reference": "Ch. VII",
    },
}


@dataclass(slots=True)
class ScoreBreakdown:
    fcf_share_growth: float
    portfolio_roic: float
    capital_deployment: float
    balance_sheet_health: float
    strategic_discipline: float
    total: int
    grade: str
    title: str

    def to_dict(self) -> Dict:
        return asdict(self)


def _is_standard(state: GameState) -> bool:
    return state.max_rounds >= 20


def _average_roiic(state: GameState) -> float:
    if not state.metrics_history:
        return 0.0
    return float(np.mean(history_series(state.metrics_history, "roiic")))


def calculate_enterprise_value(state: GameState) -> int:
    """
    EV = portfolio exit value + cash + distributions returned - holdco debt - seller notes.

    Buybacks are not added back; they show up as fewer shares.
    """
    active = get_active_businesses(state)
    seller_notes = sum(b.seller_note_balance for b in active)
    total_debt = state.total_debt + seller_notes

    if not active:
        return max(0, state.cash - state.total_debt)

    valuation_round = min(state.round, state.max_rounds)
    portfolio_value = sum(
        calculate_exit_valuation(b, valuation_round, integrated_platforms=state.integrated_platforms).exit_price
        for b in active
    )
    ev = portfolio_value + state.cash + state.total_distributions - total_debt
    return round_half_up(max(0, ev))


def calculate_founder_equity_value(state: GameState) -> int:
    """Founder share of EV, lifted by the public-company bonus once listed."""
    if state.shares_outstanding <= 0:
        return 0
    founder_value = calculate_enterprise_value(state) * state.founder_shares / state.shares_outstanding
    return round_half_up(founder_value * (1 + calculate_public_company_bonus(state)))


def grade_for(total: int):
    for threshold, grade, title in GRADE_THRESHOLDS:
        if total >= threshold:
            return grade, title
    return "F", GRADE_THRESHOLDS[-1][2]


def _score_fcf_growth(state: GameState, end_fcf_per_share: float) -> float:
    s = CONFIG.scoring
    if len(state.metrics_history) <= 1:
        return 0.0
    start = state.metrics_history[0].metrics.fcf_per_share
    target = s.fcf_growth_target_standard if _is_standard(state) else s.fcf_growth_target_quick
    if start > 0:
        growth = (end_fcf_per_share - start) / start
        return min(s.fcf_growth_points, max(0.0, growth / target * s.fcf_growth_points))
    if end_fcf_per_share > 0:
        return s.fcf_from_zero_points
    return 0.0


def _score_roic(roic: float) -> float:
    if roic >= 0.25:
        return 20.0
    if roic >= 0.15:
        return 15 + (roic - 0.15) / 0.10 * 5
    if roic >= 0.08:
        return 8 + (roic - 0.08) / 0.07 * 7
    return max(0.0, roic / 0.08 * 8)


def _score_capital_deployment(state: GameState) -> float:
    s = CONFIG.scoring
    deployed = 0.0
    returned = 0.0
    for b in get_all_deduped_businesses(state):
        deployed += b.acquisition_price
        if b.status == "sold" and b.exit_price:
            returned += b.exit_price
        elif b.status == "active":
            returned += b.ebitda * b.acquisition_multiple * s.going_concern_premium
    avg_moic = returned / deployed if deployed > 0 else 1.0

    full = s.moic_full_standard if _is_standard(state) else s.moic_full_quick
    mid = s.moic_mid_standard if _is_standard(state) else s.moic_mid_quick
    if avg_moic >= full:
        moic_score = 10.0
    elif avg_moic >= mid:
        moic_score = 5 + (avg_moic - mid) / (full - mid) * 5
    else:
        moic_score = max(0.0, avg_moic / mid * 5)

    avg_roiic = _average_roiic(state)
    if avg_roiic >= 0.20:
        roiic_score = 10.0
    elif avg_roiic >= 0.10:
        roiic_score = 5 + (avg_roiic - 0.10) / 0.10 * 5
    else:
        roiic_score = max(0.0, avg_roiic / 0.10 * 5)

    return moic_score + roiic_score


def _score_balance_sheet(state: GameState, leverage: float) -> float:
    s = CONFIG.scoring
    if leverage < 1.0:
        score = 15.0
    elif leverage < 2.5:
        score = 10 + (2.5 - leverage) / 1.5 * 5
    elif leverage < 3.5:
        score = 5 + (3.5 - leverage) / 1.0 * 5
    else:
        score = max(0.0, 5 - (leverage - 3.5) * 2)

    if state.metrics_history:
        if np.any(history_series(state.metrics_history, "net_debt_to_ebitda") > s.over_leverage_threshold):
            score = max(0.0, score - s.over_leverage_penalty)
        if any(h.metrics.distress_level == "breach" for h in state.metrics_history):
            score = max(0.0, score - s.breach_penalty)
    if state.has_restructured:
        score = max(0.0, score - s.restructure_penalty)
    return score


def _score_strategic_discipline(state: GameState, total_ebitda: int, leverage: float) -> float:
    active = get_active_businesses(state)
    all_businesses = get_all_deduped_businesses(state)

    focus = calculate_sector_focus_bonus(active)
    if focus is not None:
        focus_score = min(5.0, focus.tier * 1.5 + (1 if focus.opco_count >= 4 else 0))
    elif len(active) >= 4:
        focus_score = float(min(4, len({b.sector_id for b in active})))
    else:
        focus_score = 0.0

    active_services = [s for s in state.shared_services if s.active]
    services_score = min(5.0, len(active_services) * 1.5) if active_services and len(active) >= 3 else 0.0

    # Capital return: reinvest above hurdle, deleverage, then return
    avg_roiic = _average_roiic(state)
    cash_to_ebitda = state.cash / total_ebitda if total_ebitda > 0 else 0.0
    excess_cash = cash_to_ebitda > 2.0 and leverage < 1.0
    if state.total_distributions > 0:
        if avg_roiic < 0.15 and leverage < 2.0:
            distribution_score = 4.0
        elif avg_roiic < 0.20 and leverage < 2.5:
            distribution_score = 2.0
        else:
            distribution_score = 0.0
        if leverage > 2.5:
            distribution_score = max(0.0, distribution_score - 2)
        invested = state.total_invested_capital
        distribution_pct = state.total_distributions / invested if invested > 0 else 0.0
        if distribution_pct > 0.10 and leverage < 1.5:
            distribution_score = min(5.0, distribution_score + 1)
    elif excess_cash:
        distribution_score = 1.0
    elif avg_roiic > 0.15:
        distribution_score = 4.0
    else:
        distribution_score = 2.0

    avg_quality = float(np.mean([b.quality_rating for b in all_businesses])) if all_businesses else 3.0
    quality_score = min(5.0, avg_quality / 5 * 5)

    return focus_score + services_score + distribution_score + quality_score


def calculate_final_score(state: GameState) -> ScoreBreakdown:
    if state.bankrupt_round is not None:
        return ScoreBreakdown(
            fcf_share_growth=0.0,
            portfolio_roic=0.0,
            capital_deployment=0.0,
            balance_sheet_health=0.0,
            strategic_discipline=0.0,
            total=0,
            grade="F",
            title=f"Bankrupt: filed for bankruptcy in Year {state.bankrupt_round}",
        )

    metrics = calculate_metrics(state)
    leverage = metrics.net_debt_to_ebitda

    fcf_share_growth = _score_fcf_growth(state, metrics.fcf_per_share)
    portfolio_roic = _score_roic(metrics.portfolio_roic)
    capital_deployment = _score_capital_deployment(state)
    balance_sheet_health = _score_balance_sheet(state, leverage)
    strategic_discipline = _score_strategic_discipline(state, metrics.total_ebitda, leverage)

    total = round_half_up(
        fcf_share_growth + portfolio_roic + capital_deployment + balance_sheet_health + strategic_discipline
    )
    grade, title = grade_for(total)

    return ScoreBreakdown(
        fcf_share_growth=round(fcf_share_growth, 1),
        portfolio_roic=round(portfolio_roic, 1),
        capital_deployment=round(capital_deployment, 1),
        balance_sheet_health=round(balance_sheet_health, 1),
        strategic_discipline=round(strategic_discipline, 1),
        total=total,
        grade=grade,
        title=title,
    )


def generate_post_game_insights(state: GameState) -> List[Dict[str, str]]:
    """Up to three lessons matched against how the game was played."""
    metrics = calculate_metrics(state)
    active = get_active_businesses(state)
    all_businesses = get_all_deduped_businesses(state)
    avg_roiic = _average_roiic(state)
    leverage = metrics.net_debt_to_ebitda

    smart_exit_count = sum(
        1 for b in state.exited_businesses
        if b.exit_price and b.acquisition_price > 0 and b.exit_price / b.acquisition_price > 2.0
    )
    cash_to_ebitda = state.cash / metrics.total_ebitda if metrics.total_ebitda > 0 else 0.0
    tax = calculate_state_tax(state)

    matched = []
    if len(all_businesses) <= 1:
        matched.append("never_acquired")
    if leverage > 3:
        matched.append("over_leveraged")
    if len(active) >= 3 and len({b.sector_id for b in active}) == 1:
        matched.append("single_sector")
    if metrics.roiic > 0.20 and metrics.portfolio_moic > 2.0:
        matched.append("high_roiic_moic")
    if all(not s.active for s in state.shared_services) and all(not b.improvements for b in all_businesses):
        matched.append("ignored_reinvestment")
    if metrics.cash_conversion > 0.80:
        matched.append("strong_conversion")
    if state.total_distributions > 0 and avg_roiic >= 0.20:
        matched.append("distributed_early")
    if smart_exit_count >= 2:
        matched.append("smart_exits")
    if any(b.ebitda < b.acquisition_ebitda * 0.5 for b in active):
        matched.append("held_losers")
    if sum(1 for s in state.shared_services if s.active) >= 2:
        matched.append("good_shared_services")
    if state.equity_raises_used > 0:
        matched.append("equity_well_deployed" if metrics.portfolio_roic > 0.15 else "equity_poorly_deployed")
    if state.total_buybacks > 0 and metrics.portfolio_roic < 0.15:
        matched.append("well_timed_buybacks")
    if state.total_distributions > 0 and avg_roiic < 0.15 and leverage < 2.0:
        matched.append("smart_distributions")
    if state.total_distributions == 0 and cash_to_ebitda > 2.0 and leverage < 1.0:
        matched.append("hoarded_cash")
    if tax.gross_ebitda > 0 and tax.effective_tax_rate < 0.20:
        matched.append("tax_efficient")

    return [dict(POST_GAME_INSIGHTS[key], key=key) for key in matched[:CONFIG.scoring.max_insights]]
