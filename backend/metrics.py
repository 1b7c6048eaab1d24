"""
Portfolio Metrics

Per-round cash flow waterfall and the derived ratios the dashboard,
scoring and distress checks read. Every division is guarded so an empty
or zero-EBITDA portfolio still yields finite numbers.
"""

from typing import Iterable, List, Tuple

import numpy as np

from config import CONFIG
from distress import calculate_distress_level
from models import Business, GameState, HistoricalMetrics, Metrics, get_active_businesses, round_half_up
from portfolio import calculate_ma_sourcing_cost, calculate_shared_services_benefits, calculate_shared_services_cost
from sectors import SECTORS
from tax import PortfolioTaxBreakdown, calculate_portfolio_tax
from turnarounds import calculate_turnaround_annual_cost
from valuation import calculate_exit_valuation


def calculate_annual_fcf(
    business: Business,
    shared_services_capex_reduction: float = 0.0,
    shared_services_cash_conversion_bonus: float = 0.0,
) -> int:
    """Pre-tax FCF for one business: EBITDA less maintenance capex, plus any conversion bonus."""
    capex_rate = SECTORS[business.sector_id].capex_rate * (1 - shared_services_capex_reduction)
    fcf = business.ebitda - business.ebitda * capex_rate
    fcf *= 1 + shared_services_cash_conversion_bonus
    return round_half_up(fcf)


def calculate_portfolio_fcf(
    businesses: Iterable[Business],
    shared_services_capex_reduction: float = 0.0,
    shared_services_cash_conversion_bonus: float = 0.0,
    holdco_debt: float = 0,
    holdco_interest_rate: float = 0.0,
    deductible_costs: float = 0,
) -> int:
    """Portfolio FCF after the single holdco-level tax bill."""
    businesses = list(businesses)
    active = [b for b in businesses if b.status == "active"]
    pre_tax = int(np.sum([
        calculate_annual_fcf(b, shared_services_capex_reduction, shared_services_cash_conversion_bonus)
        for b in active
    ], dtype=np.int64)) if active else 0
    tax = calculate_portfolio_tax(businesses, holdco_debt, holdco_interest_rate, deductible_costs)
    return pre_tax - tax.tax_amount


def calculate_holdco_debt_service(state: GameState) -> Tuple[int, int]:
    """(principal, interest) due on the holdco loan this round."""
    if state.total_debt <= 0:
        return 0, 0
    interest = round_half_up(state.total_debt * state.interest_rate)
    if state.holdco_loan_rounds_remaining > 0:
        principal = min(state.total_debt, round_half_up(state.total_debt / state.holdco_loan_rounds_remaining))
    else:
        principal = 0
    return principal, interest


def calculate_opco_debt_service(business: Business) -> Tuple[int, int]:
    """(principal, interest) due on a business's seller note and bank debt this round."""
    principal = 0
    interest = 0
    if business.seller_note_balance > 0:
        interest += round_half_up(business.seller_note_balance * business.seller_note_rate)
        if business.seller_note_rounds_remaining > 0:
            principal += min(business.seller_note_balance,
                             round_half_up(business.seller_note_balance / business.seller_note_rounds_remaining))
    if business.bank_debt_balance > 0:
        interest += round_half_up(business.bank_debt_balance * business.bank_debt_rate)
        if business.bank_debt_rounds_remaining > 0:
            principal += min(business.bank_debt_balance,
                             round_half_up(business.bank_debt_balance / business.bank_debt_rounds_remaining))
    return principal, interest


def earnout_expired(business: Business, current_round: int) -> bool:
    return current_round - business.acquisition_round > CONFIG.capital.earnout_expiry_rounds


def calculate_earnout_payment(business: Business, current_round: int) -> int:
    """Full earn-out is due once EBITDA growth since acquisition reaches the target."""
    if business.earnout_remaining <= 0 or earnout_expired(business, current_round):
        return 0
    if business.acquisition_ebitda <= 0:
        return 0
    growth = (business.ebitda - business.acquisition_ebitda) / business.acquisition_ebitda
    return business.earnout_remaining if growth >= business.earnout_target else 0


def calculate_deductible_costs(state: GameState) -> int:
    """Holdco overhead that reduces taxable income."""
    return calculate_shared_services_cost(state) + calculate_ma_sourcing_cost(state)


def calculate_state_tax(state: GameState) -> PortfolioTaxBreakdown:
    return calculate_portfolio_tax(
        state.businesses, state.total_debt, state.interest_rate, calculate_deductible_costs(state)
    )


def calculate_portfolio_value(state: GameState) -> int:
    """Sum of exit prices at today's valuation for every active business."""
    last_event_type = state.current_event.type if state.current_event else None
    prices = [
        calculate_exit_valuation(b, state.round, last_event_type, integrated_platforms=state.integrated_platforms).exit_price
        for b in get_active_businesses(state)
    ]
    return int(np.sum(prices, dtype=np.int64)) if prices else 0


def calculate_metrics(state: GameState) -> Metrics:
    active = get_active_businesses(state)
    benefits = calculate_shared_services_benefits(state)

    ebitdas = np.array([b.ebitda for b in active], dtype=np.int64)
    revenues = np.array([b.revenue for b in active], dtype=np.int64)
    total_ebitda = int(ebitdas.sum()) if active else 0
    total_revenue = int(revenues.sum()) if active else 0
    avg_margin = float(np.mean([b.ebitda_margin for b in active])) if active else 0.0

    shared_services_cost = calculate_shared_services_cost(state)
    ma_sourcing_cost = calculate_ma_sourcing_cost(state)
    turnaround_cost = calculate_turnaround_annual_cost(state)

    tax = calculate_portfolio_tax(active, state.total_debt, state.interest_rate, shared_services_cost + ma_sourcing_cost)

    # Bank debt stays on the opcos and is serviced there
    seller_notes = sum(b.seller_note_balance for b in active)
    total_debt = state.total_debt + seller_notes

    # --- FCF waterfall ---
    pre_tax_fcf = sum(
        calculate_annual_fcf(b, benefits.capex_reduction, benefits.cash_conversion_bonus) for b in active
    )
    capex = total_ebitda - sum(calculate_annual_fcf(b, benefits.capex_reduction) for b in active)
    after_tax_fcf = pre_tax_fcf - tax.tax_amount

    holdco_principal, holdco_interest = calculate_holdco_debt_service(state)
    holdco_debt_service = holdco_principal + holdco_interest
    opco_debt_service = sum(sum(calculate_opco_debt_service(b)) for b in active)
    earnouts = sum(calculate_earnout_payment(b, state.round) for b in active)

    total_fcf = (
        after_tax_fcf - holdco_debt_service - opco_debt_service - earnouts
        - shared_services_cost - ma_sourcing_cost - turnaround_cost
    )

    # --- Valuation-derived ---
    portfolio_value = calculate_portfolio_value(state)
    shares = state.shares_outstanding
    intrinsic_value = portfolio_value + state.cash - total_debt
    intrinsic_value_per_share = intrinsic_value / shares if shares > 0 else 0.0
    fcf_per_share = total_fcf / shares if shares > 0 else 0.0

    nopat = total_ebitda - tax.tax_amount
    invested = state.total_invested_capital
    portfolio_roic = nopat / invested if invested > 0 else 0.0

    roiic = 0.0
    if state.metrics_history:
        previous = state.metrics_history[-1]
        delta_invested = invested - previous.invested_capital
        if delta_invested > 0:
            roiic = (nopat - previous.nopat) / delta_invested

    nav = portfolio_value + state.cash - total_debt + state.total_distributions
    portfolio_moic = nav / state.initial_raise if state.initial_raise > 0 else 1.0

    net_debt_to_ebitda = (total_debt - state.cash) / total_ebitda if total_ebitda > 0 else 0.0
    distress_level = calculate_distress_level(net_debt_to_ebitda, total_debt, total_ebitda)
    cash_conversion = after_tax_fcf / total_ebitda if total_ebitda > 0 else 0.0

    return Metrics(
        cash=state.cash,
        total_debt=total_debt,
        total_ebitda=total_ebitda,
        total_revenue=total_revenue,
        avg_ebitda_margin=avg_margin,
        total_fcf=float(total_fcf),
        fcf_per_share=fcf_per_share,
        portfolio_roic=portfolio_roic,
        roiic=roiic,
        portfolio_moic=portfolio_moic,
        net_debt_to_ebitda=net_debt_to_ebitda,
        distress_level=distress_level,
        cash_conversion=cash_conversion,
        interest_rate=state.interest_rate,
        shares_outstanding=shares,
        intrinsic_value_per_share=intrinsic_value_per_share,
        portfolio_value=portfolio_value,
        nopat=float(nopat),
        tax_amount=tax.tax_amount,
        capex=capex,
        holdco_debt_service=holdco_debt_service,
        opco_debt_service=opco_debt_service,
        earnout_payments=earnouts,
        shared_services_cost=shared_services_cost,
        ma_sourcing_cost=ma_sourcing_cost,
        turnaround_cost=turnaround_cost,
        total_invested_capital=invested,
        total_distributions=state.total_distributions,
        total_buybacks=state.total_buybacks,
        total_exit_proceeds=state.total_exit_proceeds,
    )


def record_historical_metrics(state: GameState) -> HistoricalMetrics:
    metrics = calculate_metrics(state)
    return HistoricalMetrics(
        round=state.round,
        metrics=metrics,
        fcf=metrics.total_fcf,
        nopat=metrics.nopat,
        invested_capital=state.total_invested_capital,
    )


def history_series(history: List[HistoricalMetrics], field_name: str) -> np.ndarray:
    """One metric across the recorded rounds, as a float array."""
    return np.array([getattr(h.metrics, field_name) for h in history], dtype=float)
