"""
Growth & Drift Model

Advances a single business by one round: revenue growth, delayed margin
drift, the EBITDA floor, peak tracking and integration decay.
"""

import math
from dataclasses import replace

from config import CONFIG
from models import Business, apply_ebitda_floor, cap_growth_rate, clamp_margin, round_half_up
from rng import RandomSource
from sectors import MARKETING_SENSITIVE_SECTORS, SECTORS


def get_margin_drift_start_round(max_rounds: int) -> int:
    """Margins stay static until this round (onboarding period)."""
    g = CONFIG.growth
    return max(g.margin_drift_min_start_round, math.ceil(max_rounds * g.margin_drift_start_fraction))


def get_concentration_multiplier(concentration_count: int) -> float:
    """Volatility amplifier once too many opcos share a focus group."""
    g = CONFIG.growth
    if concentration_count < g.concentration_threshold:
        return 1.0
    excess = concentration_count - g.concentration_threshold + 1
    return min(g.concentration_max_multiplier, 1.0 + excess * g.concentration_step)


def get_drag_decay_rate(duration: str) -> float:
    g = CONFIG.growth
    return g.drag_decay_quick if duration == "quick" else g.drag_decay_standard


def calculate_integration_growth_penalty(acquired_ebitda: float, platform_ebitda: float, is_merger: bool) -> float:
    """
    Growth drag from a failed integration, proportional to relative size.

    Returns a negative rate bounded between the (negative) floor and cap;
    mergers take a reduced share of the drag.
    """
    g = CONFIG.growth
    factor = g.integration_drag_merger_factor if is_merger else 1.0
    floor = g.integration_drag_floor * factor
    cap = g.integration_drag_cap * factor
    if platform_ebitda <= 0:
        return cap
    ratio = abs(acquired_ebitda) / abs(platform_ebitda)
    raw_penalty = -(ratio * g.integration_drag_base_rate) * factor
    return max(cap, min(floor, raw_penalty))


def apply_organic_growth(
    business: Business,
    rng: RandomSource,
    shared_services_growth_bonus: float = 0.0,
    sector_focus_bonus: float = 0.0,
    inflation_active: bool = False,
    concentration_count: int = 1,
    diversification_bonus: float = 0.0,
    current_round: int = 1,
    margin_defense: float = 0.0,
    max_rounds: int = 20,
    duration: str = "standard",
) -> Business:
    """Return a new Business advanced by one year of organic growth."""
    g = CONFIG.growth
    sector = SECTORS[business.sector_id]

    # --- Revenue growth ---
    growth_rate = cap_growth_rate(business.organic_growth_rate)
    growth_rate += sector.volatility * get_concentration_multiplier(concentration_count) * (rng.next() * 2 - 1)

    growth_rate += shared_services_growth_bonus
    if shared_services_growth_bonus > 0 and business.sector_id in MARKETING_SENSITIVE_SECTORS:
        growth_rate += g.shared_services_sector_extra

    growth_rate += sector_focus_bonus
    growth_rate += diversification_bonus

    position = business.due_diligence.competitive_position
    if position == "leader":
        growth_rate += g.competitive_position_modifier
    elif position == "commoditized":
        growth_rate -= g.competitive_position_modifier

    if business.integration_rounds_remaining > 0:
        growth_rate -= g.integration_penalty_base + rng.next() * g.integration_penalty_spread

    if inflation_active:
        growth_rate -= g.inflation_drag

    growth_rate += business.integration_growth_drag

    new_revenue = max(0, round_half_up(business.revenue * (1 + growth_rate)))

    # --- Margin drift (delayed onset) ---
    new_margin = business.ebitda_margin
    if current_round >= get_margin_drift_start_round(max_rounds):
        margin_change = business.margin_drift_rate
        margin_change += sector.margin_volatility * (rng.next() * 2 - 1)
        margin_change += margin_defense
        if new_margin - sector.margin_midpoint > g.mean_reversion_gap:
            margin_change -= g.mean_reversion_headwind
        new_margin += margin_change
    new_margin = clamp_margin(new_margin, business.sector_id)

    new_ebitda = round_half_up(new_revenue * new_margin)
    new_ebitda, new_margin = apply_ebitda_floor(new_ebitda, new_revenue, new_margin, business.acquisition_ebitda)

    # --- Integration decay ---
    drag = business.integration_growth_drag * get_drag_decay_rate(duration)
    if abs(drag) < g.drag_snap_threshold:
        drag = 0.0

    return replace(
        business,
        revenue=new_revenue,
        ebitda=new_ebitda,
        ebitda_margin=new_margin,
        peak_revenue=max(business.peak_revenue, new_revenue),
        peak_ebitda=max(business.peak_ebitda, new_ebitda),
        organic_growth_rate=cap_growth_rate(business.organic_growth_rate),
        integration_rounds_remaining=max(0, business.integration_rounds_remaining - 1),
        integration_growth_drag=drag,
        improvements=list(business.improvements),
        bolt_on_ids=list(business.bolt_on_ids),
        due_diligence=replace(business.due_diligence),
    )
