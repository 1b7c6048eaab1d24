"""
Portfolio-level modifiers: shared services, sector focus and diversification.
"""

from collections import Counter
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Optional

from config import CONFIG
from models import Business, GameState, get_active_businesses
from sectors import MIN_OPCOS_FOR_SHARED_SERVICES, SECTORS

# Margin erosion offset per unit of technology_systems scale
TECHNOLOGY_MARGIN_DEFENSE = 0.003


@dataclass(frozen=True)
class SharedServicesBenefits:
    capex_reduction: float = 0.0
    cash_conversion_bonus: float = 0.0
    growth_bonus: float = 0.0
    reinvestment_bonus: float = 0.0
    talent_retention_bonus: float = 0.0
    talent_gain_bonus: float = 0.0
    margin_defense: float = 0.0


@dataclass(frozen=True)
class SectorFocusBonus:
    focus_group: str
    tier: int
    opco_count: int

    @property
    def ebitda_bonus(self) -> float:
        return get_sector_focus_ebitda_bonus(self.tier)

    @property
    def multiple_discount(self) -> float:
        return get_sector_focus_multiple_discount(self.tier)


def get_shared_services_scale(opco_count: int) -> float:
    """Smooth ramp: 1-2 opcos 1.0x, 3 -> 1.05x, 4 -> 1.1x, 5 -> 1.15x, 6+ -> 1.2x."""
    if opco_count >= 6:
        return 1.2
    if opco_count >= 3:
        return 1.0 + (opco_count - 2) * 0.05
    return 1.0


def calculate_shared_services_benefits(state: GameState) -> SharedServicesBenefits:
    scale = get_shared_services_scale(len(get_active_businesses(state)))
    totals: Dict[str, float] = Counter()
    for service in state.shared_services:
        if not service.active:
            continue
        if service.type == "finance_reporting":
            totals["cash_conversion_bonus"] += 0.05 * scale
        elif service.type == "recruiting_hr":
            totals["talent_retention_bonus"] += 0.5 * scale
            totals["talent_gain_bonus"] += 0.3 * scale
        elif service.type == "procurement":
            totals["capex_reduction"] += 0.15 * scale
        elif service.type == "marketing_brand":
            totals["growth_bonus"] += 0.015 * scale
        elif service.type == "technology_systems":
            totals["reinvestment_bonus"] += 0.2 * scale
            totals["margin_defense"] += TECHNOLOGY_MARGIN_DEFENSE * scale
    return SharedServicesBenefits(**totals)


def calculate_shared_services_cost(state: GameState) -> int:
    return sum(s.annual_cost for s in state.shared_services if s.active)


def release_shared_services(state: GameState) -> GameState:
    """Switch every service off once the portfolio drops below the shared-services minimum."""
    if len(get_active_businesses(state)) >= MIN_OPCOS_FOR_SHARED_SERVICES:
        return state
    return replace(state, shared_services=[replace(s, active=False) if s.active else s for s in state.shared_services])


def calculate_ma_sourcing_cost(state: GameState) -> int:
    return CONFIG.capital.ma_sourcing_annual_cost.get(state.ma_sourcing_tier, 0)


def get_focus_group_counts(businesses: Iterable[Business]) -> Dict[str, int]:
    counts: Dict[str, int] = Counter()
    for b in businesses:
        if b.status != "active":
            continue
        sector = SECTORS.get(b.sector_id)
        if sector is None:
            continue
        for group in sector.focus_groups:
            counts[group] += 1
    return dict(counts)


def get_concentration_count(business: Business, focus_counts: Dict[str, int]) -> int:
    """Largest focus-group population this business belongs to."""
    sector = SECTORS.get(business.sector_id)
    if sector is None:
        return 1
    return max([focus_counts.get(g, 0) for g in sector.focus_groups] or [1])


def calculate_sector_focus_bonus(businesses: Iterable[Business]) -> Optional[SectorFocusBonus]:
    active = [b for b in businesses if b.status == "active"]
    if len(active) < 2:
        return None

    max_group, max_count = "", 0
    for group, count in get_focus_group_counts(active).items():
        if count > max_count:
            max_group, max_count = group, count

    if max_count < 2:
        return None

    if max_count >= 4:
        tier = 3
    elif max_count >= 3:
        tier = 2
    else:
        tier = 1
    return SectorFocusBonus(focus_group=max_group, tier=tier, opco_count=max_count)


def get_sector_focus_ebitda_bonus(tier: int) -> float:
    return {1: 0.02, 2: 0.04, 3: 0.07}.get(tier, 0.0)


def get_sector_focus_multiple_discount(tier: int) -> float:
    return {2: 0.3, 3: 0.5}.get(tier, 0.0)


def calculate_diversification_bonus(businesses: Iterable[Business]) -> float:
    unique_sectors = {b.sector_id for b in businesses if b.status == "active"}
    if len(unique_sectors) >= 6:
        return 0.06
    if len(unique_sectors) >= 4:
        return 0.04
    return 0.0
