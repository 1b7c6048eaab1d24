"""
Engine Configuration

Centralizes all tunable parameters for the holdco engine.
Game-balance constants live here instead of being scattered through the formulas.
"""

from dataclasses import dataclass, field
from typing import Dict


@dataclass
class TaxConfig:
    """Portfolio tax parameters."""
    tax_rate: float = 0.30  # Flat corporate rate applied at the holdco level


@dataclass
class DistressConfig:
    """Leverage thresholds and covenant penalties."""
    elevated_threshold: float = 2.5  # Net debt / EBITDA
    stressed_threshold: float = 3.5
    breach_threshold: float = 4.5
    stressed_interest_penalty: float = 0.01
    breach_interest_penalty: float = 0.02
    covenant_breach_rounds_threshold: int = 2  # Consecutive breach rounds before forced bankruptcy


@dataclass
class GrowthConfig:
    """Organic growth and margin drift parameters."""

    # Growth rate bounds
    min_growth_rate: float = -0.10
    max_growth_rate: float = 0.20

    # EBITDA and margin floors
    ebitda_floor_pct: float = 0.30  # Never below 30% of acquisition EBITDA
    min_margin: float = 0.03
    max_margin: float = 0.80
    margin_ceiling_headroom: float = 0.15  # Sector ceiling = top of sector band + headroom

    # Margin drift onset ("onboarding" period)
    margin_drift_start_fraction: float = 0.20
    margin_drift_min_start_round: int = 2

    # Mean reversion when margin sits well above sector midpoint
    mean_reversion_gap: float = 0.10
    mean_reversion_headwind: float = 0.005

    # Additive growth modifiers
    competitive_position_modifier: float = 0.015  # +leader / -commoditized
    shared_services_sector_extra: float = 0.01  # Agency / consumer get more from marketing
    inflation_drag: float = 0.03
    integration_penalty_base: float = 0.03
    integration_penalty_spread: float = 0.05  # Penalty in [base, base + spread]

    # Concentration multiplier on sector volatility
    concentration_threshold: int = 4
    concentration_step: float = 0.25
    concentration_max_multiplier: float = 2.0

    # Integration-failure drag decay per round
    drag_decay_standard: float = 0.65
    drag_decay_quick: float = 0.50
    drag_snap_threshold: float = 0.001

    # Integration drag on acquisition
    integration_drag_base_rate: float = 0.03
    integration_drag_floor: float = -0.01  # Smallest drag applied (negative)
    integration_drag_cap: float = -0.06  # Largest drag applied (negative)
    integration_drag_merger_factor: float = 0.6


@dataclass
class ValuationConfig:
    """Exit valuation premium stack parameters."""
    growth_premium_factor: float = 0.8
    growth_premium_cap: float = 2.5
    decline_penalty_factor: float = 0.5
    decline_penalty_floor: float = -1.0
    quality_premium_step: float = 0.4  # Per rating point above/below 3
    platform_premium_factor: float = 0.4  # x log2(scale + 1)
    hold_premium_step: float = 0.1  # Per year held
    hold_premium_cap: float = 0.5
    improvements_premium_cap: float = 1.0
    market_modifier: float = 0.5  # Bull +, recession -

    # Aggregate premium cap
    premium_cap_floor: float = 10.0
    premium_cap_base_factor: float = 1.5
    platform_headroom_per_scale: float = 0.3

    # Seasoning and floors
    seasoning_years: float = 2.0
    multiple_floor: float = 2.0  # Distressed-sale floor

    # Merger premium bands by size balance ratio
    merger_premium_balanced: float = 0.5  # ratio <= 2
    merger_premium_moderate: float = 0.4  # ratio <= 3
    merger_premium_lopsided: float = 0.3

    # Rule of 40 (SaaS / education)
    rule_of_40_excellent: float = 50.0
    rule_of_40_good: float = 40.0
    rule_of_40_poor: float = 25.0
    rule_of_40_max_premium: float = 1.5
    rule_of_40_penalty: float = -0.3

    # Margin expansion in percentage points
    margin_expansion_strong_pp: float = 10.0
    margin_expansion_moderate_pp: float = 5.0
    margin_compression_pp: float = -5.0
    margin_expansion_strong_premium: float = 0.3
    margin_compression_penalty: float = -0.2

    # Platform multiple expansion at acquisition
    platform_expansion_factor: float = 0.5
    platform_expansion_cap: float = 2.0


@dataclass
class EventConfig:
    """Event magnitudes and bounds."""
    interest_rate_ceiling: float = 0.15
    interest_rate_floor: float = 0.03
    rate_move_min: float = 0.01
    rate_move_spread: float = 0.01
    bull_boost_min: float = 0.05
    bull_boost_spread: float = 0.10
    recession_factor: float = 0.15  # x sector recession sensitivity
    crisis_factor: float = 0.20
    crisis_rate_shock: float = 0.02
    crisis_min_round: int = 3
    inflation_rounds: int = 2
    credit_tightening_rounds: int = 2
    compliance_cost: int = 500
    unsolicited_offer_base: float = 0.95  # Chance = 1 - base ** active_count
    offer_variance_min: float = 0.9
    offer_variance_spread: float = 0.3
    consolidation_boom_probability: float = 0.05
    consolidation_boom_rounds: int = 2
    consolidation_boom_premium: float = 0.20
    consolidation_boom_min_opcos: int = 2
    mbo_discount: float = 0.9
    mbo_min_years_held: int = 3
    cooldown_rounds: int = 3


@dataclass
class CapitalConfig:
    """Holdco capital structure and cost parameters."""
    holdco_loan_rounds: int = 10  # Amortization term for starting bank debt
    earnout_expiry_rounds: int = 4
    restructuring_rate_penalty: float = 0.02
    equity_dilution_step: float = 0.10  # Each prior raise knocks this much off the issue price
    equity_dilution_floor: float = 0.10  # Issue price never falls below this fraction of intrinsic value
    equity_buyback_cooldown: int = 2  # Rounds between a raise and a buyback, either direction
    distressed_sale_fraction: float = 0.70  # Fire sale price as a fraction of exit valuation
    ma_sourcing_annual_cost: Dict[int, int] = field(default_factory=lambda: {0: 0, 1: 300, 2: 600, 3: 900})


@dataclass
class IpoConfig:
    """Public listing gates and public-market parameters (standard duration only)."""

    # Eligibility gates
    min_round: int = 16
    min_ebitda: int = 75000
    min_businesses: int = 6
    min_avg_quality: float = 4.0
    min_platforms: int = 1

    # Listing terms
    float_fraction: float = 0.20  # Share of the post-IPO company sold to the public
    listing_pop: float = 0.05  # Opening sentiment
    expectation_growth: float = 0.05  # Analysts expect this much EBITDA growth each round

    # Earnings reaction
    beat_bonus: float = 0.08
    miss_penalty: float = 0.15
    consecutive_miss_threshold: int = 2
    downgrade_penalty: float = 0.10
    sentiment_bound: float = 0.30

    # Holdco EV used for the share price
    base_multiple: float = 5.0
    quality_multiple_step: float = 0.5

    share_funded_deals_per_round: int = 1

    # Founder equity bonus for public companies
    fev_bonus_base: float = 0.05
    fev_bonus_max: float = 0.18


@dataclass
class ScoringConfig:
    """Final score rubric parameters."""
    fcf_growth_target_standard: float = 3.0  # 300% over 20 rounds
    fcf_growth_target_quick: float = 1.5  # 150% over 10 rounds
    fcf_growth_points: float = 25.0
    fcf_from_zero_points: float = 15.0
    moic_full_standard: float = 2.5
    moic_full_quick: float = 2.0
    moic_mid_standard: float = 1.5
    moic_mid_quick: float = 1.3
    going_concern_premium: float = 1.1
    over_leverage_threshold: float = 4.0
    over_leverage_penalty: float = 5.0
    breach_penalty: float = 3.0
    restructure_penalty: float = 5.0
    max_insights: int = 3
    max_leaderboard_entries: int = 10


@dataclass
class SimulationConfig:
    """
    Master configuration for the holdco engine.

    Contains all sub-configurations and provides validation.
    """
    tax: TaxConfig = field(default_factory=TaxConfig)
    distress: DistressConfig = field(default_factory=DistressConfig)
    growth: GrowthConfig = field(default_factory=GrowthConfig)
    valuation: ValuationConfig = field(default_factory=ValuationConfig)
    events: EventConfig = field(default_factory=EventConfig)
    capital: CapitalConfig = field(default_factory=CapitalConfig)
    ipo: IpoConfig = field(default_factory=IpoConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)

    def __post_init__(self):
        """Validation of cross-cutting bounds."""
        if not (0.0 <= self.tax.tax_rate < 1.0):
            raise ValueError("tax_rate must be in [0, 1)")

        # Distress thresholds must be ordered
        d = self.distress
        if not (0 < d.elevated_threshold < d.stressed_threshold < d.breach_threshold):
            raise ValueError("distress thresholds must be strictly increasing")
        if d.covenant_breach_rounds_threshold < 1:
            raise ValueError("covenant_breach_rounds_threshold must be at least 1")

        g = self.growth
        if g.min_growth_rate >= g.max_growth_rate:
            raise ValueError("min_growth_rate must be below max_growth_rate")
        if not (0.0 < g.min_margin < g.max_margin <= 1.0):
            raise ValueError("margin bounds must satisfy 0 < min < max <= 1")
        if not (0.0 <= g.ebitda_floor_pct <= 1.0):
            raise ValueError("ebitda_floor_pct must be in [0, 1]")

        e = self.events
        if not (0.0 < e.interest_rate_floor < e.interest_rate_ceiling):
            raise ValueError("interest rate floor must be positive and below the ceiling")
        if not (0.0 < e.unsolicited_offer_base < 1.0):
            raise ValueError("unsolicited_offer_base must be in (0, 1)")

        if self.valuation.multiple_floor < 0:
            raise ValueError("multiple_floor cannot be negative")
        if self.valuation.seasoning_years <= 0:
            raise ValueError("seasoning_years must be positive")

        c = self.capital
        if not (0.0 < c.equity_dilution_floor <= 1.0):
            raise ValueError("equity_dilution_floor must be in (0, 1]")
        if c.equity_buyback_cooldown < 0:
            raise ValueError("equity_buyback_cooldown cannot be negative")

        if not (0.0 < self.ipo.float_fraction < 1.0):
            raise ValueError("ipo float_fraction must be in (0, 1)")
        if self.ipo.fev_bonus_base > self.ipo.fev_bonus_max:
            raise ValueError("ipo fev_bonus_base cannot exceed fev_bonus_max")


# Global configuration instance
CONFIG = SimulationConfig()
