"""
Turnaround programs.

Tier unlocks, program catalog, sector quality ceilings and outcome
resolution for structured quality-improvement playbooks.
All costs in thousands.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from models import ActiveTurnaround, Business, GameState, round_half_up
from rng import RandomSource

TURNAROUND_FATIGUE_THRESHOLD = 4  # Concurrent programs before success suffers
TURNAROUND_FATIGUE_PENALTY = 0.10
TURNAROUND_EXIT_PREMIUM = 0.25
TURNAROUND_EXIT_PREMIUM_MIN_TIERS = 2
BASE_QUALITY_IMPROVEMENT_CHANCE = 0.30
QUALITY_IMPROVEMENT_TIER_BONUS = {1: 0.15, 2: 0.20, 3: 0.25}


@dataclass(frozen=True)
class TurnaroundTierConfig:
    name: str
    unlock_cost: int
    annual_cost: int
    required_opcos: int
    description: str


@dataclass(frozen=True)
class TurnaroundProgram:
    """success_rate + partial_rate + failure_rate == 1.0"""
    id: str
    tier_id: int
    source_quality: int
    target_quality: int
    duration_standard: int
    duration_quick: int
    success_rate: float
    partial_rate: float
    failure_rate: float
    ebitda_boost_on_success: float
    ebitda_boost_on_partial: float
    ebitda_damage_on_failure: float
    upfront_cost_fraction: float  # Fraction of business EBITDA
    annual_cost: int


TURNAROUND_TIER_CONFIG: Dict[int, TurnaroundTierConfig] = {
    1: TurnaroundTierConfig("Portfolio Operations", 600, 250, 2,
                            "Dedicated ops team to run structured turnaround playbooks"),
    2: TurnaroundTierConfig("Transformation Office", 1000, 450, 3,
                            "Full transformation team with cross-functional expertise"),
    3: TurnaroundTierConfig("Interim Management", 1400, 700, 4,
                            "Deploy interim C-suite operators into struggling businesses"),
}

TURNAROUND_PROGRAMS: List[TurnaroundProgram] = [
    TurnaroundProgram("t1_plan_a", 1, 1, 2, 4, 2, 0.65, 0.30, 0.05, 0.07, 0.03, 0.04, 0.10, 50),
    TurnaroundProgram("t1_plan_b", 1, 2, 3, 4, 2, 0.60, 0.35, 0.05, 0.05, 0.02, 0.03, 0.12, 75),
    TurnaroundProgram("t2_plan_a", 2, 1, 3, 5, 3, 0.68, 0.27, 0.05, 0.11, 0.05, 0.05, 0.14, 100),
    TurnaroundProgram("t2_plan_b", 2, 2, 4, 5, 3, 0.65, 0.30, 0.05, 0.09, 0.04, 0.04, 0.16, 125),
    TurnaroundProgram("t3_plan_a", 3, 1, 4, 6, 3, 0.73, 0.22, 0.05, 0.15, 0.07, 0.06, 0.18, 150),
    TurnaroundProgram("t3_plan_b", 3, 2, 5, 6, 3, 0.70, 0.25, 0.05, 0.13, 0.06, 0.06, 0.20, 200),
    # Faster variant of t3_plan_a: 10pp lower success at 1.5x the upfront cost
    TurnaroundProgram("t3_quick", 3, 1, 4, 3, 2, 0.63, 0.32, 0.05, 0.15, 0.07, 0.06, 0.27, 150),
]

# Highest quality a business in the sector can reach
SECTOR_QUALITY_CEILINGS = {
    "saas": 4,
    "agency": 3,
    "restaurant": 3,
    "industrial": 4,
}
DEFAULT_QUALITY_CEILING = 5


@dataclass(frozen=True)
class TurnaroundOutcome:
    result: str  # success / partial / failure
    quality_change: int
    ebitda_multiplier: float
    target_quality: int


def get_quality_ceiling(sector_id: str) -> int:
    return SECTOR_QUALITY_CEILINGS.get(sector_id, DEFAULT_QUALITY_CEILING)


def get_turnaround_tier_unlock_cost(current_tier: int) -> int:
    next_tier = current_tier + 1
    if next_tier > 3:
        return 0
    return TURNAROUND_TIER_CONFIG[next_tier].unlock_cost


def get_turnaround_tier_annual_cost(tier: int) -> int:
    if tier == 0:
        return 0
    return TURNAROUND_TIER_CONFIG[tier].annual_cost


def get_program_by_id(program_id: str) -> Optional[TurnaroundProgram]:
    for program in TURNAROUND_PROGRAMS:
        if program.id == program_id:
            return program
    return None


def get_available_programs(turnaround_tier: int) -> List[TurnaroundProgram]:
    return [p for p in TURNAROUND_PROGRAMS if p.tier_id <= turnaround_tier]


def get_eligible_programs(
    business: Business,
    turnaround_tier: int,
    active_turnarounds: List[ActiveTurnaround],
) -> List[TurnaroundProgram]:
    """Programs a business can start now: matching quality, under the sector ceiling, none running."""
    if turnaround_tier == 0:
        return []
    if any(t.business_id == business.id and t.status == "active" for t in active_turnarounds):
        return []

    ceiling = get_quality_ceiling(business.sector_id)
    return [
        p for p in get_available_programs(turnaround_tier)
        if p.source_quality == business.quality_rating and p.target_quality <= ceiling
    ]


def calculate_turnaround_cost(program: TurnaroundProgram, business: Business) -> int:
    return round_half_up(abs(business.ebitda) * program.upfront_cost_fraction)


def get_turnaround_duration(program: TurnaroundProgram, duration: str) -> int:
    return program.duration_quick if duration == "quick" else program.duration_standard


def can_unlock_tier(current_tier: int, cash: int, active_opco_count: int) -> Tuple[bool, Optional[str]]:
    """Return (allowed, reason) for unlocking the next turnaround tier."""
    next_tier = current_tier + 1
    if next_tier > 3:
        return False, "Already at maximum tier"

    config = TURNAROUND_TIER_CONFIG[next_tier]
    if active_opco_count < config.required_opcos:
        return False, f"Need {config.required_opcos} active businesses (have {active_opco_count})"
    if cash < config.unlock_cost:
        return False, f"Need ${config.unlock_cost}K cash (have ${cash}K)"
    return True, None


def resolve_turnaround(
    program: TurnaroundProgram,
    active_turnaround_count: int,
    rng: RandomSource,
) -> TurnaroundOutcome:
    """
    Roll a program outcome.

    With too many concurrent programs, success probability shifts into the
    partial band; the failure band is unchanged.
    """
    success_rate = program.success_rate
    partial_rate = program.partial_rate

    if active_turnaround_count >= TURNAROUND_FATIGUE_THRESHOLD:
        success_rate = max(0.0, success_rate - TURNAROUND_FATIGUE_PENALTY)
        partial_rate = min(1 - success_rate - program.failure_rate, partial_rate + TURNAROUND_FATIGUE_PENALTY)

    roll = rng.next()
    if roll < success_rate:
        return TurnaroundOutcome(
            result="success",
            quality_change=program.target_quality - program.source_quality,
            ebitda_multiplier=1 + program.ebitda_boost_on_success,
            target_quality=program.target_quality,
        )
    if roll < success_rate + partial_rate:
        partial_target = min(program.target_quality, program.source_quality + 1)
        return TurnaroundOutcome(
            result="partial",
            quality_change=partial_target - program.source_quality,
            ebitda_multiplier=1 + program.ebitda_boost_on_partial,
            target_quality=partial_target,
        )
    return TurnaroundOutcome(
        result="failure",
        quality_change=0,
        ebitda_multiplier=1 - program.ebitda_damage_on_failure,
        target_quality=program.source_quality,
    )


def get_quality_improvement_chance(turnaround_tier: int) -> float:
    """Chance an operational improvement also lifts quality one notch."""
    return BASE_QUALITY_IMPROVEMENT_CHANCE + QUALITY_IMPROVEMENT_TIER_BONUS.get(turnaround_tier, 0.0)


def get_turnaround_exit_premium(business: Business) -> float:
    if business.quality_improved_tiers >= TURNAROUND_EXIT_PREMIUM_MIN_TIERS:
        return TURNAROUND_EXIT_PREMIUM
    return 0.0


def calculate_turnaround_annual_cost(state: GameState) -> int:
    """Tier overhead plus the running cost of every active program."""
    total = get_turnaround_tier_annual_cost(state.turnaround_tier)
    for turnaround in state.active_turnarounds:
        if turnaround.status != "active":
            continue
        program = get_program_by_id(turnaround.program_id)
        if program is not None:
            total += program.annual_cost
    return total
