"""
Roll-up mechanics: bolt-on fit, integration outcome, synergies and
platform multiple expansion.
"""

import math
from typing import Optional, Tuple

from models import Business, round_half_up
from rng import RandomSource
from sectors import SECTORS

# Tuck-in penalties; mergers take half
_SIZE_RATIO_PENALTY = {"ideal": 0.0, "stretch": -0.08, "strained": -0.18, "overreach": -0.28}
_MERGER_SIZE_RATIO_PENALTY = {"ideal": 0.0, "stretch": -0.04, "strained": -0.09, "overreach": -0.14}
_SIZE_RATIO_SYNERGY = {"ideal": 1.0, "stretch": 0.80, "strained": 0.50, "overreach": 0.25}
_MERGER_SIZE_RATIO_SYNERGY = {"ideal": 1.0, "stretch": 0.90, "strained": 0.70, "overreach": 0.50}

_AFFINITY_SYNERGY = {"match": 1.0, "related": 0.75, "distant": 0.45}


def get_sub_type_affinity(sector_id: str, sub_type_a: str, sub_type_b: str) -> str:
    """
    match / related / distant.

    Each sector lists its sub-types in operational pairs, so two sub-types
    are related when they share a pair.
    """
    if sub_type_a == sub_type_b:
        return "match"
    sector = SECTORS.get(sector_id)
    if sector is None or sub_type_a not in sector.sub_types or sub_type_b not in sector.sub_types:
        return "distant"
    if sector.sub_types.index(sub_type_a) // 2 == sector.sub_types.index(sub_type_b) // 2:
        return "related"
    return "distant"


def get_size_ratio_tier(bolt_on_ebitda: float, platform_ebitda: float) -> Tuple[str, float]:
    """Return (tier, bolt-on / platform EBITDA ratio)."""
    if platform_ebitda <= 0:
        return "overreach", 99.0
    ratio = abs(bolt_on_ebitda) / platform_ebitda
    if ratio <= 0.5:
        return "ideal", ratio
    if ratio <= 1.0:
        return "stretch", ratio
    if ratio <= 2.0:
        return "strained", ratio
    return "overreach", ratio


def _size_ratio_penalty(tier: str, platform_scale: int, has_shared_services: bool,
                        both_high_quality: bool, is_merger: bool) -> float:
    base = (_MERGER_SIZE_RATIO_PENALTY if is_merger else _SIZE_RATIO_PENALTY)[tier]
    if base == 0:
        return 0.0
    mitigation = 0.0
    if platform_scale >= 3:
        mitigation += 0.15
    if has_shared_services:
        mitigation += 0.05
    if both_high_quality:
        mitigation += 0.05
    # Mitigation never removes more than half the penalty
    return base + min(mitigation, abs(base) * 0.5)


def determine_integration_outcome(
    acquired: Business,
    rng: RandomSource,
    target_platform: Optional[Business] = None,
    has_shared_services: bool = False,
    sub_type_affinity: Optional[str] = None,
    size_ratio_tier: Optional[str] = None,
    is_merger: bool = False,
) -> str:
    """Roll success / partial / failure for a bolt-on or merger."""
    probability = 0.6
    probability += (acquired.quality_rating - 3) * 0.1

    operator = acquired.due_diligence.operator_quality
    if operator == "strong":
        probability += 0.15
    elif operator == "weak":
        probability -= 0.15

    if target_platform is not None and target_platform.sector_id == acquired.sector_id:
        probability += 0.15

    if sub_type_affinity == "related":
        probability -= 0.05
    elif sub_type_affinity == "distant":
        probability -= 0.15

    if has_shared_services:
        probability += 0.1

    if acquired.due_diligence.revenue_concentration == "high":
        probability -= 0.1

    if size_ratio_tier and target_platform is not None:
        both_high = acquired.quality_rating >= 4 and target_platform.quality_rating >= 4
        probability += _size_ratio_penalty(
            size_ratio_tier, target_platform.platform_scale, has_shared_services, both_high, is_merger
        )

    roll = rng.next()
    if roll < probability * 0.6:
        return "success"
    if roll < probability * 1.2:
        return "partial"
    return "failure"


def calculate_synergies(
    outcome: str,
    acquired_ebitda: float,
    is_tuck_in: bool,
    sub_type_affinity: Optional[str] = None,
    size_ratio_tier: Optional[str] = None,
    is_merger: bool = False,
) -> int:
    """EBITDA gained (or lost) from integrating the acquired business."""
    if is_merger:
        rate = {"success": 0.15, "partial": 0.05, "failure": -0.07}[outcome]
    elif is_tuck_in:
        rate = {"success": 0.20, "partial": 0.08, "failure": -0.05}[outcome]
    else:
        rate = {"success": 0.10, "partial": 0.03, "failure": -0.10}[outcome]

    if sub_type_affinity:
        rate *= _AFFINITY_SYNERGY.get(sub_type_affinity, 1.0)

    if size_ratio_tier:
        rate *= (_MERGER_SIZE_RATIO_SYNERGY if is_merger else _SIZE_RATIO_SYNERGY)[size_ratio_tier]

    return round_half_up(acquired_ebitda * rate)


def calculate_multiple_expansion(platform_scale: int, total_ebitda: float) -> float:
    """Log-scale bonus (capped at 2.0x) plus a kicker for large combined EBITDA."""
    scale_bonus = min(2.0, math.log2(platform_scale + 1) * 0.5) if platform_scale > 0 else 0.0
    if total_ebitda > 5000:
        size_bonus = 0.3
    elif total_ebitda > 3000:
        size_bonus = 0.15
    else:
        size_bonus = 0.0
    return scale_bonus + size_bonus
