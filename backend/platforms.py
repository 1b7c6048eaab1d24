"""
Integrated platforms.

A platform is forged from complementary sub-types once combined sector
EBITDA clears a threshold scaled by difficulty and duration. Constituents
gain a one-time margin boost, a permanent growth boost, recession
resistance and an exit multiple expansion that sits outside the premium cap.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from models import Business, IntegratedPlatform, round_half_up

INTEGRATION_THRESHOLD_MULTIPLIER = {
    "easy": {"standard": 1.0, "quick": 0.7},
    "normal": {"standard": 0.7, "quick": 0.5},
}


@dataclass(frozen=True)
class PlatformRecipe:
    id: str
    name: str
    description: str
    required_sub_types: Tuple[str, ...]
    min_sub_types: int
    base_ebitda_threshold: int
    bonuses: Dict[str, float]
    integration_cost_fraction: float
    sector_id: Optional[str] = None
    cross_sector_ids: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def sector_ids(self) -> List[str]:
        return [self.sector_id] if self.sector_id else list(self.cross_sector_ids)


def _bonuses(margin: float, growth: float, multiple: float, recession: float) -> Dict[str, float]:
    return {
        "margin_boost": margin,
        "growth_boost": growth,
        "multiple_expansion": multiple,
        "recession_resistance_reduction": recession,
    }


PLATFORM_RECIPES: List[PlatformRecipe] = [
    PlatformRecipe(
        "agency_full_service", "Full-Service Marketing Group",
        "Creative, media and PR under one roof for enterprise clients",
        ("Digital Agency", "Creative Studio", "Media Buying", "PR Firm"), 2, 5000,
        _bonuses(0.04, 0.03, 1.5, 0.8), 0.20, sector_id="agency",
    ),
    PlatformRecipe(
        "home_services_one_stop", "One-Stop Home Services",
        "Every trade a homeowner calls, one dispatch center",
        ("HVAC", "Plumbing", "Roofing", "Landscaping"), 3, 4000,
        _bonuses(0.03, 0.02, 1.2, 0.85), 0.15, sector_id="homeServices",
    ),
    PlatformRecipe(
        "saas_suite", "Vertical Software Suite",
        "Bundled products sold into one customer base",
        ("Vertical SaaS", "Horizontal SaaS", "Developer Tools", "Data Platform"), 2, 6000,
        _bonuses(0.05, 0.04, 2.0, 0.85), 0.25, sector_id="saas",
    ),
    PlatformRecipe(
        "healthcare_network", "Regional Care Network",
        "Shared referral flow and payer contracting across practices",
        ("Dental Practice", "Physical Therapy", "Home Health", "Veterinary"), 2, 5000,
        _bonuses(0.04, 0.02, 1.5, 0.9), 0.20, sector_id="healthcare",
    ),
    PlatformRecipe(
        "industrial_solutions", "Engineered Solutions Group",
        "Design-to-delivery capability across machining and fabrication",
        ("Precision Machining", "Fabrication", "Industrial Components", "Packaging"), 2, 6000,
        _bonuses(0.03, 0.02, 1.3, 0.8), 0.18, sector_id="industrial",
    ),
    PlatformRecipe(
        "b2b_outsourcing", "Outsourced Services Platform",
        "IT, staffing and facilities sold as one managed contract",
        ("IT Services", "Staffing", "Consulting", "Facilities Services"), 2, 5000,
        _bonuses(0.03, 0.03, 1.4, 0.85), 0.18, sector_id="b2bServices",
    ),
    PlatformRecipe(
        "financial_advisory", "Integrated Financial Advisory",
        "Risk and wealth advice under one client relationship",
        ("Commercial Brokerage", "Personal Lines", "Benefits Brokerage", "MGA",
         "RIA", "Family Office Services", "Retirement Plans", "Trust Administration"), 2, 8000,
        _bonuses(0.05, 0.03, 2.0, 0.75), 0.22, cross_sector_ids=("insurance", "wealthManagement"),
    ),
]


@dataclass
class PlatformEligibility:
    recipe: PlatformRecipe
    eligible_businesses: List[Business]
    sector_ebitda: int
    scaled_threshold: int


def get_recipe_by_id(recipe_id: str) -> Optional[PlatformRecipe]:
    for recipe in PLATFORM_RECIPES:
        if recipe.id == recipe_id:
            return recipe
    return None


def get_integration_threshold_multiplier(difficulty: str, duration: str) -> float:
    return INTEGRATION_THRESHOLD_MULTIPLIER[difficulty][duration]


def get_scaled_threshold(base_threshold: int, difficulty: str, duration: str) -> int:
    return round_half_up(base_threshold * get_integration_threshold_multiplier(difficulty, duration))


def check_platform_eligibility(
    businesses: Iterable[Business],
    existing_platforms: Iterable[IntegratedPlatform],
    difficulty: str,
    duration: str,
) -> List[PlatformEligibility]:
    """Recipes the portfolio can forge right now."""
    owned = [b for b in businesses if b.status in ("active", "integrated")]
    forged = {p.recipe_id for p in existing_platforms}
    available = [b for b in owned if not b.integrated_platform_id]

    eligible = []
    for recipe in PLATFORM_RECIPES:
        if recipe.id in forged:
            continue

        sector_ids = recipe.sector_ids
        matching = [
            b for b in available
            if b.sector_id in sector_ids and b.sub_type in recipe.required_sub_types
        ]
        if len({b.sub_type for b in matching}) < recipe.min_sub_types:
            continue

        # Cross-sector recipes need every sector represented
        if recipe.cross_sector_ids and not set(recipe.cross_sector_ids) <= {b.sector_id for b in matching}:
            continue

        sector_ebitda = sum(b.ebitda for b in owned if b.sector_id in sector_ids)
        threshold = get_scaled_threshold(recipe.base_ebitda_threshold, difficulty, duration)
        if sector_ebitda < threshold:
            continue

        eligible.append(PlatformEligibility(recipe, matching, sector_ebitda, threshold))
    return eligible


def calculate_integration_cost(recipe: PlatformRecipe, selected: Iterable[Business]) -> int:
    return round_half_up(sum(b.ebitda for b in selected) * recipe.integration_cost_fraction)


def forge_platform(recipe: PlatformRecipe, business_ids: List[str], round_number: int) -> IntegratedPlatform:
    """
    Build the platform record.

    Charging the cost and tagging constituents is the caller's job.
    """
    return IntegratedPlatform(
        id=f"platform_{recipe.id}_r{round_number}",
        recipe_id=recipe.id,
        name=recipe.name,
        sector_ids=recipe.sector_ids,
        constituent_business_ids=list(business_ids),
        forged_in_round=round_number,
        bonuses=dict(recipe.bonuses),
    )


def get_platform_bonuses(business: Business, platforms: Iterable[IntegratedPlatform]) -> Optional[Dict[str, float]]:
    if not business.integrated_platform_id:
        return None
    for platform in platforms:
        if platform.id == business.integrated_platform_id:
            return platform.bonuses
    return None


def get_platform_multiple_expansion(business: Business, platforms: Iterable[IntegratedPlatform]) -> float:
    bonuses = get_platform_bonuses(business, platforms)
    return bonuses.get("multiple_expansion", 0.0) if bonuses else 0.0


def get_platform_recession_modifier(business: Business, platforms: Iterable[IntegratedPlatform]) -> float:
    """Multiplier on recession damage; 1.0 outside a platform."""
    bonuses = get_platform_bonuses(business, platforms)
    return bonuses.get("recession_resistance_reduction", 1.0) if bonuses else 1.0
