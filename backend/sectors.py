"""
Static reference data: sectors, shared services, improvements.

The engine treats these tables as read-only configuration.
All money is in thousands (1000 = $1M).
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple


@dataclass(frozen=True)
class SectorDefinition:
    """Economic profile of one sector."""
    id: str
    name: str
    capex_rate: float  # Fraction of EBITDA consumed by maintenance capex
    volatility: float  # Revenue growth noise amplitude
    acquisition_multiple: Tuple[float, float]
    margin_range: Tuple[float, float]
    recession_sensitivity: float  # 0 = defensive, 1.3 = highly cyclical
    client_concentration: str  # high / medium / low
    focus_groups: Tuple[str, ...]
    sub_types: Tuple[str, ...]
    base_growth: Tuple[float, float]
    margin_drift: Tuple[float, float]  # Annual margin drift range (usually negative)
    margin_volatility: float

    @property
    def margin_midpoint(self) -> float:
        return (self.margin_range[0] + self.margin_range[1]) / 2

    @property
    def average_multiple(self) -> float:
        return (self.acquisition_multiple[0] + self.acquisition_multiple[1]) / 2


SECTORS: Dict[str, SectorDefinition] = {
    s.id: s
    for s in [
        SectorDefinition(
            "agency", "Marketing Agency", 0.03, 0.08, (2.5, 4.5), (0.15, 0.25), 1.2, "high",
            ("marketing", "professional_services"),
            ("Digital Agency", "Creative Studio", "Media Buying", "PR Firm"),
            (0.02, 0.08), (-0.010, -0.003), 0.010,
        ),
        SectorDefinition(
            "saas", "Software (SaaS)", 0.10, 0.10, (4.0, 8.0), (0.15, 0.35), 0.6, "low",
            ("technology",),
            ("Vertical SaaS", "Horizontal SaaS", "Developer Tools", "Data Platform"),
            (0.08, 0.20), (-0.004, 0.002), 0.012,
        ),
        SectorDefinition(
            "homeServices", "Home Services", 0.12, 0.05, (3.0, 5.0), (0.12, 0.20), 0.8, "low",
            ("home_services", "consumer_services"),
            ("HVAC", "Plumbing", "Roofing", "Landscaping"),
            (0.03, 0.08), (-0.006, -0.001), 0.008,
        ),
        SectorDefinition(
            "consumer", "Consumer Brands", 0.13, 0.09, (3.0, 6.0), (0.10, 0.20), 1.0, "medium",
            ("consumer",),
            ("DTC Brand", "Specialty Food", "Beauty", "Pet Products"),
            (0.02, 0.10), (-0.008, -0.002), 0.012,
        ),
        SectorDefinition(
            "industrial", "Industrial Manufacturing", 0.15, 0.06, (3.5, 5.5), (0.12, 0.22), 1.1, "medium",
            ("industrial",),
            ("Precision Machining", "Fabrication", "Industrial Components", "Packaging"),
            (0.01, 0.05), (-0.005, -0.001), 0.008,
        ),
        SectorDefinition(
            "b2bServices", "B2B Services", 0.06, 0.06, (3.0, 5.0), (0.12, 0.25), 0.9, "medium",
            ("professional_services",),
            ("IT Services", "Staffing", "Consulting", "Facilities Services"),
            (0.03, 0.08), (-0.006, -0.002), 0.009,
        ),
        SectorDefinition(
            "healthcare", "Healthcare Services", 0.10, 0.04, (4.0, 7.0), (0.12, 0.22), 0.3, "low",
            ("healthcare",),
            ("Dental Practice", "Physical Therapy", "Home Health", "Veterinary"),
            (0.03, 0.08), (-0.005, -0.001), 0.007,
        ),
        SectorDefinition(
            "restaurant", "Restaurants", 0.12, 0.10, (2.5, 4.0), (0.08, 0.15), 1.3, "low",
            ("consumer", "hospitality"),
            ("Quick Service", "Fast Casual", "Full Service", "Catering"),
            (0.01, 0.06), (-0.010, -0.004), 0.012,
        ),
        SectorDefinition(
            "realEstate", "Real Estate", 0.18, 0.05, (5.0, 9.0), (0.30, 0.50), 0.9, "low",
            ("real_assets",),
            ("Self Storage", "Multifamily", "Industrial Flex", "Manufactured Housing"),
            (0.02, 0.05), (-0.003, 0.001), 0.006,
        ),
        SectorDefinition(
            "education", "Education", 0.07, 0.06, (3.5, 6.0), (0.15, 0.28), 0.4, "low",
            ("technology", "education"),
            ("Test Prep", "Vocational School", "EdTech", "Childcare"),
            (0.04, 0.10), (-0.005, -0.001), 0.009,
        ),
        SectorDefinition(
            "insurance", "Insurance Brokerage", 0.04, 0.05, (5.0, 8.0), (0.18, 0.30), 0.5, "medium",
            ("financial_services",),
            ("Commercial Brokerage", "Personal Lines", "Benefits Brokerage", "MGA"),
            (0.04, 0.09), (-0.004, 0.0), 0.007,
        ),
        SectorDefinition(
            "autoServices", "Auto Services", 0.10, 0.05, (3.0, 5.0), (0.12, 0.20), 0.6, "low",
            ("consumer_services",),
            ("Collision Repair", "Car Wash", "Quick Lube", "Auto Glass"),
            (0.02, 0.07), (-0.005, -0.001), 0.008,
        ),
        SectorDefinition(
            "distribution", "Distribution", 0.12, 0.06, (3.5, 5.5), (0.06, 0.12), 1.0, "medium",
            ("industrial",),
            ("Industrial MRO", "Food Distribution", "Building Products", "Specialty Chemicals"),
            (0.02, 0.06), (-0.004, -0.001), 0.006,
        ),
        SectorDefinition(
            "wealthManagement", "Wealth Management", 0.03, 0.06, (6.0, 10.0), (0.25, 0.40), 1.0, "medium",
            ("financial_services",),
            ("RIA", "Family Office Services", "Retirement Plans", "Trust Administration"),
            (0.04, 0.09), (-0.004, 0.0), 0.008,
        ),
        SectorDefinition(
            "environmental", "Environmental Services", 0.16, 0.05, (4.0, 6.5), (0.15, 0.25), 0.5, "medium",
            ("industrial", "real_assets"),
            ("Waste Hauling", "Remediation", "Water Treatment", "Recycling"),
            (0.03, 0.07), (-0.004, -0.001), 0.007,
        ),
    ]
}

# Sectors that get extra lift from shared marketing
MARKETING_SENSITIVE_SECTORS = ("agency", "consumer")

# Sectors where buyers apply the Rule of 40
RULE_OF_40_SECTORS = ("saas", "education")


def get_sector(sector_id: str) -> SectorDefinition:
    sector = SECTORS.get(sector_id)
    if sector is None:
        raise ValueError(f"Unknown sector: {sector_id}")
    return sector


# --- Shared services ---

SHARED_SERVICES_CONFIG: Dict[str, Dict] = {
    "finance_reporting": {
        "name": "Finance & Reporting",
        "unlock_cost": 560,
        "annual_cost": 250,
        "effect": "Cash conversion +5% across portfolio",
    },
    "recruiting_hr": {
        "name": "Recruiting & HR",
        "unlock_cost": 750,
        "annual_cost": 320,
        "effect": "Talent loss events 50% less likely; talent gain events 30% more likely",
    },
    "procurement": {
        "name": "Procurement",
        "unlock_cost": 600,
        "annual_cost": 190,
        "effect": "Capex rate reduced by 15% across portfolio",
    },
    "marketing_brand": {
        "name": "Marketing & Brand",
        "unlock_cost": 675,
        "annual_cost": 250,
        "effect": "Organic growth +1.5% for all opcos; agencies and consumer brands get more",
    },
    "technology_systems": {
        "name": "Technology & Systems",
        "unlock_cost": 900,
        "annual_cost": 380,
        "effect": "Reinvestment efficiency +20%; slows margin erosion",
    },
}

MIN_OPCOS_FOR_SHARED_SERVICES = 3
MAX_ACTIVE_SHARED_SERVICES = 3


# --- Operational improvements ---

# Exit premium each improvement type contributes (capped in aggregate)
IMPROVEMENT_EXIT_PREMIUMS: Dict[str, float] = {
    "operating_playbook": 0.15,
    "pricing_model": 0.15,
    "service_expansion": 0.15,
    "fix_underperformance": 0.15,
    "digital_transformation": 0.15,
    "recurring_revenue_conversion": 0.50,
    "management_professionalization": 0.30,
}

# Upfront cost as a fraction of EBITDA plus the operating effect
IMPROVEMENT_EFFECTS: Dict[str, Dict[str, float]] = {
    "operating_playbook": {"cost_fraction": 0.15, "margin": 0.020, "growth": 0.0},
    "pricing_model": {"cost_fraction": 0.10, "margin": 0.015, "growth": 0.010},
    "service_expansion": {"cost_fraction": 0.20, "margin": 0.0, "growth": 0.020},
    "fix_underperformance": {"cost_fraction": 0.12, "margin": 0.030, "growth": 0.0},
    "digital_transformation": {"cost_fraction": 0.22, "margin": 0.020, "growth": 0.010},
    "recurring_revenue_conversion": {"cost_fraction": 0.25, "margin": 0.010, "growth": 0.010},
    "management_professionalization": {"cost_fraction": 0.18, "margin": 0.010, "growth": 0.005},
}


def get_focus_groups(sector_id: str) -> List[str]:
    sector = SECTORS.get(sector_id)
    return list(sector.focus_groups) if sector else []
