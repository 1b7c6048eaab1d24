"""
Buyer pool model.

Size-tier premiums by EBITDA, the de-risking composite, buyer profile
generation for offers, and valuation commentary.
"""

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Tuple

from models import Business
from rng import RandomSource
from sectors import SECTORS

BUYER_POOL_TIERS = ("individual", "small_pe", "lower_middle_pe", "institutional_pe", "large_pe")


@dataclass(slots=True)
class BuyerProfile:
    name: str
    type: str
    is_strategic: bool
    strategic_premium: float
    investment_thesis: str
    fund_size: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(slots=True)
class ValuationCommentary:
    summary: str
    buyer_pool_description: str
    factors: List[str] = field(default_factory=list)


def _lerp(x: float, x0: float, x1: float, y0: float, y1: float) -> float:
    return y0 + ((x - x0) / (x1 - x0)) * (y1 - y0)


def calculate_size_tier_premium(ebitda: float) -> Tuple[str, float]:
    """Return (buyer pool tier, premium) for an EBITDA level in thousands."""
    if ebitda < 2000:
        return "individual", 0.0
    if ebitda < 5000:
        return "small_pe", _lerp(ebitda, 2000, 5000, 0.5, 0.8)
    if ebitda < 10000:
        return "lower_middle_pe", _lerp(ebitda, 5000, 10000, 0.8, 1.5)
    if ebitda < 20000:
        return "institutional_pe", _lerp(ebitda, 10000, 20000, 1.5, 2.5)
    # Caps at $30M
    return "large_pe", _lerp(min(ebitda, 30000), 20000, 30000, 2.5, 3.5)


def calculate_de_risking_premium(business: Business) -> float:
    dd = business.due_diligence
    premium = 0.0
    if dd.revenue_concentration == "low":
        premium += 0.3
    if dd.operator_quality == "strong":
        premium += 0.3
    if business.is_platform and business.platform_scale > 0:
        premium += min(0.6, business.platform_scale * 0.2)
    if len(business.improvements) >= 2:
        premium += 0.2
    if dd.customer_retention >= 90:
        premium += 0.2
    return min(1.5, premium)


PE_FUND_NAMES = [
    "Summit Ridge Partners", "Clearview Capital", "Ironpoint Capital", "Meridian Growth Partners",
    "Cascadia Equity Group", "Blackthorn Capital", "Northstar Capital Partners", "Granite Point Partners",
    "Pinecrest Capital", "Crestline Partners", "Ridgeline Capital", "Timberstone Equity",
]

FAMILY_OFFICE_NAMES = [
    "Thornton Family Office", "Mercer Capital Partners", "Whitfield Holdings", "Ashford Capital Group",
    "Sterling Family Partners", "Kensington Capital", "Hartwick Investments", "Winslow Holdings",
]

STRATEGIC_BUYERS: Dict[str, List[str]] = {
    "agency": ["WPP", "Omnicom", "Publicis Groupe", "Dentsu"],
    "saas": ["Vista Equity", "Thoma Bravo", "Silver Lake", "Salesforce"],
    "homeServices": ["FirstService Corp", "Neighborly", "Rollins", "ServiceMaster"],
    "consumer": ["Procter & Gamble", "Unilever", "Church & Dwight", "Henkel"],
    "industrial": ["Danaher", "Roper Technologies", "ITW", "Parker Hannifin"],
    "b2bServices": ["Constellation Software", "Accenture", "Gartner", "Verisk"],
    "healthcare": ["UnitedHealth", "McKesson", "Cardinal Health", "Amedisys"],
    "restaurant": ["Inspire Brands", "Restaurant Brands Intl", "Yum! Brands", "Dine Brands"],
    "realEstate": ["Brookfield", "CBRE", "JLL", "Colliers"],
    "education": ["Pearson", "Grand Canyon Education", "Bright Horizons", "Chegg"],
    "insurance": ["Acrisure", "Hub International", "Gallagher", "NFP"],
    "autoServices": ["Driven Brands", "Mavis Discount Tire", "Caliber Collision", "Crash Champions"],
    "distribution": ["Watsco", "Pool Corp", "Fastenal", "Grainger"],
    "wealthManagement": ["Focus Financial", "Hightower", "Mercer Advisors", "Carson Group"],
    "environmental": ["Waste Management", "Republic Services", "GFL Environmental", "Clean Harbors"],
}

_STRATEGIC_CHANCE = {
    "individual": 0.0,
    "small_pe": 0.05,
    "lower_middle_pe": 0.15,
    "institutional_pe": 0.25,
    "large_pe": 0.35,
}

_BUYER_TYPES = {
    "individual": ["individual", "individual", "family_office"],
    "small_pe": ["small_pe", "family_office", "small_pe"],
    "lower_middle_pe": ["lower_middle_pe", "lower_middle_pe", "family_office"],
    "institutional_pe": ["institutional_pe", "institutional_pe", "large_pe"],
    "large_pe": ["large_pe", "large_pe", "institutional_pe"],
}

_FUND_SIZES = {
    "family_office": "$50-200M AUM",
    "small_pe": "$100-500M fund",
    "lower_middle_pe": "$500M-2B fund",
    "institutional_pe": "$2-10B fund",
    "large_pe": "$10B+ fund",
}

TIER_DESCRIPTIONS = {
    "individual": "At this size, the buyer pool is limited to individual operators and independent sponsors "
                  "who typically pay lower multiples due to financing constraints.",
    "small_pe": "Small PE funds and family offices are the primary buyers at this level. "
                "Competition is moderate, supporting modest multiple expansion.",
    "lower_middle_pe": "Lower middle market PE funds compete actively for businesses this size. "
                       "Multiple bidders are common, driving premium valuations.",
    "institutional_pe": "Institutional PE firms with significant capital seek platform assets at this EBITDA level. "
                        "Competitive auctions frequently drive multiples to 10x+.",
    "large_pe": "Large-cap PE firms and strategic acquirers aggressively pursue assets of this scale. "
                "Auctions are highly competitive with institutional-grade pricing.",
}

_TIER_LABELS = {
    "individual": "individual buyer",
    "small_pe": "small PE",
    "lower_middle_pe": "lower middle PE",
    "institutional_pe": "institutional PE",
    "large_pe": "large PE",
}


def _pick_buyer_name(buyer_type: str, sector_id: str, rng: RandomSource) -> str:
    if buyer_type == "strategic":
        return rng.pick(STRATEGIC_BUYERS.get(sector_id, STRATEGIC_BUYERS["b2bServices"]))
    if buyer_type == "individual":
        return "Independent Sponsor"
    if buyer_type == "family_office":
        return rng.pick(FAMILY_OFFICE_NAMES)
    return rng.pick(PE_FUND_NAMES)


def _investment_thesis(buyer_type: str, business: Business) -> str:
    sector_name = SECTORS[business.sector_id].name
    margin_pct = f"{business.ebitda_margin * 100:.0f}"
    if buyer_type == "strategic":
        return (f"Seeking to expand {sector_name} capabilities and cross-sell to existing customers. "
                f"At {margin_pct}% margins, synergies are expected to add 200-400 bps within 18 months.")
    if buyer_type == "individual":
        return (f"Experienced operator looking for a {sector_name.lower()} business to run. "
                f"{margin_pct}% EBITDA margins provide stable cash flow for hands-on management.")
    if buyer_type == "family_office":
        return (f"Seeking cash-flowing {sector_name.lower()} assets at {margin_pct}% margins for a long-term hold.")
    if business.is_platform:
        return (f"Platform thesis: consolidate a fragmented {sector_name.lower()} market through programmatic M&A "
                f"from a {margin_pct}% margin base.")
    return (f"Attractive {sector_name.lower()} acquisition at {margin_pct}% EBITDA margins. "
            "Plan to professionalize operations and accelerate organic growth.")


def generate_buyer_profile(business: Business, tier: str, rng: RandomSource) -> BuyerProfile:
    if rng.next() < _STRATEGIC_CHANCE.get(tier, 0.0):
        buyer_type, is_strategic = "strategic", True
    else:
        buyer_type, is_strategic = rng.pick(_BUYER_TYPES.get(tier, _BUYER_TYPES["individual"])), False

    name = _pick_buyer_name(buyer_type, business.sector_id, rng)
    strategic_premium = 0.5 + rng.next() * 1.0 if is_strategic else 0.0

    return BuyerProfile(
        name=name,
        type=buyer_type,
        is_strategic=is_strategic,
        strategic_premium=strategic_premium,
        investment_thesis=_investment_thesis(buyer_type, business),
        fund_size=_FUND_SIZES.get(buyer_type),
    )


def generate_valuation_commentary(
    business: Business,
    tier: str,
    size_premium: float,
    de_risking_premium: float,
    ebitda: float,
    total_multiple: float,
) -> ValuationCommentary:
    ebitda_m = f"{ebitda / 1000:.1f}"
    factors: List[str] = []

    if size_premium > 0:
        factors.append(f"Size premium of +{size_premium:.1f}x reflects institutional buyer demand at ${ebitda_m}M EBITDA")

    if de_risking_premium > 0:
        dd = business.due_diligence
        reasons = []
        if dd.revenue_concentration == "low":
            reasons.append("diversified revenue")
        if dd.operator_quality == "strong":
            reasons.append("strong management")
        if business.is_platform and business.platform_scale > 0:
            reasons.append("platform scale")
        if len(business.improvements) >= 2:
            reasons.append("operational improvements")
        if dd.customer_retention >= 90:
            reasons.append("high retention")
        factors.append(f"De-risking premium of +{de_risking_premium:.1f}x from {', '.join(reasons)}")

    if business.is_platform:
        factors.append("Platform status signals professionalized operations and scalability")

    margin_note = f" ({business.ebitda_margin * 100:.0f}% margins)" if business.ebitda_margin else ""
    summary = (f"At ${ebitda_m}M EBITDA{margin_note}, this attracts {_TIER_LABELS[tier]} attention "
               f"at {total_multiple:.1f}x")

    return ValuationCommentary(summary=summary, buyer_pool_description=TIER_DESCRIPTIONS[tier], factors=factors)
