"""
Event Generator

Event catalogs and the weighted per-round roll. Tables are tried in a
fixed order (global, portfolio, sector, consolidation boom, unsolicited
offer) and the first hit wins; otherwise the year is quiet. Generation
never mutates state; effects are applied by event_effects.
"""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np

from buyers import generate_buyer_profile
from config import CONFIG
from models import Business, EventChoice, GameEvent, GameState, get_active_businesses, round_half_up
from portfolio import calculate_shared_services_benefits
from rng import RandomSource
from valuation import calculate_exit_valuation

logger = logging.getLogger(__name__)


GLOBAL_EVENTS: List[Dict] = [
    {
        "type": "global_bull_market",
        "probability": 0.10,
        "title": "Bull Market",
        "description": "Strong economy lifts demand across the board.",
        "effect": "Revenue +5-15% for all businesses",
        "tip": "Bull markets are the time to sell, not buy. Multiples are richest when everyone is optimistic.",
    },
    {
        "type": "global_recession",
        "probability": 0.07,
        "title": "Recession",
        "description": "Economic downturn hits consumer and business spending.",
        "effect": "Revenue falls with each sector's recession sensitivity",
        "tip": "Recessions are when disciplined allocators find their best deals.",
    },
    {
        "type": "global_interest_hike",
        "probability": 0.08,
        "title": "Interest Rate Hike",
        "description": "The central bank raises rates to fight inflation.",
        "effect": "Interest rate +1-2%",
        "tip": "Floating-rate debt gets expensive fast. Pay it down when rates rise.",
    },
    {
        "type": "global_interest_cut",
        "probability": 0.08,
        "title": "Interest Rate Cut",
        "description": "The central bank cuts rates to stimulate growth.",
        "effect": "Interest rate -1-2%",
        "tip": "Cheap debt is tempting. Borrow only against cash flow you can count on.",
    },
    {
        "type": "global_inflation",
        "probability": 0.05,
        "title": "Inflation Spike",
        "description": "Input costs and wages rise faster than prices.",
        "effect": "Organic growth -3% for 2 years",
        "tip": "Businesses with pricing power hold up best when costs climb.",
    },
    {
        "type": "global_credit_tightening",
        "probability": 0.05,
        "title": "Credit Tightening",
        "description": "Lenders pull back and debt markets freeze.",
        "effect": "Bank debt unavailable for 2 years",
        "tip": "Fortress balance sheets let you buy when others cannot borrow.",
    },
    {
        "type": "global_financial_crisis",
        "probability": 0.02,
        "title": "Financial Crisis",
        "description": "A systemic shock ripples through credit and equity markets.",
        "effect": "Revenue falls sharply, rates +2%, credit frozen for 2 years",
        "tip": "Survive first. The allocators who keep dry powder through a crisis compound the fastest after it.",
    },
]

PORTFOLIO_EVENTS: List[Dict] = [
    {
        "type": "portfolio_star_joins",
        "probability": 0.06,
        "title": "Star Hire",
        "description": "A top performer joins one of your businesses.",
        "effect": "Revenue +12%, growth +2%",
    },
    {
        "type": "portfolio_talent_leaves",
        "probability": 0.06,
        "title": "Key Talent Departs",
        "description": "A senior leader leaves for a competitor.",
        "effect": "Revenue -10%, growth -1.5%",
        "tip": "Retention programs cost less than replacing the people who carry client relationships.",
    },
    {
        "type": "portfolio_client_signs",
        "probability": 0.07,
        "title": "Major Client Win",
        "description": "A large new customer signs a multi-year contract.",
        "effect": "Revenue +8-12%",
    },
    {
        "type": "portfolio_client_churns",
        "probability": 0.06,
        "title": "Client Loss",
        "description": "A significant customer walks away.",
        "effect": "Revenue -12-18%, worse with concentrated client bases",
        "tip": "Customer concentration is the risk you underwrite at acquisition and feel at renewal.",
    },
    {
        "type": "portfolio_breakthrough",
        "probability": 0.04,
        "title": "Operational Breakthrough",
        "description": "A process change cuts costs without hurting service.",
        "effect": "Margin +6%",
    },
    {
        "type": "portfolio_compliance",
        "probability": 0.04,
        "title": "Compliance Issue",
        "description": "A regulatory finding requires remediation.",
        "effect": "Margin -8% and up to $500K in fines",
    },
    {
        "type": "portfolio_key_man_risk",
        "probability": 0.04,
        "title": "Key-Man Risk",
        "description": "The operator who built the business is being courted elsewhere.",
        "effect": "Choose how to protect the business",
        "tip": "Owner-dependent businesses are worth less. Build the bench before you need it.",
    },
    {
        "type": "portfolio_earnout_dispute",
        "probability": 0.05,
        "title": "Earn-Out Dispute",
        "description": "The seller disputes how the earn-out target was measured.",
        "effect": "Settle, fight or renegotiate",
    },
    {
        "type": "portfolio_supplier_shift",
        "probability": 0.04,
        "title": "Supplier Price Increase",
        "description": "A critical supplier raises prices sharply.",
        "effect": "Absorb the cost or pay to switch",
    },
    {
        "type": "portfolio_equity_demand",
        "probability": 0.04,
        "title": "Management Equity Demand",
        "description": "A strong management team asks for a piece of the holdco.",
        "effect": "Grant equity or risk disengagement",
        "tip": "Aligned managers compound value. Dilution is cheap when it buys ownership mentality.",
    },
    {
        "type": "portfolio_seller_note_renego",
        "probability": 0.04,
        "title": "Seller Note Renegotiation",
        "description": "The former owner offers a discount to be paid out early.",
        "effect": "Pay 90% now or face a higher rate",
    },
    {
        "type": "portfolio_mbo_proposal",
        "probability": 0.03,
        "title": "Management Buyout Proposal",
        "description": "The management team wants to buy the business.",
        "effect": "Sell to management at a modest discount or decline",
        "tip": "Selling to the people who run it can be the cleanest exit you will ever get.",
    },
]

SECTOR_EVENTS: List[Dict] = [
    {"sector_id": "agency", "title": "AI Disrupts Creative Work", "probability": 0.03,
     "description": "Generative tools compress project fees.", "effect": "Revenue -5-12%, growth -1%",
     "ebitda_effect": (-0.12, -0.05), "growth_effect": -0.01, "affects_all": True},
    {"sector_id": "agency", "title": "Agency of Record Win", "probability": 0.03,
     "description": "A flagship brand consolidates its spend with you.", "effect": "Revenue +10%",
     "ebitda_effect": 0.10, "affects_all": False},
    {"sector_id": "saas", "title": "Platform Shift", "probability": 0.03,
     "description": "Customers migrate to a new platform standard.", "effect": "Revenue +5-10%, growth +1%",
     "ebitda_effect": (0.05, 0.10), "growth_effect": 0.01, "affects_all": True},
    {"sector_id": "saas", "title": "Security Breach", "probability": 0.02,
     "description": "A breach forces remediation and credits.", "effect": "Revenue -8%, $200K remediation",
     "ebitda_effect": -0.08, "cost_amount": 200, "affects_all": False},
    {"sector_id": "homeServices", "title": "Storm Season", "probability": 0.04,
     "description": "Severe weather drives emergency demand.", "effect": "Revenue +6-12%",
     "ebitda_effect": (0.06, 0.12), "affects_all": True},
    {"sector_id": "consumer", "title": "Viral Moment", "probability": 0.03,
     "description": "A product goes viral on social media.", "effect": "Revenue +15%",
     "ebitda_effect": 0.15, "affects_all": False},
    {"sector_id": "consumer", "title": "Retailer Delisting", "probability": 0.03,
     "description": "A big-box retailer drops the line.", "effect": "Revenue -12%",
     "ebitda_effect": -0.12, "affects_all": False},
    {"sector_id": "industrial", "title": "Reshoring Wave", "probability": 0.03,
     "description": "Manufacturers bring production home.", "effect": "Revenue +5-10%, growth +1%",
     "ebitda_effect": (0.05, 0.10), "growth_effect": 0.01, "affects_all": True},
    {"sector_id": "b2bServices", "title": "Outsourcing Boom", "probability": 0.03,
     "description": "Companies push non-core work to vendors.", "effect": "Revenue +6%",
     "ebitda_effect": 0.06, "affects_all": True},
    {"sector_id": "healthcare", "title": "Reimbursement Cut", "probability": 0.03,
     "description": "Payers cut reimbursement rates.", "effect": "Revenue -5-10%",
     "ebitda_effect": (-0.10, -0.05), "affects_all": True},
    {"sector_id": "restaurant", "title": "Food Cost Spike", "probability": 0.04,
     "description": "Commodity prices jump.", "effect": "Revenue -6-10%",
     "ebitda_effect": (-0.10, -0.06), "affects_all": True},
    {"sector_id": "realEstate", "title": "Cap Rate Compression", "probability": 0.03,
     "description": "Investors chase yield into real assets.", "effect": "Revenue +5%",
     "ebitda_effect": 0.05, "affects_all": True},
    {"sector_id": "education", "title": "Enrollment Surge", "probability": 0.03,
     "description": "Demand for retraining spikes.", "effect": "Revenue +8%, growth +1%",
     "ebitda_effect": 0.08, "growth_effect": 0.01, "affects_all": True},
    {"sector_id": "insurance", "title": "Hard Market", "probability": 0.04,
     "description": "Premiums rise and commissions follow.", "effect": "Revenue +6-10%",
     "ebitda_effect": (0.06, 0.10), "affects_all": True},
    {"sector_id": "autoServices", "title": "EV Adoption Shift", "probability": 0.03,
     "description": "Electric vehicles need less routine maintenance.", "effect": "Revenue -5%, growth -1%",
     "ebitda_effect": -0.05, "growth_effect": -0.01, "affects_all": True},
    {"sector_id": "distribution", "title": "Supply Chain Snarl", "probability": 0.03,
     "description": "Shipping delays squeeze volumes.", "effect": "Revenue -8%",
     "ebitda_effect": -0.08, "affects_all": True},
    {"sector_id": "wealthManagement", "title": "Market Rally", "probability": 0.04,
     "description": "Rising markets lift assets under management.", "effect": "Revenue +8-12%",
     "ebitda_effect": (0.08, 0.12), "affects_all": True},
    {"sector_id": "environmental", "title": "New Environmental Rules", "probability": 0.03,
     "description": "Stricter regulation expands the addressable market.", "effect": "Revenue +7%, $150K permits",
     "ebitda_effect": 0.07, "cost_amount": 150, "affects_all": False},
]

# Choice menus for decision events: (label, action, cost key, variant)
EVENT_CHOICES: Dict[str, List[Dict]] = {
    "portfolio_key_man_risk": [
        {"label": "Golden handcuffs (15% of EBITDA)", "action": "golden_handcuffs", "variant": "positive"},
        {"label": "Fund a succession plan (10% of EBITDA)", "action": "succession_plan", "variant": "neutral"},
        {"label": "Accept the risk", "action": "accept_key_man_loss", "variant": "negative"},
    ],
    "portfolio_earnout_dispute": [
        {"label": "Settle at 50%", "action": "settle_earnout", "variant": "neutral"},
        {"label": "Fight it in court", "action": "fight_earnout", "variant": "negative"},
        {"label": "Renegotiate down 25%", "action": "renegotiate_earnout", "variant": "positive"},
    ],
    "portfolio_supplier_shift": [
        {"label": "Absorb the increase", "action": "absorb_supplier_cost", "variant": "negative"},
        {"label": "Switch suppliers (2% of revenue)", "action": "switch_supplier", "variant": "neutral"},
    ],
    "portfolio_equity_demand": [
        {"label": "Grant equity", "action": "grant_equity", "variant": "positive"},
        {"label": "Decline", "action": "decline_equity", "variant": "negative"},
    ],
    "portfolio_seller_note_renego": [
        {"label": "Pay 90% now", "action": "accept_note_renego", "variant": "positive"},
        {"label": "Keep the note", "action": "decline_note_renego", "variant": "neutral"},
    ],
    "portfolio_mbo_proposal": [
        {"label": "Sell to management", "action": "accept_mbo", "variant": "positive"},
        {"label": "Decline", "action": "decline_mbo", "variant": "negative"},
    ],
    "unsolicited_offer": [
        {"label": "Accept offer", "action": "accept_offer", "variant": "positive"},
        {"label": "Decline", "action": "decline_offer", "variant": "neutral"},
    ],
}


def has_choices(event: Optional[GameEvent]) -> bool:
    return event is not None and len(event.choices) > 0


def _roll_table(probabilities: Sequence[float], roll: float) -> Optional[int]:
    """Index of the first entry whose cumulative probability exceeds roll."""
    if len(probabilities) == 0:
        return None
    cumulative = np.minimum(1.0, np.cumsum(probabilities))
    idx = int(np.searchsorted(cumulative, roll, side="right"))
    return idx if idx < len(probabilities) else None


def _recently_hit(state: GameState, event_type: str, business_id: Optional[str] = None) -> bool:
    cooldown = CONFIG.events.cooldown_rounds
    for round_number, logged_type, logged_business in state.event_log:
        if logged_type != event_type or state.round - round_number >= cooldown:
            continue
        if business_id is None or logged_business == business_id:
            return True
    return False


def _eligible_targets(state: GameState, event_type: str, active: List[Business]) -> List[Business]:
    """Businesses a portfolio event may land on, after predicates and cooldowns."""
    if event_type == "portfolio_earnout_dispute":
        candidates = [b for b in active if b.earnout_remaining > 0]
    elif event_type == "portfolio_seller_note_renego":
        candidates = [b for b in active if b.seller_note_balance > 0]
    elif event_type == "portfolio_mbo_proposal":
        min_years = CONFIG.events.mbo_min_years_held
        candidates = [b for b in active if state.round - b.acquisition_round >= min_years]
    elif event_type == "portfolio_equity_demand":
        candidates = active if len(active) >= 2 else []
    else:
        candidates = active
    return [b for b in candidates if not _recently_hit(state, event_type, b.id)]


def _make_choices(event_type: str, business: Optional[Business]) -> List[EventChoice]:
    choices = []
    for option in EVENT_CHOICES.get(event_type, []):
        cost = 0
        if business is not None:
            if option["action"] == "golden_handcuffs":
                cost = round_half_up(abs(business.ebitda) * 0.15)
            elif option["action"] == "succession_plan":
                cost = round_half_up(abs(business.ebitda) * 0.10)
            elif option["action"] == "switch_supplier":
                cost = round_half_up(business.revenue * 0.02)
            elif option["action"] == "settle_earnout":
                cost = round_half_up(business.earnout_remaining * 0.5)
            elif option["action"] == "accept_note_renego":
                cost = round_half_up(business.seller_note_balance * 0.9)
        choices.append(EventChoice(label=option["label"], action=option["action"], cost=cost, variant=option["variant"]))
    return choices


def _from_definition(state: GameState, definition: Dict, event_type: str, business: Optional[Business]) -> GameEvent:
    suffix = f"_{business.id}" if business is not None else ""
    return GameEvent(
        id=f"event_{state.round}_{event_type}{suffix}",
        type=event_type,
        title=definition["title"],
        description=definition["description"],
        effect=definition.get("effect", ""),
        tip=definition.get("tip"),
        affected_business_id=business.id if business is not None else None,
        choices=_make_choices(event_type, business),
    )


def _mbo_event(state: GameState, business: Business, definition: Dict) -> GameEvent:
    valuation = calculate_exit_valuation(business, state.round, integrated_platforms=state.integrated_platforms)
    multiple = max(CONFIG.valuation.multiple_floor, valuation.total_multiple * CONFIG.events.mbo_discount)
    offer = round_half_up(max(0, business.ebitda) * multiple)
    event = _from_definition(state, definition, "portfolio_mbo_proposal", business)
    event.offer_amount = offer
    event.offer_multiple = multiple
    event.buyer_name = f"{business.name} management team"
    event.description = (f"The management team of {business.name} offers ${offer:,}K "
                         f"({multiple:.1f}x EBITDA) to buy the business.")
    return event


def _roll_global(state: GameState, rng: RandomSource) -> Optional[GameEvent]:
    probabilities = []
    for definition in GLOBAL_EVENTS:
        p = definition["probability"]
        if definition["type"] == "global_financial_crisis":
            already = any(t == "global_financial_crisis" for _, t, _ in state.event_log)
            if already or state.round < CONFIG.events.crisis_min_round:
                p = 0.0
        probabilities.append(p)

    idx = _roll_table(probabilities, rng.next())
    if idx is None:
        return None
    definition = GLOBAL_EVENTS[idx]
    return _from_definition(state, definition, definition["type"], None)


def _roll_portfolio(state: GameState, active: List[Business], rng: RandomSource) -> Optional[GameEvent]:
    benefits = calculate_shared_services_benefits(state)
    probabilities = []
    targets = []
    for definition in PORTFOLIO_EVENTS:
        eligible = _eligible_targets(state, definition["type"], active)
        p = definition["probability"] if eligible else 0.0
        if definition["type"] == "portfolio_talent_leaves":
            p *= max(0.0, 1 - benefits.talent_retention_bonus)
        elif definition["type"] == "portfolio_star_joins":
            p *= 1 + benefits.talent_gain_bonus
        probabilities.append(p)
        targets.append(eligible)

    idx = _roll_table(probabilities, rng.next())
    if idx is None:
        return None
    definition = PORTFOLIO_EVENTS[idx]
    business = rng.pick(targets[idx])
    if definition["type"] == "portfolio_mbo_proposal":
        return _mbo_event(state, business, definition)
    return _from_definition(state, definition, definition["type"], business)


def _roll_sector(state: GameState, active: List[Business], rng: RandomSource) -> Optional[GameEvent]:
    owned = {b.sector_id for b in active}
    applicable = [e for e in SECTOR_EVENTS if e["sector_id"] in owned]
    idx = _roll_table([e["probability"] for e in applicable], rng.next())
    if idx is None:
        return None
    definition = applicable[idx]
    business = None
    if not definition.get("affects_all"):
        business = rng.pick([b for b in active if b.sector_id == definition["sector_id"]])
    slug = definition["title"].replace(" ", "_")
    return GameEvent(
        id=f"event_{state.round}_{definition['sector_id']}_{slug}",
        type="sector_event",
        title=definition["title"],
        description=definition["description"],
        effect=definition["effect"],
        tip=definition.get("tip"),
        affected_business_id=business.id if business is not None else None,
    )


def _roll_consolidation_boom(state: GameState, active: List[Business], rng: RandomSource) -> Optional[GameEvent]:
    e = CONFIG.events
    if len(active) < e.consolidation_boom_min_opcos or state.consolidation_boom_rounds_remaining > 0:
        return None
    if rng.next() >= e.consolidation_boom_probability:
        return None
    sector_id = rng.pick(sorted({b.sector_id for b in active}))
    return GameEvent(
        id=f"event_{state.round}_consolidation_boom_{sector_id}",
        type="sector_consolidation_boom",
        title="Consolidation Boom",
        description=f"Buyers are racing to roll up {sector_id}. Deal prices in the sector jump.",
        effect=f"Deal prices +{e.consolidation_boom_premium:.0%} in this sector for {e.consolidation_boom_rounds} years",
        tip="When everyone wants to buy, be a seller.",
        consolidation_sector_id=sector_id,
    )


def _roll_unsolicited_offer(state: GameState, active: List[Business], rng: RandomSource) -> Optional[GameEvent]:
    e = CONFIG.events
    offer_chance = 1 - e.unsolicited_offer_base ** len(active)
    if rng.next() >= offer_chance:
        return None

    business = rng.pick(active)
    valuation = calculate_exit_valuation(business, state.round, integrated_platforms=state.integrated_platforms)
    buyer = generate_buyer_profile(business, valuation.buyer_pool_tier, rng)

    multiple = valuation.total_multiple
    if buyer.is_strategic:
        multiple += buyer.strategic_premium
    multiple *= e.offer_variance_min + rng.next() * e.offer_variance_spread
    multiple = max(CONFIG.valuation.multiple_floor, multiple)
    offer = round_half_up(max(0, business.ebitda) * multiple)

    label = f"Strategic acquirer {buyer.name}" if buyer.is_strategic else buyer.name
    return GameEvent(
        id=f"event_{state.round}_unsolicited_{business.id}",
        type="unsolicited_offer",
        title="Unsolicited Acquisition Offer",
        description=(f"{label} has approached you with an offer to acquire {business.name} "
                     f"for ${offer:,}K ({multiple:.1f}x EBITDA)."),
        effect="Accept to sell immediately, or decline to keep the business",
        tip="The best holdcos know when to sell. If you can redeploy the capital at higher returns, consider it.",
        affected_business_id=business.id,
        choices=_make_choices("unsolicited_offer", business),
        offer_amount=offer,
        offer_multiple=multiple,
        buyer_name=buyer.name,
    )


def quiet_year(round_number: int) -> GameEvent:
    return GameEvent(
        id=f"event_{round_number}_quiet",
        type="global_quiet",
        title="Quiet Year",
        description="Markets are stable. Business as usual.",
        effect="No special effects this year",
    )


def generate_event(state: GameState, rng: RandomSource) -> GameEvent:
    """
    Roll this round's event.

    Always returns an event; a quiet year when nothing else fires.
    """
    active = get_active_businesses(state)

    event = _roll_global(state, rng)
    if event is None and active:
        event = _roll_portfolio(state, active, rng)
    if event is None and active:
        event = _roll_sector(state, active, rng)
    if event is None and active:
        event = _roll_consolidation_boom(state, active, rng)
    if event is None and active:
        event = _roll_unsolicited_offer(state, active, rng)
    if event is None:
        event = quiet_year(state.round)

    logger.debug(f"Round {state.round}: generated {event.type} ({event.id})")
    return event
