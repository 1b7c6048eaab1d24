"""
Event Resolver

Maps each event type to a pure reducer ``(state, event, rng) -> (state, impacts)``.
Reducers never mutate their input; magnitude events move revenue or margin
and re-derive EBITDA through the floor. Decision events are resolved
separately by ``resolve_event_choice`` once the player picks an action.
"""

import logging
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Tuple

from config import CONFIG
from events import SECTOR_EVENTS, has_choices
from models import (
    Business,
    EventImpact,
    GameEvent,
    GameState,
    apply_ebitda_floor,
    cap_growth_rate,
    clamp_margin,
    round_half_up,
    with_business,
)
from platforms import get_platform_recession_modifier
from portfolio import release_shared_services
from rng import RandomSource
from sectors import SECTORS

logger = logging.getLogger(__name__)

Reducer = Callable[[GameState, GameEvent, RandomSource], Tuple[GameState, List[EventImpact]]]

CLIENT_CONCENTRATION_MULTIPLIER = {"high": 1.3, "medium": 1.0, "low": 0.7}
EQUITY_GRANT_DILUTION = 0.03  # New shares as a fraction of shares outstanding
KEY_MAN_RETENTION_CHANCE = 0.55
EQUITY_DEMAND_TURNOVER_CHANCE = 0.60
MBO_DECLINE_QUALITY_CHANCE = 0.40


def make_impact(metric: str, before: float, after: float, business: Optional[Business] = None) -> EventImpact:
    delta = after - before
    return EventImpact(
        metric=metric,
        before=before,
        after=after,
        delta=delta,
        delta_percent=delta / before if before else None,
        business_id=business.id if business is not None else None,
        business_name=business.name if business is not None else None,
    )


def scale_revenue(business: Business, factor: float, growth_delta: float = 0.0) -> Tuple[Business, EventImpact]:
    """Move revenue by factor at a constant margin, then re-apply the EBITDA floor."""
    revenue = max(0, round_half_up(business.revenue * factor))
    ebitda, margin = apply_ebitda_floor(
        round_half_up(revenue * business.ebitda_margin), revenue, business.ebitda_margin, business.acquisition_ebitda
    )
    updated = replace(
        business,
        revenue=revenue,
        ebitda=ebitda,
        ebitda_margin=margin,
        peak_revenue=max(business.peak_revenue, revenue),
        peak_ebitda=max(business.peak_ebitda, ebitda),
        organic_growth_rate=cap_growth_rate(business.organic_growth_rate + growth_delta),
    )
    return updated, make_impact("ebitda", business.ebitda, ebitda, business)


def scale_margin(business: Business, factor: float = 1.0, shift: float = 0.0) -> Tuple[Business, EventImpact]:
    """Multiply (or shift) the margin inside the sector band and re-derive EBITDA."""
    margin = clamp_margin(business.ebitda_margin * factor + shift, business.sector_id)
    ebitda, margin = apply_ebitda_floor(
        round_half_up(business.revenue * margin), business.revenue, margin, business.acquisition_ebitda
    )
    updated = replace(business, ebitda=ebitda, ebitda_margin=margin, peak_ebitda=max(business.peak_ebitda, ebitda))
    return updated, make_impact("ebitda", business.ebitda, ebitda, business)


def _update(state: GameState, predicate, transform) -> Tuple[List[Business], List[EventImpact]]:
    businesses = []
    impacts = []
    for b in state.businesses:
        if b.status == "active" and predicate(b):
            b, impact = transform(b)
            impacts.append(impact)
        businesses.append(b)
    return businesses, impacts


def _on_affected(event: GameEvent):
    return lambda b: b.id == event.affected_business_id


def _charge_cash(state: GameState, amount: int) -> Tuple[GameState, EventImpact]:
    """Event costs never push cash below zero."""
    cost = min(amount, max(0, state.cash))
    return replace(state, cash=state.cash - cost), make_impact("cash", state.cash, state.cash - cost)


# --- Global reducers ---

def _bull_market(state, event, rng):
    e = CONFIG.events
    boost = e.bull_boost_min + rng.next() * e.bull_boost_spread
    businesses, impacts = _update(state, lambda b: True, lambda b: scale_revenue(b, 1 + boost))
    return replace(state, businesses=businesses), impacts


def _downturn(state: GameState, severity: float):
    def hit(b):
        modifier = get_platform_recession_modifier(b, state.integrated_platforms)
        return scale_revenue(b, 1 - SECTORS[b.sector_id].recession_sensitivity * severity * modifier)
    return _update(state, lambda b: True, hit)


def _recession(state, event, rng):
    businesses, impacts = _downturn(state, CONFIG.events.recession_factor)
    return replace(state, businesses=businesses), impacts


def _interest_hike(state, event, rng):
    e = CONFIG.events
    hike = e.rate_move_min + rng.next() * e.rate_move_spread
    after = min(e.interest_rate_ceiling, state.interest_rate + hike)
    return replace(state, interest_rate=after), [make_impact("interest_rate", state.interest_rate, after)]


def _interest_cut(state, event, rng):
    e = CONFIG.events
    cut = e.rate_move_min + rng.next() * e.rate_move_spread
    after = max(e.interest_rate_floor, state.interest_rate - cut)
    return replace(state, interest_rate=after), [make_impact("interest_rate", state.interest_rate, after)]


def _inflation(state, event, rng):
    return replace(state, inflation_rounds_remaining=CONFIG.events.inflation_rounds), []


def _credit_tightening(state, event, rng):
    return replace(state, credit_tightening_rounds_remaining=CONFIG.events.credit_tightening_rounds), []


def _financial_crisis(state, event, rng):
    e = CONFIG.events
    businesses, impacts = _downturn(state, e.crisis_factor)
    state = replace(
        state,
        businesses=businesses,
        credit_tightening_rounds_remaining=e.credit_tightening_rounds,
    )
    after = min(e.interest_rate_ceiling, state.interest_rate + e.crisis_rate_shock)
    impacts.append(make_impact("interest_rate", state.interest_rate, after))
    return replace(state, interest_rate=after), impacts


# --- Portfolio reducers ---

def _star_joins(state, event, rng):
    businesses, impacts = _update(state, _on_affected(event), lambda b: scale_revenue(b, 1.12, 0.02))
    return replace(state, businesses=businesses), impacts


def _talent_leaves(state, event, rng):
    businesses, impacts = _update(state, _on_affected(event), lambda b: scale_revenue(b, 0.90, -0.015))
    return replace(state, businesses=businesses), impacts


def _client_signs(state, event, rng):
    boost = 0.08 + rng.next() * 0.04
    businesses, impacts = _update(state, _on_affected(event), lambda b: scale_revenue(b, 1 + boost))
    return replace(state, businesses=businesses), impacts


def _client_churns(state, event, rng):
    base = 0.12 + rng.next() * 0.06

    def churn(b):
        multiplier = CLIENT_CONCENTRATION_MULTIPLIER[SECTORS[b.sector_id].client_concentration]
        return scale_revenue(b, 1 - base * multiplier)

    businesses, impacts = _update(state, _on_affected(event), churn)
    return replace(state, businesses=businesses), impacts


def _breakthrough(state, event, rng):
    businesses, impacts = _update(state, _on_affected(event), lambda b: scale_margin(b, 1.06))
    return replace(state, businesses=businesses), impacts


def _compliance(state, event, rng):
    businesses, impacts = _update(state, _on_affected(event), lambda b: scale_margin(b, 0.92))
    if not impacts:
        return state, impacts
    state, cash_impact = _charge_cash(replace(state, businesses=businesses), CONFIG.events.compliance_cost)
    return state, impacts + [cash_impact]


def find_sector_event(event: GameEvent) -> Optional[Dict]:
    for definition in SECTOR_EVENTS:
        if definition["title"] == event.title and f"_{definition['sector_id']}_" in event.id:
            return definition
    return None


def _sector_event(state, event, rng):
    definition = find_sector_event(event)
    if definition is None:
        return state, []

    effect = definition["ebitda_effect"]
    if isinstance(effect, (tuple, list)):
        effect = rng.next_in_range(effect)
    growth = definition.get("growth_effect", 0.0)

    if definition.get("affects_all"):
        predicate = lambda b: b.sector_id == definition["sector_id"]
    else:
        predicate = _on_affected(event)
    businesses, impacts = _update(state, predicate, lambda b: scale_revenue(b, 1 + effect, growth))
    state = replace(state, businesses=businesses)

    if definition.get("cost_amount"):
        state, cash_impact = _charge_cash(state, definition["cost_amount"])
        impacts.append(cash_impact)
    return state, impacts


def _consolidation_boom(state, event, rng):
    return replace(
        state,
        consolidation_boom_sector_id=event.consolidation_sector_id,
        consolidation_boom_rounds_remaining=CONFIG.events.consolidation_boom_rounds,
    ), []


def _no_op(state, event, rng):
    return state, []


EVENT_REDUCERS: Dict[str, Reducer] = {
    "global_bull_market": _bull_market,
    "global_recession": _recession,
    "global_interest_hike": _interest_hike,
    "global_interest_cut": _interest_cut,
    "global_inflation": _inflation,
    "global_credit_tightening": _credit_tightening,
    "global_financial_crisis": _financial_crisis,
    "global_quiet": _no_op,
    "portfolio_star_joins": _star_joins,
    "portfolio_talent_leaves": _talent_leaves,
    "portfolio_client_signs": _client_signs,
    "portfolio_client_churns": _client_churns,
    "portfolio_breakthrough": _breakthrough,
    "portfolio_compliance": _compliance,
    "sector_event": _sector_event,
    "sector_consolidation_boom": _consolidation_boom,
    # Decision events resolve through resolve_event_choice
    "portfolio_key_man_risk": _no_op,
    "portfolio_earnout_dispute": _no_op,
    "portfolio_supplier_shift": _no_op,
    "portfolio_equity_demand": _no_op,
    "portfolio_seller_note_renego": _no_op,
    "portfolio_mbo_proposal": _no_op,
    "unsolicited_offer": _no_op,
}


def apply_event_effects(state: GameState, event: GameEvent, rng: RandomSource) -> GameState:
    """Run the reducer for event.type and record the event (with impacts) as current_event."""
    reducer = EVENT_REDUCERS.get(event.type, _no_op)
    new_state, impacts = reducer(state, event, rng)
    if event.type != "unsolicited_offer" and impacts:
        event = replace(event, impacts=impacts)
    return replace(new_state, current_event=event)


# --- Sales ---

def complete_sale(state: GameState, business_id: str, price: int) -> Tuple[GameState, int]:
    """
    Sell a business at price; opco debt and earn-outs are paid from proceeds.

    Obligations still carried by the platform's bolt-ons are settled from
    the same proceeds. Returns (new state, net proceeds to the holdco).
    """
    business = state.get_business(business_id)
    if business is None or business.status != "active":
        raise ValueError(f"Business {business_id} is not an active holding")

    bolt_on_ids = set(business.bolt_on_ids)
    payoff = business.total_debt_payoff + sum(
        b.total_debt_payoff for b in state.businesses if b.id in bolt_on_ids
    )
    price = max(0, price)
    net = max(0, price - payoff)
    sold = replace(business, status="sold", exit_price=price, exit_round=state.round)
    businesses = []
    for b in state.businesses:
        if b.id == business_id:
            b = sold
        elif b.id in bolt_on_ids:
            b = replace(b, seller_note_balance=0, bank_debt_balance=0, earnout_remaining=0)
        businesses.append(b)
    state = replace(
        state,
        businesses=businesses,
        exited_businesses=state.exited_businesses + [sold],
        cash=state.cash + net,
        total_exit_proceeds=state.total_exit_proceeds + net,
    )
    return release_shared_services(state), net


# --- Choice handlers ---

def _golden_handcuffs(state, event, business, choice, rng):
    """The retention package keeps the operator most of the time; otherwise quality still slips."""
    if rng.next() < KEY_MAN_RETENTION_CHANCE:
        return state, []
    quality = max(1, business.quality_rating - 1)
    updated = replace(business, quality_rating=quality)
    return with_business(state, updated), [
        make_impact("quality_rating", business.quality_rating, quality, business)
    ]


def _succession_plan(state, event, business, choice, rng):
    updated = replace(business, organic_growth_rate=cap_growth_rate(business.organic_growth_rate - 0.01))
    return with_business(state, updated), []


def _accept_key_man_loss(state, event, business, choice, rng):
    updated, impact = scale_revenue(business, 0.9)
    updated = replace(updated, quality_rating=max(1, business.quality_rating - 1))
    return with_business(state, updated), [impact]


def _settle_earnout(state, event, business, choice, rng):
    updated = replace(business, earnout_remaining=0)
    return with_business(state, updated), [make_impact("earnout_remaining", business.earnout_remaining, 0, business)]


def _fight_earnout(state, event, business, choice, rng):
    legal_cost = round_half_up(business.earnout_remaining * 0.10)
    state, cash_impact = _charge_cash(state, legal_cost)
    won = rng.next() < 0.5
    if won:
        updated = replace(business, earnout_remaining=0)
        return with_business(state, updated), [
            cash_impact, make_impact("earnout_remaining", business.earnout_remaining, 0, business)
        ]
    # Lost: the earn-out stands in full
    return state, [cash_impact]


def _renegotiate_earnout(state, event, business, choice, rng):
    after = round_half_up(business.earnout_remaining * 0.75)
    updated = replace(business, earnout_remaining=after)
    return with_business(state, updated), [
        make_impact("earnout_remaining", business.earnout_remaining, after, business)
    ]


def _absorb_supplier_cost(state, event, business, choice, rng):
    updated, impact = scale_margin(business, shift=-0.03)
    return with_business(state, updated), [impact]


def _switch_supplier(state, event, business, choice, rng):
    updated, impact = scale_margin(business, shift=-0.01)
    return with_business(state, updated), [impact]


def _grant_equity(state, event, business, choice, rng):
    new_shares = round_half_up(state.shares_outstanding * EQUITY_GRANT_DILUTION)
    updated, ebitda_impact = scale_margin(business, shift=0.01)
    updated = replace(updated, organic_growth_rate=cap_growth_rate(business.organic_growth_rate + 0.02))
    state = replace(with_business(state, updated), shares_outstanding=state.shares_outstanding + new_shares)
    return state, [
        make_impact("shares_outstanding", state.shares_outstanding - new_shares, state.shares_outstanding),
        ebitda_impact,
    ]


def _decline_equity(state, event, business, choice, rng):
    """Talent walks more often than not: revenue and margin both slip."""
    if rng.next() >= EQUITY_DEMAND_TURNOVER_CHANCE:
        return state, []
    revenue = round_half_up(business.revenue * 0.94)
    margin = clamp_margin(business.ebitda_margin - 0.02, business.sector_id)
    ebitda, margin = apply_ebitda_floor(
        round_half_up(revenue * margin), revenue, margin, business.acquisition_ebitda
    )
    updated = replace(
        business,
        revenue=revenue,
        ebitda=ebitda,
        ebitda_margin=margin,
        organic_growth_rate=cap_growth_rate(business.organic_growth_rate - 0.015),
    )
    return with_business(state, updated), [make_impact("ebitda", business.ebitda, ebitda, business)]


def _accept_note_renego(state, event, business, choice, rng):
    updated = replace(business, seller_note_balance=0, seller_note_rounds_remaining=0)
    return with_business(state, updated), [
        make_impact("seller_note_balance", business.seller_note_balance, 0, business)
    ]


def _decline_note_renego(state, event, business, choice, rng):
    # The note keeps its original terms
    return state, []


def _sell_to_bidder(state, event, business, choice, rng):
    before = state.cash
    state, _ = complete_sale(state, business.id, event.offer_amount or 0)
    return state, [make_impact("cash", before, state.cash)]


def _decline_mbo(state, event, business, choice, rng):
    if rng.next() < MBO_DECLINE_QUALITY_CHANCE:
        # Management disengages
        quality = max(1, business.quality_rating - 1)
        updated, impact = scale_margin(replace(business, quality_rating=quality), shift=-0.015)
        return with_business(state, updated), [impact]
    updated = replace(business, organic_growth_rate=cap_growth_rate(business.organic_growth_rate - 0.02))
    return with_business(state, updated), [
        make_impact("organic_growth_rate", business.organic_growth_rate, updated.organic_growth_rate, business)
    ]


def _decline_offer(state, event, business, choice, rng):
    return state, []


CHOICE_HANDLERS = {
    "golden_handcuffs": _golden_handcuffs,
    "succession_plan": _succession_plan,
    "accept_key_man_loss": _accept_key_man_loss,
    "settle_earnout": _settle_earnout,
    "fight_earnout": _fight_earnout,
    "renegotiate_earnout": _renegotiate_earnout,
    "absorb_supplier_cost": _absorb_supplier_cost,
    "switch_supplier": _switch_supplier,
    "grant_equity": _grant_equity,
    "decline_equity": _decline_equity,
    "accept_note_renego": _accept_note_renego,
    "decline_note_renego": _decline_note_renego,
    "accept_mbo": _sell_to_bidder,
    "decline_mbo": _decline_mbo,
    "accept_offer": _sell_to_bidder,
    "decline_offer": _decline_offer,
}


def resolve_event_choice(state: GameState, action: str, rng: RandomSource) -> GameState:
    """
    Apply the player's decision on the pending choice event.

    Raises:
        ValueError: no pending decision, unknown action, or not enough cash
    """
    event = state.current_event
    if not has_choices(event):
        raise ValueError("No pending event decision")

    choice = next((c for c in event.choices if c.action == action), None)
    if choice is None:
        raise ValueError(f"Invalid choice '{action}' for event {event.type}")

    business = state.get_business(event.affected_business_id) if event.affected_business_id else None
    if business is None or business.status != "active":
        raise ValueError(f"Business {event.affected_business_id} is no longer active")

    if choice.cost > state.cash:
        raise ValueError(f"Insufficient cash: need ${choice.cost}K, have ${state.cash}K")

    impacts: List[EventImpact] = []
    if choice.cost > 0:
        impacts.append(make_impact("cash", state.cash, state.cash - choice.cost))
        state = replace(state, cash=state.cash - choice.cost)

    state, handler_impacts = CHOICE_HANDLERS[action](state, event, business, choice, rng)
    logger.debug(f"Resolved {event.type} with {action}")
    resolved = replace(event, choices=[], impacts=list(event.impacts) + impacts + handler_impacts)
    return replace(state, current_event=resolved)
