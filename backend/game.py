"""
Holdco Game Orchestrator

Setup, player actions and the fixed per-round pipeline. Every action is a
pure function ``(state, ...) -> state`` that raises ValueError when the
move is not allowed; ``HoldcoGame`` holds the live state and supplies the
random streams for each round.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from buyers import calculate_size_tier_premium
from config import CONFIG
from deals import Deal, DealStructure, generate_business, generate_deal_pipeline, generate_deal_structures
from distress import get_distress_restrictions
from event_effects import apply_event_effects, complete_sale, resolve_event_choice, scale_margin, scale_revenue
from events import generate_event, has_choices
from growth import apply_organic_growth, calculate_integration_growth_penalty
from ipo import (
    calculate_share_funded_terms,
    can_share_funded_deal,
    check_ipo_eligibility,
    execute_ipo,
    process_earnings_result,
)
from metrics import (
    calculate_annual_fcf,
    calculate_deductible_costs,
    calculate_earnout_payment,
    calculate_holdco_debt_service,
    calculate_metrics,
    calculate_opco_debt_service,
    earnout_expired,
    record_historical_metrics,
)
from models import (
    ActiveTurnaround,
    Business,
    GameState,
    Improvement,
    SharedService,
    cap_growth_rate,
    get_active_businesses,
    round_half_up,
    with_business,
)
from platforms import calculate_integration_cost, check_platform_eligibility, forge_platform, get_recipe_by_id
from portfolio import (
    calculate_diversification_bonus,
    calculate_ma_sourcing_cost,
    calculate_sector_focus_bonus,
    calculate_shared_services_benefits,
    calculate_shared_services_cost,
    get_concentration_count,
    get_focus_group_counts,
    release_shared_services,
)
from rng import AmbientRng, RandomSource, SeededRng, create_rng_streams, derive_round_seed, generate_random_seed
from rollups import (
    calculate_multiple_expansion,
    calculate_synergies,
    determine_integration_outcome,
    get_size_ratio_tier,
    get_sub_type_affinity,
)
from sectors import (
    IMPROVEMENT_EFFECTS,
    MAX_ACTIVE_SHARED_SERVICES,
    MIN_OPCOS_FOR_SHARED_SERVICES,
    SECTORS,
    SHARED_SERVICES_CONFIG,
)
from tax import calculate_portfolio_tax
from turnarounds import (
    calculate_turnaround_annual_cost,
    calculate_turnaround_cost,
    can_unlock_tier,
    get_eligible_programs,
    get_program_by_id,
    get_quality_ceiling,
    get_quality_improvement_chance,
    get_turnaround_duration,
    get_turnaround_tier_unlock_cost,
    resolve_turnaround,
)
from valuation import calculate_exit_valuation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DifficultySettings:
    label: str
    description: str
    initial_cash: int
    founder_shares: int
    total_shares: int
    starting_debt: int
    starting_ebitda: int
    starting_multiple_cap: Optional[float]
    starting_quality: int
    leaderboard_multiplier: float


@dataclass(frozen=True)
class DurationSettings:
    label: str
    rounds: int


DIFFICULTY_CONFIG: Dict[str, DifficultySettings] = {
    "easy": DifficultySettings(
        label="Easy: Institutional Fund",
        description="$20M raised from institutional investors. Full control, no debt.",
        initial_cash=20000,
        founder_shares=800,
        total_shares=1000,
        starting_debt=0,
        starting_ebitda=1000,
        starting_multiple_cap=None,
        starting_quality=3,
        leaderboard_multiplier=1.0,
    ),
    "normal": DifficultySettings(
        label="Hard: Self-Funded Search",
        description="$5M of your own money plus a $3M bank loan. Every dollar counts.",
        initial_cash=5000,
        founder_shares=1000,
        total_shares=1000,
        starting_debt=3000,
        starting_ebitda=800,
        starting_multiple_cap=4.0,
        starting_quality=3,
        leaderboard_multiplier=1.15,
    ),
}

DURATION_CONFIG: Dict[str, DurationSettings] = {
    "standard": DurationSettings("Full Game (20 Years)", 20),
    "quick": DurationSettings("Quick Play (10 Years)", 10),
}

STARTING_INTEREST_RATE = 0.07
MA_SOURCING_UPGRADE_COST = {1: 800, 2: 1200, 3: 1600}
MAX_ACQUISITIONS_PER_ROUND = {0: 2, 1: 3, 2: 4, 3: 4}
FAILED_INTEGRATION_COST_FRACTION = 0.07  # Of the acquired EBITDA
MERGER_COST_FRACTION = 0.15  # Of the smaller business's EBITDA
FOUNDER_OWNERSHIP_FLOOR = 0.51
EMERGENCY_EQUITY_DISCOUNT = 0.5


# --- Setup ---

def create_starting_business(
    sector_id: str,
    target_ebitda: int,
    rng: RandomSource,
    multiple_cap: Optional[float] = None,
    quality: int = 3,
) -> Business:
    """Seed business bought at the sector's average multiple, optionally capped."""
    sector = SECTORS[sector_id]
    generated = generate_business(sector_id, 1, rng, business_id="biz_start", force_quality=quality)
    multiple = min(multiple_cap, sector.average_multiple) if multiple_cap else sector.average_multiple
    price = round_half_up(target_ebitda * multiple)
    revenue = round_half_up(target_ebitda / generated.ebitda_margin)
    return replace(
        generated,
        acquisition_round=0,
        revenue=revenue,
        ebitda=target_ebitda,
        peak_revenue=revenue,
        peak_ebitda=target_ebitda,
        acquisition_price=price,
        acquisition_ebitda=target_ebitda,
        acquisition_multiple=multiple,
        acquisition_revenue=revenue,
        acquisition_size_tier_premium=calculate_size_tier_premium(target_ebitda)[1],
        integration_rounds_remaining=0,
    )


def new_game(
    holdco_name: str = "Holdco",
    starting_sector: str = "agency",
    difficulty: str = "easy",
    duration: str = "standard",
    seed: Optional[int] = None,
    rng: Optional[RandomSource] = None,
) -> GameState:
    """
    Build the opening state: one seed business, the difficulty's capital stack.

    Raises:
        ValueError: unknown difficulty, duration or sector
    """
    if difficulty not in DIFFICULTY_CONFIG:
        raise ValueError(f"Unknown difficulty: {difficulty}")
    if duration not in DURATION_CONFIG:
        raise ValueError(f"Unknown duration: {duration}")
    if starting_sector not in SECTORS:
        raise ValueError(f"Unknown sector: {starting_sector}")

    settings = DIFFICULTY_CONFIG[difficulty]
    max_rounds = DURATION_CONFIG[duration].rounds
    if rng is None:
        rng = SeededRng(derive_round_seed(seed, 0)) if seed is not None else AmbientRng()

    business = create_starting_business(
        starting_sector, settings.starting_ebitda, rng, settings.starting_multiple_cap, settings.starting_quality
    )

    loan_rounds = 0
    if settings.starting_debt > 0:
        loan_rounds = max_rounds if duration == "quick" else max(4, -(-max_rounds // 2))

    return GameState(
        holdco_name=holdco_name,
        difficulty=difficulty,
        duration=duration,
        seed=seed,
        cash=settings.initial_cash - business.acquisition_price,
        total_debt=settings.starting_debt,
        holdco_loan_rounds_remaining=loan_rounds,
        interest_rate=STARTING_INTEREST_RATE,
        round=1,
        max_rounds=max_rounds,
        businesses=[business],
        shared_services=[
            SharedService(type=key, name=cfg["name"], unlock_cost=cfg["unlock_cost"], annual_cost=cfg["annual_cost"])
            for key, cfg in SHARED_SERVICES_CONFIG.items()
        ],
        shares_outstanding=settings.total_shares,
        founder_shares=settings.founder_shares,
        initial_raise=settings.initial_cash,
        total_invested_capital=business.acquisition_price,
    )


# --- Guards ---

def _require_active(state: GameState, business_id: str) -> Business:
    business = state.get_business(business_id)
    if business is None or business.status != "active":
        raise ValueError(f"Unknown or inactive business: {business_id}")
    return business


def _require_cash(state: GameState, amount: int) -> None:
    if amount > state.cash:
        raise ValueError(f"Insufficient cash: need ${amount}K, have ${state.cash}K")


def _require_not_over(state: GameState) -> None:
    if state.is_game_over:
        raise ValueError("Game is over")


def _restrictions(state: GameState):
    return get_distress_restrictions(calculate_metrics(state).distress_level)


def _log_action(state: GameState, action_type: str, **details: Any) -> GameState:
    entry = {"type": action_type, "round": state.round, **details}
    return replace(state, actions_this_round=state.actions_this_round + [entry])


def _acquisitions_this_round(state: GameState) -> int:
    return sum(1 for a in state.actions_this_round if a["type"] in ("acquire", "acquire_tuck_in"))


# --- Acquisitions and roll-ups ---

def get_deal_price(state: GameState, deal: Deal) -> int:
    """Asking price, with the consolidation-boom premium in the hot sector."""
    if state.consolidation_boom_sector_id == deal.business.sector_id and state.consolidation_boom_rounds_remaining > 0:
        return round_half_up(deal.asking_price * (1 + CONFIG.events.consolidation_boom_premium))
    return deal.asking_price


def get_deal_structures(state: GameState, deal: Deal) -> List[DealStructure]:
    restrictions = _restrictions(state)
    return generate_deal_structures(
        deal,
        get_deal_price(state, deal),
        state.cash,
        state.interest_rate,
        credit_tightening=state.credit_tightening_rounds_remaining > 0,
        max_rounds=state.max_rounds,
        no_new_debt=not restrictions.can_take_debt,
    )


def _financing_fields(structure: DealStructure) -> Dict[str, Any]:
    return {
        "seller_note_balance": structure.seller_note_amount,
        "seller_note_rate": structure.seller_note_rate,
        "seller_note_rounds_remaining": structure.seller_note_rounds,
        "bank_debt_balance": structure.bank_debt_amount,
        "bank_debt_rate": structure.bank_debt_rate,
        "bank_debt_rounds_remaining": structure.bank_debt_rounds,
        "earnout_remaining": structure.earnout_amount,
        "earnout_target": structure.earnout_target,
    }


def acquire_business(
    state: GameState,
    deal: Deal,
    structure_type: str,
    rng: RandomSource,
    target_platform_id: Optional[str] = None,
) -> GameState:
    """
    Buy a deal outright or tuck it into an existing platform.

    Raises:
        ValueError: distress blocks acquisitions, the per-round limit is hit,
            the structure is unavailable, or cash is short
    """
    _require_not_over(state)
    if state.requires_restructuring:
        raise ValueError("No acquisitions during restructuring")
    if not _restrictions(state).can_acquire:
        raise ValueError("Covenant breach: acquisitions are blocked")
    if _acquisitions_this_round(state) >= MAX_ACQUISITIONS_PER_ROUND[state.ma_sourcing_tier]:
        raise ValueError("Acquisition limit reached for this round")
    if any(b.id == deal.business.id for b in state.businesses + state.exited_businesses):
        raise ValueError(f"Deal {deal.id} has already been acquired")

    structure = next((s for s in get_deal_structures(state, deal) if s.type == structure_type), None)
    if structure is None:
        raise ValueError(f"Deal structure '{structure_type}' is not available")

    price = get_deal_price(state, deal)
    acquired = replace(
        deal.business,
        acquisition_round=state.round,
        acquisition_price=price,
        acquisition_multiple=price / deal.business.ebitda if deal.business.ebitda > 0 else deal.business.acquisition_multiple,
        **_financing_fields(structure),
    )

    if target_platform_id is None:
        _require_cash(state, structure.cash_required)
        state = replace(
            state,
            businesses=state.businesses + [acquired],
            cash=state.cash - structure.cash_required,
            total_invested_capital=state.total_invested_capital + price,
        )
        logger.info(f"Round {state.round}: acquired {acquired.name} for ${price}K ({structure_type})")
        return _log_action(state, "acquire", business_id=acquired.id, price=price, structure=structure_type)

    return _tuck_in(state, acquired, structure, price, target_platform_id, rng)


def acquire_with_shares(state: GameState, deal: Deal) -> GameState:
    """Listed holdcos can pay for a deal with newly issued stock instead of cash."""
    _require_not_over(state)
    if state.requires_restructuring:
        raise ValueError("No acquisitions during restructuring")
    if not can_share_funded_deal(state):
        raise ValueError("Share-funded deals need a listed holdco and an unused deal slot")
    if not _restrictions(state).can_acquire:
        raise ValueError("Covenant breach: acquisitions are blocked")
    if _acquisitions_this_round(state) >= MAX_ACQUISITIONS_PER_ROUND[state.ma_sourcing_tier]:
        raise ValueError("Acquisition limit reached for this round")
    if any(b.id == deal.business.id for b in state.businesses + state.exited_businesses):
        raise ValueError(f"Deal {deal.id} has already been acquired")

    price = get_deal_price(state, deal)
    terms = calculate_share_funded_terms(price, state.ipo.stock_price, state.shares_outstanding)
    if terms.shares_to_issue <= 0:
        raise ValueError("Stock has no value to pay with")
    acquired = replace(
        deal.business,
        acquisition_round=state.round,
        acquisition_price=price,
        acquisition_multiple=price / deal.business.ebitda if deal.business.ebitda > 0 else deal.business.acquisition_multiple,
    )
    ipo = replace(state.ipo, share_funded_deals_this_round=state.ipo.share_funded_deals_this_round + 1)
    state = replace(
        state,
        businesses=state.businesses + [acquired],
        shares_outstanding=terms.new_total_shares,
        total_invested_capital=state.total_invested_capital + price,
        ipo=ipo,
    )
    logger.info(
        f"Round {state.round}: acquired {acquired.name} for {terms.shares_to_issue} shares "
        f"({terms.dilution_pct:.1%} dilution)"
    )
    return _log_action(
        state, "acquire", business_id=acquired.id, price=price, structure="share_funded",
        shares=terms.shares_to_issue,
    )


def _tuck_in(
    state: GameState, acquired: Business, structure: DealStructure, price: int, platform_id: str, rng: RandomSource
) -> GameState:
    platform = _require_active(state, platform_id)
    if not platform.is_platform:
        raise ValueError(f"{platform.name} is not a platform")
    if platform.sector_id != acquired.sector_id:
        raise ValueError("Tuck-ins must be in the platform's sector")
    if structure.earnout_amount > 0:
        raise ValueError("Earn-outs are not available on tuck-ins")

    has_services = any(s.active for s in state.shared_services)
    affinity = get_sub_type_affinity(platform.sector_id, platform.sub_type, acquired.sub_type)
    size_tier, _ = get_size_ratio_tier(acquired.ebitda, platform.ebitda)
    outcome = determine_integration_outcome(
        acquired, rng, target_platform=platform, has_shared_services=has_services,
        sub_type_affinity=affinity, size_ratio_tier=size_tier,
    )
    synergies = calculate_synergies(outcome, acquired.ebitda, True, affinity, size_tier)
    failure_cost = round_half_up(abs(acquired.ebitda) * FAILED_INTEGRATION_COST_FRACTION) if outcome == "failure" else 0
    _require_cash(state, structure.cash_required + failure_cost)

    drag = platform.integration_growth_drag
    if outcome == "failure":
        drag += calculate_integration_growth_penalty(acquired.ebitda, platform.ebitda, False)

    revenue = platform.revenue + acquired.revenue
    ebitda = platform.ebitda + acquired.ebitda + synergies
    margin = ebitda / revenue if revenue > 0 else platform.ebitda_margin
    merged_platform = replace(
        platform,
        revenue=revenue,
        ebitda=ebitda,
        ebitda_margin=margin,
        peak_revenue=max(platform.peak_revenue, revenue),
        peak_ebitda=max(platform.peak_ebitda, ebitda),
        acquisition_ebitda=platform.acquisition_ebitda + acquired.ebitda,
        acquisition_price=platform.acquisition_price + price,
        platform_scale=platform.platform_scale + 1,
        bolt_on_ids=platform.bolt_on_ids + [acquired.id],
        seller_note_balance=platform.seller_note_balance + structure.seller_note_amount,
        seller_note_rate=structure.seller_note_rate if platform.seller_note_balance == 0 else platform.seller_note_rate,
        seller_note_rounds_remaining=max(platform.seller_note_rounds_remaining, structure.seller_note_rounds),
        bank_debt_balance=platform.bank_debt_balance + structure.bank_debt_amount,
        bank_debt_rate=structure.bank_debt_rate if platform.bank_debt_balance == 0 else platform.bank_debt_rate,
        bank_debt_rounds_remaining=max(platform.bank_debt_rounds_remaining, structure.bank_debt_rounds),
        integration_rounds_remaining=max(platform.integration_rounds_remaining, 1),
        integration_growth_drag=max(CONFIG.growth.integration_drag_cap, drag),
    )
    bolt_on = replace(
        acquired,
        status="integrated",
        parent_platform_id=platform.id,
        seller_note_balance=0,
        bank_debt_balance=0,
        earnout_remaining=0,
    )

    businesses = [merged_platform if b.id == platform.id else b for b in state.businesses] + [bolt_on]
    state = replace(
        state,
        businesses=businesses,
        cash=state.cash - structure.cash_required - failure_cost,
        total_invested_capital=state.total_invested_capital + price + failure_cost,
    )
    logger.info(f"Round {state.round}: tucked {acquired.name} into {platform.name} ({outcome}, synergies {synergies})")
    return _log_action(
        state, "acquire_tuck_in", business_id=acquired.id, platform_id=platform.id, price=price, outcome=outcome,
    )


def designate_platform(state: GameState, business_id: str) -> GameState:
    business = _require_active(state, business_id)
    if business.is_platform:
        raise ValueError(f"{business.name} is already a platform")
    updated = replace(business, is_platform=True, platform_scale=max(1, business.platform_scale))
    return _log_action(with_business(state, updated), "designate_platform", business_id=business_id)


def merge_businesses(state: GameState, first_id: str, second_id: str, rng: RandomSource) -> GameState:
    """
    Combine two same-sector holdings into one platform.

    Raises:
        ValueError: same id, different sectors, or not enough cash for the merger cost
    """
    _require_not_over(state)
    if first_id == second_id:
        raise ValueError("Cannot merge a business with itself")
    a = _require_active(state, first_id)
    b = _require_active(state, second_id)
    if a.sector_id != b.sector_id:
        raise ValueError("Mergers require businesses in the same sector")

    bigger, smaller = (a, b) if a.ebitda >= b.ebitda else (b, a)
    cost = round_half_up(abs(smaller.ebitda) * MERGER_COST_FRACTION)
    affinity = get_sub_type_affinity(a.sector_id, a.sub_type, b.sub_type)
    size_tier, _ = get_size_ratio_tier(smaller.ebitda, bigger.ebitda)
    balance_ratio = bigger.ebitda / smaller.ebitda if smaller.ebitda > 0 else None
    outcome = determine_integration_outcome(
        smaller, rng, target_platform=bigger, has_shared_services=any(s.active for s in state.shared_services),
        sub_type_affinity=affinity, size_ratio_tier=size_tier, is_merger=True,
    )
    synergies = calculate_synergies(outcome, smaller.ebitda, False, affinity, size_tier, is_merger=True)
    if outcome == "failure":
        cost += round_half_up(abs(smaller.ebitda) * FAILED_INTEGRATION_COST_FRACTION)
    _require_cash(state, cost)

    drag = 0.0
    if outcome == "failure":
        drag = calculate_integration_growth_penalty(smaller.ebitda, bigger.ebitda, True)

    revenue = a.revenue + b.revenue
    ebitda = a.ebitda + b.ebitda + synergies
    acquisition_ebitda = a.acquisition_ebitda + b.acquisition_ebitda
    acquisition_price = a.acquisition_price + b.acquisition_price
    merged = replace(
        bigger,
        id=f"merged_{a.id}_{b.id}",
        name=f"{bigger.name} (merged)",
        revenue=revenue,
        ebitda=ebitda,
        ebitda_margin=ebitda / revenue if revenue > 0 else bigger.ebitda_margin,
        peak_revenue=revenue,
        peak_ebitda=ebitda,
        acquisition_round=min(a.acquisition_round, b.acquisition_round),
        acquisition_price=acquisition_price,
        acquisition_ebitda=acquisition_ebitda,
        acquisition_revenue=a.acquisition_revenue + b.acquisition_revenue,
        acquisition_margin=acquisition_ebitda / (a.acquisition_revenue + b.acquisition_revenue)
        if a.acquisition_revenue + b.acquisition_revenue > 0 else bigger.acquisition_margin,
        acquisition_multiple=acquisition_price / acquisition_ebitda if acquisition_ebitda > 0 else bigger.acquisition_multiple,
        seller_note_balance=a.seller_note_balance + b.seller_note_balance,
        seller_note_rounds_remaining=max(a.seller_note_rounds_remaining, b.seller_note_rounds_remaining),
        seller_note_rate=max(a.seller_note_rate, b.seller_note_rate),
        bank_debt_balance=a.bank_debt_balance + b.bank_debt_balance,
        bank_debt_rounds_remaining=max(a.bank_debt_rounds_remaining, b.bank_debt_rounds_remaining),
        bank_debt_rate=max(a.bank_debt_rate, b.bank_debt_rate),
        earnout_remaining=a.earnout_remaining + b.earnout_remaining,
        is_platform=True,
        platform_scale=a.platform_scale + b.platform_scale + 1,
        bolt_on_ids=a.bolt_on_ids + b.bolt_on_ids,
        integration_rounds_remaining=2,
        integration_growth_drag=drag,
        was_merged=True,
        merger_balance_ratio=balance_ratio,
        quality_rating=max(a.quality_rating, b.quality_rating),
        improvements=a.improvements + [imp for imp in b.improvements if not a.has_improvement(imp.type)],
    )
    retired = [replace(x, status="merged", exit_round=state.round) for x in (a, b)]
    businesses = [x for x in state.businesses if x.id not in (a.id, b.id)]
    businesses = [replace(x, parent_platform_id=merged.id) if x.parent_platform_id in (a.id, b.id) else x
                  for x in businesses]
    state = replace(
        state,
        businesses=businesses + [merged],
        exited_businesses=state.exited_businesses + retired,
        cash=state.cash - cost,
        total_invested_capital=state.total_invested_capital + cost,
    )
    logger.info(f"Round {state.round}: merged {a.name} and {b.name} ({outcome})")
    return _log_action(state, "merge", business_id=merged.id, outcome=outcome, cost=cost)


def get_platform_multiple_uplift(business: Business) -> float:
    """Multiple expansion a platform would command on its consolidated EBITDA."""
    return calculate_multiple_expansion(business.platform_scale, business.ebitda)


# --- Exits ---

def sell_business(state: GameState, business_id: str) -> GameState:
    _require_not_over(state)
    business = _require_active(state, business_id)
    last_event_type = state.current_event.type if state.current_event else None
    valuation = calculate_exit_valuation(
        business, state.round, last_event_type, integrated_platforms=state.integrated_platforms
    )
    state, net = complete_sale(state, business_id, valuation.exit_price)
    logger.info(f"Round {state.round}: sold {business.name} for ${valuation.exit_price}K (net ${net}K)")
    return _log_action(state, "sell", business_id=business_id, price=valuation.exit_price, net=net)


def wind_down_business(state: GameState, business_id: str) -> GameState:
    """Close a business; its notes and bank debt are repaid from holdco cash, earn-outs lapse."""
    business = _require_active(state, business_id)
    payoff = business.seller_note_balance + business.bank_debt_balance
    _require_cash(state, payoff)
    closed = replace(
        business, status="wound_down", exit_price=0, exit_round=state.round,
        seller_note_balance=0, bank_debt_balance=0, earnout_remaining=0,
    )
    state = replace(
        state,
        businesses=[closed if b.id == business_id else b for b in state.businesses],
        exited_businesses=state.exited_businesses + [closed],
        cash=state.cash - payoff,
    )
    logger.info(f"Round {state.round}: wound down {business.name}")
    return _log_action(release_shared_services(state), "wind_down", business_id=business_id, payoff=payoff)


def distressed_sale(state: GameState, business_id: str) -> GameState:
    """Restructuring fire sale: the business goes at a fraction of its normal exit valuation."""
    if not state.requires_restructuring:
        raise ValueError("Distressed sales are only available during restructuring")
    business = _require_active(state, business_id)
    last_event_type = state.current_event.type if state.current_event else None
    valuation = calculate_exit_valuation(
        business, state.round, last_event_type, integrated_platforms=state.integrated_platforms
    )
    price = round_half_up(valuation.exit_price * CONFIG.capital.distressed_sale_fraction)
    state, net = complete_sale(state, business_id, price)
    logger.info(f"Round {state.round}: fire sale of {business.name} for ${price}K (net ${net}K)")
    return _log_action(state, "sell", business_id=business_id, price=price, net=net, distressed=True)


# --- Capital allocation ---

def distribute_cash(state: GameState, amount: int) -> GameState:
    if amount <= 0:
        raise ValueError("Distribution must be positive")
    _require_cash(state, amount)
    if not _restrictions(state).can_distribute:
        raise ValueError("Covenant breach: distributions are blocked")
    state = replace(state, cash=state.cash - amount, total_distributions=state.total_distributions + amount)
    return _log_action(state, "distribute", amount=amount)


def _in_cooldown(state: GameState, last_round: Optional[int]) -> bool:
    return last_round is not None and state.round - last_round < CONFIG.capital.equity_buyback_cooldown


def buyback_shares(state: GameState, amount: int) -> GameState:
    """Repurchase outside shares at intrinsic value; founder shares are never bought back."""
    if amount <= 0:
        raise ValueError("Buyback must be positive")
    _require_cash(state, amount)
    if not get_active_businesses(state):
        raise ValueError("Buybacks need at least one active business")
    if _in_cooldown(state, state.last_equity_raise_round):
        raise ValueError(f"Buybacks are blocked for {CONFIG.capital.equity_buyback_cooldown} rounds after a raise")
    if not _restrictions(state).can_buyback:
        raise ValueError("Covenant breach: buybacks are blocked")
    price = calculate_metrics(state).intrinsic_value_per_share
    if price <= 0:
        raise ValueError("Shares have no intrinsic value to buy back at")
    shares = int(amount / price)
    outside = state.shares_outstanding - state.founder_shares
    if shares <= 0:
        raise ValueError("Amount too small to repurchase a share")
    if shares > outside:
        raise ValueError(f"Only {outside} outside shares remain")
    state = replace(
        state,
        cash=state.cash - amount,
        shares_outstanding=state.shares_outstanding - shares,
        total_buybacks=state.total_buybacks + amount,
        last_buyback_round=state.round,
    )
    return _log_action(state, "buyback", amount=amount, shares=shares)


def pay_down_debt(state: GameState, amount: int) -> GameState:
    if amount <= 0:
        raise ValueError("Paydown must be positive")
    _require_cash(state, amount)
    if amount > state.total_debt:
        raise ValueError(f"Holdco debt is only ${state.total_debt}K")
    remaining = state.total_debt - amount
    state = replace(
        state,
        cash=state.cash - amount,
        total_debt=remaining,
        holdco_loan_rounds_remaining=state.holdco_loan_rounds_remaining if remaining > 0 else 0,
    )
    return _log_action(state, "pay_debt", amount=amount)


def get_equity_issue_price_factor(equity_raises_used: int) -> float:
    """Fraction of intrinsic value new shares are priced at; each prior raise lowers it."""
    c = CONFIG.capital
    return max(1 - c.equity_dilution_step * equity_raises_used, c.equity_dilution_floor)


def issue_equity(state: GameState, amount: int) -> GameState:
    """Sell new shares below intrinsic value, keeping the founder in control."""
    if amount <= 0:
        raise ValueError("Raise must be positive")
    if state.requires_restructuring:
        raise ValueError("Use an emergency raise during restructuring")
    if _in_cooldown(state, state.last_buyback_round):
        raise ValueError(f"Raises are blocked for {CONFIG.capital.equity_buyback_cooldown} rounds after a buyback")
    price_factor = get_equity_issue_price_factor(state.equity_raises_used)
    price = calculate_metrics(state).intrinsic_value_per_share * price_factor
    if price <= 0:
        raise ValueError("Shares have no intrinsic value to issue at")
    new_shares = round_half_up(amount / price)
    total_shares = state.shares_outstanding + new_shares
    if state.founder_shares / total_shares < FOUNDER_OWNERSHIP_FLOOR:
        raise ValueError("Raise would drop founder ownership below 51%")
    state = replace(
        state,
        cash=state.cash + amount,
        shares_outstanding=total_shares,
        equity_raises_used=state.equity_raises_used + 1,
        last_equity_raise_round=state.round,
    )
    return _log_action(state, "issue_equity", amount=amount, shares=new_shares, discount=1 - price_factor)


def go_public(state: GameState) -> GameState:
    """List the holdco; the float is sold at pre-money equity value per share."""
    _require_not_over(state)
    if state.requires_restructuring:
        raise ValueError("Cannot list during restructuring")
    eligible, reasons = check_ipo_eligibility(state)
    if not eligible:
        raise ValueError("Not eligible for an IPO: " + "; ".join(reasons))
    ipo, cash_raised, new_shares = execute_ipo(state)
    state = replace(
        state,
        cash=state.cash + cash_raised,
        shares_outstanding=state.shares_outstanding + new_shares,
        ipo=ipo,
    )
    logger.info(f"Round {state.round}: IPO at ${ipo.stock_price:.2f}/share raised ${cash_raised}K")
    return _log_action(state, "ipo", cash_raised=cash_raised, shares=new_shares, price=ipo.stock_price)


def emergency_equity_raise(state: GameState, amount: int) -> GameState:
    if not state.requires_restructuring:
        raise ValueError("Emergency raises are only available during restructuring")
    if amount <= 0:
        raise ValueError("Raise must be positive")
    price = calculate_metrics(state).intrinsic_value_per_share * EMERGENCY_EQUITY_DISCOUNT
    if price <= 0:
        raise ValueError("Shares have no intrinsic value to issue at")
    new_shares = round_half_up(amount / price)
    state = replace(
        state,
        cash=state.cash + amount,
        shares_outstanding=state.shares_outstanding + new_shares,
        equity_raises_used=state.equity_raises_used + 1,
        last_equity_raise_round=state.round,
    )
    return _log_action(state, "emergency_equity", amount=amount, shares=new_shares)


def complete_restructuring(state: GameState) -> GameState:
    """Close the restructuring phase; still-negative cash means bankruptcy."""
    if not state.requires_restructuring:
        raise ValueError("No restructuring in progress")
    if state.cash < 0:
        logger.info(f"Round {state.round}: restructuring failed, holdco is bankrupt")
        return replace(state, requires_restructuring=False, bankrupt_round=state.round)
    rate = min(CONFIG.events.interest_rate_ceiling, state.interest_rate + CONFIG.capital.restructuring_rate_penalty)
    logger.info(f"Round {state.round}: restructuring complete, holdco rate now {rate:.2%}")
    # The interrupted round's cash flows are already booked; move on to the next one
    return _tick_counters(replace(state, requires_restructuring=False, interest_rate=rate, covenant_breach_rounds=0))


# --- Shared services, sourcing, improvements ---

def unlock_shared_service(state: GameState, service_type: str) -> GameState:
    service = next((s for s in state.shared_services if s.type == service_type), None)
    if service is None:
        raise ValueError(f"Unknown shared service: {service_type}")
    if service.active:
        raise ValueError(f"{service.name} is already active")
    if len(get_active_businesses(state)) < MIN_OPCOS_FOR_SHARED_SERVICES:
        raise ValueError(f"Shared services need {MIN_OPCOS_FOR_SHARED_SERVICES} active businesses")
    if sum(1 for s in state.shared_services if s.active) >= MAX_ACTIVE_SHARED_SERVICES:
        raise ValueError(f"At most {MAX_ACTIVE_SHARED_SERVICES} shared services can be active")
    _require_cash(state, service.unlock_cost)
    unlocked = replace(service, active=True, unlocked_round=state.round)
    state = replace(
        state,
        shared_services=[unlocked if s.type == service_type else s for s in state.shared_services],
        cash=state.cash - service.unlock_cost,
        total_invested_capital=state.total_invested_capital + service.unlock_cost,
    )
    return _log_action(state, "unlock_shared_service", service=service_type)


def deactivate_shared_service(state: GameState, service_type: str) -> GameState:
    service = next((s for s in state.shared_services if s.type == service_type), None)
    if service is None or not service.active:
        raise ValueError(f"Shared service {service_type} is not active")
    state = replace(
        state,
        shared_services=[replace(s, active=False) if s.type == service_type else s for s in state.shared_services],
    )
    return _log_action(state, "deactivate_shared_service", service=service_type)


def upgrade_ma_sourcing(state: GameState) -> GameState:
    next_tier = state.ma_sourcing_tier + 1
    if next_tier not in MA_SOURCING_UPGRADE_COST:
        raise ValueError("M&A sourcing is already at the top tier")
    cost = MA_SOURCING_UPGRADE_COST[next_tier]
    _require_cash(state, cost)
    state = replace(state, ma_sourcing_tier=next_tier, cash=state.cash - cost)
    return _log_action(state, "upgrade_ma_sourcing", tier=next_tier, cost=cost)


def apply_improvement(state: GameState, business_id: str, improvement_type: str, rng: RandomSource) -> GameState:
    """Buy an operational improvement; each type once per business."""
    business = _require_active(state, business_id)
    effect = IMPROVEMENT_EFFECTS.get(improvement_type)
    if effect is None:
        raise ValueError(f"Unknown improvement: {improvement_type}")
    if business.has_improvement(improvement_type):
        raise ValueError(f"{business.name} already has {improvement_type}")
    cost = max(1, round_half_up(abs(business.ebitda) * effect["cost_fraction"]))
    _require_cash(state, cost)

    updated, _ = scale_margin(business, shift=effect["margin"])
    quality = updated.quality_rating
    if quality < get_quality_ceiling(business.sector_id) and rng.next() < get_quality_improvement_chance(state.turnaround_tier):
        quality += 1
    updated = replace(
        updated,
        organic_growth_rate=cap_growth_rate(updated.organic_growth_rate + effect["growth"]),
        quality_rating=quality,
        improvements=list(business.improvements) + [
            Improvement(type=improvement_type, applied_round=state.round, effect=effect["margin"])
        ],
    )
    state = with_business(state, updated)
    state = replace(
        state, cash=state.cash - cost, total_invested_capital=state.total_invested_capital + cost,
    )
    return _log_action(state, "improve", business_id=business_id, improvement=improvement_type, cost=cost)


# --- Integrated platforms and turnarounds ---

def forge_integrated_platform(state: GameState, recipe_id: str, business_ids: List[str]) -> GameState:
    recipe = get_recipe_by_id(recipe_id)
    if recipe is None:
        raise ValueError(f"Unknown platform recipe: {recipe_id}")
    eligible = {
        e.recipe.id: e
        for e in check_platform_eligibility(state.businesses, state.integrated_platforms, state.difficulty, state.duration)
    }
    if recipe_id not in eligible:
        raise ValueError(f"{recipe.name} is not available to forge")
    allowed = {b.id for b in eligible[recipe_id].eligible_businesses}
    if not business_ids or not set(business_ids) <= allowed:
        raise ValueError("Selected businesses do not qualify for this platform")
    selected = [b for b in state.businesses if b.id in business_ids]
    if len({b.sub_type for b in selected}) < recipe.min_sub_types:
        raise ValueError(f"Need {recipe.min_sub_types} distinct sub-types")

    cost = calculate_integration_cost(recipe, selected)
    _require_cash(state, cost)
    platform = forge_platform(recipe, business_ids, state.round)

    businesses = []
    for b in state.businesses:
        if b.id in business_ids:
            b, _ = scale_margin(b, shift=recipe.bonuses.get("margin_boost", 0.0))
            b = replace(
                b,
                integrated_platform_id=platform.id,
                organic_growth_rate=cap_growth_rate(b.organic_growth_rate + recipe.bonuses.get("growth_boost", 0.0)),
            )
        businesses.append(b)

    state = replace(
        state,
        businesses=businesses,
        integrated_platforms=state.integrated_platforms + [platform],
        cash=state.cash - cost,
        total_invested_capital=state.total_invested_capital + cost,
    )
    logger.info(f"Round {state.round}: forged {recipe.name} from {len(business_ids)} businesses")
    return _log_action(state, "forge_platform", recipe_id=recipe_id, cost=cost)


def unlock_turnaround_tier(state: GameState) -> GameState:
    allowed, reason = can_unlock_tier(state.turnaround_tier, state.cash, len(get_active_businesses(state)))
    if not allowed:
        raise ValueError(reason)
    cost = get_turnaround_tier_unlock_cost(state.turnaround_tier)
    state = replace(state, turnaround_tier=state.turnaround_tier + 1, cash=state.cash - cost)
    return _log_action(state, "unlock_turnaround_tier", tier=state.turnaround_tier, cost=cost)


def start_turnaround(state: GameState, business_id: str, program_id: str) -> GameState:
    business = _require_active(state, business_id)
    program = get_program_by_id(program_id)
    if program is None:
        raise ValueError(f"Unknown turnaround program: {program_id}")
    if program not in get_eligible_programs(business, state.turnaround_tier, state.active_turnarounds):
        raise ValueError(f"{business.name} is not eligible for {program_id}")
    cost = calculate_turnaround_cost(program, business)
    _require_cash(state, cost)
    turnaround = ActiveTurnaround(
        id=f"turnaround_{business_id}_r{state.round}",
        business_id=business_id,
        program_id=program_id,
        start_round=state.round,
        end_round=state.round + get_turnaround_duration(program, state.duration),
    )
    state = replace(
        state,
        active_turnarounds=state.active_turnarounds + [turnaround],
        cash=state.cash - cost,
        total_invested_capital=state.total_invested_capital + cost,
    )
    return _log_action(state, "start_turnaround", business_id=business_id, program_id=program_id, cost=cost)


def resolve_due_turnarounds(state: GameState, rng: RandomSource) -> GameState:
    """Settle every program whose end round has arrived."""
    running = sum(1 for t in state.active_turnarounds if t.status == "active")
    turnarounds = []
    for t in state.active_turnarounds:
        if t.status != "active" or t.end_round > state.round:
            turnarounds.append(t)
            continue
        program = get_program_by_id(t.program_id)
        business = state.get_business(t.business_id)
        if program is None or business is None or business.status != "active":
            turnarounds.append(replace(t, status="failed"))
            continue
        outcome = resolve_turnaround(program, running, rng)
        updated, _ = scale_revenue(business, outcome.ebitda_multiplier)
        quality = min(get_quality_ceiling(business.sector_id), outcome.target_quality)
        updated = replace(
            updated,
            quality_rating=max(business.quality_rating, quality),
            quality_improved_tiers=business.quality_improved_tiers + max(0, outcome.quality_change),
        )
        state = with_business(state, updated)
        turnarounds.append(replace(t, status="completed" if outcome.result != "failure" else "failed"))
        logger.info(f"Round {state.round}: turnaround {t.program_id} on {business.name} ended in {outcome.result}")
    return replace(state, active_turnarounds=turnarounds)


# --- Round pipeline ---

def _grow_portfolio(state: GameState, rng: RandomSource) -> GameState:
    active = get_active_businesses(state)
    benefits = calculate_shared_services_benefits(state)
    focus = calculate_sector_focus_bonus(active)
    focus_counts = get_focus_group_counts(active)
    diversification = calculate_diversification_bonus(active)
    inflation = state.inflation_rounds_remaining > 0

    grown = []
    for b in state.businesses:
        if b.status == "active":
            b = apply_organic_growth(
                b,
                rng,
                shared_services_growth_bonus=benefits.growth_bonus,
                sector_focus_bonus=focus.ebitda_bonus if focus else 0.0,
                inflation_active=inflation,
                concentration_count=get_concentration_count(b, focus_counts),
                diversification_bonus=diversification,
                current_round=state.round,
                margin_defense=benefits.margin_defense,
                max_rounds=state.max_rounds,
                duration=state.duration,
            )
        grown.append(b)
    return replace(state, businesses=grown)


def _collect_cash(state: GameState) -> GameState:
    """Tax, debt service, earn-outs and holdco overhead for the round."""
    active = get_active_businesses(state)
    benefits = calculate_shared_services_benefits(state)
    penalty = _restrictions(state).interest_penalty
    rate = state.interest_rate + penalty

    # Rate includes the distress penalty before the shield is computed
    tax = calculate_portfolio_tax(active, state.total_debt, rate, calculate_deductible_costs(state))
    fcf = sum(calculate_annual_fcf(b, benefits.capex_reduction, benefits.cash_conversion_bonus) for b in active)
    cash = state.cash + fcf - tax.tax_amount

    principal, interest = calculate_holdco_debt_service(state)
    interest += round_half_up(state.total_debt * penalty)
    cash -= principal + interest
    total_debt = state.total_debt - principal

    businesses = []
    for b in state.businesses:
        if b.status == "active":
            opco_principal, opco_interest = calculate_opco_debt_service(b)
            cash -= opco_principal + opco_interest
            note_paid = min(b.seller_note_balance, round_half_up(b.seller_note_balance / b.seller_note_rounds_remaining)) \
                if b.seller_note_balance > 0 and b.seller_note_rounds_remaining > 0 else 0
            bank_paid = opco_principal - note_paid
            earnout = calculate_earnout_payment(b, state.round)
            cash -= earnout
            b = replace(
                b,
                seller_note_balance=b.seller_note_balance - note_paid,
                seller_note_rounds_remaining=max(0, b.seller_note_rounds_remaining - 1),
                bank_debt_balance=b.bank_debt_balance - bank_paid,
                bank_debt_rounds_remaining=max(0, b.bank_debt_rounds_remaining - 1),
                earnout_remaining=0 if earnout or earnout_expired(b, state.round) else b.earnout_remaining,
            )
        businesses.append(b)

    cash -= calculate_shared_services_cost(state) + calculate_ma_sourcing_cost(state)
    cash -= calculate_turnaround_annual_cost(state)
    return replace(state, businesses=businesses, cash=cash, total_debt=total_debt)


def _check_insolvency(state: GameState) -> GameState:
    if state.cash >= 0:
        return state
    if not state.has_restructured:
        logger.info(f"Round {state.round}: cash negative (${state.cash}K), restructuring required")
        return replace(state, requires_restructuring=True, has_restructured=True)
    logger.info(f"Round {state.round}: cash negative after restructuring, holdco is bankrupt")
    return replace(state, bankrupt_round=state.round)


def _roll_event(state: GameState, rng: RandomSource) -> GameState:
    event = generate_event(state, rng)
    logger.debug(f"Round {state.round}: event {event.type}")
    state = replace(state, event_log=state.event_log + [(state.round, event.type, event.affected_business_id)])
    if has_choices(event):
        return replace(state, current_event=event)
    return apply_event_effects(state, event, rng)


def _report_earnings(state: GameState) -> GameState:
    if state.ipo is None:
        return state
    actual = sum(b.ebitda for b in get_active_businesses(state))
    return replace(state, ipo=process_earnings_result(state, actual))


def _check_covenants(state: GameState) -> GameState:
    level = state.metrics_history[-1].metrics.distress_level if state.metrics_history else "comfortable"
    streak = state.covenant_breach_rounds + 1 if level == "breach" else 0
    state = replace(state, covenant_breach_rounds=streak)
    if streak >= CONFIG.distress.covenant_breach_rounds_threshold and state.bankrupt_round is None:
        logger.info(f"Round {state.round}: {streak} consecutive covenant breaches, lenders called the loans")
        state = replace(state, bankrupt_round=state.round)
    return state


def _tick_counters(state: GameState) -> GameState:
    boom_rounds = max(0, state.consolidation_boom_rounds_remaining - 1)
    return replace(
        state,
        inflation_rounds_remaining=max(0, state.inflation_rounds_remaining - 1),
        credit_tightening_rounds_remaining=max(0, state.credit_tightening_rounds_remaining - 1),
        consolidation_boom_rounds_remaining=boom_rounds,
        consolidation_boom_sector_id=state.consolidation_boom_sector_id if boom_rounds > 0 else None,
        holdco_loan_rounds_remaining=max(0, state.holdco_loan_rounds_remaining - 1) if state.total_debt > 0 else 0,
        round=state.round + 1,
        actions_this_round=[],
    )


def _has_pending_choice(state: GameState) -> bool:
    """A decision only blocks while the business it concerns is still held."""
    event = state.current_event
    if not has_choices(event):
        return False
    target = state.get_business(event.affected_business_id) if event.affected_business_id else None
    return target is not None and target.status == "active"


def advance_round(state: GameState, rng: RandomSource) -> GameState:
    """
    Run one round: growth, cash collection, insolvency check, event,
    metrics snapshot, public earnings, covenant check, counters.

    Raises:
        ValueError: the game is over, a decision event is pending, or
            restructuring has not been completed
    """
    _require_not_over(state)
    if state.requires_restructuring:
        raise ValueError("Complete restructuring before advancing")
    if _has_pending_choice(state):
        raise ValueError("Resolve the pending event before advancing")

    growth_rng = rng.fork("simulation")
    event_rng = rng.fork("events")

    state = replace(state, current_event=None)
    state = _grow_portfolio(state, growth_rng)
    state = _collect_cash(state)
    state = resolve_due_turnarounds(state, growth_rng)
    state = _check_insolvency(state)

    if state.bankrupt_round is None and not state.requires_restructuring:
        state = _roll_event(state, event_rng)

    state = replace(state, metrics_history=state.metrics_history + [record_historical_metrics(state)])
    if state.bankrupt_round is None:
        state = _report_earnings(state)
    state = _check_covenants(state)

    if state.bankrupt_round is not None or state.requires_restructuring:
        return state

    state = _tick_counters(state)
    logger.info(f"Advanced to round {state.round} (cash ${state.cash}K, debt ${state.total_debt}K)")
    return state


class HoldcoGame:
    """
    Live game wrapper: holds the state and the deal pipeline and derives
    each round's random streams from the seed (or an ambient source).
    """

    def __init__(self, state: GameState):
        self.state = state
        self._ambient = AmbientRng() if state.seed is None else None
        self.deals: List[Deal] = []
        self._refresh_deals()

    @classmethod
    def create(
        cls,
        holdco_name: str = "Holdco",
        starting_sector: str = "agency",
        difficulty: str = "easy",
        duration: str = "standard",
        seed: Optional[int] = None,
    ) -> "HoldcoGame":
        if seed is None:
            seed = generate_random_seed()
        return cls(new_game(holdco_name, starting_sector, difficulty, duration, seed=seed))

    def _streams(self) -> Dict[str, RandomSource]:
        if self.state.seed is not None:
            return create_rng_streams(self.state.seed, self.state.round)
        return {key: self._ambient.fork(key) for key in ("deals", "events", "simulation", "market", "cosmetic")}

    def round_rng(self) -> RandomSource:
        if self.state.seed is not None:
            return SeededRng(derive_round_seed(self.state.seed, self.state.round))
        return self._ambient.fork(self.state.round)

    def action_rng(self) -> RandomSource:
        """Per-action stream so replaying the same actions replays the same rolls."""
        return self._streams()["simulation"].fork(len(self.state.actions_this_round))

    def _refresh_deals(self) -> None:
        if self.state.is_game_over:
            self.deals = []
            return
        self.deals = generate_deal_pipeline(self.state, self._streams()["deals"])

    def get_deal(self, deal_id: str) -> Deal:
        for deal in self.deals:
            if deal.id == deal_id:
                return deal
        raise ValueError(f"Unknown deal: {deal_id}")

    def advance(self) -> GameState:
        self.state = advance_round(self.state, self.round_rng())
        self._refresh_deals()
        return self.state

    def acquire(self, deal_id: str, structure_type: str, target_platform_id: Optional[str] = None) -> GameState:
        deal = self.get_deal(deal_id)
        if structure_type == "share_funded":
            if target_platform_id is not None:
                raise ValueError("Share-funded deals cannot be tucked into a platform")
            self.state = acquire_with_shares(self.state, deal)
        else:
            self.state = acquire_business(self.state, deal, structure_type, self.action_rng(), target_platform_id)
        self.deals = [d for d in self.deals if d.id != deal_id]
        return self.state

    def merge(self, first_id: str, second_id: str) -> GameState:
        self.state = merge_businesses(self.state, first_id, second_id, self.action_rng())
        return self.state

    def improve(self, business_id: str, improvement_type: str) -> GameState:
        self.state = apply_improvement(self.state, business_id, improvement_type, self.action_rng())
        return self.state

    def resolve_choice(self, action: str) -> GameState:
        self.state = resolve_event_choice(self.state, action, self.action_rng())
        return self.state

    def apply(self, action: str, **params: Any) -> GameState:
        """Dispatch a deterministic (rng-free) action by name."""
        handler = ACTIONS.get(action)
        if handler is None:
            raise ValueError(f"Unknown action: {action}")
        self.state = handler(self.state, **params)
        return self.state


ACTIONS = {
    "sell": sell_business,
    "wind_down": wind_down_business,
    "distressed_sale": distressed_sale,
    "distribute": distribute_cash,
    "buyback": buyback_shares,
    "pay_debt": pay_down_debt,
    "issue_equity": issue_equity,
    "ipo": go_public,
    "emergency_equity": emergency_equity_raise,
    "complete_restructuring": complete_restructuring,
    "unlock_shared_service": unlock_shared_service,
    "deactivate_shared_service": deactivate_shared_service,
    "upgrade_ma_sourcing": upgrade_ma_sourcing,
    "designate_platform": designate_platform,
    "forge_platform": forge_integrated_platform,
    "unlock_turnaround_tier": unlock_turnaround_tier,
    "start_turnaround": start_turnaround,
}
