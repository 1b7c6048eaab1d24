"""
Holdco Data Model

Record types shared by every engine module: businesses, the game state
aggregate, events and metric snapshots. Legacy or partial records are
normalized on load so the formulas downstream never need fallbacks.
"""

import copy
import math
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, List, Optional, Tuple

from config import CONFIG
from sectors import SECTORS

BUSINESS_STATUSES = ("active", "sold", "wound_down", "integrated", "merged")
DISTRESS_LEVELS = ("comfortable", "elevated", "stressed", "breach")


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (also for negatives: -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def cap_growth_rate(rate: float) -> float:
    return clamp(rate, CONFIG.growth.min_growth_rate, CONFIG.growth.max_growth_rate)


def get_margin_ceiling(sector_id: str) -> float:
    sector = SECTORS.get(sector_id)
    if sector is None:
        return CONFIG.growth.max_margin
    return min(CONFIG.growth.max_margin, sector.margin_range[1] + CONFIG.growth.margin_ceiling_headroom)


def clamp_margin(margin: float, sector_id: str) -> float:
    """Clamp a margin to the sector-valid band."""
    return clamp(margin, CONFIG.growth.min_margin, get_margin_ceiling(sector_id))


def apply_ebitda_floor(ebitda: int, revenue: int, margin: float, acquisition_ebitda: int) -> Tuple[int, float]:
    """
    No business may fall below a fraction of its acquisition EBITDA.

    Returns (ebitda, margin); when the floor binds the margin is re-derived
    so that revenue x margin stays consistent with the floored EBITDA.
    """
    floor = round_half_up(max(0, acquisition_ebitda) * CONFIG.growth.ebitda_floor_pct)
    if ebitda >= floor:
        return ebitda, margin
    if revenue > 0:
        margin = max(CONFIG.growth.min_margin, floor / revenue)
    return floor, margin


@dataclass(slots=True)
class Improvement:
    type: str
    applied_round: int
    effect: float = 0.0


@dataclass(slots=True)
class DueDiligence:
    """Qualitative signals gathered at acquisition."""
    operator_quality: str = "moderate"  # strong / moderate / weak
    competitive_position: str = "competitive"  # leader / competitive / commoditized
    revenue_concentration: str = "medium"  # low / medium / high
    customer_retention: float = 85.0  # percent
    trend: str = "flat"


@dataclass(slots=True)
class Business:
    """
    One operating company in the portfolio.

    Acquisition-snapshot fields are set once and never recomputed; valuation
    nets growth against them.
    """

    # Identity
    id: str
    name: str
    sector_id: str
    sub_type: str = ""
    status: str = "active"

    # Financials (thousands)
    revenue: int = 0
    ebitda: int = 0
    ebitda_margin: float = 0.0
    peak_revenue: int = 0
    peak_ebitda: int = 0
    organic_growth_rate: float = 0.0
    margin_drift_rate: float = 0.0

    # Acquisition snapshot
    acquisition_round: int = 0
    acquisition_price: int = 0
    acquisition_ebitda: int = 0
    acquisition_margin: float = 0.0
    acquisition_multiple: float = 0.0
    acquisition_revenue: int = 0
    acquisition_size_tier_premium: float = 0.0  # Already "paid for" at entry

    # Opco capital structure
    seller_note_balance: int = 0
    seller_note_rate: float = 0.0
    seller_note_rounds_remaining: int = 0
    bank_debt_balance: int = 0
    bank_debt_rate: float = 0.0
    bank_debt_rounds_remaining: int = 0
    earnout_remaining: int = 0
    earnout_target: float = 0.0  # EBITDA growth required to trigger payment

    # Roll-up state
    is_platform: bool = False
    platform_scale: int = 0
    bolt_on_ids: List[str] = field(default_factory=list)
    parent_platform_id: Optional[str] = None
    integrated_platform_id: Optional[str] = None
    integration_rounds_remaining: int = 0
    integration_growth_drag: float = 0.0  # Negative, decays toward zero
    was_merged: bool = False
    merger_balance_ratio: Optional[float] = None

    # Qualitative
    quality_rating: int = 3
    quality_improved_tiers: int = 0
    improvements: List[Improvement] = field(default_factory=list)
    due_diligence: DueDiligence = field(default_factory=DueDiligence)

    # Exit record
    exit_price: Optional[int] = None
    exit_round: Optional[int] = None

    def __post_init__(self):
        if self.status not in BUSINESS_STATUSES:
            raise ValueError(f"Invalid business status: {self.status}")
        self.quality_rating = int(clamp(self.quality_rating, 1, 5))
        if not self.ebitda_margin and self.revenue > 0:
            self.ebitda_margin = self.ebitda / self.revenue
        if not self.revenue and self.ebitda_margin > 0:
            self.revenue = round_half_up(self.ebitda / self.ebitda_margin)
        if not self.acquisition_revenue:
            self.acquisition_revenue = self.revenue
        if not self.acquisition_margin:
            self.acquisition_margin = self.ebitda_margin
        self.peak_revenue = max(self.peak_revenue, self.revenue)
        self.peak_ebitda = max(self.peak_ebitda, self.ebitda)
        self.organic_growth_rate = cap_growth_rate(self.organic_growth_rate)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Business":
        """Build a complete record from a (possibly legacy) dict."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known and v is not None}
        values["improvements"] = [
            imp if isinstance(imp, Improvement) else Improvement(**imp)
            for imp in data.get("improvements") or []
        ]
        dd = data.get("due_diligence") or {}
        values["due_diligence"] = dd if isinstance(dd, DueDiligence) else DueDiligence(**dd)
        values["bolt_on_ids"] = list(data.get("bolt_on_ids") or [])
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def total_debt_payoff(self) -> int:
        return self.seller_note_balance + self.bank_debt_balance + self.earnout_remaining

    def has_improvement(self, improvement_type: str) -> bool:
        return any(imp.type == improvement_type for imp in self.improvements)


@dataclass(slots=True)
class SharedService:
    type: str
    name: str
    unlock_cost: int
    annual_cost: int
    active: bool = False
    unlocked_round: Optional[int] = None


@dataclass(slots=True)
class IntegratedPlatform:
    id: str
    recipe_id: str
    name: str
    sector_ids: List[str]
    constituent_business_ids: List[str]
    forged_in_round: int
    bonuses: Dict[str, float] = field(default_factory=dict)


@dataclass(slots=True)
class ActiveTurnaround:
    id: str
    business_id: str
    program_id: str
    start_round: int
    end_round: int
    status: str = "active"  # active / completed / failed


@dataclass(slots=True)
class IpoState:
    """Public-market record, present once the holdco has listed."""
    is_public: bool
    stock_price: float
    pre_ipo_shares: int
    market_sentiment: float
    earnings_expectations: int
    ipo_round: int
    initial_stock_price: float
    consecutive_misses: int = 0
    share_funded_deals_this_round: int = 0


@dataclass(slots=True)
class EventImpact:
    metric: str
    before: float
    after: float
    delta: float
    delta_percent: Optional[float] = None
    business_id: Optional[str] = None
    business_name: Optional[str] = None


@dataclass(slots=True)
class EventChoice:
    label: str
    action: str
    cost: int = 0
    variant: str = "neutral"  # positive / neutral / negative


@dataclass(slots=True)
class GameEvent:
    id: str
    type: str
    title: str
    description: str
    effect: str = ""
    tip: Optional[str] = None
    affected_business_id: Optional[str] = None
    choices: List[EventChoice] = field(default_factory=list)
    offer_amount: Optional[int] = None
    offer_multiple: Optional[float] = None
    buyer_name: Optional[str] = None
    consolidation_sector_id: Optional[str] = None
    impacts: List[EventImpact] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class Metrics:
    """Derived per-round portfolio metrics."""
    cash: int = 0
    total_debt: int = 0
    total_ebitda: int = 0
    total_revenue: int = 0
    avg_ebitda_margin: float = 0.0
    total_fcf: float = 0.0
    fcf_per_share: float = 0.0
    portfolio_roic: float = 0.0
    roiic: float = 0.0
    portfolio_moic: float = 1.0
    net_debt_to_ebitda: float = 0.0
    distress_level: str = "comfortable"
    cash_conversion: float = 0.0
    interest_rate: float = 0.0
    shares_outstanding: int = 0
    intrinsic_value_per_share: float = 0.0
    portfolio_value: int = 0
    nopat: float = 0.0
    tax_amount: int = 0
    capex: int = 0
    holdco_debt_service: int = 0
    opco_debt_service: int = 0
    earnout_payments: int = 0
    shared_services_cost: int = 0
    ma_sourcing_cost: int = 0
    turnaround_cost: int = 0
    total_invested_capital: int = 0
    total_distributions: int = 0
    total_buybacks: int = 0
    total_exit_proceeds: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class HistoricalMetrics:
    round: int
    metrics: Metrics
    fcf: float
    nopat: float
    invested_capital: int


@dataclass(slots=True)
class GameState:
    """
    Root aggregate for one game.

    Created at game start with a single seed business, mutated once per
    round by the orchestrator, terminal once bankrupt_round is set or
    round exceeds max_rounds.
    """

    holdco_name: str = "Holdco"
    difficulty: str = "easy"
    duration: str = "standard"
    seed: Optional[int] = None

    # Balance sheet
    cash: int = 0
    total_debt: int = 0  # Holdco-level bank debt
    holdco_loan_rounds_remaining: int = 0
    interest_rate: float = 0.07

    # Round counters
    round: int = 1
    max_rounds: int = 20

    # Portfolio
    businesses: List[Business] = field(default_factory=list)
    exited_businesses: List[Business] = field(default_factory=list)
    metrics_history: List[HistoricalMetrics] = field(default_factory=list)
    shared_services: List[SharedService] = field(default_factory=list)
    ma_sourcing_tier: int = 0
    integrated_platforms: List[IntegratedPlatform] = field(default_factory=list)
    turnaround_tier: int = 0
    active_turnarounds: List[ActiveTurnaround] = field(default_factory=list)
    ipo: Optional[IpoState] = None

    # Share capital ledger
    shares_outstanding: int = 1000
    founder_shares: int = 1000
    initial_raise: int = 0
    equity_raises_used: int = 0
    last_equity_raise_round: Optional[int] = None
    last_buyback_round: Optional[int] = None

    # Cumulative capital flows
    total_distributions: int = 0
    total_buybacks: int = 0
    total_exit_proceeds: int = 0
    total_invested_capital: int = 0

    # Market conditions
    inflation_rounds_remaining: int = 0
    credit_tightening_rounds_remaining: int = 0
    consolidation_boom_sector_id: Optional[str] = None
    consolidation_boom_rounds_remaining: int = 0

    # Distress tracking
    has_restructured: bool = False
    requires_restructuring: bool = False
    covenant_breach_rounds: int = 0
    bankrupt_round: Optional[int] = None

    # Event log: (round, event type, business id) used for cooldowns
    event_log: List[Tuple[int, str, Optional[str]]] = field(default_factory=list)

    # Per-round scratch
    current_event: Optional[GameEvent] = None
    actions_this_round: List[Dict[str, Any]] = field(default_factory=list)

    def clone(self) -> "GameState":
        return copy.deepcopy(self)

    @property
    def is_game_over(self) -> bool:
        return self.bankrupt_round is not None or self.round > self.max_rounds

    def get_business(self, business_id: str) -> Optional[Business]:
        for b in self.businesses:
            if b.id == business_id:
                return b
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GameState":
        """Load a saved game, normalizing every nested record."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known and v is not None}
        values["businesses"] = [_as_business(b) for b in data.get("businesses") or []]
        values["exited_businesses"] = [_as_business(b) for b in data.get("exited_businesses") or []]
        values["shared_services"] = [
            s if isinstance(s, SharedService) else SharedService(**s)
            for s in data.get("shared_services") or []
        ]
        values["integrated_platforms"] = [
            p if isinstance(p, IntegratedPlatform) else IntegratedPlatform(**p)
            for p in data.get("integrated_platforms") or []
        ]
        values["active_turnarounds"] = [
            t if isinstance(t, ActiveTurnaround) else ActiveTurnaround(**t)
            for t in data.get("active_turnarounds") or []
        ]
        values["metrics_history"] = [_as_history(h) for h in data.get("metrics_history") or []]
        ipo = data.get("ipo")
        values["ipo"] = ipo if ipo is None or isinstance(ipo, IpoState) else IpoState(**ipo)
        values["event_log"] = [tuple(entry) for entry in data.get("event_log") or []]
        event = data.get("current_event")
        values["current_event"] = _as_event(event) if event else None
        values["actions_this_round"] = list(data.get("actions_this_round") or [])
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _as_business(value: Any) -> Business:
    return value if isinstance(value, Business) else Business.from_dict(value)


def _as_history(value: Any) -> HistoricalMetrics:
    if isinstance(value, HistoricalMetrics):
        return value
    metrics = value.get("metrics") or {}
    if not isinstance(metrics, Metrics):
        known = {f.name for f in fields(Metrics)}
        metrics = Metrics(**{k: v for k, v in metrics.items() if k in known})
    return HistoricalMetrics(
        round=value.get("round", 0),
        metrics=metrics,
        fcf=value.get("fcf", 0.0),
        nopat=value.get("nopat", 0.0),
        invested_capital=value.get("invested_capital", 0),
    )


def _as_event(value: Any) -> GameEvent:
    if isinstance(value, GameEvent):
        return value
    data = dict(value)
    data["choices"] = [EventChoice(**c) for c in data.get("choices") or []]
    data["impacts"] = [EventImpact(**i) for i in data.get("impacts") or []]
    known = {f.name for f in fields(GameEvent)}
    return GameEvent(**{k: v for k, v in data.items() if k in known})


def get_active_businesses(state: GameState) -> List[Business]:
    return [b for b in state.businesses if b.status == "active"]


def get_all_deduped_businesses(state: GameState) -> List[Business]:
    """Every business ever owned, exited records winning; bolt-ons and merger inputs excluded."""
    skipped = ("integrated", "merged")
    exited_ids = {b.id for b in state.exited_businesses}
    return [b for b in state.exited_businesses if b.status not in skipped] + [
        b for b in state.businesses if b.id not in exited_ids and b.status not in skipped
    ]


def with_business(state: GameState, business: Business) -> GameState:
    """Return state with one business replaced by id."""
    return replace(state, businesses=[business if b.id == business.id else b for b in state.businesses])
