"""
Distress evaluation.

Maps portfolio leverage to one of four covenant states and the capital
actions each state still permits.
"""

import math
from dataclasses import dataclass
from typing import Dict

from config import CONFIG
from models import GameState, get_active_businesses, round_half_up


@dataclass(frozen=True)
class DistressRestrictions:
    can_acquire: bool
    can_take_debt: bool
    can_distribute: bool
    can_buyback: bool
    interest_penalty: float


_LABELS = {
    "comfortable": "Healthy",
    "elevated": "Elevated",
    "stressed": "Covenant Watch",
    "breach": "COVENANT BREACH",
}

_DESCRIPTIONS = {
    "comfortable": "Leverage is comfortable. All capital actions available.",
    "elevated": "Leverage is elevated. Lenders are watching, but nothing is restricted yet.",
    "stressed": "Covenant watch: new debt is blocked and lenders add a 1% interest penalty.",
    "breach": "Covenant breach: acquisitions, new debt, distributions and buybacks are blocked. "
              "Lenders add a 2% interest penalty. Stay here too long and they call the loans.",
}


def calculate_distress_level(net_debt_to_ebitda: float, total_debt: float = 0, total_ebitda: float = 0) -> str:
    """Threshold lookup; never raises."""
    d = CONFIG.distress
    if total_debt <= 0 and net_debt_to_ebitda <= 0:
        return "comfortable"
    if total_ebitda <= 0 and total_debt > 0:
        return "breach"
    if net_debt_to_ebitda >= d.breach_threshold:
        return "breach"
    if net_debt_to_ebitda >= d.stressed_threshold:
        return "stressed"
    if net_debt_to_ebitda >= d.elevated_threshold:
        return "elevated"
    return "comfortable"


def get_distress_restrictions(level: str) -> DistressRestrictions:
    d = CONFIG.distress
    if level == "breach":
        return DistressRestrictions(False, False, False, False, d.breach_interest_penalty)
    if level == "stressed":
        return DistressRestrictions(True, False, True, True, d.stressed_interest_penalty)
    return DistressRestrictions(True, True, True, True, 0.0)


def get_distress_label(level: str) -> str:
    return _LABELS.get(level, "Healthy")


def get_distress_description(level: str) -> str:
    return _DESCRIPTIONS.get(level, _DESCRIPTIONS["comfortable"])


def calculate_covenant_headroom(state: GameState) -> Dict[str, float]:
    """
    Distance to the breach covenant.

    Returns current leverage, the cash that could be spent (or must be found)
    before leverage hits the breach threshold, the EBITDA decline that would
    trigger a breach, and next round's scheduled debt service.
    """
    active = get_active_businesses(state)
    total_ebitda = sum(b.ebitda for b in active)
    total_debt = state.total_debt + sum(b.seller_note_balance for b in active)
    net_debt = max(0, total_debt - state.cash)
    breach = CONFIG.distress.breach_threshold

    if total_ebitda > 0:
        leverage = net_debt / total_ebitda
    else:
        leverage = math.inf if total_debt > 0 else 0.0

    cash_headroom = state.cash - (total_debt - breach * total_ebitda)
    ebitda_headroom = total_ebitda - net_debt / breach if net_debt > 0 else float(total_ebitda)

    penalty = get_distress_restrictions(calculate_distress_level(leverage, total_debt, total_ebitda)).interest_penalty
    debt_service = 0
    if state.total_debt > 0:
        debt_service += round_half_up(state.total_debt * (state.interest_rate + penalty))
        if state.holdco_loan_rounds_remaining > 0:
            debt_service += round_half_up(state.total_debt / state.holdco_loan_rounds_remaining)
    for b in active:
        if b.seller_note_balance > 0 and b.seller_note_rounds_remaining > 0:
            debt_service += round_half_up(b.seller_note_balance * b.seller_note_rate)
            debt_service += round_half_up(b.seller_note_balance / b.seller_note_rounds_remaining)
        if b.bank_debt_balance > 0 and b.bank_debt_rounds_remaining > 0:
            debt_service += round_half_up(b.bank_debt_balance * (b.bank_debt_rate or state.interest_rate))
            debt_service += round_half_up(b.bank_debt_balance / b.bank_debt_rounds_remaining)

    return {
        "leverage": leverage,
        "breach_threshold": breach,
        "cash_headroom": cash_headroom,
        "ebitda_headroom": ebitda_headroom,
        "next_round_debt_service": debt_service,
    }
