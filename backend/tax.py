"""
Portfolio tax engine.

Tax is computed once for the whole holdco: loss-making opcos offset
profitable ones, and holdco plus opco interest and shared-services costs
are deductible.
"""

from dataclasses import asdict, dataclass
from typing import Dict, Iterable

from config import CONFIG
from models import Business, round_half_up


@dataclass(slots=True)
class PortfolioTaxBreakdown:
    gross_ebitda: int  # Sum of non-negative EBITDA only
    loss_offset: int  # Absolute value of negative EBITDA
    net_ebitda: int
    holdco_interest: int
    opco_interest: int
    total_interest: int
    shared_services_cost: int
    taxable_income: int  # max(0, net - interest - services)
    tax_amount: int
    effective_tax_rate: float  # tax / gross (0 without gross EBITDA)
    interest_tax_shield: int
    shared_services_tax_shield: int
    loss_offset_tax_shield: int
    total_tax_savings: int  # naive tax - actual tax

    def to_dict(self) -> Dict:
        return asdict(self)


def calculate_portfolio_tax(
    businesses: Iterable[Business],
    holdco_debt: float = 0,
    holdco_interest_rate: float = 0.0,
    shared_services_cost: float = 0,
) -> PortfolioTaxBreakdown:
    """
    Compute portfolio tax and the per-source shield attribution.

    Shields are attributed by deducting from gross (not net) EBITDA in the
    fixed order losses -> interest -> shared services. Under saturation the
    shields therefore need not sum to total_tax_savings.
    """
    rate = CONFIG.tax.tax_rate
    active = [b for b in businesses if b.status == "active"]

    gross_ebitda = 0
    loss_offset = 0
    for b in active:
        if b.ebitda >= 0:
            gross_ebitda += b.ebitda
        else:
            loss_offset += abs(b.ebitda)
    net_ebitda = gross_ebitda - loss_offset

    holdco_interest = round_half_up(holdco_debt * holdco_interest_rate)
    opco_interest = sum(
        round_half_up(b.seller_note_balance * b.seller_note_rate)
        + round_half_up(b.bank_debt_balance * b.bank_debt_rate)
        for b in active
    )
    total_interest = holdco_interest + opco_interest
    shared_services_cost = round_half_up(shared_services_cost)

    taxable_income = max(0, net_ebitda - total_interest - shared_services_cost)
    tax_amount = round_half_up(taxable_income * rate)

    naive_tax = round_half_up(max(0, gross_ebitda) * rate)
    effective_tax_rate = tax_amount / gross_ebitda if gross_ebitda > 0 else 0.0

    remaining = max(0, gross_ebitda)

    loss_deduction = min(remaining, loss_offset)
    loss_offset_tax_shield = round_half_up(loss_deduction * rate)
    remaining -= loss_deduction

    interest_deduction = min(remaining, total_interest)
    interest_tax_shield = round_half_up(interest_deduction * rate)
    remaining -= interest_deduction

    ss_deduction = min(remaining, shared_services_cost)
    shared_services_tax_shield = round_half_up(ss_deduction * rate)

    return PortfolioTaxBreakdown(
        gross_ebitda=gross_ebitda,
        loss_offset=loss_offset,
        net_ebitda=net_ebitda,
        holdco_interest=holdco_interest,
        opco_interest=opco_interest,
        total_interest=total_interest,
        shared_services_cost=shared_services_cost,
        taxable_income=taxable_income,
        tax_amount=tax_amount,
        effective_tax_rate=effective_tax_rate,
        interest_tax_shield=interest_tax_shield,
        shared_services_tax_shield=shared_services_tax_shield,
        loss_offset_tax_shield=loss_offset_tax_shield,
        total_tax_savings=naive_tax - tax_amount,
    )
