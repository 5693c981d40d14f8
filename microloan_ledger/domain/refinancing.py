"""Refinancing pricer: new fixed-installment plan from an outstanding balance"""

from decimal import Decimal
from typing import Any

from microloan_ledger.config import settings
from microloan_ledger.domain.exceptions import InvalidRefinancingInput
from microloan_ledger.domain.installments import periods_per_month
from microloan_ledger.domain.models import Periodicity, RefinancingPlan, RefinancingTier
from microloan_ledger.utils.money import round2, to_decimal


def monthly_rate_for_tier(
    tier: RefinancingTier,
    manual_rate: Any = None,
    manual_rate_authorized: bool = False,
) -> Decimal:
    """
    P1 -> 25, P2 -> 15, manual -> caller-supplied (>= 0).

    Manual pricing needs an authorization flag from the caller; rate
    ceilings are enforced by whoever grants that flag, not here.

    Raises:
        InvalidRefinancingInput: unknown tier, unauthorized or negative manual rate
    """
    try:
        tier = RefinancingTier(tier)
    except ValueError:
        raise InvalidRefinancingInput(f"Unknown refinancing tier {tier!r}", field="tier", value=tier)

    if tier is RefinancingTier.P1:
        return settings.refinancing_tier_p1_rate
    if tier is RefinancingTier.P2:
        return settings.refinancing_tier_p2_rate

    if not manual_rate_authorized:
        raise InvalidRefinancingInput(
            "Manual refinancing rate requires authorization",
            field="tier",
            value=tier.value,
            authorized=False,
        )
    if manual_rate is None:
        raise InvalidRefinancingInput("Manual tier needs a rate", field="manual_rate", value=None)
    rate = to_decimal(manual_rate)
    if rate < 0:
        raise InvalidRefinancingInput("Manual rate must be >= 0", field="manual_rate", value=rate, bound=Decimal("0"))
    return rate


def price(
    outstanding_balance: Any,
    tier: RefinancingTier,
    periodicity: Periodicity,
    installment_count: int,
    manual_rate: Any = None,
    manual_rate_authorized: bool = False,
) -> RefinancingPlan:
    """
    Price a refinancing.

    period_rate = monthly_rate / periods per month (4 / 2 / 1)
    total_interest_pct = period_rate * installment_count
    total_interest = round2(balance * total_interest_pct / 100)
    new_total = balance + total_interest
    installment_amount = round2(new_total / installment_count)

    Example:
        8000 at P2, monthly, 4 installments -> 15% x 4 = 60%,
        interest 4800.00, total 12800.00, installment 3200.00

    The balance must already be modality-aware (see accrual.outstanding_balance);
    this function only sees a number.

    Raises:
        InvalidRefinancingInput: count < 1, negative balance, bad tier or rate
    """
    if isinstance(installment_count, bool) or not isinstance(installment_count, int) or installment_count < 1:
        raise InvalidRefinancingInput(
            "Installment count must be a whole number >= 1",
            field="installment_count",
            value=installment_count,
            bound=1,
        )
    balance = round2(outstanding_balance)
    if balance < 0:
        raise InvalidRefinancingInput(
            "Outstanding balance cannot be negative",
            field="outstanding_balance",
            value=balance,
            bound=Decimal("0"),
        )
    try:
        periodicity = Periodicity(periodicity)
    except ValueError:
        raise InvalidRefinancingInput(f"Unknown periodicity {periodicity!r}", field="periodicity", value=periodicity)

    monthly_rate = monthly_rate_for_tier(tier, manual_rate, manual_rate_authorized)
    period_rate = monthly_rate / periods_per_month(periodicity)
    total_interest_pct = period_rate * installment_count
    total_interest = round2(balance * total_interest_pct / 100)
    new_total = balance + total_interest

    return RefinancingPlan(
        outstanding_balance=balance,
        tier=RefinancingTier(tier),
        periodicity=periodicity,
        installment_count=installment_count,
        monthly_rate=monthly_rate,
        period_rate=period_rate,
        total_interest_pct=total_interest_pct,
        total_interest_amount=total_interest,
        new_total=new_total,
        installment_amount=round2(new_total / installment_count),
    )
