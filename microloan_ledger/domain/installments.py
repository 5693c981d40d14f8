"""Installment plan generation for new credits"""

from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from microloan_ledger.config import settings
from microloan_ledger.domain.exceptions import InvalidAmount
from microloan_ledger.domain.models import (
    OPEN_ENDED,
    Credit,
    CreditState,
    Installment,
    Modality,
    Periodicity,
    Scheduled,
)
from microloan_ledger.utils.date_utils import local_today
from microloan_ledger.utils.money import round2

PERIODS_PER_MONTH = {
    Periodicity.WEEKLY: 4,
    Periodicity.BIWEEKLY: 2,
    Periodicity.MONTHLY: 1,
}

PERIOD_DAYS = {
    Periodicity.WEEKLY: 7,
    Periodicity.BIWEEKLY: 15,
    Periodicity.MONTHLY: 30,
}


def periods_per_month(periodicity: Periodicity) -> int:
    return PERIODS_PER_MONTH[Periodicity(periodicity)]


def default_interest_rate(periodicity: Periodicity, installment_count: int, minimum: Optional[Decimal] = None) -> Decimal:
    """
    Proportional total rate with a floor.

    60% per month of term, never below 60%:
        weekly x 8   -> 60 * 8/4 = 120
        biweekly x 2 -> 60 * 2/2 = 60
        monthly x 1  -> max(60, 60) = 60
    """
    if minimum is None:
        minimum = settings.minimum_interest_rate
    count = max(int(installment_count), 1)
    proportional = minimum * count / periods_per_month(periodicity)
    return max(minimum, proportional)


def plan_total(principal: Decimal, rate: Decimal) -> Decimal:
    """Amount to repay: principal plus the total interest rate"""
    return round2(principal * (1 + Decimal(rate) / 100))


def split_fixed(total: Decimal, count: int) -> List[Decimal]:
    """
    Equal installments; the last one absorbs the rounding remainder.

    Example:
        1000.00 / 3 -> [333.33, 333.33, 333.34]
    """
    each = round2(total / count)
    amounts = [each] * count
    amounts[-1] = round2(amounts[-1] + total - sum(amounts))
    return amounts


def split_progressive(total: Decimal, count: int) -> List[Decimal]:
    """
    Increasing installments: installment i weighs i / (n(n+1)/2).

    Example:
        600.00 / 3 -> [100.00, 200.00, 300.00]
    """
    weight_sum = Decimal(count * (count + 1)) / 2
    amounts = [round2(total * i / weight_sum) for i in range(1, count + 1)]
    amounts[-1] = round2(amounts[-1] + total - sum(amounts))
    return amounts


def generate_installment_plan(
    total: Decimal,
    installment_count: int,
    periodicity: Periodicity = Periodicity.MONTHLY,
    modality: Modality = Modality.FIXED,
    start_date: Optional[date] = None,
) -> List[Installment]:
    """
    Split a repayment total into scheduled installments.

    Requirements:
    - fixed ("comun"): equal amounts, last absorbs the remainder
    - progressive: weights 1..n over n(n+1)/2, last absorbs the remainder
    - due dates every 7 / 15 / 30 days after start_date (weekly / biweekly / monthly)

    Args:
        total: Amount to repay (principal plus interest)
        installment_count: Number of installments (>= 1)
        periodicity: Spacing between due dates
        modality: FIXED or PROGRESSIVE
        start_date: Disbursement date (default: today)

    Returns:
        Installments numbered from 1, all pending
    """
    if installment_count < 1:
        raise InvalidAmount("A plan needs at least one installment", field="installment_count", value=installment_count)
    if modality is Modality.OPEN_ENDED:
        raise ValueError("open-ended credits have no installment plan")

    if start_date is None:
        start_date = local_today()

    total = round2(total)
    if modality is Modality.PROGRESSIVE:
        amounts = split_progressive(total, installment_count)
    else:
        amounts = split_fixed(total, installment_count)

    step = PERIOD_DAYS[Periodicity(periodicity)]
    return [
        Installment(
            number=i,
            scheduled_amount=amount,
            due=Scheduled(start_date + timedelta(days=step * i)),
        )
        for i, amount in enumerate(amounts, start=1)
    ]


def create_credit(
    credit_id: str,
    modality: Modality,
    principal: Decimal,
    periodicity: Optional[Periodicity] = None,
    installment_count: Optional[int] = None,
    interest_rate: Optional[Decimal] = None,
    disbursed_on: Optional[date] = None,
    commitment_date: Optional[date] = None,
    origin_credit_id: Optional[str] = None,
) -> Credit:
    """
    Build the snapshot of a freshly disbursed credit.

    Fixed/progressive credits get their full schedule; when no rate is
    given the proportional default applies. Open-ended credits get a single
    rolling installment for the capital and a per-cycle rate.
    """
    principal = round2(principal)
    if principal <= 0:
        raise InvalidAmount("Principal must be greater than zero", field="principal", value=principal)
    if disbursed_on is None:
        disbursed_on = local_today()

    if modality is Modality.OPEN_ENDED:
        rate = settings.open_ended_default_rate if interest_rate is None else Decimal(interest_rate)
        return Credit(
            credit_id=credit_id,
            modality=modality,
            principal=principal,
            interest_rate=rate,
            installments=(Installment(number=1, scheduled_amount=principal, due=OPEN_ENDED),),
            periodicity=Periodicity.MONTHLY,
            origin_credit_id=origin_credit_id,
            commitment_date=commitment_date,
            disbursed_on=disbursed_on,
            state=CreditState.PENDING,
        )

    periodicity = Periodicity(periodicity or Periodicity.MONTHLY)
    if not installment_count:
        raise InvalidAmount("Installment count is required", field="installment_count", value=installment_count)
    rate = default_interest_rate(periodicity, installment_count) if interest_rate is None else Decimal(interest_rate)
    installments = generate_installment_plan(
        plan_total(principal, rate),
        installment_count,
        periodicity=periodicity,
        modality=modality,
        start_date=disbursed_on,
    )
    return Credit(
        credit_id=credit_id,
        modality=modality,
        principal=principal,
        interest_rate=rate,
        installments=tuple(installments),
        periodicity=periodicity,
        installment_count=installment_count,
        origin_credit_id=origin_credit_id,
        commitment_date=commitment_date,
        disbursed_on=disbursed_on,
        state=CreditState.PENDING,
    )
