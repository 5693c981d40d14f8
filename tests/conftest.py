"""Pytest fixtures for testing"""

import pytest
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal

from microloan_ledger.domain.installments import create_credit
from microloan_ledger.domain.models import (
    OPEN_ENDED,
    Credit,
    CreditState,
    Installment,
    Modality,
    Payment,
    PaymentMode,
    Periodicity,
    Scheduled,
)


def noon(day: date) -> datetime:
    """Payment timestamp that lands on ``day`` at the engine's UTC-3 offset"""
    return datetime(day.year, day.month, day.day, 15, 0)


@pytest.fixture
def today() -> date:
    return date(2025, 2, 10)


@pytest.fixture
def fixed_credit() -> Credit:
    """10,000 at 50% total over 5 monthly installments of 3,000, disbursed 2025-01-01"""
    return create_credit(
        "C-100",
        Modality.FIXED,
        Decimal("10000"),
        periodicity=Periodicity.MONTHLY,
        installment_count=5,
        interest_rate=Decimal("50"),
        disbursed_on=date(2025, 1, 1),
    )


@pytest.fixture
def overdue_credit(fixed_credit: Credit) -> Credit:
    """Same credit with installment #1 (due 2025-01-31) carrying 200.00 of mora"""
    first = replace(fixed_credit.installments[0], late_fee=Decimal("200.00"))
    return replace(fixed_credit, installments=(first,) + fixed_credit.installments[1:])


@pytest.fixture
def open_ended_credit() -> Credit:
    """Libre credit: capital 5,000 at 20% per cycle, anchored 2025-01-15"""
    return Credit(
        credit_id="L-200",
        modality=Modality.OPEN_ENDED,
        principal=Decimal("5000.00"),
        interest_rate=Decimal("20"),
        installments=(Installment(number=1, scheduled_amount=Decimal("5000.00"), due=OPEN_ENDED),),
        commitment_date=date(2025, 1, 15),
        disbursed_on=date(2025, 1, 15),
        state=CreditState.PENDING,
    )


@pytest.fixture
def make_payment():
    """Factory for Payment records"""

    def _make(
        payment_id: str,
        amount: str,
        day: date,
        installment_number: int = 1,
        mode: PaymentMode = PaymentMode.PARTIAL,
        **kwargs,
    ) -> Payment:
        return Payment(
            payment_id=payment_id,
            installment_number=installment_number,
            amount=Decimal(amount),
            paid_at=noon(day),
            mode=mode,
            **kwargs,
        )

    return _make


@pytest.fixture
def scheduled_installment() -> Installment:
    return Installment(number=1, scheduled_amount=Decimal("3000.00"), due=Scheduled(date(2025, 1, 31)))
