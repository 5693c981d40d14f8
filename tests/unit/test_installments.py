"""Unit tests for installment plan generation"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from microloan_ledger.domain.exceptions import InvalidAmount
from microloan_ledger.domain.installments import (
    create_credit,
    default_interest_rate,
    generate_installment_plan,
    split_progressive,
)
from microloan_ledger.domain.models import CreditState, Modality, Periodicity


def test_fixed_credit_scenario(fixed_credit):
    """10,000 at 50% over 5 -> five installments of 3,000"""
    assert len(fixed_credit.installments) == 5
    assert all(inst.scheduled_amount == Decimal("3000.00") for inst in fixed_credit.installments)
    assert fixed_credit.state == CreditState.PENDING


def test_generate_installment_plan_rounding():
    """Last installment absorbs the remainder"""
    installments = generate_installment_plan(Decimal("1000.00"), 3, start_date=date(2025, 1, 1))

    assert [i.scheduled_amount for i in installments] == [Decimal("333.33"), Decimal("333.33"), Decimal("333.34")]
    assert sum(i.scheduled_amount for i in installments) == Decimal("1000.00")


@pytest.mark.parametrize(
    "periodicity,step",
    [(Periodicity.WEEKLY, 7), (Periodicity.BIWEEKLY, 15), (Periodicity.MONTHLY, 30)],
)
def test_generate_installment_plan_dates(periodicity, step):
    start = date(2025, 1, 1)
    installments = generate_installment_plan(Decimal("400"), 4, periodicity=periodicity, start_date=start)

    assert [i.due_on for i in installments] == [start + timedelta(days=step * k) for k in range(1, 5)]


def test_progressive_split_weights():
    assert split_progressive(Decimal("600.00"), 3) == [Decimal("100.00"), Decimal("200.00"), Decimal("300.00")]


def test_progressive_split_remainder():
    amounts = split_progressive(Decimal("1000.00"), 3)

    assert amounts[0] < amounts[1] < amounts[2]
    assert sum(amounts) == Decimal("1000.00")


def test_generate_installment_plan_needs_one_installment():
    with pytest.raises(InvalidAmount):
        generate_installment_plan(Decimal("1000"), 0)


@pytest.mark.parametrize(
    "periodicity,count,expected",
    [
        (Periodicity.WEEKLY, 8, Decimal("120")),
        (Periodicity.WEEKLY, 2, Decimal("60")),
        (Periodicity.BIWEEKLY, 6, Decimal("180")),
        (Periodicity.MONTHLY, 1, Decimal("60")),
    ],
)
def test_default_interest_rate(periodicity, count, expected):
    """60% per month of term, never below 60%"""
    assert default_interest_rate(periodicity, count) == expected


def test_create_credit_uses_default_rate():
    credit = create_credit(
        "C-1",
        Modality.PROGRESSIVE,
        Decimal("1000"),
        periodicity=Periodicity.WEEKLY,
        installment_count=8,
        disbursed_on=date(2025, 1, 1),
    )

    assert credit.interest_rate == Decimal("120")
    assert sum(i.scheduled_amount for i in credit.installments) == Decimal("2200.00")
    assert credit.installments[0].scheduled_amount < credit.installments[-1].scheduled_amount


def test_create_open_ended_credit():
    credit = create_credit("L-1", Modality.OPEN_ENDED, Decimal("5000"), disbursed_on=date(2025, 1, 15))

    assert credit.is_open_ended
    assert len(credit.installments) == 1
    assert credit.installments[0].is_open_ended
    assert credit.installments[0].due_on is None
    assert credit.interest_rate == Decimal("60")
    assert credit.anchor_date == date(2025, 1, 15)


def test_create_credit_rejects_non_positive_principal():
    with pytest.raises(InvalidAmount):
        create_credit("C-1", Modality.FIXED, Decimal("0"), installment_count=3)
