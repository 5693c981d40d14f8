"""Unit tests for refinancing pricing"""

import pytest
from decimal import Decimal

from microloan_ledger.domain.exceptions import InvalidRefinancingInput
from microloan_ledger.domain.refinancing import monthly_rate_for_tier, price
from microloan_ledger.domain.models import Periodicity, RefinancingTier


def test_price_p2_monthly_scenario():
    """8,000 at P2 over 4 monthly installments"""
    plan = price(Decimal("8000"), RefinancingTier.P2, Periodicity.MONTHLY, 4)

    assert plan.monthly_rate == Decimal("15")
    assert plan.period_rate == Decimal("15")
    assert plan.total_interest_pct == Decimal("60")
    assert plan.total_interest_amount == Decimal("4800.00")
    assert plan.new_total == Decimal("12800.00")
    assert plan.installment_amount == Decimal("3200.00")


def test_price_p1_weekly():
    """Weekly splits the monthly rate in four: 25 / 4 = 6.25% per period"""
    plan = price(Decimal("1000"), RefinancingTier.P1, Periodicity.WEEKLY, 8)

    assert plan.period_rate == Decimal("6.25")
    assert plan.total_interest_pct == Decimal("50")
    assert plan.new_total == Decimal("1500.00")
    assert plan.installment_amount == Decimal("187.50")


@pytest.mark.parametrize(
    "balance,periodicity,count",
    [
        ("1000.01", Periodicity.WEEKLY, 3),
        ("7777.77", Periodicity.BIWEEKLY, 7),
        ("123.45", Periodicity.MONTHLY, 6),
    ],
)
def test_installments_add_up_to_new_total(balance, periodicity, count):
    """installment x count matches new_total within a cent per installment"""
    plan = price(Decimal(balance), RefinancingTier.P2, periodicity, count)

    assert abs(plan.installment_amount * count - plan.new_total) <= Decimal("0.01") * count


def test_zero_balance_allowed():
    plan = price(Decimal("0"), RefinancingTier.P1, Periodicity.MONTHLY, 2)

    assert plan.new_total == Decimal("0.00")


def test_manual_rate_requires_authorization():
    with pytest.raises(InvalidRefinancingInput) as exc_info:
        price(Decimal("8000"), RefinancingTier.MANUAL, Periodicity.MONTHLY, 4, manual_rate=Decimal("10"))

    assert exc_info.value.context["authorized"] is False


def test_manual_rate_has_no_upper_bound():
    plan = price(
        Decimal("1000"),
        RefinancingTier.MANUAL,
        Periodicity.MONTHLY,
        2,
        manual_rate=Decimal("300"),
        manual_rate_authorized=True,
    )

    assert plan.total_interest_pct == Decimal("600")
    assert plan.new_total == Decimal("7000.00")


def test_manual_rate_must_be_non_negative():
    with pytest.raises(InvalidRefinancingInput):
        monthly_rate_for_tier(RefinancingTier.MANUAL, Decimal("-1"), manual_rate_authorized=True)


def test_unknown_tier_rejected():
    with pytest.raises(InvalidRefinancingInput):
        monthly_rate_for_tier("P9")


@pytest.mark.parametrize("count", [0, -1])
def test_installment_count_must_be_positive(count):
    with pytest.raises(InvalidRefinancingInput) as exc_info:
        price(Decimal("8000"), RefinancingTier.P2, Periodicity.MONTHLY, count)

    assert exc_info.value.context["field"] == "installment_count"


def test_negative_balance_rejected():
    with pytest.raises(InvalidRefinancingInput) as exc_info:
        price(Decimal("-1"), RefinancingTier.P2, Periodicity.MONTHLY, 4)

    assert exc_info.value.context["field"] == "outstanding_balance"
