"""Unit tests for the discount policy"""

import pytest
from decimal import Decimal

from microloan_ledger.domain.discounts import apply_discount, mora_discount_is_percentage
from microloan_ledger.domain.exceptions import InvalidDiscount
from microloan_ledger.domain.models import DiscountScope, Modality


def test_mora_percentage_discount():
    """Mora 200 at 50% -> 100 off, principal untouched"""
    result = apply_discount(Decimal("3000"), Decimal("200"), DiscountScope.MORA, Decimal("50"), percentage=True)

    assert result.discount_amount == Decimal("100.00")
    assert result.net_mora == Decimal("100.00")
    assert result.discount_principal == Decimal("0.00")
    assert result.net_principal == Decimal("3000.00")


def test_mora_absolute_discount():
    result = apply_discount(Decimal("3000"), Decimal("200"), DiscountScope.MORA, Decimal("80"), percentage=False)

    assert result.discount_mora == Decimal("80.00")
    assert result.net_base == Decimal("3120.00")


def test_total_discount_consumes_mora_first():
    """10% of 3,200 = 320: 200 against mora, 120 against principal"""
    result = apply_discount(Decimal("3000"), Decimal("200"), DiscountScope.TOTAL, Decimal("10"))

    assert result.discount_mora == Decimal("200.00")
    assert result.discount_principal == Decimal("120.00")
    assert result.net_base == Decimal("2880.00")


def test_total_discount_full_wipes_balance():
    result = apply_discount(Decimal("3000"), Decimal("200"), DiscountScope.TOTAL, Decimal("100"))

    assert result.net_base == Decimal("0.00")
    assert result.discount_amount == Decimal("3200.00")


@pytest.mark.parametrize("scope", [DiscountScope.NONE, DiscountScope.MORA, DiscountScope.TOTAL])
def test_zero_discount_is_identity(scope):
    """A zero value leaves both bases intact whatever the scope"""
    result = apply_discount(Decimal("1500.50"), Decimal("75.25"), scope, Decimal("0"))

    assert result.discount_amount == Decimal("0")
    assert result.net_principal == Decimal("1500.50")
    assert result.net_mora == Decimal("75.25")


def test_percentage_above_100_rejected():
    with pytest.raises(InvalidDiscount) as exc_info:
        apply_discount(Decimal("3000"), Decimal("200"), DiscountScope.TOTAL, Decimal("120"))

    assert exc_info.value.context["bound"] == Decimal("100")


def test_absolute_above_mora_rejected():
    """The offending bound is the mora actually owed"""
    with pytest.raises(InvalidDiscount) as exc_info:
        apply_discount(Decimal("3000"), Decimal("200"), DiscountScope.MORA, Decimal("250"), percentage=False)

    assert exc_info.value.context["bound"] == Decimal("200.00")


def test_negative_discount_rejected():
    with pytest.raises(InvalidDiscount):
        apply_discount(Decimal("3000"), Decimal("200"), DiscountScope.MORA, Decimal("-5"))


def test_value_without_scope_rejected():
    with pytest.raises(InvalidDiscount):
        apply_discount(Decimal("3000"), Decimal("200"), DiscountScope.NONE, Decimal("10"))


def test_negative_bases_floor_to_zero():
    """Inconsistent upstream figures are clamped, not propagated"""
    result = apply_discount(Decimal("-10"), Decimal("-5"), DiscountScope.TOTAL, Decimal("50"))

    assert result.net_base == Decimal("0")
    assert result.discount_amount == Decimal("0")


def test_mora_discount_style_by_modality():
    assert mora_discount_is_percentage(Modality.OPEN_ENDED)
    assert not mora_discount_is_percentage(Modality.FIXED)
    assert not mora_discount_is_percentage(Modality.PROGRESSIVE)
