"""Discount policy: mora-only or total-outstanding discounts"""

from decimal import Decimal
from typing import Any

from microloan_ledger.domain.exceptions import InvalidDiscount
from microloan_ledger.domain.models import DiscountResult, DiscountScope, Modality, ZERO
from microloan_ledger.utils.money import clamp_non_negative, round2, to_decimal

HUNDRED = Decimal("100")


def mora_discount_is_percentage(modality: Modality) -> bool:
    """Open-ended credits discount mora by percentage; fixed/progressive by absolute amount"""
    return modality is Modality.OPEN_ENDED


def validate_discount(scope: DiscountScope, value: Decimal, mora_base: Decimal, percentage: bool) -> None:
    """
    Raises:
        InvalidDiscount: carrying the bound the value broke
    """
    if value < 0:
        raise InvalidDiscount("Discount cannot be negative", scope=scope.value, value=value, bound=ZERO)
    if scope is DiscountScope.NONE:
        if value != 0:
            raise InvalidDiscount("No discount scope selected", scope=scope.value, value=value, bound=ZERO)
        return
    if scope is DiscountScope.TOTAL and not percentage:
        raise InvalidDiscount(
            "Total-scope discounts are percentages", scope=scope.value, value=value, bound=HUNDRED
        )
    if percentage and value > HUNDRED:
        raise InvalidDiscount(
            "Discount must be a percentage between 0 and 100", scope=scope.value, value=value, bound=HUNDRED
        )
    if not percentage and value > mora_base:
        raise InvalidDiscount(
            "Discount cannot exceed the mora owed", scope=scope.value, value=value, bound=mora_base
        )


def apply_discount(
    principal_base: Any,
    mora_base: Any,
    scope: DiscountScope,
    value: Any,
    percentage: bool = True,
) -> DiscountResult:
    """
    Apply a discount to the outstanding bases.

    - mora: discount = min(value as amount, mora). Principal untouched.
    - total: raw = (principal + mora) * value / 100, consumed against mora
      first and the remainder against principal. Whatever exceeds both
      bases is dropped.

    Negative bases (inconsistent upstream data) are floored to zero.

    Raises:
        InvalidDiscount: value outside [0, 100] (percentage) or [0, mora] (absolute)
    """
    principal = clamp_non_negative(round2(principal_base))
    mora = clamp_non_negative(round2(mora_base))
    value = to_decimal(value)
    scope = DiscountScope(scope)

    validate_discount(scope, value, mora, percentage)

    discount_mora = ZERO
    discount_principal = ZERO

    if scope is DiscountScope.MORA:
        raw = round2(mora * value / HUNDRED) if percentage else round2(value)
        discount_mora = min(raw, mora)
    elif scope is DiscountScope.TOTAL:
        raw = round2((principal + mora) * value / HUNDRED)
        discount_mora = min(raw, mora)
        discount_principal = min(raw - discount_mora, principal)

    return DiscountResult(
        discount_mora=discount_mora,
        discount_principal=discount_principal,
        net_mora=mora - discount_mora,
        net_principal=principal - discount_principal,
    )
