"""Payment allocation against an installment or an open-ended cycle"""

import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from microloan_ledger.config import settings
from microloan_ledger.domain.accrual import OpenEndedLedger, late_fee_due, latest_payment, principal_due
from microloan_ledger.domain.cycles import resolve_cycle
from microloan_ledger.domain.discounts import apply_discount
from microloan_ledger.domain.exceptions import (
    DuplicatePayment,
    InconsistentBalance,
    InvalidAmount,
    InvalidDiscount,
    OutOfOrderPayment,
    PartialNotAllowed,
)
from microloan_ledger.domain.models import (
    AllocationResult,
    Credit,
    CreditState,
    DiscountResult,
    DiscountScope,
    Installment,
    InstallmentState,
    OpenEndedPartialMode,
    Payment,
    PaymentMode,
    ZERO,
)
from microloan_ledger.domain.states import (
    aggregate_state,
    can_transition,
    ensure_operation_allowed,
    installment_state,
)
from microloan_ledger.utils.date_utils import as_date, as_utc
from microloan_ledger.utils.money import round2

logger = logging.getLogger(__name__)


def allocate(
    credit: Credit,
    payment: Payment,
    today: Optional[date] = None,
    tolerance: Optional[Decimal] = None,
) -> AllocationResult:
    """
    Apply a new payment to one installment (fixed/progressive) or to the
    rolling installment of an open-ended credit.

    Modes:
    - total: the amount must equal the net base after discount (principal +
      mora, plus interest for open-ended); the installment ends paid.
      Always legal, whatever the cycle.
    - partial: late fee first, then principal (open-ended: mora, then
      interest oldest cycle first, then capital). Fixed/progressive accepts
      any amount > 0 on an unpaid installment; anything above the
      recommended total is returned as ``surplus`` and flagged, not
      rejected. Open-ended partials are rejected in the last cycle.

    Only new payments are accepted: an identifier already present in the
    snapshot is rejected, never upserted.

    Raises:
        DuplicatePayment, CreditLocked, InvalidAmount, InvalidDiscount,
        PartialNotAllowed, InconsistentBalance, OutOfOrderPayment (open-ended
        payment dated before the newest recorded one)
    """
    today = as_date(payment.paid_at) if today is None else today
    if tolerance is None:
        tolerance = settings.balance_tolerance

    if any(p.payment_id == payment.payment_id for p in credit.payments):
        raise DuplicatePayment(
            f"Payment {payment.payment_id} is already recorded",
            payment_id=payment.payment_id,
            credit_id=credit.credit_id,
        )
    ensure_operation_allowed(credit, "payment", today)

    if payment.amount < 0 or (payment.mode is PaymentMode.PARTIAL and payment.amount == 0):
        raise InvalidAmount("Payment amount must be greater than zero", field="amount", value=payment.amount)
    if payment.mode is PaymentMode.PARTIAL and (
        payment.discount_scope is not DiscountScope.NONE or payment.discount_value != 0
    ):
        raise InvalidDiscount(
            "Discounts only apply to full settlement",
            scope=payment.discount_scope.value,
            value=payment.discount_value,
            bound=ZERO,
        )

    if credit.is_open_ended:
        return _allocate_open_ended(credit, payment, today, tolerance)
    return _allocate_installment(credit, payment, today, tolerance)


def _check_settlement_amount(amount: Decimal, net_base: Decimal, tolerance: Decimal) -> None:
    if abs(round2(amount) - net_base) > tolerance:
        raise InvalidAmount(
            "Full settlement must match the amount due after discount",
            field="amount",
            expected=net_base,
            received=amount,
        )


def _allocate_installment(credit: Credit, payment: Payment, today: date, tolerance: Decimal) -> AllocationResult:
    try:
        inst = credit.installment(payment.installment_number)
    except KeyError:
        raise InvalidAmount(
            f"Credit {credit.credit_id} has no installment #{payment.installment_number}",
            field="installment_number",
            value=payment.installment_number,
        )
    before = installment_state(inst, today)
    principal = principal_due(inst)
    fee = late_fee_due(inst)

    if before is InstallmentState.PAID and payment.mode is PaymentMode.TOTAL:
        raise InvalidAmount(
            f"Installment #{inst.number} is already paid",
            field="installment_number",
            state=before.value,
            expected=ZERO,
            received=payment.amount,
        )

    if payment.mode is PaymentMode.TOTAL:
        # mora discounts are absolute amounts here; total-scope discounts are percentages
        discount = apply_discount(
            principal,
            fee,
            payment.discount_scope,
            payment.discount_value,
            percentage=payment.discount_scope is DiscountScope.TOTAL,
        )
        _check_settlement_amount(payment.amount, discount.net_base, tolerance)
        updated = replace(
            inst,
            discount=inst.discount + discount.discount_principal,
            paid_amount=inst.paid_amount + discount.net_principal,
            late_fee_discount=inst.late_fee_discount + discount.discount_mora,
            late_fee_paid=inst.late_fee_paid + discount.net_mora,
        )
        applied_fee, applied_principal, surplus = discount.net_mora, discount.net_principal, ZERO
        exceeds = False
    else:
        if before is InstallmentState.PAID:
            raise PartialNotAllowed(
                f"Installment #{inst.number} is already paid",
                installment=inst.number,
                state=before.value,
            )
        amount = round2(payment.amount)
        applied_fee = min(amount, fee)
        applied_principal = min(amount - applied_fee, principal)
        surplus = amount - applied_fee - applied_principal
        exceeds = amount > principal + fee
        discount = apply_discount(principal, fee, DiscountScope.NONE, ZERO)
        updated = replace(
            inst,
            paid_amount=inst.paid_amount + applied_principal,
            late_fee_paid=inst.late_fee_paid + applied_fee,
        )

    after = installment_state(updated, today)
    if not can_transition(before, after):
        raise InconsistentBalance(
            f"Installment #{inst.number} cannot move from {before.value} to {after.value}",
            field="state",
            reported=before.value,
            expected=after.value,
        )
    updated = replace(updated, state=after)

    states = [after if i.number == inst.number else installment_state(i, today) for i in credit.installments]
    result = AllocationResult(
        payment=payment,
        installment=updated,
        state_before=before,
        state_after=after,
        applied_late_fee=applied_fee,
        applied_principal=applied_principal,
        discount=discount,
        surplus=surplus,
        exceeds_recommendation=exceeds,
        settled=after is InstallmentState.PAID,
        credit_state=aggregate_state(states),
    )
    logger.debug(
        "Installment payment allocated",
        extra={
            "credit_id": credit.credit_id,
            "installment": inst.number,
            "state_after": after.value,
            "surplus": str(surplus),
        },
    )
    return result


def _open_ended_state(credit: Credit, inst: Installment) -> InstallmentState:
    if inst.state is InstallmentState.PAID:
        return InstallmentState.PAID
    if inst.paid_amount > 0 or credit.payments:
        return InstallmentState.PARTIAL
    return InstallmentState.PENDING


def _allocate_open_ended(credit: Credit, payment: Payment, today: date, tolerance: Decimal) -> AllocationResult:
    # the stored record is rebuilt from a replay, so the log must stay in date order
    latest = latest_payment(credit)
    if latest is not None and as_utc(payment.paid_at) < as_utc(latest.paid_at):
        raise OutOfOrderPayment(
            f"Payment {payment.payment_id} is dated before the last recorded payment {latest.payment_id}",
            payment_id=payment.payment_id,
            paid_at=payment.paid_at,
            latest_paid_at=latest.paid_at,
        )

    inst = credit.installments[0]
    before = _open_ended_state(credit, inst)
    ledger = OpenEndedLedger.replay(credit, today)
    cycle = resolve_cycle(credit.anchor_date, today, ledger.max_cycles)
    due_before = ledger.total_due

    if payment.mode is PaymentMode.PARTIAL:
        if cycle.index >= ledger.max_cycles:
            raise PartialNotAllowed(
                f"Partial payments are not allowed in cycle {cycle.index}; settle the credit in full",
                cycle_index=cycle.index,
                credit_id=credit.credit_id,
            )
    else:
        discount = ledger.preview_discount(payment.discount_scope, payment.discount_value)
        _check_settlement_amount(payment.amount, discount.net_base, tolerance)

    application = ledger.apply(payment.amount, payment.discount_scope, payment.discount_value)
    settled = ledger.is_settled
    after = InstallmentState.PAID if settled else InstallmentState.PARTIAL

    principal = round2(inst.scheduled_amount)
    updated = replace(
        inst,
        discount=ledger.capital_discount,
        paid_amount=principal - ledger.capital - ledger.capital_discount,
        late_fee=ledger.mora_accrued,
        late_fee_discount=ledger.mora_discounted,
        late_fee_paid=ledger.mora_paid,
        state=after,
    )

    result = AllocationResult(
        payment=payment,
        installment=updated,
        state_before=before,
        state_after=after,
        applied_late_fee=application.applied_mora,
        applied_interest=application.applied_interest,
        applied_principal=application.applied_capital,
        discount=application.discount,
        surplus=application.surplus,
        exceeds_recommendation=payment.mode is PaymentMode.PARTIAL and round2(payment.amount) > due_before,
        settled=settled,
        credit_state=CreditState.PAID if settled else CreditState.PARTIAL,
    )
    logger.debug(
        "Open-ended payment allocated",
        extra={
            "credit_id": credit.credit_id,
            "cycle": cycle.index,
            "settled": settled,
            "capital_left": str(ledger.capital),
        },
    )
    return result


def recommended_amount(
    credit: Credit,
    installment_number: int,
    today: date,
    partial_mode: OpenEndedPartialMode = OpenEndedPartialMode.INTEREST_AND_CAPITAL,
) -> Decimal:
    """
    Amount to prefill for a payment.

    Fixed/progressive: principal + late fee still due on the installment.
    Open-ended "solo_interes": interest charged and still unpaid; otherwise
    the total due today.
    """
    if credit.is_open_ended:
        ledger = OpenEndedLedger.replay(credit, today)
        if partial_mode is OpenEndedPartialMode.INTEREST_ONLY:
            return ledger.interest_due
        return ledger.total_due
    inst = credit.installment(installment_number)
    return principal_due(inst) + late_fee_due(inst)


def settle_installments(credit: Credit, discount: DiscountResult, today: date) -> List[Tuple[Installment, Decimal]]:
    """
    Settle every active installment of a fixed/progressive credit at once.

    A credit-level discount is spread over the installments in number order:
    its mora part against late fees, its principal part against principal.

    Returns:
        (updated installment, net amount paid on it) for each installment settled
    """
    mora_left = discount.discount_mora
    principal_left = discount.discount_principal
    settled = []
    for inst in credit.installments:
        if installment_state(inst, today) is InstallmentState.PAID:
            continue
        fee = late_fee_due(inst)
        principal = principal_due(inst)
        cut_fee = min(fee, mora_left)
        cut_principal = min(principal, principal_left)
        mora_left -= cut_fee
        principal_left -= cut_principal
        updated = replace(
            inst,
            discount=inst.discount + cut_principal,
            paid_amount=inst.paid_amount + principal - cut_principal,
            late_fee_discount=inst.late_fee_discount + cut_fee,
            late_fee_paid=inst.late_fee_paid + fee - cut_fee,
            state=InstallmentState.PAID,
        )
        settled.append((updated, fee - cut_fee + principal - cut_principal))
    return settled
