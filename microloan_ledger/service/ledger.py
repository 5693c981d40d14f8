"""
Ledger service: the operations callers use on a credit snapshot.

Each function takes a complete snapshot and returns a computed view or
result records for the persistence layer; nothing is stored here. Mutating
operations record metrics and a structured log line; business-rule
rejections are counted, logged and re-raised as their typed error.
"""

from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Any, Iterator, List, Optional

from microloan_ledger.config import settings
from microloan_ledger.domain import refinancing
from microloan_ledger.domain.accrual import (
    OpenEndedLedger,
    active_outstanding,
    outstanding,
    outstanding_balance,
    outstanding_open_ended,
)
from microloan_ledger.domain.allocation import allocate, settle_installments
from microloan_ledger.domain.discounts import apply_discount, mora_discount_is_percentage
from microloan_ledger.domain.exceptions import (
    DuplicatePayment,
    InconsistentBalance,
    InvalidAmount,
    InvalidRefinancingInput,
    LedgerError,
)
from microloan_ledger.domain.installments import generate_installment_plan
from microloan_ledger.domain.models import (
    AllocationResult,
    Credit,
    CreditState,
    DiscountResult,
    DiscountScope,
    Installment,
    Modality,
    Payment,
    PaymentMode,
    ZERO,
)
from microloan_ledger.domain.states import credit_state, ensure_operation_allowed
from microloan_ledger.infrastructure.observability.logging import (
    log_payment,
    log_refinancing,
    log_rejection,
    log_void,
)
from microloan_ledger.infrastructure.observability.metrics import (
    record_payment,
    record_refinancing,
    record_rejection,
    record_void,
)
from microloan_ledger.service.schemas import (
    CancellationQuote,
    CancellationRequest,
    DiscountPreview,
    InstallmentView,
    OpenEndedView,
    OutstandingView,
    PaymentRequest,
    RefinancingQuote,
    RefinancingRequest,
)
from microloan_ledger.utils.date_utils import as_date, local_today
from microloan_ledger.utils.money import round2


@dataclass(frozen=True)
class VoidResult:
    credit_id: str
    previous_state: CreditState
    credit: Credit  # snapshot with state=anulado


@dataclass(frozen=True)
class RefinanceResult:
    new_credit_draft: Credit
    origin_credit_update: Credit  # snapshot with state=refinanciado
    quote: RefinancingQuote


@dataclass(frozen=True)
class CancellationResult:
    credit: Credit
    payments: List[Payment]
    allocations: List[AllocationResult]
    quote: CancellationQuote


@dataclass(frozen=True)
class DeletionCheck:
    credit_id: str
    eligible: bool
    payment_count: int


@contextmanager
def _rejections(operation: str, credit_id: Optional[str] = None) -> Iterator[None]:
    """Count and log business-rule rejections, then let them propagate"""
    try:
        yield
    except LedgerError as e:
        record_rejection(e.code)
        log_rejection(credit_id, operation, e.code, e.message, e.context)
        raise


def _today(today: Optional[date]) -> date:
    return local_today() if today is None else as_date(today)


# --- Read-only ----------------------------------------------------------------


def get_outstanding(credit: Credit, as_of: Optional[date] = None) -> OutstandingView:
    """
    Outstanding figures of a credit as of a date.

    Fixed/progressive: one row per installment (principal due, late fee,
    state). Open-ended: capital, per-cycle and total interest/mora, and the
    current cycle.
    """
    as_of = _today(as_of)
    state = credit_state(credit, as_of)

    if credit.is_open_ended:
        view = outstanding_open_ended(credit, as_of)
        return OutstandingView(
            credit_id=credit.credit_id,
            modality=credit.modality,
            credit_state=state,
            as_of=as_of,
            open_ended=OpenEndedView.from_domain(view),
            total_due=view.total_due_today,
        )

    rows = [InstallmentView.from_domain(outstanding(inst, as_of), inst.due_on) for inst in credit.installments]
    return OutstandingView(
        credit_id=credit.credit_id,
        modality=credit.modality,
        credit_state=state,
        as_of=as_of,
        installments=rows,
        total_due=sum((row.total for row in rows), ZERO),
    )


def preview_discount(
    principal_base: Any,
    mora_base: Any,
    scope: DiscountScope,
    value: Any,
    modality: Modality = Modality.FIXED,
) -> DiscountPreview:
    """
    Preview a discount before committing a payment.

    Total-scope discounts are always percentages; mora-scope discounts are
    percentages for open-ended credits and absolute amounts otherwise.
    """
    scope = DiscountScope(scope)
    percentage = scope is DiscountScope.TOTAL or mora_discount_is_percentage(Modality(modality))
    with _rejections("discount_preview"):
        return DiscountPreview.from_domain(apply_discount(principal_base, mora_base, scope, value, percentage))


def preview_refinancing(outstanding_balance: Any, request: RefinancingRequest) -> RefinancingQuote:
    """Price a refinancing of an arbitrary balance; nothing is checked against a credit"""
    with _rejections("refinancing_preview"):
        plan = refinancing.price(
            outstanding_balance,
            request.tier,
            request.periodicity,
            request.installment_count,
            manual_rate=request.manual_rate,
            manual_rate_authorized=request.manual_rate_authorized,
        )
    return RefinancingQuote.from_domain(plan)


def quote_refinancing(credit: Credit, request: RefinancingRequest, today: Optional[date] = None) -> RefinancingQuote:
    """Price a refinancing of ``credit`` from its own modality-aware balance"""
    today = _today(today)
    with _rejections("refinancing_preview", credit.credit_id):
        ensure_operation_allowed(credit, "refinance", today)
    return preview_refinancing(outstanding_balance(credit, today), request)


def deletion_check(credit: Credit) -> DeletionCheck:
    """A credit can only be deleted while no payment has been recorded on it"""
    count = len(credit.payments)
    return DeletionCheck(credit_id=credit.credit_id, eligible=count == 0, payment_count=count)


# --- Mutating -----------------------------------------------------------------


def apply_allocation(credit: Credit, result: AllocationResult) -> Credit:
    """Snapshot after an allocation: payment appended, installment replaced"""
    installments = tuple(
        result.installment if inst.number == result.installment.number else inst for inst in credit.installments
    )
    return replace(
        credit,
        installments=installments,
        payments=credit.payments + (result.payment,),
        state=result.credit_state,
    )


def submit_payment(credit: Credit, request: PaymentRequest, today: Optional[date] = None) -> AllocationResult:
    """
    Allocate a new payment.

    Flow:
    1. Convert the request into an immutable Payment
    2. Allocate it (late fee first, then interest/principal)
    3. Record metrics and the structured log line

    Raises:
        LedgerError subclasses, unchanged, for every business-rule rejection
    """
    payment = request.to_payment()
    with _rejections("payment", credit.credit_id):
        result = allocate(credit, payment, today=today)

    record_payment(credit.modality.value, payment.mode.value, payment.amount)
    log_payment(
        credit.credit_id,
        payment.payment_id,
        payment.mode.value,
        payment.amount,
        result.state_after.value,
        result.surplus,
        result.exceeds_recommendation,
    )
    return result


def quote_cancellation(
    credit: Credit,
    scope: DiscountScope = DiscountScope.NONE,
    value: Any = ZERO,
    today: Optional[date] = None,
) -> CancellationQuote:
    """
    Amount that settles the whole credit today.

    The discount is a percentage: of total mora (scope mora) or of
    principal + mora, mora consumed first (scope total).
    """
    today = _today(today)
    with _rejections("cancel_preview", credit.credit_id):
        return _cancellation_quote(credit, scope, value, today)


def _cancellation_quote(credit: Credit, scope: DiscountScope, value: Any, today: date) -> CancellationQuote:
    if credit.is_open_ended:
        ledger = OpenEndedLedger.replay(credit, today)
        principal_base = ledger.capital + ledger.interest_due
        mora_base = ledger.mora_due
    else:
        rows = active_outstanding(credit, today)
        principal_base = sum((row.principal_due for row in rows), ZERO)
        mora_base = sum((row.late_fee for row in rows), ZERO)
    discount = apply_discount(principal_base, mora_base, scope, value, percentage=True)

    return CancellationQuote(
        credit_id=credit.credit_id,
        as_of=today,
        principal_base=principal_base,
        mora_base=mora_base,
        discount=DiscountPreview.from_domain(discount),
        amount_due=discount.net_base,
    )


def cancel_credit(
    credit: Credit,
    request: CancellationRequest,
    today: Optional[date] = None,
    tolerance: Optional[Decimal] = None,
) -> CancellationResult:
    """
    Settle every active installment (or the open-ended credit) in one go.

    Fixed/progressive credits get one settling Payment per active
    installment, identified ``{payment_id}-{number}``.

    Raises:
        CreditLocked: the credit is already paid, refinanced or voided
        InvalidAmount: the amount differs from the quoted amount due
        DuplicatePayment: a settling payment identifier is already recorded
    """
    today = as_date(request.paid_at) if today is None else as_date(today)
    if tolerance is None:
        tolerance = settings.balance_tolerance

    with _rejections("cancel", credit.credit_id):
        ensure_operation_allowed(credit, "cancel", today)
        quote = _cancellation_quote(credit, request.discount_scope, request.discount_value, today)

        if credit.is_open_ended:
            payment = Payment(
                payment_id=request.payment_id,
                installment_number=1,
                amount=request.amount,
                paid_at=request.paid_at,
                mode=PaymentMode.TOTAL,
                method_id=request.method_id,
                note=request.note,
                discount_scope=request.discount_scope,
                discount_value=request.discount_value,
            )
            result = allocate(credit, payment, today=today, tolerance=tolerance)
            updated = apply_allocation(credit, result)
            payments, allocations = [payment], [result]
        else:
            if abs(round2(request.amount) - quote.amount_due) > tolerance:
                raise InvalidAmount(
                    "Cancellation amount must match the amount due after discount",
                    field="amount",
                    expected=quote.amount_due,
                    received=request.amount,
                )
            updated, payments, allocations = _settle_all(credit, request, quote, today)

    for payment in payments:
        record_payment(credit.modality.value, PaymentMode.TOTAL.value, payment.amount)
    log_payment(
        credit.credit_id,
        request.payment_id,
        "cancelacion",
        request.amount,
        CreditState.PAID.value,
        ZERO,
        False,
    )
    return CancellationResult(credit=updated, payments=payments, allocations=allocations, quote=quote)


def _settle_all(credit: Credit, request: CancellationRequest, quote: CancellationQuote, today: date):
    discount = apply_discount(
        quote.principal_base, quote.mora_base, request.discount_scope, request.discount_value, percentage=True
    )
    recorded = {p.payment_id for p in credit.payments}
    payments: List[Payment] = []
    allocations: List[AllocationResult] = []
    settled = {}
    for inst, net in settle_installments(credit, discount, today):
        payment_id = f"{request.payment_id}-{inst.number}"
        if payment_id in recorded:
            raise DuplicatePayment(
                f"Payment {payment_id} is already recorded",
                payment_id=payment_id,
                credit_id=credit.credit_id,
            )
        original = credit.installment(inst.number)
        before = outstanding(original, today)
        fee_cut = inst.late_fee_discount - original.late_fee_discount
        principal_cut = inst.discount - original.discount
        share = DiscountResult(
            discount_mora=fee_cut,
            discount_principal=principal_cut,
            net_mora=before.late_fee - fee_cut,
            net_principal=before.principal_due - principal_cut,
        )
        payment = Payment(
            payment_id=payment_id,
            installment_number=inst.number,
            amount=net,
            paid_at=request.paid_at,
            mode=PaymentMode.TOTAL,
            method_id=request.method_id,
            note=request.note,
            discount_scope=request.discount_scope,
            discount_value=request.discount_value,
        )
        allocations.append(
            AllocationResult(
                payment=payment,
                installment=inst,
                state_before=before.state,
                state_after=inst.state,
                applied_late_fee=share.net_mora,
                applied_principal=share.net_principal,
                discount=share,
                settled=True,
                credit_state=CreditState.PAID,
            )
        )
        payments.append(payment)
        settled[inst.number] = inst

    installments = tuple(settled.get(inst.number, inst) for inst in credit.installments)
    updated = replace(
        credit,
        installments=installments,
        payments=credit.payments + tuple(payments),
        state=CreditState.PAID,
    )
    return updated, payments, allocations


def void_credit(credit: Credit, today: Optional[date] = None) -> VoidResult:
    """
    Mark a credit voided (terminal).

    Raises:
        CreditLocked: the credit is paid, refinanced or already voided
    """
    today = _today(today)
    with _rejections("void", credit.credit_id):
        previous = ensure_operation_allowed(credit, "void", today)

    record_void()
    log_void(credit.credit_id, previous.value)
    return VoidResult(
        credit_id=credit.credit_id,
        previous_state=previous,
        credit=replace(credit, state=CreditState.VOIDED),
    )


def refinance_credit(
    credit: Credit,
    quote: RefinancingQuote,
    new_credit_id: str,
    today: Optional[date] = None,
    tolerance: Optional[Decimal] = None,
) -> RefinanceResult:
    """
    Close ``credit`` into a new fixed-installment credit priced by ``quote``.

    The balance is recomputed from the snapshot; a quote priced on a
    different balance is stale and rejected.

    Returns:
        The new credit draft (origin_credit_id set, installments from the
        quote) and the origin credit marked refinanced

    Raises:
        CreditLocked: the credit is paid, refinanced or voided
        InvalidRefinancingInput: nothing left to refinance
        InconsistentBalance: the quote's balance no longer matches the credit
    """
    today = _today(today)
    if tolerance is None:
        tolerance = settings.balance_tolerance

    with _rejections("refinance", credit.credit_id):
        ensure_operation_allowed(credit, "refinance", today)
        balance = outstanding_balance(credit, today)
        if balance <= ZERO:
            raise InvalidRefinancingInput(
                "Credit has no outstanding balance to refinance",
                field="outstanding_balance",
                value=balance,
            )
        if abs(balance - quote.outstanding_balance) > tolerance:
            raise InconsistentBalance(
                "Refinancing quote is stale",
                field="outstanding_balance",
                reported=quote.outstanding_balance,
                expected=balance,
            )
        installments: List[Installment] = generate_installment_plan(
            quote.new_total,
            quote.installment_count,
            periodicity=quote.periodicity,
            modality=Modality.FIXED,
            start_date=today,
        )

    new_credit = Credit(
        credit_id=new_credit_id,
        modality=Modality.FIXED,
        principal=quote.outstanding_balance,
        interest_rate=quote.total_interest_pct,
        installments=tuple(installments),
        periodicity=quote.periodicity,
        installment_count=quote.installment_count,
        origin_credit_id=credit.credit_id,
        disbursed_on=today,
        state=CreditState.PENDING,
    )
    origin = replace(credit, state=CreditState.REFINANCED)

    record_refinancing(quote.tier.value)
    log_refinancing(credit.credit_id, new_credit_id, quote.tier.value, quote.outstanding_balance, quote.new_total)
    return RefinanceResult(new_credit_draft=new_credit, origin_credit_update=origin, quote=quote)
