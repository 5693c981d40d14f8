"""Lifecycle states of installments and credits, and the legal transitions between them"""

from datetime import date
from typing import Dict, FrozenSet

from microloan_ledger.domain.exceptions import CreditLocked
from microloan_ledger.domain.models import (
    Credit,
    CreditState,
    Installment,
    InstallmentState,
    ZERO,
)

INSTALLMENT_TRANSITIONS: Dict[InstallmentState, FrozenSet[InstallmentState]] = {
    InstallmentState.PENDING: frozenset({InstallmentState.PARTIAL, InstallmentState.OVERDUE, InstallmentState.PAID}),
    InstallmentState.PARTIAL: frozenset({InstallmentState.OVERDUE, InstallmentState.PAID}),
    InstallmentState.OVERDUE: frozenset({InstallmentState.PAID}),
    InstallmentState.PAID: frozenset(),
}

_OPEN_CREDIT = frozenset(
    {
        CreditState.PARTIAL,
        CreditState.OVERDUE,
        CreditState.PAID,
        CreditState.REFINANCED,
        CreditState.VOIDED,
    }
)

CREDIT_TRANSITIONS: Dict[CreditState, FrozenSet[CreditState]] = {
    CreditState.PENDING: _OPEN_CREDIT,
    CreditState.PARTIAL: _OPEN_CREDIT,
    CreditState.OVERDUE: _OPEN_CREDIT,
    CreditState.PAID: frozenset(),
    CreditState.REFINANCED: frozenset(),
    CreditState.VOIDED: frozenset(),
}

TERMINAL_CREDIT_STATES = frozenset({CreditState.REFINANCED, CreditState.VOIDED})

# States in which each mutating operation is rejected
LOCKED_STATES: Dict[str, FrozenSet[CreditState]] = {
    "payment": frozenset({CreditState.PAID, CreditState.REFINANCED, CreditState.VOIDED}),
    "cancel": frozenset({CreditState.PAID, CreditState.REFINANCED, CreditState.VOIDED}),
    "refinance": frozenset({CreditState.PAID, CreditState.REFINANCED, CreditState.VOIDED}),
    "void": frozenset({CreditState.PAID, CreditState.REFINANCED, CreditState.VOIDED}),
}


def can_transition(before, after) -> bool:
    """Staying in the same state is always legal; otherwise consult the transition table"""
    if before == after:
        return True
    table = INSTALLMENT_TRANSITIONS if isinstance(before, InstallmentState) else CREDIT_TRANSITIONS
    return after in table[before]


def installment_state(installment: Installment, today: date) -> InstallmentState:
    """
    Derive an installment's state from its accumulated figures.

    Open-ended installments have no due date and are never overdue; they are
    only paid once a full settlement has been recorded on them.
    """
    if installment.is_open_ended:
        if installment.state is InstallmentState.PAID:
            return InstallmentState.PAID
        return InstallmentState.PARTIAL if installment.paid_amount > 0 else InstallmentState.PENDING

    principal_due = installment.scheduled_amount - installment.discount - installment.paid_amount
    fee_due = installment.late_fee - installment.late_fee_discount - installment.late_fee_paid
    if principal_due <= ZERO and fee_due <= ZERO:
        return InstallmentState.PAID
    if installment.due_on is not None and today > installment.due_on:
        return InstallmentState.OVERDUE
    if installment.paid_amount > 0 or installment.late_fee_paid > 0:
        return InstallmentState.PARTIAL
    return InstallmentState.PENDING


def aggregate_state(states) -> CreditState:
    """Credit state implied by its installments' states"""
    states = list(states)
    if states and all(s is InstallmentState.PAID for s in states):
        return CreditState.PAID
    if any(s is InstallmentState.OVERDUE for s in states):
        return CreditState.OVERDUE
    if any(s in (InstallmentState.PARTIAL, InstallmentState.PAID) for s in states):
        return CreditState.PARTIAL
    return CreditState.PENDING


def credit_state(credit: Credit, today: date) -> CreditState:
    """Refinanced/voided are explicit and terminal; everything else is derived"""
    if credit.state in TERMINAL_CREDIT_STATES:
        return credit.state
    return aggregate_state(installment_state(inst, today) for inst in credit.installments)


def ensure_operation_allowed(credit: Credit, operation: str, today: date) -> CreditState:
    """
    Raises:
        CreditLocked: the credit's state forbids ``operation``
    """
    state = credit_state(credit, today)
    if state in LOCKED_STATES[operation]:
        raise CreditLocked(
            f"Credit {credit.credit_id} is {state.value}: {operation} not allowed",
            credit_id=credit.credit_id,
            state=state.value,
            operation=operation,
        )
    return state
