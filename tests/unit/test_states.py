"""Unit tests for installment and credit lifecycle states"""

import pytest
from dataclasses import replace
from datetime import date
from decimal import Decimal

from microloan_ledger.domain.exceptions import CreditLocked
from microloan_ledger.domain.models import (
    LEGACY_OPEN_ENDED_DUE_DATE,
    OPEN_ENDED,
    CreditState,
    Installment,
    InstallmentState,
    due_date_from_raw,
    Scheduled,
)
from microloan_ledger.domain.states import (
    aggregate_state,
    can_transition,
    credit_state,
    ensure_operation_allowed,
    installment_state,
)


def test_installment_becomes_overdue_after_due_date(scheduled_installment):
    assert installment_state(scheduled_installment, date(2025, 1, 31)) == InstallmentState.PENDING
    assert installment_state(scheduled_installment, date(2025, 2, 1)) == InstallmentState.OVERDUE


def test_open_ended_installment_never_overdue():
    inst = Installment(number=1, scheduled_amount=Decimal("5000"), due=OPEN_ENDED)

    assert installment_state(inst, date(2099, 12, 31)) == InstallmentState.PENDING
    assert installment_state(replace(inst, paid_amount=Decimal("10")), date(2030, 1, 1)) == InstallmentState.PARTIAL


def test_legacy_sentinel_maps_to_open_ended():
    """The far-future marker of older records is read as 'no due date'"""
    assert due_date_from_raw(LEGACY_OPEN_ENDED_DUE_DATE) is OPEN_ENDED
    assert due_date_from_raw(None) is OPEN_ENDED
    assert due_date_from_raw(date(2025, 1, 31)) == Scheduled(date(2025, 1, 31))


def test_transition_table():
    assert can_transition(InstallmentState.PENDING, InstallmentState.PARTIAL)
    assert can_transition(InstallmentState.PARTIAL, InstallmentState.PAID)
    assert can_transition(InstallmentState.OVERDUE, InstallmentState.PAID)
    assert not can_transition(InstallmentState.PAID, InstallmentState.PARTIAL)
    assert not can_transition(InstallmentState.OVERDUE, InstallmentState.PENDING)
    assert can_transition(CreditState.PARTIAL, CreditState.REFINANCED)
    assert not can_transition(CreditState.VOIDED, CreditState.PENDING)
    assert not can_transition(CreditState.PAID, CreditState.VOIDED)


@pytest.mark.parametrize(
    "states,expected",
    [
        ([InstallmentState.PAID, InstallmentState.PAID], CreditState.PAID),
        ([InstallmentState.PAID, InstallmentState.OVERDUE], CreditState.OVERDUE),
        ([InstallmentState.PAID, InstallmentState.PENDING], CreditState.PARTIAL),
        ([InstallmentState.PENDING, InstallmentState.PENDING], CreditState.PENDING),
    ],
)
def test_aggregate_state(states, expected):
    assert aggregate_state(states) == expected


def test_credit_state_is_derived(fixed_credit):
    """Stored non-terminal states are ignored in favour of the installments"""
    stale = replace(fixed_credit, state=CreditState.PAID)

    assert credit_state(stale, date(2025, 1, 10)) == CreditState.PENDING
    assert credit_state(stale, date(2025, 2, 10)) == CreditState.OVERDUE


def test_terminal_states_are_kept(fixed_credit):
    voided = replace(fixed_credit, state=CreditState.VOIDED)

    assert credit_state(voided, date(2025, 2, 10)) == CreditState.VOIDED


@pytest.mark.parametrize("operation", ["payment", "cancel", "refinance", "void"])
def test_refinanced_credit_is_locked(fixed_credit, operation):
    credit = replace(fixed_credit, state=CreditState.REFINANCED)

    with pytest.raises(CreditLocked) as exc_info:
        ensure_operation_allowed(credit, operation, date(2025, 1, 10))

    assert exc_info.value.code == "credit_locked"
    assert exc_info.value.context["operation"] == operation


def test_open_credit_allows_operations(fixed_credit):
    assert ensure_operation_allowed(fixed_credit, "payment", date(2025, 1, 10)) == CreditState.PENDING
