"""
Accrual calculator: outstanding principal, interest and mora as of a date.

Fixed/progressive installments carry their accrued mora on the record (an
external process applies the daily rate); here it is only read and combined.

Open-ended credits are derived from the payment log. A cycle opens on its
start date and is charged interest on its compromise date, on the capital
outstanding that day. Mora accrues daily on each cycle's unpaid interest
after the compromise date. Every recorded payment is replayed through the
same allocation order used for new payments.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Sequence

from microloan_ledger.config import settings
from microloan_ledger.domain.cycles import cycle_for_index, resolve_cycle
from microloan_ledger.domain.discounts import apply_discount
from microloan_ledger.domain.exceptions import InconsistentBalance
from microloan_ledger.domain.models import (
    Credit,
    Cycle,
    CycleAccrual,
    DiscountResult,
    DiscountScope,
    Installment,
    InstallmentOutstanding,
    InstallmentState,
    OpenEndedOutstanding,
    Payment,
    ZERO,
)
from microloan_ledger.domain.states import installment_state
from microloan_ledger.utils.date_utils import as_date, as_utc, days_after
from microloan_ledger.utils.money import clamp_non_negative, parse_amount, round2

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


# --- Fixed / progressive ----------------------------------------------------


def principal_due(installment: Installment) -> Decimal:
    return clamp_non_negative(
        round2(installment.scheduled_amount - installment.discount - installment.paid_amount)
    )


def late_fee_due(installment: Installment) -> Decimal:
    return clamp_non_negative(
        round2(installment.late_fee - installment.late_fee_discount - installment.late_fee_paid)
    )


def outstanding(installment: Installment, today: date) -> InstallmentOutstanding:
    """principal_due = max(scheduled - discount - paid, 0); total = principal_due + late fee"""
    principal = principal_due(installment)
    fee = late_fee_due(installment)
    return InstallmentOutstanding(
        number=installment.number,
        principal_due=principal,
        late_fee=fee,
        total=principal + fee,
        state=installment_state(installment, today),
    )


def active_outstanding(credit: Credit, today: date) -> List[InstallmentOutstanding]:
    """Outstanding view of every installment that is not yet paid"""
    views = [outstanding(inst, today) for inst in credit.installments]
    return [v for v in views if v.state is not InstallmentState.PAID]


# --- Open-ended ---------------------------------------------------------------


@dataclass
class _CycleLedger:
    cycle: Cycle
    interest_charged: Decimal = ZERO
    interest_paid: Decimal = ZERO
    mora_accrued: Decimal = ZERO  # unrounded; rounded when reported
    mora_settled: Decimal = ZERO
    mora_through: Optional[date] = None  # last day already accrued; None until charged

    @property
    def charged(self) -> bool:
        return self.mora_through is not None

    @property
    def interest_due(self) -> Decimal:
        return clamp_non_negative(self.interest_charged - self.interest_paid)

    @property
    def mora_due(self) -> Decimal:
        return clamp_non_negative(round2(self.mora_accrued) - self.mora_settled)

    def freeze(self) -> CycleAccrual:
        return CycleAccrual(
            index=self.cycle.index,
            interest_charged=self.interest_charged,
            interest_paid=self.interest_paid,
            mora_accrued=round2(self.mora_accrued),
            mora_settled=self.mora_settled,
        )


@dataclass(frozen=True)
class OpenEndedApplication:
    """How one amount was spread over an open-ended credit's buckets"""

    discount: DiscountResult
    applied_mora: Decimal
    applied_interest: Decimal
    applied_capital: Decimal
    discount_capital: Decimal
    surplus: Decimal


class OpenEndedLedger:
    """
    Running state of an open-ended credit.

    Build it with ``OpenEndedLedger.replay(credit, as_of)`` to get the state
    after every recorded payment up to ``as_of``; ``apply`` then spreads a new
    amount in the fixed order mora -> interest -> capital (oldest cycle first).
    """

    def __init__(
        self,
        credit: Credit,
        mora_daily_rate: Optional[Decimal] = None,
        max_cycles: Optional[int] = None,
    ):
        self.credit = credit
        self.anchor = credit.anchor_date
        self.rate = Decimal(credit.interest_rate)
        self.mora_daily_rate = settings.open_ended_mora_daily_rate if mora_daily_rate is None else mora_daily_rate
        self.max_cycles = settings.open_ended_max_cycles if max_cycles is None else max_cycles
        self.capital = round2(credit.installments[0].scheduled_amount)
        self.capital_discount = ZERO
        self.mora_paid = ZERO
        self.mora_discounted = ZERO
        self.cycles: List[_CycleLedger] = []
        self._open_cycle(1)

    @classmethod
    def replay(
        cls,
        credit: Credit,
        as_of: date,
        mora_daily_rate: Optional[Decimal] = None,
        max_cycles: Optional[int] = None,
    ) -> "OpenEndedLedger":
        ledger = cls(credit, mora_daily_rate=mora_daily_rate, max_cycles=max_cycles)
        for payment in recorded_payments(credit, as_of):
            ledger.advance_to(as_date(payment.paid_at))
            ledger.apply(
                payment.amount,
                payment.discount_scope,
                payment.discount_value,
            )
        ledger.advance_to(as_of)
        return ledger

    # -- time --

    def _open_cycle(self, index: int) -> None:
        if self.anchor is None:
            cycle = Cycle(index=index, start=None, end=None, due_date=None)
        else:
            cycle = cycle_for_index(self.anchor, index, self.max_cycles)
        self.cycles.append(_CycleLedger(cycle=cycle))

    def _charge(self, entry: _CycleLedger) -> None:
        entry.interest_charged = round2(self.capital * self.rate / HUNDRED)
        entry.mora_through = entry.cycle.due_date
        logger.debug(
            "Open-ended cycle interest charged",
            extra={
                "credit_id": self.credit.credit_id,
                "cycle": entry.cycle.index,
                "interest": str(entry.interest_charged),
            },
        )

    def advance_to(self, day: date) -> None:
        """
        Move the ledger forward to ``day``: open every cycle started by then,
        charge interest on every cycle whose compromise date has been reached
        and accrue mora through ``day``.
        """
        current = resolve_cycle(self.anchor, day, self.max_cycles)
        while len(self.cycles) < current.index and not self.is_settled:
            self._open_cycle(len(self.cycles) + 1)

        daily = self.mora_daily_rate / HUNDRED
        for entry in self.cycles:
            if not entry.charged:
                # no compromise date (missing anchor) means nothing is ever due
                if entry.cycle.due_date is None or day < entry.cycle.due_date:
                    continue
                self._charge(entry)
            if day <= entry.mora_through:
                continue
            days = days_after(day, entry.mora_through)
            # simple daily accrual on unpaid interest, never on mora itself
            entry.mora_accrued += entry.interest_due * daily * days
            entry.mora_through = day

    # -- figures --

    @property
    def interest_due(self) -> Decimal:
        return sum((c.interest_due for c in self.cycles), ZERO)

    @property
    def mora_due(self) -> Decimal:
        return sum((c.mora_due for c in self.cycles), ZERO)

    @property
    def mora_accrued(self) -> Decimal:
        """Gross mora accrued across cycles, before payments and discounts"""
        return sum((round2(c.mora_accrued) for c in self.cycles), ZERO)

    @property
    def total_due(self) -> Decimal:
        return self.capital + self.interest_due + self.mora_due

    @property
    def is_settled(self) -> bool:
        return self.total_due <= ZERO

    @property
    def current(self) -> _CycleLedger:
        return self.cycles[-1]

    # -- money in --

    def preview_discount(self, scope: DiscountScope, value: Any) -> DiscountResult:
        """Open-ended mora discounts are percentages; principal base is interest + capital"""
        return apply_discount(self.capital + self.interest_due, self.mora_due, scope, value, percentage=True)

    def apply(self, amount: Decimal, scope: DiscountScope = DiscountScope.NONE, value: Any = ZERO) -> OpenEndedApplication:
        discount = self.preview_discount(scope, value)

        # discounts: mora first, then interest, then capital
        self.mora_discounted += self._take_mora(discount.discount_mora)
        remaining = self._take_interest(discount.discount_principal)
        capital_cut = min(remaining, self.capital)
        self.capital -= capital_cut
        self.capital_discount += capital_cut

        left = round2(amount)
        applied_mora = self._take_mora(left)
        self.mora_paid += applied_mora
        left -= applied_mora
        interest_before = left
        left = self._take_interest(left)
        applied_interest = interest_before - left
        applied_capital = min(left, self.capital)
        self.capital -= applied_capital
        left -= applied_capital

        return OpenEndedApplication(
            discount=discount,
            applied_mora=applied_mora,
            applied_interest=applied_interest,
            applied_capital=applied_capital,
            discount_capital=capital_cut,
            surplus=left,
        )

    def _take_mora(self, amount: Decimal) -> Decimal:
        taken = ZERO
        for entry in self.cycles:
            if amount - taken <= 0:
                break
            part = min(entry.mora_due, amount - taken)
            entry.mora_settled += part
            taken += part
        return taken

    def _take_interest(self, amount: Decimal) -> Decimal:
        """Returns whatever is left of ``amount`` after covering interest"""
        for entry in self.cycles:
            if amount <= 0:
                break
            part = min(entry.interest_due, amount)
            entry.interest_paid += part
            amount -= part
        return amount

    def view(self, as_of: date) -> OpenEndedOutstanding:
        cycle = resolve_cycle(self.anchor, as_of, self.max_cycles)
        current = self.cycles[min(cycle.index, len(self.cycles)) - 1]
        interest_total = self.interest_due
        mora_total = self.mora_due
        return OpenEndedOutstanding(
            capital=self.capital,
            interest_cycle=current.interest_due,
            interest_total=interest_total,
            mora_cycle=current.mora_due,
            mora_total=mora_total,
            total_due_today=self.capital + interest_total + mora_total,
            cycle=cycle,
            cycles=tuple(c.freeze() for c in self.cycles),
        )


def recorded_payments(credit: Credit, as_of: date) -> List[Payment]:
    """Payments effective on or before ``as_of``, oldest first; ties keep log order"""
    effective = [p for p in credit.payments if as_date(p.paid_at) <= as_of]
    return sorted(effective, key=lambda p: as_utc(p.paid_at))


def latest_payment(credit: Credit) -> Optional[Payment]:
    if not credit.payments:
        return None
    return max(credit.payments, key=lambda p: as_utc(p.paid_at))


def outstanding_open_ended(
    credit: Credit,
    today: date,
    mora_daily_rate: Optional[Decimal] = None,
    max_cycles: Optional[int] = None,
) -> OpenEndedOutstanding:
    """
    Capital, interest and mora of an open-ended credit as of ``today``.

    interest_total / mora_total sum cycles 1..current and never decrease
    over time (except through payments); total_due_today is
    capital + interest_total + mora_total.
    """
    ledger = OpenEndedLedger.replay(credit, today, mora_daily_rate=mora_daily_rate, max_cycles=max_cycles)
    return ledger.view(today)


def outstanding_balance(credit: Credit, today: date) -> Decimal:
    """
    Single balance used as the refinancing / cancellation base.

    Fixed/progressive: unpaid principal + mora over active installments.
    Open-ended: total due today.
    """
    if credit.is_open_ended:
        return outstanding_open_ended(credit, today).total_due_today
    return sum((v.total for v in active_outstanding(credit, today)), ZERO)


# --- Upstream summaries -----------------------------------------------------

_CAPITAL_KEYS = ("saldo_capital", "capital", "saldo_actual")
_INTEREST_CYCLE_KEYS = ("interes_ciclo_hoy", "interes_pendiente_hoy", "interes_hoy")
_MORA_CYCLE_KEYS = ("mora_ciclo_hoy", "mora_pendiente_hoy", "mora_hoy")
_INTEREST_TOTAL_KEYS = ("interes_pendiente_total", "interes_total", "interes_pendiente")
_MORA_TOTAL_KEYS = ("mora_pendiente_total", "mora_total", "mora_pendiente")
_TOTAL_KEYS = ("total_actual", "total_liquidacion_hoy", "total_a_cancelar_hoy", "total_pagar_hoy")
_CYCLE_KEYS = ("ciclo_actual", "ciclo")


def _first(raw: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _parse_cycle_index(value: Any) -> Optional[int]:
    """Accepts 2, "2" or "2/3"; anything else is None"""
    if value is None:
        return None
    text = str(value).strip().split("/")[0]
    number = parse_amount(text)
    return int(number) if number >= 1 else None


def guard_total(field: str, total: Decimal, cycle_value: Decimal, tolerance: Decimal) -> Decimal:
    """
    A total can never be below its own current-cycle component.

    A zero total next to a positive cycle value is an upstream omission and
    is raised to the cycle value; a positive total below it is a contradiction.

    Raises:
        InconsistentBalance: positive total below the current-cycle value
    """
    total = clamp_non_negative(total)
    if total == ZERO and cycle_value > ZERO:
        return cycle_value
    if total + tolerance < cycle_value:
        raise InconsistentBalance(
            f"{field} is below its current-cycle component",
            field=field,
            reported=total,
            expected=cycle_value,
        )
    return total


def normalize_open_ended_summary(
    raw: Mapping[str, Any],
    anchor: Optional[date] = None,
    today: Optional[date] = None,
    tolerance: Optional[Decimal] = None,
) -> OpenEndedOutstanding:
    """
    Read an authoritative open-ended summary whose field names vary by
    backend version and apply the total guards.

    Raises:
        InconsistentBalance: a reported total contradicts its components
    """
    if tolerance is None:
        tolerance = settings.balance_tolerance

    capital = clamp_non_negative(round2(parse_amount(_first(raw, _CAPITAL_KEYS))))
    interest_cycle = clamp_non_negative(round2(parse_amount(_first(raw, _INTEREST_CYCLE_KEYS))))
    mora_cycle = clamp_non_negative(round2(parse_amount(_first(raw, _MORA_CYCLE_KEYS))))

    interest_raw = _first(raw, _INTEREST_TOTAL_KEYS)
    mora_raw = _first(raw, _MORA_TOTAL_KEYS)
    interest_total = guard_total(
        "interest_total",
        interest_cycle if interest_raw is None else round2(parse_amount(interest_raw)),
        interest_cycle,
        tolerance,
    )
    mora_total = guard_total(
        "mora_total",
        mora_cycle if mora_raw is None else round2(parse_amount(mora_raw)),
        mora_cycle,
        tolerance,
    )

    components = capital + interest_total + mora_total
    reported_total = round2(parse_amount(_first(raw, _TOTAL_KEYS)))
    if reported_total <= ZERO:
        total = components
    elif abs(reported_total - components) > tolerance:
        raise InconsistentBalance(
            "Reported total does not match capital + interest + mora",
            field="total_due_today",
            reported=reported_total,
            expected=components,
        )
    else:
        total = reported_total

    index = _parse_cycle_index(_first(raw, _CYCLE_KEYS))
    if anchor is not None:
        resolved = resolve_cycle(anchor, today)
        cycle = resolved if index is None else cycle_for_index(anchor, min(index, settings.open_ended_max_cycles))
    else:
        cycle = Cycle(index=min(index or 1, settings.open_ended_max_cycles), start=None, end=None, due_date=None)

    return OpenEndedOutstanding(
        capital=capital,
        interest_cycle=interest_cycle,
        interest_total=interest_total,
        mora_cycle=mora_cycle,
        mora_total=mora_total,
        total_due_today=total,
        cycle=cycle,
    )
