"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple, Union

ZERO = Decimal("0.00")

# Upstream systems mark "no due date" with this far-future date
LEGACY_OPEN_ENDED_DUE_DATE = date(2099, 12, 31)


class Modality(str, Enum):
    FIXED = "comun"
    PROGRESSIVE = "progresivo"
    OPEN_ENDED = "libre"


class Periodicity(str, Enum):
    WEEKLY = "semanal"
    BIWEEKLY = "quincenal"
    MONTHLY = "mensual"


class InstallmentState(str, Enum):
    PENDING = "pendiente"
    PARTIAL = "parcial"
    OVERDUE = "vencida"
    PAID = "pagada"


class CreditState(str, Enum):
    PENDING = "pendiente"
    PARTIAL = "parcial"
    OVERDUE = "vencido"
    PAID = "pagado"
    REFINANCED = "refinanciado"
    VOIDED = "anulado"


class DiscountScope(str, Enum):
    NONE = "none"
    MORA = "mora"
    TOTAL = "total"


class PaymentMode(str, Enum):
    TOTAL = "total"
    PARTIAL = "parcial"


class OpenEndedPartialMode(str, Enum):
    INTEREST_ONLY = "solo_interes"
    INTEREST_AND_CAPITAL = "interes_y_capital"


class RefinancingTier(str, Enum):
    P1 = "P1"
    P2 = "P2"
    MANUAL = "manual"


@dataclass(frozen=True)
class Scheduled:
    """Installment due on a calendar date"""

    on: date


@dataclass(frozen=True)
class OpenEnded:
    """Rolling open-ended installment: no due date, never overdue"""


DueDate = Union[Scheduled, OpenEnded]
OPEN_ENDED = OpenEnded()


def due_date_from_raw(value: Optional[date]) -> DueDate:
    """Map a stored due date (where the legacy sentinel means "none") to a DueDate"""
    if value is None or value >= LEGACY_OPEN_ENDED_DUE_DATE:
        return OPEN_ENDED
    return Scheduled(value)


@dataclass(frozen=True)
class Installment:
    """
    One scheduled period of a fixed/progressive credit, or the single
    rolling record of an open-ended credit.

    paid_amount is principal only; late-fee (mora) is tracked in its own
    accumulated fields and principal payments never reduce it.
    """

    number: int
    scheduled_amount: Decimal
    due: DueDate
    discount: Decimal = ZERO  # cumulative discount on principal
    paid_amount: Decimal = ZERO  # cumulative principal paid
    late_fee: Decimal = ZERO  # cumulative accrued mora (external accrual process)
    late_fee_discount: Decimal = ZERO
    late_fee_paid: Decimal = ZERO
    state: InstallmentState = InstallmentState.PENDING
    installment_id: Optional[str] = None

    @property
    def is_open_ended(self) -> bool:
        return isinstance(self.due, OpenEnded)

    @property
    def due_on(self) -> Optional[date]:
        return self.due.on if isinstance(self.due, Scheduled) else None


@dataclass(frozen=True)
class Payment:
    """Immutable payment record. Corrections are new payments, never edits."""

    payment_id: str
    installment_number: int
    amount: Decimal
    paid_at: datetime
    mode: PaymentMode = PaymentMode.PARTIAL
    method_id: Optional[str] = None
    note: Optional[str] = None
    discount_scope: DiscountScope = DiscountScope.NONE
    discount_value: Decimal = ZERO


@dataclass(frozen=True)
class Credit:
    """Credit aggregate snapshot: terms plus its installments and payments"""

    credit_id: str
    modality: Modality
    principal: Decimal
    interest_rate: Decimal  # total % for fixed/progressive, % per cycle for open-ended
    installments: Tuple[Installment, ...]
    payments: Tuple[Payment, ...] = ()
    periodicity: Optional[Periodicity] = None
    installment_count: Optional[int] = None
    origin_credit_id: Optional[str] = None
    commitment_date: Optional[date] = None  # open-ended cycle anchor
    disbursed_on: Optional[date] = None
    state: CreditState = CreditState.PENDING

    def __post_init__(self):
        if self.modality is Modality.OPEN_ENDED:
            if len(self.installments) != 1 or not self.installments[0].is_open_ended:
                raise ValueError("open-ended credit needs exactly one rolling installment")
        else:
            if not self.installments:
                raise ValueError(f"{self.modality.value} credit has no installments")
            if any(inst.is_open_ended for inst in self.installments):
                raise ValueError(f"{self.modality.value} credit has an open-ended installment")

    @property
    def is_open_ended(self) -> bool:
        return self.modality is Modality.OPEN_ENDED

    @property
    def anchor_date(self) -> Optional[date]:
        """Open-ended cycle anchor: commitment date, falling back to disbursement"""
        return self.commitment_date or self.disbursed_on

    def installment(self, number: int) -> Installment:
        for inst in self.installments:
            if inst.number == number:
                return inst
        raise KeyError(f"credit {self.credit_id} has no installment #{number}")


@dataclass(frozen=True)
class Cycle:
    """Open-ended billing cycle (derived, never stored)"""

    index: int
    start: Optional[date]
    end: Optional[date]  # exclusive; None for the capped last cycle
    due_date: Optional[date]  # compromise date: one month after start, minus one day


# --- Computed views -------------------------------------------------------


@dataclass(frozen=True)
class InstallmentOutstanding:
    number: int
    principal_due: Decimal
    late_fee: Decimal
    total: Decimal
    state: InstallmentState


@dataclass(frozen=True)
class CycleAccrual:
    """Per-cycle interest and mora figures for an open-ended credit"""

    index: int
    interest_charged: Decimal
    interest_paid: Decimal
    mora_accrued: Decimal
    mora_settled: Decimal  # paid or discounted

    @property
    def interest_due(self) -> Decimal:
        return max(self.interest_charged - self.interest_paid, ZERO)

    @property
    def mora_due(self) -> Decimal:
        return max(self.mora_accrued - self.mora_settled, ZERO)


@dataclass(frozen=True)
class OpenEndedOutstanding:
    capital: Decimal
    interest_cycle: Decimal
    interest_total: Decimal
    mora_cycle: Decimal
    mora_total: Decimal
    total_due_today: Decimal
    cycle: Cycle
    cycles: Tuple[CycleAccrual, ...] = ()


@dataclass(frozen=True)
class DiscountResult:
    discount_mora: Decimal
    discount_principal: Decimal
    net_mora: Decimal
    net_principal: Decimal

    @property
    def discount_amount(self) -> Decimal:
        return self.discount_mora + self.discount_principal

    @property
    def net_base(self) -> Decimal:
        return self.net_mora + self.net_principal


@dataclass(frozen=True)
class AllocationResult:
    """Outcome of applying one payment to one installment / open-ended cycle"""

    payment: Payment
    installment: Installment  # updated record for the persistence layer
    state_before: InstallmentState
    state_after: InstallmentState
    applied_late_fee: Decimal = ZERO
    applied_interest: Decimal = ZERO
    applied_principal: Decimal = ZERO
    discount: DiscountResult = field(default_factory=lambda: DiscountResult(ZERO, ZERO, ZERO, ZERO))
    surplus: Decimal = ZERO  # amount not absorbed by the installment
    exceeds_recommendation: bool = False
    settled: bool = False
    credit_state: CreditState = CreditState.PENDING


@dataclass(frozen=True)
class RefinancingPlan:
    outstanding_balance: Decimal
    tier: RefinancingTier
    periodicity: Periodicity
    installment_count: int
    monthly_rate: Decimal
    period_rate: Decimal
    total_interest_pct: Decimal
    total_interest_amount: Decimal
    new_total: Decimal
    installment_amount: Decimal
