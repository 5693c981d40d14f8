"""Pydantic records exchanged with the service layer"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from microloan_ledger.config import settings
from microloan_ledger.domain.models import (
    CreditState,
    DiscountResult,
    DiscountScope,
    InstallmentOutstanding,
    InstallmentState,
    Modality,
    OpenEndedOutstanding,
    Payment,
    PaymentMode,
    Periodicity,
    RefinancingPlan,
    RefinancingTier,
    ZERO,
)
from microloan_ledger.utils.money import parse_amount, require_amount


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentRequest(BaseModel):
    """A payment as typed by an operator: amounts may arrive as "1.234,56" strings"""

    payment_id: str = Field(..., min_length=1, description="Unique payment identifier")
    installment_number: int = Field(1, ge=1, description="Target installment (1 for open-ended)")
    amount: Decimal
    mode: PaymentMode = PaymentMode.PARTIAL
    paid_at: datetime = Field(default_factory=_utcnow)
    method_id: Optional[str] = None
    note: Optional[str] = None
    discount_scope: DiscountScope = DiscountScope.NONE
    discount_value: Decimal = ZERO

    @field_validator("amount", mode="before")
    @classmethod
    def parse_payment_amount(cls, value):
        # zero is a legal full settlement after a 100% discount; the allocator rejects zero partials
        return require_amount(value, field="amount", allow_zero=True)

    @field_validator("discount_value", mode="before")
    @classmethod
    def parse_discount_value(cls, value):
        return parse_amount(value)

    def to_payment(self) -> Payment:
        return Payment(
            payment_id=self.payment_id,
            installment_number=self.installment_number,
            amount=self.amount,
            paid_at=self.paid_at,
            mode=self.mode,
            method_id=self.method_id,
            note=self.note,
            discount_scope=self.discount_scope,
            discount_value=self.discount_value,
        )


class CancellationRequest(BaseModel):
    """Settle a whole credit in one go, optionally with a percentage discount"""

    payment_id: str = Field(..., min_length=1)
    amount: Decimal
    paid_at: datetime = Field(default_factory=_utcnow)
    method_id: Optional[str] = None
    note: Optional[str] = None
    discount_scope: DiscountScope = DiscountScope.NONE
    discount_value: Decimal = ZERO

    @field_validator("amount", mode="before")
    @classmethod
    def parse_cancellation_amount(cls, value):
        return require_amount(value, field="amount", allow_zero=True)

    @field_validator("discount_value", mode="before")
    @classmethod
    def parse_discount_value(cls, value):
        return parse_amount(value)


class RefinancingRequest(BaseModel):
    """Terms for pricing a refinancing; a manual rate needs the authorization flag"""

    tier: RefinancingTier
    periodicity: Periodicity
    installment_count: int = Field(..., description="Installments of the new credit")
    manual_rate: Optional[Decimal] = None
    manual_rate_authorized: bool = False

    @field_validator("manual_rate", mode="before")
    @classmethod
    def parse_manual_rate(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return parse_amount(value)


class DiscountPreview(BaseModel):
    """Outcome of a discount before the payment is committed"""

    discount_amount: Decimal
    discount_mora: Decimal
    discount_principal: Decimal
    net_mora: Decimal
    net_principal: Decimal
    net_base: Decimal

    @classmethod
    def from_domain(cls, result: DiscountResult) -> "DiscountPreview":
        return cls(
            discount_amount=result.discount_amount,
            discount_mora=result.discount_mora,
            discount_principal=result.discount_principal,
            net_mora=result.net_mora,
            net_principal=result.net_principal,
            net_base=result.net_base,
        )


class CancellationQuote(BaseModel):
    """Amount that settles the whole credit today"""

    credit_id: str
    as_of: date
    principal_base: Decimal  # unpaid principal (open-ended: capital + interest)
    mora_base: Decimal
    discount: DiscountPreview
    amount_due: Decimal


class RefinancingQuote(BaseModel):
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

    @classmethod
    def from_domain(cls, plan: RefinancingPlan) -> "RefinancingQuote":
        return cls(
            outstanding_balance=plan.outstanding_balance,
            tier=plan.tier,
            periodicity=plan.periodicity,
            installment_count=plan.installment_count,
            monthly_rate=plan.monthly_rate,
            period_rate=plan.period_rate,
            total_interest_pct=plan.total_interest_pct,
            total_interest_amount=plan.total_interest_amount,
            new_total=plan.new_total,
            installment_amount=plan.installment_amount,
        )


class InstallmentView(BaseModel):
    number: int
    due_date: Optional[date] = None
    principal_due: Decimal
    late_fee: Decimal
    total: Decimal
    state: InstallmentState

    @classmethod
    def from_domain(cls, view: InstallmentOutstanding, due_date: Optional[date]) -> "InstallmentView":
        return cls(
            number=view.number,
            due_date=due_date,
            principal_due=view.principal_due,
            late_fee=view.late_fee,
            total=view.total,
            state=view.state,
        )


class OpenEndedView(BaseModel):
    """Open-ended figures as of a date, with the current billing cycle"""

    capital: Decimal
    interest_cycle: Decimal
    interest_total: Decimal
    mora_cycle: Decimal
    mora_total: Decimal
    total_due_today: Decimal
    cycle_index: int
    cycle_label: str  # "2/3"
    cycle_start: Optional[date] = None
    cycle_end: Optional[date] = None
    cycle_due_date: Optional[date] = None

    @classmethod
    def from_domain(cls, view: OpenEndedOutstanding) -> "OpenEndedView":
        return cls(
            capital=view.capital,
            interest_cycle=view.interest_cycle,
            interest_total=view.interest_total,
            mora_cycle=view.mora_cycle,
            mora_total=view.mora_total,
            total_due_today=view.total_due_today,
            cycle_index=view.cycle.index,
            cycle_label=f"{view.cycle.index}/{settings.open_ended_max_cycles}",
            cycle_start=view.cycle.start,
            cycle_end=view.cycle.end,
            cycle_due_date=view.cycle.due_date,
        )


class OutstandingView(BaseModel):
    """Response of get_outstanding"""

    credit_id: str
    modality: Modality
    credit_state: CreditState
    as_of: date
    installments: List[InstallmentView] = Field(default_factory=list)
    open_ended: Optional[OpenEndedView] = None
    total_due: Decimal
