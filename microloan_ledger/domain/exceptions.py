"""Domain-specific exceptions"""

from typing import Any, Dict


class LedgerError(Exception):
    """
    Base exception for the ledger engine.

    Every subclass carries a stable ``code`` and a ``context`` dict with the
    offending bound / current state so callers can render a precise message.
    """

    code = "ledger_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "context": dict(self.context)}


class InvalidAmount(LedgerError):
    """Money input is unparseable, negative, or does not match the required figure"""

    code = "invalid_amount"


class InvalidDiscount(LedgerError):
    """Discount value is outside its allowed bound"""

    code = "invalid_discount"


class PartialNotAllowed(LedgerError):
    """Partial payments are blocked (open-ended cycle 3, or installment state)"""

    code = "partial_not_allowed"


class CreditLocked(LedgerError):
    """Credit state forbids the attempted mutating operation"""

    code = "credit_locked"


class InconsistentBalance(LedgerError):
    """A reported figure contradicts the components it should be made of"""

    code = "inconsistent_balance"


class InvalidRefinancingInput(LedgerError):
    """Refinancing request has a bad count, balance, tier or rate"""

    code = "invalid_refinancing_input"


class DuplicatePayment(LedgerError):
    """Payment identifier already recorded for this credit"""

    code = "duplicate_payment"


class OutOfOrderPayment(LedgerError):
    """Payment dated before the newest payment already recorded on an open-ended credit"""

    code = "out_of_order_payment"
