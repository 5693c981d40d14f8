"""Unit tests for configuration, error records, JSON logging and metrics"""

import json
import logging
from decimal import Decimal

from prometheus_client import REGISTRY

from microloan_ledger.config import Settings
from microloan_ledger.domain.exceptions import (
    CreditLocked,
    DuplicatePayment,
    InconsistentBalance,
    InvalidAmount,
    InvalidDiscount,
    InvalidRefinancingInput,
    LedgerError,
    OutOfOrderPayment,
    PartialNotAllowed,
)
from microloan_ledger.infrastructure.observability.logging import CustomJsonFormatter
from microloan_ledger.infrastructure.observability.metrics import record_payment, record_rejection


def test_settings_defaults():
    settings = Settings()

    assert settings.service_name == "microloan-ledger"
    assert settings.open_ended_max_cycles == 3
    assert settings.open_ended_mora_daily_rate == Decimal("2.5")
    assert settings.refinancing_tier_p1_rate == Decimal("25")
    assert settings.refinancing_tier_p2_rate == Decimal("15")
    assert settings.timezone_offset_hours == -3


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("OPEN_ENDED_MORA_DAILY_RATE", "3")
    monkeypatch.setenv("BALANCE_TOLERANCE", "0.05")

    settings = Settings()

    assert settings.open_ended_mora_daily_rate == Decimal("3")
    assert settings.balance_tolerance == Decimal("0.05")


def test_error_codes_are_stable():
    errors = [
        InvalidAmount,
        InvalidDiscount,
        PartialNotAllowed,
        CreditLocked,
        InconsistentBalance,
        InvalidRefinancingInput,
        DuplicatePayment,
        OutOfOrderPayment,
    ]

    assert all(issubclass(e, LedgerError) for e in errors)
    assert [e.code for e in errors] == [
        "invalid_amount",
        "invalid_discount",
        "partial_not_allowed",
        "credit_locked",
        "inconsistent_balance",
        "invalid_refinancing_input",
        "duplicate_payment",
        "out_of_order_payment",
    ]


def test_error_carries_context():
    error = PartialNotAllowed("no partials in cycle 3", cycle_index=3)

    assert str(error) == "no partials in cycle 3"
    assert error.to_dict() == {
        "code": "partial_not_allowed",
        "message": "no partials in cycle 3",
        "context": {"cycle_index": 3},
    }


def test_json_formatter_adds_service_fields():
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    record = logging.LogRecord("microloan_ledger.test", logging.INFO, __file__, 1, "Payment allocated", None, None)
    record.credit_id = "C-100"
    record.amount = Decimal("3000.00")

    payload = json.loads(formatter.format(record))

    assert payload["message"] == "Payment allocated"
    assert payload["level"] == "INFO"
    assert payload["service"] == "microloan-ledger"
    assert payload["credit_id"] == "C-100"
    assert payload["amount"] == "3000.00"
    assert "timestamp" in payload


def test_record_rejection_increments_counter():
    before = REGISTRY.get_sample_value("ledger_rejections_total", {"code": "credit_locked"}) or 0.0

    record_rejection("credit_locked")

    assert REGISTRY.get_sample_value("ledger_rejections_total", {"code": "credit_locked"}) == before + 1


def test_record_payment_increments_counter():
    labels = {"modality": "libre", "mode": "total"}
    before = REGISTRY.get_sample_value("ledger_payments_total", labels) or 0.0

    record_payment("libre", "total", Decimal("7150.00"))

    assert REGISTRY.get_sample_value("ledger_payments_total", labels) == before + 1
