"""Structured JSON logging for ledger operations"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from microloan_ledger.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name
        # Decimals would otherwise be rendered through repr()
        for key, value in log_record.items():
            if isinstance(value, Decimal):
                log_record[key] = str(value)


def setup_logging(level: Optional[str] = None) -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level or settings.log_level)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_payment(
    credit_id: str,
    payment_id: str,
    mode: str,
    amount: Decimal,
    state_after: str,
    surplus: Decimal,
    exceeds_recommendation: bool,
) -> None:
    """Log structured payment allocation outcome"""
    logging.info(
        "Payment allocated",
        extra={
            "credit_id": credit_id,
            "payment_id": payment_id,
            "step": "payment_allocated",
            "mode": mode,
            "amount": amount,
            "state_after": state_after,
            "surplus": surplus,
            "exceeds_recommendation": exceeds_recommendation,
        },
    )


def log_refinancing(
    credit_id: str,
    new_credit_id: str,
    tier: str,
    outstanding_balance: Decimal,
    new_total: Decimal,
) -> None:
    """Log structured refinancing outcome"""
    logging.info(
        "Credit refinanced",
        extra={
            "credit_id": credit_id,
            "new_credit_id": new_credit_id,
            "step": "refinanced",
            "tier": tier,
            "outstanding_balance": outstanding_balance,
            "new_total": new_total,
        },
    )


def log_void(credit_id: str, previous_state: str) -> None:
    logging.info(
        "Credit voided",
        extra={"credit_id": credit_id, "step": "voided", "previous_state": previous_state},
    )


def log_rejection(credit_id: Optional[str], operation: str, code: str, message: str, context: Dict[str, Any]) -> None:
    """Business-rule rejections are expected; log them at WARNING with the error code"""
    logging.warning(
        f"{operation} rejected: {message}",
        extra={
            "credit_id": credit_id,
            "step": f"{operation}_rejected",
            "error_code": code,
            "context": {key: str(value) for key, value in context.items()},
        },
    )
