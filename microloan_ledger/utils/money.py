"""Money parsing and rounding helpers"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from microloan_ledger.domain.exceptions import InvalidAmount

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

_CURRENCY_RE = re.compile(r"(?:ARS|USD|AR\$|US\$|U\$S|\$)", re.IGNORECASE)
_NOISE_RE = re.compile(r"[^\d.,-]")


def round2(value: Any) -> Decimal:
    """Round to cents using round-half-up (1.005 -> 1.01)."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Decimal(value)
    # floats go through str() so 0.1 stays 0.1
    return parse_amount(value)


def parse_amount(raw: Any) -> Decimal:
    """
    Parse numbers written in either AR ("30.250,50") or US ("30,250.50") style.

    Rules:
    - Both "." and "," present: the rightmost one is the decimal separator,
      the other one groups thousands.
    - Only one separator present: a trailing group of exactly 3 digits means
      thousands ("220.000" -> 220000), anything else is a decimal
      ("1234.56", "1234,5").
    - A currency marker ($, ARS, USD) is ignored; any other letter makes
      the input unparseable ("1e5" is not 100000).
    - None, empty or unparseable input returns 0. Never raises; use
      require_amount where garbage must be rejected.

    Examples:
        "1.234,56" -> 1234.56
        "1,234.56" -> 1234.56
        "1.234"    -> 1234
        "$ 150,5"  -> 150.5
    """
    if raw is None or isinstance(raw, bool):
        return ZERO
    if isinstance(raw, Decimal):
        return raw if raw.is_finite() else ZERO
    if isinstance(raw, int):
        return Decimal(raw)
    if isinstance(raw, float):
        if raw != raw or raw in (float("inf"), float("-inf")):
            return ZERO
        return Decimal(str(raw))

    text = _CURRENCY_RE.sub("", str(raw).strip())
    if any(ch.isalpha() for ch in text):
        return ZERO
    s = _NOISE_RE.sub("", text)
    if not s or s in {"-", ".", ","}:
        return ZERO

    last_dot = s.rfind(".")
    last_comma = s.rfind(",")

    if last_dot != -1 and last_comma != -1:
        if last_dot > last_comma:
            normalized = s.replace(",", "")
        else:
            normalized = s.replace(".", "").replace(",", ".")
    elif last_dot != -1 or last_comma != -1:
        sep = "." if last_dot != -1 else ","
        groups = s.split(sep)
        if len(groups[-1]) == 3 and len(groups) > 1 and all(g.lstrip("-").isdigit() for g in groups):
            normalized = "".join(groups)
        elif len(groups) == 2:
            normalized = f"{groups[0]}.{groups[1]}"
        else:
            # "1.2.3": separators that are neither thousands nor a single decimal point
            return ZERO
    else:
        normalized = s

    try:
        value = Decimal(normalized)
    except InvalidOperation:
        return ZERO
    return value if value.is_finite() else ZERO


def require_amount(raw: Any, field: str = "amount", allow_zero: bool = False) -> Decimal:
    """
    Strict variant of parse_amount for amounts a user typed in.

    Raises:
        InvalidAmount: when the input is missing, unparseable, negative or
            (unless allow_zero) zero
    """
    value = parse_amount(raw)
    blank = raw is None or (isinstance(raw, str) and not raw.strip())
    if blank or (value == 0 and _unparsed(raw)):
        raise InvalidAmount(f"{field} is not a valid amount", field=field, value=raw)
    if value < 0 or (value == 0 and not allow_zero):
        bound = "> 0" if not allow_zero else ">= 0"
        raise InvalidAmount(f"{field} must be {bound}", field=field, value=raw, bound=bound)
    return round2(value)


def _unparsed(raw: Any) -> bool:
    """A 0 parse is wrong when the input had no digits at all, or had nonzero ones"""
    digits = [ch for ch in str(raw) if ch.isdigit()]
    return not digits or any(ch != "0" for ch in digits)


def clamp_non_negative(value: Decimal) -> Decimal:
    return value if value > 0 else ZERO
