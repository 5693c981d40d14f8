"""Billing-cycle resolution for open-ended ("libre") credits"""

from datetime import date, datetime, timedelta
from typing import List, Optional

from microloan_ledger.config import settings
from microloan_ledger.domain.models import Cycle
from microloan_ledger.utils.date_utils import add_months, as_date, local_today


def cycle_for_index(anchor: date, index: int, max_cycles: Optional[int] = None) -> Cycle:
    """
    Boundaries of cycle ``index`` counted from ``anchor``.

    Every boundary is computed from the anchor itself (never chained), so a
    Jan 31 anchor yields Feb 28/29 and then Mar 31.
    """
    if max_cycles is None:
        max_cycles = settings.open_ended_max_cycles
    start = add_months(anchor, index - 1)
    next_start = add_months(anchor, index)
    end = next_start if index < max_cycles else None
    return Cycle(index=index, start=start, end=end, due_date=next_start - timedelta(days=1))


def resolve_cycle(
    anchor: Optional[date],
    today: date | datetime | None = None,
    max_cycles: Optional[int] = None,
) -> Cycle:
    """
    Determine which monthly cycle an open-ended credit is in.

    Cycle 1 = [anchor, anchor+1m), cycle 2 = [anchor+1m, anchor+2m),
    cycle 3 = [anchor+2m, open). There is no cycle 4: past the third
    boundary the credit stays in cycle 3 until settled or refinanced.

    A missing anchor resolves to cycle 1 with no bounds, so callers can
    still render something.
    """
    if max_cycles is None:
        max_cycles = settings.open_ended_max_cycles
    if anchor is None:
        return Cycle(index=1, start=None, end=None, due_date=None)

    today = local_today() if today is None else as_date(today)

    index = 1
    for candidate in range(2, max_cycles + 1):
        if today >= add_months(anchor, candidate - 1):
            index = candidate
        else:
            break
    return cycle_for_index(anchor, index, max_cycles)


def cycle_due_dates(anchor: Optional[date], max_cycles: Optional[int] = None) -> List[Optional[date]]:
    """Compromise date of every cycle (anchor + k months - 1 day)"""
    if max_cycles is None:
        max_cycles = settings.open_ended_max_cycles
    if anchor is None:
        return [None] * max_cycles
    return [cycle_for_index(anchor, i, max_cycles).due_date for i in range(1, max_cycles + 1)]
