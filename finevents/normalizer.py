"""
Event expansion into canonical monthly records.

Purpose
-------
Turns one declarative, possibly-recurring event into concrete single-month
records with fully resolved amounts. This is the only place frequency,
growth and timing are interpreted; the output carries none of them.

Algorithm
---------
1. Window: single-month events occupy ``{month_offset}``; ranges occupy
   ``[start, end]`` inclusive, with a missing end defaulting to the horizon.
2. Empty window or non-finite amount: no records.
3. Frequency: the amount is divided by the months one period covers
   (12/52 weekly up to 12 annually) to get a monthly figure.
4. Growth compounds once per completed 12-month block from the event's own
   start: ``base * (1 + rate) ** ((m - start) // 12)``.
5. Windows longer than ``MAX_EXPANSION_MONTHS`` are truncated to the cap
   (logged at WARNING).

Sign is never interpreted here. Zero and negative amounts pass through.

Example
-------
>>> from finevents.adapter import to_event
>>> from finevents.normalizer import expand
>>> ev = to_event({"id": "rent", "type": "RECURRING_EXPENSE", "amount": 5000,
...                "annualGrowthRate": 0.05, "startDateOffset": 0, "endDateOffset": 23})
>>> out = expand(ev, 360)
>>> len(out), out[0].amount, round(out[12].amount, 2)
(24, 5000.0, 5250.0)
"""

from __future__ import annotations

import logging
import math
from datetime import date
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from .constants import MAX_EXPANSION_MONTHS, MONTHS_PER_YEAR
from .events import (
    CanonicalMonthlyEvent,
    EventKind,
    FinancialEvent,
    FlowCategory,
    SingleMonth,
)
from .utils import get_logger, month_index

__all__ = [
    "CASH_FLOW_SIGN",
    "event_window",
    "growth_factors",
    "expand",
    "expand_all",
    "events_frame",
    "monthly_net_flow",
]

CASH_FLOW_SIGN: Mapping[FlowCategory, float] = MappingProxyType({
    FlowCategory.INCOME: 1.0,
    FlowCategory.ONE_TIME: 1.0,
    FlowCategory.EXPENSE: -1.0,
    FlowCategory.CONTRIBUTION: -1.0,
    FlowCategory.WITHDRAWAL: 1.0,
})
"""Direction of each category's amount relative to cash."""

_FRAME_COLUMNS = ["event_id", "kind", "category", "month", "amount", "priority", "target_account"]


# ---------------------------------------------------------------------------
# Window and growth
# ---------------------------------------------------------------------------

def event_window(event: FinancialEvent, horizon_months: int) -> Tuple[int, int]:
    """
    Inclusive ``(first, last)`` month of an event before capping.

    ``first > last`` denotes an empty schedule.
    """
    timing = event.timing
    if isinstance(timing, SingleMonth):
        return timing.month_offset, timing.month_offset
    end = timing.end if timing.end is not None else horizon_months
    return timing.start, end


def growth_factors(offsets: np.ndarray, annual_rate: float) -> np.ndarray:
    """Compounding factor per month offset: ``(1 + r) ** (offset // 12)``."""
    years = np.asarray(offsets, dtype=int) // MONTHS_PER_YEAR
    if annual_rate == 0.0:
        return np.ones(years.shape, dtype=float)
    return np.power(1.0 + annual_rate, years, dtype=float)


# ---------------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------------

def expand(
    event: FinancialEvent,
    horizon_months: int,
    *,
    logger: Optional[logging.Logger] = None,
) -> Tuple[CanonicalMonthlyEvent, ...]:
    """
    Expand one typed event into canonical monthly records.

    Parameters
    ----------
    event : FinancialEvent
        Typed event (see ``finevents.adapter.to_event``).
    horizon_months : int
        Simulation horizon; end month for ranges without ``end``.
    logger : logging.Logger, optional
        Receives a WARNING when the window is truncated.

    Returns
    -------
    tuple of CanonicalMonthlyEvent
        Ordered by strictly increasing month. Empty for empty windows and
        non-finite amounts.

    Raises
    ------
    ValueError
        If ``horizon_months`` is negative.
    """
    if horizon_months < 0:
        raise ValueError(f"horizon_months must be non-negative, got {horizon_months}")

    first, last = event_window(event, horizon_months)
    if first > last or not math.isfinite(event.amount):
        return ()

    length = last - first + 1
    if length > MAX_EXPANSION_MONTHS:
        get_logger(logger, __name__).warning(
            "Event %s schedule truncated from %d to %d months",
            event.id, length, MAX_EXPANSION_MONTHS,
            extra={"event_id": event.id, "requested_months": length, "cap": MAX_EXPANSION_MONTHS},
        )
        length = MAX_EXPANSION_MONTHS

    offsets = np.arange(length)
    amounts = event.monthly_amount * growth_factors(offsets, event.annual_growth_rate)

    kind = EventKind(event.kind)
    return tuple(
        CanonicalMonthlyEvent(
            event_id=event.id,
            kind=kind,
            category=event.category,
            month=first + int(offset),
            amount=float(amount),
            priority=event.priority,
            target_account=event.target_account,
        )
        for offset, amount in zip(offsets, amounts)
    )


def expand_all(
    events: Iterable[FinancialEvent],
    horizon_months: int,
    *,
    logger: Optional[logging.Logger] = None,
) -> Tuple[CanonicalMonthlyEvent, ...]:
    """Expand every event and order by ``(month, priority, event_id)``."""
    expanded = [
        record
        for event in events
        for record in expand(event, horizon_months, logger=logger)
    ]
    expanded.sort(key=lambda r: (r.month, r.priority, r.event_id))
    return tuple(expanded)


# ---------------------------------------------------------------------------
# Tabular views
# ---------------------------------------------------------------------------

def events_frame(
    records: Iterable[CanonicalMonthlyEvent],
    *,
    start: Optional[date] = None,
) -> pd.DataFrame:
    """
    One row per canonical monthly event.

    If ``start`` is given, a ``date`` column holds the first day of each
    record's calendar month.
    """
    rows = [
        {
            "event_id": r.event_id,
            "kind": r.kind.value,
            "category": r.category.value,
            "month": r.month,
            "amount": r.amount,
            "priority": r.priority,
            "target_account": r.target_account.value,
        }
        for r in records
    ]
    frame = pd.DataFrame(rows, columns=_FRAME_COLUMNS)
    if start is not None:
        horizon = int(frame["month"].max()) + 1 if len(frame) else 0
        calendar = month_index(start, horizon)
        frame["date"] = calendar[frame["month"].to_numpy(dtype=int)] if len(frame) else pd.Series(dtype="datetime64[ns]")
    return frame


def monthly_net_flow(records: Iterable[CanonicalMonthlyEvent], months: Optional[int] = None) -> pd.Series:
    """
    Signed cash flow per month (income positive, outflows negative).

    Parameters
    ----------
    records : iterable of CanonicalMonthlyEvent
    months : int, optional
        Length of the returned series; defaults to the last month present + 1.
    """
    records = list(records)
    if months is None:
        months = max((r.month for r in records), default=-1) + 1
    flow = np.zeros(months, dtype=float)
    for r in records:
        if r.month < months:
            flow[r.month] += CASH_FLOW_SIGN[r.category] * r.amount
    return pd.Series(flow, index=pd.RangeIndex(months, name="month"), name="net_flow")
