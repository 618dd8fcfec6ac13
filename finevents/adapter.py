"""
Boundary adapter from raw wire events to typed events.

Purpose
-------
Raw events arrive as loosely-typed dictionaries from the UI store, older
saved plans and the chat extraction tool. This module is the single place
where their field-presence conventions are interpreted:

- ``targetAccountType`` (canonical field) wins over ``accountType`` (legacy)
- ``startDateOffset`` selects the recurring shape, ``monthOffset`` the single one
- ``frequency`` labels and ``HIGH``/``MEDIUM``/``LOW`` priorities are mapped
- ``FIVE_TWO_NINE_CONTRIBUTION`` implies the education-savings category

Nothing downstream of ``to_event`` looks at raw dictionaries again.

Example
-------
>>> from finevents.adapter import to_event
>>> ev = to_event({"id": "salary", "type": "INCOME", "amount": "8500",
...                "startDateOffset": 0, "endDateOffset": 239})
>>> type(ev).__name__, ev.amount, ev.timing.end
('IncomeEvent', 8500.0, 239)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from .accounts import CanonicalAccountType, is_valid, resolve
from .constants import PRIORITY_LABELS
from .events import (
    CONTRIBUTION_KINDS,
    EventKind,
    FinancialEvent,
    MonthRange,
    SingleMonth,
    Timing,
)
from .exceptions import DomainError, StructuralError, UnknownAccountType
from .types import RawEventDict

__all__ = [
    "CANONICAL_ACCOUNT_FIELD",
    "LEGACY_ACCOUNT_FIELD",
    "AccountReference",
    "account_reference",
    "parse_timing",
    "parse_frequency",
    "to_event",
    "to_events",
    "to_raw",
]

CANONICAL_ACCOUNT_FIELD = "targetAccountType"
LEGACY_ACCOUNT_FIELD = "accountType"

_FREQUENCY_LABELS: Dict[str, str] = {
    "weekly": "weekly",
    "biweekly": "biweekly",
    "bi-weekly": "biweekly",
    "monthly": "monthly",
    "quarterly": "quarterly",
    "semiannually": "semiannually",
    "semi-annually": "semiannually",
    "semi_annually": "semiannually",
    "semiannual": "semiannually",
    "annually": "annually",
    "annual": "annually",
    "yearly": "annually",
    "one-time": "monthly",
    "once": "monthly",
}

_KINDS = frozenset(k.value for k in EventKind)

_EVENT_ADAPTER: TypeAdapter = TypeAdapter(FinancialEvent)


# ---------------------------------------------------------------------------
# Account fields
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AccountReference:
    """
    Account fields found on a raw event.

    Attributes
    ----------
    value : str, optional
        Winning raw identifier (canonical field first), or None if absent.
    field : str, optional
        Wire field ``value`` came from.
    redundant : bool
        Both the canonical and the legacy field are present.
    values : dict
        Every present account field mapped to its raw value.
    """

    value: Optional[str]
    field: Optional[str]
    redundant: bool
    values: Dict[str, Any]

    @property
    def present(self) -> bool:
        return self.value is not None


def _present(raw: Mapping[str, Any], key: str) -> bool:
    value = raw.get(key)
    return value is not None and value != ""


def account_reference(raw: Mapping[str, Any]) -> AccountReference:
    """Collect the account fields of ``raw``; empty strings count as absent."""
    values = {
        key: raw[key]
        for key in (CANONICAL_ACCOUNT_FIELD, LEGACY_ACCOUNT_FIELD)
        if _present(raw, key)
    }
    if CANONICAL_ACCOUNT_FIELD in values:
        field = CANONICAL_ACCOUNT_FIELD
    elif LEGACY_ACCOUNT_FIELD in values:
        field = LEGACY_ACCOUNT_FIELD
    else:
        return AccountReference(None, None, False, {})
    return AccountReference(values[field], field, len(values) == 2, values)


def _resolve_target(raw: Mapping[str, Any], kind: str, event_id: str) -> Optional[CanonicalAccountType]:
    ref = account_reference(raw)
    for value in ref.values.values():
        if not is_valid(value):
            raise UnknownAccountType(value, event_id=event_id)
    if ref.present:
        return resolve(ref.value)
    if kind == EventKind.FIVE_TWO_NINE_CONTRIBUTION.value:
        return CanonicalAccountType.EDUCATION
    if kind in CONTRIBUTION_KINDS:
        raise DomainError(f"{kind} requires an account type", event_id=event_id)
    return None


# ---------------------------------------------------------------------------
# Timing / frequency / priority
# ---------------------------------------------------------------------------

def _offset(raw: Mapping[str, Any], key: str, event_id: Optional[str]) -> int:
    value = raw[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise StructuralError(f"{key} must be an integer month, got {value!r}", event_id=event_id)
    try:
        whole = math.isfinite(value) and value == int(value)
    except OverflowError:
        raise StructuralError(f"{key} is out of range", event_id=event_id) from None
    if not whole:
        raise StructuralError(f"{key} must be an integer month, got {value!r}", event_id=event_id)
    if value < 0:
        raise StructuralError(f"{key} must be non-negative, got {value!r}", event_id=event_id)
    return int(value)


def parse_timing(raw: Mapping[str, Any], event_id: Optional[str] = None) -> Timing:
    """
    Build the temporal shape of a raw event.

    ``startDateOffset`` selects a recurring range (older payloads also copy
    it into ``monthOffset``); otherwise ``monthOffset`` selects a single
    month.

    Raises
    ------
    StructuralError
        If neither shape is present or an offset is not a non-negative integer.
    """
    if raw.get("startDateOffset") is not None:
        start = _offset(raw, "startDateOffset", event_id)
        end = _offset(raw, "endDateOffset", event_id) if raw.get("endDateOffset") is not None else None
        return MonthRange(start=start, end=end)
    if raw.get("monthOffset") is not None:
        return SingleMonth(month_offset=_offset(raw, "monthOffset", event_id))
    raise StructuralError(
        "Event needs either monthOffset or startDateOffset", event_id=event_id
    )


def parse_frequency(value: Any, event_id: Optional[str] = None) -> str:
    """Map a wire frequency label to a ``Frequency`` value."""
    if value is None:
        return "monthly"
    label = _FREQUENCY_LABELS.get(str(value).lower())
    if label is None:
        raise StructuralError(f"Unknown frequency {value!r}", event_id=event_id)
    return label


def _priority(value: Any, event_id: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, str) and value.upper() in PRIORITY_LABELS:
        return PRIORITY_LABELS[value.upper()]
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise StructuralError(f"priority must be an integer or HIGH/MEDIUM/LOW, got {value!r}", event_id=event_id)


def _growth(raw: Mapping[str, Any], event_id: str) -> float:
    value = raw.get("annualGrowthRate", raw.get("growthRate"))
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise StructuralError(f"annualGrowthRate must be a finite number, got {value!r}", event_id=event_id)
    try:
        rate = float(value)
    except OverflowError:
        raise StructuralError("annualGrowthRate is out of range", event_id=event_id) from None
    if not math.isfinite(rate):
        raise StructuralError(f"annualGrowthRate must be a finite number, got {value!r}", event_id=event_id)
    if rate <= -1.0:
        raise StructuralError(f"annualGrowthRate must be > -1, got {value!r}", event_id=event_id)
    return rate


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------

def to_event(raw: Mapping[str, Any]) -> FinancialEvent:
    """
    Convert one raw wire event into a typed event.

    Parameters
    ----------
    raw : Mapping
        Wire dictionary (camelCase keys).

    Returns
    -------
    FinancialEvent

    Raises
    ------
    StructuralError
        Missing id/type/timing/amount, unknown type, bad offsets or labels.
    DomainError
        Contribution without an account reference.
    UnknownAccountType
        An account field that does not resolve.
    """
    event_id = raw.get("id")
    if not isinstance(event_id, str) or not event_id:
        raise StructuralError("Event is missing required field 'id'")
    kind = raw.get("type")
    if kind is None or kind == "":
        raise StructuralError("Event is missing required field 'type'", event_id=event_id)
    if not isinstance(kind, str) or kind not in _KINDS:
        raise StructuralError(f"Unknown event type {kind!r}", event_id=event_id)
    if "amount" not in raw or raw["amount"] is None:
        raise StructuralError("Event is missing required field 'amount'", event_id=event_id)

    payload = {
        "id": event_id,
        "kind": kind,
        "name": str(raw.get("name") or raw.get("description") or ""),
        "priority": _priority(raw.get("priority"), event_id),
        "timing": parse_timing(raw, event_id),
        "amount": raw["amount"],
        "frequency": parse_frequency(raw.get("frequency"), event_id),
        "annual_growth_rate": _growth(raw, event_id),
        "target_account": _resolve_target(raw, kind, event_id),
    }
    try:
        return _EVENT_ADAPTER.validate_python(payload)
    except PydanticValidationError as e:
        raise StructuralError(f"Invalid event: {e.errors()[0]['msg']}", event_id=event_id) from e


def to_events(raws: Sequence[Mapping[str, Any]]) -> List[FinancialEvent]:
    """Convert every raw event; the first failure propagates."""
    return [to_event(raw) for raw in raws]


def to_raw(event: FinancialEvent) -> RawEventDict:
    """
    Render a typed event back to its canonical wire form.

    The output uses only the canonical account field, so feeding it back
    through validation produces no alias or redundancy warnings.
    """
    raw: RawEventDict = {
        "id": event.id,
        "type": event.kind,
        "amount": event.amount,
        "priority": event.priority,
        "frequency": event.frequency.value,
        "targetAccountType": event.target_account.value,
    }
    if event.name:
        raw["name"] = event.name
    if event.annual_growth_rate:
        raw["annualGrowthRate"] = event.annual_growth_rate
    timing = event.timing
    if isinstance(timing, SingleMonth):
        raw["monthOffset"] = timing.month_offset
    else:
        raw["startDateOffset"] = timing.start
        if timing.end is not None:
            raw["endDateOffset"] = timing.end
    return raw
