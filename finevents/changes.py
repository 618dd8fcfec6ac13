"""
Confirmed-change adapter for chat-driven edits.

Purpose
-------
The natural-language extraction tool proposes edits as ``ConfirmedChange``
records (``fieldPath``, ``newValue``, ``scope``). This module applies them
to raw events before validation. Only allow-listed event fields can be
changed; everything else is rejected with a reason and logged, never
silently applied. Input events are not mutated.

Example
-------
>>> from finevents.changes import apply_changes
>>> events = [{"id": "rent", "type": "RECURRING_EXPENSE", "amount": 2000, "monthOffset": 0}]
>>> result = apply_changes(events, [
...     {"fieldPath": ["events", "rent", "amount"], "newValue": 2200, "scope": "scenario_only"},
...     {"fieldPath": ["events", "rent", "type"], "newValue": "INCOME", "scope": "scenario_only"},
... ])
>>> result.events[0]["amount"], len(result.applied), result.rejected[0].reason
(2200, 1, "Field 'type' cannot be changed")
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .utils import get_logger

__all__ = [
    "ChangeScope",
    "ConfirmedChange",
    "RejectedChange",
    "ChangeApplication",
    "ALLOWED_EVENT_FIELDS",
    "apply_changes",
]

ALLOWED_EVENT_FIELDS = frozenset({
    "amount",
    "annualGrowthRate",
    "monthOffset",
    "startDateOffset",
    "endDateOffset",
    "targetAccountType",
    "name",
    "frequency",
})
"""Event fields a confirmed change may set."""


class ChangeScope(str, Enum):
    SCENARIO_ONLY = "scenario_only"
    BASELINE_CANDIDATE = "baseline_candidate"


class ConfirmedChange(BaseModel):
    """
    One user-confirmed edit.

    Attributes
    ----------
    field_path : tuple of str
        ``("events", <event id>, <field>)``.
    new_value : Any
        Value to write; checked later by validation.
    scope : ChangeScope
        ``scenario_only`` edits apply to this run; ``baseline_candidate``
        edits are also proposed for the saved plan.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    field_path: Tuple[str, ...] = Field(alias="fieldPath", min_length=1)
    new_value: Any = Field(alias="newValue")
    scope: ChangeScope = ChangeScope.SCENARIO_ONLY


@dataclass(frozen=True)
class RejectedChange:
    change: Union[ConfirmedChange, Mapping[str, Any]]
    reason: str


@dataclass(frozen=True)
class ChangeApplication:
    """Result of ``apply_changes``."""

    events: Tuple[Dict[str, Any], ...]
    applied: Tuple[ConfirmedChange, ...]
    rejected: Tuple[RejectedChange, ...]

    @property
    def baseline_candidates(self) -> Tuple[ConfirmedChange, ...]:
        """Applied changes the user may want to keep in the saved plan."""
        return tuple(c for c in self.applied if c.scope is ChangeScope.BASELINE_CANDIDATE)


def _rejection_reason(change: ConfirmedChange, index: Mapping[str, int]) -> Optional[str]:
    path = change.field_path
    if len(path) != 3 or path[0] != "events":
        return f"Unsupported field path {'.'.join(path)!r}"
    _, event_id, field_name = path
    if event_id not in index:
        return f"No event with id {event_id!r}"
    if field_name not in ALLOWED_EVENT_FIELDS:
        return f"Field {field_name!r} cannot be changed"
    return None


def apply_changes(
    raw_events: Sequence[Mapping[str, Any]],
    changes: Iterable[Union[ConfirmedChange, Mapping[str, Any]]],
    *,
    logger: Optional[logging.Logger] = None,
) -> ChangeApplication:
    """
    Apply confirmed changes to a copy of ``raw_events``.

    Changes are applied in order; a later change to the same field wins.
    Records that do not parse as a ``ConfirmedChange`` are rejected too.
    """
    log = get_logger(logger, __name__)
    events: List[Dict[str, Any]] = [copy.deepcopy(dict(e)) for e in raw_events]
    index = {e.get("id"): i for i, e in enumerate(events) if isinstance(e.get("id"), str)}
    applied: List[ConfirmedChange] = []
    rejected: List[RejectedChange] = []

    for item in changes:
        if isinstance(item, ConfirmedChange):
            change = item
        else:
            try:
                change = ConfirmedChange.model_validate(item)
            except PydanticValidationError as e:
                reason = f"Malformed change: {e.errors()[0]['msg']}"
                log.warning("Rejected change: %s", reason, extra={"change": repr(item)})
                rejected.append(RejectedChange(item, reason))
                continue

        reason = _rejection_reason(change, index)
        if reason is not None:
            log.warning("Rejected change %s: %s", list(change.field_path), reason,
                        extra={"field_path": list(change.field_path), "scope": change.scope.value})
            rejected.append(RejectedChange(change, reason))
            continue

        _, event_id, field_name = change.field_path
        events[index[event_id]][field_name] = copy.deepcopy(change.new_value)
        applied.append(change)
        log.info("Applied change %s (%s)", list(change.field_path), change.scope.value,
                 extra={"field_path": list(change.field_path), "scope": change.scope.value})

    return ChangeApplication(tuple(events), tuple(applied), tuple(rejected))
