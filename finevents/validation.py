"""
Validation pipeline for raw financial events.

Purpose
-------
Runs structural and domain rules over the raw, pre-expansion event list and
returns an immutable ``ValidationReport``. Problems are data: ``validate``
never raises for bad input. The report's ``valid`` flag is False exactly
when at least one fatal issue exists; warnings never flip it.

Rules (per event, in order)
---------------------------
Structural (fatal, stops further checks for the event)
    missing id, missing/unknown type, no temporal shape, bad offsets,
    missing or non-finite amount, unknown frequency.
Domain (fatal)
    contribution without any account reference (exactly one error);
    each account field that does not resolve.
Info (warning)
    each account field holding a legacy alias, including an overridden
    ``accountType`` (an event counts once in ``fixed_mappings``);
    both the legacy and canonical account fields present.
Limit (warning)
    annualized contribution above the category limit for the tax year;
    implausibly large amounts; schedules truncated at the expansion cap.

Example
-------
>>> from finevents.validation import validate
>>> report = validate([{"id": "c1", "type": "SCHEDULED_CONTRIBUTION",
...                     "amount": 500, "monthOffset": 0}])
>>> report.valid, [e.code for e in report.errors]
(False, ['missing_account_type'])
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type

from .accounts import CanonicalAccountType, display_name, is_legacy_alias, is_valid, resolve
from .adapter import (
    CANONICAL_ACCOUNT_FIELD,
    LEGACY_ACCOUNT_FIELD,
    account_reference,
    parse_frequency,
    parse_timing,
    to_event,
)
from .constants import (
    CONTRIBUTION_LIMITS,
    DEFAULT_TAX_YEAR,
    MAX_EXPANSION_MONTHS,
    MAX_REASONABLE_ANNUAL_AMOUNT,
    MAX_REASONABLE_MONTHLY_AMOUNT,
    MONTHS_PER_YEAR,
)
from .events import CONTRIBUTION_KINDS, EventKind, FinancialEvent, FlowCategory, Frequency
from .exceptions import DomainError, PlanError, StructuralError
from .normalizer import event_window
from .types import ValidationReportDict, ValidationStatsDict
from .utils import format_currency, get_logger, is_finite_number

__all__ = [
    "IssueSeverity",
    "ValidationIssue",
    "ValidationStats",
    "ValidationReport",
    "contribution_limit",
    "validate",
]

_KINDS = frozenset(k.value for k in EventKind)
_VALID_ACCOUNT_HINT = ", ".join(t.value for t in CanonicalAccountType)


# ---------------------------------------------------------------------------
# Report types
# ---------------------------------------------------------------------------

class IssueSeverity(str, Enum):
    """Severity of a validation issue. Structural and domain issues are fatal."""

    STRUCTURAL = "structural"
    DOMAIN = "domain"
    LIMIT = "limit"
    INFO = "info"

    @property
    def fatal(self) -> bool:
        return self in (IssueSeverity.STRUCTURAL, IssueSeverity.DOMAIN)


_SEVERITY_ERRORS: Dict[IssueSeverity, Type[PlanError]] = {
    IssueSeverity.STRUCTURAL: StructuralError,
    IssueSeverity.DOMAIN: DomainError,
}


@dataclass(frozen=True)
class ValidationIssue:
    """
    One finding about one event.

    Attributes
    ----------
    event_id : str, optional
        Offending event (None when the id itself is missing).
    event_name : str
        Display name, falling back to the id or the list position.
    severity : IssueSeverity
    code : str
        Stable machine-readable identifier (``missing_account_type`` ...).
    message : str
        Human-readable description.
    fix : str, optional
        Suggested remedy shown as guidance.
    """

    event_id: Optional[str]
    event_name: str
    severity: IssueSeverity
    code: str
    message: str
    fix: Optional[str] = None

    @property
    def fatal(self) -> bool:
        return self.severity.fatal

    def to_exception(self) -> PlanError:
        """Exception equivalent of a fatal issue."""
        if not self.fatal:
            raise ValueError(f"{self.code} is not a fatal issue")
        return _SEVERITY_ERRORS[self.severity](self.message, event_id=self.event_id)

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "eventId": self.event_id,
            "eventName": self.event_name,
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
        }
        if self.fix:
            out["fix"] = self.fix
        return out


@dataclass(frozen=True)
class ValidationStats:
    """Aggregate counters for one validation pass."""

    total_events: int = 0
    valid_events: int = 0
    fixed_mappings: int = 0
    unknown_accounts: int = 0

    def to_dict(self) -> ValidationStatsDict:
        return {
            "totalEvents": self.total_events,
            "validEvents": self.valid_events,
            "fixedMappings": self.fixed_mappings,
            "unknownAccounts": self.unknown_accounts,
        }


@dataclass(frozen=True)
class ValidationReport:
    """
    Immutable result of ``validate``.

    ``errors`` holds fatal issues and ``warnings`` non-fatal ones, both in
    event order.
    """

    errors: Tuple[ValidationIssue, ...] = ()
    warnings: Tuple[ValidationIssue, ...] = ()
    stats: ValidationStats = field(default_factory=ValidationStats)

    @property
    def valid(self) -> bool:
        return not self.errors

    def issues_for(self, event_id: str) -> Tuple[ValidationIssue, ...]:
        """Errors then warnings attached to ``event_id``."""
        return tuple(i for i in self.errors + self.warnings if i.event_id == event_id)

    def raise_for_errors(self) -> None:
        """Raise the first fatal issue as ``StructuralError``/``DomainError``."""
        if self.errors:
            error = self.errors[0].to_exception()
            error.report = self
            raise error

    def to_dict(self) -> ValidationReportDict:
        return {
            "valid": self.valid,
            "errors": [i.to_dict() for i in self.errors],
            "warnings": [i.to_dict() for i in self.warnings],
            "stats": self.stats.to_dict(),
        }


# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------

def contribution_limit(category: CanonicalAccountType, tax_year: int) -> Optional[float]:
    """
    Annual contribution limit for ``category`` in ``tax_year``.

    Years after the last known table use the latest year; years before the
    first use the earliest. Returns None for categories without a limit.
    """
    years = sorted(CONTRIBUTION_LIMITS)
    if tax_year in CONTRIBUTION_LIMITS:
        year = tax_year
    elif tax_year > years[-1]:
        year = years[-1]
    else:
        year = years[0]
    return CONTRIBUTION_LIMITS[year].get(category.value)


# ---------------------------------------------------------------------------
# Per-event rules
# ---------------------------------------------------------------------------

@dataclass
class _EventCheck:
    """Mutable scratch state for one event; never escapes ``validate``."""

    event_id: Optional[str]
    event_name: str
    issues: List[ValidationIssue] = field(default_factory=list)
    legacy_alias: bool = False
    unknown_accounts: int = 0

    def add(self, severity: IssueSeverity, code: str, message: str, fix: Optional[str] = None) -> None:
        self.issues.append(
            ValidationIssue(self.event_id, self.event_name, severity, code, message, fix)
        )

    @property
    def fatal(self) -> bool:
        return any(i.fatal for i in self.issues)


def _check_structure(raw: Mapping[str, Any], check: _EventCheck) -> None:
    if not isinstance(raw.get("id"), str) or not raw.get("id"):
        check.add(IssueSeverity.STRUCTURAL, "missing_id", "Event is missing required field 'id'",
                  "Give every event a unique string id")
        return
    kind = raw.get("type")
    if kind is None or kind == "":
        check.add(IssueSeverity.STRUCTURAL, "missing_type", "Event is missing required field 'type'")
        return
    if not isinstance(kind, str) or kind not in _KINDS:
        check.add(IssueSeverity.STRUCTURAL, "unknown_type", f"Unknown event type {kind!r}",
                  f"Use one of: {', '.join(sorted(_KINDS))}")
        return
    try:
        parse_timing(raw, check.event_id)
        parse_frequency(raw.get("frequency"), check.event_id)
    except StructuralError as e:
        check.add(IssueSeverity.STRUCTURAL, "invalid_schedule", str(e))
        return
    if "amount" not in raw or raw["amount"] is None:
        check.add(IssueSeverity.STRUCTURAL, "missing_amount", f"{kind} event requires an amount")
        return
    if not is_finite_number(raw["amount"]):
        check.add(IssueSeverity.STRUCTURAL, "invalid_amount",
                  f"Amount {raw['amount']!r} is not a finite number",
                  "Enter the amount as a plain number, e.g. 1500")


def _check_accounts(raw: Mapping[str, Any], check: _EventCheck) -> None:
    kind = raw["type"]
    ref = account_reference(raw)

    for field_name, value in ref.values.items():
        if not is_valid(value):
            check.unknown_accounts += 1
            check.add(IssueSeverity.DOMAIN, "invalid_account_type",
                      f'Invalid {field_name} "{value}"',
                      f"Use one of: {_VALID_ACCOUNT_HINT}")

    if not ref.present:
        if kind in CONTRIBUTION_KINDS and kind != EventKind.FIVE_TWO_NINE_CONTRIBUTION.value:
            check.add(IssueSeverity.DOMAIN, "missing_account_type",
                      f"{kind} requires an account type",
                      f"Set {CANONICAL_ACCOUNT_FIELD} to one of: {_VALID_ACCOUNT_HINT}")
        return

    for value in ref.values.values():
        if is_legacy_alias(value):
            check.legacy_alias = True
            check.add(IssueSeverity.INFO, "legacy_account_alias",
                      f'Legacy account type "{value}" will be mapped to "{resolve(value).value}"')
    if ref.redundant:
        check.add(IssueSeverity.INFO, "redundant_account_fields",
                  f"Event has both {CANONICAL_ACCOUNT_FIELD} and {LEGACY_ACCOUNT_FIELD}; "
                  f"{CANONICAL_ACCOUNT_FIELD} will be used",
                  f"Remove {LEGACY_ACCOUNT_FIELD}")


def _check_limits(
    event: FinancialEvent,
    check: _EventCheck,
    tax_year: int,
    horizon_months: Optional[int],
) -> None:
    annual = event.monthly_amount * MONTHS_PER_YEAR

    if event.category is FlowCategory.CONTRIBUTION:
        limit = contribution_limit(event.target_account, tax_year)
        if limit is not None and annual > limit:
            check.add(IssueSeverity.LIMIT, "contribution_limit",
                      f"Annual contribution of {format_currency(annual)} exceeds the {tax_year} "
                      f"{display_name(event.target_account)} limit of {format_currency(limit)}",
                      "Excess contributions may be taxed; consider a taxable account for the remainder")

    if event.frequency is Frequency.ANNUALLY:
        suspicious = abs(event.amount) > MAX_REASONABLE_ANNUAL_AMOUNT
    else:
        suspicious = abs(event.monthly_amount) > MAX_REASONABLE_MONTHLY_AMOUNT
    if suspicious:
        check.add(IssueSeverity.LIMIT, "suspicious_amount",
                  f"Amount {format_currency(event.amount)} ({event.frequency.value}) is unusually large",
                  "Check that the amount and its frequency are entered correctly")

    if event.timing.shape == "range" and (event.timing.end is not None or horizon_months is not None):
        first, last = event_window(event, horizon_months or 0)
        length = last - first + 1
        if length > MAX_EXPANSION_MONTHS:
            check.add(IssueSeverity.LIMIT, "schedule_truncated",
                      f"Schedule of {length} months will be truncated to {MAX_EXPANSION_MONTHS} months",
                      "Set an end date within 100 years of the start")


def _check_event(
    raw: Any,
    position: int,
    tax_year: int,
    horizon_months: Optional[int],
) -> _EventCheck:
    if not isinstance(raw, Mapping):
        check = _EventCheck(None, f"event #{position + 1}")
        check.add(IssueSeverity.STRUCTURAL, "not_an_object",
                  f"Event #{position + 1} is not an object")
        return check

    event_id = raw.get("id") if isinstance(raw.get("id"), str) and raw.get("id") else None
    check = _EventCheck(event_id, str(raw.get("name") or event_id or f"event #{position + 1}"))

    _check_structure(raw, check)
    if check.fatal:
        return check
    _check_accounts(raw, check)
    if check.fatal:
        return check

    try:
        event = to_event(raw)
    except PlanError as e:
        check.add(IssueSeverity.STRUCTURAL, "invalid_event", str(e))
        return check
    _check_limits(event, check, tax_year, horizon_months)
    return check


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def validate(
    raw_events: Iterable[Any],
    *,
    tax_year: int = DEFAULT_TAX_YEAR,
    horizon_months: Optional[int] = None,
    logger: Optional[logging.Logger] = None,
) -> ValidationReport:
    """
    Validate raw events and return an immutable report.

    Parameters
    ----------
    raw_events : iterable of Mapping
        Wire events as supplied by the UI store or a plan file.
    tax_year : int, default DEFAULT_TAX_YEAR
        Year whose contribution limits apply.
    horizon_months : int, optional
        Simulation horizon; enables the truncation check for open-ended ranges.
    logger : logging.Logger, optional
        Receives one WARNING per fatal issue and an INFO summary.

    Returns
    -------
    ValidationReport
    """
    log = get_logger(logger, __name__)
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []
    total = valid_count = fixed = unknown = 0

    for position, raw in enumerate(raw_events):
        check = _check_event(raw, position, tax_year, horizon_months)
        total += 1
        valid_count += 0 if check.fatal else 1
        fixed += int(check.legacy_alias)
        unknown += check.unknown_accounts
        for issue in check.issues:
            (errors if issue.fatal else warnings).append(issue)
            if issue.fatal:
                log.warning(
                    "Validation error on %s: %s", issue.event_name, issue.message,
                    extra={"event_id": issue.event_id, "code": issue.code},
                )

    stats = ValidationStats(total, valid_count, fixed, unknown)
    log.info(
        "Validated %d events: %d errors, %d warnings, %d legacy mappings",
        total, len(errors), len(warnings), fixed,
        extra={"stats": stats.to_dict()},
    )
    return ValidationReport(tuple(errors), tuple(warnings), stats)
