"""
Custom exceptions for finevents.

Purpose
-------
Provides a closed exception hierarchy for the event pipeline. Problems found
before expansion are fatal to the plan and never reach the engine; problems
raised by the engine are fatal to the current run only and are translated at
the orchestration boundary so raw engine text is never shown to users.

Exception Hierarchy
-------------------
FinEventsError (base)
├── PlanError - Fatal problems detected before expansion
│   ├── StructuralError - Missing or malformed required field
│   └── DomainError - Unresolvable or conflicting account type
│       └── UnknownAccountType - Identifier not in the alias table
├── ValidationFailedError - A plan was submitted with a failing report
├── EngineError - Failure of the current engine run
│   ├── EngineTimeoutError - Engine did not answer in time
│   ├── MalformedEngineOutputError - Engine answered with an unusable payload
│   └── EngineInternalError - Engine reported or raised a failure
└── RunSupersededError - A newer run replaced this one

Soft rule violations (contribution limits, suspicious amounts, truncated
schedules) are not exceptions. They are ``limit`` issues inside the
``ValidationReport``.

Usage
-----
>>> from finevents.exceptions import EngineError, ValidationFailedError
>>> try:
...     result = await pipeline.run(raw_events, initial_state)
... except ValidationFailedError as e:
...     show(e.report.errors)
... except EngineError as e:
...     show(e.user_message)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .validation import ValidationReport

__all__ = [
    "FinEventsError",
    "PlanError",
    "StructuralError",
    "DomainError",
    "UnknownAccountType",
    "ValidationFailedError",
    "EngineError",
    "EngineTimeoutError",
    "MalformedEngineOutputError",
    "EngineInternalError",
    "RunSupersededError",
]


class FinEventsError(Exception):
    """
    Base exception for all finevents errors.

    Examples
    --------
    >>> try:
    ...     pipeline.run_sync(raw_events, initial_state)
    ... except FinEventsError as e:
    ...     logger.error("plan failed: %s", e)
    """
    pass


# ---------------------------------------------------------------------------
# Plan errors (pre-expansion)
# ---------------------------------------------------------------------------

class PlanError(FinEventsError):
    """
    Fatal problem with a raw event detected before expansion.

    Parameters
    ----------
    message : str
        Human-readable description.
    event_id : str, optional
        Identifier of the offending event, when known.
    """

    def __init__(self, message: str, *, event_id: Optional[str] = None):
        super().__init__(message)
        self.event_id = event_id


class StructuralError(PlanError):
    """
    Missing or malformed required field.

    Raised for events without an id, without a known type, without a
    temporal shape, or with an amount that is not a finite number.

    Examples
    --------
    >>> raise StructuralError("Event is missing required field 'type'", event_id="evt-1")
    """
    pass


class DomainError(PlanError):
    """
    Unresolvable or conflicting account type.

    Examples
    --------
    >>> raise DomainError(
    ...     "SCHEDULED_CONTRIBUTION requires an account type",
    ...     event_id="contrib-401k",
    ... )
    """
    pass


class UnknownAccountType(DomainError, ValueError):
    """
    Account identifier not present in the canonical set or the alias table.

    Also a ``ValueError`` so it can be raised from pydantic validators.

    Examples
    --------
    >>> raise UnknownAccountType("401K")
    """

    def __init__(self, value: object, *, event_id: Optional[str] = None):
        super().__init__(f"Unknown account type: {value!r}", event_id=event_id)
        self.value = value


class ValidationFailedError(FinEventsError):
    """
    A plan with at least one fatal validation issue was submitted for simulation.

    The engine is never called when this is raised.

    Attributes
    ----------
    report : ValidationReport
        The full report, including every error and warning.
    """

    def __init__(self, report: "ValidationReport"):
        count = len(report.errors)
        noun = "error" if count == 1 else "errors"
        super().__init__(f"Plan failed validation with {count} {noun}")
        self.report = report


# ---------------------------------------------------------------------------
# Engine errors (per run)
# ---------------------------------------------------------------------------

class EngineError(FinEventsError):
    """
    Failure of a single simulation run.

    ``str(error)`` and ``user_message`` are safe to display. ``detail`` holds
    the raw engine text and belongs in logs only.

    Parameters
    ----------
    user_message : str
        Message suitable for the UI.
    detail : str, optional
        Raw diagnostic text from the engine.
    request_id : int, optional
        Orchestrator request the failure belongs to.
    """

    retryable: bool = False

    def __init__(
        self,
        user_message: str,
        *,
        detail: Optional[str] = None,
        request_id: Optional[int] = None,
    ):
        super().__init__(user_message)
        self.user_message = user_message
        self.detail = detail
        self.request_id = request_id


class EngineTimeoutError(EngineError):
    """
    Engine did not complete within the configured timeout.

    Examples
    --------
    >>> raise EngineTimeoutError("Simulation timed out after 30.0s", request_id=3)
    """

    retryable = True


class MalformedEngineOutputError(EngineError):
    """
    Engine returned a payload that does not match the response contract.

    Examples
    --------
    >>> raise MalformedEngineOutputError(
    ...     "Simulation engine returned an unreadable result",
    ...     detail="finalNetWorth: field required",
    ... )
    """
    pass


class EngineInternalError(EngineError):
    """
    Engine raised an exception or answered ``success: false``.
    """

    retryable = True


class RunSupersededError(FinEventsError):
    """
    Result of a run that was replaced by a newer request.

    The result is discarded and never aggregated.

    Attributes
    ----------
    request_id : int
        The superseded request.
    latest_request_id : int
        The request that replaced it.
    """

    def __init__(self, request_id: int, latest_request_id: int):
        super().__init__(
            f"Run {request_id} was superseded by run {latest_request_id}; result discarded"
        )
        self.request_id = request_id
        self.latest_request_id = latest_request_id
