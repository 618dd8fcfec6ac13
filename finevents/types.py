"""
Type definitions for finevents.

Purpose
-------
TypedDict definitions of the dictionaries exchanged across the package
boundary: raw events from the UI store, the engine request and response,
and the serialized report and outcome handed back for display.

Usage
-----
>>> from finevents.types import RawEventDict, EngineRequestDict
>>> raw: RawEventDict = {"id": "salary", "type": "INCOME", "amount": 8500,
...                      "startDateOffset": 0}

Type Definitions
----------------
RawEventDict
    Pre-validation event as authored by users or older payloads
WireEventDict
    Canonical monthly event as sent to the engine
InitialAccountsDict
    Starting balance per canonical account category
EngineConfigDict
    Expected returns and volatilities per asset class
EngineRequestDict / EngineResponseDict
    Engine wire contract
MonthlySnapshotDict
    One entry of ``monthlyData``
ValidationReportDict / GoalOutcomeDict
    Serialized results
"""

from typing import Any, Dict, List, Optional, Union

from typing_extensions import NotRequired, TypedDict

__all__ = [
    "RawEventDict",
    "WireEventDict",
    "InitialAccountsDict",
    "EngineConfigDict",
    "EngineRequestDict",
    "MonthlySnapshotDict",
    "EngineResponseDict",
    "ValidationStatsDict",
    "ValidationReportDict",
    "PercentileLadderDict",
    "GoalOutcomeDict",
]


class RawEventDict(TypedDict, total=False):
    """
    Pre-validation event.

    Every key is optional at the type level; presence rules are enforced by
    ``finevents.validation``. ``amount`` may be a number or numeric string.
    ``accountType`` is the legacy account field, ``targetAccountType`` the
    canonical one.
    """

    id: str
    type: str
    name: str
    description: str
    amount: Union[float, int, str]
    frequency: str
    monthOffset: int
    startDateOffset: int
    endDateOffset: int
    annualGrowthRate: float
    priority: Union[int, str]
    targetAccountType: str
    accountType: str


class WireEventDict(TypedDict):
    """Canonical monthly event as the engine receives it."""

    id: str
    type: str
    monthOffset: int
    amount: float
    priority: int
    targetAccountType: str


InitialAccountsDict = TypedDict(
    "InitialAccountsDict",
    {
        "cash": float,
        "taxable": float,
        "tax_deferred": float,
        "roth": float,
        "529": float,
    },
    total=False,
)
"""Starting balance per canonical account category (missing = 0)."""


class EngineConfigDict(TypedDict):
    """
    Market assumptions per asset class.

    Examples
    --------
    >>> config: EngineConfigDict = {
    ...     "expectedReturns": {"stocks": 0.07, "bonds": 0.03},
    ...     "volatilities": {"stocks": 0.16, "bonds": 0.05},
    ... }
    """

    expectedReturns: Dict[str, float]
    volatilities: Dict[str, float]


class EngineRequestDict(TypedDict):
    """Request sent to the simulation engine."""

    initialAccounts: InitialAccountsDict
    events: List[WireEventDict]
    config: EngineConfigDict
    monthsToRun: int
    withdrawalStrategy: str
    seed: int
    pathCount: int


class MonthlySnapshotDict(TypedDict):
    """Median state at the end of one month."""

    month: int
    netWorth: float
    cash: float
    invested: float


class EngineResponseDict(TypedDict):
    """
    Response returned by the simulation engine.

    Percentile fields and ``pathFinalValues`` are present for multi-path runs.
    """

    success: bool
    monthlyData: List[MonthlySnapshotDict]
    finalNetWorth: float
    error: NotRequired[str]
    finalNetWorthP10: NotRequired[float]
    finalNetWorthP25: NotRequired[float]
    finalNetWorthP50: NotRequired[float]
    finalNetWorthP75: NotRequired[float]
    finalNetWorthP90: NotRequired[float]
    successRate: NotRequired[float]
    everBreachProbability: NotRequired[float]
    pathFinalValues: NotRequired[List[float]]


class ValidationStatsDict(TypedDict):
    totalEvents: int
    validEvents: int
    fixedMappings: int
    unknownAccounts: int


class ValidationReportDict(TypedDict):
    """Serialized ``ValidationReport``."""

    valid: bool
    errors: List[Dict[str, Any]]
    warnings: List[Dict[str, Any]]
    stats: ValidationStatsDict


class PercentileLadderDict(TypedDict):
    p10: float
    p25: float
    p50: float
    p75: float
    p90: float


class GoalOutcomeDict(TypedDict):
    """Serialized ``GoalOutcome``."""

    target: float
    percentiles: PercentileLadderDict
    successProbability: float
    statusTag: Optional[str]
    status: str
    targetBand: str
    monthlySavingsGap: float
    estimated: bool
    guidance: str
