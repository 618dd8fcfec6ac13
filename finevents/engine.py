"""
Simulation engine contract for finevents.

Purpose
-------
Defines the boundary with the external simulation engine: how a request is
marshaled from canonical monthly events, how a response is checked and
turned into a ``RawSimulationResult``, and the ``SimulationEngine`` protocol
any engine implementation must satisfy.

``LocalEngine`` is a small in-process reference engine (monthly cash flows
plus i.i.d. lognormal returns on invested balances). It is used by the CLI
and the tests; production deployments inject the compiled engine instead.

Key components
--------------
- SimulationEngine      : protocol, ``async run(request) -> Mapping``
- build_request         : canonical events + state -> EngineRequestDict
- parse_engine_response : Mapping -> RawSimulationResult, or EngineError
- RawSimulationResult   : per-path final values and per-month medians
- LocalEngine           : reference implementation

Example
-------
>>> import asyncio
>>> from finevents.engine import LocalEngine, build_request, parse_engine_response
>>> request = build_request([], {"cash": 1000}, months_to_run=12, seed=1, path_count=10)
>>> payload = asyncio.run(LocalEngine().run(request))
>>> parse_engine_response(payload).final_net_worth
1000.0
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, StrictBool
from pydantic import ValidationError as PydanticValidationError
from typing_extensions import Protocol

from .accounts import CanonicalAccountType, resolve
from .config import MarketConfig
from .constants import (
    DEFAULT_PATH_COUNT,
    DEFAULT_SEED,
    DEFAULT_WITHDRAWAL_STRATEGY,
    MAX_EXPANSION_MONTHS,
    MONTHS_PER_YEAR,
    PERCENTILE_LEVELS,
    WITHDRAWAL_STRATEGIES,
)
from .events import KIND_CATEGORIES, CanonicalMonthlyEvent, FlowCategory
from .exceptions import EngineInternalError, MalformedEngineOutputError
from .types import EngineRequestDict, EngineResponseDict, InitialAccountsDict, MonthlySnapshotDict

__all__ = [
    "SimulationEngine",
    "RawSimulationResult",
    "build_request",
    "parse_engine_response",
    "LocalEngine",
]


class SimulationEngine(Protocol):
    """Anything that turns an engine request into an engine response."""

    async def run(self, request: EngineRequestDict) -> Mapping[str, Any]:
        ...


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

def build_request(
    events: Sequence[CanonicalMonthlyEvent],
    initial_state: Mapping[Any, float],
    *,
    months_to_run: int,
    seed: Optional[int] = DEFAULT_SEED,
    path_count: int = DEFAULT_PATH_COUNT,
    market: Optional[MarketConfig] = None,
    withdrawal_strategy: str = DEFAULT_WITHDRAWAL_STRATEGY,
) -> EngineRequestDict:
    """
    Marshal canonical events and starting balances into an engine request.

    Parameters
    ----------
    events : sequence of CanonicalMonthlyEvent
        Output of ``finevents.normalizer.expand_all``.
    initial_state : Mapping
        Starting balance per account; keys are canonical names or aliases.
    months_to_run : int
        Simulation horizon (1-1200).
    seed : int, optional
        Random seed; None draws one from the OS.
    path_count : int
        Number of Monte Carlo paths.
    market : MarketConfig, optional
        Asset-class assumptions; defaults to ``MarketConfig()``.
    withdrawal_strategy : str
        One of ``WITHDRAWAL_STRATEGIES``.

    Raises
    ------
    ValueError
        Out-of-range horizon or path count, unknown strategy.
    UnknownAccountType
        An ``initial_state`` key that does not resolve.
    """
    if not 1 <= months_to_run <= MAX_EXPANSION_MONTHS:
        raise ValueError(f"months_to_run must be in 1..{MAX_EXPANSION_MONTHS}, got {months_to_run}")
    if path_count < 1:
        raise ValueError(f"path_count must be positive, got {path_count}")
    if withdrawal_strategy not in WITHDRAWAL_STRATEGIES:
        raise ValueError(f"Unknown withdrawal strategy {withdrawal_strategy!r}")

    accounts: Dict[str, float] = {t.value: 0.0 for t in CanonicalAccountType}
    for key, amount in initial_state.items():
        accounts[resolve(key).value] += float(amount)

    if seed is None:
        seed = int(np.random.SeedSequence().generate_state(1)[0])

    return {
        "initialAccounts": accounts,
        "events": [e.to_wire() for e in events],
        "config": (market or MarketConfig()).to_wire(),
        "monthsToRun": int(months_to_run),
        "withdrawalStrategy": withdrawal_strategy,
        "seed": int(seed),
        "pathCount": int(path_count),
    }


# ---------------------------------------------------------------------------
# Response
# ---------------------------------------------------------------------------

class _EngineResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    success: StrictBool
    monthly_data: List[Dict[str, Any]] = Field(default_factory=list, alias="monthlyData")
    final_net_worth: Optional[float] = Field(default=None, alias="finalNetWorth")
    error: Optional[str] = None
    p10: Optional[float] = Field(default=None, alias="finalNetWorthP10")
    p25: Optional[float] = Field(default=None, alias="finalNetWorthP25")
    p50: Optional[float] = Field(default=None, alias="finalNetWorthP50")
    p75: Optional[float] = Field(default=None, alias="finalNetWorthP75")
    p90: Optional[float] = Field(default=None, alias="finalNetWorthP90")
    success_rate: Optional[float] = Field(default=None, ge=0.0, le=1.0, alias="successRate")
    ever_breach_probability: Optional[float] = Field(
        default=None, ge=0.0, le=1.0, alias="everBreachProbability"
    )
    path_final_values: Optional[List[float]] = Field(default=None, alias="pathFinalValues")


@dataclass(frozen=True)
class RawSimulationResult:
    """
    Successful engine run.

    Attributes
    ----------
    final_net_worth : float
        Headline terminal net worth (median path for multi-path runs).
    path_final_values : np.ndarray
        Terminal net worth per path. When the engine reports none this holds
        the headline ``final_net_worth`` alone.
    monthly_data : tuple of dict
        Per-month snapshots as reported by the engine.
    percentiles : dict
        Engine-computed ``{10: ..., 90: ...}`` when reported.
    success_rate, ever_breach_probability : float, optional
        Multi-path summary fields when reported.
    paths_reported : bool
        Whether the engine sent ``pathFinalValues``.
    request_id : int, optional
        Orchestrator request that produced the result.
    """

    final_net_worth: float
    path_final_values: np.ndarray
    monthly_data: Tuple[Dict[str, Any], ...] = ()
    percentiles: Dict[int, float] = field(default_factory=dict)
    success_rate: Optional[float] = None
    ever_breach_probability: Optional[float] = None
    request_id: Optional[int] = None
    paths_reported: bool = True

    @property
    def path_count(self) -> int:
        return int(self.path_final_values.shape[0])

    def monthly_frame(self) -> pd.DataFrame:
        """``monthly_data`` as a DataFrame indexed by month."""
        frame = pd.DataFrame(list(self.monthly_data))
        if "month" in frame.columns:
            frame = frame.set_index("month")
        return frame


def parse_engine_response(
    payload: Any,
    *,
    request_id: Optional[int] = None,
) -> RawSimulationResult:
    """
    Check an engine response against the contract.

    Raises
    ------
    MalformedEngineOutputError
        Payload is not a mapping, fields are missing or ill-typed, or a
        successful response lacks ``finalNetWorth``, or the reported
        percentiles are out of order.
    EngineInternalError
        The engine answered ``success: false``.
    """
    if not isinstance(payload, Mapping):
        raise MalformedEngineOutputError(
            "Simulation engine returned an unreadable result",
            detail=f"expected a mapping, got {type(payload).__name__}",
            request_id=request_id,
        )
    try:
        response = _EngineResponse.model_validate(dict(payload))
    except PydanticValidationError as e:
        raise MalformedEngineOutputError(
            "Simulation engine returned an unreadable result",
            detail=str(e),
            request_id=request_id,
        ) from e

    if not response.success:
        raise EngineInternalError(
            "The simulation could not be completed",
            detail=response.error or "engine reported success=false without a message",
            request_id=request_id,
        )
    if response.final_net_worth is None:
        raise MalformedEngineOutputError(
            "Simulation engine returned an unreadable result",
            detail="successful response is missing finalNetWorth",
            request_id=request_id,
        )

    paths_reported = bool(response.path_final_values)
    if paths_reported:
        paths = np.asarray(response.path_final_values, dtype=float)
    else:
        paths = np.asarray([response.final_net_worth], dtype=float)

    reported = {10: response.p10, 25: response.p25, 50: response.p50, 75: response.p75, 90: response.p90}
    percentiles = {p: float(v) for p, v in reported.items() if v is not None}
    ladder = list(percentiles.values())
    if any(not np.isfinite(v) for v in ladder) or any(b < a for a, b in zip(ladder, ladder[1:])):
        raise MalformedEngineOutputError(
            "Simulation engine returned an unreadable result",
            detail=f"finalNetWorth percentiles must be finite and non-decreasing, got {percentiles}",
            request_id=request_id,
        )
    return RawSimulationResult(
        final_net_worth=float(response.final_net_worth),
        path_final_values=paths,
        monthly_data=tuple(response.monthly_data),
        percentiles=percentiles,
        success_rate=response.success_rate,
        ever_breach_probability=response.ever_breach_probability,
        request_id=request_id,
        paths_reported=paths_reported,
    )


# ---------------------------------------------------------------------------
# Local reference engine
# ---------------------------------------------------------------------------

def _monthly_lognormal_params(annual_return: float, annual_vol: float) -> Tuple[float, float]:
    """Log-space (mu, sigma) matching a compounded monthly mean and scaled volatility."""
    mu_arith = (1.0 + annual_return) ** (1.0 / MONTHS_PER_YEAR) - 1.0
    sigma_arith = annual_vol / np.sqrt(MONTHS_PER_YEAR)
    sigma_log = float(np.sqrt(np.log(1.0 + sigma_arith**2 / (1.0 + mu_arith) ** 2)))
    mu_log = float(np.log(1.0 + mu_arith) - 0.5 * sigma_log**2)
    return mu_log, sigma_log


class LocalEngine:
    """
    In-process reference engine.

    Cash earns nothing; every non-cash balance is one invested pool spread
    equally over the configured asset classes. Each month applies returns to
    the pool, then the month's events in request order. With any strategy
    other than ``"cash_first"``, a cash shortfall is covered from the pool.
    A path breaches when cash stays negative after that.

    Parameters
    ----------
    latency : float, default 0.0
        Artificial delay in seconds before answering.
    """

    def __init__(self, latency: float = 0.0):
        self.latency = latency

    async def run(self, request: EngineRequestDict) -> EngineResponseDict:
        if self.latency:
            await asyncio.sleep(self.latency)
        return await asyncio.to_thread(self._simulate, request)

    def _gross_returns(self, request: EngineRequestDict, rng: np.random.Generator) -> np.ndarray:
        n, T = request["pathCount"], request["monthsToRun"]
        config = request["config"]
        classes = sorted(config["expectedReturns"])
        gross = np.zeros((n, T), dtype=float)
        for name in classes:
            mu, sigma = _monthly_lognormal_params(config["expectedReturns"][name], config["volatilities"][name])
            if sigma == 0.0:
                gross += np.exp(mu)
            else:
                gross += rng.lognormal(mean=mu, sigma=sigma, size=(n, T))
        return gross / len(classes)

    def _flows(self, request: EngineRequestDict) -> Tuple[np.ndarray, np.ndarray]:
        T = request["monthsToRun"]
        cash = np.zeros(T, dtype=float)
        invested = np.zeros(T, dtype=float)
        for e in request["events"]:
            m = e["monthOffset"]
            if not 0 <= m < T:
                continue
            category = KIND_CATEGORIES[e["type"]]
            amount = e["amount"]
            to_cash = e["targetAccountType"] == CanonicalAccountType.CASH.value
            if category in (FlowCategory.INCOME, FlowCategory.ONE_TIME):
                cash[m] += amount
            elif category is FlowCategory.EXPENSE:
                cash[m] -= amount
            elif category is FlowCategory.CONTRIBUTION and not to_cash:
                cash[m] -= amount
                invested[m] += amount
            elif category is FlowCategory.WITHDRAWAL and not to_cash:
                cash[m] += amount
                invested[m] -= amount
        return cash, invested

    def _simulate(self, request: EngineRequestDict) -> EngineResponseDict:
        T, n = request["monthsToRun"], request["pathCount"]
        if not 1 <= T <= MAX_EXPANSION_MONTHS or n < 1:
            return {"success": False, "monthlyData": [], "finalNetWorth": 0.0,
                    "error": f"invalid dimensions monthsToRun={T} pathCount={n}"}

        rng = np.random.default_rng(request["seed"])
        gross = self._gross_returns(request, rng)
        cash_flow, invested_flow = self._flows(request)
        cover = request["withdrawalStrategy"] != "cash_first"

        accounts: InitialAccountsDict = request["initialAccounts"]
        cash = np.full(n, float(accounts.get("cash", 0.0)))
        invested = np.full(n, sum(float(v) for k, v in accounts.items() if k != "cash"))
        breached = np.zeros(n, dtype=bool)
        monthly: List[MonthlySnapshotDict] = []

        for t in range(T):
            invested = invested * gross[:, t] + invested_flow[t]
            cash = cash + cash_flow[t]
            if cover:
                draw = np.minimum(np.maximum(-cash, 0.0), np.maximum(invested, 0.0))
                cash = cash + draw
                invested = invested - draw
            breached |= cash < 0.0
            monthly.append({
                "month": t,
                "netWorth": float(np.median(cash + invested)),
                "cash": float(np.median(cash)),
                "invested": float(np.median(invested)),
            })

        final = cash + invested
        levels = np.percentile(final, PERCENTILE_LEVELS)
        response: EngineResponseDict = {
            "success": True,
            "monthlyData": monthly,
            "finalNetWorth": float(np.median(final)),
            "successRate": float(1.0 - breached.mean()),
            "everBreachProbability": float(breached.mean()),
            "pathFinalValues": final.tolist(),
        }
        for p, v in zip(PERCENTILE_LEVELS, levels):
            response[f"finalNetWorthP{p}"] = float(v)
        return response

