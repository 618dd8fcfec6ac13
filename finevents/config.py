"""
Configuration management module for finevents.

Purpose
-------
Pydantic models for everything a simulation request needs besides the raw
events: run parameters, market assumptions, starting balances and the goal
being tracked. Plan files (see ``finevents.serialization``) are validated
against ``PlanConfig``. Process-wide settings come from the environment via
``AppSettings``.

Design Principles
-----------------
- Type-safe: Pydantic enforces types and validates ranges
- Immutable: Frozen models prevent accidental mutation
- Canonical: account keys are resolved to canonical categories on load
- Environment-aware: ``FINEVENTS_`` variables and ``.env`` files

Example
-------
>>> from finevents.config import SimulationConfig, InitialStateConfig
>>> sim = SimulationConfig(path_count=500, seed=7, horizon_months=240)
>>> state = InitialStateConfig(balances={"401k": 50_000, "cash": 10_000})
>>> state.to_wire()["tax_deferred"]
50000.0
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .accounts import CanonicalAccountType, resolve
from .constants import (
    DEFAULT_ENGINE_TIMEOUT_SECONDS,
    DEFAULT_HORIZON_MONTHS,
    DEFAULT_PATH_COUNT,
    DEFAULT_SEED,
    DEFAULT_TAX_YEAR,
    DEFAULT_WITHDRAWAL_STRATEGY,
    MAX_EXPANSION_MONTHS,
)
from .types import EngineConfigDict, InitialAccountsDict

__all__ = [
    "SimulationConfig",
    "MarketConfig",
    "InitialStateConfig",
    "GoalConfig",
    "PlanConfig",
    "AppSettings",
]

WithdrawalStrategy = Literal["tax_efficient", "proportional", "cash_first"]


# ---------------------------------------------------------------------------
# Simulation Configuration
# ---------------------------------------------------------------------------

class SimulationConfig(BaseModel):
    """
    Parameters of one engine run.

    Attributes
    ----------
    path_count : int
        Number of Monte Carlo paths (1-100,000).
    seed : int, optional
        Random seed. Identical seeds and inputs give identical results.
    horizon_months : int
        Months to simulate (1-1200).
    timeout_seconds : float, optional
        Seconds to wait for the engine on this run. None keeps the
        orchestrator's own limit (``engine_timeout_seconds``).
    withdrawal_strategy : str
        Account drawdown order: "tax_efficient", "proportional", "cash_first".

    Examples
    --------
    >>> SimulationConfig(horizon_months=1).path_count
    1000
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    path_count: int = Field(default=DEFAULT_PATH_COUNT, ge=1, le=100_000)
    seed: Optional[int] = Field(default=DEFAULT_SEED, description="Random seed for reproducibility")
    horizon_months: int = Field(default=DEFAULT_HORIZON_MONTHS, ge=1, le=MAX_EXPANSION_MONTHS)
    timeout_seconds: Optional[float] = Field(default=None, gt=0)
    withdrawal_strategy: WithdrawalStrategy = DEFAULT_WITHDRAWAL_STRATEGY


# ---------------------------------------------------------------------------
# Market Configuration
# ---------------------------------------------------------------------------

class MarketConfig(BaseModel):
    """
    Expected annual returns and volatilities per asset class.

    Invested balances are spread equally across the asset classes listed.

    Examples
    --------
    >>> MarketConfig(expected_returns={"stocks": 0.07}, volatilities={"stocks": 0.0}).to_wire()
    {'expectedReturns': {'stocks': 0.07}, 'volatilities': {'stocks': 0.0}}
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    expected_returns: Dict[str, float] = Field(
        default_factory=lambda: {"stocks": 0.07, "bonds": 0.03},
        description="Annual expected return per asset class",
    )
    volatilities: Dict[str, float] = Field(
        default_factory=lambda: {"stocks": 0.15, "bonds": 0.05},
        description="Annual volatility per asset class",
    )

    @field_validator("expected_returns")
    @classmethod
    def _returns_above_minus_one(cls, v: Dict[str, float]) -> Dict[str, float]:
        if not v:
            raise ValueError("at least one asset class is required")
        for name, r in v.items():
            if not math.isfinite(r) or r <= -1.0:
                raise ValueError(f"expected return for {name!r} must be > -1, got {r}")
        return v

    @field_validator("volatilities")
    @classmethod
    def _non_negative_vol(cls, v: Dict[str, float]) -> Dict[str, float]:
        for name, s in v.items():
            if not math.isfinite(s) or s < 0:
                raise ValueError(f"volatility for {name!r} must be non-negative, got {s}")
        return v

    @model_validator(mode="after")
    def _same_asset_classes(self) -> "MarketConfig":
        if set(self.expected_returns) != set(self.volatilities):
            raise ValueError(
                f"asset classes differ: returns {sorted(self.expected_returns)} "
                f"vs volatilities {sorted(self.volatilities)}"
            )
        return self

    def to_wire(self) -> EngineConfigDict:
        return {
            "expectedReturns": dict(self.expected_returns),
            "volatilities": dict(self.volatilities),
        }


# ---------------------------------------------------------------------------
# Initial State
# ---------------------------------------------------------------------------

class InitialStateConfig(BaseModel):
    """
    Starting balance per account category.

    Keys may be canonical names or legacy aliases; aliases mapping to the same
    category are summed. Unknown keys are rejected.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    balances: Dict[CanonicalAccountType, float] = Field(default_factory=dict)

    @field_validator("balances", mode="before")
    @classmethod
    def _resolve_keys(cls, v: Any) -> Dict[CanonicalAccountType, float]:
        if not isinstance(v, dict):
            raise ValueError("balances must be a mapping of account type to amount")
        resolved: Dict[CanonicalAccountType, float] = {}
        for key, amount in v.items():
            if isinstance(amount, bool) or not isinstance(amount, (int, float)):
                raise ValueError(f"balance for {key!r} must be a number, got {amount!r}")
            category = resolve(key)
            resolved[category] = resolved.get(category, 0.0) + float(amount)
        return resolved

    @field_validator("balances")
    @classmethod
    def _finite(cls, v: Dict[CanonicalAccountType, float]) -> Dict[CanonicalAccountType, float]:
        for key, amount in v.items():
            if not math.isfinite(amount):
                raise ValueError(f"balance for {key.value!r} must be finite")
        return v

    @property
    def total(self) -> float:
        return float(sum(self.balances.values()))

    def to_wire(self) -> InitialAccountsDict:
        """Balances for every category, zero-filled."""
        return {t.value: float(self.balances.get(t, 0.0)) for t in CanonicalAccountType}


# ---------------------------------------------------------------------------
# Goal Configuration
# ---------------------------------------------------------------------------

class GoalConfig(BaseModel):
    """
    Goal tracked by the outcome aggregator.

    Attributes
    ----------
    name : str
        Display name.
    target_amount : float
        Net worth the goal requires.
    current_progress : float
        Amount already saved toward the goal.
    months_remaining : int, optional
        Months until the goal date; defaults to the simulation horizon.
    status_tag : str, optional
        Categorical tag supplied by the engine ("excellent", "good", ...).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = "Goal"
    target_amount: float = Field(gt=0)
    current_progress: float = Field(default=0.0, ge=0)
    months_remaining: Optional[int] = None
    status_tag: Optional[str] = None


# ---------------------------------------------------------------------------
# Plan Configuration
# ---------------------------------------------------------------------------

class PlanConfig(BaseModel):
    """
    Complete plan file: raw events plus everything needed to run them.

    ``events`` stay raw dictionaries here; they are validated by
    ``finevents.validation`` so problems become a report instead of a
    load failure.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    events: List[Dict[str, Any]] = Field(default_factory=list)
    initial_state: InitialStateConfig = Field(default_factory=InitialStateConfig)
    market: MarketConfig = Field(default_factory=MarketConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    goal: Optional[GoalConfig] = None
    tax_year: int = Field(default=DEFAULT_TAX_YEAR, ge=2000, le=2100)


# ---------------------------------------------------------------------------
# Application Settings
# ---------------------------------------------------------------------------

class AppSettings(BaseSettings):
    """
    Global application settings loaded from environment variables.

    Environment variables are prefixed with FINEVENTS_
    (e.g., FINEVENTS_LOG_LEVEL=DEBUG).

    Attributes
    ----------
    debug : bool
        Enable debug logging regardless of ``log_level``.
    log_level : str
        Logging level: "DEBUG", "INFO", "WARNING", "ERROR".
    tax_year : int
        Tax year for contribution limits.
    engine_timeout_seconds : float
        Default engine timeout.

    Examples
    --------
    >>> settings = AppSettings()
    >>> settings.log_level
    'INFO'
    """

    model_config = SettingsConfigDict(
        env_prefix="FINEVENTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )
    tax_year: int = Field(default=DEFAULT_TAX_YEAR, ge=2000, le=2100)
    engine_timeout_seconds: float = Field(default=DEFAULT_ENGINE_TIMEOUT_SECONDS, gt=0)
