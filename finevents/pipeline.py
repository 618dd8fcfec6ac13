"""
End-to-end plan pipeline.

Purpose
-------
Wires the components in their fixed order:

    raw events -> validate -> typed events -> expand -> engine -> aggregate

A plan whose report has any fatal issue raises ``ValidationFailedError``
and the engine is never called. Engine failures propagate as the
``EngineError`` subclasses raised by the orchestrator.

Example
-------
>>> import asyncio
>>> from finevents.engine import LocalEngine
>>> from finevents.config import SimulationConfig
>>> from finevents.orchestrator import SimulationOrchestrator
>>> from finevents.pipeline import PlanPipeline
>>> pipeline = PlanPipeline(SimulationOrchestrator(LocalEngine()))
>>> result = asyncio.run(pipeline.run(
...     [{"id": "pay", "type": "INCOME", "amount": 1000, "monthOffset": 0}],
...     {"cash": 1000},
...     simulation=SimulationConfig(horizon_months=1, path_count=1),
... ))
>>> len(result.events), result.raw_result.final_net_worth
(1, 2000.0)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from .adapter import to_events
from .aggregator import GoalOutcome, PortfolioSummary, aggregate_result, summarize_paths
from .config import AppSettings, GoalConfig, InitialStateConfig, MarketConfig, PlanConfig, SimulationConfig
from .constants import DEFAULT_TAX_YEAR
from .engine import RawSimulationResult, SimulationEngine
from .events import CanonicalMonthlyEvent
from .exceptions import ValidationFailedError
from .normalizer import expand_all
from .orchestrator import SimulationOrchestrator
from .utils import get_logger
from .validation import ValidationReport, validate

__all__ = ["PlanResult", "PlanPipeline", "prepare_events"]


@dataclass(frozen=True)
class PlanResult:
    """Everything produced by one successful pipeline run."""

    report: ValidationReport
    events: Tuple[CanonicalMonthlyEvent, ...]
    raw_result: RawSimulationResult
    summary: PortfolioSummary
    outcome: Optional[GoalOutcome] = None


def prepare_events(
    raw_events: Iterable[Mapping[str, Any]],
    horizon_months: int,
    *,
    tax_year: int = DEFAULT_TAX_YEAR,
    logger: Optional[logging.Logger] = None,
) -> Tuple[ValidationReport, Tuple[CanonicalMonthlyEvent, ...]]:
    """
    Validate and expand raw events without calling the engine.

    Raises
    ------
    ValidationFailedError
        If the report has at least one fatal issue.
    """
    raw_events = list(raw_events)
    report = validate(raw_events, tax_year=tax_year, horizon_months=horizon_months, logger=logger)
    if not report.valid:
        raise ValidationFailedError(report)
    events = expand_all(to_events(raw_events), horizon_months, logger=logger)
    return report, events


class PlanPipeline:
    """
    Validate, expand, simulate and aggregate a plan.

    Parameters
    ----------
    orchestrator : SimulationOrchestrator
        Session orchestrator; one pipeline per user session.
    tax_year : int
        Year whose contribution limits apply during validation.
    logger : logging.Logger, optional
        Passed to every stage.
    """

    def __init__(
        self,
        orchestrator: SimulationOrchestrator,
        *,
        tax_year: int = DEFAULT_TAX_YEAR,
        logger: Optional[logging.Logger] = None,
    ):
        self.orchestrator = orchestrator
        self.tax_year = tax_year
        self.logger = get_logger(logger, __name__)

    @classmethod
    def from_settings(
        cls,
        engine: SimulationEngine,
        settings: Optional[AppSettings] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> "PlanPipeline":
        """Build a pipeline and its orchestrator from application settings."""
        settings = settings or AppSettings()
        orchestrator = SimulationOrchestrator(
            engine, timeout_seconds=settings.engine_timeout_seconds, logger=logger
        )
        return cls(orchestrator, tax_year=settings.tax_year, logger=logger)

    def prepare(
        self,
        raw_events: Iterable[Mapping[str, Any]],
        horizon_months: int,
        *,
        tax_year: Optional[int] = None,
    ) -> Tuple[ValidationReport, Tuple[CanonicalMonthlyEvent, ...]]:
        """Validate and expand with this pipeline's tax year and logger."""
        return prepare_events(
            raw_events,
            horizon_months,
            tax_year=tax_year if tax_year is not None else self.tax_year,
            logger=self.logger,
        )

    async def run(
        self,
        raw_events: Iterable[Mapping[str, Any]],
        initial_state: Union[InitialStateConfig, Mapping[str, float]],
        *,
        simulation: Optional[SimulationConfig] = None,
        market: Optional[MarketConfig] = None,
        goal: Optional[GoalConfig] = None,
        tax_year: Optional[int] = None,
    ) -> PlanResult:
        """
        Run the whole pipeline once.

        Raises
        ------
        ValidationFailedError
            Fatal validation issues; the engine is not called.
        EngineError
            Timeout, malformed output or internal engine failure.
        RunSupersededError
            A newer run was started on the same orchestrator meanwhile.
        """
        simulation = simulation or SimulationConfig()
        if not isinstance(initial_state, InitialStateConfig):
            initial_state = InitialStateConfig(balances=dict(initial_state))

        report, events = self.prepare(raw_events, simulation.horizon_months, tax_year=tax_year)
        raw = await self.orchestrator.run(
            simulation.seed,
            events,
            initial_state.to_wire(),
            simulation.path_count,
            months_to_run=simulation.horizon_months,
            market=market,
            withdrawal_strategy=simulation.withdrawal_strategy,
            timeout_seconds=simulation.timeout_seconds,
        )

        outcome = None
        if goal is not None:
            months = goal.months_remaining if goal.months_remaining is not None else simulation.horizon_months
            outcome = aggregate_result(
                raw,
                goal.target_amount,
                status_tag=goal.status_tag,
                current_progress=goal.current_progress,
                months_remaining=months,
                logger=self.logger,
            )
        return PlanResult(report, events, raw, summarize_paths(raw), outcome)

    async def run_plan(self, plan: PlanConfig) -> PlanResult:
        """Run a loaded plan file."""
        return await self.run(
            plan.events,
            plan.initial_state,
            simulation=plan.simulation,
            market=plan.market,
            goal=plan.goal,
            tax_year=plan.tax_year,
        )

    def run_sync(self, plan: PlanConfig) -> PlanResult:
        """Blocking wrapper around ``run_plan`` for scripts and the CLI."""
        return asyncio.run(self.run_plan(plan))
