"""
Simulation orchestration for finevents.

Purpose
-------
Drives the external simulation engine for one user session. The
orchestrator does no numeric work: it marshals canonical events into a
request, awaits the engine, and translates every failure into the closed
``EngineError`` taxonomy so raw engine text never reaches the UI.

Ordering
--------
Each call to ``run`` takes a new request id and becomes the latest request.
When an earlier call's engine result arrives after a newer call was issued,
the result is discarded and ``RunSupersededError`` is raised to that caller.
The engine itself is not preempted. The latest request id is the only state
kept across calls.

Example
-------
>>> import asyncio
>>> from finevents.engine import LocalEngine
>>> from finevents.orchestrator import SimulationOrchestrator
>>> orchestrator = SimulationOrchestrator(LocalEngine(), timeout_seconds=5.0)
>>> result = asyncio.run(orchestrator.run(seed=1, events=(), initial_state={"cash": 1000},
...                                       path_count=1, months_to_run=1))
>>> result.final_net_worth
1000.0
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Mapping, Optional, Sequence

from .config import MarketConfig
from .constants import DEFAULT_ENGINE_TIMEOUT_SECONDS, DEFAULT_WITHDRAWAL_STRATEGY
from .engine import RawSimulationResult, SimulationEngine, build_request, parse_engine_response
from .events import CanonicalMonthlyEvent
from .exceptions import (
    EngineError,
    EngineInternalError,
    EngineTimeoutError,
    RunSupersededError,
)
from .utils import get_logger

__all__ = ["SimulationOrchestrator"]


class SimulationOrchestrator:
    """
    One-session gateway to a simulation engine.

    Parameters
    ----------
    engine : SimulationEngine
        Object with ``async run(request) -> Mapping``.
    timeout_seconds : float
        Maximum time to wait for one engine call.
    logger : logging.Logger, optional
        Receives engine failures (with raw detail) and run timings.
    """

    def __init__(
        self,
        engine: SimulationEngine,
        *,
        timeout_seconds: float = DEFAULT_ENGINE_TIMEOUT_SECONDS,
        logger: Optional[logging.Logger] = None,
    ):
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {timeout_seconds}")
        self.engine = engine
        self.timeout_seconds = timeout_seconds
        self.logger = get_logger(logger, __name__)
        self._ids = itertools.count(1)
        self._latest: int = 0
        self._in_flight: Optional[int] = None

    @property
    def latest_request_id(self) -> int:
        """Id of the most recently submitted request (0 before the first)."""
        return self._latest

    @property
    def in_flight(self) -> Optional[int]:
        """Id of the request whose result is still honored, if it has not returned."""
        return self._in_flight

    def supersede(self) -> int:
        """Stop honoring any outstanding run without starting a new one."""
        self._latest = next(self._ids)
        self._in_flight = None
        return self._latest

    async def run(
        self,
        seed: Optional[int],
        events: Sequence[CanonicalMonthlyEvent],
        initial_state: Mapping[Any, float],
        path_count: int,
        *,
        months_to_run: int,
        market: Optional[MarketConfig] = None,
        withdrawal_strategy: str = DEFAULT_WITHDRAWAL_STRATEGY,
        timeout_seconds: Optional[float] = None,
    ) -> RawSimulationResult:
        """
        Run the engine once and return its checked result.

        ``timeout_seconds`` overrides the orchestrator's limit for this run.

        Raises
        ------
        EngineTimeoutError
            The engine did not answer in time.
        MalformedEngineOutputError
            The engine answered with a payload outside the contract.
        EngineInternalError
            The engine raised or answered ``success: false``.
        RunSupersededError
            A newer ``run`` (or ``supersede``) was issued while this one waited.
        ValueError
            Request parameters out of range (raised before the engine is called).
        """
        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        if timeout <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {timeout}")
        request = build_request(
            events,
            initial_state,
            months_to_run=months_to_run,
            seed=seed,
            path_count=path_count,
            market=market,
            withdrawal_strategy=withdrawal_strategy,
        )
        request_id = next(self._ids)
        if self._in_flight is not None:
            self.logger.info(
                "Request %d supersedes in-flight request %d", request_id, self._in_flight,
                extra={"request_id": request_id, "superseded": self._in_flight},
            )
        self._latest = self._in_flight = request_id
        self.logger.debug(
            "Submitting request %d: %d events, %d months, %d paths",
            request_id, len(request["events"]), months_to_run, path_count,
            extra={"request_id": request_id},
        )

        try:
            try:
                payload = await asyncio.wait_for(self.engine.run(request), timeout)
            except asyncio.TimeoutError:
                raise EngineTimeoutError(
                    f"Simulation timed out after {timeout:g}s",
                    request_id=request_id,
                ) from None
            except Exception as e:
                raise EngineInternalError(
                    "The simulation could not be completed",
                    detail=f"{type(e).__name__}: {e}",
                    request_id=request_id,
                ) from e

            self._check_current(request_id)
            return parse_engine_response(payload, request_id=request_id)
        except EngineError as e:
            if request_id == self._latest:
                self.logger.error(
                    "Engine run %d failed (%s): %s", request_id, type(e).__name__, e.detail or e.user_message,
                    extra={"request_id": request_id, "error_type": type(e).__name__},
                )
            else:
                self.logger.info("Discarding failure of superseded request %d", request_id)
                raise RunSupersededError(request_id, self._latest) from None
            raise
        finally:
            if self._in_flight == request_id:
                self._in_flight = None

    def _check_current(self, request_id: int) -> None:
        if request_id != self._latest:
            self.logger.info(
                "Discarding result of superseded request %d (latest %d)", request_id, self._latest,
                extra={"request_id": request_id, "latest_request_id": self._latest},
            )
            raise RunSupersededError(request_id, self._latest)
