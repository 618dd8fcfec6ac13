"""
Pytest configuration and fixtures for the finevents test suite.

Fixtures provide raw wire events in the shapes found in real payloads
(canonical, legacy-aliased, recurring, single-month) plus engine doubles
for orchestration tests.
"""

import asyncio
from typing import Any, Dict, List, Mapping

import pytest

from finevents.config import GoalConfig, InitialStateConfig, MarketConfig, PlanConfig, SimulationConfig
from finevents.engine import LocalEngine


# ---------------------------------------------------------------------------
# Raw Event Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def salary_event() -> Dict[str, Any]:
    """Monthly salary for 20 years with 3% annual raises."""
    return {
        "id": "salary",
        "type": "INCOME",
        "name": "Salary",
        "amount": 8500,
        "startDateOffset": 0,
        "endDateOffset": 239,
        "annualGrowthRate": 0.03,
    }


@pytest.fixture
def legacy_401k_event() -> Dict[str, Any]:
    """
    $23,000/year 401k contribution tagged with the legacy alias.

    35 years (420 months); the shape that once produced a ~1000x error.
    """
    return {
        "id": "contrib-401k",
        "type": "SCHEDULED_CONTRIBUTION",
        "name": "401k",
        "amount": 23_000,
        "frequency": "annually",
        "startDateOffset": 0,
        "endDateOffset": 419,
        "accountType": "401k",
    }


@pytest.fixture
def rent_event() -> Dict[str, Any]:
    """Open-ended rent ($2,000/month) starting in month 0."""
    return {
        "id": "rent",
        "type": "RECURRING_EXPENSE",
        "name": "Rent",
        "amount": "2000",
        "startDateOffset": 0,
    }


@pytest.fixture
def bonus_event() -> Dict[str, Any]:
    """One-time $10,000 bonus in month 6."""
    return {"id": "bonus", "type": "ONE_TIME_EVENT", "name": "Bonus", "amount": 10_000, "monthOffset": 6}


@pytest.fixture
def valid_events(salary_event, legacy_401k_event, rent_event, bonus_event) -> List[Dict[str, Any]]:
    """Realistic valid plan mixing canonical and legacy shapes."""
    return [salary_event, legacy_401k_event, rent_event, bonus_event]


# ---------------------------------------------------------------------------
# Configuration Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def deterministic_market() -> MarketConfig:
    """Zero-volatility market: every path is identical."""
    return MarketConfig(expected_returns={"stocks": 0.06}, volatilities={"stocks": 0.0})


@pytest.fixture
def small_simulation() -> SimulationConfig:
    """Short, fast run for tests."""
    return SimulationConfig(path_count=50, seed=42, horizon_months=24, timeout_seconds=5.0)


@pytest.fixture
def initial_state() -> InitialStateConfig:
    return InitialStateConfig(balances={"cash": 10_000, "401k": 50_000})


@pytest.fixture
def plan(valid_events, initial_state, small_simulation, deterministic_market) -> PlanConfig:
    """Complete plan with a goal."""
    return PlanConfig(
        events=valid_events,
        initial_state=initial_state,
        market=deterministic_market,
        simulation=small_simulation,
        goal=GoalConfig(name="House", target_amount=100_000, current_progress=60_000),
    )


# ---------------------------------------------------------------------------
# Engine Doubles
# ---------------------------------------------------------------------------

class ScriptedEngine:
    """
    Engine double returning a fixed payload (or raising) after an optional delay.

    Records every request it receives.
    """

    def __init__(self, payload: Any = None, *, delay: float = 0.0, error: Exception = None):
        self.payload = payload
        self.delay = delay
        self.error = error
        self.requests: List[Mapping[str, Any]] = []

    async def run(self, request):
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.payload


class GatedEngine:
    """
    Engine double whose calls complete only when the test releases them.

    ``release(i, payload)`` finishes the i-th call (0-based).
    """

    def __init__(self):
        self.requests: List[Mapping[str, Any]] = []
        self._futures: List[asyncio.Future] = []
        self.started = asyncio.Event()

    async def run(self, request):
        future = asyncio.get_running_loop().create_future()
        self.requests.append(request)
        self._futures.append(future)
        self.started.set()
        return await future

    def release(self, index: int, payload: Any) -> None:
        self._futures[index].set_result(payload)


@pytest.fixture
def ok_payload() -> Dict[str, Any]:
    """Minimal successful single-path engine response."""
    return {"success": True, "monthlyData": [{"month": 0, "netWorth": 2000.0}], "finalNetWorth": 2000.0}


@pytest.fixture
def local_engine() -> LocalEngine:
    return LocalEngine()


@pytest.fixture
def scripted_engine():
    """Factory for ScriptedEngine: ``scripted_engine(payload, delay=..., error=...)``."""
    return ScriptedEngine


@pytest.fixture
def gated_engine():
    """Factory for GatedEngine; call it inside the running event loop."""
    return GatedEngine
