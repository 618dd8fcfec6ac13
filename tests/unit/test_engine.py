"""
Unit tests for engine.py.

Tests request marshaling, response checking, and the local reference engine.
"""

import asyncio

import numpy as np
import pytest

from finevents.adapter import to_event
from finevents.config import MarketConfig
from finevents.engine import LocalEngine, RawSimulationResult, build_request, parse_engine_response
from finevents.exceptions import EngineInternalError, MalformedEngineOutputError, UnknownAccountType
from finevents.normalizer import expand, expand_all


def _income(amount=1000.0, start=0, end=None):
    raw = {"id": "inc", "type": "INCOME", "amount": amount, "startDateOffset": start}
    if end is not None:
        raw["endDateOffset"] = end
    return to_event(raw)


# ---------------------------------------------------------------------------
# build_request
# ---------------------------------------------------------------------------

class TestBuildRequest:
    """Tests for build_request()."""

    def test_wire_shape(self):
        records = expand(_income(end=0), 1)
        request = build_request(records, {"cash": 1000}, months_to_run=1, seed=3, path_count=1)
        assert request["monthsToRun"] == 1
        assert request["seed"] == 3
        assert request["pathCount"] == 1
        assert request["withdrawalStrategy"] == "tax_efficient"
        assert request["events"] == [{
            "id": "inc",
            "type": "INCOME",
            "monthOffset": 0,
            "amount": 1000.0,
            "priority": 10,
            "targetAccountType": "cash",
        }]
        assert set(request["config"]) == {"expectedReturns", "volatilities"}

    def test_initial_accounts_resolved_and_zero_filled(self):
        request = build_request([], {"401k": 100, "ira": 50, "checking": 10}, months_to_run=12)
        assert request["initialAccounts"] == {
            "cash": 10.0, "taxable": 0.0, "tax_deferred": 150.0, "roth": 0.0, "529": 0.0,
        }

    def test_unknown_account_key(self):
        with pytest.raises(UnknownAccountType):
            build_request([], {"crypto": 1}, months_to_run=12)

    @pytest.mark.parametrize("months", [0, -1, 1201])
    def test_horizon_out_of_range(self, months):
        with pytest.raises(ValueError):
            build_request([], {}, months_to_run=months)

    def test_bad_path_count_and_strategy(self):
        with pytest.raises(ValueError):
            build_request([], {}, months_to_run=12, path_count=0)
        with pytest.raises(ValueError, match="withdrawal strategy"):
            build_request([], {}, months_to_run=12, withdrawal_strategy="yolo")

    def test_missing_seed_is_drawn(self):
        request = build_request([], {}, months_to_run=12, seed=None)
        assert isinstance(request["seed"], int)


# ---------------------------------------------------------------------------
# parse_engine_response
# ---------------------------------------------------------------------------

class TestParseResponse:
    """Tests for parse_engine_response()."""

    def test_single_path_response(self, ok_payload):
        result = parse_engine_response(ok_payload, request_id=4)
        assert isinstance(result, RawSimulationResult)
        assert result.final_net_worth == 2000.0
        assert result.path_count == 1
        assert result.path_final_values.tolist() == [2000.0]
        assert not result.paths_reported
        assert result.request_id == 4
        assert result.percentiles == {}

    def test_multi_path_fields(self):
        result = parse_engine_response({
            "success": True,
            "finalNetWorth": 5.0,
            "pathFinalValues": [1, 5, 9],
            "finalNetWorthP10": 1.0,
            "finalNetWorthP90": 9.0,
            "successRate": 0.8,
            "everBreachProbability": 0.2,
        })
        assert result.path_count == 3
        assert result.paths_reported
        assert result.percentiles == {10: 1.0, 90: 9.0}
        assert result.success_rate == 0.8
        assert result.ever_breach_probability == 0.2

    def test_extra_fields_ignored(self, ok_payload):
        parse_engine_response({**ok_payload, "engineVersion": "3.1"})

    @pytest.mark.parametrize("payload", [None, "ok", [1, 2], 42])
    def test_non_mapping(self, payload):
        with pytest.raises(MalformedEngineOutputError) as exc:
            parse_engine_response(payload, request_id=9)
        assert exc.value.request_id == 9
        assert not exc.value.retryable

    @pytest.mark.parametrize("payload", [
        {},
        {"success": "yes", "finalNetWorth": 1.0},
        {"success": True, "finalNetWorth": "lots"},
        {"success": True, "finalNetWorth": 1.0, "monthlyData": "nope"},
        {"success": True, "finalNetWorth": 1.0, "successRate": 1.5},
        {"success": True, "finalNetWorth": 1.0, "finalNetWorthP10": 5.0, "finalNetWorthP50": 2.0},
        {"success": True},
    ])
    def test_malformed(self, payload):
        with pytest.raises(MalformedEngineOutputError):
            parse_engine_response(payload)

    def test_engine_failure_carries_detail(self):
        with pytest.raises(EngineInternalError) as exc:
            parse_engine_response({"success": False, "error": "stack overflow in tax module"})
        assert exc.value.detail == "stack overflow in tax module"
        assert "stack overflow" not in exc.value.user_message
        assert exc.value.retryable

    def test_monthly_frame(self, ok_payload):
        frame = parse_engine_response(ok_payload).monthly_frame()
        assert frame.index.name == "month"
        assert frame.loc[0, "netWorth"] == 2000.0


# ---------------------------------------------------------------------------
# LocalEngine
# ---------------------------------------------------------------------------

class TestLocalEngine:
    """Tests for the in-process reference engine."""

    def _run(self, request):
        return asyncio.run(LocalEngine().run(request))

    def test_single_income_month(self):
        request = build_request(expand(_income(end=0), 1), {"cash": 1000}, months_to_run=1, seed=1, path_count=1)
        payload = self._run(request)
        assert payload["success"] is True
        assert payload["finalNetWorth"] == pytest.approx(2000.0)
        assert len(payload["monthlyData"]) == 1

    def test_same_seed_same_result(self):
        request = build_request(expand(_income(), 24), {"cash": 0, "taxable": 10_000},
                                months_to_run=24, seed=11, path_count=200)
        assert self._run(request)["pathFinalValues"] == self._run(request)["pathFinalValues"]

    def test_different_seed_different_result(self):
        kwargs = dict(months_to_run=24, path_count=200)
        a = self._run(build_request([], {"taxable": 10_000}, seed=1, **kwargs))
        b = self._run(build_request([], {"taxable": 10_000}, seed=2, **kwargs))
        assert a["pathFinalValues"] != b["pathFinalValues"]

    def test_zero_volatility_compounds(self, deterministic_market):
        request = build_request([], {"taxable": 1000}, months_to_run=12, seed=1, path_count=5,
                                market=deterministic_market)
        payload = self._run(request)
        assert np.allclose(payload["pathFinalValues"], 1060.0)
        assert payload["finalNetWorthP10"] == pytest.approx(payload["finalNetWorthP90"])

    def test_shortfall_covered_from_investments(self, deterministic_market):
        rent = to_event({"id": "rent", "type": "RECURRING_EXPENSE", "amount": 500, "startDateOffset": 0})
        records = expand_all([rent], 2)
        request = build_request(records, {"cash": 0, "taxable": 10_000}, months_to_run=2, seed=1,
                                path_count=3, market=deterministic_market)
        payload = self._run(request)
        assert payload["everBreachProbability"] == 0.0
        assert payload["successRate"] == 1.0

    def test_cash_first_breaches(self, deterministic_market):
        rent = to_event({"id": "rent", "type": "RECURRING_EXPENSE", "amount": 500, "startDateOffset": 0})
        request = build_request(expand(rent, 2), {"cash": 0, "taxable": 10_000}, months_to_run=2, seed=1,
                                path_count=3, market=deterministic_market, withdrawal_strategy="cash_first")
        payload = self._run(request)
        assert payload["everBreachProbability"] == 1.0

    def test_contribution_moves_cash_to_investments(self):
        market = MarketConfig(expected_returns={"stocks": 0.0}, volatilities={"stocks": 0.0})
        contrib = to_event({"id": "c", "type": "SCHEDULED_CONTRIBUTION", "amount": 100,
                            "monthOffset": 0, "targetAccountType": "roth"})
        request = build_request(expand(contrib, 1), {"cash": 1000}, months_to_run=1, seed=1,
                                path_count=1, market=market)
        payload = self._run(request)
        month = payload["monthlyData"][0]
        assert month["cash"] == pytest.approx(900.0)
        assert month["invested"] == pytest.approx(100.0)
        assert payload["finalNetWorth"] == pytest.approx(1000.0)

    def test_response_parses(self):
        request = build_request([], {"cash": 1000}, months_to_run=12, seed=1, path_count=10)
        result = parse_engine_response(self._run(request))
        assert result.path_count == 10
        assert set(result.percentiles) == {10, 25, 50, 75, 90}
