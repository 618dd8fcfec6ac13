"""
Unit tests for CLI module.

Tests command-line interface functionality using Click's testing utilities.
"""

import json
import logging

import pandas as pd
import pytest
from click.testing import CliRunner

from finevents.cli import __version__, main


QUIET_LOGS = {"FINEVENTS_LOG_LEVEL": "ERROR"}


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def restore_root_logger():
    """The CLI reconfigures the root logger; put it back after each test."""
    root = logging.getLogger()
    level, handlers = root.level, list(root.handlers)
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def runner():
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def small_plan(tmp_path):
    """Plan with a 3-month income and an open-ended expense."""
    data = {
        "schema_version": "1.0.0",
        "events": [
            {"id": "pay", "type": "INCOME", "amount": 1000, "startDateOffset": 0, "endDateOffset": 2},
            {"id": "rent", "type": "RECURRING_EXPENSE", "amount": 500, "startDateOffset": 0},
        ],
        "initial_state": {"balances": {"cash": 1000}},
        "simulation": {"path_count": 20, "horizon_months": 3, "seed": 1},
        "goal": {"name": "Buffer", "target_amount": 1500},
    }
    path = tmp_path / "plan.json"
    path.write_text(json.dumps(data))
    return path


@pytest.fixture
def invalid_plan(tmp_path):
    """Plan whose contribution has no account type."""
    data = {
        "schema_version": "1.0.0",
        "events": [{"id": "c", "type": "SCHEDULED_CONTRIBUTION", "amount": 100, "monthOffset": 0}],
    }
    path = tmp_path / "invalid.json"
    path.write_text(json.dumps(data))
    return path


# ============================================================================
# GENERAL
# ============================================================================

class TestMain:
    """Tests for the command group."""

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("validate", "expand", "simulate", "template"):
            assert command in result.output

    def test_unreadable_plan(self, runner, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")
        result = runner.invoke(main, ["validate", str(path)])
        assert result.exit_code == 1
        assert "Error loading plan" in result.output

    def test_missing_file(self, runner, tmp_path):
        result = runner.invoke(main, ["validate", str(tmp_path / "nope.json")])
        assert result.exit_code == 2


# ============================================================================
# TEMPLATE
# ============================================================================

class TestTemplate:
    """Tests for the template command."""

    def test_writes_valid_plan(self, runner, tmp_path):
        path = tmp_path / "plan.json"
        result = runner.invoke(main, ["template", str(path)])
        assert result.exit_code == 0
        assert "Plan template written" in result.output

        result = runner.invoke(main, ["validate", str(path)])
        assert result.exit_code == 0
        assert "Plan is valid" in result.output

    def test_refuses_to_overwrite(self, runner, tmp_path):
        path = tmp_path / "plan.json"
        path.write_text("{}")
        result = runner.invoke(main, ["template", str(path)])
        assert result.exit_code == 1
        assert path.read_text() == "{}"
        assert runner.invoke(main, ["template", str(path), "--force"]).exit_code == 0


# ============================================================================
# VALIDATE
# ============================================================================

class TestValidate:
    """Tests for the validate command."""

    def test_invalid_plan_exits_1(self, runner, invalid_plan):
        result = runner.invoke(main, ["validate", str(invalid_plan)])
        assert result.exit_code == 1
        assert "Plan is invalid" in result.output

    def test_json_report(self, runner, invalid_plan):
        result = runner.invoke(main, ["validate", str(invalid_plan), "--json"], env=QUIET_LOGS)
        assert result.exit_code == 1
        report = json.loads(result.output)
        assert report["valid"] is False
        assert report["errors"][0]["code"] == "missing_account_type"


# ============================================================================
# EXPAND
# ============================================================================

class TestExpand:
    """Tests for the expand command."""

    def test_table(self, runner, small_plan):
        result = runner.invoke(main, ["expand", str(small_plan)])
        assert result.exit_code == 0
        assert "7 canonical monthly events" in result.output

    def test_csv_export(self, runner, small_plan, tmp_path):
        out = tmp_path / "out" / "events.csv"
        result = runner.invoke(main, ["expand", str(small_plan), "-T", "5", "--start", "2026-01", "-o", str(out)])
        assert result.exit_code == 0
        assert "Wrote 9 records" in result.output
        frame = pd.read_csv(out)
        assert len(frame) == 9
        assert frame["date"].iloc[0] == "2026-01-01"
        assert set(frame["target_account"]) == {"cash"}

    def test_invalid_plan(self, runner, invalid_plan):
        result = runner.invoke(main, ["expand", str(invalid_plan)])
        assert result.exit_code == 1


# ============================================================================
# SIMULATE
# ============================================================================

class TestSimulate:
    """Tests for the simulate command."""

    def test_table_output(self, runner, small_plan):
        result = runner.invoke(main, ["simulate", str(small_plan)])
        assert result.exit_code == 0
        assert "Simulation Results" in result.output
        assert "Buffer" in result.output

    def test_json_output(self, runner, small_plan):
        result = runner.invoke(main, ["simulate", str(small_plan), "-n", "30", "--json"], env=QUIET_LOGS)
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["summary"]["pathCount"] == 30
        assert data["eventCount"] == 7
        assert data["report"]["valid"] is True
        assert data["goal"]["status"] in {"on_track", "at_risk", "critical"}

    def test_invalid_plan_not_simulated(self, runner, invalid_plan):
        result = runner.invoke(main, ["simulate", str(invalid_plan), "--json"], env=QUIET_LOGS)
        assert result.exit_code == 1
        assert json.loads(result.output)["valid"] is False

    def test_path_count_bounds(self, runner, small_plan):
        result = runner.invoke(main, ["simulate", str(small_plan), "-n", "0"])
        assert result.exit_code == 2
