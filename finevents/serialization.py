"""
Serialization module for finevents plans and results.

Purpose
-------
JSON persistence for plan files and JSON-ready dictionaries for the results
handed back to the UI store: validation reports, goal outcomes and run
summaries.

Plan file layout
----------------
{
  "schema_version": "1.0.0",
  "events": [ {raw event}, ... ],
  "initial_state": {"balances": {"cash": 10000, "401k": 50000}},
  "market": {...}, "simulation": {...}, "goal": {...}, "tax_year": 2025
}

Example
-------
>>> from pathlib import Path
>>> from finevents.serialization import load_plan, save_plan
>>> plan = load_plan(Path("plan.json"))
>>> save_plan(plan, Path("copy.json"))
"""

from __future__ import annotations

import json
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np

from .aggregator import GoalOutcome, PortfolioSummary
from .config import PlanConfig
from .types import GoalOutcomeDict, ValidationReportDict
from .validation import ValidationReport

__all__ = [
    "SCHEMA_VERSION",
    "save_plan",
    "load_plan",
    "plan_from_dict",
    "report_to_dict",
    "outcome_to_dict",
    "summary_to_dict",
]


# ---------------------------------------------------------------------------
# Schema Version
# ---------------------------------------------------------------------------

SCHEMA_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

def plan_from_dict(data: Dict[str, Any]) -> PlanConfig:
    """
    Build a ``PlanConfig`` from a decoded plan file.

    Warns (``UserWarning``) when ``schema_version`` differs from
    ``SCHEMA_VERSION``; raises pydantic's ``ValidationError`` for invalid
    configuration sections. Raw events are not validated here.
    """
    data = dict(data)
    schema_version = data.pop("schema_version", "0.0.0")
    if schema_version != SCHEMA_VERSION:
        warnings.warn(
            f"Plan schema version {schema_version} differs from current "
            f"version {SCHEMA_VERSION}. May encounter compatibility issues.",
            UserWarning,
        )
    return PlanConfig.model_validate(data)


def load_plan(path: Path) -> PlanConfig:
    """
    Load a plan from a JSON file.

    Parameters
    ----------
    path : Path
        Input file path

    Returns
    -------
    PlanConfig
    """
    with open(path, "r") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Plan file {path} must contain a JSON object")
    return plan_from_dict(data)


def save_plan(plan: PlanConfig, path: Path) -> None:
    """
    Save a plan to a JSON file (parent directories are created).

    Examples
    --------
    >>> save_plan(PlanConfig(tax_year=2026), Path("plans/retirement.json"))
    """
    data = {"schema_version": SCHEMA_VERSION, **plan.model_dump(mode="json")}
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

def report_to_dict(report: ValidationReport) -> ValidationReportDict:
    """Wire form of a validation report."""
    return report.to_dict()


def outcome_to_dict(outcome: GoalOutcome) -> GoalOutcomeDict:
    """Wire form of a goal outcome, including its guidance sentence."""
    return {
        "target": outcome.target,
        "percentiles": outcome.percentiles.as_dict(),
        "successProbability": outcome.success_probability,
        "statusTag": outcome.status_tag,
        "status": outcome.status.value,
        "targetBand": outcome.target_band.value,
        "monthlySavingsGap": outcome.monthly_savings_gap,
        "estimated": outcome.estimated,
        "guidance": outcome.guidance,
    }


def summary_to_dict(summary: PortfolioSummary) -> Dict[str, Optional[float]]:
    """Flat wire form of a portfolio summary (``finalNetWorthP10`` ...)."""
    out: Dict[str, Optional[float]] = {
        f"finalNetWorthP{key[1:]}": float(np.round(value, 2))
        for key, value in summary.percentiles.as_dict().items()
    }
    out["successRate"] = summary.success_rate
    out["everBreachProbability"] = summary.ever_breach_probability
    out["pathCount"] = summary.path_count
    return out
