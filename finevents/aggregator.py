"""
Outcome aggregation for finevents.

Purpose
-------
Reduces raw per-path engine output into the statistics shown next to a goal:
a percentile ladder, the probability of reaching the target, a plain status,
the target's position in the distribution, and a simple monthly savings gap.

Conventions
-----------
- Percentiles are nearest-rank on the sorted sample (no interpolation):
  P_k is the value at 1-based rank ``ceil(k/100 * n)``. Results are stable
  for small samples and always ordered P10 <= ... <= P90.
- Success probability is the share of all paths ending at or above the
  target; a non-finite path value counts as a miss.
- When the engine reports only its percentile ladder, the probability is
  read off the ladder by linear interpolation between rungs and flagged as
  estimated (0.9 at or below P10, 0.0 above P90).
- Status comes from the engine's categorical tag:
  excellent/good -> on track, concerning -> at risk, critical -> critical,
  anything else -> unknown.
- The savings gap ignores growth on purpose: it is guidance text only,
  distinct from the engine's own required-contribution figure.

Example
-------
>>> from finevents.aggregator import aggregate
>>> outcome = aggregate(range(1, 101), 50.0, status_tag="good",
...                     current_progress=20.0, months_remaining=10)
>>> outcome.percentiles.p10, outcome.percentiles.p90, outcome.success_probability
(10.0, 90.0, 0.51)
>>> outcome.status.value, outcome.target_band.value, outcome.monthly_savings_gap
('on_track', 'p50_to_p75', 3.0)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional

import numpy as np

from .constants import PERCENTILE_LEVELS, STATUS_TAG_THRESHOLDS
from .engine import RawSimulationResult
from .types import PercentileLadderDict
from .utils import ensure_1d, format_currency, get_logger

__all__ = [
    "GoalStatus",
    "TargetBand",
    "PercentileLadder",
    "GoalOutcome",
    "PortfolioSummary",
    "nearest_rank",
    "status_from_tag",
    "derive_status_tag",
    "target_band",
    "monthly_savings_gap",
    "success_from_ladder",
    "aggregate",
    "aggregate_ladder",
    "aggregate_result",
    "summarize_paths",
    "guidance_text",
]


class GoalStatus(str, Enum):
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


class TargetBand(str, Enum):
    """Where the target sits in the outcome distribution (best to worst)."""

    BEST = "below_p25"
    GOOD = "p25_to_p50"
    CAUTION = "p50_to_p75"
    WORST = "at_or_above_p75"


_STATUS_BY_TAG: Dict[str, GoalStatus] = {
    "excellent": GoalStatus.ON_TRACK,
    "good": GoalStatus.ON_TRACK,
    "concerning": GoalStatus.AT_RISK,
    "critical": GoalStatus.CRITICAL,
}


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PercentileLadder:
    """P10/P25/P50/P75/P90 of a sample."""

    p10: float
    p25: float
    p50: float
    p75: float
    p90: float

    def __post_init__(self):
        values = [self.p10, self.p25, self.p50, self.p75, self.p90]
        if any(b < a for a, b in zip(values, values[1:])):
            raise ValueError(f"percentiles must be non-decreasing, got {values}")

    @classmethod
    def from_sample(cls, values: Iterable[float]) -> "PercentileLadder":
        """
        Nearest-rank ladder of ``values``.

        Raises
        ------
        ValueError
            If no finite value remains.
        """
        arr = ensure_1d(list(values), name="values")
        arr = np.sort(arr[np.isfinite(arr)])
        if arr.size == 0:
            raise ValueError("cannot compute percentiles of an empty sample")
        return cls(*(nearest_rank(arr, p) for p in PERCENTILE_LEVELS))

    @classmethod
    def from_reported(cls, percentiles: Mapping[int, float]) -> Optional["PercentileLadder"]:
        """Ladder from engine-reported levels, or None unless all five are present."""
        if any(p not in percentiles for p in PERCENTILE_LEVELS):
            return None
        return cls(*(float(percentiles[p]) for p in PERCENTILE_LEVELS))

    def as_dict(self) -> PercentileLadderDict:
        return {f"p{p}": getattr(self, f"p{p}") for p in PERCENTILE_LEVELS}


@dataclass(frozen=True)
class GoalOutcome:
    """
    Aggregated statistics for one goal.

    Attributes
    ----------
    target : float
        Goal amount.
    percentiles : PercentileLadder
        Distribution of the path outcomes.
    success_probability : float
        Share of paths at or above ``target``, in [0, 1].
    status_tag : str, optional
        Categorical tag the status was derived from.
    status : GoalStatus
    target_band : TargetBand
    monthly_savings_gap : float
        ``max(0, target - current) / months_remaining`` (no growth).
    path_count : int, optional
        Number of paths aggregated; None when only a ladder was available.
    estimated : bool
        True when ``success_probability`` was interpolated from a ladder.
    """

    target: float
    percentiles: PercentileLadder
    success_probability: float
    status_tag: Optional[str]
    status: GoalStatus
    target_band: TargetBand
    monthly_savings_gap: float
    path_count: Optional[int]
    estimated: bool = False

    @property
    def guidance(self) -> str:
        return guidance_text(self)


@dataclass(frozen=True)
class PortfolioSummary:
    """
    Distribution of terminal net worth across all paths of one run.

    ``path_count`` is None when the engine reported percentiles but no
    per-path values.
    """

    percentiles: PercentileLadder
    success_rate: float
    ever_breach_probability: Optional[float]
    path_count: Optional[int]


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

def nearest_rank(sorted_values: np.ndarray, percentile: float) -> float:
    """
    Nearest-rank percentile of an ascending, non-empty array.

    >>> nearest_rank(np.array([1.0, 2.0, 3.0, 4.0]), 50)
    2.0
    """
    n = sorted_values.shape[0]
    if n == 0:
        raise ValueError("cannot take a percentile of an empty sample")
    rank = math.ceil(percentile / 100.0 * n)
    return float(sorted_values[min(max(rank, 1), n) - 1])


def status_from_tag(tag: Optional[str]) -> GoalStatus:
    """Map an engine status tag to a GoalStatus; unrecognized tags are UNKNOWN."""
    if tag is None:
        return GoalStatus.UNKNOWN
    return _STATUS_BY_TAG.get(tag, GoalStatus.UNKNOWN)


def derive_status_tag(success_probability: float) -> str:
    """Status tag implied by a success probability when the engine gives none."""
    for floor, tag in STATUS_TAG_THRESHOLDS:
        if success_probability >= floor:
            return tag
    return "critical"


def target_band(target: float, ladder: PercentileLadder) -> TargetBand:
    """Position of ``target`` relative to the ladder's quartiles."""
    if target < ladder.p25:
        return TargetBand.BEST
    if target < ladder.p50:
        return TargetBand.GOOD
    if target < ladder.p75:
        return TargetBand.CAUTION
    return TargetBand.WORST


def monthly_savings_gap(target: float, current_progress: float, months_remaining: Optional[int]) -> float:
    """
    Extra monthly saving needed to close the gap, ignoring growth.

    With no months left (or unknown), the whole shortfall is returned.
    """
    shortfall = max(0.0, target - current_progress)
    if months_remaining is None or months_remaining <= 0:
        return shortfall
    return shortfall / months_remaining


def success_from_ladder(target: float, ladder: PercentileLadder) -> float:
    """
    Share of outcomes at or above ``target`` read off a percentile ladder.

    Linear between rungs. Outside the ladder only a bound is known, so the
    bound is returned: 0.9 at or below P10 and 0.0 above P90.

    >>> ladder = PercentileLadder(100.0, 300.0, 500.0, 700.0, 900.0)
    >>> success_from_ladder(600.0, ladder)
    0.375
    """
    values = [getattr(ladder, f"p{p}") for p in PERCENTILE_LEVELS]
    levels = [p / 100.0 for p in PERCENTILE_LEVELS]
    if target <= values[0]:
        return 1.0 - levels[0]
    if target > values[-1]:
        return 0.0
    i = next(i for i, v in enumerate(values) if v >= target)
    lo, hi = values[i - 1], values[i]
    below = levels[i - 1] + (levels[i] - levels[i - 1]) * (target - lo) / (hi - lo)
    return 1.0 - below


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def _outcome(
    goal_target: float,
    ladder: PercentileLadder,
    probability: float,
    status_tag: Optional[str],
    current_progress: float,
    months_remaining: Optional[int],
    path_count: Optional[int],
    estimated: bool,
) -> GoalOutcome:
    tag = status_tag if status_tag is not None else derive_status_tag(probability)
    return GoalOutcome(
        target=float(goal_target),
        percentiles=ladder,
        success_probability=probability,
        status_tag=tag,
        status=status_from_tag(tag),
        target_band=target_band(goal_target, ladder),
        monthly_savings_gap=monthly_savings_gap(goal_target, current_progress, months_remaining),
        path_count=path_count,
        estimated=estimated,
    )


def aggregate(
    path_values: Iterable[float],
    goal_target: float,
    *,
    status_tag: Optional[str] = None,
    current_progress: float = 0.0,
    months_remaining: Optional[int] = None,
    logger: Optional[logging.Logger] = None,
) -> GoalOutcome:
    """
    Aggregate per-path outcomes against a goal.

    Parameters
    ----------
    path_values : iterable of float
        Terminal (or milestone) value of each path. Non-finite values are
        left out of the ladder and count as misses for the probability.
    goal_target : float
        Goal amount.
    status_tag : str, optional
        Engine tag ("excellent", "good", "concerning", "critical"). When
        omitted, one is derived from the success probability.
    current_progress : float, default 0.0
        Amount already saved, for the savings gap.
    months_remaining : int, optional
        Months until the goal date, for the savings gap.
    logger : logging.Logger, optional
        Receives the aggregation summary at INFO.

    Returns
    -------
    GoalOutcome

    Raises
    ------
    ValueError
        Empty or multi-dimensional sample, no finite values, or non-finite
        target.
    """
    if not math.isfinite(goal_target):
        raise ValueError(f"goal_target must be finite, got {goal_target}")
    log = get_logger(logger, __name__)

    arr = ensure_1d(list(path_values), name="path_values")
    if arr.size == 0:
        raise ValueError("cannot aggregate an empty sample")
    finite = arr[np.isfinite(arr)]
    if finite.size < arr.size:
        log.warning("Counting %d non-finite path values as misses", arr.size - finite.size,
                    extra={"dropped": int(arr.size - finite.size)})

    ladder = PercentileLadder.from_sample(finite)
    probability = float(np.count_nonzero(finite >= goal_target) / arr.size)
    outcome = _outcome(goal_target, ladder, probability, status_tag, current_progress,
                       months_remaining, int(arr.size), estimated=False)
    log.info(
        "Aggregated %d paths: P50=%.2f success=%.1f%% status=%s",
        outcome.path_count, ladder.p50, probability * 100, outcome.status.value,
        extra={"path_count": outcome.path_count, "success_probability": probability,
               "status": outcome.status.value},
    )
    return outcome


def aggregate_ladder(
    ladder: PercentileLadder,
    goal_target: float,
    *,
    status_tag: Optional[str] = None,
    current_progress: float = 0.0,
    months_remaining: Optional[int] = None,
    logger: Optional[logging.Logger] = None,
) -> GoalOutcome:
    """
    Aggregate against a goal when only a percentile ladder is known.

    The success probability comes from ``success_from_ladder`` and the
    outcome is marked ``estimated``.
    """
    if not math.isfinite(goal_target):
        raise ValueError(f"goal_target must be finite, got {goal_target}")
    log = get_logger(logger, __name__)
    probability = success_from_ladder(goal_target, ladder)
    outcome = _outcome(goal_target, ladder, probability, status_tag, current_progress,
                       months_remaining, None, estimated=True)
    log.info(
        "Aggregated percentile ladder: P50=%.2f estimated success=%.1f%% status=%s",
        ladder.p50, probability * 100, outcome.status.value,
        extra={"success_probability": probability, "status": outcome.status.value},
    )
    return outcome


def aggregate_result(
    result: RawSimulationResult,
    goal_target: float,
    *,
    status_tag: Optional[str] = None,
    current_progress: float = 0.0,
    months_remaining: Optional[int] = None,
    logger: Optional[logging.Logger] = None,
) -> GoalOutcome:
    """
    Aggregate an engine run against a goal.

    Per-path values are used when the engine sent them. Otherwise the
    engine's percentile ladder is used. A run with neither is a single
    headline value; it is aggregated as one path with a warning.
    """
    log = get_logger(logger, __name__)
    kwargs = dict(status_tag=status_tag, current_progress=current_progress,
                  months_remaining=months_remaining, logger=log)
    if result.paths_reported:
        return aggregate(result.path_final_values, goal_target, **kwargs)
    ladder = PercentileLadder.from_reported(result.percentiles)
    if ladder is not None:
        return aggregate_ladder(ladder, goal_target, **kwargs)
    log.warning("Engine reported neither per-path values nor percentiles; aggregating the headline value",
                extra={"request_id": result.request_id})
    return aggregate(result.path_final_values, goal_target, **kwargs)


def summarize_paths(result: RawSimulationResult) -> PortfolioSummary:
    """
    Portfolio-level summary of a run.

    The ladder comes from per-path values when reported, else from the
    engine's own percentiles. Uses the engine's ``successRate`` when
    reported, otherwise the share of paths ending with non-negative net
    worth.
    """
    reported = None if result.paths_reported else PercentileLadder.from_reported(result.percentiles)
    if reported is not None:
        ladder, path_count = reported, None
    else:
        ladder = PercentileLadder.from_sample(result.path_final_values)
        path_count = result.path_count
    if result.success_rate is not None:
        success = float(result.success_rate)
    elif reported is not None:
        success = success_from_ladder(0.0, reported)
    else:
        values = result.path_final_values
        success = float(np.count_nonzero(values[np.isfinite(values)] >= 0.0) / values.size)
    return PortfolioSummary(
        percentiles=ladder,
        success_rate=success,
        ever_breach_probability=result.ever_breach_probability,
        path_count=path_count,
    )


def guidance_text(outcome: GoalOutcome) -> str:
    """One-sentence, plain-language reading of an outcome."""
    chance = f"{outcome.success_probability:.0%}"
    if outcome.estimated:
        chance = f"about {chance}"
    target = format_currency(outcome.target)
    if outcome.status is GoalStatus.ON_TRACK:
        text = f"On track: {chance} of simulated paths reach {target}."
    elif outcome.status is GoalStatus.AT_RISK:
        text = f"At risk: only {chance} of simulated paths reach {target}."
    elif outcome.status is GoalStatus.CRITICAL:
        text = f"Critical: {chance} of simulated paths reach {target}."
    else:
        text = f"{chance} of simulated paths reach {target}."
    if outcome.status is not GoalStatus.ON_TRACK and outcome.monthly_savings_gap > 0:
        text += f" Saving about {format_currency(outcome.monthly_savings_gap)} more per month would close the gap."
    return text
