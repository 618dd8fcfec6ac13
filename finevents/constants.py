"""
Global constants for finevents.

Purpose
-------
Centralizes the numeric bounds, thresholds and statutory tables used by the
event pipeline. Keeping them in one place makes the safety limits explicit
and lets validation and expansion agree on the same numbers.

Usage
-----
>>> from finevents.constants import MAX_EXPANSION_MONTHS, PERCENTILE_LEVELS
>>> MAX_EXPANSION_MONTHS
1200

Categories
----------
- Time: expansion cap, months per year
- Aggregation: percentile ladder, derived status thresholds
- Validation: contribution limits, suspicious-amount thresholds
- Engine: default path count, seed, timeout
"""

from typing import Dict, Mapping, Tuple
from types import MappingProxyType

__all__ = [
    # Time
    "MONTHS_PER_YEAR",
    "MAX_EXPANSION_MONTHS",
    "DEFAULT_HORIZON_MONTHS",
    # Frequency
    "FREQUENCY_DIVISORS",
    # Priority
    "DEFAULT_PRIORITIES",
    "PRIORITY_LABELS",
    # Aggregation
    "PERCENTILE_LEVELS",
    "STATUS_TAG_THRESHOLDS",
    # Validation
    "DEFAULT_TAX_YEAR",
    "CONTRIBUTION_LIMITS",
    "MAX_REASONABLE_MONTHLY_AMOUNT",
    "MAX_REASONABLE_ANNUAL_AMOUNT",
    # Engine
    "DEFAULT_PATH_COUNT",
    "DEFAULT_SEED",
    "DEFAULT_ENGINE_TIMEOUT_SECONDS",
    "DEFAULT_WITHDRAWAL_STRATEGY",
    "WITHDRAWAL_STRATEGIES",
]


# =============================================================================
# Time
# =============================================================================

MONTHS_PER_YEAR: int = 12
"""Number of months in a year (used for frequency and growth blocks)."""

MAX_EXPANSION_MONTHS: int = 1200
"""Maximum number of monthly records a single event may expand into (100 years)."""

DEFAULT_HORIZON_MONTHS: int = 360
"""Default simulation horizon when a plan does not specify one (30 years)."""


# =============================================================================
# Frequency
# =============================================================================

FREQUENCY_DIVISORS: Mapping[str, float] = MappingProxyType({
    "weekly": MONTHS_PER_YEAR / 52,
    "biweekly": MONTHS_PER_YEAR / 26,
    "monthly": 1,
    "quarterly": 3,
    "semiannually": 6,
    "annually": 12,
})
"""Months covered by one period; dividing a per-period amount by it gives a true monthly figure."""


# =============================================================================
# Priority
# =============================================================================

DEFAULT_PRIORITIES: Mapping[str, int] = MappingProxyType({
    "income": 10,
    "one_time": 15,
    "contribution": 20,
    "expense": 30,
    "withdrawal": 40,
})
"""Same-month ordering by flow category. Lower values are applied first."""

PRIORITY_LABELS: Mapping[str, int] = MappingProxyType({
    "HIGH": 10,
    "MEDIUM": 20,
    "LOW": 30,
})
"""Textual priority markers accepted on the wire."""


# =============================================================================
# Aggregation
# =============================================================================

PERCENTILE_LEVELS: Tuple[int, ...] = (10, 25, 50, 75, 90)
"""Percentile ladder reported for every goal outcome."""

STATUS_TAG_THRESHOLDS: Tuple[Tuple[float, str], ...] = (
    (0.85, "excellent"),
    (0.70, "good"),
    (0.50, "concerning"),
)
"""Success probability floors used to derive a status tag when the engine
does not provide one. Anything below the last floor is ``"critical"``."""


# =============================================================================
# Validation
# =============================================================================

DEFAULT_TAX_YEAR: int = 2025
"""Tax year used for contribution limits when none is configured."""

CONTRIBUTION_LIMITS: Mapping[int, Dict[str, float]] = MappingProxyType({
    2024: {"tax_deferred": 23_000.0, "roth": 7_000.0, "529": 18_000.0},
    2025: {"tax_deferred": 23_500.0, "roth": 7_000.0, "529": 19_000.0},
    2026: {"tax_deferred": 24_500.0, "roth": 7_500.0, "529": 19_000.0},
})
"""Annual employee contribution limits per tax year and account category.

The 529 figure is the annual gift-tax exclusion, the usual soft ceiling for
education savings. Categories absent from a year have no limit.
"""

MAX_REASONABLE_MONTHLY_AMOUNT: float = 500_000.0
"""Monthly amounts above this are flagged as likely unit errors."""

MAX_REASONABLE_ANNUAL_AMOUNT: float = 50_000_000.0
"""Annual amounts above this are flagged as likely unit errors."""


# =============================================================================
# Engine
# =============================================================================

DEFAULT_PATH_COUNT: int = 1000
"""Default number of Monte Carlo paths requested from the engine."""

DEFAULT_SEED: int = 42
"""Default random seed for reproducibility."""

DEFAULT_ENGINE_TIMEOUT_SECONDS: float = 30.0
"""Seconds to wait for an engine run before reporting a timeout."""

DEFAULT_WITHDRAWAL_STRATEGY: str = "tax_efficient"
"""Default account drawdown order passed to the engine."""

WITHDRAWAL_STRATEGIES: Tuple[str, ...] = ("tax_efficient", "proportional", "cash_first")
"""Withdrawal strategy tags understood by the engine."""
