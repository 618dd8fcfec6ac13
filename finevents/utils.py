"""General utilities for finevents

Contents
--------
- Amount coercion (numeric or numeric-string wire values)
- Array helpers (ensure_1d)
- Calendar helpers (month_index)
- Display helpers (format_currency)
- Logging setup (configure_logging, get_logger)
"""

from __future__ import annotations

import logging
import math
from datetime import date
from typing import TYPE_CHECKING, Optional, Sequence

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    from .config import AppSettings

__all__ = [
    # Coercion
    "coerce_amount",
    "is_finite_number",
    # Arrays / Index
    "ensure_1d",
    "month_index",
    # Display
    "format_currency",
    # Logging
    "configure_logging",
    "get_logger",
]

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------

def coerce_amount(value: object) -> float:
    """Coerce a wire amount to float.

    Numbers pass through; numeric strings (surrounding whitespace and
    thousands separators allowed) are parsed. Anything else, booleans
    included, becomes NaN so callers can treat it as "not a finite number".
    Integers too large for a float also become NaN.

    >>> coerce_amount("1,250.50")
    1250.5
    >>> math.isnan(coerce_amount("abc"))
    True
    """
    if isinstance(value, bool) or value is None:
        return math.nan
    if isinstance(value, (int, float, np.integer, np.floating)):
        try:
            return float(value)
        except OverflowError:
            return math.nan
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return math.nan
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def is_finite_number(value: object) -> bool:
    """True if ``value`` coerces to a finite float."""
    return math.isfinite(coerce_amount(value))


# ---------------------------------------------------------------------------
# Array / Index helpers
# ---------------------------------------------------------------------------

def ensure_1d(a: Sequence[float] | np.ndarray, *, name: str = "array") -> np.ndarray:
    """Convert input to a 1-D float NumPy array with helpful error messages."""
    arr = np.asarray(a, dtype=float)
    if arr.ndim != 1:
        raise ValueError(f"{name} must be 1-D, got shape {arr.shape}.")
    return arr


def month_index(start: Optional[date], months: int) -> pd.DatetimeIndex:
    """Construct a first-of-month DatetimeIndex for *months* periods.

    If *start* is None, uses the current month as the first period.
    """
    if months <= 0:
        return pd.DatetimeIndex([], dtype="datetime64[ns]")
    if start is None:
        today = pd.Timestamp.today().normalize()
        first = pd.Timestamp(today.year, today.month, 1)
    else:
        first = pd.Timestamp(start.year, start.month, 1)
    return pd.date_range(start=first, periods=months, freq="MS")


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------

def format_currency(value: float, decimals: int = 0, symbol: str = "$") -> str:
    """
    Format a monetary value with thousands separators.

    Parameters
    ----------
    value : float
        Amount in dollars.
    decimals : int, default 0
        Number of decimal places to display.
    symbol : str, default '$'
        Currency symbol prefix.

    Examples
    --------
    >>> format_currency(1916.666, decimals=2)
    '$1,916.67'
    >>> format_currency(-2500)
    '-$2,500'
    """
    if not math.isfinite(value):
        return "n/a"
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.{decimals}f}"


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def configure_logging(settings: "AppSettings") -> None:
    """Configure the root logger from application settings.

    Only entry points (the CLI) call this; library code just logs.
    """
    level = "DEBUG" if settings.debug else settings.log_level
    logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT, force=True)


def get_logger(logger: Optional[logging.Logger], name: str) -> logging.Logger:
    """Return the injected logger, or the module logger for ``name``."""
    return logger if logger is not None else logging.getLogger(name)
