"""
Account type resolution for finevents.

Purpose
-------
Canonicalizes account identifiers into a closed set of tax-treatment
categories. Legacy identifiers (``"401k"``, ``"rothIra"`` ...) arrive from
older payloads and are mapped through a fixed alias table. Resolution is
case-sensitive and fails loudly on anything not in the table: it never
defaults to a category.

Key components
--------------
- CanonicalAccountType : closed enumeration of categories
- LEGACY_ALIASES       : read-only alias -> category table
- resolve              : total on the table, raises ``UnknownAccountType`` otherwise
- is_valid             : non-raising predicate used by validation
- is_legacy_alias      : True when an identifier is an alias, not a canonical name

The alias table is checked once at import time: every alias maps to a known
category, no alias shadows a canonical name, and every category is reachable
from at least one alias.

Example
-------
>>> from finevents.accounts import resolve, CanonicalAccountType
>>> resolve("401k") is CanonicalAccountType.TAX_DEFERRED
True
>>> resolve("roth")
<CanonicalAccountType.ROTH: 'roth'>
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Tuple

from .exceptions import UnknownAccountType

__all__ = [
    "CanonicalAccountType",
    "LEGACY_ALIASES",
    "resolve",
    "is_valid",
    "is_legacy_alias",
    "aliases_for",
    "display_name",
]


class CanonicalAccountType(str, Enum):
    """Tax-treatment category of an account."""

    CASH = "cash"
    TAXABLE = "taxable"
    TAX_DEFERRED = "tax_deferred"
    ROTH = "roth"
    EDUCATION = "529"

    def __str__(self) -> str:
        return self.value


LEGACY_ALIASES: Mapping[str, CanonicalAccountType] = MappingProxyType({
    "checking": CanonicalAccountType.CASH,
    "savings": CanonicalAccountType.CASH,
    "brokerage": CanonicalAccountType.TAXABLE,
    "401k": CanonicalAccountType.TAX_DEFERRED,
    "403b": CanonicalAccountType.TAX_DEFERRED,
    "457b": CanonicalAccountType.TAX_DEFERRED,
    "ira": CanonicalAccountType.TAX_DEFERRED,
    "hsa": CanonicalAccountType.TAX_DEFERRED,
    "rothIra": CanonicalAccountType.ROTH,
    "roth401k": CanonicalAccountType.ROTH,
    "coverdell": CanonicalAccountType.EDUCATION,
})

_CANONICAL: Dict[str, CanonicalAccountType] = {t.value: t for t in CanonicalAccountType}

_DISPLAY_NAMES: Mapping[CanonicalAccountType, str] = MappingProxyType({
    CanonicalAccountType.CASH: "Cash",
    CanonicalAccountType.TAXABLE: "Taxable Brokerage",
    CanonicalAccountType.TAX_DEFERRED: "Tax-Deferred Retirement",
    CanonicalAccountType.ROTH: "Tax-Free Retirement (Roth)",
    CanonicalAccountType.EDUCATION: "Education Savings (529)",
})


def _verify_alias_table() -> None:
    """Fail at import if the alias table is not a total, non-orphaned mapping."""
    shadowed = sorted(set(LEGACY_ALIASES) & set(_CANONICAL))
    if shadowed:
        raise RuntimeError(f"Aliases shadow canonical names: {shadowed}")
    for alias, target in LEGACY_ALIASES.items():
        if not isinstance(target, CanonicalAccountType):
            raise RuntimeError(f"Alias {alias!r} maps to unknown category {target!r}")
    uncovered = [t.value for t in CanonicalAccountType if t not in set(LEGACY_ALIASES.values())]
    if uncovered:
        raise RuntimeError(f"Categories without any alias: {uncovered}")
    missing_labels = [t.value for t in CanonicalAccountType if t not in _DISPLAY_NAMES]
    if missing_labels:
        raise RuntimeError(f"Categories without a display name: {missing_labels}")


_verify_alias_table()


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def resolve(value: object) -> CanonicalAccountType:
    """
    Resolve an account identifier to its canonical category.

    Parameters
    ----------
    value : str or CanonicalAccountType
        Canonical name (``"tax_deferred"``) or legacy alias (``"401k"``).
        Matching is exact and case-sensitive.

    Returns
    -------
    CanonicalAccountType

    Raises
    ------
    UnknownAccountType
        If ``value`` is not a string in the canonical set or the alias table.

    Examples
    --------
    >>> resolve("brokerage").value
    'taxable'
    >>> resolve("401K")
    Traceback (most recent call last):
    ...
    finevents.exceptions.UnknownAccountType: Unknown account type: '401K'
    """
    if isinstance(value, CanonicalAccountType):
        return value
    if isinstance(value, str):
        if value in _CANONICAL:
            return _CANONICAL[value]
        if value in LEGACY_ALIASES:
            return LEGACY_ALIASES[value]
    raise UnknownAccountType(value)


def is_valid(value: object) -> bool:
    """Return True if ``value`` resolves to a canonical category."""
    if isinstance(value, CanonicalAccountType):
        return True
    return isinstance(value, str) and (value in _CANONICAL or value in LEGACY_ALIASES)


def is_legacy_alias(value: object) -> bool:
    """Return True if ``value`` is a legacy alias rather than a canonical name."""
    return isinstance(value, str) and value in LEGACY_ALIASES


def aliases_for(category: CanonicalAccountType) -> Tuple[str, ...]:
    """Return every legacy alias mapping to ``category``, in table order."""
    target = resolve(category)
    return tuple(alias for alias, t in LEGACY_ALIASES.items() if t is target)


def display_name(value: object) -> str:
    """Human-readable label for an account identifier (canonical or alias)."""
    return _DISPLAY_NAMES[resolve(value)]
