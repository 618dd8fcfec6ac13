"""
Typed financial event model for finevents.

Purpose
-------
Replaces loosely-typed event dictionaries with a closed set of immutable
pydantic models, one per flow category, discriminated on ``kind``. Events
are built by ``finevents.adapter`` from raw wire payloads; every downstream
component works on these types only.

Key components
--------------
- EventKind, FlowCategory, Frequency : closed enumerations
- SingleMonth, MonthRange            : the two temporal shapes (``Timing``)
- IncomeEvent, ExpenseEvent, OneTimeEvent, ContributionEvent, WithdrawalEvent
- FinancialEvent                     : discriminated union of the above
- CanonicalMonthlyEvent              : one resolved (event, month) record
- flow_category                      : exhaustive dispatch over FinancialEvent

Design Principles
-----------------
- Closed: an unknown kind cannot be constructed
- Immutable: frozen models, no extra fields
- Resolved: account references are canonical categories, never aliases

Example
-------
>>> from finevents.events import ContributionEvent, MonthRange
>>> ev = ContributionEvent(
...     id="401k", kind="SCHEDULED_CONTRIBUTION", amount=23_000,
...     frequency="annually", timing=MonthRange(start=0, end=419),
...     target_account="401k",
... )
>>> ev.target_account.value
'tax_deferred'
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Literal, Mapping, Optional, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing_extensions import Annotated, assert_never

from .accounts import CanonicalAccountType, resolve
from .constants import DEFAULT_PRIORITIES, FREQUENCY_DIVISORS
from .types import WireEventDict
from .utils import coerce_amount

__all__ = [
    "EventKind",
    "FlowCategory",
    "Frequency",
    "SingleMonth",
    "MonthRange",
    "Timing",
    "IncomeEvent",
    "ExpenseEvent",
    "OneTimeEvent",
    "ContributionEvent",
    "WithdrawalEvent",
    "FinancialEvent",
    "CanonicalMonthlyEvent",
    "CONTRIBUTION_KINDS",
    "KIND_CATEGORIES",
    "flow_category",
]


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class EventKind(str, Enum):
    """Wire ``type`` values understood by the pipeline."""

    INCOME = "INCOME"
    SOCIAL_SECURITY_INCOME = "SOCIAL_SECURITY_INCOME"
    PENSION_INCOME = "PENSION_INCOME"
    RECURRING_EXPENSE = "RECURRING_EXPENSE"
    HEALTHCARE_COST = "HEALTHCARE_COST"
    ONE_TIME_EVENT = "ONE_TIME_EVENT"
    SCHEDULED_CONTRIBUTION = "SCHEDULED_CONTRIBUTION"
    FIVE_TWO_NINE_CONTRIBUTION = "FIVE_TWO_NINE_CONTRIBUTION"
    WITHDRAWAL = "WITHDRAWAL"


class FlowCategory(str, Enum):
    """Direction of money for an event kind."""

    INCOME = "income"
    ONE_TIME = "one_time"
    EXPENSE = "expense"
    CONTRIBUTION = "contribution"
    WITHDRAWAL = "withdrawal"


class Frequency(str, Enum):
    """Period the wire ``amount`` refers to."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMIANNUALLY = "semiannually"
    ANNUALLY = "annually"

    @property
    def divisor(self) -> float:
        """Number of months the amount is spread over."""
        return FREQUENCY_DIVISORS[self.value]


CONTRIBUTION_KINDS = frozenset({
    EventKind.SCHEDULED_CONTRIBUTION.value,
    EventKind.FIVE_TWO_NINE_CONTRIBUTION.value,
})
"""Kinds that must carry a resolvable account reference."""


# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

class SingleMonth(BaseModel):
    """Event occurring in exactly one month."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    shape: Literal["single"] = "single"
    month_offset: int = Field(ge=0, description="Absolute month index")


class MonthRange(BaseModel):
    """
    Event recurring every month of an inclusive range.

    ``end=None`` means "until the simulation horizon". ``start > end`` is a
    valid, empty schedule.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    shape: Literal["range"] = "range"
    start: int = Field(ge=0, description="First month (inclusive)")
    end: Optional[int] = Field(default=None, ge=0, description="Last month (inclusive)")


Timing = Annotated[Union[SingleMonth, MonthRange], Field(discriminator="shape")]


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class _EventBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    category: ClassVar[FlowCategory]
    default_account: ClassVar[Optional[CanonicalAccountType]] = CanonicalAccountType.CASH

    id: str = Field(min_length=1)
    name: str = ""
    priority: Optional[int] = Field(default=None, description="Same-month order; lower first")
    timing: Timing
    amount: float = Field(description="Per-period amount; NaN for unparseable input")
    frequency: Frequency = Frequency.MONTHLY
    annual_growth_rate: float = Field(default=0.0, gt=-1.0)
    target_account: Optional[CanonicalAccountType] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, v: Any) -> float:
        return coerce_amount(v)

    @field_validator("target_account", mode="before")
    @classmethod
    def _resolve_account(cls, v: Any) -> Optional[CanonicalAccountType]:
        if v is None:
            return None
        return resolve(v)

    @model_validator(mode="after")
    def _fill_defaults(self) -> "_EventBase":
        # frozen model: defaults are written through object.__setattr__
        if self.priority is None:
            object.__setattr__(self, "priority", DEFAULT_PRIORITIES[self.category.value])
        if self.target_account is None:
            if self.default_account is None:
                raise ValueError(f"{self.kind} requires a target account")
            object.__setattr__(self, "target_account", self.default_account)
        return self

    @property
    def monthly_amount(self) -> float:
        """Base amount converted to a true monthly figure."""
        return self.amount / self.frequency.divisor


class IncomeEvent(_EventBase):
    """Salary, Social Security, pensions. Deposited to cash by default."""

    category: ClassVar[FlowCategory] = FlowCategory.INCOME
    kind: Literal["INCOME", "SOCIAL_SECURITY_INCOME", "PENSION_INCOME"]


class ExpenseEvent(_EventBase):
    """Recurring living and healthcare costs. Paid from cash by default."""

    category: ClassVar[FlowCategory] = FlowCategory.EXPENSE
    kind: Literal["RECURRING_EXPENSE", "HEALTHCARE_COST"]


class OneTimeEvent(_EventBase):
    """Windfall or one-off cost; sign is carried by ``amount``."""

    category: ClassVar[FlowCategory] = FlowCategory.ONE_TIME
    kind: Literal["ONE_TIME_EVENT"]


class ContributionEvent(_EventBase):
    """Transfer from cash into an investment account. Account is mandatory."""

    category: ClassVar[FlowCategory] = FlowCategory.CONTRIBUTION
    default_account: ClassVar[Optional[CanonicalAccountType]] = None
    kind: Literal["SCHEDULED_CONTRIBUTION", "FIVE_TWO_NINE_CONTRIBUTION"]


class WithdrawalEvent(_EventBase):
    """Transfer out of an investment account into cash."""

    category: ClassVar[FlowCategory] = FlowCategory.WITHDRAWAL
    default_account: ClassVar[Optional[CanonicalAccountType]] = CanonicalAccountType.TAX_DEFERRED
    kind: Literal["WITHDRAWAL"]


FinancialEvent = Annotated[
    Union[IncomeEvent, ExpenseEvent, OneTimeEvent, ContributionEvent, WithdrawalEvent],
    Field(discriminator="kind"),
]


def flow_category(event: Union[IncomeEvent, ExpenseEvent, OneTimeEvent, ContributionEvent, WithdrawalEvent]) -> FlowCategory:
    """Return the flow category of ``event``; exhaustive over FinancialEvent."""
    if isinstance(event, IncomeEvent):
        return FlowCategory.INCOME
    elif isinstance(event, ExpenseEvent):
        return FlowCategory.EXPENSE
    elif isinstance(event, OneTimeEvent):
        return FlowCategory.ONE_TIME
    elif isinstance(event, ContributionEvent):
        return FlowCategory.CONTRIBUTION
    elif isinstance(event, WithdrawalEvent):
        return FlowCategory.WITHDRAWAL
    else:
        assert_never(event)


# ---------------------------------------------------------------------------
# Expansion output
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CanonicalMonthlyEvent:
    """One fully resolved (event, month) record handed to the engine."""

    event_id: str
    kind: EventKind
    category: FlowCategory
    month: int
    amount: float
    priority: int
    target_account: CanonicalAccountType

    def to_wire(self) -> WireEventDict:
        """Engine representation (camelCase keys, plain values)."""
        return {
            "id": self.event_id,
            "type": self.kind.value,
            "monthOffset": self.month,
            "amount": self.amount,
            "priority": self.priority,
            "targetAccountType": self.target_account.value,
        }


KIND_CATEGORIES: Mapping[str, FlowCategory] = MappingProxyType({
    kind: model.category
    for model in (IncomeEvent, ExpenseEvent, OneTimeEvent, ContributionEvent, WithdrawalEvent)
    for kind in get_args(model.model_fields["kind"].annotation)
})
"""Flow category of every wire ``type``."""
