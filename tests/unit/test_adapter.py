"""
Unit tests for events.py and adapter.py.

Tests conversion of raw wire events into the closed, typed event model.
"""

import math

import pytest
from pydantic import ValidationError

from finevents.accounts import CanonicalAccountType
from finevents.adapter import account_reference, parse_timing, to_event, to_events, to_raw
from finevents.events import (
    KIND_CATEGORIES,
    ContributionEvent,
    EventKind,
    ExpenseEvent,
    Frequency,
    IncomeEvent,
    MonthRange,
    OneTimeEvent,
    SingleMonth,
    WithdrawalEvent,
    flow_category,
)
from finevents.exceptions import DomainError, StructuralError, UnknownAccountType


class TestEventModel:
    """Tests for the typed event classes."""

    def test_contribution_requires_account(self):
        with pytest.raises(ValidationError):
            ContributionEvent(id="c", kind="SCHEDULED_CONTRIBUTION", amount=100,
                              timing=SingleMonth(month_offset=0))

    def test_alias_resolved_on_construction(self):
        ev = ContributionEvent(id="c", kind="SCHEDULED_CONTRIBUTION", amount=100,
                               timing=SingleMonth(month_offset=0), target_account="rothIra")
        assert ev.target_account is CanonicalAccountType.ROTH

    def test_defaults_filled(self):
        ev = IncomeEvent(id="i", kind="INCOME", amount=1, timing=MonthRange(start=0))
        assert ev.priority == 10
        assert ev.target_account is CanonicalAccountType.CASH
        assert ev.frequency is Frequency.MONTHLY

    def test_withdrawal_defaults_to_tax_deferred(self):
        ev = WithdrawalEvent(id="w", kind="WITHDRAWAL", amount=1, timing=SingleMonth(month_offset=3))
        assert ev.target_account is CanonicalAccountType.TAX_DEFERRED

    def test_frozen(self):
        ev = IncomeEvent(id="i", kind="INCOME", amount=1, timing=SingleMonth(month_offset=0))
        with pytest.raises(ValidationError):
            ev.amount = 2

    def test_extra_fields_forbidden(self):
        with pytest.raises(ValidationError):
            IncomeEvent(id="i", kind="INCOME", amount=1, timing=SingleMonth(month_offset=0), accountType="401k")

    def test_monthly_amount(self):
        ev = ExpenseEvent(id="e", kind="RECURRING_EXPENSE", amount=900, frequency="quarterly",
                          timing=MonthRange(start=0, end=11))
        assert ev.monthly_amount == pytest.approx(300.0)

    def test_negative_offsets_rejected(self):
        with pytest.raises(ValidationError):
            SingleMonth(month_offset=-1)

    def test_every_kind_has_a_category(self):
        assert set(KIND_CATEGORIES) == {k.value for k in EventKind}

    def test_flow_category_matches_class(self):
        events = [
            IncomeEvent(id="a", kind="PENSION_INCOME", amount=1, timing=SingleMonth(month_offset=0)),
            ExpenseEvent(id="b", kind="HEALTHCARE_COST", amount=1, timing=SingleMonth(month_offset=0)),
            OneTimeEvent(id="c", kind="ONE_TIME_EVENT", amount=1, timing=SingleMonth(month_offset=0)),
            WithdrawalEvent(id="d", kind="WITHDRAWAL", amount=1, timing=SingleMonth(month_offset=0)),
        ]
        for ev in events:
            assert flow_category(ev) is ev.category
            assert KIND_CATEGORIES[ev.kind] is ev.category


class TestAccountReference:
    """Tests for account_reference()."""

    def test_canonical_field_wins(self):
        ref = account_reference({"targetAccountType": "roth", "accountType": "401k"})
        assert ref.value == "roth"
        assert ref.field == "targetAccountType"
        assert ref.redundant

    def test_legacy_only(self):
        ref = account_reference({"accountType": "401k"})
        assert ref.value == "401k" and ref.field == "accountType" and not ref.redundant

    def test_empty_strings_are_absent(self):
        ref = account_reference({"targetAccountType": "", "accountType": None})
        assert not ref.present


class TestParseTiming:
    """Tests for parse_timing()."""

    def test_single_month(self):
        assert parse_timing({"monthOffset": 5}) == SingleMonth(month_offset=5)

    def test_range_wins_over_copied_month_offset(self):
        timing = parse_timing({"monthOffset": 12, "startDateOffset": 12, "endDateOffset": 24})
        assert timing == MonthRange(start=12, end=24)

    def test_open_range(self):
        assert parse_timing({"startDateOffset": 3}).end is None

    def test_degenerate_range_allowed(self):
        assert parse_timing({"startDateOffset": 10, "endDateOffset": 5}) == MonthRange(start=10, end=5)

    @pytest.mark.parametrize("raw", [{}, {"monthOffset": -1}, {"monthOffset": 1.5}, {"startDateOffset": "3"}])
    def test_invalid(self, raw):
        with pytest.raises(StructuralError):
            parse_timing(raw, "evt")


class TestToEvent:
    """Tests for to_event()."""

    def test_income(self, salary_event):
        ev = to_event(salary_event)
        assert isinstance(ev, IncomeEvent)
        assert ev.timing == MonthRange(start=0, end=239)
        assert ev.annual_growth_rate == 0.03

    def test_legacy_401k(self, legacy_401k_event):
        ev = to_event(legacy_401k_event)
        assert isinstance(ev, ContributionEvent)
        assert ev.target_account is CanonicalAccountType.TAX_DEFERRED
        assert ev.frequency is Frequency.ANNUALLY

    def test_numeric_string_amount(self, rent_event):
        assert to_event(rent_event).amount == 2000.0

    def test_non_numeric_amount_becomes_nan(self):
        ev = to_event({"id": "x", "type": "INCOME", "amount": "lots", "monthOffset": 0})
        assert math.isnan(ev.amount)

    def test_529_implied_account(self):
        ev = to_event({"id": "edu", "type": "FIVE_TWO_NINE_CONTRIBUTION", "amount": 200, "startDateOffset": 0})
        assert ev.target_account is CanonicalAccountType.EDUCATION

    def test_priority_labels(self):
        ev = to_event({"id": "x", "type": "RECURRING_EXPENSE", "amount": 1, "monthOffset": 0, "priority": "HIGH"})
        assert ev.priority == 10

    def test_frequency_labels(self):
        ev = to_event({"id": "x", "type": "INCOME", "amount": 12, "monthOffset": 0, "frequency": "yearly"})
        assert ev.frequency is Frequency.ANNUALLY

    @pytest.mark.parametrize("label,frequency", [
        ("weekly", Frequency.WEEKLY),
        ("Bi-Weekly", Frequency.BIWEEKLY),
        ("semiAnnual", Frequency.SEMIANNUALLY),
        ("semi_annually", Frequency.SEMIANNUALLY),
    ])
    def test_more_frequency_labels(self, label, frequency):
        ev = to_event({"id": "x", "type": "INCOME", "amount": 12, "monthOffset": 0, "frequency": label})
        assert ev.frequency is frequency

    def test_weekly_monthly_amount(self):
        ev = to_event({"id": "x", "type": "INCOME", "amount": 1200, "monthOffset": 0, "frequency": "weekly"})
        assert ev.monthly_amount == pytest.approx(5200.0)

    def test_missing_account_is_domain_error(self):
        with pytest.raises(DomainError) as excinfo:
            to_event({"id": "c", "type": "SCHEDULED_CONTRIBUTION", "amount": 1, "monthOffset": 0})
        assert excinfo.value.event_id == "c"

    def test_unknown_account_in_either_field(self):
        with pytest.raises(UnknownAccountType):
            to_event({"id": "c", "type": "SCHEDULED_CONTRIBUTION", "amount": 1, "monthOffset": 0,
                      "targetAccountType": "roth", "accountType": "401K"})

    @pytest.mark.parametrize("raw", [
        {"type": "INCOME", "amount": 1, "monthOffset": 0},
        {"id": "x", "amount": 1, "monthOffset": 0},
        {"id": "x", "type": "LOTTERY", "amount": 1, "monthOffset": 0},
        {"id": "x", "type": "INCOME", "monthOffset": 0},
        {"id": "x", "type": "INCOME", "amount": 1},
        {"id": "x", "type": "INCOME", "amount": 1, "monthOffset": 0, "frequency": "hourly"},
        {"id": "x", "type": "INCOME", "amount": 1, "monthOffset": 0, "annualGrowthRate": -1.5},
        {"id": "x", "type": "INCOME", "amount": 1, "monthOffset": 10 ** 400},
        {"id": "x", "type": "INCOME", "amount": 1, "startDateOffset": 0, "endDateOffset": -(10 ** 400)},
        {"id": "x", "type": "INCOME", "amount": 1, "monthOffset": 0, "annualGrowthRate": 10 ** 400},
    ])
    def test_structural_errors(self, raw):
        with pytest.raises(StructuralError):
            to_event(raw)

    def test_to_events_preserves_order(self, valid_events):
        events = to_events(valid_events)
        assert [e.id for e in events] == ["salary", "contrib-401k", "rent", "bonus"]


class TestToRaw:
    """Tests for to_raw()."""

    def test_uses_only_canonical_account_field(self, legacy_401k_event):
        raw = to_raw(to_event(legacy_401k_event))
        assert raw["targetAccountType"] == "tax_deferred"
        assert "accountType" not in raw

    def test_reparse_is_equal(self, valid_events):
        for ev in to_events(valid_events):
            assert to_event(to_raw(ev)) == ev
