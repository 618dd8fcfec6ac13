"""
Unit tests for normalizer.py.

Tests expansion windows, frequency conversion, growth compounding,
the expansion cap, ordering, and the tabular views.
"""

import logging
from datetime import date

import numpy as np
import pandas as pd
import pytest

from finevents.accounts import CanonicalAccountType
from finevents.adapter import to_event, to_events
from finevents.constants import MAX_EXPANSION_MONTHS
from finevents.events import CanonicalMonthlyEvent, EventKind, FlowCategory
from finevents.normalizer import (
    event_window,
    events_frame,
    expand,
    expand_all,
    growth_factors,
    monthly_net_flow,
)


def _recurring(start, end=None, amount=100.0, **extra):
    raw = {"id": "r", "type": "RECURRING_EXPENSE", "amount": amount, "startDateOffset": start, **extra}
    if end is not None:
        raw["endDateOffset"] = end
    return to_event(raw)


class TestWindow:
    """Tests for the month window and its edge cases."""

    @pytest.mark.parametrize("start,end", [(0, 0), (0, 11), (5, 17), (100, 1299), (0, 1199)])
    def test_count_and_strictly_increasing_months(self, start, end):
        out = expand(_recurring(start, end), 360)
        assert len(out) == min(end - start + 1, MAX_EXPANSION_MONTHS)
        months = [r.month for r in out]
        assert months[0] == start
        assert all(b == a + 1 for a, b in zip(months, months[1:]))

    @pytest.mark.parametrize("start,end", [(1, 0), (24, 12), (1000, 999)])
    def test_start_after_end_is_empty(self, start, end):
        assert expand(_recurring(start, end), 360) == ()

    def test_single_month(self):
        ev = to_event({"id": "b", "type": "ONE_TIME_EVENT", "amount": 500, "monthOffset": 7})
        out = expand(ev, 12)
        assert len(out) == 1
        assert out[0].month == 7 and out[0].amount == 500.0

    def test_window_of_one_keeps_base_amount(self):
        out = expand(_recurring(30, 30, amount=250, annualGrowthRate=0.5), 360)
        assert [r.amount for r in out] == [250.0]

    def test_open_end_defaults_to_horizon(self):
        out = expand(_recurring(10), 20)
        assert [r.month for r in out] == list(range(10, 21))
        assert event_window(_recurring(10), 20) == (10, 20)

    def test_negative_horizon_rejected(self):
        with pytest.raises(ValueError):
            expand(_recurring(0, 1), -1)


class TestAmounts:
    """Tests for amount resolution."""

    def test_growth_compounds_per_completed_year(self):
        out = expand(_recurring(0, 23, amount=5000, annualGrowthRate=0.05), 360)
        assert all(r.amount == 5000 for r in out[:12])
        assert all(r.amount == pytest.approx(5250) for r in out[12:])

    def test_growth_measured_from_event_start(self):
        out = expand(_recurring(18, 42, amount=1000, annualGrowthRate=0.10), 360)
        by_month = {r.month: r.amount for r in out}
        assert by_month[18] == 1000
        assert by_month[29] == 1000
        assert by_month[30] == pytest.approx(1100)
        assert by_month[42] == pytest.approx(1210)

    def test_growth_factors(self):
        np.testing.assert_allclose(growth_factors(np.array([0, 11, 12, 24, 35]), 0.1), [1, 1, 1.1, 1.21, 1.21])
        np.testing.assert_array_equal(growth_factors(np.arange(5), 0.0), np.ones(5))

    def test_annual_frequency_divided_by_twelve(self, legacy_401k_event):
        out = expand(to_event(legacy_401k_event), 420)
        assert len(out) == 420
        assert out[0].amount == pytest.approx(1916.67, abs=0.01)
        assert sum(r.amount for r in out) == pytest.approx(805_000, rel=1e-9)
        assert 1916.67 * 420 == pytest.approx(805_000, rel=1e-4)

    def test_quarterly_frequency_divided_by_three(self):
        out = expand(_recurring(0, 2, amount=900, frequency="quarterly"), 12)
        assert [r.amount for r in out] == [300.0, 300.0, 300.0]

    @pytest.mark.parametrize("frequency,amount,monthly", [
        ("weekly", 1000, 1000 * 52 / 12),
        ("biweekly", 2000, 2000 * 26 / 12),
        ("bi-weekly", 2000, 2000 * 26 / 12),
        ("semiannually", 6000, 1000.0),
        ("semi-annually", 6000, 1000.0),
    ])
    def test_weekly_and_semiannual_frequencies(self, frequency, amount, monthly):
        out = expand(_recurring(0, 2, amount=amount, frequency=frequency), 12)
        assert [r.amount for r in out] == pytest.approx([monthly] * 3)

    @pytest.mark.parametrize("amount", [0, -150.5])
    def test_zero_and_negative_pass_through(self, amount):
        out = expand(_recurring(0, 2, amount=amount), 12)
        assert [r.amount for r in out] == [amount] * 3

    @pytest.mark.parametrize("amount", ["abc", float("nan"), float("inf")])
    def test_non_finite_amount_emits_nothing(self, amount):
        assert expand(_recurring(0, 11, amount=amount), 12) == ()


class TestCap:
    """Tests for the expansion cap."""

    def test_long_schedule_truncated(self, caplog):
        ev = _recurring(0, 5000)
        with caplog.at_level(logging.WARNING, logger="finevents.normalizer"):
            out = expand(ev, 360)
        assert len(out) == MAX_EXPANSION_MONTHS
        assert out[-1].month == MAX_EXPANSION_MONTHS - 1
        assert "truncated" in caplog.text

    def test_injected_logger(self):
        records = []

        class Collect(logging.Handler):
            def emit(self, record):
                records.append(record)

        logger = logging.getLogger("test.injected.normalizer")
        logger.addHandler(Collect())
        logger.setLevel(logging.WARNING)
        expand(_recurring(0, 1500), 360, logger=logger)
        assert len(records) == 1
        assert records[0].event_id == "r"
        assert records[0].requested_months == 1501


class TestOutputShape:
    """Expanded records are self-contained."""

    def test_record_fields(self, legacy_401k_event):
        record = expand(to_event(legacy_401k_event), 420)[0]
        assert isinstance(record, CanonicalMonthlyEvent)
        assert record.kind is EventKind.SCHEDULED_CONTRIBUTION
        assert record.category is FlowCategory.CONTRIBUTION
        assert record.target_account is CanonicalAccountType.TAX_DEFERRED
        for stripped in ("frequency", "annual_growth_rate", "timing", "start", "end"):
            assert not hasattr(record, stripped)

    def test_records_immutable(self, legacy_401k_event):
        record = expand(to_event(legacy_401k_event), 420)[0]
        with pytest.raises(Exception):
            record.amount = 0

    def test_to_wire(self, legacy_401k_event):
        wire = expand(to_event(legacy_401k_event), 420)[5].to_wire()
        assert wire["monthOffset"] == 5
        assert wire["targetAccountType"] == "tax_deferred"
        assert set(wire) == {"id", "type", "monthOffset", "amount", "priority", "targetAccountType"}


class TestExpandAll:
    """Tests for expand_all() ordering."""

    def test_sorted_by_month_priority_id(self, valid_events):
        out = expand_all(to_events(valid_events), 24)
        keys = [(r.month, r.priority, r.event_id) for r in out]
        assert keys == sorted(keys)

    def test_income_before_expense_in_same_month(self, salary_event, rent_event):
        out = expand_all(to_events([rent_event, salary_event]), 24)
        assert [r.event_id for r in out if r.month == 0] == ["salary", "rent"]

    def test_count_is_sum_of_expansions(self, valid_events):
        events = to_events(valid_events)
        assert len(expand_all(events, 24)) == sum(len(expand(e, 24)) for e in events)


class TestFrames:
    """Tests for events_frame() and monthly_net_flow()."""

    def test_events_frame(self, salary_event):
        frame = events_frame(expand(to_event(salary_event), 24), start=date(2026, 3, 15))
        assert len(frame) == 240
        assert frame.loc[0, "date"] == pd.Timestamp(2026, 3, 1)
        assert frame.loc[12, "date"] == pd.Timestamp(2027, 3, 1)
        assert frame["category"].unique().tolist() == ["income"]

    def test_empty_frame(self):
        frame = events_frame(())
        assert frame.empty
        assert "amount" in frame.columns

    def test_monthly_net_flow(self, salary_event, rent_event):
        salary_event = {**salary_event, "annualGrowthRate": 0}
        records = expand_all(to_events([salary_event, rent_event]), 11)
        flow = monthly_net_flow(records, months=12)
        assert len(flow) == 12
        assert flow.iloc[0] == pytest.approx(8500 - 2000)
