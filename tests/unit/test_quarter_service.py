"""Unit tests for quarterly dues summaries."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from conftest import make_entry
from hoa_ledger.config import load_settings
from hoa_ledger.errors import InvalidInputError
from hoa_ledger.services.fiscal_calendar import FiscalCalendar
from hoa_ledger.services.ledger_service import LedgerService
from hoa_ledger.services.quarter_service import (
    QuarterAggregator,
    QuarterStatus,
    build_quarter_summary,
    quarter_status,
)
from hoa_ledger.services.repository import InMemoryLedgerRepository

UTC = timezone.utc
CANCUN = ZoneInfo("America/Cancun")
CALENDAR_YEAR = FiscalCalendar(CANCUN, 1)
JULY_YEAR = FiscalCalendar(CANCUN, 7)
DUES = ["hoaDues"]


def dues_entries(*specs):
    """Entries from (amount, utc datetime, source) tuples with a valid chain."""
    entries = []
    balance = 0
    for sequence, (amount, occurred_at, source) in enumerate(specs, start=1):
        balance += amount
        entries.append(make_entry(sequence, amount, balance, f"ref-{sequence}", occurred_at, source))
    return entries


class TestQuarterStatus:
    """Status classification."""

    @pytest.mark.parametrize(
        "paid, scheduled, expected",
        [
            (0, 3000, QuarterStatus.UNPAID),
            (900, 3000, QuarterStatus.PARTIAL),
            (3000, 3000, QuarterStatus.PAID),
            (3100, 3000, QuarterStatus.OVERPAID),
            (-100, 3000, QuarterStatus.UNPAID),
            (0, 0, QuarterStatus.UNPAID),
            (100, 0, QuarterStatus.OVERPAID),
        ],
    )
    def test_quarter_status(self, paid, scheduled, expected):
        assert quarter_status(paid, scheduled) == expected

    def test_status_values(self):
        assert QuarterStatus.PARTIAL.value == "partial"


class TestBuildQuarterSummary:
    """Pure aggregation over history entries."""

    def test_three_partial_months(self):
        """1000/month scheduled, 300 paid in each month -> 900 of 3000, partial."""
        entries = dues_entries(
            (300, datetime(2025, 1, 10, 17, tzinfo=UTC), "hoaDues"),
            (300, datetime(2025, 2, 10, 17, tzinfo=UTC), "hoaDues"),
            (300, datetime(2025, 3, 10, 17, tzinfo=UTC), "hoaDues"),
        )

        summary = build_quarter_summary(entries, CALENDAR_YEAR, 2025, 1, 1000, DUES)

        assert summary.paid_total == 900
        assert summary.scheduled_total == 3000
        assert summary.status == QuarterStatus.PARTIAL
        assert [month.paid_total for month in summary.months] == [300, 300, 300]
        assert summary.label == "Q1 2025"

    def test_other_sources_excluded(self):
        entries = dues_entries(
            (3000, datetime(2025, 1, 10, 17, tzinfo=UTC), "hoaDues"),
            (-1200, datetime(2025, 1, 11, 17, tzinfo=UTC), "waterBills"),
            (500, datetime(2025, 2, 11, 17, tzinfo=UTC), "admin"),
            (700, datetime(2025, 2, 12, 17, tzinfo=UTC), None),
        )

        summary = build_quarter_summary(entries, CALENDAR_YEAR, 2025, 1, 1000, DUES)

        assert summary.paid_total == 3000
        assert summary.status == QuarterStatus.PAID

    def test_negative_dues_entries_are_counted(self):
        """Dues are selected by source, not by sign; a reversal reduces the total."""
        entries = dues_entries(
            (3000, datetime(2025, 1, 10, 17, tzinfo=UTC), "hoaDues"),
            (-1000, datetime(2025, 2, 10, 17, tzinfo=UTC), "hoaDues"),
        )

        summary = build_quarter_summary(entries, CALENDAR_YEAR, 2025, 1, 1000, DUES)

        assert summary.paid_total == 2000
        assert summary.status == QuarterStatus.PARTIAL

    def test_months_without_activity_are_present(self):
        entries = dues_entries((3000, datetime(2025, 2, 10, 17, tzinfo=UTC), "hoaDues"))

        summary = build_quarter_summary(entries, CALENDAR_YEAR, 2025, 1, 1000, DUES)

        assert [(m.fiscal_month_index, m.calendar_month) for m in summary.months] == [(1, 1), (2, 2), (3, 3)]
        assert [m.paid_total for m in summary.months] == [0, 3000, 0]
        assert summary.months[0].entries == ()

    def test_other_quarters_and_years_excluded(self):
        entries = dues_entries(
            (1000, datetime(2025, 4, 10, 17, tzinfo=UTC), "hoaDues"),
            (1000, datetime(2024, 2, 10, 17, tzinfo=UTC), "hoaDues"),
            (1000, datetime(2025, 3, 10, 17, tzinfo=UTC), "hoaDues"),
        )

        summary = build_quarter_summary(entries, CALENDAR_YEAR, 2025, 1, 1000, DUES)

        assert summary.paid_total == 1000

    def test_month_boundary_uses_deployment_zone(self):
        """03:00 UTC on April 1st is still March 31st in Cancun."""
        entries = dues_entries((1000, datetime(2025, 4, 1, 3, 0, tzinfo=UTC), "hoaDues"))

        q1 = build_quarter_summary(entries, CALENDAR_YEAR, 2025, 1, 1000, DUES)
        q2 = build_quarter_summary(entries, CALENDAR_YEAR, 2025, 2, 1000, DUES)

        assert q1.months[2].paid_total == 1000
        assert q2.paid_total == 0

    def test_july_fiscal_year(self):
        entries = dues_entries(
            (1000, datetime(2025, 7, 5, 17, tzinfo=UTC), "hoaDues"),
            (1000, datetime(2025, 8, 5, 17, tzinfo=UTC), "hoaDues"),
            (1500, datetime(2025, 9, 15, 17, tzinfo=UTC), "hoaDues"),
            (1000, datetime(2026, 1, 5, 17, tzinfo=UTC), "hoaDues"),
        )

        summary = build_quarter_summary(entries, JULY_YEAR, 2025, 1, 1000, DUES)

        assert summary.label == "Q1 FY 2025"
        assert [(m.calendar_year, m.calendar_month) for m in summary.months] == [(2025, 7), (2025, 8), (2025, 9)]
        assert summary.paid_total == 3500
        assert summary.status == QuarterStatus.OVERPAID

    def test_quarter_total_equals_month_breakdown(self):
        entries = dues_entries(
            (120, datetime(2025, 1, 3, 17, tzinfo=UTC), "hoaDues"),
            (480, datetime(2025, 1, 20, 17, tzinfo=UTC), "hoaDues"),
            (1000, datetime(2025, 3, 28, 17, tzinfo=UTC), "hoaDues"),
        )

        summary = build_quarter_summary(entries, CALENDAR_YEAR, 2025, 1, 1000, DUES)

        assert summary.paid_total == sum(m.paid_total for m in summary.months)
        assert summary.paid_total == sum(e.amount for m in summary.months for e in m.entries)
        assert len(summary.months[0].entries) == 2

    def test_unmappable_entry_propagates(self):
        entries = dues_entries((1000, datetime(2025, 1, 10, 17), "hoaDues"))

        with pytest.raises(InvalidInputError):
            build_quarter_summary(entries, CALENDAR_YEAR, 2025, 1, 1000, DUES)

    @pytest.mark.parametrize("quarter", [0, 5])
    def test_invalid_quarter(self, quarter):
        with pytest.raises(InvalidInputError):
            build_quarter_summary([], CALENDAR_YEAR, 2025, quarter, 1000, DUES)

    @pytest.mark.parametrize("scheduled", [-1, 10.5, None])
    def test_invalid_schedule(self, scheduled):
        with pytest.raises(InvalidInputError):
            build_quarter_summary([], CALENDAR_YEAR, 2025, 1, scheduled, DUES)

    def test_invalid_fiscal_year(self):
        with pytest.raises(InvalidInputError):
            build_quarter_summary([], CALENDAR_YEAR, "2025", 1, 1000, DUES)

    def test_empty_history_is_unpaid(self):
        summary = build_quarter_summary([], CALENDAR_YEAR, 2025, 2, 1000, DUES)

        assert summary.paid_total == 0
        assert summary.scheduled_total == 3000
        assert summary.status == QuarterStatus.UNPAID


class TestQuarterAggregator:
    """Aggregation through the ledger service."""

    @pytest.fixture
    def settings(self):
        return load_settings(
            _env_file=None,
            timezone="America/Cancun",
            client_fiscal_year_start_months={"AVII": 7},
        )

    @pytest.fixture
    def ledger(self, settings):
        return LedgerService(InMemoryLedgerRepository(), settings)

    @pytest.fixture
    def aggregator(self, ledger, settings):
        return QuarterAggregator(ledger, settings)

    def test_uses_client_fiscal_year(self, ledger, aggregator):
        ledger.apply_delta(("AVII", "101"), 1000, "jul", occurred_at="2025-07-10", source="hoaDues")
        ledger.apply_delta(("MTC", "101"), 1000, "jul", occurred_at="2025-07-10", source="hoaDues")

        avii = aggregator.summarize_quarter(("AVII", "101"), 2025, 1, 1000)
        mtc = aggregator.summarize_quarter(("MTC", "101"), 2025, 3, 1000)

        assert avii.paid_total == 1000
        assert avii.label == "Q1 FY 2025"
        assert mtc.paid_total == 1000
        assert mtc.label == "Q3 2025"

    def test_summarize_fiscal_year(self, ledger, aggregator):
        account = ("AVII", "101")
        for index, day in enumerate(["2025-07-10", "2025-10-10", "2026-01-10", "2026-04-10", "2026-07-10"]):
            ledger.apply_delta(account, 3000, f"dues-{index}", occurred_at=day, source="hoaDues")

        quarters = aggregator.summarize_fiscal_year(account, 2025, 1000)

        assert [q.quarter_index for q in quarters] == [1, 2, 3, 4]
        assert [q.status for q in quarters] == [QuarterStatus.PAID] * 4
        assert sum(q.paid_total for q in quarters) == 12000

    def test_does_not_mutate_ledger(self, ledger, aggregator):
        account = ("AVII", "101")
        ledger.apply_delta(account, 1000, "A", occurred_at="2025-07-10", source="hoaDues")
        before = ledger.iter_entries(account)

        aggregator.summarize_quarter(account, 2025, 1, 1000)
        aggregator.summarize_fiscal_year(account, 2025, 1000)

        assert ledger.iter_entries(account) == before
        assert ledger.get_balance(account).balance == 1000
