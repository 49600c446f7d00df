"""Quarterly dues summaries derived from monthly ledger facts.

Quarter totals are recomputed from the full account history on every call
and are always the sum of the per-month breakdown they ship with. Nothing
quarterly is stored, so the quarter view cannot drift from the months it is
built from, and months without activity still appear with zero totals.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from hoa_ledger.config import Settings
from hoa_ledger.errors import InvalidInputError
from hoa_ledger.services.fiscal_calendar import FiscalCalendar, quarter_fiscal_months
from hoa_ledger.services.ledger_service import LedgerService, coerce_account_key
from hoa_ledger.services.repository import HistoryEntry

logger = logging.getLogger(__name__)


class QuarterStatus(str, Enum):
    """Payment status of a quarter against its scheduled dues."""

    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    OVERPAID = "overpaid"


@dataclass(frozen=True)
class MonthSummary:
    """Dues paid within one fiscal month."""

    fiscal_month_index: int
    calendar_year: int
    calendar_month: int
    paid_total: int
    entries: tuple[HistoryEntry, ...]


@dataclass(frozen=True)
class QuarterSummary:
    """Read-only aggregation of three fiscal months against a schedule."""

    fiscal_year: int
    quarter_index: int
    label: str
    scheduled_total: int
    paid_total: int
    status: QuarterStatus
    months: tuple[MonthSummary, MonthSummary, MonthSummary]


def quarter_status(paid_total: int, scheduled_total: int) -> QuarterStatus:
    """Classify a quarter; non-positive payments count as unpaid."""
    if paid_total <= 0:
        return QuarterStatus.UNPAID
    if paid_total < scheduled_total:
        return QuarterStatus.PARTIAL
    if paid_total == scheduled_total:
        return QuarterStatus.PAID
    return QuarterStatus.OVERPAID


def _validate_scheduled_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise InvalidInputError(
            f"scheduled_monthly_amount must be a non-negative integer, got {amount!r}"
        )


def build_quarter_summary(
    entries: Iterable[HistoryEntry],
    calendar: FiscalCalendar,
    fiscal_year: int,
    quarter_index: int,
    scheduled_monthly_amount: int,
    dues_sources: Iterable[str],
) -> QuarterSummary:
    """Aggregate dues entries into a quarter summary.

    Args:
        entries: Account history (any order)
        calendar: Client fiscal calendar
        fiscal_year: Fiscal year (year the fiscal year began)
        quarter_index: 1-4
        scheduled_monthly_amount: Dues scheduled per month, in cents
        dues_sources: Entry sources that count as dues payments

    Returns:
        QuarterSummary whose paid_total is the sum of its months

    Raises:
        InvalidInputError: Bad quarter, schedule or an entry instant that
            cannot be mapped to a fiscal period
    """
    if isinstance(fiscal_year, bool) or not isinstance(fiscal_year, int):
        raise InvalidInputError(f"fiscal_year must be an integer, got {fiscal_year!r}")
    month_indexes = quarter_fiscal_months(quarter_index)
    _validate_scheduled_amount(scheduled_monthly_amount)
    sources = set(dues_sources)

    buckets: dict[int, list[HistoryEntry]] = {index: [] for index in month_indexes}
    for entry in entries:
        if entry.source not in sources:
            continue
        period = calendar.period_of(entry.occurred_at)
        if period.fiscal_year == fiscal_year and period.quarter_index == quarter_index:
            buckets[period.fiscal_month_index].append(entry)

    months = tuple(
        MonthSummary(
            fiscal_month_index=fiscal_month,
            calendar_year=calendar_year,
            calendar_month=calendar_month,
            paid_total=sum(entry.amount for entry in buckets[fiscal_month]),
            entries=tuple(buckets[fiscal_month]),
        )
        for fiscal_month, calendar_year, calendar_month in calendar.quarter_months(fiscal_year, quarter_index)
    )

    scheduled_total = scheduled_monthly_amount * len(months)
    paid_total = sum(month.paid_total for month in months)

    return QuarterSummary(
        fiscal_year=fiscal_year,
        quarter_index=quarter_index,
        label=f"Q{quarter_index} {calendar.year_label(fiscal_year)}",
        scheduled_total=scheduled_total,
        paid_total=paid_total,
        status=quarter_status(paid_total, scheduled_total),
        months=months,
    )


class QuarterAggregator:
    """Derive quarter summaries for accounts held by a LedgerService."""

    def __init__(self, ledger: LedgerService, settings: Settings):
        self.ledger = ledger
        self.settings = settings

    def summarize_quarter(
        self,
        account,
        fiscal_year: int,
        quarter_index: int,
        scheduled_monthly_amount: int,
    ) -> QuarterSummary:
        """Summarize one fiscal quarter of dues for an account.

        Args:
            account: (client_id, unit_id)
            fiscal_year: Fiscal year (year the fiscal year began)
            quarter_index: 1-4
            scheduled_monthly_amount: Dues scheduled per month, in cents

        Returns:
            QuarterSummary with its per-month breakdown
        """
        key = coerce_account_key(account)
        calendar = self.settings.calendar_for(key.client_id)
        summary = build_quarter_summary(
            self.ledger.iter_entries(key),
            calendar,
            fiscal_year,
            quarter_index,
            scheduled_monthly_amount,
            self.settings.dues_sources,
        )
        logger.debug(
            "Quarter %s for %s: paid=%d scheduled=%d status=%s",
            summary.label,
            key,
            summary.paid_total,
            summary.scheduled_total,
            summary.status.value,
        )
        return summary

    def summarize_fiscal_year(
        self, account, fiscal_year: int, scheduled_monthly_amount: int
    ) -> list[QuarterSummary]:
        """Summaries for all four quarters, from one history read."""
        key = coerce_account_key(account)
        calendar = self.settings.calendar_for(key.client_id)
        entries = self.ledger.iter_entries(key)
        return [
            build_quarter_summary(
                entries,
                calendar,
                fiscal_year,
                quarter_index,
                scheduled_monthly_amount,
                self.settings.dues_sources,
            )
            for quarter_index in range(1, 5)
        ]


__all__ = [
    "MonthSummary",
    "QuarterAggregator",
    "QuarterStatus",
    "QuarterSummary",
    "build_quarter_summary",
    "quarter_status",
]
