"""Fiscal calendar: calendar instants to fiscal year, month and quarter.

Key concepts:
- Calendar month: standard 1-12 (January-December)
- Fiscal month: position 1-12 within the fiscal year
- Fiscal year start month: the calendar month when the fiscal year begins
- Fiscal year: the calendar year in which the fiscal year began

All year/month/day extraction happens in an explicitly supplied IANA zone
via ``to_local``. The executing process's local zone is never consulted, so
two processes in different zones derive identical periods for one instant.

Example:
    >>> tz = resolve_timezone("America/Cancun")
    >>> to_fiscal_period(datetime(2025, 9, 15, 17, tzinfo=timezone.utc), 7, tz)
    FiscalPeriod(fiscal_year=2025, fiscal_month_index=3, quarter_index=1)
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from babel.dates import get_month_names

from hoa_ledger.errors import InvalidConfigError, InvalidInputError

MONTHS_PER_QUARTER = 3


@dataclass(frozen=True)
class FiscalPeriod:
    """Fiscal position of one instant."""

    fiscal_year: int
    fiscal_month_index: int
    quarter_index: int


def resolve_timezone(name: str) -> ZoneInfo:
    """Resolve an IANA zone name.

    Raises:
        InvalidConfigError: If the name is empty or unknown
    """
    if not name or not isinstance(name, str):
        raise InvalidConfigError("Time zone must be a non-empty IANA zone name")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidConfigError(f"Unknown time zone: {name!r}") from e


def validate_start_month(fiscal_year_start_month: int) -> int:
    """Check a fiscal-year start month is an integer in [1..12].

    Raises:
        InvalidConfigError: If outside the range
    """
    if (
        isinstance(fiscal_year_start_month, bool)
        or not isinstance(fiscal_year_start_month, int)
        or not 1 <= fiscal_year_start_month <= 12
    ):
        raise InvalidConfigError(
            f"fiscal_year_start_month must be an integer between 1 and 12, "
            f"got {fiscal_year_start_month!r}"
        )
    return fiscal_year_start_month


def _validate_month(month: int, name: str) -> None:
    if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
        raise InvalidInputError(f"{name} must be an integer between 1 and 12, got {month!r}")


def _validate_quarter(quarter_index: int) -> None:
    if isinstance(quarter_index, bool) or not isinstance(quarter_index, int) or not 1 <= quarter_index <= 4:
        raise InvalidInputError(f"quarter_index must be an integer between 1 and 4, got {quarter_index!r}")


def normalize_instant(value: datetime | date | str, tz: tzinfo) -> datetime:
    """Normalize a caller-supplied instant to an aware UTC datetime.

    Aware datetimes are converted as-is. Values carrying no offset (naive
    datetimes, ISO strings without offset) are wall-clock time in ``tz``.
    Plain dates and ``YYYY-MM-DD`` strings mean midnight in ``tz``.

    Raises:
        InvalidInputError: If the value cannot be interpreted
    """
    if isinstance(value, str):
        text = value.strip()
        try:
            if len(text) == 10:
                value = date.fromisoformat(text)
            else:
                value = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as e:
            raise InvalidInputError(f"Unparseable instant: {value!r}") from e

    if isinstance(value, datetime):
        if value.tzinfo is None or value.utcoffset() is None:
            value = value.replace(tzinfo=tz)
        return value.astimezone(timezone.utc)

    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=tz).astimezone(timezone.utc)

    raise InvalidInputError(f"Unsupported instant type: {type(value).__name__}")


def to_local(instant: datetime, tz: tzinfo) -> datetime:
    """Express an aware instant in ``tz``.

    Raises:
        InvalidInputError: If the instant is naive
    """
    if not isinstance(instant, datetime):
        raise InvalidInputError(f"Instant must be a datetime, got {type(instant).__name__}")
    if instant.tzinfo is None or instant.utcoffset() is None:
        raise InvalidInputError(f"Instant must be timezone-aware: {instant!r}")
    return instant.astimezone(tz)


def calendar_to_fiscal_month(calendar_month: int, fiscal_year_start_month: int) -> int:
    """Convert calendar month to fiscal month position.

    For a July start: July -> 1, June -> 12, January -> 7.
    """
    _validate_month(calendar_month, "calendar_month")
    validate_start_month(fiscal_year_start_month)
    return ((calendar_month - fiscal_year_start_month + 12) % 12) + 1


def fiscal_to_calendar_month(fiscal_month: int, fiscal_year_start_month: int) -> int:
    """Convert fiscal month position to calendar month."""
    _validate_month(fiscal_month, "fiscal_month")
    validate_start_month(fiscal_year_start_month)
    return ((fiscal_month + fiscal_year_start_month - 2) % 12) + 1


def quarter_for_fiscal_month(fiscal_month: int) -> int:
    """Fiscal months {1,2,3} -> Q1 ... {10,11,12} -> Q4."""
    _validate_month(fiscal_month, "fiscal_month")
    return (fiscal_month + MONTHS_PER_QUARTER - 1) // MONTHS_PER_QUARTER


def quarter_fiscal_months(quarter_index: int) -> tuple[int, int, int]:
    """Return the three fiscal month indexes of a quarter."""
    _validate_quarter(quarter_index)
    first = (quarter_index - 1) * MONTHS_PER_QUARTER + 1
    return (first, first + 1, first + 2)


def fiscal_month_calendar_year(
    fiscal_year: int, fiscal_month: int, fiscal_year_start_month: int
) -> tuple[int, int]:
    """Return the calendar (year, month) a fiscal month falls on."""
    calendar_month = fiscal_to_calendar_month(fiscal_month, fiscal_year_start_month)
    year = fiscal_year if calendar_month >= fiscal_year_start_month else fiscal_year + 1
    return year, calendar_month


def to_fiscal_period(instant: datetime, fiscal_year_start_month: int, tz: tzinfo) -> FiscalPeriod:
    """Map an instant to its fiscal period in ``tz``.

    Raises:
        InvalidConfigError: If fiscal_year_start_month is outside [1..12]
        InvalidInputError: If the instant is not an aware datetime
    """
    validate_start_month(fiscal_year_start_month)
    local = to_local(instant, tz)

    fiscal_month = calendar_to_fiscal_month(local.month, fiscal_year_start_month)
    fiscal_year = local.year if local.month >= fiscal_year_start_month else local.year - 1

    return FiscalPeriod(
        fiscal_year=fiscal_year,
        fiscal_month_index=fiscal_month,
        quarter_index=quarter_for_fiscal_month(fiscal_month),
    )


def _month_start(year: int, month: int, tz: tzinfo) -> datetime:
    # month 13 rolls over to January of the next year
    if month == 13:
        year, month = year + 1, 1
    return datetime(year, month, 1, tzinfo=tz).astimezone(timezone.utc)


def fiscal_year_bounds(
    fiscal_year: int, fiscal_year_start_month: int, tz: tzinfo
) -> tuple[datetime, datetime]:
    """Half-open UTC range [start, end) covering a fiscal year in ``tz``."""
    validate_start_month(fiscal_year_start_month)
    start = _month_start(fiscal_year, fiscal_year_start_month, tz)
    end = _month_start(fiscal_year + 1, fiscal_year_start_month, tz)
    return start, end


def quarter_bounds(
    fiscal_year: int, quarter_index: int, fiscal_year_start_month: int, tz: tzinfo
) -> tuple[datetime, datetime]:
    """Half-open UTC range [start, end) covering a fiscal quarter in ``tz``."""
    first, _, last = quarter_fiscal_months(quarter_index)
    start_year, start_month = fiscal_month_calendar_year(fiscal_year, first, fiscal_year_start_month)
    end_year, end_month = fiscal_month_calendar_year(fiscal_year, last, fiscal_year_start_month)
    return _month_start(start_year, start_month, tz), _month_start(end_year, end_month + 1, tz)


def fiscal_year_label(fiscal_year: int, fiscal_year_start_month: int) -> str:
    """Label a fiscal year: plain year for calendar-year clients, "FY 2025" otherwise."""
    validate_start_month(fiscal_year_start_month)
    if fiscal_year_start_month == 1:
        return str(fiscal_year)
    return f"FY {fiscal_year}"


def fiscal_month_names(
    fiscal_year_start_month: int, locale: str = "en_US", width: str = "wide"
) -> list[str]:
    """Month names in fiscal order, e.g. July..June for a July start.

    Args:
        fiscal_year_start_month: First month of fiscal year (1-12)
        locale: Babel locale identifier
        width: "wide" or "abbreviated"
    """
    validate_start_month(fiscal_year_start_month)
    names = get_month_names(width, context="stand-alone", locale=locale)
    return [
        names[fiscal_to_calendar_month(fiscal_month, fiscal_year_start_month)]
        for fiscal_month in range(1, 13)
    ]


@dataclass(frozen=True)
class FiscalCalendar:
    """Zone plus fiscal-year start month, validated at construction."""

    tz: tzinfo
    fiscal_year_start_month: int = 1

    def __post_init__(self):
        if not isinstance(self.tz, tzinfo):
            raise InvalidConfigError(f"tz must be a tzinfo, got {type(self.tz).__name__}")
        validate_start_month(self.fiscal_year_start_month)

    @classmethod
    def from_zone_name(cls, zone_name: str, fiscal_year_start_month: int = 1) -> "FiscalCalendar":
        return cls(resolve_timezone(zone_name), fiscal_year_start_month)

    def period_of(self, instant: datetime) -> FiscalPeriod:
        return to_fiscal_period(instant, self.fiscal_year_start_month, self.tz)

    def quarter_months(self, fiscal_year: int, quarter_index: int) -> list[tuple[int, int, int]]:
        """(fiscal_month_index, calendar_year, calendar_month) for each quarter month."""
        return [
            (fiscal_month, *fiscal_month_calendar_year(fiscal_year, fiscal_month, self.fiscal_year_start_month))
            for fiscal_month in quarter_fiscal_months(quarter_index)
        ]

    def quarter_bounds(self, fiscal_year: int, quarter_index: int) -> tuple[datetime, datetime]:
        return quarter_bounds(fiscal_year, quarter_index, self.fiscal_year_start_month, self.tz)

    def year_label(self, fiscal_year: int) -> str:
        return fiscal_year_label(fiscal_year, self.fiscal_year_start_month)


__all__ = [
    "FiscalCalendar",
    "FiscalPeriod",
    "calendar_to_fiscal_month",
    "fiscal_month_calendar_year",
    "fiscal_month_names",
    "fiscal_to_calendar_month",
    "fiscal_year_bounds",
    "fiscal_year_label",
    "normalize_instant",
    "quarter_bounds",
    "quarter_fiscal_months",
    "quarter_for_fiscal_month",
    "resolve_timezone",
    "to_fiscal_period",
    "to_local",
    "validate_start_month",
]
