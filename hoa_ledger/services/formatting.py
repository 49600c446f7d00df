"""Timezone-stable date strings, identifiers and currency display.

Every calendar component is extracted through ``fiscal_calendar.to_local``
in the deployment zone. An instant stored correctly in absolute time can
otherwise format to the wrong calendar day when rendered in the process's
local zone, corrupting identifiers and reports derived from it.
"""

import secrets
from datetime import datetime, timezone, tzinfo
from decimal import Decimal

from babel.numbers import format_currency

from hoa_ledger.errors import InvalidInputError
from hoa_ledger.services.fiscal_calendar import to_local


def format_date(instant: datetime, tz: tzinfo) -> str:
    """Format an instant as ``YYYY-MM-DD`` in ``tz``."""
    local = to_local(instant, tz)
    return f"{local.year:04d}-{local.month:02d}-{local.day:02d}"


def format_datetime(instant: datetime, tz: tzinfo) -> str:
    """Format an instant as ``YYYY-MM-DD HH:MM:SS`` in ``tz``."""
    local = to_local(instant, tz)
    return (
        f"{local.year:04d}-{local.month:02d}-{local.day:02d} "
        f"{local.hour:02d}:{local.minute:02d}:{local.second:02d}"
    )


def generate_id(prefix: str, instant: datetime | None, tz: tzinfo) -> str:
    """Generate a collision-resistant identifier.

    Format: ``{prefix}_YYYY-MM-DD_HHMMSS_mmm_{hex12}``. The date/time part is
    the instant in ``tz``; the random suffix makes concurrent calls within
    the same millisecond distinct without any coordination.

    Args:
        prefix: Identifier namespace, e.g. "credit"
        instant: Aware instant; current time when None
        tz: Deployment zone

    Returns:
        Identifier string
    """
    if not isinstance(prefix, str):
        raise InvalidInputError(f"prefix must be a string, got {type(prefix).__name__}")
    if instant is None:
        instant = datetime.now(timezone.utc)
    local = to_local(instant, tz)
    stamp = (
        f"{local.year:04d}-{local.month:02d}-{local.day:02d}_"
        f"{local.hour:02d}{local.minute:02d}{local.second:02d}_"
        f"{local.microsecond // 1000:03d}"
    )
    suffix = secrets.token_hex(6)
    if prefix:
        return f"{prefix}_{stamp}_{suffix}"
    return f"{stamp}_{suffix}"


def cents_to_decimal(cents: int) -> Decimal:
    """Convert integer cents to a Decimal amount in major units."""
    return Decimal(cents).scaleb(-2)


def format_cents(cents: int, currency: str = "USD", locale: str = "en_US") -> str:
    """Format integer cents for display, e.g. 5000 -> '$50.00'."""
    if isinstance(cents, bool) or not isinstance(cents, int):
        raise InvalidInputError(f"cents must be an integer, got {cents!r}")
    return format_currency(cents_to_decimal(cents), currency, locale=locale)


__all__ = [
    "cents_to_decimal",
    "format_cents",
    "format_date",
    "format_datetime",
    "generate_id",
]
