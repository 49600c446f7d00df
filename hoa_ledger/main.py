"""Ledger core entry point for hosting processes."""

import logging
from typing import NamedTuple

from hoa_ledger.config import Settings, load_settings
from hoa_ledger.services.db import session_factory_from_settings
from hoa_ledger.services.ledger_service import LedgerService
from hoa_ledger.services.logging import setup_server_logging
from hoa_ledger.services.quarter_service import QuarterAggregator
from hoa_ledger.services.repository import SqlAlchemyLedgerRepository

logger = logging.getLogger(__name__)


class LedgerCore(NamedTuple):
    """Wired ledger services sharing one settings object and one database."""

    settings: Settings
    ledger: LedgerService
    quarters: QuarterAggregator


def create_ledger_core(settings: Settings | None = None, configure_logging: bool = True) -> LedgerCore:
    """Load settings, configure logging and wire the ledger services.

    Args:
        settings: Preloaded settings; read from the environment and .env when None
        configure_logging: Install stdout and file handlers from settings

    Raises:
        InvalidConfigError: If the configuration is invalid
    """
    if settings is None:
        settings = load_settings()
    if configure_logging:
        setup_server_logging(settings)

    ledger = LedgerService(SqlAlchemyLedgerRepository(session_factory_from_settings(settings)), settings)
    logger.info(
        "Ledger core ready (zone=%s, fiscal_year_start_month=%d)",
        settings.timezone,
        settings.fiscal_year_start_month,
    )
    return LedgerCore(settings=settings, ledger=ledger, quarters=QuarterAggregator(ledger, settings))


__all__ = ["LedgerCore", "create_ledger_core"]
