"""Database engine and session management for the ledger store.

SQLite URLs get ``check_same_thread=False`` so sessions can be opened from
request-handling worker threads. In-memory SQLite is one database living in
one connection, so it uses ``StaticPool`` and hands that connection to a
single session at a time: a checkout blocks until the previous holder has
committed or rolled back and returned it.
"""

import logging
import threading

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from hoa_ledger.config import Settings
from hoa_ledger.models import Base

logger = logging.getLogger(__name__)


def is_memory_url(database_url: str) -> bool:
    """True for SQLite URLs that name an in-memory database."""
    return database_url.startswith("sqlite") and (
        ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///")
    )


def serialize_checkouts(engine: Engine) -> None:
    """Allow one checked-out connection at a time on ``engine``.

    Sessions release their connection when their transaction ends, so
    holding the lock from checkout to checkin keeps transactions from
    different threads off the shared connection at the same time.
    Checkouts must not nest within one thread.
    """
    lock = threading.Lock()

    @event.listens_for(engine, "checkout")
    def _acquire(dbapi_connection, connection_record, connection_proxy):
        lock.acquire()

    @event.listens_for(engine, "checkin")
    def _release(dbapi_connection, connection_record):
        lock.release()


def create_ledger_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for the given URL.

    Args:
        database_url: SQLAlchemy database URL (e.g., "sqlite:///./hoa_ledger.db")
        echo: Log SQL statements

    Returns:
        Configured Engine
    """
    if is_memory_url(database_url):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        serialize_checkouts(engine)
        return engine
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory; objects stay readable after commit."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create ledger tables if they do not exist."""
    Base.metadata.create_all(engine)
    logger.info("Ledger schema ready on %s", engine.url.render_as_string(hide_password=True))


def session_factory_from_settings(settings: Settings) -> sessionmaker[Session]:
    """Build engine, ensure schema and return a session factory."""
    engine = create_ledger_engine(settings.database_url, echo=settings.database_echo)
    init_db(engine)
    return create_session_factory(engine)


__all__ = [
    "create_ledger_engine",
    "create_session_factory",
    "init_db",
    "is_memory_url",
    "serialize_checkouts",
    "session_factory_from_settings",
]
