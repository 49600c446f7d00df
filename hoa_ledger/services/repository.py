"""Persistence contract for the ledger store.

The ledger store never touches sessions or rows directly. It talks to a
``LedgerRepository`` offering per-account reads and one atomic conditional
write (``append_entry``): the new entry is inserted and the balance moved
only if the account is still at the version the caller read. Any backend
with single-key linearizable writes can implement it.

Implementations:
- ``SqlAlchemyLedgerRepository``: relational rows, optimistic
  ``version_id_col`` on the account, unique (account, transaction_ref)
- ``InMemoryLedgerRepository``: process-local dicts behind a lock, for
  tests and embedded use
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, NamedTuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from hoa_ledger.errors import (
    ConcurrentWriteError,
    DuplicateTransactionError,
    StorageUnavailableError,
)
from hoa_ledger.models import LedgerAccount, LedgerEntry, utc_now

logger = logging.getLogger(__name__)


class AccountKey(NamedTuple):
    """Externally assigned (client, unit) pair identifying one account."""

    client_id: str
    unit_id: str

    def __str__(self) -> str:
        return f"{self.client_id}/{self.unit_id}"


class AccountState(NamedTuple):
    """Committed state of an account."""

    balance: int
    entry_count: int
    version: int
    updated_at: datetime | None


@dataclass(frozen=True)
class HistoryEntry:
    """Immutable record of one balance change."""

    entry_id: str
    sequence: int
    occurred_at: datetime
    amount: int
    resulting_balance: int
    transaction_ref: str
    note: str | None = None
    source: str | None = None
    recorded_at: datetime | None = None

    @property
    def previous_balance(self) -> int:
        return self.resulting_balance - self.amount


class LedgerRepository(ABC):
    """Abstract storage for account balances and their history."""

    @abstractmethod
    def load_account(self, key: AccountKey) -> AccountState | None:
        """Return committed account state, or None if never written."""

    @abstractmethod
    def find_entry(self, key: AccountKey, transaction_ref: str) -> HistoryEntry | None:
        """Return the entry recorded under a transaction reference, if any."""

    @abstractmethod
    def list_entries(
        self, key: AccountKey, limit: int | None = None, newest_first: bool = True
    ) -> list[HistoryEntry]:
        """Return entries in append order (reversed when newest_first)."""

    @abstractmethod
    def append_entry(self, key: AccountKey, entry: HistoryEntry, expected_version: int) -> AccountState:
        """Atomically append ``entry`` and set balance to its resulting balance.

        Args:
            key: Account to write
            entry: Entry whose sequence/resulting_balance were computed from
                the state read at ``expected_version``
            expected_version: Version read by the caller (0 if no account)

        Returns:
            New committed AccountState

        Raises:
            ConcurrentWriteError: Account changed since it was read
            DuplicateTransactionError: transaction_ref already recorded
            StorageUnavailableError: Backend failure
        """


def _check_chain(key: AccountKey, balance: int, entry_count: int, entry: HistoryEntry) -> None:
    if entry.sequence != entry_count + 1 or entry.resulting_balance != balance + entry.amount:
        raise ConcurrentWriteError(
            f"Entry for {key} was computed from a stale balance "
            f"(sequence {entry.sequence}, stored count {entry_count})"
        )


class SqlAlchemyLedgerRepository(LedgerRepository):
    """Ledger repository over SQLAlchemy sessions.

    Each method opens its own short session, so the repository is safe to
    share between worker threads. Writes commit before returning, which is
    what gives callers read-your-write consistency.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        """Initialize with a session factory.

        Args:
            session_factory: sessionmaker bound to an engine with ledger tables
        """
        self._session_factory = session_factory

    @contextmanager
    def _storage_errors(self, operation: str, key: AccountKey) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            logger.error("Storage failure during %s for %s: %s", operation, key, e)
            raise StorageUnavailableError(f"Storage unavailable during {operation} for {key}") from e

    @staticmethod
    def _account_stmt(key: AccountKey):
        return select(LedgerAccount).where(
            LedgerAccount.client_id == key.client_id,
            LedgerAccount.unit_id == key.unit_id,
        )

    @staticmethod
    def _to_state(account: LedgerAccount) -> AccountState:
        return AccountState(
            balance=account.balance,
            entry_count=account.entry_count,
            version=account.version,
            updated_at=account.updated_at,
        )

    @staticmethod
    def _to_entry(row: LedgerEntry) -> HistoryEntry:
        return HistoryEntry(
            entry_id=row.entry_id,
            sequence=row.sequence,
            occurred_at=row.occurred_at,
            amount=row.amount,
            resulting_balance=row.resulting_balance,
            transaction_ref=row.transaction_ref,
            note=row.note,
            source=row.source,
            recorded_at=row.created_at,
        )

    def load_account(self, key: AccountKey) -> AccountState | None:
        with self._storage_errors("load_account", key), self._session_factory() as session:
            account = session.scalars(self._account_stmt(key)).one_or_none()
            return self._to_state(account) if account else None

    def find_entry(self, key: AccountKey, transaction_ref: str) -> HistoryEntry | None:
        stmt = (
            select(LedgerEntry)
            .join(LedgerAccount, LedgerEntry.account_id == LedgerAccount.id)
            .where(
                LedgerAccount.client_id == key.client_id,
                LedgerAccount.unit_id == key.unit_id,
                LedgerEntry.transaction_ref == transaction_ref,
            )
        )
        with self._storage_errors("find_entry", key), self._session_factory() as session:
            row = session.scalars(stmt).one_or_none()
            return self._to_entry(row) if row else None

    def list_entries(
        self, key: AccountKey, limit: int | None = None, newest_first: bool = True
    ) -> list[HistoryEntry]:
        order = LedgerEntry.sequence.desc() if newest_first else LedgerEntry.sequence.asc()
        stmt = (
            select(LedgerEntry)
            .join(LedgerAccount, LedgerEntry.account_id == LedgerAccount.id)
            .where(
                LedgerAccount.client_id == key.client_id,
                LedgerAccount.unit_id == key.unit_id,
            )
            .order_by(order)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._storage_errors("list_entries", key), self._session_factory() as session:
            return [self._to_entry(row) for row in session.scalars(stmt)]

    def append_entry(self, key: AccountKey, entry: HistoryEntry, expected_version: int) -> AccountState:
        with self._storage_errors("append_entry", key), self._session_factory() as session:
            try:
                with session.begin():
                    account = session.scalars(self._account_stmt(key)).one_or_none()
                    current_version = account.version if account else 0
                    if current_version != expected_version:
                        raise ConcurrentWriteError(
                            f"Account {key} is at version {current_version}, "
                            f"expected {expected_version}"
                        )
                    if account is None:
                        _check_chain(key, 0, 0, entry)
                        account = LedgerAccount(client_id=key.client_id, unit_id=key.unit_id)
                        session.add(account)
                    else:
                        _check_chain(key, account.balance, account.entry_count, entry)

                    session.add(
                        LedgerEntry(
                            entry_id=entry.entry_id,
                            account=account,
                            sequence=entry.sequence,
                            occurred_at=entry.occurred_at,
                            amount=entry.amount,
                            resulting_balance=entry.resulting_balance,
                            transaction_ref=entry.transaction_ref,
                            note=entry.note,
                            source=entry.source,
                            created_at=entry.recorded_at or utc_now(),
                        )
                    )
                    account.balance = entry.resulting_balance
                    account.entry_count = entry.sequence
                return self._to_state(account)
            except StaleDataError as e:
                raise ConcurrentWriteError(f"Account {key} was modified concurrently") from e
            except IntegrityError as e:
                # Either the reference is already recorded, or another writer
                # created the account / took the sequence number first.
                if self.find_entry(key, entry.transaction_ref) is not None:
                    raise DuplicateTransactionError(
                        f"Transaction {entry.transaction_ref!r} already recorded for {key}",
                        entry.transaction_ref,
                    ) from e
                raise ConcurrentWriteError(f"Account {key} was modified concurrently") from e


class InMemoryLedgerRepository(LedgerRepository):
    """Process-local ledger repository.

    All state lives in dicts guarded by one lock; every method is atomic.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._states: dict[AccountKey, AccountState] = {}
        self._entries: dict[AccountKey, list[HistoryEntry]] = {}

    def load_account(self, key: AccountKey) -> AccountState | None:
        with self._lock:
            return self._states.get(key)

    def find_entry(self, key: AccountKey, transaction_ref: str) -> HistoryEntry | None:
        with self._lock:
            for entry in self._entries.get(key, ()):
                if entry.transaction_ref == transaction_ref:
                    return entry
            return None

    def list_entries(
        self, key: AccountKey, limit: int | None = None, newest_first: bool = True
    ) -> list[HistoryEntry]:
        with self._lock:
            entries = list(self._entries.get(key, ()))
        if newest_first:
            entries.reverse()
        return entries if limit is None else entries[:limit]

    def append_entry(self, key: AccountKey, entry: HistoryEntry, expected_version: int) -> AccountState:
        with self._lock:
            state = self._states.get(key)
            current_version = state.version if state else 0
            if current_version != expected_version:
                raise ConcurrentWriteError(
                    f"Account {key} is at version {current_version}, expected {expected_version}"
                )
            entries = self._entries.setdefault(key, [])
            if any(existing.transaction_ref == entry.transaction_ref for existing in entries):
                raise DuplicateTransactionError(
                    f"Transaction {entry.transaction_ref!r} already recorded for {key}",
                    entry.transaction_ref,
                )
            _check_chain(key, state.balance if state else 0, len(entries), entry)

            entries.append(entry)
            new_state = AccountState(
                balance=entry.resulting_balance,
                entry_count=entry.sequence,
                version=current_version + 1,
                updated_at=entry.recorded_at or utc_now(),
            )
            self._states[key] = new_state
            return new_state


__all__ = [
    "AccountKey",
    "AccountState",
    "HistoryEntry",
    "InMemoryLedgerRepository",
    "LedgerRepository",
    "SqlAlchemyLedgerRepository",
]
