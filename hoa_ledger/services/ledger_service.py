"""Ledger store: per-unit credit balances with append-only history.

Provides methods for:
- Reading the current balance (with a display string)
- Applying business-rule-driven deltas (payments, bill allocations)
- Appending administrative correction entries
- Reading history, newest first and clamped, or in full for aggregation

Invariants kept by construction:
- balance == sum of the account's entry amounts
- each entry's resulting_balance == previous resulting_balance + amount
- a transaction_ref is applied at most once per account
- writes to one account are serialized; different accounts never wait on
  each other

Accounts are created implicitly by their first mutation; an unknown account
reads as balance 0 with empty history.
"""

import logging
import threading
import time
import weakref
from datetime import datetime
from typing import Callable, NamedTuple

from hoa_ledger.config import Settings
from hoa_ledger.errors import (
    ConcurrentWriteError,
    DuplicateTransactionError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidInputError,
    StorageUnavailableError,
)
from hoa_ledger.models import utc_now
from hoa_ledger.services.fiscal_calendar import normalize_instant
from hoa_ledger.services.formatting import format_cents, generate_id
from hoa_ledger.services.repository import AccountKey, HistoryEntry, LedgerRepository

logger = logging.getLogger(__name__)

ENTRY_ID_PREFIX = "credit"


class BalanceSnapshot(NamedTuple):
    """Current balance and the instant of the last committed write."""

    balance: int
    as_of: datetime | None


class BalanceDisplay(NamedTuple):
    """Balance with a locale-formatted display string."""

    balance: int
    display: str
    as_of: datetime | None


class LedgerMutation(NamedTuple):
    """Result of a mutation. ``replayed`` is True for idempotent retries."""

    previous_balance: int
    new_balance: int
    entry: HistoryEntry
    replayed: bool = False


class AccountLockTable:
    """One lock per account, created on first use.

    Only the lookup is guarded by a shared lock; holding an account lock
    never blocks writers of other accounts. Entries are weak: a lock no
    caller holds is dropped, so the table only tracks accounts in use.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[AccountKey, threading.Lock] = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, key: AccountKey) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


def coerce_account_key(account) -> AccountKey:
    """Build an AccountKey from a key or a (client_id, unit_id) pair.

    Raises:
        InvalidInputError: If either part is not a non-empty string
    """
    if isinstance(account, (str, bytes)):
        raise InvalidInputError(f"Account must be a (client_id, unit_id) pair, got {account!r}")
    try:
        client_id, unit_id = account
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"Account must be a (client_id, unit_id) pair, got {account!r}") from e
    for name, value in (("client_id", client_id), ("unit_id", unit_id)):
        if not isinstance(value, str) or not value.strip():
            raise InvalidInputError(f"{name} must be a non-empty string, got {value!r}")
    return AccountKey(client_id, unit_id)


def _validate_amount(amount) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(f"Amount must be an integer number of cents, got {amount!r}")
    if amount == 0:
        raise InvalidAmountError("Amount must be non-zero")


class LedgerService:
    """Balance and history operations over a LedgerRepository."""

    def __init__(
        self,
        repository: LedgerRepository,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize ledger service.

        Args:
            repository: Persistence collaborator
            settings: Ledger settings (zone, limits, policy)
            clock: Source of "now" as an aware datetime
        """
        self.repository = repository
        self.settings = settings
        self._clock = clock
        self._tz = settings.zone
        self._locks = AccountLockTable()

    def get_balance(self, account) -> BalanceSnapshot:
        """Return the latest committed balance (0 for unknown accounts)."""
        key = coerce_account_key(account)
        state = self.repository.load_account(key)
        if state is None:
            return BalanceSnapshot(balance=0, as_of=None)
        return BalanceSnapshot(balance=state.balance, as_of=state.updated_at)

    def get_balance_display(self, account) -> BalanceDisplay:
        snapshot = self.get_balance(account)
        return BalanceDisplay(
            balance=snapshot.balance,
            display=self._display(snapshot.balance),
            as_of=snapshot.as_of,
        )

    def get_history(self, account, limit: int | None = None) -> list[HistoryEntry]:
        """Return history entries, most recent first.

        Args:
            account: (client_id, unit_id)
            limit: Maximum entries; defaults to history_default_limit and is
                clamped to history_max_limit

        Raises:
            InvalidInputError: If limit is not a positive integer
        """
        key = coerce_account_key(account)
        if limit is None:
            limit = self.settings.history_default_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidInputError(f"limit must be a positive integer, got {limit!r}")
        limit = min(limit, self.settings.history_max_limit)
        return self.repository.list_entries(key, limit=limit, newest_first=True)

    def iter_entries(self, account) -> list[HistoryEntry]:
        """Return the complete history, oldest first."""
        key = coerce_account_key(account)
        return self.repository.list_entries(key, limit=None, newest_first=False)

    def apply_delta(
        self,
        account,
        amount: int,
        transaction_ref: str,
        occurred_at: datetime | str | None = None,
        note: str | None = None,
        source: str | None = None,
    ) -> LedgerMutation:
        """Apply a signed change to an account balance.

        Args:
            account: (client_id, unit_id)
            amount: Signed cents; positive increases credit
            transaction_ref: Idempotency key of the originating transaction
            occurred_at: Instant the change is attributed to (default: now)
            note: Free-text description
            source: Originating module (e.g., 'hoaDues', 'waterBills')

        Returns:
            LedgerMutation; for a reference already applied, the original
            result with ``replayed=True``

        Raises:
            InvalidAmountError: If amount is not a non-zero integer
            InvalidInputError: If the reference or instant is malformed
            InsufficientBalanceError: If negative balances are disallowed
            StorageUnavailableError: If the store fails or stays contended
        """
        return self._mutate(
            account,
            amount,
            transaction_ref,
            occurred_at,
            note,
            source,
            enforce_balance_policy=not self.settings.allow_negative_balance,
        )

    def append_manual_entry(
        self,
        account,
        amount: int,
        occurred_at: datetime | str | None,
        transaction_ref: str,
        note: str | None = None,
        source: str | None = None,
    ) -> LedgerMutation:
        """Append an administrative correction entry.

        Same contract as apply_delta; source defaults to the configured
        manual-entry source and the negative-balance policy is not applied.
        """
        return self._mutate(
            account,
            amount,
            transaction_ref,
            occurred_at,
            note,
            source or self.settings.manual_entry_source,
            enforce_balance_policy=False,
        )

    def _mutate(
        self,
        account,
        amount: int,
        transaction_ref: str,
        occurred_at,
        note: str | None,
        source: str | None,
        enforce_balance_policy: bool,
    ) -> LedgerMutation:
        key = coerce_account_key(account)
        _validate_amount(amount)
        if not isinstance(transaction_ref, str) or not transaction_ref.strip():
            raise InvalidInputError(f"transaction_ref must be a non-empty string, got {transaction_ref!r}")
        occurred = self._clock() if occurred_at is None else normalize_instant(occurred_at, self._tz)

        with self._locks.lock_for(key):
            for attempt in range(1, self.settings.max_write_retries + 1):
                existing = self.repository.find_entry(key, transaction_ref)
                if existing is not None:
                    return self._replay(key, existing, amount)

                state = self.repository.load_account(key)
                previous_balance = state.balance if state else 0
                new_balance = previous_balance + amount

                if enforce_balance_policy and new_balance < 0:
                    raise InsufficientBalanceError(
                        f"Insufficient credit balance for {key}. "
                        f"Current: {self._display(previous_balance)}, Requested: {self._display(amount)}",
                        current_balance=previous_balance,
                        amount=amount,
                    )

                recorded_at = self._clock()
                entry = HistoryEntry(
                    entry_id=generate_id(ENTRY_ID_PREFIX, recorded_at, self._tz),
                    sequence=(state.entry_count if state else 0) + 1,
                    occurred_at=occurred,
                    amount=amount,
                    resulting_balance=new_balance,
                    transaction_ref=transaction_ref,
                    note=note,
                    source=source,
                    recorded_at=recorded_at,
                )

                try:
                    self.repository.append_entry(key, entry, state.version if state else 0)
                except DuplicateTransactionError:
                    # Another process recorded the reference first; replay it on the next pass
                    logger.info("Transaction %s for %s recorded concurrently", transaction_ref, key)
                    continue
                except ConcurrentWriteError as e:
                    logger.warning(
                        "Write conflict on %s (attempt %d/%d): %s",
                        key,
                        attempt,
                        self.settings.max_write_retries,
                        e,
                    )
                    time.sleep(0.005 * attempt)
                    continue

                logger.info(
                    "Updated balance for %s: %d -> %d (ref=%s, source=%s)",
                    key,
                    previous_balance,
                    new_balance,
                    transaction_ref,
                    source,
                )
                return LedgerMutation(previous_balance, new_balance, entry)

        logger.error("Giving up on %s for %s after %d attempts", transaction_ref, key, self.settings.max_write_retries)
        raise StorageUnavailableError(
            f"Could not commit {transaction_ref!r} for {key} after "
            f"{self.settings.max_write_retries} attempts"
        )

    def _display(self, cents: int) -> str:
        return format_cents(cents, self.settings.currency, self.settings.locale)

    def _replay(self, key: AccountKey, entry: HistoryEntry, amount: int) -> LedgerMutation:
        if entry.amount != amount:
            logger.warning(
                "Replay of %s for %s with amount %d differs from recorded %d; keeping original",
                entry.transaction_ref,
                key,
                amount,
                entry.amount,
            )
        else:
            logger.info("Idempotent replay of %s for %s", entry.transaction_ref, key)
        return LedgerMutation(
            previous_balance=entry.previous_balance,
            new_balance=entry.resulting_balance,
            entry=entry,
            replayed=True,
        )


__all__ = [
    "AccountLockTable",
    "BalanceDisplay",
    "BalanceSnapshot",
    "LedgerMutation",
    "LedgerService",
    "coerce_account_key",
]
