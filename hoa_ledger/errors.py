"""Exception hierarchy for the ledger core.

Every error carries a stable machine-readable ``code`` so callers (payment
processing, billing, reporting) can map failures without string matching.
"""


class LedgerError(Exception):
    """Base ledger error."""

    code = "ledger_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidConfigError(LedgerError):
    """Bad fiscal-month or time zone configuration. Fatal at startup."""

    code = "invalid_config"


class InvalidInputError(LedgerError):
    """Malformed argument supplied by a caller."""

    code = "invalid_input"


class InvalidAmountError(InvalidInputError):
    """Amount is not a non-zero integer number of cents."""

    code = "invalid_amount"


class InsufficientBalanceError(LedgerError):
    """Mutation would drive the balance below zero while that is disallowed."""

    code = "insufficient_balance"

    def __init__(self, message: str, current_balance: int, amount: int):
        self.current_balance = current_balance
        self.amount = amount
        super().__init__(message)


class DuplicateTransactionError(LedgerError):
    """Transaction reference already recorded for the account."""

    code = "duplicate_transaction"

    def __init__(self, message: str, transaction_ref: str):
        self.transaction_ref = transaction_ref
        super().__init__(message)


class ConcurrentWriteError(LedgerError):
    """Account version changed between read and conditional write."""

    code = "concurrent_write"


class StorageUnavailableError(LedgerError):
    """Underlying store failed or timed out. Transient."""

    code = "storage_unavailable"


__all__ = [
    "LedgerError",
    "InvalidConfigError",
    "InvalidInputError",
    "InvalidAmountError",
    "InsufficientBalanceError",
    "DuplicateTransactionError",
    "ConcurrentWriteError",
    "StorageUnavailableError",
]
