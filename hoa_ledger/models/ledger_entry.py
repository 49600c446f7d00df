"""Ledger entry ORM model: append-only balance history."""

from datetime import datetime

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hoa_ledger.models import Base, BaseModel, UTCDateTime


class LedgerEntry(Base, BaseModel):
    """Model representing one immutable balance change.

    Entries are never updated or deleted; corrections are new entries with
    offsetting amounts. ``resulting_balance`` is the running sum up to and
    including this entry in ``sequence`` order. ``transaction_ref`` is
    unique per account, which is what makes retries idempotent.
    """

    __tablename__ = "ledger_entries"

    entry_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        comment="Public entry identifier (time + random suffix)",
    )
    account_id: Mapped[int] = mapped_column(
        ForeignKey("ledger_accounts.id"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="1-based append position within the account",
    )

    occurred_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        comment="Instant the change is attributed to (UTC)",
    )
    amount: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Signed change in cents; positive increases credit",
    )
    resulting_balance: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Balance immediately after applying amount",
    )
    transaction_ref: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="External idempotency key",
    )
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    source: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        comment="Originating module, e.g. 'hoaDues', 'waterBills', 'admin'",
    )

    account: Mapped["LedgerAccount"] = relationship(  # noqa: F821
        "LedgerAccount",
        back_populates="entries",
        foreign_keys=[account_id],
    )

    __table_args__ = (
        Index("idx_ledger_entry_ref", "account_id", "transaction_ref", unique=True),
        Index("idx_ledger_entry_sequence", "account_id", "sequence", unique=True),
        Index("idx_ledger_entry_occurred", "account_id", "occurred_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(entry_id={self.entry_id!r}, account_id={self.account_id}, "
            f"sequence={self.sequence}, amount={self.amount}, "
            f"resulting_balance={self.resulting_balance}, ref={self.transaction_ref!r})>"
        )


__all__ = ["LedgerEntry"]
