"""Ledger account ORM model: one running balance per (client, unit)."""

from sqlalchemy import BigInteger, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hoa_ledger.models import Base, BaseModel


class LedgerAccount(Base, BaseModel):
    """Model representing one unit's credit balance.

    Rows are created implicitly by the first mutation and never deleted by
    the ledger. ``balance`` always equals the sum of the account's entry
    amounts; ``version`` is an optimistic-lock counter bumped by every
    committed write so concurrent writers from other processes fail their
    conditional UPDATE instead of losing an update.
    """

    __tablename__ = "ledger_accounts"

    client_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Externally assigned client (association) identifier",
    )
    unit_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Externally assigned unit identifier within the client",
    )

    balance: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        comment="Current balance in cents",
    )
    entry_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of history entries; sequence of the latest entry",
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    entries: Mapped[list["LedgerEntry"]] = relationship(  # noqa: F821
        "LedgerEntry",
        back_populates="account",
        order_by="LedgerEntry.sequence",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_ledger_account_key", "client_id", "unit_id", unique=True),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerAccount(id={self.id}, client_id={self.client_id!r}, "
            f"unit_id={self.unit_id!r}, balance={self.balance}, version={self.version})>"
        )


__all__ = ["LedgerAccount"]
