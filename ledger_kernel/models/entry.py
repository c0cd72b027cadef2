"""
Module: ledger_kernel.models.entry
Responsibility: ORM persistence for ledger entries -- the append-only event
    log from which every balance and status is derived.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - UNIQUE(account_id, seq): at most one entry per sequence slot, the
      last line of defense against a writer that bypasses both locks.
    - Ordered by seq, balance_after[i] == balance_after[i-1] + delta[i]
      (checked by replay, not by the database).
    - Rows are never updated or deleted (db/immutability.py).

Failure modes:
    - IntegrityError on a duplicate (account_id, seq), translated to
      ConcurrentModificationError by EntryStore.append.
    - ImmutabilityViolationError on any UPDATE or DELETE.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString

REFERENCE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000


class LedgerEntry(Base):
    """
    One immutable movement on an account.

    Contract:
        ``delta`` is already signed by the transaction type's sign rule;
        ``balance_after`` is the running balance including this entry.
        ``seq`` is the per-account entry id: 1, 2, 3, ... without gaps.
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint("account_id", "seq", name="uq_ledger_entry_account_seq"),
        Index("idx_ledger_entry_occurred", "account_id", "occurred_at", "seq"),
        Index("idx_ledger_entry_type", "account_id", "transaction_type"),
        Index("idx_ledger_entry_due_date", "due_date"),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_accounts.id"),
        nullable=False,
    )
    seq: Mapped[int] = mapped_column(nullable=False)

    # Persisted as TransactionType.value
    transaction_type: Mapped[str] = mapped_column(String(30), nullable=False)

    delta: Mapped[Decimal] = mapped_column(nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(nullable=False)
    due_date: Mapped[date | None] = mapped_column(nullable=True)

    # Provenance
    reference: Mapped[str | None] = mapped_column(String(REFERENCE_MAX_LENGTH), nullable=True)
    description: Mapped[str | None] = mapped_column(String(DESCRIPTION_MAX_LENGTH), nullable=True)
    created_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    entry_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.account_id}#{self.seq} "
            f"{self.transaction_type} {self.delta} -> {self.balance_after}>"
        )
