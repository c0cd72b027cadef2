"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for ledger accounts -- one row per supplier
    balance or per material-at-location stock ledger.  Carries the inventory
    thresholds, the redundant balance cache maintained by the recorder, and
    the write hold placed when a consistency violation is detected.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - account_key is unique across both ledger kinds.
    - current_balance / last_seq / last_occurred_at are a cache of the
      latest entry.  They are only ever advanced by the compare-and-set in
      EntryStore.append (UPDATE ... WHERE last_seq = expected) and are never
      the source of truth; BalanceCalculator.recompute is.
    - kind is persisted as LedgerKind.value.

Failure modes:
    - IntegrityError on duplicate account_key.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class LedgerAccount(TrackedBase):
    """
    An account owning one append-only ledger.

    Guarantees:
        - last_seq == 0 and current_balance == 0 until the first entry.
        - Threshold columns are only meaningful for INVENTORY accounts.
    """

    __tablename__ = "ledger_accounts"

    __table_args__ = (
        Index("idx_ledger_account_key", "account_key", unique=True),
        Index("idx_ledger_account_kind", "kind"),
    )

    account_key: Mapped[str] = mapped_column(String(200), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Inventory thresholds
    minimum_stock_level: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )
    maximum_stock_level: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )
    reorder_point: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    # Balance cache, advanced with each append
    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        default=Decimal("0"),
        nullable=False,
    )
    last_seq: Mapped[int] = mapped_column(default=0, nullable=False)
    last_occurred_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Write hold
    is_on_hold: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    hold_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    hold_placed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<LedgerAccount {self.account_key} ({self.kind}) seq={self.last_seq}>"
