"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable views of accounts and ledger entries handed across the
    persistence boundary.  Services and selectors convert ORM rows with the
    ``from_model`` class methods; nothing above the kernel ever holds an ORM
    instance.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping
from uuid import UUID

from ledger_kernel.domain.transaction_types import LedgerKind, TransactionType

if TYPE_CHECKING:
    from ledger_kernel.models.account import LedgerAccount
    from ledger_kernel.models.entry import LedgerEntry


@dataclass(frozen=True)
class StockThresholds:
    """Inventory thresholds an account's quantity is compared against."""

    minimum_stock_level: Decimal = Decimal("0")
    maximum_stock_level: Decimal | None = None
    reorder_point: Decimal = Decimal("0")


@dataclass(frozen=True)
class AccountDTO:
    """Read-only view of a ledger account."""

    id: UUID
    account_key: str
    kind: LedgerKind
    name: str
    thresholds: StockThresholds | None
    current_balance: Decimal
    last_seq: int
    last_occurred_at: datetime | None
    is_on_hold: bool
    hold_reason: str | None

    @classmethod
    def from_model(cls, account: LedgerAccount) -> AccountDTO:
        kind = LedgerKind(account.kind)
        thresholds = None
        if kind is LedgerKind.INVENTORY:
            thresholds = StockThresholds(
                minimum_stock_level=account.minimum_stock_level or Decimal("0"),
                maximum_stock_level=account.maximum_stock_level,
                reorder_point=account.reorder_point or Decimal("0"),
            )
        return cls(
            id=account.id,
            account_key=account.account_key,
            kind=kind,
            name=account.name,
            thresholds=thresholds,
            current_balance=account.current_balance,
            last_seq=account.last_seq,
            last_occurred_at=account.last_occurred_at,
            is_on_hold=account.is_on_hold,
            hold_reason=account.hold_reason,
        )


@dataclass(frozen=True)
class LedgerEntryDTO:
    """Read-only view of one immutable ledger entry."""

    id: UUID
    account_id: UUID
    seq: int
    transaction_type: TransactionType
    delta: Decimal
    balance_after: Decimal
    occurred_at: datetime
    recorded_at: datetime
    due_date: date | None = None
    reference: str | None = None
    description: str | None = None
    created_by_id: UUID | None = None
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def entry_id(self) -> int:
        """Per-account sequence number (alias of ``seq``)."""
        return self.seq

    @property
    def balance_before(self) -> Decimal:
        return self.balance_after - self.delta

    @property
    def is_debit(self) -> bool:
        """True when the entry increases the balance."""
        return self.delta > 0

    @classmethod
    def from_model(cls, entry: LedgerEntry) -> LedgerEntryDTO:
        return cls(
            id=entry.id,
            account_id=entry.account_id,
            seq=entry.seq,
            transaction_type=TransactionType(entry.transaction_type),
            delta=entry.delta,
            balance_after=entry.balance_after,
            occurred_at=entry.occurred_at,
            recorded_at=entry.recorded_at,
            due_date=entry.due_date,
            reference=entry.reference,
            description=entry.description,
            created_by_id=entry.created_by_id,
            metadata=MappingProxyType(dict(entry.entry_metadata or {})),
        )
