"""
StatusResolver -- derived payment and stock status.

Responsibility:
    Pure functions mapping (ordered entries, thresholds, as-of date) to a
    discrete status.  Status is never stored: every call recomputes it, so
    an account whose due date passed overnight reads OVERDUE the next
    morning without any write having happened.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Rules:
    Financial
        NO_ACTIVITY  no entries at all
        PAID         balance <= 0
        PARTIAL      balance > 0 and a PAYMENT was applied since the last PURCHASE
        PENDING      balance > 0 otherwise
        OVERDUE      query-time overlay: balance > 0 and an open item
                     (FIFO-allocated) is past its due date
    Inventory
        NO_ACTIVITY  no entries at all
        OUT_OF_STOCK quantity <= 0
        LOW          quantity <= minimum_stock_level
        HIGH         quantity >= maximum_stock_level (when a maximum is set)
        NORMAL       otherwise
        reorder_required when quantity <= reorder_point

A zero-amount adjustment moves neither the balance nor the
payment-since-purchase marker, so it never changes status by itself.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable

from ledger_kernel.domain.dtos import LedgerEntryDTO, StockThresholds
from ledger_kernel.domain.transaction_types import TransactionType
from ledger_kernel.exceptions import InvalidThresholdsError

ZERO = Decimal("0")


class PaymentStatus(str, Enum):
    NO_ACTIVITY = "NO_ACTIVITY"
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


class StockStatus(str, Enum):
    NO_ACTIVITY = "NO_ACTIVITY"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"


# =============================================================================
# Financial
# =============================================================================


def payment_status_for(balance: Decimal, paid_since_purchase: bool) -> PaymentStatus:
    """Base payment status for a balance, without the OVERDUE overlay."""
    if balance <= ZERO:
        return PaymentStatus.PAID
    if paid_since_purchase:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


class PaymentStatusTracker:
    """
    Incremental fold of payment status over entries in seq order.

    ``apply`` returns the base status as of the entry just applied; callers
    building a history view read one status per entry from a single pass.
    """

    def __init__(self) -> None:
        self.balance = ZERO
        self.paid_since_purchase = False
        self.entry_count = 0

    def apply(self, entry: LedgerEntryDTO) -> PaymentStatus:
        self.entry_count += 1
        self.balance = entry.balance_after
        if entry.transaction_type is TransactionType.PURCHASE:
            self.paid_since_purchase = False
        elif entry.transaction_type is TransactionType.PAYMENT:
            self.paid_since_purchase = True
        return self.status

    @property
    def status(self) -> PaymentStatus:
        if self.entry_count == 0:
            return PaymentStatus.NO_ACTIVITY
        return payment_status_for(self.balance, self.paid_since_purchase)


@dataclass(frozen=True)
class OpenItem:
    """A debit-side entry with an amount still outstanding after FIFO allocation."""

    seq: int
    transaction_type: TransactionType
    occurred_at: datetime
    due_date: date | None
    original_amount: Decimal
    outstanding: Decimal

    def is_overdue(self, as_of: date) -> bool:
        return (
            self.outstanding > ZERO
            and self.due_date is not None
            and self.due_date < as_of
        )


class OpenItemAllocator:
    """
    FIFO allocation of credits against debits, one entry at a time.

    Entries must arrive in seq order.  A credit larger than everything open
    is carried forward and consumes later debits as they arrive.
    """

    def __init__(self) -> None:
        self._queue: deque[list] = deque()  # [entry, outstanding]
        self._unapplied = ZERO

    def apply(self, entry: LedgerEntryDTO) -> None:
        if entry.delta > ZERO:
            amount = entry.delta
            if self._unapplied > ZERO:
                used = min(self._unapplied, amount)
                self._unapplied -= used
                amount -= used
            if amount > ZERO:
                self._queue.append([entry, amount])
        elif entry.delta < ZERO:
            credit = -entry.delta
            while credit > ZERO and self._queue:
                head = self._queue[0]
                used = min(credit, head[1])
                head[1] -= used
                credit -= used
                if head[1] == ZERO:
                    self._queue.popleft()
            self._unapplied += credit

    def any_overdue(self, as_of: date) -> bool:
        return any(
            entry.due_date is not None and entry.due_date < as_of
            for entry, _ in self._queue
        )

    def items(self) -> list[OpenItem]:
        return [
            OpenItem(
                seq=entry.seq,
                transaction_type=entry.transaction_type,
                occurred_at=entry.occurred_at,
                due_date=entry.due_date,
                original_amount=entry.delta,
                outstanding=outstanding,
            )
            for entry, outstanding in self._queue
        ]


def open_items(entries: Iterable[LedgerEntryDTO]) -> list[OpenItem]:
    """Allocate credits against debits oldest-first and return what is still open."""
    allocator = OpenItemAllocator()
    for entry in entries:
        allocator.apply(entry)
    return allocator.items()


def overlay_overdue(
    status: PaymentStatus,
    balance: Decimal,
    items: Iterable[OpenItem],
    as_of: date,
) -> PaymentStatus:
    """Apply the query-time OVERDUE overlay to a base payment status."""
    if balance <= ZERO:
        return status
    if any(item.is_overdue(as_of) for item in items):
        return PaymentStatus.OVERDUE
    return status


def resolve_payment_status(
    entries: Iterable[LedgerEntryDTO],
    as_of: date,
) -> tuple[PaymentStatus, list[OpenItem]]:
    """Current payment status of a financial account, OVERDUE overlay applied."""
    tracker = PaymentStatusTracker()
    allocator = OpenItemAllocator()
    for entry in entries:
        tracker.apply(entry)
        allocator.apply(entry)
    items = allocator.items()
    return overlay_overdue(tracker.status, tracker.balance, items, as_of), items


# =============================================================================
# Inventory
# =============================================================================


def validate_thresholds(thresholds: StockThresholds) -> StockThresholds:
    """
    Reject negative or inverted thresholds.

    Raises:
        InvalidThresholdsError
    """
    if thresholds.minimum_stock_level < ZERO:
        raise InvalidThresholdsError("minimum_stock_level must not be negative")
    if thresholds.reorder_point < ZERO:
        raise InvalidThresholdsError("reorder_point must not be negative")
    maximum = thresholds.maximum_stock_level
    if maximum is not None:
        if maximum < ZERO:
            raise InvalidThresholdsError("maximum_stock_level must not be negative")
        if maximum < thresholds.minimum_stock_level:
            raise InvalidThresholdsError(
                "maximum_stock_level must not be below minimum_stock_level"
            )
    return thresholds


def resolve_stock_status(
    quantity: Decimal,
    thresholds: StockThresholds,
    has_activity: bool = True,
) -> StockStatus:
    """Stock status for a quantity against thresholds."""
    if not has_activity:
        return StockStatus.NO_ACTIVITY
    if quantity <= ZERO:
        return StockStatus.OUT_OF_STOCK
    if quantity <= thresholds.minimum_stock_level:
        return StockStatus.LOW
    if (
        thresholds.maximum_stock_level is not None
        and quantity >= thresholds.maximum_stock_level
    ):
        return StockStatus.HIGH
    return StockStatus.NORMAL


def reorder_required(quantity: Decimal, thresholds: StockThresholds) -> bool:
    """True when stock has fallen to or below the reorder point."""
    return quantity <= thresholds.reorder_point
