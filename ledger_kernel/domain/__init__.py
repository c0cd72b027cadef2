"""
Pure domain layer.

Transaction types and their sign table, balance folding, status
resolution, DTOs and the clock abstraction.  Nothing here touches the
ORM or the database.
"""

from ledger_kernel.domain.balance import ReplayResult, fold, incremental, replay
from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.dtos import AccountDTO, LedgerEntryDTO, StockThresholds
from ledger_kernel.domain.status import (
    OpenItem,
    PaymentStatus,
    StockStatus,
    reorder_required,
    resolve_payment_status,
    resolve_stock_status,
)
from ledger_kernel.domain.transaction_types import (
    LedgerKind,
    TransactionType,
    signed_delta,
)

__all__ = [
    "AccountDTO",
    "Clock",
    "DeterministicClock",
    "LedgerEntryDTO",
    "LedgerKind",
    "OpenItem",
    "PaymentStatus",
    "ReplayResult",
    "StockStatus",
    "StockThresholds",
    "SystemClock",
    "TransactionType",
    "fold",
    "incremental",
    "reorder_required",
    "replay",
    "resolve_payment_status",
    "resolve_stock_status",
    "signed_delta",
]
