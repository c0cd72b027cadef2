"""
ledger_services -- Package init and public API.

Responsibility:
    Stateful orchestration over the ledger kernel.  This is the only layer
    that opens database sessions, owns transactions, holds per-account
    locks or reads the wall clock.

Architecture position:
    Dependency direction:
        ledger_services/ -> ledger_kernel/   (allowed)
        ledger_services/ -> ledger_config/   (allowed)
        ledger_kernel/   -> ledger_services/ (FORBIDDEN)
"""

from ledger_services.account_locks import AccountLockRegistry
from ledger_services.ledger_engine import LedgerEngine
from ledger_services.query_service import LedgerQueryService
from ledger_services.reconciliation_service import (
    ReconciliationResult,
    ReconciliationService,
)
from ledger_services.transaction_recorder import TransactionRecorder

__all__ = [
    "AccountLockRegistry",
    "LedgerEngine",
    "LedgerQueryService",
    "ReconciliationResult",
    "ReconciliationService",
    "TransactionRecorder",
]
