"""
BalanceCalculator -- session-bound balance recomputation.

Responsibility:
    ``recompute`` folds every delta of an account in seq order and is the
    reconciliation authority over the incrementally maintained cache.
    ``replay`` additionally checks the prefix-sum and gap-free sequence
    invariants entry by entry.  ``incremental`` is the O(1) step the
    recorder applies on every append.

Architecture position:
    Kernel > Services -- reads through EntryStore, folds with the pure
    functions in ``ledger_kernel.domain.balance``.  Performs no writes.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain import balance as balance_fold
from ledger_kernel.domain.balance import ReplayResult
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.entry_store import EntryOrder, EntryStore

logger = get_logger("services.balance_calculator")


class BalanceCalculator:
    """Recomputes balances from the entry log."""

    def __init__(self, session: Session, entry_store: EntryStore | None = None):
        self.session = session
        self._store = entry_store or EntryStore(session)

    @staticmethod
    def incremental(last_balance: Decimal, new_delta: Decimal) -> Decimal:
        return balance_fold.incremental(last_balance, new_delta)

    def recompute(self, account_id: UUID) -> Decimal:
        """Sum of every delta on the account, O(n)."""
        entries = self._store.list_by_account(account_id, EntryOrder.SEQUENCE)
        return balance_fold.fold(entry.delta for entry in entries)

    def replay(self, account_id: UUID) -> ReplayResult:
        """Walk the full chain and report the first broken entry, if any."""
        entries = self._store.list_by_account(account_id, EntryOrder.SEQUENCE)
        result = balance_fold.replay(entries)
        if not result.is_consistent:
            logger.warning(
                "balance_replay_violation",
                extra={
                    "account_id": str(account_id),
                    "seq": result.violation.seq,
                    "field": result.violation.field,
                    "expected": result.violation.expected,
                    "actual": result.violation.actual,
                },
            )
        return result
