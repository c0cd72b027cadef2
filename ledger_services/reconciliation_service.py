"""
ledger_services.reconciliation_service -- cache versus full replay.

Responsibility:
    Replays an account's entire history, checks the prefix-sum and gap-free
    sequence invariants, and compares the recomputed balance with the
    incrementally maintained cache on the account row.  Any mismatch places
    the account on hold so no further entry is built on a broken chain.

Architecture position:
    Services -- owns a session per account.  Takes the same lock pair as
    the recorder (in-process lock, then row lock) so it waits for an
    in-flight write instead of reading half of it.

Invariants enforced:
    - Reconciliation never edits or deletes an entry.  Its only write is
      the hold, committed in the same transaction that observed the fault.

Failure modes:
    - AccountNotFoundError for an unknown account.
    - In ``strict`` mode, ChainBrokenError or BalanceDriftError after the
      hold has been committed.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.balance import ChainViolation
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import BalanceDriftError, ChainBrokenError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import LedgerAccount
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.balance_calculator import BalanceCalculator
from ledger_kernel.services.entry_store import EntryStore
from ledger_services.account_locks import AccountLockRegistry

logger = get_logger("services.reconciliation")


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of reconciling one account."""

    account_id: UUID
    account_key: str
    cached_balance: Decimal
    cached_seq: int
    recomputed_balance: Decimal
    entry_count: int
    last_seq: int
    violation: ChainViolation | None = None
    hold_placed: bool = False

    @property
    def cache_matches(self) -> bool:
        return (
            self.cached_balance == self.recomputed_balance
            and self.cached_seq == self.last_seq
        )

    @property
    def is_consistent(self) -> bool:
        return self.violation is None and self.cache_matches


class ReconciliationService:
    """Verifies every balance cache against a full replay."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        locks: AccountLockRegistry | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._locks = locks if locks is not None else AccountLockRegistry()
        self._clock = clock or SystemClock()

    def reconcile(self, account_id: UUID, strict: bool = False) -> ReconciliationResult:
        """
        Replay one account and compare it with its cache.

        Args:
            account_id: Account to check.
            strict: Raise ChainBrokenError / BalanceDriftError on a fault
                (after the hold is committed) instead of only reporting it.
        """
        with LogContext.bind(account_id=str(account_id)):
            with self._locks.hold(account_id):
                result = self._reconcile_locked(account_id)

        if strict and not result.is_consistent:
            if result.violation is not None:
                raise ChainBrokenError(
                    account_id=str(account_id),
                    seq=result.violation.seq,
                    expected=result.violation.expected,
                    actual=result.violation.actual,
                )
            raise BalanceDriftError(
                account_id=str(account_id),
                cached_balance=result.cached_balance,
                recomputed_balance=result.recomputed_balance,
                cached_seq=result.cached_seq,
                latest_seq=result.last_seq,
            )
        return result

    def reconcile_all(self) -> list[ReconciliationResult]:
        """Reconcile every account, one transaction per account."""
        session = self._session_factory()
        try:
            account_ids = list(
                session.execute(
                    select(LedgerAccount.id).order_by(LedgerAccount.account_key)
                ).scalars()
            )
            session.rollback()
        finally:
            session.close()

        results = [self.reconcile(account_id) for account_id in account_ids]
        faulty = sum(1 for r in results if not r.is_consistent)
        logger.info(
            "reconciliation_run_completed",
            extra={"accounts": len(results), "faulty_accounts": faulty},
        )
        return results

    def _reconcile_locked(self, account_id: UUID) -> ReconciliationResult:
        session = self._session_factory()
        try:
            store = EntryStore(session)
            account = store.lock_account(account_id)
            replay = BalanceCalculator(session, store).replay(account_id)

            result = ReconciliationResult(
                account_id=account.id,
                account_key=account.account_key,
                cached_balance=account.current_balance,
                cached_seq=account.last_seq,
                recomputed_balance=replay.balance,
                entry_count=replay.entry_count,
                last_seq=replay.last_seq,
                violation=replay.violation,
            )

            if result.is_consistent:
                session.commit()
                logger.info(
                    "account_reconciled",
                    extra={
                        "balance": result.recomputed_balance,
                        "entry_count": result.entry_count,
                    },
                )
                return result

            logger.error(
                "reconciliation_mismatch",
                extra={
                    "cached_balance": result.cached_balance,
                    "recomputed_balance": result.recomputed_balance,
                    "cached_seq": result.cached_seq,
                    "last_seq": result.last_seq,
                    "violation_seq": result.violation.seq if result.violation else None,
                    "violation_field": result.violation.field if result.violation else None,
                },
            )
            if result.violation is not None:
                reason = (
                    f"Chain broken at seq {result.violation.seq}: "
                    f"{result.violation.field} expected {result.violation.expected}, "
                    f"found {result.violation.actual}"
                )
            else:
                reason = (
                    f"Balance cache {result.cached_balance} (seq {result.cached_seq}) "
                    f"differs from replay {result.recomputed_balance} "
                    f"(seq {result.last_seq})"
                )
            AccountService(session).place_hold(account_id, reason, self._clock.now())
            session.commit()
            return replace(result, hold_placed=True)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
