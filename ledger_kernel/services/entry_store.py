"""
EntryStore -- append-only persistence of ledger entries.

Responsibility:
    Appends entries and streams them back in a fixed order.  ``append`` is
    the only code path that writes a LedgerEntry, and it advances the
    account's balance cache in the same flush with a compare-and-set on
    ``last_seq``.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.  The caller (the
    recorder) owns the transaction: begin, lock the account row, append,
    commit.

Invariants enforced:
    - seq is gap-free: the new entry takes ``expected_seq + 1`` and the
      account cache only advances if its ``last_seq`` still equals
      ``expected_seq`` (UPDATE ... WHERE last_seq = :expected).
    - UNIQUE(account_id, seq) backs the compare-and-set; a duplicate slot
      surfaces as ConcurrentModificationError, never as a second entry.
    - Entries are never updated or deleted here (nor anywhere else).

Failure modes:
    - ConcurrentModificationError when the compare-and-set matches no row or
      the insert collides on (account_id, seq).  The session must then be
      rolled back by the caller.
    - AccountNotFoundError from ``lock_account`` for an unknown id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.domain.transaction_types import TransactionType
from ledger_kernel.exceptions import AccountNotFoundError, ConcurrentModificationError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import LedgerAccount
from ledger_kernel.models.entry import LedgerEntry
from ledger_kernel.services.base import BaseService

logger = get_logger("services.entry_store")


class EntryOrder(str, Enum):
    """Order in which an account's entries are read back."""

    SEQUENCE = "sequence"  # by seq: the chain order
    OCCURRED = "occurred"  # by (occurred_at, seq): business-date order


@dataclass(frozen=True)
class NewEntry:
    """An entry ready to append: delta already signed, balance already computed."""

    transaction_type: TransactionType
    delta: Decimal
    balance_after: Decimal
    occurred_at: datetime
    recorded_at: datetime
    due_date: date | None = None
    reference: str | None = None
    description: str | None = None
    created_by_id: UUID | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class EntryStream:
    """
    Lazy, finite, restartable view over one account's entries.

    Each iteration issues a fresh query streamed with ``yield_per``, so a
    long history is never materialized at once and the stream can be
    walked more than once.
    """

    def __init__(self, session: Session, statement, batch_size: int):
        self._session = session
        self._statement = statement
        self._batch_size = batch_size

    def __iter__(self) -> Iterator[LedgerEntry]:
        result = self._session.execute(
            self._statement.execution_options(yield_per=self._batch_size)
        )
        yield from result.scalars()


class EntryStore(BaseService[LedgerEntry]):
    """
    Append-only store for ledger entries.

    Contract:
        ``append`` must run inside a transaction in which the caller holds
        the account row lock (``lock_account``) and has read the latest seq.

    Non-goals:
        - Does NOT compute deltas or balances -- it stores what it is given.
        - Does NOT commit.
    """

    DEFAULT_BATCH_SIZE = 500

    def lock_account(self, account_id: UUID) -> LedgerAccount:
        """
        Load the account row with ``SELECT ... FOR UPDATE``.

        On PostgreSQL this blocks other writers to the same account until
        the transaction ends.  SQLite ignores FOR UPDATE; there the
        transaction already holds the database write lock (BEGIN IMMEDIATE).

        Raises:
            AccountNotFoundError: If no account has this id.
        """
        account = self.session.execute(
            select(LedgerAccount)
            .where(LedgerAccount.id == account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def latest(self, account_id: UUID) -> LedgerEntry | None:
        """Entry with the highest seq, or None for an empty ledger."""
        return self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.account_id == account_id)
            .order_by(LedgerEntry.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def count(self, account_id: UUID) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(LedgerEntry)
            .where(LedgerEntry.account_id == account_id)
        ).scalar_one()

    def list_by_account(
        self,
        account_id: UUID,
        order: EntryOrder = EntryOrder.SEQUENCE,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> EntryStream:
        """All entries of one account, streamed in the requested order."""
        stmt = select(LedgerEntry).where(LedgerEntry.account_id == account_id)
        if order is EntryOrder.OCCURRED:
            stmt = stmt.order_by(LedgerEntry.occurred_at, LedgerEntry.seq)
        else:
            stmt = stmt.order_by(LedgerEntry.seq)
        return EntryStream(self.session, stmt, batch_size)

    def append(
        self,
        account: LedgerAccount,
        entry: NewEntry,
        expected_seq: int,
    ) -> LedgerEntry:
        """
        Append ``entry`` as seq ``expected_seq + 1`` and advance the cache.

        Postconditions:
            - One new LedgerEntry row is flushed.
            - The account's current_balance / last_seq / last_occurred_at
              reflect the new entry.

        Returns:
            The flushed LedgerEntry; its ``seq`` is the new entry id.

        Raises:
            ConcurrentModificationError: Another writer took the slot.
        """
        new_seq = expected_seq + 1

        cas = self.session.execute(
            update(LedgerAccount)
            .where(
                LedgerAccount.id == account.id,
                LedgerAccount.last_seq == expected_seq,
            )
            .values(
                current_balance=entry.balance_after,
                last_seq=new_seq,
                last_occurred_at=entry.occurred_at,
            )
            .execution_options(synchronize_session="fetch")
        )
        if cas.rowcount != 1:
            logger.warning(
                "append_compare_and_set_failed",
                extra={"account_id": str(account.id), "expected_seq": expected_seq},
            )
            raise ConcurrentModificationError(str(account.id), expected_seq)

        row = LedgerEntry(
            account_id=account.id,
            seq=new_seq,
            transaction_type=entry.transaction_type.value,
            delta=entry.delta,
            balance_after=entry.balance_after,
            occurred_at=entry.occurred_at,
            recorded_at=entry.recorded_at,
            due_date=entry.due_date,
            reference=entry.reference,
            description=entry.description,
            created_by_id=entry.created_by_id,
            entry_metadata=dict(entry.metadata) or None,
        )
        self.session.add(row)
        try:
            self.session.flush()
        except IntegrityError as exc:
            logger.warning(
                "append_seq_collision",
                extra={"account_id": str(account.id), "seq": new_seq},
            )
            raise ConcurrentModificationError(str(account.id), expected_seq) from exc

        logger.debug(
            "entry_appended",
            extra={
                "account_id": str(account.id),
                "seq": new_seq,
                "delta": str(entry.delta),
                "balance_after": str(entry.balance_after),
            },
        )
        return row
