"""
Ledger query selector.

Read-only access to account histories, summaries, status listings and the
payment report.  Every status here is derived on the fly from the entry
log: payment status by folding entries in seq order, OVERDUE by FIFO open
items compared with the caller's ``as_of`` date, stock status from the
quantity and the account's thresholds.

Key design decisions:
- Returns DTOs (frozen dataclasses), not ORM models
- Uses the caller's Session, never creates its own
- ``as_of`` is always passed in; the selector never reads a clock
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Iterator
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import AccountDTO, LedgerEntryDTO
from ledger_kernel.domain.status import (
    OpenItem,
    OpenItemAllocator,
    PaymentStatus,
    PaymentStatusTracker,
    StockStatus,
    overlay_overdue,
    reorder_required,
    resolve_stock_status,
)
from ledger_kernel.domain.transaction_types import LedgerKind, TransactionType
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.models.account import LedgerAccount
from ledger_kernel.models.entry import LedgerEntry
from ledger_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")

# Financial accounts carry a PaymentStatus, inventory accounts a StockStatus
LedgerStatus = PaymentStatus | StockStatus


@dataclass(frozen=True)
class HistoryEntry:
    """One entry with the status the account had right after it."""

    entry: LedgerEntryDTO
    status: LedgerStatus
    reorder_required: bool | None = None

    @property
    def balance_after(self) -> Decimal:
        return self.entry.balance_after


@dataclass(frozen=True)
class HistoryPage:
    """A page of an account's history."""

    account: AccountDTO
    entries: tuple[HistoryEntry, ...]
    page: int
    page_size: int
    total_count: int

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total_count / self.page_size))

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


@dataclass(frozen=True)
class AccountSummary:
    """Aggregate view of one account."""

    account_id: UUID
    account_key: str
    kind: LedgerKind
    name: str
    total_debits: Decimal
    total_credits: Decimal
    balance: Decimal
    entry_count: int
    last_transaction_at: datetime | None
    overdue_count: int
    status: LedgerStatus
    as_of: date
    reorder_required: bool | None = None


@dataclass(frozen=True)
class ListingFilter:
    """Which accounts ``status_listing`` reports on."""

    kind: LedgerKind | None = None
    as_of: date | None = None
    include_reorder: bool = True


@dataclass(frozen=True)
class StatusListing:
    """An account that is overdue, low on stock or due for reorder."""

    account: AccountDTO
    status: LedgerStatus
    balance: Decimal
    reorder_required: bool = False
    overdue_amount: Decimal = ZERO
    oldest_due_date: date | None = None


@dataclass(frozen=True)
class PaymentReport:
    """PAYMENT entries in a date range."""

    date_from: date
    date_to: date
    account_id: UUID | None
    payments: tuple[LedgerEntryDTO, ...]
    total: Decimal

    @property
    def count(self) -> int:
        return len(self.payments)


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class LedgerSelector(BaseSelector[LedgerEntry]):
    """
    Selector for ledger queries.

    Returns DTOs rather than ORM models for clean separation.
    """

    STREAM_BATCH_SIZE = 500

    def __init__(self, session: Session):
        super().__init__(session)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _account(self, account_id: UUID) -> LedgerAccount:
        account = self.session.get(LedgerAccount, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def _stream(self, account_id: UUID, up_to_seq: int | None = None) -> Iterator[LedgerEntryDTO]:
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.account_id == account_id)
            .order_by(LedgerEntry.seq)
        )
        if up_to_seq is not None:
            stmt = stmt.where(LedgerEntry.seq <= up_to_seq)
        result = self.session.execute(
            stmt.execution_options(yield_per=self.STREAM_BATCH_SIZE)
        )
        for row in result.scalars():
            yield LedgerEntryDTO.from_model(row)

    def _filtered(
        self,
        stmt,
        transaction_type: TransactionType | None,
        date_from: date | None,
        date_to: date | None,
        search: str | None,
    ):
        if transaction_type is not None:
            stmt = stmt.where(
                LedgerEntry.transaction_type == TransactionType(transaction_type).value
            )
        if date_from is not None:
            stmt = stmt.where(LedgerEntry.occurred_at >= _day_start(date_from))
        if date_to is not None:
            stmt = stmt.where(
                LedgerEntry.occurred_at < _day_start(date_to + timedelta(days=1))
            )
        if search:
            needle = search.lower()
            stmt = stmt.where(
                or_(
                    func.lower(LedgerEntry.reference).contains(needle, autoescape=True),
                    func.lower(LedgerEntry.description).contains(needle, autoescape=True),
                )
            )
        return stmt

    def _statuses_for(
        self,
        account: AccountDTO,
        seqs: set[int],
        as_of: date,
    ) -> dict[int, tuple[LedgerStatus, bool | None]]:
        """Status right after each requested seq, from one pass over the chain."""
        statuses: dict[int, tuple[LedgerStatus, bool | None]] = {}
        if not seqs:
            return statuses

        if account.kind is LedgerKind.FINANCIAL:
            tracker = PaymentStatusTracker()
            allocator = OpenItemAllocator()
            for entry in self._stream(account.id, up_to_seq=max(seqs)):
                base = tracker.apply(entry)
                allocator.apply(entry)
                if entry.seq in seqs:
                    status = base
                    if tracker.balance > ZERO and allocator.any_overdue(as_of):
                        status = PaymentStatus.OVERDUE
                    statuses[entry.seq] = (status, None)
            return statuses

        # Inventory status depends only on the quantity after the entry
        rows = self.session.execute(
            select(LedgerEntry.seq, LedgerEntry.balance_after).where(
                LedgerEntry.account_id == account.id,
                LedgerEntry.seq.in_(seqs),
            )
        )
        for seq, quantity in rows:
            statuses[seq] = (
                resolve_stock_status(quantity, account.thresholds),
                reorder_required(quantity, account.thresholds),
            )
        return statuses

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def history(
        self,
        account_id: UUID,
        as_of: date,
        page: int,
        page_size: int,
        *,
        transaction_type: TransactionType | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        search: str | None = None,
        by_occurred: bool = False,
        newest_first: bool = False,
    ) -> HistoryPage:
        """
        One page of an account's entries with the status after each entry.

        Filters narrow the entries shown; statuses are always computed over
        the full, unfiltered chain.
        """
        account = AccountDTO.from_model(self._account(account_id))

        base = select(LedgerEntry).where(LedgerEntry.account_id == account_id)
        base = self._filtered(base, transaction_type, date_from, date_to, search)

        total_count = self.session.execute(
            select(func.count()).select_from(base.subquery())
        ).scalar_one()

        if by_occurred:
            order = [LedgerEntry.occurred_at, LedgerEntry.seq]
        else:
            order = [LedgerEntry.seq]
        if newest_first:
            order = [column.desc() for column in order]

        rows = self.session.execute(
            base.order_by(*order).offset((page - 1) * page_size).limit(page_size)
        ).scalars().all()
        entries = [LedgerEntryDTO.from_model(row) for row in rows]

        statuses = self._statuses_for(account, {e.seq for e in entries}, as_of)

        return HistoryPage(
            account=account,
            entries=tuple(
                HistoryEntry(
                    entry=entry,
                    status=statuses[entry.seq][0],
                    reorder_required=statuses[entry.seq][1],
                )
                for entry in entries
            ),
            page=page,
            page_size=page_size,
            total_count=total_count,
        )

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def summary(self, account_id: UUID, as_of: date) -> AccountSummary:
        """Totals, balance and current status of one account."""
        account = AccountDTO.from_model(self._account(account_id))
        return self._summarize(account, as_of)

    def summaries(self, as_of: date, kind: LedgerKind | None = None) -> list[AccountSummary]:
        stmt = select(LedgerAccount).order_by(LedgerAccount.account_key)
        if kind is not None:
            stmt = stmt.where(LedgerAccount.kind == kind.value)
        accounts = [
            AccountDTO.from_model(a) for a in self.session.execute(stmt).scalars().all()
        ]
        return [self._summarize(account, as_of) for account in accounts]

    def _summarize(self, account: AccountDTO, as_of: date) -> AccountSummary:
        debits = ZERO
        credits = ZERO
        count = 0
        last_at: datetime | None = None
        tracker = PaymentStatusTracker()
        allocator = OpenItemAllocator()
        is_financial = account.kind is LedgerKind.FINANCIAL

        for entry in self._stream(account.id):
            count += 1
            if entry.delta > ZERO:
                debits += entry.delta
            else:
                credits -= entry.delta
            if last_at is None or entry.occurred_at > last_at:
                last_at = entry.occurred_at
            if is_financial:
                tracker.apply(entry)
                allocator.apply(entry)

        balance = debits - credits

        if is_financial:
            items = allocator.items()
            status: LedgerStatus = overlay_overdue(tracker.status, balance, items, as_of)
            overdue_count = (
                sum(1 for item in items if item.is_overdue(as_of))
                if balance > ZERO else 0
            )
            needs_reorder = None
        else:
            status = resolve_stock_status(balance, account.thresholds, count > 0)
            overdue_count = 0
            needs_reorder = count > 0 and reorder_required(balance, account.thresholds)

        return AccountSummary(
            account_id=account.id,
            account_key=account.account_key,
            kind=account.kind,
            name=account.name,
            total_debits=debits,
            total_credits=credits,
            balance=balance,
            entry_count=count,
            last_transaction_at=last_at,
            overdue_count=overdue_count,
            status=status,
            as_of=as_of,
            reorder_required=needs_reorder,
        )

    # ------------------------------------------------------------------
    # Open items and listings
    # ------------------------------------------------------------------

    def open_items(self, account_id: UUID) -> list[OpenItem]:
        """Outstanding debit-side entries after FIFO allocation of credits."""
        account = self._account(account_id)
        if account.kind != LedgerKind.FINANCIAL.value:
            return []
        allocator = OpenItemAllocator()
        for entry in self._stream(account_id):
            allocator.apply(entry)
        return allocator.items()

    def overdue_accounts(self, as_of: date) -> list[StatusListing]:
        """Financial accounts with a positive balance and a past-due open item."""
        # Candidates: owing something, with at least one entry already past due
        candidates = self.session.execute(
            select(LedgerAccount)
            .where(
                LedgerAccount.kind == LedgerKind.FINANCIAL.value,
                LedgerAccount.current_balance > 0,
                select(LedgerEntry.id)
                .where(
                    LedgerEntry.account_id == LedgerAccount.id,
                    LedgerEntry.due_date < as_of,
                )
                .exists(),
            )
            .order_by(LedgerAccount.account_key)
        ).scalars().all()

        listings = []
        for model in candidates:
            account = AccountDTO.from_model(model)
            allocator = OpenItemAllocator()
            balance = ZERO
            for entry in self._stream(account.id):
                allocator.apply(entry)
                balance = entry.balance_after
            if balance <= ZERO:
                continue
            overdue = [item for item in allocator.items() if item.is_overdue(as_of)]
            if not overdue:
                continue
            listings.append(
                StatusListing(
                    account=account,
                    status=PaymentStatus.OVERDUE,
                    balance=balance,
                    overdue_amount=sum((item.outstanding for item in overdue), ZERO),
                    oldest_due_date=min(item.due_date for item in overdue),
                )
            )
        return listings

    def low_stock_accounts(self, include_reorder: bool = True) -> list[StatusListing]:
        """Inventory accounts that are out of stock, low, or due for reorder."""
        accounts = self.session.execute(
            select(LedgerAccount)
            .where(
                LedgerAccount.kind == LedgerKind.INVENTORY.value,
                LedgerAccount.last_seq > 0,
            )
            .order_by(LedgerAccount.account_key)
        ).scalars().all()

        listings = []
        for model in accounts:
            account = AccountDTO.from_model(model)
            quantity = account.current_balance
            status = resolve_stock_status(quantity, account.thresholds)
            needs_reorder = reorder_required(quantity, account.thresholds)
            flagged = status in (StockStatus.OUT_OF_STOCK, StockStatus.LOW)
            if flagged or (include_reorder and needs_reorder):
                listings.append(
                    StatusListing(
                        account=account,
                        status=status,
                        balance=quantity,
                        reorder_required=needs_reorder,
                    )
                )
        return listings

    def status_listing(self, listing_filter: ListingFilter, as_of: date) -> list[StatusListing]:
        listings: list[StatusListing] = []
        if listing_filter.kind in (None, LedgerKind.FINANCIAL):
            listings.extend(self.overdue_accounts(as_of))
        if listing_filter.kind in (None, LedgerKind.INVENTORY):
            listings.extend(self.low_stock_accounts(listing_filter.include_reorder))
        return listings

    # ------------------------------------------------------------------
    # Payment report
    # ------------------------------------------------------------------

    def payment_report(
        self,
        date_from: date,
        date_to: date,
        account_id: UUID | None = None,
    ) -> PaymentReport:
        stmt = select(LedgerEntry).where(
            LedgerEntry.transaction_type == TransactionType.PAYMENT.value
        )
        if account_id is not None:
            stmt = stmt.where(LedgerEntry.account_id == account_id)
        stmt = self._filtered(stmt, None, date_from, date_to, None)
        stmt = stmt.order_by(LedgerEntry.occurred_at, LedgerEntry.seq)

        payments = tuple(
            LedgerEntryDTO.from_model(row)
            for row in self.session.execute(stmt).scalars()
        )
        return PaymentReport(
            date_from=date_from,
            date_to=date_to,
            account_id=account_id,
            payments=payments,
            total=sum((-p.delta for p in payments), ZERO),
        )
