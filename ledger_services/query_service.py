"""
ledger_services.query_service -- read-side entry point.

Responsibility:
    Opens a session per call, applies the configured paging bounds and the
    clock's "today" as the reference date of the OVERDUE overlay, and
    delegates to LedgerSelector.  Nothing here writes; calling any method
    twice without an intervening ``record()`` returns equal results.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.status import OpenItem
from ledger_kernel.domain.transaction_types import TransactionType
from ledger_kernel.exceptions import InvalidPageError, ValidationError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.selectors.ledger_selector import (
    AccountSummary,
    HistoryPage,
    LedgerSelector,
    ListingFilter,
    PaymentReport,
    StatusListing,
)
from ledger_kernel.services.entry_store import EntryOrder

logger = get_logger("services.query")


class LedgerQueryService:
    """History, summaries and status listings over the entry log."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        default_page_size: int = 50,
        max_page_size: int = 100,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    def _read(self, fn: Callable[[LedgerSelector], object]):
        session = self._session_factory()
        try:
            return fn(LedgerSelector(session))
        finally:
            session.rollback()
            session.close()

    def history(
        self,
        account_id: UUID,
        page: int = 1,
        page_size: int | None = None,
        *,
        transaction_type: TransactionType | str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        search: str | None = None,
        order: EntryOrder = EntryOrder.SEQUENCE,
        newest_first: bool = False,
    ) -> HistoryPage:
        """
        One page of an account's entries, each with its derived status.

        Raises:
            AccountNotFoundError
            InvalidPageError: page < 1 or page_size outside 1..max_page_size.
            ValidationError: unknown transaction type or inverted date range.
        """
        size = self._default_page_size if page_size is None else page_size
        if page < 1 or not 1 <= size <= self._max_page_size:
            raise InvalidPageError(page, size, self._max_page_size)
        if date_from is not None and date_to is not None and date_from > date_to:
            raise ValidationError(f"date_from {date_from} is after date_to {date_to}")
        if transaction_type is not None:
            try:
                transaction_type = TransactionType(transaction_type)
            except ValueError:
                raise ValidationError(
                    f"Unknown transaction type: {transaction_type!r}"
                ) from None

        as_of = self._clock.today()
        return self._read(
            lambda selector: selector.history(
                account_id,
                as_of,
                page,
                size,
                transaction_type=transaction_type,
                date_from=date_from,
                date_to=date_to,
                search=search,
                by_occurred=EntryOrder(order) is EntryOrder.OCCURRED,
                newest_first=newest_first,
            )
        )

    def summary(self, account_id: UUID | None = None) -> AccountSummary | list[AccountSummary]:
        """Summary of one account, or of every account when ``account_id`` is None."""
        as_of = self._clock.today()
        if account_id is None:
            return self._read(lambda selector: selector.summaries(as_of))
        return self._read(lambda selector: selector.summary(account_id, as_of))

    def overdue_or_low_stock(
        self,
        listing_filter: ListingFilter | None = None,
    ) -> list[StatusListing]:
        """Accounts that are OVERDUE now, or LOW / OUT_OF_STOCK / due for reorder."""
        listing_filter = listing_filter or ListingFilter()
        as_of = listing_filter.as_of or self._clock.today()
        listings = self._read(
            lambda selector: selector.status_listing(listing_filter, as_of)
        )
        logger.debug(
            "status_listing_built",
            extra={"as_of": as_of.isoformat(), "listed": len(listings)},
        )
        return listings

    def open_items(self, account_id: UUID) -> list[OpenItem]:
        return self._read(lambda selector: selector.open_items(account_id))

    def payment_report(
        self,
        date_from: date,
        date_to: date,
        account_id: UUID | None = None,
    ) -> PaymentReport:
        """PAYMENT entries dated within ``date_from``..``date_to`` inclusive."""
        if date_from > date_to:
            raise ValidationError(f"date_from {date_from} is after date_to {date_to}")
        return self._read(
            lambda selector: selector.payment_report(date_from, date_to, account_id)
        )
