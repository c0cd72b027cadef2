"""Selectors for the ledger kernel (read side)."""

from ledger_kernel.selectors.ledger_selector import (
    AccountSummary,
    HistoryEntry,
    HistoryPage,
    LedgerSelector,
    ListingFilter,
    PaymentReport,
    StatusListing,
)

__all__ = [
    "AccountSummary",
    "HistoryEntry",
    "HistoryPage",
    "LedgerSelector",
    "ListingFilter",
    "PaymentReport",
    "StatusListing",
]
