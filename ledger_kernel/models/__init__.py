"""Persistence models for the ledger kernel."""

from ledger_kernel.models.account import LedgerAccount
from ledger_kernel.models.entry import LedgerEntry

__all__ = [
    "LedgerAccount",
    "LedgerEntry",
]
