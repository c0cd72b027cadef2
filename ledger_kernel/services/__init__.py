"""Services for the ledger kernel (write side, flush-only)."""

from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.balance_calculator import BalanceCalculator
from ledger_kernel.services.entry_store import EntryOrder, EntryStore, NewEntry

__all__ = [
    "AccountService",
    "BalanceCalculator",
    "EntryOrder",
    "EntryStore",
    "NewEntry",
]
