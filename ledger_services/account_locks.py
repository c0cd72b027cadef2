"""
ledger_services.account_locks -- in-process per-account mutual exclusion.

Responsibility:
    Serializes writers to the same account inside one process so that the
    read-latest / compute / append sequence of ``record()`` never
    interleaves with another thread's.  The database row lock does the same
    across processes; the compare-and-set in EntryStore catches anything
    that slips past both.

Invariants enforced:
    - At most one holder per account id at a time.
    - A registry entry exists only while some thread holds or waits for it;
      the last one out removes it, so the map does not grow with the number
      of accounts ever touched.
    - Acquisition is bounded by a timeout.

Failure modes:
    - AccountLockTimeoutError when the lock is not acquired in time.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Generator
from uuid import UUID

from ledger_kernel.exceptions import AccountLockTimeoutError
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.account_locks")


class _Entry:
    __slots__ = ("lock", "refs")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.refs = 0


class AccountLockRegistry:
    """Reference-counted map of account id -> lock."""

    def __init__(self, timeout_seconds: float = 30.0):
        self._timeout = timeout_seconds
        self._guard = threading.Lock()
        self._entries: dict[UUID, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def _checkout(self, account_id: UUID) -> _Entry:
        with self._guard:
            entry = self._entries.get(account_id)
            if entry is None:
                entry = self._entries[account_id] = _Entry()
            entry.refs += 1
            return entry

    def _checkin(self, account_id: UUID, entry: _Entry) -> None:
        with self._guard:
            entry.refs -= 1
            if entry.refs == 0:
                del self._entries[account_id]

    @contextmanager
    def hold(
        self,
        account_id: UUID,
        timeout_seconds: float | None = None,
    ) -> Generator[None, None, None]:
        """
        Hold the account's lock for the duration of the block.

        Raises:
            AccountLockTimeoutError: If the lock is not acquired in time.
        """
        timeout = self._timeout if timeout_seconds is None else timeout_seconds
        entry = self._checkout(account_id)
        try:
            if not entry.lock.acquire(timeout=timeout):
                logger.warning(
                    "account_lock_timeout",
                    extra={"account_id": str(account_id), "timeout_seconds": timeout},
                )
                raise AccountLockTimeoutError(str(account_id), timeout)
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(account_id, entry)
