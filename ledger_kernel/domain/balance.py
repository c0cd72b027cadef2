"""
Balance folding -- pure running-balance arithmetic.

Responsibility:
    The two ways a balance is obtained: ``incremental`` (O(1), used on every
    append) and ``fold`` (O(n), the reconciliation authority).  ``replay``
    walks an entry chain and reports the first entry that breaks the
    prefix-sum or gap-free sequence invariant.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The session-bound
    wrapper is ``ledger_kernel.services.balance_calculator``.

Invariants checked:
    - balance_after[i] == balance_after[i-1] + delta[i], balance_after[-1] == 0
    - seq runs 1, 2, 3, ... without gaps
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Protocol

ZERO = Decimal("0")


class ChainedEntry(Protocol):
    """Anything carrying the three chain fields (ORM row or DTO)."""

    seq: int
    delta: Decimal
    balance_after: Decimal


def incremental(last_balance: Decimal, new_delta: Decimal) -> Decimal:
    """Balance after applying one more delta."""
    return last_balance + new_delta


def fold(deltas: Iterable[Decimal]) -> Decimal:
    """Sum deltas from a zero opening balance."""
    balance = ZERO
    for delta in deltas:
        balance = incremental(balance, delta)
    return balance


@dataclass(frozen=True)
class ChainViolation:
    """First entry at which the chain stops being consistent."""

    seq: int
    field: str
    expected: str
    actual: str


@dataclass(frozen=True)
class ReplayResult:
    """Outcome of replaying an account's full history."""

    balance: Decimal
    entry_count: int
    last_seq: int
    violation: ChainViolation | None = None

    @property
    def is_consistent(self) -> bool:
        return self.violation is None


def replay(entries: Iterable[ChainedEntry]) -> ReplayResult:
    """
    Replay entries in seq order, checking both chain invariants.

    Stops at the first violation; ``balance`` is then the recomputed value
    up to (and including) the offending entry's delta.
    """
    balance = ZERO
    count = 0
    last_seq = 0
    for entry in entries:
        count += 1
        expected_seq = last_seq + 1
        balance = incremental(balance, entry.delta)
        if entry.seq != expected_seq:
            return ReplayResult(
                balance=balance,
                entry_count=count,
                last_seq=entry.seq,
                violation=ChainViolation(
                    seq=entry.seq,
                    field="seq",
                    expected=str(expected_seq),
                    actual=str(entry.seq),
                ),
            )
        if entry.balance_after != balance:
            return ReplayResult(
                balance=balance,
                entry_count=count,
                last_seq=entry.seq,
                violation=ChainViolation(
                    seq=entry.seq,
                    field="balance_after",
                    expected=str(balance),
                    actual=str(entry.balance_after),
                ),
            )
        last_seq = entry.seq
    return ReplayResult(balance=balance, entry_count=count, last_seq=last_seq)
