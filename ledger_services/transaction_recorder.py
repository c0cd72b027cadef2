"""
ledger_services.transaction_recorder -- the single write path of the ledger.

Responsibility:
    Turns one caller request (account, type, magnitude, business date,
    provenance) into exactly one appended entry with the correct signed
    delta and running balance, atomically per account.

Architecture position:
    Services -- owns the session and the transaction for each attempt.
    Composes EntryStore (flush-only), the pure sign table and balance fold,
    AccountLockRegistry and AccountService (for holds).

Algorithm (per attempt):
    validate input                      (no store access)
    hold in-process account lock        (AccountLockRegistry)
      open transaction
      lock account row                  (SELECT ... FOR UPDATE)
      read latest entry, cross-check the account cache against it
      signed delta -> incremental balance
      reject negative stock unless allow_backorder
      append seq = latest.seq + 1       (compare-and-set on last_seq)
      commit
    release

Failure modes:
    - ValidationError subclasses before anything is touched.
    - AccountNotFoundError, TransactionTypeMismatchError, AccountOnHoldError,
      InsufficientStockError: transaction rolled back, nothing appended.
    - BalanceDriftError: transaction rolled back, account placed on hold in
      a separate transaction, error raised.  Never retried.
    - ConcurrentModificationError: retried up to ``max_retries`` times with
      linear backoff; then RecordRetryExhaustedError.
    - AccountLockTimeoutError: lock not acquired within the timeout.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from datetime import date, datetime, time as dt_time, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.balance import ZERO, incremental
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LedgerEntryDTO
from ledger_kernel.domain.transaction_types import (
    LedgerKind,
    TransactionRule,
    TransactionType,
    rule_for,
    signed_delta,
)
from ledger_kernel.exceptions import (
    AccountOnHoldError,
    BalanceDriftError,
    ConcurrentModificationError,
    InsufficientStockError,
    InvalidDueDateError,
    RecordRetryExhaustedError,
    TransactionTypeMismatchError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.entry import DESCRIPTION_MAX_LENGTH, REFERENCE_MAX_LENGTH
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.entry_store import EntryStore, NewEntry
from ledger_services.account_locks import AccountLockRegistry

logger = get_logger("services.transaction_recorder")

# Metadata keys stored in their own columns; everything else is free-form
PROVENANCE_KEYS = ("reference", "description", "created_by_id", "due_date")


class TransactionRecorder:
    """
    Records transactions, one committed entry per successful call.

    Contract:
        Each ``record`` call uses its own session from ``session_factory``
        and either commits exactly one entry or leaves the ledger untouched.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        locks: AccountLockRegistry | None = None,
        clock: Clock | None = None,
        max_retries: int = 5,
        retry_backoff_seconds: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self._locks = locks if locks is not None else AccountLockRegistry()
        self._clock = clock or SystemClock()
        self._max_retries = max_retries
        self._backoff = retry_backoff_seconds
        self._sleep = sleep

    def record(
        self,
        account_id: UUID,
        transaction_type: TransactionType | str,
        amount: Decimal | int | str,
        occurred_at: datetime | date,
        metadata: Mapping[str, Any] | None = None,
        *,
        allow_backorder: bool = False,
    ) -> LedgerEntryDTO:
        """
        Append one entry to the account.

        Args:
            account_id: Target account.
            transaction_type: Must belong to the account's ledger kind.
            amount: Magnitude (signed quantity for inventory ADJUSTMENT).
            occurred_at: Business date; a bare date means midnight UTC.
            metadata: ``reference``, ``description``, ``created_by_id``,
                ``due_date`` plus free-form extras.
            allow_backorder: Permit an inventory decrease below zero.

        Returns:
            The committed entry.
        """
        rule = _rule(transaction_type)
        delta = signed_delta(rule.transaction_type, amount)
        occurred = _occurred_at(occurred_at)
        fields = _provenance(rule, metadata)

        with LogContext.bind(
            account_id=str(account_id),
            actor_id=str(fields["created_by_id"]) if fields["created_by_id"] else None,
        ):
            with self._locks.hold(account_id):
                attempt = 0
                while True:
                    attempt += 1
                    try:
                        return self._record_once(
                            account_id, rule, delta, occurred, fields, allow_backorder
                        )
                    except ConcurrentModificationError as exc:
                        if attempt >= self._max_retries:
                            logger.error(
                                "record_retry_exhausted",
                                extra={"attempts": attempt},
                            )
                            raise RecordRetryExhaustedError(
                                str(account_id), attempt
                            ) from exc
                        logger.warning(
                            "concurrent_modification_retry",
                            extra={
                                "attempt": attempt,
                                "expected_seq": exc.expected_seq,
                            },
                        )
                        self._sleep(self._backoff * attempt)

    def _record_once(
        self,
        account_id: UUID,
        rule: TransactionRule,
        delta: Decimal,
        occurred_at: datetime,
        fields: dict[str, Any],
        allow_backorder: bool,
    ) -> LedgerEntryDTO:
        session = self._session_factory()
        try:
            store = EntryStore(session)
            account = store.lock_account(account_id)

            if account.kind != rule.kind.value:
                raise TransactionTypeMismatchError(
                    str(account_id), account.kind, rule.transaction_type.value
                )
            if account.is_on_hold:
                raise AccountOnHoldError(str(account_id), account.hold_reason)

            latest = store.latest(account_id)
            latest_seq = latest.seq if latest is not None else 0
            latest_balance = latest.balance_after if latest is not None else ZERO

            if account.last_seq != latest_seq or account.current_balance != latest_balance:
                raise BalanceDriftError(
                    account_id=str(account_id),
                    cached_balance=account.current_balance,
                    recomputed_balance=latest_balance,
                    cached_seq=account.last_seq,
                    latest_seq=latest_seq,
                )

            new_balance = incremental(latest_balance, delta)

            if (
                rule.kind is LedgerKind.INVENTORY
                and delta < ZERO
                and new_balance < ZERO
                and not allow_backorder
            ):
                raise InsufficientStockError(
                    account_id=str(account_id),
                    available=latest_balance,
                    requested=-delta,
                    transaction_type=rule.transaction_type.value,
                )

            row = store.append(
                account,
                NewEntry(
                    transaction_type=rule.transaction_type,
                    delta=delta,
                    balance_after=new_balance,
                    occurred_at=occurred_at,
                    recorded_at=self._clock.now(),
                    due_date=fields["due_date"],
                    reference=fields["reference"],
                    description=fields["description"],
                    created_by_id=fields["created_by_id"],
                    metadata=fields["extras"],
                ),
                expected_seq=latest_seq,
            )
            entry = LedgerEntryDTO.from_model(row)
            session.commit()
        except BalanceDriftError as exc:
            session.rollback()
            logger.error(
                "balance_drift_detected",
                extra={
                    "cached_balance": exc.cached_balance,
                    "latest_balance": exc.recomputed_balance,
                    "cached_seq": exc.cached_seq,
                    "latest_seq": exc.latest_seq,
                },
            )
            self._place_hold(account_id, str(exc))
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.info(
            "transaction_recorded",
            extra={
                "entry_seq": entry.seq,
                "transaction_type": entry.transaction_type.value,
                "delta": entry.delta,
                "balance_after": entry.balance_after,
            },
        )
        return entry

    def _place_hold(self, account_id: UUID, reason: str) -> None:
        session = self._session_factory()
        try:
            AccountService(session).place_hold(account_id, reason, self._clock.now())
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


# ---------------------------------------------------------------------------
# Input normalization
# ---------------------------------------------------------------------------


def _rule(transaction_type: TransactionType | str) -> TransactionRule:
    try:
        return rule_for(transaction_type)
    except ValueError:
        raise ValidationError(
            f"Unknown transaction type: {transaction_type!r}"
        ) from None


def _occurred_at(value: datetime | date) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            raise ValidationError("occurred_at must be timezone-aware")
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, dt_time.min, tzinfo=timezone.utc)
    raise ValidationError(f"occurred_at must be a date or datetime, not {value!r}")


def _parse_due_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            raise ValidationError(f"due_date is not an ISO date: {value!r}") from None
    raise ValidationError(f"due_date must be a date, not {value!r}")


def _parse_actor(value: Any) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(f"created_by_id is not a UUID: {value!r}") from None


def _json_safe(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _bounded_text(value: Any, field: str, max_length: int) -> str | None:
    if value is None:
        return None
    text = str(value)
    if len(text) > max_length:
        raise ValidationError(
            f"{field} is {len(text)} characters, longer than {max_length}"
        )
    return text


def _provenance(rule: TransactionRule, metadata: Mapping[str, Any] | None) -> dict[str, Any]:
    metadata = dict(metadata or {})

    due_date = metadata.get("due_date")
    if due_date is not None:
        if not rule.may_carry_due_date:
            raise InvalidDueDateError(rule.transaction_type.value)
        due_date = _parse_due_date(due_date)

    reference = _bounded_text(metadata.get("reference"), "reference", REFERENCE_MAX_LENGTH)
    description = _bounded_text(
        metadata.get("description"), "description", DESCRIPTION_MAX_LENGTH
    )

    return {
        "due_date": due_date,
        "reference": reference,
        "description": description,
        "created_by_id": _parse_actor(metadata.get("created_by_id")),
        "extras": _json_safe(
            {k: v for k, v in metadata.items() if k not in PROVENANCE_KEYS}
        ),
    }
