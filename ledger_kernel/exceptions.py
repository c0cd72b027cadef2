"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Balances and stock levels are read by reporting and UI layers that must
react differently to "bad input", "unknown account", "try again" and
"stop writing to this account".  Callers catch by type and read structured
attributes; they never parse messages.

Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes

Example:
    try:
        engine.record(account_id, TransactionType.ISSUE, Decimal("40"), now)
    except InsufficientStockError as e:
        api_response(code=e.code, available=e.available, requested=e.requested)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerEngineError (base)
    |
    +-- ValidationError
    |   +-- InvalidAmountError
    |   +-- TransactionTypeMismatchError
    |   +-- InvalidThresholdsError
    |   +-- InvalidPageError
    |   +-- InvalidDueDateError
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |
    +-- AccountAlreadyExistsError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |
    +-- ConsistencyViolationError
    |   +-- BalanceDriftError
    |   +-- ChainBrokenError
    |   +-- AccountOnHoldError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |   +-- RecordRetryExhaustedError
    |   +-- AccountLockTimeoutError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                       | When Raised
-------------|----------------------------|---------------------------------------
Validation   | INVALID_AMOUNT             | Amount breaks the type's sign rule
             | TRANSACTION_TYPE_MISMATCH  | Inventory type on a financial account
             | INVALID_THRESHOLDS         | Negative or inverted stock thresholds
             | INVALID_PAGE               | Page/page size out of range
             | INVALID_DUE_DATE           | Due date on a type that cannot be due
-------------|----------------------------|---------------------------------------
Not found    | ACCOUNT_NOT_FOUND          | Account ID/key doesn't exist
-------------|----------------------------|---------------------------------------
Account      | ACCOUNT_ALREADY_EXISTS     | Duplicate account_key
-------------|----------------------------|---------------------------------------
Stock        | INSUFFICIENT_STOCK         | Decrease below zero without override
-------------|----------------------------|---------------------------------------
Consistency  | BALANCE_DRIFT              | Incremental balance != recompute
             | CHAIN_BROKEN               | Prefix-sum or seq gap at some entry
             | ACCOUNT_ON_HOLD            | Writes halted pending investigation
-------------|----------------------------|---------------------------------------
Concurrency  | CONCURRENT_MODIFICATION    | Another writer appended first
             | RECORD_RETRY_EXHAUSTED     | Retries used up (transient)
             | ACCOUNT_LOCK_TIMEOUT       | Could not acquire the account lock
-------------|----------------------------|---------------------------------------
Immutability | IMMUTABILITY_VIOLATION     | UPDATE/DELETE of a ledger entry

===============================================================================
HANDLING PATTERNS
===============================================================================

1. ValidationError / NotFoundError: return to the caller as-is.

2. ConcurrencyError: ConcurrentModificationError is retried inside the
   recorder.  Callers only see RecordRetryExhaustedError or
   AccountLockTimeoutError and may retry the whole operation.

3. ConsistencyViolationError: never retried.  The account is placed on
   hold and every further write raises AccountOnHoldError until an
   operator releases it:

    except BalanceDriftError as e:
        alert_operations(e.account_id, e.cached_balance, e.recomputed_balance)

===============================================================================
"""

from decimal import Decimal


class LedgerEngineError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_ENGINE_ERROR"


# Validation exceptions


class ValidationError(LedgerEngineError):
    """Bad input, rejected before the store is touched."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Amount does not conform to the transaction type's sign convention."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, transaction_type: str, amount: str, reason: str):
        self.transaction_type = transaction_type
        self.amount = amount
        self.reason = reason
        super().__init__(
            f"Invalid amount {amount} for {transaction_type}: {reason}"
        )


class TransactionTypeMismatchError(ValidationError):
    """Transaction type belongs to the other ledger kind."""

    code: str = "TRANSACTION_TYPE_MISMATCH"

    def __init__(self, account_id: str, account_kind: str, transaction_type: str):
        self.account_id = account_id
        self.account_kind = account_kind
        self.transaction_type = transaction_type
        super().__init__(
            f"Transaction type {transaction_type} cannot be recorded on "
            f"{account_kind} account {account_id}"
        )


class InvalidThresholdsError(ValidationError):
    """Stock thresholds are negative or inverted."""

    code: str = "INVALID_THRESHOLDS"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid stock thresholds: {reason}")


class InvalidPageError(ValidationError):
    """Requested page or page size is out of range."""

    code: str = "INVALID_PAGE"

    def __init__(self, page: int, page_size: int, max_page_size: int):
        self.page = page
        self.page_size = page_size
        self.max_page_size = max_page_size
        super().__init__(
            f"Invalid page request: page={page}, page_size={page_size} "
            f"(page >= 1, 1 <= page_size <= {max_page_size})"
        )


class InvalidDueDateError(ValidationError):
    """Due date supplied for a transaction type that cannot fall due."""

    code: str = "INVALID_DUE_DATE"

    def __init__(self, transaction_type: str):
        self.transaction_type = transaction_type
        super().__init__(
            f"Due date is only allowed on debit-side financial entries, "
            f"not {transaction_type}"
        )


# Lookup exceptions


class NotFoundError(LedgerEngineError):
    """Base exception for unknown entities."""

    code: str = "NOT_FOUND"


class AccountNotFoundError(NotFoundError):
    """Account was not found."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class AccountAlreadyExistsError(LedgerEngineError):
    """An account with the same external key already exists."""

    code: str = "ACCOUNT_ALREADY_EXISTS"

    def __init__(self, account_key: str):
        self.account_key = account_key
        super().__init__(f"Account already exists: {account_key}")


# Stock exceptions


class StockError(LedgerEngineError):
    """Base exception for inventory-specific rejections."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """Stock decrease would take the quantity below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        account_id: str,
        available: Decimal,
        requested: Decimal,
        transaction_type: str,
    ):
        self.account_id = account_id
        self.available = available
        self.requested = requested
        self.transaction_type = transaction_type
        super().__init__(
            f"Insufficient stock on {account_id} for {transaction_type}: "
            f"available {available}, requested {requested}"
        )


# Consistency exceptions


class ConsistencyViolationError(LedgerEngineError):
    """
    Base exception for ledger consistency violations.

    Never retried automatically.  Indicates a concurrency or logic bug
    upstream; the affected account is placed on hold.
    """

    code: str = "CONSISTENCY_VIOLATION"


class BalanceDriftError(ConsistencyViolationError):
    """Incrementally maintained balance diverges from a full recompute."""

    code: str = "BALANCE_DRIFT"

    def __init__(
        self,
        account_id: str,
        cached_balance: Decimal,
        recomputed_balance: Decimal,
        cached_seq: int,
        latest_seq: int,
    ):
        self.account_id = account_id
        self.cached_balance = cached_balance
        self.recomputed_balance = recomputed_balance
        self.cached_seq = cached_seq
        self.latest_seq = latest_seq
        super().__init__(
            f"Balance drift on account {account_id}: cached {cached_balance} "
            f"(seq {cached_seq}), recomputed {recomputed_balance} "
            f"(seq {latest_seq})"
        )


class ChainBrokenError(ConsistencyViolationError):
    """An entry breaks the prefix-sum or gap-free sequence invariant."""

    code: str = "CHAIN_BROKEN"

    def __init__(
        self,
        account_id: str,
        seq: int,
        expected: str,
        actual: str,
    ):
        self.account_id = account_id
        self.seq = seq
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Ledger chain broken on account {account_id} at seq {seq}: "
            f"expected {expected}, found {actual}"
        )


class AccountOnHoldError(ConsistencyViolationError):
    """Writes to the account are halted pending investigation."""

    code: str = "ACCOUNT_ON_HOLD"

    def __init__(self, account_id: str, hold_reason: str | None):
        self.account_id = account_id
        self.hold_reason = hold_reason
        super().__init__(
            f"Account {account_id} is on hold: {hold_reason or 'no reason given'}"
        )


# Concurrency exceptions


class ConcurrencyError(LedgerEngineError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """Another writer appended to the account between read and write."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, account_id: str, expected_seq: int):
        self.account_id = account_id
        self.expected_seq = expected_seq
        super().__init__(
            f"Concurrent modification on account {account_id}: "
            f"expected last seq {expected_seq}"
        )


class RecordRetryExhaustedError(ConcurrencyError):
    """Concurrent modification persisted through every retry."""

    code: str = "RECORD_RETRY_EXHAUSTED"

    def __init__(self, account_id: str, attempts: int):
        self.account_id = account_id
        self.attempts = attempts
        super().__init__(
            f"Could not record on account {account_id} after {attempts} attempts"
        )


class AccountLockTimeoutError(ConcurrencyError):
    """The per-account write lock was not acquired in time."""

    code: str = "ACCOUNT_LOCK_TIMEOUT"

    def __init__(self, account_id: str, timeout_seconds: float):
        self.account_id = account_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Timed out after {timeout_seconds}s waiting for account {account_id}"
        )


# Immutability exceptions


class ImmutabilityViolationError(LedgerEngineError):
    """Attempted to modify or delete an immutable ledger entry."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
