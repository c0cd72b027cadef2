"""
Transaction types -- closed enumeration with an explicit sign convention table.

Responsibility:
    Defines the two ledger kinds, the closed set of transaction types and,
    for every type, the single rule that turns a caller-supplied amount into
    the signed delta stored on the entry.  No call site infers a sign from a
    string comparison; every sign decision goes through ``signed_delta``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Sign convention:
    FINANCIAL balance = amount owed to the supplier.
        PURCHASE           +amount   amount > 0
        PAYMENT            -amount   amount > 0
        ADJUSTMENT_CREDIT  -amount   amount >= 0   (credit note)
        ADJUSTMENT_DEBIT   +amount   amount >= 0   (debit note)
    INVENTORY balance = quantity on hand.
        ISSUE              -qty      qty > 0
        CONSUMPTION        -qty      qty > 0
        RETURN             +qty      qty > 0
        RESTOCK            +qty      qty > 0
        ADJUSTMENT         qty as given, any sign, zero allowed

Failure modes:
    - InvalidAmountError when an amount breaks its type's rule.
    - InvalidAmountError when an amount is finer than the storage scale.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum

from ledger_kernel.exceptions import InvalidAmountError

# Scale of the Numeric(38, 9) amount columns.
AMOUNT_SCALE = 9


class LedgerKind(str, Enum):
    """Which ledger an account keeps."""

    FINANCIAL = "financial"
    INVENTORY = "inventory"


class TransactionType(str, Enum):
    """Closed set of ledger transaction types."""

    # Financial
    PURCHASE = "PURCHASE"
    PAYMENT = "PAYMENT"
    ADJUSTMENT_CREDIT = "ADJUSTMENT_CREDIT"
    ADJUSTMENT_DEBIT = "ADJUSTMENT_DEBIT"

    # Inventory
    ISSUE = "ISSUE"
    RETURN = "RETURN"
    RESTOCK = "RESTOCK"
    CONSUMPTION = "CONSUMPTION"
    ADJUSTMENT = "ADJUSTMENT"


class SignRule(str, Enum):
    """How the supplied amount maps to the stored delta."""

    INCREASE = "increase"
    DECREASE = "decrease"
    AS_GIVEN = "as_given"


class AmountRule(str, Enum):
    """Which supplied amounts are acceptable."""

    POSITIVE = "positive"
    NON_NEGATIVE = "non_negative"
    ANY = "any"


@dataclass(frozen=True)
class TransactionRule:
    """Sign convention for one transaction type."""

    transaction_type: TransactionType
    kind: LedgerKind
    sign: SignRule
    amount: AmountRule
    may_carry_due_date: bool = False


_RULES: dict[TransactionType, TransactionRule] = {
    rule.transaction_type: rule
    for rule in (
        TransactionRule(
            TransactionType.PURCHASE, LedgerKind.FINANCIAL,
            SignRule.INCREASE, AmountRule.POSITIVE, may_carry_due_date=True,
        ),
        TransactionRule(
            TransactionType.PAYMENT, LedgerKind.FINANCIAL,
            SignRule.DECREASE, AmountRule.POSITIVE,
        ),
        TransactionRule(
            TransactionType.ADJUSTMENT_CREDIT, LedgerKind.FINANCIAL,
            SignRule.DECREASE, AmountRule.NON_NEGATIVE,
        ),
        TransactionRule(
            TransactionType.ADJUSTMENT_DEBIT, LedgerKind.FINANCIAL,
            SignRule.INCREASE, AmountRule.NON_NEGATIVE, may_carry_due_date=True,
        ),
        TransactionRule(
            TransactionType.ISSUE, LedgerKind.INVENTORY,
            SignRule.DECREASE, AmountRule.POSITIVE,
        ),
        TransactionRule(
            TransactionType.CONSUMPTION, LedgerKind.INVENTORY,
            SignRule.DECREASE, AmountRule.POSITIVE,
        ),
        TransactionRule(
            TransactionType.RETURN, LedgerKind.INVENTORY,
            SignRule.INCREASE, AmountRule.POSITIVE,
        ),
        TransactionRule(
            TransactionType.RESTOCK, LedgerKind.INVENTORY,
            SignRule.INCREASE, AmountRule.POSITIVE,
        ),
        TransactionRule(
            TransactionType.ADJUSTMENT, LedgerKind.INVENTORY,
            SignRule.AS_GIVEN, AmountRule.ANY,
        ),
    )
}


def rule_for(transaction_type: TransactionType | str) -> TransactionRule:
    """Look up the sign rule for a transaction type.

    Raises:
        ValueError: If the string is not a known transaction type.
    """
    return _RULES[TransactionType(transaction_type)]


def types_for(kind: LedgerKind) -> tuple[TransactionType, ...]:
    """All transaction types that may be recorded on a ledger kind."""
    return tuple(t for t, rule in _RULES.items() if rule.kind == kind)


def to_decimal(value: Decimal | int | str, transaction_type: TransactionType) -> Decimal:
    """Coerce an amount to Decimal.  Floats are refused outright."""
    if isinstance(value, float) or isinstance(value, bool):
        raise InvalidAmountError(
            transaction_type.value, repr(value), "amounts must be Decimal, int or str"
        )
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(
            transaction_type.value, repr(value), "not a number"
        ) from None
    if not amount.is_finite():
        raise InvalidAmountError(transaction_type.value, str(amount), "not finite")
    if amount.normalize().as_tuple().exponent < -AMOUNT_SCALE:
        raise InvalidAmountError(
            transaction_type.value,
            str(amount),
            f"more than {AMOUNT_SCALE} decimal places",
        )
    return amount


def signed_delta(
    transaction_type: TransactionType | str,
    amount: Decimal | int | str,
) -> Decimal:
    """
    Apply the sign convention for ``transaction_type`` to ``amount``.

    Preconditions:
        - ``amount`` is a magnitude, except for inventory ADJUSTMENT where
          it is the signed quantity change.

    Returns:
        The signed delta to store on the entry.

    Raises:
        InvalidAmountError: If the amount breaks the type's rule.
    """
    rule = rule_for(transaction_type)
    value = to_decimal(amount, rule.transaction_type)

    if rule.amount is AmountRule.POSITIVE and value <= 0:
        raise InvalidAmountError(
            rule.transaction_type.value, str(value), "must be greater than zero"
        )
    if rule.amount is AmountRule.NON_NEGATIVE and value < 0:
        raise InvalidAmountError(
            rule.transaction_type.value, str(value), "must not be negative"
        )

    if rule.sign is SignRule.DECREASE:
        return -value
    return value
