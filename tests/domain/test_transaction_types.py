"""
Tests for the transaction type sign table.

Verifies:
- Every type maps the caller's magnitude to the documented signed delta
- Amount rules (positive / non-negative / any) are enforced
- Floats and non-numbers are refused
- Types are partitioned between the two ledger kinds
"""

from decimal import Decimal

import pytest

from ledger_kernel.domain.transaction_types import (
    LedgerKind,
    TransactionType,
    rule_for,
    signed_delta,
    types_for,
)
from ledger_kernel.exceptions import InvalidAmountError


class TestSignConvention:
    @pytest.mark.parametrize(
        "transaction_type,amount,expected",
        [
            (TransactionType.PURCHASE, "1000", Decimal("1000")),
            (TransactionType.PAYMENT, "600", Decimal("-600")),
            (TransactionType.ADJUSTMENT_CREDIT, "25.50", Decimal("-25.50")),
            (TransactionType.ADJUSTMENT_DEBIT, "10", Decimal("10")),
            (TransactionType.ISSUE, "40", Decimal("-40")),
            (TransactionType.CONSUMPTION, "3", Decimal("-3")),
            (TransactionType.RETURN, "5", Decimal("5")),
            (TransactionType.RESTOCK, "100", Decimal("100")),
            (TransactionType.ADJUSTMENT, "-7", Decimal("-7")),
            (TransactionType.ADJUSTMENT, "7", Decimal("7")),
        ],
    )
    def test_signed_delta(self, transaction_type, amount, expected):
        assert signed_delta(transaction_type, Decimal(amount)) == expected

    def test_accepts_string_type_and_int_amount(self):
        assert signed_delta("PAYMENT", 250) == Decimal("-250")

    def test_zero_adjustments_allowed(self):
        assert signed_delta(TransactionType.ADJUSTMENT, 0) == 0
        assert signed_delta(TransactionType.ADJUSTMENT_CREDIT, 0) == 0
        assert signed_delta(TransactionType.ADJUSTMENT_DEBIT, 0) == 0


class TestAmountRules:
    @pytest.mark.parametrize(
        "transaction_type",
        [
            TransactionType.PURCHASE,
            TransactionType.PAYMENT,
            TransactionType.ISSUE,
            TransactionType.CONSUMPTION,
            TransactionType.RETURN,
            TransactionType.RESTOCK,
        ],
    )
    @pytest.mark.parametrize("amount", ["0", "-1"])
    def test_positive_types_reject_zero_and_negative(self, transaction_type, amount):
        with pytest.raises(InvalidAmountError) as exc_info:
            signed_delta(transaction_type, Decimal(amount))
        assert exc_info.value.code == "INVALID_AMOUNT"
        assert exc_info.value.transaction_type == transaction_type.value

    @pytest.mark.parametrize(
        "transaction_type",
        [TransactionType.ADJUSTMENT_CREDIT, TransactionType.ADJUSTMENT_DEBIT],
    )
    def test_notes_reject_negative(self, transaction_type):
        with pytest.raises(InvalidAmountError):
            signed_delta(transaction_type, Decimal("-1"))

    def test_float_refused(self):
        with pytest.raises(InvalidAmountError, match="Decimal, int or str"):
            signed_delta(TransactionType.PURCHASE, 10.5)

    def test_bool_refused(self):
        with pytest.raises(InvalidAmountError):
            signed_delta(TransactionType.PURCHASE, True)

    @pytest.mark.parametrize("amount", ["abc", "NaN", "Infinity"])
    def test_non_numbers_refused(self, amount):
        with pytest.raises(InvalidAmountError):
            signed_delta(TransactionType.PURCHASE, amount)

    @pytest.mark.parametrize("amount", ["0.0000000001", "12.3456789012"])
    def test_amounts_finer_than_storage_scale_refused(self, amount):
        with pytest.raises(InvalidAmountError, match="decimal places"):
            signed_delta(TransactionType.PAYMENT, amount)

    def test_nine_places_and_trailing_zeros_accepted(self):
        assert signed_delta(TransactionType.PAYMENT, "0.000000001") == Decimal("-0.000000001")
        assert signed_delta(TransactionType.PURCHASE, "1.500000000000") == Decimal("1.5")

    def test_unknown_type_raises_value_error(self):
        with pytest.raises(ValueError):
            rule_for("REFUND")


class TestKinds:
    def test_types_partitioned_by_kind(self):
        financial = set(types_for(LedgerKind.FINANCIAL))
        inventory = set(types_for(LedgerKind.INVENTORY))
        assert financial == {
            TransactionType.PURCHASE,
            TransactionType.PAYMENT,
            TransactionType.ADJUSTMENT_CREDIT,
            TransactionType.ADJUSTMENT_DEBIT,
        }
        assert financial.isdisjoint(inventory)
        assert financial | inventory == set(TransactionType)

    def test_only_debit_side_financial_types_carry_due_dates(self):
        carriers = {t for t in TransactionType if rule_for(t).may_carry_due_date}
        assert carriers == {TransactionType.PURCHASE, TransactionType.ADJUSTMENT_DEBIT}
