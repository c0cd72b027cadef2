"""
Tests for ReconciliationService -- cache versus full replay.

Corruption is injected with Core UPDATE statements, which bypass the ORM
immutability listeners the way a stray manual SQL fix would.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from ledger_kernel.domain.transaction_types import TransactionType
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    AccountOnHoldError,
    BalanceDriftError,
    ChainBrokenError,
)
from ledger_kernel.models.account import LedgerAccount
from ledger_kernel.models.entry import LedgerEntry

OCCURRED = datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc)


def _tamper_entry(db_engine, account_id, seq, **values):
    table = LedgerEntry.__table__
    with db_engine.begin() as conn:
        conn.execute(
            update(table)
            .where(table.c.account_id == account_id, table.c.seq == seq)
            .values(**values)
        )


def _tamper_account(db_engine, account_id, **values):
    table = LedgerAccount.__table__
    with db_engine.begin() as conn:
        conn.execute(update(table).where(table.c.id == account_id).values(**values))


@pytest.fixture
def paid_supplier(ledger, supplier):
    ledger.record(supplier.id, TransactionType.PURCHASE, Decimal("1000"), OCCURRED)
    ledger.record(supplier.id, TransactionType.PAYMENT, Decimal("600"), OCCURRED)
    ledger.record(supplier.id, TransactionType.PAYMENT, Decimal("400"), OCCURRED)
    return supplier


class TestReconcileConsistent:
    def test_clean_account(self, ledger, paid_supplier, captured_logs):
        result = ledger.reconcile(paid_supplier.id)

        assert result.is_consistent
        assert result.cache_matches
        assert result.recomputed_balance == Decimal("0")
        assert result.entry_count == 3
        assert result.last_seq == 3
        assert not result.hold_placed
        assert any(r["message"] == "account_reconciled" for r in captured_logs())

    def test_empty_account(self, ledger, supplier):
        result = ledger.reconcile(supplier.id, strict=True)
        assert result.is_consistent
        assert result.entry_count == 0

    def test_unknown_account(self, ledger):
        with pytest.raises(AccountNotFoundError):
            ledger.reconcile(uuid4())


class TestReconcileFaults:
    def test_tampered_balance_after_breaks_chain(self, ledger, paid_supplier, db_engine):
        _tamper_entry(db_engine, paid_supplier.id, 2, balance_after=Decimal("500"))

        result = ledger.reconcile(paid_supplier.id)

        assert not result.is_consistent
        assert result.violation.seq == 2
        assert result.violation.field == "balance_after"
        assert result.hold_placed
        assert ledger.get_account(paid_supplier.id).is_on_hold
        with pytest.raises(AccountOnHoldError):
            ledger.record(paid_supplier.id, TransactionType.PURCHASE, 1, OCCURRED)

    def test_tampered_delta_detected(self, ledger, paid_supplier, db_engine):
        _tamper_entry(db_engine, paid_supplier.id, 1, delta=Decimal("900"))
        result = ledger.reconcile(paid_supplier.id)
        assert result.violation.seq == 1

    def test_stale_cache_detected(self, ledger, paid_supplier, db_engine, captured_logs):
        _tamper_account(db_engine, paid_supplier.id, current_balance=Decimal("50"))

        result = ledger.reconcile(paid_supplier.id)

        assert result.violation is None
        assert not result.cache_matches
        assert result.cached_balance == Decimal("50")
        assert result.recomputed_balance == Decimal("0")
        assert result.hold_placed
        assert any(r["message"] == "reconciliation_mismatch" for r in captured_logs())

    def test_strict_raises_chain_broken(self, ledger, paid_supplier, db_engine):
        _tamper_entry(db_engine, paid_supplier.id, 3, balance_after=Decimal("1"))
        with pytest.raises(ChainBrokenError) as exc_info:
            ledger.reconcile(paid_supplier.id, strict=True)
        assert exc_info.value.seq == 3
        assert ledger.get_account(paid_supplier.id).is_on_hold

    def test_strict_raises_drift(self, ledger, paid_supplier, db_engine):
        _tamper_account(db_engine, paid_supplier.id, last_seq=2)
        with pytest.raises(BalanceDriftError) as exc_info:
            ledger.reconcile(paid_supplier.id, strict=True)
        assert exc_info.value.cached_seq == 2
        assert exc_info.value.latest_seq == 3

    def test_reconciliation_never_edits_entries(self, ledger, paid_supplier, db_engine):
        _tamper_entry(db_engine, paid_supplier.id, 2, balance_after=Decimal("500"))
        ledger.reconcile(paid_supplier.id)
        page = ledger.history(paid_supplier.id)
        assert [e.balance_after for e in page.entries] == [
            Decimal("1000"), Decimal("500"), Decimal("0"),
        ]


class TestReconcileAll:
    def test_reports_every_account(self, ledger, paid_supplier, material, db_engine, captured_logs):
        ledger.record(material.id, TransactionType.RESTOCK, 50, OCCURRED)
        _tamper_account(db_engine, material.id, current_balance=Decimal("49"))

        results = {r.account_id: r for r in ledger.reconcile_all()}

        assert results[paid_supplier.id].is_consistent
        assert not results[material.id].is_consistent
        assert results[material.id].hold_placed

        run = [r for r in captured_logs() if r["message"] == "reconciliation_run_completed"]
        assert run[0]["accounts"] == 2
        assert run[0]["faulty_accounts"] == 1
