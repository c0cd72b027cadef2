"""
Tests for the read side: history, summaries, listings and reports.

Covers:
- history(): status after each entry, paging, filters, ordering
- summary(): totals, counts, OVERDUE derived from the clock at query time
- overdue_or_low_stock(): both kinds, kind filter, include_reorder
- payment_report(), open_items()
- Reads are idempotent and never write
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import StockThresholds
from ledger_kernel.domain.status import PaymentStatus, StockStatus
from ledger_kernel.domain.transaction_types import LedgerKind, TransactionType
from ledger_kernel.exceptions import AccountNotFoundError, InvalidPageError, ValidationError
from ledger_kernel.selectors.ledger_selector import ListingFilter
from ledger_kernel.services.entry_store import EntryOrder

P = TransactionType.PURCHASE
PAY = TransactionType.PAYMENT


def at(day, hour=9):
    return datetime(2024, 1, day, hour, 0, tzinfo=timezone.utc)


@pytest.fixture
def busy_supplier(ledger, supplier):
    """Seven entries across January, with references and descriptions."""
    ledger.record(supplier.id, P, 1000, at(2), {"reference": "INV-001", "description": "Rebar"})
    ledger.record(supplier.id, PAY, 300, at(3), {"reference": "PAY-001"})
    ledger.record(supplier.id, P, 200, at(5), {"reference": "INV-002", "description": "Cement 50% mix"})
    ledger.record(supplier.id, PAY, 100, at(6), {"reference": "PAY-002"})
    ledger.record(supplier.id, TransactionType.ADJUSTMENT_CREDIT, 50, at(7), {"description": "Damaged rebar"})
    ledger.record(supplier.id, P, 75, at(9), {"reference": "INV-003"})
    ledger.record(supplier.id, PAY, 25, at(11), {"reference": "PAY-003"})
    return supplier


class TestHistoryStatus:
    def test_purchase_partial_paid(self, ledger, supplier):
        ledger.record(supplier.id, P, Decimal("1000"), at(1), {"due_date": date(2024, 2, 1)})
        ledger.record(supplier.id, PAY, Decimal("600"), at(5))

        page = ledger.history(supplier.id)
        assert [e.status for e in page.entries] == [PaymentStatus.PENDING, PaymentStatus.PARTIAL]
        assert ledger.summary(supplier.id).status == PaymentStatus.PARTIAL

        ledger.record(supplier.id, PAY, Decimal("400"), at(10))
        page = ledger.history(supplier.id)
        assert page.entries[-1].status == PaymentStatus.PAID
        assert page.entries[-1].balance_after == Decimal("0")

    def test_empty_account_history(self, ledger, supplier):
        page = ledger.history(supplier.id)
        assert page.entries == ()
        assert page.total_count == 0
        assert page.total_pages == 1
        assert not page.has_next
        assert ledger.summary(supplier.id).status == PaymentStatus.NO_ACTIVITY

    def test_inventory_history_status_and_reorder(self, ledger, material):
        ledger.record(material.id, TransactionType.RESTOCK, 100, at(1))
        ledger.record(material.id, TransactionType.ISSUE, 76, at(2))
        ledger.record(material.id, TransactionType.ISSUE, 10, at(3))
        ledger.record(material.id, TransactionType.RESTOCK, 1000, at(4))

        entries = ledger.history(material.id).entries
        assert [e.status for e in entries] == [
            StockStatus.NORMAL, StockStatus.NORMAL, StockStatus.LOW, StockStatus.HIGH,
        ]
        assert [e.reorder_required for e in entries] == [False, True, True, False]

    def test_filtered_page_keeps_full_chain_status(self, ledger, busy_supplier):
        payments = ledger.history(busy_supplier.id, transaction_type=PAY).entries
        assert [e.entry.seq for e in payments] == [2, 4, 7]
        assert all(e.status == PaymentStatus.PARTIAL for e in payments[:2])
        # seq 7 follows the seq 6 purchase of 75, then a payment of 25
        assert payments[2].status == PaymentStatus.PARTIAL

    def test_unknown_account(self, ledger):
        with pytest.raises(AccountNotFoundError):
            ledger.history(uuid4())


class TestHistoryPaging:
    def test_pages(self, ledger, busy_supplier):
        first = ledger.history(busy_supplier.id, page=1, page_size=3)
        last = ledger.history(busy_supplier.id, page=3, page_size=3)

        assert [e.entry.seq for e in first.entries] == [1, 2, 3]
        assert first.total_count == 7
        assert first.total_pages == 3
        assert first.has_next
        assert [e.entry.seq for e in last.entries] == [7]
        assert not last.has_next

    def test_page_past_end_is_empty(self, ledger, busy_supplier):
        page = ledger.history(busy_supplier.id, page=5, page_size=3)
        assert page.entries == ()
        assert page.total_count == 7

    @pytest.mark.parametrize("page,page_size", [(0, 10), (1, 0), (1, 101), (-1, 5)])
    def test_invalid_page(self, ledger, busy_supplier, page, page_size):
        with pytest.raises(InvalidPageError):
            ledger.history(busy_supplier.id, page=page, page_size=page_size)

    def test_default_page_size(self, ledger, busy_supplier):
        assert ledger.history(busy_supplier.id).page_size == 50

    def test_newest_first(self, ledger, busy_supplier):
        page = ledger.history(busy_supplier.id, page_size=2, newest_first=True)
        assert [e.entry.seq for e in page.entries] == [7, 6]


class TestHistoryFilters:
    def test_date_range_inclusive(self, ledger, busy_supplier):
        page = ledger.history(
            busy_supplier.id, date_from=date(2024, 1, 3), date_to=date(2024, 1, 6)
        )
        assert [e.entry.seq for e in page.entries] == [2, 3, 4]

    def test_inverted_date_range(self, ledger, busy_supplier):
        with pytest.raises(ValidationError):
            ledger.history(
                busy_supplier.id, date_from=date(2024, 1, 9), date_to=date(2024, 1, 1)
            )

    def test_search_is_case_insensitive_over_reference_and_description(
        self, ledger, busy_supplier
    ):
        page = ledger.history(busy_supplier.id, search="REBAR")
        assert [e.entry.seq for e in page.entries] == [1, 5]
        page = ledger.history(busy_supplier.id, search="pay-00")
        assert [e.entry.seq for e in page.entries] == [2, 4, 7]

    def test_search_treats_wildcards_literally(self, ledger, busy_supplier):
        page = ledger.history(busy_supplier.id, search="50%")
        assert [e.entry.seq for e in page.entries] == [3]

    def test_unknown_type_filter(self, ledger, busy_supplier):
        with pytest.raises(ValidationError):
            ledger.history(busy_supplier.id, transaction_type="ISSUE_ALL")

    def test_backdated_entry_in_occurred_order(self, ledger, supplier):
        ledger.record(supplier.id, P, 100, at(10))
        ledger.record(supplier.id, P, 50, at(4))

        by_seq = ledger.history(supplier.id)
        by_date = ledger.history(supplier.id, order=EntryOrder.OCCURRED)
        assert [e.entry.seq for e in by_seq.entries] == [1, 2]
        assert [e.entry.seq for e in by_date.entries] == [2, 1]
        # balance_after follows seq, not business date
        assert by_date.entries[0].balance_after == Decimal("150")


class TestSummary:
    def test_totals(self, ledger, busy_supplier):
        summary = ledger.summary(busy_supplier.id)

        assert summary.total_debits == Decimal("1275")
        assert summary.total_credits == Decimal("475")
        assert summary.balance == Decimal("800")
        assert summary.entry_count == 7
        assert summary.last_transaction_at == at(11)
        assert summary.kind is LedgerKind.FINANCIAL
        assert summary.reorder_required is None

    def test_last_transaction_is_latest_business_date(self, ledger, supplier):
        ledger.record(supplier.id, P, 100, at(10))
        ledger.record(supplier.id, P, 50, at(4))
        assert ledger.summary(supplier.id).last_transaction_at == at(10)

    def test_summary_of_all_accounts(self, ledger, supplier, material):
        summaries = ledger.summary()
        assert {s.account_id for s in summaries} == {supplier.id, material.id}

    def test_inventory_summary(self, ledger, material):
        assert ledger.summary(material.id).status == StockStatus.NO_ACTIVITY
        ledger.record(material.id, TransactionType.RESTOCK, 15, at(1))
        summary = ledger.summary(material.id)
        assert summary.status == StockStatus.LOW
        assert summary.reorder_required
        assert summary.overdue_count == 0

    def test_threshold_change_applies_on_next_read(self, ledger, material):
        ledger.record(material.id, TransactionType.RESTOCK, 15, at(1))
        ledger.update_thresholds(
            material.id, StockThresholds(Decimal("5"), Decimal("10"), Decimal("0"))
        )
        assert ledger.summary(material.id).status == StockStatus.HIGH

    def test_reads_are_idempotent(self, ledger, busy_supplier):
        assert ledger.summary(busy_supplier.id) == ledger.summary(busy_supplier.id)
        assert ledger.history(busy_supplier.id) == ledger.history(busy_supplier.id)
        assert ledger.get_account(busy_supplier.id).last_seq == 7


class TestOverdueAtQueryTime:
    def test_overdue_emerges_without_writes(self, ledger, supplier, clock):
        ledger.record(supplier.id, P, 1000, at(10), {"due_date": date(2024, 1, 20)})

        assert ledger.summary(supplier.id).status == PaymentStatus.PENDING
        assert ledger.overdue_or_low_stock() == []

        clock.advance_days(10)  # 2024-01-25

        summary = ledger.summary(supplier.id)
        assert summary.status == PaymentStatus.OVERDUE
        assert summary.overdue_count == 1
        assert ledger.history(supplier.id).entries[0].status == PaymentStatus.OVERDUE

        listings = ledger.overdue_or_low_stock()
        assert len(listings) == 1
        assert listings[0].account.id == supplier.id
        assert listings[0].overdue_amount == Decimal("1000")
        assert listings[0].oldest_due_date == date(2024, 1, 20)
        assert ledger.get_account(supplier.id).last_seq == 1

    def test_paying_clears_overdue(self, ledger, supplier, clock):
        ledger.record(supplier.id, P, 1000, at(1), {"due_date": date(2024, 1, 5)})
        assert ledger.summary(supplier.id).status == PaymentStatus.OVERDUE

        ledger.record(supplier.id, PAY, 1000, at(15))
        assert ledger.summary(supplier.id).status == PaymentStatus.PAID
        assert ledger.overdue_or_low_stock() == []

    def test_listing_as_of_override(self, ledger, supplier):
        ledger.record(supplier.id, P, 500, at(1), {"due_date": date(2024, 3, 1)})
        assert ledger.overdue_or_low_stock(ListingFilter(as_of=date(2024, 3, 2)))
        assert not ledger.overdue_or_low_stock(ListingFilter(as_of=date(2024, 3, 1)))

    def test_open_items(self, ledger, supplier):
        ledger.record(supplier.id, P, 500, at(1), {"due_date": date(2024, 1, 5)})
        ledger.record(supplier.id, P, 300, at(2), {"due_date": date(2024, 2, 1)})
        ledger.record(supplier.id, PAY, 600, at(3))

        items = ledger.open_items(supplier.id)
        assert [(i.seq, i.outstanding) for i in items] == [(2, Decimal("200"))]

    def test_open_items_empty_for_inventory(self, ledger, material):
        ledger.record(material.id, TransactionType.RESTOCK, 5, at(1))
        assert ledger.open_items(material.id) == []


class TestLowStockListing:
    def test_low_and_reorder(self, ledger, test_actor_id):
        thresholds = StockThresholds(Decimal("20"), Decimal("1000"), Decimal("25"))
        low = ledger.open_account("m:low", LedgerKind.INVENTORY, "Low", test_actor_id, thresholds)
        reorder = ledger.open_account("m:reorder", LedgerKind.INVENTORY, "Re", test_actor_id, thresholds)
        fine = ledger.open_account("m:fine", LedgerKind.INVENTORY, "Fine", test_actor_id, thresholds)
        ledger.open_account("m:unused", LedgerKind.INVENTORY, "Unused", test_actor_id, thresholds)
        ledger.record(low.id, TransactionType.RESTOCK, 15, at(1))
        ledger.record(reorder.id, TransactionType.RESTOCK, 24, at(1))
        ledger.record(fine.id, TransactionType.RESTOCK, 500, at(1))

        listed = {item.account.account_key: item for item in ledger.overdue_or_low_stock()}
        assert set(listed) == {"m:low", "m:reorder"}
        assert listed["m:low"].status == StockStatus.LOW
        assert listed["m:reorder"].status == StockStatus.NORMAL
        assert listed["m:reorder"].reorder_required

        without_reorder = ledger.overdue_or_low_stock(ListingFilter(include_reorder=False))
        assert [item.account.account_key for item in without_reorder] == ["m:low"]

    def test_kind_filter(self, ledger, supplier, material):
        ledger.record(supplier.id, P, 10, at(1), {"due_date": date(2024, 1, 2)})
        ledger.record(material.id, TransactionType.RESTOCK, 1, at(1))

        financial = ledger.overdue_or_low_stock(ListingFilter(kind=LedgerKind.FINANCIAL))
        inventory = ledger.overdue_or_low_stock(ListingFilter(kind=LedgerKind.INVENTORY))
        assert [item.account.id for item in financial] == [supplier.id]
        assert [item.account.id for item in inventory] == [material.id]
        assert len(ledger.overdue_or_low_stock()) == 2


class TestPaymentReport:
    def test_range_and_total(self, ledger, busy_supplier):
        report = ledger.payment_report(date(2024, 1, 3), date(2024, 1, 10))
        assert [p.seq for p in report.payments] == [2, 4]
        assert report.total == Decimal("400")
        assert report.count == 2

    def test_filtered_by_account(self, ledger, busy_supplier, test_actor_id):
        other = ledger.open_account("supplier:other", LedgerKind.FINANCIAL, "O", test_actor_id)
        ledger.record(other.id, P, 100, at(2))
        ledger.record(other.id, PAY, 100, at(4))

        everyone = ledger.payment_report(date(2024, 1, 1), date(2024, 1, 31))
        only_other = ledger.payment_report(date(2024, 1, 1), date(2024, 1, 31), other.id)
        assert everyone.count == 4
        assert only_other.count == 1
        assert only_other.total == Decimal("100")

    def test_inverted_range(self, ledger):
        with pytest.raises(ValidationError):
            ledger.payment_report(date(2024, 2, 1), date(2024, 1, 1))

    def test_empty_range(self, ledger, busy_supplier):
        report = ledger.payment_report(date(2023, 1, 1), date(2023, 12, 31))
        assert report.payments == ()
        assert report.total == Decimal("0")
