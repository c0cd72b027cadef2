"""
ledger_services.ledger_engine -- external facade and dependency wiring.

Responsibility:
    Constructs the recorder, query service, reconciliation service and the
    shared per-account lock registry exactly once, and exposes the
    operations external collaborators call.  Recorder and reconciliation
    share one AccountLockRegistry so they exclude each other per account.

Architecture position:
    Services -- top of the service layer.  The only place the engine's
    services are constructed and composed.

Usage:
    engine = LedgerEngine.from_settings()

    supplier = engine.open_account("supplier:42", LedgerKind.FINANCIAL,
                                   "Acme Steel", actor_id)
    engine.record(supplier.id, TransactionType.PURCHASE, Decimal("1000"),
                  occurred_at, {"due_date": date(2024, 2, 1)})
    engine.summary(supplier.id).status          # PaymentStatus.PENDING
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_config import EngineSettings, get_engine_settings
from ledger_config.schema import InventoryDefaults, QuerySettings, RecorderSettings
from ledger_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import AccountDTO, LedgerEntryDTO, StockThresholds
from ledger_kernel.domain.status import OpenItem
from ledger_kernel.domain.transaction_types import LedgerKind, TransactionType
from ledger_kernel.logging_config import get_logger
from ledger_kernel.selectors.ledger_selector import (
    AccountSummary,
    HistoryPage,
    ListingFilter,
    PaymentReport,
    StatusListing,
)
from ledger_kernel.services.account_service import AccountService
from ledger_services.account_locks import AccountLockRegistry
from ledger_services.query_service import LedgerQueryService
from ledger_services.reconciliation_service import (
    ReconciliationResult,
    ReconciliationService,
)
from ledger_services.transaction_recorder import TransactionRecorder

logger = get_logger("services.ledger_engine")


class LedgerEngine:
    """Facade over the ledger: record, query, administer, reconcile."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        recorder_settings: RecorderSettings | None = None,
        query_settings: QuerySettings | None = None,
        inventory_defaults: InventoryDefaults | None = None,
    ):
        recorder_settings = recorder_settings or RecorderSettings()
        query_settings = query_settings or QuerySettings()
        inventory_defaults = inventory_defaults or InventoryDefaults()

        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._default_thresholds = StockThresholds(
            minimum_stock_level=inventory_defaults.minimum_stock_level,
            maximum_stock_level=inventory_defaults.maximum_stock_level,
            reorder_point=inventory_defaults.reorder_point,
        )

        register_immutability_listeners()

        self.locks = AccountLockRegistry(recorder_settings.lock_timeout_seconds)
        self.recorder = TransactionRecorder(
            session_factory,
            locks=self.locks,
            clock=self._clock,
            max_retries=recorder_settings.max_record_retries,
            retry_backoff_seconds=recorder_settings.retry_backoff_seconds,
        )
        self.queries = LedgerQueryService(
            session_factory,
            clock=self._clock,
            default_page_size=query_settings.default_page_size,
            max_page_size=query_settings.max_page_size,
        )
        self.reconciliation = ReconciliationService(
            session_factory,
            locks=self.locks,
            clock=self._clock,
        )

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        create_schema: bool = True,
    ) -> LedgerEngine:
        """Initialize the database engine from configuration and wire a facade."""
        settings = settings or get_engine_settings()
        db = settings.database
        init_engine_from_url(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
        )
        if create_schema:
            create_tables()
        logger.info("ledger_engine_ready", extra={"config_checksum": settings.checksum})
        return cls(
            get_session_factory(),
            clock=clock,
            recorder_settings=settings.recorder,
            query_settings=settings.queries,
            inventory_defaults=settings.inventory,
        )

    def _write(self, fn: Callable[[AccountService], AccountDTO]) -> AccountDTO:
        session = self._session_factory()
        try:
            result = fn(AccountService(session, self._default_thresholds))
            session.commit()
            return result
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _read(self, fn: Callable[[AccountService], Any]) -> Any:
        session = self._session_factory()
        try:
            return fn(AccountService(session, self._default_thresholds))
        finally:
            session.rollback()
            session.close()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

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
        return self.recorder.record(
            account_id,
            transaction_type,
            amount,
            occurred_at,
            metadata,
            allow_backorder=allow_backorder,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def history(
        self,
        account_id: UUID,
        page: int = 1,
        page_size: int | None = None,
        **filters: Any,
    ) -> HistoryPage:
        return self.queries.history(account_id, page, page_size, **filters)

    def summary(self, account_id: UUID | None = None) -> AccountSummary | list[AccountSummary]:
        return self.queries.summary(account_id)

    def overdue_or_low_stock(self, listing_filter: ListingFilter | None = None) -> list[StatusListing]:
        return self.queries.overdue_or_low_stock(listing_filter)

    def payment_report(
        self,
        date_from: date,
        date_to: date,
        account_id: UUID | None = None,
    ) -> PaymentReport:
        return self.queries.payment_report(date_from, date_to, account_id)

    def open_items(self, account_id: UUID) -> list[OpenItem]:
        return self.queries.open_items(account_id)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def open_account(
        self,
        account_key: str,
        kind: LedgerKind,
        name: str,
        actor_id: UUID,
        thresholds: StockThresholds | None = None,
    ) -> AccountDTO:
        return self._write(
            lambda accounts: accounts.open_account(
                account_key, kind, name, actor_id, thresholds
            )
        )

    def get_account(self, account_id: UUID) -> AccountDTO:
        return self._read(lambda accounts: accounts.get(account_id))

    def find_account(self, account_key: str) -> AccountDTO | None:
        return self._read(lambda accounts: accounts.find_by_key(account_key))

    def list_accounts(self, kind: LedgerKind | None = None) -> list[AccountDTO]:
        return self._read(lambda accounts: accounts.list_accounts(kind))

    def update_thresholds(self, account_id: UUID, thresholds: StockThresholds) -> AccountDTO:
        return self._write(
            lambda accounts: accounts.update_thresholds(account_id, thresholds)
        )

    def release_hold(self, account_id: UUID, actor_id: UUID | None = None) -> AccountDTO:
        """Resume writes once an operator has investigated the fault."""
        with self.locks.hold(account_id):
            return self._write(
                lambda accounts: accounts.release_hold(account_id, actor_id)
            )

    def reconcile(self, account_id: UUID, strict: bool = False) -> ReconciliationResult:
        return self.reconciliation.reconcile(account_id, strict=strict)

    def reconcile_all(self) -> list[ReconciliationResult]:
        return self.reconciliation.reconcile_all()
