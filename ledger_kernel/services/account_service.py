"""
Service layer for ledger accounts.

Opens supplier and inventory accounts, looks them up, edits inventory
thresholds and manages the write hold placed on an account after a
consistency violation.  Returns AccountDTO instances, never ORM rows.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import AccountDTO, StockThresholds
from ledger_kernel.domain.status import validate_thresholds
from ledger_kernel.domain.transaction_types import LedgerKind
from ledger_kernel.exceptions import (
    AccountAlreadyExistsError,
    AccountNotFoundError,
    InvalidThresholdsError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import LedgerAccount
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account")


class AccountService(BaseService[LedgerAccount]):
    """
    Registry of ledger accounts.

    Inventory accounts opened without explicit thresholds receive
    ``default_thresholds``.
    """

    def __init__(
        self,
        session: Session,
        default_thresholds: StockThresholds | None = None,
    ):
        super().__init__(session)
        self._default_thresholds = default_thresholds or StockThresholds()

    def _get_model(self, account_id: UUID) -> LedgerAccount:
        account = self.session.get(LedgerAccount, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def get(self, account_id: UUID) -> AccountDTO:
        """
        Get account by ID.

        Raises:
            AccountNotFoundError: If account doesn't exist.
        """
        return AccountDTO.from_model(self._get_model(account_id))

    def find_by_key(self, account_key: str) -> AccountDTO | None:
        """Find account by external key, returning None if not found."""
        account = self.session.execute(
            select(LedgerAccount).where(LedgerAccount.account_key == account_key)
        ).scalar_one_or_none()
        return AccountDTO.from_model(account) if account else None

    def list_accounts(self, kind: LedgerKind | None = None) -> list[AccountDTO]:
        stmt = select(LedgerAccount)
        if kind is not None:
            stmt = stmt.where(LedgerAccount.kind == kind.value)
        stmt = stmt.order_by(LedgerAccount.account_key)
        return [AccountDTO.from_model(a) for a in self.session.execute(stmt).scalars()]

    def open_account(
        self,
        account_key: str,
        kind: LedgerKind,
        name: str,
        actor_id: UUID,
        thresholds: StockThresholds | None = None,
    ) -> AccountDTO:
        """
        Open a new, empty ledger account.

        Args:
            account_key: Unique external key (e.g. ``supplier:42``).
            kind: FINANCIAL or INVENTORY.
            name: Display name.
            actor_id: Who opened the account.
            thresholds: Inventory thresholds; defaults apply when omitted.

        Raises:
            AccountAlreadyExistsError: If the key is taken.
            InvalidThresholdsError: If thresholds are given for a financial
                account, or are negative or inverted.
        """
        kind = LedgerKind(kind)
        if kind is LedgerKind.FINANCIAL and thresholds is not None:
            raise InvalidThresholdsError("thresholds apply to inventory accounts only")

        if self.find_by_key(account_key) is not None:
            raise AccountAlreadyExistsError(account_key)

        account = LedgerAccount(
            account_key=account_key,
            kind=kind.value,
            name=name,
            created_by_id=actor_id,
        )
        if kind is LedgerKind.INVENTORY:
            _apply_thresholds(
                account, validate_thresholds(thresholds or self._default_thresholds)
            )

        self.session.add(account)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise AccountAlreadyExistsError(account_key) from exc

        logger.info(
            "account_opened",
            extra={
                "account_id": str(account.id),
                "account_key": account_key,
                "kind": kind.value,
            },
        )
        return AccountDTO.from_model(account)

    def update_thresholds(
        self,
        account_id: UUID,
        thresholds: StockThresholds,
    ) -> AccountDTO:
        """
        Replace an inventory account's thresholds.

        Status is derived at query time, so the next read reflects the new
        thresholds without touching any entry.

        Raises:
            AccountNotFoundError
            InvalidThresholdsError
        """
        account = self._get_model(account_id)
        if account.kind != LedgerKind.INVENTORY.value:
            raise InvalidThresholdsError("thresholds apply to inventory accounts only")
        _apply_thresholds(account, validate_thresholds(thresholds))
        self.session.flush()

        logger.info(
            "account_thresholds_updated",
            extra={
                "account_id": str(account_id),
                "minimum_stock_level": thresholds.minimum_stock_level,
                "maximum_stock_level": thresholds.maximum_stock_level,
                "reorder_point": thresholds.reorder_point,
            },
        )
        return AccountDTO.from_model(account)

    def place_hold(self, account_id: UUID, reason: str, placed_at: datetime) -> AccountDTO:
        """Halt writes to an account pending investigation."""
        account = self._get_model(account_id)
        account.is_on_hold = True
        account.hold_reason = reason[:500]
        account.hold_placed_at = placed_at
        self.session.flush()

        logger.error(
            "account_hold_placed",
            extra={"account_id": str(account_id), "reason": reason},
        )
        return AccountDTO.from_model(account)

    def release_hold(self, account_id: UUID, actor_id: UUID | None = None) -> AccountDTO:
        """Resume writes to an account."""
        account = self._get_model(account_id)
        was_on_hold = account.is_on_hold
        account.is_on_hold = False
        account.hold_reason = None
        account.hold_placed_at = None
        self.session.flush()

        if was_on_hold:
            logger.warning(
                "account_hold_released",
                extra={
                    "account_id": str(account_id),
                    "actor_id": str(actor_id) if actor_id else None,
                },
            )
        return AccountDTO.from_model(account)


def _apply_thresholds(account: LedgerAccount, thresholds: StockThresholds) -> None:
    account.minimum_stock_level = thresholds.minimum_stock_level
    account.maximum_stock_level = thresholds.maximum_stock_level
    account.reorder_point = thresholds.reorder_point
