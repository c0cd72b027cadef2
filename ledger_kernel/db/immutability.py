"""
ORM-Level Immutability Enforcement for ledger entries.

===============================================================================
WHY THIS EXISTS
===============================================================================

Every balance and every status is derived from the entry log.  Editing or
deleting one entry silently changes every balance_after that follows it, so
the log is append-only: mistakes are corrected with an offsetting entry
(an ADJUSTMENT, a credit note) that leaves a visible trail.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept them:

    session.flush()
         |
         v
    [before_flush]   --> deleted LedgerEntry / account with entries --> raise
         |
         v
    [before_update]  --> LedgerEntry (any column)            --> raise
                     --> LedgerAccount key/kind once used    --> raise
         |
         v
    [before_delete]  --> LedgerEntry                         --> raise
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity         | When Immutable                    | Why
---------------|-----------------------------------|---------------------------
LedgerEntry    | ALWAYS (from creation)            | Log is append-only
LedgerAccount  | account_key/kind once it has      | Changing kind would
               | entries; never deletable then     | reinterpret every delta

The balance cache on LedgerAccount is advanced by an ORM-enabled UPDATE
statement, which does not pass through mapper events; the cache is not
protected here and is policed by reconciliation instead.

Bulk ``update(LedgerEntry)`` / ``delete(LedgerEntry)`` statements and raw
SQL also bypass mapper events.  Nothing in the engine issues them.

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup; idempotent

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, func, select
from sqlalchemy.orm import Session

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

ACCOUNT_STRUCTURAL_FIELDS = ("account_key", "kind")


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _account_has_entries(connection, account_id) -> bool:
    from ledger_kernel.models.entry import LedgerEntry

    count = connection.execute(
        select(func.count())
        .select_from(LedgerEntry)
        .where(LedgerEntry.account_id == account_id)
    ).scalar_one()
    return count > 0


def _check_deletions_before_flush(session, flush_context, instances):
    """
    Refuse deletion of entries, and of accounts that own entries.

    Runs in SessionEvents.before_flush, before the flush plan is finalized.
    """
    from ledger_kernel.models.account import LedgerAccount
    from ledger_kernel.models.entry import LedgerEntry

    for obj in list(session.deleted):
        if isinstance(obj, LedgerEntry):
            raise _blocked(
                "LedgerEntry", str(obj.id), "DELETE",
                "Ledger entries are append-only and cannot be deleted",
            )
        if isinstance(obj, LedgerAccount):
            with session.no_autoflush:
                has_entries = _account_has_entries(session.connection(), obj.id)
            if has_entries:
                raise _blocked(
                    "LedgerAccount", str(obj.id), "DELETE",
                    "Accounts with ledger entries cannot be deleted",
                )


def _check_entry_update(mapper, connection, target):
    """Prevent any update to a LedgerEntry."""
    raise _blocked(
        "LedgerEntry", str(target.id), "UPDATE",
        "Ledger entries are immutable; record an offsetting entry instead",
    )


def _check_entry_delete(mapper, connection, target):
    """Prevent deletion of a LedgerEntry."""
    raise _blocked(
        "LedgerEntry", str(target.id), "DELETE",
        "Ledger entries are append-only and cannot be deleted",
    )


def _check_account_structural_immutability(mapper, connection, target):
    """
    Prevent changes to account_key/kind once the account has entries.

    Name, thresholds and the hold fields remain editable.
    """
    from sqlalchemy.orm.attributes import get_history

    changed = [
        field
        for field in ACCOUNT_STRUCTURAL_FIELDS
        if get_history(target, field).has_changes()
    ]
    if not changed:
        return

    if _account_has_entries(connection, target.id):
        raise _blocked(
            "LedgerAccount", str(target.id), "UPDATE",
            f"Cannot modify {changed} on an account that has ledger entries",
        )


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def _listeners():
    from ledger_kernel.models.account import LedgerAccount
    from ledger_kernel.models.entry import LedgerEntry

    return (
        (Session, "before_flush", _check_deletions_before_flush),
        (LedgerEntry, "before_update", _check_entry_update),
        (LedgerEntry, "before_delete", _check_entry_delete),
        (LedgerAccount, "before_update", _check_account_structural_immutability),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must corrupt a ledger on purpose
    to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
