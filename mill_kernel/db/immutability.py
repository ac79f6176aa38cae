"""
ORM-level immutability enforcement for the ledger.

Ledger transactions are append-only.  After a Transaction row is flushed
the only permitted change is settlement: payment_status PENDING ->
COMPLETED (plus the updated_at / updated_by_id audit fields).  Rows are
never deleted; corrections are new postings.

SQLAlchemy fires mapper events before UPDATE/DELETE SQL is emitted:

    session.flush()
         |
         v
    [before_update] --> _check_transaction_immutability() --> ImmutabilityViolationError
    [before_delete] --> _check_transaction_delete() ---------^

Bulk statements (``update(Transaction)``) bypass mapper events; the kernel
never issues them against the transactions table.
"""

from sqlalchemy import event, inspect

from mill_kernel.exceptions import ImmutabilityViolationError
from mill_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _block(target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "Transaction",
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type="Transaction",
        entity_id=str(target.id),
        reason=reason,
    )


def _check_transaction_immutability(mapper, connection, target):
    """Allow only the PENDING -> COMPLETED settlement on an existing transaction."""
    from mill_kernel.models.transaction import PaymentStatus

    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        hist = attr.history
        if not hist.has_changes():
            continue
        if attr.key == "payment_status":
            old = hist.deleted[0] if hist.deleted else None
            new = hist.added[0] if hist.added else None
            if old == PaymentStatus.PENDING and new == PaymentStatus.COMPLETED:
                continue
            _block(
                target,
                "UPDATE",
                f"Cannot change payment_status from {old} to {new}",
                field=attr.key,
            )
        _block(
            target,
            "UPDATE",
            f"Cannot modify field '{attr.key}' on a ledger transaction",
            field=attr.key,
        )


def _check_transaction_delete(mapper, connection, target):
    _block(target, "DELETE", "Ledger transactions cannot be deleted")


def register_immutability_listeners():
    """
    Register the ledger immutability listeners (idempotent).

    Called by init_engine_from_url(); tests may unregister to seed
    deliberately invalid data.
    """
    from mill_kernel.models.transaction import Transaction

    if not event.contains(Transaction, "before_update", _check_transaction_immutability):
        event.listen(Transaction, "before_update", _check_transaction_immutability)
    if not event.contains(Transaction, "before_delete", _check_transaction_delete):
        event.listen(Transaction, "before_delete", _check_transaction_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """Remove the listeners.  Only for tests."""
    from mill_kernel.models.transaction import Transaction

    _safe_remove_listener(Transaction, "before_update", _check_transaction_immutability)
    _safe_remove_listener(Transaction, "before_delete", _check_transaction_delete)
