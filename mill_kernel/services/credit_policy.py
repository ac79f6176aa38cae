"""
CreditPolicy -- per-buyer credit-limit enforcement.

Responsibility:
    Computes a buyer's outstanding receivables and rejects a new receivable
    that would push the total past the buyer's credit limit.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by TransactionOrchestrator before a credit sale is posted.

Invariants enforced:
    - Per-buyer serialization: the buyer's Party row is locked
      (``SELECT ... FOR UPDATE``) before the outstanding total is read.  The
      lock is held until the caller's transaction ends, so a second credit
      sale for the same buyer reads the total only after the first one's
      invoice is committed.  On SQLite, BEGIN IMMEDIATE already serializes
      writers.
    - outstanding = sum(remaining_amount) over the buyer's sale invoices in
      PENDING or OVERDUE status.
    - outstanding + new > credit_limit is rejected; a NULL limit never is.

Failure modes:
    - PartyNotFoundError: unknown buyer, or the party is a supplier.
    - PartyFrozenError / PartyInactiveError: the buyer may not transact.
    - CreditLimitExceededError: zero side effects; nothing was written.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mill_kernel.db.types import to_money
from mill_kernel.exceptions import CreditLimitExceededError, PartyNotFoundError
from mill_kernel.logging_config import get_logger
from mill_kernel.models.invoice import OUTSTANDING_STATUSES, Invoice, InvoiceKind
from mill_kernel.models.party import Party, PartyType
from mill_kernel.services.base import BaseService
from mill_kernel.services.party_service import ensure_can_transact

logger = get_logger("services.credit_policy")


class CreditPolicy(BaseService[Party]):
    """Checks credit limits under a per-buyer row lock."""

    def __init__(self, session: Session):
        super().__init__(session)

    def _lock_buyer(self, buyer_id: UUID) -> Party:
        party = self.session.execute(
            select(Party)
            .where(Party.id == buyer_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if party is None or party.party_type != PartyType.BUYER:
            raise PartyNotFoundError(str(buyer_id))
        return party

    def outstanding_total(self, buyer_id: UUID) -> Decimal:
        """Sum of remaining amounts over the buyer's unsettled sale invoices."""
        total = self.session.execute(
            select(func.coalesce(func.sum(Invoice.remaining_amount), 0)).where(
                Invoice.party_id == buyer_id,
                Invoice.invoice_kind == InvoiceKind.SALE.value,
                Invoice.status.in_(OUTSTANDING_STATUSES),
            )
        ).scalar_one()
        return to_money(total, "outstanding")

    def check_credit_limit(self, buyer_id: UUID, new_receivable_amount: Decimal) -> Decimal:
        """
        Lock the buyer and verify the new receivable fits under the limit.

        Must run inside the same transaction as the posting it guards.

        Returns:
            The outstanding total before the new receivable.

        Raises:
            CreditLimitExceededError: outstanding + new > credit_limit.
        """
        amount = to_money(new_receivable_amount, "new_receivable_amount")
        party = self._lock_buyer(buyer_id)
        ensure_can_transact(party)

        outstanding = self.outstanding_total(buyer_id)
        if party.credit_limit is not None and outstanding + amount > party.credit_limit:
            logger.warning(
                "credit_limit_rejected",
                extra={
                    "buyer_id": str(buyer_id),
                    "credit_limit": party.credit_limit,
                    "outstanding": outstanding,
                    "requested": amount,
                },
            )
            raise CreditLimitExceededError(
                buyer_id=str(buyer_id),
                credit_limit=party.credit_limit,
                outstanding=outstanding,
                requested=amount,
            )

        logger.debug(
            "credit_limit_checked",
            extra={
                "buyer_id": str(buyer_id),
                "outstanding": outstanding,
                "requested": amount,
            },
        )
        return outstanding
