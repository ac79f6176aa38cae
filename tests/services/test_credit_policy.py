"""
Tests for CreditPolicy.

The seeded buyer BUY-001 has a credit limit of 10000.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from mill_kernel.exceptions import (
    CreditLimitExceededError,
    PartyFrozenError,
    PartyInactiveError,
    PartyNotFoundError,
)
from mill_kernel.models.invoice import Invoice, InvoiceKind, InvoiceStatus
from mill_kernel.models.transaction import PaymentMethod
from mill_kernel.services.credit_policy import CreditPolicy
from mill_kernel.services.party_service import PartyService


@pytest.fixture
def policy(session):
    return CreditPolicy(session)


def add_invoice(session, party, warehouse, actor_id, number, remaining, status=InvoiceStatus.PENDING, kind=InvoiceKind.SALE):
    invoice = Invoice(
        invoice_kind=kind.value,
        invoice_number=number,
        party_id=party.id,
        warehouse_id=warehouse.id,
        invoice_date=date(2024, 1, 1),
        payment_method=PaymentMethod.CREDIT.value,
        total_amount=Decimal(remaining),
        paid_amount=Decimal("0"),
        remaining_amount=Decimal(remaining),
        status=status.value,
        created_by_id=actor_id,
    )
    session.add(invoice)
    session.flush()
    return invoice


class TestOutstandingTotal:

    def test_no_invoices(self, policy, buyer):
        assert policy.outstanding_total(buyer.id) == Decimal("0")

    def test_sums_pending_and_overdue(self, policy, session, buyer, warehouse, test_actor_id):
        add_invoice(session, buyer, warehouse, test_actor_id, "S-1", "1500.25")
        add_invoice(session, buyer, warehouse, test_actor_id, "S-2", "500", InvoiceStatus.OVERDUE)
        add_invoice(session, buyer, warehouse, test_actor_id, "S-3", "999", InvoiceStatus.COMPLETED)

        assert policy.outstanding_total(buyer.id) == Decimal("2000.25")

    def test_ignores_purchase_invoices(self, policy, session, buyer, warehouse, test_actor_id):
        add_invoice(session, buyer, warehouse, test_actor_id, "P-1", "700", kind=InvoiceKind.PURCHASE)

        assert policy.outstanding_total(buyer.id) == Decimal("0")


class TestCheckCreditLimit:

    def test_over_limit_rejected(self, policy, session, buyer, warehouse, test_actor_id):
        """8000 outstanding + 3000 > 10000."""
        add_invoice(session, buyer, warehouse, test_actor_id, "S-1", "8000")

        with pytest.raises(CreditLimitExceededError) as exc_info:
            policy.check_credit_limit(buyer.id, Decimal("3000"))

        assert exc_info.value.credit_limit == Decimal("10000")
        assert exc_info.value.outstanding == Decimal("8000")

    def test_exactly_at_limit_accepted(self, policy, session, buyer, warehouse, test_actor_id):
        add_invoice(session, buyer, warehouse, test_actor_id, "S-1", "8000")

        assert policy.check_credit_limit(buyer.id, Decimal("2000")) == Decimal("8000")

    def test_null_limit_is_unlimited(self, policy, session, buyer, warehouse, test_actor_id):
        PartyService(session).update_credit_limit(buyer.id, None, test_actor_id)
        add_invoice(session, buyer, warehouse, test_actor_id, "S-1", "1000000")

        assert policy.check_credit_limit(buyer.id, Decimal("5000000")) == Decimal("1000000")

    def test_zero_limit_blocks_credit(self, policy, session, buyer, test_actor_id):
        PartyService(session).update_credit_limit(buyer.id, Decimal("0"), test_actor_id)

        with pytest.raises(CreditLimitExceededError):
            policy.check_credit_limit(buyer.id, Decimal("0.01"))

    def test_frozen_buyer(self, policy, session, buyer):
        PartyService(session).freeze_party(buyer.id)

        with pytest.raises(PartyFrozenError):
            policy.check_credit_limit(buyer.id, Decimal("1"))

    def test_closed_buyer(self, policy, session, buyer):
        PartyService(session).close_party(buyer.id)

        with pytest.raises(PartyInactiveError):
            policy.check_credit_limit(buyer.id, Decimal("1"))

    def test_supplier_has_no_credit(self, policy, supplier):
        with pytest.raises(PartyNotFoundError):
            policy.check_credit_limit(supplier.id, Decimal("1"))

    def test_unknown_buyer(self, policy, mill):
        with pytest.raises(PartyNotFoundError):
            policy.check_credit_limit(uuid4(), Decimal("1"))

    def test_logs_rejection(self, policy, session, buyer, warehouse, test_actor_id, captured_logs):
        add_invoice(session, buyer, warehouse, test_actor_id, "S-1", "9999")

        with pytest.raises(CreditLimitExceededError):
            policy.check_credit_limit(buyer.id, Decimal("2"))

        record = next(r for r in captured_logs() if r["message"] == "credit_limit_rejected")
        assert record["level"] == "WARNING"
        assert record["outstanding"] == "9999.00"
