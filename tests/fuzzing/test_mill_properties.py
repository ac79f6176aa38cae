"""
Property-based tests for money, quantities and stock.

Boundaries fuzzed here:
- Money and quantity values: exact scaled-integer storage, no rounding
- Bag sub-type labels: stable for equal weights
- Stock: any sequence of adjustments leaves a non-negative quantity equal
  to the sum of the accepted deltas
- Postings: stored balances always match the transactions table
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from mill_kernel.db.types import (
    MONEY_DECIMAL_PLACES,
    QUANTITY_DECIMAL_PLACES,
    ScaledDecimal,
    to_money,
    to_quantity,
)
from mill_kernel.domain.dtos import PostingMetadata, bag_sub_type
from mill_kernel.exceptions import InsufficientStockError, InvalidAmountError
from mill_kernel.models.stock import ItemType
from mill_kernel.models.transaction import TransactionType
from mill_kernel.selectors.ledger_selector import LedgerSelector
from mill_kernel.services.ledger_engine import LedgerEngine
from mill_kernel.services.stock_ledger import StockLedger

DB_SETTINGS = settings(
    max_examples=50,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)

money_amounts = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("999999999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)

stock_deltas = st.decimals(
    min_value=Decimal("-500"),
    max_value=Decimal("500"),
    places=3,
    allow_nan=False,
    allow_infinity=False,
).filter(lambda d: d != 0)


class TestScaledValues:

    @given(amount=money_amounts)
    def test_money_survives_storage_exactly(self, amount):
        column_type = ScaledDecimal(MONEY_DECIMAL_PLACES)

        stored = column_type.process_bind_param(to_money(amount), None)

        assert isinstance(stored, int)
        assert column_type.process_result_value(stored, None) == amount

    @given(quantity=st.decimals(min_value=0, max_value=10**9, places=3, allow_nan=False, allow_infinity=False))
    def test_quantity_survives_storage_exactly(self, quantity):
        column_type = ScaledDecimal(QUANTITY_DECIMAL_PLACES)

        stored = column_type.process_bind_param(to_quantity(quantity), None)

        assert column_type.process_result_value(stored, None) == quantity

    @given(
        amount=money_amounts,
        extra=st.integers(min_value=1, max_value=9),
    )
    def test_third_decimal_place_is_rejected(self, amount, extra):
        """Money never rounds: one more digit of precision is an error."""
        with pytest.raises(InvalidAmountError):
            to_money(amount + Decimal(extra).scaleb(-3))

    @given(value=st.floats(allow_nan=False, allow_infinity=False))
    def test_floats_are_rejected(self, value):
        with pytest.raises(InvalidAmountError):
            to_money(value)


class TestBagSubType:

    @given(weight=st.integers(min_value=1, max_value=100))
    def test_equal_weights_share_a_label(self, weight):
        assert bag_sub_type(Decimal(weight)) == bag_sub_type(Decimal(f"{weight}.000"))
        assert bag_sub_type(Decimal(weight)) == f"{weight}kg"


class TestStockProperty:

    @given(deltas=st.lists(stock_deltas, min_size=1, max_size=15))
    @DB_SETTINGS
    def test_quantity_never_negative(self, deltas, session, mill, test_actor_id):
        """
        Property: after any sequence of adjustments the entry holds exactly
        the sum of the accepted deltas, and a rejected deduction is one that
        would have taken it below zero.
        """
        stock = StockLedger(session)
        warehouse_id = mill["mill"].id
        item_name = f"Ata-{uuid4().hex[:8]}"
        expected = Decimal("0")

        for delta in deltas:
            try:
                stock.adjust_stock(warehouse_id, item_name, ItemType.BAGS, "50kg", delta, test_actor_id)
            except InsufficientStockError:
                assert expected + delta < 0
                continue
            expected += delta

        entry = stock.get_entry(warehouse_id, item_name, ItemType.BAGS, "50kg")
        current = entry.quantity if entry is not None else Decimal("0")
        assert current == expected
        assert current >= 0


class TestPostingProperty:

    @given(amounts=st.lists(money_amounts, min_size=1, max_size=5))
    @DB_SETTINGS
    def test_balances_match_transactions(self, amounts, session, default_accounts, test_actor_id):
        ledger = LedgerEngine(session)
        cash = default_accounts["cash"]
        revenue = default_accounts["revenue"]

        for amount in amounts:
            ledger.post_transaction(
                TransactionType.SALE,
                cash.id,
                revenue.id,
                amount,
                PostingMetadata(created_by=test_actor_id),
            )

        selector = LedgerSelector(session)
        assert selector.verify_account_balance(cash.id).is_consistent
        assert selector.verify_account_balance(revenue.id).is_consistent
        assert selector.is_double_entry_balanced()
