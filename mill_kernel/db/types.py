"""
Module: mill_kernel.db.types
Responsibility: Exact scaled-integer column types for money and stock
    quantities, plus the validation helpers that every service uses before
    a value reaches SQL.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Money is stored as integer minor units (MONEY_DECIMAL_PLACES = 2).
    - Stock quantities are stored as integer thousandths
      (QUANTITY_DECIMAL_PLACES = 3).
    - No floats and no silent rounding: a value with more precision than its
      column scale is rejected, never quantized.

Failure modes:
    - InvalidAmountError from to_money()/to_quantity() on non-numeric,
      non-finite, or over-precise input.
    - ValueError (wrapped by SQLAlchemy in StatementError) if an over-precise
      value bypasses the helpers and reaches process_bind_param.

Audit relevance:
    Integer storage makes every balance update, sum and comparison exact on
    both PostgreSQL and SQLite.  A balance can be recomputed from the
    transactions table to the last minor unit.
"""

from decimal import Decimal, InvalidOperation

from sqlalchemy import BigInteger
from sqlalchemy.types import TypeDecorator

from mill_kernel.exceptions import InvalidAmountError

MONEY_DECIMAL_PLACES = 2
QUANTITY_DECIMAL_PLACES = 3


def _scaled_int(value: Decimal, scale: int) -> int | None:
    """Return value * 10**scale as an int, or None if it would lose precision."""
    shifted = value.scaleb(scale)
    if shifted != shifted.to_integral_value():
        return None
    return int(shifted)


class ScaledDecimal(TypeDecorator):
    """
    Decimal stored as a BIGINT count of 10**-scale units.

    Contract:
        Python side always sees Decimal; the database side always sees an
        integer.  Sums and arithmetic performed in SQL stay exact.

    Guarantees:
        - process_bind_param: Decimal("12.34") -> 1234 for scale 2.
        - process_result_value: 1234 -> Decimal("12.34").
        - Over-precise values raise instead of rounding.
    """

    impl = BigInteger
    cache_ok = True

    def __init__(self, scale: int = MONEY_DECIMAL_PLACES):
        super().__init__()
        self.scale = scale

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        scaled = _scaled_int(value, self.scale)
        if scaled is None:
            raise ValueError(
                f"{value} has more than {self.scale} decimal places"
            )
        return scaled

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value).scaleb(-self.scale)


def _to_decimal(value, field: str) -> Decimal:
    if isinstance(value, float):
        raise InvalidAmountError(value, "floats are not accepted", field=field)
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(value, "not a number", field=field) from None
    if not result.is_finite():
        raise InvalidAmountError(value, "not a finite number", field=field)
    return result


def to_money(value, field: str = "amount") -> Decimal:
    """
    Validate and normalize a monetary value.

    Preconditions: value is a Decimal, int or numeric string.
    Postconditions: Returns a Decimal with at most MONEY_DECIMAL_PLACES.

    Raises:
        InvalidAmountError: If value is a float, non-numeric, or has more
            than two decimal places.
    """
    result = _to_decimal(value, field)
    if _scaled_int(result, MONEY_DECIMAL_PLACES) is None:
        raise InvalidAmountError(
            value, f"more than {MONEY_DECIMAL_PLACES} decimal places", field=field
        )
    return result


def to_quantity(value, field: str = "quantity") -> Decimal:
    """Validate and normalize a stock quantity (at most 3 decimal places)."""
    result = _to_decimal(value, field)
    if _scaled_int(result, QUANTITY_DECIMAL_PLACES) is None:
        raise InvalidAmountError(
            value, f"more than {QUANTITY_DECIMAL_PLACES} decimal places", field=field
        )
    return result


def require_positive_money(value, field: str = "amount") -> Decimal:
    """to_money() plus a strictly-positive check."""
    result = to_money(value, field)
    if result <= 0:
        raise InvalidAmountError(value, "must be greater than zero", field=field)
    return result
