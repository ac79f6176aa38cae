"""
Typed exception hierarchy for the mill kernel.

Every error raised by the kernel is a subclass of ``MillKernelError`` and
carries a machine-readable ``code`` class attribute plus structured
attributes describing the failure.  Callers catch by type and read the
attributes; they never parse messages.

    MillKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidAccountCategoryError
    |   +-- InvalidAmountError
    |   +-- InvalidStatusTransitionError
    |   +-- OverpaymentError
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |   +-- WarehouseNotFoundError
    |   +-- PartyNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- TransactionNotFoundError
    |
    +-- AccountInactiveError
    +-- PartyFrozenError
    +-- PartyInactiveError
    +-- CreditLimitExceededError
    +-- InsufficientStockError
    +-- ConcurrencyConflict
    +-- ImmutabilityViolationError

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed input (amount, item type, ...)
                | INVALID_ACCOUNT_CATEGORY    | Category/type combination not allowed
                | INVALID_AMOUNT              | Non-positive or over-precise amount
                | INVALID_STATUS_TRANSITION   | e.g. Completed -> Pending
                | OVERPAYMENT                 | Payment exceeds invoice remaining
----------------|-----------------------------|-----------------------------------------
Not found       | ACCOUNT_NOT_FOUND           | Account id unknown
                | WAREHOUSE_NOT_FOUND         | Warehouse id unknown
                | PARTY_NOT_FOUND             | Buyer / supplier unknown
                | INVOICE_NOT_FOUND           | Invoice number unknown
                | TRANSACTION_NOT_FOUND       | Transaction id unknown
----------------|-----------------------------|-----------------------------------------
Business        | ACCOUNT_INACTIVE            | Posting to an inactive account
                | PARTY_FROZEN                | Frozen party cannot transact
                | PARTY_INACTIVE              | Deactivated / closed party
                | CREDIT_LIMIT_EXCEEDED       | Outstanding + new > credit limit
                | INSUFFICIENT_STOCK          | Deduction would go negative
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENCY_CONFLICT        | Lost race; safe to retry the event
Immutability    | IMMUTABILITY_VIOLATION      | Edit/delete of ledger history

Only ``ConcurrencyConflict`` is retryable.  Every other error means the
event is wrong as submitted and must not be replayed unchanged.
"""

from decimal import Decimal


class MillKernelError(Exception):
    """
    Base exception for all mill kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "MILL_KERNEL_ERROR"


# Validation


class ValidationError(MillKernelError):
    """Malformed or semantically invalid input."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidAccountCategoryError(ValidationError):
    """Account category does not belong to the requested account type."""

    code: str = "INVALID_ACCOUNT_CATEGORY"

    def __init__(self, category: str, account_type: str):
        self.category = category
        self.account_type = account_type
        super().__init__(
            f"Category '{category}' is not valid for account type '{account_type}'",
            field="category",
        )


class InvalidAmountError(ValidationError):
    """Amount is non-positive or has more precision than its column allows."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount, reason: str, field: str = "amount"):
        self.amount = str(amount)
        self.reason = reason
        super().__init__(f"Invalid {field} {amount}: {reason}", field=field)


class InvalidStatusTransitionError(ValidationError):
    """Requested status change is not allowed by the state machine."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, entity_type: str, entity_id: str, from_status: str, to_status: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"{entity_type} {entity_id} cannot move from {from_status} to {to_status}",
            field="status",
        )


class OverpaymentError(ValidationError):
    """Payment exceeds the invoice's remaining amount."""

    code: str = "OVERPAYMENT"

    def __init__(self, invoice_number: str, remaining: Decimal, amount: Decimal):
        self.invoice_number = invoice_number
        self.remaining = remaining
        self.amount = amount
        super().__init__(
            f"Payment {amount} exceeds remaining {remaining} on invoice {invoice_number}",
            field="amount",
        )


# Not found


class NotFoundError(MillKernelError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"


class AccountNotFoundError(NotFoundError):
    """Account was not found."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class WarehouseNotFoundError(NotFoundError):
    """Warehouse was not found."""

    code: str = "WAREHOUSE_NOT_FOUND"

    def __init__(self, warehouse_id: str):
        self.warehouse_id = warehouse_id
        super().__init__(f"Warehouse not found: {warehouse_id}")


class PartyNotFoundError(NotFoundError):
    """Buyer or supplier was not found."""

    code: str = "PARTY_NOT_FOUND"

    def __init__(self, party_id: str):
        self.party_id = party_id
        super().__init__(f"Party not found: {party_id}")


class InvoiceNotFoundError(NotFoundError):
    """Invoice was not found."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_number: str, invoice_kind: str):
        self.invoice_number = invoice_number
        self.invoice_kind = invoice_kind
        super().__init__(f"{invoice_kind.capitalize()} invoice not found: {invoice_number}")


class TransactionNotFoundError(NotFoundError):
    """Ledger transaction was not found."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


# Business rejections


class AccountInactiveError(MillKernelError):
    """Account is not active for posting."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account is inactive: {account_id}")


class PartyFrozenError(MillKernelError):
    """Party is frozen and cannot transact."""

    code: str = "PARTY_FROZEN"

    def __init__(self, party_id: str):
        self.party_id = party_id
        super().__init__(f"Party is frozen: {party_id}")


class PartyInactiveError(MillKernelError):
    """Party is deactivated or closed."""

    code: str = "PARTY_INACTIVE"

    def __init__(self, party_id: str):
        self.party_id = party_id
        super().__init__(f"Party is inactive: {party_id}")


class CreditLimitExceededError(MillKernelError):
    """New receivable would push the buyer's outstanding total past the limit."""

    code: str = "CREDIT_LIMIT_EXCEEDED"

    def __init__(
        self,
        buyer_id: str,
        credit_limit: Decimal,
        outstanding: Decimal,
        requested: Decimal,
    ):
        self.buyer_id = buyer_id
        self.credit_limit = credit_limit
        self.outstanding = outstanding
        self.requested = requested
        super().__init__(
            f"Credit limit exceeded for buyer {buyer_id}: "
            f"outstanding {outstanding} + requested {requested} > limit {credit_limit}"
        )


class InsufficientStockError(MillKernelError):
    """Stock deduction would make the quantity negative."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        warehouse_id: str,
        item_name: str,
        item_type: str,
        sub_type: str | None,
        available: Decimal,
        requested: Decimal,
    ):
        self.warehouse_id = warehouse_id
        self.item_name = item_name
        self.item_type = item_type
        self.sub_type = sub_type
        self.available = available
        self.requested = requested
        label = f"{item_name} ({sub_type})" if sub_type else item_name
        super().__init__(
            f"Insufficient stock for {label} in warehouse {warehouse_id}: "
            f"available {available}, requested {requested}"
        )


# Concurrency


class ConcurrencyConflict(MillKernelError):
    """
    A concurrent writer won a race for the same row or key.

    The event had no effect and is safe to re-run.
    """

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, reason: str = ""):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        message = f"Concurrency conflict on {entity_type} {entity_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# Immutability


class ImmutabilityViolationError(MillKernelError):
    """Attempted to modify or delete a ledger record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
