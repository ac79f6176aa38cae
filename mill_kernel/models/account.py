"""
Module: mill_kernel.models.account
Responsibility: ORM persistence for the chart of accounts -- the debit and
    credit targets of every ledger transaction.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Exactly one ACTIVE account per (category, account_type, scope_key),
      enforced by the partial unique index uq_account_active_scope.
      scope_key is the warehouse id, or "global" for mill-wide accounts, so
      the key is never NULL and the index never treats two globals as
      distinct.
    - account_number is unique.
    - current_balance moves only through LedgerEngine's atomic SQL
      increments (never read-modify-write in Python).

Failure modes:
    - IntegrityError on a duplicate active scope key when the insert bypasses
      AccountRegistry's ON CONFLICT DO NOTHING upsert.

Audit relevance:
    current_balance - opening_balance must always equal the signed sum of
    the account's transactions (debits positive, credits negative).
    LedgerSelector.verify_account_balance recomputes it.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from mill_kernel.db.base import TrackedBase, UUIDString

GLOBAL_SCOPE = "global"


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "Asset"
    LIABILITY = "Liability"
    REVENUE = "Revenue"
    EXPENSE = "Expense"


class AccountCategory(str, Enum):
    """Business category of an account within its type."""

    CASH = "Cash"
    BANK = "Bank"
    ACCOUNTS_RECEIVABLE = "Accounts Receivable"
    ACCOUNTS_PAYABLE = "Accounts Payable"
    INVENTORY = "Inventory"
    EQUIPMENT = "Equipment"
    SALARY_EXPENSE = "Salary Expense"
    PURCHASE_EXPENSE = "Purchase Expense"
    SALES_REVENUE = "Sales Revenue"
    OTHER = "Other"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


# Category -> the one account type it may belong to.  OTHER fits any type.
CATEGORY_ACCOUNT_TYPES: dict[AccountCategory, AccountType | None] = {
    AccountCategory.CASH: AccountType.ASSET,
    AccountCategory.BANK: AccountType.ASSET,
    AccountCategory.ACCOUNTS_RECEIVABLE: AccountType.ASSET,
    AccountCategory.INVENTORY: AccountType.ASSET,
    AccountCategory.EQUIPMENT: AccountType.ASSET,
    AccountCategory.ACCOUNTS_PAYABLE: AccountType.LIABILITY,
    AccountCategory.SALES_REVENUE: AccountType.REVENUE,
    AccountCategory.PURCHASE_EXPENSE: AccountType.EXPENSE,
    AccountCategory.SALARY_EXPENSE: AccountType.EXPENSE,
    AccountCategory.OTHER: None,
}


def scope_key_for(warehouse_id: UUID | None) -> str:
    """Uniqueness scope of an account: its warehouse, or the mill as a whole."""
    return str(warehouse_id) if warehouse_id is not None else GLOBAL_SCOPE


class Account(TrackedBase):
    """
    Chart-of-accounts entry.

    Guarantees:
        - account_number is globally unique (ACC-<CAT>-0001 style).
        - (category, account_type, scope_key) is unique among ACTIVE rows.
        - code, when set, names a well-known account (e.g. MAIN_CASH).
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("account_number", name="uq_account_number"),
        Index(
            "uq_account_active_scope",
            "category",
            "account_type",
            "scope_key",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("idx_account_code", "code"),
        Index("idx_account_warehouse", "warehouse_id"),
    )

    account_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    code: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    account_type: Mapped[AccountType] = mapped_column(
        String(20),
        nullable=False,
    )

    category: Mapped[AccountCategory] = mapped_column(
        String(50),
        nullable=False,
    )

    warehouse_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=True,
    )

    scope_key: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    opening_balance: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    current_balance: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    status: Mapped[AccountStatus] = mapped_column(
        String(20),
        nullable=False,
        default=AccountStatus.ACTIVE,
    )

    description: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Account {self.account_number}: {self.name}>"
