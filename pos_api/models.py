from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Timezone-aware UTC; naive values read back from the store are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class OrderStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    PAID = "paid"
    CANCELLED = "cancelled"


# Orders in these states accept no further items.
CLOSED_ORDER_STATUSES = (OrderStatus.PAID.value, OrderStatus.CANCELLED.value)


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    DIGITAL_WALLET = "digital_wallet"
    BANK_TRANSFER = "bank_transfer"


class TableStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"


class BranchStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"


class Company(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Branch(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    company_id: int = Field(foreign_key="company.id", index=True)
    name: str = Field(index=True)
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    manager_name: Optional[str] = None
    status: str = Field(default=BranchStatus.ACTIVE.value)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class BranchStaff(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    branch_id: int = Field(foreign_key="branch.id", index=True)
    # Accounts live with the auth service; only the reference is kept here.
    user_id: Optional[int] = Field(default=None, index=True)
    name: str = Field(index=True)
    role: str = Field(index=True)
    email: str
    phone: Optional[str] = None
    hire_date: date = Field(default_factory=lambda: utcnow().date())
    salary: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2, ge=0)
    status: str = Field(default="active", index=True)
    schedule: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    branch: Optional[Branch] = Relationship()


class BranchTable(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    branch_id: int = Field(foreign_key="branch.id", index=True)
    table_number: str
    capacity: Optional[int] = Field(default=None, ge=1)
    status: str = Field(default=TableStatus.AVAILABLE.value, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ProductCategory(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    branch_id: Optional[int] = Field(default=None, foreign_key="branch.id", index=True)
    name: str = Field(index=True)
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Product(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    branch_id: Optional[int] = Field(default=None, foreign_key="branch.id", index=True)
    category_id: Optional[int] = Field(default=None, foreign_key="productcategory.id", index=True)
    name: str = Field(index=True)
    sku: Optional[str] = Field(default=None, sa_column_kwargs={"unique": True})
    price: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2, ge=0)
    description: Optional[str] = None
    is_available: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    category: Optional[ProductCategory] = Relationship()


class Order(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    branch_id: int = Field(foreign_key="branch.id", index=True)
    table_id: Optional[int] = Field(default=None, foreign_key="branchtable.id", index=True)
    order_date: datetime = Field(default_factory=utcnow, index=True)
    status: str = Field(default=OrderStatus.PENDING.value, index=True)
    total_amount: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2, ge=0)
    version: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    branch: Optional[Branch] = Relationship()
    table: Optional[BranchTable] = Relationship()
    items: List["OrderItem"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "OrderItem.id"},
    )
    payments: List["Payment"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "Payment.paid_at"},
    )


class OrderItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="order.id", index=True)
    product_id: int = Field(foreign_key="product.id", index=True)
    quantity: int = Field(default=1, ge=1)
    unit_price: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2, ge=0)
    created_at: datetime = Field(default_factory=utcnow)

    order: Optional[Order] = Relationship(back_populates="items")
    product: Optional[Product] = Relationship()


class Payment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="order.id", index=True)
    amount: Decimal = Field(max_digits=10, decimal_places=2, gt=0)
    method: str = Field(index=True)
    paid_at: datetime = Field(default_factory=utcnow, index=True)

    order: Optional[Order] = Relationship(back_populates="payments")


__all__ = [
    "Branch",
    "BranchStaff",
    "BranchStatus",
    "BranchTable",
    "CLOSED_ORDER_STATUSES",
    "Company",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Payment",
    "PaymentMethod",
    "Product",
    "ProductCategory",
    "TableStatus",
    "as_utc",
    "utcnow",
]
