from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, computed_field

from .pricing import to_money

Money = Annotated[Decimal, PlainSerializer(lambda value: f"{value:.2f}", return_type=str, when_used="json")]

T = TypeVar("T")


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    pages: int


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None
    message: Optional[str] = None
    count: Optional[int] = None
    pagination: Optional[Pagination] = None


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# -------------------------
# Companies / branches
# -------------------------

class CompanyBase(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class CompanyCreate(CompanyBase):
    pass


class CompanyUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class CompanyRead(CompanyBase, ORMModel):
    id: int
    created_at: datetime
    updated_at: datetime


class BranchBase(BaseModel):
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    manager_name: Optional[str] = None
    status: str = "active"


class BranchCreate(BranchBase):
    company_id: int


class BranchUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    manager_name: Optional[str] = None
    status: Optional[str] = None


class BranchRead(BranchBase, ORMModel):
    id: int
    company_id: int
    created_at: datetime
    updated_at: datetime


# -------------------------
# Tables
# -------------------------

class TableBase(BaseModel):
    table_number: str
    capacity: Optional[int] = Field(default=None, ge=1)
    status: str = "available"


class TableCreate(TableBase):
    branch_id: int


class TableUpdate(BaseModel):
    table_number: Optional[str] = None
    capacity: Optional[int] = Field(default=None, ge=1)
    status: Optional[str] = None


class TableStatusUpdate(BaseModel):
    status: Optional[str] = None


class TableRead(TableBase, ORMModel):
    id: int
    branch_id: int
    created_at: datetime
    updated_at: datetime


# -------------------------
# Staff
# -------------------------

class StaffBase(BaseModel):
    name: str
    role: str
    email: str
    phone: Optional[str] = None
    hire_date: Optional[date] = None
    salary: Money = Field(default=Decimal("0"), ge=0)
    status: str = "active"
    schedule: Optional[str] = None
    user_id: Optional[int] = None


class StaffCreate(StaffBase):
    branch_id: int


class StaffUpdate(BaseModel):
    name: Optional[str] = None
    role: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    hire_date: Optional[date] = None
    salary: Optional[Decimal] = Field(default=None, ge=0)
    status: Optional[str] = None
    schedule: Optional[str] = None


class StaffRead(StaffBase, ORMModel):
    id: int
    branch_id: int
    hire_date: date
    branch: Optional[BranchRead] = None
    created_at: datetime
    updated_at: datetime


# -------------------------
# Categories / products
# -------------------------

class CategoryBase(BaseModel):
    name: str
    description: Optional[str] = None
    branch_id: Optional[int] = None


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    branch_id: Optional[int] = None


class CategoryRead(CategoryBase, ORMModel):
    id: int
    created_at: datetime
    updated_at: datetime


class ProductBase(BaseModel):
    name: str
    price: Money = Field(ge=0)
    sku: Optional[str] = None
    description: Optional[str] = None
    is_available: bool = True
    category_id: Optional[int] = None
    branch_id: Optional[int] = None


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    sku: Optional[str] = None
    description: Optional[str] = None
    is_available: Optional[bool] = None
    category_id: Optional[int] = None
    branch_id: Optional[int] = None


class ProductBrief(ORMModel):
    id: int
    name: str
    sku: Optional[str] = None
    category: Optional[CategoryRead] = None


class ProductRead(ProductBase, ORMModel):
    id: int
    category: Optional[CategoryRead] = None
    created_at: datetime
    updated_at: datetime


# -------------------------
# Orders
# -------------------------

class OrderItemInput(BaseModel):
    product_id: Optional[int] = None
    quantity: Optional[int] = None


class OrderCreate(BaseModel):
    branch_id: Optional[int] = None
    table_id: Optional[int] = None
    items: Optional[List[OrderItemInput]] = None
    status: Optional[str] = None


class OrderItemAdd(OrderItemInput):
    version: Optional[int] = None


class OrderStatusUpdate(BaseModel):
    status: Optional[str] = None
    version: Optional[int] = None


class OrderItemRead(ORMModel):
    id: int
    product_id: int
    quantity: int
    unit_price: Money
    product: Optional[ProductBrief] = None

    @computed_field
    @property
    def line_total(self) -> Money:
        return to_money(self.unit_price * self.quantity)


class PaymentRead(ORMModel):
    id: int
    order_id: int
    amount: Money
    method: str
    paid_at: datetime


class OrderRead(ORMModel):
    id: int
    branch_id: int
    table_id: Optional[int] = None
    order_date: datetime
    status: str
    total_amount: Money
    version: int
    created_at: datetime
    updated_at: datetime
    branch: Optional[BranchRead] = None
    table: Optional[TableRead] = None
    items: List[OrderItemRead] = []
    payments: List[PaymentRead] = []


class OrderSummary(ORMModel):
    id: int
    branch_id: int
    table_id: Optional[int] = None
    status: str
    total_amount: Money
    version: int


# -------------------------
# Payments
# -------------------------

class PaymentCreate(BaseModel):
    order_id: Optional[int] = None
    amount: Optional[Decimal] = None
    method: Optional[str] = None


class RefundRequest(BaseModel):
    reason: Optional[str] = None


class PaymentDetail(PaymentRead):
    order: Optional[OrderSummary] = None


class PaymentReceiptRead(BaseModel):
    payment: PaymentRead
    order: OrderSummary
    order_status: str
    remaining_balance: Money


class RefundRead(BaseModel):
    refunded_amount: Money
    reason: str
    order: OrderSummary


class BalanceSummaryRead(BaseModel):
    total_paid: Money
    order_total: Money
    remaining_balance: Money
    is_fully_paid: bool


class OrderPayments(BaseModel):
    payments: List[PaymentRead]
    summary: BalanceSummaryRead


# -------------------------
# Reports
# -------------------------

class PaymentGroup(BaseModel):
    key: str
    total_amount: Money
    payment_count: int


class PaymentReport(BaseModel):
    groups: List[PaymentGroup]
    total_revenue: Money
    total_payments: int
    date_range: Dict[str, str]
    group_by: str


class SalesReport(BaseModel):
    total_orders: int
    cancelled_orders: int
    gross_sales: Money
    paid_sales: Money
    average_order_value: Money


class PeriodSales(BaseModel):
    period: str
    order_count: int
    sales: Money


class ProductSales(BaseModel):
    product_id: int
    product_name: str
    quantity_sold: int
    revenue: Money
    order_count: int


class SummaryResponse(BaseModel):
    total_orders: int
    open_orders: int
    orders_by_status: Dict[str, int]
    total_revenue: Money
    occupied_tables: int
    available_tables: int
    reserved_tables: int
