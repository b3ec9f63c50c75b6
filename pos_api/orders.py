from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from .errors import BusinessRuleError, ConflictError, NotFoundError, ValidationError
from .models import (
    CLOSED_ORDER_STATUSES,
    Branch,
    BranchTable,
    Order,
    OrderItem,
    OrderStatus,
    utcnow,
)
from .pricing import PriceSnapshot, PricingResolver, order_total
from .tables import TableStatusSync

logger = logging.getLogger(__name__)

VALID_ORDER_STATUSES = [item.value for item in OrderStatus]
RELEASES_TABLE = (OrderStatus.PAID.value, OrderStatus.CANCELLED.value)


def validate_order_status(value: str | None) -> str:
    if not value:
        raise ValidationError("Status is required")
    if value not in VALID_ORDER_STATUSES:
        raise ValidationError("Invalid status. Must be one of: " + ", ".join(VALID_ORDER_STATUSES))
    return value


# -------------------------
# Shared order mutation helpers
# -------------------------

def lock_order(session: Session, order_id: int) -> Order:
    """Load an order for mutation, holding a row lock where the engine supports it."""
    statement = select(Order).where(Order.id == order_id).with_for_update()
    order = session.exec(statement).first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def check_version(order: Order, expected_version: int | None) -> None:
    if expected_version is not None and expected_version != order.version:
        raise ConflictError(
            f"Order {order.id} has been modified (current version {order.version}, "
            f"expected {expected_version})"
        )


def touch(order: Order) -> None:
    order.version = (order.version or 0) + 1
    order.updated_at = utcnow()


def recompute_total(order: Order) -> None:
    order.total_amount = order_total((item.quantity, item.unit_price) for item in order.items)


# -------------------------
# Lifecycle
# -------------------------

class OrderLifecycleManager:
    def __init__(
        self,
        session: Session,
        pricing: PricingResolver | None = None,
        tables: TableStatusSync | None = None,
    ):
        self.session = session
        self.pricing = pricing or PricingResolver(session)
        self.tables = tables or TableStatusSync(session)

    def create_order(
        self,
        branch_id: int | None,
        items: Iterable[dict] | None,
        table_id: int | None = None,
        status: str | None = None,
    ) -> Order:
        """Create an order with all of its items, or nothing at all.

        Every item is validated and priced before anything is written; the
        order, its items and the table occupancy are committed together.
        """
        items = list(items or [])
        if not branch_id or not items:
            raise ValidationError("Branch ID and items are required")
        status_value = validate_order_status(status or OrderStatus.PENDING.value)

        branch = self.session.get(Branch, branch_id)
        if branch is None:
            raise NotFoundError("Branch not found")
        if table_id is not None:
            table = self.session.get(BranchTable, table_id)
            if table is None:
                raise NotFoundError("Table not found")
            if table.branch_id != branch.id:
                raise ValidationError("Table does not belong to this branch")

        lines = [
            self._price_line(branch.id, item.get("product_id"), item.get("quantity"))
            for item in items
        ]

        now = utcnow()
        order = Order(
            branch_id=branch.id,
            table_id=table_id,
            status=status_value,
            order_date=now,
            created_at=now,
            updated_at=now,
        )
        for snapshot, quantity in lines:
            order.items.append(_snapshot_item(snapshot, quantity, now))
        recompute_total(order)

        try:
            self.session.add(order)
            if table_id is not None:
                self.tables.occupy(table_id)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(order)
        logger.info(
            "Order %s created on branch %s with %d item(s), total %s",
            order.id,
            order.branch_id,
            len(lines),
            order.total_amount,
        )
        return order

    def add_item(
        self,
        order_id: int,
        product_id: int | None,
        quantity: int | None,
        expected_version: int | None = None,
    ) -> Order:
        if not product_id or quantity is None or quantity <= 0:
            raise ValidationError("Product ID and quantity > 0 are required")
        order = lock_order(self.session, order_id)
        check_version(order, expected_version)
        if order.status in CLOSED_ORDER_STATUSES:
            raise BusinessRuleError("Cannot add items to paid or cancelled orders")

        snapshot, quantity = self._price_line(order.branch_id, product_id, quantity)
        order.items.append(_snapshot_item(snapshot, quantity, utcnow()))
        recompute_total(order)
        touch(order)
        try:
            self.session.add(order)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(order)
        logger.info("Added product %s x%d to order %s, total now %s", product_id, quantity, order.id, order.total_amount)
        return order

    def update_status(
        self,
        order_id: int,
        new_status: str | None,
        expected_version: int | None = None,
    ) -> Order:
        new_status = validate_order_status(new_status)
        order = lock_order(self.session, order_id)
        check_version(order, expected_version)

        previous = order.status
        order.status = new_status
        if new_status in RELEASES_TABLE:
            self.tables.release(order.table_id)
        touch(order)
        try:
            self.session.add(order)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(order)
        logger.info("Order %s status %s -> %s", order.id, previous, new_status)
        return order

    def _price_line(self, branch_id: int, product_id, quantity) -> tuple[PriceSnapshot, int]:
        if not product_id or quantity is None or quantity <= 0:
            raise ValidationError("Each item must have a valid product_id and quantity > 0")
        snapshot = self.pricing.resolve(product_id)
        if snapshot.branch_id is not None and snapshot.branch_id != branch_id:
            raise NotFoundError(f"Product with ID {product_id} not found in this branch")
        return snapshot, int(quantity)


def _snapshot_item(snapshot: PriceSnapshot, quantity: int, created_at: datetime) -> OrderItem:
    return OrderItem(
        product_id=snapshot.product_id,
        quantity=quantity,
        unit_price=snapshot.unit_price,
        created_at=created_at,
    )


# -------------------------
# Queries
# -------------------------

def filter_orders(
    statement,
    *,
    company_id: int | None = None,
    branch_id: int | None = None,
    status: str | None = None,
    table_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
):
    if company_id is not None:
        statement = statement.join(Branch, Branch.id == Order.branch_id).where(Branch.company_id == company_id)
    if branch_id is not None:
        statement = statement.where(Order.branch_id == branch_id)
    if status:
        statement = statement.where(Order.status == status)
    if table_id is not None:
        statement = statement.where(Order.table_id == table_id)
    if date_from is not None:
        statement = statement.where(Order.order_date >= date_from)
    if date_to is not None:
        statement = statement.where(Order.order_date <= date_to)
    return statement


def list_orders(
    session: Session,
    *,
    company_id: int | None = None,
    branch_id: int | None = None,
    status: str | None = None,
    table_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[List[Order], int]:
    filters = dict(
        company_id=company_id,
        branch_id=branch_id,
        status=status,
        table_id=table_id,
        date_from=date_from,
        date_to=date_to,
    )
    count_stmt = filter_orders(select(func.count()).select_from(Order), **filters)
    total = session.exec(count_stmt).one()

    statement = (
        filter_orders(select(Order), **filters)
        .order_by(Order.order_date.desc(), Order.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(session.exec(statement)), int(total or 0)


def get_order(session: Session, order_id: int, *, company_id: int | None = None) -> Optional[Order]:
    order = session.get(Order, order_id)
    if order is None:
        return None
    if company_id is not None and (order.branch is None or order.branch.company_id != company_id):
        return None
    return order
