from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List

from sqlalchemy import case, func
from sqlmodel import Session, select

from .errors import ValidationError
from .models import Branch, BranchTable, Order, OrderItem, OrderStatus, Payment, Product, TableStatus, as_utc
from .orders import filter_orders
from .payments import select_payments
from .pricing import to_money

PAYMENT_GROUPINGS = ("day", "month", "method")
OPEN_ORDER_STATUSES = (
    OrderStatus.PENDING.value,
    OrderStatus.PREPARING.value,
    OrderStatus.READY.value,
    OrderStatus.SERVED.value,
)


def _money(value) -> Decimal:
    return to_money(value or 0)


def _period_key(moment: datetime, period: str) -> str:
    moment = as_utc(moment)
    if period == "month":
        return moment.strftime("%Y-%m")
    return moment.strftime("%Y-%m-%d")


# -------------------------
# Payments
# -------------------------

def payment_report(
    session: Session,
    *,
    company_id: int | None = None,
    branch_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    method: str | None = None,
    group_by: str = "day",
) -> dict:
    group_by = group_by or "day"
    if group_by not in PAYMENT_GROUPINGS:
        raise ValidationError("Invalid group_by. Must be one of: " + ", ".join(PAYMENT_GROUPINGS))

    payments = select_payments(
        session,
        company_id=company_id,
        branch_id=branch_id,
        method=method,
        date_from=date_from,
        date_to=date_to,
    )
    grouped: dict[str, dict] = {}
    total_revenue = Decimal("0")
    for payment in payments:
        amount = Decimal(payment.amount)
        total_revenue += amount
        key = payment.method if group_by == "method" else _period_key(payment.paid_at, group_by)
        group = grouped.setdefault(key, {"key": key, "total_amount": Decimal("0"), "payment_count": 0})
        group["total_amount"] += amount
        group["payment_count"] += 1

    groups = [
        {**group, "total_amount": to_money(group["total_amount"])}
        for group in grouped.values()
    ]
    return {
        "groups": groups,
        "total_revenue": to_money(total_revenue),
        "total_payments": len(payments),
        "date_range": {
            "from": date_from.isoformat() if date_from else "All time",
            "to": date_to.isoformat() if date_to else "All time",
        },
        "group_by": group_by,
    }


# -------------------------
# Orders
# -------------------------

def _orders(session: Session, **filters) -> List[Order]:
    statement = filter_orders(select(Order), **filters).order_by(Order.order_date.asc(), Order.id.asc())
    return list(session.exec(statement))


def sales_report(
    session: Session,
    *,
    company_id: int | None = None,
    branch_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> dict:
    orders = _orders(session, company_id=company_id, branch_id=branch_id, date_from=date_from, date_to=date_to)
    counted = [order for order in orders if order.status != OrderStatus.CANCELLED.value]
    gross_sales = sum((Decimal(order.total_amount) for order in counted), Decimal("0"))
    paid_sales = sum(
        (Decimal(order.total_amount) for order in counted if order.status == OrderStatus.PAID.value),
        Decimal("0"),
    )
    return {
        "total_orders": len(counted),
        "cancelled_orders": len(orders) - len(counted),
        "gross_sales": to_money(gross_sales),
        "paid_sales": to_money(paid_sales),
        "average_order_value": to_money(gross_sales / len(counted)) if counted else to_money(0),
    }


def period_report(
    session: Session,
    period: str,
    *,
    company_id: int | None = None,
    branch_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> List[dict]:
    """Order count and sales per day or per month, oldest period first."""
    orders = _orders(session, company_id=company_id, branch_id=branch_id, date_from=date_from, date_to=date_to)
    grouped: dict[str, dict] = {}
    for order in orders:
        if order.status == OrderStatus.CANCELLED.value:
            continue
        key = _period_key(order.order_date, period)
        group = grouped.setdefault(key, {"period": key, "order_count": 0, "sales": Decimal("0")})
        group["order_count"] += 1
        group["sales"] += Decimal(order.total_amount)
    return [{**group, "sales": to_money(group["sales"])} for group in grouped.values()]


def product_report(
    session: Session,
    *,
    company_id: int | None = None,
    branch_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int | None = None,
) -> List[dict]:
    revenue = func.sum(OrderItem.quantity * OrderItem.unit_price)
    statement = (
        select(
            OrderItem.product_id,
            Product.name,
            func.coalesce(func.sum(OrderItem.quantity), 0),
            func.coalesce(revenue, 0),
            func.count(func.distinct(OrderItem.order_id)),
        )
        .join(Product, Product.id == OrderItem.product_id)
        .join(Order, Order.id == OrderItem.order_id)
        .where(Order.status != OrderStatus.CANCELLED.value)
    )
    statement = filter_orders(
        statement,
        company_id=company_id,
        branch_id=branch_id,
        date_from=date_from,
        date_to=date_to,
    )
    statement = statement.group_by(OrderItem.product_id, Product.name).order_by(revenue.desc(), Product.name)
    if limit:
        statement = statement.limit(limit)
    return [
        {
            "product_id": row[0],
            "product_name": row[1],
            "quantity_sold": int(row[2] or 0),
            "revenue": _money(row[3]),
            "order_count": int(row[4] or 0),
        }
        for row in session.exec(statement).all()
    ]


def summary_report(session: Session, *, company_id: int | None = None, branch_id: int | None = None) -> dict:
    order_stmt = filter_orders(
        select(
            func.count(Order.id),
            func.coalesce(func.sum(case((Order.status.in_(OPEN_ORDER_STATUSES), 1), else_=0)), 0),
        ).select_from(Order),
        company_id=company_id,
        branch_id=branch_id,
    )
    total_orders, open_orders = session.exec(order_stmt).one()

    status_stmt = filter_orders(
        select(Order.status, func.count(Order.id)).select_from(Order),
        company_id=company_id,
        branch_id=branch_id,
    ).group_by(Order.status)
    orders_by_status = {status_value: int(count) for status_value, count in session.exec(status_stmt).all()}

    revenue_stmt = filter_orders(
        select(func.coalesce(func.sum(Payment.amount), 0)).select_from(Payment).join(Order, Order.id == Payment.order_id),
        company_id=company_id,
        branch_id=branch_id,
    )
    total_revenue = session.exec(revenue_stmt).one()

    table_stmt = select(BranchTable.status, func.count(BranchTable.id)).select_from(BranchTable)
    if company_id is not None:
        table_stmt = table_stmt.join(Branch, Branch.id == BranchTable.branch_id).where(Branch.company_id == company_id)
    if branch_id is not None:
        table_stmt = table_stmt.where(BranchTable.branch_id == branch_id)
    tables = {status_value: int(count) for status_value, count in session.exec(table_stmt.group_by(BranchTable.status)).all()}

    return {
        "total_orders": int(total_orders or 0),
        "open_orders": int(open_orders or 0),
        "orders_by_status": orders_by_status,
        "total_revenue": _money(total_revenue),
        "occupied_tables": tables.get(TableStatus.OCCUPIED.value, 0),
        "available_tables": tables.get(TableStatus.AVAILABLE.value, 0),
        "reserved_tables": tables.get(TableStatus.RESERVED.value, 0),
    }
