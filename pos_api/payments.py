from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from .errors import BusinessRuleError, NotFoundError, ValidationError
from .models import Branch, Order, OrderStatus, Payment, PaymentMethod, as_utc, utcnow
from .orders import lock_order, touch
from .pricing import to_money
from .tables import TableStatusSync

logger = logging.getLogger(__name__)

REFUND_WINDOW = timedelta(hours=24)
VALID_PAYMENT_METHODS = [item.value for item in PaymentMethod]


@dataclass
class BalanceSummary:
    total_paid: Decimal
    order_total: Decimal
    remaining_balance: Decimal

    @property
    def is_fully_paid(self) -> bool:
        return self.remaining_balance <= 0


@dataclass
class PaymentReceipt:
    payment: Payment
    order: Order
    order_status: str
    remaining_balance: Decimal


@dataclass
class RefundResult:
    refunded_amount: Decimal
    reason: str
    order: Order


def sum_payments(payments: Iterable[Payment]) -> Decimal:
    return to_money(sum((Decimal(payment.amount) for payment in payments), Decimal("0")))


def balance_for(order: Order, payments: Iterable[Payment] | None = None) -> BalanceSummary:
    total_paid = sum_payments(order.payments if payments is None else payments)
    order_total = to_money(order.total_amount)
    return BalanceSummary(
        total_paid=total_paid,
        order_total=order_total,
        remaining_balance=order_total - total_paid,
    )


class PaymentLedger:
    def __init__(self, session: Session, tables: TableStatusSync | None = None):
        self.session = session
        self.tables = tables or TableStatusSync(session)

    def record_payment(self, order_id: int | None, amount, method: str | None) -> PaymentReceipt:
        """Apply a payment toward an order's balance.

        The order flips to paid, and its table is released, once the payments
        cover the total. Overpaying is rejected.
        """
        if not order_id or amount is None or not method:
            raise ValidationError("Order ID, amount, and payment method are required")
        try:
            amount = to_money(amount)
        except (InvalidOperation, ValueError) as exc:
            raise ValidationError("Payment amount must be a number") from exc
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than 0")
        if method not in VALID_PAYMENT_METHODS:
            raise ValidationError("Invalid payment method. Must be one of: " + ", ".join(VALID_PAYMENT_METHODS))

        order = lock_order(self.session, order_id)
        if order.status == OrderStatus.CANCELLED.value:
            raise BusinessRuleError("Cannot process payment for cancelled order")

        balance = balance_for(order)
        paid_after = balance.total_paid + amount
        if paid_after > balance.order_total:
            raise BusinessRuleError(
                f"Payment amount exceeds remaining balance. Remaining: {balance.remaining_balance:.2f}"
            )

        payment = Payment(order_id=order.id, amount=amount, method=method, paid_at=utcnow())
        order.payments.append(payment)
        fully_paid = paid_after >= balance.order_total
        if fully_paid:
            order.status = OrderStatus.PAID.value
            self.tables.release(order.table_id)
        touch(order)
        try:
            self.session.add(order)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(payment)
        self.session.refresh(order)
        logger.info("Payment %s of %s (%s) recorded for order %s", payment.id, amount, method, order.id)
        return PaymentReceipt(
            payment=payment,
            order=order,
            order_status="paid" if fully_paid else "partially_paid",
            remaining_balance=balance.order_total - paid_after,
        )

    def refund_payment(self, payment_id: int, reason: str | None = None, now: datetime | None = None) -> RefundResult:
        payment = self.session.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError("Payment not found")
        now = as_utc(now or utcnow())
        if now - as_utc(payment.paid_at) > REFUND_WINDOW:
            raise BusinessRuleError("Cannot refund payments older than 24 hours")

        order = lock_order(self.session, payment.order_id)
        refunded_amount = to_money(payment.amount)
        order.payments.remove(payment)
        if sum_payments(order.payments) == 0:
            was_paid = order.status == OrderStatus.PAID.value
            order.status = OrderStatus.PENDING.value
            if was_paid:
                # Take back only the table this order's payment freed.
                self.tables.reoccupy(order.table_id)
        touch(order)
        try:
            self.session.add(order)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(order)
        logger.info("Payment %s of %s refunded from order %s", payment_id, refunded_amount, order.id)
        return RefundResult(
            refunded_amount=refunded_amount,
            reason=reason or "No reason provided",
            order=order,
        )

    def payments_for_order(self, order_id: int) -> tuple[List[Payment], BalanceSummary]:
        order = self.session.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order not found")
        statement = (
            select(Payment)
            .where(Payment.order_id == order_id)
            .order_by(Payment.paid_at.asc(), Payment.id.asc())
        )
        payments = list(self.session.exec(statement))
        return payments, balance_for(order, payments)


# -------------------------
# Queries
# -------------------------

def _filter_payments(
    statement,
    *,
    company_id: int | None = None,
    branch_id: int | None = None,
    order_id: int | None = None,
    method: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
):
    if company_id is not None or branch_id is not None:
        statement = statement.join(Order, Order.id == Payment.order_id)
    if company_id is not None:
        statement = statement.join(Branch, Branch.id == Order.branch_id).where(Branch.company_id == company_id)
    if branch_id is not None:
        statement = statement.where(Order.branch_id == branch_id)
    if order_id is not None:
        statement = statement.where(Payment.order_id == order_id)
    if method:
        statement = statement.where(Payment.method == method)
    if date_from is not None:
        statement = statement.where(Payment.paid_at >= date_from)
    if date_to is not None:
        statement = statement.where(Payment.paid_at <= date_to)
    return statement


def list_payments(
    session: Session,
    *,
    company_id: int | None = None,
    order_id: int | None = None,
    method: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[List[Payment], int]:
    filters = dict(
        company_id=company_id,
        order_id=order_id,
        method=method,
        date_from=date_from,
        date_to=date_to,
    )
    total = session.exec(_filter_payments(select(func.count()).select_from(Payment), **filters)).one()
    statement = (
        _filter_payments(select(Payment), **filters)
        .order_by(Payment.paid_at.desc(), Payment.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(session.exec(statement)), int(total or 0)


def select_payments(
    session: Session,
    *,
    company_id: int | None = None,
    branch_id: int | None = None,
    method: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> List[Payment]:
    statement = _filter_payments(
        select(Payment),
        company_id=company_id,
        branch_id=branch_id,
        method=method,
        date_from=date_from,
        date_to=date_to,
    ).order_by(Payment.paid_at.asc(), Payment.id.asc())
    return list(session.exec(statement))


def get_payment(session: Session, payment_id: int, *, company_id: int | None = None) -> Optional[Payment]:
    payment = session.get(Payment, payment_id)
    if payment is None:
        return None
    if company_id is not None:
        branch = payment.order.branch if payment.order else None
        if branch is None or branch.company_id != company_id:
            return None
    return payment
