from __future__ import annotations

import csv
import io
import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import crud, reports, schemas
from .catalog import branch_or_404, router as catalog_router
from .config import get_settings
from .database import engine, get_session, init_db
from .deps import AccessGuard, CompanyScope, Limit, Offset, day_bounds, paginate, parse_datetime
from .errors import NotFoundError, POSError
from .notifier import notify_order_event
from .orders import OrderLifecycleManager, get_order, list_orders
from .payments import PaymentLedger, get_payment, list_payments

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Branch POS", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(catalog_router)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    if settings.seed_demo_data:
        with Session(engine) as session:
            crud.ensure_demo_data(session)


# -------------------------
# Error envelope
# -------------------------

def _error_response(status_code: int, error: str, message: str | None = None) -> JSONResponse:
    body = {"success": False, "error": error}
    if message:
        body["message"] = message
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(POSError)
async def handle_pos_error(request: Request, exc: POSError) -> JSONResponse:
    return _error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    detail = first.get("msg", "Invalid request")
    return _error_response(status.HTTP_400_BAD_REQUEST, f"{field}: {detail}" if field else detail)


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", str(exc))


@app.get("/health")
def health_check() -> dict:
    return {"status": "ok"}


# -------------------------
# Orders
# -------------------------

def _order_read(order) -> schemas.OrderRead:
    return schemas.OrderRead.model_validate(order)


def _order_or_404(session: Session, order_id: int, company_id: int | None):
    order = get_order(session, order_id, company_id=company_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


def _order_page(session: Session, limit: int, offset: int, **filters) -> dict:
    orders, total = list_orders(session, limit=limit, offset=offset, **filters)
    return {
        "success": True,
        "data": [_order_read(order) for order in orders],
        "count": total,
        "pagination": paginate(total, limit, offset),
    }


@app.get("/orders", response_model=schemas.Envelope[List[schemas.OrderRead]])
def list_orders_endpoint(
    _: AccessGuard,
    company_id: CompanyScope,
    branch_id: Optional[int] = None,
    status: Optional[str] = None,
    table_id: Optional[int] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    limit: Limit = settings.default_page_size,
    offset: Offset = 0,
    session: Session = Depends(get_session),
):
    return _order_page(
        session,
        limit,
        offset,
        company_id=company_id,
        branch_id=branch_id,
        status=status,
        table_id=table_id,
        date_from=parse_datetime(date_from),
        date_to=parse_datetime(date_to, end_of_day=True),
    )


@app.get("/orders/export", response_class=PlainTextResponse)
def export_orders(
    _: AccessGuard,
    company_id: CompanyScope,
    branch_id: Optional[int] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    session: Session = Depends(get_session),
):
    orders, _total = list_orders(
        session,
        company_id=company_id,
        branch_id=branch_id,
        date_from=parse_datetime(date_from),
        date_to=parse_datetime(date_to, end_of_day=True),
        limit=settings.max_page_size,
    )
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow([
        "id",
        "branch_id",
        "table_number",
        "status",
        "total_amount",
        "paid_amount",
        "order_date",
    ])
    for order in orders:
        paid = sum(payment.amount for payment in order.payments)
        writer.writerow([
            order.id,
            order.branch_id,
            order.table.table_number if order.table else "",
            order.status,
            f"{order.total_amount:.2f}",
            f"{paid:.2f}",
            order.order_date.isoformat() if order.order_date else "",
        ])
    headers = {
        "Content-Disposition": "attachment; filename=orders.csv",
    }
    return PlainTextResponse(content=buffer.getvalue(), media_type="text/csv", headers=headers)


@app.get("/orders/{order_id}", response_model=schemas.Envelope[schemas.OrderRead])
def get_order_endpoint(
    order_id: int,
    _: AccessGuard,
    company_id: CompanyScope,
    session: Session = Depends(get_session),
):
    return {"success": True, "data": _order_read(_order_or_404(session, order_id, company_id))}


@app.post("/orders", response_model=schemas.Envelope[schemas.OrderRead], status_code=status.HTTP_201_CREATED)
def create_order(
    payload: schemas.OrderCreate,
    _: AccessGuard,
    company_id: CompanyScope,
    session: Session = Depends(get_session),
):
    if payload.branch_id and company_id is not None:
        branch_or_404(session, payload.branch_id, company_id)
    manager = OrderLifecycleManager(session)
    order = manager.create_order(
        branch_id=payload.branch_id,
        items=[item.model_dump() for item in payload.items or []],
        table_id=payload.table_id,
        status=payload.status,
    )
    notify_order_event(order, "create")
    return {"success": True, "data": _order_read(order), "message": "Order created successfully"}


@app.put("/orders/{order_id}/status", response_model=schemas.Envelope[schemas.OrderRead])
def update_order_status(
    order_id: int,
    payload: schemas.OrderStatusUpdate,
    _: AccessGuard,
    company_id: CompanyScope,
    session: Session = Depends(get_session),
):
    _order_or_404(session, order_id, company_id)
    order = OrderLifecycleManager(session).update_status(order_id, payload.status, expected_version=payload.version)
    return {"success": True, "data": _order_read(order), "message": "Order status updated successfully"}


@app.post("/orders/{order_id}/items", response_model=schemas.Envelope[schemas.OrderRead], status_code=status.HTTP_201_CREATED)
def add_order_item(
    order_id: int,
    payload: schemas.OrderItemAdd,
    _: AccessGuard,
    company_id: CompanyScope,
    session: Session = Depends(get_session),
):
    _order_or_404(session, order_id, company_id)
    order = OrderLifecycleManager(session).add_item(
        order_id,
        payload.product_id,
        payload.quantity,
        expected_version=payload.version,
    )
    return {"success": True, "data": _order_read(order), "message": "Item added to order successfully"}


@app.get("/branches/{branch_id}/orders", response_model=schemas.Envelope[List[schemas.OrderRead]])
def list_branch_orders(
    branch_id: int,
    _: AccessGuard,
    company_id: CompanyScope,
    status: Optional[str] = None,
    table_id: Optional[int] = None,
    date: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    limit: Limit = settings.default_page_size,
    offset: Offset = 0,
    session: Session = Depends(get_session),
):
    branch = branch_or_404(session, branch_id, company_id)
    day_start, day_end = day_bounds(date)
    return _order_page(
        session,
        limit,
        offset,
        branch_id=branch.id,
        status=status,
        table_id=table_id,
        date_from=day_start or parse_datetime(date_from),
        date_to=day_end or parse_datetime(date_to, end_of_day=True),
    )


@app.get("/orders/{order_id}/payments", response_model=schemas.Envelope[schemas.OrderPayments])
def list_order_payments(
    order_id: int,
    _: AccessGuard,
    company_id: CompanyScope,
    session: Session = Depends(get_session),
):
    _order_or_404(session, order_id, company_id)
    payments, balance = PaymentLedger(session).payments_for_order(order_id)
    data = schemas.OrderPayments(
        payments=[schemas.PaymentRead.model_validate(payment) for payment in payments],
        summary=schemas.BalanceSummaryRead(
            total_paid=balance.total_paid,
            order_total=balance.order_total,
            remaining_balance=balance.remaining_balance,
            is_fully_paid=balance.is_fully_paid,
        ),
    )
    return {"success": True, "data": data, "count": len(payments)}


# -------------------------
# Payments
# -------------------------

@app.get("/payments", response_model=schemas.Envelope[List[schemas.PaymentDetail]])
def list_payments_endpoint(
    _: AccessGuard,
    company_id: CompanyScope,
    order_id: Optional[int] = None,
    method: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    limit: Limit = settings.default_page_size,
    offset: Offset = 0,
    session: Session = Depends(get_session),
):
    payments, total = list_payments(
        session,
        company_id=company_id,
        order_id=order_id,
        method=method,
        date_from=parse_datetime(date_from),
        date_to=parse_datetime(date_to, end_of_day=True),
        limit=limit,
        offset=offset,
    )
    return {
        "success": True,
        "data": [schemas.PaymentDetail.model_validate(payment) for payment in payments],
        "count": total,
        "pagination": paginate(total, limit, offset),
    }


@app.get("/payments/{payment_id}", response_model=schemas.Envelope[schemas.PaymentDetail])
def get_payment_endpoint(
    payment_id: int,
    _: AccessGuard,
    company_id: CompanyScope,
    session: Session = Depends(get_session),
):
    payment = get_payment(session, payment_id, company_id=company_id)
    if not payment:
        raise NotFoundError("Payment not found")
    return {"success": True, "data": schemas.PaymentDetail.model_validate(payment)}


@app.post("/payments", response_model=schemas.Envelope[schemas.PaymentReceiptRead], status_code=status.HTTP_201_CREATED)
def record_payment(
    payload: schemas.PaymentCreate,
    _: AccessGuard,
    company_id: CompanyScope,
    session: Session = Depends(get_session),
):
    if payload.order_id and company_id is not None:
        _order_or_404(session, payload.order_id, company_id)
    receipt = PaymentLedger(session).record_payment(payload.order_id, payload.amount, payload.method)
    if receipt.order_status == "paid":
        notify_order_event(receipt.order, "paid")
    data = schemas.PaymentReceiptRead(
        payment=schemas.PaymentRead.model_validate(receipt.payment),
        order=schemas.OrderSummary.model_validate(receipt.order),
        order_status=receipt.order_status,
        remaining_balance=receipt.remaining_balance,
    )
    return {"success": True, "data": data, "message": "Payment processed successfully"}


@app.delete("/payments/{payment_id}", response_model=schemas.Envelope[schemas.RefundRead])
def refund_payment(
    payment_id: int,
    _: AccessGuard,
    company_id: CompanyScope,
    payload: Optional[schemas.RefundRequest] = None,
    session: Session = Depends(get_session),
):
    if company_id is not None and not get_payment(session, payment_id, company_id=company_id):
        raise NotFoundError("Payment not found")
    result = PaymentLedger(session).refund_payment(payment_id, reason=payload.reason if payload else None)
    data = schemas.RefundRead(
        refunded_amount=result.refunded_amount,
        reason=result.reason,
        order=schemas.OrderSummary.model_validate(result.order),
    )
    return {"success": True, "data": data, "message": "Payment refunded successfully"}


# -------------------------
# Reports
# -------------------------

@app.get("/reports/payments", response_model=schemas.Envelope[schemas.PaymentReport])
def payment_report(
    _: AccessGuard,
    company_id: CompanyScope,
    branch_id: Optional[int] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    method: Optional[str] = None,
    group_by: str = "day",
    session: Session = Depends(get_session),
):
    data = reports.payment_report(
        session,
        company_id=company_id,
        branch_id=branch_id,
        date_from=parse_datetime(date_from),
        date_to=parse_datetime(date_to, end_of_day=True),
        method=method,
        group_by=group_by,
    )
    return {"success": True, "data": data, "count": len(data["groups"])}


@app.get("/reports/sales", response_model=schemas.Envelope[schemas.SalesReport])
def sales_report(
    _: AccessGuard,
    company_id: CompanyScope,
    branch_id: Optional[int] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    session: Session = Depends(get_session),
):
    data = reports.sales_report(
        session,
        company_id=company_id,
        branch_id=branch_id,
        date_from=parse_datetime(date_from),
        date_to=parse_datetime(date_to, end_of_day=True),
    )
    return {"success": True, "data": data}


@app.get("/reports/daily", response_model=schemas.Envelope[List[schemas.PeriodSales]])
def daily_report(
    _: AccessGuard,
    company_id: CompanyScope,
    branch_id: Optional[int] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    session: Session = Depends(get_session),
):
    return _period_response(session, "day", company_id, branch_id, date_from, date_to)


@app.get("/reports/monthly", response_model=schemas.Envelope[List[schemas.PeriodSales]])
def monthly_report(
    _: AccessGuard,
    company_id: CompanyScope,
    branch_id: Optional[int] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    session: Session = Depends(get_session),
):
    return _period_response(session, "month", company_id, branch_id, date_from, date_to)


def _period_response(session, period, company_id, branch_id, date_from, date_to) -> dict:
    data = reports.period_report(
        session,
        period,
        company_id=company_id,
        branch_id=branch_id,
        date_from=parse_datetime(date_from),
        date_to=parse_datetime(date_to, end_of_day=True),
    )
    return {"success": True, "data": data, "count": len(data)}


@app.get("/reports/products", response_model=schemas.Envelope[List[schemas.ProductSales]])
def product_report(
    _: AccessGuard,
    company_id: CompanyScope,
    branch_id: Optional[int] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    limit: Optional[int] = None,
    session: Session = Depends(get_session),
):
    data = reports.product_report(
        session,
        company_id=company_id,
        branch_id=branch_id,
        date_from=parse_datetime(date_from),
        date_to=parse_datetime(date_to, end_of_day=True),
        limit=limit,
    )
    return {"success": True, "data": data, "count": len(data)}


@app.get("/reports/summary", response_model=schemas.Envelope[schemas.SummaryResponse])
def summary(
    _: AccessGuard,
    company_id: CompanyScope,
    branch_id: Optional[int] = None,
    session: Session = Depends(get_session),
):
    return {"success": True, "data": reports.summary_report(session, company_id=company_id, branch_id=branch_id)}
