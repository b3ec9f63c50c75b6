from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlmodel import Session

from .errors import NotFoundError
from .models import Product

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Round any numeric value to two decimal places (half up)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def order_total(lines: Iterable[tuple[int, Decimal]]) -> Decimal:
    # Rounded once over the whole order, never per line.
    total = sum((Decimal(unit_price) * quantity for quantity, unit_price in lines), Decimal("0"))
    return to_money(total)


@dataclass(frozen=True)
class PriceSnapshot:
    product_id: int
    name: str
    branch_id: int | None
    unit_price: Decimal


class PricingResolver:
    """Reads a product's current price at the moment an item is added."""

    def __init__(self, session: Session):
        self.session = session

    def resolve(self, product_id: int) -> PriceSnapshot:
        product = self.session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product with ID {product_id} not found")
        return PriceSnapshot(
            product_id=product.id,
            name=product.name,
            branch_id=product.branch_id,
            unit_price=to_money(product.price),
        )
