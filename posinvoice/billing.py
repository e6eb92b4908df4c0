# posinvoice/billing.py
"""
Cart and billing rules.

Everything here is synchronous and free of storage concerns: callers look
products up and hand them in, the cart only keeps line items and checks that
the amount reserved per product never exceeds that product's stock.

Stock of a weight product is held in its base unit (kg for kg/g products,
ltr for ltr/ml products). Weights entered in g or ml are converted before
they are compared with stock or multiplied with the per-base-unit price.
"""
from __future__ import annotations

import uuid
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from .errors import (
    InsufficientStock, InvalidQuantity, InvalidUnit, LineNotFound,
    PriceRequired, WeightRequired,
)
from .models import LineItem, Product, SaleItem, UnitLine, WeightLine

BASE_UNITS = {"kg": "kg", "g": "kg", "ltr": "ltr", "ml": "ltr"}
_DIVISORS = {"kg": 1.0, "g": 1000.0, "ltr": 1.0, "ml": 1000.0}

# float slack when comparing reservations against stock
STOCK_EPSILON = 1e-9


def to_base_unit(value: float, unit: str) -> float:
    if unit not in _DIVISORS:
        raise InvalidUnit(str(unit))
    divisor = _DIVISORS[unit]
    if divisor == 1.0:
        return value
    return value / divisor


def base_amount(line: LineItem, quantity: Optional[int] = None) -> float:
    """Amount of stock a line takes, in the product's base unit."""
    qty = line.quantity if quantity is None else quantity
    if isinstance(line, WeightLine):
        return to_base_unit(line.weight, line.unit) * qty
    return float(qty)


def _check_unit_family(product: Product, unit: str) -> None:
    if unit not in BASE_UNITS:
        raise InvalidUnit(str(unit))
    if BASE_UNITS[unit] != BASE_UNITS.get(product.unit or "", None):
        raise InvalidUnit(f"{product.id}:{unit}")


def _resolve_price(product: Product, price: Optional[float]) -> float:
    if product.price_type == "variable":
        if price is None or price <= 0:
            raise PriceRequired(product.id)
        return float(price)
    return float(product.price)


class CartTotals(BaseModel):
    subtotal: float
    discount_percent: float
    discount_amount: float
    tax_amount: float
    total: float


class Cart:
    def __init__(self, session_id: Optional[str] = None):
        self.session_id = session_id
        self.lines: List[LineItem] = []

    def __len__(self) -> int:
        return len(self.lines)

    def get_line(self, line_id: str) -> LineItem:
        for line in self.lines:
            if line.line_id == line_id:
                return line
        raise LineNotFound(line_id)

    def reserved(self, product_id: str, exclude_line_id: Optional[str] = None) -> float:
        return sum(
            base_amount(line)
            for line in self.lines
            if line.product_id == product_id and line.line_id != exclude_line_id
        )

    def _check_stock(self, product: Product, requested: float, already: float) -> None:
        if already + requested > product.stock + STOCK_EPSILON:
            raise InsufficientStock(product.id, already + requested, product.stock)

    def _find_same(self, line: LineItem) -> Optional[LineItem]:
        for existing in self.lines:
            if existing.product_id != line.product_id or existing.kind != line.kind:
                continue
            if existing.unit_price != line.unit_price:
                continue
            if isinstance(line, WeightLine) and (existing.weight, existing.unit) != (line.weight, line.unit):
                continue
            return existing
        return None

    def add_line(
        self,
        product: Product,
        quantity: int = 1,
        weight: Optional[float] = None,
        unit: Optional[str] = None,
        price: Optional[float] = None,
    ) -> LineItem:
        if quantity is None or int(quantity) != quantity or quantity < 1:
            raise InvalidQuantity(product.id)
        quantity = int(quantity)
        base_price = _resolve_price(product, price)

        if product.type == "weight":
            if weight is None or weight <= 0:
                raise WeightRequired(product.id)
            unit = unit or product.unit
            _check_unit_family(product, unit)
            line: LineItem = WeightLine(
                line_id=uuid.uuid4().hex,
                product_id=product.id,
                name=product.name,
                unit_price=base_price * to_base_unit(weight, unit),
                quantity=quantity,
                gst_rate=product.gst_rate,
                weight=weight,
                unit=unit,
            )
        else:
            line = UnitLine(
                line_id=uuid.uuid4().hex,
                product_id=product.id,
                name=product.name,
                unit_price=base_price,
                quantity=quantity,
                gst_rate=product.gst_rate,
            )

        self._check_stock(product, base_amount(line), self.reserved(product.id))

        existing = self._find_same(line)
        if existing is not None:
            existing.quantity += quantity
            return existing
        self.lines.append(line)
        return line

    def update_quantity(self, line_id: str, new_quantity: int, product: Product) -> Optional[LineItem]:
        line = self.get_line(line_id)
        if new_quantity <= 0:
            self.remove_line(line_id)
            return None
        requested = base_amount(line, new_quantity)
        self._check_stock(product, requested, self.reserved(line.product_id, exclude_line_id=line_id))
        line.quantity = int(new_quantity)
        return line

    def remove_line(self, line_id: str) -> None:
        self.lines = [line for line in self.lines if line.line_id != line_id]

    def clear(self) -> None:
        self.lines = []

    def totals(self, discount_percent: float = 0.0, gst_enabled: bool = True) -> CartTotals:
        return compute_totals(self.lines, discount_percent, gst_enabled)


# ---------------------------
# Totals
# ---------------------------
def clamp_discount(discount_percent: Optional[float]) -> float:
    return min(max(float(discount_percent or 0.0), 0.0), 100.0)


def subtotal(lines: Iterable[LineItem]) -> float:
    return sum(line.line_total for line in lines)


def discount_amount(lines: Iterable[LineItem], discount_percent: float) -> float:
    return subtotal(lines) * (clamp_discount(discount_percent) / 100)


def tax_amount(lines: Iterable[LineItem], discount_percent: float, gst_enabled: bool = True) -> float:
    # each line carries its own GST rate, so the discount is spread over the
    # lines before their rate is applied
    if not gst_enabled:
        return 0.0
    keep = 1 - clamp_discount(discount_percent) / 100
    return sum(line.line_total * keep * (line.gst_rate / 100) for line in lines)


def compute_totals(lines: Iterable[LineItem], discount_percent: float = 0.0, gst_enabled: bool = True) -> CartTotals:
    lines = list(lines)
    pct = clamp_discount(discount_percent)
    sub = subtotal(lines)
    disc = discount_amount(lines, pct)
    tax = tax_amount(lines, pct, gst_enabled)
    return CartTotals(
        subtotal=sub,
        discount_percent=pct,
        discount_amount=disc,
        tax_amount=tax,
        total=sub - disc + tax,
    )


# ---------------------------
# Stock reconciliation
# ---------------------------
def stock_deductions(lines: Iterable[LineItem]) -> Dict[str, float]:
    """Total base-unit amount to take off each product, one entry per product."""
    out: Dict[str, float] = {}
    for line in lines:
        out[line.product_id] = out.get(line.product_id, 0.0) + base_amount(line)
    return out


def deduct_stock(current: float, amount: float) -> float:
    return max(0.0, current - amount)


def lines_match_product(product: Product, lines: Iterable[LineItem]) -> bool:
    """False when a line was priced for a different kind or unit family than the product now has."""
    for line in lines:
        if line.product_id != product.id:
            continue
        if line.kind != product.type:
            return False
        if isinstance(line, WeightLine) and BASE_UNITS[line.unit] != BASE_UNITS.get(product.unit or ""):
            return False
    return True


def sale_items(lines: Iterable[LineItem]) -> List[SaleItem]:
    items = []
    for line in lines:
        items.append(SaleItem(
            product_id=line.product_id,
            name=line.name,
            kind=line.kind,
            quantity=line.quantity,
            unit_price=line.unit_price,
            line_total=line.line_total,
            gst_rate=line.gst_rate,
            weight=getattr(line, "weight", None),
            unit=getattr(line, "unit", None),
        ))
    return items
