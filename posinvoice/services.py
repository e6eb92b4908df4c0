# posinvoice/services.py
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from . import reports
from .billing import (
    STOCK_EPSILON, compute_totals, deduct_stock, lines_match_product, sale_items, stock_deductions,
)
from .core import (
    AddToCartIn, BackupIn, CheckoutIn, ClearCartIn, CustomerIn, CustomerUpdate,
    ProductIn, ProductUpdate, ProfileUpdate, RemoveFromCartIn, UpdateCartLineIn,
    _make_product_dict,
)
from .database import (
    PROFILE_KEY, PosStore, customer_key, idempotency_key, product_key, sale_key,
)
from .errors import (
    CustomerNotFound, EmptyCart, IdempotencyKeyRequired, InsufficientStock,
    ProductNotFound, SaleNotFound, ValidationFailed,
)
from .logger import get_logger
from .models import Customer, Product, Sale, ShopProfile
from .time_utils import to_utc_z, utcnow

# This file contains the logic behind every API endpoint. Each function
# takes the PosStore it works on as its first argument.

log = get_logger("services")


def _release(locks) -> None:
    for l in reversed(locks):
        try:
            l.release()
        except RuntimeError:
            pass


# ---------------------------
# Loaders
# ---------------------------
def _load_product(store: PosStore, product_id: str) -> Product:
    raw = store.kv.get(product_key(product_id))
    if raw is None:
        raise ProductNotFound(product_id)
    return Product.model_validate(raw)


def _all_products(store: PosStore) -> List[Product]:
    return [Product.model_validate(p) for p in store.kv.get_by_prefix("product:")]


def _all_sales(store: PosStore) -> List[Sale]:
    return [Sale.model_validate(s) for s in store.kv.get_by_prefix("sale:")]


def _all_customers(store: PosStore) -> List[Customer]:
    return [Customer.model_validate(c) for c in store.kv.get_by_prefix("customer:")]


def _find_customer_by_mobile(store: PosStore, mobile: str) -> Optional[Customer]:
    for c in _all_customers(store):
        if c.mobile == mobile:
            return c
    return None


def _validated(model, data: Dict[str, Any], context: str):
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(p) for p in first.get("loc", ())) or "value"
        raise ValidationFailed(f"{context}:{where}", first.get("msg")) from exc


# ---------------------------
# Shop profile
# ---------------------------
async def get_profile_logic(store: PosStore) -> Dict[str, Any]:
    raw = store.kv.get(PROFILE_KEY)
    if raw is None:
        return store.default_profile.model_dump()
    return raw


async def update_profile_logic(store: PosStore, payload: ProfileUpdate) -> Dict[str, Any]:
    current = await get_profile_logic(store)
    current.update(payload.model_dump(exclude_unset=True))
    profile = _validated(ShopProfile, current, "profile")
    store.kv.set(PROFILE_KEY, profile.model_dump())
    return profile.model_dump()


# ---------------------------
# Products
# ---------------------------
async def create_product_logic(store: PosStore, payload: ProductIn) -> Dict[str, Any]:
    pid = uuid.uuid4().hex
    profile = ShopProfile.model_validate(await get_profile_logic(store))
    product = _validated(Product, _make_product_dict(pid, payload, profile.tax_rate), "product")
    store.kv.set(product_key(pid), product.model_dump(mode="json"))
    log.info("Product %s created (%s, stock=%g)", pid, product.name, product.stock)
    return {"product_id": pid, "product": product.model_dump(mode="json")}


async def list_products_logic(store: PosStore, category: Optional[str] = None, in_stock_only: bool = False):
    out = []
    for p in _all_products(store):
        if category and p.category != category:
            continue
        if in_stock_only and p.stock <= 0:
            continue
        out.append(p.model_dump(mode="json"))
    return out


async def search_products_logic(store: PosStore, term: str):
    term = term.lower()
    results = []
    for p in _all_products(store):
        if term in p.name.lower() or term in p.category.lower() or (p.barcode and term in p.barcode.lower()):
            results.append(p.model_dump(mode="json"))
    return results


async def get_product_logic(store: PosStore, product_id: str):
    return _load_product(store, product_id).model_dump(mode="json")


async def update_product_logic(store: PosStore, product_id: str, payload: ProductUpdate):
    async with store.get_lock(product_key(product_id)):
        current = _load_product(store, product_id).model_dump(mode="json")
        updates = payload.model_dump(exclude_unset=True)
        if updates.get("type") == "unit":
            updates["unit"] = None
        current.update(updates)
        product = _validated(Product, current, product_id)
        for cart in store.carts.values():
            if not lines_match_product(product, cart.lines):
                raise ValidationFailed(f"product_in_open_cart:{product_id}")
        store.kv.set(product_key(product_id), product.model_dump(mode="json"))
    log.info("Product %s updated: %s", product_id, ", ".join(sorted(updates)) or "no changes")
    return product.model_dump(mode="json")


async def delete_product_logic(store: PosStore, product_id: str):
    async with store.get_lock(product_key(product_id)):
        _load_product(store, product_id)
        store.kv.delete(product_key(product_id))
    log.info("Product %s deleted", product_id)
    return {"deleted": product_id}


# ---------------------------
# Customers
# ---------------------------
async def list_customers_logic(store: PosStore):
    return [c.model_dump(mode="json") for c in sorted(_all_customers(store), key=lambda c: c.name.lower())]


async def add_customer_logic(store: PosStore, payload: CustomerIn):
    # mobile is the identity of a customer; adding it twice returns the first record
    existing = _find_customer_by_mobile(store, payload.mobile)
    if existing is not None:
        return {"customer": existing.model_dump(mode="json"), "created": False}
    customer = Customer(id=uuid.uuid4().hex, **payload.model_dump())
    store.kv.set(customer_key(customer.id), customer.model_dump(mode="json"))
    return {"customer": customer.model_dump(mode="json"), "created": True}


async def get_customer_logic(store: PosStore, customer_id: str):
    raw = store.kv.get(customer_key(customer_id))
    if raw is None:
        raise CustomerNotFound(customer_id)
    return raw


async def update_customer_logic(store: PosStore, customer_id: str, payload: CustomerUpdate):
    current = await get_customer_logic(store, customer_id)
    updates = payload.model_dump(exclude_unset=True)
    mobile = updates.get("mobile")
    if mobile and mobile != current["mobile"]:
        other = _find_customer_by_mobile(store, mobile)
        if other is not None and other.id != customer_id:
            raise ValidationFailed(f"mobile_in_use:{mobile}")
    current.update(updates)
    customer = _validated(Customer, current, customer_id)
    store.kv.set(customer_key(customer_id), customer.model_dump(mode="json"))
    return customer.model_dump(mode="json")


# ---------------------------
# Cart
# ---------------------------
def _line_dict(line) -> Dict[str, Any]:
    data = line.model_dump()
    data["line_total"] = line.line_total
    return data


async def view_cart_logic(store: PosStore, session_id: str, discount_percent: float = 0.0, gst_enabled: bool = True):
    cart = store.carts.get(session_id)
    lines = cart.lines if cart is not None else []
    totals = compute_totals(lines, discount_percent, gst_enabled).model_dump()
    return {
        "session_id": session_id,
        "items": [_line_dict(l) for l in lines],
        "totals": totals,
    }


async def cart_add_logic(store: PosStore, payload: AddToCartIn):
    product = _load_product(store, payload.product_id)
    cart = store.cart(payload.session_id)
    try:
        line = cart.add_line(
            product,
            quantity=payload.quantity,
            weight=payload.weight,
            unit=payload.unit,
            price=payload.price,
        )
    except InsufficientStock:
        log.warning("Cart %s: not enough stock for %s", payload.session_id, product.id)
        raise
    return {"session_id": payload.session_id, "line": _line_dict(line), "cart": [_line_dict(l) for l in cart.lines]}


async def cart_update_logic(store: PosStore, payload: UpdateCartLineIn):
    cart = store.cart(payload.session_id)
    line = cart.get_line(payload.line_id)
    if payload.quantity <= 0:
        cart.remove_line(payload.line_id)
        return {"session_id": payload.session_id, "line": None, "cart": [_line_dict(l) for l in cart.lines]}
    product = _load_product(store, line.product_id)
    updated = cart.update_quantity(payload.line_id, payload.quantity, product)
    return {"session_id": payload.session_id, "line": _line_dict(updated), "cart": [_line_dict(l) for l in cart.lines]}


async def cart_remove_logic(store: PosStore, payload: RemoveFromCartIn):
    cart = store.cart(payload.session_id)
    cart.remove_line(payload.line_id)
    return {"session_id": payload.session_id, "cart": [_line_dict(l) for l in cart.lines]}


async def cart_clear_logic(store: PosStore, payload: ClearCartIn):
    store.cart(payload.session_id).clear()
    return {"session_id": payload.session_id, "cart": []}


# ---------------------------
# Checkout (sale + stock deduction in one commit)
# ---------------------------
def _replayed_sale(store: PosStore, idem_key: str) -> Optional[Dict[str, Any]]:
    prev = store.kv.get(idempotency_key(idem_key))
    if prev is None:
        return None
    sale = store.kv.get(sale_key(prev))
    if sale is None:
        # the sale was dropped (backup import); the key is free again
        log.warning("Idempotency key %s points at missing sale %s", idem_key, prev)
    return sale


async def checkout_logic(store: PosStore, session_id: str, payload: CheckoutIn, idem_key: Optional[str]):
    if not idem_key:
        raise IdempotencyKeyRequired()
    replay = _replayed_sale(store, idem_key)
    if replay is not None:
        return replay

    cart = store.carts.get(session_id)
    if cart is None or not cart.lines:
        raise EmptyCart(session_id)
    totals = cart.totals(payload.discount_percent, payload.gst_enabled)
    if totals.total <= 0:
        raise EmptyCart(session_id)

    deductions = stock_deductions(cart.lines)
    keys_sorted = sorted([product_key(pid) for pid in deductions] + [idempotency_key(idem_key)])
    locks = [store.get_lock(k) for k in keys_sorted]
    for l in locks:
        await l.acquire()

    try:
        # a retry with the same key may have committed while we waited
        replay = _replayed_sale(store, idem_key)
        if replay is not None:
            return replay

        writes: Dict[str, Any] = {}
        for pid, amount in deductions.items():
            raw = store.kv.get(product_key(pid))
            if raw is None:
                raise ProductNotFound(pid)
            product = Product.model_validate(raw)
            if not lines_match_product(product, cart.lines):
                raise ValidationFailed(f"product_changed:{pid}")
            if amount > product.stock + STOCK_EPSILON:
                log.warning("Checkout %s rejected: %s needs %g, has %g", session_id, pid, amount, product.stock)
                raise InsufficientStock(pid, amount, product.stock)
            raw["stock"] = deduct_stock(product.stock, amount)
            writes[product_key(pid)] = raw

        customer_id = None
        if payload.customer_name and payload.customer_mobile:
            customer = _find_customer_by_mobile(store, payload.customer_mobile)
            if customer is None:
                customer = Customer(id=uuid.uuid4().hex, name=payload.customer_name, mobile=payload.customer_mobile)
                writes[customer_key(customer.id)] = customer.model_dump(mode="json")
            customer_id = customer.id

        sale = Sale(
            id=uuid.uuid4().hex,
            customer_id=customer_id,
            customer_name=payload.customer_name or None,
            customer_mobile=payload.customer_mobile or None,
            items=sale_items(cart.lines),
            subtotal=totals.subtotal,
            discount_percent=totals.discount_percent,
            discount_amount=totals.discount_amount,
            tax_amount=totals.tax_amount,
            total=totals.total,
            payment_method=payload.payment_method,
            gst_enabled=payload.gst_enabled,
            created_at=utcnow(),
        )
        writes[sale_key(sale.id)] = sale.model_dump(mode="json")
        writes[idempotency_key(idem_key)] = sale.id

        store.kv.commit(writes)
        cart.clear()
        log.info(
            "Sale %s recorded: %d line(s), total %.2f, stock deducted for %d product(s)",
            sale.id, len(sale.items), sale.total, len(deductions),
        )
        return sale.model_dump(mode="json")
    finally:
        _release(locks)


# ---------------------------
# Sales
# ---------------------------
async def list_sales_logic(store: PosStore, start: Optional[datetime] = None, end: Optional[datetime] = None):
    sales = reports.filter_sales(_all_sales(store), start, end)
    sales.sort(key=lambda s: s.created_at, reverse=True)
    return [s.model_dump(mode="json") for s in sales]


async def get_sale_logic(store: PosStore, sale_id: str) -> Sale:
    raw = store.kv.get(sale_key(sale_id))
    if raw is None:
        raise SaleNotFound(sale_id)
    return Sale.model_validate(raw)


# ---------------------------
# Reports
# ---------------------------
async def sales_report_logic(
    store: PosStore,
    period: str = "week",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    granularity: Optional[str] = None,
    now: Optional[datetime] = None,
):
    return reports.sales_report(_all_sales(store), period, now, start, end, granularity)


async def dashboard_logic(store: PosStore, low_stock_threshold: float, now: Optional[datetime] = None):
    return reports.dashboard(_all_sales(store), _all_products(store), now, low_stock_threshold)


async def inventory_logic(store: PosStore, low_stock_threshold: float):
    return reports.inventory_summary(_all_products(store), low_stock_threshold)


# ---------------------------
# Backup
# ---------------------------
async def export_backup_logic(store: PosStore):
    return {
        "products": store.kv.get_by_prefix("product:"),
        "sales": store.kv.get_by_prefix("sale:"),
        "customers": store.kv.get_by_prefix("customer:"),
        "exportDate": to_utc_z(utcnow()),
    }


async def import_backup_logic(store: PosStore, payload: BackupIn):
    products = [_validated(Product, p, "products") for p in payload.products]
    sales = [_validated(Sale, s, "sales") for s in payload.sales]
    customers = [_validated(Customer, c, "customers") for c in payload.customers]

    writes: Dict[str, Any] = {}
    for p in products:
        writes[product_key(p.id)] = p.model_dump(mode="json")
    for s in sales:
        writes[sale_key(s.id)] = s.model_dump(mode="json")
    for c in customers:
        writes[customer_key(c.id)] = c.model_dump(mode="json")
    deletes = [k for k in store.kv.keys() if k.startswith(("product:", "sale:", "customer:", "idempotency:")) and k not in writes]

    store.kv.commit(writes, deletes)
    store.carts.clear()
    log.info(
        "Backup imported (exported %s): %d products, %d sales, %d customers",
        payload.exportDate or "unknown", len(products), len(sales), len(customers),
    )
    return {"products": len(products), "sales": len(sales), "customers": len(customers)}


# ---------------------------
# Sample catalog / reset
# ---------------------------
SAMPLE_PRODUCTS = [
    {"name": "Rice", "category": "Grocery", "price": 45, "type": "weight", "unit": "kg", "stock": 100, "barcode": "1001", "gst_rate": 5},
    {"name": "Wheat Flour", "category": "Grocery", "price": 40, "type": "weight", "unit": "kg", "stock": 80, "barcode": "1002", "gst_rate": 5},
    {"name": "Sugar", "category": "Grocery", "price": 42, "type": "weight", "unit": "kg", "stock": 60, "barcode": "1003", "gst_rate": 5},
    {"name": "Milk", "category": "Dairy", "price": 60, "type": "weight", "unit": "ltr", "stock": 50, "barcode": "1004", "gst_rate": 5},
    {"name": "Bread", "category": "Bakery", "price": 35, "type": "unit", "stock": 40, "barcode": "1005", "gst_rate": 5},
    {"name": "Eggs", "category": "Dairy", "price": 6, "type": "unit", "stock": 200, "barcode": "1006", "gst_rate": 5},
    {"name": "Tea Powder", "category": "Beverage", "price": 720, "type": "weight", "unit": "g", "stock": 7.5, "barcode": "1007", "gst_rate": 5},
    {"name": "Coffee", "category": "Beverage", "price": 1100, "type": "weight", "unit": "g", "stock": 5, "barcode": "1008", "gst_rate": 5},
]


async def seed_sample_products_logic(store: PosStore):
    if store.kv.keys("product:"):
        return {"seeded": 0}
    for item in SAMPLE_PRODUCTS:
        await create_product_logic(store, ProductIn(**item))
    log.info("Seeded %d sample products", len(SAMPLE_PRODUCTS))
    return {"seeded": len(SAMPLE_PRODUCTS)}


async def reset_all_logic(store: PosStore):
    store.reset()
    log.info("Store reset")
    return {"status": "reset"}
