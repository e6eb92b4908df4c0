# posinvoice/reports.py
"""
Read-side aggregation over recorded sales: time windows, chart buckets,
summaries, the dashboard and the inventory overview.

All functions are pure; `now` is passed in so results are reproducible.
Days and months are calendar periods in UTC.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import ValidationFailed
from .models import Product, Sale
from .time_utils import to_utc_z, utcnow

PERIODS = ("day", "week", "month", "year", "custom")
GRANULARITIES = ("hour", "day", "month")

DEFAULT_GRANULARITY = {
    "day": "hour",
    "week": "day",
    "month": "day",
    "year": "month",
    "custom": "day",
}

# rolling windows, counted in calendar days including today
_PERIOD_DAYS = {"week": 7, "month": 30, "year": 365}

PAYMENT_METHODS = ("cash", "card", "upi")


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def sales_window(
    period: str,
    now: Optional[datetime] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Tuple[Optional[datetime], datetime]:
    now = now or utcnow()
    if period == "day":
        return start_of_day(now), now
    if period in _PERIOD_DAYS:
        return start_of_day(now - timedelta(days=_PERIOD_DAYS[period] - 1)), now
    if period == "custom":
        if start is None and end is None:
            raise ValidationFailed("custom_range_requires_start_or_end")
        if start is not None and end is not None and start > end:
            raise ValidationFailed("start_after_end")
        return start, end or now
    raise ValidationFailed(f"period:{period}")


def filter_sales(sales: Iterable[Sale], start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Sale]:
    out = []
    for sale in sales:
        if start is not None and sale.created_at < start:
            continue
        if end is not None and sale.created_at > end:
            continue
        out.append(sale)
    return out


def summarize(sales: Iterable[Sale]) -> Dict[str, float]:
    sales = list(sales)
    revenue = sum(s.total for s in sales)
    orders = len(sales)
    return {
        "revenue": revenue,
        "orders": orders,
        "average_order_value": revenue / orders if orders else 0.0,
        "total_discount": sum(s.discount_amount for s in sales),
        "total_tax": sum(s.tax_amount for s in sales),
    }


# ---------------------------
# Buckets
# ---------------------------
def _bucket_start(dt: datetime, granularity: str) -> datetime:
    if granularity == "hour":
        return dt.replace(minute=0, second=0, microsecond=0)
    if granularity == "day":
        return start_of_day(dt)
    return start_of_day(dt).replace(day=1)


def _next_bucket(dt: datetime, granularity: str) -> datetime:
    if granularity == "hour":
        return dt + timedelta(hours=1)
    if granularity == "day":
        return dt + timedelta(days=1)
    if dt.month == 12:
        return dt.replace(year=dt.year + 1, month=1)
    return dt.replace(month=dt.month + 1)


_LABELS = {"hour": "%Y-%m-%d %H:00", "day": "%Y-%m-%d", "month": "%Y-%m"}


def bucket_sales(
    sales: Iterable[Sale],
    granularity: str = "day",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[Dict[str, object]]:
    if granularity not in GRANULARITIES:
        raise ValidationFailed(f"granularity:{granularity}")
    sales = filter_sales(sales, start, end)
    if start is None:
        if not sales:
            return []
        start = min(s.created_at for s in sales)
    if end is None:
        end = max(s.created_at for s in sales) if sales else start

    acc: Dict[datetime, List[float]] = {}
    for sale in sales:
        slot = acc.setdefault(_bucket_start(sale.created_at, granularity), [0.0, 0])
        slot[0] += sale.total
        slot[1] += 1

    rows = []
    cursor = _bucket_start(start, granularity)
    while cursor <= end:
        revenue, orders = acc.get(cursor, [0.0, 0])
        rows.append({
            "period": cursor.strftime(_LABELS[granularity]),
            "start": to_utc_z(cursor),
            "revenue": revenue,
            "orders": int(orders),
        })
        cursor = _next_bucket(cursor, granularity)
    return rows


def sales_report(
    sales: Iterable[Sale],
    period: str = "week",
    now: Optional[datetime] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    granularity: Optional[str] = None,
) -> Dict[str, object]:
    if period not in PERIODS:
        raise ValidationFailed(f"period:{period}")
    window_start, window_end = sales_window(period, now, start, end)
    granularity = granularity or DEFAULT_GRANULARITY[period]
    selected = filter_sales(sales, window_start, window_end)
    return {
        "period": period,
        "granularity": granularity,
        "start": to_utc_z(window_start),
        "end": to_utc_z(window_end),
        "summary": summarize(selected),
        "buckets": bucket_sales(selected, granularity, window_start, window_end),
    }


# ---------------------------
# Dashboard
# ---------------------------
def _change_percent(current: float, previous: float) -> float:
    if previous > 0:
        return (current - previous) / previous * 100
    return 0.0


def top_products(sales: Iterable[Sale], limit: int = 5) -> List[Dict[str, object]]:
    by_product: Dict[str, Dict[str, object]] = {}
    for sale in sales:
        for item in sale.items:
            row = by_product.setdefault(item.product_id, {
                "product_id": item.product_id,
                "name": item.name,
                "quantity": 0,
                "revenue": 0.0,
            })
            row["name"] = item.name
            row["quantity"] += item.quantity
            row["revenue"] += item.line_total
    ranked = sorted(by_product.values(), key=lambda r: r["revenue"], reverse=True)
    return ranked[:limit]


def payment_split(sales: Iterable[Sale]) -> Dict[str, int]:
    methods = {m: 0 for m in PAYMENT_METHODS}
    for sale in sales:
        methods[sale.payment_method] = methods.get(sale.payment_method, 0) + 1
    return methods


def dashboard(
    sales: Iterable[Sale],
    products: Iterable[Product],
    now: Optional[datetime] = None,
    low_stock_threshold: float = 10,
) -> Dict[str, object]:
    now = now or utcnow()
    sales = list(sales)
    products = list(products)

    today_start = start_of_day(now)
    yesterday_start = today_start - timedelta(days=1)
    today = filter_sales(sales, today_start, now)
    yesterday = filter_sales(sales, yesterday_start, today_start - timedelta(microseconds=1))

    today_revenue = sum(s.total for s in today)
    yesterday_revenue = sum(s.total for s in yesterday)

    return {
        "today_revenue": today_revenue,
        "yesterday_revenue": yesterday_revenue,
        "revenue_change": _change_percent(today_revenue, yesterday_revenue),
        "today_orders": len(today),
        "yesterday_orders": len(yesterday),
        "orders_change": _change_percent(len(today), len(yesterday)),
        "total_products": len(products),
        "low_stock_products": sum(1 for p in products if p.stock < low_stock_threshold),
        "out_of_stock_products": sum(1 for p in products if p.stock <= 0),
        "last_7_days": bucket_sales(sales, "day", start_of_day(now - timedelta(days=6)), now),
        "top_products": top_products(sales),
        "payment_methods_today": payment_split(today),
    }


def inventory_summary(products: Iterable[Product], low_stock_threshold: float = 10) -> Dict[str, object]:
    products = list(products)
    in_stock = [p for p in products if p.stock >= low_stock_threshold]
    low_stock = [p for p in products if 0 < p.stock < low_stock_threshold]
    out_of_stock = [p for p in products if p.stock <= 0]
    return {
        "threshold": low_stock_threshold,
        "in_stock": [p.model_dump(mode="json") for p in in_stock],
        "low_stock": [p.model_dump(mode="json") for p in low_stock],
        "out_of_stock": [p.model_dump(mode="json") for p in out_of_stock],
        "total_value": sum(p.price * p.stock for p in products),
    }
