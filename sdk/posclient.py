# sdk/posclient.py
import uuid
from typing import Any, Dict, Optional

import httpx
import requests


class PosClient:
    def __init__(self, base_url: str = "http://localhost:8085", api_key: Optional[str] = None, timeout: int = 10):
        self.base_url = base_url.rstrip("/")
        self.session = requests.Session()
        self.timeout = timeout
        self.api_key = api_key
        if api_key:
            self.session.headers.update({"Authorization": f"Bearer {api_key}"})

    def _make_idempotency_key(self, provided: Optional[str]) -> str:
        return provided if provided else uuid.uuid4().hex

    def _get(self, path: str, **params):
        params = {k: v for k, v in params.items() if v is not None}
        r = self.session.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def _send(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None, **kwargs):
        r = self.session.request(method, f"{self.base_url}{path}", json=payload, timeout=self.timeout, **kwargs)
        r.raise_for_status()
        return r.json()

    def health(self):
        return self._get("/health")

    def reset(self):
        return self._send("POST", "/reset")

    # Shop profile
    def get_profile(self):
        return self._get("/profile")

    def update_profile(self, **fields):
        return self._send("PUT", "/profile", fields)

    # Products
    def add_product(self, name: str, price: float, stock: float, category: str = "general",
                    type: str = "unit", unit: Optional[str] = None, gst_rate: Optional[float] = None,
                    barcode: Optional[str] = None, price_type: str = "fixed"):
        payload = {
            "name": name, "price": price, "stock": stock, "category": category,
            "type": type, "unit": unit, "gst_rate": gst_rate, "barcode": barcode,
            "price_type": price_type,
        }
        return self._send("POST", "/products", {k: v for k, v in payload.items() if v is not None})

    def list_products(self, category: Optional[str] = None, in_stock_only: bool = False):
        return self._get("/products", category=category, in_stock_only="true" if in_stock_only else None)

    def search_products(self, term: str):
        return self._get("/products/search", q=term)

    def get_product(self, product_id: str):
        return self._get(f"/products/{product_id}")

    def update_product(self, product_id: str, **fields):
        return self._send("PUT", f"/products/{product_id}", fields)

    def delete_product(self, product_id: str):
        return self._send("DELETE", f"/products/{product_id}")

    # Customers
    def list_customers(self):
        return self._get("/customers")

    def add_customer(self, name: str, mobile: str, **extra):
        return self._send("POST", "/customers", {"name": name, "mobile": mobile, **extra})

    def update_customer(self, customer_id: str, **fields):
        return self._send("PUT", f"/customers/{customer_id}", fields)

    # Cart
    def add_to_cart(self, session_id: str, product_id: str, quantity: int = 1,
                    weight: Optional[float] = None, unit: Optional[str] = None, price: Optional[float] = None):
        payload = {"session_id": session_id, "product_id": product_id, "quantity": quantity}
        if weight is not None:
            payload["weight"] = weight
        if unit is not None:
            payload["unit"] = unit
        if price is not None:
            payload["price"] = price
        return self._send("POST", "/cart/add", payload)

    def update_cart_line(self, session_id: str, line_id: str, quantity: int):
        return self._send("POST", "/cart/update", {"session_id": session_id, "line_id": line_id, "quantity": int(quantity)})

    def remove_from_cart(self, session_id: str, line_id: str):
        return self._send("POST", "/cart/remove", {"session_id": session_id, "line_id": line_id})

    def clear_cart(self, session_id: str):
        return self._send("POST", "/cart/clear", {"session_id": session_id})

    def view_cart(self, session_id: str, discount_percent: float = 0.0, gst_enabled: bool = True):
        return self._get(f"/cart/{session_id}", discount_percent=discount_percent,
                         gst_enabled="true" if gst_enabled else "false")

    # Checkout
    def checkout(self, session_id: str, discount_percent: float = 0.0, gst_enabled: bool = True,
                 payment_method: str = "cash", customer_name: Optional[str] = None,
                 customer_mobile: Optional[str] = None, idempotency_key: Optional[str] = None):
        key = self._make_idempotency_key(idempotency_key)
        payload = {
            "discount_percent": discount_percent,
            "gst_enabled": gst_enabled,
            "payment_method": payment_method,
            "customer_name": customer_name,
            "customer_mobile": customer_mobile,
        }
        r = self.session.post(f"{self.base_url}/cart/checkout", params={"session_id": session_id},
                              json=payload, headers={"Idempotency-Key": key}, timeout=self.timeout)
        # do not raise_for_status: callers inspect 400/409 bodies
        return r

    async def checkout_async(self, session_id: str, idempotency_key: Optional[str] = None, **fields):
        key = self._make_idempotency_key(idempotency_key)
        headers = {"Idempotency-Key": key}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(f"{self.base_url}/cart/checkout", params={"session_id": session_id},
                                     json=fields, headers=headers)

    # Sales
    def list_sales(self, start: Optional[str] = None, end: Optional[str] = None):
        return self._get("/sales", start=start, end=end)

    def get_sale(self, sale_id: str):
        return self._get(f"/sales/{sale_id}")

    def receipt_text(self, sale_id: str, layout: str = "thermal") -> str:
        r = self.session.get(f"{self.base_url}/sales/{sale_id}/receipt",
                             params={"format": "text", "layout": layout}, timeout=self.timeout)
        r.raise_for_status()
        return r.text

    def receipt_pdf(self, sale_id: str, layout: str = "thermal") -> bytes:
        r = self.session.get(f"{self.base_url}/sales/{sale_id}/receipt",
                             params={"format": "pdf", "layout": layout}, timeout=self.timeout)
        r.raise_for_status()
        return r.content

    # Reports
    def sales_report(self, period: str = "week", start: Optional[str] = None,
                     end: Optional[str] = None, granularity: Optional[str] = None):
        return self._get("/reports/sales", period=period, start=start, end=end, granularity=granularity)

    def dashboard(self):
        return self._get("/reports/dashboard")

    def inventory(self):
        return self._get("/reports/inventory")

    # Backup
    def export_backup(self):
        return self._get("/backup")

    def import_backup(self, backup: Dict[str, Any]):
        return self._send("POST", "/backup/import", backup)


if __name__ == "__main__":
    import argparse
    import json

    parser = argparse.ArgumentParser(description="pos-invoice client")
    parser.add_argument("--base-url", default="http://127.0.0.1:8085")
    parser.add_argument("--api-key", default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)

    lp = subparsers.add_parser("list-products", help="List all products")
    lp.add_argument("--category", help="Filter products by category")
    lp.add_argument("--in-stock-only", action="store_true", help="Show only products in stock")

    sp = subparsers.add_parser("search", help="Search products by name, category or barcode")
    sp.add_argument("--term", required=True)

    ap = subparsers.add_parser("add-product", help="Add a product to the catalog")
    ap.add_argument("--name", required=True)
    ap.add_argument("--price", type=float, required=True, help="Price per unit, or per kg/ltr")
    ap.add_argument("--stock", type=float, required=True)
    ap.add_argument("--category", default="general")
    ap.add_argument("--unit", choices=["kg", "g", "ltr", "ml"], help="Makes it a weight product")
    ap.add_argument("--gst-rate", type=float)

    ls = subparsers.add_parser("list-sales", help="List recorded sales")
    ls.add_argument("--start")
    ls.add_argument("--end")

    rc = subparsers.add_parser("receipt", help="Print a sale receipt")
    rc.add_argument("--sale-id", required=True)
    rc.add_argument("--layout", choices=["thermal", "a4"], default="thermal")

    rp = subparsers.add_parser("report", help="Sales report")
    rp.add_argument("--period", choices=["day", "week", "month", "year"], default="week")

    subparsers.add_parser("dashboard", help="Dashboard figures")

    bk = subparsers.add_parser("backup", help="Write a JSON backup to a file")
    bk.add_argument("--out", required=True)

    args = parser.parse_args()
    c = PosClient(base_url=args.base_url, api_key=args.api_key)

    if args.command == "list-products":
        print(json.dumps(c.list_products(args.category, args.in_stock_only), indent=2))
    elif args.command == "search":
        print(json.dumps(c.search_products(args.term), indent=2))
    elif args.command == "add-product":
        kind = "weight" if args.unit else "unit"
        print(json.dumps(c.add_product(args.name, args.price, args.stock, args.category,
                                       type=kind, unit=args.unit, gst_rate=args.gst_rate), indent=2))
    elif args.command == "list-sales":
        print(json.dumps(c.list_sales(args.start, args.end), indent=2))
    elif args.command == "receipt":
        print(c.receipt_text(args.sale_id, args.layout))
    elif args.command == "report":
        print(json.dumps(c.sales_report(args.period), indent=2))
    elif args.command == "dashboard":
        print(json.dumps(c.dashboard(), indent=2))
    elif args.command == "backup":
        with open(args.out, "w", encoding="utf-8") as f:
            json.dump(c.export_backup(), f, indent=2)
        print(f"Backup written to {args.out}")
