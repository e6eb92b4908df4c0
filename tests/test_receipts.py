# tests/test_receipts.py
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from posinvoice.errors import ValidationFailed
from posinvoice.main import app
from posinvoice.models import Sale, SaleItem, ShopProfile
from posinvoice.receipts import TEXT_WIDTHS, invoice_number, render_pdf, render_text

PROFILE = ShopProfile(shop_name="Sri Stores", phone="080-123456", address="12 Market Road, Mysuru",
                      gst_number="29ABCDE1234F1Z5")

SALE = Sale(
    id="0123456789abcdef",
    customer_name="Asha",
    customer_mobile="9876543210",
    items=[
        SaleItem(product_id="rice", name="Rice", kind="weight", quantity=2, unit_price=50,
                 line_total=100, gst_rate=5, weight=500, unit="g"),
        SaleItem(product_id="soap", name="Soap", kind="unit", quantity=3, unit_price=50,
                 line_total=150, gst_rate=18),
    ],
    subtotal=250,
    discount_percent=10,
    discount_amount=25,
    tax_amount=28.8,
    total=253.8,
    payment_method="upi",
    created_at=datetime(2024, 3, 15, 9, 5, tzinfo=timezone.utc),
)


def test_text_receipt_contents():
    text = render_text(SALE, PROFILE, "thermal")
    assert "SRI STORES" in text
    assert "GST: 29ABCDE1234F1Z5" in text
    assert "Customer: Asha" in text
    assert "Invoice: #89abcdef" in text
    assert "500g each" in text
    assert "Discount (10%):" in text
    assert "Rs.253.80" in text
    assert "Payment:" in text and "UPI" in text
    assert all(len(line) <= TEXT_WIDTHS["thermal"] for line in text.splitlines())


def test_text_receipt_walk_in_without_gst():
    sale = SALE.model_copy(update={"customer_name": None, "customer_mobile": None,
                                   "gst_enabled": False, "discount_amount": 0, "discount_percent": 0})
    text = render_text(sale, PROFILE, "a4")
    assert "Walk-in Customer" in text
    assert "Discount" not in text
    assert "\nGST:" not in text
    assert max(len(line) for line in text.splitlines()) <= TEXT_WIDTHS["a4"]


def test_invoice_number_is_id_suffix():
    assert invoice_number(SALE) == "89abcdef"


def test_unknown_layout():
    with pytest.raises(ValidationFailed):
        render_text(SALE, PROFILE, "letter")


def test_pdf_receipts():
    for layout in ("thermal", "a4"):
        pdf = render_pdf(SALE, PROFILE, layout)
        assert pdf.startswith(b"%PDF")


client = TestClient(app)


def test_receipt_endpoint():
    client.post("/reset")
    pid = client.post("/products", json={"name": "Soap", "price": 50, "stock": 5}).json()["product_id"]
    client.post("/cart/add", json={"session_id": "rc", "product_id": pid, "quantity": 2})
    sale = client.post("/cart/checkout?session_id=rc", json={}, headers={"Idempotency-Key": "rc-1"}).json()

    r = client.get(f"/sales/{sale['id']}/receipt")
    assert r.status_code == 200
    assert "Soap" in r.text
    assert "Walk-in Customer" in r.text

    r = client.get(f"/sales/{sale['id']}/receipt?format=pdf&layout=a4")
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert r.content.startswith(b"%PDF")

    assert client.get(f"/sales/{sale['id']}/receipt?format=docx").status_code == 400
    assert client.get("/sales/nope/receipt").status_code == 404
