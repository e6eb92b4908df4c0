# tests/test_checkout.py
import pytest
from fastapi.testclient import TestClient

from posinvoice.main import app

client = TestClient(app)


def reset():
    client.post("/reset")


def make_product(**fields):
    payload = {"name": "Soap", "price": 50, "stock": 10, "gst_rate": 18}
    payload.update(fields)
    r = client.post("/products", json=payload)
    assert r.status_code == 201
    return r.json()["product_id"]


def add(session, pid, **fields):
    return client.post("/cart/add", json={"session_id": session, "product_id": pid, **fields})


def checkout(session, key, **body):
    return client.post(f"/cart/checkout?session_id={session}", json=body, headers={"Idempotency-Key": key})


def test_checkout_records_sale_and_deducts_stock():
    reset()
    rice = make_product(name="Rice", price=100, type="weight", unit="kg", stock=5, gst_rate=5)
    soap = make_product()
    assert add("s1", rice, weight=2, unit="kg").status_code == 200
    assert add("s1", soap, quantity=3).status_code == 200

    r = checkout("s1", "k-1", discount_percent=10, payment_method="upi")
    assert r.status_code == 200
    sale = r.json()
    assert sale["subtotal"] == pytest.approx(350)
    assert sale["discount_amount"] == pytest.approx(35)
    assert sale["tax_amount"] == pytest.approx(33.3)
    assert sale["total"] == pytest.approx(348.3)
    assert sale["payment_method"] == "upi"
    assert len(sale["items"]) == 2

    assert client.get(f"/products/{rice}").json()["stock"] == pytest.approx(3)
    assert client.get(f"/products/{soap}").json()["stock"] == pytest.approx(7)
    assert client.get("/cart/s1").json()["items"] == []
    assert client.get(f"/sales/{sale['id']}").json()["total"] == pytest.approx(348.3)


def test_same_product_in_two_weight_lines_is_deducted_once_in_total():
    reset()
    rice = make_product(name="Rice", price=100, type="weight", unit="kg", stock=5, gst_rate=5)
    add("s1", rice, weight=1.5, unit="kg")
    add("s1", rice, weight=500, unit="g")
    r = checkout("s1", "k-2")
    assert r.status_code == 200
    assert client.get(f"/products/{rice}").json()["stock"] == pytest.approx(3)


def test_retry_with_same_key_returns_the_first_sale():
    reset()
    soap = make_product(stock=5)
    add("s1", soap, quantity=2)
    first = checkout("s1", "k-retry")
    assert first.status_code == 200

    # cart is already cleared; the key alone identifies the sale
    second = checkout("s1", "k-retry")
    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]
    assert len(client.get("/sales").json()) == 1
    assert client.get(f"/products/{soap}").json()["stock"] == pytest.approx(3)


def test_checkout_requires_idempotency_key():
    reset()
    soap = make_product()
    add("s1", soap)
    r = client.post("/cart/checkout?session_id=s1", json={})
    assert r.status_code == 400
    assert r.json()["detail"] == "idempotency_key_required"


def test_empty_cart_is_rejected():
    reset()
    r = checkout("nobody", "k-empty")
    assert r.status_code == 400
    assert r.json()["detail"].startswith("cart_empty")
    assert client.get("/sales").json() == []


def test_full_discount_leaves_nothing_to_charge():
    reset()
    soap = make_product()
    add("s1", soap)
    r = checkout("s1", "k-free", discount_percent=100)
    assert r.status_code == 400
    assert client.get("/sales").json() == []


def test_stock_changed_after_add_rejects_the_whole_sale():
    reset()
    soap = make_product(stock=5)
    rice = make_product(name="Rice", price=100, type="weight", unit="kg", stock=5, gst_rate=5)
    add("s1", rice, weight=1, unit="kg")
    add("s1", soap, quantity=3)
    client.put(f"/products/{soap}", json={"stock": 1})

    r = checkout("s1", "k-stale")
    assert r.status_code == 409
    assert r.json()["detail"] == f"insufficient_stock:{soap}"
    assert client.get("/sales").json() == []
    assert client.get(f"/products/{rice}").json()["stock"] == pytest.approx(5)
    assert client.get(f"/products/{soap}").json()["stock"] == pytest.approx(1)
    assert len(client.get("/cart/s1").json()["items"]) == 2


def test_failed_flush_keeps_stock_and_cart(monkeypatch):
    reset()
    soap = make_product(stock=5)
    add("s1", soap, quantity=2)

    def boom():
        raise OSError("disk full")

    monkeypatch.setattr(app.state.store.kv, "_write_json", boom)
    r = checkout("s1", "k-disk")
    assert r.status_code == 500
    assert r.json()["detail"] == "store_write_failed:OSError"
    monkeypatch.undo()

    assert client.get("/sales").json() == []
    assert client.get(f"/products/{soap}").json()["stock"] == pytest.approx(5)
    assert len(client.get("/cart/s1").json()["items"]) == 1


def test_named_customer_is_created_once_and_linked():
    reset()
    soap = make_product()
    add("s1", soap)
    a = checkout("s1", "k-c1", customer_name="Asha", customer_mobile="9876543210").json()
    add("s1", soap)
    b = checkout("s1", "k-c2", customer_name="Asha R", customer_mobile="9876543210").json()

    customers = client.get("/customers").json()
    assert len(customers) == 1
    assert a["customer_id"] == b["customer_id"] == customers[0]["id"]
    assert b["customer_name"] == "Asha R"


def test_walk_in_sale_has_no_customer():
    reset()
    soap = make_product()
    add("s1", soap)
    sale = checkout("s1", "k-walk").json()
    assert sale["customer_id"] is None
    assert client.get("/customers").json() == []


def test_cart_endpoints_validate_stock_and_lines():
    reset()
    soap = make_product(stock=2)
    r = add("s1", soap, quantity=3)
    assert r.status_code == 409
    assert r.json()["detail"] == f"insufficient_stock:{soap}"

    line_id = add("s1", soap, quantity=1).json()["line"]["line_id"]
    assert client.post("/cart/update", json={"session_id": "s1", "line_id": line_id, "quantity": 3}).status_code == 409
    r = client.post("/cart/update", json={"session_id": "s1", "line_id": line_id, "quantity": 2})
    assert r.status_code == 200
    assert r.json()["line"]["quantity"] == 2

    assert client.post("/cart/update", json={"session_id": "s1", "line_id": "nope", "quantity": 1}).status_code == 404
    assert add("s1", "missing").status_code == 404

    cart = client.get("/cart/s1?discount_percent=10&gst_enabled=false").json()
    assert cart["totals"]["subtotal"] == pytest.approx(100)
    assert cart["totals"]["tax_amount"] == 0
    assert cart["totals"]["total"] == pytest.approx(90)

    client.post("/cart/remove", json={"session_id": "s1", "line_id": line_id})
    assert client.get("/cart/s1").json()["items"] == []


def test_weight_product_without_weight_is_rejected():
    reset()
    rice = make_product(name="Rice", price=100, type="weight", unit="kg", stock=5)
    r = add("s1", rice)
    assert r.status_code == 400
    assert r.json()["detail"].startswith("weight_required")
    r = add("s1", rice, weight=1, unit="ml")
    assert r.status_code == 400
    assert r.json()["detail"].startswith("invalid_unit")


def test_key_from_before_an_import_does_not_replay_a_missing_sale():
    reset()
    soap = make_product()
    add("s1", soap)
    assert checkout("s1", "k-old").status_code == 200

    assert client.post("/backup/import", json={"products": [], "sales": [], "customers": []}).status_code == 200
    r = checkout("s1", "k-old")
    assert r.status_code == 400
    assert r.json()["detail"].startswith("cart_empty")


def test_dangling_key_is_treated_as_unused():
    reset()
    soap = make_product(stock=5)
    app.state.store.kv.set("idempotency:k-dangling", "gone")
    add("s1", soap, quantity=2)

    r = checkout("s1", "k-dangling")
    assert r.status_code == 200
    assert r.json()["id"] != "gone"
    assert checkout("s1", "k-dangling").json()["id"] == r.json()["id"]
    assert client.get(f"/products/{soap}").json()["stock"] == pytest.approx(3)


def test_product_kind_cannot_change_under_an_open_cart():
    reset()
    rice = make_product(name="Rice", price=100, type="weight", unit="kg", stock=5, gst_rate=5)
    add("s1", rice, weight=2, unit="kg")

    r = client.put(f"/products/{rice}", json={"type": "unit"})
    assert r.status_code == 400
    assert r.json()["detail"] == f"invalid:product_in_open_cart:{rice}"
    assert client.put(f"/products/{rice}", json={"unit": "ml"}).status_code == 400
    assert client.put(f"/products/{rice}", json={"unit": "g"}).status_code == 200
    assert client.get(f"/products/{rice}").json()["type"] == "weight"

    client.post("/cart/clear", json={"session_id": "s1"})
    assert client.put(f"/products/{rice}", json={"type": "unit"}).status_code == 200


def test_checkout_rejects_lines_priced_for_another_kind():
    reset()
    rice = make_product(name="Rice", price=100, type="weight", unit="kg", stock=5, gst_rate=5)
    add("s1", rice, weight=2, unit="kg")
    # catalog rewritten behind the cart, e.g. by a backup import of another shape
    raw = app.state.store.kv.get(f"product:{rice}")
    raw.update({"type": "unit", "unit": None})
    app.state.store.kv.set(f"product:{rice}", raw)

    r = checkout("s1", "k-kind")
    assert r.status_code == 400
    assert r.json()["detail"] == f"invalid:product_changed:{rice}"
    assert client.get("/sales").json() == []
    assert client.get(f"/products/{rice}").json()["stock"] == pytest.approx(5)
