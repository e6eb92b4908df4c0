#!/usr/bin/env python
import uuid
from sdk.posclient import PosClient


def main():
    c = PosClient(base_url="http://127.0.0.1:8085")
    session = "counter-1"

    # -----------------------------
    # Reset everything for demo
    # -----------------------------
    print("Resetting store...")
    c.reset()
    print(c.update_profile(shop_name="Sharma General Store", address="12 MG Road, Pune",
                           phone="9800000000", gst_number="27ABCDE1234F1Z5"))

    # -----------------------------
    # Catalog
    # -----------------------------
    print("\nAdding products...")
    rice = c.add_product("Basmati Rice", 100, 5, "Grocery", type="weight", unit="kg", gst_rate=5)["product"]
    soap = c.add_product("Bath Soap", 50, 20, "Personal Care", gst_rate=18)["product"]
    print(rice)
    print(soap)

    print("\nSearching for 'rice'...")
    print(c.search_products("rice"))

    # -----------------------------
    # Billing
    # -----------------------------
    print("\nBilling 2kg rice and 3 soaps...")
    print(c.add_to_cart(session, rice["id"], 1, weight=2, unit="kg"))
    print(c.add_to_cart(session, soap["id"], 3))

    print("\nCart with 10% discount and GST...")
    print(c.view_cart(session, discount_percent=10, gst_enabled=True))

    print("\nTrying to add 3.5kg more rice (only 3kg left to reserve)...")
    try:
        c.add_to_cart(session, rice["id"], 1, weight=3500, unit="g")
    except Exception as e:
        print(f"Rejected: {e}")

    # -----------------------------
    # Checkout
    # -----------------------------
    print("\nChecking out...")
    r = c.checkout(session, discount_percent=10, payment_method="upi",
                   customer_name="Asha", customer_mobile="9811111111",
                   idempotency_key=str(uuid.uuid4()))
    sale = r.json()
    print(sale)

    print("\nReceipt:")
    print(c.receipt_text(sale["id"]))

    print("Stock after sale:", c.get_product(rice["id"])["stock"], "kg rice,",
          c.get_product(soap["id"])["stock"], "soaps")

    print("\nCustomers:", c.list_customers())
    print("\nDashboard:", c.dashboard())


if __name__ == "__main__":
    main()
