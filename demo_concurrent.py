import asyncio
from sdk.posclient import PosClient


async def ring_up(client, session, product_id, qty):
    # each counter reserves in its own cart; only checkout touches stock
    try:
        client.add_to_cart(session, product_id, qty)
    except Exception as e:
        print(f"❌ {session} could not add item: {e}")
        return
    r = await client.checkout_async(session, payment_method="cash")
    body = r.json()
    if r.status_code == 200:
        print(f"✅ {session} sold {qty} (Sale {body['id'][-8:]}, Total: {body['total']:.2f})")
    elif r.status_code == 409:
        print(f"❌ {session} checkout failed: {body['detail']} (already sold out)")
    else:
        print(f"⚠️  {session} unexpected response {r.status_code}: {body}")


async def main():
    c = PosClient(base_url="http://127.0.0.1:8085")
    c.reset()

    product = c.add_product("Festival Gift Box", 500, 2, "Gifts", gst_rate=12)["product"]
    print(f"\n🎁 Product: {product}")

    print("\n⚡ Two counters selling the last two boxes at once...")
    await asyncio.gather(
        ring_up(c, "counter-1", product["id"], 2),
        ring_up(c, "counter-2", product["id"], 2),
    )

    print("\n📦 Final product state:", c.get_product(product["id"]))
    print("🧾 Sales:", len(c.list_sales()))


if __name__ == "__main__":
    asyncio.run(main())
