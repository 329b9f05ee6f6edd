"""
Order Rush Simulation

Fires many concurrent orders at a running API to exercise the order queue
and the stock bookkeeping. Uses the demo accounts created by the seed data.

Run from project root: python scripts/simulate.py --orders 50
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8080"
TOTAL_ORDERS = 50
DEMO_USERS = [("demo_user1", "demo123"), ("demo_user2", "demo123")]
ADMIN = ("super_admin", "super@123")


async def login(client: httpx.AsyncClient, username: str, password: str, role: str) -> str:
    response = await client.post(
        "/api/auth/login",
        json={"username": username, "password": password, "role": role},
    )
    response.raise_for_status()
    return response.json()["data"]["token"]


async def load_menu(client: httpx.AsyncClient, token: str) -> tuple[str, list[dict]]:
    """Pick the first canteen and return its id and available items."""
    headers = {"Authorization": f"Bearer {token}"}
    response = await client.get("/api/canteens", headers=headers)
    response.raise_for_status()
    canteen = response.json()["data"]["canteens"][0]

    response = await client.get(
        f"/api/menu/canteen/{canteen['id']}",
        params={"available": "true"},
        headers=headers,
    )
    response.raise_for_status()
    return canteen["id"], response.json()["data"]["menu_items"]


def generate_order(canteen_id: str, menu: list[dict]) -> dict[str, Any]:
    picks = random.sample(menu, k=min(len(menu), random.randint(1, 3)))
    return {
        "canteen_id": canteen_id,
        "items": [{"menu_item_id": m["id"], "quantity": random.randint(1, 2)} for m in picks],
        "order_type": random.choice(["dine-in", "takeaway"]),
        "payment_type": random.choice(["individual", "organization"]),
        "notes": random.choice([None, "Less spicy", "Extra chutney", "No onions"]),
    }


async def send_order(
    client: httpx.AsyncClient,
    token: str,
    payload: dict[str, Any],
    order_num: int,
) -> dict[str, Any]:
    start_time = time.time()
    try:
        response = await client.post(
            "/api/orders",
            json=payload,
            headers={"Authorization": f"Bearer {token}"},
            timeout=30.0,
        )
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }

    elapsed = round(time.time() - start_time, 3)
    body = response.json()
    if response.status_code == 201:
        order = body["data"]["order"]
        return {
            "order_num": order_num,
            "success": True,
            "order_code": order["order_code"],
            "total": order["total"],
            "time": elapsed,
        }
    return {
        "order_num": order_num,
        "success": False,
        "error": body.get("message", response.text)[:100],
        "time": elapsed,
    }


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_orders: int = TOTAL_ORDERS, export: bool = False) -> dict[str, Any]:
    print("=" * 70)
    print("🔥 ORDER RUSH SIMULATION")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient(base_url=API_BASE_URL) as client:
        tokens = [await login(client, u, p, "user") for u, p in DEMO_USERS]
        canteen_id, menu = await load_menu(client, tokens[0])
        if not menu:
            print("\n❌ No available menu items, nothing to order")
            return {"total": 0, "successful": 0, "failed": 0}

        start_time = time.time()
        tasks = [
            send_order(client, tokens[i % len(tokens)], generate_order(canteen_id, menu), i + 1)
            for i in range(num_orders)
        ]
        results = await asyncio.gather(*tasks)
        total_time = round(time.time() - start_time, 2)

        admin_token = await login(client, *ADMIN, "admin")
        headers = {"Authorization": f"Bearer {admin_token}"}
        queue = (await client.get("/api/orders/queue/status", headers=headers)).json()["data"]["queue"]

        if export:
            response = await client.post("/api/orders/export", json={}, headers=headers)
            print(f"\n📤 Export: {response.json().get('message')}")

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Successful Orders: {len(successful)}/{num_orders}")
    print(f"❌ Failed Orders: {len(failed)}/{num_orders}")
    print(f"⏱️  Total Time: {total_time}s")
    print(f"📦 Queue after run: {queue}")

    if successful:
        times = [r["time"] for r in successful]
        print("\n📈 Performance Metrics:")
        print(f"   Average Response: {round(sum(times) / len(times), 3)}s")
        print(f"   Fastest: {min(times)}s")
        print(f"   Slowest: {max(times)}s")
        print(f"   💰 Total Revenue: ₹{sum(r['total'] for r in successful):.2f}")

    if failed:
        print("\n⚠️  Failed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f['error']}")

    print("=" * 70)
    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
    }


def main():
    global API_BASE_URL

    parser = argparse.ArgumentParser(description="Flood the order queue with concurrent orders")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    parser.add_argument("--export", action="store_true", help="Queue an Excel export afterwards")
    args = parser.parse_args()

    API_BASE_URL = args.url
    asyncio.run(run_simulation(args.orders, export=args.export))


if __name__ == "__main__":
    main()
