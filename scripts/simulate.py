"""
Multi-Display Simulation Script

Places random orders, then lets a kitchen, a bar and a cashier display work
them concurrently against a running engine. Finishes by checking that all
displays converged on the engine's state.

Run from project root (engine running on API_BASE_URL):
    python scripts/simulate.py --orders 20 --rounds 40
"""

import argparse
import asyncio
import os
import random
import sys
import time
from collections import Counter
from datetime import datetime
from typing import Any

import httpx

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from fulfillment.core.config import get_settings  # noqa: E402
from fulfillment.core.exceptions import MutationInFlight  # noqa: E402
from fulfillment.models import FulfillmentStatus, Station  # noqa: E402
from fulfillment.sync import DisplaySynchronizer, HttpOrdersGateway  # noqa: E402

# Configuration
API_BASE_URL = get_settings().api_base_url
TOTAL_ORDERS = 20

CUSTOMERS = ["Budi", "Siti", "Andi", "Dewi", "Rudi", "Maya", "Agus", "Rina", "Joko", "Lina"]
NOTES = [None, None, "Tidak pedas", "Extra es", "Tanpa bawang", "Bungkus"]


def generate_order_payload(menu_items: list[dict]) -> dict[str, Any]:
    """Generate a checkout payload with consistent totals."""
    items = []
    for menu_item in random.sample(menu_items, k=random.randint(1, min(4, len(menu_items)))):
        items.append({
            "item_id": menu_item["id"],
            "name": menu_item["name"],
            "price": menu_item["price"],
            "quantity": random.randint(1, 3),
            "notes": random.choice(NOTES),
        })
    subtotal = round(sum(i["price"] * i["quantity"] for i in items), 2)
    discount = random.choice([0, 0, 0, round(subtotal * 0.1, 2)])
    return {
        "customer_name": random.choice(CUSTOMERS),
        "table_number": str(random.randint(1, 15)),
        "items": items,
        "subtotal": subtotal,
        "discount": discount,
        "total": round(subtotal - discount, 2),
        "payment_method": random.choice(["cash", "qris"]),
    }


async def place_orders(client: httpx.AsyncClient, count: int) -> list[str]:
    catalog = (await client.get("/api/catalog")).json()
    menu_items = catalog["menu_items"]
    ids = []
    for _ in range(count):
        response = await client.post("/api/orders", json=generate_order_payload(menu_items))
        if response.status_code == 201:
            ids.append(response.json()["id"])
        else:
            print(f"   ⚠️ Order rejected: {response.text[:100]}")
    return ids


def next_step(status: FulfillmentStatus) -> FulfillmentStatus | None:
    if random.random() < 0.05 and not status.is_terminal:
        return FulfillmentStatus.CANCELLED
    return {
        FulfillmentStatus.QUEUED: FulfillmentStatus.PREPARING,
        FulfillmentStatus.PREPARING: FulfillmentStatus.READY,
    }.get(status)


async def work_display(display: DisplaySynchronizer, rounds: int, stats: Counter) -> None:
    """One display picking random orders from its own queue and advancing them."""
    for _ in range(rounds):
        queue = await display.list_active_orders(display.station)
        if queue:
            order = random.choice(queue)
            target = next_step(order.status)
            if target is not None:
                try:
                    mutation = await display.request_transition(order.id, target)
                except MutationInFlight:
                    stats["in_flight_rejections"] += 1
                else:
                    if mutation.acknowledged:
                        stats["acknowledged"] += 1
                    elif mutation.committed:
                        stats["committed"] += 1
                    else:
                        stats[f"rolled_back:{mutation.error.code}"] += 1
        await asyncio.sleep(random.uniform(0.05, 0.3))


async def run_simulation(num_orders: int, rounds: int, poll_interval: float) -> dict[str, Any]:
    print("=" * 70)
    print("🔥 MULTI-DISPLAY SIMULATION")
    print("=" * 70)
    print(f"📋 Orders: {num_orders}   🔁 Rounds per display: {rounds}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()
    stats: Counter = Counter()

    async with httpx.AsyncClient(base_url=API_BASE_URL, timeout=10.0) as client:
        order_ids = await place_orders(client, num_orders)
        print(f"\n✅ Placed {len(order_ids)} orders")

        displays = [
            DisplaySynchronizer(HttpOrdersGateway(client=client), station=station, poll_interval=poll_interval)
            for station in (Station.KITCHEN, Station.BAR, None)
        ]
        for display in displays:
            await display.refresh()
            display.start()

        await asyncio.gather(*(work_display(d, rounds, stats) for d in displays))

        # Let auto-completions land and every display poll at least once more
        await asyncio.sleep(poll_interval * 2)
        for display in displays:
            await display.stop()
            await display.refresh()

        server = {o["id"]: o["status"] for o in (await client.get("/api/orders")).json()["orders"]}

    converged = all(
        {o.id: o.status.value for o in display.orders} == server
        for display in displays
    )
    total_time = round(time.time() - start_time, 2)

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    for key, value in sorted(stats.items()):
        print(f"   {key}: {value}")
    print(f"\n📦 Final statuses: {dict(Counter(server.values()))}")
    print(f"{'✅' if converged else '❌'} Displays converged: {converged}")
    print(f"⏱️  Total Time: {total_time}s")
    print("=" * 70)

    return {"stats": dict(stats), "converged": converged, "total_time": total_time}


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Multi-display simulation")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--rounds", type=int, default=40, help="Actions per display")
    parser.add_argument("--poll-interval", type=float, default=3.0, help="Display poll interval")
    args = parser.parse_args()

    result = asyncio.run(run_simulation(args.orders, args.rounds, args.poll_interval))
    sys.exit(0 if result["converged"] else 1)
