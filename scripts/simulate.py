"""
Service Simulation Script

Drives full table -> kitchen -> waiter -> bill flows concurrently against
a running server to exercise the status lifecycle and the retry client.
Run from project root: python scripts/simulate.py

Author: Khalil_Bannouri
Version: 1.0.0
"""

import argparse
import asyncio
import os
import random
import sys
import time
from datetime import datetime
from typing import Any

import httpx

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tableorder.client import ApiError, GatewayUnavailable, OrderingClient
from tableorder.seed import MENU_ITEMS, TABLE_TOKENS

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 20


def generate_random_items() -> list[dict[str, Any]]:
    """Random cart of 1-4 distinct menu items."""
    picks = random.sample(MENU_ITEMS, random.randint(1, 4))
    return [
        {"itemId": menu_item_id, "name": name, "qty": random.randint(1, 3)}
        for menu_item_id, name, *_ in picks
    ]


async def fetch_order(http: httpx.AsyncClient, order_id: str) -> dict[str, Any]:
    response = await http.get(f"/api/orders/{order_id}")
    response.raise_for_status()
    return response.json()


async def run_flow(
    client: OrderingClient,
    http: httpx.AsyncClient,
    flow_num: int,
    full: bool,
) -> dict[str, Any]:
    """Place one order and, when ``full`` is set, walk it through to billing."""
    table_id = random.choice(list(TABLE_TOKENS))
    start_time = time.time()
    result: dict[str, Any] = {"flow_num": flow_num, "table_id": table_id}

    try:
        order_id = await client.create_order(table_id, TABLE_TOKENS[table_id], generate_random_items())
        result["order_id"] = order_id

        if full:
            order = await fetch_order(http, order_id)
            item_ids = [item["order_item_id"] for item in order["items"]]

            await client.update_kitchen_status(
                order_id, [{"orderItemId": i, "status": "preparing"} for i in item_ids]
            )
            await client.update_kitchen_status(
                order_id, [{"orderItemId": i, "status": "ready"} for i in item_ids]
            )
            await client.mark_order_served(order_id, item_ids)
            result["checkout_url"] = await client.generate_bill(order_id)

            order = await fetch_order(http, order_id)
            result["status"] = order["status"]
            result["total_cents"] = order["total_cents"]

        result["success"] = True
    except (ApiError, GatewayUnavailable, httpx.HTTPError) as e:
        result["success"] = False
        result["error"] = str(e)[:100]

    result["time"] = round(time.time() - start_time, 3)
    return result


async def run_simulation(num_orders: int = TOTAL_ORDERS, full: bool = True) -> dict[str, Any]:
    print("=" * 70)
    print("🔥 ORDER FLOW SIMULATION")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"🔧 Mode: {'full lifecycle' if full else 'create only'}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()
    async with OrderingClient(base_url=API_BASE_URL) as client, \
            httpx.AsyncClient(base_url=API_BASE_URL) as http:
        results = await asyncio.gather(
            *[run_flow(client, http, i + 1, full) for i in range(num_orders)]
        )
    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Successful Flows: {len(successful)}/{num_orders}")
    print(f"❌ Failed Flows: {len(failed)}/{num_orders}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"\n📈 Average Flow: {avg_time}s")
        if full:
            billed = sum(r.get("total_cents", 0) for r in successful)
            print(f"   💰 Total Billed: {billed / 100:.2f}")

    if failed:
        print("\n⚠️  Failed Flow Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Flow #{f['flow_num']} [{f['table_id']}]: {f.get('error', 'Unknown error')}")

    print("=" * 70)
    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


async def check_health() -> bool:
    async with httpx.AsyncClient(base_url=API_BASE_URL) as http:
        try:
            response = await http.get("/health")
        except httpx.HTTPError as e:
            print(f"   ❌ Server unreachable: {e}")
            return False
    data = response.json()
    print(f"   Status: {data.get('status')}")
    print(f"   Database: {data.get('database')}")
    print(f"   Notifier: {data.get('notifier')}")
    print(f"   Payments: {data.get('payment_service')}")
    return response.status_code == 200


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Order Flow Simulation")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--create-only", action="store_true", help="Only place orders")
    parser.add_argument("--skip-health", action="store_true", help="Skip the health check")
    args = parser.parse_args()

    if not args.skip_health:
        print("\n🩺 Health Check...")
        if not asyncio.run(check_health()):
            print("\n❌ Pre-flight check failed. Start the server first.")
            sys.exit(1)

    asyncio.run(run_simulation(args.orders, full=not args.create_only))
