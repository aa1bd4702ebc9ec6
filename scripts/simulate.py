"""
Dinner Rush Simulation Script

Simulates many tables ordering at the same time, then a staff member
working through the dashboard: accepting, completing or cancelling every
order. Each table uses its own HTTP client, so each has its own session
cookie and cart.

Run from project root (server running): python scripts/simulate.py

Author: Khalil_Bannouri
Version: 1.0.0
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
API_BASE_URL = "http://localhost:8001"
TOTAL_TABLES = 30
ADMIN_EMAIL = "admin@oona.local"
ADMIN_PASSWORD = "admin123"

NOTES = [None, None, "No onions", "Extra spicy", "Less salt", "Birthday table, bring candles"]


# =============================================================================
# CUSTOMER SIMULATION
# =============================================================================

async def place_table_order(
    base_url: str,
    table_number: int,
    menu: list[dict],
) -> dict[str, Any]:
    """Fill one table's cart with random dishes and check out."""
    start_time = time.time()
    available = [item for item in menu if item.get("available")]

    async with httpx.AsyncClient(base_url=base_url, timeout=30.0) as client:
        try:
            for item in random.sample(available, k=min(len(available), random.randint(1, 4))):
                for _ in range(random.randint(1, 3)):
                    response = await client.post("/api/cart/items", json={"item_id": item["id"]})
                    response.raise_for_status()

            response = await client.post(
                "/api/orders",
                json={"table_number": table_number, "customer_notes": random.choice(NOTES)},
            )
            elapsed = round(time.time() - start_time, 3)

            if response.status_code == 201:
                order = response.json()["order"]
                return {
                    "table": table_number,
                    "success": True,
                    "order_id": order["id"],
                    "total": order["total"],
                    "time": elapsed,
                }
            return {
                "table": table_number,
                "success": False,
                "error": response.json().get("error", response.text[:100]),
                "time": elapsed,
            }
        except httpx.HTTPError as e:
            return {
                "table": table_number,
                "success": False,
                "error": str(e)[:100],
                "time": round(time.time() - start_time, 3),
            }


# =============================================================================
# STAFF SIMULATION
# =============================================================================

async def work_the_dashboard(base_url: str, email: str, password: str) -> dict[str, int]:
    """Sign in and move every active order to a final status."""
    outcomes = {"applied": 0, "rolled_back": 0, "rejected": 0}

    async with httpx.AsyncClient(base_url=base_url, timeout=30.0) as client:
        response = await client.post("/admin/login", data={"email": email, "password": password})
        if response.status_code >= 400:
            print(f"   ❌ Staff login failed ({response.status_code})")
            return outcomes

        response = await client.get("/admin/api/dashboard")
        response.raise_for_status()
        orders = response.json()["orders"]

        async def advance(order_id: str, status: str) -> None:
            result = await client.post(f"/admin/api/orders/{order_id}/status", json={"status": status})
            outcomes[result.json().get("outcome", "rejected")] += 1

        for order in orders:
            if order["status"] == "pending" and random.random() < 0.1:
                await advance(order["id"], "cancelled")
                continue
            if order["status"] == "pending":
                await advance(order["id"], "accepted")
            await advance(order["id"], "completed")

        response = await client.get("/admin/api/dashboard")
        stats = response.json()["stats"]
        print(f"   Remaining active orders: {len(response.json()['orders'])}")
        print(f"   Today's earnings: {stats['today_earnings']:.2f}")
        print(f"   Completed: {stats['completed_orders']} | Pending: {stats['pending_orders']}")

    return outcomes


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    base_url: str = API_BASE_URL,
    num_tables: int = TOTAL_TABLES,
    email: str = ADMIN_EMAIL,
    password: str = ADMIN_PASSWORD,
) -> dict[str, Any]:
    print("=" * 70)
    print("🍽️  DINNER RUSH SIMULATION")
    print("=" * 70)
    print(f"📋 Tables: {num_tables}")
    print(f"🎯 Target: {base_url}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient(base_url=base_url, timeout=30.0) as client:
        response = await client.get("/api/menu")
        response.raise_for_status()
        menu = response.json()["items"]
    print(f"\n📖 Menu loaded: {len(menu)} items")

    start_time = time.time()
    print("\n🚀 Tables ordering...\n")
    results = await asyncio.gather(
        *(place_table_order(base_url, table, menu) for table in range(1, num_tables + 1))
    )
    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]

    print("=" * 70)
    print("📊 ORDER RESULTS")
    print("=" * 70)
    print(f"\n✅ Successful Orders: {len(successful)}/{num_tables}")
    print(f"❌ Failed Orders: {len(failed)}/{num_tables}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        total_revenue = sum(r["total"] for r in successful)
        print(f"   Average Checkout: {avg_time}s")
        print(f"   💰 Total Ordered: {total_revenue:.2f}")

    if failed:
        print("\n⚠️  Failed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Table {f['table']}: {f.get('error', 'Unknown error')}")

    print("\n👩‍🍳 Staff working the dashboard...\n")
    outcomes = await work_the_dashboard(base_url, email, password)
    print(f"   Status changes: {outcomes}")
    print("=" * 70)

    return {
        "tables": num_tables,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "status_changes": outcomes,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Dinner Rush Simulation Script")
    parser.add_argument("--url", default=API_BASE_URL, help="Server base URL")
    parser.add_argument("--tables", type=int, default=TOTAL_TABLES, help="Number of tables ordering")
    parser.add_argument("--email", default=ADMIN_EMAIL, help="Staff email")
    parser.add_argument("--password", default=ADMIN_PASSWORD, help="Staff password")
    args = parser.parse_args()

    asyncio.run(run_simulation(args.url, args.tables, args.email, args.password))


if __name__ == "__main__":
    main()
