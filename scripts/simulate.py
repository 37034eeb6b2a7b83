"""
Rush Hour Simulation Script

Fires many concurrent orders at a running server and checks that every
returned order number is distinct and well formed.
Run from project root: python scripts/simulate.py --orders 100

Author: Khalil_Bannouri
Version: 1.0.0
"""

import asyncio
import sys
import os
import random
import re
import time
import argparse
from collections import Counter
from datetime import datetime
from typing import Any

import httpx
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:5000"
TOTAL_ORDERS = 50
ORDER_NUMBER_RE = re.compile(r"^\d{6,}$")

MEALS = ["Soup", "Couscous", "Tajine", "Burger", "Caesar Salad", "Pasta Carbonara"]
SIDE_ITEMS = [None, "Coke", "Lemonade", "Sparkling Water", "Fries"]


def generate_order_payload() -> dict[str, Any]:
    """Generate a random table order."""
    payload = {
        "mealName": random.choice(MEALS),
        "quantity": random.randint(1, 4),
        "tableNumber": random.randint(1, 20),
    }
    side_item = random.choice(SIDE_ITEMS)
    if side_item:
        payload["sideItem"] = side_item
    return payload


async def send_order(
    client: httpx.AsyncClient,
    order_num: int,
    reserve_first: bool = False,
) -> dict[str, Any]:
    """Place one order, optionally reserving its number first."""
    payload = generate_order_payload()
    start_time = time.time()

    try:
        if reserve_first:
            reserved = await client.get(f"{API_BASE_URL}/generateOrderNumber", timeout=30.0)
            reserved.raise_for_status()
            payload["orderNumber"] = reserved.json()["orderNumber"]

        response = await client.post(
            f"{API_BASE_URL}/commandes",
            json=payload,
            timeout=30.0
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code in (200, 201):
            data = response.json()
            return {
                "order_num": order_num,
                "success": True,
                "order_number": data.get("orderNumber"),
                "time": elapsed,
                "mode": "reserved" if reserve_first else "direct",
            }
        return {
            "order_num": order_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
            "mode": "reserved" if reserve_first else "direct",
        }
    except httpx.HTTPError as e:
        elapsed = round(time.time() - start_time, 3)
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": elapsed,
            "mode": "reserved" if reserve_first else "direct",
        }


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    mode: str = "both",
    num_orders: int = TOTAL_ORDERS
) -> dict[str, Any]:
    """
    Run the rush hour simulation.

    Args:
        mode: "direct", "reserved", or "both"
        num_orders: Number of orders to simulate
    """
    print("=" * 70)
    print("🔥 RUSH HOUR SIMULATION - CONCURRENT ORDERS")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"🔧 Mode: {mode}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        tasks = []
        for i in range(num_orders):
            if mode == "direct":
                reserve_first = False
            elif mode == "reserved":
                reserve_first = True
            else:
                reserve_first = i % 2 == 1
            tasks.append(send_order(client, i + 1, reserve_first))
        results = await asyncio.gather(*tasks)

    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    numbers = [r["order_number"] for r in successful]
    duplicates = {n: c for n, c in Counter(numbers).items() if c > 1}
    malformed = [n for n in numbers if not n or not ORDER_NUMBER_RE.match(n)]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)

    print(f"\n✅ Successful Orders: {len(successful)}/{num_orders}")
    print(f"❌ Failed Orders: {len(failed)}/{num_orders}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"\n📈 Performance Metrics:")
        print(f"   Average Response: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")
        print(f"   Numbers: {min(numbers)} → {max(numbers)}")

    if duplicates:
        print(f"\n🚨 Duplicate order numbers: {duplicates}")
    else:
        print(f"\n✅ All {len(numbers)} order numbers are distinct")

    if malformed:
        print(f"🚨 Malformed order numbers: {malformed[:5]}")

    if failed:
        print(f"\n⚠️  Failed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']} [{f.get('mode', 'unknown')}]: {f.get('error', 'Unknown error')}")

    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "duplicates": duplicates,
        "total_time": total_time,
        "results": results
    }


async def test_single_flows() -> bool:
    """Test individual flows before the simulation."""
    print("\n" + "=" * 70)
    print("🧪 TESTING INDIVIDUAL FLOWS")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        print("\n1️⃣ Health Check...")
        response = await client.get(f"{API_BASE_URL}/health")
        if response.status_code != 200:
            print(f"   ❌ Failed: {response.text}")
            return False
        data = response.json()
        print(f"   ✅ Status: {data.get('status')}")
        print(f"   Database: {data.get('database')}")
        print(f"   Sequence: {data.get('sequence_store')} (last issued {data.get('last_issued')})")

        print("\n2️⃣ Menu...")
        response = await client.get(f"{API_BASE_URL}/menus")
        if response.status_code == 200:
            print(f"   ✅ {len(response.json())} item(s)")
        else:
            print(f"   ❌ Failed: {response.text[:100]}")

        print("\n3️⃣ Single Order...")
        response = await client.post(f"{API_BASE_URL}/commandes", json=generate_order_payload())
        if response.status_code in (200, 201):
            print(f"   ✅ Order #{response.json().get('orderNumber')} created")
        else:
            print(f"   ⚠️ Response: {response.text[:100]}")

        print("\n4️⃣ Invalid Order (quantity 0)...")
        response = await client.post(
            f"{API_BASE_URL}/commandes",
            json={"mealName": "Soup", "quantity": 0, "tableNumber": 1},
        )
        if response.status_code == 400:
            print("   ✅ Rejected with 400")
        else:
            print(f"   ❌ Unexpected {response.status_code}: {response.text[:100]}")

    print("\n" + "=" * 70)
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Rush Hour Simulation Script")
    parser.add_argument("--direct", action="store_true", help="Orders without a reserved number")
    parser.add_argument("--reserved", action="store_true", help="Reserve each number via /generateOrderNumber first")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    parser.add_argument("--skip-tests", action="store_true", help="Skip individual tests")
    args = parser.parse_args()

    API_BASE_URL = args.url.rstrip("/")

    if args.direct:
        mode = "direct"
    elif args.reserved:
        mode = "reserved"
    else:
        mode = "both"

    if not args.skip_tests:
        success = asyncio.run(test_single_flows())
        if not success:
            print("\n❌ Pre-flight tests failed. Fix issues before running simulation.")
            sys.exit(1)

        print("\n✅ Pre-flight tests passed!")

    summary = asyncio.run(run_simulation(mode=mode, num_orders=args.orders))
    sys.exit(1 if summary["duplicates"] else 0)
