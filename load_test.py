"""
Concurrent join load test for the group-buy quantity ledger.

Creates one supplier and one product group, then fires many concurrent
`PATCH /api/product-groups/<id>/current-quantity` requests against it and
checks that the group never overshoots its target and that its committed
total equals the sum of accepted additions. Prints p50/p90/p95/p99 latency.
"""
import asyncio
import json
import os
import random
import statistics
import time
from collections import defaultdict
from datetime import datetime, timedelta

import aiohttp


class JoinLoadTester:
    def __init__(self, base_url="http://localhost:8000", total_requests=2000, concurrent_workers=100, target_quantity=5000):
        self.base_url = base_url
        self.total_requests = total_requests
        self.concurrent_workers = concurrent_workers
        self.target_quantity = target_quantity
        self.results = {
            "accepted": 0,
            "rejected": 0,
            "failed": 0,
            "accepted_quantity": 0,
            "response_times": [],
            "status_codes": defaultdict(int),
            "errors": defaultdict(int),
        }

    async def setup_group(self, session):
        """Create the supplier and the product group under test; returns the group id."""
        async with session.post(
            f"{self.base_url}/api/suppliers",
            json={"full_name": "Load Test Supplier", "mobile_number": "9000000000"},
        ) as resp:
            supplier = (await resp.json())["data"]
        deadline = (datetime.now() + timedelta(days=1)).isoformat()
        async with session.post(
            f"{self.base_url}/api/product-groups",
            json={
                "product": "Load Test Onions",
                "quantity": self.target_quantity,
                "location": "Load Test Market",
                "deadline": deadline,
                "created_by": supplier["id"],
            },
        ) as resp:
            return (await resp.json())["id"]

    async def add_quantity(self, session, group_id, quantity):
        url = f"{self.base_url}/api/product-groups/{group_id}/current-quantity"
        start_time = time.time()
        try:
            async with session.patch(url, json={"quantityToAdd": quantity}, timeout=aiohttp.ClientTimeout(total=30)) as response:
                await response.read()
                self.results["response_times"].append(time.time() - start_time)
                self.results["status_codes"][response.status] += 1
                if response.status == 200:
                    self.results["accepted"] += 1
                    self.results["accepted_quantity"] += quantity
                elif response.status == 400:
                    self.results["rejected"] += 1
                else:
                    self.results["failed"] += 1
        except asyncio.TimeoutError:
            self.results["failed"] += 1
            self.results["errors"]["Timeout"] += 1
        except aiohttp.ClientError as e:
            self.results["failed"] += 1
            self.results["errors"][type(e).__name__] += 1

    async def worker(self, session, group_id, task_queue):
        while True:
            quantity = await task_queue.get()
            if quantity is None:  # Poison pill
                task_queue.task_done()
                break
            await self.add_quantity(session, group_id, quantity)
            task_queue.task_done()

    async def run_test(self):
        print(f"\n{'='*80}")
        print("GROUP-BUY LOAD TEST")
        print(f"{'='*80}")
        print(f"Base URL: {self.base_url}")
        print(f"Total Requests: {self.total_requests:,}")
        print(f"Concurrent Workers: {self.concurrent_workers}")
        print(f"Target Quantity: {self.target_quantity:,}")
        print(f"{'='*80}\n")

        connector = aiohttp.TCPConnector(limit=self.concurrent_workers, limit_per_host=self.concurrent_workers)
        async with aiohttp.ClientSession(connector=connector) as session:
            group_id = await self.setup_group(session)

            task_queue = asyncio.Queue()
            for _ in range(self.total_requests):
                task_queue.put_nowait(random.randint(1, 10))
            for _ in range(self.concurrent_workers):
                task_queue.put_nowait(None)

            start_time = time.time()
            workers = [
                asyncio.create_task(self.worker(session, group_id, task_queue))
                for _ in range(self.concurrent_workers)
            ]
            await asyncio.gather(*workers)
            total_time = time.time() - start_time

            async with session.get(f"{self.base_url}/api/product-groups/{group_id}") as resp:
                group = await resp.json()

        self.print_results(total_time, group)
        return group

    def print_results(self, total_time, group):
        print("SUMMARY:")
        print(f"  Total Time: {total_time:.2f} seconds")
        print(f"  Requests/sec: {self.total_requests/total_time:.2f}")
        print(f"  Accepted: {self.results['accepted']:,}")
        print(f"  Rejected (capacity): {self.results['rejected']:,}")
        print(f"  Failed: {self.results['failed']:,}")

        if self.results["response_times"]:
            response_times = sorted(self.results["response_times"])
            print("\nRESPONSE TIMES (LATENCY):")
            print(f"  Mean: {statistics.mean(response_times)*1000:.2f} ms")
            for label, q in (("p50", 0.50), ("p90", 0.90), ("p95", 0.95), ("p99", 0.99)):
                print(f"  {label}: {response_times[int(len(response_times) * q)]*1000:.2f} ms")

        if self.results["status_codes"]:
            print("\nSTATUS CODES:")
            for code, count in sorted(self.results["status_codes"].items()):
                print(f"  {code}: {count:,}")
        if self.results["errors"]:
            print("\nERRORS:")
            for error, count in sorted(self.results["errors"].items(), key=lambda x: x[1], reverse=True):
                print(f"  {error}: {count:,}")

        current = group["current_quantity"]
        print("\nLEDGER CHECK:")
        print(f"  current_quantity: {current:,} / target {group['quantity']:,}")
        print(f"  sum of accepted additions: {self.results['accepted_quantity']:,}")
        within_target = current <= group["quantity"]
        matches = current == self.results["accepted_quantity"]
        print(f"  within target: {'OK' if within_target else 'VIOLATED'}")
        print(f"  matches accepted sum: {'OK' if matches else 'VIOLATED'}")
        print(f"\n{'='*80}")

        results_file = f"load_test_results_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
        with open(results_file, "w") as f:
            json.dump(
                {
                    "total_time": total_time,
                    "accepted": self.results["accepted"],
                    "rejected": self.results["rejected"],
                    "failed": self.results["failed"],
                    "accepted_quantity": self.results["accepted_quantity"],
                    "group": group,
                    "status_codes": dict(self.results["status_codes"]),
                    "errors": dict(self.results["errors"]),
                },
                f,
                indent=2,
            )
        print(f"\nResults saved to: {results_file}\n")


async def main():
    tester = JoinLoadTester(
        base_url=os.getenv("LOAD_TEST_URL", "http://localhost:8000"),
        total_requests=int(os.getenv("LOAD_TEST_REQUESTS", "2000")),
        concurrent_workers=int(os.getenv("LOAD_TEST_WORKERS", "100")),
        target_quantity=int(os.getenv("LOAD_TEST_TARGET", "5000")),
    )
    await tester.run_test()


if __name__ == "__main__":
    asyncio.run(main())
