import asyncio
from datetime import datetime, timedelta, timezone

import sqlalchemy as sa

from .common.database import init_db, AsyncSessionLocal
from .accounts.model import Supplier, Vendor
from .groups.model import ProductGroup


SAMPLE_SUPPLIER = {"full_name": "Ravi Traders", "mobile_number": "9800000001", "business_name": "Ravi Fresh Produce", "city": "Pune"}

SAMPLE_VENDORS = [
    {"full_name": "Asha Patil", "mobile_number": "9800000101", "stall_name": "Asha Chaat", "city": "Pune"},
    {"full_name": "Imran Shaikh", "mobile_number": "9800000102", "stall_name": "Imran Vada Pav", "city": "Pune"},
    {"full_name": "Meena Joshi", "mobile_number": "9800000103", "stall_name": "Meena Bhel", "city": "Pune"},
]

SAMPLE_GROUPS = [
    {"product": "Onions", "quantity": 100, "price": "32", "final_rate": "28", "location": "Shivaji Nagar"},
    {"product": "Potatoes", "quantity": 250, "price": "24", "final_rate": "21", "location": "Kothrud"},
    {"product": "Tomatoes", "quantity": 80, "price": "40", "final_rate": "35", "location": "Camp"},
]


async def seed_marketplace() -> None:
    await init_db()
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(Supplier).where(Supplier.mobile_number == SAMPLE_SUPPLIER["mobile_number"]))
        supplier = res.scalar_one_or_none()
        if supplier is None:
            supplier = Supplier(**SAMPLE_SUPPLIER)
            session.add(supplier)
            await session.flush()

        added_vendors = 0
        for v in SAMPLE_VENDORS:
            res = await session.execute(sa.select(Vendor.id).where(Vendor.mobile_number == v["mobile_number"]))
            if res.first():
                continue
            session.add(Vendor(**v))
            added_vendors += 1

        added_groups = 0
        deadline = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(days=7)
        for g in SAMPLE_GROUPS:
            # avoid duplicates by product per supplier
            res = await session.execute(
                sa.select(ProductGroup.id).where(ProductGroup.product == g["product"], ProductGroup.created_by == supplier.id)
            )
            if res.first():
                continue
            session.add(ProductGroup(created_by=supplier.id, deadline=deadline, current_quantity=0, **g))
            added_groups += 1

        await session.commit()
        print(f"Seed complete. Added {added_vendors} vendors and {added_groups} product groups.")


async def amain():
    await seed_marketplace()


if __name__ == "__main__":
    asyncio.run(amain())
