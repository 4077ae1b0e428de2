from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any, List, Tuple

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from .config import settings
from .db import Base
from .errors import Conflict, InvalidReference
from ..accounts.model import Supplier, Vendor
from ..groups.model import ProductGroup
from ..commitments.model import VendorCommitment


# Async SQLAlchemy engine and session factory
engine = create_async_engine(settings.DB_URL, future=True, echo=settings.DB_ECHO)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


if engine.dialect.name == "sqlite":
    # SQLite ignores foreign keys unless asked per connection
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _ensure_sqlite_dir() -> None:
    if engine.dialect.name != "sqlite":
        return
    db_path = engine.url.database
    if db_path and db_path != ":memory:":
        Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


async def init_db() -> None:
    _ensure_sqlite_dir()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

        # Older product_groups tables predate current_quantity
        def _migrate(sync_conn):
            insp = sa.inspect(sync_conn)
            cols = [c["name"] for c in insp.get_columns("product_groups")]
            if "current_quantity" not in cols:
                sync_conn.execute(sa.text("ALTER TABLE product_groups ADD COLUMN current_quantity INTEGER DEFAULT 0"))
                sync_conn.execute(sa.text("UPDATE product_groups SET current_quantity = 0 WHERE current_quantity IS NULL"))
        await conn.run_sync(_migrate)


# ---------------------------------------------------------------------------
# Row rendering
# ---------------------------------------------------------------------------

def _row_dict(obj) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for col in obj.__table__.columns:
        value = getattr(obj, col.key)
        if isinstance(value, datetime):
            value = value.isoformat()
        data[col.key] = value
    return data


def _group_dict(group: ProductGroup) -> Dict[str, Any]:
    data = _row_dict(group)
    current = group.current_quantity or 0
    data["current_quantity"] = current
    data["available"] = group.quantity - current
    data["is_full"] = current >= group.quantity
    return data


def _integrity_kind(exc: IntegrityError) -> Optional[str]:
    """Classify an IntegrityError as 'unique', 'foreign_key' or None."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == "23505":
        return "unique"
    if sqlstate == "23503":
        return "foreign_key"
    msg = str(orig if orig is not None else exc).lower()
    if "unique" in msg or "duplicate" in msg:
        return "unique"
    if "foreign key" in msg:
        return "foreign_key"
    return None


def _raise_commitment_integrity(exc: IntegrityError, vendor_id: int, group_id: int) -> None:
    kind = _integrity_kind(exc)
    if kind == "unique":
        raise Conflict(
            "Vendor already has an entry for this product group",
            vendor_id=vendor_id,
            group_id=group_id,
        ) from exc
    if kind == "foreign_key":
        raise InvalidReference("Invalid vendor_id or group_id", vendor_id=vendor_id, group_id=group_id) from exc
    raise exc


# ---------------------------------------------------------------------------
# Suppliers and vendors
# ---------------------------------------------------------------------------

async def insert_supplier(values: Dict[str, Any]) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        supplier = Supplier(**values)
        session.add(supplier)
        await session.flush()
        await session.refresh(supplier)
        await session.commit()
        return _row_dict(supplier)


async def fetch_supplier(supplier_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        supplier = await session.get(Supplier, supplier_id)
        return _row_dict(supplier) if supplier else None


async def fetch_suppliers() -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(Supplier).order_by(Supplier.id))
        return [_row_dict(s) for s in res.scalars().all()]


async def insert_vendor(values: Dict[str, Any]) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        vendor = Vendor(**values)
        session.add(vendor)
        await session.flush()
        await session.refresh(vendor)
        await session.commit()
        return _row_dict(vendor)


async def fetch_vendor(vendor_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        vendor = await session.get(Vendor, vendor_id)
        return _row_dict(vendor) if vendor else None


async def fetch_vendors() -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(Vendor).order_by(Vendor.id))
        return [_row_dict(v) for v in res.scalars().all()]


# ---------------------------------------------------------------------------
# Product groups
# ---------------------------------------------------------------------------

async def insert_group(values: Dict[str, Any]) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        group = ProductGroup(current_quantity=0, **values)
        session.add(group)
        try:
            await session.flush()
        except IntegrityError as e:
            await session.rollback()
            if _integrity_kind(e) == "foreign_key":
                raise InvalidReference("Invalid created_by supplier", created_by=values.get("created_by")) from e
            raise
        await session.refresh(group)
        await session.commit()
        return _group_dict(group)


async def fetch_group(group_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        group = await session.get(ProductGroup, group_id)
        return _group_dict(group) if group else None


async def fetch_groups(created_by: Optional[int] = None) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(ProductGroup).order_by(ProductGroup.id)
        if created_by is not None:
            stmt = stmt.where(ProductGroup.created_by == created_by)
        res = await session.execute(stmt)
        return [_group_dict(g) for g in res.scalars().all()]


async def update_group_status(group_id: int, status: str) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            stmt = (
                sa.update(ProductGroup)
                .where(ProductGroup.id == group_id)
                .values(status=status)
                .execution_options(synchronize_session=False)
            )
            res = await session.execute(stmt)
            if not res.rowcount:
                return None
            group = await session.get(ProductGroup, group_id)
            return _group_dict(group)


async def _add_group_quantity(
    session: AsyncSession, group_id: int, quantity: int
) -> Tuple[bool, Optional[ProductGroup]]:
    """
    Conditional increment of current_quantity, guarded by the target.

    Runs inside the caller's transaction. The WHERE clause carries the
    capacity check so concurrent writers cannot overshoot the target.
    Returns (added, group) where group reflects the row after the attempt
    and is None when the group does not exist.
    """
    target = await session.scalar(sa.select(ProductGroup.quantity).where(ProductGroup.id == group_id))
    if target is None:
        return False, None
    if quantity > target:
        # never fits, and may be too large to bind as an INTEGER
        found = await session.execute(sa.select(ProductGroup).where(ProductGroup.id == group_id))
        return False, found.scalar_one_or_none()

    current = sa.func.coalesce(ProductGroup.current_quantity, 0)
    stmt = (
        sa.update(ProductGroup)
        .where(ProductGroup.id == group_id, current + quantity <= ProductGroup.quantity)
        .values(current_quantity=current + quantity)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    added = (res.rowcount or 0) > 0
    found = await session.execute(sa.select(ProductGroup).where(ProductGroup.id == group_id))
    return added, found.scalar_one_or_none()


async def try_add_group_quantity(group_id: int, quantity: int) -> Tuple[bool, Optional[Dict[str, Any]]]:
    """Atomically add quantity to a group if it fits under the target."""
    async with AsyncSessionLocal() as session:
        async with session.begin():
            added, group = await _add_group_quantity(session, group_id, quantity)
            return added, (_group_dict(group) if group else None)


# ---------------------------------------------------------------------------
# Vendor commitments
# ---------------------------------------------------------------------------

def _commitment_query():
    return (
        sa.select(
            VendorCommitment,
            Vendor.full_name,
            Vendor.stall_name,
            Vendor.mobile_number,
            ProductGroup.product,
            ProductGroup.location,
            ProductGroup.deadline,
        )
        .join(Vendor, Vendor.id == VendorCommitment.vendor_id)
        .join(ProductGroup, ProductGroup.id == VendorCommitment.group_id)
    )


def _joined_commitment_dict(row) -> Dict[str, Any]:
    commitment, vendor_name, stall_name, mobile, product, location, deadline = row
    data = _row_dict(commitment)
    data.update(
        {
            "vendor_name": vendor_name,
            "stall_name": stall_name,
            "vendor_mobile": mobile,
            "product": product,
            "product_location": location,
            "deadline": deadline.isoformat() if deadline else None,
        }
    )
    return data


async def insert_commitment(values: Dict[str, Any]) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        commitment = VendorCommitment(**values)
        session.add(commitment)
        try:
            await session.flush()
        except IntegrityError as e:
            await session.rollback()
            _raise_commitment_integrity(e, values["vendor_id"], values["group_id"])
        await session.refresh(commitment)
        await session.commit()
        return _row_dict(commitment)


async def reserve_and_insert_commitment(
    values: Dict[str, Any]
) -> Tuple[bool, Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """
    Add the commitment's quantity to its group and insert the commitment in
    one transaction. Returns (added, group, commitment); nothing is written
    unless both steps succeed.
    """
    async with AsyncSessionLocal() as session:
        try:
            async with session.begin():
                added, group = await _add_group_quantity(session, values["group_id"], values["quantity"])
                if not added:
                    return False, (_group_dict(group) if group else None), None
                commitment = VendorCommitment(**values)
                session.add(commitment)
                await session.flush()
                await session.refresh(commitment)
                return True, _group_dict(group), _row_dict(commitment)
        except IntegrityError as e:
            _raise_commitment_integrity(e, values["vendor_id"], values["group_id"])


async def fetch_commitment(commitment_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(_commitment_query().where(VendorCommitment.id == commitment_id))
        row = res.first()
        return _joined_commitment_dict(row) if row else None


async def fetch_commitments(
    vendor_id: Optional[int] = None,
    group_id: Optional[int] = None,
    status: Optional[str] = None,
) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = _commitment_query()
        if vendor_id is not None:
            stmt = stmt.where(VendorCommitment.vendor_id == vendor_id)
        if group_id is not None:
            stmt = stmt.where(VendorCommitment.group_id == group_id)
        if status is not None:
            stmt = stmt.where(VendorCommitment.status == status)
        stmt = stmt.order_by(VendorCommitment.created_at.desc(), VendorCommitment.id.desc())
        res = await session.execute(stmt)
        return [_joined_commitment_dict(row) for row in res.all()]


async def update_commitment(commitment_id: int, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            stmt = (
                sa.update(VendorCommitment)
                .where(VendorCommitment.id == commitment_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            res = await session.execute(stmt)
            if not res.rowcount:
                return None
            commitment = await session.get(VendorCommitment, commitment_id)
            return _row_dict(commitment)


async def delete_commitment(commitment_id: int) -> bool:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            stmt = sa.delete(VendorCommitment).where(VendorCommitment.id == commitment_id)
            res = await session.execute(stmt)
            return (res.rowcount or 0) > 0
