import logging
from typing import Any, Dict, List

from ..common.database import (
    fetch_supplier,
    fetch_suppliers,
    fetch_vendor,
    fetch_vendors,
    insert_supplier,
    insert_vendor,
)
from ..common.errors import NotFound
from ..common.validation import optional_text, require, required_text

_logger = logging.getLogger(__name__)


async def create_supplier(data: Dict[str, Any]) -> Dict[str, Any]:
    require(data, ("full_name", "mobile_number"))
    supplier = await insert_supplier(
        {
            "full_name": required_text(data["full_name"], "full_name"),
            "mobile_number": optional_text(data["mobile_number"], "mobile_number"),
            "business_name": optional_text(data.get("business_name"), "business_name"),
            "city": optional_text(data.get("city"), "city"),
        }
    )
    _logger.info("Supplier created | id=%s", supplier["id"])
    return supplier


async def get_supplier(supplier_id: int) -> Dict[str, Any]:
    supplier = await fetch_supplier(supplier_id)
    if supplier is None:
        raise NotFound("Supplier not found", id=supplier_id)
    return supplier


async def list_suppliers() -> List[Dict[str, Any]]:
    return await fetch_suppliers()


async def create_vendor(data: Dict[str, Any]) -> Dict[str, Any]:
    require(data, ("full_name", "mobile_number"))
    vendor = await insert_vendor(
        {
            "full_name": required_text(data["full_name"], "full_name"),
            "mobile_number": optional_text(data["mobile_number"], "mobile_number"),
            "stall_name": optional_text(data.get("stall_name"), "stall_name"),
            "city": optional_text(data.get("city"), "city"),
        }
    )
    _logger.info("Vendor created | id=%s", vendor["id"])
    return vendor


async def get_vendor(vendor_id: int) -> Dict[str, Any]:
    vendor = await fetch_vendor(vendor_id)
    if vendor is None:
        raise NotFound("Vendor not found", id=vendor_id)
    return vendor


async def list_vendors() -> List[Dict[str, Any]]:
    return await fetch_vendors()
