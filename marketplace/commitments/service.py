import logging
from typing import Any, Dict, List, Optional

from .model import CommitmentStatus
from ..common.database import (
    delete_commitment as db_delete_commitment,
    fetch_commitment,
    fetch_commitments,
    fetch_group,
    fetch_vendor,
    insert_commitment,
    reserve_and_insert_commitment,
    update_commitment as db_update_commitment,
)
from ..common.errors import CapacityExceeded, InvalidArgument, InvalidReference, NotFound
from ..common.validation import MAX_STORED_INT, non_negative_number, positive_int, positive_number
from ..groups.service import CAPACITY_REJECTIONS, QUANTITY_COMMITTED, ledger_view, publish_group_update

_logger = logging.getLogger(__name__)


def _parse_status(value: Any) -> str:
    try:
        return CommitmentStatus(value).value
    except (TypeError, ValueError):
        raise InvalidArgument(
            "Invalid status",
            allowed=[s.value for s in CommitmentStatus],
        ) from None


def _commitment_values(
    vendor_id: Any,
    group_id: Any,
    quantity: Any,
    final_price: Any,
    discount_per_unit: Any = None,
    max_quantity: Optional[int] = MAX_STORED_INT,
) -> Dict[str, Any]:
    price = positive_number(final_price, "final_price")
    return {
        "vendor_id": positive_int(vendor_id, "vendor_id"),
        "group_id": positive_int(group_id, "group_id"),
        "quantity": positive_int(quantity, "quantity", maximum=max_quantity),
        "final_price": price,
        # maximum_price tracks final_price; a caller-supplied value is never used
        "maximum_price": price,
        "discount_per_unit": non_negative_number(discount_per_unit, "discount_per_unit"),
        "status": CommitmentStatus.PENDING.value,
    }


async def _ensure_vendor(vendor_id: int) -> None:
    if await fetch_vendor(vendor_id) is None:
        raise InvalidReference("Invalid vendor_id", vendor_id=vendor_id)


async def create_commitment(
    vendor_id: Any,
    group_id: Any,
    quantity: Any,
    final_price: Any,
    discount_per_unit: Any = None,
) -> Dict[str, Any]:
    """
    Record a vendor's stake in a group-buy with status pending.

    The group's committed total is not touched; callers add quantity through
    the ledger separately (or use `join_group` for both at once).
    """
    values = _commitment_values(vendor_id, group_id, quantity, final_price, discount_per_unit)
    if await fetch_group(values["group_id"]) is None:
        raise InvalidReference("Invalid group_id", group_id=values["group_id"])
    await _ensure_vendor(values["vendor_id"])

    commitment = await insert_commitment(values)
    _logger.info(
        "Commitment created | id=%s vendor_id=%s group_id=%s qty=%s final_price=%s",
        commitment["id"],
        commitment["vendor_id"],
        commitment["group_id"],
        commitment["quantity"],
        commitment["final_price"],
    )
    return commitment


async def join_group(
    vendor_id: Any,
    group_id: Any,
    quantity: Any,
    final_price: Any,
    discount_per_unit: Any = None,
) -> Dict[str, Any]:
    """Create a commitment and reserve its quantity in one transaction."""
    values = _commitment_values(vendor_id, group_id, quantity, final_price, discount_per_unit, max_quantity=None)
    await _ensure_vendor(values["vendor_id"])

    added, group, commitment = await reserve_and_insert_commitment(values)
    if group is None:
        raise NotFound("Product group not found", group_id=values["group_id"])
    if not added:
        CAPACITY_REJECTIONS.inc()
        _logger.info(
            "Join rejected | group_id=%s vendor_id=%s requested=%s available=%s",
            values["group_id"],
            values["vendor_id"],
            values["quantity"],
            group["available"],
        )
        raise CapacityExceeded(values["group_id"], values["quantity"], group["available"])

    QUANTITY_COMMITTED.inc(values["quantity"])
    _logger.info(
        "Vendor joined group | commitment_id=%s vendor_id=%s group_id=%s qty=%s current=%s target=%s",
        commitment["id"],
        values["vendor_id"],
        values["group_id"],
        values["quantity"],
        group["current_quantity"],
        group["quantity"],
    )
    await publish_group_update(group)
    result = ledger_view(group)
    result["commitment"] = commitment
    return result


async def get_commitment(commitment_id: int) -> Dict[str, Any]:
    commitment = await fetch_commitment(commitment_id)
    if commitment is None:
        raise NotFound("Vendor product group entry not found", id=commitment_id)
    return commitment


async def list_commitments(
    vendor_id: Optional[int] = None,
    group_id: Optional[int] = None,
    status: Optional[str] = None,
) -> List[Dict[str, Any]]:
    return await fetch_commitments(vendor_id=vendor_id, group_id=group_id, status=status)


async def update_commitment(commitment_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Partially update a commitment.

    Supplying `final_price` also sets `maximum_price` to the same value;
    otherwise the stored `maximum_price` is kept. A `maximum_price` in
    `fields` is ignored.
    """
    values: Dict[str, Any] = {}
    if fields.get("quantity") is not None:
        values["quantity"] = positive_int(fields["quantity"], "quantity")
    if fields.get("final_price") is not None:
        values["final_price"] = positive_number(fields["final_price"], "final_price")
        values["maximum_price"] = values["final_price"]
    if fields.get("discount_per_unit") is not None:
        values["discount_per_unit"] = non_negative_number(fields["discount_per_unit"], "discount_per_unit")
    if fields.get("status") is not None:
        values["status"] = _parse_status(fields["status"])

    if not values:
        return await get_commitment(commitment_id)

    commitment = await db_update_commitment(commitment_id, values)
    if commitment is None:
        raise NotFound("Vendor product group entry not found", id=commitment_id)
    _logger.info("Commitment updated | id=%s fields=%s", commitment_id, sorted(values))
    return commitment


async def delete_commitment(commitment_id: int) -> None:
    # group totals are append-only; withdrawing does not release quantity
    deleted = await db_delete_commitment(commitment_id)
    if not deleted:
        raise NotFound("Vendor product group entry not found", id=commitment_id)
    _logger.info("Commitment deleted | id=%s", commitment_id)
