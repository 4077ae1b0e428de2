import json
import logging
from typing import Any, Dict, List, Optional

from prometheus_client import Counter

from .model import GroupStatus, SETTABLE_GROUP_STATUSES
from ..common.config import settings
from ..common.database import (
    fetch_group,
    fetch_groups,
    fetch_supplier,
    insert_group,
    try_add_group_quantity,
    update_group_status,
)
from ..common.errors import CapacityExceeded, InvalidArgument, InvalidReference, NotFound
from ..common.redis_client import get_redis
from ..common.validation import optional_text, parse_datetime, positive_int, require, required_text

_logger = logging.getLogger(__name__)

CAPACITY_REJECTIONS = Counter(
    "group_capacity_rejections_total",
    "Quantity additions rejected because the group target would be exceeded",
)
QUANTITY_COMMITTED = Counter(
    "group_quantity_committed_total",
    "Total quantity committed to group-buys",
)

# Descriptive listing fields copied through as text
_TEXT_FIELDS = {
    "price": "price",
    "actualRate": "actual_rate",
    "finalRate": "final_rate",
    "discountPercentage": "discount_percentage",
    "minimumQuantity": "minimum_quantity",
    "discountPerUnit": "discount_per_unit",
    "deliveryAddress": "delivery_address",
    "deliveryCity": "delivery_city",
    "deliveryState": "delivery_state",
    "deliveryPincode": "delivery_pincode",
    "latitude": "latitude",
    "longitude": "longitude",
}


def ledger_view(group: Dict[str, Any]) -> Dict[str, Any]:
    return {"group": group, "isFull": group["is_full"], "available": group["available"]}


async def publish_group_update(group: Dict[str, Any]) -> None:
    """Best-effort fan-out of a group's fill level to realtime listeners."""
    if not settings.REALTIME_ENABLED:
        return
    payload = {
        "group_id": group["id"],
        "current_quantity": group["current_quantity"],
        "quantity": group["quantity"],
        "available": group["available"],
        "is_full": group["is_full"],
        "status": group["status"],
    }
    try:
        r = await get_redis()
        await r.publish(settings.REDIS_GROUP_CHANNEL, json.dumps(payload))
    except Exception as e:
        # the write is already committed; listeners catch up on next update
        _logger.warning("Group update not published | group_id=%s err=%s", group["id"], e)
        return
    _logger.debug("Published group update | group_id=%s channel=%s", group["id"], settings.REDIS_GROUP_CHANNEL)


async def create_group(data: Dict[str, Any]) -> Dict[str, Any]:
    require(data, ("product", "quantity", "location", "deadline", "created_by"))
    values: Dict[str, Any] = {
        "product": required_text(data["product"], "product"),
        "quantity": positive_int(data["quantity"], "quantity"),
        "location": required_text(data["location"], "location"),
        "deadline": parse_datetime(data["deadline"], "deadline"),
        "created_by": positive_int(data["created_by"], "created_by"),
        "status": GroupStatus.PENDING.value,
    }
    for key, column in _TEXT_FIELDS.items():
        values[column] = optional_text(data.get(key), key)

    if await fetch_supplier(values["created_by"]) is None:
        raise InvalidReference("Invalid created_by supplier", created_by=values["created_by"])

    group = await insert_group(values)
    _logger.info(
        "Product group created | group_id=%s product=%s target=%s supplier=%s",
        group["id"],
        group["product"],
        group["quantity"],
        group["created_by"],
    )
    return group


async def get_group(group_id: int) -> Dict[str, Any]:
    group = await fetch_group(group_id)
    if group is None:
        raise NotFound("Product group not found", group_id=group_id)
    return group


async def list_groups(created_by: Optional[int] = None) -> List[Dict[str, Any]]:
    return await fetch_groups(created_by)


async def set_group_status(group_id: int, status: Any) -> Dict[str, Any]:
    try:
        new_status = GroupStatus(status)
    except (TypeError, ValueError):
        new_status = None
    if new_status not in SETTABLE_GROUP_STATUSES:
        raise InvalidArgument(
            "Invalid status",
            allowed=sorted(s.value for s in SETTABLE_GROUP_STATUSES),
        )
    group = await update_group_status(group_id, new_status.value)
    if group is None:
        raise NotFound("Product group not found", group_id=group_id)
    _logger.info("Product group status | group_id=%s status=%s", group_id, new_status.value)
    await publish_group_update(group)
    return group


async def add_committed_quantity(group_id: int, quantity_to_add: Any) -> Dict[str, Any]:
    """
    Commit more quantity to a group-buy without passing its target.

    Returns the updated group with `isFull` and `available`. Raises
    `NotFound` for an unknown group and `CapacityExceeded` (carrying the
    remaining allowable quantity) when the addition does not fit; the group
    is left untouched in both cases.
    """
    # no upper bound here: anything past the target is a capacity rejection
    quantity = positive_int(quantity_to_add, "quantityToAdd", maximum=None)
    added, group = await try_add_group_quantity(group_id, quantity)
    if group is None:
        raise NotFound("Product group not found", group_id=group_id)
    if not added:
        CAPACITY_REJECTIONS.inc()
        _logger.info(
            "Quantity rejected | group_id=%s requested=%s available=%s",
            group_id,
            quantity,
            group["available"],
        )
        raise CapacityExceeded(group_id, quantity, group["available"])

    QUANTITY_COMMITTED.inc(quantity)
    _logger.info(
        "Quantity added | group_id=%s added=%s current=%s target=%s full=%s",
        group_id,
        quantity,
        group["current_quantity"],
        group["quantity"],
        group["is_full"],
    )
    await publish_group_update(group)
    return ledger_view(group)
