from quart import Blueprint, jsonify, request

from .service import add_committed_quantity, create_group, get_group, list_groups, set_group_status
from ..commitments.service import join_group
from ..common.http import json_body

bp = Blueprint("groups", __name__, url_prefix="/api/product-groups")


@bp.post("")
async def groups_create():
    data = await json_body()
    group = await create_group(data)
    return jsonify({"message": "Product group created", "id": group["id"], "data": group}), 201


@bp.get("")
async def groups_list():
    created_by = request.args.get("created_by", type=int)
    return jsonify(await list_groups(created_by))


@bp.get("/<int:group_id>")
async def groups_detail(group_id: int):
    return jsonify(await get_group(group_id))


@bp.patch("/<int:group_id>/status")
async def groups_status(group_id: int):
    data = await json_body()
    group = await set_group_status(group_id, data.get("status"))
    return jsonify({"message": f"Product group marked as {group['status']}", "data": group})


@bp.patch("/<int:group_id>/current-quantity")
async def groups_current_quantity(group_id: int):
    data = await json_body()
    result = await add_committed_quantity(group_id, data.get("quantityToAdd"))
    return jsonify(
        {
            "message": "Current quantity updated successfully",
            "data": result["group"],
            "isFull": result["isFull"],
            "available": result["available"],
        }
    )


@bp.post("/<int:group_id>/join")
async def groups_join(group_id: int):
    data = await json_body()
    result = await join_group(
        data.get("vendor_id"),
        group_id,
        data.get("quantity"),
        data.get("final_price"),
        data.get("discount_per_unit"),
    )
    return jsonify(
        {
            "message": "Joined product group",
            "data": result["commitment"],
            "group": result["group"],
            "isFull": result["isFull"],
            "available": result["available"],
        }
    ), 201
