from quart import Blueprint, jsonify, request

from .service import create_commitment, delete_commitment, get_commitment, list_commitments, update_commitment
from ..common.http import json_body

bp = Blueprint("commitments", __name__, url_prefix="/api/vendor-product-groups")


@bp.post("")
async def commitments_create():
    data = await json_body()
    commitment = await create_commitment(
        data.get("vendor_id"),
        data.get("group_id"),
        data.get("quantity"),
        data.get("final_price"),
        data.get("discount_per_unit"),
    )
    return jsonify({"message": "Vendor product group entry created", "data": commitment}), 201


@bp.get("")
async def commitments_list():
    items = await list_commitments(
        vendor_id=request.args.get("vendor_id", type=int),
        group_id=request.args.get("group_id", type=int),
        status=request.args.get("status") or None,
    )
    return jsonify(items)


@bp.get("/<int:commitment_id>")
async def commitments_detail(commitment_id: int):
    return jsonify(await get_commitment(commitment_id))


@bp.put("/<int:commitment_id>")
async def commitments_update(commitment_id: int):
    data = await json_body()
    commitment = await update_commitment(commitment_id, data)
    return jsonify({"message": "Vendor product group entry updated", "data": commitment})


@bp.delete("/<int:commitment_id>")
async def commitments_delete(commitment_id: int):
    await delete_commitment(commitment_id)
    return jsonify({"message": "Vendor product group entry deleted successfully"})
