from quart import Blueprint, jsonify

from .service import create_supplier, create_vendor, get_supplier, get_vendor, list_suppliers, list_vendors
from ..common.http import json_body

bp = Blueprint("accounts", __name__, url_prefix="/api")


@bp.post("/suppliers")
async def suppliers_create():
    supplier = await create_supplier(await json_body())
    return jsonify({"message": "Supplier created", "data": supplier}), 201


@bp.get("/suppliers")
async def suppliers_list():
    return jsonify(await list_suppliers())


@bp.get("/suppliers/<int:supplier_id>")
async def suppliers_detail(supplier_id: int):
    return jsonify(await get_supplier(supplier_id))


@bp.post("/vendors")
async def vendors_create():
    vendor = await create_vendor(await json_body())
    return jsonify({"message": "Vendor created", "data": vendor}), 201


@bp.get("/vendors")
async def vendors_list():
    return jsonify(await list_vendors())


@bp.get("/vendors/<int:vendor_id>")
async def vendors_detail(vendor_id: int):
    return jsonify(await get_vendor(vendor_id))
