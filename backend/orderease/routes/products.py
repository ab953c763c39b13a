# Overview: Flask API routes for product operations; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_staff, scoped_shop_id
from ..services import catalog_service
from ..validation import page_payload, pagination_from_args

products_bp = Blueprint("products", __name__, url_prefix="/products")


def _shop_id(data: dict | None = None) -> int:
    raw = request.args.get("shop_id")
    if raw is None and data:
        raw = data.get("shop_id")
    return scoped_shop_id(raw)


@products_bp.get("")
@require_auth
@require_staff
def list_products_route():
    shop_id = _shop_id()
    page, size = pagination_from_args(request.args)
    items, total = catalog_service.list_products(
        shop_id,
        page,
        size,
        status=request.args.get("status") or None,
        search=request.args.get("search") or None,
    )
    return jsonify(page_payload([p.to_dict() for p in items], total, page, size)), 200


@products_bp.post("")
@require_auth
@require_staff
def create_product_route():
    data = request.get_json(silent=True) or {}
    product = catalog_service.create_product(_shop_id(data), data)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.get("/<int:product_id>")
@require_auth
@require_staff
def get_product_route(product_id: int):
    product = catalog_service.get_product(product_id, _shop_id())
    return jsonify({"product": product.to_dict()}), 200


@products_bp.put("/<int:product_id>")
@require_auth
@require_staff
def update_product_route(product_id: int):
    data = request.get_json(silent=True) or {}
    product = catalog_service.update_product(product_id, _shop_id(data), data)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.put("/<int:product_id>/status")
@require_auth
@require_staff
def change_status_route(product_id: int):
    data = request.get_json(silent=True) or {}
    product = catalog_service.change_status(product_id, _shop_id(data), data.get("status"))
    return jsonify({"product": product.to_dict(include_options=False)}), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_staff
def delete_product_route(product_id: int):
    catalog_service.delete_product(product_id, _shop_id())
    return jsonify({"message": "Product deleted"}), 200


@products_bp.get("/<int:product_id>/tags")
@require_auth
@require_staff
def product_tags_route(product_id: int):
    tags = catalog_service.list_product_tags(product_id, _shop_id())
    return jsonify({"items": [t.to_dict() for t in tags]}), 200


@products_bp.get("/<int:product_id>/unbound-tags")
@require_auth
@require_staff
def product_unbound_tags_route(product_id: int):
    tags = catalog_service.list_tags_without_product(product_id, _shop_id())
    return jsonify({"items": [t.to_dict() for t in tags]}), 200
