# Overview: Flask API routes for tag operations; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_staff, scoped_shop_id
from ..services import catalog_service
from ..validation import page_payload, pagination_from_args

tags_bp = Blueprint("tags", __name__, url_prefix="/tags")


def _shop_id(data: dict | None = None) -> int:
    raw = request.args.get("shop_id")
    if raw is None and data:
        raw = data.get("shop_id")
    return scoped_shop_id(raw)


@tags_bp.get("")
@require_auth
@require_staff
def list_tags_route():
    tags = catalog_service.list_tags(_shop_id())
    return jsonify({"items": [t.to_dict() for t in tags], "total": len(tags)}), 200


@tags_bp.post("")
@require_auth
@require_staff
def create_tag_route():
    data = request.get_json(silent=True) or {}
    tag = catalog_service.create_tag(_shop_id(data), data)
    return jsonify({"tag": tag.to_dict()}), 200


@tags_bp.put("/<int:tag_id>")
@require_auth
@require_staff
def update_tag_route(tag_id: int):
    data = request.get_json(silent=True) or {}
    tag = catalog_service.update_tag(tag_id, _shop_id(data), data)
    return jsonify({"tag": tag.to_dict()}), 200


@tags_bp.delete("/<int:tag_id>")
@require_auth
@require_staff
def delete_tag_route(tag_id: int):
    catalog_service.delete_tag(tag_id, _shop_id())
    return jsonify({"message": "Tag deleted"}), 200


@tags_bp.post("/<int:tag_id>/products")
@require_auth
@require_staff
def bind_products_route(tag_id: int):
    data = request.get_json(silent=True) or {}
    added = catalog_service.bind_products(tag_id, _shop_id(data), data.get("product_ids"))
    return jsonify({"added": added}), 200


@tags_bp.delete("/<int:tag_id>/products")
@require_auth
@require_staff
def unbind_products_route(tag_id: int):
    data = request.get_json(silent=True) or {}
    removed = catalog_service.unbind_products(tag_id, _shop_id(data), data.get("product_ids"))
    return jsonify({"removed": removed}), 200


@tags_bp.get("/<int:tag_id>/products")
@require_auth
@require_staff
def tag_products_route(tag_id: int):
    page, size = pagination_from_args(request.args)
    items, total = catalog_service.list_tag_products(tag_id, _shop_id(), page, size)
    return jsonify(page_payload([p.to_dict(include_options=False) for p in items], total, page, size)), 200


@tags_bp.get("/<int:tag_id>/unbound-products")
@require_auth
@require_staff
def unbound_products_route(tag_id: int):
    page, size = pagination_from_args(request.args)
    items, total = catalog_service.list_products_without_tag(tag_id, _shop_id(), page, size)
    return jsonify(page_payload([p.to_dict(include_options=False) for p in items], total, page, size)), 200


@tags_bp.get("/unused")
@require_auth
@require_staff
def unused_tags_route():
    page, size = pagination_from_args(request.args)
    items, total = catalog_service.list_unused_tags(_shop_id(), page, size)
    return jsonify(page_payload([t.to_dict() for t in items], total, page, size)), 200
