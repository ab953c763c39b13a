# Overview: Flask API routes for shop operations; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_operator, require_staff, scoped_shop_id
from ..errors import InvalidInput
from ..services import shop_service, temp_token_service
from ..services.auth_service import OperatorPrincipal
from ..validation import page_payload, pagination_from_args

shops_bp = Blueprint("shops", __name__, url_prefix="/shops")


@shops_bp.get("")
@require_auth
@require_operator
def list_shops_route():
    page, size = pagination_from_args(request.args)
    shops, total = shop_service.list_shops(page, size, request.args.get("search") or None)
    return jsonify(page_payload([s.to_dict() for s in shops], total, page, size)), 200


@shops_bp.post("")
@require_auth
@require_operator
def create_shop_route():
    shop = shop_service.create_shop(request.get_json(silent=True) or {})
    return jsonify({"shop": shop.to_dict()}), 200


@shops_bp.get("/check-name")
@require_auth
@require_operator
def check_name_route():
    name = (request.args.get("name") or "").strip()
    if not name:
        raise InvalidInput("name is required")
    return jsonify({"exists": shop_service.name_exists(name)}), 200


@shops_bp.get("/<int:shop_id>")
@require_auth
@require_staff
def get_shop_route(shop_id: int):
    shop = shop_service.get_shop(scoped_shop_id(shop_id))
    return jsonify({"shop": shop.to_dict()}), 200


@shops_bp.put("/<int:shop_id>")
@require_auth
@require_staff
def update_shop_route(shop_id: int):
    shop = shop_service.update_shop(
        scoped_shop_id(shop_id),
        request.get_json(silent=True) or {},
        as_operator=isinstance(g.principal, OperatorPrincipal),
    )
    return jsonify({"shop": shop.to_dict()}), 200


@shops_bp.delete("/<int:shop_id>")
@require_auth
@require_operator
def delete_shop_route(shop_id: int):
    shop_service.delete_shop(shop_id)
    return jsonify({"message": "Shop deleted"}), 200


@shops_bp.get("/<int:shop_id>/order-status-flow")
@require_auth
@require_staff
def get_flow_route(shop_id: int):
    flow = shop_service.get_flow(scoped_shop_id(shop_id))
    return jsonify({"shop_id": str(shop_id), "order_status_flow": flow.to_dict()}), 200


@shops_bp.put("/<int:shop_id>/order-status-flow")
@require_auth
@require_staff
def replace_flow_route(shop_id: int):
    data = request.get_json(silent=True)
    if isinstance(data, dict) and "order_status_flow" in data:
        data = data["order_status_flow"]
    flow = shop_service.replace_flow(scoped_shop_id(shop_id), data)
    return jsonify({"shop_id": str(shop_id), "order_status_flow": flow.to_dict()}), 200


@shops_bp.get("/<int:shop_id>/temp-token")
@require_auth
@require_staff
def get_temp_token_route(shop_id: int):
    token = temp_token_service.get_or_issue(scoped_shop_id(shop_id))
    return jsonify(token.to_dict()), 200


@shops_bp.post("/<int:shop_id>/temp-token")
@require_auth
@require_staff
def rotate_temp_token_route(shop_id: int):
    token = temp_token_service.rotate(scoped_shop_id(shop_id))
    return jsonify(token.to_dict()), 200
