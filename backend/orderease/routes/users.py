# Overview: Flask API routes for customer accounts; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_operator, require_staff
from ..errors import InvalidInput
from ..services import user_service
from ..validation import page_payload, pagination_from_args

users_bp = Blueprint("users", __name__, url_prefix="/users")


@users_bp.get("")
@require_auth
@require_staff
def list_users_route():
    page, size = pagination_from_args(request.args)
    users, total = user_service.list_users(page, size, request.args.get("search") or None)
    return jsonify(page_payload([u.to_dict() for u in users], total, page, size)), 200


@users_bp.post("")
@require_auth
@require_staff
def create_user_route():
    user = user_service.create_user(request.get_json(silent=True) or {})
    return jsonify({"user": user.to_dict()}), 200


@users_bp.get("/simple")
@require_auth
@require_staff
def simple_list_route():
    items = user_service.list_users_simple(request.args.get("search") or None)
    return jsonify({"items": items, "total": len(items)}), 200


@users_bp.get("/check-name")
@require_auth
@require_staff
def check_name_route():
    name = (request.args.get("name") or "").strip()
    if not name:
        raise InvalidInput("name is required")
    return jsonify({"exists": user_service.name_exists(name)}), 200


@users_bp.get("/<int:user_id>")
@require_auth
@require_staff
def get_user_route(user_id: int):
    return jsonify({"user": user_service.get_user(user_id).to_dict()}), 200


@users_bp.put("/<int:user_id>")
@require_auth
@require_staff
def update_user_route(user_id: int):
    user = user_service.update_user(user_id, request.get_json(silent=True) or {})
    return jsonify({"user": user.to_dict()}), 200


@users_bp.delete("/<int:user_id>")
@require_auth
@require_operator
def delete_user_route(user_id: int):
    user_service.delete_user(user_id)
    return jsonify({"message": "User deleted"}), 200
