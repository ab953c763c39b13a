# Overview: Flask API routes for temp-token login; exchanges a shop code for a customer token.

from flask import Blueprint, jsonify, request

from ..services import auth_service, temp_token_service
from ..services.shop_service import get_shop
from ..validation import parse_id

temp_tokens_bp = Blueprint("temp_tokens", __name__, url_prefix="/temp-token")


@temp_tokens_bp.post("/validate")
def validate_temp_token_route():
    """
    Exchange {shop_id, token} for a bearer token of the shop's system user.

    401 with "Temporary token has expired" or "Temporary token is invalid"
    when the code does not check out.
    """
    data = request.get_json(silent=True) or {}
    shop_id = parse_id(data.get("shop_id"), "shop_id")
    user = temp_token_service.validate(shop_id, str(data.get("token") or ""))
    result = auth_service.customer_login_result(user, get_shop(shop_id))
    return jsonify(result.to_dict()), 200
