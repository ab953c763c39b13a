# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/orderease/routes/auth.py
"""
Authentication API routes.

- POST /auth/login            operator or shop owner login
- POST /auth/user-login       registered customer login
- POST /auth/register         customer self-registration
- POST /auth/refresh-token    new token for the same identity
- POST /auth/logout           revoke the presented token
- POST /auth/change-password  operator / shop owner password change
- GET  /auth/me               current principal
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import bearer_token, require_auth, require_staff
from ..services import auth_service, user_service
from ..services.auth_service import OperatorPrincipal, ShopOwnerPrincipal
from ..time_utils import to_unix

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.post("/login")
def login_route():
    data = request.get_json(silent=True) or {}
    result = auth_service.login(data.get("username") or "", data.get("password") or "")
    return jsonify(result.to_dict()), 200


@auth_bp.post("/user-login")
def user_login_route():
    data = request.get_json(silent=True) or {}
    result = auth_service.customer_login(
        data.get("username") or data.get("name") or "",
        data.get("password") or "",
    )
    return jsonify(result.to_dict()), 200


@auth_bp.post("/register")
def register_route():
    data = request.get_json(silent=True) or {}
    user = user_service.register_customer(data)
    return jsonify({"user": user.to_dict()}), 200


@auth_bp.post("/refresh-token")
def refresh_token_route():
    issued = auth_service.refresh(bearer_token())
    return jsonify({"token": issued.token, "expiredAt": issued.expires_at_unix}), 200


@auth_bp.post("/logout")
def logout_route():
    auth_service.logout(bearer_token())
    return jsonify({"message": "Logged out"}), 200


@auth_bp.post("/change-password")
@require_auth
@require_staff
def change_password_route():
    data = request.get_json(silent=True) or {}
    auth_service.change_password(
        g.principal,
        data.get("old_password") or "",
        data.get("new_password") or "",
    )
    return jsonify({"message": "Password updated"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    principal = g.principal
    if isinstance(principal, OperatorPrincipal):
        role = auth_service.ROLE_ADMIN
    elif isinstance(principal, ShopOwnerPrincipal):
        role = auth_service.ROLE_SHOP
    else:
        role = auth_service.ROLE_USER
    shop_id = principal.scoped_shop_id()
    return jsonify({
        "user_id": str(principal.user_id),
        "username": principal.username,
        "role": role,
        "is_admin": principal.is_admin(),
        "shop_id": str(shop_id) if shop_id is not None else None,
        "expiredAt": to_unix(g.claims.expires_at),
    }), 200
