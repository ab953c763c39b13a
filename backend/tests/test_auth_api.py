"""
Authentication API tests.

Verifies:
- Operator / shop owner / customer login and the claims they carry
- Expired shops cannot log in or keep using old tokens
- Logout revokes the token; revoked rows are purged after expiry
- Refresh, change-password and temp-code login
"""

from datetime import timedelta

import jwt
import pytest

from orderease.models import RevokedToken, TempToken
from orderease.services import temp_token_service, token_service
from orderease.time_utils import utcnow

from conftest import (
    CUSTOMER_PASSWORD,
    OPERATOR_PASSWORD,
    OWNER_PASSWORD,
    TEST_SECRET,
    auth_headers,
    get_auth_token,
)


def _claims(token):
    return jwt.decode(token, TEST_SECRET, algorithms=["HS256"])


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/shops"),
            ("GET", "/api/products"),
            ("GET", "/api/orders"),
            ("POST", "/api/orders"),
            ("GET", "/api/users"),
            ("GET", "/api/tags"),
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/refresh-token"),
            ("POST", "/api/auth/logout"),
            ("GET", "/api/front/orders"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/auth/me", headers=auth_headers("not-a-jwt"))
        assert resp.status_code == 401

    def test_token_signed_with_other_secret(self, client, db_session, operator):
        forged = jwt.encode(
            {"user_id": operator.id, "username": "admin", "is_admin": True, "iat": 0, "exp": 4102444800},
            "another-secret-entirely",
            algorithm="HS256",
        )
        resp = client.get("/api/auth/me", headers=auth_headers(forged))
        assert resp.status_code == 401


# =============================================================================
# LOGIN
# =============================================================================


class TestLogin:

    def test_operator_login(self, client, operator):
        resp = client.post("/api/auth/login", json={"username": "admin", "password": OPERATOR_PASSWORD})
        assert resp.status_code == 200
        body = resp.json
        assert body["role"] == "admin"
        assert body["user_info"]["id"] == str(operator.id)

        claims = _claims(body["token"])
        assert claims["user_id"] == operator.id
        assert claims["is_admin"] is True
        assert body["expiredAt"] == claims["exp"]
        assert claims["exp"] - claims["iat"] == 7200

    def test_shop_owner_login(self, client, shop):
        resp = client.post("/api/auth/login", json={"username": "cafe", "password": OWNER_PASSWORD})
        assert resp.status_code == 200
        assert resp.json["role"] == "shop"
        assert resp.json["user_info"]["shop_id"] == str(shop.id)

        claims = _claims(resp.json["token"])
        assert claims["user_id"] == shop.id
        assert claims["username"] == "shop_cafe"
        assert claims["is_admin"] is False

    def test_tokens_are_unique(self, client, operator):
        first = get_auth_token(client, "admin", OPERATOR_PASSWORD)
        second = get_auth_token(client, "admin", OPERATOR_PASSWORD)
        assert first != second

    @pytest.mark.parametrize(
        "username,password",
        [("admin", "wrong"), ("nobody", "Password123!"), ("cafe", "Wrong123!")],
    )
    def test_bad_credentials(self, client, operator, shop, username, password):
        resp = client.post("/api/auth/login", json={"username": username, "password": password})
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid username or password"

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"username": "admin"})
        assert resp.status_code == 400

    def test_expired_shop_cannot_login(self, client, db_session, shop):
        shop.valid_until = utcnow()
        db_session.commit()
        resp = client.post("/api/auth/login", json={"username": "cafe", "password": OWNER_PASSWORD})
        assert resp.status_code == 403

    def test_expired_shop_token_stops_working(self, client, db_session, shop, owner_headers):
        assert client.get("/api/auth/me", headers=owner_headers).status_code == 200
        shop.valid_until = utcnow() - timedelta(seconds=1)
        db_session.commit()

        assert client.get("/api/auth/me", headers=owner_headers).status_code == 403
        assert client.post("/api/auth/refresh-token", headers=owner_headers).status_code == 403

    def test_customer_register_and_login(self, client, db_session):
        resp = client.post("/api/auth/register", json={"name": "bob", "password": "bobpass1"})
        assert resp.status_code == 200
        user_id = resp.json["user"]["id"]

        resp = client.post("/api/auth/user-login", json={"username": "bob", "password": "bobpass1"})
        assert resp.status_code == 200
        assert resp.json["role"] == "user"
        assert _claims(resp.json["token"])["user_id"] == int(user_id)

        dup = client.post("/api/auth/register", json={"name": "bob", "password": "bobpass1"})
        assert dup.status_code == 409

    def test_register_enforces_weak_policy(self, client, db_session):
        resp = client.post("/api/auth/register", json={"name": "carol", "password": "short"})
        assert resp.status_code == 400

    def test_customer_cannot_use_staff_login(self, client, customer):
        resp = client.post("/api/auth/login", json={"username": "alice", "password": CUSTOMER_PASSWORD})
        assert resp.status_code == 401


# =============================================================================
# LOGOUT / REFRESH / PASSWORD
# =============================================================================


class TestTokenLifecycle:

    def test_logout_revokes_token(self, client, db_session, operator):
        token = get_auth_token(client, "admin", OPERATOR_PASSWORD)
        headers = auth_headers(token)
        assert client.get("/api/auth/me", headers=headers).status_code == 200

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401
        assert client.get("/api/shops", headers=headers).status_code == 401
        assert db_session.query(RevokedToken).filter_by(token=token).count() == 1

        # A second logout with the same token is itself unauthenticated
        assert client.post("/api/auth/logout", headers=headers).status_code == 401

    def test_revoked_rows_are_purged_after_expiry(self, client, db_session, operator):
        token = get_auth_token(client, "admin", OPERATOR_PASSWORD)
        client.post("/api/auth/logout", headers=auth_headers(token))

        assert token_service.purge_revoked_tokens() == 0
        assert token_service.purge_revoked_tokens(now=utcnow() + timedelta(hours=3)) == 1
        assert db_session.query(RevokedToken).count() == 0

    def test_refresh_keeps_identity(self, client, shop, owner_headers):
        resp = client.post("/api/auth/refresh-token", headers=owner_headers)
        assert resp.status_code == 200
        claims = _claims(resp.json["token"])
        assert claims["user_id"] == shop.id
        assert claims["username"] == "shop_cafe"

        me = client.get("/api/auth/me", headers=auth_headers(resp.json["token"]))
        assert me.json["role"] == "shop"
        assert me.json["shop_id"] == str(shop.id)
        # The presented token stays valid
        assert client.get("/api/auth/me", headers=owner_headers).status_code == 200

    def test_change_password(self, client, shop, owner_headers):
        resp = client.post("/api/auth/change-password", headers=owner_headers, json={
            "old_password": OWNER_PASSWORD,
            "new_password": "Fresh456#",
        })
        assert resp.status_code == 200

        assert get_auth_token(client, "cafe", OWNER_PASSWORD) is None
        assert get_auth_token(client, "cafe", "Fresh456#") is not None

    def test_change_password_checks_old_and_policy(self, client, operator, operator_headers):
        wrong_old = client.post("/api/auth/change-password", headers=operator_headers, json={
            "old_password": "nope",
            "new_password": "Fresh456#",
        })
        assert wrong_old.status_code == 401

        weak = client.post("/api/auth/change-password", headers=operator_headers, json={
            "old_password": OPERATOR_PASSWORD,
            "new_password": "weakpass",
        })
        assert weak.status_code == 400

    def test_customer_cannot_change_password_here(self, client, customer_headers):
        resp = client.post("/api/auth/change-password", headers=customer_headers, json={
            "old_password": CUSTOMER_PASSWORD,
            "new_password": "Fresh456#",
        })
        assert resp.status_code == 403


# =============================================================================
# TEMP CODE LOGIN
# =============================================================================


class TestTempTokenLogin:

    def test_code_exchange_yields_shop_scoped_customer(self, client, db_session, shop, owner_headers):
        issued = client.get(f"/api/shops/{shop.id}/temp-token", headers=owner_headers)
        assert issued.status_code == 200
        code = issued.json["token"]

        resp = client.post("/api/temp-token/validate", json={"shop_id": str(shop.id), "token": code})
        assert resp.status_code == 200
        assert resp.json["role"] == "user"
        assert resp.json["user_info"]["shop_id"] == str(shop.id)
        assert resp.json["user_info"]["username"] == f"shop_{shop.id}_system"

        me = client.get("/api/auth/me", headers=auth_headers(resp.json["token"]))
        assert me.json["role"] == "user"
        assert me.json["shop_id"] == str(shop.id)

    def test_rotated_code_is_rejected(self, client, db_session, shop, owner_headers):
        old = client.get(f"/api/shops/{shop.id}/temp-token", headers=owner_headers).json["token"]
        new = client.post(f"/api/shops/{shop.id}/temp-token", headers=owner_headers).json["token"]
        assert new != old

        resp = client.post("/api/temp-token/validate", json={"shop_id": shop.id, "token": old})
        assert resp.status_code == 401
        assert resp.json["error"] == "Temporary token is invalid"

    def test_expired_code_is_reported(self, client, db_session, shop):
        code = temp_token_service.get_or_issue(shop.id).token
        row = db_session.query(TempToken).filter_by(shop_id=shop.id).one()
        row.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        resp = client.post("/api/temp-token/validate", json={"shop_id": shop.id, "token": code})
        assert resp.status_code == 401
        assert resp.json["error"] == "Temporary token has expired"

    def test_owner_cannot_read_other_shops_code(self, client, shop, other_shop, owner_headers):
        resp = client.get(f"/api/shops/{other_shop.id}/temp-token", headers=owner_headers)
        assert resp.status_code == 403
