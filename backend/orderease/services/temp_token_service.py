# Overview: Service-layer operations for per-shop temporary order codes.

"""
Temporary six-digit codes.

Each shop has at most one temp token row, bound to the shop's synthetic
system user ("shop_<id>_system"). Rotation overwrites the row in place.
Whoever presents the current code gets a customer token for the system
user, scoped to that shop.
"""

from __future__ import annotations

import hmac
import secrets
from datetime import timedelta

from flask import current_app
from ..errors import NotFound, ShopExpired, TempTokenExpired, TempTokenMismatch
from ..extensions import db
from ..models import Shop, TempToken, User, USER_TYPE_SYSTEM, system_user_name
from ..models.identity import USER_ROLE_PUBLIC
from ..repositories import ShopRepository, TempTokenRepository, UserRepository
from ..time_utils import as_utc_naive, utcnow
from .concurrency import run_with_retry, with_transaction

TOKEN_MIN = 100000
TOKEN_MAX = 999999

shops = ShopRepository()
users = UserRepository()
temp_tokens = TempTokenRepository()


def generate_code() -> str:
    return str(TOKEN_MIN + secrets.randbelow(TOKEN_MAX - TOKEN_MIN + 1))


def _ttl() -> timedelta:
    return timedelta(seconds=int(current_app.config.get("TEMP_TOKEN_TTL", 3600)))


def _live_shop(shop_id: int) -> Shop:
    shop = shops.get(shop_id)
    if shop is None:
        raise NotFound("Shop not found")
    if shop.is_expired():
        raise ShopExpired()
    return shop


def ensure_system_user(shop_id: int) -> User:
    """Return the shop's system user, creating it on first use."""
    name = system_user_name(shop_id)
    user = users.get_by_name(name)
    if user is not None:
        return user

    user = User(name=name, role=USER_ROLE_PUBLIC, type=USER_TYPE_SYSTEM, password_hash=None)
    users.add(user)
    db.session.flush()
    return user


def _is_live(token: TempToken | None) -> bool:
    return token is not None and utcnow() < as_utc_naive(token.expires_at)


def _lock_shop(shop_id: int) -> None:
    # Serializes first-time creation of the system user and the token row
    if shops.get_for_update(shop_id) is None:
        raise NotFound("Shop not found")


def _locked(op):
    return run_with_retry(lambda: with_transaction(op, immediate=True))


def _write_new_code(shop_id: int) -> TempToken:
    """Mint a fresh code in place. Call with the shop row locked."""
    user = ensure_system_user(shop_id)
    now = utcnow()
    token = temp_tokens.get_by_shop_for_update(shop_id)
    if token is None:
        token = TempToken(shop_id=shop_id, user_id=user.id)
        temp_tokens.add(token)
    token.user_id = user.id
    code = generate_code()
    while code == token.token:
        code = generate_code()
    token.token = code
    token.expires_at = now + _ttl()
    return token


def _rotate_in_place(shop_id: int) -> TempToken:
    _lock_shop(shop_id)
    return _write_new_code(shop_id)


def rotate(shop_id: int) -> TempToken:
    """Always mint a new code for the shop and extend its expiry."""
    _live_shop(shop_id)
    return _locked(lambda: _rotate_in_place(shop_id))


def get_or_issue(shop_id: int) -> TempToken:
    """Return the current code while it is still valid, otherwise rotate."""
    _live_shop(shop_id)
    token = temp_tokens.get_by_shop(shop_id)
    if _is_live(token):
        return token

    def _op() -> TempToken:
        _lock_shop(shop_id)
        current = temp_tokens.get_by_shop_for_update(shop_id)
        if _is_live(current):
            return current
        return _write_new_code(shop_id)

    return _locked(_op)


def validate(shop_id: int, code: str) -> User:
    """
    Check a presented code.

    Raises TempTokenExpired when the shop's code has expired and
    TempTokenMismatch when there is no code or it differs.
    """
    shop = _live_shop(shop_id)
    token = temp_tokens.get_by_shop(shop.id)
    if token is None:
        raise TempTokenMismatch()
    if utcnow() >= as_utc_naive(token.expires_at):
        raise TempTokenExpired()
    if not hmac.compare_digest(str(code or ""), token.token):
        raise TempTokenMismatch()

    user = users.get(token.user_id)
    if user is None:
        raise TempTokenMismatch()
    return user


def rotate_active_tokens() -> int:
    """Rotate every unexpired code. Each shop rotates in its own transaction."""
    rotated = 0
    for shop_id in temp_tokens.active_shop_ids(utcnow()):
        shop = shops.get(shop_id)
        if shop is None or shop.is_expired():
            continue
        _locked(lambda sid=shop_id: _rotate_in_place(sid))
        rotated += 1
    return rotated
