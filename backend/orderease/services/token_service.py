# Overview: Service-layer operations for bearer tokens; mint, parse, revoke, and purge.

"""
Signed bearer tokens (HS256 JWT).

Claims: user_id, username, is_admin, iat, exp, jti. A token is valid iff
its signature verifies with JWT_SECRET, now < exp, and it is not in the
revoked_tokens table. Logout inserts the token there with its original
exp; purge_revoked_tokens drops rows whose exp has passed.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

import jwt
from flask import current_app

from ..errors import Unauthenticated
from ..extensions import db
from ..models import RevokedToken
from ..repositories import RevokedTokenRepository
from ..time_utils import from_unix, to_unix, utcnow
from .concurrency import with_transaction

ALGORITHM = "HS256"

revoked_tokens = RevokedTokenRepository()


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    username: str
    is_admin: bool
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime

    @property
    def expires_at_unix(self) -> int:
        return to_unix(self.expires_at)


def _secret() -> str:
    return current_app.config["JWT_SECRET"]


def _lifetime() -> timedelta:
    return timedelta(seconds=int(current_app.config["JWT_EXPIRATION"]))


def mint_token(user_id: int, username: str, is_admin: bool) -> IssuedToken:
    issued = utcnow().replace(microsecond=0)
    expires = issued + _lifetime()
    payload = {
        "user_id": int(user_id),
        "username": username,
        "is_admin": bool(is_admin),
        "iat": to_unix(issued),
        "exp": to_unix(expires),
        "jti": uuid.uuid4().hex,
    }
    token = jwt.encode(payload, _secret(), algorithm=ALGORITHM)
    return IssuedToken(token=token, expires_at=expires)


def decode_token(token: str) -> TokenClaims:
    """Check signature and expiry only."""
    if not token:
        raise Unauthenticated("Authentication required")
    try:
        payload = jwt.decode(
            token,
            _secret(),
            algorithms=[ALGORITHM],
            options={"require": ["exp", "iat", "user_id", "username"]},
        )
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token has expired")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Invalid token")

    user_id = payload.get("user_id")
    username = payload.get("username")
    if isinstance(user_id, bool) or not isinstance(user_id, int) or not isinstance(username, str):
        raise Unauthenticated("Invalid token")

    return TokenClaims(
        user_id=user_id,
        username=username,
        is_admin=bool(payload.get("is_admin", False)),
        issued_at=from_unix(payload["iat"]),
        expires_at=from_unix(payload["exp"]),
    )


def parse_token(token: str) -> TokenClaims:
    """Full validation: signature, expiry, and revocation."""
    claims = decode_token(token)
    if revoked_tokens.is_revoked(token):
        raise Unauthenticated("Token has been revoked")
    return claims


def revoke_token(token: str) -> TokenClaims:
    """Logout: remember the token until its original expiry."""
    claims = parse_token(token)

    def _op():
        revoked_tokens.add(RevokedToken(token=token, expired_at=claims.expires_at))
        return claims

    return with_transaction(_op)


def purge_revoked_tokens(now: datetime | None = None) -> int:
    """Delete revocation rows whose token expiry has passed. Returns count removed."""
    now = now or utcnow()
    deleted = revoked_tokens.purge_expired(now)
    db.session.commit()
    return deleted
