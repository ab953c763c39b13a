from __future__ import annotations

from ..extensions import db
from ..services.snowflake_service import next_id
from ..time_utils import to_utc_z, utcnow


class RevokedToken(db.Model):
    """
    Logged-out bearer tokens.

    A token present here never authenticates again; rows are purged once
    expired_at has passed since the signature check rejects them anyway.
    """
    __tablename__ = "revoked_tokens"
    __table_args__ = (
        db.Index("ix_revoked_tokens_token", "token", unique=True),
        db.Index("ix_revoked_tokens_expired_at", "expired_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(512), nullable=False)
    expired_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)


class TempToken(db.Model):
    """The single active six-digit code of a shop, bound to its system user."""
    __tablename__ = "temp_tokens"
    __table_args__ = (
        db.Index("ix_temp_tokens_shop_id", "shop_id", unique=True),
    )

    id = db.Column(db.BigInteger, primary_key=True, autoincrement=False, default=next_id)
    shop_id = db.Column(db.BigInteger, db.ForeignKey("shops.id"), nullable=False)
    user_id = db.Column(db.BigInteger, db.ForeignKey("users.id"), nullable=False)
    token = db.Column(db.String(6), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "shop_id": str(self.shop_id),
            "user_id": str(self.user_id),
            "token": self.token,
            "expires_at": to_utc_z(self.expires_at),
        }
