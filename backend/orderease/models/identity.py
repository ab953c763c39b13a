from __future__ import annotations

import json
import math
from datetime import datetime

from sqlalchemy import event

from ..extensions import db
from ..passwords import hash_password, is_password_hash
from ..services.snowflake_service import next_id
from ..time_utils import as_utc_naive, to_utc_z, utcnow

USER_ROLE_PRIVATE = "private"
USER_ROLE_PUBLIC = "public"
USER_TYPE_DELIVERY = "delivery"
USER_TYPE_PICKUP = "pickup"
USER_TYPE_SYSTEM = "system"

USER_ROLES = (USER_ROLE_PRIVATE, USER_ROLE_PUBLIC)
CUSTOMER_TYPES = (USER_TYPE_DELIVERY, USER_TYPE_PICKUP)


def system_user_name(shop_id: int) -> str:
    return f"shop_{shop_id}_system"


class Operator(db.Model):
    """Back-office operator; authenticates into the operator role."""
    __tablename__ = "operators"

    id = db.Column(db.BigInteger, primary_key=True, autoincrement=False, default=next_id)
    username = db.Column(db.String(50), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "username": self.username,
            "created_at": to_utc_z(self.created_at),
        }


class Shop(db.Model):
    """
    Tenant root.

    owner_username / owner_password_hash are the shop owner's credentials.
    order_status_flow holds the flow JSON verbatim; settings is free-form.
    """
    __tablename__ = "shops"
    __table_args__ = (
        db.Index("ix_shops_owner_username", "owner_username", unique=True),
        db.Index("ix_shops_name", "name", unique=True),
    )

    id = db.Column(db.BigInteger, primary_key=True, autoincrement=False, default=next_id)
    name = db.Column(db.String(100), nullable=False)
    owner_username = db.Column(db.String(50), nullable=False)
    owner_password_hash = db.Column(db.String(255), nullable=False)

    contact_phone = db.Column(db.String(32), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(255), nullable=True)

    valid_until = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    settings = db.Column(db.JSON, nullable=True)
    order_status_flow = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=utcnow)

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return now >= as_utc_naive(self.valid_until)

    def remaining_days(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        seconds = (as_utc_naive(self.valid_until) - now).total_seconds()
        if seconds <= 0:
            return 0
        return math.ceil(seconds / 86400)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "owner_username": self.owner_username,
            "contact_phone": self.contact_phone,
            "contact_email": self.contact_email,
            "address": self.address,
            "description": self.description,
            "image_url": self.image_url,
            "valid_until": to_utc_z(self.valid_until),
            "is_expired": self.is_expired(),
            "remaining_days": self.remaining_days(),
            "settings": self.settings or {},
            "order_status_flow": json.loads(self.order_status_flow) if self.order_status_flow else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class User(db.Model):
    """Customer account, or the synthetic per-shop system user (type=system)."""
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_name", "name", unique=True),
    )

    id = db.Column(db.BigInteger, primary_key=True, autoincrement=False, default=next_id)
    name = db.Column(db.String(100), nullable=False)
    nickname = db.Column(db.String(100), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(16), nullable=False, default=USER_ROLE_PRIVATE)
    type = db.Column(db.String(16), nullable=False, default=USER_TYPE_DELIVERY)
    password_hash = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=utcnow)

    @property
    def is_system(self) -> bool:
        return self.type == USER_TYPE_SYSTEM

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "nickname": self.nickname,
            "phone": self.phone,
            "address": self.address,
            "role": self.role,
            "type": self.type,
            "created_at": to_utc_z(self.created_at),
        }


def _rehash(target, attr: str) -> None:
    value = getattr(target, attr)
    if value and not is_password_hash(value):
        setattr(target, attr, hash_password(value))


@event.listens_for(Operator, "before_insert")
@event.listens_for(Operator, "before_update")
def _operator_password(mapper, connection, target):
    _rehash(target, "password_hash")


@event.listens_for(Shop, "before_insert")
@event.listens_for(Shop, "before_update")
def _shop_password(mapper, connection, target):
    _rehash(target, "owner_password_hash")


@event.listens_for(User, "before_insert")
@event.listens_for(User, "before_update")
def _user_password(mapper, connection, target):
    _rehash(target, "password_hash")
