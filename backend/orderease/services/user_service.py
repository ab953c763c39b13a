# Overview: Service-layer operations for customer accounts.

from __future__ import annotations

from ..errors import Conflict, InvalidInput, NotFound
from ..models import User
from ..models.identity import CUSTOMER_TYPES, USER_ROLE_PRIVATE, USER_ROLES, USER_TYPE_DELIVERY, USER_TYPE_SYSTEM
from ..passwords import hash_password, validate_weak_password
from ..repositories import UserRepository
from ..validation import optional_str, require_str
from .concurrency import with_transaction

users = UserRepository()


def get_user(user_id: int) -> User:
    user = users.get(user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def list_users(page: int, size: int, search: str | None = None) -> tuple[list[User], int]:
    return users.list(page, size, search)


def name_exists(name: str) -> bool:
    return users.get_by_name(name) is not None


def list_users_simple(search: str | None = None) -> list[dict]:
    return [{"id": str(user_id), "name": name} for user_id, name in users.name_index(search)]


def _choice(payload: dict, field: str, allowed, default: str) -> str:
    value = payload.get(field, default)
    if value not in allowed:
        raise InvalidInput(f"{field} must be one of: {', '.join(allowed)}")
    return value


def create_user(payload: dict) -> User:
    """
    Create a customer. A password is optional; when given it must pass the
    weak policy. System users cannot be created here.
    """
    if not isinstance(payload, dict):
        raise InvalidInput("Invalid JSON payload")
    name = require_str(payload, "name", max_length=100)
    if name.endswith("_system") and name.startswith("shop_"):
        raise InvalidInput("name is reserved")
    password = payload.get("password")
    if password:
        validate_weak_password(password)
    role = _choice(payload, "role", USER_ROLES, USER_ROLE_PRIVATE)
    user_type = _choice(payload, "type", CUSTOMER_TYPES, USER_TYPE_DELIVERY)
    if users.get_by_name(name) is not None:
        raise Conflict("User name already exists")

    def _op():
        return users.add(User(
            name=name,
            nickname=optional_str(payload, "nickname", max_length=100),
            phone=optional_str(payload, "phone", max_length=32),
            address=optional_str(payload, "address", max_length=255),
            role=role,
            type=user_type,
            password_hash=hash_password(password) if password else None,
        ))

    return with_transaction(_op)


def register_customer(payload: dict) -> User:
    """Self-registration; password is mandatory and the account is private."""
    if not isinstance(payload, dict):
        raise InvalidInput("Invalid JSON payload")
    if not payload.get("password"):
        raise InvalidInput("password is required")
    data = dict(payload)
    data["role"] = USER_ROLE_PRIVATE
    data.setdefault("type", USER_TYPE_DELIVERY)
    return create_user(data)


def update_user(user_id: int, payload: dict) -> User:
    if not isinstance(payload, dict):
        raise InvalidInput("Invalid JSON payload")
    user = get_user(user_id)
    if user.type == USER_TYPE_SYSTEM:
        raise InvalidInput("System users cannot be modified")

    changes: dict = {}
    if "name" in payload:
        name = require_str(payload, "name", max_length=100)
        existing = users.get_by_name(name)
        if existing is not None and existing.id != user.id:
            raise Conflict("User name already exists")
        changes["name"] = name
    for field_name, max_length in (("nickname", 100), ("phone", 32), ("address", 255)):
        if field_name in payload:
            changes[field_name] = optional_str(payload, field_name, max_length=max_length)
    if "role" in payload:
        changes["role"] = _choice(payload, "role", USER_ROLES, user.role)
    if "type" in payload:
        changes["type"] = _choice(payload, "type", CUSTOMER_TYPES, user.type)
    if payload.get("password"):
        validate_weak_password(payload["password"])
        changes["password_hash"] = hash_password(payload["password"])

    def _op():
        for key, value in changes.items():
            setattr(user, key, value)
        return user

    return with_transaction(_op)


def delete_user(user_id: int) -> None:
    user = get_user(user_id)
    if user.type == USER_TYPE_SYSTEM:
        raise InvalidInput("System users cannot be deleted")

    def _op():
        if users.has_orders(user.id):
            raise Conflict("User has orders and cannot be deleted")
        users.delete(user)

    with_transaction(_op)
