# Overview: Service-layer operations for shops; operator management and owner profile updates.

from __future__ import annotations

from ..errors import Conflict, InvalidInput, NotFound
from ..extensions import db
from ..models import Shop, Tag, TempToken, User, system_user_name
from ..passwords import hash_password, validate_strict_password
from ..repositories import ShopRepository
from ..validation import optional_str, parse_datetime, require_str
from .concurrency import with_transaction
from .flow_service import OrderStatusFlow, default_flow, flow_cache, flow_for_shop, parse_flow
from .storage_service import remove_image_quietly

shops = ShopRepository()

PROFILE_FIELDS = {
    "contact_phone": 32,
    "contact_email": 255,
    "address": 255,
    "description": None,
    "image_url": 255,
}


def get_shop(shop_id: int) -> Shop:
    shop = shops.get(shop_id)
    if shop is None:
        raise NotFound("Shop not found")
    return shop


def list_shops(page: int, size: int, search: str | None = None) -> tuple[list[Shop], int]:
    return shops.list(page, size, search)


def name_exists(name: str, exclude_id: int | None = None) -> bool:
    return shops.name_taken(name, exclude_id)


def _settings(payload: dict):
    settings = payload.get("settings")
    if settings is not None and not isinstance(settings, dict):
        raise InvalidInput("settings must be an object")
    return settings


def _flow_json(raw) -> str:
    flow = parse_flow(raw) if raw is not None else default_flow()
    return flow.to_json()


def create_shop(payload: dict) -> Shop:
    """
    Create a shop with owner credentials.

    name and owner_username are unique; owner_password must pass the strict
    policy; valid_until is required. Without order_status_flow the default
    flow is installed.
    """
    if not isinstance(payload, dict):
        raise InvalidInput("Invalid JSON payload")
    name = require_str(payload, "name", max_length=100)
    owner_username = require_str(payload, "owner_username", max_length=50)
    owner_password = payload.get("owner_password")
    validate_strict_password(owner_password)
    valid_until = parse_datetime(payload.get("valid_until"), "valid_until")
    if valid_until is None:
        raise InvalidInput("valid_until is required")
    flow_json = _flow_json(payload.get("order_status_flow"))
    settings = _settings(payload)

    if shops.name_taken(name):
        raise Conflict("Shop name already exists")
    if shops.owner_username_taken(owner_username):
        raise Conflict("Owner username already exists")

    def _op():
        shop = Shop(
            name=name,
            owner_username=owner_username,
            owner_password_hash=hash_password(owner_password),
            valid_until=valid_until,
            settings=settings,
            order_status_flow=flow_json,
        )
        for field_name, max_length in PROFILE_FIELDS.items():
            setattr(shop, field_name, optional_str(payload, field_name, max_length=max_length))
        return shops.add(shop)

    return with_transaction(_op)


def update_shop(shop_id: int, payload: dict, *, as_operator: bool) -> Shop:
    """
    Patch a shop. Operators may change every field; owners only the
    profile fields and settings.
    """
    if not isinstance(payload, dict):
        raise InvalidInput("Invalid JSON payload")
    shop = get_shop(shop_id)
    changes: dict = {}

    for field_name, max_length in PROFILE_FIELDS.items():
        if field_name in payload:
            changes[field_name] = optional_str(payload, field_name, max_length=max_length)
    if "settings" in payload:
        changes["settings"] = _settings(payload)

    if as_operator:
        if "name" in payload:
            name = require_str(payload, "name", max_length=100)
            if shops.name_taken(name, exclude_id=shop.id):
                raise Conflict("Shop name already exists")
            changes["name"] = name
        if "owner_username" in payload:
            owner_username = require_str(payload, "owner_username", max_length=50)
            if shops.owner_username_taken(owner_username, exclude_id=shop.id):
                raise Conflict("Owner username already exists")
            changes["owner_username"] = owner_username
        if payload.get("owner_password"):
            validate_strict_password(payload["owner_password"])
            changes["owner_password_hash"] = hash_password(payload["owner_password"])
        if "valid_until" in payload:
            valid_until = parse_datetime(payload.get("valid_until"), "valid_until")
            if valid_until is None:
                raise InvalidInput("valid_until cannot be empty")
            changes["valid_until"] = valid_until
        if "order_status_flow" in payload:
            changes["order_status_flow"] = _flow_json(payload["order_status_flow"])
    else:
        restricted = {"name", "owner_username", "owner_password", "valid_until"} & set(payload)
        if restricted:
            raise InvalidInput(f"Fields not allowed: {', '.join(sorted(restricted))}")
        if "order_status_flow" in payload:
            changes["order_status_flow"] = _flow_json(payload["order_status_flow"])

    old_image = shop.image_url

    def _op():
        for key, value in changes.items():
            setattr(shop, key, value)
        return shop

    with_transaction(_op)
    flow_cache.invalidate(shop.id)
    if "image_url" in changes and old_image and old_image != changes["image_url"]:
        remove_image_quietly(old_image)
    return shop


def get_flow(shop_id: int) -> OrderStatusFlow:
    return flow_for_shop(get_shop(shop_id))


def replace_flow(shop_id: int, raw) -> OrderStatusFlow:
    shop = get_shop(shop_id)
    flow = parse_flow(raw)

    def _op():
        shop.order_status_flow = flow.to_json()

    with_transaction(_op)
    flow_cache.invalidate(shop.id)
    return flow


def delete_shop(shop_id: int) -> None:
    shop = get_shop(shop_id)
    image_ref = shop.image_url

    def _op():
        if shops.has_products(shop.id) or shops.has_orders(shop.id):
            raise Conflict("Shop still has products or orders")
        db.session.query(Tag).filter_by(shop_id=shop.id).delete(synchronize_session=False)
        db.session.query(TempToken).filter_by(shop_id=shop.id).delete(synchronize_session=False)
        db.session.query(User).filter_by(name=system_user_name(shop.id)).delete(synchronize_session=False)
        shops.delete(shop)

    with_transaction(_op)
    flow_cache.invalidate(shop_id)
    remove_image_quietly(image_ref)
