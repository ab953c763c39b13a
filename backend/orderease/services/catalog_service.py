# Overview: Service-layer operations for the catalog; products, option categories, pricing, and tags.

from __future__ import annotations

from typing import Iterable

from ..errors import Conflict, InvalidInput, NotFound, ProductInUse
from ..extensions import db
from ..models import (
    Option,
    OptionCategory,
    Product,
    Shop,
    Tag,
    PRODUCT_STATUS_OFFLINE,
    PRODUCT_STATUS_ONLINE,
    PRODUCT_STATUS_PENDING,
)
from ..models.catalog import PRODUCT_STATUSES
from ..repositories import ProductRepository, ShopRepository, TagRepository
from ..validation import (
    optional_str,
    parse_amount,
    parse_bool,
    parse_id,
    parse_int,
    require_str,
)
from .concurrency import with_transaction
from .storage_service import remove_image_quietly

products = ProductRepository()
shops = ShopRepository()
tags = TagRepository()

# Allowed product status moves; offline is terminal
PRODUCT_TRANSITIONS = {
    PRODUCT_STATUS_PENDING: {PRODUCT_STATUS_ONLINE},
    PRODUCT_STATUS_ONLINE: {PRODUCT_STATUS_OFFLINE},
    PRODUCT_STATUS_OFFLINE: set(),
}


def unit_price_cents(product: Product, options: Iterable[Option]) -> int:
    """product.price + sum of the chosen options' adjustments."""
    return product.price_cents + sum(o.price_adjustment_cents for o in options)


def _require_shop(shop_id: int) -> Shop:
    shop = shops.get(shop_id)
    if shop is None:
        raise NotFound("Shop not found")
    return shop


def get_product(product_id: int, shop_id: int | None = None) -> Product:
    product = products.get(product_id)
    if product is None or (shop_id is not None and product.shop_id != shop_id):
        raise NotFound("Product not found")
    return product


def _parse_options(raw, where: str) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise InvalidInput(f"{where} must be a list")
    parsed = []
    for i, item in enumerate(raw):
        o_where = f"{where}[{i}]"
        if not isinstance(item, dict):
            raise InvalidInput(f"{o_where} must be an object")
        parsed.append({
            "name": require_str(item, "name", max_length=100),
            "price_adjustment_cents": parse_amount(
                item.get("price_adjustment", 0), f"{o_where}.price_adjustment", allow_negative=True
            ),
            "is_default": parse_bool(item.get("is_default", False), f"{o_where}.is_default"),
            "display_order": parse_int(item.get("display_order", i), f"{o_where}.display_order"),
        })
    return parsed


def parse_option_categories(raw) -> list[dict]:
    """Validate option category payloads: [{name, is_required, is_multiple, display_order, options[]}]."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise InvalidInput("option_categories must be a list")
    parsed = []
    for i, item in enumerate(raw):
        where = f"option_categories[{i}]"
        if not isinstance(item, dict):
            raise InvalidInput(f"{where} must be an object")
        parsed.append({
            "name": require_str(item, "name", max_length=100),
            "is_required": parse_bool(item.get("is_required", False), f"{where}.is_required"),
            "is_multiple": parse_bool(item.get("is_multiple", False), f"{where}.is_multiple"),
            "display_order": parse_int(item.get("display_order", i), f"{where}.display_order"),
            "options": _parse_options(item.get("options"), f"{where}.options"),
        })
    return parsed


def _insert_option_categories(product_id: int, categories: list[dict]) -> None:
    for cat in categories:
        category = OptionCategory(
            product_id=product_id,
            name=cat["name"],
            is_required=cat["is_required"],
            is_multiple=cat["is_multiple"],
            display_order=cat["display_order"],
        )
        db.session.add(category)
        db.session.flush()
        for opt in cat["options"]:
            db.session.add(Option(category_id=category.id, **opt))


def create_product(shop_id: int, payload: dict) -> Product:
    """
    Create a product with its option categories.

    Requires name, price >= 0 and stock >= 0. New products start pending.
    """
    if not isinstance(payload, dict):
        raise InvalidInput("Invalid JSON payload")
    _require_shop(shop_id)

    name = require_str(payload, "name", max_length=255)
    price_cents = parse_amount(payload.get("price"), "price")
    stock = parse_int(payload.get("stock", 0), "stock", minimum=0)
    categories = parse_option_categories(payload.get("option_categories"))

    def _op():
        product = Product(
            shop_id=shop_id,
            name=name,
            description=optional_str(payload, "description"),
            image_url=optional_str(payload, "image_url", max_length=255),
            price_cents=price_cents,
            stock=stock,
            status=PRODUCT_STATUS_PENDING,
        )
        products.add(product)
        db.session.flush()
        _insert_option_categories(product.id, categories)
        return product

    product = with_transaction(_op)
    return product


def update_product(product_id: int, shop_id: int, payload: dict) -> Product:
    """
    Patch product fields. When option_categories is present, the product's
    categories and options are replaced as a whole.
    """
    if not isinstance(payload, dict):
        raise InvalidInput("Invalid JSON payload")
    product = get_product(product_id, shop_id)

    changes: dict = {}
    if "name" in payload:
        changes["name"] = require_str(payload, "name", max_length=255)
    if "description" in payload:
        changes["description"] = optional_str(payload, "description")
    if "image_url" in payload:
        changes["image_url"] = optional_str(payload, "image_url", max_length=255)
    if "price" in payload:
        changes["price_cents"] = parse_amount(payload.get("price"), "price")
    if "stock" in payload:
        changes["stock"] = parse_int(payload.get("stock"), "stock", minimum=0)
    replace_categories = "option_categories" in payload
    categories = parse_option_categories(payload.get("option_categories")) if replace_categories else []

    old_image = product.image_url

    def _op():
        for key, value in changes.items():
            setattr(product, key, value)
        if replace_categories:
            products.delete_option_categories(product.id)
            _insert_option_categories(product.id, categories)
        return product

    with_transaction(_op)
    if "image_url" in changes and old_image and old_image != changes["image_url"]:
        remove_image_quietly(old_image)
    return product


def change_status(product_id: int, shop_id: int, new_status: str) -> Product:
    if new_status not in PRODUCT_STATUSES:
        raise InvalidInput(f"status must be one of: {', '.join(PRODUCT_STATUSES)}")
    product = get_product(product_id, shop_id)
    if new_status not in PRODUCT_TRANSITIONS.get(product.status, set()):
        raise InvalidInput(f"Cannot change product status from {product.status} to {new_status}")

    def _op():
        product.status = new_status
        return product

    return with_transaction(_op)


def delete_product(product_id: int, shop_id: int, storage=None) -> None:
    """
    Delete a product aggregate.

    Fails with ProductInUse while any order item references it. The image
    file is removed afterwards; removal failures are only logged.
    """
    product = get_product(product_id, shop_id)
    if products.order_item_count(product.id) > 0:
        raise ProductInUse()
    image_ref = product.image_url

    def _op():
        # Re-check inside the transaction; an order may have landed meanwhile
        if products.order_item_count(product.id) > 0:
            raise ProductInUse()
        products.delete_aggregate(product)

    with_transaction(_op, immediate=True)
    remove_image_quietly(image_ref, storage)


def list_products(
    shop_id: int,
    page: int,
    size: int,
    *,
    status: str | None = None,
    search: str | None = None,
) -> tuple[list[Product], int]:
    if status is not None and status not in PRODUCT_STATUSES:
        raise InvalidInput(f"status must be one of: {', '.join(PRODUCT_STATUSES)}")
    return products.list_by_shop(shop_id, page, size, status=status, search=search)


# Tags

def get_tag(tag_id: int, shop_id: int | None = None) -> Tag:
    tag = tags.get(tag_id)
    if tag is None or (shop_id is not None and tag.shop_id != shop_id):
        raise NotFound("Tag not found")
    return tag


def list_tags(shop_id: int) -> list[Tag]:
    return tags.list_by_shop(shop_id)


def create_tag(shop_id: int, payload: dict) -> Tag:
    _require_shop(shop_id)
    name = require_str(payload, "name", max_length=50)
    if tags.name_taken(shop_id, name):
        raise Conflict("Tag name already exists in this shop")

    def _op():
        return tags.add(Tag(
            shop_id=shop_id,
            name=name,
            description=optional_str(payload, "description", max_length=255),
        ))

    return with_transaction(_op)


def update_tag(tag_id: int, shop_id: int, payload: dict) -> Tag:
    tag = get_tag(tag_id, shop_id)
    name = require_str(payload, "name", max_length=50) if "name" in payload else tag.name
    if name != tag.name and tags.name_taken(shop_id, name, exclude_id=tag.id):
        raise Conflict("Tag name already exists in this shop")

    def _op():
        tag.name = name
        if "description" in payload:
            tag.description = optional_str(payload, "description", max_length=255)
        return tag

    return with_transaction(_op)


def delete_tag(tag_id: int, shop_id: int) -> None:
    tag = get_tag(tag_id, shop_id)

    def _op():
        if tags.link_count(tag.id) > 0:
            raise Conflict("Tag is still bound to products")
        tags.delete(tag)

    with_transaction(_op)


def _product_ids(raw) -> list[int]:
    if not isinstance(raw, list) or not raw:
        raise InvalidInput("product_ids must be a non-empty list")
    return [parse_id(value, "product_ids[]") for value in raw]


def bind_products(tag_id: int, shop_id: int, raw_product_ids) -> int:
    """Attach products of the tag's shop to the tag. Returns number of new links."""
    tag = get_tag(tag_id, shop_id)
    product_ids = _product_ids(raw_product_ids)
    found = products.ids_in_shop(tag.shop_id, product_ids)
    missing = [pid for pid in product_ids if pid not in found]
    if missing:
        raise InvalidInput("Products do not belong to this shop", {"product_ids": [str(m) for m in missing]})
    return with_transaction(lambda: tags.link(tag, product_ids))


def unbind_products(tag_id: int, shop_id: int, raw_product_ids) -> int:
    tag = get_tag(tag_id, shop_id)
    product_ids = _product_ids(raw_product_ids)
    return with_transaction(lambda: tags.unlink(tag, product_ids))


def list_tag_products(tag_id: int, shop_id: int, page: int, size: int) -> tuple[list[Product], int]:
    tag = get_tag(tag_id, shop_id)
    return tags.products_for_tag(tag.id, page, size)


def list_product_tags(product_id: int, shop_id: int) -> list[Tag]:
    product = get_product(product_id, shop_id)
    return tags.tags_for_product(product.id)


def list_online_tag_products(tag_id: int, shop_id: int, page: int, size: int) -> tuple[list[Product], int]:
    """Storefront view of a tag: only products currently on sale."""
    tag = get_tag(tag_id, shop_id)
    return tags.products_for_tag(tag.id, page, size, online_only=True)


def list_products_without_tag(tag_id: int, shop_id: int, page: int, size: int) -> tuple[list[Product], int]:
    tag = get_tag(tag_id, shop_id)
    return tags.products_missing_tag(tag, page, size)


def list_tags_without_product(product_id: int, shop_id: int) -> list[Tag]:
    product = get_product(product_id, shop_id)
    return tags.tags_missing_product(product)


def list_unused_tags(shop_id: int, page: int, size: int) -> tuple[list[Tag], int]:
    return tags.unused(shop_id, page, size)
