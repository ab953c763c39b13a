# Overview: Customer-facing routes; browse a shop's online catalog and place or read one's own orders.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_customer
from ..errors import Forbidden, InvalidInput
from ..models import PRODUCT_STATUS_ONLINE
from ..services import catalog_service, order_service, shop_service
from ..validation import DEFAULT_PAGE_SIZE, page_payload, pagination_from_args, parse_id

front_bp = Blueprint("front", __name__, url_prefix="/front")


def _customer_shop_id(raw) -> int:
    """System users are pinned to their shop; other customers must name one."""
    own = g.principal.scoped_shop_id()
    if raw in (None, ""):
        if own is None:
            raise InvalidInput("shop_id is required")
        return own
    shop_id = parse_id(raw, "shop_id")
    if own is not None and shop_id != own:
        raise Forbidden()
    return shop_id


@front_bp.get("/shops/<int:shop_id>")
@require_auth
@require_customer
def shop_detail_route(shop_id: int):
    shop = shop_service.get_shop(_customer_shop_id(shop_id))
    data = shop.to_dict()
    data.pop("owner_username", None)
    data.pop("settings", None)
    return jsonify({"shop": data}), 200


@front_bp.get("/products")
@require_auth
@require_customer
def list_products_route():
    shop_id = _customer_shop_id(request.args.get("shop_id"))
    page, size = pagination_from_args(request.args)
    items, total = catalog_service.list_products(
        shop_id, page, size, status=PRODUCT_STATUS_ONLINE, search=request.args.get("search") or None
    )
    return jsonify(page_payload([p.to_dict() for p in items], total, page, size)), 200


@front_bp.get("/tags")
@require_auth
@require_customer
def list_tags_route():
    shop_id = _customer_shop_id(request.args.get("shop_id"))
    tags = catalog_service.list_tags(shop_id)
    return jsonify({"items": [t.to_dict() for t in tags], "total": len(tags)}), 200


@front_bp.get("/tags/<int:tag_id>/products")
@require_auth
@require_customer
def tag_products_route(tag_id: int):
    shop_id = _customer_shop_id(request.args.get("shop_id"))
    page, size = pagination_from_args(request.args)
    items, total = catalog_service.list_online_tag_products(tag_id, shop_id, page, size)
    return jsonify(page_payload([p.to_dict() for p in items], total, page, size)), 200


@front_bp.post("/orders")
@require_auth
@require_customer
def create_order_route():
    data = dict(request.get_json(silent=True) or {})
    data["user_id"] = g.principal.user_id
    data["shop_id"] = _customer_shop_id(data.get("shop_id"))
    create_request = order_service.parse_create_request(data)
    order = order_service.create_order(create_request, actor=g.principal)
    flow = shop_service.get_flow(order.shop_id)
    return jsonify(order.to_dict(flow=flow)), 200


@front_bp.get("/orders")
@require_auth
@require_customer
def list_my_orders_route():
    shop_id = _customer_shop_id(request.args.get("shop_id"))
    page = request.args.get("page", "1")
    size = request.args.get("pageSize", str(DEFAULT_PAGE_SIZE))
    orders, total = order_service.list_orders_by_user(
        g.principal.user_id, shop_id, page, size, actor=g.principal
    )
    flow = shop_service.get_flow(shop_id)
    return jsonify(page_payload([o.to_dict(flow=flow) for o in orders], total, int(page), int(size))), 200


@front_bp.get("/orders/<int:order_id>")
@require_auth
@require_customer
def get_my_order_route(order_id: int):
    shop_id = _customer_shop_id(request.args.get("shop_id"))
    order = order_service.get_order(order_id, shop_id, actor=g.principal)
    flow = shop_service.get_flow(shop_id)
    return jsonify(order.to_dict(flow=flow, include_logs=True)), 200
