# Overview: Flask API routes for order operations; parses input and returns JSON responses.

# backend/orderease/routes/orders.py
"""
Order API routes for operators and shop owners.

Shop owners are pinned to their own shop; operators pass shop_id
explicitly (query string, or body for create/search).
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_staff, scoped_shop_id
from ..errors import InvalidInput
from ..services import order_service, shop_service
from ..validation import DEFAULT_PAGE_SIZE, page_payload, parse_id, parse_int

orders_bp = Blueprint("orders", __name__, url_prefix="/orders")


def _page_args():
    return (
        request.args.get("page", "1"),
        request.args.get("pageSize", request.args.get("page_size", str(DEFAULT_PAGE_SIZE))),
    )


def _render_page(orders, total, shop_id: int):
    page, size = _page_args()
    flow = shop_service.get_flow(shop_id)
    return page_payload([o.to_dict(flow=flow) for o in orders], total, int(page), int(size))


@orders_bp.post("")
@require_auth
@require_staff
def create_order_route():
    data = request.get_json(silent=True) or {}
    create_request = order_service.parse_create_request(data)
    order = order_service.create_order(create_request, actor=g.principal)
    flow = shop_service.get_flow(order.shop_id)
    return jsonify(order.to_dict(flow=flow)), 200


@orders_bp.get("")
@require_auth
@require_staff
def list_orders_route():
    shop_id = scoped_shop_id(request.args.get("shop_id"))
    page, size = _page_args()
    user_id = request.args.get("user_id")
    if user_id:
        orders, total = order_service.list_orders_by_user(
            parse_id(user_id, "user_id"), shop_id, page, size, actor=g.principal
        )
    else:
        orders, total = order_service.list_orders_by_shop(shop_id, page, size, actor=g.principal)
    return jsonify(_render_page(orders, total, shop_id)), 200


@orders_bp.get("/unfinished")
@require_auth
@require_staff
def list_unfinished_route():
    shop_id = scoped_shop_id(request.args.get("shop_id"))
    page, size = _page_args()
    flow = shop_service.get_flow(shop_id)
    orders, total = order_service.list_unfinished_orders(shop_id, flow, page, size, actor=g.principal)
    return jsonify(_render_page(orders, total, shop_id)), 200


@orders_bp.get("/status-flow")
@require_auth
@require_staff
def status_flow_route():
    shop_id = scoped_shop_id(request.args.get("shop_id"))
    flow = shop_service.get_flow(shop_id)
    return jsonify({"shop_id": str(shop_id), "order_status_flow": flow.to_dict()}), 200


@orders_bp.post("/search")
@require_auth
@require_staff
def search_orders_route():
    data = dict(request.get_json(silent=True) or {})
    data["shop_id"] = scoped_shop_id(data.get("shop_id"))
    criteria = order_service.parse_search(data)
    orders, total = order_service.search_orders(criteria, actor=g.principal)
    flow = shop_service.get_flow(criteria.shop_id)
    return jsonify(page_payload(
        [o.to_dict(flow=flow) for o in orders], total, criteria.page, criteria.size
    )), 200


@orders_bp.get("/<int:order_id>")
@require_auth
@require_staff
def get_order_route(order_id: int):
    shop_id = scoped_shop_id(request.args.get("shop_id"))
    order = order_service.get_order(order_id, shop_id, actor=g.principal)
    flow = shop_service.get_flow(shop_id)
    return jsonify(order.to_dict(flow=flow, include_logs=True)), 200


@orders_bp.put("/<int:order_id>")
@require_auth
@require_staff
def update_order_route(order_id: int):
    data = request.get_json(silent=True) or {}
    shop_id = scoped_shop_id(request.args.get("shop_id") or data.get("shop_id"))
    flow = shop_service.get_flow(shop_id)

    kwargs = {}
    if "items" in data:
        kwargs["items"] = order_service.parse_items(data.get("items"))
    if "remark" in data:
        remark = data.get("remark")
        if remark is not None and not isinstance(remark, str):
            raise InvalidInput("remark must be a string")
        if remark and len(remark) > order_service.MAX_REMARK_LENGTH:
            raise InvalidInput(f"remark exceeds max length {order_service.MAX_REMARK_LENGTH}")
        kwargs["remark"] = remark

    order = order_service.update_order(order_id, shop_id, actor=g.principal, flow=flow, **kwargs)
    return jsonify(order.to_dict(flow=flow)), 200


@orders_bp.delete("/<int:order_id>")
@require_auth
@require_staff
def delete_order_route(order_id: int):
    shop_id = scoped_shop_id(request.args.get("shop_id"))
    order_service.delete_order(order_id, shop_id, actor=g.principal)
    return jsonify({"message": "Order deleted"}), 200


@orders_bp.post("/<int:order_id>/toggle-status")
@require_auth
@require_staff
def toggle_status_route(order_id: int):
    data = request.get_json(silent=True) or {}
    shop_id = scoped_shop_id(request.args.get("shop_id") or data.get("shop_id"))
    raw_next = request.args.get("next", data.get("next_status"))
    if raw_next is None:
        raise InvalidInput("next status is required")
    next_status = parse_int(raw_next, "next")

    flow = shop_service.get_flow(shop_id)
    order = order_service.toggle_status(order_id, shop_id, next_status, flow, actor=g.principal)
    return jsonify(order.to_dict(flow=flow)), 200
