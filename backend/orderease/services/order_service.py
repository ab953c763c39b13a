# Overview: Service-layer operations for orders; create, update, delete, transitions, and queries.

"""
Order lifecycle.

Every mutation runs inside one transaction (with_transaction). Product rows
touched by a mutation are row-locked before their stock is read, so two
concurrent orders for the same product serialize instead of overselling.

Each item keeps a snapshot of the product (name, description, image, price)
and of every chosen option (names and price adjustment), so later catalog
edits never change an existing order.

Authorization is part of this module's contract: every entry point takes
the acting principal and rejects callers that are neither an operator nor
the owner of the shop. Customers may place orders for themselves and read
their own orders.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

from ..errors import (
    Forbidden,
    InsufficientStock,
    InvalidInput,
    InvalidOption,
    NotFound,
    OrderImmutable,
    ShopExpired,
    StatusNotAllowed,
)
from ..models import Order, OrderItem, OrderItemOption, Product, Shop
from ..models.orders import (
    ORDER_STATUS_NONE,
    ORDER_STATUS_PENDING,
    STOCK_RESTORING_STATUSES,
    UNDELETABLE_STATUSES,
)
from ..repositories import (
    OrderRepository,
    OrderSearch,
    ProductFinder,
    ProductRepository,
    ShopRepository,
    SqlProductFinder,
    UserRepository,
)
from ..time_utils import utcnow
from ..validation import optional_str, parse_datetime, parse_id, parse_int, parse_optional_id, parse_pagination
from . import flow_service
from .auth_service import CustomerPrincipal, OperatorPrincipal, Principal, ShopOwnerPrincipal
from .catalog_service import unit_price_cents
from .concurrency import run_with_retry, with_transaction
from .flow_service import OrderStatusFlow
from .snowflake_service import next_id

orders = OrderRepository()
products = ProductRepository()
shops = ShopRepository()
users = UserRepository()

MAX_REMARK_LENGTH = 500
MAX_ITEM_QUANTITY = 9999
_UNSET = object()


@dataclass(frozen=True)
class OptionChoice:
    category_id: int
    option_id: int


@dataclass(frozen=True)
class ItemRequest:
    product_id: int
    quantity: int
    options: tuple[OptionChoice, ...] = ()


@dataclass(frozen=True)
class CreateOrderRequest:
    user_id: int
    shop_id: int
    items: tuple[ItemRequest, ...]
    remark: str | None = None


@dataclass
class _PricedItem:
    request: ItemRequest
    product: Product
    options: list = field(default_factory=list)
    unit_price_cents: int = 0
    total_price_cents: int = 0


def parse_items(raw) -> tuple[ItemRequest, ...]:
    """Structural validation of items: at least one, product_id != 0, quantity >= 1."""
    if not isinstance(raw, list) or not raw:
        raise InvalidInput("Order must contain at least one item")
    items = []
    for i, item in enumerate(raw):
        where = f"items[{i}]"
        if not isinstance(item, dict):
            raise InvalidInput(f"{where} must be an object")
        product_id = parse_id(item.get("product_id"), f"{where}.product_id")
        quantity = parse_int(item.get("quantity"), f"{where}.quantity", minimum=1, maximum=MAX_ITEM_QUANTITY)
        raw_options = item.get("options") or []
        if not isinstance(raw_options, list):
            raise InvalidInput(f"{where}.options must be a list")
        options = []
        for j, opt in enumerate(raw_options):
            if not isinstance(opt, dict):
                raise InvalidInput(f"{where}.options[{j}] must be an object")
            options.append(OptionChoice(
                category_id=parse_id(opt.get("category_id"), f"{where}.options[{j}].category_id"),
                option_id=parse_id(opt.get("option_id"), f"{where}.options[{j}].option_id"),
            ))
        items.append(ItemRequest(product_id=product_id, quantity=quantity, options=tuple(options)))
    return tuple(items)


def parse_create_request(payload: dict) -> CreateOrderRequest:
    if not isinstance(payload, dict):
        raise InvalidInput("Invalid JSON payload")
    return CreateOrderRequest(
        user_id=parse_id(payload.get("user_id"), "user_id"),
        shop_id=parse_id(payload.get("shop_id"), "shop_id"),
        items=parse_items(payload.get("items")),
        remark=optional_str(payload, "remark", max_length=MAX_REMARK_LENGTH),
    )


def authorize_shop(actor: Principal, shop_id: int, *, allow_customer: bool = False) -> None:
    """Raise Forbidden unless actor may act on shop_id."""
    if isinstance(actor, OperatorPrincipal):
        return
    if isinstance(actor, ShopOwnerPrincipal):
        if actor.shop_id == shop_id:
            return
        raise Forbidden()
    if isinstance(actor, CustomerPrincipal) and allow_customer:
        if actor.shop_id is None or actor.shop_id == shop_id:
            return
    raise Forbidden()


def _load_order(order_id: int, shop_id: int, *, for_update: bool = False) -> Order:
    order = orders.get_for_update(order_id) if for_update else orders.get(order_id)
    if order is None or order.shop_id != shop_id:
        raise NotFound("Order not found")
    return order


def _live_shop(shop_id: int) -> Shop:
    shop = shops.get(shop_id)
    if shop is None:
        raise NotFound("Shop not found")
    if shop.is_expired():
        raise ShopExpired()
    return shop


def _resolve_products(shop_id: int, items: tuple[ItemRequest, ...], locked: dict[int, Product]) -> list[_PricedItem]:
    """Match each item to its locked product and check it belongs to the shop."""
    resolved = []
    for item in items:
        product = locked.get(item.product_id)
        if product is None:
            raise NotFound(f"Product {item.product_id} not found")
        if product.shop_id != shop_id:
            raise InvalidInput(f"Product {item.product_id} does not belong to this shop")
        resolved.append(_PricedItem(request=item, product=product))
    return resolved


def _price_items(priced: list[_PricedItem], finder: ProductFinder) -> list[_PricedItem]:
    """Resolve chosen options, then compute unit and line totals."""
    for entry in priced:
        for choice in entry.request.options:
            option = finder.find_option(choice.option_id)
            if option is None:
                raise InvalidOption(f"Option {choice.option_id} not found")
            category = finder.find_option_category(option.category_id)
            if category is None:
                raise InvalidOption(f"Option category {option.category_id} not found")
            if category.product_id != entry.product.id or category.id != choice.category_id:
                raise InvalidOption(f"Option {choice.option_id} does not belong to product {entry.product.id}")
            entry.options.append((option, category))

        unit = unit_price_cents(entry.product, [opt for opt, _cat in entry.options])
        if unit < 0:
            raise InvalidOption("Selected options make the unit price negative")
        entry.unit_price_cents = unit
        entry.total_price_cents = entry.request.quantity * unit
    return priced


def _quantities(items: tuple[ItemRequest, ...]) -> dict[int, int]:
    totals: dict[int, int] = defaultdict(int)
    for item in items:
        totals[item.product_id] += item.quantity
    return dict(totals)


def _check_stock(locked: dict[int, Product], demand: dict[int, int]) -> None:
    for product_id, qty in demand.items():
        if qty <= 0:
            continue
        product = locked[product_id]
        if product.stock < qty:
            raise InsufficientStock(
                f"Insufficient stock for {product.name}",
                {"product_id": str(product_id), "available": product.stock, "requested": qty},
            )


def _attach_items(order: Order, priced: list[_PricedItem]) -> int:
    """Persist snapshot rows for priced items. Returns the order total in cents."""
    total = 0
    for position, entry in enumerate(priced):
        product = entry.product
        item = OrderItem(
            id=next_id(),
            order_id=order.id,
            product_id=product.id,
            position=position,
            quantity=entry.request.quantity,
            unit_price_cents=product.price_cents,
            total_price_cents=entry.total_price_cents,
            product_name=product.name,
            product_description=product.description,
            product_image_url=product.image_url,
        )
        orders.add(item)
        if entry.options:
            orders.flush()
        for opt_position, (option, category) in enumerate(entry.options):
            orders.add(OrderItemOption(
                id=next_id(),
                order_item_id=item.id,
                category_id=category.id,
                option_id=option.id,
                position=opt_position,
                option_name=option.name,
                category_name=category.name,
                price_adjustment_cents=option.price_adjustment_cents,
            ))
        total += entry.total_price_cents
    return total


def create_order(request: CreateOrderRequest, *, actor: Principal, finder: ProductFinder | None = None) -> Order:
    """
    Validate, price, snapshot and persist a new order, decrementing stock.

    Customers may only order for themselves. The whole operation is one
    transaction; any failure leaves stock and orders untouched.
    """
    authorize_shop(actor, request.shop_id, allow_customer=True)
    if isinstance(actor, CustomerPrincipal) and request.user_id != actor.user_id:
        raise Forbidden("Customers can only place orders for themselves")
    if not request.items:
        raise InvalidInput("Order must contain at least one item")
    finder = finder or SqlProductFinder()

    def _op() -> Order:
        _live_shop(request.shop_id)
        if users.get(request.user_id) is None:
            raise NotFound("User not found")

        demand = _quantities(request.items)
        locked = products.lock_many(demand.keys())
        resolved = _resolve_products(request.shop_id, request.items, locked)
        _check_stock(locked, demand)
        priced = _price_items(resolved, finder)

        for product_id, qty in demand.items():
            locked[product_id].stock -= qty

        now = utcnow()
        order = Order(
            id=next_id(),
            user_id=request.user_id,
            shop_id=request.shop_id,
            status=ORDER_STATUS_PENDING,
            remark=request.remark,
            total_price_cents=0,
            created_at=now,
            updated_at=now,
        )
        orders.add(order)
        orders.flush()
        order.total_price_cents = _attach_items(order, priced)
        orders.append_status_log(order.id, ORDER_STATUS_NONE, ORDER_STATUS_PENDING, now)
        return order

    order = run_with_retry(lambda: with_transaction(_op, immediate=True))
    return orders.get(order.id)


def get_order(order_id: int, shop_id: int, *, actor: Principal) -> Order:
    authorize_shop(actor, shop_id, allow_customer=True)
    order = _load_order(order_id, shop_id)
    if isinstance(actor, CustomerPrincipal) and order.user_id != actor.user_id:
        raise NotFound("Order not found")
    return order


def list_orders_by_shop(shop_id: int, page, size, *, actor: Principal) -> tuple[list[Order], int]:
    authorize_shop(actor, shop_id)
    page, size = parse_pagination(page, size)
    return orders.list_by_shop(shop_id, page, size)


def list_orders_by_user(user_id: int, shop_id: int, page, size, *, actor: Principal) -> tuple[list[Order], int]:
    authorize_shop(actor, shop_id, allow_customer=True)
    if isinstance(actor, CustomerPrincipal) and user_id != actor.user_id:
        raise Forbidden("Customers can only list their own orders")
    page, size = parse_pagination(page, size)
    return orders.list_by_user(user_id, shop_id, page, size)


def list_unfinished_orders(shop_id: int, flow: OrderStatusFlow, page, size, *, actor: Principal) -> tuple[list[Order], int]:
    authorize_shop(actor, shop_id)
    page, size = parse_pagination(page, size)
    return orders.list_by_statuses(shop_id, flow_service.unfinished_statuses(flow), page, size)


def parse_search(payload: dict) -> OrderSearch:
    if not isinstance(payload, dict):
        raise InvalidInput("Invalid JSON payload")
    page, size = parse_pagination(payload.get("page", 1), payload.get("pageSize", payload.get("page_size", 10)))
    statuses = payload.get("statuses")
    if statuses is not None:
        if not isinstance(statuses, list):
            raise InvalidInput("statuses must be a list")
        statuses = frozenset(parse_int(s, "statuses[]") for s in statuses)
    start = parse_datetime(payload.get("start"), "start")
    end = parse_datetime(payload.get("end"), "end")
    if start and end and start > end:
        raise InvalidInput("start must not be after end")
    return OrderSearch(
        shop_id=parse_id(payload.get("shop_id"), "shop_id"),
        page=page,
        size=size,
        user_id=parse_optional_id(payload.get("user_id"), "user_id"),
        statuses=statuses,
        start=start,
        end=end,
    )


def search_orders(criteria: OrderSearch, *, actor: Principal) -> tuple[list[Order], int]:
    authorize_shop(actor, criteria.shop_id)
    parse_pagination(criteria.page, criteria.size)
    return orders.search(criteria)


def update_order(
    order_id: int,
    shop_id: int,
    *,
    actor: Principal,
    flow: OrderStatusFlow,
    items: tuple[ItemRequest, ...] | None = None,
    remark=_UNSET,
    finder: ProductFinder | None = None,
) -> Order:
    """
    Change remark and/or replace items.

    Item replacement re-prices everything and moves stock by the per-product
    difference between new and old quantities. Orders in a final status are
    immutable.
    """
    authorize_shop(actor, shop_id)
    if items is not None and not items:
        raise InvalidInput("Order must contain at least one item")
    finder = finder or SqlProductFinder()

    def _op() -> Order:
        order = _load_order(order_id, shop_id, for_update=True)
        if flow_service.is_final(order.status, flow):
            raise OrderImmutable()

        if items is not None:
            _live_shop(shop_id)
            old = orders.quantities_by_product(order.id)
            new = _quantities(items)
            locked = products.lock_many(set(old) | set(new))
            resolved = _resolve_products(shop_id, items, locked)

            delta = {pid: new.get(pid, 0) - old.get(pid, 0) for pid in set(old) | set(new)}
            _check_stock(locked, delta)
            priced = _price_items(resolved, finder)
            for product_id, change in delta.items():
                product = locked.get(product_id)
                if product is not None and change:
                    product.stock -= change

            orders.delete_items(order.id)
            order.total_price_cents = _attach_items(order, priced)

        if remark is not _UNSET:
            order.remark = remark
        order.updated_at = utcnow()
        return order

    order = run_with_retry(lambda: with_transaction(_op, immediate=True))
    return orders.get(order.id)


def delete_order(order_id: int, shop_id: int, *, actor: Principal) -> None:
    """
    Remove an order and everything it owns. Stock is not restored.

    Completed and canceled orders are kept as history.
    """
    authorize_shop(actor, shop_id)

    def _op():
        order = _load_order(order_id, shop_id, for_update=True)
        if order.status in UNDELETABLE_STATUSES:
            raise OrderImmutable("Completed or canceled orders cannot be deleted")
        orders.delete_aggregate(order)

    run_with_retry(lambda: with_transaction(_op, immediate=True))


def toggle_status(order_id: int, shop_id: int, next_status: int, flow: OrderStatusFlow, *, actor: Principal) -> Order:
    """
    Move an order along the shop's flow and append a status log entry.

    Entering Canceled or Rejected returns each item's quantity to stock in
    the same transaction.
    """
    authorize_shop(actor, shop_id)
    if isinstance(next_status, bool) or not isinstance(next_status, int):
        raise InvalidInput("next status must be an integer")

    def _op() -> Order:
        order = _load_order(order_id, shop_id, for_update=True)
        old_status = order.status
        if not flow_service.can_transition(old_status, next_status, flow):
            raise StatusNotAllowed(
                f"Cannot change order status from {old_status} to {next_status}",
                {"from": old_status, "to": next_status},
            )

        if next_status in STOCK_RESTORING_STATUSES and old_status not in STOCK_RESTORING_STATUSES:
            returned = orders.quantities_by_product(order.id)
            locked = products.lock_many(returned.keys())
            for product_id, qty in returned.items():
                product = locked.get(product_id)
                if product is not None:
                    product.stock += qty

        now = utcnow()
        order.status = next_status
        order.updated_at = now
        orders.append_status_log(order.id, old_status, next_status, now)
        return order

    order = run_with_retry(lambda: with_transaction(_op, immediate=True))
    return orders.get(order.id)
