"""
Order lifecycle tests.

Verifies:
- Creation prices items, snapshots the catalog and decrements stock
- Failed creates leave stock and orders untouched
- Item replacement moves stock by the per-product difference
- Status transitions follow the shop's flow; cancel / reject restore stock
- Delete rules and tenant scoping
"""

from datetime import timedelta

import pytest

from orderease.errors import (
    Forbidden,
    InsufficientStock,
    InvalidInput,
    InvalidOption,
    NotFound,
    OrderImmutable,
    ShopExpired,
    StatusNotAllowed,
)
from orderease.models import Order, OrderItem, OrderItemOption, OrderStatusLog, Product
from orderease.services import order_service
from orderease.services.auth_service import ShopOwnerPrincipal
from orderease.services.flow_service import default_flow
from orderease.services.order_service import (
    CreateOrderRequest,
    ItemRequest,
    OptionChoice,
)
from orderease.time_utils import utcnow

from conftest import make_product


def _request(user, shop, *items, remark=None):
    return CreateOrderRequest(user_id=user.id, shop_id=shop.id, items=tuple(items), remark=remark)


def _stock(db_session, product_id):
    db_session.expire_all()
    return db_session.get(Product, product_id).stock


def _place(db_session, customer, shop, product, admin, quantity=1):
    return order_service.create_order(_request(customer, shop, ItemRequest(product.id, quantity)), actor=admin)


# =============================================================================
# CREATE
# =============================================================================


class TestCreateOrder:

    def test_happy_path(self, db_session, shop, product, customer, admin):
        order = _place(db_session, customer, shop, product, admin, quantity=3)

        data = order.to_dict(flow=default_flow())
        assert data["order_id"] != "0"
        assert data["total_price"] == 30.0
        assert data["status"] == 1
        assert data["status_label"] == "Pending"
        assert _stock(db_session, product.id) == 2

        logs = db_session.query(OrderStatusLog).filter_by(order_id=order.id).all()
        assert [(log.old_status, log.new_status) for log in logs] == [(0, 1)]

    def test_option_pricing_and_snapshots(self, db_session, shop, product_with_options, customer, admin):
        product, category, _regular, large = product_with_options
        order = order_service.create_order(
            _request(customer, shop, ItemRequest(product.id, 2, (OptionChoice(category.id, large.id),))),
            actor=admin,
        )

        assert order.total_price_cents == 2500
        item = order.items[0]
        assert item.unit_price_cents == 1000
        assert item.total_price_cents == 2500
        assert item.product_name == "Latte"
        assert item.product_image_url == "/uploads/latte.png"
        [option] = item.options
        assert (option.category_name, option.option_name, option.price_adjustment_cents) == ("Size", "Large", 250)

    def test_snapshot_survives_catalog_changes(self, db_session, shop, product_with_options, customer, admin):
        product, category, _regular, large = product_with_options
        order = order_service.create_order(
            _request(customer, shop, ItemRequest(product.id, 1, (OptionChoice(category.id, large.id),))),
            actor=admin,
        )

        product.name = "Renamed"
        product.price_cents = 9999
        large.name = "Huge"
        large.price_adjustment_cents = 1000
        db_session.commit()

        db_session.expire_all()
        item = db_session.query(OrderItem).filter_by(order_id=order.id).one()
        assert (item.product_name, item.unit_price_cents, item.total_price_cents) == ("Latte", 1000, 1250)
        option = db_session.query(OrderItemOption).filter_by(order_item_id=item.id).one()
        assert (option.option_name, option.price_adjustment_cents) == ("Large", 250)

    def test_items_keep_submitted_order(self, db_session, shop, product, customer, admin):
        second = make_product(db_session, shop, name="Scone", price_cents=300)
        order = order_service.create_order(
            _request(customer, shop, ItemRequest(second.id, 1), ItemRequest(product.id, 2)),
            actor=admin,
        )
        assert [item.product_name for item in order.items] == ["Scone", "Latte"]
        assert order.total_price_cents == 300 + 2000

    def test_quantity_equal_to_stock_empties_it(self, db_session, shop, product, customer, admin):
        _place(db_session, customer, shop, product, admin, quantity=5)
        assert _stock(db_session, product.id) == 0

    def test_oversell_is_rejected_atomically(self, db_session, shop, product, customer, admin):
        with pytest.raises(InsufficientStock):
            _place(db_session, customer, shop, product, admin, quantity=6)

        assert _stock(db_session, product.id) == 5
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderStatusLog).count() == 0

    def test_large_totals_are_kept_exactly(self, db_session, shop, customer, admin):
        pricey = make_product(db_session, shop, name="Caviar", price_cents=999_999_999, stock=9999)
        order = _place(db_session, customer, shop, pricey, admin, quantity=9999)
        assert order.total_price_cents == 999_999_999 * 9999
        assert order.to_dict()["total_price"] == 9_998_999_990_001 / 100

    def test_repeated_product_lines_share_stock(self, db_session, shop, product, customer, admin):
        with pytest.raises(InsufficientStock):
            order_service.create_order(
                _request(customer, shop, ItemRequest(product.id, 3), ItemRequest(product.id, 3)),
                actor=admin,
            )
        assert _stock(db_session, product.id) == 5

    def test_option_of_another_product_is_invalid(self, db_session, shop, product_with_options, customer, admin):
        _product, category, _regular, large = product_with_options
        other = make_product(db_session, shop, name="Tea")
        with pytest.raises(InvalidOption):
            order_service.create_order(
                _request(customer, shop, ItemRequest(other.id, 1, (OptionChoice(category.id, large.id),))),
                actor=admin,
            )
        assert db_session.query(Order).count() == 0

    def test_stock_is_checked_before_options(self, db_session, shop, product_with_options, customer, admin):
        _product, category, _regular, large = product_with_options
        tea = make_product(db_session, shop, name="Tea", stock=5)
        with pytest.raises(InsufficientStock):
            order_service.create_order(
                _request(customer, shop, ItemRequest(tea.id, 6, (OptionChoice(category.id, large.id),))),
                actor=admin,
            )
        assert _stock(db_session, tea.id) == 5

    def test_option_with_wrong_category_is_invalid(self, db_session, shop, product_with_options, customer, admin):
        product, category, _regular, large = product_with_options
        with pytest.raises(InvalidOption):
            order_service.create_order(
                _request(customer, shop, ItemRequest(product.id, 1, (OptionChoice(category.id + 1, large.id),))),
                actor=admin,
            )

    def test_unknown_option_is_invalid(self, db_session, shop, product_with_options, customer, admin):
        product, category, _regular, _large = product_with_options
        with pytest.raises(InvalidOption):
            order_service.create_order(
                _request(customer, shop, ItemRequest(product.id, 1, (OptionChoice(category.id, 424242),))),
                actor=admin,
            )

    def test_unknown_product_is_not_found(self, db_session, shop, customer, admin):
        with pytest.raises(NotFound):
            order_service.create_order(_request(customer, shop, ItemRequest(999999, 1)), actor=admin)

    def test_product_of_other_shop_is_rejected(self, db_session, shop, other_shop, customer, admin):
        foreign = make_product(db_session, other_shop, name="Croissant")
        with pytest.raises(InvalidInput):
            order_service.create_order(_request(customer, shop, ItemRequest(foreign.id, 1)), actor=admin)
        assert _stock(db_session, foreign.id) == 5

    def test_expired_shop_rejects_orders(self, db_session, shop, product, customer, admin):
        shop.valid_until = utcnow() - timedelta(seconds=1)
        db_session.commit()
        with pytest.raises(ShopExpired):
            _place(db_session, customer, shop, product, admin)
        assert _stock(db_session, product.id) == 5

    def test_unknown_user_is_not_found(self, db_session, shop, product, admin):
        request = CreateOrderRequest(user_id=31337, shop_id=shop.id, items=(ItemRequest(product.id, 1),))
        with pytest.raises(NotFound):
            order_service.create_order(request, actor=admin)

    def test_empty_items_rejected(self, db_session, shop, customer, admin):
        with pytest.raises(InvalidInput):
            order_service.create_order(_request(customer, shop), actor=admin)


class TestParseCreateRequest:

    def test_accepts_string_ids(self):
        request = order_service.parse_create_request({
            "user_id": "7",
            "shop_id": "1",
            "items": [{"product_id": "2", "quantity": 3, "options": [{"category_id": "4", "option_id": 5}]}],
            "remark": " no sugar ",
        })
        assert request == CreateOrderRequest(
            user_id=7,
            shop_id=1,
            items=(ItemRequest(2, 3, (OptionChoice(4, 5),)),),
            remark="no sugar",
        )

    @pytest.mark.parametrize(
        "items",
        [
            None,
            [],
            [{"product_id": 0, "quantity": 1}],
            [{"product_id": 2, "quantity": 0}],
            [{"product_id": 2, "quantity": "1.5"}],
            [{"product_id": 2, "quantity": 10000}],
            [{"product_id": 2, "quantity": 1, "options": "large"}],
        ],
    )
    def test_rejects_bad_items(self, items):
        with pytest.raises(InvalidInput):
            order_service.parse_create_request({"user_id": 7, "shop_id": 1, "items": items})

    def test_rejects_long_remark(self):
        with pytest.raises(InvalidInput):
            order_service.parse_create_request({
                "user_id": 7,
                "shop_id": 1,
                "items": [{"product_id": 2, "quantity": 1}],
                "remark": "x" * 501,
            })


# =============================================================================
# UPDATE / DELETE
# =============================================================================


class TestUpdateOrder:

    def test_replacing_items_moves_stock_by_delta(self, db_session, shop, product, customer, admin):
        scone = make_product(db_session, shop, name="Scone", price_cents=300, stock=4)
        order = _place(db_session, customer, shop, product, admin, quantity=2)
        assert _stock(db_session, product.id) == 3

        updated = order_service.update_order(
            order.id, shop.id,
            actor=admin,
            flow=default_flow(),
            items=(ItemRequest(product.id, 4), ItemRequest(scone.id, 1)),
            remark="extra hot",
        )

        assert _stock(db_session, product.id) == 1
        assert _stock(db_session, scone.id) == 3
        assert updated.total_price_cents == 4 * 1000 + 300
        assert updated.remark == "extra hot"
        assert len(updated.items) == 2

    def test_dropping_item_returns_stock(self, db_session, shop, product, customer, admin):
        scone = make_product(db_session, shop, name="Scone", price_cents=300, stock=4)
        order = order_service.create_order(
            _request(customer, shop, ItemRequest(product.id, 2), ItemRequest(scone.id, 2)),
            actor=admin,
        )
        order_service.update_order(
            order.id, shop.id, actor=admin, flow=default_flow(), items=(ItemRequest(product.id, 2),)
        )
        assert _stock(db_session, scone.id) == 4
        assert _stock(db_session, product.id) == 3

    def test_update_beyond_stock_changes_nothing(self, db_session, shop, product, customer, admin):
        order = _place(db_session, customer, shop, product, admin, quantity=2)
        with pytest.raises(InsufficientStock):
            order_service.update_order(
                order.id, shop.id, actor=admin, flow=default_flow(), items=(ItemRequest(product.id, 8),)
            )
        assert _stock(db_session, product.id) == 3
        db_session.expire_all()
        assert db_session.get(Order, order.id).total_price_cents == 2000

    def test_remark_only_update(self, db_session, shop, product, customer, admin):
        order = _place(db_session, customer, shop, product, admin)
        updated = order_service.update_order(order.id, shop.id, actor=admin, flow=default_flow(), remark=None)
        assert updated.remark is None
        assert _stock(db_session, product.id) == 4

    def test_final_order_is_immutable(self, db_session, shop, product, customer, admin):
        order = _place(db_session, customer, shop, product, admin)
        flow = default_flow()
        order_service.toggle_status(order.id, shop.id, 3, flow, actor=admin)
        with pytest.raises(OrderImmutable):
            order_service.update_order(order.id, shop.id, actor=admin, flow=flow, remark="late")


class TestDeleteOrder:

    def test_delete_removes_aggregate_without_restoring_stock(self, db_session, shop, product, customer, admin):
        order = _place(db_session, customer, shop, product, admin, quantity=2)
        order_id = order.id

        order_service.delete_order(order_id, shop.id, actor=admin)

        assert db_session.get(Order, order_id) is None
        assert db_session.query(OrderItem).filter_by(order_id=order_id).count() == 0
        assert db_session.query(OrderStatusLog).filter_by(order_id=order_id).count() == 0
        assert _stock(db_session, product.id) == 3

        with pytest.raises(NotFound):
            order_service.delete_order(order_id, shop.id, actor=admin)

    @pytest.mark.parametrize("path", [[2, 4, 10], [2, -1]])
    def test_complete_and_canceled_orders_are_kept(self, db_session, shop, product, customer, admin, path):
        order = _place(db_session, customer, shop, product, admin)
        for status in path:
            order_service.toggle_status(order.id, shop.id, status, default_flow(), actor=admin)
        with pytest.raises(OrderImmutable):
            order_service.delete_order(order.id, shop.id, actor=admin)


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================


class TestToggleStatus:

    def test_default_flow_walkthrough(self, db_session, shop, product, customer, admin):
        flow = default_flow()
        order = _place(db_session, customer, shop, product, admin)

        assert order_service.toggle_status(order.id, shop.id, 2, flow, actor=admin).status == 2
        with pytest.raises(StatusNotAllowed):
            order_service.toggle_status(order.id, shop.id, 10, flow, actor=admin)
        assert order_service.toggle_status(order.id, shop.id, 4, flow, actor=admin).status == 4
        assert order_service.toggle_status(order.id, shop.id, 10, flow, actor=admin).status == 10
        with pytest.raises(StatusNotAllowed):
            order_service.toggle_status(order.id, shop.id, 2, flow, actor=admin)

        logs = (
            db_session.query(OrderStatusLog)
            .filter_by(order_id=order.id)
            .order_by(OrderStatusLog.changed_time, OrderStatusLog.id)
            .all()
        )
        assert [(log.old_status, log.new_status) for log in logs] == [(0, 1), (1, 2), (2, 4), (4, 10)]

    def test_cancel_restores_stock(self, db_session, shop, product, customer, admin):
        flow = default_flow()
        order = _place(db_session, customer, shop, product, admin, quantity=3)
        order_service.toggle_status(order.id, shop.id, 2, flow, actor=admin)
        order_service.toggle_status(order.id, shop.id, -1, flow, actor=admin)
        assert _stock(db_session, product.id) == 5

    def test_reject_restores_stock(self, db_session, shop, product, customer, admin):
        order = _place(db_session, customer, shop, product, admin, quantity=4)
        order_service.toggle_status(order.id, shop.id, 3, default_flow(), actor=admin)
        assert _stock(db_session, product.id) == 5

    def test_rejected_status_is_not_persisted(self, db_session, shop, product, customer, admin):
        order = _place(db_session, customer, shop, product, admin)
        with pytest.raises(StatusNotAllowed):
            order_service.toggle_status(order.id, shop.id, 10, default_flow(), actor=admin)
        db_session.expire_all()
        assert db_session.get(Order, order.id).status == 1
        assert db_session.query(OrderStatusLog).filter_by(order_id=order.id).count() == 1

    def test_non_integer_status_rejected(self, db_session, shop, product, customer, admin):
        order = _place(db_session, customer, shop, product, admin)
        with pytest.raises(InvalidInput):
            order_service.toggle_status(order.id, shop.id, "2", default_flow(), actor=admin)


# =============================================================================
# QUERIES AND SCOPING
# =============================================================================


class TestQueries:

    def test_list_by_shop_newest_first_with_pagination(self, db_session, shop, product, customer, admin):
        placed = [_place(db_session, customer, shop, product, admin).id for _ in range(3)]

        orders, total = order_service.list_orders_by_shop(shop.id, 1, 2, actor=admin)
        assert total == 3
        assert [o.id for o in orders] == list(reversed(placed))[:2]

        orders, total = order_service.list_orders_by_shop(shop.id, 2, 2, actor=admin)
        assert [o.id for o in orders] == [placed[0]]

    @pytest.mark.parametrize("page,size", [(0, 10), (1, 0), (1, 101), ("x", 10)])
    def test_bad_pagination_rejected(self, db_session, shop, admin, page, size):
        with pytest.raises(InvalidInput):
            order_service.list_orders_by_shop(shop.id, page, size, actor=admin)

    def test_unfinished_orders(self, db_session, shop, product, customer, admin):
        flow = default_flow()
        open_order = _place(db_session, customer, shop, product, admin)
        done = _place(db_session, customer, shop, product, admin)
        order_service.toggle_status(done.id, shop.id, 3, flow, actor=admin)

        orders, total = order_service.list_unfinished_orders(shop.id, flow, 1, 10, actor=admin)
        assert total == 1 and orders[0].id == open_order.id

    def test_search_filters(self, db_session, shop, product, customer, admin):
        flow = default_flow()
        first = _place(db_session, customer, shop, product, admin)
        second = _place(db_session, customer, shop, product, admin)
        order_service.toggle_status(second.id, shop.id, 2, flow, actor=admin)

        criteria = order_service.parse_search({"shop_id": shop.id, "statuses": [2], "user_id": str(customer.id)})
        orders, total = order_service.search_orders(criteria, actor=admin)
        assert total == 1 and orders[0].id == second.id

        criteria = order_service.parse_search({"shop_id": shop.id, "statuses": []})
        assert order_service.search_orders(criteria, actor=admin) == ([], 0)

        tomorrow = (utcnow() + timedelta(days=1)).isoformat()
        criteria = order_service.parse_search({"shop_id": shop.id, "end": tomorrow})
        orders, total = order_service.search_orders(criteria, actor=admin)
        assert {o.id for o in orders} == {first.id, second.id}

        criteria = order_service.parse_search({"shop_id": shop.id, "start": tomorrow})
        assert order_service.search_orders(criteria, actor=admin)[1] == 0

    def test_search_rejects_inverted_range(self):
        with pytest.raises(InvalidInput):
            order_service.parse_search({
                "shop_id": 1,
                "start": "2026-02-01T00:00:00Z",
                "end": "2026-01-01T00:00:00Z",
            })


class TestScoping:

    def test_owner_cannot_touch_other_shop(self, db_session, shop, other_shop, product, customer, admin):
        order = _place(db_session, customer, shop, product, admin)
        intruder = ShopOwnerPrincipal(shop_id=other_shop.id, username="shop_bakery")

        with pytest.raises(Forbidden):
            order_service.get_order(order.id, shop.id, actor=intruder)
        with pytest.raises(Forbidden):
            order_service.toggle_status(order.id, shop.id, 2, default_flow(), actor=intruder)
        with pytest.raises(Forbidden):
            order_service.list_orders_by_shop(shop.id, 1, 10, actor=intruder)

    def test_order_of_other_shop_is_not_found(self, db_session, shop, other_shop, product, customer, admin):
        order = _place(db_session, customer, shop, product, admin)
        with pytest.raises(NotFound):
            order_service.get_order(order.id, other_shop.id, actor=admin)

    def test_owner_manages_own_shop(self, db_session, shop, product, customer, owner):
        order = _place(db_session, customer, shop, product, owner)
        assert order_service.get_order(order.id, shop.id, actor=owner).id == order.id

    def test_customer_orders_only_for_self(self, db_session, shop, product, customer, customer_principal):
        order = _place(db_session, customer, shop, product, customer_principal)
        assert order.user_id == customer.id

        other = CreateOrderRequest(user_id=customer.id + 1, shop_id=shop.id, items=(ItemRequest(product.id, 1),))
        with pytest.raises(Forbidden):
            order_service.create_order(other, actor=customer_principal)

    def test_customer_cannot_manage_orders(self, db_session, shop, product, customer, customer_principal):
        order = _place(db_session, customer, shop, product, customer_principal)
        with pytest.raises(Forbidden):
            order_service.toggle_status(order.id, shop.id, 2, default_flow(), actor=customer_principal)
        with pytest.raises(Forbidden):
            order_service.delete_order(order.id, shop.id, actor=customer_principal)
