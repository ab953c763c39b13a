from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..extensions import db
from ..models import Order, OrderItem, OrderItemOption, OrderStatusLog
from ..services.concurrency import lock_for_update
from .base import Repository, paginate


@dataclass
class OrderSearch:
    """AND-composed filters; None means unbounded / any."""
    shop_id: int
    page: int
    size: int
    user_id: int | None = None
    statuses: frozenset[int] | None = None
    start: datetime | None = None
    end: datetime | None = None


class OrderRepository(Repository):
    model = Order

    def get_for_update(self, order_id: int) -> Order | None:
        query = db.session.query(Order).filter(Order.id == order_id)
        return lock_for_update(query).populate_existing().first()

    def _newest_first(self, query):
        return query.order_by(Order.created_at.desc(), Order.id.desc())

    def list_by_shop(self, shop_id: int, page: int, size: int) -> tuple[list[Order], int]:
        query = db.session.query(Order).filter(Order.shop_id == shop_id)
        return paginate(self._newest_first(query), page, size)

    def list_by_user(self, user_id: int, shop_id: int, page: int, size: int) -> tuple[list[Order], int]:
        query = db.session.query(Order).filter(Order.user_id == user_id, Order.shop_id == shop_id)
        return paginate(self._newest_first(query), page, size)

    def list_by_statuses(self, shop_id: int, statuses: set[int], page: int, size: int) -> tuple[list[Order], int]:
        if not statuses:
            return [], 0
        query = db.session.query(Order).filter(Order.shop_id == shop_id, Order.status.in_(statuses))
        return paginate(self._newest_first(query), page, size)

    def search(self, criteria: OrderSearch) -> tuple[list[Order], int]:
        query = db.session.query(Order).filter(Order.shop_id == criteria.shop_id)
        if criteria.user_id is not None:
            query = query.filter(Order.user_id == criteria.user_id)
        if criteria.statuses is not None:
            if not criteria.statuses:
                return [], 0
            query = query.filter(Order.status.in_(criteria.statuses))
        if criteria.start is not None:
            query = query.filter(Order.created_at >= criteria.start)
        if criteria.end is not None:
            query = query.filter(Order.created_at <= criteria.end)
        return paginate(self._newest_first(query), criteria.page, criteria.size)

    def quantities_by_product(self, order_id: int) -> dict[int, int]:
        rows = (
            db.session.query(OrderItem.product_id, db.func.sum(OrderItem.quantity))
            .filter(OrderItem.order_id == order_id)
            .group_by(OrderItem.product_id)
            .all()
        )
        return {product_id: int(qty) for product_id, qty in rows}

    def delete_items(self, order_id: int) -> None:
        """Remove item options first, then items."""
        item_ids = [row.id for row in db.session.query(OrderItem.id).filter_by(order_id=order_id)]
        if item_ids:
            db.session.query(OrderItemOption).filter(
                OrderItemOption.order_item_id.in_(item_ids)
            ).delete(synchronize_session=False)
        db.session.query(OrderItem).filter_by(order_id=order_id).delete(synchronize_session=False)

    def delete_aggregate(self, order: Order) -> None:
        """Options, items, status logs, then the order itself."""
        self.delete_items(order.id)
        db.session.query(OrderStatusLog).filter_by(order_id=order.id).delete(synchronize_session=False)
        db.session.delete(order)

    def append_status_log(self, order_id: int, old_status: int, new_status: int, changed_time: datetime) -> OrderStatusLog:
        log = OrderStatusLog(
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
            changed_time=changed_time,
        )
        db.session.add(log)
        return log

    def completed_before(self, status: int, cutoff: datetime) -> list[Order]:
        return (
            db.session.query(Order)
            .filter(Order.status == status, Order.created_at < cutoff)
            .all()
        )
