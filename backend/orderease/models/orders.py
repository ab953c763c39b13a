from __future__ import annotations

from ..extensions import db
from ..services.snowflake_service import next_id
from ..time_utils import to_utc_z, utcnow
from ..validation import format_amount

# Fixed codes with side effects; every other code is flow data.
ORDER_STATUS_NONE = 0
ORDER_STATUS_PENDING = 1
ORDER_STATUS_REJECTED = 3
ORDER_STATUS_COMPLETE = 10
ORDER_STATUS_CANCELED = -1

STOCK_RESTORING_STATUSES = frozenset({ORDER_STATUS_CANCELED, ORDER_STATUS_REJECTED})
UNDELETABLE_STATUSES = frozenset({ORDER_STATUS_COMPLETE, ORDER_STATUS_CANCELED})


class Order(db.Model):
    """
    Order aggregate root.

    total_price_cents is always the sum of its items' total_price_cents.
    Items, their options and the status log are owned by the order and
    are removed only together with it.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_user_shop", "user_id", "shop_id"),
        db.Index("ix_orders_shop_status", "shop_id", "status"),
    )

    id = db.Column(db.BigInteger, primary_key=True, autoincrement=False, default=next_id)
    user_id = db.Column(db.BigInteger, db.ForeignKey("users.id"), nullable=False)
    shop_id = db.Column(db.BigInteger, db.ForeignKey("shops.id"), nullable=False)
    total_price_cents = db.Column(db.BigInteger, nullable=False, default=0)
    status = db.Column(db.Integer, nullable=False, default=ORDER_STATUS_PENDING)
    remark = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    items = db.relationship(
        "OrderItem",
        order_by=lambda: [OrderItem.position, OrderItem.id],
        lazy="select",
        viewonly=True,
    )
    status_logs = db.relationship(
        "OrderStatusLog",
        order_by=lambda: [OrderStatusLog.changed_time, OrderStatusLog.id],
        lazy="select",
        viewonly=True,
    )
    user = db.relationship("User", lazy="joined", viewonly=True)

    def to_dict(self, *, flow=None, include_logs: bool = False) -> dict:
        data = {
            "id": str(self.id),
            "order_id": str(self.id),
            "user_id": str(self.user_id),
            "shop_id": str(self.shop_id),
            "total_price": format_amount(self.total_price_cents),
            "status": self.status,
            "status_label": flow.label_for(self.status) if flow is not None else None,
            "remark": self.remark,
            "user": self.user.to_dict() if self.user else None,
            "items": [item.to_dict() for item in self.items],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_logs:
            data["status_logs"] = [log.to_dict() for log in self.status_logs]
        return data


class OrderItem(db.Model):
    """Line of an order; product fields are snapshots taken at creation."""
    __tablename__ = "order_items"

    id = db.Column(db.BigInteger, primary_key=True, autoincrement=False, default=next_id)
    order_id = db.Column(db.BigInteger, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.BigInteger, db.ForeignKey("products.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.BigInteger, nullable=False)

    product_name = db.Column(db.String(255), nullable=False)
    product_description = db.Column(db.Text, nullable=True)
    product_image_url = db.Column(db.String(255), nullable=True)

    options = db.relationship(
        "OrderItemOption",
        order_by=lambda: [OrderItemOption.position, OrderItemOption.id],
        lazy="select",
        viewonly=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "product_id": str(self.product_id),
            "quantity": self.quantity,
            "price": format_amount(self.unit_price_cents),
            "total_price": format_amount(self.total_price_cents),
            "product_name": self.product_name,
            "product_description": self.product_description,
            "product_image_url": self.product_image_url,
            "options": [o.to_dict() for o in self.options],
        }


class OrderItemOption(db.Model):
    __tablename__ = "order_item_options"

    id = db.Column(db.BigInteger, primary_key=True, autoincrement=False, default=next_id)
    order_item_id = db.Column(db.BigInteger, db.ForeignKey("order_items.id"), nullable=False, index=True)
    category_id = db.Column(db.BigInteger, nullable=False)
    option_id = db.Column(db.BigInteger, nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    option_name = db.Column(db.String(100), nullable=False)
    category_name = db.Column(db.String(100), nullable=False)
    price_adjustment_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "category_id": str(self.category_id),
            "option_id": str(self.option_id),
            "option_name": self.option_name,
            "category_name": self.category_name,
            "price_adjustment": format_amount(self.price_adjustment_cents),
        }


class OrderStatusLog(db.Model):
    """Append-only status history of an order."""
    __tablename__ = "order_status_logs"
    __table_args__ = (
        db.Index("ix_order_status_logs_order_id", "order_id"),
    )

    id = db.Column(db.BigInteger, primary_key=True, autoincrement=False, default=next_id)
    order_id = db.Column(db.BigInteger, db.ForeignKey("orders.id"), nullable=False)
    old_status = db.Column(db.Integer, nullable=False)
    new_status = db.Column(db.Integer, nullable=False)
    changed_time = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "old_status": self.old_status,
            "new_status": self.new_status,
            "changed_time": to_utc_z(self.changed_time),
        }


db.Index("ix_orders_shop_created", Order.shop_id, Order.created_at.desc())
