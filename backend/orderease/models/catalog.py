from __future__ import annotations

from ..extensions import db
from ..services.snowflake_service import next_id
from ..time_utils import to_utc_z, utcnow
from ..validation import format_amount

PRODUCT_STATUS_PENDING = "pending"
PRODUCT_STATUS_ONLINE = "online"
PRODUCT_STATUS_OFFLINE = "offline"
PRODUCT_STATUSES = (PRODUCT_STATUS_PENDING, PRODUCT_STATUS_ONLINE, PRODUCT_STATUS_OFFLINE)


class Product(db.Model):
    """Sellable item of one shop. Money is stored in integer cents."""
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_shop_status", "shop_id", "status"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    )

    id = db.Column(db.BigInteger, primary_key=True, autoincrement=False, default=next_id)
    shop_id = db.Column(db.BigInteger, db.ForeignKey("shops.id"), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(255), nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=PRODUCT_STATUS_PENDING)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=utcnow)

    option_categories = db.relationship(
        "OptionCategory",
        order_by=lambda: [OptionCategory.display_order, OptionCategory.id],
        lazy="select",
        viewonly=True,
    )

    def to_dict(self, include_options: bool = True) -> dict:
        data = {
            "id": str(self.id),
            "shop_id": str(self.shop_id),
            "name": self.name,
            "description": self.description,
            "image_url": self.image_url,
            "price": format_amount(self.price_cents),
            "stock": self.stock,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_options:
            data["option_categories"] = [c.to_dict() for c in self.option_categories]
        return data


class OptionCategory(db.Model):
    __tablename__ = "product_option_categories"

    id = db.Column(db.BigInteger, primary_key=True, autoincrement=False, default=next_id)
    product_id = db.Column(db.BigInteger, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    is_required = db.Column(db.Boolean, nullable=False, default=False)
    is_multiple = db.Column(db.Boolean, nullable=False, default=False)
    display_order = db.Column(db.Integer, nullable=False, default=0)

    options = db.relationship(
        "Option",
        order_by=lambda: [Option.display_order, Option.id],
        lazy="select",
        viewonly=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "product_id": str(self.product_id),
            "name": self.name,
            "is_required": self.is_required,
            "is_multiple": self.is_multiple,
            "display_order": self.display_order,
            "options": [o.to_dict() for o in self.options],
        }


class Option(db.Model):
    __tablename__ = "product_options"

    id = db.Column(db.BigInteger, primary_key=True, autoincrement=False, default=next_id)
    category_id = db.Column(db.BigInteger, db.ForeignKey("product_option_categories.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    # Signed; may lower the unit price
    price_adjustment_cents = db.Column(db.Integer, nullable=False, default=0)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    display_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "category_id": str(self.category_id),
            "name": self.name,
            "price_adjustment": format_amount(self.price_adjustment_cents),
            "is_default": self.is_default,
            "display_order": self.display_order,
        }


class Tag(db.Model):
    __tablename__ = "tags"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "name", name="uq_tags_shop_name"),
    )

    id = db.Column(db.BigInteger, primary_key=True, autoincrement=False, default=next_id)
    shop_id = db.Column(db.BigInteger, db.ForeignKey("shops.id"), nullable=False, index=True)
    name = db.Column(db.String(50), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "shop_id": str(self.shop_id),
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class ProductTag(db.Model):
    """Many-to-many association between products and tags of the same shop."""
    __tablename__ = "product_tags"
    __table_args__ = (
        db.Index("ix_product_tags_tag_id", "tag_id"),
    )

    product_id = db.Column(db.BigInteger, db.ForeignKey("products.id"), primary_key=True)
    tag_id = db.Column(db.BigInteger, db.ForeignKey("tags.id"), primary_key=True)
    shop_id = db.Column(db.BigInteger, db.ForeignKey("shops.id"), nullable=False, index=True)
