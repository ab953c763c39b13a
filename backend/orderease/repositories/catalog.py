from __future__ import annotations

from typing import Iterable, Protocol

from ..extensions import db
from ..models import PRODUCT_STATUS_ONLINE, Option, OptionCategory, OrderItem, Product, ProductTag, Tag
from ..services.concurrency import lock_for_update
from .base import Repository, like_pattern, paginate


class ProductFinder(Protocol):
    """Lookup capability the order service prices items through."""

    def find_product(self, product_id: int) -> Product | None: ...

    def find_option(self, option_id: int) -> Option | None: ...

    def find_option_category(self, category_id: int) -> OptionCategory | None: ...


class SqlProductFinder:
    def find_product(self, product_id: int) -> Product | None:
        return db.session.get(Product, product_id)

    def find_option(self, option_id: int) -> Option | None:
        return db.session.get(Option, option_id)

    def find_option_category(self, category_id: int) -> OptionCategory | None:
        return db.session.get(OptionCategory, category_id)


class ProductRepository(Repository):
    model = Product

    def lock_many(self, product_ids: Iterable[int]) -> dict[int, Product]:
        """
        Row-lock the given products, in id order, and return them by id.

        Rows are refreshed from the database so stock reflects the latest
        committed value.
        """
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        query = db.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id)
        rows = lock_for_update(query).populate_existing().all()
        return {p.id: p for p in rows}

    def list_by_shop(
        self,
        shop_id: int,
        page: int,
        size: int,
        *,
        status: str | None = None,
        search: str | None = None,
    ) -> tuple[list[Product], int]:
        query = db.session.query(Product).filter(Product.shop_id == shop_id)
        if status:
            query = query.filter(Product.status == status)
        if search:
            query = query.filter(Product.name.like(like_pattern(search), escape="\\"))
        query = query.order_by(Product.created_at.desc(), Product.id.desc())
        return paginate(query, page, size)

    def order_item_count(self, product_id: int) -> int:
        return db.session.query(OrderItem).filter_by(product_id=product_id).count()

    def delete_option_categories(self, product_id: int) -> None:
        category_ids = [
            row.id for row in db.session.query(OptionCategory.id).filter_by(product_id=product_id)
        ]
        if category_ids:
            db.session.query(Option).filter(Option.category_id.in_(category_ids)).delete(
                synchronize_session=False
            )
            db.session.query(OptionCategory).filter(OptionCategory.id.in_(category_ids)).delete(
                synchronize_session=False
            )

    def delete_aggregate(self, product: Product) -> None:
        """Delete options, categories, tag links and the product itself."""
        self.delete_option_categories(product.id)
        db.session.query(ProductTag).filter_by(product_id=product.id).delete(synchronize_session=False)
        db.session.delete(product)

    def ids_in_shop(self, shop_id: int, product_ids: Iterable[int]) -> set[int]:
        ids = set(product_ids)
        if not ids:
            return set()
        rows = db.session.query(Product.id).filter(Product.shop_id == shop_id, Product.id.in_(ids))
        return {row.id for row in rows}

    def offline_unreferenced(self) -> list[Product]:
        referenced = db.session.query(OrderItem.product_id)
        return (
            db.session.query(Product)
            .filter(Product.status == "offline", ~Product.id.in_(referenced))
            .all()
        )


class TagRepository(Repository):
    model = Tag

    def list_by_shop(self, shop_id: int) -> list[Tag]:
        return db.session.query(Tag).filter_by(shop_id=shop_id).order_by(Tag.name, Tag.id).all()

    def name_taken(self, shop_id: int, name: str, exclude_id: int | None = None) -> bool:
        query = db.session.query(Tag.id).filter(Tag.shop_id == shop_id, Tag.name == name)
        if exclude_id is not None:
            query = query.filter(Tag.id != exclude_id)
        return query.first() is not None

    def link_count(self, tag_id: int) -> int:
        return db.session.query(ProductTag).filter_by(tag_id=tag_id).count()

    def linked_product_ids(self, tag_id: int) -> set[int]:
        return {row.product_id for row in db.session.query(ProductTag.product_id).filter_by(tag_id=tag_id)}

    def link(self, tag: Tag, product_ids: Iterable[int]) -> int:
        existing = self.linked_product_ids(tag.id)
        added = 0
        for product_id in product_ids:
            if product_id in existing:
                continue
            db.session.add(ProductTag(product_id=product_id, tag_id=tag.id, shop_id=tag.shop_id))
            existing.add(product_id)
            added += 1
        return added

    def unlink(self, tag: Tag, product_ids: Iterable[int]) -> int:
        ids = list(set(product_ids))
        if not ids:
            return 0
        return (
            db.session.query(ProductTag)
            .filter(ProductTag.tag_id == tag.id, ProductTag.product_id.in_(ids))
            .delete(synchronize_session=False)
        )

    def products_for_tag(self, tag_id: int, page: int, size: int, online_only: bool = False) -> tuple[list[Product], int]:
        query = (
            db.session.query(Product)
            .join(ProductTag, ProductTag.product_id == Product.id)
            .filter(ProductTag.tag_id == tag_id)
        )
        if online_only:
            query = query.filter(Product.status == PRODUCT_STATUS_ONLINE)
        query = query.order_by(Product.created_at.desc(), Product.id.desc())
        return paginate(query, page, size)

    def products_missing_tag(self, tag: Tag, page: int, size: int) -> tuple[list[Product], int]:
        """Products of the tag's shop that the tag is not attached to yet."""
        linked = db.select(ProductTag.product_id).where(ProductTag.tag_id == tag.id)
        query = (
            db.session.query(Product)
            .filter(Product.shop_id == tag.shop_id, Product.id.not_in(linked))
            .order_by(Product.created_at.desc(), Product.id.desc())
        )
        return paginate(query, page, size)

    def tags_missing_product(self, product: Product) -> list[Tag]:
        linked = db.select(ProductTag.tag_id).where(ProductTag.product_id == product.id)
        return (
            db.session.query(Tag)
            .filter(Tag.shop_id == product.shop_id, Tag.id.not_in(linked))
            .order_by(Tag.name, Tag.id)
            .all()
        )

    def unused(self, shop_id: int, page: int, size: int) -> tuple[list[Tag], int]:
        """Tags of a shop with no product attached."""
        linked = db.select(ProductTag.tag_id).where(ProductTag.shop_id == shop_id)
        query = (
            db.session.query(Tag)
            .filter(Tag.shop_id == shop_id, Tag.id.not_in(linked))
            .order_by(Tag.name, Tag.id)
        )
        return paginate(query, page, size)

    def tags_for_product(self, product_id: int) -> list[Tag]:
        return (
            db.session.query(Tag)
            .join(ProductTag, ProductTag.tag_id == Tag.id)
            .filter(ProductTag.product_id == product_id)
            .order_by(Tag.name)
            .all()
        )
