from __future__ import annotations

from ..extensions import db
from ..models import Operator, Order, Product, Shop, User
from ..services.concurrency import lock_for_update
from .base import Repository, like_pattern, paginate


class OperatorRepository(Repository):
    model = Operator

    def get_by_username(self, username: str) -> Operator | None:
        return db.session.query(Operator).filter_by(username=username).first()

    def count(self) -> int:
        return db.session.query(Operator).count()


class ShopRepository(Repository):
    model = Shop

    def get_for_update(self, shop_id: int) -> Shop | None:
        query = db.session.query(Shop).filter_by(id=shop_id)
        return lock_for_update(query).populate_existing().first()

    def get_by_owner_username(self, owner_username: str) -> Shop | None:
        return db.session.query(Shop).filter_by(owner_username=owner_username).first()

    def name_taken(self, name: str, exclude_id: int | None = None) -> bool:
        query = db.session.query(Shop.id).filter(Shop.name == name)
        if exclude_id is not None:
            query = query.filter(Shop.id != exclude_id)
        return query.first() is not None

    def owner_username_taken(self, owner_username: str, exclude_id: int | None = None) -> bool:
        query = db.session.query(Shop.id).filter(Shop.owner_username == owner_username)
        if exclude_id is not None:
            query = query.filter(Shop.id != exclude_id)
        return query.first() is not None

    def list(self, page: int, size: int, search: str | None = None) -> tuple[list[Shop], int]:
        query = db.session.query(Shop)
        if search:
            pattern = like_pattern(search)
            query = query.filter(db.or_(
                Shop.name.like(pattern, escape="\\"),
                Shop.owner_username.like(pattern, escape="\\"),
            ))
        query = query.order_by(Shop.created_at.desc(), Shop.id.desc())
        return paginate(query, page, size)

    def has_products(self, shop_id: int) -> bool:
        return db.session.query(Product.id).filter_by(shop_id=shop_id).first() is not None

    def has_orders(self, shop_id: int) -> bool:
        return db.session.query(Order.id).filter_by(shop_id=shop_id).first() is not None


class UserRepository(Repository):
    model = User

    def get_by_name(self, name: str) -> User | None:
        return db.session.query(User).filter_by(name=name).first()

    def list(self, page: int, size: int, search: str | None = None, include_system: bool = False) -> tuple[list[User], int]:
        query = db.session.query(User)
        if not include_system:
            query = query.filter(User.type != "system")
        if search:
            pattern = like_pattern(search)
            query = query.filter(db.or_(
                User.name.like(pattern, escape="\\"),
                User.nickname.like(pattern, escape="\\"),
                User.phone.like(pattern, escape="\\"),
            ))
        query = query.order_by(User.created_at.desc(), User.id.desc())
        return paginate(query, page, size)

    def name_index(self, search: str | None = None, limit: int = 200) -> list[tuple[int, str]]:
        """Id and name of customers, alphabetical, for pickers."""
        query = db.session.query(User.id, User.name).filter(User.type != "system")
        if search:
            query = query.filter(User.name.like(like_pattern(search), escape="\\"))
        return [(row.id, row.name) for row in query.order_by(User.name).limit(limit)]

    def has_orders(self, user_id: int) -> bool:
        return db.session.query(Order.id).filter_by(user_id=user_id).first() is not None
