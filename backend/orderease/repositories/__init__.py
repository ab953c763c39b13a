# Overview: Per-aggregate persistence ports over the Flask-SQLAlchemy session.

from .identity import OperatorRepository, ShopRepository, UserRepository
from .catalog import ProductFinder, ProductRepository, SqlProductFinder, TagRepository
from .orders import OrderRepository, OrderSearch
from .tokens import RevokedTokenRepository, TempTokenRepository

__all__ = [
    "OperatorRepository",
    "ShopRepository",
    "UserRepository",
    "ProductFinder",
    "ProductRepository",
    "SqlProductFinder",
    "TagRepository",
    "OrderRepository",
    "OrderSearch",
    "RevokedTokenRepository",
    "TempTokenRepository",
]
