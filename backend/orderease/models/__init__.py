from .identity import Operator, Shop, User, USER_TYPE_SYSTEM, system_user_name
from .catalog import (
    Product,
    OptionCategory,
    Option,
    Tag,
    ProductTag,
    PRODUCT_STATUS_PENDING,
    PRODUCT_STATUS_ONLINE,
    PRODUCT_STATUS_OFFLINE,
)
from .orders import Order, OrderItem, OrderItemOption, OrderStatusLog
from .auth import RevokedToken, TempToken

__all__ = [
    "Operator",
    "Shop",
    "User",
    "USER_TYPE_SYSTEM",
    "system_user_name",
    "Product",
    "OptionCategory",
    "Option",
    "Tag",
    "ProductTag",
    "PRODUCT_STATUS_PENDING",
    "PRODUCT_STATUS_ONLINE",
    "PRODUCT_STATUS_OFFLINE",
    "Order",
    "OrderItem",
    "OrderItemOption",
    "OrderStatusLog",
    "RevokedToken",
    "TempToken",
]
