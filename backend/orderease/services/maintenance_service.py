# Overview: Service-layer operations for maintenance; retention cleanup and periodic jobs.

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models.orders import ORDER_STATUS_COMPLETE
from ..repositories import OrderRepository, ProductRepository
from ..time_utils import utcnow
from . import temp_token_service, token_service
from .storage_service import remove_image_quietly

orders = OrderRepository()
products = ProductRepository()


def purge_revoked_tokens() -> int:
    deleted = token_service.purge_revoked_tokens()
    current_app.logger.info("Purged %d expired revoked tokens", deleted)
    return deleted


def rotate_temp_tokens() -> int:
    rotated = temp_token_service.rotate_active_tokens()
    current_app.logger.info("Rotated %d temp tokens", rotated)
    return rotated


def cleanup_history(*, months: int = 3) -> dict:
    """
    Delete completed orders older than the cut-off, then offline products
    that no order references any more.

    Months are counted as 30 days.
    """
    cutoff = utcnow() - timedelta(days=30 * months)

    removed_orders = 0
    for order in orders.completed_before(ORDER_STATUS_COMPLETE, cutoff):
        orders.delete_aggregate(order)
        removed_orders += 1
    db.session.commit()

    removed_products = 0
    images = []
    for product in products.offline_unreferenced():
        images.append(product.image_url)
        products.delete_aggregate(product)
        removed_products += 1
    db.session.commit()

    for ref in images:
        remove_image_quietly(ref)

    current_app.logger.info(
        "History cleanup removed %d orders and %d products", removed_orders, removed_products
    )
    return {"orders": removed_orders, "products": removed_products}
