from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import RevokedToken, TempToken
from ..services.concurrency import lock_for_update
from .base import Repository


class RevokedTokenRepository(Repository):
    model = RevokedToken

    def is_revoked(self, token: str) -> bool:
        return db.session.query(RevokedToken.id).filter_by(token=token).first() is not None

    def purge_expired(self, now: datetime) -> int:
        return (
            db.session.query(RevokedToken)
            .filter(RevokedToken.expired_at < now)
            .delete(synchronize_session=False)
        )


class TempTokenRepository(Repository):
    model = TempToken

    def get_by_shop(self, shop_id: int) -> TempToken | None:
        return db.session.query(TempToken).filter_by(shop_id=shop_id).first()

    def get_by_shop_for_update(self, shop_id: int) -> TempToken | None:
        query = db.session.query(TempToken).filter_by(shop_id=shop_id)
        return lock_for_update(query).populate_existing().first()

    def active_shop_ids(self, now: datetime) -> list[int]:
        rows = db.session.query(TempToken.shop_id).filter(TempToken.expires_at > now)
        return [row.shop_id for row in rows]
