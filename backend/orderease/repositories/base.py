from __future__ import annotations

from ..extensions import db


def paginate(query, page: int, size: int) -> tuple[list, int]:
    """Return one page of query results and the total row count."""
    total = query.order_by(None).count()
    items = query.offset((page - 1) * size).limit(size).all()
    return items, total


def like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class Repository:
    model = None

    def get(self, entity_id: int):
        return db.session.get(self.model, entity_id)

    def add(self, entity):
        db.session.add(entity)
        return entity

    def delete(self, entity) -> None:
        db.session.delete(entity)

    def flush(self) -> None:
        db.session.flush()
