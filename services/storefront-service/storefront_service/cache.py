from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Type

from .database import get_connection
from .schemas import FoodItem, Order, Shop, User, WireModel

ENTITY_TYPES: Dict[str, Type[WireModel]] = {
    "orders": Order,
    "foodItems": FoodItem,
    "users": User,
    "shops": Shop,
}


class FallbackCache:
    """Durable local mirror of remote entities, keyed by (type, id).

    Values are stored as JSON text. Nothing is ever evicted; entries leave
    only through ``remove``, ``replace_all`` or ``clear``.
    """

    def __init__(self, connection_factory=get_connection):
        self._connection_factory = connection_factory

    @contextmanager
    def _connection(self):
        conn = self._connection_factory()
        try:
            yield conn
        finally:
            conn.close()

    def get(self, entity_type: str, entity_id: int) -> Optional[WireModel]:
        model = _model_for(entity_type)
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT payload FROM fallback_entities
                WHERE entity_type = ? AND entity_id = ?;
                """,
                (entity_type, entity_id),
            ).fetchone()
        if row is None:
            return None
        return model.model_validate_json(row["payload"])

    def list(self, entity_type: str) -> list:
        model = _model_for(entity_type)
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT payload FROM fallback_entities
                WHERE entity_type = ?
                ORDER BY entity_id;
                """,
                (entity_type,),
            ).fetchall()
        return [model.model_validate_json(row["payload"]) for row in rows]

    def put(self, entity_type: str, entity: WireModel) -> None:
        _model_for(entity_type)
        with self._connection() as conn:
            _upsert(conn, entity_type, entity)
            conn.commit()

    def remove(self, entity_type: str, entity_id: int) -> None:
        _model_for(entity_type)
        with self._connection() as conn:
            conn.execute(
                """
                DELETE FROM fallback_entities
                WHERE entity_type = ? AND entity_id = ?;
                """,
                (entity_type, entity_id),
            )
            conn.commit()

    def next_id(self, entity_type: str) -> int:
        _model_for(entity_type)
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT MAX(entity_id) AS max_id FROM fallback_entities
                WHERE entity_type = ?;
                """,
                (entity_type,),
            ).fetchone()
        if row is None or row["max_id"] is None:
            return 1
        return int(row["max_id"]) + 1

    def replace_all(self, entity_type: str, entities: Iterable[WireModel]) -> None:
        """Swap the cached set of one entity type for a fresh remote snapshot."""
        _model_for(entity_type)
        with self._connection() as conn:
            conn.execute(
                "DELETE FROM fallback_entities WHERE entity_type = ?;",
                (entity_type,),
            )
            for entity in entities:
                _upsert(conn, entity_type, entity)
            conn.commit()

    def clear(self, entity_type: str | None = None) -> None:
        with self._connection() as conn:
            if entity_type is None:
                conn.execute("DELETE FROM fallback_entities;")
            else:
                _model_for(entity_type)
                conn.execute(
                    "DELETE FROM fallback_entities WHERE entity_type = ?;",
                    (entity_type,),
                )
            conn.commit()


def _model_for(entity_type: str) -> Type[WireModel]:
    try:
        return ENTITY_TYPES[entity_type]
    except KeyError:
        raise ValueError(f"Unknown entity type: {entity_type}") from None


def _upsert(conn, entity_type: str, entity: WireModel) -> None:
    now = datetime.now(timezone.utc).isoformat()
    conn.execute(
        """
        INSERT INTO fallback_entities (entity_type, entity_id, payload, updated_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT (entity_type, entity_id)
        DO UPDATE SET payload = excluded.payload, updated_at = excluded.updated_at;
        """,
        (entity_type, entity.id, entity.model_dump_json(by_alias=True), now),
    )
