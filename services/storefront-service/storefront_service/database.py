from __future__ import annotations

import logging
import os
import sqlite3
from pathlib import Path

logger = logging.getLogger("storefront-service.database")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS fallback_entities (
    entity_type TEXT NOT NULL,
    entity_id INTEGER NOT NULL,
    payload TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (entity_type, entity_id)
);
"""

DEFAULT_CACHE_PATH = "storefront-cache.db"


def cache_path() -> str:
    """SQLite file holding the fallback mirror."""
    return os.environ.get("FALLBACK_CACHE_PATH", DEFAULT_CACHE_PATH)


def get_connection(path: str | None = None) -> sqlite3.Connection:
    conn = sqlite3.connect(path or cache_path())
    conn.row_factory = sqlite3.Row
    return conn


def init_db(path: str | None = None) -> None:
    path = path or cache_path()
    parent = Path(path).parent
    if not parent.exists():
        parent.mkdir(parents=True)
    conn = get_connection(path)
    try:
        apply_schema(conn)
    finally:
        conn.close()
    logger.info("Fallback cache ready at %s", path)


def apply_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA_SQL)
    conn.commit()
