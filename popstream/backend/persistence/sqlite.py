"""SQLite connection helpers and saved-item persistence primitives."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, List, Mapping, Optional

from popstream.backend.common.logging import get_logger
from popstream.config.settings import get_database_path

log = get_logger(__name__)


def _resolve_path(path: Optional[Path]) -> Path:
    db_path = Path(path or get_database_path())
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


def connect(path: Optional[Path] = None, *, apply_migrations: bool = True) -> sqlite3.Connection:
    """Create a SQLite connection and ensure the schema exists."""

    db_path = _resolve_path(path)
    connection = sqlite3.connect(str(db_path))
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA journal_mode = WAL")
    if apply_migrations:
        migrate(connection)
    return connection


@contextmanager
def connection(path: Optional[Path] = None) -> Iterator[sqlite3.Connection]:
    conn = connect(path)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def migrate(connection: sqlite3.Connection) -> None:
    """Create required tables if they are missing."""

    connection.executescript(
        """
        CREATE TABLE IF NOT EXISTS saved_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            kind TEXT NOT NULL,
            item_id TEXT NOT NULL,
            payload_json TEXT NOT NULL,
            added_at TEXT NOT NULL,
            UNIQUE(kind, item_id)
        );

        CREATE INDEX IF NOT EXISTS idx_saved_items_kind ON saved_items(kind, id);
        """
    )


def list_saved_items(connection: sqlite3.Connection, kind: str) -> List[Mapping[str, Any]]:
    rows = connection.execute(
        "SELECT payload_json FROM saved_items WHERE kind = ? ORDER BY id ASC",
        (kind,),
    ).fetchall()
    items: List[Mapping[str, Any]] = []
    for row in rows:
        try:
            items.append(json.loads(row["payload_json"]))
        except (TypeError, ValueError):
            log.warning("saved_item_corrupt", kind=kind)
    return items


def insert_saved_item(
    connection: sqlite3.Connection,
    *,
    kind: str,
    item_id: str,
    payload: Mapping[str, Any],
) -> bool:
    """Insert an item; returns ``False`` if it was already saved."""

    cursor = connection.execute(
        """
        INSERT INTO saved_items (kind, item_id, payload_json, added_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(kind, item_id) DO NOTHING
        """,
        (kind, item_id, json.dumps(payload, ensure_ascii=False), _utcnow()),
    )
    return cursor.rowcount > 0


def delete_saved_item(connection: sqlite3.Connection, *, kind: str, item_id: str) -> bool:
    cursor = connection.execute(
        "DELETE FROM saved_items WHERE kind = ? AND item_id = ?",
        (kind, item_id),
    )
    return cursor.rowcount > 0


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()
