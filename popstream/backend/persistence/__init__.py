"""SQLite-backed persistence helpers for popstream."""

from .history import HistoryKind, SqliteWatchHistoryStore, WatchHistoryStore
from .sqlite import (
    connect,
    connection,
    delete_saved_item,
    insert_saved_item,
    list_saved_items,
    migrate,
)

__all__ = [
    "HistoryKind",
    "SqliteWatchHistoryStore",
    "WatchHistoryStore",
    "connect",
    "connection",
    "delete_saved_item",
    "insert_saved_item",
    "list_saved_items",
    "migrate",
]
