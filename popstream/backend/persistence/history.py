"""Favorites, watch list and recently-watched storage."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from popstream.backend.common.errors import InvalidSelection
from popstream.backend.common.logging import get_logger
from popstream.backend.information_handlers.models import Item
from popstream.backend.persistence.sqlite import (
    connection,
    delete_saved_item,
    insert_saved_item,
    list_saved_items,
)

log = get_logger(__name__)


class HistoryKind(str, Enum):
    RECENTLY_WATCHED = "recently_watched"
    FAVORITES = "favorites"
    WATCH_LIST = "watch_list"

    @classmethod
    def parse(cls, value: "HistoryKind | str") -> "HistoryKind":
        if isinstance(value, HistoryKind):
            return value
        try:
            return cls((value or "").strip().lower().replace("-", "_"))
        except ValueError as exc:
            raise InvalidSelection(f"Unknown history list '{value}'") from exc


class WatchHistoryStore(ABC):
    @abstractmethod
    async def get(self, kind: HistoryKind | str) -> List[Item]:
        raise NotImplementedError

    @abstractmethod
    async def set(self, kind: HistoryKind | str, item: Item) -> None:
        raise NotImplementedError

    @abstractmethod
    async def remove(self, kind: HistoryKind | str, item_id: str) -> bool:
        raise NotImplementedError


class SqliteWatchHistoryStore(WatchHistoryStore):
    """Stores each list as rows of JSON-serialized items."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path

    async def get(self, kind: HistoryKind | str) -> List[Item]:
        parsed = HistoryKind.parse(kind)
        return await asyncio.to_thread(self._get, parsed)

    def _get(self, kind: HistoryKind) -> List[Item]:
        with connection(self._path) as conn:
            payloads = list_saved_items(conn, kind.value)
        items: List[Item] = []
        for payload in payloads:
            try:
                items.append(Item.model_validate(payload))
            except ValidationError:
                log.warning("saved_item_invalid", kind=kind.value)
        return items

    async def set(self, kind: HistoryKind | str, item: Item) -> None:
        parsed = HistoryKind.parse(kind)
        if item.is_empty:
            raise InvalidSelection("Cannot save an item without an id")
        await asyncio.to_thread(self._set, parsed, item)

    def _set(self, kind: HistoryKind, item: Item) -> None:
        with connection(self._path) as conn:
            inserted = insert_saved_item(conn, kind=kind.value, item_id=item.id, payload=item.as_dict())
        log.debug("saved_item_stored", kind=kind.value, item_id=item.id, inserted=inserted)

    async def remove(self, kind: HistoryKind | str, item_id: str) -> bool:
        parsed = HistoryKind.parse(kind)
        return await asyncio.to_thread(self._remove, parsed, item_id)

    def _remove(self, kind: HistoryKind, item_id: str) -> bool:
        with connection(self._path) as conn:
            return delete_saved_item(conn, kind=kind.value, item_id=item_id)
