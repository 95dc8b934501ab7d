from __future__ import annotations

import pytest

from fakes import make_item
from popstream.backend.common.errors import InvalidSelection
from popstream.backend.information_handlers.models import Item, MediaKind
from popstream.backend.persistence.history import HistoryKind, SqliteWatchHistoryStore, WatchHistoryStore
from popstream.backend.persistence.sqlite import connection, insert_saved_item, list_saved_items


@pytest.fixture
def store(tmp_path):
    return SqliteWatchHistoryStore(tmp_path / "history.db")


async def test_lists_are_kept_apart_and_ordered(store):
    first = make_item("tt0133093", title="The Matrix")
    second = make_item("tt0944947", kind=MediaKind.SHOW, title="Game of Thrones")

    await store.set(HistoryKind.FAVORITES, first)
    await store.set("favorites", second)
    await store.set("watch-list", second)

    favorites = await store.get("favorites")
    assert [item.id for item in favorites] == ["tt0133093", "tt0944947"]
    assert favorites[1].kind is MediaKind.SHOW
    assert favorites[0].external_ids["imdb"] == "tt0133093"
    assert [item.id for item in await store.get(HistoryKind.WATCH_LIST)] == ["tt0944947"]
    assert await store.get(HistoryKind.RECENTLY_WATCHED) == []


async def test_saving_twice_keeps_one_entry(store):
    item = make_item("tt0133093")

    await store.set(HistoryKind.RECENTLY_WATCHED, item)
    await store.set(HistoryKind.RECENTLY_WATCHED, item)

    assert len(await store.get(HistoryKind.RECENTLY_WATCHED)) == 1


async def test_remove(store):
    await store.set(HistoryKind.FAVORITES, make_item("tt0133093"))

    assert await store.remove(HistoryKind.FAVORITES, "tt0133093") is True
    assert await store.remove(HistoryKind.FAVORITES, "tt0133093") is False
    assert await store.get(HistoryKind.FAVORITES) == []


async def test_rejects_empty_item_and_unknown_list(store):
    with pytest.raises(InvalidSelection):
        await store.set(HistoryKind.FAVORITES, Item.empty())
    with pytest.raises(InvalidSelection):
        await store.get("bookmarks")


async def test_invalid_rows_are_skipped(tmp_path, store):
    with connection(tmp_path / "history.db") as conn:
        insert_saved_item(conn, kind="favorites", item_id="bad", payload={"id": ["not", "a", "string"]})
    await store.set(HistoryKind.FAVORITES, make_item("tt0133093"))

    assert [item.id for item in await store.get(HistoryKind.FAVORITES)] == ["tt0133093"]


def test_insert_reports_duplicates(tmp_path):
    with connection(tmp_path / "raw.db") as conn:
        assert insert_saved_item(conn, kind="favorites", item_id="a", payload={"id": "a"})
        assert not insert_saved_item(conn, kind="favorites", item_id="a", payload={"id": "a"})
        assert list_saved_items(conn, "favorites") == [{"id": "a"}]


def test_store_without_remove_cannot_be_built():
    class ReadOnlyStore(WatchHistoryStore):
        async def get(self, kind):
            return []

        async def set(self, kind, item):
            return None

    with pytest.raises(TypeError):
        ReadOnlyStore()
