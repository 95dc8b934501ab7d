from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from fakes import FakeTorrentProvider
from popstream.backend.common.errors import InvalidSelection
from popstream.backend.torrents.models import DeliveryMethod, HealthClass, QualityLabel
from popstream.backend.torrents.providers.base import RoutingTorrentProvider, build_magnet
from popstream.backend.torrents.providers.eztv import EztvTorrentProvider, parse_quality
from popstream.backend.torrents.providers.yts import YtsTorrentProvider


def test_build_magnet_quotes_name_and_trackers():
    magnet = build_magnet("ABC123", "The Matrix [1080p]", trackers=("udp://t.example:80",))

    assert magnet == "magnet:?xt=urn:btih:ABC123&dn=The%20Matrix%20%5B1080p%5D&tr=udp%3A//t.example%3A80"


async def test_yts_keeps_best_torrent_per_quality():
    session = MagicMock()
    session.get_json.return_value = {
        "data": {
            "movies": [
                {
                    "title_long": "The Matrix (1999)",
                    "torrents": [
                        {"quality": "1080p", "hash": "A", "seeds": 20, "peers": 50},
                        {"quality": "1080p", "hash": "B", "seeds": 400, "peers": 10},
                        {"quality": "720p", "hash": "C", "seeds": 5, "peers": 1},
                        {"quality": "2160p", "hash": "D", "seeds": 900, "peers": 1},
                        {"quality": "480p", "hash": None, "seeds": 900},
                    ],
                }
            ]
        }
    }

    results = await YtsTorrentProvider(session=session).query("tt0133093", "movies")

    assert set(results) == {QualityLabel.FHD, QualityLabel.HD}
    assert results[QualityLabel.FHD].magnet.startswith("magnet:?xt=urn:btih:B&")
    assert results[QualityLabel.FHD].health is HealthClass.GOOD
    assert results[QualityLabel.HD].health is HealthClass.POOR
    assert results[QualityLabel.HD].method is DeliveryMethod.MOVIES
    assert session.get_json.call_args.kwargs["params"] == {"query_term": "tt0133093", "limit": 1}


async def test_yts_without_movies_returns_nothing():
    session = MagicMock()
    session.get_json.return_value = {"data": {"movie_count": 0}}

    assert await YtsTorrentProvider(session=session).query("tt0000000", DeliveryMethod.MOVIES) == {}


def _eztv_torrent(title, season, episode, seeds, magnet):
    return {"title": title, "season": str(season), "episode": str(episode), "seeds": seeds, "peers": 1, "magnet_url": magnet}


async def test_eztv_filters_episode_and_season_complete():
    session = MagicMock()
    session.get_json.return_value = {
        "torrents_count": 4,
        "torrents": [
            _eztv_torrent("Show S01E01 720p", 1, 1, 40, "magnet:e1-720"),
            _eztv_torrent("Show S01E02 1080p", 1, 2, 500, "magnet:e2"),
            _eztv_torrent("Show S01 1080p WEB", 1, 0, 150, "magnet:s1"),
            _eztv_torrent("Show S01E01 HDTV", 1, 1, 999, "magnet:e1-unknown"),
        ],
    }
    provider = EztvTorrentProvider(session=session)

    episode = await provider.query("tt0944947", "shows", season=1, episode=1)
    complete = await provider.query("tt0944947", DeliveryMethod.SEASON_COMPLETE, season=1)

    assert {label: c.magnet for label, c in episode.items()} == {QualityLabel.HD: "magnet:e1-720"}
    assert episode[QualityLabel.HD].method is DeliveryMethod.SHOWS
    assert {label: c.magnet for label, c in complete.items()} == {QualityLabel.FHD: "magnet:s1"}
    assert complete[QualityLabel.FHD].method is DeliveryMethod.SEASON_COMPLETE
    assert session.get_json.call_args.kwargs["params"]["imdb_id"] == "0944947"


async def test_eztv_pages_until_count_reached():
    session = MagicMock()
    full_page = [_eztv_torrent(f"Show S02E{n:02d} 480p", 2, n, 10, f"magnet:{n}") for n in range(1, 101)]
    session.get_json.side_effect = [
        {"torrents_count": 101, "torrents": full_page},
        {"torrents_count": 101, "torrents": [_eztv_torrent("Show S02E101 480p", 2, 101, 10, "magnet:last")]},
    ]

    results = await EztvTorrentProvider(session=session).query("tt1", "shows", season=2, episode=101)

    assert results[QualityLabel.SD].magnet == "magnet:last"
    assert [call.kwargs["params"]["page"] for call in session.get_json.call_args_list] == [1, 2]


async def test_eztv_requires_season_and_episode():
    provider = EztvTorrentProvider(session=MagicMock())

    with pytest.raises(InvalidSelection):
        await provider.query("tt1", "shows", season=1)
    with pytest.raises(InvalidSelection):
        await provider.query("tt1", "movies", season=1, episode=1)


@pytest.mark.parametrize(
    ("title", "expected"),
    [("Show.S01E01.1080P.WEB", QualityLabel.FHD), ("show 480p", QualityLabel.SD), ("Show 4K", None)],
)
def test_parse_quality(title, expected):
    assert parse_quality(title) is expected


async def test_routing_dispatches_by_method():
    movies = FakeTorrentProvider()
    movies.methods = (DeliveryMethod.MOVIES,)
    shows = FakeTorrentProvider()
    shows.methods = (DeliveryMethod.SHOWS,)
    router = RoutingTorrentProvider([movies, shows])

    await router.query("tt1", "movies")
    await router.query("tt2", DeliveryMethod.SHOWS, season=1, episode=2)

    assert [call[0] for call in movies.calls] == ["tt1"]
    assert [call[0] for call in shows.calls] == ["tt2"]
    with pytest.raises(InvalidSelection):
        await router.query("tt3", "season_complete", season=1)
    with pytest.raises(InvalidSelection):
        await router.query("tt3", "anime")
