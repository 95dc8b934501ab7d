from __future__ import annotations

import asyncio

import pytest

from fakes import make_candidate, make_item, settle
from popstream.backend.common.errors import InvalidSelection, ProviderError
from popstream.backend.information_handlers.models import EpisodeSummary, MediaKind, SeasonSummary
from popstream.backend.persistence.history import HistoryKind
from popstream.backend.player.backends import BackendKind
from popstream.backend.player.subtitles.models import SubtitleDescriptor
from popstream.backend.session.controller import POOR_SOURCE_ADVISORY
from popstream.backend.session.state import SessionState, ShowSelection
from popstream.backend.torrents.models import DeliveryMethod, QualityLabel

MOVIE = make_item("tt0000001", MediaKind.MOVIE, "First Movie")
OTHER_MOVIE = make_item("tt0000002", MediaKind.MOVIE, "Second Movie")
SHOW = make_item("tt0000010", MediaKind.SHOW, "A Show")


def _healthy_movie_sources(h) -> None:
    h.torrents.respond(
        "movies",
        {
            "1080p": make_candidate("1080p", seeders=5, health="poor"),
            "720p": make_candidate("720p", seeders=50, health="good"),
            "480p": make_candidate("480p", seeders=2, health="poor"),
        },
    )


async def _play(h, quality=None) -> None:
    assert await h.controller.start_playback(quality)
    h.engine.ready()
    assert await h.controller.wait_until_serving(timeout=1.0)


async def test_select_movie_loads_item_captions_and_sources(build_harness):
    h = build_harness(
        items=[MOVIE],
        descriptors=[
            SubtitleDescriptor(language="es", file_name="movie.es.srt"),
            SubtitleDescriptor(language="en", file_name="movie.en.srt"),
        ],
    )
    _healthy_movie_sources(h)

    await h.controller.select_item(MOVIE.id, "movies")

    c = h.controller
    assert c.item == MOVIE
    assert c.mode is MediaKind.MOVIE
    assert c.state is SessionState.READY
    assert not c.fetching_torrents
    assert c.torrents.ideal.quality is QualityLabel.HD
    assert [(t.language, t.is_default) for t in c.captions] == [("es", False), ("en", True)]
    assert c.captions[1].url == "http://localhost:9999/movie.en.srt"
    assert h.torrents.calls == [(MOVIE.id, DeliveryMethod.MOVIES, None, None)]
    assert h.advisories == []


@pytest.mark.parametrize("mode", ["", "music", "episode"])
async def test_select_item_rejects_unknown_mode_before_any_change(build_harness, mode):
    h = build_harness(items=[MOVIE])

    with pytest.raises(InvalidSelection):
        await h.controller.select_item(MOVIE.id, mode)

    assert h.controller.state is SessionState.IDLE
    assert h.controller.epoch == 0
    assert h.metadata.calls == []


async def test_metadata_failure_returns_to_idle_with_empty_item(build_harness):
    h = build_harness(items=[])

    await h.controller.select_item("tt404", "movie")

    assert h.controller.state is SessionState.IDLE
    assert h.controller.item.is_empty
    assert h.torrents.calls == []


async def test_torrent_provider_failure_yields_placeholders(build_harness):
    h = build_harness(items=[MOVIE])
    h.torrents.error = ProviderError("yts is down")

    await h.controller.select_item(MOVIE.id, "movie")

    assert h.controller.state is SessionState.READY
    assert h.controller.torrents.ideal.is_placeholder
    assert all(c.is_placeholder for c in h.controller.torrents.by_quality.values())
    assert h.advisories == []


async def test_poor_ideal_fires_one_advisory_per_fetch(build_harness):
    h = build_harness(items=[MOVIE])
    h.torrents.respond("movies", {"480p": make_candidate("480p", seeders=3, health="poor")})

    await h.controller.select_item(MOVIE.id, "movie")
    await settle()

    assert h.advisories == [POOR_SOURCE_ADVISORY]

    await h.controller.select_item(MOVIE.id, "movie")

    assert h.advisories == [POOR_SOURCE_ADVISORY, POOR_SOURCE_ADVISORY]


async def test_start_playback_without_magnet_or_method_is_noop(build_harness):
    h = build_harness(items=[MOVIE])
    h.torrents.respond("movies", {"720p": make_candidate("720p", seeders=50, health="good", method=None)})
    await h.controller.select_item(MOVIE.id, "movie")

    assert await h.controller.start_playback() is False
    assert await h.controller.start_playback("1080p") is False

    assert h.controller.playback is None
    assert h.controller.state is SessionState.READY
    assert h.engine.handles == []
    assert h.backends.events == []


async def test_start_playback_rejects_unknown_quality(build_harness):
    h = build_harness(items=[MOVIE])
    _healthy_movie_sources(h)
    await h.controller.select_item(MOVIE.id, "movie")

    with pytest.raises(InvalidSelection):
        await h.controller.start_playback("4k")


async def test_stop_playback_without_session_is_noop(build_harness):
    h = build_harness(items=[MOVIE])

    assert await h.controller.stop_playback() is False

    assert h.backends.events == []
    assert h.engine.destroyed == []
    assert h.controller.state is SessionState.IDLE


async def test_playback_serves_dispatches_and_tracks_progress(build_harness):
    h = build_harness(items=[MOVIE], descriptors=[SubtitleDescriptor(language="en", file_name="m.srt")])
    _healthy_movie_sources(h)
    await h.controller.select_item(MOVIE.id, "movie")

    await _play(h)

    c = h.controller
    assert c.state is SessionState.SERVING
    assert c.playback.serving_url == "http://localhost:8888/movie.mp4"
    assert c.playback_visible
    assert h.engine.handles[0].magnet == c.torrents.ideal.magnet
    assert h.engine.handles[0].metadata["method"] == "movies"
    [(action, kind, (url, item_id, captions))] = h.backends.of("start")
    assert kind is BackendKind.DEFAULT
    assert (url, item_id) == ("http://localhost:8888/movie.mp4", MOVIE.id)
    assert [t.language for t in captions] == ["en"]

    h.engine.progress(0.25)
    await settle()

    assert c.playback.progress == pytest.approx(0.25)


async def test_recently_watched_has_no_duplicates(build_harness):
    h = build_harness(items=[MOVIE])
    _healthy_movie_sources(h)
    await h.controller.select_item(MOVIE.id, "movie")

    await _play(h)
    await _play(h, "1080p")
    await h.controller.stop_playback()
    await _play(h)

    watched = h.history.lists[HistoryKind.RECENTLY_WATCHED]
    assert [item.id for item in watched] == [MOVIE.id]
    assert h.history.set_calls == [(HistoryKind.RECENTLY_WATCHED, MOVIE.id)]


async def test_rapid_reselection_keeps_latest_item(build_harness):
    h = build_harness(items=[MOVIE, OTHER_MOVIE])
    _healthy_movie_sources(h)
    h.metadata.gates[MOVIE.id] = asyncio.Event()
    observed = []
    h.controller.subscribe(lambda c: observed.append(c.item.id))

    first = asyncio.create_task(h.controller.select_item(MOVIE.id, "movie"))
    await settle()
    mark = len(observed)
    await h.controller.select_item(OTHER_MOVIE.id, "movie")
    h.metadata.gates[MOVIE.id].set()
    await first

    assert h.controller.item.id == OTHER_MOVIE.id
    assert MOVIE.id not in observed[mark:]
    assert h.controller.stale_discards >= 1
    assert h.controller.state is SessionState.READY


async def test_latency_race_between_two_selections(build_harness):
    h = build_harness(items=[MOVIE, OTHER_MOVIE])
    delays = {MOVIE.id: 0.5, OTHER_MOVIE.id: 0.01}
    original = h.metadata.get_item

    async def slow_get_item(item_id, kind):
        await asyncio.sleep(delays[item_id])
        return await original(item_id, kind)

    h.metadata.get_item = slow_get_item
    observed = []
    h.controller.subscribe(lambda c: observed.append(c.item.id))

    first = asyncio.create_task(h.controller.select_item(MOVIE.id, "movie"))
    await asyncio.sleep(0.05)
    mark = len(observed)
    second = asyncio.create_task(h.controller.select_item(OTHER_MOVIE.id, "movie"))
    await asyncio.gather(first, second)

    assert h.controller.item.id == OTHER_MOVIE.id
    assert MOVIE.id not in observed[mark:]


async def test_new_playback_tears_down_previous_session_first(build_harness):
    h = build_harness(items=[MOVIE])
    _healthy_movie_sources(h)
    await h.controller.select_item(MOVIE.id, "movie")
    await _play(h)

    assert await h.controller.start_playback("1080p")

    assert h.engine.events == ["start:1", "destroy:1", "start:2"]
    assert len(h.backends.of("destroy")) == 1
    assert len(h.backends.of("pause")) == 1

    h.engine.ready(index=1)
    assert await h.controller.wait_until_serving(timeout=1.0)
    await h.controller.shutdown()

    assert h.engine.destroyed == [1, 2]
    assert len(h.backends.of("destroy")) == 2


async def test_callbacks_after_stop_have_no_effect(build_harness):
    h = build_harness(items=[MOVIE])
    _healthy_movie_sources(h)
    await h.controller.select_item(MOVIE.id, "movie")
    await _play(h)

    assert await h.controller.stop_playback()
    h.engine.progress(0.9, index=0)
    h.engine.ready("http://late", index=0)
    await settle()

    assert h.controller.playback is None
    assert h.controller.state is SessionState.READY
    assert len(h.backends.of("start")) == 1
    assert h.engine.destroyed == [1]


async def test_stop_pauses_only_html_video_backends(build_harness):
    h = build_harness(items=[MOVIE])
    _healthy_movie_sources(h)
    await h.controller.select_item(MOVIE.id, "movie")
    h.controller.select_player("vlc")
    await _play(h)

    await h.controller.stop_playback()

    assert h.backends.of("pause") == []
    assert [kind for _, kind, _ in h.backends.of("destroy")] == [BackendKind.VLC]


async def test_engine_start_failure_returns_to_ready(build_harness):
    h = build_harness(items=[MOVIE])
    _healthy_movie_sources(h)
    await h.controller.select_item(MOVIE.id, "movie")
    h.engine.fail_with = RuntimeError("no peers")

    assert await h.controller.start_playback() is False

    assert h.controller.state is SessionState.READY
    assert h.controller.playback is None
    assert h.backends.of("start") == []


async def test_select_item_stops_running_playback(build_harness):
    h = build_harness(items=[MOVIE, OTHER_MOVIE])
    _healthy_movie_sources(h)
    await h.controller.select_item(MOVIE.id, "movie")
    await _play(h)

    await h.controller.select_item(OTHER_MOVIE.id, "movie")

    assert h.engine.destroyed == [1]
    assert h.controller.playback is None
    assert h.controller.item.id == OTHER_MOVIE.id


async def test_show_selection_loads_seasons_episodes_and_episode_sources(build_harness):
    h = build_harness(items=[SHOW])
    h.metadata.seasons[SHOW.tmdb_id] = [SeasonSummary(season=1), SeasonSummary(season=2)]
    h.metadata.episodes[(SHOW.tmdb_id, 1)] = [EpisodeSummary(season=1, episode=1)]
    h.metadata.episodes[(SHOW.tmdb_id, 2)] = [
        EpisodeSummary(season=2, episode=1),
        EpisodeSummary(season=2, episode=2),
    ]
    h.torrents.respond(
        "shows",
        {"720p": make_candidate("720p", seeders=40, health="good", method="shows")},
        season=2,
        episode=1,
    )

    await h.controller.select_item(SHOW.id, "shows")

    assert [s.season for s in h.controller.seasons] == [1, 2]
    assert len(h.controller.episodes) == 1
    assert h.torrents.calls[-1] == (SHOW.id, DeliveryMethod.SHOWS, 1, 1)

    await h.controller.select_show_scope("episodes", 2)

    assert h.controller.selection == ShowSelection(season=2, episode=1)
    assert [e.episode for e in h.controller.episodes] == [1, 2]
    assert h.torrents.calls[-1] == (SHOW.id, DeliveryMethod.SHOWS, 2, 1)
    assert h.controller.torrents.ideal.quality is QualityLabel.HD
    assert h.controller.state is SessionState.READY

    await h.controller.select_show_scope("episode", 2, 2)

    assert h.controller.selection == ShowSelection(season=2, episode=2)
    assert h.controller.torrents.ideal.is_placeholder


async def test_season_complete_sources_are_merged(build_harness):
    h = build_harness(items=[SHOW], season_complete=True)
    h.torrents.respond(
        "shows",
        {"720p": make_candidate("720p", seeders=10, health="decent", method="shows")},
        season=1,
        episode=1,
    )
    season_pack = make_candidate("720p", seeders=100, health="good", method="season_complete")
    h.torrents.respond("season_complete", {"720p": season_pack}, season=1)

    await h.controller.select_item(SHOW.id, "show")

    assert h.controller.torrents[QualityLabel.HD] == season_pack
    assert h.controller.torrents.ideal == season_pack
    assert (SHOW.id, DeliveryMethod.SEASON_COMPLETE, 1, None) in h.torrents.calls
    assert h.advisories == []


async def test_stale_episode_sources_are_discarded(build_harness):
    h = build_harness(items=[SHOW])
    await h.controller.select_item(SHOW.id, "show")
    gate = asyncio.Event()
    h.torrents.gates[(DeliveryMethod.SHOWS, 1, 2)] = gate
    h.torrents.respond("shows", {"1080p": make_candidate("1080p", method="shows")}, season=1, episode=2)
    h.torrents.respond("shows", {"480p": make_candidate("480p", method="shows")}, season=1, episode=3)

    slow = asyncio.create_task(h.controller.select_show_scope("episode", 1, 2))
    await settle()
    await h.controller.select_show_scope("episode", 1, 3)
    gate.set()
    await slow

    assert h.controller.selection == ShowSelection(season=1, episode=3)
    assert h.controller.torrents.ideal.quality is QualityLabel.SD
    assert h.controller.stale_discards == 1


async def test_show_scope_validation(build_harness):
    h = build_harness(items=[MOVIE, SHOW])

    with pytest.raises(InvalidSelection):
        await h.controller.select_show_scope("episodes", 1)

    await h.controller.select_item(MOVIE.id, "movie")
    with pytest.raises(InvalidSelection):
        await h.controller.select_show_scope("episode", 1, 1)

    await h.controller.select_item(SHOW.id, "show")
    with pytest.raises(InvalidSelection):
        await h.controller.select_show_scope("season", 1)
    with pytest.raises(InvalidSelection):
        await h.controller.select_show_scope("episodes", None)
    with pytest.raises(InvalidSelection):
        await h.controller.select_show_scope("episode", 1)


async def test_select_player(build_harness):
    h = build_harness()
    c = h.controller

    with pytest.raises(InvalidSelection):
        c.select_player("betamax")

    assert c.select_player("chromecast", "cc-1") is BackendKind.CHROMECAST
    assert h.discovery.selected == "cc-1"
    assert not c.playback_visible

    c.select_player("default")
    assert c.playback_visible
    c.select_player("youtube")
    assert not c.playback_visible
    c.select_player("plyr")
    assert not c.playback_visible
    assert c.backend_kind is BackendKind.PLYR


async def test_close_video_stops_and_resets_backend(build_harness):
    h = build_harness(items=[MOVIE])
    _healthy_movie_sources(h)
    await h.controller.select_item(MOVIE.id, "movie")
    h.controller.select_player("youtube")
    await _play(h)

    assert await h.controller.close_video()

    assert not h.controller.playback_visible
    assert h.controller.backend_kind is BackendKind.DEFAULT
    assert h.controller.playback is None
    assert h.engine.destroyed == [1]
    assert await h.controller.close_video() is False


async def test_lifecycle_loads_lists_and_shuts_down_once(build_harness):
    h = build_harness()
    h.history.lists[HistoryKind.FAVORITES].append(MOVIE)
    h.history.lists[HistoryKind.WATCH_LIST].append(SHOW)

    async with h.controller as c:
        await settle()
        assert [i.id for i in c.favorites] == [MOVIE.id]
        assert [i.id for i in c.watch_list] == [SHOW.id]
        assert h.server.started == 1
        assert h.monitor.running
        assert [d.id for d in c.casting_devices] == ["cc-1"]
        await c.start()
        assert h.server.started == 1

    await h.controller.shutdown()

    assert h.server.closed == 1
    assert h.monitor.stopped
    assert not h.monitor.running


async def test_item_change_polls_cast_devices_once_per_selection(build_harness):
    h = build_harness(items=[MOVIE, OTHER_MOVIE])
    assert h.discovery.calls == 0

    await h.controller.select_item(MOVIE.id, "movie")
    await settle()
    assert h.discovery.calls == 1
    assert [d.id for d in h.controller.casting_devices] == ["cc-1"]

    await h.controller.select_item(OTHER_MOVIE.id, "movie")
    await settle()
    assert h.discovery.calls == 2
    assert not h.monitor.running


async def test_stopping_playback_while_sources_load_keeps_fetching_state(build_harness):
    h = build_harness(items=[MOVIE])
    _healthy_movie_sources(h)
    gate = h.torrents.gates[(DeliveryMethod.MOVIES, None, None)] = asyncio.Event()
    selecting = asyncio.create_task(h.controller.select_item(MOVIE.id, "movie"))
    await settle()
    assert h.controller.state is SessionState.FETCHING_SOURCES

    h.controller.select_player("default")
    assert h.controller.playback_visible
    assert await h.controller.stop_playback()

    assert h.controller.state is SessionState.FETCHING_SOURCES
    assert h.controller.fetching_torrents

    gate.set()
    await selecting
    assert h.controller.state is SessionState.READY
    assert h.controller.torrents.ideal.quality is QualityLabel.HD
