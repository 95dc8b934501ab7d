"""``popstream`` command line: inspect settings, rank sources and query providers."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, List, Optional

from pydantic import ValidationError

from popstream.backend.casting.monitor import CastingDeviceMonitor
from popstream.backend.common.errors import InvalidSelection, PopstreamError
from popstream.backend.common.logging import init_logging
from popstream.backend.persistence.history import HistoryKind, SqliteWatchHistoryStore
from popstream.backend.player.subtitles.providers.opensubtitles import OpenSubtitlesProvider
from popstream.backend.player.subtitles.server import LocalSubtitleServer
from popstream.backend.player.subtitles.service import SubtitleTrackResolver
from popstream.backend.session.factory import build_discovery
from popstream.backend.torrents.models import TorrentCandidate, TorrentSet
from popstream.backend.torrents.providers.base import best_per_quality
from popstream.backend.torrents.selector import merge_and_rank
from popstream.config import settings

from ._utils import (
    build_subparser,
    exit_with_error,
    load_json_file,
    print_json,
    require_subcommand,
    to_serializable,
)


def _handle_settings_show(args: argparse.Namespace) -> None:
    print_json(to_serializable(settings.get_settings(reload=args.reload)))


def _handle_settings_set(args: argparse.Namespace) -> None:
    try:
        value: Any = json.loads(args.value)
    except json.JSONDecodeError:
        value = args.value
    try:
        updated = settings.update_user_setting(args.key, value)
    except KeyError as exc:
        exit_with_error(str(exc.args[0]) if exc.args else str(exc))
        return
    print_json(to_serializable(updated))


def _handle_providers_list(_: argparse.Namespace) -> None:
    print_json(to_serializable(sorted(settings.list_provider_configs())))


def _parse_candidates(payload: Any) -> List[TorrentCandidate]:
    if isinstance(payload, dict):
        payload = list(payload.values())
    if not isinstance(payload, list):
        exit_with_error("Expected a JSON list of torrent candidates")
    try:
        return [TorrentCandidate.model_validate(entry) for entry in payload]
    except ValidationError as exc:
        exit_with_error(f"Invalid torrent candidate: {exc}")
    return []


def _handle_rank(args: argparse.Namespace) -> None:
    candidates = _parse_candidates(load_json_file(args.path))
    torrent_set = TorrentSet.from_results(best_per_quality(candidates), merge_and_rank(candidates))
    print_json(to_serializable(torrent_set))


def _handle_subtitles(args: argparse.Namespace) -> None:
    current = settings.get_settings()
    languages = args.language or current.subtitle_languages
    preferred = args.language[0] if args.language else current.default_subtitle_language
    resolver = SubtitleTrackResolver(
        OpenSubtitlesProvider.from_settings(),
        LocalSubtitleServer(current.subtitle_dir, port=current.subtitle_server_port),
        preferred_language=preferred,
        languages=languages,
    )
    resolver.server.start()
    try:
        tracks = asyncio.run(resolver.resolve(args.imdb_id))
    finally:
        resolver.server.close()
    print_json(to_serializable(tracks))


def _handle_history_list(args: argparse.Namespace) -> None:
    store = SqliteWatchHistoryStore(settings.get_settings().database_path)
    try:
        items = asyncio.run(store.get(args.kind))
    except InvalidSelection as exc:
        exit_with_error(str(exc))
        return
    print_json(to_serializable(items))


def _handle_history_remove(args: argparse.Namespace) -> None:
    store = SqliteWatchHistoryStore(settings.get_settings().database_path)
    try:
        removed = asyncio.run(store.remove(args.kind, args.item_id))
    except InvalidSelection as exc:
        exit_with_error(str(exc))
        return
    print_json({"removed": removed, "kind": args.kind, "item_id": args.item_id})


def _handle_devices(_: argparse.Namespace) -> None:
    discovery = build_discovery(settings.get_settings())
    if discovery is None:
        exit_with_error("Casting is unavailable: pychromecast could not be loaded")
        return
    devices = asyncio.run(CastingDeviceMonitor(discovery).refresh())
    print_json(to_serializable(devices))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="popstream",
        description="Inspect popstream settings, rank torrent sources and query providers.",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level for diagnostics written to stderr.")
    subparsers = parser.add_subparsers(dest="command")
    require_subcommand(subparsers)

    # Settings -----------------------------------------------------------
    settings_parser = build_subparser(subparsers, "settings", help="Inspect and update runtime settings.")
    settings_sub = settings_parser.add_subparsers(dest="settings_command")
    require_subcommand(settings_sub)

    show_settings = build_subparser(settings_sub, "show", help="Display the effective runtime settings.")
    show_settings.add_argument("--reload", action="store_true", help="Reload configuration files before displaying the settings.")
    show_settings.set_defaults(func=_handle_settings_show)

    set_setting = build_subparser(settings_sub, "set", help="Persist one user-level setting.")
    set_setting.add_argument("key", help="Setting name (e.g. season_complete).")
    set_setting.add_argument("value", help="New value; JSON literals such as true or 5 are decoded.")
    set_setting.set_defaults(func=_handle_settings_set)

    # Providers ----------------------------------------------------------
    providers_parser = build_subparser(subparsers, "providers", help="Inspect configured provider services.")
    providers_sub = providers_parser.add_subparsers(dest="providers_command")
    require_subcommand(providers_sub)

    providers_list = build_subparser(providers_sub, "list", help="List configured provider service keys.")
    providers_list.set_defaults(func=_handle_providers_list)

    # Sources ------------------------------------------------------------
    rank = build_subparser(subparsers, "rank", help="Rank torrent candidates read from a JSON file.")
    rank.add_argument("path", help="JSON list of candidates ({quality, magnet, health, seeders, method}).")
    rank.set_defaults(func=_handle_rank)

    subtitles = build_subparser(subparsers, "subtitles", help="Resolve caption tracks for an IMDb id.")
    subtitles.add_argument("imdb_id", help="IMDb id such as tt0111161.")
    subtitles.add_argument("--language", action="append", help="Language code; repeat for several. The first is preferred.")
    subtitles.set_defaults(func=_handle_subtitles)

    # History ------------------------------------------------------------
    history_parser = build_subparser(subparsers, "history", help="Inspect saved item lists.")
    history_sub = history_parser.add_subparsers(dest="history_command")
    require_subcommand(history_sub)

    kinds = [kind.value for kind in HistoryKind]
    history_list = build_subparser(history_sub, "list", help="List the items saved under one list.")
    history_list.add_argument("kind", choices=kinds, help="Saved list to display.")
    history_list.set_defaults(func=_handle_history_list)

    history_remove = build_subparser(history_sub, "remove", help="Remove one item from a saved list.")
    history_remove.add_argument("kind", choices=kinds, help="Saved list to edit.")
    history_remove.add_argument("item_id", help="Identifier of the item to remove.")
    history_remove.set_defaults(func=_handle_history_remove)

    # Casting ------------------------------------------------------------
    devices = build_subparser(subparsers, "devices", help="Run one cast device discovery pass.")
    devices.set_defaults(func=_handle_devices)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    init_logging(args.log_level, stream=sys.stderr)
    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return
    try:
        handler(args)
    except PopstreamError as exc:
        exit_with_error(str(exc))


if __name__ == "__main__":  # pragma: no cover
    main()
