"""Torrent provider integrations."""

from popstream.backend.torrents.providers.base import (
    RoutingTorrentProvider,
    TorrentProvider,
)
from popstream.backend.torrents.providers.eztv import EztvTorrentProvider
from popstream.backend.torrents.providers.yts import YtsTorrentProvider

__all__ = [
    "EztvTorrentProvider",
    "RoutingTorrentProvider",
    "TorrentProvider",
    "YtsTorrentProvider",
]
