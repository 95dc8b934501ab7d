"""Session records owned by :class:`SessionController`."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from popstream.backend.player.backends import BackendKind
from popstream.backend.player.engine import TorrentStream


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING_ITEM = "loading_item"
    FETCHING_SOURCES = "fetching_sources"
    READY = "ready"
    STARTING = "starting"
    SERVING = "serving"
    STOPPING = "stopping"


@dataclass(frozen=True, slots=True)
class ShowSelection:
    season: int = 1
    episode: int = 1


@dataclass(slots=True)
class PlaybackSession:
    backend_kind: BackendKind
    serving_url: Optional[str] = None
    in_progress: bool = True
    progress: float = 0.0


@dataclass(slots=True)
class ActiveStream:
    """Resources behind the current :class:`PlaybackSession`."""

    backend_kind: BackendKind
    stream: TorrentStream
    task: Optional[asyncio.Task] = None
    served: asyncio.Event = field(default_factory=asyncio.Event)
