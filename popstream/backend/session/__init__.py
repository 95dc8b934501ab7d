"""Session orchestration: the controller and its state records."""

from popstream.backend.session.controller import POOR_SOURCE_ADVISORY, SessionController
from popstream.backend.session.factory import build_controller
from popstream.backend.session.state import PlaybackSession, SessionState, ShowSelection

__all__ = [
    "POOR_SOURCE_ADVISORY",
    "PlaybackSession",
    "SessionController",
    "SessionState",
    "ShowSelection",
    "build_controller",
]
