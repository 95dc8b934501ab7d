from __future__ import annotations

"""Serves downloaded subtitle files to playback backends over localhost."""

import threading
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from popstream.backend.common.logging import get_logger
from popstream.backend.player.exceptions import SubtitleError

log = get_logger(__name__)


class _SubtitleRequestHandler(SimpleHTTPRequestHandler):
    extensions_map = {
        **SimpleHTTPRequestHandler.extensions_map,
        ".vtt": "text/vtt",
        ".srt": "application/x-subrip",
    }

    def end_headers(self) -> None:
        # Cast receivers and embedded players fetch captions cross-origin.
        self.send_header("Access-Control-Allow-Origin", "*")
        super().end_headers()

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        log.debug("subtitle_server_request", request=format % args)


class LocalSubtitleServer:
    """Static file server rooted at the subtitle directory."""

    def __init__(self, directory: Path | str, *, host: str = "127.0.0.1", port: int = 0) -> None:
        self.directory = Path(directory)
        self._host = host
        self._requested_port = port
        self._httpd: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def port(self) -> Optional[int]:
        httpd = self._httpd
        return httpd.server_address[1] if httpd else None

    @property
    def running(self) -> bool:
        return self._httpd is not None

    def start(self) -> None:
        with self._lock:
            if self._httpd is not None:
                return
            self.directory.mkdir(parents=True, exist_ok=True)
            handler = partial(_SubtitleRequestHandler, directory=str(self.directory))
            self._httpd = ThreadingHTTPServer((self._host, self._requested_port), handler)
            self._thread = threading.Thread(
                target=self._httpd.serve_forever,
                name="popstream-subtitles",
                daemon=True,
            )
            self._thread.start()
        log.info("subtitle_server_started", host=self._host, port=self.port, directory=str(self.directory))

    def close(self) -> None:
        with self._lock:
            httpd, self._httpd = self._httpd, None
            thread, self._thread = self._thread, None
        if httpd is None:
            return
        httpd.shutdown()
        httpd.server_close()
        if thread is not None:
            thread.join(timeout=5)
        log.info("subtitle_server_closed")

    def url_for(self, file_name: str) -> str:
        port = self.port
        if port is None:
            raise SubtitleError("Subtitle server is not running")
        return f"http://localhost:{port}/{quote(file_name)}"
