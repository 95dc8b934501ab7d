from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from popstream.backend.common.logging import get_logger

from .paths import get_database_path, get_subtitle_dir, get_user_settings_path

log = get_logger(__name__)

_SETTINGS_LOCK = threading.Lock()
_SETTINGS_SINGLETON: Optional["Settings"] = None

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}

DEFAULT_SUBTITLE_LANGUAGES = ("en", "es", "fr", "de", "it", "pt", "nl", "ru", "ar", "zh")


@dataclass
class Settings:
    app_name: str
    env: str
    log_level: str
    season_complete: bool
    manual_quality_selection: bool
    default_subtitle_language: str
    subtitle_languages: List[str]
    casting_poll_interval: float
    html_start_delay: float
    subtitle_server_port: int
    subtitle_dir: str
    database_path: os.PathLike[str]
    user_settings_path: os.PathLike[str]
    extras: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "app_name": self.app_name,
            "env": self.env,
            "log_level": self.log_level,
            "season_complete": self.season_complete,
            "manual_quality_selection": self.manual_quality_selection,
            "default_subtitle_language": self.default_subtitle_language,
            "subtitle_languages": list(self.subtitle_languages),
            "casting_poll_interval": self.casting_poll_interval,
            "html_start_delay": self.html_start_delay,
            "subtitle_server_port": self.subtitle_server_port,
            "subtitle_dir": str(self.subtitle_dir),
            "database_path": str(self.database_path),
            "user_settings_path": str(self.user_settings_path),
        }


def load_user_settings() -> Dict[str, Any]:
    user_path = get_user_settings_path()
    if not user_path.exists():
        return {}
    try:
        with user_path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError):
        log.warning("user_settings_unreadable", path=str(user_path))
        return {}

    return data if isinstance(data, dict) else {}


def write_user_settings(payload: Mapping[str, Any]) -> None:
    user_path = Path(get_user_settings_path())
    user_path.parent.mkdir(parents=True, exist_ok=True)
    with user_path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, ensure_ascii=False, sort_keys=True)


def _env(*names: str) -> Optional[str]:
    for name in names:
        value = os.getenv(name)
        if value is not None and value != "":
            return value
    return None


def parse_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    text = str(value).strip().lower()
    if text in _TRUTHY:
        return True
    if text in _FALSY:
        return False
    return default


def _parse_float(value: Any, default: float, *, minimum: float = 0.0) -> float:
    try:
        return max(minimum, float(value))
    except (TypeError, ValueError):
        return default


def _parse_int(value: Any, default: int) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return default


def _parse_languages(value: Any) -> List[str]:
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",")]
    elif isinstance(value, (list, tuple)):
        items = [str(part).strip() for part in value]
    else:
        items = list(DEFAULT_SUBTITLE_LANGUAGES)
    return [item for item in items if item]


def _build_settings() -> Settings:
    user_cfg = load_user_settings()
    app_name = _env("POPSTREAM_APP_NAME") or user_cfg.get("app_name", "popstream")
    env = _env("POPSTREAM_ENV") or user_cfg.get("env", "development")
    log_level = (_env("POPSTREAM_LOG_LEVEL") or user_cfg.get("log_level", "INFO")).upper()

    season_complete = parse_bool(
        _env("POPSTREAM_SEASON_COMPLETE", "FLAG_SEASON_COMPLETE") or user_cfg.get("season_complete"),
        default=False,
    )
    manual_quality_selection = parse_bool(
        _env("POPSTREAM_MANUAL_QUALITY", "FLAG_MANUAL_TORRENT_SELECTION")
        or user_cfg.get("manual_quality_selection"),
        default=False,
    )
    default_subtitle_language = (
        _env("POPSTREAM_SUBTITLE_LANG", "DEFAULT_TORRENT_LANG")
        or user_cfg.get("default_subtitle_language")
        or "en"
    )
    subtitle_languages = _parse_languages(
        _env("POPSTREAM_SUBTITLE_LANGUAGES") or user_cfg.get("subtitle_languages")
    )
    if default_subtitle_language not in subtitle_languages:
        subtitle_languages.insert(0, default_subtitle_language)

    casting_poll_interval = _parse_float(
        _env("POPSTREAM_CASTING_POLL_INTERVAL") or user_cfg.get("casting_poll_interval"),
        10.0,
        minimum=0.5,
    )
    html_start_delay = _parse_float(
        _env("POPSTREAM_HTML_START_DELAY") or user_cfg.get("html_start_delay"),
        3.0,
    )
    subtitle_server_port = _parse_int(
        _env("POPSTREAM_SUBTITLE_PORT") or user_cfg.get("subtitle_server_port"),
        0,
    )

    return Settings(
        app_name=app_name,
        env=env,
        log_level=log_level,
        season_complete=season_complete,
        manual_quality_selection=manual_quality_selection,
        default_subtitle_language=default_subtitle_language,
        subtitle_languages=subtitle_languages,
        casting_poll_interval=casting_poll_interval,
        html_start_delay=html_start_delay,
        subtitle_server_port=subtitle_server_port,
        subtitle_dir=get_subtitle_dir(),
        database_path=get_database_path(),
        user_settings_path=get_user_settings_path(),
        extras={k: v for k, v in user_cfg.items() if k not in _KNOWN_KEYS},
    )


_KNOWN_KEYS = {
    "app_name",
    "env",
    "log_level",
    "season_complete",
    "manual_quality_selection",
    "default_subtitle_language",
    "subtitle_languages",
    "casting_poll_interval",
    "html_start_delay",
    "subtitle_server_port",
    "updated_at",
}


def get_settings(*, reload: bool = False) -> Settings:
    global _SETTINGS_SINGLETON
    with _SETTINGS_LOCK:
        if _SETTINGS_SINGLETON is None or reload:
            _SETTINGS_SINGLETON = _build_settings()

        return _SETTINGS_SINGLETON


def update_user_setting(key: str, value: Any) -> Settings:
    if key not in _KNOWN_KEYS or key == "updated_at":
        raise KeyError(f"Unknown setting '{key}'")

    payload = load_user_settings()
    payload[key] = value
    payload["updated_at"] = datetime.utcnow().isoformat() + "Z"
    write_user_settings(payload)

    return get_settings(reload=True)


__all__ = [
    "Settings",
    "get_settings",
    "load_user_settings",
    "parse_bool",
    "update_user_setting",
    "write_user_settings",
]
