"""Filesystem locations used by popstream.

Defaults live next to the package (``var/``) and in the temp directory.
A ``config_paths.json`` file, or the file named by ``POPSTREAM_CONFIG_PATHS``,
overrides any entry. Values may reference ``${VAR}`` environment variables;
relative values are resolved against the package root and its parents.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, Mapping

from dotenv import load_dotenv

_CONFIG_DIR = Path(__file__).resolve().parent.parent
_PACKAGE_ROOT = _CONFIG_DIR.parent

# .env next to the package root; an existing environment always wins
load_dotenv(_PACKAGE_ROOT / ".env", override=False)

_ENV_TOKEN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def _defaults() -> Dict[str, Path]:
    var_dir = _PACKAGE_ROOT / "var"
    return {
        "provider_settings": _CONFIG_DIR / "providersettings.json",
        "database": var_dir / "popstream.db",
        "user_settings": var_dir / "user_settings.json",
        "subtitle_dir": Path(tempfile.gettempdir()) / "popstream" / "subtitles",
        "vlc_runtime_root": _PACKAGE_ROOT / "Resources" / "vlc",
    }


def expand_env_in_str(value: str) -> str:
    """Replace ``${VAR}`` tokens; unset variables expand to an empty string."""

    return _ENV_TOKEN.sub(lambda match: os.environ.get(match.group(1), ""), value)


def expand_env(obj: Any) -> Any:
    if isinstance(obj, str):
        return expand_env_in_str(obj)
    if isinstance(obj, list):
        return [expand_env(item) for item in obj]
    if isinstance(obj, dict):
        return {key: expand_env(value) for key, value in obj.items()}
    return obj


def read_json(path: Path) -> Dict[str, Any]:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _resolve(value: str | Path) -> str:
    candidate = Path(expand_env_in_str(str(value))).expanduser()
    if candidate.is_absolute():
        return str(candidate.resolve())
    for base in (_PACKAGE_ROOT, *_PACKAGE_ROOT.parents):
        resolved = (base / candidate).resolve()
        if resolved.parent.exists():
            return str(resolved)
    return str((_PACKAGE_ROOT / candidate).resolve())


def _overrides_file() -> Path:
    return Path(os.environ.get("POPSTREAM_CONFIG_PATHS") or _CONFIG_DIR / "config_paths.json")


def load_config_paths() -> Dict[str, str]:
    table: Mapping[str, Any] = _defaults()
    overrides_path = _overrides_file()
    if overrides_path.exists():
        table = {**table, **(read_json(overrides_path) or {})}
    return {key: _resolve(value) for key, value in table.items()}


PATHS: Dict[str, str] = load_config_paths()


def _ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_provider_settings_path() -> Path:
    return Path(PATHS["provider_settings"])


def get_subtitle_dir() -> str:
    return str(_ensure_dir(Path(PATHS["subtitle_dir"])))


def get_vlc_runtime_root() -> str:
    return PATHS["vlc_runtime_root"]


def get_user_settings_path() -> Path:
    return Path(PATHS["user_settings"])


def get_database_path() -> Path:
    path = Path(PATHS["database"])
    _ensure_dir(path.parent)
    return path


__all__ = [
    "PATHS",
    "expand_env",
    "expand_env_in_str",
    "get_database_path",
    "get_provider_settings_path",
    "get_subtitle_dir",
    "get_user_settings_path",
    "get_vlc_runtime_root",
    "load_config_paths",
    "read_json",
]
