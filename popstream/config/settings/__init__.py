"""Runtime settings, filesystem paths and provider service configuration.

Submodules load on first attribute access, so importing this package does not
read any configuration file.
"""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Any

_EXPORTS: dict[str, str] = {
    # core
    "Settings": "core",
    "get_settings": "core",
    "load_user_settings": "core",
    "parse_bool": "core",
    "update_user_setting": "core",
    # paths
    "PATHS": "paths",
    "get_database_path": "paths",
    "get_provider_settings_path": "paths",
    "get_subtitle_dir": "paths",
    "get_user_settings_path": "paths",
    "get_vlc_runtime_root": "paths",
    # providers
    "PROVIDER_SETTINGS": "providers",
    "get_api_key": "providers",
    "get_base_url": "providers",
    "get_default_headers": "providers",
    "get_service_config": "providers",
    "list_provider_configs": "providers",
}

_SUBMODULES = frozenset(_EXPORTS.values())

__all__ = sorted({*_EXPORTS, *_SUBMODULES})

if TYPE_CHECKING:  # pragma: no cover
    from . import core, paths, providers
    from .core import Settings, get_settings, load_user_settings, parse_bool, update_user_setting
    from .paths import (
        PATHS,
        get_database_path,
        get_provider_settings_path,
        get_subtitle_dir,
        get_user_settings_path,
        get_vlc_runtime_root,
    )
    from .providers import (
        PROVIDER_SETTINGS,
        get_api_key,
        get_base_url,
        get_default_headers,
        get_service_config,
        list_provider_configs,
    )


def __getattr__(name: str) -> Any:
    if name in _SUBMODULES:
        value: Any = importlib.import_module(f"{__name__}.{name}")
    elif name in _EXPORTS:
        value = getattr(importlib.import_module(f"{__name__}.{_EXPORTS[name]}"), name)
    else:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted({*globals(), *__all__})
