"""Per-service configuration (base URL, headers, API key) for remote providers.

Read once from ``providersettings.json`` with ``${VAR}`` references expanded,
so secrets such as ``${TMDB_API_KEY}`` can stay in the environment.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from .paths import expand_env, get_provider_settings_path, read_json


def load_provider_settings() -> Dict[str, Any]:
    path = get_provider_settings_path()
    return expand_env(read_json(path)) if path.exists() else {}


try:  # pragma: no cover
    PROVIDER_SETTINGS: Dict[str, Any] = load_provider_settings()
except (OSError, ValueError):
    PROVIDER_SETTINGS = {}


def _services() -> Mapping[str, Any]:
    return (PROVIDER_SETTINGS or {}).get("providers") or {}


def list_provider_configs() -> Dict[str, Dict[str, Any]]:
    return {name: dict(cfg) if isinstance(cfg, Mapping) else {} for name, cfg in _services().items()}


def get_service_config(service: str) -> Optional[Dict[str, Any]]:
    cfg = _services().get(service)
    return dict(cfg) if isinstance(cfg, Mapping) else None


def get_base_url(service: str, default: Optional[str] = None) -> Optional[str]:
    return (get_service_config(service) or {}).get("base_url") or default


def get_default_headers(service: str) -> Dict[str, str]:
    headers = (get_service_config(service) or {}).get("default_headers") or {}
    return {str(key): str(expand_env(value)) for key, value in headers.items()}


def get_api_key(service: str) -> Optional[str]:
    return (get_service_config(service) or {}).get("api_key") or None


__all__ = [
    "PROVIDER_SETTINGS",
    "get_api_key",
    "get_base_url",
    "get_default_headers",
    "get_service_config",
    "list_provider_configs",
    "load_provider_settings",
]
