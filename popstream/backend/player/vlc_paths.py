"""Locates a bundled libVLC runtime so python-vlc can load it.

A runtime root holds one directory per platform (``linux-x86_64``,
``macos-arm64``, ``win64`` ...) or directly a ``lib``/``plugins`` pair.
When nothing is bundled, python-vlc uses the system installation.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, MutableMapping, Optional

from popstream.backend.common.logging import get_logger
from popstream.config import settings

log = get_logger(__name__)

_PLATFORM_DIRS: dict[str, tuple[str, ...]] = {
    "win32": ("win64", "win32"),
    "cygwin": ("win64", "win32"),
    "darwin": ("macos-arm64", "macos-x64", "macos"),
    "linux": ("linux-x86_64", "linux"),
}

_LIBRARY_PATH_VARS = {"win32": "PATH", "cygwin": "PATH", "darwin": "DYLD_LIBRARY_PATH"}


@dataclass(frozen=True, slots=True)
class VlcRuntime:
    root: Path
    lib_dir: Path
    plugin_dir: Path

    def environment(self) -> dict[str, str]:
        return {
            "PYTHON_VLC_MODULE_PATH": str(self.lib_dir),
            "VLC_PLUGIN_PATH": str(self.plugin_dir),
        }


def _platform_dirs(platform: str) -> tuple[str, ...]:
    if platform.startswith("linux"):
        return _PLATFORM_DIRS["linux"]
    return _PLATFORM_DIRS.get(platform, ())


def _layouts(root: Path, platform: str) -> Iterator[Path]:
    for name in _platform_dirs(platform):
        yield root / name
    yield root


def locate_vlc_runtime(root: Optional[Path | str] = None, *, platform: str = sys.platform) -> Optional[VlcRuntime]:
    """Return the first complete runtime under ``root`` (or the configured root)."""

    base = Path(root) if root else Path(settings.get_vlc_runtime_root())
    if not base.is_dir():
        return None
    for candidate in _layouts(base, platform):
        lib_dir, plugin_dir = candidate / "lib", candidate / "plugins"
        if lib_dir.is_dir() and plugin_dir.is_dir():
            return VlcRuntime(root=base, lib_dir=lib_dir, plugin_dir=plugin_dir)
    log.warning("vlc_runtime_incomplete", root=str(base))
    return None


def export_vlc_runtime(
    runtime: VlcRuntime,
    *,
    environ: Optional[MutableMapping[str, str]] = None,
    platform: str = sys.platform,
) -> None:
    """Point python-vlc and the dynamic loader at ``runtime``."""

    env = os.environ if environ is None else environ
    env.update(runtime.environment())
    path_var = _LIBRARY_PATH_VARS.get(platform, "LD_LIBRARY_PATH")
    existing = [part for part in env.get(path_var, "").split(os.pathsep) if part]
    lib_dir = str(runtime.lib_dir)
    if lib_dir not in existing:
        env[path_var] = os.pathsep.join([lib_dir, *existing])
    log.debug("vlc_runtime_exported", lib_dir=lib_dir, path_var=path_var)
