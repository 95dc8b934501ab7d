"""Subtitle files as reported by providers."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

# Browsers only render WebVTT natively, SRT is the most common download.
PREFERRED_EXTENSIONS: tuple[str, ...] = (".vtt", ".srt", ".ass", ".ssa", ".sub", ".sbv", ".txt")


@dataclass(frozen=True, slots=True)
class SubtitleDescriptor:
    """A subtitle file a provider placed in the local subtitle directory."""

    language: str
    file_name: str
    provider: str = ""
    downloads: int = 0
    release: str = ""


def _extension_rank(path: Path) -> int:
    suffix = path.suffix.lower()
    if suffix in PREFERRED_EXTENSIONS:
        return PREFERRED_EXTENSIONS.index(suffix)
    return len(PREFERRED_EXTENSIONS)


def pick_best_subtitle_file(paths: Iterable[Path]) -> Optional[Path]:
    """First file with the most preferred extension, or ``None`` when empty."""

    return min(paths, key=_extension_rank, default=None)
