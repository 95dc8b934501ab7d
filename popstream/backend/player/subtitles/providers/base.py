from __future__ import annotations

"""Provider base classes and helpers."""

import io
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Sequence

from ..models import PREFERRED_EXTENSIONS, SubtitleDescriptor, pick_best_subtitle_file
from ...exceptions import SubtitleError, SubtitleProviderUnavailable
from ....common.logging import get_logger

log = get_logger(__name__)


class SubtitleProvider(ABC):
    name: str = "provider"
    retries: int = 1
    backoff_sec: float = 1.0

    @property
    def is_configured(self) -> bool:
        return True

    @abstractmethod
    async def fetch(
        self,
        external_id: str,
        *,
        path: Path,
        languages: Sequence[str],
    ) -> List[SubtitleDescriptor]:
        """Download subtitles for ``external_id`` into ``path``."""
        raise NotImplementedError


def ensure_api_key(name: str, value: str | None) -> str:
    if not value:
        raise SubtitleProviderUnavailable(f"{name} API credentials missing")
    return value


def write_subtitle_payload(dest_dir: Path, file_name: str, content: bytes) -> Path:
    """Write a subtitle payload, unpacking zip archives to their best file."""

    dest_dir.mkdir(parents=True, exist_ok=True)
    buffer = io.BytesIO(content)
    if not zipfile.is_zipfile(buffer):
        target = dest_dir / Path(file_name).name
        target.write_bytes(content)
        return target

    buffer.seek(0)
    with zipfile.ZipFile(buffer, "r") as zf:
        members = [Path(zf.extract(member, dest_dir)) for member in zf.namelist() if not member.endswith("/")]
    candidates = [p for p in members if p.suffix.lower() in PREFERRED_EXTENSIONS] or members
    selected = pick_best_subtitle_file(candidates)
    if not selected:
        raise SubtitleError("Zip archive did not contain subtitle files")
    for member in members:
        if member != selected:
            try:
                member.unlink()
            except OSError:
                log.debug("subtitle_cleanup_failed", path=str(member))
    return selected
