"""Normalized media metadata models consumed by the playback session.

Provider specific payloads are adapted into these models so the session
controller stays source agnostic. Items are frozen: a new selection replaces
the current item wholesale instead of mutating it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from popstream.backend.common.errors import InvalidSelection


class MediaKind(str, Enum):
    """Normalized set of media categories supported by the session."""

    MOVIE = "movie"
    SHOW = "show"

    @classmethod
    def parse(cls, value: "MediaKind | str") -> "MediaKind":
        if isinstance(value, MediaKind):
            return value
        normalized = (value or "").strip().lower()
        if normalized in {"movie", "movies"}:
            return cls.MOVIE
        if normalized in {"show", "shows", "tv", "tv_show", "tv_shows"}:
            return cls.SHOW
        raise InvalidSelection(f"Unsupported media mode '{value}'")


class ImageAsset(BaseModel):
    """Metadata about an image associated with a media entity."""

    model_config = ConfigDict(frozen=True)

    url: str
    width: Optional[int] = None
    height: Optional[int] = None


class Runtime(BaseModel):
    model_config = ConfigDict(frozen=True)

    full: str = ""
    hours: int = Field(default=0, ge=0)
    minutes: int = Field(default=0, ge=0)

    @classmethod
    def from_minutes(cls, total: Optional[int]) -> "Runtime":
        if not total:
            return cls()
        hours, minutes = divmod(int(total), 60)
        full = f"{hours} hours {minutes} minutes" if hours else f"{minutes} minutes"
        return cls(full=full, hours=hours, minutes=minutes)


class Item(BaseModel):
    """A movie or show as presented to the playback session."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    kind: Optional[MediaKind] = None
    title: str = ""
    year: Optional[int] = None
    summary: str = ""
    rating: Optional[float] = None
    certification: str = "n/a"
    genres: Sequence[str] = Field(default_factory=tuple)
    runtime: Runtime = Field(default_factory=Runtime)
    trailer: Optional[str] = None
    poster: Optional[ImageAsset] = None
    backdrop: Optional[ImageAsset] = None
    external_ids: Mapping[str, str] = Field(default_factory=dict)

    @classmethod
    def empty(cls) -> "Item":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.id

    @property
    def imdb_id(self) -> str:
        return self.external_ids.get("imdb") or self.id

    @property
    def tmdb_id(self) -> Optional[str]:
        return self.external_ids.get("tmdb")

    def as_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class SeasonSummary(BaseModel):
    """Shallow representation of a season of a show."""

    model_config = ConfigDict(frozen=True)

    season: int = Field(ge=0)
    title: Optional[str] = None
    episode_count: Optional[int] = Field(default=None, ge=0)
    overview: Optional[str] = None


class EpisodeSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    season: int = Field(ge=0)
    episode: int = Field(ge=0)
    title: Optional[str] = None
    overview: Optional[str] = None
    air_date: Optional[str] = None


class CaptionTrack(BaseModel):
    """A subtitle track served from the local subtitle server."""

    model_config = ConfigDict(frozen=True)

    language: str = Field(description="Short language code, e.g. 'en'.")
    url: str
    is_default: bool = False
    kind: str = "captions"
    label: Optional[str] = None


class CastingDevice(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
