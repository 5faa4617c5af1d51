"""Pydantic models describing aggregated media payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .utils import parse_year

EntityKind = Literal["movie", "show"]

RECOGNIZED_VIDEO_SITE = "YouTube"
TRAILER_CATEGORY = "Trailer"


class EntityRef(BaseModel):
    """Identifies one media item across every provider endpoint."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(gt=0)
    kind: EntityKind

    @property
    def provider_segment(self) -> str:
        """Return the path segment TMDB uses for this kind."""

        return "tv" if self.kind == "show" else "movie"

    def as_kind(self, kind: EntityKind) -> "EntityRef":
        if kind == self.kind:
            return self
        return EntityRef(id=self.id, kind=kind)

    def __str__(self) -> str:
        return f"{self.kind}:{self.id}"


class VideoCandidate(BaseModel):
    """A single entry from a provider video listing."""

    model_config = ConfigDict(frozen=True)

    external_key: str
    host_site: str = ""
    category: str = ""
    is_official: bool = False
    published_at: str | None = None
    title: str = ""

    @classmethod
    def from_provider(cls, payload: dict[str, Any]) -> "VideoCandidate | None":
        key = payload.get("key")
        if not isinstance(key, str) or not key:
            return None
        return cls(
            external_key=key,
            host_site=str(payload.get("site") or ""),
            category=str(payload.get("type") or ""),
            is_official=bool(payload.get("official")),
            published_at=payload.get("published_at"),
            title=str(payload.get("name") or ""),
        )

    @property
    def is_trailer(self) -> bool:
        return self.category == TRAILER_CATEGORY

    @property
    def on_recognized_site(self) -> bool:
        return self.host_site == RECOGNIZED_VIDEO_SITE

    @property
    def embed_url(self) -> str | None:
        if not self.on_recognized_site:
            return None
        return f"https://www.youtube.com/embed/{self.external_key}"


class MediaRecord(BaseModel):
    """Aggregated, presentable view of one entity."""

    model_config = ConfigDict(frozen=True)

    ref: EntityRef
    title: str | None = None
    year: int | None = None
    rating: float | None = None
    overview: str | None = None
    runtime: int | None = None
    genres: tuple[str, ...] = ()
    images: tuple[str, ...] = ()
    trailer: VideoCandidate | None = None

    @classmethod
    def from_details(
        cls,
        ref: EntityRef,
        details: dict[str, Any],
        *,
        images: tuple[str, ...] = (),
        trailer: VideoCandidate | None = None,
    ) -> "MediaRecord":
        """Build a record from a provider details payload."""

        title = details.get("title") or details.get("name")
        year = parse_year(details.get("release_date")) or parse_year(
            details.get("first_air_date")
        )

        runtime = details.get("runtime")
        if not isinstance(runtime, int):
            episode_runtimes = details.get("episode_run_time") or []
            runtime = None
            if isinstance(episode_runtimes, list):
                for value in episode_runtimes:
                    if isinstance(value, int):
                        runtime = value
                        break

        rating = details.get("vote_average")
        if not isinstance(rating, (int, float)) or isinstance(rating, bool):
            rating = None

        genres: list[str] = []
        for genre in details.get("genres") or []:
            if isinstance(genre, dict) and genre.get("name"):
                genres.append(str(genre["name"]))

        return cls(
            ref=ref,
            title=str(title) if title else None,
            year=year,
            rating=float(rating) if rating is not None else None,
            overview=details.get("overview") or None,
            runtime=runtime,
            genres=tuple(genres),
            images=images,
            trailer=trailer,
        )

    def display_title(self) -> str:
        title = (self.title or "").strip()
        return title or "Untitled"


class MembershipStatus(str, Enum):
    UNKNOWN = "unknown"
    ABSENT = "absent"
    PRESENT = "present"
    PENDING = "pending"


class ConnectivityStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class ChatMessage(BaseModel):
    """One turn in a chat transcript."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class WatchlistEntry(BaseModel):
    """A watchlist id resolved against the metadata provider."""

    ref: EntityRef
    title: str
    year: int | None = None
    poster: str | None = None
    overview: str | None = None
