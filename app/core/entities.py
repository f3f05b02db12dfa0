"""Domain records passed between the comic pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on round trip; stored values are always UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Review:
    author_name: str
    text: str
    rating: int
    published_at: datetime | None = None


@dataclass(frozen=True)
class PlaceDetails:
    place_id: str
    name: str
    address: str
    region: str
    reviews: list[Review] = field(default_factory=list)
    latitude: float | None = None
    longitude: float | None = None


@dataclass
class Comic:
    comic_id: str
    place_id: str
    place_name: str
    narrative: str
    strangeness_score: float
    image_url: str
    panel_count: int = 1
    created_at: datetime = field(default_factory=utcnow)
    expires_at: datetime = field(default_factory=utcnow)
    is_cached: bool = False

    def is_valid_at(self, now: datetime) -> bool:
        return as_utc(now) < as_utc(self.expires_at)


@dataclass
class LeaderboardEntry:
    place_id: str
    place_name: str
    address: str
    region: str
    strangeness_score: float
    image_url: str
    last_updated: datetime = field(default_factory=utcnow)
    rank: int = 0
