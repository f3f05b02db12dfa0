"""End-to-end comic generation for one place.

Stage order:

    cache_check -> fetching -> validating -> selecting -> filtering
    -> analyzing -> synthesizing -> overlaying -> uploading -> caching
    -> leaderboard

Every stage except ``leaderboard`` aborts the request on failure. The
leaderboard write is best effort and its outcome is reported in
``GenerationResult.leaderboard``.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Protocol

from app.core.entities import Comic, LeaderboardEntry, PlaceDetails, utcnow
from app.core.exceptions import InsufficientContentError, InvalidInputError, PlaceNotFoundError, StorageError
from app.core.metrics import (
    record_cache_lookup,
    record_comic_generated,
    record_leaderboard_write,
    track_stage,
)
from app.core.request_context import log_context
from app.core.single_flight import SingleFlight
from app.core.telemetry import trace_span
from app.repositories.comics import ComicRepository
from app.repositories.leaderboard import LeaderboardRepository, LeaderboardUpsertOutcome
from app.services.image_synthesizer import SynthesizedImage
from app.services.narrative_analyzer import NarrativeAnalyzer
from app.services.places import PlaceSource
from app.services.review_selection import filter_inappropriate, select_reviews
from app.services.storage import blob_key_for

logger = logging.getLogger(__name__)

DEFAULT_MIN_REVIEWS = 5
DEFAULT_SELECTION_CAP = 5
DEFAULT_LEADERBOARD_MIN_SCORE = 20.0


class ArtifactStore(Protocol):
    def put(self, key: str, data: bytes, content_type: str = "image/png") -> str: ...

    def delete(self, key: str) -> bool: ...


class Synthesizer(Protocol):
    def synthesize(self, narrative: str, panel_count: int) -> SynthesizedImage: ...


class LeaderboardWriteStatus(str, Enum):
    UPDATED = "updated"
    SKIPPED_BELOW_THRESHOLD = "skipped_below_threshold"
    SKIPPED_LOWER_SCORE = "skipped_lower_score"
    FAILED = "failed"


@dataclass(frozen=True)
class LeaderboardWriteResult:
    status: LeaderboardWriteStatus
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status != LeaderboardWriteStatus.FAILED


@dataclass(frozen=True)
class GenerationResult:
    comic: Comic
    cache_hit: bool
    # None when the comic came from the cache and no write was attempted.
    leaderboard: LeaderboardWriteResult | None = None
    prompt_kind: str | None = None


@contextmanager
def _stage(name: str):
    with log_context(stage=name), track_stage(name), trace_span(f"comic.{name}"):
        yield


class ComicGenerationService:
    def __init__(
        self,
        places: PlaceSource,
        analyzer: NarrativeAnalyzer,
        synthesizer: Synthesizer,
        overlay: Callable[[bytes, str, int], bytes],
        artifact_store: ArtifactStore,
        comics: ComicRepository,
        leaderboard: LeaderboardRepository,
        single_flight: SingleFlight | None = None,
        *,
        min_reviews: int = DEFAULT_MIN_REVIEWS,
        selection_cap: int = DEFAULT_SELECTION_CAP,
        leaderboard_min_score: float = DEFAULT_LEADERBOARD_MIN_SCORE,
        clock=utcnow,
    ):
        self.places = places
        self.analyzer = analyzer
        self.synthesizer = synthesizer
        self.overlay = overlay
        self.artifact_store = artifact_store
        self.comics = comics
        self.leaderboard = leaderboard
        self.single_flight = single_flight or SingleFlight()
        self.min_reviews = min_reviews
        self.selection_cap = selection_cap
        self.leaderboard_min_score = leaderboard_min_score
        self._clock = clock

    def get_cached(self, place_id: str) -> Comic | None:
        """Return the stored comic for ``place_id`` if it is still valid."""
        return load_cached_comic(self.comics, place_id, self._clock())

    def generate(self, place_id: str, force_regenerate: bool = False) -> GenerationResult:
        _require_place_id(place_id)
        with log_context(place_id=place_id), trace_span("comic.generate", place_id=place_id):
            logger.info("comic generation requested force_regenerate=%s", force_regenerate)

            if force_regenerate:
                record_cache_lookup("bypass")
            else:
                cached = self._check_cache(place_id)
                if cached is not None:
                    return GenerationResult(comic=cached, cache_hit=True)

            with self.single_flight.hold(place_id) as contended:
                if contended and not force_regenerate:
                    # Another request just finished this place.
                    cached = self._check_cache(place_id)
                    if cached is not None:
                        logger.info("served comic generated by a concurrent request")
                        return GenerationResult(comic=cached, cache_hit=True)
                return self._run_pipeline(place_id)

    def _check_cache(self, place_id: str) -> Comic | None:
        with _stage("cache_check"):
            comic = self.comics.get(place_id)
            if comic is None:
                record_cache_lookup("miss")
                return None
            if not comic.is_valid_at(self._clock()):
                record_cache_lookup("stale")
                logger.info("cached comic expired expires_at=%s", comic.expires_at.isoformat())
                return None
            record_cache_lookup("hit")
            comic.is_cached = True
            logger.info("returning cached comic comic_id=%s", comic.comic_id)
            return comic

    def _run_pipeline(self, place_id: str) -> GenerationResult:
        with _stage("fetching"):
            details = self.places.get_details(place_id)
            if details is None:
                logger.warning("place not found")
                raise PlaceNotFoundError(place_id)

        with _stage("validating"):
            found = len(details.reviews)
            if found < self.min_reviews:
                logger.warning("insufficient reviews found=%s required=%s", found, self.min_reviews)
                raise InsufficientContentError(
                    f"Place must have at least {self.min_reviews} reviews to generate a comic. Found {found}.",
                    found=found,
                    required=self.min_reviews,
                )

        with _stage("selecting"):
            selected = select_reviews(details.reviews, cap=self.selection_cap)
            texts = [review.text for review in selected if review.text and review.text.strip()]

        with _stage("filtering"):
            usable = filter_inappropriate(texts)
            if len(usable) < self.min_reviews:
                logger.warning("insufficient reviews after filtering usable=%s required=%s", len(usable), self.min_reviews)
                raise InsufficientContentError(
                    f"Place does not have enough appropriate reviews to generate a comic. "
                    f"Found {len(usable)}, need {self.min_reviews}.",
                    found=len(usable),
                    required=self.min_reviews,
                )

        with _stage("analyzing"):
            analysis = self.analyzer.analyze(usable)

        with _stage("synthesizing"):
            rendered = self.synthesizer.synthesize(analysis.narrative, analysis.panel_count)
            prompt_kind = rendered.prompt_kind

        with _stage("overlaying"):
            image_bytes = self.overlay(rendered.data, analysis.narrative, analysis.panel_count)

        comic_id = str(uuid.uuid4())
        blob_key = blob_key_for(comic_id)
        with _stage("uploading"):
            image_url = self.artifact_store.put(blob_key, image_bytes, "image/png")

        with _stage("caching"):
            comic = Comic(
                comic_id=comic_id,
                place_id=place_id,
                place_name=details.name,
                narrative=analysis.narrative,
                strangeness_score=analysis.score,
                image_url=image_url,
                panel_count=analysis.panel_count,
            )
            try:
                comic = self.comics.upsert(comic)
            except StorageError:
                self._discard_blob(blob_key)
                raise

        with _stage("leaderboard"):
            leaderboard_result = self._write_leaderboard(details, comic)

        record_comic_generated(prompt_kind or "unknown")
        logger.info(
            "comic generated comic_id=%s score=%.1f panels=%s prompt_kind=%s leaderboard=%s",
            comic.comic_id,
            comic.strangeness_score,
            comic.panel_count,
            prompt_kind,
            leaderboard_result.status.value,
        )
        return GenerationResult(
            comic=comic,
            cache_hit=False,
            leaderboard=leaderboard_result,
            prompt_kind=prompt_kind,
        )

    def _write_leaderboard(self, details: PlaceDetails, comic: Comic) -> LeaderboardWriteResult:
        if comic.strangeness_score < self.leaderboard_min_score:
            result = LeaderboardWriteResult(LeaderboardWriteStatus.SKIPPED_BELOW_THRESHOLD)
            record_leaderboard_write(result.status.value)
            return result

        entry = LeaderboardEntry(
            place_id=comic.place_id,
            place_name=details.name,
            address=details.address,
            region=details.region or "US",
            strangeness_score=comic.strangeness_score,
            image_url=comic.image_url,
            last_updated=self._clock(),
        )
        try:
            outcome = self.leaderboard.upsert(entry)
        except Exception as exc:  # noqa: BLE001
            logger.warning("leaderboard update failed region=%s error=%r", entry.region, exc, exc_info=True)
            result = LeaderboardWriteResult(LeaderboardWriteStatus.FAILED, error=str(exc))
        else:
            if outcome == LeaderboardUpsertOutcome.REJECTED_LOWER_SCORE:
                result = LeaderboardWriteResult(LeaderboardWriteStatus.SKIPPED_LOWER_SCORE)
            else:
                result = LeaderboardWriteResult(LeaderboardWriteStatus.UPDATED)
        record_leaderboard_write(result.status.value)
        return result

    def _discard_blob(self, key: str) -> None:
        try:
            self.artifact_store.delete(key)
        except StorageError as exc:
            logger.error("orphaned artifact left behind key=%s error=%r", key, exc)


def load_cached_comic(comics: ComicRepository, place_id: str, now: datetime) -> Comic | None:
    """Valid cached comic for ``place_id``, without touching any provider."""
    _require_place_id(place_id)
    comic = comics.get(place_id)
    if comic is None or not comic.is_valid_at(now):
        return None
    comic.is_cached = True
    return comic


def _require_place_id(place_id: str) -> None:
    if not place_id or not place_id.strip():
        raise InvalidInputError("place_id is required")
