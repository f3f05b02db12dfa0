"""Removal of a place's comic, image, and leaderboard rows on request.

The three stores are independent, so each step is attempted and reported on
its own. A failed step does not stop the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import AppError, InvalidInputError
from app.repositories.comics import ComicRepository
from app.repositories.leaderboard import LeaderboardRepository
from app.services.comic_generation import ArtifactStore
from app.services.storage import blob_key_for

logger = logging.getLogger(__name__)


class TakedownStepStatus(str, Enum):
    REMOVED = "removed"
    ABSENT = "absent"
    FAILED = "failed"


@dataclass(frozen=True)
class TakedownStep:
    status: TakedownStepStatus
    count: int = 0
    error: str | None = None


@dataclass(frozen=True)
class TakedownResult:
    place_id: str
    cache: TakedownStep
    blob: TakedownStep
    leaderboard: TakedownStep

    @property
    def complete(self) -> bool:
        return all(step.status != TakedownStepStatus.FAILED for step in (self.cache, self.blob, self.leaderboard))


def _failed(exc: Exception) -> TakedownStep:
    return TakedownStep(TakedownStepStatus.FAILED, error=str(exc))


class TakedownService:
    def __init__(self, comics: ComicRepository, leaderboard: LeaderboardRepository, artifact_store: ArtifactStore):
        self.comics = comics
        self.leaderboard = leaderboard
        self.artifact_store = artifact_store

    def take_down(self, place_id: str, reason: str | None = None) -> TakedownResult:
        if not place_id or not place_id.strip():
            raise InvalidInputError("place_id is required")
        logger.info("takedown requested place_id=%s reason=%s", place_id, reason or "")

        leaderboard_step = self._remove_leaderboard(place_id)

        comic = None
        try:
            comic = self.comics.get(place_id)
        except SQLAlchemyError as exc:
            logger.error("takedown could not read cache place_id=%s error=%r", place_id, exc)
            cache_step = _failed(exc)
            blob_step = _failed(exc)
        else:
            cache_step = self._remove_cache(place_id) if comic is not None else TakedownStep(TakedownStepStatus.ABSENT)
            blob_step = self._remove_blob(comic.comic_id) if comic is not None else TakedownStep(TakedownStepStatus.ABSENT)

        result = TakedownResult(place_id=place_id, cache=cache_step, blob=blob_step, leaderboard=leaderboard_step)
        log = logger.info if result.complete else logger.error
        log(
            "takedown finished place_id=%s complete=%s cache=%s blob=%s leaderboard=%s",
            place_id,
            result.complete,
            cache_step.status.value,
            blob_step.status.value,
            leaderboard_step.status.value,
        )
        return result

    def _remove_leaderboard(self, place_id: str) -> TakedownStep:
        try:
            removed = self.leaderboard.delete_by_place(place_id)
        except (AppError, SQLAlchemyError) as exc:
            logger.error("takedown leaderboard step failed place_id=%s error=%r", place_id, exc)
            return _failed(exc)
        if removed == 0:
            return TakedownStep(TakedownStepStatus.ABSENT)
        return TakedownStep(TakedownStepStatus.REMOVED, count=removed)

    def _remove_cache(self, place_id: str) -> TakedownStep:
        try:
            removed = self.comics.delete(place_id)
        except (AppError, SQLAlchemyError) as exc:
            logger.error("takedown cache step failed place_id=%s error=%r", place_id, exc)
            return _failed(exc)
        return TakedownStep(TakedownStepStatus.REMOVED, count=1) if removed else TakedownStep(TakedownStepStatus.ABSENT)

    def _remove_blob(self, comic_id: str) -> TakedownStep:
        try:
            removed = self.artifact_store.delete(blob_key_for(comic_id))
        except AppError as exc:
            logger.error("takedown blob step failed comic_id=%s error=%r", comic_id, exc)
            return _failed(exc)
        return TakedownStep(TakedownStepStatus.REMOVED, count=1) if removed else TakedownStep(TakedownStepStatus.ABSENT)
