"""Background removal of expired comics and their images."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.entities import utcnow
from app.core.exceptions import AppError
from app.core.metrics import record_expired_comics_deleted
from app.repositories.comics import ComicRepository
from app.services.comic_generation import ArtifactStore
from app.services.storage import blob_key_for

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 25
MIN_BATCH_SIZE = 5
MAX_BATCH_SIZE = 200
DEFAULT_INTERVAL_MINUTES = 30
MAX_INTERVAL_MINUTES = 720
STARTUP_DELAY_SECONDS = 60.0


def clamp_batch_size(batch_size: int) -> int:
    return max(MIN_BATCH_SIZE, min(MAX_BATCH_SIZE, batch_size))


def clamp_interval_minutes(minutes: int) -> int:
    if minutes <= 0:
        return DEFAULT_INTERVAL_MINUTES
    return min(minutes, MAX_INTERVAL_MINUTES)


class ExpiredComicSweeper:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        artifact_store: ArtifactStore,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock=utcnow,
    ):
        self.session_factory = session_factory
        self.artifact_store = artifact_store
        self.batch_size = clamp_batch_size(batch_size)
        self._clock = clock

    def sweep_once(self) -> int:
        """Delete every comic that expired before now. Returns the number removed."""
        started = time.perf_counter()
        total_deleted = 0
        db = self.session_factory()
        try:
            comics = ComicRepository(db)
            while True:
                cutoff = self._clock()
                expired = comics.list_expired(cutoff, self.batch_size)
                if not expired:
                    break

                deleted_in_batch = 0
                for comic in expired:
                    try:
                        if not comics.delete_expired(comic.place_id, comic.comic_id, cutoff):
                            logger.info(
                                "skipping regenerated comic place_id=%s listed_comic_id=%s",
                                comic.place_id,
                                comic.comic_id,
                            )
                            continue
                        self.artifact_store.delete(blob_key_for(comic.comic_id))
                    except (AppError, SQLAlchemyError) as exc:
                        logger.warning(
                            "failed to delete expired comic comic_id=%s place_id=%s error=%r",
                            comic.comic_id,
                            comic.place_id,
                            exc,
                        )
                        continue
                    deleted_in_batch += 1

                total_deleted += deleted_in_batch
                # Rows that keep failing come back on every page.
                if len(expired) < self.batch_size or deleted_in_batch == 0:
                    break
        finally:
            db.close()

        duration_ms = (time.perf_counter() - started) * 1000
        if total_deleted:
            logger.info("expired comic cleanup removed=%s duration_ms=%.1f", total_deleted, duration_ms)
        record_expired_comics_deleted(total_deleted)
        return total_deleted


_sweeper_task: asyncio.Task | None = None


async def _sweep_loop(sweeper: ExpiredComicSweeper, interval_seconds: float, startup_delay: float) -> None:
    await asyncio.sleep(startup_delay)
    while True:
        try:
            await asyncio.to_thread(sweeper.sweep_once)
        except Exception:  # noqa: BLE001
            logger.exception("unexpected failure during expired comic cleanup")
        await asyncio.sleep(interval_seconds)


async def start_sweeper(
    sweeper: ExpiredComicSweeper,
    interval_minutes: int = DEFAULT_INTERVAL_MINUTES,
    startup_delay: float = STARTUP_DELAY_SECONDS,
) -> None:
    global _sweeper_task
    if _sweeper_task is not None:
        return
    interval_seconds = clamp_interval_minutes(interval_minutes) * 60
    _sweeper_task = asyncio.create_task(_sweep_loop(sweeper, interval_seconds, startup_delay))


async def stop_sweeper() -> None:
    global _sweeper_task
    if _sweeper_task is None:
        return
    _sweeper_task.cancel()
    try:
        await _sweeper_task
    except asyncio.CancelledError:
        pass
    _sweeper_task = None


def is_running() -> bool:
    return _sweeper_task is not None and not _sweeper_task.done()
