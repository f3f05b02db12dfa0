"""Cache repository for generated comics."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.entities import Comic, as_utc, utcnow
from app.core.exceptions import StorageError
from app.db.models import ComicRecord

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DURATION = timedelta(days=7)


def _to_domain(row: ComicRecord) -> Comic:
    return Comic(
        comic_id=row.comic_id,
        place_id=row.place_id,
        place_name=row.place_name,
        narrative=row.narrative,
        strangeness_score=row.strangeness_score,
        image_url=row.image_url,
        panel_count=row.panel_count,
        created_at=as_utc(row.created_at),
        expires_at=as_utc(row.expires_at),
        is_cached=False,
    )


class ComicRepository:
    def __init__(
        self,
        db: Session,
        cache_duration: timedelta = DEFAULT_CACHE_DURATION,
        clock=utcnow,
    ):
        self.db = db
        self.cache_duration = cache_duration
        self._clock = clock

    def get(self, place_id: str) -> Comic | None:
        """Return the stored comic for a place, expired or not.

        Validity is the caller's decision so that "never generated" and
        "stale" can be told apart with one lookup.
        """
        if not place_id or not place_id.strip():
            raise ValueError("place_id is required")
        row = self.db.get(ComicRecord, place_id, populate_existing=True)
        return _to_domain(row) if row is not None else None

    def upsert(self, comic: Comic) -> Comic:
        """Replace the cache entry for ``comic.place_id``.

        ``created_at`` and ``expires_at`` are always recomputed from the
        repository clock; values on the incoming comic are ignored.
        """
        if not comic.place_id or not comic.place_id.strip():
            raise ValueError("place_id is required")

        now = self._clock()
        expires_at = now + self.cache_duration
        try:
            row = self.db.get(ComicRecord, comic.place_id)
            if row is None:
                row = ComicRecord(place_id=comic.place_id)
                self.db.add(row)
            row.comic_id = comic.comic_id
            row.place_name = comic.place_name
            row.narrative = comic.narrative
            row.strangeness_score = float(comic.strangeness_score)
            row.panel_count = comic.panel_count
            row.image_url = comic.image_url
            row.created_at = now
            row.expires_at = expires_at
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("comic cache upsert failed place_id=%s error=%r", comic.place_id, exc)
            raise StorageError(f"Failed to cache comic for {comic.place_id}: {exc}", store="cache") from exc

        comic.created_at = now
        comic.expires_at = expires_at
        return comic

    def delete(self, place_id: str) -> bool:
        if not place_id or not place_id.strip():
            raise ValueError("place_id is required")
        try:
            row = self.db.get(ComicRecord, place_id)
            if row is None:
                return False
            self.db.delete(row)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"Failed to delete cached comic for {place_id}: {exc}", store="cache") from exc
        return True

    def delete_expired(self, place_id: str, comic_id: str, cutoff: datetime) -> bool:
        """Delete the row only if it is still ``comic_id`` and expired before ``cutoff``.

        A place regenerated after it was listed keeps its new row.
        """
        stmt = (
            delete(ComicRecord)
            .where(
                ComicRecord.place_id == place_id,
                ComicRecord.comic_id == comic_id,
                ComicRecord.expires_at < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"Failed to delete expired comic for {place_id}: {exc}", store="cache") from exc
        return result.rowcount > 0

    def list_expired(self, cutoff: datetime, max_batch: int) -> list[Comic]:
        if max_batch <= 0:
            raise ValueError("max_batch must be greater than zero")
        stmt = (
            select(ComicRecord)
            .where(ComicRecord.expires_at < cutoff)
            .order_by(ComicRecord.expires_at.asc())
            .limit(max_batch)
        )
        return [_to_domain(row) for row in self.db.execute(stmt).scalars().all()]
