"""Regional leaderboard repository.

Rows are keyed so that a plain ascending scan of one region's keys returns
entries in descending score order:

    partition_key = "LEADERBOARD_{REGION}"
    row_key       = "{score_to_sortable_key(score)}_{place_id}"

The place id suffix keeps keys unique when two places tie on score.
"""

from __future__ import annotations

import logging
import math
from enum import Enum

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.entities import LeaderboardEntry, as_utc, utcnow
from app.core.exceptions import StorageError
from app.db.models import LeaderboardRecord

logger = logging.getLogger(__name__)

PARTITION_KEY_PREFIX = "LEADERBOARD"
SORT_KEY_CEILING = 9_999_999_999
SORT_KEY_WIDTH = 10
# 1e7 keeps the top score (100 * 1e7) below the ceiling.
SCORE_SCALE = 10_000_000
MAX_TOP_LIMIT = 50


class LeaderboardUpsertOutcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    REJECTED_LOWER_SCORE = "rejected_lower_score"


def score_to_sortable_key(score: float) -> str:
    """Map a 0-100 score to a fixed-width key that sorts in reverse score order."""
    if score is None or math.isnan(score) or score < 0 or score > 100:
        raise ValueError(f"score must be between 0 and 100, got {score!r}")
    scaled = math.floor(score * SCORE_SCALE)
    return f"{SORT_KEY_CEILING - scaled:0{SORT_KEY_WIDTH}d}"


def normalize_region(region: str) -> str:
    if not region or not region.strip():
        raise ValueError("region is required")
    return region.strip().upper()


def partition_key_for(region: str) -> str:
    return f"{PARTITION_KEY_PREFIX}_{normalize_region(region)}"


def row_key_for(score: float, place_id: str) -> str:
    return f"{score_to_sortable_key(score)}_{place_id}"


def _to_domain(row: LeaderboardRecord, rank: int = 0) -> LeaderboardEntry:
    return LeaderboardEntry(
        place_id=row.place_id,
        place_name=row.place_name,
        address=row.address,
        region=row.region,
        strangeness_score=row.strangeness_score,
        image_url=row.image_url,
        last_updated=as_utc(row.last_updated),
        rank=rank,
    )


class LeaderboardRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_top(self, region: str, n: int) -> list[LeaderboardEntry]:
        """Top ``n`` entries of a region, best first, ranks starting at 1."""
        if n < 1 or n > MAX_TOP_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_TOP_LIMIT}")
        stmt = (
            select(LeaderboardRecord)
            .where(LeaderboardRecord.partition_key == partition_key_for(region))
            .order_by(LeaderboardRecord.row_key.asc())
            .limit(n)
        )
        rows = self.db.execute(stmt).scalars().all()
        return [_to_domain(row, rank) for rank, row in enumerate(rows, start=1)]

    def get_by_place(self, place_id: str, region: str) -> LeaderboardEntry | None:
        row = self._find(place_id, region)
        return _to_domain(row) if row is not None else None

    def upsert(self, entry: LeaderboardEntry) -> LeaderboardUpsertOutcome:
        """Store ``entry`` unless a higher score is already stored for its place and region.

        The key embeds the score, so a score change replaces the old row.
        """
        if not entry.place_id or not entry.place_id.strip():
            raise ValueError("place_id is required")
        region = normalize_region(entry.region)
        row_key = row_key_for(entry.strangeness_score, entry.place_id)

        try:
            existing = self._find(entry.place_id, region)
            if existing is not None and entry.strangeness_score < existing.strangeness_score:
                logger.info(
                    "leaderboard upsert rejected place_id=%s region=%s score=%s stored=%s",
                    entry.place_id,
                    region,
                    entry.strangeness_score,
                    existing.strangeness_score,
                )
                return LeaderboardUpsertOutcome.REJECTED_LOWER_SCORE

            if existing is not None:
                self.db.delete(existing)
                self.db.flush()

            self.db.add(
                LeaderboardRecord(
                    partition_key=partition_key_for(region),
                    row_key=row_key,
                    place_id=entry.place_id,
                    place_name=entry.place_name,
                    address=entry.address or "",
                    region=region,
                    strangeness_score=float(entry.strangeness_score),
                    image_url=entry.image_url,
                    last_updated=entry.last_updated or utcnow(),
                )
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(
                f"Failed to upsert leaderboard entry for {entry.place_id} in {region}: {exc}",
                store="leaderboard",
            ) from exc

        outcome = LeaderboardUpsertOutcome.UPDATED if existing is not None else LeaderboardUpsertOutcome.INSERTED
        logger.info(
            "leaderboard upsert place_id=%s region=%s score=%s outcome=%s",
            entry.place_id,
            region,
            entry.strangeness_score,
            outcome.value,
        )
        return outcome

    def delete(self, place_id: str, region: str) -> bool:
        try:
            row = self._find(place_id, region)
            if row is None:
                logger.warning("leaderboard entry not found place_id=%s region=%s", place_id, region)
                return False
            self.db.delete(row)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"Failed to delete leaderboard entry for {place_id}: {exc}", store="leaderboard") from exc
        return True

    def delete_by_place(self, place_id: str) -> int:
        """Remove a place from every region. Returns the number of rows removed."""
        if not place_id or not place_id.strip():
            raise ValueError("place_id is required")
        try:
            rows = self.db.execute(
                select(LeaderboardRecord).where(LeaderboardRecord.place_id == place_id)
            ).scalars().all()
            for row in rows:
                self.db.delete(row)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"Failed to delete leaderboard entries for {place_id}: {exc}", store="leaderboard") from exc
        logger.info("leaderboard entries deleted place_id=%s count=%s", place_id, len(rows))
        return len(rows)

    def _find(self, place_id: str, region: str) -> LeaderboardRecord | None:
        if not place_id or not place_id.strip():
            raise ValueError("place_id is required")
        stmt = select(LeaderboardRecord).where(
            LeaderboardRecord.partition_key == partition_key_for(region),
            LeaderboardRecord.place_id == place_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()
