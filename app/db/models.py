from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class ComicRecord(Base):
    __tablename__ = "comics"

    place_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    comic_id: Mapped[str] = mapped_column(String(64), nullable=False)
    place_name: Mapped[str] = mapped_column(String(255), nullable=False)
    narrative: Mapped[str] = mapped_column(Text, nullable=False)
    strangeness_score: Mapped[float] = mapped_column(Float, nullable=False)
    panel_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_comics_expires_at", "expires_at"),)


class LeaderboardRecord(Base):
    """One leaderboard row per (place, region).

    ``partition_key`` groups a region; ``row_key`` starts with the inverted
    score so an ascending primary-key scan yields descending scores.
    """

    __tablename__ = "leaderboard_entries"

    partition_key: Mapped[str] = mapped_column(String(128), primary_key=True)
    row_key: Mapped[str] = mapped_column(String(320), primary_key=True)
    place_id: Mapped[str] = mapped_column(String(255), nullable=False)
    place_name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    region: Mapped[str] = mapped_column(String(64), nullable=False)
    strangeness_score: Mapped[float] = mapped_column(Float, nullable=False)
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_leaderboard_place_region", "place_id", "region", unique=True),
        Index("ix_leaderboard_place_id", "place_id"),
    )
