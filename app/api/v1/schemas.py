from datetime import datetime

from pydantic import BaseModel, Field


class ComicRead(BaseModel):
    comic_id: str
    place_id: str
    place_name: str
    narrative: str
    strangeness_score: float = Field(ge=0, le=100)
    panel_count: int = Field(ge=1, le=4)
    image_url: str
    created_at: datetime
    expires_at: datetime
    is_cached: bool
    leaderboard_status: str | None = Field(
        default=None,
        description="Outcome of the best-effort leaderboard write; null when served from cache",
    )

    model_config = {"from_attributes": True}


class LeaderboardEntryRead(BaseModel):
    rank: int
    place_id: str
    place_name: str
    address: str
    region: str
    strangeness_score: float
    image_url: str
    last_updated: datetime

    model_config = {"from_attributes": True}


class LeaderboardRead(BaseModel):
    region: str
    entries: list[LeaderboardEntryRead]
    count: int


class TakedownCreate(BaseModel):
    place_id: str = Field(min_length=1, max_length=255)
    reason: str | None = Field(default=None, max_length=2000)


class TakedownStepRead(BaseModel):
    status: str
    count: int = 0
    error: str | None = None


class TakedownRead(BaseModel):
    request_id: str | None
    place_id: str
    complete: bool
    cache: TakedownStepRead
    blob: TakedownStepRead
    leaderboard: TakedownStepRead
    message: str
