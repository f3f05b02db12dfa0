from fastapi import APIRouter, Depends, Query

from app.api.deps import get_leaderboard_repository
from app.api.v1.schemas import LeaderboardEntryRead, LeaderboardRead
from app.repositories.leaderboard import MAX_TOP_LIMIT, LeaderboardRepository, normalize_region


router = APIRouter(tags=["leaderboard"])

REGION_PATTERN = r"^[A-Za-z]{2}(-[A-Za-z0-9]+)*$"


@router.get("/leaderboard", response_model=LeaderboardRead)
def get_leaderboard(
    region: str = Query(default="US", pattern=REGION_PATTERN, max_length=32),
    limit: int = Query(default=10, ge=1, le=MAX_TOP_LIMIT),
    leaderboard: LeaderboardRepository = Depends(get_leaderboard_repository),
):
    region = normalize_region(region)
    entries = leaderboard.get_top(region, limit)
    return LeaderboardRead(
        region=region,
        entries=[LeaderboardEntryRead.model_validate(entry) for entry in entries],
        count=len(entries),
    )
