from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.deps import get_comic_repository, get_comic_service
from app.api.v1.schemas import ComicRead
from app.core.entities import Comic, utcnow
from app.repositories.comics import ComicRepository
from app.services.comic_generation import ComicGenerationService, GenerationResult, load_cached_comic


router = APIRouter(tags=["comics"])


def _comic_read(comic: Comic, leaderboard_status: str | None = None) -> ComicRead:
    return ComicRead(
        comic_id=comic.comic_id,
        place_id=comic.place_id,
        place_name=comic.place_name,
        narrative=comic.narrative,
        strangeness_score=comic.strangeness_score,
        panel_count=comic.panel_count,
        image_url=comic.image_url,
        created_at=comic.created_at,
        expires_at=comic.expires_at,
        is_cached=comic.is_cached,
        leaderboard_status=leaderboard_status,
    )


def _result_read(result: GenerationResult) -> ComicRead:
    status = result.leaderboard.status.value if result.leaderboard is not None else None
    return _comic_read(result.comic, status)


@router.post("/comics/{place_id}", response_model=ComicRead)
def generate_comic(
    place_id: str,
    force_regenerate: bool = Query(default=False),
    service: ComicGenerationService = Depends(get_comic_service),
):
    return _result_read(service.generate(place_id, force_regenerate=force_regenerate))


@router.get("/comics/{place_id}", response_model=ComicRead)
def get_comic(place_id: str, comics: ComicRepository = Depends(get_comic_repository)):
    comic = load_cached_comic(comics, place_id, utcnow())
    if comic is None:
        raise HTTPException(status_code=404, detail="comic not found")
    return _comic_read(comic)
