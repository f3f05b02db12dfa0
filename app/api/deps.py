from collections.abc import Generator
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core import provider_factory
from app.core.settings import settings
from app.core.single_flight import SingleFlight
from app.db.session import get_db
from app.repositories.comics import ComicRepository
from app.repositories.leaderboard import LeaderboardRepository
from app.services.comic_generation import ComicGenerationService
from app.services.takedown import TakedownService
from app.services.text_overlay import add_text_overlay

_single_flight = SingleFlight()


def db_session() -> Generator[Session, None, None]:
    yield from get_db()


DbSessionDep = Depends(db_session)


@lru_cache(maxsize=1)
def get_place_source():
    return provider_factory.build_place_source()


@lru_cache(maxsize=1)
def get_narrative_analyzer():
    return provider_factory.build_narrative_analyzer()


@lru_cache(maxsize=1)
def get_image_synthesizer():
    return provider_factory.build_image_synthesizer()


@lru_cache(maxsize=1)
def get_artifact_store():
    return provider_factory.build_artifact_store()


def close_provider_clients() -> None:
    """Close the HTTP pools of providers built so far and forget them."""
    for getter in (get_place_source, get_image_synthesizer):
        if getter.cache_info().currsize:
            getter().close()
        getter.cache_clear()


def get_overlay():
    font_path = settings.overlay_font_path

    def overlay(image_bytes: bytes, narrative: str, panel_count: int) -> bytes:
        return add_text_overlay(image_bytes, narrative, panel_count, font_path=font_path)

    return overlay


def get_single_flight() -> SingleFlight:
    return _single_flight


def get_comic_repository(db: Session = DbSessionDep) -> ComicRepository:
    return ComicRepository(db, cache_duration=settings.cache_duration)


def get_leaderboard_repository(db: Session = DbSessionDep) -> LeaderboardRepository:
    return LeaderboardRepository(db)


def get_comic_service(
    places=Depends(get_place_source),
    analyzer=Depends(get_narrative_analyzer),
    synthesizer=Depends(get_image_synthesizer),
    overlay=Depends(get_overlay),
    artifact_store=Depends(get_artifact_store),
    comics: ComicRepository = Depends(get_comic_repository),
    leaderboard: LeaderboardRepository = Depends(get_leaderboard_repository),
    single_flight: SingleFlight = Depends(get_single_flight),
) -> ComicGenerationService:
    return ComicGenerationService(
        places=places,
        analyzer=analyzer,
        synthesizer=synthesizer,
        overlay=overlay,
        artifact_store=artifact_store,
        comics=comics,
        leaderboard=leaderboard,
        single_flight=single_flight,
        min_reviews=settings.min_reviews,
        selection_cap=settings.selection_cap,
        leaderboard_min_score=settings.leaderboard_min_score,
    )


def get_takedown_service(
    comics: ComicRepository = Depends(get_comic_repository),
    leaderboard: LeaderboardRepository = Depends(get_leaderboard_repository),
    artifact_store=Depends(get_artifact_store),
) -> TakedownService:
    return TakedownService(comics=comics, leaderboard=leaderboard, artifact_store=artifact_store)
