import io
import json

import pytest
import httpx
from PIL import Image

from app.api import deps
from app.core import settings as settings_module
from app.core.entities import PlaceDetails, Review
from app.core.retry import RetryPolicy
from app.core.single_flight import SingleFlight
from app.db.base import Base
from app.db.session import get_engine, init_engine, session_scope
from app.main import app
from app.repositories.comics import ComicRepository
from app.repositories.leaderboard import LeaderboardRepository
from app.services.comic_generation import ComicGenerationService
from app.services.image_synthesizer import ImageSynthesizer
from app.services.narrative_analyzer import NarrativeAnalyzer
from app.services.storage import LocalArtifactStore
from app.services.text_overlay import add_text_overlay


@pytest.fixture(autouse=True)
def _use_test_db(tmp_path, monkeypatch):
    db_path = tmp_path / "test.db"
    database_url = f"sqlite+pysqlite:///{db_path}"

    monkeypatch.setattr(settings_module.settings, "database_url", database_url)
    monkeypatch.setattr(settings_module.settings, "db_auto_create", True)
    monkeypatch.setattr(settings_module.settings, "media_root", str(tmp_path / "media"))
    monkeypatch.setattr(settings_module.settings, "media_signing_key", "test-signing-key")
    monkeypatch.setattr(settings_module.settings, "cleanup_enabled", False)

    init_engine(database_url)
    Base.metadata.create_all(bind=get_engine())

    deps.get_place_source.cache_clear()
    deps.get_narrative_analyzer.cache_clear()
    deps.get_image_synthesizer.cache_clear()
    deps.get_artifact_store.cache_clear()

    yield

    app.dependency_overrides.clear()


@pytest.fixture()
def db():
    with session_scope() as session:
        yield session


@pytest.fixture()
async def client():
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


# ---------------------------------------------------------------------------
# Fakes for external collaborators
# ---------------------------------------------------------------------------


class FakePlaceSource:
    def __init__(self, places: dict[str, PlaceDetails] | None = None):
        self.places = places or {}
        self.calls: list[str] = []

    def get_details(self, place_id: str) -> PlaceDetails | None:
        self.calls.append(place_id)
        return self.places.get(place_id)


class FakeTextClient:
    """Returns queued replies in order; exceptions in the queue are raised."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts: list[str] = []

    def generate_text(self, prompt, **kwargs):
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeImageProvider:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes) or ["https://images.example/tmp.png"]
        self.prompts: list[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeDownloader:
    def __init__(self, data: bytes):
        self.data = data
        self.urls: list[str] = []

    def fetch(self, url: str) -> bytes:
        self.urls.append(url)
        return self.data


def make_png(width: int = 256, height: int = 256, color=(240, 200, 80)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, "PNG")
    return buffer.getvalue()


def make_reviews(ratings, text_for=None) -> list[Review]:
    text_for = text_for or (lambda i, rating: f"Review {i} with rating {rating}. " + "detail " * (i + 1))
    return [
        Review(author_name=f"author-{i}", text=text_for(i, rating), rating=rating)
        for i, rating in enumerate(ratings)
    ]


def analysis_reply(score=72, panels=3, narrative="A waiter juggled soup. The soup won. Everyone clapped.") -> str:
    return json.dumps({"strangenessScore": score, "panelCount": panels, "narrative": narrative})


@pytest.fixture()
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture()
def place() -> PlaceDetails:
    return PlaceDetails(
        place_id="place-1",
        name="The Odd Fork",
        address="1 Main St, Springfield",
        region="US",
        reviews=make_reviews([1, 1, 2, 4, 5]),
        latitude=40.0,
        longitude=-100.0,
    )


@pytest.fixture()
def artifact_store(tmp_path) -> LocalArtifactStore:
    return LocalArtifactStore(str(tmp_path / "media"), "/media", signing_key="test-signing-key")


@pytest.fixture()
def build_service(db, artifact_store, png_bytes):
    """Factory for a ComicGenerationService wired to fakes and the test database."""

    def _build(
        places=None,
        text_client=None,
        image_provider=None,
        downloader=None,
        store=None,
        comics=None,
        leaderboard=None,
        single_flight=None,
        **kwargs,
    ) -> ComicGenerationService:
        retry = RetryPolicy.no_delay()
        analyzer = NarrativeAnalyzer(text_client or FakeTextClient(analysis_reply()), retry_policy=retry)
        synthesizer = ImageSynthesizer(
            image_provider or FakeImageProvider(),
            downloader or FakeDownloader(png_bytes),
            retry_policy=retry,
        )
        return ComicGenerationService(
            places=places or FakePlaceSource(),
            analyzer=analyzer,
            synthesizer=synthesizer,
            overlay=add_text_overlay,
            artifact_store=store or artifact_store,
            comics=comics or ComicRepository(db),
            leaderboard=leaderboard or LeaderboardRepository(db),
            single_flight=single_flight or SingleFlight(),
            **kwargs,
        )

    return _build
