from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.core.entities import Comic, LeaderboardEntry
from app.core.exceptions import InvalidInputError, StorageError
from app.repositories.comics import ComicRepository
from app.repositories.leaderboard import LeaderboardRepository
from app.services.storage import blob_key_for
from app.services.takedown import TakedownService, TakedownStepStatus


def _seed(db, artifact_store, place_id="place-1"):
    comic = ComicRepository(db).upsert(
        Comic(
            comic_id="comic-1",
            place_id=place_id,
            place_name="The Odd Fork",
            narrative="Odd.",
            strangeness_score=80,
            image_url="/media/comic-1.png",
        )
    )
    artifact_store.put(blob_key_for(comic.comic_id), b"png")
    leaderboard = LeaderboardRepository(db)
    for region in ("US", "GB"):
        leaderboard.upsert(
            LeaderboardEntry(
                place_id=place_id,
                place_name="The Odd Fork",
                address="1 Main St",
                region=region,
                strangeness_score=80,
                image_url=comic.image_url,
            )
        )
    return comic


def _service(db, artifact_store, /, **overrides) -> TakedownService:
    return TakedownService(
        comics=overrides.get("comics") or ComicRepository(db),
        leaderboard=overrides.get("leaderboard") or LeaderboardRepository(db),
        artifact_store=overrides.get("artifact_store") or artifact_store,
    )


def test_removes_every_trace(db, artifact_store):
    _seed(db, artifact_store)

    result = _service(db, artifact_store).take_down("place-1", reason="owner request")

    assert result.complete
    assert result.cache.status == TakedownStepStatus.REMOVED
    assert result.blob.status == TakedownStepStatus.REMOVED
    assert result.leaderboard.status == TakedownStepStatus.REMOVED
    assert result.leaderboard.count == 2
    assert ComicRepository(db).get("place-1") is None
    assert not artifact_store.exists("comic-1.png")
    assert LeaderboardRepository(db).get_top("US", 10) == []


def test_unknown_place_is_absent_everywhere(db, artifact_store):
    result = _service(db, artifact_store).take_down("never-seen")

    assert result.complete
    assert {result.cache.status, result.blob.status, result.leaderboard.status} == {TakedownStepStatus.ABSENT}


def test_missing_blob_is_reported_absent(db, artifact_store):
    _seed(db, artifact_store)
    artifact_store.delete("comic-1.png")

    result = _service(db, artifact_store).take_down("place-1")

    assert result.complete
    assert result.blob.status == TakedownStepStatus.ABSENT
    assert result.cache.status == TakedownStepStatus.REMOVED


def test_failed_step_does_not_stop_the_others(db, artifact_store):
    _seed(db, artifact_store)
    broken_store = MagicMock()
    broken_store.delete.side_effect = StorageError("disk gone", store="blob")

    result = _service(db, artifact_store, artifact_store=broken_store).take_down("place-1")

    assert not result.complete
    assert result.blob.status == TakedownStepStatus.FAILED
    assert "disk gone" in result.blob.error
    assert result.cache.status == TakedownStepStatus.REMOVED
    assert result.leaderboard.status == TakedownStepStatus.REMOVED


def test_unreadable_cache_fails_cache_and_blob_steps(db, artifact_store):
    comics = MagicMock()
    comics.get.side_effect = OperationalError("select", {}, Exception("db locked"))

    result = _service(db, artifact_store, comics=comics).take_down("place-1")

    assert not result.complete
    assert result.cache.status == TakedownStepStatus.FAILED
    assert result.blob.status == TakedownStepStatus.FAILED
    assert result.leaderboard.status == TakedownStepStatus.ABSENT


def test_blank_place_id_is_rejected(db, artifact_store):
    with pytest.raises(InvalidInputError):
        _service(db, artifact_store).take_down("  ")
