from datetime import datetime, timedelta, timezone

import pytest

from app.core.entities import Comic
from app.repositories.comics import ComicRepository


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _comic(place_id: str, comic_id: str = "comic-1", score: float = 50.0) -> Comic:
    return Comic(
        comic_id=comic_id,
        place_id=place_id,
        place_name=f"Place {place_id}",
        narrative="Something odd happened.",
        strangeness_score=score,
        image_url=f"/media/{comic_id}.png",
        panel_count=2,
    )


def _repo(db, now=NOW, duration=timedelta(days=7)) -> ComicRepository:
    return ComicRepository(db, cache_duration=duration, clock=lambda: now)


def test_get_missing_returns_none(db):
    assert _repo(db).get("nowhere") is None


def test_upsert_sets_expiry_from_repository_clock(db):
    comic = _comic("p1")
    comic.expires_at = NOW + timedelta(days=365)

    stored = _repo(db).upsert(comic)

    assert stored.created_at == NOW
    assert stored.expires_at == NOW + timedelta(days=7)
    fetched = _repo(db).get("p1")
    assert fetched.expires_at == NOW + timedelta(days=7)
    assert fetched.panel_count == 2
    assert fetched.is_cached is False


def test_upsert_replaces_existing_entry(db):
    repo = _repo(db)
    repo.upsert(_comic("p1", comic_id="old"))
    later = _repo(db, now=NOW + timedelta(days=1))
    later.upsert(_comic("p1", comic_id="new", score=80.0))

    fetched = repo.get("p1")
    assert fetched.comic_id == "new"
    assert fetched.strangeness_score == 80.0
    assert fetched.expires_at == NOW + timedelta(days=8)


def test_validity_boundary(db):
    comic = _repo(db).upsert(_comic("p1"))
    expires = comic.expires_at
    assert comic.is_valid_at(expires - timedelta(seconds=1))
    assert not comic.is_valid_at(expires)
    assert not comic.is_valid_at(expires + timedelta(seconds=1))


def test_delete(db):
    repo = _repo(db)
    repo.upsert(_comic("p1"))
    assert repo.delete("p1") is True
    assert repo.delete("p1") is False
    assert repo.get("p1") is None


def test_list_expired_orders_oldest_first_and_respects_batch(db):
    for days_ago, place_id in [(3, "c"), (10, "a"), (5, "b")]:
        _repo(db, now=NOW - timedelta(days=days_ago), duration=timedelta(days=1)).upsert(_comic(place_id, comic_id=place_id))
    _repo(db).upsert(_comic("fresh", comic_id="fresh"))

    expired = _repo(db).list_expired(NOW, max_batch=10)
    assert [c.place_id for c in expired] == ["a", "b", "c"]

    first_page = _repo(db).list_expired(NOW, max_batch=2)
    assert [c.place_id for c in first_page] == ["a", "b"]


@pytest.mark.parametrize("place_id", ["", "   "])
def test_blank_place_id_is_rejected(db, place_id):
    repo = _repo(db)
    with pytest.raises(ValueError):
        repo.get(place_id)
    with pytest.raises(ValueError):
        repo.upsert(_comic(place_id))
    with pytest.raises(ValueError):
        repo.delete(place_id)


def test_list_expired_rejects_non_positive_batch(db):
    with pytest.raises(ValueError):
        _repo(db).list_expired(NOW, max_batch=0)
