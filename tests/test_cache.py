from datetime import datetime, timedelta

import pytest
from conftest import make_profile

from profile_analysis.cache.store import ProfileCache


@pytest.fixture
def cache(tmp_path):
    c = ProfileCache(str(tmp_path / "cache.db"), ttl_hours=24)
    yield c
    c.close()


def _age_entry(cache, username, hours):
    old = (datetime.now() - timedelta(hours=hours)).isoformat()
    cache.conn.execute("UPDATE profile_cache SET created_at = ? WHERE username = ?", (old, username))
    cache.conn.commit()


def test_round_trip(cache):
    cache.set(make_profile("Creator"))
    assert cache.get("CREATOR") is not None
    cached = cache.get("creator")
    assert cached.username == "Creator"
    assert cached.followers_count == 12000
    assert cached.latest_posts[0].caption == "Morning workout"


def test_miss(cache):
    assert cache.get("nobody") is None


def test_expired_entry_is_a_miss(cache):
    cache.set(make_profile("stale"))
    _age_entry(cache, "stale", hours=25)
    assert cache.get("stale") is None


def test_purge_expired(cache):
    cache.set(make_profile("stale"))
    cache.set(make_profile("fresh"))
    _age_entry(cache, "stale", hours=48)

    assert cache.purge_expired() == 1
    assert cache.stats()["count"] == 1


def test_stats_and_clear(cache):
    cache.set(make_profile("a"))
    cache.set(make_profile("b"))
    stats = cache.stats()
    assert stats["count"] == 2
    assert stats["ttl_hours"] == 24

    cache.clear_all()
    assert cache.stats()["count"] == 0


def test_unreadable_entry_is_a_miss(cache):
    cache.conn.execute(
        "INSERT INTO profile_cache VALUES (?, ?, ?)", ("broken", "{not json", datetime.now().isoformat()),
    )
    cache.conn.commit()
    assert cache.get("broken") is None


def test_unopenable_database_degrades_to_miss(tmp_path):
    c = ProfileCache(str(tmp_path / "missing-dir" / "cache.db"))
    assert c.conn is None
    assert c.get("anyone") is None
    c.set(make_profile("anyone"))
    assert c.stats() == {}
