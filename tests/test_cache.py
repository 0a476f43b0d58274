"""Tests for the business detail cache."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch

# ── Core operations ──────────────────────────────────────────────────


class TestBusinessDetailCacheBasics:
    def test_get_returns_none_for_missing_key(self, detail_cache):
        assert detail_cache.get("nonexistent") is None

    def test_set_and_get(self, detail_cache, clock):
        detail_cache.set("biz-1", {"rating": 4.5, "website": "https://pepe.es"})

        entry = detail_cache.get("biz-1")

        assert entry.business_id == "biz-1"
        assert entry.data == {"rating": 4.5, "website": "https://pepe.es"}
        assert entry.cached_at == clock.now

    def test_set_merges_fields(self, detail_cache):
        detail_cache.set("biz-1", {"rating": 4.5, "website": "https://pepe.es"})
        detail_cache.set("biz-1", {"rating": 4.7})

        assert detail_cache.get("biz-1").data == {"rating": 4.7, "website": "https://pepe.es"}

    def test_set_resets_cached_at(self, detail_cache, clock):
        detail_cache.set("biz-1", {"rating": 4.5})
        later = clock.advance(hours=100)
        detail_cache.set("biz-1", {"rating": 4.6})

        assert detail_cache.get("biz-1").cached_at == later

    def test_keys_are_independent(self, detail_cache):
        detail_cache.set("biz-1", {"rating": 1})
        detail_cache.set("biz-2", {"rating": 2})
        assert detail_cache.get("biz-1").data["rating"] == 1
        assert detail_cache.get("biz-2").data["rating"] == 2


# ── TTL ──────────────────────────────────────────────────────────────


class TestBusinessDetailCacheTTL:
    def test_default_ttl_is_thirty_days(self, detail_cache):
        assert detail_cache.ttl == timedelta(hours=720)

    def test_hit_just_before_ttl(self, detail_cache, clock):
        detail_cache.set("biz-1", {"rating": 4.5})
        clock.advance(hours=719, minutes=59)
        assert detail_cache.get("biz-1") is not None

    def test_hit_exactly_at_ttl(self, detail_cache, clock):
        detail_cache.set("biz-1", {"rating": 4.5})
        clock.advance(hours=720)
        assert detail_cache.get("biz-1") is not None

    def test_miss_one_second_after_ttl(self, detail_cache, clock):
        detail_cache.set("biz-1", {"rating": 4.5})
        clock.advance(hours=720, seconds=1)
        assert detail_cache.get("biz-1") is None

    def test_refetch_after_stale_makes_entry_fresh_again(self, detail_cache, clock):
        detail_cache.set("biz-1", {"rating": 4.5})
        clock.advance(hours=800)
        assert detail_cache.get("biz-1") is None

        detail_cache.set("biz-1", {"rating": 4.8})
        assert detail_cache.get("biz-1").data["rating"] == 4.8


# ── Best-effort writes ───────────────────────────────────────────────


class TestBusinessDetailCacheWriteFailures:
    def test_write_failure_is_swallowed(self, detail_cache, db):
        with patch.object(db, "transaction", side_effect=RuntimeError("disk full")):
            detail_cache.set("biz-1", {"rating": 4.5})  # must not raise

        assert detail_cache.get("biz-1") is None

    def test_write_failure_is_logged(self, detail_cache, db, caplog):
        with patch.object(db, "transaction", side_effect=RuntimeError("disk full")):
            detail_cache.set("biz-1", {"rating": 4.5})

        assert "Cache write failed for biz-1" in caplog.text
