"""Tests for the statistics result cache: hashing, hit/miss and cleanup."""

from __future__ import annotations

import gzip
import os
import time

from tribunal.core.constants import RoundEndLabel, Side
from tribunal.core.schemas import DemoHeader, MatchStatisticsView, PlayerMatchStats, RoundOutcome
from tribunal.infra.cache import CacheStats, StatisticsCache, compute_file_hash


def sample_view() -> MatchStatisticsView:
    return MatchStatisticsView(
        header=DemoHeader(map_name="de_mirage", server_name="srv", playback_seconds=1800),
        score_ct=13,
        score_t=7,
        rounds=[RoundOutcome(1, Side.CT, RoundEndLabel.BOMB_DEFUSED), RoundOutcome(2, None, RoundEndLabel.UNKNOWN)],
        players=[
            PlayerMatchStats(
                name="alpha", steam_id="76561198000000001", team=Side.CT,
                kills=20, deaths=10, assists=4, headshots=11, damage=2100, rounds_played=20,
            )
        ],
        score_source="round_end_events",
        warnings=["player_hurt: missing field"],
    )


class TestHashComputation:
    def test_compute_file_hash_consistency(self, tmp_path):
        test_file = tmp_path / "test.dem"
        test_file.write_bytes(b"HL2DEMO demo bytes")
        assert compute_file_hash(test_file) == compute_file_hash(test_file)
        assert len(compute_file_hash(test_file)) == 64

    def test_compute_file_hash_different_files(self, tmp_path):
        file_a = tmp_path / "a.dem"
        file_b = tmp_path / "b.dem"
        file_a.write_bytes(b"content A")
        file_b.write_bytes(b"content B")
        assert compute_file_hash(file_a) != compute_file_hash(file_b)


class TestCacheStats:
    def test_hit_rate_zero_total(self):
        assert CacheStats(total_entries=0, total_size_bytes=0).hit_rate == 0.0

    def test_hit_rate_calculation(self):
        assert CacheStats(total_entries=5, total_size_bytes=1000, hit_count=3, miss_count=7).hit_rate == 30.0


class TestStatisticsCache:
    def test_miss_then_hit(self, tmp_path):
        demo = tmp_path / "match.dem"
        demo.write_bytes(b"demo-1")
        cache = StatisticsCache(tmp_path / "cache")

        assert cache.get(demo) is None
        cache.put(demo, sample_view())
        cached = cache.get(demo)

        assert cached is not None
        assert cached.to_dict() == sample_view().to_dict()
        stats = cache.get_stats()
        assert stats.hit_count == 1
        assert stats.miss_count == 1
        assert stats.total_entries == 1

    def test_keyed_by_content_not_path(self, tmp_path):
        first = tmp_path / "first.dem"
        second = tmp_path / "second.dem"
        first.write_bytes(b"same bytes")
        second.write_bytes(b"same bytes")
        cache = StatisticsCache(tmp_path / "cache")

        cache.put(first, sample_view())
        assert cache.get(second) is not None

    def test_corrupt_entry_is_miss(self, tmp_path):
        demo = tmp_path / "match.dem"
        demo.write_bytes(b"demo-2")
        cache = StatisticsCache(tmp_path / "cache")
        path = cache.cache_dir / f"{cache.get_cache_key(demo)}.json.gz"
        with gzip.open(path, "wt") as f:
            f.write("{not json")

        assert cache.get(demo) is None

    def test_invalidate_and_clear(self, tmp_path):
        demo = tmp_path / "match.dem"
        demo.write_bytes(b"demo-3")
        cache = StatisticsCache(tmp_path / "cache")

        cache.put(demo, sample_view())
        cache.invalidate(demo)
        assert cache.get(demo) is None

        cache.put(demo, sample_view())
        assert cache.clear() == 1
        assert cache.get_stats().total_entries == 0

    def test_cleanup_by_age(self, tmp_path):
        demo = tmp_path / "match.dem"
        demo.write_bytes(b"demo-4")
        cache = StatisticsCache(tmp_path / "cache", max_age_days=1)
        cache.put(demo, sample_view())

        path = cache.cache_dir / f"{cache.get_cache_key(demo)}.json.gz"
        old = time.time() - 3 * 86400
        os.utime(path, (old, old))

        assert cache.cleanup() == 1
        assert cache.get(demo) is None
