"""
Statistics Result Cache

Decoded match statistics keyed by the SHA-256 of the demo bytes, stored as
gzip-compressed JSON. The same demo submitted twice (or re-opened for review)
is never decoded twice.

Provides:
- Content-addressable storage (cache key = file hash + extraction version)
- Age-based cleanup
- Hit/miss accounting
"""

from __future__ import annotations

import gzip
import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from tribunal.core.schemas import MatchStatisticsView

logger = logging.getLogger(__name__)

# Cache entry max age in days
DEFAULT_MAX_AGE_DAYS = 30


def compute_file_hash(file_path: Path, chunk_size: int = 65536) -> str:
    """
    Compute SHA256 hash of a file.

    Args:
        file_path: Path to file
        chunk_size: Read chunk size in bytes

    Returns:
        Hex digest of file hash
    """
    hasher = hashlib.sha256()
    with open(file_path, "rb") as f:
        while chunk := f.read(chunk_size):
            hasher.update(chunk)
    return hasher.hexdigest()


@dataclass
class CacheStats:
    """Cache statistics."""

    total_entries: int
    total_size_bytes: int
    hit_count: int = 0
    miss_count: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hit_count + self.miss_count
        return (self.hit_count / total * 100) if total > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            "total_entries": self.total_entries,
            "total_size_mb": round(self.total_size_bytes / (1024 * 1024), 2),
            "hit_count": self.hit_count,
            "miss_count": self.miss_count,
            "hit_rate_pct": round(self.hit_rate, 1),
        }


class StatisticsCache:
    """
    File-based cache of MatchStatisticsView results.

    Entries are independent files named by key, so concurrent writers of the
    same demo converge on identical content.
    """

    # Bump when extraction output changes shape or semantics
    EXTRACTION_VERSION = "1"

    def __init__(self, cache_dir: Path, max_age_days: int = DEFAULT_MAX_AGE_DAYS):
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.max_age = timedelta(days=max_age_days)
        self._hit_count = 0
        self._miss_count = 0

    def _get_data_path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json.gz"

    def get_cache_key(self, demo_path: Path) -> str:
        """Key from the demo content hash plus extraction version."""
        return f"{compute_file_hash(Path(demo_path))}_v{self.EXTRACTION_VERSION}"

    def get(self, demo_path: Path) -> MatchStatisticsView | None:
        """Cached statistics for a demo, or None."""
        data_path = self._get_data_path(self.get_cache_key(demo_path))
        if not data_path.exists():
            self._miss_count += 1
            return None

        try:
            with gzip.open(data_path, "rt") as f:
                data = json.load(f)
            view = MatchStatisticsView.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Failed to read cached statistics: {e}")
            self._miss_count += 1
            return None

        self._hit_count += 1
        logger.debug(f"Cache hit for {Path(demo_path).name}")
        return view

    def put(self, demo_path: Path, view: MatchStatisticsView) -> None:
        """Store statistics for a demo. Write failures are logged."""
        data_path = self._get_data_path(self.get_cache_key(demo_path))
        tmp_path = data_path.with_suffix(".tmp")
        try:
            with gzip.open(tmp_path, "wt") as f:
                json.dump(view.to_dict(), f)
            tmp_path.replace(data_path)
            logger.debug(f"Cached statistics for {Path(demo_path).name}")
        except OSError as e:
            logger.warning(f"Failed to cache statistics: {e}")
            tmp_path.unlink(missing_ok=True)

    def invalidate(self, demo_path: Path) -> None:
        self._get_data_path(self.get_cache_key(demo_path)).unlink(missing_ok=True)

    def clear(self) -> int:
        """Remove every entry; returns the number removed."""
        removed = 0
        for path in self.cache_dir.glob("*.json.gz"):
            path.unlink(missing_ok=True)
            removed += 1
        self._hit_count = 0
        self._miss_count = 0
        logger.info(f"Cleared {removed} cached results")
        return removed

    def cleanup(self) -> int:
        """Remove entries older than max age."""
        cutoff = datetime.now() - self.max_age
        removed = 0
        for path in self.cache_dir.glob("*.json.gz"):
            if datetime.fromtimestamp(path.stat().st_mtime) < cutoff:
                path.unlink(missing_ok=True)
                removed += 1
        if removed:
            logger.info(f"Cleaned up {removed} cache entries by age")
        return removed

    def get_stats(self) -> CacheStats:
        files = list(self.cache_dir.glob("*.json.gz"))
        return CacheStats(
            total_entries=len(files),
            total_size_bytes=sum(p.stat().st_size for p in files),
            hit_count=self._hit_count,
            miss_count=self._miss_count,
        )
