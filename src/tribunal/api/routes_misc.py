"""
Miscellaneous route handlers.

Endpoints:
- GET /health - health check
- GET /cache/stats - statistics result cache counters
- POST /cache/clear - drop cached statistics
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends

from tribunal import __version__
from tribunal.api.shared import get_statistics_cache, require_worker_secret
from tribunal.infra.cache import StatisticsCache

logger = logging.getLogger(__name__)

router = APIRouter(tags=["misc"])


@router.get("/health")
async def health() -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "version": __version__}


@router.get("/cache/stats", dependencies=[Depends(require_worker_secret)])
async def cache_stats(
    cache: StatisticsCache | None = Depends(get_statistics_cache),
) -> dict[str, Any]:
    if cache is None:
        return {"enabled": False}
    return {"enabled": True, **cache.get_stats().to_dict()}


@router.post("/cache/clear", dependencies=[Depends(require_worker_secret)])
async def cache_clear(
    cache: StatisticsCache | None = Depends(get_statistics_cache),
) -> dict[str, Any]:
    removed = cache.clear() if cache is not None else 0
    return {"success": True, "removed": removed}
