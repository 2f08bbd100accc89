"""
Demo route handlers.

Endpoints:
- POST /parse - identity view (map + roster) for suspect selection
- POST /stats - full match statistics for moderator review
"""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from tribunal.api.shared import (
    DemoPayload,
    decode_demo_payload,
    get_app_config,
    get_statistics_cache,
    require_worker_secret,
    temporary_demo,
)
from tribunal.core.config import TribunalConfig
from tribunal.core.extraction import extract_identity_async, extract_statistics_async
from tribunal.infra.cache import StatisticsCache

logger = logging.getLogger(__name__)

router = APIRouter(tags=["demo"], dependencies=[Depends(require_worker_secret)])


@router.post("/parse")
async def parse_demo(
    payload: DemoPayload,
    config: TribunalConfig = Depends(get_app_config),
) -> dict[str, Any]:
    """Map and roster of an uploaded demo. An empty roster means manual suspect entry."""
    data = decode_demo_payload(payload, config.worker.max_upload_mb)
    with temporary_demo(data) as demo_path:
        try:
            view = await extract_identity_async(demo_path, timeout=config.parser.parse_timeout_s)
        except TimeoutError as e:
            raise HTTPException(status_code=504, detail="Demo parsing timed out") from e
    return view.to_dict()


@router.post("/stats")
async def demo_stats(
    payload: DemoPayload,
    config: TribunalConfig = Depends(get_app_config),
    cache: StatisticsCache | None = Depends(get_statistics_cache),
) -> dict[str, Any]:
    """Full statistics view, served from the result cache when the demo was seen before."""
    data = decode_demo_payload(payload, config.worker.max_upload_mb)
    with temporary_demo(data) as demo_path:
        if cache is not None:
            cached = await asyncio.to_thread(cache.get, demo_path)
            if cached is not None:
                return cached.to_dict()

        try:
            view = await extract_statistics_async(demo_path, timeout=config.parser.parse_timeout_s)
        except TimeoutError as e:
            raise HTTPException(status_code=504, detail="Demo parsing timed out") from e

        if cache is not None:
            await asyncio.to_thread(cache.put, demo_path, view)
    return view.to_dict()
