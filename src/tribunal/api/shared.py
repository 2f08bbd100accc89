"""
Shared utilities for the Tribunal worker API.

Contains validation, worker-secret authentication, request models, the
temporary demo file helper and the dependency getters used by every route
module.
"""

import base64
import binascii
import hmac
import logging
import re
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from fastapi import HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from tribunal.core.config import TribunalConfig
from tribunal.infra.cache import StatisticsCache
from tribunal.infra.database import DatabaseManager
from tribunal.pricing.valuation import InventoryValuator

logger = logging.getLogger(__name__)

# =============================================================================
# Input Validation Patterns
# =============================================================================

STEAM_ID_PATTERN = re.compile(r"^\d{17}$")
SUBMISSION_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


def validate_steam_id(steam_id: str) -> str:
    """Validate steam_id format. Raises HTTPException if invalid."""
    if not steam_id or not STEAM_ID_PATTERN.match(steam_id):
        raise HTTPException(status_code=400, detail="Invalid steam_id: must be exactly 17 digits")
    return steam_id


def validate_submission_id(submission_id: str) -> str:
    """Validate submission id format. Raises HTTPException if invalid."""
    if not submission_id or not SUBMISSION_ID_PATTERN.match(submission_id):
        raise HTTPException(
            status_code=400,
            detail="Invalid submission id: must be alphanumeric, 1-64 characters",
        )
    return submission_id


# =============================================================================
# Request Models
# =============================================================================


class DemoPayload(BaseModel):
    """Demo bytes sent by the web app, base64 encoded."""

    model_config = ConfigDict(populate_by_name=True)

    demo_buffer: str | None = Field(default=None, alias="demoBuffer")


# =============================================================================
# Dependencies
# =============================================================================


def get_app_config(request: Request) -> TribunalConfig:
    return request.app.state.config


def get_database(request: Request) -> DatabaseManager:
    return request.app.state.db


def get_valuator(request: Request) -> InventoryValuator:
    return request.app.state.valuator


def get_statistics_cache(request: Request) -> StatisticsCache | None:
    return request.app.state.statistics_cache


def require_worker_secret(request: Request) -> None:
    """Reject requests without the shared bearer secret, when one is configured."""
    secret = request.app.state.config.worker.secret
    if not secret:
        return
    expected = f"Bearer {secret}"
    supplied = request.headers.get("authorization", "")
    if not hmac.compare_digest(supplied.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")


# =============================================================================
# Demo payload handling
# =============================================================================


def decode_demo_payload(payload: DemoPayload, max_upload_mb: int) -> bytes:
    """Decode the base64 demo bytes. Raises HTTPException on bad input."""
    if not payload.demo_buffer:
        raise HTTPException(status_code=400, detail="Missing demoBuffer")
    try:
        data = base64.b64decode(payload.demo_buffer, validate=True)
    except (binascii.Error, ValueError) as e:
        raise HTTPException(status_code=400, detail="Invalid demoBuffer: not base64") from e
    if not data:
        raise HTTPException(status_code=400, detail="Missing demoBuffer")
    if len(data) > max_upload_mb * 1024 * 1024:
        raise HTTPException(
            status_code=413, detail=f"Demo too large. Maximum size: {max_upload_mb}MB"
        )
    return data


@contextmanager
def temporary_demo(data: bytes) -> Iterator[Path]:
    """Write demo bytes to a private temp directory, removed on exit."""
    temp_dir = Path(tempfile.mkdtemp(prefix="demo-"))
    try:
        demo_path = temp_dir / "demo.dem"
        demo_path.write_bytes(data)
        yield demo_path
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)
