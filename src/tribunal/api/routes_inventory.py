"""
Inventory valuation route handlers.

Endpoints:
- GET /inventory/{steam_id} - cached or freshly computed valuation
- POST /submissions/{submission_id}/inventory - recompute and store on a submission
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from tribunal.api.shared import (
    get_database,
    get_valuator,
    require_worker_secret,
    validate_steam_id,
    validate_submission_id,
)
from tribunal.infra.database import DatabaseManager
from tribunal.pricing.valuation import InventoryValuator, refresh_submission_inventory

logger = logging.getLogger(__name__)

router = APIRouter(tags=["inventory"], dependencies=[Depends(require_worker_secret)])


@router.get("/inventory/{steam_id}")
async def get_inventory_value(
    steam_id: str,
    force: bool = Query(default=False, description="Ignore the cached valuation"),
    valuator: InventoryValuator = Depends(get_valuator),
) -> dict[str, Any]:
    """Inventory value of a player. Source failures come back in the ``error`` field."""
    validate_steam_id(steam_id)
    try:
        valuation = await valuator.valuate(steam_id, force_refresh=force)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"steam_id64": steam_id, **valuation.to_dict()}


@router.post("/submissions/{submission_id}/inventory")
async def refresh_submission_value(
    submission_id: str,
    db: DatabaseManager = Depends(get_database),
    valuator: InventoryValuator = Depends(get_valuator),
) -> dict[str, Any]:
    """Recompute the suspect's inventory value and write it onto the submission."""
    validate_submission_id(submission_id)
    try:
        valuation = await refresh_submission_inventory(db, valuator, submission_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    logger.info(f"Refreshed inventory value for submission {submission_id}")
    return {"success": True, "submission_id": submission_id, **valuation.to_dict()}
