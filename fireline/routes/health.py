"""
health.py — Region service status.

  GET /health

Answers 200 whenever the process is up and says which parts of the
region service are actually usable:

  regions      "available" when the regions collection answers a count,
               otherwise "unavailable" (region routes will 503)
  risk_source  "database" when fire_risk can be read, otherwise "seed"
               (GET /api/regional_fire_risk serves the built-in points)
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from fireline.core.config import settings
from fireline.core.database import get_db

logger = logging.getLogger(__name__)
router = APIRouter()


class ServiceStatus(BaseModel):
    status: Literal["ok"] = "ok"
    version: str
    environment: str
    regions: Literal["available", "unavailable"]
    region_count: Optional[int] = None
    risk_source: Literal["database", "seed"]


async def _count(db, collection: str) -> Optional[int]:
    if db is None:
        return None
    try:
        return await db[collection].estimated_document_count()
    except Exception as exc:
        logger.warning("Health check could not read %s: %s", collection, exc)
        return None


@router.get("", response_model=ServiceStatus, summary="Region service status")
async def service_status(db=Depends(get_db)) -> ServiceStatus:
    region_count = await _count(db, "regions")
    risk_count = await _count(db, "fire_risk")

    return ServiceStatus(
        version="0.1.0",
        environment=settings.environment,
        regions="available" if region_count is not None else "unavailable",
        region_count=region_count,
        # An empty fire_risk collection is still the live source.
        risk_source="database" if risk_count is not None else "seed",
    )
