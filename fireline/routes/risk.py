"""
risk.py — Regional fire risk route.

Route:
  GET /api/regional_fire_risk?limit=N — highest-probability risk points first

Points come from the `fire_risk` collection, written by the upstream risk
model (or scripts/seed_db.py in development). When MongoDB is unavailable
the route serves the seed list below instead of failing, so the map still
has markers to show.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query

from fireline.core.database import get_db
from fireline.models.risk import RiskPoint

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/regional_fire_risk", tags=["risk"])


# ── Seed data ─────────────────────────────────────────────────────────────────
#
# Representative points around Los Angeles. Replace with real model output.
_SEED_TIME = datetime(2025, 4, 26, 10, 0, tzinfo=timezone.utc)

_SEED_POINTS: list[RiskPoint] = [
    RiskPoint(id=1, latitude=34.10,  longitude=-118.20, probability=0.91, timestamp=_SEED_TIME),
    RiskPoint(id=2, latitude=34.05,  longitude=-118.30, probability=0.84, timestamp=_SEED_TIME),
    RiskPoint(id=3, latitude=34.14,  longitude=-118.12, probability=0.77, timestamp=_SEED_TIME),
    RiskPoint(id=4, latitude=34.21,  longitude=-118.41, probability=0.69, timestamp=_SEED_TIME),
    RiskPoint(id=5, latitude=33.98,  longitude=-118.35, probability=0.62, timestamp=_SEED_TIME),
    RiskPoint(id=6, latitude=34.03,  longitude=-118.18, probability=0.48, timestamp=_SEED_TIME),
    RiskPoint(id=7, latitude=34.27,  longitude=-118.50, probability=0.35, timestamp=_SEED_TIME),
]


def _doc_to_point(doc: dict) -> RiskPoint:
    return RiskPoint(
        id=doc.get("point_id", str(doc.get("_id"))),
        latitude=doc["latitude"],
        longitude=doc["longitude"],
        probability=doc["probability"],
        timestamp=doc["timestamp"],
    )


@router.get("", response_model=list[RiskPoint])
async def top_risk_points(
    limit: int = Query(default=5, ge=1, le=50, description="Number of points to return"),
    db=Depends(get_db),
):
    """Return the `limit` highest-probability risk points, descending."""
    if db is not None:
        try:
            cursor = db["fire_risk"].find({}).sort("probability", -1).limit(limit)
            points = []
            async for doc in cursor:
                try:
                    points.append(_doc_to_point(doc))
                except Exception as exc:
                    logger.warning("Skipping malformed risk doc: %s", exc)
            return points
        except Exception as exc:
            # DB error is non-fatal, fall back to seed data.
            logger.warning("Risk point query failed: %s", exc)

    ranked = sorted(_SEED_POINTS, key=lambda p: p.probability, reverse=True)
    return ranked[:limit]
