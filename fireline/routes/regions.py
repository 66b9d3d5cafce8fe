"""
regions.py — Subscription region routes.

Routes:
  GET    /api/regions?email=E          — the caller's regions, oldest first
  POST   /api/regions                  — create, returns {"regionId": ...}
  PUT    /api/regions/{id}?email=E     — replace name + geometry
  DELETE /api/regions/{id}?email=E     — remove

Regions are partitioned by email: every lookup filters on it, so one
identity can never read, change or delete another identity's regions (a
foreign id simply answers 404).

All routes answer 503 when MongoDB is unavailable.

TESTING
───────
  pytest tests/test_region_routes.py -v

  curl "http://localhost:4000/api/regions?email=a@x.com"
  curl -X POST http://localhost:4000/api/regions \
       -H 'Content-Type: application/json' \
       -d '{"email": "a@x.com", "name": "Home", "geojson": {"type": "Polygon", "coordinates": [[[0,0],[1,0],[1,1],[0,0]]]}}'
"""

import logging
from datetime import datetime, timezone

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from fireline.core.database import get_db
from fireline.core.rate_limit import WRITE_LIMIT, limiter
from fireline.models.region import Ack, RegionCreated, RegionOut, RegionPayload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/regions", tags=["regions"])


# ── Helpers ───────────────────────────────────────────────────────────────────

def _require_db(db):
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    return db


def _validate_oid(region_id: str) -> ObjectId:
    try:
        return ObjectId(region_id)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=422, detail="Invalid region ID format")


def _normalize_email(email: str) -> str:
    email = email.strip().lower()
    if not email:
        raise HTTPException(status_code=422, detail="email is required")
    return email


def _doc_to_region(doc: dict) -> RegionOut:
    return RegionOut(id=str(doc["_id"]), name=doc.get("name", ""), geojson=doc.get("geojson") or {})


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get("", response_model=list[RegionOut])
async def list_regions(
    email: str = Query(..., min_length=1, max_length=320),
    db=Depends(get_db),
):
    """Return every region owned by `email`, in creation order."""
    db = _require_db(db)
    cursor = db["regions"].find({"email": _normalize_email(email)}).sort("created_at", 1)

    regions = []
    async for doc in cursor:
        try:
            regions.append(_doc_to_region(doc))
        except Exception as exc:
            logger.warning("Skipping malformed region doc: %s", exc)
    return regions


@router.post("", response_model=RegionCreated, response_model_by_alias=True, status_code=201)
@limiter.limit(WRITE_LIMIT)
async def create_region(request: Request, payload: RegionPayload, db=Depends(get_db)):
    """Store a new region and return its id."""
    db = _require_db(db)
    now = datetime.now(tz=timezone.utc)
    doc = {
        "email": _normalize_email(payload.email),
        "name": payload.name,
        "geojson": payload.geojson,
        "created_at": now,
        "updated_at": now,
    }
    result = await db["regions"].insert_one(doc)
    logger.info("Region %s created for %s", result.inserted_id, doc["email"])
    return RegionCreated(region_id=str(result.inserted_id))


@router.put("/{region_id}", response_model=Ack)
@limiter.limit(WRITE_LIMIT)
async def update_region(
    request: Request,
    region_id: str,
    payload: RegionPayload,
    email: str = Query(..., min_length=1, max_length=320),
    db=Depends(get_db),
):
    """Replace a region's name and geometry. The id never changes."""
    db = _require_db(db)
    owner = _normalize_email(email)
    if _normalize_email(payload.email) != owner:
        raise HTTPException(status_code=422, detail="Body email does not match query email")

    result = await db["regions"].update_one(
        {"_id": _validate_oid(region_id), "email": owner},
        {"$set": {
            "name": payload.name,
            "geojson": payload.geojson,
            "updated_at": datetime.now(tz=timezone.utc),
        }},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Region not found")
    return Ack()


@router.delete("/{region_id}", response_model=Ack)
@limiter.limit(WRITE_LIMIT)
async def delete_region(
    request: Request,
    region_id: str,
    email: str = Query(..., min_length=1, max_length=320),
    db=Depends(get_db),
):
    """Remove a region owned by `email`."""
    db = _require_db(db)
    result = await db["regions"].delete_one(
        {"_id": _validate_oid(region_id), "email": _normalize_email(email)}
    )
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Region not found")
    logger.info("Region %s deleted", region_id)
    return Ack()
