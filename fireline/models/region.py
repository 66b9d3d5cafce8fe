"""
region.py — Region types for both sides of the wire.

Separation of concerns:
  Region         — the client's local, mutable view of one subscription area
  RegionStatus   — pending | confirmed | deleting
  RegionPayload  — what the client sends on create / update
  RegionOut      — what GET /api/regions returns per region
  RegionCreated  — response body of POST /api/regions
  Ack            — response body of PUT / DELETE

Geometry is always a GeoJSON object (dict). The client never stores a
render handle on a Region; MapSession's RenderTable owns that mapping.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class RegionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DELETING = "deleting"


def new_pending_token() -> str:
    return f"pending-{uuid.uuid4().hex}"


@dataclass
class Region:
    """One locally held subscription region."""

    owner: str
    name: str
    geometry: dict[str, Any]
    id: Optional[str] = None
    status: RegionStatus = RegionStatus.PENDING
    # Stable local key; doubles as the pending token until the store assigns an id.
    key: str = field(default_factory=new_pending_token)
    # Bumped on every local geometry mutation.
    revision: int = 0
    # Last geometry the store acknowledged; None until the first ack.
    remote_geometry: Optional[dict[str, Any]] = None

    @property
    def mapping_key(self) -> str:
        """id once confirmed, pending token before that."""
        return self.id if self.id is not None else self.key


# ── Wire models ───────────────────────────────────────────────────────────────

class RegionPayload(BaseModel):
    """Body for POST /api/regions and PUT /api/regions/{id}."""
    email: str = Field(..., min_length=1, max_length=320)
    name: str = Field(..., min_length=1, max_length=200)
    geojson: dict[str, Any]


class RegionOut(BaseModel):
    """One entry of GET /api/regions."""
    id: str
    name: str
    geojson: dict[str, Any]


class RegionCreated(BaseModel):
    """Response for POST /api/regions."""
    model_config = ConfigDict(populate_by_name=True)

    region_id: str = Field(..., alias="regionId", min_length=1)


class Ack(BaseModel):
    """Response for PUT and DELETE."""
    ok: bool = True
