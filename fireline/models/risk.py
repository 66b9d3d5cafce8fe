"""
risk.py — Risk point returned by GET /api/regional_fire_risk.
"""

from datetime import datetime
from typing import Union

from pydantic import BaseModel, Field


class RiskPoint(BaseModel):
    """A discrete high-probability location shown as a map marker."""

    id: Union[int, str]
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    probability: float = Field(..., ge=0.0, le=1.0)
    timestamp: datetime
