"""
heatmap.py — Pydantic models for the wildfire-risk heatmap.

A heatmap is a set of HeatCells per forecast Horizon. The pipeline in
services/heatmap.py picks one horizon's cells, drops everything below the
user's threshold and emits a HeatLayer for the map surface to draw.

Cell intensity is a probability in [0, 1] supplied by the upstream model;
nothing here computes it.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Horizon(str, Enum):
    """Forecast time bucket."""
    H6 = "6h"
    H12 = "12h"
    H24 = "24h"


class HeatCell(BaseModel):
    """A single (location, intensity) sample for one horizon."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    intensity: float = Field(..., ge=0.0, le=1.0)
    horizon: Horizon


class HeatLayerOptions(BaseModel):
    """Rendering options handed to the heat layer widget."""
    radius: int = 25
    blur: int = 15
    max_opacity: float = Field(default=0.5, ge=0.0, le=1.0)


class HeatLayer(BaseModel):
    """Renderable output: [lat, lng, intensity] triples plus options."""

    horizon: Horizon
    threshold: float
    points: list[tuple[float, float, float]]
    options: HeatLayerOptions
