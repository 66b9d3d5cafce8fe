"""
heatmap.py — Heatmap Pipeline.

Pure transform from a horizon-keyed probability dataset to a renderable
HeatLayer:

    dataset[horizon]  →  select_bucket  →  filter_by_threshold  →  HeatLayer

The pipeline never talks to the network and does not care which identity
is active. Changing horizon, threshold or opacity recomputes `layer`.

USAGE
─────
    pipeline = HeatmapPipeline(SEED_HEAT_DATA)
    pipeline.set_horizon("12h")
    pipeline.set_threshold(0.5)
    pipeline.layer.points   # → [(34.055, -118.245, 0.8), (34.065, -118.255, 0.6), ...]
"""

import logging
from typing import Iterable, Mapping, Optional, Sequence, Union

from fireline.core.config import settings
from fireline.core.errors import ValidationError
from fireline.models.heatmap import HeatCell, HeatLayer, HeatLayerOptions, Horizon

logger = logging.getLogger(__name__)

HeatRecords = Mapping[Union[Horizon, str], Iterable[Sequence[float]]]

# ── Seed data ─────────────────────────────────────────────────────────────────
#
# Demo grid around Los Angeles, one list of [lat, lng, intensity] per horizon.
# Replace with the upstream model's output in production.
SEED_HEAT_DATA: dict[str, list[list[float]]] = {
    "6h": [
        [34.055, -118.245, 0.6],
        [34.065, -118.255, 0.4],
        [34.045, -118.235, 0.7],
    ],
    "12h": [
        [34.055, -118.245, 0.8],
        [34.065, -118.255, 0.6],
        [34.045, -118.235, 0.5],
    ],
    "24h": [
        [34.055, -118.245, 0.9],
        [34.065, -118.255, 0.7],
        [34.045, -118.235, 0.6],
    ],
}


def parse_horizon(value: Union[Horizon, str]) -> Horizon:
    try:
        return Horizon(value)
    except ValueError:
        raise ValidationError(f"Unknown forecast horizon: {value!r}")


def build_dataset(records: HeatRecords) -> dict[Horizon, tuple[HeatCell, ...]]:
    """Turn {horizon: [[lat, lng, intensity], ...]} into immutable cell tuples."""
    dataset: dict[Horizon, tuple[HeatCell, ...]] = {}
    for key, rows in records.items():
        horizon = parse_horizon(key)
        dataset[horizon] = tuple(
            HeatCell(latitude=lat, longitude=lng, intensity=intensity, horizon=horizon)
            for lat, lng, intensity in rows
        )
    return dataset


def filter_by_threshold(cells: Iterable[HeatCell], threshold: float) -> list[HeatCell]:
    """Exactly the cells with intensity ≥ threshold, in input order."""
    return [c for c in cells if c.intensity >= threshold]


def _check_unit(name: str, value: float) -> float:
    if not 0.0 <= value <= 1.0:
        raise ValidationError(f"{name} must be between 0 and 1, got {value}")
    return value


class HeatmapPipeline:
    def __init__(
        self,
        records: Optional[HeatRecords] = None,
        horizon: Optional[Union[Horizon, str]] = None,
        threshold: Optional[float] = None,
        opacity: Optional[float] = None,
    ) -> None:
        self._dataset = build_dataset(records if records is not None else SEED_HEAT_DATA)
        self._horizon = parse_horizon(horizon or settings.default_horizon)
        self._threshold = _check_unit(
            "threshold", threshold if threshold is not None else settings.default_threshold
        )
        self._options = HeatLayerOptions(
            radius=settings.heat_radius,
            blur=settings.heat_blur,
            max_opacity=_check_unit("opacity", opacity if opacity is not None else settings.heat_opacity),
        )
        self.layer = self._compute()

    @property
    def horizon(self) -> Horizon:
        return self._horizon

    @property
    def threshold(self) -> float:
        return self._threshold

    def select_bucket(self, horizon: Union[Horizon, str]) -> tuple[HeatCell, ...]:
        """The fixed cell sequence for `horizon` (empty if no data was supplied)."""
        return self._dataset.get(parse_horizon(horizon), ())

    def set_horizon(self, horizon: Union[Horizon, str]) -> HeatLayer:
        self._horizon = parse_horizon(horizon)
        return self._refresh()

    def set_threshold(self, threshold: float) -> HeatLayer:
        self._threshold = _check_unit("threshold", threshold)
        return self._refresh()

    def set_opacity(self, opacity: float) -> HeatLayer:
        self._options = self._options.model_copy(update={"max_opacity": _check_unit("opacity", opacity)})
        return self._refresh()

    def _refresh(self) -> HeatLayer:
        self.layer = self._compute()
        logger.debug(
            "Heat layer %s @ %.2f → %d points",
            self._horizon.value,
            self._threshold,
            len(self.layer.points),
        )
        return self.layer

    def _compute(self) -> HeatLayer:
        cells = filter_by_threshold(self.select_bucket(self._horizon), self._threshold)
        return HeatLayer(
            horizon=self._horizon,
            threshold=self._threshold,
            points=[(c.latitude, c.longitude, c.intensity) for c in cells],
            options=self._options,
        )
