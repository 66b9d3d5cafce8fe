"""
session.py — MapSession, the operation boundary for one map view.

MapSession wires the Identity Resolver, the Region Reconciliation Engine,
the Risk Point Feed and the Heatmap Pipeline to the external map surface
and toast channel. UI events come in through its methods; every
FirelineError raised while handling one is caught here and shown as one
notification. Nothing escapes to the caller.

Typical lifecycle:

    session = MapSession(surface, notifier=toasts)
    await session.start()                      # initialize() + load saved email
    await session.submit_identity("a@x.com")   # resync regions + fetch risk points
    session.draw_region(layer.geojson, handle=layer)
    session.set_threshold(0.5)
    await session.close()
"""

import asyncio
import logging
from typing import Any, Iterable, Optional, Protocol

from fireline.core.bootstrap import MarkerIcons, initialize, marker_icons
from fireline.core.errors import FirelineError, ValidationError
from fireline.models.heatmap import HeatLayer
from fireline.models.region import Region
from fireline.models.risk import RiskPoint
from fireline.services.geometry import parse_geojson
from fireline.services.heatmap import HeatmapPipeline
from fireline.services.identity import IdentityResolver
from fireline.services.notifications import LogNotifier, Notifier
from fireline.services.reconciliation import RegionReconciliationEngine
from fireline.services.region_store import RegionStoreClient
from fireline.services.render_table import RenderSurface
from fireline.services.risk_feed import RiskPointFeed

logger = logging.getLogger(__name__)

DRAWN_REGION_NAME = "Drawn region"
UPLOADED_REGION_NAME = "Uploaded region"


class MapSurface(RenderSurface, Protocol):
    """The full map widget: region layers plus the heat and marker layers."""

    def show_heat_layer(self, layer: HeatLayer) -> None: ...

    def show_risk_points(self, points: list[RiskPoint], icons: MarkerIcons) -> None: ...


class MapSession:
    def __init__(
        self,
        surface: MapSurface,
        store: Optional[RegionStoreClient] = None,
        notifier: Optional[Notifier] = None,
        resolver: Optional[IdentityResolver] = None,
        heatmap: Optional[HeatmapPipeline] = None,
    ) -> None:
        self.surface = surface
        self.notifier = notifier or LogNotifier()
        self.store = store or RegionStoreClient()
        self.resolver = resolver or IdentityResolver()
        self.engine = RegionReconciliationEngine(self.store, surface, self.notifier)
        self.feed = RiskPointFeed(self.store, self.notifier)
        self.heatmap = heatmap or HeatmapPipeline()
        self.resolver.on_activate(self._on_identity)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def start(self) -> Optional[str]:
        initialize()
        self.surface.show_heat_layer(self.heatmap.layer)
        try:
            return await self.resolver.load()
        except FirelineError as exc:
            self.notifier.error(exc.message)
            return None

    async def close(self) -> None:
        await self.engine.drain()
        await self.store.aclose()

    # ── Identity ──────────────────────────────────────────────────────────────

    async def submit_identity(self, raw: str) -> Optional[str]:
        try:
            return await self.resolver.submit(raw)
        except FirelineError as exc:
            self.notifier.error(exc.message)
            return None

    async def _on_identity(self, identity: str) -> None:
        await asyncio.gather(self.engine.resync(identity), self.refresh_risk_points(identity))

    # ── Regions ───────────────────────────────────────────────────────────────

    def draw_region(self, geometry: dict[str, Any], handle: Any = None) -> Optional[Region]:
        """A shape finished drawing on the map."""
        try:
            region = self.engine.on_create(geometry, name=DRAWN_REGION_NAME, handle=handle)
        except ValidationError as exc:
            if handle is not None:
                self.surface.remove_region(handle)
            self.notifier.error(exc.message)
            return None
        self.notifier.success("Subscription region created")
        self._warn_if_at_risk(region)
        return region

    def upload_geojson(self, text: str) -> Optional[Region]:
        """A .geojson file was selected; `text` is its content."""
        try:
            if not self.resolver.current:
                raise ValidationError("Enter your email address first")
            geometry = parse_geojson(text)
            region = self.engine.on_create(geometry, name=UPLOADED_REGION_NAME)
        except FirelineError as exc:
            self.notifier.error(exc.message)
            return None
        self.notifier.info("GeoJSON region added")
        self._warn_if_at_risk(region)
        return region

    def edit_regions(self, edits: Iterable[tuple[Any, dict[str, Any]]]) -> list[Region]:
        """Shapes were reshaped; `edits` pairs each handle with its new geometry."""
        edited = []
        try:
            for handle, geometry in edits:
                region = self.engine.on_edit(handle, geometry)
                if region is not None:
                    edited.append(region)
        except FirelineError as exc:
            self.notifier.error(exc.message)
        return edited

    def delete_regions(self, handles: Iterable[Any]) -> Optional["asyncio.Task[None]"]:
        """Shapes were removed from the map. Returns the batch task."""
        try:
            return self.engine.on_delete(handles)
        except FirelineError as exc:
            self.notifier.error(exc.message)
            return None

    def _warn_if_at_risk(self, region: Region) -> None:
        if self.feed.points_within(region.geometry):
            self.notifier.warning("Fire risk detected inside this region!")

    # ── Risk points ───────────────────────────────────────────────────────────

    async def refresh_risk_points(self, identity: Optional[str] = None) -> list[RiskPoint]:
        points = await self.feed.fetch(identity=identity or self.resolver.current)
        self.surface.show_risk_points(points, marker_icons())
        return points

    # ── Heatmap controls ──────────────────────────────────────────────────────

    def set_horizon(self, horizon: str) -> HeatLayer:
        return self._apply(self.heatmap.set_horizon, horizon)

    def set_threshold(self, threshold: float) -> HeatLayer:
        return self._apply(self.heatmap.set_threshold, threshold)

    def set_opacity(self, opacity: float) -> HeatLayer:
        return self._apply(self.heatmap.set_opacity, opacity)

    def _apply(self, setter, value) -> HeatLayer:
        try:
            layer = setter(value)
        except FirelineError as exc:
            self.notifier.error(exc.message)
            return self.heatmap.layer
        self.surface.show_heat_layer(layer)
        return layer
