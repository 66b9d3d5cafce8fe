"""
risk_feed.py — Risk Point Feed.

Fetches the highest-probability risk points from GET
/api/regional_fire_risk and holds the top N (never more than
settings.risk_point_limit) sorted by probability, highest first.

Stale-but-available: a failed fetch is reported and the previously held
points stay exactly as they were.
"""

import logging
from typing import Optional, Protocol

from fireline.core.config import settings
from fireline.core.errors import FirelineError
from fireline.models.risk import RiskPoint
from fireline.services.geometry import points_within
from fireline.services.notifications import LogNotifier, Notifier

logger = logging.getLogger(__name__)


class RiskSource(Protocol):
    async def top_risk_points(self, limit: int) -> list[RiskPoint]: ...


class RiskPointFeed:
    def __init__(self, source: RiskSource, notifier: Optional[Notifier] = None) -> None:
        self._source = source
        self._notifier = notifier or LogNotifier()
        self._points: tuple[RiskPoint, ...] = ()
        self._identity: Optional[str] = None

    @property
    def points(self) -> list[RiskPoint]:
        return list(self._points)

    async def fetch(self, limit: int = 5, identity: Optional[str] = None) -> list[RiskPoint]:
        """
        Refresh the held set and return it.

        `limit` is clamped to 1..settings.risk_point_limit: zero or a
        negative limit still asks for one point, and anything above the
        cap asks for the cap.

        `identity` tags the request; if a newer fetch for a different
        identity starts before this one returns, this response is dropped.
        """
        limit = max(1, min(limit, settings.risk_point_limit))
        if identity is not None:
            self._identity = identity
        tag = self._identity

        try:
            fetched = await self._source.top_risk_points(limit)
        except FirelineError as exc:
            if tag != self._identity:
                return self.points
            logger.warning("Risk feed fetch failed, keeping %d stale points: %s", len(self._points), exc)
            self._notifier.error(f"Could not load fire risk points: {exc.message}")
            return self.points

        if tag != self._identity:
            logger.debug("Discarding risk points fetched for %s", tag)
            return self.points

        ranked = sorted(fetched, key=lambda p: p.probability, reverse=True)[:limit]
        self._points = tuple(ranked)
        logger.info("Risk feed refreshed: %d points", len(ranked))
        return self.points

    def points_within(self, geometry: dict) -> list[RiskPoint]:
        return points_within(geometry, self._points)
