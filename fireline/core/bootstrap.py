"""
bootstrap.py — One-time process setup.

initialize() must be called once at application startup (MapSession.start
and the FastAPI lifespan both do). Nothing in this package configures
logging or registers assets as an import side effect.

It does two things:
  1. Configures the root logger (DEBUG when settings.debug).
  2. Registers the default marker icon assets that the map surface uses
     when drawing risk points.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fireline.core.config import settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


@dataclass(frozen=True)
class MarkerIcons:
    icon_url: str
    icon_retina_url: str
    shadow_url: str


_marker_icons: Optional[MarkerIcons] = None


def initialize() -> MarkerIcons:
    """Configure logging and register marker assets. Safe to call twice."""
    global _marker_icons

    if _marker_icons is not None:
        return _marker_icons

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format=LOG_FORMAT,
    )
    _marker_icons = MarkerIcons(
        icon_url=settings.marker_icon_url,
        icon_retina_url=settings.marker_icon_retina_url,
        shadow_url=settings.marker_shadow_url,
    )
    logger.info("Fireline initialized (env: %s, api: %s)", settings.environment, settings.api_base_url)
    return _marker_icons


def marker_icons() -> MarkerIcons:
    if _marker_icons is None:
        raise RuntimeError("initialize() has not been called")
    return _marker_icons
