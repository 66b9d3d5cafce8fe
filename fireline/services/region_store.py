"""
RegionStoreClient — async calls against the Fireline region service.

Every call goes to the single configured host (settings.api_base_url).
The client keeps no region state of its own; the reconciliation engine
decides what to call and what to do with the answer.

Failure mapping:
  httpx.TransportError (connect, read, timeout) → TransportError
  non-2xx response                              → ServerError(status_code)
  2xx with an unusable body                     → ServerError

A 404 on delete is an ordinary ServerError; callers must not treat
"already gone" as a separate case.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from fireline.core.config import settings
from fireline.core.errors import ServerError, TransportError
from fireline.models.region import RegionCreated, RegionOut, RegionPayload
from fireline.models.risk import RiskPoint

logger = logging.getLogger(__name__)

_REGION_LIST = TypeAdapter(list[RegionOut])
_RISK_LIST = TypeAdapter(list[RiskPoint])


class RegionStoreClient:
    """
    Thin async wrapper around the region service REST API.

    Usage:
        async with RegionStoreClient() as store:
            regions = await store.list("a@x.com")
            region_id = await store.create("a@x.com", "Drawn region", geojson)

    Pass `transport` to route requests somewhere other than the network
    (httpx.ASGITransport in tests, httpx.MockTransport for failure cases).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.request_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "RegionStoreClient":
        return self

    async def __aexit__(self, *_exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Regions ───────────────────────────────────────────────────────────────

    async def list(self, identity: str) -> list[RegionOut]:
        """Return the confirmed regions owned by `identity`, in store order."""
        data = await self._request("GET", "/api/regions", params={"email": identity})
        try:
            return _REGION_LIST.validate_python(data)
        except PydanticValidationError as exc:
            logger.error("Malformed region list for %s: %s", identity, exc)
            raise ServerError("Region service returned a malformed region list") from exc

    async def create(self, identity: str, name: str, geometry: dict[str, Any]) -> str:
        """
        Create a region and return the id assigned by the store.

        Either an id comes back or this raises; there is no partial success.
        """
        payload = RegionPayload(email=identity, name=name, geojson=geometry)
        data = await self._request("POST", "/api/regions", json=payload.model_dump())
        try:
            return RegionCreated.model_validate(data).region_id
        except PydanticValidationError as exc:
            logger.error("Create response missing regionId: %r", data)
            raise ServerError("Region service did not return a region id") from exc

    async def update(self, region_id: str, identity: str, name: str, geometry: dict[str, Any]) -> None:
        payload = RegionPayload(email=identity, name=name, geojson=geometry)
        await self._request(
            "PUT",
            f"/api/regions/{region_id}",
            params={"email": identity},
            json=payload.model_dump(),
        )

    async def delete(self, region_id: str, identity: str) -> None:
        await self._request("DELETE", f"/api/regions/{region_id}", params={"email": identity})

    # ── Risk feed ─────────────────────────────────────────────────────────────

    async def top_risk_points(self, limit: int) -> list[RiskPoint]:
        data = await self._request("GET", "/api/regional_fire_risk", params={"limit": limit})
        try:
            return _RISK_LIST.validate_python(data)
        except PydanticValidationError as exc:
            logger.error("Malformed risk point list: %s", exc)
            raise ServerError("Risk feed returned malformed points") from exc

    # ── Internals ─────────────────────────────────────────────────────────────

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Region service error: %s %s → %s — %s",
                method,
                path,
                exc.response.status_code,
                exc.response.text[:200],
            )
            raise ServerError(
                f"Region service answered {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.TransportError as exc:
            logger.error("Region service unreachable (%s %s): %s", method, path, exc)
            raise TransportError(f"Could not reach {self.base_url}") from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            logger.error("Region service sent non-JSON body for %s %s", method, path)
            raise ServerError("Region service returned an unreadable response",
                              status_code=response.status_code) from exc
