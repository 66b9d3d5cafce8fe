"""
pytest configuration and shared fixtures for the Fireline tests.

Key concern: tests must not require a live MongoDB or a running region
service. We achieve this by:
  1. Patching connect_to_mongo / close_mongo_connection to no-ops and
     setting db_client.client/db to None for every test.
  2. Overriding get_db with an in-memory FakeDB where routes need storage.
  3. Wiring RegionStoreClient to the FastAPI app through httpx's
     ASGITransport, or replacing the store entirely with FakeStore when a
     test needs to control the order in which calls complete.
"""

import asyncio
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from fireline.core import bootstrap  # noqa: E402
from fireline.core.errors import ServerError  # noqa: E402
from fireline.models.region import RegionOut  # noqa: E402
from fireline.models.risk import RiskPoint  # noqa: E402

SQUARE = {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]]}
LA_BOX = {
    "type": "Polygon",
    "coordinates": [[[-118.3, 34.0], [-118.1, 34.0], [-118.1, 34.2], [-118.3, 34.2], [-118.3, 34.0]]],
}


# ── FakeDB (regions + fire_risk collections) ──────────────────────────────────

class FakeCursor:
    def __init__(self, docs):
        self._docs = list(docs)

    def sort(self, field, direction=1):
        self._docs.sort(key=lambda d: d.get(field), reverse=direction == -1)
        return self

    def limit(self, n):
        self._docs = self._docs[:n]
        return self

    async def __aiter__(self):
        for doc in self._docs:
            yield doc


class FakeCollection:
    def __init__(self):
        self._docs: dict[str, dict] = {}

    async def insert_one(self, doc):
        oid = ObjectId()
        self._docs[str(oid)] = {**doc, "_id": oid}
        result = MagicMock()
        result.inserted_id = oid
        return result

    def find(self, query=None):
        return FakeCursor(d for d in self._docs.values() if self._matches(d, query or {}))

    async def update_one(self, query, update):
        result = MagicMock()
        result.matched_count = 0
        for doc in self._docs.values():
            if self._matches(doc, query):
                doc.update(update.get("$set", {}))
                result.matched_count = 1
                break
        return result

    async def estimated_document_count(self):
        return len(self._docs)

    async def delete_one(self, query):
        result = MagicMock()
        result.deleted_count = 0
        for key, doc in list(self._docs.items()):
            if self._matches(doc, query):
                del self._docs[key]
                result.deleted_count = 1
                break
        return result

    @staticmethod
    def _matches(doc, query):
        return all(doc.get(k) == v for k, v in query.items())


class FakeDB:
    def __init__(self):
        self._cols = {}

    def __getitem__(self, name):
        if name not in self._cols:
            self._cols[name] = FakeCollection()
        return self._cols[name]


# ── Map surface double ────────────────────────────────────────────────────────

class Layer:
    """Stands in for a map layer object. Deliberately carries no region id."""

    def __init__(self, geometry):
        self.geometry = geometry


class FakeSurface:
    def __init__(self):
        self.layers: list[Layer] = []
        self.heat_layers = []
        self.risk_points = []

    def add_region(self, geometry):
        layer = Layer(geometry)
        self.layers.append(layer)
        return layer

    def draw(self, geometry):
        """What the drawing toolkit does before firing its created event."""
        return self.add_region(geometry)

    def update_region(self, handle, geometry):
        handle.geometry = geometry

    def remove_region(self, handle):
        if handle in self.layers:
            self.layers.remove(handle)

    def show_heat_layer(self, layer):
        self.heat_layers.append(layer)

    def show_risk_points(self, points, icons):
        self.risk_points = list(points)


# ── Toast channel double ──────────────────────────────────────────────────────

@dataclass
class RecordingNotifier:
    """Keeps (level, message) pairs in order."""

    messages: list[tuple[str, str]] = field(default_factory=list)

    def info(self, message):
        self.messages.append(("info", message))

    def success(self, message):
        self.messages.append(("success", message))

    def warning(self, message):
        self.messages.append(("warning", message))

    def error(self, message):
        self.messages.append(("error", message))

    def of_level(self, level):
        return [m for lvl, m in self.messages if lvl == level]


# ── Region store double ───────────────────────────────────────────────────────

class FakeStore:
    """
    In-memory region store with gates.

    hold("create") returns an asyncio.Event; create calls block until it is
    set. fail["create"] = SomeError makes create raise after its gate.
    """

    def __init__(self):
        self.regions: dict[str, list[RegionOut]] = {}
        self.risk_points: list[RiskPoint] = []
        self.calls: list[tuple] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.fail: dict[str, Exception] = {}
        self.fail_ids: set[str] = set()
        # When True, create commits before waiting on its gate (slow response).
        self.commit_early = False
        self._next = 0

    def seed(self, identity: str, *region_ids: str) -> None:
        self.regions.setdefault(identity, []).extend(
            RegionOut(id=rid, name=f"Region {rid}", geojson=SQUARE) for rid in region_ids
        )

    def hold(self, op: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[op] = gate
        return gate

    def calls_of(self, op: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == op]

    async def _pass(self, op: str) -> None:
        gate = self.gates.get(op)
        if gate is not None:
            await gate.wait()
        if op in self.fail:
            raise self.fail[op]

    async def list(self, identity):
        self.calls.append(("list", identity))
        await self._pass("list")
        return list(self.regions.get(identity, []))

    async def create(self, identity, name, geometry):
        self.calls.append(("create", identity, name))
        self._next += 1
        region_id = f"N{self._next}"
        if self.commit_early:
            self.regions.setdefault(identity, []).append(RegionOut(id=region_id, name=name, geojson=geometry))
        await self._pass("create")
        if not self.commit_early:
            self.regions.setdefault(identity, []).append(RegionOut(id=region_id, name=name, geojson=geometry))
        return region_id

    async def update(self, region_id, identity, name, geometry):
        self.calls.append(("update", region_id, identity, geometry))
        await self._pass("update")

    async def delete(self, region_id, identity):
        self.calls.append(("delete", region_id, identity))
        await self._pass("delete")
        if region_id in self.fail_ids:
            raise ServerError("Region service answered 500", status_code=500)
        self.regions[identity] = [r for r in self.regions.get(identity, []) if r.id != region_id]

    async def top_risk_points(self, limit):
        self.calls.append(("risk", limit))
        await self._pass("risk")
        return list(self.risk_points)

    async def aclose(self):
        pass


def make_point(pid: Any, probability: float, lat: float = 34.1, lng: float = -118.2) -> RiskPoint:
    return RiskPoint(
        id=pid,
        latitude=lat,
        longitude=lng,
        probability=probability,
        timestamp=datetime(2025, 4, 26, 10, 0, tzinfo=timezone.utc),
    )


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks run up to their next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
async def mock_db():
    """
    Patch the MongoDB lifecycle for every test.

    Tests that need storage override get_db with FakeDB.
    """
    with (
        patch("fireline.core.database.connect_to_mongo", new_callable=AsyncMock),
        patch("fireline.core.database.close_mongo_connection", new_callable=AsyncMock),
    ):
        import fireline.core.database as db_module

        original_client = db_module.db_client.client
        original_db = db_module.db_client.db

        db_module.db_client.client = None
        db_module.db_client.db = None

        yield

        db_module.db_client.client = original_client
        db_module.db_client.db = original_db


@pytest.fixture(autouse=True)
def initialized(monkeypatch):
    """Fresh marker registration per test; restored afterwards."""
    monkeypatch.setattr(bootstrap, "_marker_icons", None)
    bootstrap.initialize()


@pytest.fixture()
def fake_db():
    return FakeDB()


@pytest.fixture()
async def client(mock_db):  # noqa: ARG001  mock_db must run first
    """HTTPX async test client wired to the FastAPI app (no database)."""
    from fireline.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
async def service_app(fake_db):
    """The FastAPI app with get_db pointing at FakeDB."""
    from fireline.core.database import get_db
    from fireline.main import app

    app.dependency_overrides[get_db] = lambda: fake_db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture()
async def api_client(service_app):
    async with AsyncClient(transport=ASGITransport(app=service_app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
async def store_client(service_app):
    """RegionStoreClient talking to the app in-process."""
    from fireline.services.region_store import RegionStoreClient

    store = RegionStoreClient(base_url="http://test", transport=ASGITransport(app=service_app))
    yield store
    await store.aclose()


@pytest.fixture()
def surface():
    return FakeSurface()


@pytest.fixture()
def fake_store():
    return FakeStore()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def engine(fake_store, surface, notifier):
    from fireline.services.reconciliation import RegionReconciliationEngine

    return RegionReconciliationEngine(fake_store, surface, notifier)


@pytest.fixture()
def identity_store(tmp_path):
    from fireline.services.identity import IdentityStore

    return IdentityStore(path=str(tmp_path / "state.json"), slot="fireline.email")
