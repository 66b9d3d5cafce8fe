"""
test_session.py — MapSession end to end.

The session talks to the real routes through RegionStoreClient +
ASGITransport, with FakeDB behind them and FakeSurface standing in for the
map widget. Every user-facing outcome is read off the RecordingNotifier.
"""

import json

import pytest
from bson import ObjectId

from conftest import LA_BOX, SQUARE
from fireline.core import bootstrap
from fireline.services.identity import IdentityResolver, IdentityStore
from fireline.session import MapSession

A = "a@x.com"
B = "b@y.com"


@pytest.fixture()
async def session(surface, store_client, notifier, identity_store):
    session = MapSession(
        surface,
        store=store_client,
        notifier=notifier,
        resolver=IdentityResolver(identity_store),
    )
    await session.start()
    yield session
    await session.engine.drain()


async def add_risk_point(fake_db, point_id, probability, lat=34.1, lng=-118.2):
    await fake_db["fire_risk"].insert_one({
        "point_id": point_id, "latitude": lat, "longitude": lng,
        "probability": probability, "timestamp": "2025-04-26T10:00:00Z",
    })


class TestStart:

    async def test_shows_heat_layer_and_waits_for_identity(self, session, surface):
        assert len(surface.heat_layers) == 1
        assert surface.heat_layers[0].horizon.value == "6h"
        assert session.resolver.current is None
        assert surface.layers == []

    async def test_saved_identity_loads_regions(self, surface, store_client, notifier, identity_store):
        await store_client.create(A, "Home", SQUARE)
        identity_store.write(A)

        session = MapSession(surface, store=store_client, notifier=notifier,
                             resolver=IdentityResolver(identity_store))
        assert await session.start() == A
        assert [r.name for r in session.engine.regions()] == ["Home"]
        assert len(surface.layers) == 1


class TestIdentity:

    async def test_submit_loads_regions_and_risk_points(self, session, surface, store_client, fake_db):
        await store_client.create(A, "Home", SQUARE)
        await store_client.create(B, "Cabin", SQUARE)
        await add_risk_point(fake_db, "p1", 0.9)

        assert await session.submit_identity(" A@x.com ") == A

        assert [r.name for r in session.engine.regions()] == ["Home"]
        assert [p.id for p in surface.risk_points] == ["p1"]

    async def test_blank_identity_is_reported(self, session, notifier):
        assert await session.submit_identity("  ") is None
        assert notifier.of_level("error") == ["Enter your email address first"]

    async def test_unwritable_identity_file_is_not_fatal(self, surface, store_client, notifier, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("", encoding="utf-8")
        await store_client.create(A, "Home", SQUARE)
        session = MapSession(surface, store=store_client, notifier=notifier,
                             resolver=IdentityResolver(IdentityStore(path=str(blocker / "state.json"))))
        await session.start()

        assert await session.submit_identity(A) == A
        assert [r.name for r in session.engine.regions()] == ["Home"]
        assert notifier.of_level("error") == []

    async def test_switch_replaces_regions(self, session, surface, store_client):
        await store_client.create(A, "Home", SQUARE)
        await store_client.create(B, "Cabin", SQUARE)

        await session.submit_identity(A)
        await session.submit_identity(B)

        assert [r.owner for r in session.engine.regions()] == [B]
        assert len(surface.layers) == 1


class TestDraw:

    async def test_draw_without_identity_removes_shape(self, session, surface, notifier):
        layer = surface.draw(SQUARE)

        assert session.draw_region(SQUARE, handle=layer) is None
        assert layer not in surface.layers
        assert notifier.of_level("error") == ["Enter your email address first"]

    async def test_draw_saves_region(self, session, surface, store_client, notifier):
        await session.submit_identity(A)
        layer = surface.draw(SQUARE)

        region = session.draw_region(SQUARE, handle=layer)
        await session.engine.drain()

        assert region.id is not None
        assert session.engine.handle_for(region) is layer
        assert [r.id for r in await store_client.list(A)] == [region.id]
        assert notifier.of_level("success") == ["Subscription region created", "Region saved"]

    async def test_draw_over_risk_point_warns(self, session, surface, fake_db, notifier):
        await add_risk_point(fake_db, "p1", 0.9)
        await session.submit_identity(A)

        session.draw_region(LA_BOX, handle=surface.draw(LA_BOX))
        assert notifier.of_level("warning") == ["Fire risk detected inside this region!"]

    async def test_draw_elsewhere_does_not_warn(self, session, surface, fake_db, notifier):
        await add_risk_point(fake_db, "p1", 0.9)
        await session.submit_identity(A)

        session.draw_region(SQUARE, handle=surface.draw(SQUARE))
        assert notifier.of_level("warning") == []


class TestUpload:

    async def test_upload_adds_region(self, session, surface, store_client, notifier):
        await session.submit_identity(A)

        region = session.upload_geojson(json.dumps({"type": "Feature", "geometry": SQUARE}))
        await session.engine.drain()

        assert region.name == "Uploaded region"
        assert len(surface.layers) == 1
        assert [r.name for r in await store_client.list(A)] == ["Uploaded region"]
        assert "GeoJSON region added" in notifier.of_level("info")

    async def test_bad_file_changes_nothing(self, session, surface, store_client, notifier):
        await store_client.create(A, "Home", SQUARE)
        await session.submit_identity(A)
        before = session.engine.mapping

        assert session.upload_geojson("{ this is not geojson") is None
        await session.engine.drain()

        assert session.engine.mapping == before
        assert len(surface.layers) == 1
        assert len(await store_client.list(A)) == 1
        assert notifier.of_level("error") == ["Invalid GeoJSON file: not valid JSON"]

    async def test_upload_requires_identity(self, session, surface, notifier):
        assert session.upload_geojson(json.dumps(SQUARE)) is None
        assert surface.layers == []
        assert notifier.of_level("error") == ["Enter your email address first"]


class TestEditAndDelete:

    async def test_edit_is_saved(self, session, surface, store_client):
        await store_client.create(A, "Home", SQUARE)
        await session.submit_identity(A)
        layer = surface.layers[0]

        assert len(session.edit_regions([(layer, LA_BOX)])) == 1
        await session.engine.drain()

        assert (await store_client.list(A))[0].geojson == LA_BOX

    async def test_delete_one_of_two(self, session, surface, store_client, notifier):
        keep = await store_client.create(A, "Keep", SQUARE)
        drop = await store_client.create(A, "Drop", LA_BOX)
        await session.submit_identity(A)

        handle = session.engine.handle_for(session.engine.mapping[drop])
        surface.remove_region(handle)
        await session.delete_regions([handle])

        assert [r.id for r in await store_client.list(A)] == [keep]
        assert list(session.engine.mapping) == [keep]
        assert notifier.of_level("success") == ["Deleted 1 region"]

    async def test_failed_delete_is_restored(self, session, surface, store_client, fake_db, notifier):
        region_id = await store_client.create(A, "Home", SQUARE)
        await session.submit_identity(A)
        # Gone on the server behind the session's back.
        await fake_db["regions"].delete_one({"_id": ObjectId(region_id)})

        handle = session.engine.handle_for(session.engine.mapping[region_id])
        surface.remove_region(handle)
        await session.delete_regions([handle])

        assert list(session.engine.mapping) == [region_id]
        assert len(surface.layers) == 1
        assert notifier.of_level("error") == ["Failed to delete 1 region; they were restored"]


class TestHeatmapControls:

    async def test_threshold_redraws_layer(self, session, surface):
        session.set_threshold(0.5)
        assert len(surface.heat_layers[-1].points) == 2

        session.set_threshold(0.65)
        assert len(surface.heat_layers[-1].points) == 1

    async def test_horizon_redraws_layer(self, session, surface):
        session.set_horizon("24h")
        assert surface.heat_layers[-1].horizon.value == "24h"

    async def test_invalid_control_is_reported(self, session, surface, notifier):
        shown = len(surface.heat_layers)
        layer = session.set_opacity(2.0)

        assert layer.options.max_opacity == 0.5
        assert len(surface.heat_layers) == shown
        assert notifier.of_level("error") == ["opacity must be between 0 and 1, got 2.0"]


async def test_risk_points_need_initialize(surface, store_client, notifier, identity_store, monkeypatch):
    monkeypatch.setattr(bootstrap, "_marker_icons", None)
    session = MapSession(surface, store=store_client, notifier=notifier,
                         resolver=IdentityResolver(identity_store))
    with pytest.raises(RuntimeError):
        await session.refresh_risk_points()
