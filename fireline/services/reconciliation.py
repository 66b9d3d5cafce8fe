"""
reconciliation.py — Region Reconciliation Engine.

Keeps the locally drawn set of subscription regions consistent with the
region service for the active identity.

HOW IT WORKS
────────────
Every user action mutates local state synchronously (optimistic-first),
then dispatches the matching store call as a background task:

  on_create  → pending region appears now, POST runs in the background
  on_edit    → geometry replaced now, PUT runs in the background
  on_delete  → regions vanish now, one DELETE per distinct region runs
               concurrently and the batch is awaited as a group

Background calls for the same region go through a KeyedSerializer, so a
create, an edit and a delete issued in that order reach the store in that
order (last accepted wins). An edit or delete issued while the create is
still in flight waits for the store id.

Each call is tagged with the identity and resync generation active when it
was dispatched. A response that arrives after the identity changed is
dropped on the floor: no state change, no compensation, no notification.

When a call fails, its compensating inverse runs:

  create failed  → the pending region and its layer are removed
  update failed  → geometry goes back to the last store-acknowledged shape
                   (unless a newer local edit is still queued behind it)
  delete failed  → the region is put back with a fresh layer

Render handles never carry region ids. RenderTable maps Region.key ↔ handle.
"""

import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol

from fireline.core.errors import DeleteBatchError, FirelineError, ValidationError
from fireline.models.region import Region, RegionOut, RegionStatus
from fireline.services.notifications import LogNotifier, Notifier
from fireline.services.render_table import RenderSurface, RenderTable
from fireline.services.serializer import KeyedSerializer

logger = logging.getLogger(__name__)

DEFAULT_REGION_NAME = "Drawn region"


class RegionStore(Protocol):
    async def list(self, identity: str) -> list[RegionOut]: ...

    async def create(self, identity: str, name: str, geometry: dict) -> str: ...

    async def update(self, region_id: str, identity: str, name: str, geometry: dict) -> None: ...

    async def delete(self, region_id: str, identity: str) -> None: ...


class RegionReconciliationEngine:
    def __init__(
        self,
        store: RegionStore,
        surface: RenderSurface,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._store = store
        self._surface = surface
        self._notifier = notifier or LogNotifier()
        # id-or-pending-token → Region
        self._mapping: dict[str, Region] = {}
        self._handles = RenderTable()
        self._serializer = KeyedSerializer()
        self._identity: Optional[str] = None
        self._generation = 0
        self._tasks: set[asyncio.Task] = set()

    # ── Read side ─────────────────────────────────────────────────────────────

    @property
    def identity(self) -> Optional[str]:
        return self._identity

    @property
    def mapping(self) -> dict[str, Region]:
        return dict(self._mapping)

    def regions(self) -> list[Region]:
        return list(self._mapping.values())

    def region_for(self, handle: Any) -> Optional[Region]:
        key = self._handles.key_for(handle)
        return self._find(key) if key is not None else None

    def handle_for(self, region: Region) -> Optional[Any]:
        return self._handles.handle_for(region.key)

    # ── Resync ────────────────────────────────────────────────────────────────

    async def resync(self, identity: str) -> None:
        """
        Replace the local set with the store's regions for `identity`.

        Everything held locally is dropped up front. Regions the user draws
        while the list call is in flight are kept and merged after the
        store's regions. Failures are reported and leave the set empty.
        """
        self._identity = identity
        self._generation += 1
        generation = self._generation
        self._drop_all()
        logger.info("Resyncing regions for %s (generation %d)", identity, generation)

        try:
            listed = await self._store.list(identity)
        except FirelineError as exc:
            if self._is_current(identity, generation):
                self._notifier.error(f"Could not load regions: {exc.message}")
            return

        if not self._is_current(identity, generation):
            logger.debug("Discarding region list for superseded resync of %s", identity)
            return

        arrived_meanwhile = list(self._mapping.values())
        by_id = {r.id: r for r in arrived_meanwhile if r.id is not None}
        merged: dict[str, Region] = {}

        for entry in listed:
            existing = by_id.pop(entry.id, None)
            if existing is not None:
                merged[entry.id] = existing
                continue
            if entry.id in merged:
                logger.warning("Store listed region %s twice; keeping the first", entry.id)
                continue
            region = Region(
                owner=identity,
                name=entry.name,
                geometry=entry.geojson,
                id=entry.id,
                status=RegionStatus.CONFIRMED,
                remote_geometry=entry.geojson,
            )
            merged[entry.id] = region
            self._handles.bind(region.key, self._surface.add_region(region.geometry))

        for region in arrived_meanwhile:
            if region.mapping_key not in merged:
                merged[region.mapping_key] = region

        self._mapping = merged
        logger.info("Loaded %d regions for %s", len(listed), identity)

    # ── Local mutations ───────────────────────────────────────────────────────

    def on_create(
        self,
        geometry: dict[str, Any],
        name: str = DEFAULT_REGION_NAME,
        handle: Any = None,
    ) -> Region:
        """
        Add a pending region and start saving it. Returns without waiting.

        `handle` is the layer the drawing toolkit already put on the map;
        when omitted (uploads) the surface is asked to draw one.
        """
        identity = self._require_identity()
        region = Region(owner=identity, name=name, geometry=geometry)
        self._mapping[region.mapping_key] = region
        self._handles.bind(region.key, handle if handle is not None else self._surface.add_region(geometry))
        self._dispatch(region.key, partial(self._create, region, identity, self._generation, geometry))
        return region

    def on_edit(self, handle: Any, new_geometry: dict[str, Any]) -> Optional[Region]:
        """Replace a region's geometry in place and start the update."""
        identity = self._require_identity()
        region = self.region_for(handle)
        if region is None:
            logger.warning("Edit for an unknown layer ignored")
            return None

        region.geometry = new_geometry
        region.revision += 1
        self._dispatch(region.key, partial(self._update, region, identity, new_geometry, region.revision))
        return region

    def on_delete(self, handles: Iterable[Any]) -> "asyncio.Task[None]":
        """
        Remove the regions behind `handles` and delete them remotely.

        Handles that point at the same region count once. Returns the batch
        task; awaiting it waits for every delete in the batch.
        """
        identity = self._require_identity()
        targets: list[Region] = []
        seen: set[str] = set()
        for handle in handles:
            key = self._handles.key_for(handle)
            if key is None or key in seen:
                continue
            seen.add(key)
            region = self._find(key)
            if region is not None:
                targets.append(region)

        for region in targets:
            del self._mapping[region.mapping_key]
            # The toolkit already took the layer off the map.
            self._handles.unbind(region.key)
            region.status = RegionStatus.DELETING

        return self._spawn(self._delete_batch(targets, identity))

    # ── Background work ───────────────────────────────────────────────────────

    async def drain(self) -> None:
        """Wait until every dispatched call has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _create(self, region: Region, identity: str, generation: int, geometry: dict) -> None:
        try:
            region_id = await self._store.create(identity, region.name, geometry)
        except FirelineError as exc:
            if self._is_stale(identity) or region.status is RegionStatus.DELETING:
                return
            self._forget(region)
            self._notifier.error(f"Could not save region: {exc.message}")
            return

        if self._is_stale(identity):
            logger.debug("Discarding create ack for %s after identity switch", identity)
            return

        region.id = region_id
        # Edits made while the POST was in flight are not part of the ack.
        region.remote_geometry = geometry
        if region.status is RegionStatus.DELETING:
            # A delete is queued behind us and will use the id.
            return

        if self._mapping.get(region.key) is region:
            del self._mapping[region.key]
            if region_id in self._mapping:
                # A resync already brought this region in.
                self._unrender(region)
            else:
                region.status = RegionStatus.CONFIRMED
                self._mapping[region_id] = region
        elif generation != self._generation and region_id not in self._mapping:
            # Dropped by a resync for the same identity that did not list it yet.
            region.status = RegionStatus.CONFIRMED
            self._mapping[region_id] = region
            self._handles.bind(region.key, self._surface.add_region(region.geometry))

        logger.info("Region %s saved for %s", region_id, identity)
        self._notifier.success("Region saved")

    async def _update(self, region: Region, identity: str, geometry: dict, revision: int) -> None:
        if region.id is None or region.status is RegionStatus.DELETING:
            logger.debug("Skipping update for region %s (unsaved or deleted)", region.key)
            return
        try:
            await self._store.update(region.id, identity, region.name, geometry)
        except FirelineError as exc:
            if self._is_stale(identity):
                return
            reverted = self._revert_geometry(region, revision)
            suffix = " Changes were reverted." if reverted else ""
            self._notifier.error(f"Could not update region: {exc.message}.{suffix}")
            return

        if self._is_stale(identity):
            return
        region.remote_geometry = geometry
        logger.info("Region %s updated", region.id)

    async def _delete_batch(self, regions: list[Region], identity: str) -> None:
        if not regions:
            return
        results = await asyncio.gather(
            *(self._serializer.run(r.key, partial(self._delete_one, r, identity)) for r in regions),
            return_exceptions=True,
        )

        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, FirelineError):
                raise result

        if self._is_stale(identity):
            logger.debug("Discarding delete results for %s after identity switch", identity)
            return

        failures: dict[str, FirelineError] = {}
        for region, result in zip(regions, results):
            if isinstance(result, FirelineError):
                failures[region.id or region.key] = result
                self._restore(region)

        if failures:
            error = DeleteBatchError(failures)
            logger.warning("%s: %s", error.message, ", ".join(failures))
            self._notifier.error(f"{error.message}; they were restored")
            return

        noun = "region" if len(regions) == 1 else "regions"
        self._notifier.success(f"Deleted {len(regions)} {noun}")

    async def _delete_one(self, region: Region, identity: str) -> None:
        if region.id is None:
            # The create never succeeded, so there is nothing remote to delete.
            return
        await self._store.delete(region.id, identity)
        logger.info("Region %s deleted", region.id)

    # ── Compensation ──────────────────────────────────────────────────────────

    def _forget(self, region: Region) -> None:
        if self._mapping.get(region.mapping_key) is region:
            del self._mapping[region.mapping_key]
        self._unrender(region)

    def _revert_geometry(self, region: Region, revision: int) -> bool:
        if region.revision != revision or region.remote_geometry is None:
            return False
        if self._mapping.get(region.mapping_key) is not region:
            return False
        region.geometry = region.remote_geometry
        handle = self._handles.handle_for(region.key)
        if handle is not None:
            self._surface.update_region(handle, region.geometry)
        return True

    def _restore(self, region: Region) -> None:
        region.status = RegionStatus.CONFIRMED
        if region.id is None or region.id in self._mapping:
            return
        self._mapping[region.id] = region
        self._handles.bind(region.key, self._surface.add_region(region.geometry))

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _dispatch(self, key: str, operation: Callable[[], Awaitable[None]]) -> "asyncio.Task[None]":
        return self._spawn(self._serializer.run(key, operation))

    def _spawn(self, coro: Awaitable[None]) -> "asyncio.Task[None]":
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: "asyncio.Task[None]") -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Region sync task crashed", exc_info=task.exception())

    def _require_identity(self) -> str:
        if not self._identity:
            raise ValidationError("Enter your email address first")
        return self._identity

    def _is_stale(self, identity: str) -> bool:
        return identity != self._identity

    def _is_current(self, identity: str, generation: int) -> bool:
        return identity == self._identity and generation == self._generation

    def _find(self, key: str) -> Optional[Region]:
        for region in self._mapping.values():
            if region.key == key:
                return region
        return None

    def _unrender(self, region: Region) -> None:
        handle = self._handles.unbind(region.key)
        if handle is not None:
            self._surface.remove_region(handle)

    def _drop_all(self) -> None:
        for handle in self._handles.clear():
            self._surface.remove_region(handle)
        for region in self._mapping.values():
            if region.status is RegionStatus.PENDING:
                logger.debug("Dropping unconfirmed region %s on resync", region.key)
        self._mapping.clear()
