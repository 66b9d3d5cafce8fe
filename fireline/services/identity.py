"""
identity.py — Identity Resolver.

The active identity is the user's email. It partitions region ownership:
every region call carries it, and switching it throws away every local
region and resyncs from the store.

IdentityStore persists one named slot in a small JSON document so the last
email comes back on the next start. IdentityResolver validates,
normalizes, persists and activates; activation awaits every registered
listener (MapSession registers the region resync and the risk feed fetch).
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from fireline.core.config import settings
from fireline.core.errors import ValidationError

logger = logging.getLogger(__name__)

ActivationListener = Callable[[str], Awaitable[None]]


def normalize_identity(raw: Optional[str]) -> str:
    identity = (raw or "").strip().lower()
    if not identity:
        raise ValidationError("Enter your email address first")
    return identity


class IdentityStore:
    """A single named storage slot backed by a JSON file."""

    def __init__(self, path: Optional[str] = None, slot: Optional[str] = None) -> None:
        self.path = Path(path or settings.identity_state_path).expanduser()
        self.slot = slot or settings.identity_slot

    def read(self) -> Optional[str]:
        document = self._load()
        value = document.get(self.slot)
        return value if isinstance(value, str) and value.strip() else None

    def write(self, identity: str) -> bool:
        """Persist `identity`. Returns False (and logs) if the file cannot be written."""
        document = self._load()
        document[self.slot] = identity
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not save identity to %s: %s", self.path, exc)
            return False
        return True

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable identity file %s: %s", self.path, exc)
            return {}
        return document if isinstance(document, dict) else {}


class IdentityResolver:
    def __init__(self, store: Optional[IdentityStore] = None) -> None:
        self._store = store or IdentityStore()
        self._listeners: list[ActivationListener] = []
        self.current: Optional[str] = None

    def on_activate(self, listener: ActivationListener) -> None:
        self._listeners.append(listener)

    async def load(self) -> Optional[str]:
        """Activate the persisted identity, if there is one."""
        stored = self._store.read()
        if stored is None:
            logger.info("No saved identity")
            return None
        identity = normalize_identity(stored)
        await self._activate(identity)
        return identity

    async def submit(self, raw: str) -> str:
        """
        Validate, normalize, persist and activate `raw`.

        A failed save still activates; the identity just is not remembered
        across restarts.
        """
        identity = normalize_identity(raw)
        self._store.write(identity)
        await self._activate(identity)
        return identity

    async def _activate(self, identity: str) -> None:
        previous, self.current = self.current, identity
        if previous and previous != identity:
            logger.info("Identity switched from %s to %s", previous, identity)
        else:
            logger.info("Identity active: %s", identity)
        await asyncio.gather(*(listener(identity) for listener in self._listeners))
