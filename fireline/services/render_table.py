"""
render_table.py — Bidirectional region key ↔ render handle table.

The map surface hands back opaque handle objects (layers). Instead of
tagging those objects with a region id, the engine records the pairing
here. Handles are compared by identity, so unhashable or mutable layer
objects work too.
"""

from typing import Any, Iterator, Optional, Protocol


class RenderSurface(Protocol):
    """What the engine needs from the external map widget."""

    def add_region(self, geometry: dict) -> Any:
        """Draw a region and return its handle."""

    def update_region(self, handle: Any, geometry: dict) -> None:
        """Redraw an existing handle with new geometry."""

    def remove_region(self, handle: Any) -> None:
        """Take a handle off the map."""


class RenderTable:
    def __init__(self) -> None:
        self._handle_by_key: dict[str, Any] = {}
        self._key_by_handle: dict[int, str] = {}

    def bind(self, key: str, handle: Any) -> None:
        old = self._handle_by_key.get(key)
        if old is not None:
            self._key_by_handle.pop(id(old), None)
        previous_key = self._key_by_handle.get(id(handle))
        if previous_key is not None and previous_key != key:
            self._handle_by_key.pop(previous_key, None)
        self._handle_by_key[key] = handle
        self._key_by_handle[id(handle)] = key

    def unbind(self, key: str) -> Optional[Any]:
        handle = self._handle_by_key.pop(key, None)
        if handle is not None:
            self._key_by_handle.pop(id(handle), None)
        return handle

    def handle_for(self, key: str) -> Optional[Any]:
        return self._handle_by_key.get(key)

    def key_for(self, handle: Any) -> Optional[str]:
        return self._key_by_handle.get(id(handle))

    def clear(self) -> list[Any]:
        handles = list(self._handle_by_key.values())
        self._handle_by_key.clear()
        self._key_by_handle.clear()
        return handles

    def __len__(self) -> int:
        return len(self._handle_by_key)

    def __iter__(self) -> Iterator[tuple[str, Any]]:
        return iter(list(self._handle_by_key.items()))
