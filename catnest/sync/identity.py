"""Per-stream identity index used to deduplicate arrivals."""

from __future__ import annotations

from typing import Iterable, Set


class IdentitySet:
    """Every id ever accepted for one logical stream.

    Grows monotonically while the stream is open; only teardown clears it.
    """

    def __init__(self, ids: Iterable[str] = ()) -> None:
        self._ids: Set[str] = set(ids)

    def add(self, item_id: str) -> bool:
        """Record ``item_id``; returns False when it was already known."""
        if item_id in self._ids:
            return False
        self._ids.add(item_id)
        return True

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def clear(self) -> None:
        self._ids.clear()
