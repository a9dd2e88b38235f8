"""
Query cache with an explicit invalidate-and-refetch contract.

Collections are cached under a key ("tasks", "projects", "clients",
"activities"). Mutations never patch cached data; they invalidate the key
and the next fetch reloads it from the source.
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from .events import BoardEvents

TASKS = "tasks"
PROJECTS = "projects"
CLIENTS = "clients"
ACTIVITIES = "activities"


@dataclass
class _Entry:
    data: Any = None
    loaded: bool = False
    stale: bool = True
    version: int = 0


class QueryCache:
    """Keyed results of source reads."""

    def __init__(self, events: Optional[BoardEvents] = None):
        self.events = events
        self._entries: Dict[str, _Entry] = {}

    def _entry(self, key: str) -> _Entry:
        if key not in self._entries:
            self._entries[key] = _Entry()
        return self._entries[key]

    async def fetch(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return cached data, reloading it first when missing or stale."""
        entry = self._entry(key)
        if entry.loaded and not entry.stale:
            return entry.data
        version = entry.version
        data = await loader()
        entry.data = data
        entry.loaded = True
        # An invalidation that landed while loading keeps the entry stale
        entry.stale = entry.version != version
        return data

    def peek(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None or not entry.loaded:
            return default
        return entry.data

    def is_stale(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is None or entry.stale

    def invalidate(self, *keys: str) -> None:
        """Mark keys stale; the next fetch reloads them."""
        for key in keys:
            entry = self._entry(key)
            entry.stale = True
            entry.version += 1
            if self.events:
                self.events.emit("invalidated", key=key)
