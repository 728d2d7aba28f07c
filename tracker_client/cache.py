# tracker_client/cache.py - keyed query cache shared by queries and mutations
"""
Process-wide store of query results, addressed by region key
(e.g. ("/api/organizations", org_id, "academic-logs")).

Mutations only touch it through get / snapshot / set / restore / invalidate,
and receive the instance explicitly. All methods except refetch() are
synchronous, so on a single event loop no two of them interleave.
"""
import asyncio
import copy
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

logger = logging.getLogger(__name__)

Key = Tuple[Any, ...]
Fetcher = Callable[[Key], Awaitable[Any]]

_ABSENT = object()


@dataclass(frozen=True)
class Snapshot:
    key: Key
    value: Any          # deep copy taken at capture time, or _ABSENT
    stale: bool

    @property
    def existed(self) -> bool:
        return self.value is not _ABSENT


@dataclass
class Entry:
    value: Any
    updated_at: float
    stale: bool = False


class QueryCache:
    def __init__(self, fetcher: Optional[Fetcher] = None, gc_ttl_s: float = 600.0,
                 stale_s: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.fetcher = fetcher
        self.gc_ttl_s = gc_ttl_s
        self.stale_s = stale_s
        self._clock = clock
        self._entries: Dict[Key, Entry] = {}
        self._inflight: Dict[Key, asyncio.Task] = {}
        self.generation: Dict[Key, int] = {}

    def __contains__(self, key: Key) -> bool:
        return tuple(key) in self._entries

    def keys(self):
        return list(self._entries)

    def get(self, key: Key, default: Any = None) -> Any:
        entry = self._entries.get(tuple(key))
        return default if entry is None else entry.value

    def is_stale(self, key: Key) -> bool:
        entry = self._entries.get(tuple(key))
        if entry is None:
            return True
        return entry.stale or (self._clock() - entry.updated_at) > self.stale_s

    def set(self, key: Key, value_or_updater: Any) -> Any:
        """Write a value, or apply `updater(old)` when given a callable."""
        key = tuple(key)
        if callable(value_or_updater):
            value = value_or_updater(self.get(key))
        else:
            value = value_or_updater
        self._entries[key] = Entry(value=value, updated_at=self._clock())
        self.generation[key] = self.generation.get(key, 0) + 1
        return value

    def remove(self, key: Key) -> None:
        self._entries.pop(tuple(key), None)

    def snapshot(self, key: Key) -> Snapshot:
        key = tuple(key)
        entry = self._entries.get(key)
        if entry is None:
            return Snapshot(key=key, value=_ABSENT, stale=True)
        return Snapshot(key=key, value=copy.deepcopy(entry.value), stale=entry.stale)

    def restore(self, snap: Snapshot) -> None:
        if not snap.existed:
            self.remove(snap.key)
            return
        # copy again so the snapshot stays immutable if the restored value is mutated
        self._entries[snap.key] = Entry(
            value=copy.deepcopy(snap.value), updated_at=self._clock(), stale=snap.stale,
        )
        self.generation[snap.key] = self.generation.get(snap.key, 0) + 1

    def invalidate(self, prefix: Key) -> Set[Key]:
        """Mark every region under `prefix` stale and schedule background refetches."""
        prefix = tuple(prefix)
        hit = {k for k in self._entries if k[:len(prefix)] == prefix}
        for key in hit:
            self._entries[key].stale = True
            self._schedule_refetch(key)
        if hit:
            logger.debug("invalidated %d region(s) under %s", len(hit), prefix)
        return hit

    def _schedule_refetch(self, key: Key) -> None:
        if self.fetcher is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = self._inflight.get(key)
        if task is not None and not task.done():
            task.cancel()
        self._inflight[key] = loop.create_task(self.refetch(key))

    async def refetch(self, key: Key) -> Any:
        key = tuple(key)
        if self.fetcher is None:
            raise RuntimeError("QueryCache has no fetcher")
        before = self.generation.get(key, 0)
        value = await self.fetcher(key)
        # a speculative write that landed meanwhile wins; its own settle refetches again
        if self.generation.get(key, 0) != before:
            logger.debug("dropping refetch of %s: region written while in flight", key)
            return self.get(key)
        self.set(key, value)
        return value

    async def drain(self) -> None:
        """Wait for scheduled background refetches; fetch errors are logged."""
        while self._inflight:
            key, task = self._inflight.popitem()
            try:
                await task
            except asyncio.CancelledError:
                continue
            except Exception as e:
                logger.warning("background refetch of %s failed: %s", key, e)

    def evict_expired(self, now: Optional[float] = None) -> int:
        now = self._clock() if now is None else now
        expired = [k for k, e in self._entries.items() if now - e.updated_at > self.gc_ttl_s]
        for k in expired:
            del self._entries[k]
        return len(expired)
