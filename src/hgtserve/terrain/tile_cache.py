"""Concurrency-safe cache of loaded elevation tiles.

The cache maps tile keys to loaded tile handles. Loading is single-flight:
however many threads ask for the same unseen tile at once, exactly one of them
materializes it and the others wait on the same future.

Three retention policies are supported:
    - EAGER: every tile in the directory is loaded during initialize()
    - LAZY: tiles are loaded on first use and kept for the process lifetime
    - EVICTING: tiles are loaded on first use and released after an idle period

Typical usage:
    from hgtserve.terrain.tile_cache import CachePolicy, TileCache

    cache = TileCache(materializer, CachePolicy.EVICTING, idle_timeout=1800)
    cache.initialize()
    with cache.lease(TileKey(34, 31)) as handle:
        if handle is not None:
            print(handle.sample(0, 0))
"""

import logging
import threading
import time
from collections.abc import Callable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor, wait
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from hgtserve.terrain.addressing import TileKey
from hgtserve.terrain.errors import TerrainError, TileMaterializationError, TileNotFoundError
from hgtserve.terrain.materializer import TileHandle, TileMaterializer

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT = 30 * 60.0


class CachePolicy(str, Enum):
    """When tiles are admitted to and evicted from the cache."""

    EAGER = "eager"
    LAZY = "lazy"
    EVICTING = "evicting"


@dataclass
class CacheEntry:
    """One tile slot in the cache.

    Attributes:
        key: Tile key
        future: Pending or completed materialization, shared by all requesters
        last_access: Clock value of the latest access
        readers: Number of leases currently holding the handle
        detached: Whether the handle was given out by get() without a lease
    """

    key: TileKey
    last_access: float
    future: "Future[TileHandle]" = field(default_factory=Future)
    readers: int = 0
    detached: bool = False

    def is_ready(self) -> bool:
        """Check whether the tile loaded successfully."""
        return self.future.done() and self.future.exception() is None


class TileCache:
    """Single-flight tile cache with a pluggable retention policy.

    Examples:
        >>> cache = TileCache(materializer, CachePolicy.LAZY)
        >>> handle = cache.get(TileKey(34, 31))
    """

    def __init__(
        self,
        materializer: TileMaterializer,
        policy: CachePolicy = CachePolicy.EVICTING,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        workers: int = 8,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float | None = None,
    ) -> None:
        """Initialize tile cache.

        Args:
            materializer: Loads tiles on cache misses
            policy: Retention policy
            idle_timeout: Seconds without access before a tile is evicted
                (EVICTING policy only)
            workers: Threads used to load tiles during eager initialization
            clock: Monotonic time source in seconds
            sweep_interval: Minimum seconds between opportunistic eviction
                sweeps; defaults to a quarter of idle_timeout, capped at 60
        """
        if idle_timeout <= 0:
            raise ValueError(f"idle_timeout must be positive, got {idle_timeout}")

        self.materializer = materializer
        self.policy = CachePolicy(policy)
        self.idle_timeout = idle_timeout
        self.workers = max(1, workers)
        self._clock = clock
        self._sweep_interval = (
            sweep_interval if sweep_interval is not None else min(60.0, idle_timeout / 4)
        )
        self._lock = threading.Lock()
        self._entries: dict[TileKey, CacheEntry] = {}
        self._discovered: set[TileKey] = set()
        self._last_sweep = clock()
        self._closed = False
        self._counters = {"materializations": 0, "misses": 0, "failures": 0, "evictions": 0}

    def initialize(self) -> None:
        """Prepare the tile directory and, for EAGER, load every tile.

        A missing or empty directory is logged and leaves the cache empty.
        For EAGER this returns once every discovered tile has loaded or failed.
        Initializing a closed cache reopens it.
        """
        with self._lock:
            self._closed = False

        storage = self.materializer.storage
        if not storage.validate():
            return

        storage.remove_redundant_archives()

        if self.policy != CachePolicy.EAGER:
            logger.info("Tile cache ready (policy=%s, root=%s)", self.policy.value, storage.root)
            return

        tiles = storage.discover()
        with self._lock:
            self._discovered = set(tiles)
            pending = []
            for key in tiles:
                if key not in self._entries:
                    entry = CacheEntry(key, self._clock())
                    self._entries[key] = entry
                    pending.append(entry)

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="tile-load") as pool:
            wait([pool.submit(self._materialize, entry) for entry in pending])

        logger.info(
            "Finished initializing elevation tiles, found %d tiles, %d loaded",
            len(tiles),
            self.stats()["ready"],
        )

    def get(self, key: TileKey) -> TileHandle | None:
        """Get a loaded tile, loading it if the policy allows.

        Waits if the tile is being loaded by another thread. A handle given
        out here stays readable after its entry is evicted: eviction drops
        the cache's reference and the tile is unmapped once the caller's last
        reference goes away. Use lease() to keep the entry itself cached.

        Args:
            key: Tile key

        Returns:
            Tile handle, or None if the tile is missing or failed to load
        """
        entry, handle = self._acquire(key)
        if entry is not None:
            with self._lock:
                entry.detached = True
            self._release(entry)
        return handle

    @contextmanager
    def lease(self, key: TileKey) -> Iterator[TileHandle | None]:
        """Hold a tile for the duration of a with block.

        A leased tile is never evicted.

        Args:
            key: Tile key

        Yields:
            Tile handle, or None if the tile is missing or failed to load
        """
        entry, handle = self._acquire(key)
        try:
            yield handle
        finally:
            if entry is not None:
                self._release(entry)

    def evict_idle(self) -> int:
        """Release tiles idle for longer than the idle timeout.

        Only applies to the EVICTING policy. Tiles that are loading or
        currently leased are kept. Tiles given out by get() are dropped from
        the cache but not closed, so their holders can keep reading.

        Returns:
            Number of evicted tiles
        """
        if self.policy != CachePolicy.EVICTING:
            return 0

        now = self._clock()
        evicted = []
        with self._lock:
            self._last_sweep = now
            for key, entry in list(self._entries.items()):
                if (
                    entry.readers == 0
                    and entry.is_ready()
                    and now - entry.last_access >= self.idle_timeout
                ):
                    del self._entries[key]
                    evicted.append(entry)
            self._counters["evictions"] += len(evicted)

        for entry in evicted:
            logger.info("Evicting idle elevation tile %s", entry.key)
            if not entry.detached:
                entry.future.result().close()
        return len(evicted)

    def close(self) -> None:
        """Release every loaded tile.

        Tiles still loading are closed as soon as they finish, and later
        requests get None until initialize() is called again.
        """
        with self._lock:
            self._closed = True
            entries = list(self._entries.values())
            self._entries.clear()

        for entry in entries:
            if entry.is_ready():
                entry.future.result().close()
        logger.info("Tile cache closed (%d tiles released)", len(entries))

    def keys(self) -> list[TileKey]:
        """Get the keys of all cached entries, loaded or pending."""
        with self._lock:
            return list(self._entries)

    def stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with entry counts and load/eviction counters
        """
        with self._lock:
            entries = list(self._entries.values())
            counters = dict(self._counters)
        ready = sum(1 for e in entries if e.is_ready())
        return {
            "policy": self.policy.value,
            "entries": len(entries),
            "ready": ready,
            "pending": sum(1 for e in entries if not e.future.done()),
            **counters,
        }

    def _admits(self, key: TileKey) -> bool:
        if self.policy == CachePolicy.EAGER:
            return key in self._discovered
        return True

    def _acquire(self, key: TileKey) -> tuple[CacheEntry | None, TileHandle | None]:
        now = self._clock()
        if self.policy == CachePolicy.EVICTING and now - self._last_sweep >= self._sweep_interval:
            self.evict_idle()

        with self._lock:
            if self._closed:
                return None, None
            entry = self._entries.get(key)
            created = False
            if entry is None:
                if not self._admits(key):
                    return None, None
                entry = CacheEntry(key, now)
                self._entries[key] = entry
                created = True
            entry.readers += 1
            entry.last_access = now

        if created:
            self._materialize(entry)

        try:
            return entry, entry.future.result()
        except TileNotFoundError:
            logger.debug("No elevation tile for %s", key)
        except TerrainError as e:
            logger.warning("Elevation tile %s unavailable: %s", key, e)

        self._release(entry)
        return None, None

    def _release(self, entry: CacheEntry) -> None:
        with self._lock:
            entry.readers -= 1
            entry.last_access = self._clock()

    def _materialize(self, entry: CacheEntry) -> None:
        """Load a tile and complete its entry's future.

        On failure the entry is dropped so the next access retries. The
        future is always completed, even when the load is interrupted.
        """
        try:
            handle = self.materializer.materialize(entry.key)
        except TileNotFoundError as e:
            self._forget(entry, counter="misses")
            entry.future.set_exception(e)
        except TerrainError as e:
            self._forget(entry)
            entry.future.set_exception(e)
        except Exception as e:  # pylint: disable=broad-exception-caught
            error = TileMaterializationError(entry.key, str(e))
            error.__cause__ = e
            self._forget(entry)
            entry.future.set_exception(error)
        else:
            self._complete(entry, handle)
        finally:
            if not entry.future.done():
                self._forget(entry)
                entry.future.set_exception(TileMaterializationError(entry.key, "load interrupted"))

    def _complete(self, entry: CacheEntry, handle: TileHandle) -> None:
        with self._lock:
            self._counters["materializations"] += 1
            if not self._closed and self._entries.get(entry.key) is entry:
                entry.future.set_result(handle)
                return

        # The cache was closed while this tile was loading
        handle.close()
        entry.future.set_exception(TileMaterializationError(entry.key, "tile cache was closed"))

    def _forget(self, entry: CacheEntry, counter: str = "failures") -> None:
        with self._lock:
            self._counters[counter] += 1
            if counter == "failures":
                self._counters["materializations"] += 1
            if self._entries.get(entry.key) is entry:
                del self._entries[entry.key]
