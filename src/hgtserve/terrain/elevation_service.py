"""Elevation service for point queries.

Provides ground elevation for batches of (longitude, latitude) points,
bilinearly interpolated from the four grid nodes surrounding each point.

Typical usage:
    from hgtserve.core.config import ServiceConfig
    from hgtserve.terrain.elevation_service import create_elevation_provider

    provider = create_elevation_provider(ServiceConfig(data_dir="elevation-cache"))
    provider.initialize()
    elevations = provider.get_elevations([(34.78, 31.25), (35.21, 31.77)])
    print(elevations)
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from hgtserve.terrain.addressing import TileKey, point_to_key
from hgtserve.terrain.materializer import StorageMode, TileHandle, TileMaterializer
from hgtserve.terrain.storage import TileStorage
from hgtserve.terrain.tile_cache import CachePolicy, TileCache

if TYPE_CHECKING:
    from hgtserve.core.config import ServiceConfig

logger = logging.getLogger(__name__)


class IElevationProvider(ABC):
    """Abstract interface for elevation data providers.

    Examples:
        >>> class MyProvider(IElevationProvider):
        ...     def get_name(self) -> str:
        ...         return "my_provider"
        ...     def get_elevations(self, points):
        ...         return [100.0 for _ in points]
    """

    @abstractmethod
    def get_name(self) -> str:
        """Get provider name.

        Returns:
            Provider identifier (e.g., "hgt")
        """

    def initialize(self) -> None:
        """Prepare the provider before the first query."""

    @abstractmethod
    def get_elevations(self, points: Sequence[tuple[float, float]]) -> list[float]:
        """Get elevations for a batch of points.

        Args:
            points: (longitude, latitude) pairs in degrees

        Returns:
            Elevations in meters, index-aligned with points. Points without
            elevation data get 0.0.

        Raises:
            ValueError: If a coordinate is not finite
        """

    def get_elevation(self, lon: float, lat: float) -> float:
        """Get elevation at a single point.

        Args:
            lon: Longitude in degrees
            lat: Latitude in degrees

        Returns:
            Elevation in meters above sea level
        """
        return self.get_elevations([(lon, lat)])[0]

    def is_available(self) -> bool:
        """Check if provider is available and functional."""
        return True

    def close(self) -> None:
        """Release resources held by the provider."""


def bilinear_interpolate(
    top_left: float,
    top_right: float,
    bottom_left: float,
    bottom_right: float,
    fx: float,
    fy: float,
) -> float:
    """Interpolate inside a grid cell.

    Args:
        top_left: Value at the north-west corner
        top_right: Value at the north-east corner
        bottom_left: Value at the south-west corner
        bottom_right: Value at the south-east corner
        fx: Fractional offset from the western edge, 0 to 1
        fy: Fractional offset from the northern edge, 0 to 1

    Returns:
        Interpolated value
    """
    top = (1 - fx) * top_left + fx * top_right
    bottom = (1 - fx) * bottom_left + fx * bottom_right
    return (1 - fy) * top + fy * bottom


def interpolate_elevation(handle: TileHandle, key: TileKey, lon: float, lat: float) -> float:
    """Get the interpolated elevation of a point inside a loaded tile.

    Args:
        handle: Loaded tile
        key: Key of the tile (south-west corner)
        lon: Longitude in degrees, inside the tile
        lat: Latitude in degrees, inside the tile

    Returns:
        Elevation in meters
    """
    last = handle.samples - 1
    x = abs(lon - key.lon) * last
    y = (1 - abs(lat - key.lat)) * last

    # Anchor the 2x2 stencil so row + 1 and col + 1 stay on the grid
    row = min(int(y), last - 1)
    col = min(int(x), last - 1)

    return bilinear_interpolate(
        handle.sample(row, col),
        handle.sample(row, col + 1),
        handle.sample(row + 1, col),
        handle.sample(row + 1, col + 1),
        x - col,
        y - row,
    )


class TileElevationProvider(IElevationProvider):
    """Elevation provider backed by a directory of HGT tiles.

    Storage mode (memory-mapped or in-memory) and cache policy (eager, lazy,
    evicting) are independent settings of the underlying tile cache.

    Examples:
        >>> provider = TileElevationProvider(cache)
        >>> provider.initialize()
        >>> provider.get_elevations([(34.5, 31.5)])
        [210.0]
    """

    def __init__(self, cache: TileCache, workers: int = 8) -> None:
        """Initialize tile elevation provider.

        Args:
            cache: Tile cache to resolve tiles through
            workers: Threads used to resolve different tiles of a batch in parallel
        """
        self.cache = cache
        self.workers = max(1, workers)
        self._initialized = False

    def get_name(self) -> str:
        """Get provider name."""
        return "hgt"

    def initialize(self) -> None:
        """Validate the tile directory and apply the cache's startup policy."""
        logger.info("Initializing elevation provider (policy=%s)", self.cache.policy.value)
        self.cache.initialize()
        self._initialized = True

    def get_elevations(self, points: Sequence[tuple[float, float]]) -> list[float]:
        """Get elevations for a batch of points.

        Points are grouped by tile, and each tile is resolved once per batch.
        A tile that is missing or fails to load yields 0.0 for its points
        without affecting other tiles.

        Args:
            points: (longitude, latitude) pairs in degrees

        Returns:
            Elevations in meters, index-aligned with points

        Raises:
            ValueError: If a coordinate is not finite

        Examples:
            >>> provider.get_elevations([(34.5, 31.5), (0.5, 0.5)])
            [210.0, 0.0]
        """
        groups: dict[TileKey, list[int]] = {}
        for index, (lon, lat) in enumerate(points):
            groups.setdefault(point_to_key(lon, lat), []).append(index)

        results = [0.0] * len(points)
        if len(groups) <= 1 or self.workers == 1:
            for key, indices in groups.items():
                self._fill_tile(key, indices, points, results)
            return results

        with ThreadPoolExecutor(
            max_workers=min(self.workers, len(groups)), thread_name_prefix="elevation"
        ) as pool:
            futures = [
                pool.submit(self._fill_tile, key, indices, points, results)
                for key, indices in groups.items()
            ]
            for future in futures:
                future.result()
        return results

    def _fill_tile(
        self,
        key: TileKey,
        indices: list[int],
        points: Sequence[tuple[float, float]],
        results: list[float],
    ) -> None:
        with self.cache.lease(key) as handle:
            if handle is None:
                return
            for index in indices:
                lon, lat = points[index]
                results[index] = float(interpolate_elevation(handle, key, lon, lat))

    def is_available(self) -> bool:
        """Check if provider has been initialized."""
        return self._initialized

    def close(self) -> None:
        """Release all loaded tiles."""
        self.cache.close()
        self._initialized = False

    def get_cache_stats(self) -> dict[str, Any]:
        """Get tile cache statistics.

        Returns:
            Dictionary with cache statistics

        Examples:
            >>> stats = provider.get_cache_stats()
            >>> print(f"Tiles loaded: {stats['ready']}")
        """
        return {"provider": self.get_name(), **self.cache.stats()}


def create_elevation_provider(config: "ServiceConfig") -> TileElevationProvider:
    """Build a tile elevation provider from service configuration.

    Args:
        config: Service configuration

    Returns:
        Provider ready for initialize()
    """
    storage = TileStorage(config.data_dir)
    materializer = TileMaterializer(storage, StorageMode(config.storage_mode))
    cache = TileCache(
        materializer,
        CachePolicy(config.cache_policy),
        idle_timeout=config.idle_minutes * 60.0,
        workers=config.workers,
    )
    logger.info(
        "Created elevation provider (data_dir=%s, storage=%s, policy=%s, idle=%s min)",
        config.data_dir,
        config.storage_mode,
        config.cache_policy,
        config.idle_minutes,
    )
    return TileElevationProvider(cache, workers=config.workers)
