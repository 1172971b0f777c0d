"""Elevation tile lookup for hgtserve."""

from hgtserve.terrain.addressing import TileKey, file_name_to_key, key_to_file_name, point_to_key
from hgtserve.terrain.elevation_service import (
    IElevationProvider,
    TileElevationProvider,
    create_elevation_provider,
)
from hgtserve.terrain.errors import (
    CorruptTileError,
    TerrainError,
    TileMaterializationError,
    TileNotFoundError,
    UnsupportedArtifactError,
)
from hgtserve.terrain.materializer import StorageMode, TileHandle, TileMaterializer
from hgtserve.terrain.points import (
    PointParseError,
    parse_points_array,
    parse_points_json,
    parse_points_string,
)
from hgtserve.terrain.storage import TileStorage
from hgtserve.terrain.tile_cache import CachePolicy, TileCache

__all__ = [
    "CachePolicy",
    "CorruptTileError",
    "IElevationProvider",
    "PointParseError",
    "StorageMode",
    "TerrainError",
    "TileCache",
    "TileElevationProvider",
    "TileHandle",
    "TileKey",
    "TileMaterializationError",
    "TileMaterializer",
    "TileNotFoundError",
    "TileStorage",
    "UnsupportedArtifactError",
    "create_elevation_provider",
    "file_name_to_key",
    "key_to_file_name",
    "parse_points_array",
    "parse_points_json",
    "parse_points_string",
    "point_to_key",
]
