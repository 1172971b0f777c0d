"""Tile addressing for SRTM-style elevation tiles.

Each tile covers one whole-degree cell and is identified by the integer
longitude and latitude of its south-west corner. Tiles are stored in files
named after that corner, e.g. ``N31E034.hgt`` for the cell [34, 35) x [31, 32).

Typical usage:
    from hgtserve.terrain.addressing import point_to_key, key_to_file_name

    key = point_to_key(34.78, 31.25)
    print(key_to_file_name(key))  # N31E034.hgt
"""

import math
import re
from dataclasses import dataclass

HGT_EXTENSION = ".hgt"

HGT_NAME = re.compile(
    r"^(?P<lat_hem>[NS])(?P<lat>\d{2})(?P<lon_hem>[EW])(?P<lon>\d{3})(?P<suffix>.*?)\.hgt"
)


@dataclass(frozen=True)
class TileKey:
    """Identity of one elevation tile.

    Attributes:
        lon: Longitude of the south-west corner in whole degrees
        lat: Latitude of the south-west corner in whole degrees
    """

    lon: int
    lat: int

    def __str__(self) -> str:
        return f"({self.lon}, {self.lat})"


def point_to_key(lon: float, lat: float) -> TileKey:
    """Get the key of the tile owning a point.

    Args:
        lon: Longitude in degrees
        lat: Latitude in degrees

    Returns:
        Key of the tile whose cell contains the point

    Raises:
        ValueError: If a coordinate is NaN or infinite

    Examples:
        >>> point_to_key(34.5, 31.5)
        TileKey(lon=34, lat=31)
        >>> point_to_key(-71.2, -0.4)
        TileKey(lon=-72, lat=-1)
    """
    if not (math.isfinite(lon) and math.isfinite(lat)):
        raise ValueError(f"Coordinates must be finite, got ({lon}, {lat})")
    return TileKey(math.floor(lon), math.floor(lat))


def key_to_file_name(key: TileKey, suffix: str = "") -> str:
    """Get the canonical file name of a tile.

    Args:
        key: Tile key
        suffix: Optional text inserted before the extension (e.g. ".SRTMGL1")

    Returns:
        File name such as ``N31E034.hgt`` or ``S01W072.hgt``
    """
    lat_hem = "N" if key.lat >= 0 else "S"
    lon_hem = "E" if key.lon >= 0 else "W"
    return f"{lat_hem}{abs(key.lat):02d}{lon_hem}{abs(key.lon):03d}{suffix}{HGT_EXTENSION}"


def file_name_to_key(name: str) -> TileKey | None:
    """Parse a tile key from a file name.

    Compressed names such as ``N31E034.hgt.zip`` or
    ``N31E034.SRTMGL1.hgt.bz2`` parse to the same key as the raw file.

    Args:
        name: Base file name (no directory)

    Returns:
        Parsed key, or None if the name does not follow the tile naming scheme
    """
    match = HGT_NAME.match(name)
    if not match:
        return None

    lat = int(match.group("lat"))
    lon = int(match.group("lon"))
    if match.group("lat_hem") == "S":
        lat = -lat
    if match.group("lon_hem") == "W":
        lon = -lon
    return TileKey(lon, lat)
