"""Exceptions raised by the terrain subsystem.

Tile-level failures are caught by the tile cache and turned into "no data"
for the affected points. Programming errors (out-of-range sample indices,
non-finite coordinates) are plain IndexError/ValueError and are never caught.
"""

from typing import Any


class TerrainError(Exception):
    """Base class for tile-level terrain failures."""


class TileNotFoundError(TerrainError):
    """Raised when no artifact exists for a tile key."""

    def __init__(self, key: Any) -> None:
        super().__init__(f"No elevation tile for {key}")
        self.key = key


class UnsupportedArtifactError(TerrainError):
    """Raised when a tile artifact is neither raw, zip nor bz2."""


class CorruptTileError(TerrainError):
    """Raised when a raw tile's byte length cannot hold a square grid."""


class TileMaterializationError(TerrainError):
    """Raised when loading a tile fails for an I/O or decompression reason.

    The original exception is available as ``__cause__``.
    """

    def __init__(self, key: Any, reason: str) -> None:
        super().__init__(f"Failed to load elevation tile {key}: {reason}")
        self.key = key
