"""Tile materialization: from a tile key to queryable elevation data.

A tile is materialized by locating its artifact, extracting it first when it
is compressed, and then either memory-mapping the raw raster or reading it
fully into memory.

Typical usage:
    from hgtserve.terrain.materializer import StorageMode, TileMaterializer
    from hgtserve.terrain.storage import TileStorage

    materializer = TileMaterializer(TileStorage("elevation-cache"), StorageMode.MMAP)
    handle = materializer.materialize(TileKey(34, 31))
    print(handle.samples)
"""

import logging
import mmap
from enum import Enum
from pathlib import Path
from typing import Any

from hgtserve.terrain.addressing import TileKey
from hgtserve.terrain.codec import SAMPLE_SIZE, decode_sample, sample_offset, samples_from_length
from hgtserve.terrain.errors import CorruptTileError, TileNotFoundError, UnsupportedArtifactError
from hgtserve.terrain.storage import ArtifactKind, TileStorage, artifact_kind

logger = logging.getLogger(__name__)


class StorageMode(str, Enum):
    """How a raw raster is held once loaded."""

    MMAP = "mmap"
    MEMORY = "memory"


class TileHandle:
    """A loaded tile: a byte-addressable buffer and its grid size.

    Samples are stored row-major from the north-west corner.

    Attributes:
        key: Tile key
        buffer: Raw big-endian int16 samples (mmap or bytes)
        samples: Per-side sample count
    """

    def __init__(self, key: TileKey, buffer: Any, path: Path | None = None) -> None:
        """Initialize tile handle.

        Args:
            key: Tile key
            buffer: Raw sample bytes
            path: Raster the buffer was loaded from

        Raises:
            CorruptTileError: If the buffer cannot hold a square grid of at least 2x2
        """
        length = len(buffer)
        samples = samples_from_length(length)
        if samples < 2 or samples * samples * SAMPLE_SIZE > length:
            raise CorruptTileError(
                f"Tile {key} has {length} bytes, not a square grid of int16 samples"
            )
        self.key = key
        self.buffer = buffer
        self.samples = samples
        self.path = path
        self.closed = False

    def sample(self, row: int, col: int) -> int:
        """Get the decoded elevation at a grid node.

        Raises:
            IndexError: If the node is outside the grid
        """
        return decode_sample(self.buffer, sample_offset(row, col, self.samples))

    def close(self) -> None:
        """Release the underlying buffer."""
        self.closed = True

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.key}, samples={self.samples})"


class MappedTileHandle(TileHandle):
    """Tile backed by a read-only memory map of its raster."""

    def close(self) -> None:
        """Unmap the raster."""
        if not self.closed:
            self.buffer.close()
        super().close()


class BufferedTileHandle(TileHandle):
    """Tile whose raster was read fully into process memory."""

    def close(self) -> None:
        """Drop the in-memory buffer."""
        self.buffer = b""
        super().close()


class TileMaterializer:
    """Turns tile keys into tile handles.

    Examples:
        >>> materializer = TileMaterializer(storage, StorageMode.MEMORY)
        >>> handle = materializer.materialize(TileKey(34, 31))
    """

    def __init__(self, storage: TileStorage, mode: StorageMode = StorageMode.MMAP) -> None:
        """Initialize materializer.

        Args:
            storage: Tile storage to resolve artifacts from
            mode: Memory-map rasters or read them into memory
        """
        self.storage = storage
        self.mode = StorageMode(mode)

    def materialize(self, key: TileKey) -> TileHandle:
        """Load one tile.

        Raw rasters are used directly. Otherwise a zip or bz2 artifact is
        extracted to a raw raster (and deleted) before loading.

        Args:
            key: Tile key

        Returns:
            Loaded tile handle

        Raises:
            TileNotFoundError: If the tile has no artifact
            UnsupportedArtifactError: If the only artifacts are of unknown type
            CorruptTileError: If the raster size is not a square grid
            OSError: If reading, mapping or decompressing fails
        """
        raw_path = self.resolve(key)
        logger.info("Loading %s into %s cache", raw_path, self.mode.value)
        return self.load(key, raw_path)

    def resolve(self, key: TileKey) -> Path:
        """Get the raw raster of a tile, extracting it if needed."""
        artifacts = self.storage.find_artifacts(key)
        if not artifacts:
            raise TileNotFoundError(key)

        for path in artifacts:
            kind = artifact_kind(path)
            if kind == ArtifactKind.RAW:
                return path
            if kind in (ArtifactKind.ARCHIVE, ArtifactKind.BLOCK_COMPRESSED):
                return self.storage.extract(path, key)

        names = ", ".join(p.name for p in artifacts)
        raise UnsupportedArtifactError(f"No supported artifact for tile {key}: {names}")

    def load(self, key: TileKey, path: Path) -> TileHandle:
        """Load a raw raster with the configured storage mode."""
        if self.mode == StorageMode.MEMORY:
            return BufferedTileHandle(key, path.read_bytes(), path)

        with path.open("rb") as f:
            if path.stat().st_size == 0:
                raise CorruptTileError(f"Tile {key} raster {path.name} is empty")
            mapped = mmap.mmap(f.fileno(), 0, access=mmap.ACCESS_READ)
        try:
            return MappedTileHandle(key, mapped, path)
        except CorruptTileError:
            mapped.close()
            raise
