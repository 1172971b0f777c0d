"""File storage for elevation tiles.

Tiles live in a single directory as raw ``.hgt`` rasters or as compressed
artifacts (``.zip`` archives or ``.bz2`` streams). This module lists them,
extracts compressed ones into raw rasters, and cleans up redundant archives.

Typical usage:
    from hgtserve.terrain.storage import TileStorage

    storage = TileStorage("elevation-cache")
    if storage.validate():
        storage.remove_redundant_archives()
        tiles = storage.discover()
"""

import bz2
import logging
import shutil
import zipfile
from enum import Enum
from pathlib import Path

from hgtserve.terrain.addressing import HGT_EXTENSION, TileKey, file_name_to_key, key_to_file_name
from hgtserve.terrain.errors import UnsupportedArtifactError

logger = logging.getLogger(__name__)


class ArtifactKind(Enum):
    """On-disk form of a tile artifact."""

    RAW = "raw"
    ARCHIVE = "zip"
    BLOCK_COMPRESSED = "bz2"
    UNKNOWN = "unknown"


_COMPRESSED_SUFFIXES = {
    ".zip": ArtifactKind.ARCHIVE,
    ".bz2": ArtifactKind.BLOCK_COMPRESSED,
}


def artifact_kind(path: Path) -> ArtifactKind:
    """Classify an artifact by its file name."""
    name = path.name.lower()
    if name.endswith(HGT_EXTENSION):
        return ArtifactKind.RAW
    return _COMPRESSED_SUFFIXES.get(path.suffix.lower(), ArtifactKind.UNKNOWN)


def raw_path_for(path: Path) -> Path:
    """Get the raw raster path a compressed artifact extracts to.

    ``N31E034.hgt.zip`` maps to ``N31E034.hgt``. A compressed name that does
    not end in ``.hgt`` once the compression suffix is removed gets it appended.
    """
    if artifact_kind(path) == ArtifactKind.RAW:
        return path
    stripped = path.with_suffix("")
    if not stripped.name.lower().endswith(HGT_EXTENSION):
        stripped = stripped.with_name(stripped.name + HGT_EXTENSION)
    return stripped


class TileStorage:
    """Directory of elevation tile artifacts.

    Examples:
        >>> storage = TileStorage("elevation-cache")
        >>> artifacts = storage.find_artifacts(TileKey(34, 31))
    """

    def __init__(self, root: str | Path) -> None:
        """Initialize storage.

        Args:
            root: Directory holding the tile artifacts
        """
        self.root = Path(root)

    def validate(self) -> bool:
        """Check that the tile directory exists and holds files.

        Returns:
            True if tiles can be served from this directory
        """
        if not self.root.is_dir():
            logger.error(
                "Elevation tile folder %s does not exist, please make sure this folder exists",
                self.root,
            )
            return False

        if not any(p.is_file() for p in self.root.iterdir()):
            logger.error("There are no files in elevation tile folder %s", self.root)
            return False

        return True

    def list_artifacts(self) -> list[Path]:
        """List every file in the tile directory whose name parses as a tile.

        Files with unrelated names are skipped.
        """
        if not self.root.is_dir():
            return []
        return sorted(
            p for p in self.root.iterdir() if p.is_file() and file_name_to_key(p.name) is not None
        )

    def discover(self) -> dict[TileKey, list[Path]]:
        """Group the directory's artifacts by tile key.

        Returns:
            Mapping of tile key to its artifacts
        """
        tiles: dict[TileKey, list[Path]] = {}
        for path in self.list_artifacts():
            key = file_name_to_key(path.name)
            tiles.setdefault(key, []).append(path)
        return tiles

    def find_artifacts(self, key: TileKey) -> list[Path]:
        """Find the artifacts of one tile.

        Args:
            key: Tile key

        Returns:
            Artifact paths, raw rasters first, then compressed ones
        """
        prefix = key_to_file_name(key)[: -len(HGT_EXTENSION)]
        candidates = [
            p
            for p in self.root.glob(f"{prefix}*")
            if p.is_file() and file_name_to_key(p.name) == key
        ]
        return sorted(candidates, key=lambda p: (artifact_kind(p) != ArtifactKind.RAW, p.name))

    def remove_redundant_archives(self) -> int:
        """Delete compressed artifacts whose raw raster already exists.

        Returns:
            Number of deleted artifacts
        """
        removed = 0
        for artifacts in self.discover().values():
            kinds = [artifact_kind(p) for p in artifacts]
            if ArtifactKind.RAW not in kinds:
                continue
            for path, kind in zip(artifacts, kinds):
                if kind in (ArtifactKind.ARCHIVE, ArtifactKind.BLOCK_COMPRESSED):
                    logger.info("Removing %s, already decompressed", path.name)
                    self.delete(path)
                    removed += 1
        return removed

    def extract(self, path: Path, key: TileKey) -> Path:
        """Decompress a compressed artifact into a raw raster.

        The compressed source is deleted once extraction succeeds.

        Args:
            path: Compressed artifact
            key: Tile the artifact belongs to

        Returns:
            Path of the raw raster

        Raises:
            UnsupportedArtifactError: If the artifact is not zip or bz2
            FileNotFoundError: If a zip archive holds no raster for the key
        """
        kind = artifact_kind(path)
        logger.info("Starting decompressing file %s", path.name)

        if kind == ArtifactKind.BLOCK_COMPRESSED:
            raw_path = self._extract_bz2(path)
        elif kind == ArtifactKind.ARCHIVE:
            raw_path = self._extract_zip(path, key)
        else:
            raise UnsupportedArtifactError(f"Unsupported elevation artifact: {path.name}")

        logger.info("Finished decompressing file %s", path.name)
        self.delete(path)
        return raw_path

    def _extract_bz2(self, path: Path) -> Path:
        raw_path = raw_path_for(path)
        partial = raw_path.with_name(raw_path.name + ".part")
        try:
            with bz2.open(path, "rb") as src, partial.open("wb") as dst:
                shutil.copyfileobj(src, dst)
            partial.replace(raw_path)
        finally:
            partial.unlink(missing_ok=True)
        return raw_path

    def _extract_zip(self, path: Path, key: TileKey) -> Path:
        with zipfile.ZipFile(path) as archive:
            members = [
                m
                for m in archive.infolist()
                if not m.is_dir() and file_name_to_key(Path(m.filename).name) == key
            ]
            if not members:
                raise FileNotFoundError(f"Archive {path.name} holds no raster for tile {key}")

            member = members[0]
            raw_path = self.root / Path(member.filename).name
            partial = raw_path.with_name(raw_path.name + ".part")
            try:
                with archive.open(member) as src, partial.open("wb") as dst:
                    shutil.copyfileobj(src, dst)
                partial.replace(raw_path)
            finally:
                partial.unlink(missing_ok=True)
        return raw_path

    def delete(self, path: Path) -> None:
        """Delete an artifact, ignoring one that is already gone."""
        path.unlink(missing_ok=True)
