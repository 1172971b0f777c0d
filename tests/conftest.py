"""Pytest configuration and fixtures for all tests."""

from collections.abc import Callable, Sequence
from pathlib import Path

import numpy as np
import pytest

from hgtserve.terrain.addressing import TileKey, key_to_file_name

# 3x3 tile, row 0 is the northern edge
SCENARIO_GRID = [
    [100, 110, 120],
    [200, 210, 220],
    [300, 310, 320],
]


def write_hgt(path: Path, grid: Sequence[Sequence[int]]) -> Path:
    """Write a grid of samples as a big-endian int16 raster."""
    np.asarray(grid, dtype=">i2").tofile(path)
    return path


@pytest.fixture
def tile_dir(tmp_path: Path) -> Path:
    """Create an empty tile directory."""
    directory = tmp_path / "elevation-cache"
    directory.mkdir()
    return directory


@pytest.fixture
def make_tile(tile_dir: Path) -> Callable[..., Path]:
    """Factory writing a raw tile into the tile directory."""

    def _make(key: TileKey, grid: Sequence[Sequence[int]] = SCENARIO_GRID) -> Path:
        return write_hgt(tile_dir / key_to_file_name(key), grid)

    return _make


@pytest.fixture
def scenario_tile(make_tile: Callable[..., Path]) -> Path:
    """Write N31E034.hgt with the 3x3 scenario grid."""
    return make_tile(TileKey(34, 31))
