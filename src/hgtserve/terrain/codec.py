"""Decoding of raw HGT elevation samples.

HGT rasters store big-endian signed 16-bit integers, row-major, starting at
the north-west corner. The value -32768 marks a void and is read as 0.
"""

import math
from typing import Any

import numpy as np

HGT_DTYPE = np.dtype(">i2")
SAMPLE_SIZE = HGT_DTYPE.itemsize
NO_DATA = -32768


def samples_from_length(byte_length: int) -> int:
    """Get the per-side sample count of a square tile from its byte length."""
    return int(math.sqrt(byte_length / SAMPLE_SIZE) + 0.5)


def sample_offset(row: int, col: int, samples: int) -> int:
    """Get the byte offset of a sample in a tile.

    Args:
        row: Row index, 0 is the northern edge
        col: Column index, 0 is the western edge
        samples: Per-side sample count of the tile

    Returns:
        Byte offset of the sample

    Raises:
        IndexError: If row or col is outside the grid
    """
    if not (0 <= row < samples and 0 <= col < samples):
        raise IndexError(f"Sample ({row}, {col}) outside {samples}x{samples} grid")
    return (row * samples + col) * SAMPLE_SIZE


def decode_sample(buffer: Any, byte_offset: int) -> int:
    """Decode one elevation sample.

    Args:
        buffer: Any object supporting the buffer protocol (bytes, mmap)
        byte_offset: Offset of the sample's first byte

    Returns:
        Elevation in meters, with the no-data value replaced by 0

    Examples:
        >>> decode_sample(b"\\x00\\x64", 0)
        100
        >>> decode_sample(b"\\x80\\x00", 0)
        0
    """
    value = int(np.frombuffer(buffer, dtype=HGT_DTYPE, count=1, offset=byte_offset)[0])
    if value == NO_DATA:
        return 0
    return value
