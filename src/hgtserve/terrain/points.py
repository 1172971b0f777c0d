"""Decoding of query points from their transport encodings.

Two encodings are accepted, both decoding to an ordered list of
(longitude, latitude) pairs:
    - a compact string for URLs: ``"34.5,31.5|35.1,32.2"``
    - an array of pairs for larger batches: ``[[34.5, 31.5], [35.1, 32.2]]``
"""

import json
import math
from collections.abc import Iterable
from typing import Any

POINT_SEPARATOR = "|"
COORDINATE_SEPARATOR = ","


class PointParseError(ValueError):
    """Raised when query points cannot be decoded."""


def _coordinate(value: Any, position: int) -> float:
    if isinstance(value, bool):
        raise PointParseError(f"Point {position}: coordinate must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise PointParseError(f"Point {position}: invalid coordinate {value!r}") from e
    if not math.isfinite(number):
        raise PointParseError(f"Point {position}: coordinate must be finite, got {value!r}")
    return number


def parse_points_string(text: str) -> list[tuple[float, float]]:
    """Decode points from the delimited string encoding.

    Args:
        text: Points separated by ``|``, each ``lon,lat``

    Returns:
        List of (longitude, latitude) pairs

    Raises:
        PointParseError: If a point is malformed

    Examples:
        >>> parse_points_string("34.5,31.5|35,32")
        [(34.5, 31.5), (35.0, 32.0)]
    """
    text = text.strip()
    if not text:
        return []

    points = []
    for position, chunk in enumerate(text.split(POINT_SEPARATOR)):
        parts = chunk.split(COORDINATE_SEPARATOR)
        if len(parts) != 2:
            raise PointParseError(f"Point {position}: expected 'lon,lat', got {chunk!r}")
        lon, lat = (_coordinate(part.strip(), position) for part in parts)
        points.append((lon, lat))
    return points


def parse_points_array(data: Iterable[Any]) -> list[tuple[float, float]]:
    """Decode points from the array-of-pairs encoding.

    Args:
        data: Sequence of [lon, lat] pairs

    Returns:
        List of (longitude, latitude) pairs

    Raises:
        PointParseError: If data is not a list of numeric pairs
    """
    if isinstance(data, (str, bytes)) or not isinstance(data, Iterable):
        raise PointParseError("Points must be an array of [lon, lat] pairs")

    points = []
    for position, pair in enumerate(data):
        if isinstance(pair, (str, bytes)) or not isinstance(pair, (list, tuple)) or len(pair) != 2:
            raise PointParseError(f"Point {position}: expected [lon, lat], got {pair!r}")
        points.append((_coordinate(pair[0], position), _coordinate(pair[1], position)))
    return points


def parse_points_json(text: str) -> list[tuple[float, float]]:
    """Decode points from a JSON array of pairs.

    Raises:
        PointParseError: If the text is not valid JSON or not an array of pairs
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise PointParseError(f"Invalid JSON points: {e}") from e
    return parse_points_array(data)
