"""hgtserve - elevation lookups over a directory of HGT tiles.

Command line entry point. Loads configuration, initializes logging and the
elevation provider, resolves the given points and prints their elevations as
a JSON array in input order.

Typical usage:
    uv run python -m hgtserve.main "34.78,31.25|35.21,31.77"
    uv run python -m hgtserve.main --json points.json --policy eager
    cat points.json | uv run python -m hgtserve.main --json -
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from hgtserve.core.config import (
    CACHE_POLICIES,
    STORAGE_MODES,
    ConfigError,
    ConfigLoader,
    ServiceConfig,
)
from hgtserve.core.logging_system import LoggingError, initialize_logging, shutdown_logging
from hgtserve.terrain.elevation_service import create_elevation_provider
from hgtserve.terrain.points import (
    PointParseError,
    parse_points_json,
    parse_points_string,
)

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        argv: Arguments to parse, defaults to sys.argv[1:]

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(description="Point elevation lookups over HGT tiles")

    parser.add_argument(
        "points",
        nargs="?",
        help="Points as 'lon,lat|lon,lat|...'",
    )
    parser.add_argument(
        "--json",
        dest="json_file",
        type=str,
        help="JSON file with an array of [lon, lat] pairs ('-' reads stdin)",
    )

    parser.add_argument(
        "--config",
        type=Path,
        action="append",
        help="YAML service configuration file, repeat to layer files (later ones override)",
    )
    parser.add_argument("--data-dir", type=Path, help="Directory holding the HGT tiles")
    parser.add_argument("--policy", choices=CACHE_POLICIES, help="Tile cache policy")
    parser.add_argument("--storage", choices=STORAGE_MODES, help="Tile storage mode")
    parser.add_argument(
        "--idle-minutes",
        type=float,
        help="Idle time before a tile is evicted (evicting policy)",
    )
    parser.add_argument("--logging-config", type=Path, help="YAML logging configuration file")

    args = parser.parse_args(argv)
    if (args.points is None) == (args.json_file is None):
        parser.error("give exactly one of points or --json")
    return args


def build_config(args: argparse.Namespace) -> ServiceConfig:
    """Resolve service configuration from file, environment and arguments.

    Command line arguments override the environment, which overrides the
    files. Later config files override earlier ones key by key.

    Raises:
        ConfigError: If any source holds an invalid value
    """
    loader = ConfigLoader()
    for path in args.config or []:
        loader.merge(ConfigLoader.load(path))
    config = ServiceConfig.from_loader(loader)
    config.apply_env()

    if args.data_dir is not None:
        config.data_dir = args.data_dir
    if args.policy is not None:
        config.cache_policy = args.policy
    if args.storage is not None:
        config.storage_mode = args.storage
    if args.idle_minutes is not None:
        config.idle_minutes = args.idle_minutes
    config.validate()
    return config


def read_points(args: argparse.Namespace) -> list[tuple[float, float]]:
    """Decode the query points given on the command line."""
    if args.json_file is None:
        return parse_points_string(args.points)
    if args.json_file == "-":
        return parse_points_json(sys.stdin.read())
    return parse_points_json(Path(args.json_file).read_text(encoding="utf-8"))


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, 2 for invalid input or configuration).
    """
    args = parse_args(argv)

    try:
        initialize_logging(args.logging_config, use_platform_dir=args.logging_config is None)
        config = build_config(args)
        points = read_points(args)
    except (ConfigError, LoggingError, PointParseError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        shutdown_logging()
        return 2

    provider = create_elevation_provider(config)
    try:
        provider.initialize()
        elevations = provider.get_elevations(points)
        logger.debug("Cache stats: %s", provider.get_cache_stats())
    finally:
        provider.close()
        shutdown_logging()

    print(json.dumps(elevations))
    return 0


if __name__ == "__main__":
    sys.exit(main())
