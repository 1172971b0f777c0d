"""Tests for the command line entry point."""

import io
import json
from collections.abc import Callable
from pathlib import Path

import pytest
import yaml

from hgtserve.main import build_config, main, parse_args
from hgtserve.terrain.addressing import TileKey


@pytest.fixture
def logging_config(tmp_path: Path) -> Path:
    """Write a logging config that keeps logs inside tmp_path."""
    path = tmp_path / "logging.yaml"
    config = {
        "log_dir": str(tmp_path / "logs"),
        "file": {"enabled": True, "filename": "hgtserve.log"},
        "console": {"enabled": False},
    }
    path.write_text(yaml.safe_dump(config), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the caller's environment out of configuration."""
    monkeypatch.delenv("ELEVATION_CACHE_DIR", raising=False)
    monkeypatch.delenv("CACHE_SLIDING_WINDOW", raising=False)


class TestParseArgs:
    """Test argument parsing."""

    def test_points_argument(self) -> None:
        """Test the delimited points argument."""
        args = parse_args(["34.5,31.5", "--policy", "lazy"])

        assert args.points == "34.5,31.5"
        assert args.policy == "lazy"

    def test_points_required(self) -> None:
        """Test that a query needs points."""
        with pytest.raises(SystemExit):
            parse_args([])

    def test_points_and_json_exclusive(self) -> None:
        """Test that only one point source may be given."""
        with pytest.raises(SystemExit):
            parse_args(["1,2", "--json", "points.json"])

    def test_invalid_policy(self) -> None:
        """Test policy choices."""
        with pytest.raises(SystemExit):
            parse_args(["1,2", "--policy", "sometimes"])


class TestBuildConfig:
    """Test configuration precedence."""

    def test_arguments_override_environment_and_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test file < environment < arguments."""
        config_file = tmp_path / "hgtserve.yaml"
        config_file.write_text(
            "elevation:\n  data_dir: from-file\n  cache:\n    policy: eager\n    idle_minutes: 3\n",
            encoding="utf-8",
        )
        monkeypatch.setenv("ELEVATION_CACHE_DIR", "from-env")
        monkeypatch.setenv("CACHE_SLIDING_WINDOW", "7")

        config = build_config(
            parse_args(["1,2", "--config", str(config_file), "--idle-minutes", "9"])
        )

        assert config.data_dir == Path("from-env")
        assert config.cache_policy == "eager"
        assert config.idle_minutes == 9.0

    def test_config_files_are_layered(self, tmp_path: Path) -> None:
        """Test that a later config file overrides an earlier one key by key."""
        base = tmp_path / "base.yaml"
        base.write_text(
            "elevation:\n  storage: memory\n  cache:\n    policy: eager\n    idle_minutes: 3\n",
            encoding="utf-8",
        )
        override = tmp_path / "override.yaml"
        override.write_text("elevation:\n  cache:\n    idle_minutes: 12\n", encoding="utf-8")

        config = build_config(
            parse_args(["1,2", "--config", str(base), "--config", str(override)])
        )

        assert config.storage_mode == "memory"
        assert config.cache_policy == "eager"
        assert config.idle_minutes == 12.0


class TestMain:
    """Test full command line runs."""

    def test_points_query(
        self,
        make_tile: Callable[..., Path],
        tile_dir: Path,
        logging_config: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Test that elevations are printed as a JSON array in input order."""
        make_tile(TileKey(34, 31))

        code = main(
            [
                "34.5,31.5|0.5,0.5|34.25,31.75",
                "--data-dir",
                str(tile_dir),
                "--logging-config",
                str(logging_config),
            ]
        )

        assert code == 0
        assert json.loads(capsys.readouterr().out) == [210.0, 0.0, 155.0]

    def test_json_file_query(
        self,
        make_tile: Callable[..., Path],
        tile_dir: Path,
        tmp_path: Path,
        logging_config: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Test points read from a JSON file."""
        make_tile(TileKey(34, 31))
        points_file = tmp_path / "points.json"
        points_file.write_text("[[34.5, 31.5], [34.0, 31.0]]", encoding="utf-8")

        code = main(
            [
                "--json",
                str(points_file),
                "--data-dir",
                str(tile_dir),
                "--policy",
                "eager",
                "--storage",
                "memory",
                "--logging-config",
                str(logging_config),
            ]
        )

        assert code == 0
        assert json.loads(capsys.readouterr().out) == [210.0, 300.0]

    def test_json_from_stdin(
        self,
        make_tile: Callable[..., Path],
        tile_dir: Path,
        logging_config: Path,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test points piped on standard input."""
        make_tile(TileKey(34, 31))
        monkeypatch.setattr("sys.stdin", io.StringIO("[[34.5, 31.5]]"))

        code = main(
            ["--json", "-", "--data-dir", str(tile_dir), "--logging-config", str(logging_config)]
        )

        assert code == 0
        assert json.loads(capsys.readouterr().out) == [210.0]

    def test_invalid_points(
        self, tile_dir: Path, logging_config: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test that malformed points exit with status 2."""
        code = main(
            ["34.5|31.5", "--data-dir", str(tile_dir), "--logging-config", str(logging_config)]
        )

        captured = capsys.readouterr()
        assert code == 2
        assert captured.out == ""
        assert captured.err.startswith("error:")

    def test_missing_json_file(
        self, tmp_path: Path, logging_config: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test that an unreadable points file exits with status 2."""
        code = main(
            ["--json", str(tmp_path / "none.json"), "--logging-config", str(logging_config)]
        )

        assert code == 2
        assert "error:" in capsys.readouterr().err

    def test_invalid_environment(
        self,
        logging_config: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Test that a bad idle window in the environment is reported."""
        monkeypatch.setenv("CACHE_SLIDING_WINDOW", "forever")

        code = main(["1,2", "--logging-config", str(logging_config)])

        assert code == 2
        assert "CACHE_SLIDING_WINDOW" in capsys.readouterr().err
