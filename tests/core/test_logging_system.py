"""Unit tests for the logging system with platform-aware paths and rotation."""

import logging
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from hgtserve.core.logging_system import (
    DEFAULT_LOG_FILENAME,
    LoggingError,
    MillisecondFormatter,
    get_logger,
    get_platform_log_dir,
    initialize_logging,
    rotate_logs,
    shutdown_logging,
)


@pytest.fixture
def platform_log_dir(tmp_path: Path) -> Iterator[Path]:
    """Redirect the platform log directory into a temporary folder."""
    log_dir = tmp_path / "logs"
    with patch("hgtserve.core.logging_system.get_platform_log_dir", return_value=log_dir):
        yield log_dir
    shutdown_logging()


def write_logging_config(path: Path, log_dir: Path, **overrides: object) -> Path:
    """Write a logging YAML file into path."""
    config = {
        "log_dir": str(log_dir),
        "file": {"enabled": True, "filename": "service.log", "level": "DEBUG"},
        "console": {"enabled": False},
        "components": {},
    }
    config.update(overrides)
    path.write_text(yaml.safe_dump(config), encoding="utf-8")
    return path


class TestPlatformLogDir:
    """Tests for get_platform_log_dir function."""

    def test_macos_log_dir(self) -> None:
        """Test macOS log directory path."""
        with patch("platform.system", return_value="Darwin"):
            assert get_platform_log_dir() == Path.home() / "Library" / "Logs" / "HgtServe"

    def test_linux_log_dir(self) -> None:
        """Test Linux log directory path."""
        with patch("platform.system", return_value="Linux"):
            assert get_platform_log_dir() == Path.home() / ".hgtserve" / "logs"

    def test_windows_log_dir(self) -> None:
        """Test Windows log directory path."""
        with patch("platform.system", return_value="Windows"):
            with patch.dict("os.environ", {"APPDATA": "C:/Users/Test/AppData/Roaming"}):
                log_dir = get_platform_log_dir()
        assert log_dir == Path("C:/Users/Test/AppData/Roaming") / "HgtServe" / "Logs"

    def test_unknown_platform_defaults_to_linux(self) -> None:
        """Test unknown platform defaults to Linux-style path."""
        with patch("platform.system", return_value="FreeBSD"):
            assert ".hgtserve" in get_platform_log_dir().parts


class TestLogRotation:
    """Tests for log rotation functionality."""

    def test_rotate_logs_no_existing_log(self, tmp_path: Path) -> None:
        """Test rotation when no log file exists."""
        rotate_logs(tmp_path, "test.log", 5)
        assert list(tmp_path.iterdir()) == []

    def test_rotate_logs_shifts_files(self, tmp_path: Path) -> None:
        """Test rotation with multiple existing log files."""
        (tmp_path / "test.log").write_text("current")
        (tmp_path / "test.log.1").write_text("previous-1")
        (tmp_path / "test.log.2").write_text("previous-2")

        rotate_logs(tmp_path, "test.log", 5)

        assert not (tmp_path / "test.log").exists()
        assert (tmp_path / "test.log.1").read_text() == "current"
        assert (tmp_path / "test.log.2").read_text() == "previous-1"
        assert (tmp_path / "test.log.3").read_text() == "previous-2"

    def test_rotate_logs_deletes_oldest(self, tmp_path: Path) -> None:
        """Test that the log beyond keep_count is deleted."""
        (tmp_path / "test.log").write_text("current")
        for i in range(1, 3):
            (tmp_path / f"test.log.{i}").write_text(f"old-{i}")

        rotate_logs(tmp_path, "test.log", keep_count=2)

        assert (tmp_path / "test.log.1").read_text() == "current"
        assert (tmp_path / "test.log.2").read_text() == "old-1"
        assert not (tmp_path / "test.log.3").exists()


class TestLoggingInitialization:
    """Tests for logging system initialization."""

    def test_initialize_with_platform_dir(self, platform_log_dir: Path) -> None:
        """Test initialization uses the platform-specific directory."""
        initialize_logging(use_platform_dir=True)
        get_logger("test").info("Test message")

        assert (platform_log_dir / DEFAULT_LOG_FILENAME).exists()

    def test_initialize_from_config_file(self, tmp_path: Path) -> None:
        """Test that the config file sets directory and file name."""
        log_dir = tmp_path / "custom"
        config = write_logging_config(tmp_path / "logging.yaml", log_dir)

        initialize_logging(config, use_platform_dir=False)
        get_logger("hgtserve.test").debug("configured")
        shutdown_logging()

        assert "configured" in (log_dir / "service.log").read_text()

    def test_file_logging_disabled(self, tmp_path: Path) -> None:
        """Test that no directory is created without a file handler."""
        log_dir = tmp_path / "never"
        config = write_logging_config(tmp_path / "logging.yaml", log_dir, file={"enabled": False})

        initialize_logging(config, use_platform_dir=False)
        get_logger("test").info("console only")
        shutdown_logging()

        assert not log_dir.exists()

    def test_initialize_with_missing_config(self) -> None:
        """Test initialization fails with a missing config file."""
        with pytest.raises(LoggingError, match="Logging config file not found"):
            initialize_logging(config_path="/nonexistent/config.yaml")

    def test_initialize_with_invalid_yaml(self, tmp_path: Path) -> None:
        """Test that a broken config file is reported."""
        config = tmp_path / "logging.yaml"
        config.write_text("file: [unclosed", encoding="utf-8")

        with pytest.raises(LoggingError, match="Failed to load logging config"):
            initialize_logging(config)

    def test_unknown_level(self, tmp_path: Path) -> None:
        """Test that an unknown level name is rejected."""
        config = write_logging_config(
            tmp_path / "logging.yaml", tmp_path, console={"enabled": True, "level": "LOUD"}
        )

        with pytest.raises(LoggingError, match="Unknown log level"):
            initialize_logging(config, use_platform_dir=False)

    def test_multiple_initialization_calls(self, platform_log_dir: Path) -> None:
        """Test that repeated initialization keeps a single set of handlers."""
        initialize_logging(use_platform_dir=True)
        initialize_logging(use_platform_dir=True)

        assert len(logging.getLogger().handlers) == 2


class TestLoggerFunctionality:
    """Tests for logger creation and usage."""

    def test_get_logger_caches_loggers(self, platform_log_dir: Path) -> None:
        """Test that loggers are cached and reused."""
        initialize_logging(use_platform_dir=True)

        logger = get_logger("hgtserve.terrain.tile_cache")

        assert isinstance(logger, logging.Logger)
        assert logger.name == "hgtserve.terrain.tile_cache"
        assert get_logger("hgtserve.terrain.tile_cache") is logger

    def test_logger_writes_to_file(self, platform_log_dir: Path) -> None:
        """Test that messages at every level reach the log file."""
        initialize_logging(use_platform_dir=True)
        logger = get_logger("test")
        logger.info("Test log message")
        logger.debug("Debug message")
        logger.error("Error message")
        shutdown_logging()

        content = (platform_log_dir / DEFAULT_LOG_FILENAME).read_text()
        assert "Test log message" in content
        assert "Debug message" in content
        assert "Error message" in content

    def test_component_level(self, tmp_path: Path) -> None:
        """Test per-component levels and disabled components."""
        components = {
            "hgtserve.quiet": {"level": "WARNING"},
            "hgtserve.muted": {"enabled": False},
        }
        config = write_logging_config(tmp_path / "logging.yaml", tmp_path, components=components)

        initialize_logging(config, use_platform_dir=False)
        get_logger("hgtserve.quiet").info("hidden info")
        get_logger("hgtserve.quiet").warning("shown warning")
        get_logger("hgtserve.muted").error("hidden error")
        shutdown_logging()
        logging.getLogger("hgtserve.quiet").setLevel(logging.NOTSET)
        logging.getLogger("hgtserve.muted").disabled = False

        content = (tmp_path / "service.log").read_text()
        assert "shown warning" in content
        assert "hidden" not in content

    def test_auto_initialize_on_first_logger(self, platform_log_dir: Path) -> None:
        """Test that getting a logger initializes logging if needed."""
        shutdown_logging()

        get_logger("auto_init_test").info("auto")

        assert (platform_log_dir / DEFAULT_LOG_FILENAME).exists()


class TestMillisecondFormatter:
    """Tests for the log timestamp format."""

    def test_milliseconds_appended(self) -> None:
        """Test the dot-separated millisecond suffix."""
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        record.created = 0.0
        record.msecs = 42.0

        stamp = MillisecondFormatter("%(asctime)s", "%Y").formatTime(record, "%Y")

        assert stamp.endswith(".042")


class TestLogRotationIntegration:
    """Integration tests for log rotation on startup."""

    def test_startup_rotates_existing_log(self, platform_log_dir: Path) -> None:
        """Test that initialization rotates the log of the previous run."""
        initialize_logging(use_platform_dir=True)
        get_logger("test").info("First session")
        shutdown_logging()

        initialize_logging(use_platform_dir=True)
        get_logger("test").info("Second session")
        shutdown_logging()

        current = (platform_log_dir / DEFAULT_LOG_FILENAME).read_text()
        assert "First session" in (platform_log_dir / f"{DEFAULT_LOG_FILENAME}.1").read_text()
        assert "Second session" in current
        assert "First session" not in current

    def test_multiple_sessions_keep_five_logs(self, platform_log_dir: Path) -> None:
        """Test that only the 5 most recent previous logs are kept."""
        for i in range(7):
            initialize_logging(use_platform_dir=True)
            get_logger("test").info(f"Session {i}")
            shutdown_logging()

        assert len(list(platform_log_dir.glob(f"{DEFAULT_LOG_FILENAME}*"))) == 6
        assert "Session 1" in (platform_log_dir / f"{DEFAULT_LOG_FILENAME}.5").read_text()
