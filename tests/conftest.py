"""
Pytest configuration and fixtures.

Lifecycle tests run a small Python stand-in for the engine (``tests/harness/fake_engine.py``):
it is staged as the entry script and launched with the current interpreter.
"""

import logging
import sys
from pathlib import Path

import pytest

from pyphantom import Process, ProcessConfig

FAKE_ENGINE = Path(__file__).parent / "harness" / "fake_engine.py"


def pytest_configure(config):
    """Configure pytest with custom settings."""
    # Set up logging
    log_level = logging.DEBUG if config.getoption("--debug-pyphantom") else logging.INFO

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Set specific logger levels
    logging.getLogger("pyphantom").setLevel(log_level)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    # If custom log file is specified, add file handler
    custom_log_file = config.getoption("--pyphantom-log-file")
    if custom_log_file:
        file_handler = logging.FileHandler(custom_log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
            )
        )
        logging.getLogger().addHandler(file_handler)


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--debug-pyphantom",
        action="store_true",
        default=False,
        help="Enable debug logging for pyphantom (shows every RPC round trip)",
    )
    parser.addoption(
        "--pyphantom-log-file",
        action="store",
        default=None,
        help="Log pyphantom debug output to specified file",
    )


def _fake_engine_config(**overrides) -> ProcessConfig:
    """Config that runs the fake engine on a free port with a fast readiness poll."""
    config: ProcessConfig = {
        "bin_path": sys.executable,
        "shim": FAKE_ENGINE.read_text(encoding="utf-8"),
        "port": 0,
        "poll_interval": 0.05,
    }
    config.update(overrides)  # type: ignore[typeddict-item]
    return config


@pytest.fixture
def make_engine_config():
    """Factory for fake-engine configs; keyword arguments override keys."""
    return _fake_engine_config


@pytest.fixture
def engine_config() -> ProcessConfig:
    return _fake_engine_config()


@pytest.fixture
def process(engine_config):
    """An open process running the fake engine."""
    proc = Process(engine_config)
    proc.open(timeout=15)
    try:
        yield proc
    finally:
        if proc.is_open:
            proc.close()
