"""Tests for ProcessConfig resolution and validation.

These tests verify configuration handling without spawning processes.
"""

import pytest

from pyphantom.config import (
    BIN_PATH_ENV,
    DEFAULT_BIN_PATH,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PORT,
    PORT_ENV,
    ProcessConfig,
    resolve_process_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv(BIN_PATH_ENV, raising=False)
    monkeypatch.delenv(PORT_ENV, raising=False)


class TestDefaults:
    """Tests for values filled in when keys are absent."""

    def test_empty_config_gets_defaults(self):
        resolved = resolve_process_config()

        assert resolved["bin_path"] == DEFAULT_BIN_PATH
        assert resolved["port"] == DEFAULT_PORT
        assert resolved["poll_interval"] == DEFAULT_POLL_INTERVAL
        assert resolved["env"] == {}

    def test_defaults_match_engine_conventions(self):
        assert DEFAULT_PORT == 20202
        assert DEFAULT_BIN_PATH == "phantomjs"

    def test_input_is_not_mutated(self):
        config: ProcessConfig = {"port": 0}
        resolve_process_config(config)

        assert config == {"port": 0}

    def test_output_sinks_pass_through(self):
        sink = object()
        resolved = resolve_process_config({"stdout": sink})  # type: ignore[typeddict-item]

        assert resolved["stdout"] is sink
        assert "stderr" not in resolved


class TestEnvironmentOverrides:
    """Tests for PYPHANTOM_* environment variables."""

    def test_env_overrides_defaults(self, monkeypatch):
        monkeypatch.setenv(BIN_PATH_ENV, "/opt/phantomjs/bin/phantomjs")
        monkeypatch.setenv(PORT_ENV, "31337")

        resolved = resolve_process_config()

        assert resolved["bin_path"] == "/opt/phantomjs/bin/phantomjs"
        assert resolved["port"] == 31337

    def test_explicit_keys_win_over_env(self, monkeypatch):
        monkeypatch.setenv(BIN_PATH_ENV, "/from/env")
        monkeypatch.setenv(PORT_ENV, "31337")

        resolved = resolve_process_config({"bin_path": "/explicit", "port": 0})

        assert resolved["bin_path"] == "/explicit"
        assert resolved["port"] == 0

    def test_non_integer_port_env_raises(self, monkeypatch):
        monkeypatch.setenv(PORT_ENV, "not-a-port")

        with pytest.raises(ValueError, match=PORT_ENV):
            resolve_process_config()


class TestValidation:
    """Tests for rejected values."""

    @pytest.mark.parametrize("port", [-1, 65536])
    def test_port_out_of_range(self, port):
        with pytest.raises(ValueError, match="Port out of range"):
            resolve_process_config({"port": port})

    @pytest.mark.parametrize("port", [0, 1, 65535])
    def test_port_bounds_accepted(self, port):
        assert resolve_process_config({"port": port})["port"] == port

    @pytest.mark.parametrize("interval", [0, -0.5])
    def test_poll_interval_must_be_positive(self, interval):
        with pytest.raises(ValueError, match="poll_interval"):
            resolve_process_config({"poll_interval": interval})
