from __future__ import annotations

import logging
import os
from typing import Protocol, TypedDict

logger = logging.getLogger(__name__)

DEFAULT_PORT = 20202
DEFAULT_BIN_PATH = "phantomjs"
DEFAULT_OPEN_TIMEOUT = 30.0
DEFAULT_POLL_INTERVAL = 0.5

BIN_PATH_ENV = "PYPHANTOM_BIN_PATH"
PORT_ENV = "PYPHANTOM_PORT"


class OutputSink(Protocol):
    """Anything engine output can be written to (a text file, ``io.StringIO``, ...)."""

    def write(self, data: str, /) -> object: ...


class ProcessConfig(TypedDict, total=False):
    """Configuration for a supervised engine :class:`~pyphantom.process.Process`.

    Every key is optional; :func:`resolve_process_config` fills in defaults.
    """

    bin_path: str
    """Path to the engine binary (``phantomjs`` on PATH by default)."""

    port: int
    """Loopback TCP port the dispatcher listens on. ``0`` picks a free port at open."""

    poll_interval: float
    """Seconds between readiness checks while the engine starts."""

    stdout: OutputSink
    """Sink for engine stdout. Forwarded to the ``pyphantom.engine`` logger when absent."""

    stderr: OutputSink
    """Sink for engine stderr. Forwarded to the ``pyphantom.engine`` logger when absent."""

    env: dict[str, str]
    """Extra environment variables passed to the engine on top of the host environment."""

    shim: str
    """Source of the staged entry script. Defaults to the bundled dispatcher."""


def resolve_process_config(config: ProcessConfig | None = None) -> ProcessConfig:
    """Return a copy of *config* with defaults and environment overrides applied.

    Explicit keys win over ``PYPHANTOM_BIN_PATH`` / ``PYPHANTOM_PORT``, which win
    over the built-in defaults.

    Raises:
        ValueError: If the port or poll interval is out of range.
    """
    resolved: ProcessConfig = ProcessConfig(**(config or {}))

    if "bin_path" not in resolved:
        resolved["bin_path"] = os.environ.get(BIN_PATH_ENV) or DEFAULT_BIN_PATH

    if "port" not in resolved:
        env_port = os.environ.get(PORT_ENV)
        if env_port:
            try:
                resolved["port"] = int(env_port)
            except ValueError as exc:
                raise ValueError(f"{PORT_ENV} must be an integer, got {env_port!r}") from exc
            logger.debug("Using engine port %s from %s", env_port, PORT_ENV)
        else:
            resolved["port"] = DEFAULT_PORT

    resolved.setdefault("poll_interval", DEFAULT_POLL_INTERVAL)
    resolved.setdefault("env", {})

    if not 0 <= resolved["port"] <= 65535:
        raise ValueError(f"Port out of range: {resolved['port']}")
    if resolved["poll_interval"] <= 0:
        raise ValueError(f"poll_interval must be positive, got {resolved['poll_interval']}")

    return resolved
