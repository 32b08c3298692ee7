import hashlib
import logging
import os
import shutil
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from typing import IO, Any, Optional

from ..config import DEFAULT_OPEN_TIMEOUT, OutputSink, ProcessConfig, resolve_process_config
from ..errors import LaunchError, PhantomError, ReadinessTimeoutError
from .bootstrap import SHIM, stage_bootstrap
from .rpc_transports import HTTPTransport
from .socket_utils import find_free_port

__all__ = ["EngineProcess"]

logger = logging.getLogger(__name__)
engine_logger = logging.getLogger("pyphantom.engine")


class _DeduplicationFilter(logging.Filter):
    def __init__(self, timeout_seconds: int = 10):
        super().__init__()
        self.timeout = timeout_seconds
        self.last_seen: dict[str, float] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        msg_content = record.getMessage()
        msg_hash = hashlib.sha256(msg_content.encode("utf-8")).hexdigest()
        now = time.time()

        if msg_hash in self.last_seen and now - self.last_seen[msg_hash] < self.timeout:
            return False  # Suppress duplicate

        self.last_seen[msg_hash] = now

        if len(self.last_seen) > 1000:
            cutoff = now - self.timeout
            self.last_seen = {k: v for k, v in self.last_seen.items() if v > cutoff}

        return True


engine_logger.addFilter(_DeduplicationFilter(timeout_seconds=5))


class EngineProcess:
    """Supervised engine process: staging directory, child process, and transport.

    ``open`` is all-or-nothing: on any failure the process is killed (if started)
    and the directory removed (if created) before the error propagates.
    ``close`` is safe on a never-opened or failed instance.
    """

    def __init__(self, config: Optional[ProcessConfig] = None) -> None:
        self.config = resolve_process_config(config)
        self.bin_path = self.config["bin_path"]
        self.configured_port = self.config["port"]
        self.port = self.configured_port
        self.poll_interval = self.config["poll_interval"]

        self.path: Optional[str] = None
        self.entry_script: Optional[Path] = None
        self.proc: Optional[subprocess.Popen[str]] = None
        self.transport: Optional[HTTPTransport] = None
        self._pumps: list[threading.Thread] = []

    @property
    def is_open(self) -> bool:
        return self.transport is not None and not self.transport.closed

    def open(self, timeout: Optional[float] = DEFAULT_OPEN_TIMEOUT) -> None:
        """Stage the entry script, start the engine, and wait until it is ready.

        Args:
            timeout: Seconds to wait for the readiness check. ``None`` waits forever.

        Raises:
            LaunchError: Staging failed, or the engine could not start or exited early.
            ReadinessTimeoutError: The engine never answered within *timeout*.
        """
        if self.path is not None or self.proc is not None:
            raise RuntimeError("Engine process is already open")

        deadline = None if timeout is None else time.monotonic() + timeout
        try:
            self._stage()
            self._launch()
            self._wait(deadline)
        except BaseException as exc:
            logger.warning("Engine failed to open (%s); rolling back", exc)
            try:
                self.close()
            except PhantomError as cleanup_exc:
                logger.warning("Rollback after failed open was incomplete: %s", cleanup_exc)
            raise

        logger.info("Engine ready on port %d (pid=%d)", self.port, self.proc.pid if self.proc else -1)

    def close(self) -> None:
        """Kill the engine, wait for it, and remove the private directory.

        Raises:
            PhantomError: Listing every step that failed, after all steps were attempted.
        """
        errors: list[str] = []

        # Kill first so in-flight calls observe a broken channel rather than a closed client.
        if self.proc is not None:
            try:
                if self.proc.poll() is None:
                    self.proc.kill()
                self.proc.wait()
            except Exception as exc:
                errors.append(f"kill: {exc}")
            logger.debug("Engine pid=%d exited with %s", self.proc.pid, self.proc.returncode)
            self.proc = None

        if self.transport is not None:
            try:
                self.transport.close()
            except Exception as exc:
                errors.append(f"transport: {exc}")
            self.transport = None

        for pump in self._pumps:
            pump.join(timeout=5.0)
            if pump.is_alive():
                errors.append(f"output pump {pump.name} did not finish")
        self._pumps = []

        if self.path is not None:
            try:
                shutil.rmtree(self.path)
            except FileNotFoundError:
                pass
            except Exception as exc:
                errors.append(f"remove {self.path}: {exc}")
            self.path = None
            self.entry_script = None

        if errors:
            raise PhantomError(f"Errors closing engine process: {'; '.join(errors)}")

    def _stage(self) -> None:
        try:
            self.path = tempfile.mkdtemp(prefix="phantomjs-")
            self.entry_script = stage_bootstrap(Path(self.path), self.config.get("shim", SHIM))
        except OSError as exc:
            raise LaunchError(f"Failed to stage entry script: {exc}") from exc

    def _launch(self) -> None:
        # Port 0 picks a fresh port on every open, including retries.
        self.port = find_free_port() if self.configured_port == 0 else self.configured_port

        env = os.environ.copy()
        env.update(self.config["env"])
        env["PORT"] = str(self.port)

        stdout = self.config.get("stdout")
        stderr = self.config.get("stderr")
        cmd = [self.bin_path, str(self.entry_script)]
        logger.info("Launching engine: %s (port %d)", " ".join(cmd), self.port)
        try:
            self.proc = subprocess.Popen(
                cmd,
                env=env,
                cwd=self.path,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                close_fds=True,
            )
        except OSError as exc:
            raise LaunchError(f"Failed to start {self.bin_path!r}: {exc}") from exc

        self._pumps = [
            self._start_pump("stdout", self.proc.stdout, stdout, logging.INFO),
            self._start_pump("stderr", self.proc.stderr, stderr, logging.WARNING),
        ]
        self.transport = HTTPTransport(self.port)

    def _start_pump(
        self,
        name: str,
        stream: Optional[IO[str]],
        sink: Optional[OutputSink],
        level: int,
    ) -> threading.Thread:
        """Forward one engine output stream to *sink*, or to the engine logger."""

        def pump() -> None:
            if stream is None:
                return
            with stream:
                for line in stream:
                    if sink is not None:
                        sink.write(line)
                        flush: Any = getattr(sink, "flush", None)
                        if callable(flush):
                            flush()
                    else:
                        engine_logger.log(level, "[%s] %s", name, line.rstrip("\n"))

        thread = threading.Thread(target=pump, name=f"pyphantom-{name}", daemon=True)
        thread.start()
        return thread

    def _wait(self, deadline: Optional[float]) -> None:
        """Poll the readiness check every ``poll_interval`` until *deadline*."""
        assert self.proc is not None and self.transport is not None
        attempts = 0
        while True:
            attempts += 1
            if self.transport.ping(timeout=max(self.poll_interval, 1.0)):
                logger.debug("Readiness check succeeded after %d attempt(s)", attempts)
                return

            returncode = self.proc.poll()
            if returncode is not None:
                raise LaunchError(f"Engine exited with status {returncode} before becoming ready")

            if deadline is not None and time.monotonic() >= deadline:
                raise ReadinessTimeoutError(
                    f"Engine on port {self.port} not ready after {attempts} attempt(s)"
                )
            time.sleep(self.poll_interval)
