"""Error types raised by pyphantom."""

from __future__ import annotations


class PhantomError(RuntimeError):
    """Base class for all pyphantom errors."""


class LaunchError(PhantomError):
    """Raised when the engine process cannot be staged or started."""


class ReadinessTimeoutError(PhantomError, TimeoutError):
    """Raised when a started engine never answers the readiness check in time."""


class TransportError(PhantomError, ConnectionError):
    """Raised when the loopback channel to the engine is refused, lost, or closed.

    Every handle issued by the process should be treated as invalid afterwards.
    """


class NotFoundError(PhantomError, LookupError):
    """Raised when the dispatcher does not know the method path or the ref."""


class EngineError(PhantomError):
    """Raised when the engine-side dispatcher caught a scripting exception.

    The message is the engine's text, passed through verbatim.
    """


class ProtocolError(PhantomError):
    """Raised for unexpected status codes or response bodies of the wrong shape."""


class NavigationError(PhantomError):
    """Raised when a navigation finished with a status other than ``success``."""

    status: str
    url: str | None

    def __init__(self, status: str, url: str | None = None) -> None:
        self.status = status
        self.url = url
        target = f" {url}" if url else ""
        super().__init__(f"Navigation{target} failed: status={status!r}")
