"""Host-side process handle for pyphantom.

Owns one supervised engine process, the transport to its dispatcher, and the
host-side reference table of the pages created in it.
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import TYPE_CHECKING, cast

from typing_extensions import Self

from ._internal.ref_table import HandleTable
from ._internal.remote_handle import RemoteHandle
from ._internal.rpc_serialization import CreateResponse, expect_field, parse_ref
from ._internal.rpc_transports import RPCTransport
from ._internal.socket_utils import loopback_url
from ._internal.supervisor import EngineProcess
from .config import DEFAULT_OPEN_TIMEOUT, ProcessConfig
from .errors import TransportError

if TYPE_CHECKING:
    from .webpage import WebPage

__all__ = ["Process"]

logger = logging.getLogger(__name__)


class Process:
    """A PhantomJS engine process and the pages living in it.

    Usage::

        with Process() as process:
            with process.create_web_page() as page:
                page.open("https://example.com")
                print(page.title())

    Calls against one process must not overlap from several threads; the
    transport serializes them, so concurrent callers simply wait their turn.
    """

    def __init__(self, config: ProcessConfig | None = None) -> None:
        """Initialize the process handle without starting anything.

        Args:
            config: Binary path, port, output sinks and so on. See :class:`ProcessConfig`.
        """
        self._engine = EngineProcess(config)
        self._pages: HandleTable[WebPage] = HandleTable()

    @property
    def bin_path(self) -> str:
        return self._engine.bin_path

    @property
    def port(self) -> int:
        return self._engine.port

    @property
    def url(self) -> str:
        """Base URL of the engine's dispatcher."""
        return loopback_url(self.port)

    @property
    def path(self) -> str:
        """Private working directory of the running engine.

        Files placed here can be referenced by relative path (``inject_js``) and
        are removed when the process closes.
        """
        if self._engine.path is None:
            raise RuntimeError("Process is not open")
        return self._engine.path

    @property
    def is_open(self) -> bool:
        return self._engine.is_open

    @property
    def transport(self) -> RPCTransport:
        """Call primitive for the per-property layer (method path + JSON in, JSON out)."""
        transport = self._engine.transport
        if transport is None or transport.closed:
            raise TransportError("Process is not open")
        return transport

    def open(self, timeout: float | None = DEFAULT_OPEN_TIMEOUT) -> None:
        """Start the engine and block until it answers the readiness check.

        A failed open leaves nothing behind, so calling it again is safe.
        """
        self._engine.open(timeout)

    def close(self) -> None:
        """Kill the engine and remove its working directory.

        Every page created by this process becomes unusable; calls on them raise
        :class:`TransportError`.
        """
        live = len(self._pages)
        self._pages.clear()
        self._engine.close()
        logger.info("Process closed (%d page handle(s) dropped)", live)

    def create_web_page(self) -> WebPage:
        """Create a new page in the engine and return its facade."""
        path = "/webpage/create"
        response = cast(CreateResponse, self.transport.call(path))
        ref_id = parse_ref(expect_field(response, "ref", dict, path=path), path=path)
        return self._adopt_page(ref_id)

    def _adopt_page(self, ref_id: str) -> WebPage:
        from .webpage import WebPage

        return self._pages.adopt(
            ref_id, lambda rid: WebPage(self, RemoteHandle(self.transport, rid, "webpage"))
        )

    def __enter__(self) -> Self:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<Process {self.bin_path} port={self.port} {state}>"
