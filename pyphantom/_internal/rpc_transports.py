"""
RPC Transport Layer.

This module contains:
- RPCTransport Protocol
- HTTPTransport (loopback HTTP to the engine-side dispatcher)
"""

from __future__ import annotations

import json
import logging
import threading
from typing import (
    Any,
    Protocol,
    runtime_checkable,
)

import httpx

from ..errors import EngineError, NotFoundError, ProtocolError, TransportError
from .rpc_serialization import decode_body
from .socket_utils import loopback_url

logger = logging.getLogger(__name__)

PING_BODY = "ok"


@runtime_checkable
class RPCTransport(Protocol):
    """Protocol for the host side of the engine channel.

    This is the only primitive the per-property layer needs: a method path and an
    optional JSON payload in, a decoded JSON object or a typed error out.
    """

    def call(self, path: str, payload: Any = None) -> dict[str, Any]:
        """Send one request and block until the engine answers."""
        ...

    def ping(self, timeout: float) -> bool:
        """Return True if the dispatcher answered the readiness check."""
        ...

    def close(self) -> None:
        """Close the transport. Further calls raise TransportError."""
        ...


class HTTPTransport:
    """Transport using loopback HTTP + JSON envelopes.

    Calls are serialized with a lock: the dispatcher handles one request at a time
    and its reference table has no locking of its own. No per-call timeout is set;
    a hung engine call blocks until the process is killed.
    """

    def __init__(self, port: int, *, client: httpx.Client | None = None) -> None:
        self.port = port
        self.base_url = loopback_url(port)
        self._client = client or httpx.Client(base_url=self.base_url, timeout=None, trust_env=False)
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def call(self, path: str, payload: Any = None) -> dict[str, Any]:
        """POST *payload* as JSON to *path* and decode the JSON reply.

        Raises:
            TransportError: The engine is unreachable or the transport is closed.
            NotFoundError: The dispatcher returned 404 (unknown path or ref).
            EngineError: The dispatcher returned 500; message is the engine text.
            ProtocolError: Any other status, or a body that is not a JSON object.
        """
        if self._closed:
            raise TransportError(f"{path}: transport to {self.base_url} is closed")

        try:
            content = None if payload is None else json.dumps(payload).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"{path}: cannot JSON-serialize request: {e}") from e

        with self._lock:
            logger.debug("RPC -> %s %s", path, payload)
            try:
                response = self._client.post(
                    path,
                    content=content,
                    headers={"Content-Type": "application/json"},
                )
            except httpx.TransportError as exc:
                raise TransportError(f"{path}: engine unreachable at {self.base_url}: {exc}") from exc
            except RuntimeError as exc:
                # httpx refuses to send once the client is closed mid-call.
                if not self._closed:
                    raise
                raise TransportError(f"{path}: transport to {self.base_url} is closed") from exc

        if response.status_code == httpx.codes.NOT_FOUND:
            raise NotFoundError(f"{path}: not found ({response.text.strip() or 'no detail'})")
        if response.status_code == httpx.codes.INTERNAL_SERVER_ERROR:
            raise EngineError(response.text)
        if response.status_code != httpx.codes.OK:
            raise ProtocolError(f"{path}: unexpected status {response.status_code}")

        result = decode_body(path, response.content)
        logger.debug("RPC <- %s %s", path, result)
        return result

    def ping(self, timeout: float = 1.0) -> bool:
        """Request ``GET /ping``; any failure is reported as not ready."""
        if self._closed:
            return False
        try:
            response = self._client.get("/ping", timeout=timeout)
        except httpx.HTTPError as exc:
            logger.debug("Readiness check on %s failed: %s", self.base_url, exc)
            return False
        if response.status_code != httpx.codes.OK:
            logger.debug("Readiness check on %s: unexpected status %d", self.base_url, response.status_code)
            return False
        return response.text.strip() == PING_BODY

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._closed = True
        self._client.close()
