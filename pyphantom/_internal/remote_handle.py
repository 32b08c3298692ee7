"""Remote object handle for engine-side object references.

RemoteHandle is a lightweight reference to an object living inside the engine
process. It carries only the ref id issued by the dispatcher and the transport
used to route calls; it never manages the process lifecycle.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..errors import NotFoundError
from .rpc_transports import RPCTransport

logger = logging.getLogger(__name__)


class RemoteHandle:
    """Handle to an object in the engine process.

    State moves one way, ``live -> closed``. Once closed, calls fail locally with
    :class:`NotFoundError`, matching what the dispatcher answers for a ref that is
    no longer in its table.

    Attributes:
        ref_id: Identifier issued by the engine's reference table.
        kind: Object kind used as the method path prefix (e.g. ``"webpage"``).
    """

    def __init__(self, transport: RPCTransport, ref_id: str, kind: str) -> None:
        self._transport = transport
        self.ref_id = ref_id
        self.kind = kind
        self.closed = False

    def call(self, operation: str, request: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Invoke ``POST /<kind>/<operation>`` with a request carrying this handle as ``ref``."""
        path = f"/{self.kind}/{operation}"
        if self.closed:
            raise NotFoundError(f"{path}: ref {self.ref_id} is closed")
        payload: dict[str, Any] = dict(request) if request is not None else {"ref": self.ref_id}
        if payload.get("ref") != self.ref_id:
            raise ValueError(f"{path}: request ref {payload.get('ref')!r} does not match handle {self.ref_id}")
        return self._transport.call(path, payload)

    def mark_closed(self) -> None:
        if not self.closed:
            logger.debug("Handle %s/%s closed", self.kind, self.ref_id)
        self.closed = True

    def __repr__(self) -> str:
        state = "closed" if self.closed else "live"
        return f"<RemoteHandle id={self.ref_id} kind={self.kind} {state}>"
