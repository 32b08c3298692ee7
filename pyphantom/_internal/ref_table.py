"""Host-side half of the reference table.

The engine's dispatcher owns the authoritative table (ref id -> live object).
This table mirrors what the host has observed of it so that:

- the same engine object always maps to the same facade instance, which makes
  aliased double-close unreachable from well-behaved callers;
- closing a parent invalidates every child facade the host has seen it own,
  the way the dispatcher cascades the close engine-side;
- a ref id the host has already seen released is never accepted again.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, Protocol, TypeVar

from ..errors import ProtocolError
from .remote_handle import RemoteHandle

logger = logging.getLogger(__name__)


class HandleOwner(Protocol):
    @property
    def handle(self) -> RemoteHandle: ...


F = TypeVar("F", bound=HandleOwner)


class HandleTable(Generic[F]):
    """Map of live ref ids to the facades wrapping them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, F] = {}
        self._children: dict[str, set[str]] = {}
        self._released: set[str] = set()

    def adopt(self, ref_id: str, factory: Callable[[str], F]) -> F:
        """Return the facade for *ref_id*, building it with *factory* on first sight.

        Raises:
            ProtocolError: If the engine hands out an id that was already released.
        """
        with self._lock:
            existing = self._entries.get(ref_id)
            if existing is not None:
                return existing
            if ref_id in self._released:
                raise ProtocolError(f"Engine reissued released ref id {ref_id}")
            facade = factory(ref_id)
            self._entries[ref_id] = facade
            logger.debug("Adopted ref %s (%d live)", ref_id, len(self._entries))
            return facade

    def link(self, parent_id: str, child_id: str) -> None:
        """Record that *parent_id* owns *child_id*."""
        if parent_id == child_id:
            return
        with self._lock:
            self._children.setdefault(parent_id, set()).add(child_id)

    def release(self, ref_id: str) -> list[str]:
        """Mark *ref_id* and everything it transitively owns as closed.

        Children are released before their parent. Returns the released ids in
        that order.
        """
        with self._lock:
            order: list[str] = []
            seen: set[str] = set()

            def visit(current: str) -> None:
                if current in seen:
                    return
                seen.add(current)
                for child in sorted(self._children.get(current, ()), key=_ref_sort_key):
                    visit(child)
                order.append(current)

            visit(ref_id)

            for current in order:
                facade = self._entries.pop(current, None)
                if facade is not None:
                    facade.handle.mark_closed()
                self._children.pop(current, None)
                self._released.add(current)
            for children in self._children.values():
                children.difference_update(order)

        if len(order) > 1:
            logger.debug("Released ref %s with %d owned children", ref_id, len(order) - 1)
        return order

    def clear(self) -> None:
        """Forget every entry (the engine process is gone)."""
        with self._lock:
            self._entries.clear()
            self._children.clear()
            self._released.clear()

    def __contains__(self, ref_id: object) -> bool:
        with self._lock:
            return ref_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _ref_sort_key(ref_id: str) -> tuple[int, str]:
    # Engine ids are stringified counters; fall back to text order for anything else.
    return (int(ref_id), "") if ref_id.isdigit() else (-1, ref_id)
