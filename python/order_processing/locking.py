"""Per-order mutual exclusion.

Every ``OrderService`` operation holds the lock for its order ID, so
``process_order`` and ``cancel_order`` for the same order never interleave.
The store's optimistic version check backs this up across processes.

Example:
    >>> locks = OrderLockRegistry()
    >>> with locks.hold("ord-123"):
    ...     ...  # load, mutate, save
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from .errors import ConcurrentModificationError
from .logging import log_trace, log_warn


class OrderLockRegistry:
    """Keyed re-entrant locks, created on first use.

    An entry lives only while some thread holds or waits for it; the last
    one out removes it.
    """

    def __init__(self, *, acquire_timeout: float | None = None) -> None:
        """Initialize the registry.

        Args:
            acquire_timeout: Seconds to wait for a held lock before raising
                ConcurrentModificationError. None waits indefinitely.
        """
        self._locks: dict[str, Any] = {}
        self._holders: dict[str, int] = {}
        self._guard = threading.Lock()
        self._acquire_timeout = acquire_timeout

    def _checkout(self, order_id: str) -> Any:
        with self._guard:
            lock = self._locks.get(order_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[order_id] = lock
            self._holders[order_id] = self._holders.get(order_id, 0) + 1
            return lock

    def _checkin(self, order_id: str) -> None:
        with self._guard:
            remaining = self._holders[order_id] - 1
            if remaining:
                self._holders[order_id] = remaining
            else:
                del self._holders[order_id]
                del self._locks[order_id]

    @contextmanager
    def hold(self, order_id: str) -> Iterator[None]:
        """Hold the lock for ``order_id`` for the duration of the block.

        Raises:
            ConcurrentModificationError: If the lock could not be acquired
                within ``acquire_timeout``.
        """
        lock = self._checkout(order_id)
        try:
            timeout = -1 if self._acquire_timeout is None else self._acquire_timeout
            if not lock.acquire(timeout=timeout):
                log_warn("Timed out waiting for order lock", {"order_id": order_id})
                raise ConcurrentModificationError(
                    f"Order {order_id} is being modified by another operation",
                    metadata={"order_id": order_id},
                )
            log_trace("Order lock acquired", {"order_id": order_id})
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(order_id)

    def is_held(self, order_id: str) -> bool:
        """True while any thread holds or waits for ``order_id``."""
        with self._guard:
            return order_id in self._locks

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


__all__ = ["OrderLockRegistry"]
