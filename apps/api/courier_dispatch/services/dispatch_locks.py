"""Process-wide, per-order acceptance locks.

A lock lives from the start of matching until a fixed retention window after
the order is claimed. Expired entries are purged lazily on access; the
persisted order row stays the durable source of truth.
"""

import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from threading import Lock


@dataclass
class DispatchLock:
    locked: bool = False
    assigned_to: uuid.UUID | None = None
    notified: list[uuid.UUID] = field(default_factory=list)
    declined: set[uuid.UUID] = field(default_factory=set)
    expires_at: float | None = None
    matching: bool = False


class DispatchLockRegistry:
    def __init__(
        self,
        retention_s: float,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.retention_s = retention_s
        self._monotonic = monotonic
        self._guard = Lock()
        self._locks: dict[uuid.UUID, DispatchLock] = {}

    def _purge_expired(self) -> None:
        now = self._monotonic()
        expired = [
            order_id
            for order_id, lock in self._locks.items()
            if lock.expires_at is not None and lock.expires_at <= now
        ]
        for order_id in expired:
            del self._locks[order_id]

    def open(self, order_id: uuid.UUID) -> DispatchLock:
        """Start tracking an order for matching, keeping any existing claim."""
        with self._guard:
            self._purge_expired()
            lock = self._locks.get(order_id)
            if lock is None:
                lock = DispatchLock()
                self._locks[order_id] = lock
            elif not lock.locked:
                lock.expires_at = None
            lock.matching = True
            return lock

    def try_acquire(self, order_id: uuid.UUID, courier_id: uuid.UUID) -> tuple[bool, uuid.UUID | None]:
        """Compare-and-swap ``locked`` from False to True.

        Returns ``(True, courier_id)`` for the winner and ``(False, holder)``
        for everyone else.
        """
        with self._guard:
            self._purge_expired()
            lock = self._locks.setdefault(order_id, DispatchLock())
            if lock.locked:
                return False, lock.assigned_to
            lock.locked = True
            lock.assigned_to = courier_id
            return True, courier_id

    def release(self, order_id: uuid.UUID, courier_id: uuid.UUID) -> None:
        """Roll back a claim that failed validation against the database."""
        with self._guard:
            lock = self._locks.get(order_id)
            if lock is not None and lock.assigned_to == courier_id:
                lock.locked = False
                lock.assigned_to = None
                # Entries no matching run tracks would otherwise never be purged.
                if not lock.matching and lock.expires_at is None:
                    lock.expires_at = self._monotonic() + self.retention_s

    def retain(self, order_id: uuid.UUID) -> None:
        """Schedule the lock for removal once the retention window passes."""
        with self._guard:
            lock = self._locks.get(order_id)
            if lock is not None:
                lock.expires_at = self._monotonic() + self.retention_s

    def record_notified(self, order_id: uuid.UUID, courier_id: uuid.UUID) -> None:
        with self._guard:
            lock = self._locks.get(order_id)
            if lock is not None:
                lock.notified.append(courier_id)

    def record_declined(self, order_id: uuid.UUID, courier_id: uuid.UUID) -> None:
        with self._guard:
            lock = self._locks.get(order_id)
            if lock is not None:
                lock.declined.add(courier_id)

    def has_declined(self, order_id: uuid.UUID, courier_id: uuid.UUID) -> bool:
        with self._guard:
            lock = self._locks.get(order_id)
            return lock is not None and courier_id in lock.declined

    def tried(self, order_id: uuid.UUID) -> list[uuid.UUID]:
        with self._guard:
            lock = self._locks.get(order_id)
            return list(lock.notified) if lock is not None else []

    def is_locked(self, order_id: uuid.UUID) -> bool:
        with self._guard:
            lock = self._locks.get(order_id)
            return lock is not None and lock.locked

    def get(self, order_id: uuid.UUID) -> DispatchLock | None:
        with self._guard:
            self._purge_expired()
            return self._locks.get(order_id)

    def discard(self, order_id: uuid.UUID) -> None:
        with self._guard:
            self._locks.pop(order_id, None)

    def clear(self) -> None:
        with self._guard:
            self._locks.clear()

    def __len__(self) -> int:
        with self._guard:
            self._purge_expired()
            return len(self._locks)
