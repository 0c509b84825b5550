"""At-most-one in-flight thread creation per (customer, order)."""

from __future__ import annotations

from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class CreationLockManager:
    """Non-blocking logical locks.

    All callers share one event loop, so ``try_acquire`` is a single
    check-and-set with no suspension point between the check and the set.
    """

    def __init__(self) -> None:
        self._held: set[Hashable] = set()

    def try_acquire(self, key: Hashable) -> bool:
        if key in self._held:
            return False
        self._held.add(key)
        return True

    def release(self, key: Hashable) -> None:
        self._held.discard(key)

    def is_held(self, key: Hashable) -> bool:
        return key in self._held

    def __len__(self) -> int:
        return len(self._held)

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[bool]:
        """Yield whether ``key`` was acquired; release it on every exit path."""

        acquired = self.try_acquire(key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)
