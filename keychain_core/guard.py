"""
Re-entrant lock guarding a key chain's indexes.

Behaves like ``threading.RLock`` but also knows which thread owns it, so
code that must only run inside the critical section can assert that.
"""

from __future__ import annotations

import threading


class ChainLock:
    """Re-entrant mutual-exclusion lock with owner tracking."""

    def __init__(self, name: str = "keychain"):
        self.name = name
        self._lock = threading.RLock()
        self._owner: int | None = None
        self._depth = 0

    def acquire(self, blocking: bool = True, timeout: float = -1) -> bool:
        if not self._lock.acquire(blocking, timeout):
            return False
        self._owner = threading.get_ident()
        self._depth += 1
        return True

    def release(self) -> None:
        if self._owner != threading.get_ident():
            raise RuntimeError(f"{self.name}: release of un-acquired lock")
        self._depth -= 1
        if self._depth == 0:
            self._owner = None
        self._lock.release()

    def is_held_by_current_thread(self) -> bool:
        return self._owner == threading.get_ident()

    def __enter__(self) -> ChainLock:
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "held" if self._owner is not None else "free"
        return f"ChainLock({self.name}, {state})"
