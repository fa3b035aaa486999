"""
Key chain event listeners.

Listeners are registered together with the executor their callbacks run
on.  The chain queues notifications while it still holds its lock, but the
callbacks themselves run later on the executor, so a listener may observe
the chain after further changes have been made.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Protocol

from keychain_core.guard import ChainLock

if TYPE_CHECKING:
    from keychain_core.eckey import ECKey

logger = logging.getLogger("keychain_listeners")


class KeyChainEventListener(Protocol):
    def on_keys_added(self, keys: list[ECKey]) -> None:
        ...


class SameThreadExecutor(Executor):
    """Runs each submitted callable immediately on the submitting thread."""

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


SAME_THREAD = SameThreadExecutor()

_user_thread: ThreadPoolExecutor | None = None
_user_thread_lock = threading.Lock()
USER_THREAD_NAME = "keychain-user-thread"


def user_thread() -> ThreadPoolExecutor:
    """Shared single-worker executor; preserves per-listener delivery order."""
    global _user_thread
    with _user_thread_lock:
        if _user_thread is None:
            _user_thread = ThreadPoolExecutor(max_workers=1, thread_name_prefix=USER_THREAD_NAME)
        return _user_thread


def shutdown_user_thread(wait: bool = True) -> None:
    """Drain and stop the shared executor; the next use starts a new one."""
    global _user_thread
    with _user_thread_lock:
        executor, _user_thread = _user_thread, None
    if executor is not None:
        executor.shutdown(wait=wait)


@dataclass(frozen=True, eq=False)
class ListenerRegistration:
    listener: KeyChainEventListener
    executor: Executor | None = None    # None: the shared user thread

    @staticmethod
    def remove_from_list(listener: KeyChainEventListener,
                         registrations: list[ListenerRegistration]) -> bool:
        """Remove the first registration of *listener* (by identity)."""
        for i, registration in enumerate(registrations):
            if registration.listener is listener:
                del registrations[i]
                return True
        return False


class EventNotifier:
    """Holds listener registrations and dispatches ``on_keys_added``."""

    def __init__(self, chain_lock: ChainLock):
        self._chain_lock = chain_lock
        self._registrations: list[ListenerRegistration] = []
        self._registrations_lock = threading.Lock()

    def add(self, listener: KeyChainEventListener, executor: Executor | None = None) -> None:
        registration = ListenerRegistration(listener, executor)
        with self._registrations_lock:
            # copy-on-write so dispatch can iterate a stable snapshot
            self._registrations = self._registrations + [registration]

    def remove(self, listener: KeyChainEventListener) -> bool:
        with self._registrations_lock:
            registrations = list(self._registrations)
            removed = ListenerRegistration.remove_from_list(listener, registrations)
            self._registrations = registrations
        return removed

    def __len__(self) -> int:
        return len(self._registrations)

    def queue_on_keys_added(self, keys: list[ECKey]) -> None:
        if not self._chain_lock.is_held_by_current_thread():
            raise RuntimeError("Listener notifications must be queued under the chain lock")
        keys = list(keys)
        for registration in self._registrations:
            executor = registration.executor or user_thread()
            future = executor.submit(registration.listener.on_keys_added, keys)
            future.add_done_callback(_log_listener_failure)


def _log_listener_failure(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Key chain listener raised", exc_info=exc)
