"""
Cooperative cancellation.

A CancellationToken is handed to each actor when it starts. Actors check
it at every loop head and every wait point. Cancelling also runs the
registered callbacks, which is how blocked waits (the fault channel, the
page table waiters) get interrupted instead of running out their timeout.
"""

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    A one-shot stop signal shared by the controller and the actors.

    Usage:
        token = CancellationToken()
        token.on_cancel(channel.close)
        ...
        while not token.cancelled:
            ...
        token.cancel()  # from another thread
    """

    def __init__(self):
        self._event = threading.Event()
        self._callbacks: list[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        """Whether cancel() has been called."""
        return self._event.is_set()

    def on_cancel(self, callback: Callable[[], None]):
        """
        Register a callback that interrupts a blocking wait.

        If the token is already cancelled the callback runs immediately.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def cancel(self):
        """Signal cancellation and interrupt registered waits. Idempotent."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        logger.debug(f"Cancelling, interrupting {len(callbacks)} waits")
        for callback in callbacks:
            callback()

    def wait(self, timeout: float | None = None) -> bool:
        """
        Sleep for up to timeout seconds, waking early on cancellation.

        Returns:
            True if the token was cancelled.
        """
        return self._event.wait(timeout)
