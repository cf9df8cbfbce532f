"""
Page fault request channel.

Carries page indices from the VM workload (producer) to the paging service
(consumer). The channel is unbounded: send() never blocks, the workload
goes straight on to wait for the page itself. A real system would bound
the number of outstanding faults and push back on the guest.

Duplicate requests for a page are allowed; the consumer skips pages that
have already been transferred.
"""

import logging
import queue

logger = logging.getLogger(__name__)

# Placed on the queue by close() to wake a blocked receiver
_CLOSED = object()


class ChannelClosedError(Exception):
    """Exception raised when sending on a closed channel."""
    pass


class FaultChannel:
    """
    Ordered, unbounded handoff of page fault requests.

    Usage:
        channel = FaultChannel()
        channel.send(42)                  # producer, never blocks
        page = channel.receive(timeout=1.0)  # consumer, None on timeout
        channel.close()                   # wakes a blocked receive()
    """

    def __init__(self):
        self._queue: queue.SimpleQueue = queue.SimpleQueue()
        self._closed = False
        self._sent = 0

    @property
    def closed(self) -> bool:
        """Whether close() has been called."""
        return self._closed

    @property
    def sent(self) -> int:
        """Number of requests accepted so far."""
        return self._sent

    @property
    def pending(self) -> int:
        """Approximate number of requests waiting to be received."""
        return self._queue.qsize()

    def send(self, page: int):
        """
        Request a page. Returns immediately.

        Raises:
            ChannelClosedError: If the channel has been closed.
        """
        if self._closed:
            raise ChannelClosedError(f"Cannot request page {page}: channel closed")
        self._queue.put_nowait(page)
        self._sent += 1

    def receive(self, timeout: float | None = None) -> int | None:
        """
        Take the next request, waiting up to timeout seconds.

        Returns:
            The requested page index, or None on timeout or once the
            channel has been closed.
        """
        if self._closed and self._queue.empty():
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

        if item is _CLOSED:
            # Leave the marker for any other receiver
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def close(self):
        """Stop accepting requests and wake a blocked receiver."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        logger.debug("Fault channel closed")
