"""
Demand paging service (source side).

The paging service drains fault requests one at a time. For each request
it checks the page table, and if the page has not crossed the link yet it
waits one page transfer time and then marks the page transferred, which
wakes the VM workload blocked on it.

Because requests are handled one at a time, the link carries at most one
page at any moment and the service is the only writer to the page table
during Resume.

The loop:

1. Wait (bounded) for a request
2. Skip it if the page is already on the target
3. Sleep for the transfer time, then publish the page
4. Go back to step 1 until cancelled
"""

import logging
import time

from postcopy.events import EventCallback, EventKind, emit
from postcopy.memory.page_table import PageTable, SourceResidency
from .cancel import CancellationToken
from .channel import FaultChannel

logger = logging.getLogger(__name__)

PHASE = "resuming"


class PagingService:
    """
    Consumer actor that moves faulted pages across the link.

    Usage:
        service = PagingService(table, channel, transfer_time_ms=1)
        thread = threading.Thread(target=service.run, args=(token,))
        thread.start()
        ...
        token.cancel()
        thread.join()
        print(service.demand_transferred)
    """

    def __init__(
        self,
        page_table: PageTable,
        channel: FaultChannel,
        transfer_time_ms: int,
        receive_timeout: float = 1.0,
        on_event: EventCallback | None = None,
    ):
        """
        Create a paging service.

        Args:
            page_table: Shared residency table. The service is its only
                        writer while running.
            channel: Where fault requests arrive.
            transfer_time_ms: Time to move one page.
            receive_timeout: Longest wait for a request before re-checking
                             for cancellation, in seconds.
            on_event: Optional lifecycle event callback.
        """
        self._table = page_table
        self._channel = channel
        self._transfer_time = transfer_time_ms / 1000
        self._receive_timeout = receive_timeout
        self._on_event = on_event

        self.demand_transferred = 0
        self.requests_received = 0
        self.duplicate_requests = 0
        self.invalid_requests = 0

    def run(self, token: CancellationToken):
        """
        Serve fault requests until the token is cancelled.

        A transfer already under way when cancellation arrives is finished
        before the loop exits.
        """
        logger.info("Paging service waiting for page fault requests")

        while not token.cancelled:
            page = self._channel.receive(self._receive_timeout)
            if page is None:
                if self._channel.closed:
                    break
                logger.debug("No fault request within timeout")
                continue
            self.service(page)

        logger.info(
            f"Paging service stopped: {self.demand_transferred} pages "
            f"transferred on demand"
        )
        emit(
            self._on_event,
            EventKind.SERVICE_STOPPED,
            PHASE,
            demand_transferred=self.demand_transferred,
        )

    def service(self, page: int) -> bool:
        """
        Handle one fault request.

        Returns:
            True if the page was transferred, False if the request was
            skipped (already transferred, or not a page of this VM).
        """
        self.requests_received += 1

        if not self._table.contains(page):
            logger.warning(f"Ignoring fault request for unknown page {page}")
            self.invalid_requests += 1
            return False

        if self._table.source_state(page) == SourceResidency.TRANSFERRED:
            logger.debug(f"Page {page} already transferred, skipping request")
            self.duplicate_requests += 1
            return False

        # The link is busy for one full page time
        time.sleep(self._transfer_time)

        self._table.mark_transferred(page)
        self.demand_transferred += 1

        logger.debug(
            f"Page {page} transferred on demand "
            f"(total: {self._table.transferred_count} pages)"
        )
        emit(
            self._on_event,
            EventKind.PAGE_TRANSFERRED,
            PHASE,
            page=page,
            total_transferred=self._table.transferred_count,
        )
        return True
