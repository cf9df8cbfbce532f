"""
VM execution on the target host.

The workload stands in for the guest running after resume. It touches a
bounded number of random pages. A touch of a page that is already on the
target costs nothing extra; a touch of a missing page is a page fault:

1. Send a fault request to the paging service
2. Block until the page table reports the page PRESENT
3. Only then carry on with the next instruction

The block in step 2 is the point of demand paging: the guest never reads
a page that has not fully arrived.
"""

import logging
import random
import threading

from postcopy.config import access_budget
from postcopy.events import EventCallback, EventKind, emit
from postcopy.memory.page_table import PageTable
from .cancel import CancellationToken
from .channel import ChannelClosedError, FaultChannel

logger = logging.getLogger(__name__)

PHASE = "resuming"


class VMExecutionActor:
    """
    Producer actor that generates memory accesses and page faults.

    Attributes:
        memory_accesses: Accesses performed so far
        page_faults: Accesses that found the page missing
        accessed_pages: Pages whose access completed (hit or resolved fault)
        completed: Set when the whole access budget has been used

    Usage:
        actor = VMExecutionActor(table, channel, rng=random.Random(1))
        thread = threading.Thread(target=actor.run, args=(token,))
        thread.start()
        actor.completed.wait()
    """

    def __init__(
        self,
        page_table: PageTable,
        channel: FaultChannel,
        rng: random.Random | None = None,
        instruction_delay: float = 0.050,
        poll_interval: float = 0.010,
        max_accesses: int | None = None,
        on_event: EventCallback | None = None,
    ):
        """
        Create the VM workload.

        Args:
            page_table: Shared residency table (read only here).
            channel: Where fault requests are sent.
            rng: Random source for the access pattern.
            instruction_delay: Pause after each access, in seconds.
            poll_interval: Longest single wait on a faulted page, in seconds.
            max_accesses: Access budget. Defaults to the size-scaled budget.
            on_event: Optional lifecycle event callback.
        """
        self._table = page_table
        self._channel = channel
        self._rng = rng if rng is not None else random.Random()
        self._instruction_delay = instruction_delay
        self._poll_interval = poll_interval
        self._on_event = on_event

        if max_accesses is None:
            max_accesses = access_budget(page_table.total_pages)
        self.max_accesses = max_accesses

        self.memory_accesses = 0
        self.page_faults = 0
        self.accessed_pages: set[int] = set()
        self.completed = threading.Event()

    def run(self, token: CancellationToken):
        """
        Perform the access budget, stopping early if the token is cancelled.

        completed is set only when every access has been performed.
        """
        logger.info(
            f"VM workload running with demand paging "
            f"({self.max_accesses} accesses)"
        )

        while self.memory_accesses < self.max_accesses:
            if token.cancelled:
                break

            page = self._rng.randrange(self._table.total_pages)
            self.memory_accesses += 1

            if not self._table.is_present(page):
                if not self._fault(page, token):
                    break

            self.accessed_pages.add(page)

            # Simulated instruction execution
            if token.wait(self._instruction_delay):
                break

        if self.memory_accesses >= self.max_accesses and not token.cancelled:
            self.completed.set()
            logger.info(
                f"VM workload completed after {self.page_faults} page faults / "
                f"{self.memory_accesses} total accesses"
            )
            emit(
                self._on_event,
                EventKind.WORKLOAD_COMPLETED,
                PHASE,
                page_faults=self.page_faults,
                memory_accesses=self.memory_accesses,
            )
        else:
            logger.info(
                f"VM workload cancelled after {self.memory_accesses} accesses"
            )

    def _fault(self, page: int, token: CancellationToken) -> bool:
        """
        Request a missing page and block until it arrives.

        Returns:
            True once the page is present, False if cancelled first.
        """
        self.page_faults += 1
        # A page's fault event always precedes its transfer event
        emit(
            self._on_event,
            EventKind.PAGE_FAULT,
            PHASE,
            page=page,
            fault_number=self.page_faults,
            transferred=self._table.transferred_count,
        )
        try:
            self._channel.send(page)
        except ChannelClosedError:
            return False

        while not self._table.wait_until_present(page, self._poll_interval):
            if token.cancelled:
                logger.debug(f"Gave up waiting for page {page}: cancelled")
                return False
        return True
