"""
Page residency tracking.

The page table records, for every page of the VM, where its data lives:

    source:  FREE | USED | TRANSFERRED
    target:  NOT_PRESENT | PRESENT

plus the set of pages that have crossed the link. It is shared between the
paging service (the only writer during Resume) and the VM workload (a reader
that blocks on missing pages).

There is no table-wide lock. Each page's state is a single byte in a
bytearray, written by one thread at a time, so a reader always sees either
the old or the new value. Readers that need to block on a page register a
per-page threading.Event which the writer sets after publishing PRESENT.
The small lock below only guards that waiter registry.

States only move forward:

    FREE/USED  ->  TRANSFERRED
    NOT_PRESENT -> PRESENT
"""

import logging
import random
import threading
from enum import IntEnum

logger = logging.getLogger(__name__)


class SourceResidency(IntEnum):
    """State of a page on the source host."""
    FREE = 0
    USED = 1
    TRANSFERRED = 2


class TargetResidency(IntEnum):
    """State of a page on the target host."""
    NOT_PRESENT = 0
    PRESENT = 1


class PageTableError(IndexError):
    """Exception raised for a page index outside the VM."""
    pass


class PageTable:
    """
    Source and target residency for every page of a VM.

    Usage:
        table = PageTable.classify(1000, free_page_ratio=0.2)
        table.mark_transferred(7)
        assert table.is_present(7)
        table.wait_until_present(8, timeout=0.01)  # False, nobody moved it
    """

    def __init__(self, source_states: list[SourceResidency]):
        """
        Create a page table from source classifications.

        All target pages start NOT_PRESENT. TRANSFERRED is not accepted as
        an initial state; pages only get there through mark_transferred().

        Args:
            source_states: One FREE or USED entry per page.

        Raises:
            ValueError: If the list is empty or holds a TRANSFERRED entry.
        """
        if not source_states:
            raise ValueError("A page table needs at least one page")
        if SourceResidency.TRANSFERRED in source_states:
            raise ValueError("Pages cannot start out transferred")

        self._source = bytearray(source_states)
        self._target = bytearray(len(source_states))
        self._transferred: set[int] = set()

        self._waiters: dict[int, threading.Event] = {}
        self._waiters_lock = threading.Lock()

    @classmethod
    def classify(
        cls,
        total_pages: int,
        free_page_ratio: float,
        rng: random.Random | None = None,
    ) -> "PageTable":
        """
        Build a table with pages randomly classified FREE or USED.

        Each page is independently FREE with probability free_page_ratio.
        """
        rng = rng if rng is not None else random.Random()
        states = [
            SourceResidency.FREE if rng.random() < free_page_ratio
            else SourceResidency.USED
            for _ in range(total_pages)
        ]
        logger.debug(f"Classified {total_pages} source pages")
        return cls(states)

    @property
    def total_pages(self) -> int:
        """Number of pages in the VM."""
        return len(self._source)

    def _check(self, page: int):
        if not 0 <= page < len(self._source):
            raise PageTableError(
                f"Page {page} is outside the VM (0-{len(self._source) - 1})"
            )

    def contains(self, page: int) -> bool:
        """Check whether a page index belongs to this VM."""
        return 0 <= page < len(self._source)

    def source_state(self, page: int) -> SourceResidency:
        """Get a page's state on the source host."""
        self._check(page)
        return SourceResidency(self._source[page])

    def target_state(self, page: int) -> TargetResidency:
        """Get a page's state on the target host."""
        self._check(page)
        return TargetResidency(self._target[page])

    def is_present(self, page: int) -> bool:
        """Check whether the target already holds a page."""
        self._check(page)
        return self._target[page] == TargetResidency.PRESENT

    def count(self, state: SourceResidency) -> int:
        """Count source pages currently in the given state."""
        return self._source.count(state)

    @property
    def transferred_pages(self) -> frozenset[int]:
        """Snapshot of the pages that have crossed the link."""
        return frozenset(self._transferred)

    @property
    def transferred_count(self) -> int:
        """Number of pages that have crossed the link."""
        return len(self._transferred)

    def mark_transferred(self, page: int) -> bool:
        """
        Record that a page has arrived on the target.

        Updates source state, target state and the transferred set, then
        wakes anyone waiting on the page. Only one thread may call this
        at a time.

        Returns:
            True if the page moved, False if it had already been
            transferred (nothing changes in that case).
        """
        self._check(page)
        if self._source[page] == SourceResidency.TRANSFERRED:
            return False

        self._source[page] = SourceResidency.TRANSFERRED
        self._transferred.add(page)
        # Publish PRESENT last: readers treat it as "the copy is complete"
        self._target[page] = TargetResidency.PRESENT

        with self._waiters_lock:
            event = self._waiters.pop(page, None)
        if event is not None:
            event.set()
        return True

    def wait_until_present(self, page: int, timeout: float | None = None) -> bool:
        """
        Block until a page is PRESENT on the target, or the timeout expires.

        The wait also ends early when wake_waiters() is called.

        Returns:
            True if the page is present when the wait ends.
        """
        self._check(page)
        with self._waiters_lock:
            # Checked under the lock so a concurrent mark_transferred()
            # either is seen here or finds our event.
            if self._target[page] == TargetResidency.PRESENT:
                return True
            event = self._waiters.setdefault(page, threading.Event())

        event.wait(timeout)
        return self._target[page] == TargetResidency.PRESENT

    def wake_waiters(self):
        """Release every thread blocked in wait_until_present()."""
        with self._waiters_lock:
            events = list(self._waiters.values())
            self._waiters.clear()
        for event in events:
            event.set()

    def __len__(self) -> int:
        return len(self._source)

    def __str__(self) -> str:
        return (
            f"PageTable({self.total_pages} pages, "
            f"{self.transferred_count} transferred)"
        )
