"""
Post-copy migration controller.

The controller drives a migration through its phases, strictly in order:

    INITIALIZED -> PREPARING -> DOWNTIME -> RESUMING -> COMPLETED

- PREPARING: count the free pages on the source. Nothing moves.
- DOWNTIME: the VM is suspended. The critical pages (0 .. N-1) cross the
  link one by one. This phase's length is the service interruption.
- RESUMING: the VM runs on the target. The workload and the paging service
  run on their own threads until the workload has used its access budget,
  plus a short grace period for transfers still in flight.
- COMPLETED: metrics are final.

There are no retries and no rollback: every transfer succeeds.
"""

import logging
import random
import threading
import time
from enum import Enum
from typing import Callable

from postcopy.config import ActorTiming, CoreConfig
from postcopy.events import EventCallback, EventKind, emit
from postcopy.memory.page_table import PageTable, SourceResidency
from postcopy.paging import CancellationToken, FaultChannel, PagingService, VMExecutionActor
from .metrics import MigrationMetrics, MigrationReport

logger = logging.getLogger(__name__)

# How often the controller checks that the workload thread is still alive
_WORKLOAD_CHECK_INTERVAL = 0.1


class MigrationError(Exception):
    """Exception raised when a migration cannot proceed."""
    pass


class MigrationPhase(Enum):
    """Phases of a post-copy migration, in order."""
    INITIALIZED = "initialized"
    PREPARING = "preparing"
    DOWNTIME = "downtime"
    RESUMING = "resuming"
    COMPLETED = "completed"


_NEXT_PHASE = {
    MigrationPhase.INITIALIZED: MigrationPhase.PREPARING,
    MigrationPhase.PREPARING: MigrationPhase.DOWNTIME,
    MigrationPhase.DOWNTIME: MigrationPhase.RESUMING,
    MigrationPhase.RESUMING: MigrationPhase.COMPLETED,
}


class MigrationController:
    """
    Runs one post-copy migration with pure demand paging.

    The controller owns the page table and the fault channel, and shares
    them with the two actors during the Resume phase.

    Usage:
        config = CoreConfig.from_vm_size(2048, 0.2, 1000)
        controller = MigrationController(config, seed=42)
        report = controller.run()
        print(report.downtime_ms)

    The phases can also be driven one at a time:
        controller.prepare()
        controller.transfer_critical_state()
        controller.resume()
        report = controller.complete()
    """

    def __init__(
        self,
        config: CoreConfig,
        timing: ActorTiming | None = None,
        seed: int | None = None,
        on_event: EventCallback | None = None,
    ):
        """
        Set up a migration.

        Args:
            config: Validated migration configuration.
            timing: Real-time intervals for the Resume phase.
            seed: Seed for page classification and the access pattern.
                  None gives a different run each time.
            on_event: Optional lifecycle event callback.
        """
        self._config = config
        self._timing = timing if timing is not None else ActorTiming()
        self._rng = random.Random(seed)
        self._on_event = on_event

        self._phase = MigrationPhase.INITIALIZED
        self._metrics = MigrationMetrics()
        self._report: MigrationReport | None = None
        self._errors: list[tuple[str, BaseException]] = []

        self._page_table = PageTable.classify(
            config.total_pages, config.free_page_ratio, self._rng
        )
        self._channel = FaultChannel()
        self._service: PagingService | None = None
        self._workload: VMExecutionActor | None = None

        logger.info(f"Initialized migration: {config}")

    @property
    def config(self) -> CoreConfig:
        """Get the migration configuration."""
        return self._config

    @property
    def phase(self) -> MigrationPhase:
        """Get the current phase."""
        return self._phase

    @property
    def page_table(self) -> PageTable:
        """Get the shared page table."""
        return self._page_table

    @property
    def metrics(self) -> MigrationMetrics:
        """Get the metrics accumulator."""
        return self._metrics

    @property
    def workload(self) -> VMExecutionActor | None:
        """Get the VM workload, once Resume has started."""
        return self._workload

    @property
    def service(self) -> PagingService | None:
        """Get the paging service, once Resume has started."""
        return self._service

    def _advance(self, phase: MigrationPhase):
        """Move to the next phase, refusing anything out of order."""
        if _NEXT_PHASE.get(self._phase) != phase:
            raise MigrationError(
                f"Cannot enter {phase.value} from {self._phase.value}"
            )
        self._phase = phase
        logger.info(f"Migration phase: {phase.value}")

    def _emit(self, kind: EventKind, page: int | None = None, **detail):
        emit(self._on_event, kind, self._phase.value, page=page, **detail)

    def run(self) -> MigrationReport:
        """Run every phase and return the final report."""
        self.prepare()
        self.transfer_critical_state()
        self.resume()
        return self.complete()

    def prepare(self) -> int:
        """
        Preparation phase: count the free pages on the source.

        Free pages never need to cross the link. The page table is not
        modified.

        Returns:
            Number of free (reclaimed) pages.
        """
        self._advance(MigrationPhase.PREPARING)
        self._metrics.migration_start = time.monotonic()
        self._emit(EventKind.PHASE_STARTED)

        reclaimed = self._page_table.count(SourceResidency.FREE)
        self._metrics.reclaimed_pages = reclaimed

        elapsed_ms = (time.monotonic() - self._metrics.migration_start) * 1000
        logger.info(f"Reclaimed {reclaimed} free pages")
        self._emit(
            EventKind.PHASE_COMPLETED,
            duration_ms=elapsed_ms,
            reclaimed_pages=reclaimed,
        )
        return reclaimed

    def transfer_critical_state(self) -> float:
        """
        Downtime phase: move the non-pageable pages while the VM is stopped.

        Pages 0 .. non_pageable_pages - 1 are transferred one after the
        other, each taking the full page transfer time.

        Returns:
            Downtime in milliseconds.
        """
        self._advance(MigrationPhase.DOWNTIME)
        self._metrics.downtime_start = time.monotonic()
        self._emit(EventKind.PHASE_STARTED)

        transfer_time = self._config.page_transfer_time_ms / 1000
        for page in range(self._config.non_pageable_pages):
            time.sleep(transfer_time)
            self._page_table.mark_transferred(page)
            self._metrics.pages_transferred = self._page_table.transferred_count
            self._emit(EventKind.CRITICAL_PAGE_TRANSFERRED, page=page)

        self._metrics.resume_start = time.monotonic()
        downtime_ms = (self._metrics.resume_start - self._metrics.downtime_start) * 1000
        logger.info(
            f"Transferred {self._config.non_pageable_pages} critical pages, "
            f"downtime {downtime_ms:.1f} ms"
        )
        self._emit(
            EventKind.PHASE_COMPLETED,
            duration_ms=downtime_ms,
            critical_pages=self._config.non_pageable_pages,
        )
        return downtime_ms

    def _guard(self, name: str, target: Callable[[CancellationToken], None]):
        """Wrap an actor so a crash is recorded instead of lost."""
        def runner(token: CancellationToken):
            try:
                target(token)
            except Exception as e:
                logger.exception(f"{name} crashed")
                self._errors.append((name, e))
                token.cancel()
        return runner

    def resume(self):
        """
        Resume phase: run the VM on the target with demand paging.

        Starts the paging service and the workload, waits for the workload
        to finish its access budget, allows a grace period for in-flight
        transfers, then cancels and joins both actors.

        Raises:
            MigrationError: If either actor crashed.
        """
        self._advance(MigrationPhase.RESUMING)
        self._emit(EventKind.PHASE_STARTED)
        timing = self._timing

        token = CancellationToken()
        token.on_cancel(self._channel.close)
        token.on_cancel(self._page_table.wake_waiters)

        self._service = PagingService(
            self._page_table,
            self._channel,
            self._config.page_transfer_time_ms,
            receive_timeout=timing.receive_timeout,
            on_event=self._on_event,
        )
        self._workload = VMExecutionActor(
            self._page_table,
            self._channel,
            rng=self._rng,
            instruction_delay=timing.instruction_delay,
            poll_interval=timing.fault_poll_interval,
            on_event=self._on_event,
        )

        threads = [
            threading.Thread(
                target=self._guard("PagingService", self._service.run),
                args=(token,),
                name="PagingService",
                daemon=True,
            ),
            threading.Thread(
                target=self._guard("VMExecution", self._workload.run),
                args=(token,),
                name="VMExecution",
                daemon=True,
            ),
        ]
        for thread in threads:
            thread.start()

        # Wait for the workload to run out of accesses
        workload_thread = threads[1]
        while not self._workload.completed.wait(_WORKLOAD_CHECK_INTERVAL):
            if not workload_thread.is_alive():
                break

        # Let transfers already requested finish
        token.wait(timing.drain_grace)
        token.cancel()

        for thread in threads:
            thread.join(timing.join_timeout)
            if thread.is_alive():
                logger.warning(
                    f"{thread.name} did not stop within "
                    f"{timing.join_timeout} s, continuing without it"
                )
                self._metrics.unresponsive_actors.append(thread.name)
                self._emit(EventKind.ACTOR_UNRESPONSIVE, actor=thread.name)

        self._metrics.migration_end = time.monotonic()
        self._metrics.pages_transferred = self._page_table.transferred_count
        self._metrics.page_faults = self._workload.page_faults
        self._metrics.memory_accesses = self._workload.memory_accesses
        self._metrics.workload_completed = self._workload.completed.is_set()

        resume_ms = (self._metrics.migration_end - self._metrics.resume_start) * 1000
        self._emit(
            EventKind.PHASE_COMPLETED,
            duration_ms=resume_ms,
            demand_transferred=self._service.demand_transferred,
        )

        if self._errors:
            name, error = self._errors[0]
            raise MigrationError(f"{name} failed: {error}") from error

    def complete(self) -> MigrationReport:
        """
        Finish the migration and build the final report.

        Returns:
            The immutable MigrationReport.
        """
        self._advance(MigrationPhase.COMPLETED)
        self._report = MigrationReport.build(self._config, self._metrics)
        logger.info(
            f"Migration completed: {self._report.pages_transferred}/"
            f"{self._config.total_pages} pages transferred"
        )
        return self._report

    @property
    def report(self) -> MigrationReport | None:
        """Get the final report, once the migration has completed."""
        return self._report

    def __str__(self) -> str:
        return (
            f"MigrationController({self._config.total_pages} pages, "
            f"phase={self._phase.value})"
        )
