"""
Migration counters and the final report.

MigrationMetrics is the mutable accumulator the controller fills in while
the migration runs. MigrationReport is the immutable summary built from it
once the migration has completed. Neither does any formatting; see
postcopy.report for that.

Timestamps come from time.monotonic() and are in seconds. Durations in the
report are in milliseconds.
"""

from dataclasses import dataclass, field

from postcopy.config import PAGE_SIZE_BYTES, CoreConfig

EXCELLENT_SAVINGS = 90.0
GOOD_SAVINGS = 80.0


@dataclass
class MigrationMetrics:
    """
    Counters and phase boundaries of one migration.

    Attributes:
        pages_transferred: Pages moved so far (critical + demand)
        page_faults: Accesses that missed on the target
        memory_accesses: Accesses performed by the VM workload
        reclaimed_pages: Free pages found during preparation
        migration_start: Start of preparation
        downtime_start: VM suspended on the source
        resume_start: VM running on the target
        migration_end: Both actors stopped
        unresponsive_actors: Actors that missed the join deadline
        workload_completed: Whether the workload used its whole budget
    """
    pages_transferred: int = 0
    page_faults: int = 0
    memory_accesses: int = 0
    reclaimed_pages: int = 0

    migration_start: float | None = None
    downtime_start: float | None = None
    resume_start: float | None = None
    migration_end: float | None = None

    unresponsive_actors: list[str] = field(default_factory=list)
    workload_completed: bool = False


def _elapsed_ms(start: float | None, end: float | None) -> float:
    if start is None or end is None:
        return 0.0
    return (end - start) * 1000


def _percent(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0.0


@dataclass(frozen=True)
class MigrationReport:
    """
    Final, immutable record of a migration run.

    Durations are in milliseconds, ratios in percent.
    """
    total_pages: int
    page_size_bytes: int
    link_speed_mbps: float
    page_transfer_time_ms: int

    preparation_ms: float
    downtime_ms: float
    resume_ms: float
    total_ms: float

    reclaimed_pages: int
    non_pageable_pages: int
    pages_transferred: int
    demand_transferred: int
    pages_not_transferred: int

    page_faults: int
    memory_accesses: int
    fault_rate: float

    transfer_percentage: float
    bandwidth_savings: float
    bytes_transferred: int
    bytes_saved: int
    downtime_percentage: float
    pages_per_second: float
    megabytes_per_second: float

    unresponsive_actors: tuple[str, ...] = ()
    workload_completed: bool = True

    @classmethod
    def build(cls, config: CoreConfig, metrics: MigrationMetrics) -> "MigrationReport":
        """Summarize a finished migration."""
        total_pages = config.total_pages
        transferred = metrics.pages_transferred
        not_transferred = total_pages - transferred

        total_ms = _elapsed_ms(metrics.migration_start, metrics.migration_end)
        resume_ms = _elapsed_ms(metrics.resume_start, metrics.migration_end)
        bytes_transferred = transferred * PAGE_SIZE_BYTES

        if resume_ms > 0:
            pages_per_second = transferred * 1000 / resume_ms
            megabytes_per_second = (
                bytes_transferred / (1024 * 1024) * 1000 / resume_ms
            )
        else:
            pages_per_second = 0.0
            megabytes_per_second = 0.0

        downtime_ms = _elapsed_ms(metrics.downtime_start, metrics.resume_start)

        return cls(
            total_pages=total_pages,
            page_size_bytes=PAGE_SIZE_BYTES,
            link_speed_mbps=config.link_speed_mbps,
            page_transfer_time_ms=config.page_transfer_time_ms,
            preparation_ms=_elapsed_ms(metrics.migration_start, metrics.downtime_start),
            downtime_ms=downtime_ms,
            resume_ms=resume_ms,
            total_ms=total_ms,
            reclaimed_pages=metrics.reclaimed_pages,
            non_pageable_pages=config.non_pageable_pages,
            pages_transferred=transferred,
            demand_transferred=transferred - config.non_pageable_pages,
            pages_not_transferred=not_transferred,
            page_faults=metrics.page_faults,
            memory_accesses=metrics.memory_accesses,
            fault_rate=_percent(metrics.page_faults, metrics.memory_accesses),
            transfer_percentage=_percent(transferred, total_pages),
            bandwidth_savings=_percent(not_transferred, total_pages),
            bytes_transferred=bytes_transferred,
            bytes_saved=not_transferred * PAGE_SIZE_BYTES,
            downtime_percentage=_percent(downtime_ms, total_ms),
            pages_per_second=pages_per_second,
            megabytes_per_second=megabytes_per_second,
            unresponsive_actors=tuple(metrics.unresponsive_actors),
            workload_completed=metrics.workload_completed,
        )

    @property
    def efficiency(self) -> str:
        """Rating of how much bandwidth demand paging saved."""
        if self.bandwidth_savings > EXCELLENT_SAVINGS:
            return "EXCELLENT"
        if self.bandwidth_savings > GOOD_SAVINGS:
            return "GOOD"
        return "FAIR"
