"""
Migration configuration.

This module defines the immutable inputs of a migration run and the sizing
rules derived from them. Everything here is pure: no threads, no clocks.

Sizing rules:
- Pages are 4 KB, so a VM of N megabytes has N * 256 pages.
- The critical (non-pageable) set is 0.5% of the VM, between 5 and 50 pages.
- The synthetic workload performs between 20 and 100 memory accesses.
"""

import math
from dataclasses import dataclass

from postcopy.memory.timing import page_transfer_time_ms

PAGE_SIZE_KB = 4
PAGE_SIZE_BYTES = PAGE_SIZE_KB * 1024  # 4096 bytes

# Critical state: CPU context, core page tables, etc.
NON_PAGEABLE_RATIO = 0.005
MIN_NON_PAGEABLE_PAGES = 5
MAX_NON_PAGEABLE_PAGES = 50

# Workload size scales with the VM but stays within these bounds
MIN_ACCESSES = 20
MAX_ACCESSES = 100
PAGES_PER_ACCESS = 5000

# Defaults used by the CLI
DEFAULT_VM_SIZE_MB = 2048
DEFAULT_FREE_PAGE_RATIO = 0.20
DEFAULT_LINK_SPEED_MBPS = 1000.0


class ConfigError(ValueError):
    """Exception raised when a migration configuration is invalid."""
    pass


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def pages_from_megabytes(size_mb: int) -> int:
    """Convert a VM size in megabytes to a number of 4 KB pages."""
    return size_mb * 1024 * 1024 // PAGE_SIZE_BYTES


def non_pageable_pages(total_pages: int) -> int:
    """
    Number of critical pages moved during downtime.

    This is round(total_pages * 0.5%), clamped to [5, 50].
    """
    pages = _round_half_up(total_pages * NON_PAGEABLE_RATIO)
    return max(MIN_NON_PAGEABLE_PAGES, min(MAX_NON_PAGEABLE_PAGES, pages))


def access_budget(total_pages: int) -> int:
    """Number of memory accesses the synthetic workload performs."""
    return max(MIN_ACCESSES, min(MAX_ACCESSES, total_pages // PAGES_PER_ACCESS))


@dataclass(frozen=True)
class CoreConfig:
    """
    Immutable inputs of a migration.

    Attributes:
        total_pages: Number of 4 KB pages in the VM
        free_page_ratio: Fraction of pages classified free (0.0 - 1.0)
        link_speed_mbps: Link bandwidth in megabits per second

    Raises:
        ConfigError: If any value is out of range. No state is created.
    """
    total_pages: int
    free_page_ratio: float
    link_speed_mbps: float

    def __post_init__(self):
        if self.total_pages <= 0:
            raise ConfigError(
                f"Page count must be positive, got {self.total_pages}"
            )
        if self.total_pages < MIN_NON_PAGEABLE_PAGES:
            raise ConfigError(
                f"VM needs at least {MIN_NON_PAGEABLE_PAGES} pages to hold "
                f"its critical state, got {self.total_pages}"
            )
        if not 0.0 <= self.free_page_ratio <= 1.0:
            raise ConfigError(
                f"Free page ratio must be between 0.0 and 1.0, "
                f"got {self.free_page_ratio}"
            )
        if not (self.link_speed_mbps > 0 and math.isfinite(self.link_speed_mbps)):
            raise ConfigError(
                f"Link speed must be a positive number of Mbps, "
                f"got {self.link_speed_mbps}"
            )

    @classmethod
    def from_vm_size(
        cls,
        vm_size_mb: int,
        free_page_ratio: float = DEFAULT_FREE_PAGE_RATIO,
        link_speed_mbps: float = DEFAULT_LINK_SPEED_MBPS,
    ) -> "CoreConfig":
        """Build a configuration from a VM size in megabytes."""
        if vm_size_mb <= 0:
            raise ConfigError(f"VM size must be positive, got {vm_size_mb} MB")
        return cls(
            total_pages=pages_from_megabytes(vm_size_mb),
            free_page_ratio=free_page_ratio,
            link_speed_mbps=link_speed_mbps,
        )

    @property
    def non_pageable_pages(self) -> int:
        """Size of the critical set transferred during downtime."""
        return non_pageable_pages(self.total_pages)

    @property
    def page_transfer_time_ms(self) -> int:
        """Time to move one page across the link, never below 1 ms."""
        return page_transfer_time_ms(PAGE_SIZE_BYTES, self.link_speed_mbps)

    @property
    def vm_size_mb(self) -> float:
        """VM memory size in megabytes."""
        return self.total_pages * PAGE_SIZE_KB / 1024

    def __str__(self) -> str:
        return (
            f"CoreConfig({self.total_pages} pages, "
            f"free={self.free_page_ratio:.2f}, "
            f"link={self.link_speed_mbps} Mbps)"
        )


@dataclass(frozen=True)
class ActorTiming:
    """
    Real-time intervals used by the Resume phase, in seconds.

    Attributes:
        instruction_delay: Pause between two simulated memory accesses
        fault_poll_interval: Longest single wait for a faulted page
        receive_timeout: Longest wait for a fault request before the
                         paging service re-checks for cancellation
        drain_grace: Pause after the workload ends so in-flight
                     transfers can complete
        join_timeout: How long to wait for each actor to stop
    """
    instruction_delay: float = 0.050
    fault_poll_interval: float = 0.010
    receive_timeout: float = 1.0
    drain_grace: float = 0.5
    join_timeout: float = 2.0

    def __post_init__(self):
        for name in (
            "instruction_delay",
            "fault_poll_interval",
            "receive_timeout",
            "drain_grace",
            "join_timeout",
        ):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative")
