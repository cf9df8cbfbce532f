"""
Migration lifecycle events.

The migration core never prints. Instead the controller and both actors
publish MigrationEvent records to an optional callback, and whoever drives
the migration (the CLI, a test) decides what to do with them.

Callbacks may run on the paging service or VM workload threads, so they
should be quick and must not block.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable


class EventKind(Enum):
    """What happened."""
    PHASE_STARTED = "phase-started"
    PHASE_COMPLETED = "phase-completed"
    CRITICAL_PAGE_TRANSFERRED = "critical-page-transferred"
    PAGE_FAULT = "page-fault"
    PAGE_TRANSFERRED = "page-transferred"
    WORKLOAD_COMPLETED = "workload-completed"
    SERVICE_STOPPED = "service-stopped"
    ACTOR_UNRESPONSIVE = "actor-unresponsive"


@dataclass(frozen=True)
class MigrationEvent:
    """
    A single lifecycle event.

    Attributes:
        kind: What happened
        phase: Name of the migration phase it happened in
        page: Page index, for page-level events
        detail: Extra values (durations, counters, actor names)
    """
    kind: EventKind
    phase: str
    page: int | None = None
    detail: dict[str, Any] = field(default_factory=dict)


EventCallback = Callable[[MigrationEvent], None]


def emit(
    callback: EventCallback | None,
    kind: EventKind,
    phase: str,
    page: int | None = None,
    **detail: Any,
):
    """Publish an event if anyone is listening."""
    if callback is not None:
        callback(MigrationEvent(kind=kind, phase=phase, page=page, detail=detail))
