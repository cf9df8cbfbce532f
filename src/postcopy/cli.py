"""
Command-line interface for the postcopy simulator.

This module defines all CLI commands using the Typer library.
"""

import logging
import time
from typing import Annotated, Callable

import typer

from postcopy import __version__
from postcopy.config import (
    DEFAULT_FREE_PAGE_RATIO,
    DEFAULT_LINK_SPEED_MBPS,
    DEFAULT_VM_SIZE_MB,
)
from postcopy.events import EventKind, MigrationEvent

app = typer.Typer(
    name="postcopy",
    help="postcopy - Post-copy live VM migration simulator with demand paging",
    no_args_is_help=True,
)

# Print every Nth page fault so large runs stay readable
FAULT_REPORT_INTERVAL = 10


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"postcopy {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
) -> None:
    """postcopy - Post-copy live VM migration simulator."""
    pass


def _resolve(
    value,
    default,
    prompt: str,
    valid: Callable[[float], bool],
    requirement: str,
    interactive: bool,
):
    """
    Pick a parameter value: argument, then prompt, then default.

    Out-of-range values fall back to the default with a notice.
    """
    if value is not None:
        if valid(value):
            return value
        print(f"{requirement}, got {value}")

    if not interactive:
        if value is not None:
            print(f"Using default: {default}")
        return default

    answer = typer.prompt(prompt, default=default, type=type(default))
    if not valid(answer):
        print(f"{requirement}. Using default: {default}")
        return default
    return answer


def _print_event(event: MigrationEvent) -> None:
    """Print lifecycle events as migration progress."""
    if event.kind == EventKind.PHASE_STARTED:
        titles = {
            "preparing": "PHASE 1: PREPARATION (VM live)",
            "downtime": "PHASE 2: DOWNTIME (VM suspended)",
            "resuming": "PHASE 3: RESUME (demand paging only)",
        }
        print()
        print(f"--- {titles[event.phase]} ---")

    elif event.kind == EventKind.PHASE_COMPLETED:
        duration = event.detail["duration_ms"]
        if event.phase == "preparing":
            print(f"  > Reclaimed {event.detail['reclaimed_pages']} free pages")
        elif event.phase == "downtime":
            print()
            print(f"  > CPU state + {event.detail['critical_pages']} critical pages transferred")
            print("  > VM resumed on target host, remaining pages pulled on demand")
        print(f"  > Phase time: {duration:.0f} ms")

    elif event.kind == EventKind.CRITICAL_PAGE_TRANSFERRED:
        print(".", end="", flush=True)
        if event.page % 10 == 9:
            print()

    elif event.kind == EventKind.PAGE_FAULT:
        if event.detail["fault_number"] % FAULT_REPORT_INTERVAL == 0:
            print(
                f"  Page fault #{event.detail['fault_number']}: "
                f"requesting page {event.page}"
            )

    elif event.kind == EventKind.PAGE_TRANSFERRED:
        print(
            f"  > Page {event.page} transferred on demand "
            f"(total: {event.detail['total_transferred']} pages)"
        )

    elif event.kind == EventKind.WORKLOAD_COMPLETED:
        print(
            f"  VM workload completed: {event.detail['page_faults']} page faults / "
            f"{event.detail['memory_accesses']} accesses"
        )

    elif event.kind == EventKind.SERVICE_STOPPED:
        print(
            f"  Paging service stopped: {event.detail['demand_transferred']} "
            f"pages transferred on demand"
        )

    elif event.kind == EventKind.ACTOR_UNRESPONSIVE:
        print(f"  Warning: {event.detail['actor']} did not stop in time")


@app.command("run")
def run_migration(
    vm_size_mb: int | None = typer.Argument(
        None, help=f"VM size in MB (default: {DEFAULT_VM_SIZE_MB})"
    ),
    free_ratio: float | None = typer.Argument(
        None, help=f"Free page ratio 0.0-1.0 (default: {DEFAULT_FREE_PAGE_RATIO})"
    ),
    link_speed: float | None = typer.Argument(
        None, help=f"Link speed in Mbps (default: {DEFAULT_LINK_SPEED_MBPS:.0f})"
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Use defaults for missing values and start without prompting",
    ),
    seed: int | None = typer.Option(
        None,
        "--seed",
        "-s",
        help="Random seed for page classification and the access pattern",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only print the configuration and the final report",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable debug logging",
    ),
):
    """
    Run a post-copy live migration simulation.

    Only the critical state moves while the VM is suspended; every other
    page crosses the link when the running VM touches it.

    Example:
        postcopy run 2048 0.2 1000
        postcopy run --yes --seed 7
    """
    from postcopy.config import ConfigError, CoreConfig
    from postcopy.migration import MigrationController, MigrationError
    from postcopy.report import format_configuration, format_report

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(threadName)s %(name)s: %(message)s",
    )

    print("=" * 60)
    print("    POST-COPY LIVE VM MIGRATION SIMULATOR")
    print("=" * 60)

    interactive = not yes
    vm_size_mb = _resolve(
        vm_size_mb,
        DEFAULT_VM_SIZE_MB,
        "Enter VM size in MB",
        lambda v: v > 0,
        "VM size must be positive",
        interactive,
    )
    free_ratio = _resolve(
        free_ratio,
        DEFAULT_FREE_PAGE_RATIO,
        "Enter free page ratio (0.0-1.0)",
        lambda v: 0.0 <= v <= 1.0,
        "Ratio must be between 0.0 and 1.0",
        interactive,
    )
    link_speed = _resolve(
        link_speed,
        DEFAULT_LINK_SPEED_MBPS,
        "Enter link speed in Mbps",
        lambda v: v > 0,
        "Link speed must be positive",
        interactive,
    )

    try:
        config = CoreConfig.from_vm_size(vm_size_mb, free_ratio, link_speed)
        print()
        print(format_configuration(config))
        print()

        if interactive:
            typer.prompt(
                "Press Enter to start the migration simulation",
                default="",
                show_default=False,
            )

        controller = MigrationController(
            config,
            seed=seed,
            on_event=None if quiet else _print_event,
        )
        started = time.monotonic()
        report = controller.run()
        elapsed_ms = (time.monotonic() - started) * 1000

    except (ConfigError, MigrationError) as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1) from e

    print()
    print("=" * 60)
    print("             POST-COPY MIGRATION COMPLETED")
    print("=" * 60)
    print(format_report(report))
    print()
    print(
        f"Only {report.pages_transferred}/{report.total_pages} pages were "
        f"needed and transferred"
    )
    print(f"Simulation completed in {elapsed_ms:.0f} ms")


if __name__ == "__main__":
    app()
