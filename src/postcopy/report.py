"""
Text rendering of migration results.

The migration core only produces numbers (a CoreConfig going in, a
MigrationReport coming out). This module turns them into the text the
CLI prints.
"""

from postcopy.config import PAGE_SIZE_BYTES, PAGE_SIZE_KB, CoreConfig
from postcopy.migration.metrics import MigrationReport

_MB = 1024 * 1024


def _section(title: str, rows: list[tuple[str, str]]) -> list[str]:
    """Format a titled block of aligned label/value rows."""
    width = max(len(label) for label, _ in rows)
    lines = [title]
    for label, value in rows:
        lines.append(f"  {label.ljust(width)}  {value}")
    return lines


def format_configuration(config: CoreConfig) -> str:
    """
    Format the configuration banner shown before a migration starts.

    Args:
        config: The migration configuration.

    Returns:
        Formatted string suitable for printing.
    """
    rows = [
        ("VM size:", f"{config.vm_size_mb:.1f} MB ({config.total_pages} pages)"),
        ("Page size:", f"{PAGE_SIZE_KB} KB ({PAGE_SIZE_BYTES} bytes)"),
        ("Free page ratio:", f"{config.free_page_ratio * 100:.1f}%"),
        ("Link speed:", f"{config.link_speed_mbps} Mbps"),
        ("Page transfer time:", f"{config.page_transfer_time_ms} ms per page"),
        ("Non-pageable pages:", f"{config.non_pageable_pages} (critical state)"),
        ("Expected free pages:", f"~{int(config.total_pages * config.free_page_ratio)}"),
    ]
    return "\n".join(_section("Simulation configuration", rows))


def format_report(report: MigrationReport) -> str:
    """
    Format the final migration report.

    Args:
        report: The report of a completed migration.

    Returns:
        Formatted string suitable for printing.
    """
    kb = report.page_size_bytes // 1024

    timing = [
        ("Preparation:", f"{report.preparation_ms:.0f} ms"),
        ("Downtime (VM suspended):", f"{report.downtime_ms:.0f} ms"),
        ("Resume (VM running):", f"{report.resume_ms:.0f} ms"),
        ("Total migration time:", f"{report.total_ms:.0f} ms"),
    ]

    transfer = [
        ("VM size:", f"{report.total_pages} pages "
                     f"({report.total_pages * report.page_size_bytes / _MB:.1f} MB)"),
        ("Reclaimed free pages:", f"{report.reclaimed_pages}"),
        ("Non-pageable (downtime):", f"{report.non_pageable_pages} pages "
                                     f"({report.non_pageable_pages * kb} KB)"),
        ("Transferred on demand:", f"{report.demand_transferred} pages "
                                   f"({report.demand_transferred * kb} KB)"),
        ("Total transferred:", f"{report.pages_transferred} pages "
                               f"({report.bytes_transferred / _MB:.2f} MB)"),
        ("Never transferred:", f"{report.pages_not_transferred} pages "
                               f"({report.bytes_saved / _MB:.2f} MB saved)"),
        ("Share of VM moved:", f"{report.transfer_percentage:.3f}%"),
        ("Bandwidth savings:", f"{report.bandwidth_savings:.3f}% ({report.efficiency})"),
        ("Page faults:", f"{report.page_faults}"),
        ("Memory accesses:", f"{report.memory_accesses}"),
        ("Fault rate:", f"{report.fault_rate:.2f}%"),
    ]

    impact = [
        ("Service interruption:", f"{report.downtime_ms:.0f} ms"),
        ("Degraded execution:", f"{report.resume_ms:.0f} ms (page faults)"),
        ("Downtime share:", f"{report.downtime_percentage:.2f}%"),
        ("Demand transfer rate:", f"{report.pages_per_second:.0f} pages/s "
                                  f"({report.megabytes_per_second:.2f} MB/s)"),
    ]

    lines = _section("Migration timing", timing)
    lines.append("")
    lines.extend(_section("Memory transfer", transfer))
    lines.append("")
    lines.extend(_section("Application impact", impact))

    if not report.workload_completed:
        lines.append("")
        lines.append("Note: the VM workload stopped before using its access budget")
    if report.unresponsive_actors:
        lines.append("")
        lines.append(
            "Warning: did not stop in time: "
            + ", ".join(report.unresponsive_actors)
        )

    return "\n".join(lines)
