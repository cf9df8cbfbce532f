"""
Page residency model.

This package contains:
- page_table: Source/target residency of every VM page
- timing: Per-page transfer latency over the migration link
"""

from .page_table import PageTable, PageTableError, SourceResidency, TargetResidency
from .timing import page_transfer_time_ms

__all__ = [
    "PageTable",
    "PageTableError",
    "SourceResidency",
    "TargetResidency",
    "page_transfer_time_ms",
]
