"""
Migration orchestration.

This package contains:
- controller: The phase state machine that runs a migration
- metrics: Counters collected during a run and the final report
"""

from .controller import MigrationController, MigrationError, MigrationPhase
from .metrics import MigrationMetrics, MigrationReport

__all__ = [
    "MigrationController",
    "MigrationError",
    "MigrationPhase",
    "MigrationMetrics",
    "MigrationReport",
]
