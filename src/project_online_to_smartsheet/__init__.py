"""
Project Online to Smartsheet Migration Tool

Migrates Project Online projects into Smartsheet workspaces: a summary sheet,
the task outline with its hierarchy, resources and assignment columns, plus a
shared PMO Standards workspace of reference values. Re-running a migration
reuses everything a previous run created.
"""

from __future__ import annotations

from .cli import main
from .exceptions import (
    ConfigurationError,
    MigrationError,
    OperationCancelledError,
    ReconciliationError,
    RemoteError,
    RetryExhaustedError,
)
from .hierarchy import HierarchyPlan, build_plan
from .orchestrator import MigrationOrchestrator, MigrationResult, MigrationStats
from .reconciler import ResourceReconciler
from .retry import Cancellation, RetryExecutor, RetryPolicy
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "Cancellation",
    "ConfigurationError",
    "HierarchyPlan",
    "MigrationError",
    "MigrationOrchestrator",
    "MigrationResult",
    "MigrationStats",
    "OperationCancelledError",
    "ReconciliationError",
    "RemoteError",
    "ResourceReconciler",
    "RetryExecutor",
    "RetryExhaustedError",
    "RetryPolicy",
    "build_plan",
    "main",
    "setup_logging",
]
