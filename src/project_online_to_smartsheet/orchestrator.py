"""Migration orchestrator that coordinates source and target systems.

The MigrationOrchestrator is the central coordinator for migration. It:
1. Owns the handle cache, retry executor, reconciler and row loader of a run
2. Sequences the phases of each project migration
3. Decides which failures abort a project and which only skip one entity
4. Aggregates counters for reporting

Migration Flow
--------------
Phase 1: PMO Standards (once per orchestrator)
    - Find the PMO Standards workspace by id or name, or create it
    - Reconcile each reference sheet and append missing values

Phase 2: Project workspace
    - Sanitize the project name and find or create the workspace

Phase 3: Entities, each independent of the others
    a. Summary: sheet, columns, one row for the project
    b. Tasks: sheet, columns, then the task outline written level by level
    c. Resources: sheet, columns, one row per assigned resource
    d. Assignments: one column per assigned resource on the task sheet

Every lookup precedes any create, and rows already present (matched on their
Project Online id column) are not written again, so re-running after a crash
resumes instead of duplicating.

Error Handling
--------------
- Phases 1 and 2 are foundational: if they fail, the project fails and no
  entity is attempted.
- A failed entity in phase 3 is recorded in the stats; the remaining entities
  still run and the project is reported as failed.
- Cancellation (explicit or deadline) aborts immediately and propagates.
- Exceptions that are not MigrationErrors are bugs and propagate untouched.

The orchestrator is strictly sequential and shares nothing with other
instances. Create one per run; it reconciles PMO Standards only once no matter
how many projects it migrates.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from functools import partial
from typing import TYPE_CHECKING

from .exceptions import ConfigurationError, MigrationError, OperationCancelledError
from .hierarchy import HierarchyPlan, build_plan, flat_plan
from .reconciler import HandleCache, ResourceReconciler
from .reference_data import PmoStandards, ensure_reference_data
from .retry import Cancellation, RemoteOperation, RetryExecutor, RetryPolicy
from .row_loader import DEFAULT_BATCH_SIZE, RowLoader
from .sheet_builder import (
    PROJECT_ID_COLUMN,
    RESOURCE_ID_COLUMN,
    TASK_ID_COLUMN,
    assignment_columns,
    resource_cells,
    resource_sheet_spec,
    sanitize_workspace_name,
    summary_cells,
    summary_sheet_spec,
    task_cells,
    task_nodes,
    task_sheet_spec,
)

if TYPE_CHECKING:
    from .models import HierarchyNode, ProjectData, ResourceHandle, SheetSpec
    from .protocols import SourceSystem, TargetSystem

logger: logging.Logger = logging.getLogger(__name__)


@dataclass
class MigrationStats:
    """Statistics collected during migration."""

    resources_created: int = 0
    resources_reused: int = 0
    rows_written: int = 0
    rows_skipped: int = 0
    retries: int = 0
    structural_warnings: int = 0
    errors: list[str] = field(default_factory=list)

    def since(self, earlier: MigrationStats) -> MigrationStats:
        """What happened between an earlier snapshot and this one."""
        return MigrationStats(
            resources_created=self.resources_created - earlier.resources_created,
            resources_reused=self.resources_reused - earlier.resources_reused,
            rows_written=self.rows_written - earlier.rows_written,
            rows_skipped=self.rows_skipped - earlier.rows_skipped,
            retries=self.retries - earlier.retries,
            structural_warnings=self.structural_warnings - earlier.structural_warnings,
            errors=self.errors[len(earlier.errors) :],
        )


@dataclass
class MigrationResult:
    """Result of migrating one project."""

    success: bool
    project_id: str
    stats: MigrationStats
    workspace: ResourceHandle | None = None
    sheets: dict[str, ResourceHandle] = field(default_factory=dict)  # entity -> sheet
    row_ids: dict[str, int] = field(default_factory=dict)  # task id -> row id
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ReconciledSheet:
    """A sheet together with its columns, keyed by title."""

    sheet: ResourceHandle
    columns: dict[str, ResourceHandle]

    def column(self, title: str) -> ResourceHandle:
        return self.columns[title]


class MigrationOrchestrator:
    """Orchestrates migration of Project Online projects into Smartsheet.

    Usage:
        target = SmartsheetTarget(token)
        source = ProjectOnlineSource(site_url, po_token)
        orchestrator = MigrationOrchestrator(target, source)
        result = orchestrator.migrate(project_id)
    """

    _target: TargetSystem
    _source: SourceSystem | None

    def __init__(
        self,
        target: TargetSystem,
        source: SourceSystem | None = None,
        *,
        policy: RetryPolicy | None = None,
        cancellation: Cancellation | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        pmo_workspace_id: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            target: Destination system
            source: Source system, needed only for migrate()
            policy: Retry policy for every remote call
            cancellation: Cancellation signal or deadline for the whole run
            batch_size: Maximum rows per write call
            pmo_workspace_id: Existing PMO Standards workspace to use
            sleep: Used between retries
        """
        self._target = target
        self._source = source
        self._pmo_workspace_id: int | None = pmo_workspace_id
        self.cache: HandleCache = HandleCache()
        self.executor: RetryExecutor = RetryExecutor(policy, cancellation=cancellation, sleep=sleep)
        self.reconciler: ResourceReconciler = ResourceReconciler(target, self.executor, self.cache)
        self.loader: RowLoader = RowLoader(target, self.executor, batch_size=batch_size)
        self.pmo_standards: PmoStandards | None = None
        self._structural_warnings: int = 0
        self._errors: list[str] = []

    def counters(self) -> MigrationStats:
        """Snapshot of everything counted since the orchestrator was created."""
        return MigrationStats(
            resources_created=self.reconciler.counters.created,
            resources_reused=self.reconciler.counters.reused,
            rows_written=self.loader.totals.written,
            rows_skipped=self.loader.totals.skipped,
            retries=self.executor.retry_count,
            structural_warnings=self._structural_warnings,
            errors=list(self._errors),
        )

    def reconcile(self, workspace: ResourceHandle, spec: SheetSpec) -> ReconciledSheet:
        """Find or create a sheet and all of its columns."""
        sheet = self.reconciler.get_or_create_sheet(workspace, spec)
        handles = self.reconciler.get_or_create_columns(sheet, spec.columns)
        columns = {column.title: handle for column, handle in zip(spec.columns, handles, strict=True)}
        return ReconciledSheet(sheet, columns)

    def build_plan(self, nodes: Iterable[HierarchyNode]) -> HierarchyPlan:
        plan = build_plan(nodes)
        self._structural_warnings += len(plan.warnings)
        return plan

    def ensure_pmo_standards(self) -> PmoStandards:
        if self.pmo_standards is None:
            self.pmo_standards = ensure_reference_data(
                self.reconciler, self.loader, workspace_id=self._pmo_workspace_id
            )
        return self.pmo_standards

    def _record_error(self, message: str) -> None:
        logger.error(message)
        self._errors.append(message)

    def migrate(self, project_id: str) -> MigrationResult:
        """Extract a project from the source and migrate it.

        Raises:
            ConfigurationError: If the orchestrator has no source
            OperationCancelledError: If the run was cancelled
        """
        if self._source is None:
            msg = "No source system configured"
            raise ConfigurationError(msg)

        before = self.counters()
        try:
            data = self.executor.execute(
                RemoteOperation(f"Extract project {project_id}", partial(self._source.extract_project_data, project_id))
            )
        except OperationCancelledError:
            raise
        except MigrationError as e:
            self._record_error(f"Extracting project {project_id} failed: {e}")
            return MigrationResult(False, project_id, self.counters().since(before))
        return self.migrate_project(data)

    def migrate_project(self, data: ProjectData) -> MigrationResult:
        """Migrate one already extracted project.

        Returns:
            MigrationResult; success is False if any phase failed

        Raises:
            OperationCancelledError: If the run was cancelled
        """
        project = data.project
        before = self.counters()
        result = MigrationResult(False, project.id, MigrationStats())
        logger.info(f"Migrating project '{project.name}' ({project.id})")

        try:
            _ = self.ensure_pmo_standards()
            workspace_name = sanitize_workspace_name(project.name) or f"Project {project.id}"
            result.workspace = self.reconciler.get_or_create_workspace(workspace_name)
        except OperationCancelledError:
            raise
        except MigrationError as e:
            self._record_error(f"Project '{project.name}' aborted: {e}")
            result.stats = self.counters().since(before)
            return result

        workspace = result.workspace
        failed = False
        steps: list[tuple[str, Callable[[ResourceHandle, ProjectData, MigrationResult], None]]] = [
            ("summary", self._migrate_summary),
            ("tasks", self._migrate_tasks),
            ("resources", self._migrate_resources),
            ("assignments", self._migrate_assignments),
        ]
        for entity, step in steps:
            try:
                step(workspace, data, result)
            except OperationCancelledError:
                raise
            except MigrationError as e:
                self._record_error(f"Migrating {entity} of project '{project.name}' failed: {e}")
                failed = True

        result.success = not failed
        result.stats = self.counters().since(before)
        logger.info(
            f"Project '{project.name}' {'migrated' if result.success else 'migrated with errors'}: "
            f"{result.stats.resources_created} resources created, {result.stats.rows_written} rows written"
        )
        return result

    def _migrate_summary(self, workspace: ResourceHandle, data: ProjectData, result: MigrationResult) -> None:
        reconciled = self.reconcile(workspace, summary_sheet_spec(workspace.name))
        result.sheets["summary"] = reconciled.sheet
        project = data.project
        _ = self.loader.load(
            reconciled.sheet,
            flat_plan([project.id]),
            lambda _node: summary_cells(project, reconciled.columns),
            id_column=reconciled.column(PROJECT_ID_COLUMN),
            follows_create=self.cache.was_created(reconciled.sheet),
        )

    def _migrate_tasks(self, workspace: ResourceHandle, data: ProjectData, result: MigrationResult) -> None:
        reconciled = self.reconcile(workspace, task_sheet_spec(workspace.name))
        result.sheets["tasks"] = reconciled.sheet
        tasks = {task.id: task for task in data.tasks}
        plan = self.build_plan(task_nodes(data.tasks))
        result.warnings.extend(plan.warnings)
        try:
            _ = self.loader.load(
                reconciled.sheet,
                plan,
                lambda node: task_cells(tasks[node.external_id], reconciled.columns),
                id_column=reconciled.column(TASK_ID_COLUMN),
                follows_create=self.cache.was_created(reconciled.sheet),
            )
        finally:
            result.row_ids = dict(plan.row_ids)

    def _migrate_resources(self, workspace: ResourceHandle, data: ProjectData, result: MigrationResult) -> None:
        reconciled = self.reconcile(workspace, resource_sheet_spec(workspace.name))
        result.sheets["resources"] = reconciled.sheet
        resources = {resource.id: resource for resource in data.resources}
        _ = self.loader.load(
            reconciled.sheet,
            flat_plan(resources),
            lambda node: resource_cells(resources[node.external_id], reconciled.columns),
            id_column=reconciled.column(RESOURCE_ID_COLUMN),
            follows_create=self.cache.was_created(reconciled.sheet),
        )

    def _migrate_assignments(self, _workspace: ResourceHandle, data: ProjectData, result: MigrationResult) -> None:
        task_sheet = result.sheets.get("tasks")
        specs = assignment_columns(data)
        if not specs:
            return
        if task_sheet is None:
            msg = "task sheet is not available"
            raise MigrationError(msg)
        _ = self.reconciler.get_or_create_columns(task_sheet, specs)
        logger.debug(f"Task sheet '{task_sheet.name}' has {len(specs)} assignment columns")
