"""Protocols defining the contracts for source and target systems.

The migration architecture separates concerns into three components:

1. SourceSystem: Extracts typed records from Project Online
2. TargetSystem: Finds and creates workspaces, sheets, columns and rows in Smartsheet
3. MigrationOrchestrator: Sequences reconciliation and row loading per project

This separation allows:
- Testing the reconciliation and hierarchy logic against in-memory targets
- Keeping response-shape quirks of the remote APIs inside the adapters
- Clear boundaries for what may raise a RemoteError (only TargetSystem/SourceSystem calls)
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .models import (
        Assignment,
        ColumnSpec,
        Project,
        ProjectData,
        Resource,
        ResourceHandle,
        RowRecord,
        RowSpec,
        SheetSpec,
        Task,
    )


class SourceSystem(Protocol):
    """Protocol for extracting project data from the source system."""

    def get_project(self, project_id: str) -> Project:
        """Get a single project by its source id."""
        ...

    def get_tasks(self, project_id: str) -> list[Task]:
        """Return all tasks of a project in outline order."""
        ...

    def get_resources(self) -> list[Resource]:
        """Return all enterprise resources."""
        ...

    def get_assignments(self, project_id: str) -> list[Assignment]:
        """Return all assignments of a project."""
        ...

    def extract_project_data(self, project_id: str) -> ProjectData:
        """Return the project with its tasks, the resources assigned to it and its assignments."""
        ...


class TargetSystem(Protocol):
    """Protocol for the destination spreadsheet platform.

    Every method may raise RemoteError carrying the HTTP status, or a transport
    exception. Implementations must return canonical handles regardless of the
    response envelope the remote API used.

    Lookups return None when nothing with that exact (case-sensitive) name
    exists; they never create anything.
    """

    def find_workspace(self, name: str) -> ResourceHandle | None:
        """Find a workspace by exact name."""
        ...

    def get_workspace(self, workspace_id: int) -> ResourceHandle:
        """Get a workspace by id.

        Raises:
            RemoteError: 404 if the workspace does not exist
        """
        ...

    def create_workspace(self, name: str) -> ResourceHandle:
        """Create a workspace."""
        ...

    def find_sheet(self, workspace_id: int, name: str) -> ResourceHandle | None:
        """Find a sheet in a workspace by exact name."""
        ...

    def create_sheet(self, workspace_id: int, spec: SheetSpec) -> ResourceHandle:
        """Create a sheet with its columns in a workspace."""
        ...

    def find_column(self, sheet_id: int, title: str) -> ResourceHandle | None:
        """Find a column in a sheet by exact title."""
        ...

    def list_columns(self, sheet_id: int) -> list[ResourceHandle]:
        """Return all columns of a sheet in sheet order."""
        ...

    def create_columns(self, sheet_id: int, specs: Sequence[ColumnSpec], index: int) -> list[ResourceHandle]:
        """Insert columns starting at the given position, in one call.

        Returns:
            Handles of the created columns, in the order of specs
        """
        ...

    def write_rows(self, sheet_id: int, rows: Sequence[RowSpec]) -> list[int]:
        """Add rows in one call and return their new row ids in input order.

        All rows of one call must share the same location (same parent_id).
        """
        ...

    def list_rows(self, sheet_id: int) -> list[RowRecord]:
        """Return all rows of a sheet."""
        ...
