"""
PMO Standards workspace: shared reference sheets that hold the picklist values
used by every migrated project.

The workspace is reconciled once per run, before any project. Each reference
sheet has a single primary "Name" column with one row per value; values that
are already present are left alone, missing ones are appended.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import partial
from typing import TYPE_CHECKING, Any, Final

from .hierarchy import flat_plan
from .models import ColumnSpec, HierarchyNode, ResourceHandle, SheetSpec

if TYPE_CHECKING:
    from .reconciler import ResourceReconciler
    from .row_loader import RowLoader

logger: logging.Logger = logging.getLogger(__name__)

PMO_WORKSPACE_NAME: Final[str] = "PMO Standards"

PROJECT_STATUS: Final[str] = "Project - Status"
PROJECT_PRIORITY: Final[str] = "Project - Priority"
TASK_STATUS: Final[str] = "Task - Status"
TASK_PRIORITY: Final[str] = "Task - Priority"
TASK_CONSTRAINT_TYPE: Final[str] = "Task - Constraint Type"
RESOURCE_TYPE: Final[str] = "Resource - Type"

_PRIORITIES = ("Lowest", "Very Low", "Lower", "Medium", "Higher", "Very High", "Highest")

# Created in this order
REFERENCE_SHEETS: Final[tuple[tuple[str, tuple[str, ...]], ...]] = (
    (PROJECT_STATUS, ("Active", "Planning", "Completed", "On Hold", "Cancelled")),
    (PROJECT_PRIORITY, _PRIORITIES),
    (TASK_STATUS, ("Not Started", "In Progress", "Complete")),
    (TASK_PRIORITY, _PRIORITIES),
    (TASK_CONSTRAINT_TYPE, ("ASAP", "ALAP", "SNET", "SNLT", "FNET", "FNLT", "MSO", "MFO")),
    (RESOURCE_TYPE, ("Work", "Material", "Cost")),
)

NAME_COLUMN: Final[ColumnSpec] = ColumnSpec("Name", primary=True)


def reference_values(sheet_name: str) -> tuple[str, ...]:
    """Return the standard values of a reference sheet."""
    for name, values in REFERENCE_SHEETS:
        if name == sheet_name:
            return values
    msg = f"Unknown reference sheet: {sheet_name}"
    raise KeyError(msg)


@dataclass(frozen=True)
class ReferenceSheet:
    sheet: ResourceHandle
    name_column: ResourceHandle
    values: tuple[str, ...]


@dataclass
class PmoStandards:
    """The reconciled PMO Standards workspace and its reference sheets."""

    workspace: ResourceHandle
    sheets: dict[str, ReferenceSheet] = field(default_factory=dict)

    def values(self, sheet_name: str) -> tuple[str, ...]:
        return self.sheets[sheet_name].values


def _name_cells(column_id: int, node: HierarchyNode) -> dict[int, Any]:
    return {column_id: node.external_id}


def ensure_reference_data(
    reconciler: ResourceReconciler,
    loader: RowLoader,
    *,
    workspace_id: int | None = None,
    workspace_name: str = PMO_WORKSPACE_NAME,
) -> PmoStandards:
    """Make sure the PMO Standards workspace holds every reference sheet and value.

    Args:
        reconciler: Resolves the workspace, sheets and columns
        loader: Writes the missing values
        workspace_id: Use this existing workspace instead of looking one up by name
        workspace_name: Name of the workspace to find or create

    Returns:
        PmoStandards with one entry per reference sheet

    Raises:
        ReconciliationError: If the workspace or a sheet cannot be resolved
    """
    if workspace_id is not None:
        logger.info(f"Using PMO Standards workspace {workspace_id}")
        workspace = reconciler.use_workspace(workspace_id)
    else:
        workspace = reconciler.get_or_create_workspace(workspace_name)

    standards = PmoStandards(workspace)
    for sheet_name, values in REFERENCE_SHEETS:
        sheet = reconciler.get_or_create_sheet(workspace, SheetSpec(sheet_name, (NAME_COLUMN,)))
        [name_column] = reconciler.get_or_create_columns(sheet, [NAME_COLUMN])
        result = loader.load(
            sheet,
            flat_plan(values),
            partial(_name_cells, name_column.id),
            id_column=name_column,
            follows_create=reconciler.cache.was_created(sheet),
        )
        if result.written:
            logger.info(f"Added {result.written} values to reference sheet '{sheet_name}'")
        standards.sheets[sheet_name] = ReferenceSheet(sheet, name_column, values)

    logger.info(f"PMO Standards ready in workspace '{workspace.name}' (ID: {workspace.id})")
    return standards
