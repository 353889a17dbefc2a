"""
Sheet layouts and cell values for migrated projects.

Every project gets a workspace with three sheets: Summary (one row for the
project), Tasks (the task outline) and Resources. Each sheet carries a
"Project Online ... ID" column so rows can be matched on a re-run.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, Final

from .models import ColumnSpec, HierarchyNode, SheetSpec
from .reference_data import (
    PROJECT_PRIORITY,
    PROJECT_STATUS,
    RESOURCE_TYPE,
    TASK_CONSTRAINT_TYPE,
    TASK_PRIORITY,
    TASK_STATUS,
    reference_values,
)

if TYPE_CHECKING:
    from .models import Project, ProjectData, Resource, ResourceHandle, Task

logger: logging.Logger = logging.getLogger(__name__)

MAX_WORKSPACE_NAME_LENGTH: Final[int] = 100
MAX_SHEET_NAME_LENGTH: Final[int] = 50
HOURS_PER_DAY: Final[int] = 8

PROJECT_ID_COLUMN: Final[str] = "Project Online Project ID"
TASK_ID_COLUMN: Final[str] = "Project Online Task ID"
RESOURCE_ID_COLUMN: Final[str] = "Project Online Resource ID"

SUMMARY_COLUMNS: Final[tuple[ColumnSpec, ...]] = (
    ColumnSpec("Project Name", primary=True),
    ColumnSpec(PROJECT_ID_COLUMN),
    ColumnSpec("Description"),
    ColumnSpec("Owner", "CONTACT_LIST"),
    ColumnSpec("Start Date", "DATE"),
    ColumnSpec("Finish Date", "DATE"),
    ColumnSpec("Status", "PICKLIST", options=reference_values(PROJECT_STATUS)),
    ColumnSpec("Priority", "PICKLIST", options=reference_values(PROJECT_PRIORITY)),
    ColumnSpec("% Complete"),
)

TASK_COLUMNS: Final[tuple[ColumnSpec, ...]] = (
    ColumnSpec("Task Name", primary=True),
    ColumnSpec(TASK_ID_COLUMN),
    ColumnSpec("Start Date", "DATE"),
    ColumnSpec("End Date", "DATE"),
    ColumnSpec("Duration"),
    ColumnSpec("% Complete"),
    ColumnSpec("Status", "PICKLIST", options=reference_values(TASK_STATUS)),
    ColumnSpec("Priority", "PICKLIST", options=reference_values(TASK_PRIORITY)),
    ColumnSpec("Milestone", "CHECKBOX"),
    ColumnSpec("Notes"),
    ColumnSpec("Constraint Type", "PICKLIST", options=reference_values(TASK_CONSTRAINT_TYPE)),
)

RESOURCE_COLUMNS: Final[tuple[ColumnSpec, ...]] = (
    ColumnSpec("Resource Name", primary=True),
    ColumnSpec(RESOURCE_ID_COLUMN),
    ColumnSpec("Team Members", "CONTACT_LIST"),
    ColumnSpec("Resource Type", "PICKLIST", options=reference_values(RESOURCE_TYPE)),
    ColumnSpec("Department"),
    ColumnSpec("Active", "CHECKBOX"),
    ColumnSpec("Generic", "CHECKBOX"),
)

_INVALID_NAME_CHARS = re.compile(r'[/\\:*?"<>|]')
_DURATION_DAYS = re.compile(r"P(\d+)D")
_DURATION_HOURS = re.compile(r"T(\d+(?:\.\d+)?)H")
_DURATION_MINUTES = re.compile(r"T(?:[\d.]+H)?(\d+(?:\.\d+)?)M")


def sanitize_workspace_name(project_name: str) -> str:
    """Turn a project name into a valid workspace name.

    Replaces characters Smartsheet rejects with dashes, collapses runs of dashes,
    strips surrounding whitespace and dashes and caps the length at 100.
    """
    name = _INVALID_NAME_CHARS.sub("-", project_name)
    name = re.sub(r"-+", "-", name)
    name = name.strip().strip("-").strip()
    if len(name) > MAX_WORKSPACE_NAME_LENGTH:
        name = name[: MAX_WORKSPACE_NAME_LENGTH - 3] + "..."
    return name


def sheet_name(workspace_name: str, suffix: str) -> str:
    """Name of a project sheet, e.g. "Website Redesign - Tasks", within the sheet name limit."""
    tail = f" - {suffix}"
    room = MAX_SHEET_NAME_LENGTH - len(tail)
    return workspace_name[:room].rstrip() + tail


def summary_sheet_spec(workspace_name: str) -> SheetSpec:
    return SheetSpec(sheet_name(workspace_name, "Summary"), SUMMARY_COLUMNS)


def task_sheet_spec(workspace_name: str) -> SheetSpec:
    return SheetSpec(sheet_name(workspace_name, "Tasks"), TASK_COLUMNS)


def resource_sheet_spec(workspace_name: str) -> SheetSpec:
    return SheetSpec(sheet_name(workspace_name, "Resources"), RESOURCE_COLUMNS)


def to_date(value: str | None) -> str | None:
    """Convert an ISO 8601 datetime to a YYYY-MM-DD date in UTC.

    Returns None for empty or unparseable values.
    """
    if not value:
        return None
    try:
        parsed = dt.datetime.fromisoformat(value)
    except ValueError:
        logger.debug(f"Ignoring unparseable date {value!r}")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(dt.UTC)
    return parsed.date().isoformat()


def duration_to_hours(value: str | None) -> float:
    """Hours in an ISO 8601 duration such as "PT40H", "P5D" or "PT480M" (8-hour days)."""
    if not value:
        return 0.0
    hours = 0.0
    if match := _DURATION_DAYS.search(value):
        hours += int(match.group(1)) * HOURS_PER_DAY
    if match := _DURATION_HOURS.search(value):
        hours += float(match.group(1))
    if match := _DURATION_MINUTES.search(value):
        hours += float(match.group(1)) / 60
    return hours


def duration_to_days(value: str | None) -> float:
    return round(duration_to_hours(value) / HOURS_PER_DAY, 2)


def map_priority(value: int | None) -> str | None:
    """Map a Project Online priority (0-1000) onto the seven priority labels."""
    if value is None:
        return None
    if value >= 1000:
        return "Highest"
    if value >= 800:
        return "Very High"
    if value >= 600:
        return "Higher"
    if value >= 500:
        return "Medium"
    if value >= 400:
        return "Lower"
    if value >= 200:
        return "Very Low"
    return "Lowest"


def derive_status(percent_complete: float | None) -> str:
    if not percent_complete:
        return "Not Started"
    if percent_complete >= 100:
        return "Complete"
    return "In Progress"


def resource_column_type(resource_type: str) -> str:
    """Work resources are people and get contact columns; materials and costs get picklists."""
    return "MULTI_CONTACT_LIST" if resource_type == "Work" else "MULTI_PICKLIST"


def _cells(columns: Mapping[str, ResourceHandle], values: Mapping[str, Any]) -> dict[int, Any]:
    """Key values by column id, dropping empty values and columns the sheet lacks."""
    cells: dict[int, Any] = {}
    for title, value in values.items():
        if value is None or value == "":
            continue
        column = columns.get(title)
        if column is None:
            continue
        cells[column.id] = value
    return cells


def summary_cells(project: Project, columns: Mapping[str, ResourceHandle]) -> dict[int, Any]:
    return _cells(
        columns,
        {
            "Project Name": project.name,
            PROJECT_ID_COLUMN: project.id,
            "Description": project.description,
            "Owner": project.owner_email or project.owner,
            "Start Date": to_date(project.start),
            "Finish Date": to_date(project.finish),
            "Status": project.status,
            "Priority": map_priority(project.priority),
            "% Complete": project.percent_complete,
        },
    )


def task_cells(task: Task, columns: Mapping[str, ResourceHandle]) -> dict[int, Any]:
    return _cells(
        columns,
        {
            "Task Name": task.name,
            TASK_ID_COLUMN: task.id,
            "Start Date": to_date(task.start),
            "End Date": to_date(task.finish),
            "Duration": duration_to_days(task.duration) if task.duration else None,
            "% Complete": task.percent_complete,
            "Status": derive_status(task.percent_complete),
            "Priority": map_priority(task.priority),
            "Milestone": task.is_milestone,
            "Notes": task.notes,
            "Constraint Type": task.constraint_type,
        },
    )


def resource_cells(resource: Resource, columns: Mapping[str, ResourceHandle]) -> dict[int, Any]:
    return _cells(
        columns,
        {
            "Resource Name": resource.name,
            RESOURCE_ID_COLUMN: resource.id,
            "Team Members": resource.email if resource.resource_type == "Work" else None,
            "Resource Type": resource.resource_type,
            "Department": resource.department,
            "Active": resource.is_active,
            "Generic": resource.is_generic,
        },
    )


def task_nodes(tasks: Iterable[Task]) -> list[HierarchyNode]:
    """Outline nodes for tasks, in task index order.

    Project Online outline levels start at 1 for top-level tasks; the project
    summary task (level 0) is treated as top level too.
    """
    ordered = sorted(tasks, key=lambda task: task.index)
    return [
        HierarchyNode(
            external_id=task.id,
            depth=max(task.outline_level - 1, 0),
            parent_external_id=task.parent_id,
            ordinal=ordinal,
        )
        for ordinal, task in enumerate(ordered)
    ]


def assignment_columns(data: ProjectData) -> list[ColumnSpec]:
    """One column per assigned resource: work resources first, then materials and costs."""
    resources = {resource.id: resource for resource in data.resources}
    work: list[ColumnSpec] = []
    other: list[ColumnSpec] = []
    seen: set[str] = set()
    for assignment in data.assignments:
        resource = resources.get(assignment.resource_id)
        if resource is None:
            logger.debug(f"Assignment {assignment.id} references unknown resource {assignment.resource_id}")
            continue
        title = resource.name or "Unknown Resource"
        if title in seen:
            continue
        seen.add(title)
        spec = ColumnSpec(title, resource_column_type(resource.resource_type))
        (work if resource.resource_type == "Work" else other).append(spec)
    return work + other
