"""Data models for migration between Project Online and Smartsheet.

Source records are what the SourceSystem extracts; specs describe what the
TargetSystem should hold; handles are what the TargetSystem reports back.
They are intentionally simple and carry no transport details.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

ColumnType = Literal[
    "TEXT_NUMBER",
    "CONTACT_LIST",
    "MULTI_CONTACT_LIST",
    "DATE",
    "PICKLIST",
    "MULTI_PICKLIST",
    "CHECKBOX",
    "PREDECESSOR",
    "DURATION",
]


@dataclass
class Project:
    """A Project Online project."""

    id: str
    name: str
    description: str = ""
    owner: str = ""
    owner_email: str = ""
    start: str | None = None  # ISO 8601 datetime
    finish: str | None = None
    status: str | None = None
    priority: int | None = None  # 0-1000
    percent_complete: float | None = None


@dataclass
class Task:
    """A Project Online task.

    outline_level is 1-based as reported by Project Online (1 = top level).
    """

    id: str
    name: str
    outline_level: int = 1
    index: int = 0
    parent_id: str | None = None
    start: str | None = None
    finish: str | None = None
    duration: str | None = None  # ISO 8601 duration, e.g. "PT40H"
    percent_complete: float | None = None
    priority: int | None = None
    is_milestone: bool = False
    notes: str = ""
    constraint_type: str | None = None


@dataclass
class Resource:
    """A Project Online enterprise resource."""

    id: str
    name: str
    email: str = ""
    resource_type: Literal["Work", "Material", "Cost"] = "Work"
    department: str = ""
    is_active: bool = True
    is_generic: bool = False


@dataclass
class Assignment:
    """A resource assigned to a task."""

    id: str
    task_id: str
    resource_id: str


@dataclass
class ProjectData:
    """Everything extracted from the source for one migration unit."""

    project: Project
    tasks: list[Task] = field(default_factory=list)
    resources: list[Resource] = field(default_factory=list)
    assignments: list[Assignment] = field(default_factory=list)


class ResourceKind(Enum):
    """Kinds of named resources reconciled in the destination."""

    WORKSPACE = "workspace"
    SHEET = "sheet"
    COLUMN = "column"


@dataclass(frozen=True)
class ResourceKey:
    """Identity of a named resource: two keys with the same scope and name are the same resource.

    scope is the id of the containing resource (workspace for sheets, sheet for
    columns) or None for workspaces, which live at account scope.
    """

    kind: ResourceKind
    scope: int | None
    name: str

    def describe_scope(self) -> str:
        if self.scope is None:
            return "account"
        parent = "workspace" if self.kind is ResourceKind.SHEET else "sheet"
        return f"{parent} {self.scope}"


@dataclass(frozen=True)
class ResourceHandle:
    """A resolved remote resource: its remote id plus the metadata we care about."""

    id: int
    name: str
    kind: ResourceKind
    scope: int | None = None
    column_type: str | None = None
    options: tuple[str, ...] = ()
    primary: bool = False
    permalink: str = ""

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.kind, self.scope, self.name)


@dataclass(frozen=True)
class ColumnSpec:
    """Desired shape of a column."""

    title: str
    type: str = "TEXT_NUMBER"
    primary: bool = False
    options: tuple[str, ...] = ()


@dataclass(frozen=True)
class SheetSpec:
    """Desired shape of a sheet; exactly one column should be primary."""

    name: str
    columns: tuple[ColumnSpec, ...] = ()

    def column(self, title: str) -> ColumnSpec:
        for column in self.columns:
            if column.title == title:
                return column
        msg = f"Sheet '{self.name}' has no column '{title}'"
        raise KeyError(msg)


@dataclass
class RowSpec:
    """A row to be written; cells are keyed by column id.

    A row either goes to the bottom of the sheet (parent_id None) or becomes the
    last child of the row with parent_id.
    """

    cells: dict[int, Any]
    parent_id: int | None = None


@dataclass(frozen=True)
class RowRecord:
    """An existing row as read back from the destination."""

    id: int
    cells: dict[int, Any]
    parent_id: int | None = None


@dataclass(frozen=True)
class HierarchyNode:
    """One item of a flat outline.

    depth is 0 for roots. parent_external_id is optional input; after planning it
    holds the resolved parent (None for roots).
    """

    external_id: str
    depth: int
    parent_external_id: str | None = None
    ordinal: int = 0
