"""
In-memory stand-in for Smartsheet used by reconciler, loader and orchestrator tests.

Behaves like the real API where the code under test cares: names are unique
per container (a duplicate create fails with a duplicate-name error), unknown
ids answer 404, rows of one write call must share a parent, and children are
appended below their parent. Failures can be injected per method.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from project_online_to_smartsheet.exceptions import RemoteError
from project_online_to_smartsheet.models import (
    ColumnSpec,
    ResourceHandle,
    ResourceKind,
    RowRecord,
    RowSpec,
    SheetSpec,
)


@dataclass
class FakeSheet:
    id: int
    name: str
    workspace_id: int
    columns: list[ResourceHandle] = field(default_factory=list)
    rows: list[RowRecord] = field(default_factory=list)


class InMemoryTarget:
    """TargetSystem keeping workspaces, sheets, columns and rows in dictionaries."""

    def __init__(self) -> None:
        self._ids = itertools.count(1000)
        self.workspaces: dict[int, str] = {}
        self.sheets: dict[int, FakeSheet] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.failures: dict[str, list[BaseException]] = {}
        self.before: dict[str, Callable[[], None]] = {}

    # Test helpers

    def fail(self, method: str, *errors: BaseException) -> None:
        """Make the next calls of method raise the given errors, in order."""
        self.failures.setdefault(method, []).extend(errors)

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    def creates(self) -> int:
        return sum(self.count(method) for method in ("create_workspace", "create_sheet", "create_columns"))

    def add_workspace(self, name: str) -> int:
        workspace_id = next(self._ids)
        self.workspaces[workspace_id] = name
        return workspace_id

    def add_sheet(self, workspace_id: int, name: str, titles: Sequence[str] = ("Name",)) -> FakeSheet:
        sheet = FakeSheet(next(self._ids), name, workspace_id)
        for position, title in enumerate(titles):
            sheet.columns.append(self._new_column(sheet.id, ColumnSpec(title, primary=position == 0)))
        self.sheets[sheet.id] = sheet
        return sheet

    def sheet_named(self, name: str) -> FakeSheet:
        matches = [sheet for sheet in self.sheets.values() if sheet.name == name]
        assert len(matches) == 1, f"expected one sheet named {name!r}, found {len(matches)}"
        return matches[0]

    def workspace_named(self, name: str) -> int:
        matches = [workspace_id for workspace_id, ws_name in self.workspaces.items() if ws_name == name]
        assert len(matches) == 1, f"expected one workspace named {name!r}, found {len(matches)}"
        return matches[0]

    def column_titles(self, sheet_id: int) -> list[str]:
        return [column.name for column in self.sheets[sheet_id].columns]

    def cell(self, sheet: FakeSheet, row: RowRecord, title: str) -> Any:
        column = next(column for column in sheet.columns if column.name == title)
        return row.cells.get(column.id)

    # TargetSystem

    def _enter(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        hook = self.before.pop(method, None)
        if hook is not None:
            hook()
        queue = self.failures.get(method)
        if queue:
            raise queue.pop(0)

    def _sheet(self, sheet_id: int) -> FakeSheet:
        sheet = self.sheets.get(sheet_id)
        if sheet is None:
            raise RemoteError(404, f"Sheet {sheet_id} not found", 1006)
        return sheet

    def _new_column(self, sheet_id: int, spec: ColumnSpec) -> ResourceHandle:
        return ResourceHandle(
            id=next(self._ids),
            name=spec.title,
            kind=ResourceKind.COLUMN,
            scope=sheet_id,
            column_type=spec.type,
            options=spec.options,
            primary=spec.primary,
        )

    def find_workspace(self, name: str) -> ResourceHandle | None:
        self._enter("find_workspace", name)
        for workspace_id, workspace_name in self.workspaces.items():
            if workspace_name == name:
                return ResourceHandle(workspace_id, workspace_name, ResourceKind.WORKSPACE)
        return None

    def get_workspace(self, workspace_id: int) -> ResourceHandle:
        self._enter("get_workspace", workspace_id)
        if workspace_id not in self.workspaces:
            raise RemoteError(404, f"Workspace {workspace_id} not found", 1006)
        return ResourceHandle(workspace_id, self.workspaces[workspace_id], ResourceKind.WORKSPACE)

    def create_workspace(self, name: str) -> ResourceHandle:
        self._enter("create_workspace", name)
        if name in self.workspaces.values():
            raise RemoteError(400, f"A workspace named '{name}' already exists", 1018)
        return ResourceHandle(self.add_workspace(name), name, ResourceKind.WORKSPACE)

    def find_sheet(self, workspace_id: int, name: str) -> ResourceHandle | None:
        self._enter("find_sheet", workspace_id, name)
        if workspace_id not in self.workspaces:
            raise RemoteError(404, f"Workspace {workspace_id} not found", 1006)
        for sheet in self.sheets.values():
            if sheet.workspace_id == workspace_id and sheet.name == name:
                return ResourceHandle(sheet.id, sheet.name, ResourceKind.SHEET, scope=workspace_id)
        return None

    def create_sheet(self, workspace_id: int, spec: SheetSpec) -> ResourceHandle:
        self._enter("create_sheet", workspace_id, spec.name)
        if workspace_id not in self.workspaces:
            raise RemoteError(404, f"Workspace {workspace_id} not found", 1006)
        if any(sheet.workspace_id == workspace_id and sheet.name == spec.name for sheet in self.sheets.values()):
            raise RemoteError(400, f"A sheet named '{spec.name}' already exists", 1018)
        sheet = FakeSheet(next(self._ids), spec.name, workspace_id)
        sheet.columns = [self._new_column(sheet.id, column) for column in spec.columns]
        self.sheets[sheet.id] = sheet
        return ResourceHandle(sheet.id, sheet.name, ResourceKind.SHEET, scope=workspace_id)

    def find_column(self, sheet_id: int, title: str) -> ResourceHandle | None:
        self._enter("find_column", sheet_id, title)
        for column in self._sheet(sheet_id).columns:
            if column.name == title:
                return column
        return None

    def list_columns(self, sheet_id: int) -> list[ResourceHandle]:
        self._enter("list_columns", sheet_id)
        return list(self._sheet(sheet_id).columns)

    def create_columns(self, sheet_id: int, specs: Sequence[ColumnSpec], index: int) -> list[ResourceHandle]:
        self._enter("create_columns", sheet_id, tuple(spec.title for spec in specs), index)
        sheet = self._sheet(sheet_id)
        existing = {column.name for column in sheet.columns}
        for spec in specs:
            if spec.title in existing:
                raise RemoteError(400, f"Column titles must be unique: '{spec.title}'", 1133)
        created = [self._new_column(sheet_id, spec) for spec in specs]
        sheet.columns[index:index] = created
        return created

    def write_rows(self, sheet_id: int, rows: Sequence[RowSpec]) -> list[int]:
        self._enter("write_rows", sheet_id, len(rows))
        sheet = self._sheet(sheet_id)
        parents = {row.parent_id for row in rows}
        if len(parents) > 1:
            raise RemoteError(400, "All rows must have the same location", 1062)
        [parent_id] = parents
        if parent_id is not None and all(row.id != parent_id for row in sheet.rows):
            raise RemoteError(404, f"Row {parent_id} not found", 1006)

        created = [RowRecord(next(self._ids), dict(row.cells), parent_id) for row in rows]
        if parent_id is None:
            sheet.rows.extend(created)
        else:
            # Append after the parent's last descendant
            position = self._subtree_end(sheet, parent_id)
            sheet.rows[position:position] = created
        return [row.id for row in created]

    def _subtree_end(self, sheet: FakeSheet, parent_id: int) -> int:
        ids = [row.id for row in sheet.rows]
        position = ids.index(parent_id) + 1
        subtree = {parent_id}
        while position < len(sheet.rows) and sheet.rows[position].parent_id in subtree:
            subtree.add(sheet.rows[position].id)
            position += 1
        return position

    def list_rows(self, sheet_id: int) -> list[RowRecord]:
        self._enter("list_rows", sheet_id)
        return list(self._sheet(sheet_id).rows)
