"""
Writes a HierarchyPlan into a sheet, one level at a time.

A child row can only be placed under its parent once the parent's row id is
known, so level N+1 is written only after every batch of level N returned.
Within a level, siblings that share a parent go out together and are appended
below that parent in plan order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any

from .exceptions import MigrationError
from .models import HierarchyNode, RowSpec
from .retry import RemoteOperation, RetryExecutor

if TYPE_CHECKING:
    from .hierarchy import HierarchyPlan
    from .models import ResourceHandle
    from .protocols import TargetSystem

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100

CellBuilder = Callable[[HierarchyNode], dict[int, Any]]


@dataclass
class LoadResult:
    """Rows written by one or more loads."""

    written: int = 0
    skipped: int = 0  # already present in the sheet
    moved_to_root: int = 0  # parent row unknown

    def add(self, other: LoadResult) -> None:
        self.written += other.written
        self.skipped += other.skipped
        self.moved_to_root += other.moved_to_root


def _chunks(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class RowLoader:
    """Materializes hierarchy plans as sheet rows."""

    def __init__(self, target: TargetSystem, executor: RetryExecutor, *, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        if batch_size < 1:
            msg = f"batch_size must be at least 1, got {batch_size}"
            raise ValueError(msg)
        self._target: TargetSystem = target
        self._executor: RetryExecutor = executor
        self.batch_size: int = batch_size
        self.totals: LoadResult = LoadResult()

    def load(
        self,
        sheet: ResourceHandle,
        plan: HierarchyPlan,
        build_cells: CellBuilder,
        *,
        id_column: ResourceHandle | None = None,
        follows_create: bool = False,
    ) -> LoadResult:
        """Write all rows of the plan, recording each row id in the plan.

        Args:
            sheet: Sheet to write into
            plan: Plan whose levels are written shallowest first
            build_cells: Returns the cells (column id -> value) for a node
            id_column: Column holding the external id. When given, rows whose
                external id is already in the sheet are not written again.
            follows_create: Whether the sheet was created by this run

        Returns:
            Counts for this load
        """
        result = LoadResult()
        existing = self._existing_rows(sheet, id_column, follows_create) if id_column is not None else {}

        for depth, level in enumerate(plan.levels):
            groups: dict[int | None, list[HierarchyNode]] = {}
            for node in level:
                row_id = existing.get(node.external_id)
                if row_id is not None:
                    plan.record_row_id(node.external_id, row_id)
                    result.skipped += 1
                    continue
                parent_row_id = plan.parent_row_id(node)
                if node.parent_external_id is not None and parent_row_id is None:
                    logger.warning(
                        f"Parent {node.parent_external_id} of {node.external_id} has no row in sheet "
                        f"'{sheet.name}'; writing {node.external_id} at the top level"
                    )
                    result.moved_to_root += 1
                groups.setdefault(parent_row_id, []).append(node)

            for parent_row_id, siblings in groups.items():
                for batch in _chunks(siblings, self.batch_size):
                    rows = [RowSpec(build_cells(node), parent_row_id) for node in batch]
                    row_ids = self._write(sheet, rows, follows_create=follows_create)
                    for node, row_id in zip(batch, row_ids, strict=True):
                        plan.record_row_id(node.external_id, row_id)
                    result.written += len(row_ids)
            logger.debug(f"Level {depth} of sheet '{sheet.name}' done ({len(level)} rows)")

        self.totals.add(result)
        logger.info(f"Sheet '{sheet.name}': {result.written} rows written, {result.skipped} already present")
        return result

    def _existing_rows(
        self,
        sheet: ResourceHandle,
        id_column: ResourceHandle,
        follows_create: bool,
    ) -> dict[str, int]:
        rows = self._executor.execute(
            RemoteOperation(
                f"List rows of sheet '{sheet.name}'",
                partial(self._target.list_rows, sheet.id),
                follows_create=follows_create,
            )
        )
        existing: dict[str, int] = {}
        for row in rows:
            value = row.cells.get(id_column.id)
            if value is None or value == "":
                continue
            _ = existing.setdefault(str(value), row.id)
        return existing

    def _write(self, sheet: ResourceHandle, rows: list[RowSpec], *, follows_create: bool) -> list[int]:
        row_ids = self._executor.execute(
            RemoteOperation(
                f"Add {len(rows)} rows to sheet '{sheet.name}'",
                partial(self._target.write_rows, sheet.id, rows),
                follows_create=follows_create,
            )
        )
        if len(row_ids) != len(rows):
            msg = f"Sheet '{sheet.name}' returned {len(row_ids)} row ids for {len(rows)} new rows"
            raise MigrationError(msg)
        return row_ids
