"""
Get-or-create reconciliation of workspaces, sheets and columns.

Every lookup is done against the remote system before anything is created,
so re-running a migration after a crash reuses what the previous run left
behind instead of duplicating it. The HandleCache only saves repeated
lookups within one run; it is never consulted across runs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING

from .exceptions import RemoteError, ReconciliationError, RetryExhaustedError
from .models import ResourceHandle, ResourceKey, ResourceKind
from .retry import RemoteOperation, RetryExecutor

if TYPE_CHECKING:
    from .models import ColumnSpec, SheetSpec
    from .protocols import TargetSystem

logger: logging.Logger = logging.getLogger(__name__)

# Smartsheet inserts new single columns right after the primary column unless told otherwise
_DEFAULT_COLUMN_INDEX = 1


class HandleCache:
    """Handles resolved during one orchestrator run.

    Owned by exactly one orchestrator and discarded with it. Also remembers
    which resources this run created, because reads of those may hit the
    destination's replication lag.
    """

    def __init__(self) -> None:
        self._handles: dict[ResourceKey, ResourceHandle] = {}
        self._created: set[tuple[ResourceKind, int]] = set()

    def get(self, key: ResourceKey) -> ResourceHandle | None:
        return self._handles.get(key)

    def put(self, handle: ResourceHandle, *, created: bool = False) -> None:
        self._handles[handle.key] = handle
        if created:
            self._created.add((handle.kind, handle.id))

    def was_created(self, handle: ResourceHandle) -> bool:
        """Check if this run created the resource."""
        return (handle.kind, handle.id) in self._created


@dataclass
class ReconcileCounters:
    """How many resources were created versus found already in place."""

    created: int = 0
    reused: int = 0


def _label(key: ResourceKey) -> str:
    return f"{key.kind.value} '{key.name}' in {key.describe_scope()}"


class ResourceReconciler:
    """Finds or creates named resources exactly once per container."""

    def __init__(
        self,
        target: TargetSystem,
        executor: RetryExecutor,
        cache: HandleCache | None = None,
    ) -> None:
        self._target: TargetSystem = target
        self._executor: RetryExecutor = executor
        self.cache: HandleCache = cache if cache is not None else HandleCache()
        self.counters: ReconcileCounters = ReconcileCounters()

    def get_or_create(
        self,
        key: ResourceKey,
        find: Callable[[], ResourceHandle | None],
        create: Callable[[], ResourceHandle],
        *,
        follows_create: bool = False,
    ) -> ResourceHandle:
        """Return the resource identified by key, creating it only if the remote has none.

        Args:
            key: Identity of the resource
            find: Remote lookup returning the existing handle or None
            create: Remote create returning the new handle
            follows_create: Whether the container was created by this run

        Returns:
            The existing or newly created handle

        Raises:
            ReconciliationError: If lookup or create failed for good
        """
        cached = self.cache.get(key)
        if cached is not None:
            self.counters.reused += 1
            return cached

        label = _label(key)
        found = self._lookup(key, find, follows_create=follows_create)
        if found is not None:
            self.cache.put(found)
            self.counters.reused += 1
            logger.debug(f"Using existing {label} (ID: {found.id})")
            return found

        try:
            handle = self._executor.execute(RemoteOperation(f"Create {label}", create, follows_create=follows_create))
        except RemoteError as e:
            if not e.is_duplicate_name:
                raise ReconciliationError(key.kind.value, key.name, key.describe_scope(), e) from e
            # Someone else created it between our lookup and our create
            logger.debug(f"{label} appeared between lookup and create, using the existing one")
            handle = self._lookup(key, find, follows_create=True)
            if handle is None:
                msg = "create reported a duplicate name but the lookup still finds nothing"
                raise ReconciliationError(key.kind.value, key.name, key.describe_scope(), msg) from e
            self.cache.put(handle)
            self.counters.reused += 1
            return handle
        except RetryExhaustedError as e:
            raise ReconciliationError(key.kind.value, key.name, key.describe_scope(), e) from e

        self.cache.put(handle, created=True)
        self.counters.created += 1
        logger.info(f"Created {label} (ID: {handle.id})")
        return handle

    def _lookup(
        self,
        key: ResourceKey,
        find: Callable[[], ResourceHandle | None],
        *,
        follows_create: bool,
    ) -> ResourceHandle | None:
        try:
            return self._executor.execute(
                RemoteOperation(f"Look up {_label(key)}", find, follows_create=follows_create)
            )
        except (RemoteError, RetryExhaustedError) as e:
            raise ReconciliationError(key.kind.value, key.name, key.describe_scope(), e) from e

    def get_or_create_workspace(self, name: str) -> ResourceHandle:
        key = ResourceKey(ResourceKind.WORKSPACE, None, name)
        return self.get_or_create(
            key,
            partial(self._target.find_workspace, name),
            partial(self._target.create_workspace, name),
        )

    def use_workspace(self, workspace_id: int) -> ResourceHandle:
        """Resolve a workspace that must already exist, by id."""
        try:
            handle = self._executor.execute(
                RemoteOperation(f"Get workspace {workspace_id}", partial(self._target.get_workspace, workspace_id))
            )
        except (RemoteError, RetryExhaustedError) as e:
            raise ReconciliationError("workspace", str(workspace_id), "account", e) from e
        self.cache.put(handle)
        self.counters.reused += 1
        return handle

    def get_or_create_sheet(self, workspace: ResourceHandle, spec: SheetSpec) -> ResourceHandle:
        key = ResourceKey(ResourceKind.SHEET, workspace.id, spec.name)
        return self.get_or_create(
            key,
            partial(self._target.find_sheet, workspace.id, spec.name),
            partial(self._target.create_sheet, workspace.id, spec),
            follows_create=self.cache.was_created(workspace),
        )

    def get_or_create_column(
        self,
        sheet: ResourceHandle,
        spec: ColumnSpec,
        *,
        index: int | None = None,
    ) -> ResourceHandle:
        key = ResourceKey(ResourceKind.COLUMN, sheet.id, spec.title)
        insert_at = _DEFAULT_COLUMN_INDEX if index is None else index

        def create() -> ResourceHandle:
            created = self._target.create_columns(sheet.id, [spec], insert_at)
            if len(created) != 1:
                msg = f"expected 1 column back, got {len(created)}"
                raise ReconciliationError("column", spec.title, key.describe_scope(), msg)
            return created[0]

        return self.get_or_create(
            key,
            partial(self._target.find_column, sheet.id, spec.title),
            create,
            follows_create=self.cache.was_created(sheet),
        )

    def get_or_create_columns(
        self,
        sheet: ResourceHandle,
        specs: Sequence[ColumnSpec],
        *,
        index: int | None = None,
    ) -> list[ResourceHandle]:
        """Resolve many columns of one sheet with one lookup and at most one create call.

        Columns already in the sheet are left alone. Missing columns are inserted
        together at index (default: after the last existing column).

        Returns:
            One handle per spec, in the order of specs
        """
        titles = [spec.title for spec in specs]
        if len(set(titles)) != len(titles):
            msg = f"Duplicate column titles requested for sheet '{sheet.name}': {titles}"
            raise ValueError(msg)

        keys = [ResourceKey(ResourceKind.COLUMN, sheet.id, title) for title in titles]
        cached = [self.cache.get(key) for key in keys]
        if all(handle is not None for handle in cached):
            self.counters.reused += len(cached)
            return [handle for handle in cached if handle is not None]

        follows_create = self.cache.was_created(sheet)
        existing = self._list_columns(sheet, follows_create=follows_create)
        by_title: dict[str, ResourceHandle] = {}
        for column in existing:
            by_title.setdefault(column.name, column)

        missing = [spec for spec in specs if spec.title not in by_title]
        for spec in specs:
            column = by_title.get(spec.title)
            if column is None:
                continue
            if column.column_type and column.column_type != spec.type:
                logger.warning(
                    f"Column '{spec.title}' in sheet '{sheet.name}' is {column.column_type}, expected {spec.type}; "
                    "leaving it unchanged"
                )
            self.cache.put(column)
            self.counters.reused += 1

        if missing:
            self._create_missing_columns(sheet, missing, by_title, len(existing) if index is None else index)

        return [by_title[title] for title in titles]

    def _list_columns(self, sheet: ResourceHandle, *, follows_create: bool) -> list[ResourceHandle]:
        try:
            return self._executor.execute(
                RemoteOperation(
                    f"List columns of sheet '{sheet.name}'",
                    partial(self._target.list_columns, sheet.id),
                    follows_create=follows_create,
                )
            )
        except (RemoteError, RetryExhaustedError) as e:
            raise ReconciliationError("columns", sheet.name, f"sheet {sheet.id}", e) from e

    def _create_missing_columns(
        self,
        sheet: ResourceHandle,
        missing: list[ColumnSpec],
        by_title: dict[str, ResourceHandle],
        insert_at: int,
    ) -> None:
        titles = ", ".join(spec.title for spec in missing)
        logger.debug(f"Adding {len(missing)} columns to sheet '{sheet.name}' at index {insert_at}: {titles}")
        try:
            created = self._executor.execute(
                RemoteOperation(
                    f"Create columns {titles} in sheet '{sheet.name}'",
                    partial(self._target.create_columns, sheet.id, missing, insert_at),
                    follows_create=self.cache.was_created(sheet),
                )
            )
        except RemoteError as e:
            if not e.is_duplicate_name:
                raise ReconciliationError("columns", titles, f"sheet {sheet.id}", e) from e
            logger.debug(f"Some of the columns {titles} appeared in sheet '{sheet.name}' meanwhile, resolving again")
            for column in self._list_columns(sheet, follows_create=True):
                by_title.setdefault(column.name, column)
            still_missing = [spec.title for spec in missing if spec.title not in by_title]
            if still_missing:
                msg = f"create reported a duplicate name but {still_missing} are still missing"
                raise ReconciliationError("columns", titles, f"sheet {sheet.id}", msg) from e
            for spec in missing:
                self.cache.put(by_title[spec.title])
                self.counters.reused += 1
            return
        except RetryExhaustedError as e:
            raise ReconciliationError("columns", titles, f"sheet {sheet.id}", e) from e

        if len(created) != len(missing):
            msg = f"expected {len(missing)} columns back, got {len(created)}"
            raise ReconciliationError("columns", titles, f"sheet {sheet.id}", msg)

        for spec, handle in zip(missing, created, strict=True):
            by_title[spec.title] = handle
            self.cache.put(handle, created=True)
            self.counters.created += 1
        logger.info(f"Created {len(created)} columns in sheet '{sheet.name}': {titles}")
