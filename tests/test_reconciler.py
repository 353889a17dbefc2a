"""
Tests for get-or-create reconciliation of workspaces, sheets and columns.
"""

from __future__ import annotations

import pytest
from fakes import InMemoryTarget

from project_online_to_smartsheet.exceptions import ReconciliationError, RemoteError
from project_online_to_smartsheet.models import ColumnSpec, ResourceHandle, ResourceKind, SheetSpec
from project_online_to_smartsheet.reconciler import HandleCache, ResourceReconciler
from project_online_to_smartsheet.retry import RetryExecutor


def make_reconciler(target: InMemoryTarget, sleeps: list[float]) -> ResourceReconciler:
    return ResourceReconciler(target, RetryExecutor(sleep=sleeps.append))


def sheet_handle(target: InMemoryTarget, titles: tuple[str, ...]) -> ResourceHandle:
    workspace_id = target.add_workspace("Alpha")
    sheet = target.add_sheet(workspace_id, "Alpha - Tasks", titles)
    return ResourceHandle(sheet.id, sheet.name, ResourceKind.SHEET, scope=workspace_id)


@pytest.mark.unit
class TestGetOrCreateWorkspace:
    def test_repeated_calls_create_once(self, target: InMemoryTarget, sleeps: list[float]) -> None:
        reconciler = make_reconciler(target, sleeps)

        handles = [reconciler.get_or_create_workspace("Alpha") for _ in range(3)]

        assert target.count("create_workspace") == 1
        assert len({handle.id for handle in handles}) == 1
        assert reconciler.counters.created == 1
        assert reconciler.counters.reused == 2

    def test_second_run_reuses_what_the_first_created(self, target: InMemoryTarget, sleeps: list[float]) -> None:
        first = make_reconciler(target, sleeps).get_or_create_workspace("Alpha")
        second = make_reconciler(target, sleeps).get_or_create_workspace("Alpha")

        assert first.id == second.id
        assert target.count("create_workspace") == 1

    def test_names_match_case_sensitively(self, target: InMemoryTarget, sleeps: list[float]) -> None:
        target.add_workspace("alpha")
        reconciler = make_reconciler(target, sleeps)

        handle = reconciler.get_or_create_workspace("Alpha")

        assert handle.name == "Alpha"
        assert target.count("create_workspace") == 1

    def test_concurrent_create_is_resolved_by_lookup(self, target: InMemoryTarget, sleeps: list[float]) -> None:
        """Someone creates the workspace between our lookup and our create."""
        raced: list[int] = []
        target.before["create_workspace"] = lambda: raced.append(target.add_workspace("Alpha"))
        reconciler = make_reconciler(target, sleeps)

        handle = reconciler.get_or_create_workspace("Alpha")

        assert handle.id == raced[0]
        assert len(target.workspaces) == 1
        assert reconciler.counters.created == 0

    def test_fatal_create_error_names_the_resource(self, target: InMemoryTarget, sleeps: list[float]) -> None:
        target.fail("create_workspace", RemoteError(403, "Forbidden"))
        reconciler = make_reconciler(target, sleeps)

        with pytest.raises(ReconciliationError) as exc_info:
            reconciler.get_or_create_workspace("Alpha")

        error = exc_info.value
        assert (error.kind, error.name, error.container) == ("workspace", "Alpha", "account")
        assert "Forbidden" in str(error)
        assert sleeps == []

    def test_exhausted_lookup_is_reported(self, target: InMemoryTarget, sleeps: list[float]) -> None:
        target.fail("find_workspace", *[RemoteError(503, "Service Unavailable") for _ in range(5)])
        reconciler = make_reconciler(target, sleeps)

        with pytest.raises(ReconciliationError, match="failed after 5 attempts"):
            reconciler.get_or_create_workspace("Alpha")
        assert target.count("create_workspace") == 0
        assert len(sleeps) == 4

    def test_use_workspace_requires_existing_id(self, target: InMemoryTarget, sleeps: list[float]) -> None:
        reconciler = make_reconciler(target, sleeps)
        with pytest.raises(ReconciliationError):
            reconciler.use_workspace(424242)


@pytest.mark.unit
class TestGetOrCreateSheet:
    def test_lookup_in_new_workspace_tolerates_replication_lag(
        self, target: InMemoryTarget, sleeps: list[float]
    ) -> None:
        reconciler = make_reconciler(target, sleeps)
        workspace = reconciler.get_or_create_workspace("Alpha")
        target.fail("find_sheet", RemoteError(404, "Not Found"))

        spec = SheetSpec("Alpha - Tasks", (ColumnSpec("Task Name", primary=True),))

        sheet = reconciler.get_or_create_sheet(workspace, spec)

        assert sheet.scope == workspace.id
        assert target.count("find_sheet") == 2
        assert sleeps == [1.0]

    def test_not_found_in_existing_workspace_is_fatal(self, target: InMemoryTarget, sleeps: list[float]) -> None:
        target.add_workspace("Alpha")
        reconciler = make_reconciler(target, sleeps)
        workspace = reconciler.get_or_create_workspace("Alpha")
        target.fail("find_sheet", RemoteError(404, "Not Found"))

        with pytest.raises(ReconciliationError):
            reconciler.get_or_create_sheet(workspace, SheetSpec("Alpha - Tasks"))
        assert sleeps == []

    def test_same_name_in_other_workspace_is_a_different_sheet(
        self, target: InMemoryTarget, sleeps: list[float]
    ) -> None:
        reconciler = make_reconciler(target, sleeps)
        alpha = reconciler.get_or_create_workspace("Alpha")
        beta = reconciler.get_or_create_workspace("Beta")
        spec = SheetSpec("Summary", (ColumnSpec("Project Name", primary=True),))

        first = reconciler.get_or_create_sheet(alpha, spec)
        second = reconciler.get_or_create_sheet(beta, spec)

        assert first.id != second.id
        assert target.count("create_sheet") == 2


@pytest.mark.unit
class TestGetOrCreateColumns:
    def test_batch_creates_only_missing_columns_in_one_call(
        self, target: InMemoryTarget, sleeps: list[float]
    ) -> None:
        sheet = sheet_handle(target, ("Name", "Status"))
        reconciler = make_reconciler(target, sleeps)

        handles = reconciler.get_or_create_columns(
            sheet,
            [ColumnSpec("Name", primary=True), ColumnSpec("Status", "PICKLIST"), ColumnSpec("Priority", "PICKLIST")],
        )

        assert [handle.name for handle in handles] == ["Name", "Status", "Priority"]
        assert target.count("list_columns") == 1
        assert target.count("create_columns") == 1
        assert ("create_columns", (sheet.id, ("Priority",), 2)) in target.calls
        assert target.column_titles(sheet.id) == ["Name", "Status", "Priority"]
        assert reconciler.counters.created == 1
        assert reconciler.counters.reused == 2

    def test_batch_with_everything_present_creates_nothing(self, target: InMemoryTarget, sleeps: list[float]) -> None:
        sheet = sheet_handle(target, ("Name", "Status", "Priority"))
        reconciler = make_reconciler(target, sleeps)

        handles = reconciler.get_or_create_columns(sheet, [ColumnSpec("Priority"), ColumnSpec("Name")])

        assert [handle.name for handle in handles] == ["Priority", "Name"]
        assert target.count("create_columns") == 0

    def test_cached_batch_skips_the_lookup(self, target: InMemoryTarget, sleeps: list[float]) -> None:
        sheet = sheet_handle(target, ("Name",))
        reconciler = make_reconciler(target, sleeps)
        specs = [ColumnSpec("Name"), ColumnSpec("Owner", "CONTACT_LIST")]

        first = reconciler.get_or_create_columns(sheet, specs)
        second = reconciler.get_or_create_columns(sheet, specs)

        assert first == second
        assert target.count("list_columns") == 1

    def test_explicit_index_is_used_for_the_batch(self, target: InMemoryTarget, sleeps: list[float]) -> None:
        sheet = sheet_handle(target, ("Name", "Status"))
        reconciler = make_reconciler(target, sleeps)

        reconciler.get_or_create_columns(sheet, [ColumnSpec("A"), ColumnSpec("B")], index=1)

        assert target.column_titles(sheet.id) == ["Name", "A", "B", "Status"]

    def test_duplicate_titles_in_request_are_rejected(self, target: InMemoryTarget, sleeps: list[float]) -> None:
        sheet = sheet_handle(target, ("Name",))
        reconciler = make_reconciler(target, sleeps)

        with pytest.raises(ValueError, match="Duplicate column titles"):
            reconciler.get_or_create_columns(sheet, [ColumnSpec("Owner"), ColumnSpec("Owner")])

    def test_columns_added_concurrently_are_picked_up(self, target: InMemoryTarget, sleeps: list[float]) -> None:
        sheet = sheet_handle(target, ("Name",))
        fake_sheet = target.sheets[sheet.id]
        target.before["create_columns"] = lambda: fake_sheet.columns.append(
            ResourceHandle(1, "Priority", ResourceKind.COLUMN, scope=sheet.id, column_type="TEXT_NUMBER")
        )
        reconciler = make_reconciler(target, sleeps)

        handles = reconciler.get_or_create_columns(sheet, [ColumnSpec("Name"), ColumnSpec("Priority")])

        assert [handle.id for handle in handles][1] == 1
        assert target.column_titles(sheet.id) == ["Name", "Priority"]

    def test_single_column_goes_after_primary_by_default(self, target: InMemoryTarget, sleeps: list[float]) -> None:
        sheet = sheet_handle(target, ("Name", "Status"))
        reconciler = make_reconciler(target, sleeps)

        handle = reconciler.get_or_create_column(sheet, ColumnSpec("Owner", "CONTACT_LIST"))

        assert handle.column_type == "CONTACT_LIST"
        assert target.column_titles(sheet.id) == ["Name", "Owner", "Status"]
        assert reconciler.get_or_create_column(sheet, ColumnSpec("Owner", "CONTACT_LIST")) == handle
        assert target.count("create_columns") == 1


@pytest.mark.unit
class TestHandleCache:
    def test_tracks_created_resources(self) -> None:
        cache = HandleCache()
        created = ResourceHandle(1, "Alpha", ResourceKind.WORKSPACE)
        found = ResourceHandle(2, "Beta", ResourceKind.WORKSPACE)

        cache.put(created, created=True)
        cache.put(found)

        assert cache.was_created(created)
        assert not cache.was_created(found)
        assert cache.get(created.key) == created
        assert cache.get(found.key) == found
