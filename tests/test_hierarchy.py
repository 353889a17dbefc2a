"""
Tests for turning flat outlines into level-ordered creation plans.
"""

import pytest

from project_online_to_smartsheet.hierarchy import build_plan, flat_plan
from project_online_to_smartsheet.models import HierarchyNode


def outline(*items: tuple[str, int] | tuple[str, int, str]) -> list[HierarchyNode]:
    nodes = []
    for ordinal, item in enumerate(items):
        parent = item[2] if len(item) == 3 else None
        nodes.append(HierarchyNode(item[0], item[1], parent, ordinal))
    return nodes


@pytest.mark.unit
class TestBuildPlan:
    def test_levels_follow_depth(self) -> None:
        plan = build_plan(outline(("A", 0), ("B", 1), ("C", 1), ("D", 2, "B"), ("E", 0)))

        assert plan.level_ids() == [["A", "E"], ["B", "C"], ["D"]]
        assert plan.parent_of("B") == "A"
        assert plan.parent_of("C") == "A"
        assert plan.parent_of("D") == "B"
        assert plan.parent_of("E") is None
        assert plan.warnings == []

    def test_nearest_open_ancestor_is_the_parent(self) -> None:
        plan = build_plan(outline(("A", 0), ("B", 1), ("C", 1), ("D", 2), ("E", 0)))

        assert plan.level_ids() == [["A", "E"], ["B", "C"], ["D"]]
        assert plan.parent_of("B") == "A"
        assert plan.parent_of("C") == "A"
        # C closed B, so D nests under C
        assert plan.parent_of("D") == "C"
        assert plan.parent_of("E") is None
        assert plan.warnings == []

    def test_outline_order_decides_parent(self) -> None:
        plan = build_plan(outline(("A", 0), ("B", 1), ("C", 2), ("D", 1), ("E", 2)))

        assert plan.parent_of("C") == "B"
        assert plan.parent_of("E") == "D"
        assert plan.level_ids() == [["A"], ["B", "D"], ["C", "E"]]

    def test_ordinal_wins_over_input_order(self) -> None:
        nodes = [HierarchyNode("child", 1, ordinal=1), HierarchyNode("root", 0, ordinal=0)]

        plan = build_plan(nodes)

        assert plan.parent_of("child") == "root"

    def test_depth_jump_attaches_node_at_root(self) -> None:
        plan = build_plan(outline(("A", 0), ("B", 3)))

        assert plan.level_ids() == [["A", "B"]]
        assert plan.parent_of("B") is None
        assert plan.depth_of("B") == 0
        assert len(plan.warnings) == 1
        assert "B" in plan.warnings[0]

    def test_children_of_repaired_node_stay_attached(self) -> None:
        plan = build_plan(outline(("A", 0), ("B", 3), ("C", 4), ("D", 1)))

        assert plan.parent_of("C") == "B"
        assert plan.depth_of("C") == 1
        assert plan.parent_of("D") == "A"
        assert plan.level_ids() == [["A", "B"], ["C", "D"]]
        assert len(plan.warnings) == 1

    def test_first_node_below_root_is_an_orphan(self) -> None:
        plan = build_plan(outline(("A", 2), ("B", 0)))

        assert plan.level_ids() == [["A", "B"]]
        assert len(plan.warnings) == 1

    def test_explicit_parent_one_level_up_is_honoured(self) -> None:
        plan = build_plan(outline(("A", 0), ("B", 1), ("C", 1), ("D", 2, "B")))

        assert plan.parent_of("D") == "B"

    def test_explicit_parent_at_wrong_depth_is_ignored(self) -> None:
        plan = build_plan(outline(("A", 0), ("B", 1), ("C", 2, "A")))

        assert plan.parent_of("C") == "B"
        assert plan.warnings == []

    def test_duplicate_ids_keep_the_first(self) -> None:
        plan = build_plan(outline(("A", 0), ("A", 1)))

        assert plan.level_ids() == [["A"]]
        assert len(plan.warnings) == 1

    def test_negative_depth_is_treated_as_root(self) -> None:
        plan = build_plan(outline(("A", -1), ("B", 1)))

        assert plan.parent_of("B") == "A"
        assert len(plan.warnings) == 1

    def test_empty_outline(self) -> None:
        plan = build_plan([])

        assert plan.levels == []
        assert len(plan) == 0

    def test_deep_outline(self) -> None:
        plan = build_plan(outline(*[(f"T{depth}", depth) for depth in range(50)]))

        assert len(plan.levels) == 50
        assert plan.parent_of("T49") == "T48"


@pytest.mark.unit
class TestHierarchyPlanRowIds:
    def test_parent_row_id_after_recording(self) -> None:
        plan = build_plan(outline(("A", 0), ("B", 1)))
        child = plan.node("B")

        assert plan.parent_row_id(child) is None
        plan.record_row_id("A", 501)
        assert plan.parent_row_id(child) == 501
        assert plan.row_id_for("A") == 501
        assert plan.row_id_for("B") is None

    def test_root_has_no_parent_row(self) -> None:
        plan = build_plan(outline(("A", 0)))
        plan.record_row_id("A", 501)

        assert plan.parent_row_id(plan.node("A")) is None


@pytest.mark.unit
class TestFlatPlan:
    def test_all_items_are_roots_in_order(self) -> None:
        plan = flat_plan(["Active", "Planning", "Completed"])

        assert plan.level_ids() == [["Active", "Planning", "Completed"]]
        assert plan.warnings == []
