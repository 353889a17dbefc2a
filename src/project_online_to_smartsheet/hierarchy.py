"""Flat outline to level-ordered creation plan.

Project Online reports each task with an outline depth, which is a relative
indentation signal rather than a validated tree. Smartsheet only understands
explicit parent row ids, and a parent row id exists only once the parent row
has been written. build_plan() therefore resolves every node's parent and
groups nodes into levels, shallowest first, so a loader can write one level
at a time and feed the new row ids into the next.

Outline rules, walking the nodes in ordinal order with a stack of open
ancestors:

- a node at depth D closes every open node at depth >= D;
- it attaches to the open node at depth D - 1, or to an earlier node at
  depth D - 1 named by its parent_external_id;
- if there is none (the outline jumped levels, or nothing is open), the node
  is an orphan and goes to the root. The repair is logged and recorded in
  HierarchyPlan.warnings, never raised.

Nodes below a repaired node stay attached to it, so a bad depth only
displaces its own subtree.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from .models import HierarchyNode

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Placed:
    external_id: str
    depth: int  # as reported by the source
    resolved_depth: int


@dataclass
class HierarchyPlan:
    """Levels of resolved nodes plus the external id -> row id map filled while loading.

    Each node in levels carries its resolved depth and resolved parent.
    """

    levels: list[list[HierarchyNode]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    row_ids: dict[str, int] = field(default_factory=dict)
    _by_id: dict[str, HierarchyNode] = field(init=False, repr=False, default_factory=dict)

    def __post_init__(self) -> None:
        self._by_id = {node.external_id: node for level in self.levels for node in level}

    def __len__(self) -> int:
        return len(self._by_id)

    def node(self, external_id: str) -> HierarchyNode:
        return self._by_id[external_id]

    def parent_of(self, external_id: str) -> str | None:
        return self._by_id[external_id].parent_external_id

    def depth_of(self, external_id: str) -> int:
        return self._by_id[external_id].depth

    def level_ids(self) -> list[list[str]]:
        return [[node.external_id for node in level] for level in self.levels]

    def record_row_id(self, external_id: str, row_id: int) -> None:
        self.row_ids[external_id] = row_id

    def row_id_for(self, external_id: str) -> int | None:
        return self.row_ids.get(external_id)

    def parent_row_id(self, node: HierarchyNode) -> int | None:
        """Row id of the node's parent, None for roots or parents not written yet."""
        if node.parent_external_id is None:
            return None
        return self.row_ids.get(node.parent_external_id)


def _structural_warning(warnings: list[str], message: str) -> None:
    logger.warning(message)
    warnings.append(message)


def build_plan(nodes: Iterable[HierarchyNode]) -> HierarchyPlan:
    """Resolve parents and group nodes into creation levels.

    Args:
        nodes: Outline items in any order; ordinal gives the source order

    Returns:
        HierarchyPlan with levels ordered shallowest first
    """
    ordered = sorted(nodes, key=lambda node: node.ordinal)
    warnings: list[str] = []
    placed: dict[str, _Placed] = {}
    open_ancestors: list[_Placed] = []
    levels: dict[int, list[HierarchyNode]] = {}

    for node in ordered:
        if node.external_id in placed:
            _structural_warning(warnings, f"Duplicate outline item {node.external_id} ignored")
            continue

        depth = node.depth
        if depth < 0:
            _structural_warning(warnings, f"Outline item {node.external_id} has negative depth {depth}, using 0")
            depth = 0

        while open_ancestors and open_ancestors[-1].depth >= depth:
            _ = open_ancestors.pop()

        parent: _Placed | None = None
        if depth > 0:
            parent = _explicit_parent(node, depth, placed)
            if parent is None and open_ancestors and open_ancestors[-1].depth == depth - 1:
                parent = open_ancestors[-1]
            if parent is None:
                _structural_warning(
                    warnings,
                    f"Outline item {node.external_id} at depth {depth} has no ancestor at depth {depth - 1}; "
                    "attaching it at the root",
                )

        resolved_depth = parent.resolved_depth + 1 if parent is not None else 0
        current = _Placed(node.external_id, depth, resolved_depth)
        placed[node.external_id] = current
        open_ancestors.append(current)
        levels.setdefault(resolved_depth, []).append(
            HierarchyNode(
                external_id=node.external_id,
                depth=resolved_depth,
                parent_external_id=parent.external_id if parent is not None else None,
                ordinal=node.ordinal,
            )
        )

    plan = HierarchyPlan(levels=[levels[depth] for depth in sorted(levels)], warnings=warnings)
    logger.debug(f"Planned {len(plan)} outline items in {len(plan.levels)} levels")
    return plan


def flat_plan(external_ids: Iterable[str]) -> HierarchyPlan:
    """Plan for a list without hierarchy: every item is a root, in the given order."""
    return build_plan(HierarchyNode(external_id, 0, ordinal=i) for i, external_id in enumerate(external_ids))


def _explicit_parent(node: HierarchyNode, depth: int, placed: dict[str, _Placed]) -> _Placed | None:
    """Return the declared parent if it is an earlier node one level up."""
    if node.parent_external_id is None:
        return None
    candidate = placed.get(node.parent_external_id)
    if candidate is None or candidate.depth != depth - 1:
        logger.debug(
            f"Outline item {node.external_id} names parent {node.parent_external_id}, "
            "which is not an earlier item one level up; using outline order instead"
        )
        return None
    return candidate
