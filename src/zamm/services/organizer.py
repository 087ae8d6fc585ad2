"""Moves node files into a directory layout that mirrors the node hierarchy.

The root lives at ``documentation/index.md``. Every other node lives under
the slugs of its ancestors: as ``<slug>.md`` when it is a leaf and as
``<slug>/index.md`` when it has children of its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Set, Tuple

from ..config import Settings, get_settings
from ..errors import InconsistencyError, NotFoundError, StorageError, ValidationError
from ..models.node import NodeBase
from .grouping import organized_children
from .node_service import NodeService
from .rendering import MarkdownLinksRenderer, render_view
from .storage import MoveResult

logger = logging.getLogger(__name__)

INDEX_FILE = "index.md"


@dataclass
class OrganizeReport:
    """What an organize run did, node by node."""

    moved: List[MoveResult] = field(default_factory=list)
    failed: List[Tuple[str, StorageError]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def paths(self) -> Dict[str, str]:
        return {result.node_id: result.target for result in self.moved}


def target_path(base_path: str, slug: str, *, is_root: bool, has_children: bool) -> str:
    """File path for a node given the path of its nearest ancestor directory."""
    base = PurePosixPath(base_path)
    if is_root:
        return str(base / INDEX_FILE)
    if has_children:
        return str(base / slug / INDEX_FILE)
    return str(base / f"{slug}.md")


class PathOrganizer:
    """Assigns missing slugs and relocates node files."""

    def __init__(self, node_service: NodeService, settings: Settings | None = None) -> None:
        self.nodes = node_service
        self.storage = node_service.storage
        self.settings = settings or get_settings()

    def organize(self, node_id: Optional[str] = None) -> OrganizeReport:
        if node_id is None:
            return self.organize_all()
        return self.organize_node(node_id)

    # ========================================
    # Single node
    # ========================================

    def organize_node(self, node_id: str) -> OrganizeReport:
        """Move one node to the path implied by its ancestors' slugs.

        StorageError propagates; there is no batch to continue.
        """
        if not node_id:
            raise ValidationError("Node ID cannot be empty")
        self.storage.recover_pending_move()

        node = self.nodes.ensure_slug(node_id)
        ancestors = self._ancestors(node)
        base_path = self._join_base(
            "" if self.nodes.is_root(ancestor.id) else ancestor.slug or "" for ancestor in ancestors
        )

        report = OrganizeReport()
        report.moved.append(self._place(node, base_path))

        if self.settings.write_child_links:
            self._write_child_links(node.id)
            if ancestors:
                self._write_child_links(ancestors[-1].id)
        return report

    def _ancestors(self, node: NodeBase) -> List[NodeBase]:
        """Ancestors from the root down to the nearest parent, slugs ensured."""
        chain: List[NodeBase] = []
        seen: Set[str] = {node.id}
        current = self.nodes.get_parent(node.id)
        while current is not None:
            if current.id in seen:
                raise InconsistencyError("Cycle in node hierarchy", {"node_id": current.id})
            seen.add(current.id)
            ancestor = self.nodes.ensure_slug(current.id)
            self._check_slug(ancestor)
            chain.append(ancestor)
            current = self.nodes.get_parent(current.id)
        chain.reverse()
        return chain

    # ========================================
    # Whole tree
    # ========================================

    def organize_all(self) -> OrganizeReport:
        """Assign every missing slug, then place the tree depth-first from the root.

        Targets are planned for the whole tree before anything moves, so a
        node sitting on a path another node needs can be parked first. A
        StorageError on one node is recorded and its subtree skipped; the rest
        of the tree is still organized.
        """
        self.storage.recover_pending_move()
        root = self.nodes.get_root()

        root_id = root.id
        for node in self.nodes.list_nodes():
            if node.slug is None:
                self.nodes.ensure_slug(node.id)

        children = self.nodes.children_by_parent()
        plan: Dict[str, str] = {}
        self._plan_subtree(
            self.nodes.get_node(root_id), self.settings.docs_dir, children, plan, set()
        )

        report = OrganizeReport()
        placed: List[str] = []
        self._organize_subtree(root_id, children, plan, report, placed)

        if self.settings.write_child_links:
            for node_id in placed:
                if children.get(node_id):
                    self._write_child_links(node_id)

        if report.failed:
            logger.warning(
                "Organize finished with %d failures, %d nodes skipped",
                len(report.failed),
                len(report.skipped),
            )
        return report

    def _plan_subtree(
        self,
        node: NodeBase,
        base_path: str,
        children: Dict[str, List[str]],
        plan: Dict[str, str],
        visited: Set[str],
    ) -> None:
        if node.id in visited:
            raise InconsistencyError("Cycle in node hierarchy", {"node_id": node.id})
        visited.add(node.id)

        plan[node.id] = self._target(node, base_path, bool(children.get(node.id)))

        if self.nodes.is_root(node.id):
            child_base = base_path
        else:
            child_base = str(PurePosixPath(base_path) / node.slug)
        for child_id in children.get(node.id, []):
            try:
                child = self.nodes.get_node(child_id)
            except NotFoundError:
                logger.warning("Skipping missing child %s of %s", child_id, node.id)
                continue
            self._plan_subtree(child, child_base, children, plan, visited)

    def _organize_subtree(
        self,
        node_id: str,
        children: Dict[str, List[str]],
        plan: Dict[str, str],
        report: OrganizeReport,
        placed: List[str],
    ) -> None:
        if node_id not in plan:
            return
        try:
            report.moved.append(self._move_planned(node_id, plan))
        except StorageError as exc:
            logger.error("Failed to organize node %s: %s", node_id, exc)
            report.failed.append((node_id, exc))
            report.skipped.extend(
                child for child in self._descendants(node_id, children) if child in plan
            )
            return
        placed.append(node_id)

        for child_id in children.get(node_id, []):
            self._organize_subtree(child_id, children, plan, report, placed)

    def _move_planned(self, node_id: str, plan: Dict[str, str]) -> MoveResult:
        """Move a node to its planned path, parking a node that is in the way.

        The occupant is parked only when it is itself due to move elsewhere.
        """
        target = plan[node_id]
        target_file = self.storage.project_root / target
        if target_file.exists():
            owner = self.storage.file_owner(target_file)
            if (
                owner is not None
                and owner != node_id
                and plan.get(owner, target) != target
                and self.storage.relative_node_path(owner) == target
            ):
                logger.info("Parking node %s to free %s for node %s", owner, target, node_id)
                self.storage.park_node_file(owner)
        return self.storage.move_node_file(node_id, target)

    @staticmethod
    def _descendants(node_id: str, children: Dict[str, List[str]]) -> List[str]:
        found: List[str] = []
        stack = list(reversed(children.get(node_id, [])))
        while stack:
            current = stack.pop()
            if current in found:
                continue
            found.append(current)
            stack.extend(reversed(children.get(current, [])))
        return found

    # ========================================
    # Helpers
    # ========================================

    def _join_base(self, slugs) -> str:
        path = PurePosixPath(self.settings.docs_dir)
        for slug in slugs:
            if slug:
                path = path / slug
        return str(path)

    def _check_slug(self, node: NodeBase) -> None:
        if not node.slug and not self.nodes.is_root(node.id):
            raise ValidationError(
                "Only the root node may have an empty slug", {"node_id": node.id}
            )

    def _target(self, node: NodeBase, base_path: str, has_children: bool) -> str:
        self._check_slug(node)
        return target_path(
            base_path,
            node.slug or "",
            is_root=self.nodes.is_root(node.id),
            has_children=has_children,
        )

    def _place(self, node: NodeBase, base_path: str) -> MoveResult:
        target = self._target(node, base_path, bool(self.nodes.get_children(node.id)))
        return self.storage.move_node_file(node.id, target)

    def _write_child_links(self, node_id: str) -> None:
        node = self.nodes.get_node(node_id)
        view = organized_children(self.nodes, node, self.settings)
        node_file = self.storage.get_node_file_path(node.id)
        renderer = MarkdownLinksRenderer(self.storage.get_node_file_path, node_file.parent)
        render_view(view, renderer)
        self.storage.write_node_with_children(node, renderer.section())


__all__ = ["OrganizeReport", "PathOrganizer", "target_path"]
