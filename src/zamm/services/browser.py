"""Read-only projections used by presentation code, plus child cursor state."""

from __future__ import annotations

from typing import List, Optional

from ..config import Settings, get_settings
from ..models.child_group import GroupedView
from ..models.link import CommitLink
from ..models.node import NodeBase
from .grouping import organized_children
from .link_service import LinkService
from .node_service import NodeService


class NodeBrowser:
    """Query surface for detail views and explorers."""

    def __init__(
        self,
        node_service: NodeService,
        link_service: LinkService,
        settings: Settings | None = None,
    ) -> None:
        self.node_service = node_service
        self.link_service = link_service
        self.settings = settings or get_settings()

    def get_commits_for_node(self, node_id: str) -> List[CommitLink]:
        return self.link_service.get_commits_for_node(node_id)

    def get_child_nodes(self, node_id: str) -> List[NodeBase]:
        return self.node_service.get_children(node_id)

    def get_node_by_id(self, node_id: str) -> NodeBase:
        return self.node_service.get_node(node_id)

    def get_parent_node(self, node_id: str) -> Optional[NodeBase]:
        return self.node_service.get_parent(node_id)

    def get_root_node(self) -> NodeBase:
        return self.node_service.get_root()

    def get_organized_children(self, node_id: str) -> GroupedView:
        node = self.node_service.get_node(node_id)
        return organized_children(self.node_service, node, self.settings)


class ChildCursor:
    """Selection over a grouped view; -1 means nothing is selected."""

    def __init__(self, view: Optional[GroupedView] = None) -> None:
        self.view = view or GroupedView()
        self.index = -1

    def reset(self, view: Optional[GroupedView] = None) -> None:
        if view is not None:
            self.view = view
        self.index = -1

    def select_next(self) -> Optional[NodeBase]:
        if self.index < self.view.size() - 1:
            self.index += 1
        return self.selected()

    def select_prev(self) -> Optional[NodeBase]:
        if self.index > 0:
            self.index -= 1
        return self.selected()

    def selected(self) -> Optional[NodeBase]:
        return self.view.node_at(self.index)


__all__ = ["ChildCursor", "NodeBrowser"]
