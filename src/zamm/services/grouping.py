"""Merge a node's explicit child-group tree with its live children."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Set, Union

from ..config import Settings, get_settings
from ..models.child_group import (
    GroupedView,
    GroupLeaf,
    GroupList,
    GroupMap,
    GroupValue,
    ViewGroup,
)
from ..models.node import NodeBase, NodeType, is_implementation

if TYPE_CHECKING:
    from .node_service import NodeService

ViewItem = Union[NodeBase, ViewGroup]


def _resolve(value: GroupValue, lookup: Dict[str, NodeBase], used: Set[str]) -> List[ViewItem]:
    if isinstance(value, GroupLeaf):
        child = lookup.get(value.node_id)
        if child is None or value.node_id in used:
            return []
        used.add(value.node_id)
        return [child]
    if isinstance(value, GroupMap):
        groups: List[ViewItem] = []
        for label, item in value.entries:
            items = _resolve(item, lookup, used)
            if items:
                groups.append(ViewGroup(label=label, items=items))
        return groups
    if isinstance(value, GroupList):
        resolved: List[ViewItem] = []
        for item in value.items:
            resolved.extend(_resolve(item, lookup, used))
        return resolved
    raise TypeError(f"Not a child group value: {value!r}")


def build_view(
    node: NodeBase,
    live_children: Sequence[NodeBase],
    ungrouped_label: str = "",
) -> GroupedView:
    """Arrange ``live_children`` according to ``node.child_groups``.

    References to ids that are no longer children are dropped. Children not
    referenced by the tree end up in ``ungrouped``, in their original order.
    """
    lookup = {child.id: child for child in live_children}
    used: Set[str] = set()

    groups: List[ViewGroup] = []
    if node.child_groups is not None:
        groups = [item for item in _resolve(node.child_groups, lookup, used) if isinstance(item, ViewGroup)]

    ungrouped = [child for child in live_children if child.id not in used]
    return GroupedView(groups=groups, ungrouped=ungrouped, ungrouped_label=ungrouped_label)


def organized_children(
    node_service: "NodeService",
    node: NodeBase,
    settings: Optional[Settings] = None,
) -> GroupedView:
    """The display view of a node's children.

    Projects get their ungrouped implementation children pulled into a
    separate group.
    """
    settings = settings or get_settings()
    view = build_view(node, node_service.get_children(node.id), settings.ungrouped_label)
    if node.type == NodeType.PROJECT.value:
        view.regroup(settings.implementations_label, is_implementation)
    return view


__all__ = ["build_view", "organized_children"]
