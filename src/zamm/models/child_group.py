"""Explicit child-group trees and the grouped view built from them.

A node may persist a tree describing how some of its children are grouped
for display. In frontmatter it is plain YAML where a label maps to a child
id, a nested mapping, or a list of such values. In memory it is the tagged
union ``GroupLeaf | GroupMap | GroupList``.

The grouped view is what the grouping engine produces from that tree and
the node's live children. ``iter_view`` defines the one traversal order
shared by rendering and cursor mapping.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Iterator,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Tuple,
    Union,
)

if TYPE_CHECKING:
    from .node import NodeBase


@dataclass(frozen=True)
class GroupLeaf:
    """Reference to a single child by identity."""

    node_id: str


@dataclass(frozen=True)
class GroupList:
    """Ordered group members."""

    items: Tuple["GroupValue", ...] = ()


@dataclass(frozen=True)
class GroupMap:
    """Labelled subgroups, in persisted order."""

    entries: Tuple[Tuple[str, "GroupValue"], ...] = ()

    def labels(self) -> List[str]:
        return [label for label, _ in self.entries]

    def get(self, label: str) -> Optional["GroupValue"]:
        for entry_label, value in self.entries:
            if entry_label == label:
                return value
        return None


GroupValue = Union[GroupLeaf, GroupMap, GroupList]


def parse_group_value(raw: Any) -> GroupValue:
    """Convert a raw YAML/JSON value into the tagged union."""
    if isinstance(raw, (GroupLeaf, GroupMap, GroupList)):
        return raw
    if isinstance(raw, str):
        if not raw.strip():
            raise ValueError("Child group reference cannot be empty")
        return GroupLeaf(raw.strip())
    if isinstance(raw, Mapping):
        return GroupMap(
            tuple((str(label), parse_group_value(value)) for label, value in raw.items())
        )
    if isinstance(raw, (list, tuple)):
        return GroupList(tuple(parse_group_value(item) for item in raw))
    raise ValueError(f"Unsupported child group value: {type(raw).__name__}")


def parse_group_tree(raw: Any) -> Optional[GroupMap]:
    """Parse a node's persisted tree. The top level must be a mapping."""
    if raw is None:
        return None
    value = parse_group_value(raw)
    if not isinstance(value, GroupMap):
        raise ValueError("Child group tree must be a mapping of label to value")
    return value


def dump_group_value(value: GroupValue) -> Any:
    """Inverse of ``parse_group_value``; produces YAML-friendly data."""
    if isinstance(value, GroupLeaf):
        return value.node_id
    if isinstance(value, GroupMap):
        return {label: dump_group_value(item) for label, item in value.entries}
    if isinstance(value, GroupList):
        return [dump_group_value(item) for item in value.items]
    raise TypeError(f"Not a child group value: {value!r}")


def referenced_ids(value: GroupValue) -> List[str]:
    """All node ids referenced by a tree, in traversal order."""
    if isinstance(value, GroupLeaf):
        return [value.node_id]
    if isinstance(value, GroupMap):
        return [node_id for _, item in value.entries for node_id in referenced_ids(item)]
    if isinstance(value, GroupList):
        return [node_id for item in value.items for node_id in referenced_ids(item)]
    raise TypeError(f"Not a child group value: {value!r}")


# ---------------------------------------------------------------------------
# Resolved view
# ---------------------------------------------------------------------------


@dataclass
class ViewGroup:
    """A named group of resolved children. Items keep persisted order."""

    label: str
    items: List[Union["NodeBase", "ViewGroup"]] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.items


class ViewEvent(NamedTuple):
    kind: str  # "start", "end" or "node"
    depth: int
    label: Optional[str] = None
    node: Optional["NodeBase"] = None


@dataclass
class GroupedView:
    """Children of one node, arranged for display."""

    groups: List[ViewGroup] = field(default_factory=list)
    ungrouped: List["NodeBase"] = field(default_factory=list)
    ungrouped_label: str = ""
    extracted: List[ViewGroup] = field(default_factory=list)

    def regroup(self, label: str, predicate: Callable[["NodeBase"], bool]) -> List["NodeBase"]:
        """Move matching ungrouped nodes into a new synthetic group.

        Named groups are left alone. Returns the moved nodes.
        """
        matching = [node for node in self.ungrouped if predicate(node)]
        if not matching:
            return []
        self.ungrouped = [node for node in self.ungrouped if not predicate(node)]
        self.extracted.append(ViewGroup(label=label, items=list(matching)))
        return matching

    def all_nodes(self) -> List["NodeBase"]:
        return [event.node for event in iter_view(self) if event.kind == "node"]

    def size(self) -> int:
        return len(self.all_nodes())

    def node_at(self, index: int) -> Optional["NodeBase"]:
        nodes = self.all_nodes()
        if index < 0 or index >= len(nodes):
            return None
        return nodes[index]

    def index_of(self, node_id: str) -> int:
        for index, node in enumerate(self.all_nodes()):
            if node.id == node_id:
                return index
        return -1

    def is_empty(self) -> bool:
        return not self.groups and not self.ungrouped and not self.extracted


def _iter_group(group: ViewGroup, depth: int) -> Iterator[ViewEvent]:
    yield ViewEvent("start", depth, label=group.label)
    for item in group.items:
        if isinstance(item, ViewGroup):
            yield from _iter_group(item, depth + 1)
        else:
            yield ViewEvent("node", depth + 1, node=item)
    yield ViewEvent("end", depth)


def iter_view(view: GroupedView) -> Iterator[ViewEvent]:
    """Walk a view depth-first: extracted groups, named groups, then ungrouped."""
    for group in view.extracted:
        yield from _iter_group(group, 0)
    for group in view.groups:
        yield from _iter_group(group, 0)

    if view.ungrouped_label and view.ungrouped:
        yield from _iter_group(ViewGroup(view.ungrouped_label, list(view.ungrouped)), 0)
    else:
        for node in view.ungrouped:
            yield ViewEvent("node", 0, node=node)


__all__ = [
    "GroupLeaf",
    "GroupList",
    "GroupMap",
    "GroupValue",
    "GroupedView",
    "ViewEvent",
    "ViewGroup",
    "dump_group_value",
    "iter_view",
    "parse_group_tree",
    "parse_group_value",
    "referenced_ids",
]
