"""Data models for nodes, links and child groupings."""

from .child_group import (
    GroupedView,
    GroupLeaf,
    GroupList,
    GroupMap,
    GroupValue,
    ViewEvent,
    ViewGroup,
    dump_group_value,
    iter_view,
    parse_group_tree,
    parse_group_value,
    referenced_ids,
)
from .link import (
    DEFAULT_CHILD_LABEL,
    DEFAULT_COMMIT_LABEL,
    CommitLink,
    NodeLink,
    OrganizeJournal,
    ProjectMetadata,
)
from .node import (
    MAX_CONTENT_BYTES,
    MAX_TITLE_CHARS,
    NODE_CLASSES,
    Implementation,
    Node,
    NodeBase,
    NodeType,
    Project,
    Specification,
    is_implementation,
    node_from_dict,
)

__all__ = [
    "CommitLink",
    "DEFAULT_CHILD_LABEL",
    "DEFAULT_COMMIT_LABEL",
    "GroupedView",
    "GroupLeaf",
    "GroupList",
    "GroupMap",
    "GroupValue",
    "Implementation",
    "MAX_CONTENT_BYTES",
    "MAX_TITLE_CHARS",
    "NODE_CLASSES",
    "Node",
    "NodeBase",
    "NodeLink",
    "OrganizeJournal",
    "NodeType",
    "Project",
    "ProjectMetadata",
    "Specification",
    "ViewEvent",
    "ViewGroup",
    "dump_group_value",
    "is_implementation",
    "iter_view",
    "node_from_dict",
    "parse_group_tree",
    "parse_group_value",
    "referenced_ids",
]
