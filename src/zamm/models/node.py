"""Node models: specifications, projects and implementations."""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_serializer, field_validator

from .child_group import GroupMap, dump_group_value, parse_group_tree

MAX_TITLE_CHARS = 200
MAX_CONTENT_BYTES = 50 * 1024


class NodeType(str, Enum):
    """Kind of documentation node."""

    SPECIFICATION = "specification"
    PROJECT = "project"
    IMPLEMENTATION = "implementation"


def _new_id() -> str:
    return str(uuid.uuid4())


class NodeBase(BaseModel):
    """Fields shared by every node kind."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=_new_id, min_length=1, frozen=True, description="Immutable identity")
    title: str = Field(..., description="Display title")
    content: str = Field(..., description="Markdown body")
    type: str
    slug: Optional[str] = Field(
        None, description="Path segment; None until assigned, '' only for the root"
    )
    child_groups: Optional[GroupMap] = Field(
        None, description="Explicit grouping of this node's children"
    )

    @field_validator("child_groups", mode="plain")
    @classmethod
    def _parse_child_groups(cls, value: Any) -> Optional[GroupMap]:
        return parse_group_tree(value)

    @field_serializer("child_groups")
    def _dump_child_groups(self, value: Optional[GroupMap]) -> Optional[Dict[str, Any]]:
        if value is None:
            return None
        return dump_group_value(value)

    @property
    def node_type(self) -> NodeType:
        return NodeType(self.type)

    def frontmatter(self) -> Dict[str, Any]:
        """Metadata written to the node file; title and content go in the body."""
        return self.model_dump(exclude={"title", "content"}, exclude_none=True)


class Specification(NodeBase):
    type: Literal["specification"] = "specification"


class Project(NodeBase):
    type: Literal["project"] = "project"


class Implementation(NodeBase):
    type: Literal["implementation"] = "implementation"
    repo_url: Optional[str] = None
    branch: Optional[str] = None
    folder_path: Optional[str] = None


Node = Annotated[Union[Specification, Project, Implementation], Field(discriminator="type")]

_node_adapter: TypeAdapter[Node] = TypeAdapter(Node)

NODE_CLASSES = {
    NodeType.SPECIFICATION: Specification,
    NodeType.PROJECT: Project,
    NodeType.IMPLEMENTATION: Implementation,
}


def node_from_dict(data: Dict[str, Any]) -> NodeBase:
    """Build the right node subclass from a dict carrying a ``type`` key."""
    payload = dict(data)
    payload.setdefault("type", NodeType.SPECIFICATION.value)
    return _node_adapter.validate_python(payload)


def is_implementation(node: NodeBase) -> bool:
    return node.type == NodeType.IMPLEMENTATION.value


__all__ = [
    "MAX_CONTENT_BYTES",
    "MAX_TITLE_CHARS",
    "NODE_CLASSES",
    "Implementation",
    "Node",
    "NodeBase",
    "NodeType",
    "Project",
    "Specification",
    "is_implementation",
    "node_from_dict",
]
