"""Link records: node hierarchy edges, commit references and project metadata."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CHILD_LABEL = "child"
DEFAULT_COMMIT_LABEL = "implements"


class NodeLink(BaseModel):
    """Directed hierarchy edge from a child node to its parent."""

    model_config = ConfigDict(frozen=True)

    child_id: str = Field(..., min_length=1)
    parent_id: str = Field(..., min_length=1)
    label: str = DEFAULT_CHILD_LABEL


class CommitLink(BaseModel):
    """Reference from a node to a git commit. Display only."""

    model_config = ConfigDict(frozen=True)

    node_id: str = Field(..., min_length=1)
    commit_hash: str = Field(..., min_length=1)
    repo_path: str = Field(..., min_length=1)
    label: str = DEFAULT_COMMIT_LABEL

    def matches(self, node_id: str, commit_hash: str, repo_path: str) -> bool:
        return (
            self.node_id == node_id
            and self.commit_hash == commit_hash
            and self.repo_path == repo_path
        )


class ProjectMetadata(BaseModel):
    """Project-wide record; currently only the root node identity."""

    model_config = ConfigDict(populate_by_name=True)

    root_node_id: Optional[str] = Field(None, alias="root_spec_id")


class OrganizeJournal(BaseModel):
    """A file move that has been announced but not yet confirmed."""

    node_id: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)


__all__ = [
    "DEFAULT_CHILD_LABEL",
    "DEFAULT_COMMIT_LABEL",
    "CommitLink",
    "NodeLink",
    "OrganizeJournal",
    "ProjectMetadata",
]
