"""Links between nodes and git commits."""

from __future__ import annotations

import logging
from typing import List

from ..errors import NotFoundError, ValidationError
from ..models.link import DEFAULT_COMMIT_LABEL, CommitLink
from ..models.node import NodeBase
from .storage import FileStorage

logger = logging.getLogger(__name__)

COMMIT_LABEL_ABBREVIATIONS = {
    "implements": "IMPL",
    "updates": "UPDATE",
    "fixes": "FIX",
    "refactors": "CLEAN",
    "documents": "DOC",
    "tests": "TEST",
}


def abbreviate_commit_label(label: str) -> str:
    return COMMIT_LABEL_ABBREVIATIONS.get(label, label)


class LinkService:
    """Commit references are opaque strings; they are not checked against a repository."""

    def __init__(self, storage: FileStorage | None = None) -> None:
        self.storage = storage or FileStorage()

    def link_commit(
        self,
        node_id: str,
        commit_hash: str,
        repo_path: str,
        label: str = DEFAULT_COMMIT_LABEL,
    ) -> CommitLink:
        node_id, commit_hash, repo_path = self._validate(node_id, commit_hash, repo_path)
        self.storage.get_node(node_id)

        link = CommitLink(
            node_id=node_id,
            commit_hash=commit_hash,
            repo_path=repo_path,
            label=(label or DEFAULT_COMMIT_LABEL).strip(),
        )
        self.storage.add_commit_link(link)
        logger.info("Linked node %s to commit %s", node_id, commit_hash)
        return link

    def unlink_commit(self, node_id: str, commit_hash: str, repo_path: str) -> None:
        node_id, commit_hash, repo_path = self._validate(node_id, commit_hash, repo_path)
        self.storage.remove_commit_link(node_id, commit_hash, repo_path)

    def get_commits_for_node(self, node_id: str) -> List[CommitLink]:
        if not node_id:
            raise ValidationError("Node ID cannot be empty")
        self.storage.get_node(node_id)
        return [link for link in self.storage.list_commit_links() if link.node_id == node_id]

    def get_nodes_for_commit(self, commit_hash: str, repo_path: str) -> List[NodeBase]:
        if not commit_hash.strip() or not repo_path.strip():
            raise ValidationError("Commit hash and repository path are required")
        nodes: List[NodeBase] = []
        for link in self.storage.list_commit_links():
            if link.commit_hash != commit_hash.strip() or link.repo_path != repo_path.strip():
                continue
            try:
                nodes.append(self.storage.get_node(link.node_id))
            except NotFoundError:
                # orphaned link
                continue
        return nodes

    @staticmethod
    def _validate(node_id: str, commit_hash: str, repo_path: str) -> tuple[str, str, str]:
        if not node_id:
            raise ValidationError("Node ID cannot be empty")
        commit_hash = (commit_hash or "").strip()
        repo_path = (repo_path or "").strip()
        if not commit_hash:
            raise ValidationError("Commit hash cannot be empty")
        if not repo_path:
            raise ValidationError("Repository path cannot be empty")
        return node_id, commit_hash, repo_path


__all__ = ["COMMIT_LABEL_ABBREVIATIONS", "LinkService", "abbreviate_commit_label"]
