"""Node CRUD, the hierarchy link graph, root record and slug assignment."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from ..errors import NotFoundError, ValidationError
from ..models.child_group import GroupMap, parse_group_tree
from ..models.link import DEFAULT_CHILD_LABEL, NodeLink
from ..models.node import (
    MAX_CONTENT_BYTES,
    MAX_TITLE_CHARS,
    NODE_CLASSES,
    Implementation,
    NodeBase,
    NodeType,
)
from .slug import avoid_reserved, is_reserved_slug, is_valid_slug, sanitize_slug
from .storage import FileStorage

logger = logging.getLogger(__name__)

ROOT_TITLE = "New Project"
ROOT_CONTENT = "Requirement: This project should exist."
IMPLEMENTATION_FIELDS = ("repo_url", "branch", "folder_path")


def validate_node_input(title: str, content: str) -> tuple[str, str]:
    """Trim and check title/content limits. Returns the trimmed pair."""
    title = (title or "").strip()
    content = (content or "").strip()
    if not title:
        raise ValidationError("Title cannot be empty")
    if len(title) > MAX_TITLE_CHARS:
        raise ValidationError(f"Title cannot exceed {MAX_TITLE_CHARS} characters")
    if "\n" in title or "\r" in title:
        raise ValidationError("Title must be a single line")
    if not content:
        raise ValidationError("Content cannot be empty")
    if len(content.encode("utf-8")) > MAX_CONTENT_BYTES:
        raise ValidationError("Content cannot exceed 50KB")
    return title, content


def _require_id(node_id: str, what: str = "Node") -> None:
    if not node_id:
        raise ValidationError(f"{what} ID cannot be empty")


class NodeService:
    """Operations over nodes and the child -> parent link graph.

    A node has at most one parent; edges that would give a child a second
    parent or close a cycle are rejected.
    """

    def __init__(self, storage: FileStorage | None = None) -> None:
        self.storage = storage or FileStorage()

    # ========================================
    # Node CRUD
    # ========================================

    def create_node(
        self,
        node_type: NodeType | str,
        title: str,
        content: str,
        *,
        slug: Optional[str] = None,
        **fields: Any,
    ) -> NodeBase:
        """Create a node of the given kind with a fresh identity."""
        title, content = validate_node_input(title, content)
        try:
            kind = NodeType(node_type)
        except ValueError as exc:
            raise ValidationError(f"Unknown node type: {node_type}") from exc

        unknown = set(fields) - set(IMPLEMENTATION_FIELDS)
        if unknown or (fields and kind is not NodeType.IMPLEMENTATION):
            raise ValidationError(
                "Unexpected node fields", {"fields": ", ".join(sorted(fields))}
            )
        if slug is not None:
            self._check_slug(slug, is_root=False)

        node = NODE_CLASSES[kind](title=title, content=content, slug=slug, **fields)
        self.storage.create_node(node)
        logger.info("Created %s %s (%s)", kind.value, node.id, title)
        return node

    def get_node(self, node_id: str) -> NodeBase:
        _require_id(node_id)
        return self.storage.get_node(node_id)

    def list_nodes(self) -> List[NodeBase]:
        return self.storage.list_nodes()

    def update_node(
        self,
        node_id: str,
        *,
        title: Optional[str] = None,
        content: Optional[str] = None,
        **fields: Any,
    ) -> NodeBase:
        """Update title/content and, for implementations, repo fields."""
        node = self.get_node(node_id)
        title, content = validate_node_input(
            node.title if title is None else title,
            node.content if content is None else content,
        )
        if fields and not isinstance(node, Implementation):
            raise ValidationError("Only implementation nodes carry repository fields")
        unknown = set(fields) - set(IMPLEMENTATION_FIELDS)
        if unknown:
            raise ValidationError("Unexpected node fields", {"fields": ", ".join(sorted(unknown))})

        node.title = title
        node.content = content
        for key, value in fields.items():
            setattr(node, key, value)
        return self.storage.update_node(node)

    def delete_node(self, node_id: str) -> None:
        """Delete a node together with every edge that references it."""
        _require_id(node_id)
        self.storage.get_node(node_id)

        removed_links = self.storage.remove_links_for_node(node_id)
        removed_commits = self.storage.remove_commit_links_for_node(node_id)
        if self.storage.get_project_metadata().root_node_id == node_id:
            self.storage.set_root_node_id(None)
        self.storage.delete_node(node_id)
        logger.info(
            "Deleted node %s (%d node links, %d commit links)",
            node_id,
            removed_links,
            removed_commits,
        )

    def set_child_groups(self, node_id: str, groups: Any) -> NodeBase:
        """Replace a node's explicit child-group tree (None clears it)."""
        node = self.get_node(node_id)
        try:
            tree: Optional[GroupMap] = parse_group_tree(groups)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        node.child_groups = tree
        return self.storage.update_node(node)

    # ========================================
    # Link graph
    # ========================================

    def add_child(
        self, *, child_id: str, parent_id: str, label: str = DEFAULT_CHILD_LABEL
    ) -> NodeLink:
        """Link ``child_id`` under ``parent_id``."""
        _require_id(child_id, "Child")
        _require_id(parent_id, "Parent")
        if child_id == parent_id:
            raise ValidationError("Cannot link a node to itself", {"node_id": child_id})

        self.storage.get_node(child_id)
        self.storage.get_node(parent_id)

        if self.is_root(child_id):
            raise ValidationError("The root node cannot be a child", {"node_id": child_id})

        links = self.storage.list_node_links()
        existing = [link for link in links if link.child_id == child_id]
        if existing:
            raise ValidationError(
                "Node already has a parent",
                {"child_id": child_id, "parent_id": existing[0].parent_id},
            )
        if child_id in self._ancestor_ids(parent_id, links):
            raise ValidationError(
                "Link would create a cycle", {"child_id": child_id, "parent_id": parent_id}
            )

        try:
            link = NodeLink(child_id=child_id, parent_id=parent_id, label=label or DEFAULT_CHILD_LABEL)
        except PydanticValidationError as exc:
            raise ValidationError("Invalid node link") from exc
        self.storage.add_node_link(link)
        logger.info("Linked %s under %s (%s)", child_id, parent_id, link.label)
        return link

    def remove_child(self, *, child_id: str, parent_id: str) -> None:
        _require_id(child_id, "Child")
        _require_id(parent_id, "Parent")
        self.storage.remove_node_link(child_id=child_id, parent_id=parent_id)
        logger.info("Unlinked %s from %s", child_id, parent_id)

    def get_children(self, node_id: str) -> List[NodeBase]:
        """Children in edge insertion order."""
        _require_id(node_id)
        self.storage.get_node(node_id)
        return self._resolve(
            link.child_id for link in self.storage.list_node_links() if link.parent_id == node_id
        )

    def get_parents(self, node_id: str) -> List[NodeBase]:
        _require_id(node_id)
        self.storage.get_node(node_id)
        return self._resolve(
            link.parent_id for link in self.storage.list_node_links() if link.child_id == node_id
        )

    def get_parent(self, node_id: str) -> Optional[NodeBase]:
        parents = self.get_parents(node_id)
        return parents[0] if parents else None

    def get_links(self) -> List[NodeLink]:
        return self.storage.list_node_links()

    def children_by_parent(self) -> Dict[str, List[str]]:
        """Child ids for every parent, in edge insertion order."""
        mapping: Dict[str, List[str]] = {}
        for link in self.storage.list_node_links():
            mapping.setdefault(link.parent_id, []).append(link.child_id)
        return mapping

    def get_orphans(self) -> List[NodeBase]:
        """Non-root nodes that have no parent."""
        has_parent = {link.child_id for link in self.storage.list_node_links()}
        root_id = self.root_id()
        return [
            node for node in self.storage.list_nodes()
            if node.id not in has_parent and node.id != root_id
        ]

    def _resolve(self, node_ids) -> List[NodeBase]:
        nodes: List[NodeBase] = []
        for node_id in node_ids:
            try:
                nodes.append(self.storage.get_node(node_id))
            except NotFoundError:
                logger.warning("Link references missing node %s", node_id)
        return nodes

    @staticmethod
    def _ancestor_ids(node_id: str, links: List[NodeLink]) -> List[str]:
        parent_of = {}
        for link in links:
            parent_of.setdefault(link.child_id, link.parent_id)
        ancestors: List[str] = []
        current = parent_of.get(node_id)
        while current is not None and current not in ancestors:
            ancestors.append(current)
            current = parent_of.get(current)
        return ancestors

    # ========================================
    # Root record
    # ========================================

    def root_id(self) -> Optional[str]:
        return self.storage.get_project_metadata().root_node_id

    def is_root(self, node_id: str) -> bool:
        return node_id == self.root_id()

    def get_root(self) -> NodeBase:
        root_id = self.root_id()
        if root_id is None:
            raise NotFoundError("Root node not set in project metadata")
        return self.storage.get_node(root_id)

    def set_root(self, node_id: str) -> NodeBase:
        """Make ``node_id`` the root. The previous root's slug is cleared for reassignment."""
        node = self.get_node(node_id)
        parents = [link for link in self.storage.list_node_links() if link.child_id == node.id]
        if parents:
            raise ValidationError(
                "A node with a parent cannot become the root",
                {"node_id": node.id, "parent_id": parents[0].parent_id},
            )

        previous_id = self.root_id()
        self.storage.set_root_node_id(node.id)
        if previous_id and previous_id != node.id:
            self._release_root_slug(previous_id)
        if node.slug != "":
            node.slug = ""
            self.storage.update_node(node)
        return node

    def _release_root_slug(self, node_id: str) -> None:
        try:
            previous = self.storage.get_node(node_id)
        except NotFoundError:
            logger.warning("Previous root %s no longer exists", node_id)
            return
        if previous.slug == "":
            previous.slug = None
            self.storage.update_node(previous)
            logger.info("Cleared root slug of former root %s", node_id)

    def initialize_root(self) -> NodeBase:
        """Return the root, creating a project node for it if none exists."""
        try:
            return self.get_root()
        except NotFoundError:
            pass
        root = self.create_node(NodeType.PROJECT, ROOT_TITLE, ROOT_CONTENT)
        return self.set_root(root.id)

    # ========================================
    # Slugs
    # ========================================

    def ensure_slug(self, node_id: str, suggested: Optional[str] = None) -> NodeBase:
        """Assign a slug if the node has none; existing slugs are never replaced."""
        node = self.get_node(node_id)
        if node.slug is not None:
            return node
        if self.is_root(node.id):
            node.slug = ""
        elif suggested:
            node.slug = avoid_reserved(sanitize_slug(suggested))
        else:
            node.slug = avoid_reserved(sanitize_slug(node.title))
        self.storage.update_node(node)
        logger.info("Assigned slug %r to node %s", node.slug, node.id)
        return node

    def set_slug(self, node_id: str, slug: str) -> NodeBase:
        """Explicitly replace a node's slug."""
        node = self.get_node(node_id)
        self._check_slug(slug, is_root=self.is_root(node.id))
        node.slug = slug
        return self.storage.update_node(node)

    @staticmethod
    def _check_slug(slug: str, *, is_root: bool) -> None:
        if is_root:
            if slug != "":
                raise ValidationError("The root node's slug must be empty")
            return
        if slug == "":
            raise ValidationError("Empty slug is reserved for the root node")
        if not is_valid_slug(slug):
            raise ValidationError(
                "Slug may only contain lowercase letters, digits and single hyphens",
                {"slug": slug},
            )
        if is_reserved_slug(slug):
            raise ValidationError(
                "Slug collides with directory index files", {"slug": slug}
            )


__all__ = ["NodeService", "validate_node_input"]
