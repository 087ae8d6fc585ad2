"""File-backed storage for nodes, links and project metadata.

Layout under the storage directory (default ``.zamm``)::

    nodes/<id>.md            default location of a node file
    spec-links.csv           child -> parent edges
    commit-links.csv         node -> commit references
    node-files.csv           node id -> current file path (relative to project root)
    project_metadata.json    root node identity
    organize-journal.json    present only while a move is in flight

Node files are Markdown with YAML frontmatter. The body starts with the
title as a level-one heading and may end with a generated child links
section, which is stripped again on read.
"""

from __future__ import annotations

import csv
import json
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import frontmatter
import yaml
from pydantic import ValidationError as PydanticValidationError

from ..config import Settings, get_settings
from ..errors import InconsistencyError, NotFoundError, StorageError, ValidationError
from ..models.link import CommitLink, NodeLink, OrganizeJournal, ProjectMetadata
from ..models.node import NodeBase, node_from_dict

logger = logging.getLogger(__name__)

NODES_DIR = "nodes"
NODE_LINKS_FILE = "spec-links.csv"
COMMIT_LINKS_FILE = "commit-links.csv"
NODE_FILES_FILE = "node-files.csv"
METADATA_FILE = "project_metadata.json"
JOURNAL_FILE = "organize-journal.json"

NODE_LINKS_HEADER = ("from_spec_id", "to_spec_id", "link_label")
COMMIT_LINKS_HEADER = ("spec_id", "commit_id", "repo_path", "link_label")
NODE_FILES_HEADER = ("node_id", "file_path")

CHILD_LINKS_HEADING = "## Child Specifications"
SECTION_DIVIDER = "\n---\n"
INVALID_ID_CHARS = {"/", "\\", "\0"}


@dataclass(frozen=True)
class MoveResult:
    """Outcome of relocating one node file."""

    node_id: str
    source: str
    target: str
    moved: bool


def _split_child_section(body: str) -> tuple[str, str]:
    """Split a node body into (content, generated child section)."""
    index = body.rfind(SECTION_DIVIDER)
    if index == -1:
        return body, ""
    tail = body[index + len(SECTION_DIVIDER):]
    if not tail.strip().startswith(CHILD_LINKS_HEADING):
        return body, ""
    return body[:index], body[index:]


def _split_title(body: str) -> tuple[Optional[str], str]:
    body = body.strip()
    if not body.startswith("# "):
        return None, body
    first, _, rest = body.partition("\n")
    return first[2:].strip(), rest.strip()


def _check_node_id(node_id: str) -> None:
    if not node_id or not node_id.strip():
        raise ValidationError("Node ID cannot be empty")
    if node_id in {".", ".."} or any(char in INVALID_ID_CHARS for char in node_id):
        raise ValidationError("Node ID contains invalid characters", {"node_id": node_id})


class FileStorage:
    """Filesystem persistence for the node store."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.base_dir = self.settings.storage_path
        self.project_root = self.settings.project_root
        self.docs_root = self.project_root / self.settings.docs_dir
        self.initialize_storage()

    # ========================================
    # Setup
    # ========================================

    def initialize_storage(self) -> None:
        """Create the directory layout and empty tables if missing."""
        try:
            (self.base_dir / NODES_DIR).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(
                "Failed to create storage directory", {"path": str(self.base_dir)}
            ) from exc

        tables = (
            (NODE_LINKS_FILE, NODE_LINKS_HEADER),
            (COMMIT_LINKS_FILE, COMMIT_LINKS_HEADER),
            (NODE_FILES_FILE, NODE_FILES_HEADER),
        )
        for name, header in tables:
            if not (self.base_dir / name).exists():
                self._write_csv(name, header, [])
        if not (self.base_dir / METADATA_FILE).exists():
            self._write_metadata(ProjectMetadata())

    # ========================================
    # Nodes
    # ========================================

    def create_node(self, node: NodeBase) -> NodeBase:
        _check_node_id(node.id)
        if node.id in self.get_node_file_links():
            raise ValidationError("Node already exists", {"node_id": node.id})

        path = self.default_node_path(node.id)
        self._write_node_file(path, node)
        self.update_node_file_path(node.id, self._relative(path))
        logger.debug("Created node %s at %s", node.id, path)
        return node

    def get_node(self, node_id: str) -> NodeBase:
        if not node_id:
            raise ValidationError("Node ID cannot be empty")
        path = self.get_node_file_path(node_id)
        if not path.exists():
            raise NotFoundError("Node not found", {"node_id": node_id})
        return self._read_node_file(path)

    def node_exists(self, node_id: str) -> bool:
        return bool(node_id) and self.get_node_file_path(node_id).exists()

    def update_node(self, node: NodeBase) -> NodeBase:
        """Rewrite a node in place, keeping any generated child section."""
        path = self.get_node_file_path(node.id)
        if not path.exists():
            raise NotFoundError("Node not found", {"node_id": node.id})
        child_section = self._read_child_section(path)
        self._write_node_file(path, node, child_section)
        return node

    def write_node_with_children(self, node: NodeBase, child_section: str) -> None:
        """Rewrite a node with a freshly rendered child links section."""
        path = self.get_node_file_path(node.id)
        if not path.exists():
            raise NotFoundError("Node not found", {"node_id": node.id})
        self._write_node_file(path, node, child_section)

    def delete_node(self, node_id: str) -> None:
        path = self.get_node_file_path(node_id)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise NotFoundError("Node not found", {"node_id": node_id}) from exc
        except OSError as exc:
            raise StorageError("Failed to delete node file", {"path": str(path)}) from exc
        self.remove_node_file_path(node_id)
        self._prune_empty_dirs(path.parent)

    def list_nodes(self) -> List[NodeBase]:
        """All nodes tracked in node-files.csv, sorted by id."""
        nodes: List[NodeBase] = []
        for node_id in sorted(self.get_node_file_links()):
            try:
                nodes.append(self.get_node(node_id))
            except (NotFoundError, StorageError) as exc:
                logger.warning("Skipping unreadable node %s: %s", node_id, exc)
        return nodes

    def recache(self) -> List[Tuple[str, str]]:
        """Track node files in ``nodes/`` that node-files.csv does not list.

        Returns the (node_id, relative_path) pairs that were added.
        """
        node_files = self.get_node_file_links()
        added: List[Tuple[str, str]] = []
        for path in sorted((self.base_dir / NODES_DIR).glob("*.md")):
            node_id = self.file_owner(path)
            if node_id is None:
                logger.warning("Skipping %s: no node id in frontmatter", path.name)
                continue
            if node_id in node_files:
                continue
            relative = self._relative(path)
            node_files[node_id] = relative
            added.append((node_id, relative))
        if added:
            self._write_node_files(node_files)
            logger.info("Recached %d untracked node files", len(added))
        return added

    # ========================================
    # Node links
    # ========================================

    def list_node_links(self) -> List[NodeLink]:
        return [
            NodeLink(child_id=row[0], parent_id=row[1], label=row[2])
            for row in self._read_csv(NODE_LINKS_FILE, min_columns=3)
        ]

    def add_node_link(self, link: NodeLink) -> NodeLink:
        links = self.list_node_links()
        links.append(link)
        self._write_node_links(links)
        return link

    def remove_node_link(self, *, child_id: str, parent_id: str) -> None:
        links = self.list_node_links()
        remaining = [
            link for link in links
            if not (link.child_id == child_id and link.parent_id == parent_id)
        ]
        if len(remaining) == len(links):
            raise NotFoundError(
                "Node link not found", {"child_id": child_id, "parent_id": parent_id}
            )
        self._write_node_links(remaining)

    def remove_links_for_node(self, node_id: str) -> int:
        """Drop every edge where the node is child or parent."""
        links = self.list_node_links()
        remaining = [
            link for link in links if node_id not in (link.child_id, link.parent_id)
        ]
        removed = len(links) - len(remaining)
        if removed:
            self._write_node_links(remaining)
        return removed

    def _write_node_links(self, links: Iterable[NodeLink]) -> None:
        self._write_csv(
            NODE_LINKS_FILE,
            NODE_LINKS_HEADER,
            [(link.child_id, link.parent_id, link.label) for link in links],
        )

    # ========================================
    # Commit links
    # ========================================

    def list_commit_links(self) -> List[CommitLink]:
        return [
            CommitLink(node_id=row[0], commit_hash=row[1], repo_path=row[2], label=row[3])
            for row in self._read_csv(COMMIT_LINKS_FILE, min_columns=4)
        ]

    def add_commit_link(self, link: CommitLink) -> CommitLink:
        links = self.list_commit_links()
        links.append(link)
        self._write_commit_links(links)
        return link

    def remove_commit_link(self, node_id: str, commit_hash: str, repo_path: str) -> None:
        links = self.list_commit_links()
        remaining = [link for link in links if not link.matches(node_id, commit_hash, repo_path)]
        if len(remaining) == len(links):
            raise NotFoundError(
                "Commit link not found",
                {"node_id": node_id, "commit": commit_hash, "repo": repo_path},
            )
        self._write_commit_links(remaining)

    def remove_commit_links_for_node(self, node_id: str) -> int:
        links = self.list_commit_links()
        remaining = [link for link in links if link.node_id != node_id]
        removed = len(links) - len(remaining)
        if removed:
            self._write_commit_links(remaining)
        return removed

    def _write_commit_links(self, links: Iterable[CommitLink]) -> None:
        self._write_csv(
            COMMIT_LINKS_FILE,
            COMMIT_LINKS_HEADER,
            [(link.node_id, link.commit_hash, link.repo_path, link.label) for link in links],
        )

    # ========================================
    # Project metadata
    # ========================================

    def get_project_metadata(self) -> ProjectMetadata:
        path = self.base_dir / METADATA_FILE
        if not path.exists():
            metadata = ProjectMetadata()
            self._write_metadata(metadata)
            return metadata
        try:
            return ProjectMetadata.model_validate_json(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise StorageError("Failed to read project metadata", {"path": str(path)}) from exc
        except PydanticValidationError as exc:
            raise StorageError("Malformed project metadata", {"path": str(path)}) from exc

    def set_root_node_id(self, node_id: Optional[str]) -> None:
        metadata = self.get_project_metadata()
        metadata.root_node_id = node_id
        self._write_metadata(metadata)

    def _write_metadata(self, metadata: ProjectMetadata) -> None:
        payload = metadata.model_dump(by_alias=True)
        self._write_text(self.base_dir / METADATA_FILE, json.dumps(payload, indent=2))

    # ========================================
    # File pointers
    # ========================================

    def default_node_path(self, node_id: str) -> Path:
        return self.base_dir / NODES_DIR / f"{node_id}.md"

    def get_node_file_links(self) -> Dict[str, str]:
        return {row[0]: row[1] for row in self._read_csv(NODE_FILES_FILE, min_columns=2)}

    def relative_node_path(self, node_id: str) -> Optional[str]:
        return self.get_node_file_links().get(node_id)

    def get_node_file_path(self, node_id: str) -> Path:
        """Current absolute path of a node file, or its default location."""
        recorded = self.relative_node_path(node_id)
        if recorded is None:
            return self.default_node_path(node_id)
        path = Path(recorded)
        return path if path.is_absolute() else self.project_root / path

    def update_node_file_path(self, node_id: str, relative_path: str) -> None:
        node_files = self.get_node_file_links()
        node_files[node_id] = relative_path
        self._write_node_files(node_files)

    def remove_node_file_path(self, node_id: str) -> None:
        node_files = self.get_node_file_links()
        if node_files.pop(node_id, None) is not None:
            self._write_node_files(node_files)

    def _write_node_files(self, node_files: Dict[str, str]) -> None:
        # sorted for stable diffs
        rows = [(node_id, node_files[node_id]) for node_id in sorted(node_files)]
        self._write_csv(NODE_FILES_FILE, NODE_FILES_HEADER, rows)

    def _relative(self, path: Path) -> str:
        try:
            return path.relative_to(self.project_root).as_posix()
        except ValueError:
            return str(path)

    # ========================================
    # Moves
    # ========================================

    def move_node_file(self, node_id: str, target: str) -> MoveResult:
        """Move a node file to ``target`` (relative to the project root).

        The intended move is journaled before the rename and cleared once
        the pointer in node-files.csv has been updated.
        """
        source_path = self.get_node_file_path(node_id)
        source = self._relative(source_path)
        target_path = self.project_root / target

        if os.path.normpath(source_path) == os.path.normpath(target_path):
            if not source_path.exists():
                raise InconsistencyError(
                    "Node file missing at recorded path", {"node_id": node_id, "path": source}
                )
            if self.relative_node_path(node_id) != target:
                self.update_node_file_path(node_id, target)
            return MoveResult(node_id, source, target, moved=False)

        if not source_path.exists():
            if target_path.exists() and self.file_owner(target_path) == node_id:
                logger.warning("Node %s already at %s; repointing", node_id, target)
                self.update_node_file_path(node_id, target)
                return MoveResult(node_id, source, target, moved=False)
            raise InconsistencyError(
                "Node file missing at recorded path", {"node_id": node_id, "path": source}
            )

        if target_path.exists():
            raise StorageError(
                "Target path already exists",
                {"node_id": node_id, "target": target, "owner": self.file_owner(target_path)},
            )

        self._write_journal(OrganizeJournal(node_id=node_id, source=source, target=target))
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(source_path), str(target_path))
        except OSError as exc:
            self._clear_journal()
            raise StorageError(
                "Failed to move node file",
                {"node_id": node_id, "source": source, "target": target},
            ) from exc

        try:
            self.update_node_file_path(node_id, target)
        except StorageError as exc:
            raise InconsistencyError(
                "Node file moved but pointer update failed; journal kept for recovery",
                {"node_id": node_id, "source": source, "target": target},
            ) from exc

        self._clear_journal()
        self._prune_empty_dirs(source_path.parent)
        logger.info("Moved node %s: %s -> %s", node_id, source, target)
        return MoveResult(node_id, source, target, moved=True)

    def recover_pending_move(self) -> Optional[str]:
        """Finish or discard a move interrupted between rename and repoint.

        Returns the node id that was repointed, if any.
        """
        journal = self._read_journal()
        if journal is None:
            return None

        source_path = self.project_root / journal.source
        target_path = self.project_root / journal.target

        if target_path.exists() and not source_path.exists():
            self.update_node_file_path(journal.node_id, journal.target)
            self._clear_journal()
            logger.info("Recovered interrupted move of node %s to %s", journal.node_id, journal.target)
            return journal.node_id
        if source_path.exists():
            self._clear_journal()
            logger.info("Discarded journal for node %s; file never moved", journal.node_id)
            return None
        raise InconsistencyError(
            "Interrupted move left node file at neither source nor target", journal.model_dump()
        )

    def park_node_file(self, node_id: str) -> MoveResult:
        """Move a node file back to its default location under ``nodes/``.

        Frees an organized path that another node needs.
        """
        return self.move_node_file(node_id, self._relative(self.default_node_path(node_id)))

    def file_owner(self, path: Path) -> Optional[str]:
        """Id in the frontmatter of the file at ``path``, if it parses."""
        try:
            post = frontmatter.load(path)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            logger.warning("Cannot read frontmatter of %s: %s", path, exc)
            return None
        owner = post.metadata.get("id")
        return owner if isinstance(owner, str) else None

    def _read_journal(self) -> Optional[OrganizeJournal]:
        path = self.base_dir / JOURNAL_FILE
        if not path.exists():
            return None
        try:
            return OrganizeJournal.model_validate_json(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise InconsistencyError("Organize journal is unreadable", {"path": str(path)}) from exc
        except PydanticValidationError as exc:
            raise InconsistencyError("Organize journal is malformed", {"path": str(path)}) from exc

    def _write_journal(self, journal: OrganizeJournal) -> None:
        self._write_text(self.base_dir / JOURNAL_FILE, journal.model_dump_json(indent=2))

    def _clear_journal(self) -> None:
        try:
            (self.base_dir / JOURNAL_FILE).unlink()
        except FileNotFoundError:
            pass

    def _prune_empty_dirs(self, directory: Path) -> None:
        """Remove empty directories left under the docs root by a move."""
        docs_root = self.docs_root.resolve()
        current = directory.resolve()
        while current != docs_root and docs_root in current.parents:
            try:
                current.rmdir()
            except OSError:
                return
            current = current.parent

    # ========================================
    # File I/O helpers
    # ========================================

    def _read_node_file(self, path: Path) -> NodeBase:
        try:
            post = frontmatter.load(path)
        except OSError as exc:
            raise StorageError("Failed to read node file", {"path": str(path)}) from exc
        except (ValueError, yaml.YAMLError) as exc:
            raise StorageError("Malformed node frontmatter", {"path": str(path)}) from exc

        body, _ = _split_child_section(post.content or "")
        title, content = _split_title(body)
        data = dict(post.metadata or {})
        data["title"] = title if title is not None else str(data.get("title", ""))
        data["content"] = content
        try:
            return node_from_dict(data)
        except PydanticValidationError as exc:
            raise StorageError("Invalid node file", {"path": str(path)}) from exc

    def _read_child_section(self, path: Path) -> str:
        try:
            post = frontmatter.load(path)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            logger.warning("Dropping child links section of unreadable %s: %s", path, exc)
            return ""
        _, section = _split_child_section(post.content or "")
        return section

    def _write_node_file(self, path: Path, node: NodeBase, child_section: str = "") -> None:
        body = f"# {node.title}\n\n{node.content}\n" if node.content else f"# {node.title}\n"
        if child_section:
            body = body.rstrip("\n") + "\n" + child_section
        post = frontmatter.Post(body, **node.frontmatter())
        self._write_text(path, frontmatter.dumps(post, sort_keys=False) + "\n")

    def _read_csv(self, name: str, *, min_columns: int) -> List[List[str]]:
        path = self.base_dir / name
        try:
            with path.open("r", newline="", encoding="utf-8") as handle:
                rows = list(csv.reader(handle))
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise StorageError(f"Failed to read {name}", {"path": str(path)}) from exc
        # first row is the header
        return [row for row in rows[1:] if len(row) >= min_columns]

    def _write_csv(self, name: str, header: Sequence[str], rows: Iterable[Sequence[str]]) -> None:
        path = self.base_dir / name
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            with tmp_path.open("w", newline="", encoding="utf-8") as handle:
                writer = csv.writer(handle)
                writer.writerow(header)
                writer.writerows(rows)
            os.replace(tmp_path, path)
        except OSError as exc:
            raise StorageError(f"Failed to write {name}", {"path": str(path)}) from exc

    def _write_text(self, path: Path, text: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise StorageError("Failed to write file", {"path": str(path)}) from exc


__all__ = ["FileStorage", "MoveResult", "CHILD_LINKS_HEADING"]
