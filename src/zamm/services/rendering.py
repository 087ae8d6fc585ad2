"""Visitor-based rendering of grouped child views."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional

from ..models.child_group import GroupedView, iter_view
from ..models.node import NodeBase
from .storage import CHILD_LINKS_HEADING

ELLIPSIS = "…"


class ChildGroupRenderer(ABC):
    """Receives a grouped view in display order."""

    @abstractmethod
    def render_group_start(self, depth: int, label: str) -> None: ...

    @abstractmethod
    def render_group_end(self, depth: int) -> None: ...

    @abstractmethod
    def render_node(self, depth: int, node: NodeBase) -> None: ...


def render_view(view: GroupedView, renderer: ChildGroupRenderer) -> None:
    """Drive ``renderer`` over ``view`` in the same order used for cursor mapping."""
    for event in iter_view(view):
        if event.kind == "start":
            renderer.render_group_start(event.depth, event.label or "")
        elif event.kind == "end":
            renderer.render_group_end(event.depth)
        else:
            renderer.render_node(event.depth, event.node)


class FlattenRenderer(ChildGroupRenderer):
    """Collects leaf nodes in display order."""

    def __init__(self) -> None:
        self.nodes: List[NodeBase] = []

    def render_group_start(self, depth: int, label: str) -> None:
        pass

    def render_group_end(self, depth: int) -> None:
        pass

    def render_node(self, depth: int, node: NodeBase) -> None:
        self.nodes.append(node)


class TextRenderer(ChildGroupRenderer):
    """Indented plain-text listing with an optional cursor marker."""

    def __init__(self, width: int = 0, cursor: int = -1) -> None:
        self.width = width
        self.cursor = cursor
        self.index = 0
        self.lines: List[str] = []

    def render_group_start(self, depth: int, label: str) -> None:
        self.lines.append(f"{'  ' * depth}{label}:")

    def render_group_end(self, depth: int) -> None:
        self.lines.append("")

    def render_node(self, depth: int, node: NodeBase) -> None:
        # the "> " / "  " prefix takes up the first indentation level
        indent = "  " * max(depth - 1, 0)
        title = node.title
        max_title_width = self.width - len(indent) - 2
        if self.width and 0 < max_title_width < len(title):
            title = title[: max_title_width - 1] + ELLIPSIS
        marker = "> " if self.index == self.cursor else "  "
        self.lines.append(f"{indent}{marker}{title}")
        self.index += 1

    def text(self) -> str:
        return "\n".join(self.lines).rstrip("\n")


class MarkdownLinksRenderer(ChildGroupRenderer):
    """Nested bullet list of relative links, written into parent node files."""

    def __init__(self, node_path: Callable[[str], Path], origin_dir: Path) -> None:
        self.node_path = node_path
        self.origin_dir = origin_dir
        self.lines: List[str] = []

    def render_group_start(self, depth: int, label: str) -> None:
        self.lines.append(f"{'  ' * depth}- {label}")

    def render_group_end(self, depth: int) -> None:
        pass

    def render_node(self, depth: int, node: NodeBase) -> None:
        relative = Path(os.path.relpath(self.node_path(node.id), self.origin_dir)).as_posix()
        self.lines.append(f"{'  ' * depth}- [{node.title}]({relative})")

    def section(self) -> str:
        if not self.lines:
            return ""
        return "\n---\n\n" + CHILD_LINKS_HEADING + "\n\n" + "\n".join(self.lines) + "\n"


def render_text(view: GroupedView, width: int = 0, cursor: int = -1) -> Optional[str]:
    if view.is_empty():
        return None
    renderer = TextRenderer(width=width, cursor=cursor)
    render_view(view, renderer)
    return renderer.text()


__all__ = [
    "ChildGroupRenderer",
    "FlattenRenderer",
    "MarkdownLinksRenderer",
    "TextRenderer",
    "render_text",
    "render_view",
]
