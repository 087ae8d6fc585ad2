"""Service layer: storage, link graph, slugs, organizer and rendering."""

from .browser import ChildCursor, NodeBrowser
from .grouping import build_view, organized_children
from .link_service import LinkService, abbreviate_commit_label
from .llm import AnthropicSlugSuggester, SlugSuggester, SlugSuggestionError, suggest_or_sanitize
from .node_service import NodeService, validate_node_input
from .organizer import OrganizeReport, PathOrganizer, target_path
from .rendering import (
    ChildGroupRenderer,
    FlattenRenderer,
    MarkdownLinksRenderer,
    TextRenderer,
    render_text,
    render_view,
)
from .slug import avoid_reserved, is_reserved_slug, is_valid_slug, sanitize_slug
from .storage import FileStorage, MoveResult

__all__ = [
    "AnthropicSlugSuggester",
    "ChildCursor",
    "ChildGroupRenderer",
    "FileStorage",
    "FlattenRenderer",
    "LinkService",
    "MarkdownLinksRenderer",
    "MoveResult",
    "NodeBrowser",
    "NodeService",
    "OrganizeReport",
    "PathOrganizer",
    "SlugSuggester",
    "SlugSuggestionError",
    "TextRenderer",
    "abbreviate_commit_label",
    "avoid_reserved",
    "build_view",
    "is_reserved_slug",
    "is_valid_slug",
    "organized_children",
    "render_text",
    "render_view",
    "sanitize_slug",
    "suggest_or_sanitize",
    "target_path",
    "validate_node_input",
]
