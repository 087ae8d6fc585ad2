"""Title to slug conversion."""

from __future__ import annotations

import re

UNTITLED_SLUG = "untitled"
SLUG_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
_NON_SLUG_RUN = re.compile(r"[^a-z0-9]+")

# "index" would put a leaf at its parent's own index.md
RESERVED_SLUGS = frozenset({"index"})
RESERVED_SUFFIX = "-page"


def sanitize_slug(title: str) -> str:
    """Lowercase, collapse runs outside [a-z0-9] to one hyphen, trim hyphens."""
    slug = _NON_SLUG_RUN.sub("-", (title or "").lower()).strip("-")
    return slug or UNTITLED_SLUG


def avoid_reserved(slug: str) -> str:
    """Rename a reserved slug so it can never collide with a directory index."""
    if slug in RESERVED_SLUGS:
        return slug + RESERVED_SUFFIX
    return slug


def is_valid_slug(slug: str) -> bool:
    return bool(SLUG_PATTERN.match(slug))


def is_reserved_slug(slug: str) -> bool:
    return slug in RESERVED_SLUGS


__all__ = [
    "RESERVED_SLUGS",
    "SLUG_PATTERN",
    "UNTITLED_SLUG",
    "avoid_reserved",
    "is_reserved_slug",
    "is_valid_slug",
    "sanitize_slug",
]
