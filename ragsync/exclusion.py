"""
Exclusion Filter - Decides which documents stay out of the index.

A document is excluded when its identifier starts with one of the configured
path prefixes, or when any of its tags (frontmatter or inline) is one of the
configured tags. Prefix matching is plain string matching: "Foo" also
excludes "FooBar/x.md".
"""

from typing import Iterable, Optional, Set, Tuple

from .models import TagMetadata


TAG_MARKER = "#"


def normalize_tag(tag: str) -> str:
    """Return the tag with exactly one leading marker, or "" if empty."""
    name = str(tag).strip().lstrip(TAG_MARKER).strip()
    return f"{TAG_MARKER}{name}" if name else ""


def normalize_tags(tags: Iterable[str]) -> Set[str]:
    return {t for t in (normalize_tag(tag) for tag in tags) if t}


def document_tags(tags: Optional[TagMetadata]) -> Set[str]:
    """Union of frontmatter and inline tags, normalized."""
    if tags is None:
        return set()
    return normalize_tags(tags.frontmatter_tags) | normalize_tags(tags.inline_tags)


def is_excluded(
    identifier: str,
    path_prefixes: Iterable[str],
    tags: Optional[TagMetadata],
    excluded_tags: Iterable[str],
) -> bool:
    """Check whether a document is excluded by path prefix or tag."""
    if any(prefix and identifier.startswith(prefix) for prefix in path_prefixes):
        return True

    excluded = normalize_tags(excluded_tags)
    if not excluded:
        return False

    return not excluded.isdisjoint(document_tags(tags))


class ExclusionFilter:
    """An exclusion configuration bound to the predicate."""

    def __init__(self, path_prefixes: Iterable[str] = (), excluded_tags: Iterable[str] = ()):
        self.path_prefixes: Tuple[str, ...] = tuple(p for p in path_prefixes if p)
        self.excluded_tags: frozenset = frozenset(normalize_tags(excluded_tags))

    @classmethod
    def from_config(cls, config) -> "ExclusionFilter":
        return cls(config.exclude_paths, config.exclude_tags)

    @property
    def checks_tags(self) -> bool:
        return bool(self.excluded_tags)

    def excludes_path(self, identifier: str) -> bool:
        """Path-only check, usable before the document is read."""
        return is_excluded(identifier, self.path_prefixes, None, ())

    def excludes(self, identifier: str, tags: Optional[TagMetadata] = None) -> bool:
        return is_excluded(identifier, self.path_prefixes, tags, self.excluded_tags)

    def __repr__(self) -> str:
        return (
            f"ExclusionFilter(path_prefixes={list(self.path_prefixes)!r}, "
            f"excluded_tags={sorted(self.excluded_tags)!r})"
        )
