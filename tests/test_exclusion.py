"""
Exclusion Tests - Verify the path prefix and tag predicate.
"""

import pytest

from ragsync.exclusion import ExclusionFilter, document_tags, is_excluded, normalize_tag
from ragsync.models import TagMetadata


class TestNormalizeTag:
    """Tests for tag normalization."""

    @pytest.mark.parametrize("raw,expected", [
        ("private", "#private"),
        ("#private", "#private"),
        ("##private", "#private"),
        ("  #private ", "#private"),
        ("nested/tag", "#nested/tag"),
        ("#", ""),
        ("", ""),
    ])
    def test_normalizes_marker(self, raw, expected):
        assert normalize_tag(raw) == expected

    def test_document_tags_unions_sources(self):
        """Frontmatter and inline tags are merged and normalized."""
        tags = TagMetadata(frontmatter_tags=("a", "#b"), inline_tags=("b", "c"))
        assert document_tags(tags) == {"#a", "#b", "#c"}

    def test_document_tags_handles_none(self):
        assert document_tags(None) == set()


class TestIsExcluded:
    """Tests for the exclusion predicate."""

    def test_archive_prefix_excluded(self):
        assert is_excluded("Archive/x.md", ["Archive/"], None, ["#private"])

    def test_inline_tag_without_marker_excluded(self):
        """An inline tag written without marker is normalized before matching."""
        tags = TagMetadata(inline_tags=("private",))
        assert is_excluded("Notes/y.md", ["Archive/"], tags, ["#private"])

    def test_frontmatter_tag_excluded(self):
        tags = TagMetadata(frontmatter_tags=("#private",))
        assert is_excluded("Notes/w.md", ["Archive/"], tags, ["private"])

    def test_unmatched_document_included(self):
        tags = TagMetadata(frontmatter_tags=("work",), inline_tags=("todo",))
        assert not is_excluded("Notes/z.md", ["Archive/"], tags, ["#private"])

    def test_prefix_is_not_segment_aware(self):
        """A prefix "Foo" also excludes "FooBar/x"."""
        assert is_excluded("FooBar/x.md", ["Foo"], None, [])
        assert not is_excluded("Bar/Foo/x.md", ["Foo"], None, [])

    def test_missing_tag_metadata_is_empty(self):
        assert not is_excluded("Notes/z.md", [], None, ["#private"])

    def test_empty_prefix_ignored(self):
        assert not is_excluded("Notes/z.md", [""], None, [])

    def test_tag_match_is_case_sensitive(self):
        tags = TagMetadata(inline_tags=("Private",))
        assert not is_excluded("Notes/z.md", [], tags, ["#private"])

    def test_is_idempotent(self):
        """Same inputs give the same answer, and inputs are not modified."""
        prefixes = ["Archive/"]
        excluded = ["private"]
        tags = TagMetadata(inline_tags=("private",))

        first = is_excluded("Notes/y.md", prefixes, tags, excluded)
        second = is_excluded("Notes/y.md", prefixes, tags, excluded)

        assert first is second is True
        assert prefixes == ["Archive/"]
        assert excluded == ["private"]


class TestExclusionFilter:
    """Tests for the bound filter."""

    @pytest.fixture
    def exclusion_filter(self):
        return ExclusionFilter(["Archive/", ""], ["private", "#secret"])

    def test_normalizes_configuration(self, exclusion_filter):
        assert exclusion_filter.path_prefixes == ("Archive/",)
        assert exclusion_filter.excluded_tags == frozenset({"#private", "#secret"})

    def test_excludes_path_ignores_tags(self, exclusion_filter):
        assert exclusion_filter.excludes_path("Archive/old.md")
        assert not exclusion_filter.excludes_path("Notes/y.md")

    def test_excludes_by_tag(self, exclusion_filter):
        assert exclusion_filter.excludes("Notes/y.md", TagMetadata(inline_tags=("secret",)))
        assert not exclusion_filter.excludes("Notes/y.md", TagMetadata(inline_tags=("public",)))

    def test_checks_tags(self):
        assert not ExclusionFilter(["Archive/"]).checks_tags
        assert ExclusionFilter([], ["x"]).checks_tags

    def test_from_config(self, test_config):
        exclusion_filter = ExclusionFilter.from_config(test_config)
        assert exclusion_filter.path_prefixes == ("Archive/",)
        assert "#private" in exclusion_filter.excluded_tags
